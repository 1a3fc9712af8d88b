# core/rate_limiter_slowapi.py
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from fastapi import Request
from fastapi.responses import JSONResponse
from datetime import datetime
import redis.asyncio as redis
from core.config import settings


def create_redis_client():
    """Redis client shared by the debounce markers, None when Redis isn't configured."""
    if not settings.REDIS_ENABLED:
        return None
    return redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=10,
        socket_timeout=10,
        retry_on_timeout=True,
        health_check_interval=30
    )


def get_api_key(request: Request) -> str:
    """Get key for general API endpoints."""
    return f"api:{get_remote_address(request)}"


# Falls back to in-memory storage when Redis isn't configured
api_limiter = Limiter(
    key_func=get_api_key,
    storage_uri=settings.REDIS_URL if settings.REDIS_ENABLED else "memory://",
    default_limits=[settings.API_RATE_LIMIT]
)


# Custom exception handler for consistent error responses
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Custom rate limit exceeded handler."""
    description = getattr(exc, 'detail', None) or 'Too many requests'
    retry_after = 60

    return JSONResponse(
        status_code=429,
        content={
            "error": True,
            "message": f"Rate limit exceeded: {description}",
            "status_code": 429,
            "timestamp": datetime.utcnow().isoformat(),
            "retry_after": retry_after
        },
        headers={"Retry-After": str(retry_after)}
    )


def setup_rate_limiting(app):
    """Setup SlowAPI rate limiting for the FastAPI app."""
    app.state.limiter = api_limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    return app


async def check_redis_health(redis_client) -> bool:
    """Check if Redis is reachable."""
    if redis_client is None:
        return False
    try:
        await redis_client.ping()
        return True
    except redis.RedisError:
        return False
