# app.py
import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, HTTPException

from core.auctions import AuctionHistorySync
from core.config import settings
from core.database import init_db, collection_for
from core.debounce import DebounceGate
from core.dispatcher import UpdateDispatcher
from core.hypixel import HypixelClient
from core.leaderboards import KnownNamesRegistry, LeaderboardStore
from core.rate_limiter_slowapi import setup_rate_limiting, create_redis_client, check_redis_health
from core.resources import UpstreamResources
from core.scheduler import LeaderboardJanitor
from components import leaderboard, auctions

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build every long-lived object once, start the background jobs, and stop them on shutdown."""
    from data.models import LeaderboardMember, KnownNames, ItemAuctions

    print("Initializing database connection...")
    database = await init_db()
    print("Database connection successful.")

    redis_client = create_redis_client()
    if await check_redis_health(redis_client):
        print("✅ Redis connection successful - shared debounce markers active")
    else:
        print("⚠️ Redis not available - debounce markers and rate limits are in-memory")
        redis_client = None

    hypixel = HypixelClient(
        api_key=settings.HYPIXEL_API_KEY,
        base_url=settings.HYPIXEL_API_BASE,
        timeout=settings.HYPIXEL_TIMEOUT_SECONDS,
    )
    registry = KnownNamesRegistry(collection_for(database, KnownNames))
    store = LeaderboardStore(
        collection_for(database, LeaderboardMember),
        registry,
        leaderboard_max=settings.LEADERBOARD_MAX,
    )
    dispatcher = UpdateDispatcher(
        store,
        DebounceGate(ttl_seconds=settings.MEMBER_UPDATE_DEBOUNCE_SECONDS, redis_client=redis_client),
        concurrency=settings.DISPATCH_CONCURRENCY,
        interval_seconds=settings.DISPATCH_INTERVAL_SECONDS,
    )
    janitor = LeaderboardJanitor(
        store,
        warm_interval_seconds=settings.CACHE_WARM_INTERVAL_SECONDS,
        warm_pause_seconds=settings.CACHE_WARM_PAUSE_SECONDS,
        prune_pause_seconds=settings.PRUNE_PAUSE_SECONDS,
    )
    auctions_collection = collection_for(database, ItemAuctions)
    auction_sync = AuctionHistorySync(
        hypixel.fetch_ended_auctions,
        auctions_collection,
        history_max=settings.AUCTION_HISTORY_MAX,
        persist_workers=settings.AUCTION_PERSIST_WORKERS,
        refresh_seconds=settings.ENDED_AUCTIONS_REFRESH_SECONDS,
        margin_seconds=settings.ENDED_AUCTIONS_MARGIN_SECONDS,
        error_retry_seconds=settings.AUCTION_SYNC_ERROR_RETRY_SECONDS,
    )
    resources = UpstreamResources(
        hypixel,
        auctions_collection,
        election_ttl_seconds=settings.ELECTION_TTL_SECONDS,
        item_list_ttl_seconds=settings.ITEM_LIST_TTL_SECONDS,
        auction_items_ttl_seconds=settings.AUCTION_ITEMS_TTL_SECONDS,
    )

    app.state.database = database
    app.state.leaderboards = store
    app.state.dispatcher = dispatcher
    app.state.auction_sync = auction_sync
    app.state.resources = resources

    print("Starting background tasks...")
    dispatcher.start()
    janitor.start()
    auction_sync.start()
    print("Background tasks started.")

    yield

    print("Shutting down...")
    await auction_sync.stop()
    await janitor.stop()
    await dispatcher.stop()
    await hypixel.close()
    if redis_client is not None:
        await redis_client.aclose()
    database.client.close()
    print("Shutdown complete.")


app = FastAPI(
    title="SkyBlock Leaderboards",
    description="Member leaderboards and ended auction histories for Hypixel SkyBlock.",
    version="1.0.0",
    lifespan=lifespan,
)

setup_rate_limiting(app)

# --- Include Component Routers ---
app.include_router(leaderboard.router)
app.include_router(auctions.router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for load balancers."""
    try:
        await app.state.database.command("ping")
    except Exception:
        logger.warning("[HEALTH] Database ping failed", exc_info=True)
        raise HTTPException(
            status_code=503,
            detail={
                "status": "unhealthy",
                "timestamp": datetime.utcnow().isoformat(),
                "error": "Database connection failed"
            }
        )
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "pending_member_updates": app.state.dispatcher.pending,
    }


@app.get("/", tags=["Root"])
async def read_root():
    return {"message": "Welcome to the SkyBlock Leaderboards API!"}
