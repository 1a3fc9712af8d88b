# core/debounce.py
"""
Short-lived per-entity markers used to skip redundant update work.

Markers live in Redis when a client is supplied (so several instances share
them) and in a TTLCache otherwise. A Redis failure falls back to the local
cache for that call.
"""

import logging
import time
from typing import Callable, Optional

import redis.asyncio as redis
from cachetools import TTLCache

logger = logging.getLogger(__name__)


class DebounceGate:
    KEY_PREFIX = "debounce:"

    def __init__(
        self,
        ttl_seconds: int = 60 * 3,
        redis_client: Optional[redis.Redis] = None,
        maxsize: int = 100_000,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._redis = redis_client
        self._markers = TTLCache(maxsize=maxsize, ttl=ttl_seconds, timer=timer)

    def _mark_local(self, key: str) -> bool:
        if key in self._markers:
            return False
        self._markers[key] = True
        return True

    async def should_proceed(self, key: str) -> bool:
        """
        Return False if the key was marked within the TTL window, otherwise
        mark it and return True.
        """
        if self._redis is not None:
            try:
                # SET NX only succeeds when no marker exists
                created = await self._redis.set(
                    f"{self.KEY_PREFIX}{key}", 1, ex=self.ttl_seconds, nx=True
                )
                return bool(created)
            except redis.RedisError as e:
                logger.warning(f"[DEBOUNCE] Redis unavailable, using local markers: {e}")
        return self._mark_local(key)
