"""
In-memory caching for singleton upstream resources with TTL support.
Concurrent refreshes are collapsed into a single fetch (single-flight).
"""

import asyncio
import time
from typing import Callable, Awaitable, TypeVar, Generic, Optional

T = TypeVar('T')


class SingleFlightCache(Generic[T]):
    """
    Single-flight in-memory cache with TTL.

    Usage:
        cache = SingleFlightCache(ttl_seconds=600)  # 10 minutes
        data = await cache.get_or_fetch(async_fetch_function)
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        """
        Initialize cache with specified TTL.

        Args:
            ttl_seconds: Time to live in seconds before cache expires
            clock: Monotonic time source, overridable in tests
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._data: Optional[T] = None
        self._expires_at: float = 0
        self._refresh: Optional[asyncio.Future] = None

    def _is_fresh(self) -> bool:
        return self._data is not None and self._clock() < self._expires_at

    @property
    def refresh_in_flight(self) -> bool:
        return self._refresh is not None

    async def get_or_fetch(self, fetch_func: Callable[[], Awaitable[T]]) -> T:
        """
        Get cached data or fetch fresh if expired.
        Callers arriving while a fetch is running wait for that fetch instead
        of starting their own.

        Args:
            fetch_func: Async function to call if cache is expired

        Returns:
            Cached or freshly fetched data
        """
        # Fast path, no suspension
        if self._is_fresh():
            return self._data

        if self._refresh is not None:
            # shield so a cancelled waiter doesn't cancel the shared refresh
            return await asyncio.shield(self._refresh)

        refresh = asyncio.get_running_loop().create_future()
        self._refresh = refresh
        try:
            fresh_data = await fetch_func()
        except asyncio.CancelledError:
            refresh.cancel()
            raise
        except Exception as e:
            refresh.set_exception(e)
            # waiters re-raise it, don't warn when there are none
            refresh.exception()
            raise
        finally:
            self._refresh = None

        self._data = fresh_data
        self._expires_at = self._clock() + self.ttl_seconds
        refresh.set_result(fresh_data)
        return fresh_data

    def invalidate(self):
        """Manually clear the cache."""
        self._data = None
        self._expires_at = 0

    def get_cache_info(self) -> dict:
        """Get cache metadata (for debugging/monitoring)."""
        return {
            "ttl_seconds": self.ttl_seconds,
            "has_data": self._data is not None,
            "refresh_in_flight": self.refresh_in_flight,
            "expires_in_seconds": (
                max(0.0, self._expires_at - self._clock()) if self._data is not None else None
            ),
        }
