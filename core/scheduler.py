import asyncio
import logging
import random
from typing import List, Optional

from core.leaderboards import LeaderboardStore

logger = logging.getLogger(__name__)


class LeaderboardJanitor:
    """
    Background jobs over every known leaderboard: warming the cached top
    lists, and removing stored attributes that fell out of the top.
    Both walk the leaderboards in random order so frequent restarts still
    make progress across all of them.
    """

    def __init__(
        self,
        store: LeaderboardStore,
        warm_interval_seconds: float = 4 * 60 * 60,
        warm_pause_seconds: float = 2,
        prune_pause_seconds: float = 10,
    ):
        self.store = store
        self.warm_interval_seconds = warm_interval_seconds
        self.warm_pause_seconds = warm_pause_seconds
        self.prune_pause_seconds = prune_pause_seconds
        self._tasks: List[asyncio.Task] = []
        self._stopping: Optional[asyncio.Event] = None

    async def _shuffled_leaderboards(self) -> List[str]:
        leaderboards = await self.store.all_leaderboard_names(refresh=True)
        random.shuffle(leaderboards)
        return leaderboards

    async def _pause(self, seconds: float) -> bool:
        """Sleep, returns False if the janitor is being stopped."""
        if self._stopping is None:
            await asyncio.sleep(seconds)
            return True
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return True
        return False

    async def warm_all_leaderboards(self) -> int:
        """Fetch every leaderboard into the cache. Don't call this often!"""
        logger.info("[JANITOR] Caching leaderboards...")
        warmed = 0
        for leaderboard in await self._shuffled_leaderboards():
            # wait between leaderboards so it doesn't use as much ram
            if not await self._pause(self.warm_pause_seconds):
                break
            try:
                await self.store.get_raw(leaderboard)
                warmed += 1
            except Exception as e:
                logger.error(f"[JANITOR] Failed to cache leaderboard {leaderboard}: {e}", exc_info=True)
        logger.info(f"[JANITOR] Finished caching {warmed} leaderboards")
        return warmed

    async def prune_all_leaderboards(self) -> int:
        """
        Remove leaderboard attributes for members that wouldn't actually be on
        the leaderboard. This saves a lot of storage space.
        """
        logger.info("[JANITOR] Removing attributes of members outside the leaderboards...")
        modified = 0
        for leaderboard in await self._shuffled_leaderboards():
            if not await self._pause(self.prune_pause_seconds):
                break
            try:
                modified += await self.store.prune(leaderboard)
            except Exception as e:
                logger.error(f"[JANITOR] Failed to prune leaderboard {leaderboard}: {e}", exc_info=True)
        logger.info(f"[JANITOR] Pruned {modified} member documents")
        return modified

    async def periodic_warm_task(self):
        """Warm the caches on startup, then again every interval."""
        print("Periodic leaderboard caching task has started.")
        while True:
            try:
                await self.warm_all_leaderboards()
            except Exception as e:
                # listing the leaderboards failed, try again next interval
                logger.error(f"[JANITOR] Error in the periodic caching task: {e}", exc_info=True)
            if not await self._pause(self.warm_interval_seconds):
                return

    async def prune_on_startup_task(self):
        try:
            await self.prune_all_leaderboards()
        except Exception as e:
            logger.error(f"[JANITOR] Error in the pruning task: {e}", exc_info=True)

    def start(self):
        self._stopping = asyncio.Event()
        self._tasks = [
            asyncio.create_task(self.prune_on_startup_task()),
            asyncio.create_task(self.periodic_warm_task()),
        ]

    async def stop(self):
        if self._stopping is not None:
            self._stopping.set()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
