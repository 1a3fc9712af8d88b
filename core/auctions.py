# core/auctions.py
"""
Keeps a short history of recently ended auctions for every item.

The upstream ended-auctions feed only covers the last minute, so it's polled
right after every refresh and new auctions are appended to the stored
per-item histories, which are capped to the most recent entries.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set

from core.hypixel import UpstreamUnavailable
from data.models import AuctionRecord, EndedAuctionsSnapshot, SimpleAuction

logger = logging.getLogger(__name__)


def merge_auction(auctions: List[SimpleAuction], auction: SimpleAuction, history_max: int = 100) -> List[SimpleAuction]:
    """Append the auction unless it's already there, keeping only the last `history_max`."""
    if any(existing.id == auction.id for existing in auctions):
        return auctions
    auctions = auctions + [auction]
    if len(auctions) > history_max:
        auctions = auctions[-history_max:]
    return auctions


class AuctionHistorySync:
    def __init__(
        self,
        fetch_ended_auctions: Callable[[], Awaitable[EndedAuctionsSnapshot]],
        collection,
        history_max: int = 100,
        persist_workers: int = 5,
        refresh_seconds: float = 60,
        margin_seconds: float = 10,
        error_retry_seconds: float = 60,
        clock: Callable[[], float] = time.time,
    ):
        self.fetch_ended_auctions = fetch_ended_auctions
        self.collection = collection
        self.history_max = history_max
        self.persist_workers = persist_workers
        self.refresh_seconds = refresh_seconds
        self.margin_seconds = margin_seconds
        self.error_retry_seconds = error_retry_seconds
        self._clock = clock
        self.previous_ids: Set[str] = set()
        self._task: Optional[asyncio.Task] = None
        self._stopping: Optional[asyncio.Event] = None

    async def load_histories(self, item_ids: Iterable[str]) -> Dict[str, List[SimpleAuction]]:
        item_ids = list(item_ids)
        if not item_ids:
            return {}
        cursor = self.collection.find({"item_id": {"$in": item_ids}})
        histories = {}
        for doc in await cursor.to_list(length=None):
            histories[doc["item_id"]] = [SimpleAuction(**auction) for auction in doc.get("auctions", [])]
        return histories

    def merge_new_auctions(
        self,
        histories: Dict[str, List[SimpleAuction]],
        new_auctions: Iterable[AuctionRecord],
    ) -> Dict[str, List[SimpleAuction]]:
        """Merge the auctions into the histories they belong to, returns only the touched histories."""
        touched: Dict[str, List[SimpleAuction]] = {}
        for auction in new_auctions:
            current = touched.get(auction.item_id, histories.get(auction.item_id, []))
            touched[auction.item_id] = merge_auction(current, auction.to_simple(), self.history_max)
        return touched

    async def persist(self, histories: Dict[str, List[SimpleAuction]]) -> int:
        """Save the histories with a few workers so it's fast without overloading the database."""
        work = list(histories.items())
        saved = 0

        async def worker():
            nonlocal saved
            while work:
                item_id, auctions = work.pop()
                try:
                    await self.collection.update_one(
                        {"item_id": item_id},
                        {"$set": {"auctions": [auction.model_dump() for auction in auctions]}},
                        upsert=True,
                    )
                    saved += 1
                except Exception as e:
                    logger.error(f"[AUCTIONS] Failed to save auction history for {item_id}: {e}")

        await asyncio.gather(*(worker() for _ in range(self.persist_workers)))
        return saved

    def refetch_delay(self, snapshot: EndedAuctionsSnapshot) -> float:
        """Seconds until the upstream feed will have refreshed, measured from its own timestamp."""
        ended_ago = self._clock() - snapshot.last_updated / 1000
        return max(0.0, self.refresh_seconds - ended_ago + self.margin_seconds)

    async def sync_once(self) -> float:
        """Run one poll of the ended auctions feed. Returns how long to wait before the next one."""
        snapshot = await self.fetch_ended_auctions()

        new_auctions = [a for a in snapshot.auctions if a.id not in self.previous_ids]
        histories = await self.load_histories({a.item_id for a in new_auctions})
        touched = self.merge_new_auctions(histories, new_auctions)
        saved = await self.persist(touched)

        self.previous_ids = {a.id for a in snapshot.auctions}
        if new_auctions:
            logger.info(f"[AUCTIONS] Saved {len(new_auctions)} new auctions across {saved} items")
        return self.refetch_delay(snapshot)

    async def _pause(self, seconds: float) -> bool:
        if self._stopping is None:
            await asyncio.sleep(seconds)
            return True
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return True
        return False

    async def run(self):
        """Poll the ended auctions forever, this should only run once per process."""
        print("Ended auctions sync task has started.")
        while True:
            try:
                delay = await self.sync_once()
            except UpstreamUnavailable as e:
                logger.warning(f"[AUCTIONS] Couldn't fetch ended auctions: {e}")
                delay = self.error_retry_seconds
            except Exception as e:
                # never let one bad iteration kill the loop
                logger.error(f"[AUCTIONS] Error syncing ended auctions: {e}", exc_info=True)
                delay = self.error_retry_seconds
            if not await self._pause(delay):
                return

    def start(self):
        if self._task is None:
            self._stopping = asyncio.Event()
            self._task = asyncio.create_task(self.run())

    async def stop(self):
        if self._stopping is not None:
            self._stopping.set()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
