# core/resources.py
import logging
from typing import Dict

from core.cache import SingleFlightCache
from core.hypixel import HypixelClient
from data.models import ItemList

logger = logging.getLogger(__name__)


def prettify_item_id(item_id: str) -> str:
    """ENCHANTED_DIAMOND -> Enchanted diamond"""
    lowered = item_id.lower()
    return (lowered[:1].upper() + lowered[1:]).replace("_", " ")


class UpstreamResources:
    """
    Global upstream datasets that change on a fixed cadence. Each one is
    cached on its own, and concurrent callers on a cold cache share one fetch.
    """

    def __init__(
        self,
        client: HypixelClient,
        auctions_collection,
        election_ttl_seconds: float = 10 * 60,
        item_list_ttl_seconds: float = 60 * 60,
        auction_items_ttl_seconds: float = 10 * 60,
    ):
        self.client = client
        self.auctions_collection = auctions_collection
        self.election_cache = SingleFlightCache[dict](ttl_seconds=election_ttl_seconds)
        self.item_list_cache = SingleFlightCache[ItemList](ttl_seconds=item_list_ttl_seconds)
        self.auction_items_cache = SingleFlightCache[Dict[str, str]](ttl_seconds=auction_items_ttl_seconds)

    async def election(self) -> dict:
        return await self.election_cache.get_or_fetch(self.client.fetch_election)

    async def item_list(self) -> ItemList:
        return await self.item_list_cache.get_or_fetch(self.client.fetch_item_list)

    async def auction_items(self) -> Dict[str, str]:
        """Ids of every item with an auction history, mapped to display names."""
        return await self.auction_items_cache.get_or_fetch(self._fetch_auction_items)

    async def _fetch_auction_items(self) -> Dict[str, str]:
        auction_item_ids = await self.auctions_collection.distinct("item_id")
        wanted = set(auction_item_ids)
        item_list = await self.item_list()

        # only items with auctions, the full list has things like minions we don't care about
        names = {item.id: item.display.name for item in item_list.list if item.id in wanted}
        for item_id in auction_item_ids:
            if item_id not in names:
                names[item_id] = prettify_item_id(item_id)
        logger.debug(f"[HYPIXEL] Loaded names for {len(names)} auction items")
        return names
