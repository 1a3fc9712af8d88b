# core/hypixel.py
"""
Thin client for the upstream Hypixel API, plus the cleaners for the
responses this service consumes directly.
"""

import base64
import gzip
import io
import logging
from typing import Callable, Optional

import httpx
import nbtlib

from data.models import (
    AuctionRecord,
    EndedAuctionsSnapshot,
    ItemList,
    ItemListItem,
)

logger = logging.getLogger(__name__)


class UpstreamUnavailable(Exception):
    """The upstream API couldn't be reached or returned an unsuccessful response."""

    def __init__(self, path: str, reason: Optional[str] = None):
        self.path = path
        self.reason = reason
        super().__init__(f"Request to {path} failed: {reason or 'no data returned'}")


def item_id_from_bytes(item_bytes) -> Optional[str]:
    """
    Read the SkyBlock item id out of an auction's `item_bytes`, which is
    base64 encoded gzipped NBT holding a list of items under `i`.
    Returns None if the bytes can't be decoded.
    """
    if isinstance(item_bytes, dict):
        # older responses wrap the bytes as {"type": 0, "data": "..."}
        item_bytes = item_bytes.get("data")
    if not item_bytes:
        return None
    try:
        raw = gzip.decompress(base64.b64decode(item_bytes))
        root = nbtlib.File.parse(io.BytesIO(raw))
        item_id = root["i"][0]["tag"]["ExtraAttributes"]["id"]
    except Exception as e:
        logger.debug(f"[HYPIXEL] Couldn't decode item bytes: {e}")
        return None
    return str(item_id) or None


def default_auction_item_id(auction: dict) -> Optional[str]:
    item_id = item_id_from_bytes(auction.get("item_bytes"))
    if item_id:
        return item_id
    # records that were cleaned before reaching this service carry the id in the open
    item = auction.get("item")
    if isinstance(item, dict) and item.get("id"):
        return item["id"]
    return auction.get("item_id")


def clean_ended_auctions(
    data: dict,
    item_id_of: Callable[[dict], Optional[str]] = default_auction_item_id,
) -> EndedAuctionsSnapshot:
    auctions = []
    skipped = 0
    for auction in data.get("auctions") or []:
        auction_id = auction.get("auction_id") or auction.get("id")
        item_id = item_id_of(auction)
        if not auction_id or not item_id:
            logger.debug(f"[HYPIXEL] Skipping malformed ended auction {auction_id!r}")
            skipped += 1
            continue
        auctions.append(AuctionRecord(
            id=auction_id,
            item_id=item_id,
            coins=auction.get("price", auction.get("coins", 0)),
            ended_at_seconds=int(auction.get("timestamp", 0) // 1000),
            bin=bool(auction.get("bin", False)),
        ))
    if skipped:
        logger.warning(f"[HYPIXEL] Skipped {skipped} malformed ended auctions out of {skipped + len(auctions)}")
    return EndedAuctionsSnapshot(last_updated=data.get("lastUpdated", 0), auctions=auctions)


def _clean_item_requirements(data) -> Optional[dict]:
    if not isinstance(data, dict) or not data.get("dungeon"):
        return None
    return {"dungeon": {"type": data["dungeon"]["type"], "level": data["dungeon"]["level"]}}


def _clean_item_list_item(item: dict) -> ItemListItem:
    vanilla_id = item.get("material", "").lower()
    return ItemListItem(
        id=item["id"],
        vanilla_id=f"{vanilla_id}:{item['durability']}" if item.get("durability") else vanilla_id,
        tier=item.get("tier"),
        display={"name": item.get("name", item["id"]), "glint": item.get("glowing", False)},
        npc_sell_price=item.get("npc_sell_price"),
        requirements=_clean_item_requirements(item.get("catacombs_requirements") or item.get("requirements")),
    )


def clean_item_list_response(data: dict) -> ItemList:
    return ItemList(
        last_updated=data.get("lastUpdated", 0),
        list=[_clean_item_list_item(item) for item in data.get("items") or [] if item.get("id")],
    )


class HypixelClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = "https://api.hypixel.net/v2",
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
        item_id_of: Callable[[dict], Optional[str]] = default_auction_item_id,
    ):
        self.api_key = api_key
        self._client = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._item_id_of = item_id_of

    async def close(self):
        await self._client.aclose()

    async def send_api_request(self, path: str, params: Optional[dict] = None) -> dict:
        headers = {"API-Key": self.api_key} if self.api_key else {}
        try:
            response = await self._client.get(path, params=params, headers=headers)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamUnavailable(path, f"HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamUnavailable(path, str(e)) from e

        if not data or not data.get("success", True):
            raise UpstreamUnavailable(path, (data or {}).get("cause"))
        return data

    async def fetch_ended_auctions(self) -> EndedAuctionsSnapshot:
        data = await self.send_api_request("skyblock/auctions_ended")
        return clean_ended_auctions(data, self._item_id_of)

    async def fetch_item_list(self) -> ItemList:
        data = await self.send_api_request("resources/skyblock/items")
        return clean_item_list_response(data)

    async def fetch_election(self) -> dict:
        data = await self.send_api_request("resources/skyblock/election")
        data.pop("success", None)
        return data
