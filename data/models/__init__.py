# data/models/__init__.py
# Export all models for easy importing

from .models import (
    LeaderboardMember,
    KnownNames,
    MemberSnapshot,
    SimpleAuction,
    ItemAuctions,
    AuctionRecord,
    EndedAuctionsSnapshot,
    ItemList,
    ItemListItem,
)

__all__ = [
    "LeaderboardMember",
    "KnownNames",
    "MemberSnapshot",
    "SimpleAuction",
    "ItemAuctions",
    "AuctionRecord",
    "EndedAuctionsSnapshot",
    "ItemList",
    "ItemListItem",
]
