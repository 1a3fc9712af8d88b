# data/models/models.py
# All database models (Document classes) are consolidated here to avoid circular imports

from datetime import datetime
from pydantic import BaseModel, Field
from beanie import Document
from beanie.odm.fields import Indexed as IndexedField
from pymongo import IndexModel
from typing import Dict, List, Annotated, Optional


# ===== LEADERBOARD MODELS =====

class LeaderboardMember(Document):
    """
    One member of one profile. `stats` only holds the attributes that currently
    put the member inside some top-K window, everything else is pruned.
    """
    uuid: str
    profile: str
    stats: Dict[str, float] = Field(default_factory=dict)
    last_updated: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "member-leaderboards"
        indexes = [
            IndexModel([("uuid", 1), ("profile", 1)], unique=True),
        ]


class KnownNames(Document):
    """Names discovered at runtime, e.g. every raw stat name ever seen on a member."""
    key: Annotated[str, IndexedField(unique=True)]  # "stats" | "collections" | "skills" | "zones"
    values: List[str] = Field(default_factory=list)

    class Settings:
        name = "constants"


# Incoming member data, produced by the profile cleaners
class MemberSnapshot(BaseModel):
    uuid: str
    profile_uuid: str
    username: Optional[str] = None
    raw_stats: Dict[str, float] = Field(default_factory=dict)
    collections: Dict[str, float] = Field(default_factory=dict)  # name -> xp
    skills: Dict[str, float] = Field(default_factory=dict)  # name -> xp
    fairy_souls: int = 0
    first_join: Optional[int] = None
    purse: float = 0
    visited_zones: List[str] = Field(default_factory=list)


# ===== AUCTION MODELS =====

class SimpleAuction(BaseModel):
    id: str
    coins: float
    ts: int  # seconds since epoch when the auction ended
    bin: bool = False
    sold: bool = True


class ItemAuctions(Document):
    item_id: Annotated[str, IndexedField(unique=True)]
    # append order, most recent last, capped
    auctions: List[SimpleAuction] = Field(default_factory=list)

    class Settings:
        name = "item-auctions"


class AuctionRecord(BaseModel):
    """An ended auction as cleaned from the upstream feed."""
    id: str
    item_id: str
    coins: float
    ended_at_seconds: int
    bin: bool = False

    def to_simple(self) -> SimpleAuction:
        return SimpleAuction(id=self.id, coins=self.coins, ts=self.ended_at_seconds, bin=self.bin)


class EndedAuctionsSnapshot(BaseModel):
    last_updated: int  # epoch millis
    auctions: List[AuctionRecord] = Field(default_factory=list)


# ===== ITEM LIST MODELS =====

class ItemDungeonRequirement(BaseModel):
    type: str
    level: int


class ItemRequirement(BaseModel):
    dungeon: ItemDungeonRequirement


class ItemDisplay(BaseModel):
    name: str
    glint: bool = False


class ItemListItem(BaseModel):
    id: str
    vanilla_id: str
    tier: Optional[str] = None
    display: ItemDisplay
    npc_sell_price: Optional[float] = None
    requirements: Optional[ItemRequirement] = None


class ItemList(BaseModel):
    last_updated: int
    list: List[ItemListItem] = Field(default_factory=list)
