# core/leaderboards.py
"""
Member leaderboards.

Only the top `leaderboard_max` members of every leaderboard are kept in the
`member-leaderboards` collection, and the same top lists are mirrored in
memory so reads and applicability checks don't hit the database every time.
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from core.stats import (
    categorize_stat,
    get_leaderboard_unit,
    is_leaderboard_reversed,
    is_numeric_stat,
)
from data.models import MemberSnapshot

logger = logging.getLogger(__name__)

# Leaderboards that aren't discovered from member data
FIXED_MEMBER_LEADERBOARDS = ["fairy_souls", "first_join", "purse", "visited_zones"]


class KnownNamesRegistry:
    """Keeps track of every stat, collection, skill and zone name seen so far."""

    KINDS = ("stats", "collections", "skills", "zones")

    def __init__(self, collection):
        self.collection = collection
        self._known: Dict[str, Set[str]] = {}

    async def _load(self, kind: str) -> Set[str]:
        doc = await self.collection.find_one({"key": kind})
        values = set(doc.get("values", [])) if doc else set()
        self._known[kind] = values
        return values

    async def fetch(self, kind: str, refresh: bool = False) -> List[str]:
        if refresh or kind not in self._known:
            await self._load(kind)
        return sorted(self._known[kind])

    async def add(self, kind: str, names: Iterable[str]):
        """Store the names that haven't been seen before."""
        if kind not in self._known:
            await self._load(kind)
        known = self._known[kind]
        new_names = sorted({name for name in names if name and name not in known})
        if not new_names:
            return
        await self.collection.update_one(
            {"key": kind},
            {"$addToSet": {"values": {"$each": new_names}}},
            upsert=True,
        )
        known.update(new_names)
        logger.debug(f"[LEADERBOARDS] Discovered {len(new_names)} new {kind}")


def member_leaderboard_attributes(member: MemberSnapshot) -> Dict[str, float]:
    """Every leaderboard value of a member, applicable or not."""
    attributes = {
        # raw stat names rather than cleaned ones, new upstream stats get a leaderboard right away
        **member.raw_stats,
        **{f"collection_{name}": xp for name, xp in member.collections.items()},
        **{f"skill_{name}": xp for name, xp in member.skills.items()},
        "fairy_souls": member.fairy_souls,
        "first_join": member.first_join,
        "purse": member.purse,
        "visited_zones": len(member.visited_zones),
    }
    return {name: value for name, value in attributes.items() if is_numeric_stat(value)}


class LeaderboardStore:
    def __init__(self, collection, registry: KnownNamesRegistry, leaderboard_max: int = 100):
        self.collection = collection
        self.registry = registry
        self.leaderboard_max = leaderboard_max
        self._cached_raw: Dict[str, List[dict]] = {}
        self._loading: Dict[str, asyncio.Future] = {}

    @staticmethod
    def is_reversed(name: str) -> bool:
        return is_leaderboard_reversed(name)

    def _direction(self, name: str) -> int:
        return 1 if self.is_reversed(name) else -1

    def is_cached(self, name: str) -> bool:
        return name in self._cached_raw

    async def get_raw(self, name: str) -> List[dict]:
        """The stored top entries of a leaderboard, best first."""
        cached = self._cached_raw.get(name)
        if cached is not None:
            return cached

        # one query per leaderboard at a time, a late query would undo newer patches
        loading = self._loading.get(name)
        if loading is not None:
            leaderboard_raw = await asyncio.shield(loading)
            # the loader may have patched it already
            return self._cached_raw.get(name, leaderboard_raw)

        loading = asyncio.get_running_loop().create_future()
        self._loading[name] = loading
        try:
            field = f"stats.{name}"
            cursor = (
                self.collection
                .find({field: {"$exists": True, "$ne": float("nan")}})
                .sort(field, self._direction(name))
                .limit(self.leaderboard_max)
            )
            leaderboard_raw = await cursor.to_list(length=self.leaderboard_max)
        except asyncio.CancelledError:
            loading.cancel()
            raise
        except Exception as e:
            loading.set_exception(e)
            # waiters re-raise it, don't warn when there are none
            loading.exception()
            raise
        finally:
            self._loading.pop(name, None)

        self._cached_raw[name] = leaderboard_raw
        loading.set_result(leaderboard_raw)
        return leaderboard_raw

    async def get_requirement(self, name: str) -> Optional[float]:
        """Value of the last place if the leaderboard is full, None otherwise."""
        leaderboard = await self.get_raw(name)
        if len(leaderboard) >= self.leaderboard_max:
            return leaderboard[self.leaderboard_max - 1]["stats"][name]
        return None

    def beats(self, name: str, value: float, requirement: float) -> bool:
        if self.is_reversed(name):
            return value < requirement
        return value > requirement

    async def applicable_attributes(self, attributes: Dict[str, float]) -> Dict[str, float]:
        """Only the attributes that would put the member in the top of their leaderboard."""
        applicable = {}
        for name, value in attributes.items():
            if not is_numeric_stat(value):
                continue
            requirement = await self.get_requirement(name)
            if requirement is None or self.beats(name, value, requirement):
                applicable[name] = value
        return applicable

    def _patch_cached(self, name: str, entry: dict):
        # no awaits in here, patches of one leaderboard can't interleave
        leaderboard = [item for item in self._cached_raw.get(name, []) if item["uuid"] != entry["uuid"]]
        leaderboard.append(entry)
        leaderboard.sort(key=lambda item: item["stats"][name], reverse=not self.is_reversed(name))
        self._cached_raw[name] = leaderboard[:self.leaderboard_max]

    async def commit(self, uuid: str, profile: str, attributes: Dict[str, float]):
        """Store the member's applicable attributes and patch the cached leaderboards."""
        last_updated = datetime.utcnow()
        await self.collection.update_one(
            {"uuid": uuid, "profile": profile},
            {"$set": {"stats": attributes, "last_updated": last_updated}},
            upsert=True,
        )

        entry = {
            "uuid": uuid,
            "profile": profile,
            "stats": dict(attributes),
            "last_updated": last_updated,
        }
        for name in attributes:
            # make sure the cached leaderboard exists so we don't patch a partial list
            await self.get_raw(name)
            self._patch_cached(name, entry)

    async def record_member_names(self, member: MemberSnapshot):
        await self.registry.add("stats", member.raw_stats.keys())
        await self.registry.add("collections", member.collections.keys())
        await self.registry.add("skills", member.skills.keys())
        await self.registry.add("zones", member.visited_zones)

    async def update_member(self, member: MemberSnapshot) -> Dict[str, float]:
        """Update the member's leaderboard data if anything is applicable."""
        await self.record_member_names(member)
        applicable = await self.applicable_attributes(member_leaderboard_attributes(member))
        await self.commit(member.uuid, member.profile_uuid, applicable)
        return applicable

    async def prune(self, name: str) -> int:
        """
        Unset the attribute from every member that is below the last place.
        Returns the number of modified documents.
        """
        requirement = await self.get_requirement(name)
        if requirement is None:
            return 0
        field = f"stats.{name}"
        worse = {"$gt": requirement} if self.is_reversed(name) else {"$lt": requirement}
        result = await self.collection.update_many({field: worse}, {"$unset": {field: ""}})
        return result.modified_count

    async def is_known_leaderboard(self, name: str) -> bool:
        return name in await self.all_leaderboard_names()

    async def get_leaderboard(self, name: str) -> Optional[dict]:
        """The public view of a leaderboard, or None if no member ever had the attribute."""
        # unknown names are never queried, so they can't pile up in the mirror
        if not await self.is_known_leaderboard(name):
            return None
        leaderboard_raw = await self.get_raw(name)
        return {
            "name": name,
            "unit": get_leaderboard_unit(name),
            "list": [
                {
                    "entity": {"uuid": item["uuid"], "profile": item.get("profile")},
                    "value": item["stats"][name],
                }
                for item in leaderboard_raw
            ],
        }

    async def all_leaderboard_names(self, refresh: bool = False) -> List[str]:
        """The names of all the member leaderboards."""
        stats = await self.registry.fetch("stats", refresh=refresh)
        collections = await self.registry.fetch("collections", refresh=refresh)
        skills = await self.registry.fetch("skills", refresh=refresh)
        return [
            *stats,
            *(f"collection_{name}" for name in collections),
            *(f"skill_{name}" for name in skills),
            *FIXED_MEMBER_LEADERBOARDS,
        ]

    async def all_leaderboards_categorized(self) -> Dict[str, List[str]]:
        categorized: Dict[str, List[str]] = {}
        for name in await self.all_leaderboard_names():
            category = categorize_stat(name).category
            categorized.setdefault(category, []).append(name)

        # misc goes last
        if "misc" in categorized:
            categorized["misc"] = categorized.pop("misc")
        return categorized
