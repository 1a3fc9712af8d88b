# core/stats.py
"""
Stat name classification.

Leaderboard and stat names are matched against ordered matcher tables. A
matcher ending with "_" matches names that start with it, a matcher starting
with "_" matches names that end with it, anything else must match exactly.
"""

import math
from typing import Dict, List, Optional

from pydantic import BaseModel

# Sorted in order of importance, the first matching category wins
STAT_CATEGORIES: Dict[str, Optional[List[str]]] = {
    "deaths": ["deaths_", "deaths"],
    "kills": ["kills_", "kills"],
    "fishing": ["items_fished_", "items_fished", "shredder_"],
    "auctions": ["auctions_"],
    "races": ["_best_time", "_best_time_2"],
    "mythos": ["mythos_burrows_", "mythos_kills"],

    "farming_contests": ["farming_contests_"],

    "collection": ["collection_"],
    "skills": ["skill_"],
    "slayer": ["slayer_"],
    "harp": ["harp_"],

    "misc": None,  # everything else goes here
}

STAT_UNITS: Dict[str, List[str]] = {
    "time": ["_best_time", "_best_time_2", "fastest_coop_join", "slowest_coop_join"],
    "date": ["first_join", "last_save"],
    "coins": ["purse"],
    "leaderboards": ["leaderboards_count", "top_1_leaderboards_count"],
}

# Leaderboard tables are kept separate from the stat tables, clients depend on them
REVERSED_LEADERBOARDS: List[str] = ["first_join", "_best_time", "_best_time_2"]

LEADERBOARD_UNITS: Dict[str, List[str]] = {
    "time": ["_best_time", "_best_time_2"],
    "date": ["first_join"],
    "coins": ["purse"],
}


class CategorizedStat(BaseModel):
    category: Optional[str]
    # None when the matcher matched the whole name
    name: Optional[str]
    unit: Optional[str] = None


def matches(name: str, matcher: str) -> bool:
    """Check a name against a single matcher."""
    trailing_end = matcher[0] == "_"
    trailing_start = matcher[-1] == "_"
    return (
        (trailing_start and name.startswith(matcher))
        or (trailing_end and name.endswith(matcher))
        or name == matcher
    )


def matches_any(name: str, matchers: List[str]) -> bool:
    return any(matches(name, matcher) for matcher in matchers)


def _stripped_name(stat_name_raw: str, matcher: str) -> Optional[str]:
    if matcher[-1] == "_" and stat_name_raw.startswith(matcher):
        return stat_name_raw[len(matcher):]
    if matcher[0] == "_" and stat_name_raw.endswith(matcher):
        return stat_name_raw[:-len(matcher)]
    # exact match, we don't know the name so the caller picks a default
    return None


def categorize_stat(stat_name_raw: str) -> CategorizedStat:
    """
    Find the category of a raw stat name, the part of the name left over
    once the matcher is stripped, and the unit its values are in.

    categorize_stat("deaths_void") -> CategorizedStat(category="deaths", name="void", unit=None)
    """
    unit = get_stat_unit(stat_name_raw)
    for category, matchers in STAT_CATEGORIES.items():
        if matchers is None:
            return CategorizedStat(category=category, name=stat_name_raw, unit=unit)
        for matcher in matchers:
            if matches(stat_name_raw, matcher):
                return CategorizedStat(category=category, name=_stripped_name(stat_name_raw, matcher), unit=unit)
    # unreachable while "misc" is the last category
    return CategorizedStat(category=None, name=stat_name_raw, unit=unit)


def _unit_from_table(name: str, table: Dict[str, List[str]]) -> Optional[str]:
    for unit_name, matchers in table.items():
        if matches_any(name, matchers):
            return unit_name
    return None


def get_stat_unit(name: str) -> Optional[str]:
    return _unit_from_table(name, STAT_UNITS)


def get_leaderboard_unit(name: str) -> Optional[str]:
    return _unit_from_table(name, LEADERBOARD_UNITS)


def is_leaderboard_reversed(name: str) -> bool:
    """Lower values rank better on reversed leaderboards."""
    return matches_any(name, REVERSED_LEADERBOARDS)


def is_numeric_stat(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not math.isnan(value)
