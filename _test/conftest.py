"""
Shared fixtures. FakeCollection implements the small part of the Motor
collection API the engines use, backed by a list of dicts.
"""

import copy
import math
from types import SimpleNamespace

import pytest

from core.leaderboards import KnownNamesRegistry, LeaderboardStore

_MISSING = object()


def _get(doc, path):
    value = doc
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _matches_condition(value, condition):
    if not isinstance(condition, dict):
        return value == condition
    for op, expected in condition.items():
        if op == "$exists":
            if (value is not _MISSING) != expected:
                return False
        elif op == "$ne":
            if isinstance(expected, float) and math.isnan(expected):
                if isinstance(value, float) and math.isnan(value):
                    return False
            elif value == expected:
                return False
        elif op == "$lt":
            if value is _MISSING or not value < expected:
                return False
        elif op == "$gt":
            if value is _MISSING or not value > expected:
                return False
        elif op == "$in":
            if value not in expected:
                return False
        else:
            raise NotImplementedError(op)
    return True


def _matches(doc, query):
    return all(_matches_condition(_get(doc, path), condition) for path, condition in query.items())


def _unset(doc, path):
    *parents, last = path.split(".")
    for part in parents:
        doc = doc.get(part)
        if not isinstance(doc, dict):
            return False
    return doc.pop(last, _MISSING) is not _MISSING


class FakeCursor:
    def __init__(self, docs):
        self._docs = docs

    def sort(self, key, direction=1):
        self._docs = sorted(self._docs, key=lambda doc: _get(doc, key), reverse=direction == -1)
        return self

    def limit(self, count):
        self._docs = self._docs[:count]
        return self

    async def to_list(self, length=None):
        docs = self._docs if length is None else self._docs[:length]
        return [copy.deepcopy(doc) for doc in docs]


class FakeCollection:
    def __init__(self, docs=None):
        self.docs = [copy.deepcopy(doc) for doc in docs or []]
        self.find_calls = 0
        self.fail_writes = False

    def find(self, query=None):
        self.find_calls += 1
        return FakeCursor([doc for doc in self.docs if _matches(doc, query or {})])

    async def find_one(self, query):
        for doc in self.docs:
            if _matches(doc, query):
                return copy.deepcopy(doc)
        return None

    async def distinct(self, key):
        values = []
        for doc in self.docs:
            value = _get(doc, key)
            if value is not _MISSING and value not in values:
                values.append(value)
        return values

    def _apply(self, doc, update):
        for key, value in update.get("$set", {}).items():
            doc[key] = copy.deepcopy(value)
        for key, value in update.get("$addToSet", {}).items():
            items = value["$each"] if isinstance(value, dict) else [value]
            existing = doc.setdefault(key, [])
            existing.extend(item for item in items if item not in existing)

    async def update_one(self, query, update, upsert=False):
        if self.fail_writes:
            raise RuntimeError("database unavailable")
        for doc in self.docs:
            if _matches(doc, query):
                self._apply(doc, update)
                return SimpleNamespace(modified_count=1, upserted_id=None)
        if not upsert:
            return SimpleNamespace(modified_count=0, upserted_id=None)
        doc = {key: value for key, value in query.items() if not isinstance(value, dict)}
        self._apply(doc, update)
        self.docs.append(doc)
        return SimpleNamespace(modified_count=0, upserted_id=len(self.docs))

    async def update_many(self, query, update):
        if self.fail_writes:
            raise RuntimeError("database unavailable")
        modified = 0
        for doc in self.docs:
            if _matches(doc, query):
                changed = False
                for path in update.get("$unset", {}):
                    changed = _unset(doc, path) or changed
                modified += changed
        return SimpleNamespace(modified_count=modified)


def member_doc(uuid, stats, profile="profile"):
    return {"uuid": uuid, "profile": profile, "stats": stats}


def full_leaderboard(name, values):
    """One member document per value, each only holding `name`."""
    return [member_doc(f"member{i}", {name: value}) for i, value in enumerate(values)]


@pytest.fixture
def members_collection():
    return FakeCollection()


@pytest.fixture
def names_collection():
    return FakeCollection()


@pytest.fixture
def registry(names_collection):
    return KnownNamesRegistry(names_collection)


@pytest.fixture
def store(members_collection, registry):
    return LeaderboardStore(members_collection, registry, leaderboard_max=100)
