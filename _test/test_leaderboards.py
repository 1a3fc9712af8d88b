import asyncio

import pytest

from conftest import FakeCollection, FakeCursor, full_leaderboard, member_doc
from core.leaderboards import KnownNamesRegistry, LeaderboardStore, member_leaderboard_attributes
from data.models import MemberSnapshot


def make_store(docs, leaderboard_max=100):
    return LeaderboardStore(FakeCollection(docs), KnownNamesRegistry(FakeCollection()), leaderboard_max)


def values_of(leaderboard, name):
    return [item["stats"][name] for item in leaderboard]


@pytest.mark.asyncio
async def test_get_raw_is_capped_and_sorted_descending():
    store = make_store(full_leaderboard("kills_zombie", range(150)))
    leaderboard = await store.get_raw("kills_zombie")

    assert len(leaderboard) == 100
    assert values_of(leaderboard, "kills_zombie") == list(range(149, 49, -1))


@pytest.mark.asyncio
async def test_get_raw_sorts_reversed_leaderboards_ascending():
    store = make_store(full_leaderboard("first_join", [300, 100, 200]))
    leaderboard = await store.get_raw("first_join")
    assert values_of(leaderboard, "first_join") == [100, 200, 300]


@pytest.mark.asyncio
async def test_get_raw_skips_missing_and_nan_values():
    docs = [
        member_doc("a", {"purse": 5}),
        member_doc("b", {"purse": float("nan")}),
        member_doc("c", {"kills": 3}),
    ]
    store = make_store(docs)
    leaderboard = await store.get_raw("purse")
    assert [item["uuid"] for item in leaderboard] == ["a"]


@pytest.mark.asyncio
async def test_get_raw_is_cached():
    store = make_store(full_leaderboard("purse", [1, 2]))
    await store.get_raw("purse")
    await store.get_raw("purse")
    assert store.collection.find_calls == 1


@pytest.mark.asyncio
async def test_requirement_is_none_until_full():
    store = make_store(full_leaderboard("kills", range(99)))
    assert await store.get_requirement("kills") is None

    store = make_store(full_leaderboard("kills", range(100)))
    assert await store.get_requirement("kills") == 0


@pytest.mark.asyncio
async def test_applicable_attributes():
    docs = full_leaderboard("kills_zombie", range(40, 140)) + full_leaderboard("first_join", range(1000, 1100))
    store = make_store(docs)

    applicable = await store.applicable_attributes({
        "kills_zombie": 50,
        "first_join": 1200,
        "purse": 1,
        "broken": "not a number",
    })
    # purse isn't full so anything goes, first_join is reversed and 1200 is too late
    assert applicable == {"kills_zombie": 50, "purse": 1}

    assert await store.applicable_attributes({"kills_zombie": 40}) == {}
    assert await store.applicable_attributes({"first_join": 999}) == {"first_join": 999}


@pytest.mark.asyncio
async def test_commit_patches_full_leaderboard():
    store = make_store(full_leaderboard("kills_zombie", range(40, 140)))

    applicable = await store.applicable_attributes({"kills_zombie": 50})
    assert applicable == {"kills_zombie": 50}
    await store.commit("A", "profileA", applicable)

    leaderboard = await store.get_raw("kills_zombie")
    uuids = [item["uuid"] for item in leaderboard]
    values = values_of(leaderboard, "kills_zombie")
    assert len(leaderboard) == 100
    assert "A" in uuids
    assert 40 not in values
    position = uuids.index("A")
    assert all(value >= 50 for value in values[:position])
    assert all(value < 50 for value in values[position + 1:])
    # patched in memory, not re-queried
    assert store.collection.find_calls == 1


@pytest.mark.asyncio
async def test_commit_is_idempotent():
    store = make_store(full_leaderboard("kills", range(10)))
    await store.commit("A", "profileA", {"kills": 100})
    first = [(item["uuid"], item["stats"]["kills"]) for item in await store.get_raw("kills")]
    await store.commit("A", "profileA", {"kills": 100})
    second = [(item["uuid"], item["stats"]["kills"]) for item in await store.get_raw("kills")]

    assert first == second
    assert [uuid for uuid, _ in second].count("A") == 1
    stored = [doc for doc in store.collection.docs if doc["uuid"] == "A"]
    assert len(stored) == 1
    assert stored[0]["stats"] == {"kills": 100}


@pytest.mark.asyncio
async def test_commit_moves_existing_member():
    store = make_store([member_doc("A", {"kills": 1}), member_doc("B", {"kills": 5})])
    await store.commit("A", "profile", {"kills": 10})
    leaderboard = await store.get_raw("kills")
    assert [(item["uuid"], item["stats"]["kills"]) for item in leaderboard] == [("A", 10), ("B", 5)]


@pytest.mark.asyncio
async def test_prune_unsets_only_attributes_below_last_place():
    docs = full_leaderboard("kills", range(10, 110)) + [
        member_doc("low", {"kills": 3, "purse": 7}),
    ]
    store = make_store(docs)
    assert await store.prune("kills") == 1

    low = next(doc for doc in store.collection.docs if doc["uuid"] == "low")
    assert low["stats"] == {"purse": 7}
    assert all("kills" in doc["stats"] for doc in store.collection.docs if doc["uuid"] != "low")


@pytest.mark.asyncio
async def test_prune_reversed_leaderboard():
    docs = full_leaderboard("first_join", range(100)) + [member_doc("late", {"first_join": 500})]
    store = make_store(docs)
    assert await store.prune("first_join") == 1
    late = next(doc for doc in store.collection.docs if doc["uuid"] == "late")
    assert late["stats"] == {}


@pytest.mark.asyncio
async def test_prune_skips_leaderboards_that_are_not_full():
    store = make_store(full_leaderboard("kills", range(5)))
    assert await store.prune("kills") == 0


@pytest.mark.asyncio
async def test_get_leaderboard_output():
    store = make_store([member_doc("a", {"purse": 5}, profile="p1"), member_doc("b", {"purse": 9}, profile="p2")])
    assert await store.get_leaderboard("purse") == {
        "name": "purse",
        "unit": "coins",
        "list": [
            {"entity": {"uuid": "b", "profile": "p2"}, "value": 9},
            {"entity": {"uuid": "a", "profile": "p1"}, "value": 5},
        ],
    }


@pytest.mark.asyncio
async def test_unknown_leaderboards_are_not_mirrored():
    store = make_store([member_doc("a", {"purse": 5})])

    for i in range(5000):
        assert await store.get_leaderboard(f"garbage_{i}") is None

    assert store._cached_raw == {}
    assert store.collection.find_calls == 0


class SlowCursor(FakeCursor):
    def __init__(self, docs, delay):
        super().__init__(docs)
        self.delay = delay

    async def to_list(self, length=None):
        await asyncio.sleep(self.delay)
        return await super().to_list(length)


class SlowCollection(FakeCollection):
    """The first query is slower than the ones after it."""

    def __init__(self, docs=None, delays=(0.05,)):
        super().__init__(docs)
        self.delays = list(delays)

    def find(self, query=None):
        cursor = super().find(query)
        delay = self.delays.pop(0) if self.delays else 0
        return SlowCursor(cursor._docs, delay)


@pytest.mark.asyncio
async def test_concurrent_cold_loads_share_one_query():
    store = LeaderboardStore(SlowCollection(full_leaderboard("kills", [1, 2])), KnownNamesRegistry(FakeCollection()))

    first, second = await asyncio.gather(store.get_raw("kills"), store.get_raw("kills"))

    assert store.collection.find_calls == 1
    assert values_of(first, "kills") == values_of(second, "kills") == [2, 1]


@pytest.mark.asyncio
async def test_concurrent_commits_on_a_cold_leaderboard_keep_both_members():
    store = LeaderboardStore(SlowCollection(delays=(0.05, 0)), KnownNamesRegistry(FakeCollection()))

    await asyncio.gather(
        store.commit("a", "p1", {"kills": 5}),
        store.commit("b", "p2", {"kills": 7}),
    )

    assert [item["uuid"] for item in await store.get_raw("kills")] == ["b", "a"]


def test_member_leaderboard_attributes():
    member = MemberSnapshot(
        uuid="m",
        profile_uuid="p",
        raw_stats={"kills_zombie": 12, "deaths": float("nan")},
        collections={"wheat": 500},
        skills={"farming": 1200},
        fairy_souls=30,
        first_join=1600000000,
        purse=42.5,
        visited_zones=["hub", "barn"],
    )
    assert member_leaderboard_attributes(member) == {
        "kills_zombie": 12,
        "collection_wheat": 500,
        "skill_farming": 1200,
        "fairy_souls": 30,
        "first_join": 1600000000,
        "purse": 42.5,
        "visited_zones": 2,
    }


@pytest.mark.asyncio
async def test_update_member_records_names(store, names_collection):
    member = MemberSnapshot(
        uuid="m",
        profile_uuid="p",
        raw_stats={"kills_zombie": 12, "deaths_void": 2},
        collections={"wheat": 500},
        skills={"farming": 1200},
        visited_zones=["hub"],
    )
    applicable = await store.update_member(member)
    assert applicable["kills_zombie"] == 12

    names = await store.all_leaderboard_names()
    assert names == [
        "deaths_void", "kills_zombie",
        "collection_wheat",
        "skill_farming",
        "fairy_souls", "first_join", "purse", "visited_zones",
    ]
    zones = await names_collection.find_one({"key": "zones"})
    assert zones["values"] == ["hub"]

    categorized = await store.all_leaderboards_categorized()
    assert list(categorized)[-1] == "misc"
    assert categorized["deaths"] == ["deaths_void"]
    assert categorized["misc"] == ["fairy_souls", "first_join", "purse", "visited_zones"]


@pytest.mark.asyncio
async def test_registry_only_writes_new_names(registry, names_collection):
    await registry.add("stats", ["a", "b"])
    await registry.add("stats", ["b"])
    assert await registry.fetch("stats") == ["a", "b"]
    assert len(names_collection.docs) == 1
