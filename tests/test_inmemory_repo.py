import pytest

from foodconnect.core.errors import InvalidState
from foodconnect.repos.inmemory import InMemoryRepo, apply_update, matches

pytestmark = pytest.mark.anyio


DOC = {
    "_id": "d1",
    "status": "requested",
    "qty": 5,
    "requested_by": ["org1", "org2"],
    "items": [{"name": "Basmati Rice", "quantity": 10}, {"name": "Bread", "quantity": 2}],
}

@pytest.mark.parametrize("query, expected", [
    ({"status": "requested"}, True),
    ({"status": {"$in": ["available", "requested"]}}, True),
    ({"status": {"$nin": ["requested"]}}, False),
    ({"status": {"$ne": "available"}}, True),
    ({"qty": {"$gt": 4, "$lte": 5}}, True),
    ({"qty": {"$lt": 5}}, False),
    ({"requested_by": "org2"}, True),
    ({"requested_by": []}, False),
    ({"requested_by": {"$size": 2}}, True),
    ({"items.name": {"$regex": "rice", "$options": "i"}}, True),
    ({"items.name": {"$regex": "rice"}}, False),
    ({"items.quantity": {"$gte": 10}}, True),
    ({"accepted_by": None}, True),
    ({"accepted_by": {"$exists": True}}, False),
    ({"$or": [{"status": "available"}, {"qty": 5}]}, True),
    ({"$and": [{"status": "requested"}, {"qty": 6}]}, False),
])
async def test_query_subset(query, expected):
    assert matches(DOC, query) is expected

async def test_update_operators():
    doc = {"_id": "x", "requested_by": ["a"], "version": 1, "tmp": 1}
    apply_update(doc, {
        "$addToSet": {"requested_by": "a"},
        "$inc": {"version": 1},
        "$unset": {"tmp": ""},
    })
    assert doc == {"_id": "x", "requested_by": ["a"], "version": 2}
    apply_update(doc, {"$addToSet": {"requested_by": "b"}})
    apply_update(doc, {"$pull": {"requested_by": "a"}})
    assert doc["requested_by"] == ["b"]

async def test_documents_are_copied_in_and_out():
    repo = InMemoryRepo()
    src = {"_id": "d1", "items": [{"name": "rice"}]}
    await repo.insert_one("donations", src)
    src["items"].append({"name": "leak"})

    got = await repo.find_one("donations", {"_id": "d1"})
    got["items"].clear()
    again = await repo.find_one("donations", {"_id": "d1"})
    assert again["items"] == [{"name": "rice"}]

async def test_insert_assigns_string_ids():
    repo = InMemoryRepo()
    saved = await repo.insert_one("donations", {"status": "available"})
    assert isinstance(saved["_id"], str) and len(saved["_id"]) == 24
    with pytest.raises(ValueError):
        await repo.insert_one("donations", {"_id": saved["_id"]})

async def test_find_sort_skip_limit():
    repo = InMemoryRepo()
    for i in range(5):
        await repo.insert_one("requests", {"_id": f"r{i}", "n": i})
    docs = await repo.find("requests", {}, sort=[("n", -1)], skip=1, limit=2)
    assert [d["n"] for d in docs] == [3, 2]
    assert await repo.count("requests", {"n": {"$gte": 3}}) == 2

async def test_conditional_update_reports_miss():
    repo = InMemoryRepo()
    await repo.insert_one("donations", {"_id": "d1", "version": 1})
    assert await repo.update_one("donations", {"_id": "d1", "version": 1}, {"$inc": {"version": 1}})
    assert not await repo.update_one("donations", {"_id": "d1", "version": 1}, {"$inc": {"version": 1}})
    assert (await repo.find_one("donations", {"_id": "d1"}))["version"] == 2

async def test_transaction_rolls_back_on_error():
    repo = InMemoryRepo()
    await repo.insert_one("donations", {"_id": "d1", "status": "available"})

    with pytest.raises(InvalidState):
        async with repo.transaction() as tx:
            await tx.update_one("donations", {"_id": "d1"}, {"$set": {"status": "requested"}})
            await tx.insert_one("requests", {"_id": "r1"})
            raise InvalidState("boom")

    assert (await repo.find_one("donations", {"_id": "d1"}))["status"] == "available"
    assert await repo.find_one("requests", {"_id": "r1"}) is None

async def test_transaction_commits():
    repo = InMemoryRepo()
    async with repo.transaction() as tx:
        await tx.insert_one("requests", {"_id": "r1"})
        async with tx.transaction() as inner:
            await inner.insert_one("requests", {"_id": "r2"})
    assert await repo.count("requests", {}) == 2
