from datetime import timedelta

import pytest

from foodconnect.core.errors import Forbidden, InvalidState, NotFound, ValidationError
from foodconnect.db import DONATIONS
from foodconnect.models.schemas import DonationPatch
from foodconnect.services import donations as registry
from foodconnect.services import reservations

pytestmark = pytest.mark.anyio

RICE = [{"name": "Rice", "quantity": 10, "unit": "kg"}]


async def test_create_starts_available(repo, now):
    d = await registry.create_donation(repo, "donor1", RICE, "lunch", now + timedelta(hours=4), now=now)
    assert d["status"] == "available"
    assert d["requested_by"] == []
    assert d["accepted_by"] is None
    assert d["version"] == 1
    assert d["items"] == [{"name": "Rice", "quantity": 10.0, "unit": "kg"}]
    assert await repo.find_one(DONATIONS, {"_id": d["_id"]})

@pytest.mark.parametrize("items", [
    [],
    [{"name": "Rice", "quantity": 0}],
    [{"name": "Rice", "quantity": -1}],
    [{"name": "  ", "quantity": 1}],
    [{"name": "Rice", "quantity": 1}, {"name": "Milk", "quantity": 0}],
])
async def test_create_rejects_bad_items(repo, now, items):
    with pytest.raises(ValidationError):
        await registry.create_donation(repo, "donor1", items, "lunch", now + timedelta(hours=4), now=now)
    assert await repo.count(DONATIONS, {}) == 0

async def test_create_rejects_past_expiry(repo, now):
    with pytest.raises(ValidationError):
        await registry.create_donation(repo, "donor1", RICE, "lunch", now - timedelta(minutes=1), now=now)
    with pytest.raises(ValidationError):
        await registry.create_donation(repo, "donor1", RICE, "lunch", now, now=now)

async def test_create_rejects_unknown_meal_type(repo, now):
    with pytest.raises(ValidationError):
        await registry.create_donation(repo, "donor1", RICE, "brunch", now + timedelta(hours=1), now=now)

async def test_naive_expiry_is_read_as_utc(repo, now):
    naive = (now + timedelta(hours=2)).replace(tzinfo=None)
    d = await registry.create_donation(repo, "donor1", RICE, None, naive, now=now)
    assert d["expiry_time"] == now + timedelta(hours=2)
    assert d["meal_type"] == "other"


async def _seed(repo, now, n=3, donor="donor1"):
    out = []
    for i in range(n):
        d = await registry.create_donation(
            repo, donor, [{"name": f"Bread {i}", "quantity": 1}], "snacks",
            now + timedelta(hours=4), now=now + timedelta(seconds=i),
        )
        out.append(d)
    return out

async def test_list_ongoing_is_newest_first_and_paged(repo, now):
    seeded = await _seed(repo, now, n=7)
    await _seed(repo, now, n=2, donor="donor2")

    first = await registry.list_my_donations(repo, "donor1", page=1, limit=5)
    assert first["total"] == 7
    assert first["total_pages"] == 2
    assert first["page"] == 1
    assert [r["id"] for r in first["results"]] == [d["_id"] for d in reversed(seeded)][:5]

    second = await registry.list_my_donations(repo, "donor1", page=2, limit=5)
    assert [r["id"] for r in second["results"]] == [seeded[1]["_id"], seeded[0]["_id"]]

async def test_list_tabs_split_open_and_history(repo, now):
    seeded = await _seed(repo, now, n=3)
    await repo.update_one(DONATIONS, {"_id": seeded[0]["_id"]}, {"$set": {"status": "completed"}})
    await repo.update_one(DONATIONS, {"_id": seeded[1]["_id"]}, {"$set": {"status": "expired"}})

    ongoing = await registry.list_my_donations(repo, "donor1", tab="ongoing")
    history = await registry.list_my_donations(repo, "donor1", tab="completed")
    assert [r["id"] for r in ongoing["results"]] == [seeded[2]["_id"]]
    # expired is neither ongoing nor history
    assert [r["id"] for r in history["results"]] == [seeded[0]["_id"]]

async def test_list_search_matches_item_names(repo, now):
    await registry.create_donation(repo, "donor1", [{"name": "Basmati Rice", "quantity": 2}], "lunch",
                                   now + timedelta(hours=3), now=now)
    await registry.create_donation(repo, "donor1", [{"name": "Milk", "quantity": 2}], "lunch",
                                   now + timedelta(hours=3), now=now)
    await registry.create_donation(repo, "donor1", [{"name": "Rice (1+1)", "quantity": 2}], "lunch",
                                   now + timedelta(hours=3), now=now)

    res = await registry.list_my_donations(repo, "donor1", search="RICE")
    assert res["total"] == 2
    res = await registry.list_my_donations(repo, "donor1", search="(1+1)")
    assert res["total"] == 1

async def test_list_shows_requester_cards(repo, users, now):
    d = (await _seed(repo, now, n=1))[0]
    await reservations.request_donation(repo, d["_id"], "org1", now + timedelta(hours=1), now=now)

    res = await registry.list_my_donations(repo, "donor1")
    assert res["results"][0]["requesters"] == [{"id": "org1", "name": "Org One", "city": "Manila"}]


async def test_get_checks_owner(repo, now):
    d = (await _seed(repo, now, n=1))[0]
    assert (await registry.get_donation(repo, d["_id"], "donor1"))["_id"] == d["_id"]
    with pytest.raises(Forbidden):
        await registry.get_donation(repo, d["_id"], "donor2")
    with pytest.raises(NotFound):
        await registry.get_donation(repo, "missing", "donor1")

async def test_delete_only_untouched(repo, now):
    a, b = await _seed(repo, now, n=2)

    with pytest.raises(NotFound):
        await registry.delete_donation(repo, "missing", "donor1")
    with pytest.raises(Forbidden):
        await registry.delete_donation(repo, a["_id"], "donor2")

    await reservations.request_donation(repo, b["_id"], "org1", now + timedelta(hours=1), now=now)
    with pytest.raises(InvalidState):
        await registry.delete_donation(repo, b["_id"], "donor1")

    await registry.delete_donation(repo, a["_id"], "donor1")
    assert await repo.find_one(DONATIONS, {"_id": a["_id"]}) is None
    assert await repo.find_one(DONATIONS, {"_id": b["_id"]}) is not None

async def test_delete_refused_when_requests_linger(repo, now):
    # status back to available but a requester is still listed
    d = (await _seed(repo, now, n=1))[0]
    await repo.update_one(DONATIONS, {"_id": d["_id"]}, {"$set": {"requested_by": ["org1"]}})
    with pytest.raises(InvalidState, match="when there are requests"):
        await registry.delete_donation(repo, d["_id"], "donor1")

async def test_patch_applies_only_sent_fields(repo, now):
    d = (await _seed(repo, now, n=1))[0]
    saved = await registry.update_donation(repo, d["_id"], "donor1", DonationPatch(meal_type="dinner"), now=now)
    assert saved["meal_type"] == "dinner"
    assert saved["items"] == d["items"]
    assert saved["version"] == 2

    with pytest.raises(ValidationError):
        await registry.update_donation(repo, d["_id"], "donor1", DonationPatch(), now=now)
    with pytest.raises(ValidationError):
        await registry.update_donation(repo, d["_id"], "donor1",
                                       DonationPatch(items=[{"name": "x", "quantity": 0}]), now=now)

async def test_patch_refused_after_request(repo, now):
    d = (await _seed(repo, now, n=1))[0]
    await reservations.request_donation(repo, d["_id"], "org1", now + timedelta(hours=1), now=now)
    with pytest.raises(InvalidState):
        await registry.update_donation(repo, d["_id"], "donor1", DonationPatch(meal_type="dinner"), now=now)
