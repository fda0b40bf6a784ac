# foodconnect/services/donations.py
import logging
import math
import re
from datetime import datetime
from typing import Optional

from foodconnect.core.errors import InvalidState, NotFound, ValidationError
from foodconnect.core.guards import ensure_owner
from foodconnect.core.states import HISTORY_DONATION_STATES, MEAL_TYPES, OPEN_DONATION_STATES
from foodconnect.db import DONATIONS, as_utc, utcnow
from foodconnect.services.users import get_profiles, public_card

logger = logging.getLogger(__name__)


def serialize_donation(doc: dict) -> dict:
    if not doc:
        return {}
    return {
        "id": str(doc["_id"]),
        "donor_id": doc.get("donor_id"),
        "items": doc.get("items", []) or [],
        "meal_type": doc.get("meal_type"),
        "expiry_time": doc.get("expiry_time"),
        "status": doc.get("status"),
        "requested_by": list(doc.get("requested_by") or []),
        "accepted_by": doc.get("accepted_by"),
        "created_at": doc.get("created_at"),
        "updated_at": doc.get("updated_at"),
    }

def clean_items(items) -> list:
    """Normalize items to plain dicts; non-empty list, named, quantity > 0."""
    if not items:
        raise ValidationError("At least one item is required")
    out = []
    for it in items:
        it = it.model_dump() if hasattr(it, "model_dump") else dict(it)
        name = str(it.get("name") or "").strip()
        if not name:
            raise ValidationError("Item name is required")
        qty = it.get("quantity")
        if isinstance(qty, bool) or not isinstance(qty, (int, float)) or not math.isfinite(qty) or qty <= 0:
            raise ValidationError(f"Quantity for '{name}' must be greater than 0")
        out.append({"name": name, "quantity": float(qty), "unit": (it.get("unit") or "units").strip() or "units"})
    return out

def _clean_meal_type(meal_type: Optional[str]) -> str:
    meal_type = meal_type or "other"
    if meal_type not in MEAL_TYPES:
        raise ValidationError(f"Invalid meal type. Allowed: {MEAL_TYPES}")
    return meal_type

def _clean_expiry(expiry_time, now: datetime) -> datetime:
    if not isinstance(expiry_time, datetime):
        raise ValidationError("expiry_time is required")
    expiry_time = as_utc(expiry_time)
    if expiry_time <= now:
        raise ValidationError("expiry_time must be in the future")
    return expiry_time

def _ensure_untouched(doc: dict, action: str):
    # editable/deletable only while nobody relies on it
    if doc.get("status") != "available":
        raise InvalidState(f"Cannot {action} after requests")
    if doc.get("requested_by"):
        raise InvalidState(f"Cannot {action} when there are requests")

# --------------------------------------------------
# Operations
# --------------------------------------------------
async def create_donation(repo, donor_id: str, items, meal_type: str = "other",
                          expiry_time: Optional[datetime] = None, now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    doc = {
        "donor_id": str(donor_id),
        "items": clean_items(items),
        "meal_type": _clean_meal_type(meal_type),
        "expiry_time": _clean_expiry(expiry_time, now),
        "status": "available",
        "requested_by": [],
        "accepted_by": None,
        "version": 1,
        "created_at": now,
        "updated_at": now,
    }
    saved = await repo.insert_one(DONATIONS, doc)
    logger.info(f"Donation {saved['_id']} created by donor {donor_id}")
    return saved

async def list_my_donations(repo, donor_id: str, tab: str = "ongoing", search: str = "",
                            page: int = 1, limit: int = 5) -> dict:
    page = max(1, int(page or 1))
    limit = max(1, int(limit or 5))
    statuses = OPEN_DONATION_STATES if tab == "ongoing" else HISTORY_DONATION_STATES

    query = {"donor_id": str(donor_id), "status": {"$in": statuses}}
    if search:
        query["items.name"] = {"$regex": re.escape(search), "$options": "i"}

    total = await repo.count(DONATIONS, query)
    docs = await repo.find(DONATIONS, query, sort=[("created_at", -1)],
                           skip=(page - 1) * limit, limit=limit)

    profiles = await get_profiles(repo, [u for d in docs for u in (d.get("requested_by") or [])])
    results = []
    for d in docs:
        out = serialize_donation(d)
        out["requesters"] = [public_card(profiles.get(u) or {"id": u}) for u in out["requested_by"]]
        results.append(out)

    return {
        "results": results,
        "total": total,
        "page": page,
        "total_pages": math.ceil(total / limit),
    }

async def get_donation(repo, donation_id: str, user_id: str) -> dict:
    doc = await repo.find_one(DONATIONS, {"_id": donation_id})
    if not doc:
        raise NotFound("Donation not found")
    ensure_owner(doc["donor_id"], user_id)
    return doc

async def update_donation(repo, donation_id: str, user_id: str, patch, now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    fields = patch.model_dump(exclude_unset=True) if hasattr(patch, "model_dump") else dict(patch)
    fields = {k: v for k, v in fields.items() if v is not None}

    changes = {}
    if "items" in fields:
        changes["items"] = clean_items(fields["items"])
    if "meal_type" in fields:
        changes["meal_type"] = _clean_meal_type(fields["meal_type"])
    if "expiry_time" in fields:
        changes["expiry_time"] = _clean_expiry(fields["expiry_time"], now)
    if not changes:
        raise ValidationError("Nothing to update")

    doc = await get_donation(repo, donation_id, user_id)
    _ensure_untouched(doc, "edit")

    changes["updated_at"] = now
    ok = await repo.update_one(
        DONATIONS,
        {"_id": donation_id, "version": doc.get("version", 1), "status": "available", "requested_by": []},
        {"$set": changes, "$inc": {"version": 1}},
    )
    if not ok:
        raise InvalidState("Donation changed, refresh and retry")
    logger.info(f"Donation {donation_id} updated: {sorted(k for k in changes if k != 'updated_at')}")
    return await repo.find_one(DONATIONS, {"_id": donation_id})

async def delete_donation(repo, donation_id: str, user_id: str) -> None:
    doc = await get_donation(repo, donation_id, user_id)
    _ensure_untouched(doc, "delete")

    ok = await repo.delete_one(
        DONATIONS,
        {"_id": donation_id, "version": doc.get("version", 1), "status": "available", "requested_by": []},
    )
    if not ok:
        raise InvalidState("Donation changed, refresh and retry")
    logger.info(f"Donation {donation_id} deleted by donor {user_id}")
