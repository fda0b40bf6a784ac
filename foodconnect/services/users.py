# foodconnect/services/users.py
import math
from typing import Dict, Iterable, Optional

from foodconnect.db import USERS

# fields the core is allowed to read from a user profile
PROFILE_FIELDS = ("name", "email", "phone", "role", "city", "state", "district", "latitude", "longitude")


def _profile(doc: dict) -> dict:
    out = {"id": str(doc["_id"])}
    for f in PROFILE_FIELDS:
        out[f] = doc.get(f)
    return out

def _coordinate(v) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)

def has_location(profile: Optional[dict]) -> bool:
    if not profile:
        return False
    return _coordinate(profile.get("latitude")) and _coordinate(profile.get("longitude"))

def public_card(profile: Optional[dict]) -> dict:
    """Name and city only; contact details are disclosed separately."""
    profile = profile or {}
    return {"id": profile.get("id"), "name": profile.get("name"), "city": profile.get("city")}

def contact_card(profile: Optional[dict]) -> dict:
    profile = profile or {}
    return {
        **public_card(profile),
        "email": profile.get("email"),
        "phone": profile.get("phone"),
        "state": profile.get("state"),
        "district": profile.get("district"),
        "latitude": profile.get("latitude"),
        "longitude": profile.get("longitude"),
    }

async def get_profile(repo, user_id: str) -> Optional[dict]:
    doc = await repo.find_one(USERS, {"_id": user_id})
    return _profile(doc) if doc else None

async def get_profiles(repo, user_ids: Iterable[str]) -> Dict[str, dict]:
    ids = list({str(u) for u in user_ids if u})
    if not ids:
        return {}
    docs = await repo.find(USERS, {"_id": {"$in": ids}})
    return {str(d["_id"]): _profile(d) for d in docs}
