# foodconnect/services/matching.py
import logging
from datetime import datetime
from typing import List, Optional

from foodconnect.core.errors import ValidationError
from foodconnect.core.states import OPEN_DONATION_STATES
from foodconnect.db import DONATIONS, as_utc, utcnow
from foodconnect.services.donations import serialize_donation
from foodconnect.services.geo import distance_km
from foodconnect.services.users import get_profiles, has_location

logger = logging.getLogger(__name__)

NAME_MATCH_POINTS = 2.0
URGENT_HOURS = 3
SOON_HOURS = 6


def quantity_bonus(donation_qty: float, requested_qty: float) -> float:
    ratio = donation_qty / requested_qty
    if ratio >= 1:
        return 2.0
    if ratio >= 0.7:
        return 1.5
    if ratio >= 0.4:
        return 1.0
    return 0.5

def urgency_bonus(expiry_time: datetime, now: datetime) -> float:
    hours_left = (expiry_time - now).total_seconds() / 3600.0
    if hours_left <= URGENT_HOURS:
        return 2.0
    if hours_left <= SOON_HOURS:
        return 1.0
    return 0.0

def score(donation_items: List[dict], requested_items: List[dict], expiry_time: datetime, now: datetime) -> float:
    """
    Heuristic match score of one donation against the requested items.

    Every (requested, donated) pair whose names contain one another
    (case-insensitive substring, word order ignored) earns NAME_MATCH_POINTS
    plus a quantity bonus; pairs are summed, not best-match. The expiry
    urgency bonus is added once at the end.
    """
    total = 0.0
    for wanted in requested_items:
        wanted_name = wanted["name"].lower()
        for offered in donation_items:
            offered_name = offered["name"].lower()
            if offered_name in wanted_name or wanted_name in offered_name:
                total += NAME_MATCH_POINTS + quantity_bonus(offered["quantity"], wanted["quantity"])
    return total + urgency_bonus(expiry_time, now)


async def search_matches(repo, latitude: Optional[float], longitude: Optional[float],
                         requested_items: Optional[List[dict]] = None, radius_km: float = 20.0,
                         meal_type: Optional[str] = None, required_before: Optional[datetime] = None,
                         page: int = 1, limit: int = 10, now: Optional[datetime] = None) -> dict:
    """
    Rank open donations for a requester.

    Filtering and scoring run in-process: the score is multi-field and
    substring based, so it cannot be pushed down to an index. Cost is
    O(candidates) per query.
    """
    now = now or utcnow()
    page = max(1, int(page or 1))
    limit = max(1, int(limit or 10))
    if latitude is None or longitude is None:
        raise ValidationError("Location required")
    requested_items = [i.model_dump() if hasattr(i, "model_dump") else dict(i) for i in (requested_items or [])]

    # 1) candidate filter
    expiry = {"$gt": now}
    if required_before is not None:
        expiry["$gte"] = as_utc(required_before)
    query = {"status": {"$in": OPEN_DONATION_STATES}, "expiry_time": expiry}
    if meal_type:
        query["meal_type"] = meal_type
    candidates = await repo.find(DONATIONS, query)

    # 2) donor locations; donors without one cannot be placed on the map
    donors = await get_profiles(repo, [d["donor_id"] for d in candidates])

    # 3) radius
    nearby = []
    for d in candidates:
        donor = donors.get(d["donor_id"])
        if not has_location(donor):
            continue
        dist = distance_km(latitude, longitude, donor["latitude"], donor["longitude"])
        if dist > radius_km:
            continue
        nearby.append((d, donor, dist))

    # 4) scoring only when the caller said what they need
    ranked = []
    if requested_items:
        for d, donor, dist in nearby:
            s = score(d.get("items", []), requested_items, d["expiry_time"], now)
            if s > 0:
                ranked.append((d, donor, dist, s))
        ranked.sort(key=lambda x: x[3], reverse=True)
    else:
        ranked = [(d, donor, dist, None) for d, donor, dist in nearby]

    # 5) paginate in memory
    start = (page - 1) * limit
    results = []
    for d, donor, dist, s in ranked[start:start + limit]:
        out = serialize_donation(d)
        # other organizations' ids stay private
        out.pop("requested_by", None)
        out.pop("accepted_by", None)
        out["donor"] = {"id": donor["id"], "name": donor.get("name"), "city": donor.get("city")}
        out["distance_km"] = round(dist, 2)
        out["match_score"] = s
        results.append(out)

    logger.debug(f"Search at ({latitude}, {longitude}) r={radius_km}km: {len(candidates)} candidates, {len(ranked)} ranked")
    return {"total": len(ranked), "page": page, "limit": limit, "results": results}
