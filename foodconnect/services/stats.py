from foodconnect.db import DONATIONS, REQUESTS, USERS

RECENT = 5


async def donor_overview(repo, donor_id: str):
    """
    Counts per donation status for one donor plus the five newest donations.
    Repo must implement find().
    """
    mine = {"donor_id": donor_id}
    donations = await repo.find(DONATIONS, mine, sort=[("created_at", -1)])

    def n(status):
        return sum(1 for d in donations if d.get("status") == status)

    stats = {
        "total_donations": len(donations),
        "available_donations": n("available"),
        "requested_donations": n("requested"),
        "reserved_donations": n("reserved"),
        "completed_donations": n("completed"),
        "expired_donations": n("expired"),
        # organizations currently waiting on this donor's donations
        "total_requests_received": sum(len(d.get("requested_by") or []) for d in donations),
    }
    recent = [{
        "id": d["_id"],
        "meal_type": d.get("meal_type"),
        "items_count": len(d.get("items") or []),
        "status": d.get("status"),
        "expiry_time": d.get("expiry_time"),
        "created_at": d.get("created_at"),
        "requests_count": len(d.get("requested_by") or []),
    } for d in donations[:RECENT]]
    return {"stats": stats, "recent": recent}

async def organization_overview(repo, organization_id: str):
    """
    Counts per request status for one organization, the number of available
    donations posted by donors in the same city, and the five newest requests.
    """
    requests = await repo.find(REQUESTS, {"requester_id": organization_id}, sort=[("created_at", -1)])

    def n(status):
        return sum(1 for r in requests if r.get("status") == status)

    stats = {
        "total_requests": len(requests),
        "requested_count": n("requested"),
        "reserved_count": n("reserved"),
        "completed_count": n("fulfilled"),
        "cancelled_count": n("cancelled"),
        "rejected_count": n("rejected"),
        "nearby_available_donations_count": 0,
    }

    me = await repo.find_one(USERS, {"_id": organization_id})
    city = (me or {}).get("city")
    if city:
        donors = await repo.find(USERS, {"role": "donor", "city": city})
        if donors:
            stats["nearby_available_donations_count"] = await repo.count(DONATIONS, {
                "status": "available",
                "donor_id": {"$in": [u["_id"] for u in donors]},
            })

    recent = [{
        "id": r["_id"],
        "donation_id": r.get("donation_id"),
        "status": r.get("status"),
        "required_before": r.get("required_before"),
        "created_at": r.get("created_at"),
    } for r in requests[:RECENT]]
    return {"stats": stats, "recent": recent}
