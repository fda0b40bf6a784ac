"""
Reservation flow between one donation and the organizations requesting it.

    request  -> donation available|requested|reserved, request "requested"
    approve  -> donation "reserved" (accepted_by set), request "reserved"
    complete -> donation "completed", request "fulfilled", siblings "rejected"
    cancel   -> request "cancelled", reservation released if it was held
    lapse    -> same as cancel, run by the sweeper once required_before passes

Each operation runs as one unit inside repo.transaction(). The donation is
always written first with a filter on its version, so two callers racing on
the same donation cannot both succeed: the loser gets InvalidState and its
unit is rolled back.
"""

import logging
import math
import re
from datetime import datetime
from typing import Optional

from foodconnect.core.config import settings
from foodconnect.core.errors import DuplicateRequest, InvalidState, NotFound, ValidationError
from foodconnect.core.guards import ensure_owner
from foodconnect.core.states import (
    ACTIVE_REQUEST_STATES,
    CLOSED_DONATION_STATES,
    DONATION_TRANSITIONS,
    REQUEST_STATES,
    REQUEST_TRANSITIONS,
    TERMINAL_REQUEST_STATES,
    can_transition,
)
from foodconnect.db import DONATIONS, REQUESTS, as_utc, utcnow
from foodconnect.services.notify import approval_email, completion_email
from foodconnect.services.users import contact_card, get_profile, get_profiles, public_card

logger = logging.getLogger(__name__)

# request statuses at which the donor's contact details may be shown
CONTACT_VISIBLE = ("reserved", "fulfilled")
# terminal status given to requests that pass required_before unapproved
LAPSED_REQUEST_STATUS = "cancelled"


def serialize_request(doc: dict) -> dict:
    if not doc:
        return {}
    return {
        "id": str(doc["_id"]),
        "requester_id": doc.get("requester_id"),
        "donation_id": doc.get("donation_id"),
        "required_before": doc.get("required_before"),
        "status": doc.get("status"),
        "approved_at": doc.get("approved_at"),
        "completed_at": doc.get("completed_at"),
        "created_at": doc.get("created_at"),
    }

def _check(table: dict, src: str, dst: str, actor: str, entity: str):
    if not can_transition(table, src, dst, actor):
        raise InvalidState(f"{entity} cannot move from {src} to {dst}")

async def _write_donation(tx, donation: dict, update: dict):
    update.setdefault("$inc", {})["version"] = 1
    ok = await tx.update_one(
        DONATIONS,
        {"_id": donation["_id"], "version": donation.get("version", 1)},
        update,
    )
    if not ok:
        raise InvalidState("Donation changed, refresh and retry")

def _send(notifier, to: Optional[str], message):
    if notifier is None:
        return
    subject, html_body = message
    notifier.notify(to, subject, html_body)

# --------------------------------------------------
# Operations
# --------------------------------------------------
async def request_donation(repo, donation_id: str, requester_id: str, required_before: datetime,
                           now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    if not isinstance(required_before, datetime):
        raise ValidationError("required_before is required")
    required_before = as_utc(required_before)
    if required_before < now:
        raise ValidationError("required_before must not be in the past")

    async with repo.transaction() as tx:
        donation = await tx.find_one(DONATIONS, {"_id": donation_id})
        if not donation:
            raise NotFound("Donation not found")
        if donation["status"] in CLOSED_DONATION_STATES:
            raise InvalidState("Donation not available")

        existing = await tx.find_one(REQUESTS, {
            "donation_id": donation_id,
            "requester_id": requester_id,
            "status": {"$in": ACTIVE_REQUEST_STATES},
        })
        if existing:
            raise DuplicateRequest("Already requested")

        update = {"$addToSet": {"requested_by": requester_id}, "$set": {"updated_at": now}}
        if donation["status"] == "available":
            _check(DONATION_TRANSITIONS, "available", "requested", "organization", "Donation")
            update["$set"]["status"] = "requested"
        await _write_donation(tx, donation, update)

        request = await tx.insert_one(REQUESTS, {
            "requester_id": requester_id,
            "donation_id": donation_id,
            "required_before": required_before,
            "status": "requested",
            "approved_at": None,
            "completed_at": None,
            "created_at": now,
            "updated_at": now,
        })

    logger.info(f"Organization {requester_id} requested donation {donation_id} (request {request['_id']})")
    return request

async def approve_donation(repo, notifier, donation_id: str, organization_id: str, donor_id: str,
                           now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    async with repo.transaction() as tx:
        donation = await tx.find_one(DONATIONS, {"_id": donation_id})
        if not donation:
            raise NotFound("Donation not found")
        ensure_owner(donation["donor_id"], donor_id)
        if donation["status"] == "completed":
            raise InvalidState("Already completed")

        request = await tx.find_one(REQUESTS, {
            "donation_id": donation_id,
            "requester_id": organization_id,
            "status": "requested",
        })
        if not request:
            raise NotFound("Request not found")

        # a reserved donation is never handed to a second organization
        _check(DONATION_TRANSITIONS, donation["status"], "reserved", "donor", "Donation")
        _check(REQUEST_TRANSITIONS, "requested", "reserved", "donor", "Request")

        await _write_donation(tx, donation, {
            "$set": {"status": "reserved", "accepted_by": organization_id, "updated_at": now},
        })
        ok = await tx.update_one(
            REQUESTS,
            {"_id": request["_id"], "status": "requested"},
            {"$set": {"status": "reserved", "approved_at": now, "updated_at": now}},
        )
        if not ok:
            raise InvalidState("Request changed, refresh and retry")
        request = await tx.find_one(REQUESTS, {"_id": request["_id"]})

    logger.info(f"Donation {donation_id} reserved for organization {organization_id}")

    try:
        donor = await get_profile(repo, donor_id)
        organization = await get_profile(repo, organization_id)
        _send(notifier, (donor or {}).get("email"),
              approval_email(donation, contact_card(organization or {"id": organization_id})))
    except Exception:
        logger.exception(f"Could not notify donor {donor_id} about reservation of {donation_id}")

    return request

async def complete_match(repo, notifier, request_id: str, requester_id: str,
                         now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    async with repo.transaction() as tx:
        request = await tx.find_one(REQUESTS, {"_id": request_id})
        if not request:
            raise NotFound("Request not found")
        ensure_owner(request["requester_id"], requester_id)
        if request["status"] != "reserved":
            raise InvalidState("Not reserved yet")

        donation = await tx.find_one(DONATIONS, {"_id": request["donation_id"]})
        if not donation:
            raise NotFound("Donation not found")
        if donation.get("accepted_by") != requester_id:
            raise InvalidState("Donation is not reserved for this organization")
        _check(DONATION_TRANSITIONS, donation["status"], "completed", "organization", "Donation")

        await _write_donation(tx, donation, {"$set": {"status": "completed", "updated_at": now}})
        ok = await tx.update_one(
            REQUESTS,
            {"_id": request_id, "status": "reserved"},
            {"$set": {"status": "fulfilled", "completed_at": now, "updated_at": now}},
        )
        if not ok:
            raise InvalidState("Request changed, refresh and retry")

        # only one request per donation can ever be fulfilled
        rejected = await tx.update_many(
            REQUESTS,
            {
                "donation_id": donation["_id"],
                "_id": {"$ne": request_id},
                "status": {"$in": ACTIVE_REQUEST_STATES},
            },
            {"$set": {"status": "rejected", "updated_at": now}},
        )
        request = await tx.find_one(REQUESTS, {"_id": request_id})

    logger.info(f"Donation {donation['_id']} completed by organization {requester_id}; {rejected} competing requests rejected")

    try:
        donor = await get_profile(repo, donation["donor_id"])
        organization = await get_profile(repo, requester_id)
        _send(notifier, (organization or {}).get("email"),
              completion_email(donation, contact_card(donor or {"id": donation["donor_id"]})))
    except Exception:
        logger.exception(f"Could not notify organization {requester_id} about completion of {donation['_id']}")

    return request

async def cancel_request(repo, request_id: str, requester_id: str, now: Optional[datetime] = None,
                         reopen_when_idle: Optional[bool] = None) -> dict:
    """
    Cancel an active request. If the organization held the reservation the
    donation is released. A "requested" donation whose last requester leaves
    stays "requested" unless reopen_when_idle (settings.reopen_on_last_cancel).
    """
    now = now or utcnow()
    if reopen_when_idle is None:
        reopen_when_idle = settings.reopen_on_last_cancel

    async with repo.transaction() as tx:
        request = await tx.find_one(REQUESTS, {"_id": request_id})
        if not request:
            raise NotFound("Request not found")
        ensure_owner(request["requester_id"], requester_id)
        if request["status"] == "fulfilled":
            raise InvalidState("Already completed")
        if request["status"] not in ACTIVE_REQUEST_STATES:
            raise InvalidState(f"Request already {request['status']}")
        _check(REQUEST_TRANSITIONS, request["status"], "cancelled", "organization", "Request")

        await _release(tx, request, "organization", now, reopen_when_idle)
        await _close_request(tx, request, ACTIVE_REQUEST_STATES, "cancelled", now)
        request = await tx.find_one(REQUESTS, {"_id": request_id})

    logger.info(f"Request {request_id} cancelled by organization {requester_id}")
    return request

async def lapse_request(repo, request_id: str, now: Optional[datetime] = None,
                        reopen_when_idle: Optional[bool] = None) -> Optional[dict]:
    """
    Close a "requested" request whose required_before has passed and take the
    organization off the donation. Returns None if the request is no longer
    waiting (approved or cancelled meanwhile).
    """
    now = now or utcnow()
    if reopen_when_idle is None:
        reopen_when_idle = settings.reopen_on_last_cancel

    async with repo.transaction() as tx:
        request = await tx.find_one(REQUESTS, {"_id": request_id, "status": "requested"})
        if not request:
            return None
        _check(REQUEST_TRANSITIONS, "requested", LAPSED_REQUEST_STATUS, "system", "Request")

        await _release(tx, request, "system", now, reopen_when_idle)
        await _close_request(tx, request, ["requested"], LAPSED_REQUEST_STATUS, now)
        request = await tx.find_one(REQUESTS, {"_id": request_id})

    logger.info(f"Request {request_id} lapsed past required_before")
    return request

async def _release(tx, request: dict, actor: str, now: datetime, reopen_when_idle: bool):
    """Take the requester off the donation, handing back a reservation it held."""
    requester_id = request["requester_id"]
    donation = await tx.find_one(DONATIONS, {"_id": request["donation_id"]})
    if not donation:
        return
    remaining = [u for u in donation.get("requested_by") or [] if u != requester_id]
    update = {"$pull": {"requested_by": requester_id}, "$set": {"updated_at": now}}
    new_status = None
    if donation.get("accepted_by") == requester_id:
        new_status = "requested" if remaining else "available"
        update["$set"]["accepted_by"] = None
    elif donation["status"] == "requested" and not remaining and reopen_when_idle:
        new_status = "available"
    if new_status and new_status != donation["status"]:
        _check(DONATION_TRANSITIONS, donation["status"], new_status, actor, "Donation")
        update["$set"]["status"] = new_status
    await _write_donation(tx, donation, update)

async def _close_request(tx, request: dict, from_states: list, status: str, now: datetime):
    ok = await tx.update_one(
        REQUESTS,
        {"_id": request["_id"], "status": {"$in": from_states}},
        {"$set": {"status": status, "updated_at": now}},
    )
    if not ok:
        raise InvalidState("Request changed, refresh and retry")

# --------------------------------------------------
# Organization activity
# --------------------------------------------------
async def list_my_requests(repo, requester_id: str, tab: str = "ongoing", search: str = "",
                           page: int = 1, limit: int = 5) -> dict:
    page = max(1, int(page or 1))
    limit = max(1, int(limit or 5))
    if tab == "ongoing":
        statuses = ACTIVE_REQUEST_STATES
    elif tab == "completed":
        statuses = TERMINAL_REQUEST_STATES
    else:
        statuses = REQUEST_STATES

    query = {"requester_id": requester_id, "status": {"$in": statuses}}
    if search:
        hits = await repo.find(DONATIONS, {"items.name": {"$regex": re.escape(search), "$options": "i"}})
        query["donation_id"] = {"$in": [d["_id"] for d in hits]}

    total = await repo.count(REQUESTS, query)
    docs = await repo.find(REQUESTS, query, sort=[("created_at", -1)],
                           skip=(page - 1) * limit, limit=limit)

    donation_ids = list({r["donation_id"] for r in docs})
    donations = {d["_id"]: d for d in await repo.find(DONATIONS, {"_id": {"$in": donation_ids}})}
    donors = await get_profiles(repo, [d["donor_id"] for d in donations.values()])

    results = []
    for r in docs:
        out = serialize_request(r)
        d = donations.get(r["donation_id"])
        if d:
            donor = donors.get(d["donor_id"]) or {"id": d["donor_id"]}
            out["donation"] = {
                "id": d["_id"],
                "items": d.get("items", []),
                "meal_type": d.get("meal_type"),
                "expiry_time": d.get("expiry_time"),
                "status": d.get("status"),
                "donor": contact_card(donor) if r["status"] in CONTACT_VISIBLE else public_card(donor),
            }
        else:
            out["donation"] = None
        results.append(out)

    return {
        "results": results,
        "total": total,
        "page": page,
        "total_pages": math.ceil(total / limit),
    }
