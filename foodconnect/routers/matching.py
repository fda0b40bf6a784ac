# foodconnect/routers/matching.py
from fastapi import APIRouter, Depends

from foodconnect.core.config import settings
from foodconnect.core.security import require_role
from foodconnect.deps import get_notifier, get_repo
from foodconnect.models.schemas import ApproveIn, MatchRequestIn, RequestRef, SearchIn
from foodconnect.services import reservations
from foodconnect.services.matching import search_matches
from foodconnect.services.reservations import serialize_request
from foodconnect.services.users import get_profile

router = APIRouter(prefix="/api/match", tags=["matching"])

donor_only = require_role("donor")
organization_only = require_role("organization")


@router.post("/search")
async def search(body: SearchIn, repo=Depends(get_repo), user=Depends(organization_only)):
    lat, lng = body.latitude, body.longitude
    if lat is None or lng is None:
        # fall back to the organization's registered location
        me = await get_profile(repo, user["id"]) or {}
        lat, lng = me.get("latitude"), me.get("longitude")
    return await search_matches(
        repo, lat, lng,
        requested_items=body.requested_items,
        radius_km=body.radius_km or settings.default_radius_km,
        meal_type=body.meal_type,
        required_before=body.required_before,
        page=body.page,
        limit=body.limit or settings.search_page_limit,
    )

@router.post("/request")
async def request_donation(body: MatchRequestIn, repo=Depends(get_repo), user=Depends(organization_only)):
    created = await reservations.request_donation(repo, body.donation_id, user["id"], body.required_before)
    return {"message": "Request sent successfully", "request": serialize_request(created)}

@router.post("/approve")
async def approve_donation(body: ApproveIn, repo=Depends(get_repo), notifier=Depends(get_notifier),
                           user=Depends(donor_only)):
    req = await reservations.approve_donation(repo, notifier, body.donation_id, body.organization_id, user["id"])
    return {"message": "Donation reserved successfully", "request": serialize_request(req)}

@router.post("/complete")
async def complete_match(body: RequestRef, repo=Depends(get_repo), notifier=Depends(get_notifier),
                         user=Depends(organization_only)):
    req = await reservations.complete_match(repo, notifier, body.request_id, user["id"])
    return {"message": "Transaction completed", "request": serialize_request(req)}
