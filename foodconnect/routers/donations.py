# foodconnect/routers/donations.py
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from foodconnect.core.config import settings
from foodconnect.core.security import require_role
from foodconnect.deps import get_repo
from foodconnect.models.schemas import DonationIn, DonationPatch, Tab
from foodconnect.services import donations as registry
from foodconnect.services.donations import serialize_donation

router = APIRouter(prefix="/api/donations", tags=["donations"])

donor_only = require_role("donor")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_donation(body: DonationIn, repo=Depends(get_repo), user=Depends(donor_only)):
    saved = await registry.create_donation(
        repo, user["id"], body.items, body.meal_type, body.expiry_time,
    )
    return serialize_donation(saved)

@router.get("/my/all")
async def my_donations(
    tab: Tab = "ongoing",
    search: str = "",
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    repo=Depends(get_repo),
    user=Depends(donor_only),
):
    return await registry.list_my_donations(
        repo, user["id"], tab=tab, search=search.strip(), page=page,
        limit=limit or settings.default_page_limit,
    )

@router.get("/{donation_id}")
async def get_donation(donation_id: str, repo=Depends(get_repo), user=Depends(donor_only)):
    return serialize_donation(await registry.get_donation(repo, donation_id, user["id"]))

@router.patch("/{donation_id}")
async def update_donation(donation_id: str, body: DonationPatch, repo=Depends(get_repo), user=Depends(donor_only)):
    saved = await registry.update_donation(repo, donation_id, user["id"], body)
    return serialize_donation(saved)

@router.delete("/{donation_id}")
async def delete_donation(donation_id: str, repo=Depends(get_repo), user=Depends(donor_only)):
    await registry.delete_donation(repo, donation_id, user["id"])
    return {"message": "Donation deleted"}
