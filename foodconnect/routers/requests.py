# foodconnect/routers/requests.py
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from foodconnect.core.config import settings
from foodconnect.core.security import require_role
from foodconnect.deps import get_repo
from foodconnect.models.schemas import RequestRef
from foodconnect.services import reservations
from foodconnect.services.reservations import serialize_request

router = APIRouter(prefix="/api/requests", tags=["requests"])

organization_only = require_role("organization")


@router.post("/cancel")
async def cancel_request(body: RequestRef, repo=Depends(get_repo), user=Depends(organization_only)):
    req = await reservations.cancel_request(repo, body.request_id, user["id"])
    return {"message": "Request cancelled successfully", "request": serialize_request(req)}

@router.get("/my-activity")
async def my_activity(
    tab: Literal["ongoing", "completed"] = "ongoing",
    search: str = "",
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    repo=Depends(get_repo),
    user=Depends(organization_only),
):
    return await reservations.list_my_requests(
        repo, user["id"], tab=tab, search=search.strip(), page=page,
        limit=limit or settings.default_page_limit,
    )

@router.get("/history")
async def history(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    repo=Depends(get_repo),
    user=Depends(organization_only),
):
    return await reservations.list_my_requests(repo, user["id"], tab="all", page=page, limit=limit)
