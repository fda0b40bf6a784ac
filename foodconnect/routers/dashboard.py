from fastapi import APIRouter, Depends

from foodconnect.core.security import require_role
from foodconnect.deps import get_repo
from foodconnect.services.stats import donor_overview, organization_overview

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])

@router.get("/donor")
async def donor_dashboard(repo=Depends(get_repo), user=Depends(require_role("donor"))):
    return {"success": True, **await donor_overview(repo, user["id"])}

@router.get("/organization")
async def organization_dashboard(repo=Depends(get_repo), user=Depends(require_role("organization"))):
    return {"success": True, **await organization_overview(repo, user["id"])}
