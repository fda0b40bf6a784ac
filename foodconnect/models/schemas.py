from typing import Optional, List, Literal
from pydantic import BaseModel, Field
from datetime import datetime

# --------------------------
# Shared
# --------------------------
MealType = Literal["breakfast", "lunch", "dinner", "snacks", "fruits", "other"]
Tab = Literal["ongoing", "completed"]

class Item(BaseModel):
    name: str
    quantity: float
    unit: str = "units"

class RequestedItem(BaseModel):
    name: str
    quantity: float = Field(..., gt=0)

# --------------------------
# Donations
# --------------------------
class DonationIn(BaseModel):
    items: List[Item]
    meal_type: MealType = "other"
    expiry_time: datetime

class DonationPatch(BaseModel):
    """Only fields the client actually sends are applied."""
    items: Optional[List[Item]] = None
    meal_type: Optional[MealType] = None
    expiry_time: Optional[datetime] = None

# --------------------------
# Matching / reservation
# --------------------------
class SearchIn(BaseModel):
    # falls back to the caller's profile location when omitted
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    requested_items: List[RequestedItem] = []
    radius_km: Optional[float] = Field(None, gt=0)
    meal_type: Optional[MealType] = None
    required_before: Optional[datetime] = None
    page: int = Field(1, ge=1)
    limit: Optional[int] = Field(None, ge=1, le=100)

class MatchRequestIn(BaseModel):
    donation_id: str
    required_before: datetime

class ApproveIn(BaseModel):
    donation_id: str
    organization_id: str

class RequestRef(BaseModel):
    request_id: str
