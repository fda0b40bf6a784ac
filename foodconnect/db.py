# foodconnect/db.py
from __future__ import annotations

from datetime import datetime, timezone
from functools import lru_cache

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient

from foodconnect.core.config import settings

# --------------------------------------------------
# Collection names (single source of truth)
# --------------------------------------------------
DONATIONS = "donations"
REQUESTS = "requests"
USERS = "users"

# --------------------------------------------------
# MongoDB connection
# --------------------------------------------------
@lru_cache(maxsize=1)
def get_client() -> AsyncIOMotorClient:
    # Cached to play nicely with uvicorn --reload; tz_aware keeps expiry
    # comparisons between stored and fresh datetimes valid
    return AsyncIOMotorClient(settings.mongo_uri, tz_aware=True)

def get_db():
    return get_client()[settings.mongo_db]

# --------------------------------------------------
# Helpers shared by both repositories
# --------------------------------------------------
def new_id() -> str:
    return str(ObjectId())

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def as_utc(v: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)
