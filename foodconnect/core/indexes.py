# foodconnect/core/indexes.py
from pymongo import ASCENDING, DESCENDING

async def ensure_indexes(db):
    # Donations: donor activity pages, search candidates, expiry sweep
    await db.donations.create_index([("donor_id", ASCENDING), ("created_at", DESCENDING)])
    await db.donations.create_index([("status", ASCENDING), ("expiry_time", ASCENDING)])
    # Requests: duplicate check, completion cascade, expiry sweep
    await db.requests.create_index([("donation_id", ASCENDING), ("requester_id", ASCENDING), ("status", ASCENDING)])
    await db.requests.create_index([("requester_id", ASCENDING), ("created_at", DESCENDING)])
    await db.requests.create_index([("status", ASCENDING), ("required_before", ASCENDING)])
