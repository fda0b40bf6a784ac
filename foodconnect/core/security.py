from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import OAuth2PasswordBearer

from foodconnect.core.config import settings

ROLES = ("donor", "organization")

# tokens are issued by the auth service; this side only verifies them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def create_token(payload: Dict[str, Any], minutes: int | None = None) -> str:
    payload = dict(payload)
    ttl = minutes if minutes is not None else settings.access_ttl_min
    payload["exp"] = datetime.now(timezone.utc) + timedelta(minutes=ttl)
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_alg)

def decode_token(token: str):
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_alg])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

async def get_current_user(request: Request, token: str = Depends(oauth2_scheme)):
    data = decode_token(token)
    user_id = data.get("sub") or data.get("id")
    role = data.get("role")
    if not user_id or role not in ROLES:
        raise HTTPException(status_code=401, detail="Invalid token")
    request.state.user_id = str(user_id)
    return {"id": str(user_id), "role": role}

def require_role(role: str):
    async def checker(user=Depends(get_current_user)):
        if user["role"] != role:
            raise HTTPException(status_code=403, detail="Access denied")
        return user
    return checker
