"""FastAPI authentication dependencies."""

from __future__ import annotations

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from moneyrank.auth.jwt import verify_token
from moneyrank.database import get_session
from moneyrank.db.models import User
from moneyrank.users.service import ensure_user, get_user

_bearer = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> User:
    """
    Extract and verify JWT, return User model.

    The user row is created on first sight of a new `sub`. Raises 401 on failure.
    """
    try:
        payload = verify_token(credentials.credentials, expected_type="access")
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    user_id = str(payload["sub"])
    user = await get_user(db, user_id)
    if user is None:
        await ensure_user(db, user_id, payload.get("name"))
        await db.commit()
        user = await get_user(db, user_id)
        if user is None:
            raise HTTPException(status_code=401, detail="User not found")
    return user
