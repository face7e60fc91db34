"""FastAPI authentication dependencies."""

from __future__ import annotations

from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from lifehub.auth.jwt import verify_token
from lifehub.auth.service import is_admin
from lifehub.database import get_session

# auto_error=False so a missing header is a 401, not FastAPI's default 403
_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """The authenticated caller."""

    user_id: str


def _decode(credentials: HTTPAuthorizationCredentials) -> Principal:
    try:
        payload = verify_token(credentials.credentials, expected_type="access")
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    return Principal(user_id=str(payload["sub"]))


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> Principal:
    """
    Extract and verify the bearer JWT.

    Raises 401 when the header is missing or the token does not verify.
    """
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return _decode(credentials)


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> Principal | None:
    """Like get_current_user, but anonymous callers get None instead of a 401."""
    if credentials is None:
        return None
    try:
        return _decode(credentials)
    except HTTPException:
        return None


async def require_admin(
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> Principal:
    """Admin gate. 401 without a valid token, 403 without the admin role."""
    if not await is_admin(db, user.user_id):
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
