"""FastAPI authentication dependencies."""

from __future__ import annotations

from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from goalrewards.auth.jwt import verify_token
from goalrewards.database import get_session
from goalrewards.db.models import User

_bearer = HTTPBearer()


@dataclass(frozen=True)
class CurrentUser:
    id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> CurrentUser:
    """Verify the bearer token and resolve an active user. Raises 401 on failure."""
    try:
        payload = verify_token(credentials.credentials)
        user_id = int(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError) as e:
        raise HTTPException(status_code=401, detail=str(e) or "Invalid token") from e

    result = await db.execute(
        select(User.id, User.role).where(User.id == user_id, User.deleted_at.is_(None))
    )
    row = result.one_or_none()
    if row is None:
        raise HTTPException(status_code=401, detail="User not found")
    return CurrentUser(id=row.id, role=payload.get("role") or row.role)


async def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Same as get_current_user but additionally requires the admin role."""
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
