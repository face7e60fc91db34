"""Role lookups for bearer-token principals."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lifehub.db.models import UserRole

ADMIN_ROLE = "admin"


async def has_role(db: AsyncSession, user_id: str, role: str) -> bool:
    result = await db.execute(
        select(UserRole.id).where(UserRole.user_id == user_id, UserRole.role == role)
    )
    return result.first() is not None


async def is_admin(db: AsyncSession, user_id: str) -> bool:
    return await has_role(db, user_id, ADMIN_ROLE)
