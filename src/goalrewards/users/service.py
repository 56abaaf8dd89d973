"""User provisioning for the reward engine."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import select

from goalrewards.db.models import CreditBalance, User, UserActivityStats, XPBalance
from goalrewards.errors import InvalidArgumentError, NotFoundError
from goalrewards.gamification.levels import next_threshold

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


async def get_user(db: AsyncSession, user_id: int) -> User:
    """Fetch an active user. Raises NotFoundError."""
    result = await db.execute(select(User).where(User.id == user_id, User.deleted_at.is_(None)))
    user = result.scalar_one_or_none()
    if user is None:
        msg = f"User {user_id} not found"
        raise NotFoundError(msg)
    return user


async def provision_user(
    db: AsyncSession,
    username: str,
    display_name: str | None = None,
    role: str = "user",
    now: datetime | None = None,
) -> User:
    """
    Create a user with zeroed XP, credits and activity rows.

    Every ledger operation expects these rows to exist.

    Raises:
        InvalidArgumentError: If the username is empty or already taken.
    """
    if not username or not username.strip():
        msg = "Username is required"
        raise InvalidArgumentError(msg)
    existing = await db.execute(select(User.id).where(User.username == username))
    if existing.scalar_one_or_none() is not None:
        msg = "Username already taken"
        raise InvalidArgumentError(msg)

    now = now or datetime.now(timezone.utc)
    user = User(username=username, display_name=display_name, role=role, login_count=0, created_at=now)
    db.add(user)
    await db.flush()

    db.add_all([
        XPBalance(
            user_id=user.id,
            balance=0,
            lifetime_earned=0,
            level="bronze",
            level_progress=0.0,
            next_level_xp=next_threshold("bronze"),
            achievements_count=0,
            current_streak_days=0,
            longest_streak_days=0,
            updated_at=now,
        ),
        CreditBalance(user_id=user.id, balance=0, lifetime_earned=0, lifetime_spent=0, updated_at=now),
        UserActivityStats(
            user_id=user.id,
            predictions_total=0,
            predictions_correct=0,
            comments_count=0,
            updated_at=now,
        ),
    ])
    await db.flush()
    logger.info("user_provisioned", user_id=user.id, username=username)
    return user


async def soft_delete_user(db: AsyncSession, user_id: int) -> None:
    """Hide a user from leaderboards and referral lookups. Ledger history is kept."""
    user = await get_user(db, user_id)
    user.deleted_at = datetime.now(timezone.utc)
    await db.flush()
