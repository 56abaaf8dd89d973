"""XP grants with level recomputation and level-up rewards."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from goalrewards.db.models import User, XPBalance, XPTransaction
from goalrewards.errors import InvalidArgumentError
from goalrewards.gamification.credits_service import grant_credits
from goalrewards.gamification.ledger import xp_ledger
from goalrewards.gamification.levels import (
    LEVEL_UP_CREDITS,
    get_level,
    level_of,
    level_rank,
    next_threshold,
    progress_of,
)
from goalrewards.gamification.notification_push import queue_push

logger = logging.getLogger(__name__)

XP_KINDS = frozenset({
    "daily_login",
    "prediction_correct",
    "referral_signup",
    "badge_unlock",
    "match_comment",
    "comment_like",
    "subscription_purchase",
    "ad_watch",
    "admin_grant",
    "admin_deduct",
    "achievement_unlock",
    "streak_bonus",
})

# XP reward amounts by activity
XP_REWARDS: dict[str, int] = {
    "daily_login": 10,
    "prediction_correct": 25,
    "referral_signup": 50,
    "match_comment": 5,
    "comment_like": 2,
    "streak_bonus_7": 100,
    "streak_bonus_30": 500,
}


@dataclass(frozen=True)
class XPGrantResult:
    old_xp: int
    new_xp: int
    old_level: str
    new_level: str
    leveled_up: bool
    level_up_credits: int
    transaction_id: int


async def grant_xp(
    db: AsyncSession,
    user_id: int,
    amount: int,
    kind: str,
    *,
    description: str | None = None,
    reference_id: int | str | None = None,
    reference_type: str | None = None,
    metadata: dict | None = None,
) -> XPGrantResult:
    """Grant (or, with a negative amount, deduct) XP.

    After the ledger write:
    1. Recompute level, progress and next threshold on user_xp
    2. On an upward tier change from a positive grant, pay the tier's
       level-up credits and bump achievements_count
    3. Queue a level-up push

    Level-downs never reverse earlier level-up bonuses.
    """
    if kind not in XP_KINDS:
        raise InvalidArgumentError(f"Unknown XP transaction kind: {kind}")

    entry = await xp_ledger.grant(
        db, user_id, amount, kind,
        description=description,
        reference_id=reference_id,
        reference_type=reference_type,
        metadata=metadata,
    )

    row = await xp_ledger.lock_balance(db, user_id)
    old_level = row.level
    new_level = level_of(entry.new_balance)
    row.level = new_level
    row.level_progress = progress_of(entry.new_balance, new_level)
    row.next_level_xp = next_threshold(new_level)

    leveled_up = level_rank(new_level) > level_rank(old_level)
    bonus = 0
    if leveled_up and amount > 0:
        logger.info("User %s leveled up: %s -> %s", user_id, old_level, new_level)
        bonus = LEVEL_UP_CREDITS[new_level]
        if bonus > 0:
            await grant_credits(
                db, user_id, bonus, "promotional",
                description=f"Reached {get_level(new_level)['name']}!",
                reference_id=entry.transaction_id,
                reference_type="level_up",
                metadata={"level_up": True, "from": old_level, "to": new_level},
            )
        row.achievements_count += 1
        queue_push(
            db, user_id, "level_up",
            title="Level Up!",
            body=f"You reached {get_level(new_level)['name']}",
            data={"from": old_level, "to": new_level, "credits": bonus},
            deep_link="goalgpt://profile/level",
        )

    await db.flush()

    return XPGrantResult(
        old_xp=entry.old_balance,
        new_xp=entry.new_balance,
        old_level=old_level,
        new_level=new_level,
        leveled_up=leveled_up and amount > 0,
        level_up_credits=bonus,
        transaction_id=entry.transaction_id,
    )


async def get_user_xp(db: AsyncSession, user_id: int) -> dict | None:
    row = await xp_ledger.get_balance(db, user_id)
    if row is None:
        return None
    return {
        "xp_points": row.balance,
        "level": row.level,
        "level_name": get_level(row.level)["name"],
        "level_progress": row.level_progress,
        "total_earned": row.lifetime_earned,
        "current_streak": row.current_streak_days,
        "longest_streak": row.longest_streak_days,
        "last_activity_date": row.last_activity_date,
        "next_level_xp": row.next_level_xp,
        "achievements_count": row.achievements_count,
    }


async def get_xp_transactions(
    db: AsyncSession, user_id: int, limit: int = 50, offset: int = 0,
) -> list[XPTransaction]:
    return await xp_ledger.list_transactions(db, user_id, limit, offset)


async def get_xp_leaderboard(db: AsyncSession, limit: int = 100) -> list[dict]:
    """Top users by XP balance, excluding soft-deleted accounts."""
    result = await db.execute(
        select(User, XPBalance)
        .join(XPBalance, XPBalance.user_id == User.id)
        .where(User.deleted_at.is_(None))
        .order_by(XPBalance.balance.desc(), User.id.asc())
        .limit(limit)
    )
    return [
        {
            "rank": rank,
            "user_id": row.User.id,
            "name": row.User.display_name or row.User.username,
            "xp_points": row.XPBalance.balance,
            "level": row.XPBalance.level,
            "streak_days": row.XPBalance.current_streak_days,
        }
        for rank, row in enumerate(result, start=1)
    ]
