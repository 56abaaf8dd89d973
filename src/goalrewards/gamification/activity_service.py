"""Activity hooks called by the rest of the app.

Each hook is an entry point: it updates the activity counters, pays the XP
for the activity, re-evaluates the matching badges and commits once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from goalrewards.db.models import User, UserActivityStats
from goalrewards.errors import NotFoundError
from goalrewards.gamification.badge_service import BadgeEngine
from goalrewards.gamification.conditions import PredictionTally
from goalrewards.gamification.daily_rewards import utc_today
from goalrewards.gamification.ledger import xp_ledger
from goalrewards.gamification.notification_push import deliver_after_commit
from goalrewards.gamification.referral_service import promote_to_tier2, promote_to_tier3
from goalrewards.gamification.xp_service import XP_REWARDS, grant_xp

logger = logging.getLogger(__name__)

STREAK_BONUSES: dict[int, int] = {
    7: XP_REWARDS["streak_bonus_7"],
    30: XP_REWARDS["streak_bonus_30"],
}


@dataclass
class LoginResult:
    first_login: bool
    new_day: bool
    current_streak: int
    longest_streak: int
    xp_granted: int = 0
    referral_promoted: bool = False
    badges_unlocked: list[str] = field(default_factory=list)


@dataclass
class ActivityResult:
    xp_granted: int = 0
    badges_unlocked: list[str] = field(default_factory=list)


async def _lock_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(
        select(User)
        .where(User.id == user_id, User.deleted_at.is_(None))
        .with_for_update()
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


async def _lock_activity(db: AsyncSession, user_id: int) -> UserActivityStats:
    result = await db.execute(
        select(UserActivityStats)
        .where(UserActivityStats.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    stats = result.scalar_one_or_none()
    if stats is None:
        raise NotFoundError(f"Activity stats for user {user_id} not found")
    return stats


async def record_login(
    db: AsyncSession,
    user_id: int,
    now: datetime | None = None,
    redis: object | None = None,
) -> LoginResult:
    """Record a login.

    1. Stamp first_login_at / last_login / login_count
    2. Advance the daily streak (same day: no-op, yesterday: +1, else 1)
    3. Pay daily-login XP once per day, plus 7- and 30-day streak bonuses
    4. Evaluate login_streak badges
    5. On the very first login, promote the user's referral to tier 2
    """
    if now is None:
        now = datetime.now(timezone.utc)
    today = utc_today(now)

    async with deliver_after_commit(db, redis):
        user = await _lock_user(db, user_id)
        first_login = user.first_login_at is None
        if first_login:
            user.first_login_at = now
        user.last_login = now
        user.login_count = (user.login_count or 0) + 1

        xp_row = await xp_ledger.lock_balance(db, user_id)
        last = xp_row.last_activity_date
        new_day = last != today
        if new_day:
            streak = xp_row.current_streak_days + 1 if last == today - timedelta(days=1) else 1
            xp_row.current_streak_days = streak
            xp_row.longest_streak_days = max(streak, xp_row.longest_streak_days)
            xp_row.last_activity_date = today
        streak = xp_row.current_streak_days
        longest = xp_row.longest_streak_days
        await db.flush()

        result = LoginResult(
            first_login=first_login,
            new_day=new_day,
            current_streak=streak,
            longest_streak=longest,
        )

        if new_day:
            await grant_xp(
                db, user_id, XP_REWARDS["daily_login"], "daily_login",
                description=f"Daily login bonus ({streak} day streak)",
                metadata={"streak": streak},
            )
            result.xp_granted += XP_REWARDS["daily_login"]

            bonus = STREAK_BONUSES.get(streak)
            if bonus:
                await grant_xp(
                    db, user_id, bonus, "streak_bonus",
                    description=f"{streak} day streak bonus!",
                    metadata={"streak": streak},
                )
                result.xp_granted += bonus

            unlocked = await BadgeEngine(db).check_and_unlock(user_id, "login_streak", streak)
            result.badges_unlocked = [u.badge.slug for u in unlocked]

        if first_login:
            result.referral_promoted = await promote_to_tier2(db, user_id, now)

    return result


async def record_prediction_result(
    db: AsyncSession,
    user_id: int,
    correct: bool,
    now: datetime | None = None,
    redis: object | None = None,
) -> ActivityResult:
    """Count a settled prediction and pay XP when it was correct."""
    if now is None:
        now = datetime.now(timezone.utc)

    result = ActivityResult()
    async with deliver_after_commit(db, redis):
        stats = await _lock_activity(db, user_id)
        stats.predictions_total += 1
        if correct:
            stats.predictions_correct += 1
        stats.updated_at = now
        tally = PredictionTally(correct_count=stats.predictions_correct, total_count=stats.predictions_total)
        await db.flush()

        if correct:
            await grant_xp(
                db, user_id, XP_REWARDS["prediction_correct"], "prediction_correct",
                description="Correct prediction",
            )
            result.xp_granted = XP_REWARDS["prediction_correct"]

        unlocked = await BadgeEngine(db).check_and_unlock(user_id, "predictions", tally)
        result.badges_unlocked = [u.badge.slug for u in unlocked]

    return result


async def record_comment(
    db: AsyncSession,
    user_id: int,
    redis: object | None = None,
) -> ActivityResult:
    """Count a match comment and pay its XP."""
    result = ActivityResult()
    async with deliver_after_commit(db, redis):
        stats = await _lock_activity(db, user_id)
        stats.comments_count += 1
        stats.updated_at = datetime.now(timezone.utc)
        count = stats.comments_count
        await db.flush()

        await grant_xp(
            db, user_id, XP_REWARDS["match_comment"], "match_comment",
            description="Match comment",
        )
        result.xp_granted = XP_REWARDS["match_comment"]

        unlocked = await BadgeEngine(db).check_and_unlock(user_id, "comments", count)
        result.badges_unlocked = [u.badge.slug for u in unlocked]

    return result


async def record_comment_like(
    db: AsyncSession,
    author_user_id: int,
    comment_id: int,
    redis: object | None = None,
) -> ActivityResult:
    """Pay the comment author for a like. Likes do not count toward badges."""
    async with deliver_after_commit(db, redis):
        await grant_xp(
            db, author_user_id, XP_REWARDS["comment_like"], "comment_like",
            description="Your comment was liked",
            reference_id=comment_id,
            reference_type="comment",
        )
    return ActivityResult(xp_granted=XP_REWARDS["comment_like"])


async def record_subscription(
    db: AsyncSession,
    user_id: int,
    now: datetime | None = None,
    redis: object | None = None,
) -> bool:
    """Stamp the subscription start and promote the user's referral to tier 3.

    Returns whether a referral was promoted.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    async with deliver_after_commit(db, redis):
        user = await _lock_user(db, user_id)
        if user.subscription_started_at is None:
            user.subscription_started_at = now
        await db.flush()
        promoted = await promote_to_tier3(db, user_id, now)

    if promoted:
        logger.info("Subscription by user %s completed their referral", user_id)
    return promoted
