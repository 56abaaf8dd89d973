"""Scheduled reward jobs.

Plain async callables; ``goalrewards.workers.worker`` schedules them with arq.
Every run writes a job_execution_logs row. Per-item failures are logged and
skipped; a failure of the job itself is recorded and re-raised.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from goalrewards.db.models import (
    Badge,
    CreditBalance,
    JobExecutionLog,
    Referral,
    User,
    UserActivityStats,
    UserBadge,
    XPBalance,
)
from goalrewards.errors import InvalidArgumentError
from goalrewards.gamification.badge_service import BadgeEngine
from goalrewards.gamification.conditions import (
    CommentsCondition,
    CreditsEarnedCondition,
    LoginStreakCondition,
    PredictionAccuracyCondition,
    PredictionCountCondition,
    ReferralsCondition,
    UnlockCondition,
    XPLevelCondition,
    parse_condition,
)
from goalrewards.gamification.notification_push import deliver_after_commit
from goalrewards.gamification.referral_service import (
    expire_old_referrals,
    process_referral_tier2,
    process_referral_tier3,
)

logger = logging.getLogger(__name__)


@dataclass
class JobRun:
    name: str
    items_processed: int = 0


@asynccontextmanager
async def job_log(db: AsyncSession, job_name: str) -> AsyncIterator[JobRun]:
    """Record a job run in job_execution_logs (running -> success/failed)."""
    started = time.monotonic()
    entry = JobExecutionLog(
        job_name=job_name,
        started_at=datetime.now(timezone.utc),
        status="running",
        items_processed=0,
    )
    db.add(entry)
    await db.commit()
    log_id = entry.id

    run = JobRun(name=job_name)
    try:
        yield run
    except Exception as exc:
        await db.rollback()
        await _finish(db, log_id, "failed", run.items_processed, started, str(exc))
        logger.exception("Job %s failed", job_name)
        raise
    await _finish(db, log_id, "success", run.items_processed, started, None)
    logger.info(
        "Job %s processed %d items in %dms",
        job_name, run.items_processed, int((time.monotonic() - started) * 1000),
    )


async def _finish(
    db: AsyncSession,
    log_id: int,
    status: str,
    items: int,
    started: float,
    error: str | None,
) -> None:
    entry = await db.get(JobExecutionLog, log_id)
    if entry is None:
        return
    entry.status = status
    entry.items_processed = items
    entry.completed_at = datetime.now(timezone.utc)
    entry.duration_ms = int((time.monotonic() - started) * 1000)
    entry.error_message = error
    await db.commit()


def eligible_users_query(condition: UnlockCondition) -> Select | None:
    """Select user ids meeting ``condition``, or None when it cannot be checked in bulk."""
    if isinstance(condition, ReferralsCondition):
        return (
            select(Referral.referrer_user_id.label("user_id"))
            .where(Referral.tier >= 2)
            .group_by(Referral.referrer_user_id)
            .having(func.count(Referral.id) >= condition.count)
        )
    if isinstance(condition, PredictionCountCondition):
        return select(UserActivityStats.user_id).where(
            UserActivityStats.predictions_correct >= condition.correct_count
        )
    if isinstance(condition, PredictionAccuracyCondition):
        return select(UserActivityStats.user_id).where(
            UserActivityStats.predictions_total > 0,
            UserActivityStats.predictions_total >= condition.min_count,
            UserActivityStats.predictions_correct * 100 >= condition.accuracy * UserActivityStats.predictions_total,
        )
    if isinstance(condition, CommentsCondition):
        return select(UserActivityStats.user_id).where(UserActivityStats.comments_count >= condition.count)
    if isinstance(condition, LoginStreakCondition):
        return select(XPBalance.user_id).where(XPBalance.current_streak_days >= condition.days)
    if isinstance(condition, XPLevelCondition):
        return select(XPBalance.user_id).where(XPBalance.level == condition.level)
    if isinstance(condition, CreditsEarnedCondition):
        return select(CreditBalance.user_id).where(CreditBalance.lifetime_earned >= condition.amount)
    return None


async def _find_eligible_users(db: AsyncSession, badge_id: int, condition: UnlockCondition) -> list[int]:
    query = eligible_users_query(condition)
    if query is None:
        return []
    eligible = query.subquery()
    result = await db.execute(
        select(User.id)
        .join(eligible, eligible.c.user_id == User.id)
        .where(
            User.deleted_at.is_(None),
            User.id.not_in(select(UserBadge.user_id).where(UserBadge.badge_id == badge_id)),
        )
        .order_by(User.id)
    )
    return list(result.scalars())


async def run_badge_auto_unlock(db: AsyncSession, redis: object | None = None) -> int:
    """Unlock every badge whose condition a user meets but who does not hold it yet.

    Returns the number of badges unlocked.
    """
    unlocked = 0
    async with job_log(db, "badge_auto_unlock") as run:
        result = await db.execute(
            select(Badge.id, Badge.slug, Badge.unlock_condition)
            .where(Badge.is_active.is_(True), Badge.deleted_at.is_(None))
            .order_by(Badge.display_order, Badge.id)
        )
        badges = list(result)
        engine = BadgeEngine(db)

        for badge_id, slug, raw_condition in badges:
            try:
                condition = parse_condition(raw_condition)
            except InvalidArgumentError:
                logger.warning("Skipping badge %s: malformed unlock condition", slug)
                continue

            for user_id in await _find_eligible_users(db, badge_id, condition):
                try:
                    async with deliver_after_commit(db, redis):
                        outcome = await engine.unlock(user_id, slug, {"source": "auto_unlock"})
                except Exception:
                    logger.exception("Error unlocking badge %s for user %s", slug, user_id)
                    continue
                if not outcome.already_unlocked:
                    unlocked += 1
            run.items_processed += 1

    logger.info("Badge auto-unlock: %d new badges", unlocked)
    return unlocked


async def run_referral_tier_checks(
    db: AsyncSession, now: datetime | None = None, redis: object | None = None,
) -> int:
    """Promote referrals whose referred user has logged in (tier 2) or subscribed (tier 3).

    Catches up on hooks that were missed. Returns the number of promotions.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    promoted = 0
    async with job_log(db, "referral_tier_checks") as run:
        pending = await db.execute(
            select(Referral.referred_user_id)
            .join(User, User.id == Referral.referred_user_id)
            .where(
                Referral.status == "pending",
                Referral.expires_at > now,
                User.first_login_at.is_not(None),
            )
        )
        for user_id in list(pending.scalars()):
            try:
                if await process_referral_tier2(db, user_id, now, redis):
                    promoted += 1
            except Exception:
                logger.exception("Tier 2 check failed for referred user %s", user_id)
            run.items_processed += 1

        completed = await db.execute(
            select(Referral.referred_user_id)
            .join(User, User.id == Referral.referred_user_id)
            .where(
                Referral.status == "completed",
                Referral.expires_at > now,
                User.subscription_started_at.is_not(None),
            )
        )
        for user_id in list(completed.scalars()):
            try:
                if await process_referral_tier3(db, user_id, now, redis):
                    promoted += 1
            except Exception:
                logger.exception("Tier 3 check failed for referred user %s", user_id)
            run.items_processed += 1

    return promoted


async def run_referral_expiry(db: AsyncSession, now: datetime | None = None) -> int:
    """Expire pending referrals past their window. Returns the number expired."""
    async with job_log(db, "referral_expiry") as run:
        expired = await expire_old_referrals(db, now)
        run.items_processed = expired
    return expired
