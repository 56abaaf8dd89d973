"""Scheduled jobs and their execution log."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from goalrewards.db.models import JobExecutionLog, Referral, User
from goalrewards.gamification.badge_service import get_user_badges
from goalrewards.gamification.conditions import parse_condition
from goalrewards.gamification.credits_service import grant_credits
from goalrewards.gamification.jobs import (
    eligible_users_query,
    job_log,
    run_badge_auto_unlock,
    run_referral_expiry,
    run_referral_tier_checks,
)
from goalrewards.gamification.referral_service import apply_referral_code, get_or_create_referral_code
from goalrewards.gamification.seed import BADGE_SEED_DATA
from goalrewards.gamification.xp_service import grant_xp
from goalrewards.users.service import soft_delete_user

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


async def _logs(db, job_name: str) -> list[JobExecutionLog]:
    result = await db.execute(
        select(JobExecutionLog)
        .where(JobExecutionLog.job_name == job_name)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars())


class TestJobLog:
    async def test_success_is_recorded(self, db_session):
        async with job_log(db_session, "unit_job") as run:
            run.items_processed = 4

        [entry] = await _logs(db_session, "unit_job")
        assert entry.status == "success"
        assert entry.items_processed == 4
        assert entry.completed_at is not None
        assert entry.duration_ms is not None

    async def test_failure_is_recorded_and_raised(self, db_session):
        with pytest.raises(RuntimeError):
            async with job_log(db_session, "unit_job"):
                raise RuntimeError("boom")

        [entry] = await _logs(db_session, "unit_job")
        assert entry.status == "failed"
        assert entry.error_message == "boom"


class TestBadgeAutoUnlock:
    async def test_unlocks_qualifying_users(self, db_session, make_user):
        rich = await make_user()
        await make_user()
        await grant_credits(db_session, rich.id, 100, "admin_grant")
        await db_session.commit()

        assert await run_badge_auto_unlock(db_session) == 1

        held = await get_user_badges(db_session, rich.id)
        assert [ub.badge.slug for ub in held] == ["credit_collector"]
        assert held[0].badge_metadata == {"source": "auto_unlock"}

        [entry] = await _logs(db_session, "badge_auto_unlock")
        assert entry.status == "success"
        assert entry.items_processed == len(BADGE_SEED_DATA)

    async def test_second_run_is_a_no_op(self, db_session, make_user):
        user = await make_user()
        await grant_credits(db_session, user.id, 100, "admin_grant")
        await db_session.commit()

        await run_badge_auto_unlock(db_session)
        assert await run_badge_auto_unlock(db_session) == 0

    async def test_level_badges_match_current_tier(self, db_session, make_user):
        user = await make_user()
        await grant_xp(db_session, user.id, 2100, "admin_grant")
        await db_session.commit()

        await run_badge_auto_unlock(db_session)
        slugs = {ub.badge.slug for ub in await get_user_badges(db_session, user.id)}
        assert "gold_legend" in slugs
        assert "silver_champion" not in slugs

    async def test_deleted_users_are_skipped(self, db_session, make_user):
        user = await make_user()
        await grant_credits(db_session, user.id, 100, "admin_grant")
        await soft_delete_user(db_session, user.id)
        await db_session.commit()

        assert await run_badge_auto_unlock(db_session) == 0


def test_manual_condition_has_no_bulk_query():
    assert eligible_users_query(parse_condition({"type": "manual"})) is None


class TestReferralJobs:
    async def _refer(self, db, make_user):
        referrer = await make_user()
        friend = await make_user()
        code = await get_or_create_referral_code(db, referrer.id)
        await db.commit()
        referral = await apply_referral_code(db, friend.id, code, now=NOW)
        return referrer, friend, referral

    async def _status(self, db, referral_id: int) -> tuple[str, int]:
        result = await db.execute(select(Referral.status, Referral.tier).where(Referral.id == referral_id))
        return tuple(result.one())

    async def test_tier_checks_catch_missed_hooks(self, db_session, make_user):
        _, friend, referral = await self._refer(db_session, make_user)
        user = await db_session.get(User, friend.id)
        user.first_login_at = NOW
        user.subscription_started_at = NOW
        await db_session.commit()

        # the first pass promotes to tier 2; the completed query then finds it for tier 3
        promoted = await run_referral_tier_checks(db_session, now=NOW + timedelta(hours=1))
        assert promoted == 2
        assert await self._status(db_session, referral.id) == ("rewarded", 3)

        [entry] = await _logs(db_session, "referral_tier_checks")
        assert entry.status == "success"
        assert entry.items_processed == 2

    async def test_tier_checks_leave_inactive_referrals(self, db_session, make_user):
        _, _, referral = await self._refer(db_session, make_user)
        assert await run_referral_tier_checks(db_session, now=NOW) == 0
        assert await self._status(db_session, referral.id) == ("pending", 1)

    async def test_expiry(self, db_session, make_user):
        _, _, referral = await self._refer(db_session, make_user)

        assert await run_referral_expiry(db_session, now=NOW + timedelta(days=31)) == 1
        assert await self._status(db_session, referral.id) == ("expired", 1)
        [entry] = await _logs(db_session, "referral_expiry")
        assert entry.items_processed == 1
