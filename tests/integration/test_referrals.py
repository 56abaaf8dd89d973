"""Three-tier referral flow."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from goalrewards.db.models import Referral
from goalrewards.errors import DuplicateReferralError, InvalidReferralCodeError, NotFoundError, SelfReferralError
from goalrewards.gamification.activity_service import record_login, record_subscription
from goalrewards.gamification.credits_service import get_user_credits
from goalrewards.gamification.referral_service import (
    apply_referral_code,
    expire_old_referrals,
    get_or_create_referral_code,
    get_referral_leaderboard,
    get_referral_stats,
    get_user_referrals,
    process_referral_tier2,
    process_referral_tier3,
    validate_referral_code,
)
from goalrewards.gamification.xp_service import get_user_xp

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


async def _status(db, referral_id: int) -> tuple[str, int]:
    result = await db.execute(select(Referral.status, Referral.tier).where(Referral.id == referral_id))
    return tuple(result.one())


async def _code_for(db, user) -> str:
    code = await get_or_create_referral_code(db, user.id)
    await db.commit()
    return code


class TestCodes:
    async def test_code_is_stable(self, db_session, make_user):
        user = await make_user()
        code = await _code_for(db_session, user)
        assert code.startswith("GOAL-")
        assert len(code) == 10
        assert await get_or_create_referral_code(db_session, user.id) == code

    async def test_validate(self, db_session, make_user):
        user = await make_user()
        code = await _code_for(db_session, user)
        assert await validate_referral_code(db_session, code.lower()) == (True, user.id)
        assert await validate_referral_code(db_session, "GOAL-ZZZZZ") == (False, None)


class TestApply:
    async def test_tier1_rewards_referrer(self, db_session, make_user):
        referrer = await make_user("alice")
        friend = await make_user("bob")
        code = await _code_for(db_session, referrer)

        referral = await apply_referral_code(db_session, friend.id, code.lower(), now=NOW)

        assert (referral.status, referral.tier) == ("pending", 1)
        assert referral.referral_code == code
        assert referral.expires_at == NOW + timedelta(days=30)
        assert (await get_user_xp(db_session, referrer.id))["xp_points"] == 50
        assert (await get_user_credits(db_session, referrer.id))["balance"] == 10
        assert (await get_user_credits(db_session, friend.id))["balance"] == 0

    async def test_self_referral(self, db_session, make_user):
        user = await make_user()
        code = await _code_for(db_session, user)
        with pytest.raises(SelfReferralError):
            await apply_referral_code(db_session, user.id, code, now=NOW)

    async def test_duplicate(self, db_session, make_user):
        first = await make_user()
        second = await make_user()
        friend = await make_user()
        await apply_referral_code(db_session, friend.id, await _code_for(db_session, first), now=NOW)

        with pytest.raises(DuplicateReferralError):
            await apply_referral_code(db_session, friend.id, await _code_for(db_session, second), now=NOW)
        assert (await get_user_credits(db_session, second.id))["balance"] == 0

    async def test_unknown_code(self, db_session, make_user):
        user = await make_user()
        with pytest.raises(InvalidReferralCodeError):
            await apply_referral_code(db_session, user.id, "GOAL-NOPE1", now=NOW)

    async def test_unprovisioned_user_is_not_found(self, db_session, make_user):
        referrer = await make_user()
        code = await _code_for(db_session, referrer)

        with pytest.raises(NotFoundError) as excinfo:
            await apply_referral_code(db_session, 999_999, code, now=NOW)
        assert excinfo.value.kind == "not_found"
        assert (await get_user_credits(db_session, referrer.id))["balance"] == 0


class TestTiers:
    async def test_full_progression(self, db_session, make_user):
        referrer = await make_user("alice")
        friend = await make_user("bob")
        referral = await apply_referral_code(db_session, friend.id, await _code_for(db_session, referrer), now=NOW)

        login = await record_login(db_session, friend.id, now=NOW + timedelta(hours=1))
        assert login.referral_promoted
        assert await _status(db_session, referral.id) == ("completed", 2)
        # tier 1 (10) + tier 2 (50) + first_referral badge (10)
        assert (await get_user_credits(db_session, referrer.id))["balance"] == 70
        assert (await get_user_credits(db_session, friend.id))["balance"] == 10
        # tier 1 (50) + first_referral badge (50)
        assert (await get_user_xp(db_session, referrer.id))["xp_points"] == 100

        assert await record_subscription(db_session, friend.id, now=NOW + timedelta(days=3))
        assert await _status(db_session, referral.id) == ("rewarded", 3)
        assert (await get_user_credits(db_session, referrer.id))["balance"] == 270

        stats = await get_referral_stats(db_session, referrer.id)
        assert stats == {
            "total_referrals": 1,
            "active_referrals": 1,
            "subscribed_referrals": 1,
            "total_xp_earned": 50,
            "total_credits_earned": 260,
        }

    async def test_subscription_before_login_is_ignored(self, db_session, make_user):
        referrer = await make_user()
        friend = await make_user()
        referral = await apply_referral_code(db_session, friend.id, await _code_for(db_session, referrer), now=NOW)

        assert not await process_referral_tier3(db_session, friend.id, now=NOW)
        assert await _status(db_session, referral.id) == ("pending", 1)

    async def test_tier2_is_paid_once(self, db_session, make_user):
        referrer = await make_user()
        friend = await make_user()
        await apply_referral_code(db_session, friend.id, await _code_for(db_session, referrer), now=NOW)

        assert await process_referral_tier2(db_session, friend.id, now=NOW)
        assert not await process_referral_tier2(db_session, friend.id, now=NOW)
        assert (await get_user_credits(db_session, friend.id))["balance"] == 10

    async def test_expired_referral_is_not_promoted(self, db_session, make_user):
        referrer = await make_user()
        friend = await make_user()
        referral = await apply_referral_code(db_session, friend.id, await _code_for(db_session, referrer), now=NOW)
        later = NOW + timedelta(days=31)

        assert not await process_referral_tier2(db_session, friend.id, now=later)
        assert await expire_old_referrals(db_session, now=later) == 1
        assert await _status(db_session, referral.id) == ("expired", 1)
        assert await expire_old_referrals(db_session, now=later) == 0


async def test_listing_and_leaderboard(db_session, make_user):
    referrer = await make_user("alice")
    code = await _code_for(db_session, referrer)
    friends = [await make_user(f"friend{i}") for i in range(3)]
    for offset, friend in enumerate(friends):
        await apply_referral_code(db_session, friend.id, code, now=NOW + timedelta(minutes=offset))
    await process_referral_tier2(db_session, friends[0].id, now=NOW)

    listed = await get_user_referrals(db_session, referrer.id)
    assert [r["referred_username"] for r in listed] == ["friend2", "friend1", "friend0"]
    assert listed[2]["tier"] == 2

    board = await get_referral_leaderboard(db_session)
    assert board[0]["user_id"] == referrer.id
    assert board[0]["total_referrals"] == 3
    assert board[0]["active_referrals"] == 1


async def test_known_code_signup_and_first_login(db_session, make_user):
    referrer = await make_user("alice")
    referrer.referral_code = "GOAL-A3B7K"
    await db_session.commit()
    newcomer = await make_user("carol")

    referral = await apply_referral_code(db_session, newcomer.id, "GOAL-A3B7K", now=NOW)
    assert (referral.status, referral.tier) == ("pending", 1)
    assert (await get_user_xp(db_session, referrer.id))["xp_points"] == 50
    assert (await get_user_credits(db_session, referrer.id))["balance"] == 10

    await record_login(db_session, newcomer.id, now=NOW + timedelta(minutes=5))
    assert await _status(db_session, referral.id) == ("completed", 2)
    # +50 tier 2, +10 from the first_referral badge
    assert (await get_user_credits(db_session, referrer.id))["balance"] == 10 + 50 + 10
    assert (await get_user_credits(db_session, newcomer.id))["balance"] == 10
