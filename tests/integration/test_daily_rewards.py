"""Daily reward claims over simulated days."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from goalrewards.errors import AlreadyClaimedError
from goalrewards.gamification.credits_service import get_user_credits
from goalrewards.gamification.daily_rewards import (
    claim_daily_reward,
    get_daily_reward_history,
    get_daily_reward_stats,
    get_daily_reward_status,
)
from goalrewards.gamification.xp_service import get_user_xp

DAY_ONE = datetime(2026, 6, 1, 9, 0, tzinfo=timezone.utc)


def _day(n: int) -> datetime:
    return DAY_ONE + timedelta(days=n - 1)


async def test_first_claim(db_session, make_user):
    user = await make_user()
    result = await claim_daily_reward(db_session, user.id, now=_day(1))

    assert (result.day, result.credits, result.xp) == (1, 10, 10)
    assert not result.is_jackpot
    assert (await get_user_credits(db_session, user.id))["balance"] == 10
    assert (await get_user_xp(db_session, user.id))["xp_points"] == 10


async def test_week_ends_in_jackpot_then_wraps(db_session, make_user):
    user = await make_user()
    days = [(await claim_daily_reward(db_session, user.id, now=_day(n))).day for n in range(1, 7)]
    assert days == [1, 2, 3, 4, 5, 6]

    jackpot = await claim_daily_reward(db_session, user.id, now=_day(7))
    assert jackpot.day == 7
    assert jackpot.is_jackpot
    assert (jackpot.credits, jackpot.xp, jackpot.reward_type) == (100, 50, "special")

    after = await claim_daily_reward(db_session, user.id, now=_day(8))
    assert after.day == 1

    credits = await get_user_credits(db_session, user.id)
    assert credits["balance"] == 10 + 15 + 20 + 25 + 30 + 40 + 100 + 10


async def test_skipped_day_restarts_cycle(db_session, make_user):
    user = await make_user()
    for n in (1, 2, 3):
        await claim_daily_reward(db_session, user.id, now=_day(n))

    result = await claim_daily_reward(db_session, user.id, now=_day(5))
    assert result.day == 1


async def test_second_claim_same_day(db_session, make_user):
    user = await make_user()
    await claim_daily_reward(db_session, user.id, now=_day(1))

    with pytest.raises(AlreadyClaimedError):
        await claim_daily_reward(db_session, user.id, now=_day(1) + timedelta(hours=10))
    await db_session.rollback()

    assert (await get_user_credits(db_session, user.id))["balance"] == 10
    assert len(await get_daily_reward_history(db_session, user.id)) == 1


async def test_claim_crossing_level_threshold(db_session, make_user):
    from goalrewards.gamification.xp_service import grant_xp

    user = await make_user()
    await grant_xp(db_session, user.id, 495, "admin_grant")
    await db_session.commit()

    result = await claim_daily_reward(db_session, user.id, now=_day(1))
    assert result.leveled_up
    assert result.new_level == "silver"
    assert (await get_user_credits(db_session, user.id))["balance"] == 10 + 25


class TestStatus:
    async def test_new_user(self, db_session, make_user):
        user = await make_user()
        status = await get_daily_reward_status(db_session, user.id, now=_day(1))
        assert status["can_claim"]
        assert status["current_day"] == 1
        assert status["streak"] == 0
        assert status["last_claim_date"] is None

    async def test_after_claim(self, db_session, make_user):
        user = await make_user()
        await claim_daily_reward(db_session, user.id, now=_day(1))
        await claim_daily_reward(db_session, user.id, now=_day(2))

        today = await get_daily_reward_status(db_session, user.id, now=_day(2))
        assert not today["can_claim"]
        assert today["claimed_today"]
        assert today["streak"] == 2

        tomorrow = await get_daily_reward_status(db_session, user.id, now=_day(3))
        assert tomorrow["can_claim"]
        assert tomorrow["current_day"] == 3
        assert tomorrow["next_reward"]["credits"] == 20

        lapsed = await get_daily_reward_status(db_session, user.id, now=_day(5))
        assert lapsed["current_day"] == 1
        assert lapsed["streak"] == 0


async def test_stats(db_session, make_user):
    first = await make_user()
    second = await make_user()
    await claim_daily_reward(db_session, first.id, now=_day(1))
    await claim_daily_reward(db_session, first.id, now=_day(2))
    await claim_daily_reward(db_session, second.id, now=_day(2))

    stats = await get_daily_reward_stats(db_session, now=_day(2))
    assert stats == {
        "total_claimers": 2,
        "claimed_today": 2,
        "jackpot_claims": 0,
        "total_credits_distributed": 10 + 15 + 10,
    }
