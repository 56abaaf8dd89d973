"""XP grants: level recomputation and level-up credits."""

from __future__ import annotations

import pytest

from goalrewards.errors import InvalidArgumentError
from goalrewards.gamification.credits_service import get_credit_transactions, get_user_credits
from goalrewards.gamification.notification_push import pending_pushes
from goalrewards.gamification.xp_service import get_user_xp, get_xp_leaderboard, grant_xp


class TestGrantXP:
    async def test_level_up_pays_credits(self, db_session, make_user):
        user = await make_user()
        first = await grant_xp(db_session, user.id, 490, "admin_grant")
        assert first.new_level == "bronze"
        assert not first.leveled_up

        result = await grant_xp(db_session, user.id, 20, "prediction_correct")
        await db_session.commit()

        assert result.old_level == "bronze"
        assert result.new_level == "silver"
        assert result.leveled_up
        assert result.level_up_credits == 25

        xp = await get_user_xp(db_session, user.id)
        assert xp["xp_points"] == 510
        assert xp["level"] == "silver"
        assert xp["next_level_xp"] == 2000
        assert xp["achievements_count"] == 1
        assert xp["level_progress"] == pytest.approx(10 / 1500 * 100)

        credits = await get_user_credits(db_session, user.id)
        assert credits["balance"] == 25
        txn = (await get_credit_transactions(db_session, user.id))[0]
        assert txn.kind == "promotional"
        assert txn.reference_type == "level_up"
        assert txn.reference_id == str(result.transaction_id)

    async def test_level_up_queues_push(self, db_session, make_user):
        user = await make_user()
        await grant_xp(db_session, user.id, 2000, "admin_grant")
        pushes = pending_pushes(db_session)
        assert [p["subtype"] for p in pushes] == ["level_up"]
        assert pushes[0]["data"] == {"from": "bronze", "to": "gold", "credits": 50}
        await db_session.rollback()

    async def test_multi_tier_jump_pays_final_tier(self, db_session, make_user):
        user = await make_user()
        result = await grant_xp(db_session, user.id, 5000, "admin_grant")
        await db_session.commit()

        assert result.new_level == "platinum"
        assert result.level_up_credits == 100
        assert (await get_user_credits(db_session, user.id))["balance"] == 100

    async def test_deduction_lowers_level_without_clawback(self, db_session, make_user):
        user = await make_user()
        await grant_xp(db_session, user.id, 600, "admin_grant")
        result = await grant_xp(db_session, user.id, -200, "admin_deduct")
        await db_session.commit()

        assert result.new_level == "bronze"
        assert not result.leveled_up
        assert (await get_user_credits(db_session, user.id))["balance"] == 25

    async def test_unknown_kind(self, db_session, make_user):
        user = await make_user()
        with pytest.raises(InvalidArgumentError, match="Unknown XP transaction kind"):
            await grant_xp(db_session, user.id, 10, "bribe")


async def test_leaderboard_orders_by_xp(db_session, make_user):
    low = await make_user("low")
    high = await make_user("high")
    await grant_xp(db_session, low.id, 10, "admin_grant")
    await grant_xp(db_session, high.id, 300, "admin_grant")
    await db_session.commit()

    board = await get_xp_leaderboard(db_session)
    assert [entry["user_id"] for entry in board] == [high.id, low.id]
    assert board[0]["rank"] == 1
    assert board[0]["xp_points"] == 300
