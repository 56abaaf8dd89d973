"""Ledger invariants: conservation, no overdraft, chained history."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select

from goalrewards.db.models import CreditTransaction, XPTransaction
from goalrewards.errors import InsufficientBalanceError, InvalidArgumentError, NotFoundError
from goalrewards.gamification.ledger import credits_ledger, xp_ledger


async def _count(db, model, user_id: int) -> int:
    result = await db.execute(select(func.count(model.id)).where(model.user_id == user_id))
    return int(result.scalar())


class TestCreditsLedger:
    async def test_grant_and_spend_conserve_balance(self, db_session, make_user):
        user = await make_user()
        await credits_ledger.grant(db_session, user.id, 100, "admin_grant")
        await credits_ledger.spend(db_session, user.id, 30, "purchase")
        await credits_ledger.grant(db_session, user.id, 15, "refund")
        await db_session.commit()

        row = await credits_ledger.get_balance(db_session, user.id)
        assert row.balance == 85
        assert row.lifetime_earned == 115
        assert row.lifetime_spent == 30
        assert row.balance == row.lifetime_earned - row.lifetime_spent
        assert await credits_ledger.verify_history(db_session, user.id)

    async def test_transactions_snapshot_balances(self, db_session, make_user):
        user = await make_user()
        first = await credits_ledger.grant(db_session, user.id, 40, "admin_grant")
        second = await credits_ledger.spend(db_session, user.id, 25, "purchase")
        await db_session.commit()

        assert (first.old_balance, first.new_balance) == (0, 40)
        assert (second.old_balance, second.new_balance) == (40, 15)

        txn = await db_session.get(CreditTransaction, second.transaction_id)
        assert txn.amount == -25
        assert txn.balance_before == 40
        assert txn.balance_after == 15

    async def test_overdraft_is_rejected_without_side_effects(self, db_session, make_user):
        user = await make_user()
        await credits_ledger.grant(db_session, user.id, 5, "admin_grant")
        await db_session.commit()

        with pytest.raises(InsufficientBalanceError) as exc_info:
            await credits_ledger.spend(db_session, user.id, 10, "purchase")
        await db_session.rollback()

        assert exc_info.value.required == 10
        assert exc_info.value.available == 5
        row = await credits_ledger.get_balance(db_session, user.id)
        assert row.balance == 5
        assert row.lifetime_spent == 0
        assert await _count(db_session, CreditTransaction, user.id) == 1

    @pytest.mark.parametrize("amount", [0, -5, 2.5, True])
    async def test_rejects_bad_grant_amounts(self, db_session, make_user, amount):
        user = await make_user()
        with pytest.raises(InvalidArgumentError):
            await credits_ledger.grant(db_session, user.id, amount, "admin_grant")

    async def test_rejects_non_positive_spend(self, db_session, make_user):
        user = await make_user()
        with pytest.raises(InvalidArgumentError):
            await credits_ledger.spend(db_session, user.id, 0, "purchase")

    async def test_missing_balance_row(self, db_session):
        with pytest.raises(NotFoundError):
            await credits_ledger.grant(db_session, 999_999, 10, "admin_grant")


class TestXPLedger:
    async def test_negative_grants_allowed(self, db_session, make_user):
        user = await make_user()
        await xp_ledger.grant(db_session, user.id, 50, "admin_grant")
        await xp_ledger.grant(db_session, user.id, -80, "admin_deduct")
        await db_session.commit()

        row = await xp_ledger.get_balance(db_session, user.id)
        assert row.balance == -30
        assert row.lifetime_earned == 50
        assert await xp_ledger.verify_history(db_session, user.id)

    async def test_history_newest_first(self, db_session, make_user):
        user = await make_user()
        for amount in (10, 20, 30):
            await xp_ledger.grant(db_session, user.id, amount, "admin_grant")
        await db_session.commit()

        history = await xp_ledger.list_transactions(db_session, user.id, limit=2)
        assert [t.amount for t in history] == [30, 20]
        assert await _count(db_session, XPTransaction, user.id) == 3

    async def test_verify_detects_tampering(self, db_session, make_user):
        user = await make_user()
        await xp_ledger.grant(db_session, user.id, 10, "admin_grant")
        row = await xp_ledger.get_balance(db_session, user.id)
        row.balance = 999
        await db_session.commit()

        assert not await xp_ledger.verify_history(db_session, user.id)
