"""Ledgered balances: one mutable balance row plus an append-only transaction log.

Every mutation locks the balance row (SELECT ... FOR UPDATE), validates the
delta, writes the new balance and lifetime counters, and appends a transaction
row with before/after snapshots, all in the caller's transaction. Ledger
methods only flush; the operation that called them commits.

Two instances exist: ``xp_ledger`` and ``credits_ledger``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from goalrewards.db.models import CreditBalance, CreditTransaction, XPBalance, XPTransaction
from goalrewards.errors import InsufficientBalanceError, InvalidArgumentError, NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEntry:
    old_balance: int
    new_balance: int
    transaction_id: int


class Granter(Protocol):
    """A ledger grant callable, injected into engines that pay rewards."""

    async def __call__(
        self,
        db: AsyncSession,
        user_id: int,
        amount: int,
        kind: str,
        *,
        description: str | None = None,
        reference_id: int | str | None = None,
        reference_type: str | None = None,
        metadata: dict | None = None,
    ) -> Any: ...


def _check_amount(amount: object) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidArgumentError(f"Amount must be an integer, got {amount!r}")
    return amount


class BalanceLedger:
    """Generic balance + transaction-log pair."""

    def __init__(
        self,
        balance_model: type,
        transaction_model: type,
        currency: str,
        *,
        allow_negative_grants: bool,
        track_spent: bool,
    ) -> None:
        self.balance_model = balance_model
        self.transaction_model = transaction_model
        self.currency = currency
        self.allow_negative_grants = allow_negative_grants
        self.track_spent = track_spent

    def lock_statement(self, user_id: int) -> Select:
        return (
            select(self.balance_model)
            .where(self.balance_model.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )

    async def lock_balance(self, db: AsyncSession, user_id: int) -> Any:
        """Fetch the balance row under a row-level lock held until commit."""
        result = await db.execute(self.lock_statement(user_id))
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"{self.currency} balance for user {user_id} not found")
        return row

    async def get_balance(self, db: AsyncSession, user_id: int) -> Any | None:
        """Read the balance row without locking."""
        result = await db.execute(
            select(self.balance_model).where(self.balance_model.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def grant(
        self,
        db: AsyncSession,
        user_id: int,
        amount: int,
        kind: str,
        *,
        description: str | None = None,
        reference_id: int | str | None = None,
        reference_type: str | None = None,
        metadata: dict | None = None,
    ) -> LedgerEntry:
        """Add ``amount`` to the balance.

        Zero is always rejected. Negative amounts are only accepted by ledgers
        created with ``allow_negative_grants`` (XP admin deductions) and do not
        touch ``lifetime_earned``.
        """
        amount = _check_amount(amount)
        if amount == 0:
            raise InvalidArgumentError(f"{self.currency} amount cannot be zero")
        if amount < 0 and not self.allow_negative_grants:
            raise InvalidArgumentError(f"{self.currency} amount must be positive")

        row = await self.lock_balance(db, user_id)
        old_balance = row.balance
        new_balance = old_balance + amount

        row.balance = new_balance
        if amount > 0:
            row.lifetime_earned += amount

        entry = await self._append(
            db, row, amount, kind, old_balance, new_balance,
            description, reference_id, reference_type, metadata,
        )
        logger.info(
            "Granted %d %s to user %s (%s): %d -> %d",
            amount, self.currency, user_id, kind, old_balance, new_balance,
        )
        return entry

    async def spend(
        self,
        db: AsyncSession,
        user_id: int,
        amount: int,
        kind: str,
        *,
        description: str | None = None,
        reference_id: int | str | None = None,
        reference_type: str | None = None,
        metadata: dict | None = None,
    ) -> LedgerEntry:
        """Debit ``amount``. The balance check runs under the same row lock as the debit."""
        amount = _check_amount(amount)
        if amount <= 0:
            raise InvalidArgumentError(f"{self.currency} amount must be positive")

        row = await self.lock_balance(db, user_id)
        old_balance = row.balance
        if old_balance < amount:
            raise InsufficientBalanceError(required=amount, available=old_balance)

        new_balance = old_balance - amount
        row.balance = new_balance
        if self.track_spent:
            row.lifetime_spent += amount

        entry = await self._append(
            db, row, -amount, kind, old_balance, new_balance,
            description, reference_id, reference_type, metadata,
        )
        logger.info(
            "User %s spent %d %s (%s): %d -> %d",
            user_id, amount, self.currency, kind, old_balance, new_balance,
        )
        return entry

    async def _append(
        self,
        db: AsyncSession,
        row: Any,
        amount: int,
        kind: str,
        old_balance: int,
        new_balance: int,
        description: str | None,
        reference_id: int | str | None,
        reference_type: str | None,
        metadata: dict | None,
    ) -> LedgerEntry:
        now = datetime.now(timezone.utc)
        row.updated_at = now

        txn = self.transaction_model(
            user_id=row.user_id,
            amount=amount,
            kind=kind,
            description=description,
            reference_id=str(reference_id) if reference_id is not None else None,
            reference_type=reference_type,
            balance_before=old_balance,
            balance_after=new_balance,
            extra_data=metadata or {},
            created_at=now,
        )
        db.add(txn)
        await db.flush()
        return LedgerEntry(old_balance=old_balance, new_balance=new_balance, transaction_id=txn.id)

    async def list_transactions(
        self,
        db: AsyncSession,
        user_id: int,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Any]:
        """Transaction history, newest first."""
        result = await db.execute(
            select(self.transaction_model)
            .where(self.transaction_model.user_id == user_id)
            .order_by(self.transaction_model.created_at.desc(), self.transaction_model.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def replay(self, db: AsyncSession, user_id: int) -> list[Any]:
        """Full history in application order (created_at, then id)."""
        result = await db.execute(
            select(self.transaction_model)
            .where(self.transaction_model.user_id == user_id)
            .order_by(self.transaction_model.created_at.asc(), self.transaction_model.id.asc())
        )
        return list(result.scalars().all())

    async def verify_history(self, db: AsyncSession, user_id: int, opening_balance: int = 0) -> bool:
        """Check that the log chains from ``opening_balance`` to the stored balance."""
        row = await self.get_balance(db, user_id)
        if row is None:
            raise NotFoundError(f"{self.currency} balance for user {user_id} not found")

        running = opening_balance
        for txn in await self.replay(db, user_id):
            if txn.balance_before != running or txn.balance_after != txn.balance_before + txn.amount:
                return False
            running = txn.balance_after
        return running == row.balance


xp_ledger = BalanceLedger(
    XPBalance, XPTransaction, "XP",
    allow_negative_grants=True,
    track_spent=False,
)

credits_ledger = BalanceLedger(
    CreditBalance, CreditTransaction, "credits",
    allow_negative_grants=False,
    track_spent=True,
)
