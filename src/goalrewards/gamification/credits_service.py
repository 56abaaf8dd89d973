"""Virtual credits: grants, spends, refunds, and rewarded ads."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, time, timezone

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from goalrewards.config import get_settings
from goalrewards.db.models import AdView, CreditTransaction
from goalrewards.errors import InvalidArgumentError
from goalrewards.gamification.ledger import LedgerEntry, credits_ledger

logger = logging.getLogger(__name__)

CREDIT_KINDS = frozenset({
    "ad_reward",
    "purchase",
    "referral_bonus",
    "badge_reward",
    "prediction_purchase",
    "daily_reward",
    "admin_grant",
    "admin_deduct",
    "refund",
    "subscription_bonus",
    "promotional",
})


@dataclass(frozen=True)
class AdRewardResult:
    success: bool
    credits: int
    daily_count: int
    daily_limit: int


def _check_kind(kind: str) -> None:
    if kind not in CREDIT_KINDS:
        raise InvalidArgumentError(f"Unknown credit transaction kind: {kind}")


def _day_start(now: datetime) -> datetime:
    return datetime.combine(now.date(), time.min, tzinfo=timezone.utc)


async def grant_credits(
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
    """Grant a positive amount of credits."""
    _check_kind(kind)
    return await credits_ledger.grant(
        db, user_id, amount, kind,
        description=description,
        reference_id=reference_id,
        reference_type=reference_type,
        metadata=metadata,
    )


async def spend_credits(
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
    """Spend credits. Raises InsufficientBalanceError without touching the balance."""
    _check_kind(kind)
    return await credits_ledger.spend(
        db, user_id, amount, kind,
        description=description,
        reference_id=reference_id,
        reference_type=reference_type,
        metadata=metadata,
    )


async def refund_credits(
    db: AsyncSession,
    user_id: int,
    amount: int,
    reason: str,
    reference_id: int | str | None = None,
) -> LedgerEntry:
    """Give back credits for a cancelled purchase."""
    return await grant_credits(
        db, user_id, amount, "refund",
        description=f"Refund: {reason}",
        reference_id=reference_id,
        reference_type="refund",
        metadata={"reason": reason},
    )


async def get_user_credits(db: AsyncSession, user_id: int) -> dict | None:
    row = await credits_ledger.get_balance(db, user_id)
    if row is None:
        return None
    return {
        "balance": row.balance,
        "lifetime_earned": row.lifetime_earned,
        "lifetime_spent": row.lifetime_spent,
    }


async def get_credit_transactions(
    db: AsyncSession, user_id: int, limit: int = 50, offset: int = 0,
) -> list[CreditTransaction]:
    return await credits_ledger.list_transactions(db, user_id, limit, offset)


async def _ads_watched_since(db: AsyncSession, user_id: int, since: datetime) -> int:
    result = await db.execute(
        select(func.count(AdView.id)).where(
            AdView.user_id == user_id,
            AdView.completed_at >= since,
            AdView.reward_granted.is_(True),
        )
    )
    return int(result.scalar() or 0)


async def process_ad_reward(
    db: AsyncSession,
    user_id: int,
    ad_network: str,
    ad_unit_id: str,
    ad_type: str,
    device_id: str | None = None,
    now: datetime | None = None,
) -> AdRewardResult:
    """Credit a completed rewarded ad, at most ``daily_ad_limit`` per UTC day."""
    if now is None:
        now = datetime.now(timezone.utc)
    settings = get_settings()
    limit = settings.daily_ad_limit

    # Serializes concurrent ad rewards for the user until commit.
    await credits_ledger.lock_balance(db, user_id)
    watched = await _ads_watched_since(db, user_id, _day_start(now))
    if watched >= limit:
        logger.info("Ad reward refused for user %s: daily limit %d reached", user_id, limit)
        return AdRewardResult(success=False, credits=0, daily_count=watched, daily_limit=limit)

    view = AdView(
        user_id=user_id,
        ad_network=ad_network,
        ad_unit_id=ad_unit_id,
        ad_type=ad_type,
        device_id=device_id,
        reward_amount=settings.ad_reward_credits,
        reward_granted=True,
        completed_at=now,
    )
    db.add(view)
    await db.flush()

    await grant_credits(
        db, user_id, settings.ad_reward_credits, "ad_reward",
        description=f"Rewarded ad ({watched + 1}/{limit})",
        reference_id=view.id,
        reference_type="ad_view",
        metadata={"ad_network": ad_network, "ad_type": ad_type, "daily_count": watched + 1},
    )
    return AdRewardResult(
        success=True,
        credits=settings.ad_reward_credits,
        daily_count=watched + 1,
        daily_limit=limit,
    )


async def get_daily_credit_stats(db: AsyncSession, user_id: int, now: datetime | None = None) -> dict:
    """Credits earned and spent since UTC midnight, plus the ad allowance."""
    if now is None:
        now = datetime.now(timezone.utc)
    since = _day_start(now)

    result = await db.execute(
        select(
            func.coalesce(func.sum(case((CreditTransaction.amount > 0, CreditTransaction.amount), else_=0)), 0),
            func.coalesce(func.sum(case((CreditTransaction.amount < 0, -CreditTransaction.amount), else_=0)), 0),
        ).where(
            CreditTransaction.user_id == user_id,
            CreditTransaction.created_at >= since,
        )
    )
    earned, spent = result.one()
    ads = await _ads_watched_since(db, user_id, since)
    limit = get_settings().daily_ad_limit

    return {
        "earned_today": int(earned),
        "spent_today": int(spent),
        "ads_watched_today": ads,
        "ads_remaining_today": max(0, limit - ads),
    }
