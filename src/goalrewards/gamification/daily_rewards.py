"""Seven-day daily reward cycle.

One claim per user per UTC day. Consecutive claims walk days 1..7 and wrap
back to 1 after the day-7 jackpot; missing a day restarts the cycle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from goalrewards.db.models import DailyRewardClaim
from goalrewards.errors import AlreadyClaimedError
from goalrewards.gamification.credits_service import grant_credits
from goalrewards.gamification.notification_push import deliver_after_commit, queue_push
from goalrewards.gamification.xp_service import grant_xp

logger = logging.getLogger(__name__)

CYCLE_LENGTH = 7
JACKPOT_DAY = 7

DAILY_REWARDS: list[dict] = [
    {"day": 1, "credits": 10, "xp": 10, "type": "credits"},
    {"day": 2, "credits": 15, "xp": 15, "type": "credits"},
    {"day": 3, "credits": 20, "xp": 20, "type": "credits"},
    {"day": 4, "credits": 25, "xp": 25, "type": "credits"},
    {"day": 5, "credits": 30, "xp": 30, "type": "credits"},
    {"day": 6, "credits": 40, "xp": 40, "type": "credits"},
    {"day": 7, "credits": 100, "xp": 50, "type": "special"},
]


@dataclass(frozen=True)
class DailyClaimResult:
    day: int
    credits: int
    xp: int
    reward_type: str
    is_jackpot: bool
    claim_id: int
    leveled_up: bool
    new_level: str

    @property
    def message(self) -> str:
        text = f"Daily reward claimed! {self.credits} credits + {self.xp} XP"
        if self.is_jackpot:
            text += ". JACKPOT! You completed the weekly streak!"
        return text


def utc_today(now: datetime | None = None) -> date:
    if now is None:
        now = datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).date() if now.tzinfo else now.date()


def compute_day_number(last_date: date | None, last_day: int | None, today: date) -> int | None:
    """Cycle day for a claim made ``today``, or None if today is already claimed."""
    if last_date is None or last_day is None:
        return 1
    if last_date == today:
        return None
    if last_date == today - timedelta(days=1):
        return 1 if last_day >= CYCLE_LENGTH else last_day + 1
    return 1


def get_reward_for_day(day: int) -> dict:
    return DAILY_REWARDS[day - 1]


async def _last_claim(db: AsyncSession, user_id: int) -> DailyRewardClaim | None:
    result = await db.execute(
        select(DailyRewardClaim)
        .where(DailyRewardClaim.user_id == user_id)
        .order_by(DailyRewardClaim.reward_date.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_daily_reward_status(db: AsyncSession, user_id: int, now: datetime | None = None) -> dict:
    """What the user would get by claiming now, and their current run."""
    today = utc_today(now)
    last = await _last_claim(db, user_id)

    claimed_today = last is not None and last.reward_date == today
    if last is None:
        current_day = 1
    elif claimed_today:
        current_day = last.day_number
    else:
        current_day = compute_day_number(last.reward_date, last.day_number, today) or 1

    streak = 0
    if last is not None and (today - last.reward_date).days <= 1:
        streak = last.day_number

    reward = get_reward_for_day(current_day)
    return {
        "can_claim": not claimed_today,
        "current_day": current_day,
        "next_reward": dict(reward),
        "last_claim_date": last.reward_date if last else None,
        "streak": streak,
        "claimed_today": claimed_today,
    }


async def claim_daily_reward(
    db: AsyncSession,
    user_id: int,
    now: datetime | None = None,
    redis: object | None = None,
) -> DailyClaimResult:
    """Claim today's reward.

    The claim row goes in first, inside a SAVEPOINT, so a concurrent second
    claim for the same day fails on UNIQUE(user_id, reward_date) before any
    balance moves. Credits and XP are then granted in the same transaction.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    today = utc_today(now)

    last = await _last_claim(db, user_id)
    day = compute_day_number(
        last.reward_date if last else None,
        last.day_number if last else None,
        today,
    )
    if day is None:
        raise AlreadyClaimedError("Daily reward already claimed today")
    reward = get_reward_for_day(day)

    description = f"Daily reward (day {day})"
    async with deliver_after_commit(db, redis):
        try:
            async with db.begin_nested():
                claim = DailyRewardClaim(
                    user_id=user_id,
                    reward_date=today,
                    day_number=day,
                    reward_type=reward["type"],
                    reward_amount=reward["credits"],
                    reward_xp=reward["xp"],
                    claimed_at=now,
                )
                db.add(claim)
                await db.flush()
        except IntegrityError:
            raise AlreadyClaimedError("Daily reward already claimed today") from None

        claim_id = claim.id
        await grant_credits(
            db, user_id, reward["credits"], "daily_reward",
            description=description,
            reference_id=claim_id,
            reference_type="daily_reward",
        )
        xp_result = await grant_xp(
            db, user_id, reward["xp"], "daily_login",
            description=description,
            reference_id=claim_id,
            reference_type="daily_reward",
        )
        queue_push(
            db, user_id, "daily_reward",
            title="Jackpot!" if day == JACKPOT_DAY else "Daily reward",
            body=f"+{reward['credits']} credits, +{reward['xp']} XP",
            data={"day": day},
            deep_link="goalgpt://rewards/daily",
        )

    logger.info("User %s claimed daily reward day %d", user_id, day)

    return DailyClaimResult(
        day=day,
        credits=reward["credits"],
        xp=reward["xp"],
        reward_type=reward["type"],
        is_jackpot=day == JACKPOT_DAY,
        claim_id=claim_id,
        leveled_up=xp_result.leveled_up,
        new_level=xp_result.new_level,
    )


async def get_daily_reward_history(db: AsyncSession, user_id: int, limit: int = 30) -> list[DailyRewardClaim]:
    result = await db.execute(
        select(DailyRewardClaim)
        .where(DailyRewardClaim.user_id == user_id)
        .order_by(DailyRewardClaim.reward_date.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_daily_reward_stats(db: AsyncSession, now: datetime | None = None) -> dict:
    """Claim totals across all users."""
    today = utc_today(now)
    result = await db.execute(
        select(
            func.count(func.distinct(DailyRewardClaim.user_id)),
            func.coalesce(func.sum(case((DailyRewardClaim.reward_date == today, 1), else_=0)), 0),
            func.coalesce(func.sum(case((DailyRewardClaim.day_number == JACKPOT_DAY, 1), else_=0)), 0),
            func.coalesce(func.sum(DailyRewardClaim.reward_amount), 0),
        )
    )
    claimers, claimed_today, jackpots, distributed = result.one()
    return {
        "total_claimers": int(claimers),
        "claimed_today": int(claimed_today),
        "jackpot_claims": int(jackpots),
        "total_credits_distributed": int(distributed),
    }


def get_daily_reward_calendar() -> list[dict]:
    """Seven-day preview of the cycle."""
    return [{**reward, "is_jackpot": reward["day"] == JACKPOT_DAY} for reward in DAILY_REWARDS]
