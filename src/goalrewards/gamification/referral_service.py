"""Three-tier referral program.

State progression: pending (tier 1) -> completed (tier 2) -> rewarded (tier 3).
A pending referral that is not promoted within the expiry window becomes
expired. Transitions are validated: no skipping states or going backwards.

    Tier 1  code applied at signup      referrer +50 XP, +10 credits
    Tier 2  referred user's first login referrer +50 credits, referred +10 credits
    Tier 3  referred user subscribes    referrer +200 credits

Codes are ``GOAL-`` followed by 5 characters (A-Z, 0-9), generated
server-side with a cryptographic random source.
"""

from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime, timedelta, timezone

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from goalrewards.config import get_settings
from goalrewards.db.models import Referral, User
from goalrewards.errors import (
    DuplicateReferralError,
    ExpiredError,
    InvalidArgumentError,
    InvalidReferralCodeError,
    NotFoundError,
    SelfReferralError,
)
from goalrewards.gamification.badge_service import BadgeEngine
from goalrewards.gamification.credits_service import grant_credits
from goalrewards.gamification.notification_push import deliver_after_commit, queue_push
from goalrewards.gamification.xp_service import XP_REWARDS, grant_xp
from goalrewards.users.service import get_user

logger = logging.getLogger(__name__)

CODE_CHARSET = string.ascii_uppercase + string.digits  # A-Z, 0-9
CODE_LENGTH = 5

VALID_TRANSITIONS: dict[str, list[str]] = {
    "pending": ["completed", "expired"],
    "completed": ["rewarded"],
    "rewarded": [],
    "expired": [],
}

STATUS_TIERS: dict[str, int] = {"pending": 1, "completed": 2, "rewarded": 3}

REFERRAL_REWARDS = {
    "tier1": {"referrer_xp": XP_REWARDS["referral_signup"], "referrer_credits": 10},
    "tier2": {"referrer_credits": 50, "referred_credits": 10},
    "tier3": {"referrer_credits": 200},
}


def validate_transition(current_status: str, target_status: str) -> None:
    """Validate a status change. Raises ExpiredError from expired, InvalidArgumentError otherwise."""
    if current_status == "expired":
        raise ExpiredError("Referral has expired")
    valid = VALID_TRANSITIONS.get(current_status, [])
    if target_status not in valid:
        raise InvalidArgumentError(
            f"Invalid referral transition: {current_status} -> {target_status}. "
            f"Valid transitions: {valid}"
        )


def generate_referral_code() -> str:
    """Generate a random GOAL-XXXXX referral code."""
    prefix = get_settings().referral_code_prefix
    return prefix + "".join(secrets.choice(CODE_CHARSET) for _ in range(CODE_LENGTH))


def normalize_referral_code(code: str) -> str:
    """Normalize a referral code for case-insensitive lookup."""
    return code.strip().upper()


async def get_or_create_referral_code(db: AsyncSession, user_id: int) -> str:
    """Return the user's referral code, assigning a fresh unique one on first use."""
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    if user.referral_code:
        return user.referral_code

    for _ in range(10):
        code = generate_referral_code()
        existing = await db.execute(select(User.id).where(User.referral_code == code))
        if existing.scalar_one_or_none() is None:
            user.referral_code = code
            await db.flush()
            return code
    raise RuntimeError("Failed to generate unique referral code after 10 attempts")


async def validate_referral_code(db: AsyncSession, code: str) -> tuple[bool, int | None]:
    """Check a code against active users. Returns (valid, referrer user id)."""
    result = await db.execute(
        select(User.id).where(
            User.referral_code == normalize_referral_code(code),
            User.deleted_at.is_(None),
        )
    )
    referrer_id = result.scalar_one_or_none()
    return referrer_id is not None, referrer_id


async def _find_referral(
    db: AsyncSession, referred_user_id: int, status: str, now: datetime,
) -> Referral | None:
    result = await db.execute(
        select(Referral)
        .where(
            Referral.referred_user_id == referred_user_id,
            Referral.status == status,
            Referral.tier == STATUS_TIERS[status],
            Referral.expires_at > now,
        )
        .with_for_update()
    )
    return result.scalar_one_or_none()


async def count_qualified_referrals(db: AsyncSession, referrer_user_id: int) -> int:
    """Referrals that reached tier 2 or beyond. This is what referral badges measure."""
    result = await db.execute(
        select(func.count(Referral.id)).where(
            Referral.referrer_user_id == referrer_user_id,
            Referral.tier >= 2,
        )
    )
    return int(result.scalar() or 0)


async def apply_referral_code(
    db: AsyncSession,
    referred_user_id: int,
    code: str,
    now: datetime | None = None,
    redis: object | None = None,
) -> Referral:
    """Record that ``referred_user_id`` signed up with ``code`` (tier 1) and reward the referrer."""
    if now is None:
        now = datetime.now(timezone.utc)
    code = normalize_referral_code(code)

    async with deliver_after_commit(db, redis):
        valid, referrer_id = await validate_referral_code(db, code)
        if not valid:
            raise InvalidReferralCodeError("Invalid referral code")
        if referrer_id == referred_user_id:
            raise SelfReferralError("Cannot use your own referral code")
        await get_user(db, referred_user_id)

        existing = await db.execute(
            select(Referral.id).where(Referral.referred_user_id == referred_user_id)
        )
        if existing.scalar_one_or_none() is not None:
            raise DuplicateReferralError("User already used a referral code")

        rewards = REFERRAL_REWARDS["tier1"]
        try:
            async with db.begin_nested():
                referral = Referral(
                    referrer_user_id=referrer_id,
                    referred_user_id=referred_user_id,
                    referral_code=code,
                    status="pending",
                    tier=1,
                    referrer_reward_xp=rewards["referrer_xp"],
                    referrer_reward_credits=rewards["referrer_credits"],
                    referred_reward_xp=0,
                    referred_reward_credits=0,
                    created_at=now,
                    expires_at=now + timedelta(days=get_settings().referral_expiry_days),
                )
                db.add(referral)
                await db.flush()
        except IntegrityError:
            raise DuplicateReferralError("User already used a referral code") from None

        await grant_xp(
            db, referrer_id, rewards["referrer_xp"], "referral_signup",
            description="Referral: a friend signed up",
            reference_id=referral.id,
            reference_type="referral",
        )
        await grant_credits(
            db, referrer_id, rewards["referrer_credits"], "referral_bonus",
            description="Referral: a friend signed up",
            reference_id=referral.id,
            reference_type="referral",
        )
        queue_push(
            db, referrer_id, "referral_signup",
            title="New referral!",
            body=f"A friend joined with your code. +{rewards['referrer_xp']} XP, +{rewards['referrer_credits']} credits",
            data={"referral_id": referral.id, "tier": 1},
            deep_link="goalgpt://referrals",
        )

    logger.info("Referral %s applied: user %s referred by %s", referral.id, referred_user_id, referrer_id)
    return referral


async def promote_to_tier2(
    db: AsyncSession, referred_user_id: int, now: datetime | None = None,
) -> bool:
    """Move the user's pending referral to completed/2 and pay tier-2 rewards.

    Returns False when there is no live pending referral. Does not commit.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    referral = await _find_referral(db, referred_user_id, "pending", now)
    if referral is None:
        return False
    validate_transition(referral.status, "completed")

    rewards = REFERRAL_REWARDS["tier2"]
    referrer_id = referral.referrer_user_id
    referral.status = "completed"
    referral.tier = 2
    referral.referrer_reward_credits += rewards["referrer_credits"]
    referral.referred_reward_credits += rewards["referred_credits"]
    await db.flush()

    await grant_credits(
        db, referrer_id, rewards["referrer_credits"], "referral_bonus",
        description="Referral tier 2: your friend logged in",
        reference_id=referral.id,
        reference_type="referral",
    )
    await grant_credits(
        db, referred_user_id, rewards["referred_credits"], "referral_bonus",
        description="Referral bonus: first login",
        reference_id=referral.id,
        reference_type="referral",
    )
    queue_push(
        db, referrer_id, "referral_tier2",
        title="Your friend is active!",
        body=f"+{rewards['referrer_credits']} credits",
        data={"referral_id": referral.id, "tier": 2},
        deep_link="goalgpt://referrals",
    )

    qualified = await count_qualified_referrals(db, referrer_id)
    await BadgeEngine(db).check_and_unlock(referrer_id, "referrals", qualified)

    logger.info("Referral %s promoted to tier 2", referral.id)
    return True


async def promote_to_tier3(
    db: AsyncSession, referred_user_id: int, now: datetime | None = None,
) -> bool:
    """Move the user's completed referral to rewarded/3 and pay the referrer.

    Returns False when there is no live completed referral (including a
    subscription that arrives before tier 2). Does not commit.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    referral = await _find_referral(db, referred_user_id, "completed", now)
    if referral is None:
        return False
    validate_transition(referral.status, "rewarded")

    rewards = REFERRAL_REWARDS["tier3"]
    referrer_id = referral.referrer_user_id
    referral.status = "rewarded"
    referral.tier = 3
    referral.referred_subscribed_at = now
    referral.reward_claimed_at = now
    referral.referrer_reward_credits += rewards["referrer_credits"]
    await db.flush()

    await grant_credits(
        db, referrer_id, rewards["referrer_credits"], "referral_bonus",
        description="Referral tier 3: your friend subscribed",
        reference_id=referral.id,
        reference_type="referral",
    )
    queue_push(
        db, referrer_id, "referral_tier3",
        title="Your friend subscribed!",
        body=f"+{rewards['referrer_credits']} credits",
        data={"referral_id": referral.id, "tier": 3},
        deep_link="goalgpt://referrals",
    )

    logger.info("Referral %s promoted to tier 3", referral.id)
    return True


async def process_referral_tier2(
    db: AsyncSession,
    referred_user_id: int,
    now: datetime | None = None,
    redis: object | None = None,
) -> bool:
    async with deliver_after_commit(db, redis):
        promoted = await promote_to_tier2(db, referred_user_id, now)
    return promoted


async def process_referral_tier3(
    db: AsyncSession,
    referred_user_id: int,
    now: datetime | None = None,
    redis: object | None = None,
) -> bool:
    async with deliver_after_commit(db, redis):
        promoted = await promote_to_tier3(db, referred_user_id, now)
    return promoted


async def expire_old_referrals(db: AsyncSession, now: datetime | None = None) -> int:
    """Mark pending referrals past their expiry as expired. Returns the number expired."""
    if now is None:
        now = datetime.now(timezone.utc)
    result = await db.execute(
        update(Referral)
        .where(Referral.status == "pending", Referral.expires_at < now)
        .values(status="expired")
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    expired = result.rowcount or 0
    if expired:
        logger.info("Expired %d pending referrals", expired)
    return expired


async def get_referral_stats(db: AsyncSession, user_id: int) -> dict:
    result = await db.execute(
        select(
            func.count(Referral.id),
            func.coalesce(func.sum(case((Referral.tier >= 2, 1), else_=0)), 0),
            func.coalesce(func.sum(case((Referral.tier == 3, 1), else_=0)), 0),
            func.coalesce(func.sum(Referral.referrer_reward_xp), 0),
            func.coalesce(func.sum(Referral.referrer_reward_credits), 0),
        ).where(Referral.referrer_user_id == user_id)
    )
    total, active, subscribed, xp_earned, credits_earned = result.one()
    return {
        "total_referrals": int(total),
        "active_referrals": int(active),
        "subscribed_referrals": int(subscribed),
        "total_xp_earned": int(xp_earned),
        "total_credits_earned": int(credits_earned),
    }


async def get_user_referrals(
    db: AsyncSession, user_id: int, limit: int = 50, offset: int = 0,
) -> list[dict]:
    """Referrals made by ``user_id``, newest first."""
    result = await db.execute(
        select(Referral, User.username, User.display_name)
        .join(User, User.id == Referral.referred_user_id)
        .where(Referral.referrer_user_id == user_id)
        .order_by(Referral.created_at.desc(), Referral.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return [
        {
            "id": ref.id,
            "referral_code": ref.referral_code,
            "status": ref.status,
            "tier": ref.tier,
            "reward_xp": ref.referrer_reward_xp,
            "reward_credits": ref.referrer_reward_credits,
            "referred_username": username,
            "referred_user_name": display_name or username,
            "created_at": ref.created_at,
            "subscribed_at": ref.referred_subscribed_at,
        }
        for ref, username, display_name in result
    ]


async def get_referral_leaderboard(db: AsyncSession, limit: int = 100) -> list[dict]:
    """Referrers ranked by subscribed referrals, then by total referrals."""
    subscribed = func.sum(case((Referral.tier == 3, 1), else_=0))
    total = func.count(Referral.id)
    result = await db.execute(
        select(
            User.id,
            User.username,
            User.display_name,
            total.label("total_referrals"),
            func.sum(case((Referral.tier >= 2, 1), else_=0)).label("active_referrals"),
            subscribed.label("subscribed_referrals"),
            func.sum(Referral.referrer_reward_credits).label("total_credits_earned"),
        )
        .join(Referral, Referral.referrer_user_id == User.id)
        .where(User.deleted_at.is_(None))
        .group_by(User.id, User.username, User.display_name)
        .order_by(subscribed.desc(), total.desc(), User.id.asc())
        .limit(limit)
    )
    return [
        {
            "rank": rank,
            "user_id": row.id,
            "name": row.display_name or row.username,
            "username": row.username,
            "total_referrals": int(row.total_referrals),
            "active_referrals": int(row.active_referrals or 0),
            "subscribed_referrals": int(row.subscribed_referrals or 0),
            "total_credits_earned": int(row.total_credits_earned or 0),
        }
        for rank, row in enumerate(result, start=1)
    ]
