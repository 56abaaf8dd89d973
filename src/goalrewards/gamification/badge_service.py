"""Badge unlock engine with duplicate prevention and reward payout."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from goalrewards.db.models import Badge, User, UserBadge
from goalrewards.errors import AlreadyClaimedError, InvalidArgumentError, NotFoundError
from goalrewards.gamification.conditions import UnlockCondition, parse_condition
from goalrewards.gamification.credits_service import grant_credits
from goalrewards.gamification.ledger import Granter
from goalrewards.gamification.notification_push import push_mark, queue_push, truncate_pushes
from goalrewards.gamification.xp_service import grant_xp

logger = logging.getLogger(__name__)

XPGranter = Granter
CreditsGranter = Granter

BADGE_CATEGORIES = ("achievement", "milestone", "special", "seasonal")
BADGE_RARITIES = ("common", "rare", "epic", "legendary")


@dataclass(frozen=True)
class UnlockResult:
    badge: Badge
    user_badge: UserBadge | None
    already_unlocked: bool
    xp_awarded: int = 0
    credits_awarded: int = 0


async def get_all_badges(
    db: AsyncSession, category: str | None = None, rarity: str | None = None,
) -> list[Badge]:
    """Active catalog, in display order."""
    query = select(Badge).where(Badge.is_active.is_(True), Badge.deleted_at.is_(None))
    if category is not None:
        query = query.where(Badge.category == category)
    if rarity is not None:
        query = query.where(Badge.rarity == rarity)
    result = await db.execute(query.order_by(Badge.display_order.asc(), Badge.id.asc()))
    return list(result.scalars().all())


async def get_badge_by_slug(db: AsyncSession, slug: str) -> Badge | None:
    """Fetch an active, non-deleted badge by slug."""
    result = await db.execute(
        select(Badge).where(
            Badge.slug == slug,
            Badge.is_active.is_(True),
            Badge.deleted_at.is_(None),
        )
    )
    return result.scalar_one_or_none()


async def get_user_badge(db: AsyncSession, user_id: int, badge_id: int) -> UserBadge | None:
    result = await db.execute(
        select(UserBadge).where(
            UserBadge.user_id == user_id,
            UserBadge.badge_id == badge_id,
        )
    )
    return result.unique().scalar_one_or_none()


async def has_badge(db: AsyncSession, user_id: int, badge_id: int) -> bool:
    """Check if user already has a specific badge."""
    return await get_user_badge(db, user_id, badge_id) is not None


async def get_user_badges(db: AsyncSession, user_id: int) -> list[UserBadge]:
    """Badges held by a user, most recent first."""
    result = await db.execute(
        select(UserBadge)
        .join(Badge, Badge.id == UserBadge.badge_id)
        .where(UserBadge.user_id == user_id, Badge.deleted_at.is_(None))
        .order_by(UserBadge.unlocked_at.desc(), UserBadge.id.desc())
    )
    return list(result.unique().scalars().all())


async def get_badge_stats(db: AsyncSession) -> dict:
    """Catalog-wide counts by activity, category and rarity."""
    columns = [
        func.count(Badge.id).label("total_badges"),
        func.coalesce(func.sum(case((Badge.is_active.is_(True), 1), else_=0)), 0).label("active_badges"),
        func.coalesce(func.sum(Badge.total_unlocks), 0).label("total_unlocks"),
    ]
    for category in BADGE_CATEGORIES:
        columns.append(
            func.coalesce(func.sum(case((Badge.category == category, 1), else_=0)), 0)
            .label(f"{category}_badges")
        )
    for rarity in BADGE_RARITIES:
        columns.append(
            func.coalesce(func.sum(case((Badge.rarity == rarity, 1), else_=0)), 0)
            .label(f"{rarity}_badges")
        )

    result = await db.execute(select(*columns).where(Badge.deleted_at.is_(None)))
    return {key: int(value) for key, value in result.one()._mapping.items()}


async def get_badge_leaderboard(db: AsyncSession, limit: int = 100) -> list[dict]:
    """Users ranked by number of badges held."""
    badge_count = func.count(UserBadge.id)
    result = await db.execute(
        select(
            User.id,
            User.username,
            User.display_name,
            badge_count.label("badge_count"),
            func.sum(case((UserBadge.claimed_at.is_not(None), 1), else_=0)).label("claimed_count"),
            func.max(UserBadge.unlocked_at).label("last_badge_unlocked"),
        )
        .join(UserBadge, UserBadge.user_id == User.id)
        .where(User.deleted_at.is_(None))
        .group_by(User.id, User.username, User.display_name)
        .order_by(badge_count.desc(), User.id.asc())
        .limit(limit)
    )
    return [
        {
            "rank": rank,
            "user_id": row.id,
            "name": row.display_name or row.username,
            "username": row.username,
            "badge_count": int(row.badge_count),
            "claimed_count": int(row.claimed_count or 0),
            "last_badge_unlocked": row.last_badge_unlocked,
        }
        for rank, row in enumerate(result, start=1)
    ]


class BadgeEngine:
    """Evaluates unlock conditions and pays badge rewards.

    The XP and credits ledgers are injected so tests and callers can swap the
    reward side. Unlocks run inside a SAVEPOINT of the caller's transaction;
    committing is the caller's job.
    """

    def __init__(
        self,
        db: AsyncSession,
        xp: XPGranter = grant_xp,
        credits: CreditsGranter = grant_credits,
    ) -> None:
        self.db = db
        self.xp = xp
        self.credits = credits

    async def unlock(
        self,
        user_id: int,
        slug: str,
        metadata: dict | None = None,
    ) -> UnlockResult:
        """Unlock a badge for a user and pay its rewards.

        Handles:
        1. Insert into user_badges (UNIQUE(user_id, badge_id))
        2. Increment the catalog's total_unlocks
        3. Grant reward_xp and reward_credits, referencing the user_badge id
        4. Queue a badge push

        Already-held badges return ``already_unlocked=True`` without rewards.
        """
        badge = await get_badge_by_slug(self.db, slug)
        if badge is None:
            raise NotFoundError(f"Badge not found: {slug}")

        existing = await get_user_badge(self.db, user_id, badge.id)
        if existing is not None:
            return UnlockResult(badge=badge, user_badge=existing, already_unlocked=True)

        badge_id = badge.id
        reward_xp = badge.reward_xp
        reward_credits = badge.reward_credits
        badge_name = badge.name

        mark = push_mark(self.db)
        try:
            async with self.db.begin_nested():
                user_badge = UserBadge(
                    user_id=user_id,
                    badge_id=badge_id,
                    unlocked_at=datetime.now(timezone.utc),
                    is_displayed=False,
                    badge_metadata=metadata or {},
                )
                self.db.add(user_badge)
                await self.db.flush()

                await self.db.execute(
                    update(Badge)
                    .where(Badge.id == badge_id)
                    .values(total_unlocks=Badge.total_unlocks + 1)
                    .execution_options(synchronize_session=False)
                )

                if reward_xp > 0:
                    await self.xp(
                        self.db, user_id, reward_xp, "badge_unlock",
                        description=f"Badge unlocked: {badge_name}",
                        reference_id=user_badge.id,
                        reference_type="badge",
                    )
                if reward_credits > 0:
                    await self.credits(
                        self.db, user_id, reward_credits, "badge_reward",
                        description=f"Badge reward: {badge_name}",
                        reference_id=user_badge.id,
                        reference_type="badge",
                    )

                queue_push(
                    self.db, user_id, "badge_unlocked",
                    title="Badge Unlocked!",
                    body=badge_name,
                    data={"slug": slug, "xp": reward_xp, "credits": reward_credits},
                    deep_link="goalgpt://profile/badges",
                )
        except IntegrityError:
            # Race condition: another transaction inserted the same badge
            truncate_pushes(self.db, mark)
            existing = await get_user_badge(self.db, user_id, badge_id)
            return UnlockResult(badge=badge, user_badge=existing, already_unlocked=True)
        except Exception:
            truncate_pushes(self.db, mark)
            raise

        logger.info("User %s unlocked badge %s (+%d XP, +%d credits)", user_id, slug, reward_xp, reward_credits)
        return UnlockResult(
            badge=badge,
            user_badge=user_badge,
            already_unlocked=False,
            xp_awarded=reward_xp,
            credits_awarded=reward_credits,
        )

    async def check_and_unlock(self, user_id: int, condition_type: str, value: object) -> list[UnlockResult]:
        """Unlock every active badge of ``condition_type`` that ``value`` satisfies.

        A badge that fails to unlock is logged and skipped; its savepoint has
        already been rolled back, so the rest of the scan is unaffected.
        """
        result = await self.db.execute(
            select(Badge).where(Badge.is_active.is_(True), Badge.deleted_at.is_(None))
        )
        candidates: list[tuple[int, str, UnlockCondition]] = []
        for badge in result.scalars():
            if (badge.unlock_condition or {}).get("type") != condition_type:
                continue
            try:
                condition = parse_condition(badge.unlock_condition)
            except InvalidArgumentError:
                logger.warning("Skipping badge %s: malformed unlock condition", badge.slug)
                continue
            candidates.append((badge.id, badge.slug, condition))

        if not candidates:
            return []

        held = await self.db.execute(
            select(UserBadge.badge_id).where(UserBadge.user_id == user_id)
        )
        held_ids = set(held.scalars())

        unlocked: list[UnlockResult] = []
        for badge_id, slug, condition in candidates:
            if badge_id in held_ids or not condition.is_satisfied(value):
                continue
            try:
                outcome = await self.unlock(user_id, slug, {"condition_type": condition_type})
            except Exception:
                logger.exception("Failed to unlock badge %s for user %s", slug, user_id)
                continue
            if not outcome.already_unlocked:
                unlocked.append(outcome)
        return unlocked

    async def claim(self, user_id: int, badge_id: int) -> UserBadge:
        """Mark a held badge as claimed. Claiming is a one-time acknowledgement."""
        user_badge = await get_user_badge(self.db, user_id, badge_id)
        if user_badge is None:
            raise NotFoundError("Badge not found or not unlocked")
        if user_badge.claimed_at is not None:
            raise AlreadyClaimedError("Badge already claimed")

        user_badge.claimed_at = datetime.now(timezone.utc)
        await self.db.flush()
        return user_badge

    async def set_displayed(self, user_id: int, badge_id: int, is_displayed: bool) -> UserBadge:
        """Show or hide a held badge on the user's profile."""
        user_badge = await get_user_badge(self.db, user_id, badge_id)
        if user_badge is None:
            raise NotFoundError("Badge not found or not unlocked")

        user_badge.is_displayed = is_displayed
        await self.db.flush()
        return user_badge
