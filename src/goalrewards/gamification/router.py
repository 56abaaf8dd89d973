"""Reward API endpoints under /api/v1."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from goalrewards.auth.dependencies import CurrentUser, get_current_user, require_admin
from goalrewards.database import get_session
from goalrewards.errors import InvalidArgumentError, NotFoundError
from goalrewards.gamification import (
    badge_service,
    credits_service,
    daily_rewards,
    referral_service,
    xp_service,
)
from goalrewards.gamification.badge_service import BadgeEngine
from goalrewards.gamification.levels import LEVEL_UP_CREDITS, LEVELS
from goalrewards.gamification.notification_push import deliver_after_commit
from goalrewards.gamification.schemas import (
    AdminAdjustRequest,
    AdRewardRequest,
    AdRewardResponse,
    AllBadgesResponse,
    AllLevelsResponse,
    ApplyReferralRequest,
    BadgeResponse,
    BalanceChangeResponse,
    CreditsResponse,
    DailyClaimHistoryEntry,
    DailyClaimResponse,
    DailyCreditStatsResponse,
    DailyRewardEntry,
    DailyRewardStatusResponse,
    DisplayBadgeRequest,
    LedgerEntryResponse,
    LedgerHistoryResponse,
    LevelEntry,
    ReferralCodeResponse,
    ReferralListEntry,
    ReferralResponse,
    ReferralStatsResponse,
    SpendCreditsRequest,
    UnlockResponse,
    UserBadgeResponse,
    UserBadgesResponse,
    XPResponse,
)
from goalrewards.redis_client import get_redis

router = APIRouter(prefix="/api/v1", tags=["Rewards"])
admin_router = APIRouter(prefix="/api/v1/admin", tags=["Rewards admin"])

SPENDABLE_KINDS = {"prediction_purchase", "purchase"}


def _user_badge_response(user_badge, badge) -> UserBadgeResponse:  # noqa: ANN001
    return UserBadgeResponse(
        badge=BadgeResponse.model_validate(badge),
        unlocked_at=user_badge.unlocked_at,
        claimed_at=user_badge.claimed_at,
        is_displayed=user_badge.is_displayed,
        metadata=user_badge.badge_metadata or {},
    )


# ── Levels / XP ──


@router.get("/levels", response_model=AllLevelsResponse)
async def list_levels():
    """The level ladder with XP ranges and level-up credits."""
    return AllLevelsResponse(levels=[
        LevelEntry(
            level=entry["level"],
            name=entry["name"],
            min_xp=entry["min"],
            max_xp=entry["max"],
            level_up_credits=LEVEL_UP_CREDITS[entry["level"]],
        )
        for entry in LEVELS
    ])


@router.get("/me/xp", response_model=XPResponse)
async def my_xp(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    data = await xp_service.get_user_xp(db, user.id)
    if data is None:
        raise NotFoundError("XP balance not found")
    return XPResponse(**data)


@router.get("/me/xp/history", response_model=LedgerHistoryResponse)
async def my_xp_history(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    rows = await xp_service.get_xp_transactions(db, user.id, limit, offset)
    return LedgerHistoryResponse(
        transactions=[LedgerEntryResponse.model_validate(r) for r in rows],
        limit=limit,
        offset=offset,
    )


# ── Credits ──


@router.get("/me/credits", response_model=CreditsResponse)
async def my_credits(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    data = await credits_service.get_user_credits(db, user.id)
    if data is None:
        raise NotFoundError("Credits balance not found")
    return CreditsResponse(**data)


@router.get("/me/credits/history", response_model=LedgerHistoryResponse)
async def my_credits_history(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    rows = await credits_service.get_credit_transactions(db, user.id, limit, offset)
    return LedgerHistoryResponse(
        transactions=[LedgerEntryResponse.model_validate(r) for r in rows],
        limit=limit,
        offset=offset,
    )


@router.get("/me/credits/daily-stats", response_model=DailyCreditStatsResponse)
async def my_daily_credit_stats(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    return DailyCreditStatsResponse(**await credits_service.get_daily_credit_stats(db, user.id))


@router.post("/me/credits/ad-reward", response_model=AdRewardResponse)
async def claim_ad_reward(
    body: AdRewardRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Credit a completed rewarded ad (daily limit applies)."""
    async with deliver_after_commit(db, get_redis()):
        result = await credits_service.process_ad_reward(
            db, user.id, body.ad_network, body.ad_unit_id, body.ad_type, body.device_id,
        )
    return AdRewardResponse(
        success=result.success,
        credits=result.credits,
        daily_count=result.daily_count,
        daily_limit=result.daily_limit,
    )


@router.post("/me/credits/spend", response_model=BalanceChangeResponse)
async def spend_my_credits(
    body: SpendCreditsRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    if body.kind not in SPENDABLE_KINDS:
        raise InvalidArgumentError(f"Credits cannot be spent as '{body.kind}'")
    async with deliver_after_commit(db, get_redis()):
        entry = await credits_service.spend_credits(
            db, user.id, body.amount, body.kind,
            description=body.description,
            reference_id=body.reference_id,
            reference_type=body.kind,
        )
    return BalanceChangeResponse(
        old_balance=entry.old_balance,
        new_balance=entry.new_balance,
        transaction_id=entry.transaction_id,
    )


# ── Badges ──


@router.get("/badges", response_model=AllBadgesResponse)
async def list_badges(
    category: str | None = None,
    rarity: str | None = None,
    db: AsyncSession = Depends(get_session),
):
    """Active badge catalog, optionally filtered."""
    badges = await badge_service.get_all_badges(db, category, rarity)
    return AllBadgesResponse(badges=[BadgeResponse.model_validate(b) for b in badges])


@router.get("/badges/{slug}", response_model=BadgeResponse)
async def get_badge(slug: str, db: AsyncSession = Depends(get_session)):
    badge = await badge_service.get_badge_by_slug(db, slug)
    if badge is None:
        raise NotFoundError(f"Badge not found: {slug}")
    return BadgeResponse.model_validate(badge)


@router.get("/me/badges", response_model=UserBadgesResponse)
async def my_badges(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    held = await badge_service.get_user_badges(db, user.id)
    return UserBadgesResponse(
        badges=[_user_badge_response(ub, ub.badge) for ub in held],
        total_unlocked=len(held),
    )


@router.post("/me/badges/{badge_id}/claim", response_model=UserBadgeResponse)
async def claim_badge(
    badge_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    async with deliver_after_commit(db, get_redis()):
        user_badge = await BadgeEngine(db).claim(user.id, badge_id)
    return _user_badge_response(user_badge, user_badge.badge)


@router.patch("/me/badges/{badge_id}/display", response_model=UserBadgeResponse)
async def display_badge(
    badge_id: int,
    body: DisplayBadgeRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    async with deliver_after_commit(db, get_redis()):
        user_badge = await BadgeEngine(db).set_displayed(user.id, badge_id, body.is_displayed)
    return _user_badge_response(user_badge, user_badge.badge)


# ── Daily rewards ──


@router.get("/daily-rewards/status", response_model=DailyRewardStatusResponse)
async def daily_reward_status(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    status = await daily_rewards.get_daily_reward_status(db, user.id)
    return DailyRewardStatusResponse(
        **{**status, "next_reward": DailyRewardEntry(**status["next_reward"])},
    )


@router.post("/daily-rewards/claim", response_model=DailyClaimResponse)
async def claim_daily_reward(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    result = await daily_rewards.claim_daily_reward(db, user.id, redis=get_redis())
    return DailyClaimResponse(
        day=result.day,
        credits=result.credits,
        xp=result.xp,
        reward_type=result.reward_type,
        is_jackpot=result.is_jackpot,
        leveled_up=result.leveled_up,
        new_level=result.new_level,
        message=result.message,
    )


@router.get("/daily-rewards/calendar", response_model=list[DailyRewardEntry])
async def daily_reward_calendar():
    return [DailyRewardEntry(**entry) for entry in daily_rewards.get_daily_reward_calendar()]


@router.get("/daily-rewards/history", response_model=list[DailyClaimHistoryEntry])
async def daily_reward_history(
    limit: int = Query(30, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    rows = await daily_rewards.get_daily_reward_history(db, user.id, limit)
    return [DailyClaimHistoryEntry.model_validate(r) for r in rows]


# ── Referrals ──


@router.get("/referrals/code", response_model=ReferralCodeResponse)
async def my_referral_code(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    async with deliver_after_commit(db, get_redis()):
        code = await referral_service.get_or_create_referral_code(db, user.id)
    return ReferralCodeResponse(code=code)


@router.post("/referrals/apply", response_model=ReferralResponse, status_code=201)
async def apply_referral(
    body: ApplyReferralRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    referral = await referral_service.apply_referral_code(db, user.id, body.code, redis=get_redis())
    return ReferralResponse.model_validate(referral)


@router.get("/referrals/stats", response_model=ReferralStatsResponse)
async def my_referral_stats(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    return ReferralStatsResponse(**await referral_service.get_referral_stats(db, user.id))


@router.get("/referrals", response_model=list[ReferralListEntry])
async def my_referrals(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    rows = await referral_service.get_user_referrals(db, user.id, limit, offset)
    return [ReferralListEntry(**row) for row in rows]


# ── Leaderboards ──


@router.get("/leaderboards/xp")
async def xp_leaderboard(
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_session),
) -> list[dict]:
    return await xp_service.get_xp_leaderboard(db, limit)


@router.get("/leaderboards/badges")
async def badge_leaderboard(
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_session),
) -> list[dict]:
    return await badge_service.get_badge_leaderboard(db, limit)


@router.get("/leaderboards/referrals")
async def referral_leaderboard(
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_session),
) -> list[dict]:
    return await referral_service.get_referral_leaderboard(db, limit)


# ── Admin ──


@admin_router.post("/users/{user_id}/xp", response_model=BalanceChangeResponse)
async def admin_adjust_xp(
    user_id: int,
    body: AdminAdjustRequest,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    """Grant (positive) or deduct (negative) XP."""
    kind = "admin_grant" if body.amount > 0 else "admin_deduct"
    async with deliver_after_commit(db, get_redis()):
        result = await xp_service.grant_xp(
            db, user_id, body.amount, kind,
            description=body.reason,
            metadata={"admin_id": admin.id},
        )
    return BalanceChangeResponse(
        old_balance=result.old_xp,
        new_balance=result.new_xp,
        transaction_id=result.transaction_id,
    )


@admin_router.post("/users/{user_id}/credits", response_model=BalanceChangeResponse)
async def admin_adjust_credits(
    user_id: int,
    body: AdminAdjustRequest,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    """Grant (positive) or deduct (negative) credits. Deductions cannot overdraw."""
    async with deliver_after_commit(db, get_redis()):
        if body.amount < 0:
            entry = await credits_service.spend_credits(
                db, user_id, -body.amount, "admin_deduct",
                description=body.reason,
                metadata={"admin_id": admin.id},
            )
        else:
            entry = await credits_service.grant_credits(
                db, user_id, body.amount, "admin_grant",
                description=body.reason,
                metadata={"admin_id": admin.id},
            )
    return BalanceChangeResponse(
        old_balance=entry.old_balance,
        new_balance=entry.new_balance,
        transaction_id=entry.transaction_id,
    )


@admin_router.post("/users/{user_id}/badges/{slug}", response_model=UnlockResponse)
async def admin_unlock_badge(
    user_id: int,
    slug: str,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    """Unlock a badge by hand (used for manual badges). A badge already held reports ``already_unlocked``."""
    async with deliver_after_commit(db, get_redis()):
        result = await BadgeEngine(db).unlock(user_id, slug, {"granted_by": admin.id})
    return UnlockResponse(
        slug=slug,
        already_unlocked=result.already_unlocked,
        xp_awarded=result.xp_awarded,
        credits_awarded=result.credits_awarded,
    )


@admin_router.get("/stats")
async def admin_stats(
    _admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Dashboard numbers for badges and daily rewards."""
    return {
        "badges": await badge_service.get_badge_stats(db),
        "daily_rewards": await daily_rewards.get_daily_reward_stats(db),
    }
