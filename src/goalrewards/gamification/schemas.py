"""Pydantic request and response models for reward endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

# --- Levels / XP ---


class LevelEntry(BaseModel):
    level: str
    name: str
    min_xp: int
    max_xp: int | None
    level_up_credits: int


class AllLevelsResponse(BaseModel):
    levels: list[LevelEntry]


class XPResponse(BaseModel):
    xp_points: int
    level: str
    level_name: str
    level_progress: float
    total_earned: int
    current_streak: int
    longest_streak: int
    last_activity_date: date | None = None
    next_level_xp: int | None = None
    achievements_count: int


class LedgerEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: int
    kind: str
    description: str | None = None
    reference_id: str | None = None
    reference_type: str | None = None
    balance_before: int
    balance_after: int
    created_at: datetime


class LedgerHistoryResponse(BaseModel):
    transactions: list[LedgerEntryResponse]
    limit: int
    offset: int


# --- Credits ---


class CreditsResponse(BaseModel):
    balance: int
    lifetime_earned: int
    lifetime_spent: int


class DailyCreditStatsResponse(BaseModel):
    earned_today: int
    spent_today: int
    ads_watched_today: int
    ads_remaining_today: int


class AdRewardRequest(BaseModel):
    ad_network: str = Field(min_length=1, max_length=32)
    ad_unit_id: str = Field(min_length=1, max_length=128)
    ad_type: str = Field(default="rewarded", max_length=32)
    device_id: str | None = None


class AdRewardResponse(BaseModel):
    success: bool
    credits: int
    daily_count: int
    daily_limit: int


class SpendCreditsRequest(BaseModel):
    amount: int = Field(gt=0)
    kind: str = "prediction_purchase"
    description: str | None = None
    reference_id: str | None = None


class BalanceChangeResponse(BaseModel):
    old_balance: int
    new_balance: int
    transaction_id: int


# --- Badges ---


class BadgeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    slug: str
    name: str
    description: str
    icon_url: str | None = None
    category: str
    rarity: str
    unlock_condition: dict
    reward_xp: int
    reward_credits: int
    reward_vip_days: int
    total_unlocks: int
    display_order: int


class AllBadgesResponse(BaseModel):
    badges: list[BadgeResponse]


class UserBadgeResponse(BaseModel):
    badge: BadgeResponse
    unlocked_at: datetime
    claimed_at: datetime | None = None
    is_displayed: bool
    metadata: dict = {}


class UserBadgesResponse(BaseModel):
    badges: list[UserBadgeResponse]
    total_unlocked: int


class DisplayBadgeRequest(BaseModel):
    is_displayed: bool


class UnlockResponse(BaseModel):
    slug: str
    already_unlocked: bool
    xp_awarded: int
    credits_awarded: int


# --- Daily rewards ---


class DailyRewardEntry(BaseModel):
    day: int
    credits: int
    xp: int
    type: str
    is_jackpot: bool = False


class DailyRewardStatusResponse(BaseModel):
    can_claim: bool
    current_day: int
    next_reward: DailyRewardEntry
    last_claim_date: date | None = None
    streak: int
    claimed_today: bool


class DailyClaimResponse(BaseModel):
    day: int
    credits: int
    xp: int
    reward_type: str
    is_jackpot: bool
    leveled_up: bool
    new_level: str
    message: str


class DailyClaimHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    reward_date: date
    day_number: int
    reward_type: str
    reward_amount: int
    reward_xp: int
    claimed_at: datetime


# --- Referrals ---


class ReferralCodeResponse(BaseModel):
    code: str


class ApplyReferralRequest(BaseModel):
    code: str = Field(min_length=1, max_length=16)


class ReferralResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    referral_code: str
    status: str
    tier: int
    created_at: datetime
    expires_at: datetime


class ReferralStatsResponse(BaseModel):
    total_referrals: int
    active_referrals: int
    subscribed_referrals: int
    total_xp_earned: int
    total_credits_earned: int


class ReferralListEntry(BaseModel):
    id: int
    referral_code: str
    status: str
    tier: int
    reward_xp: int
    reward_credits: int
    referred_username: str
    referred_user_name: str
    created_at: datetime
    subscribed_at: datetime | None = None


# --- Admin ---


class AdminAdjustRequest(BaseModel):
    amount: int
    reason: str = Field(min_length=1, max_length=200)
