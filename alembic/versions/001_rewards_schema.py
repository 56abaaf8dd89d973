"""Reward engine schema.

Creates users, the XP and credits ledgers, badges, daily reward claims,
referrals, activity counters, ad views and job execution logs.

Revision ID: 001_rewards_schema
Revises:
Create Date: 2026-10-17
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_rewards_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id BIGSERIAL PRIMARY KEY,
            username VARCHAR(64) UNIQUE NOT NULL,
            display_name VARCHAR(128),
            referral_code VARCHAR(16) UNIQUE,
            role VARCHAR(16) NOT NULL DEFAULT 'user',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            first_login_at TIMESTAMPTZ,
            last_login TIMESTAMPTZ,
            login_count INTEGER NOT NULL DEFAULT 0,
            subscription_started_at TIMESTAMPTZ,
            deleted_at TIMESTAMPTZ
        )
    """)

    # --- XP ledger ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_xp (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT UNIQUE NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            balance INTEGER NOT NULL DEFAULT 0,
            lifetime_earned INTEGER NOT NULL DEFAULT 0,
            level VARCHAR(16) NOT NULL DEFAULT 'bronze',
            level_progress DOUBLE PRECISION NOT NULL DEFAULT 0,
            next_level_xp INTEGER DEFAULT 500,
            achievements_count INTEGER NOT NULL DEFAULT 0,
            current_streak_days INTEGER NOT NULL DEFAULT 0,
            longest_streak_days INTEGER NOT NULL DEFAULT 0,
            last_activity_date DATE,
            updated_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_xp_balance
        ON user_xp(balance DESC)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS xp_transactions (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            amount INTEGER NOT NULL,
            kind VARCHAR(32) NOT NULL,
            description VARCHAR(256),
            reference_id VARCHAR(64),
            reference_type VARCHAR(32),
            balance_before INTEGER NOT NULL,
            balance_after INTEGER NOT NULL,
            metadata JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CHECK (balance_after = balance_before + amount)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_xp_transactions_user
        ON xp_transactions(user_id, created_at DESC)
    """)

    # --- Credits ledger ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_credits (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT UNIQUE NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            balance INTEGER NOT NULL DEFAULT 0 CHECK (balance >= 0),
            lifetime_earned INTEGER NOT NULL DEFAULT 0,
            lifetime_spent INTEGER NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS credit_transactions (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            amount INTEGER NOT NULL,
            kind VARCHAR(32) NOT NULL,
            description VARCHAR(256),
            reference_id VARCHAR(64),
            reference_type VARCHAR(32),
            balance_before INTEGER NOT NULL,
            balance_after INTEGER NOT NULL,
            metadata JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CHECK (balance_after = balance_before + amount)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_credit_transactions_user
        ON credit_transactions(user_id, created_at DESC)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_credit_transactions_kind
        ON credit_transactions(user_id, kind, created_at)
    """)

    # --- Badges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS badges (
            id SERIAL PRIMARY KEY,
            slug VARCHAR(64) UNIQUE NOT NULL,
            name VARCHAR(128) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            icon_url VARCHAR(256),
            category VARCHAR(32) NOT NULL,
            rarity VARCHAR(16) NOT NULL,
            unlock_condition JSONB NOT NULL DEFAULT '{}',
            reward_xp INTEGER NOT NULL DEFAULT 0,
            reward_credits INTEGER NOT NULL DEFAULT 0,
            reward_vip_days INTEGER NOT NULL DEFAULT 0,
            total_unlocks INTEGER NOT NULL DEFAULT 0,
            display_order INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ,
            deleted_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_badges_category
        ON badges(category)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_badges (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            badge_id INTEGER NOT NULL REFERENCES badges(id),
            unlocked_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            claimed_at TIMESTAMPTZ,
            is_displayed BOOLEAN NOT NULL DEFAULT false,
            metadata JSONB NOT NULL DEFAULT '{}',
            CONSTRAINT user_badges_user_id_badge_id_key UNIQUE (user_id, badge_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_badges_user
        ON user_badges(user_id)
    """)

    # --- Daily rewards ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS daily_reward_claims (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            reward_date DATE NOT NULL,
            day_number INTEGER NOT NULL CHECK (day_number BETWEEN 1 AND 7),
            reward_type VARCHAR(16) NOT NULL,
            reward_amount INTEGER NOT NULL,
            reward_xp INTEGER NOT NULL,
            claimed_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT daily_reward_claims_user_id_reward_date_key UNIQUE (user_id, reward_date)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_daily_reward_claims_user
        ON daily_reward_claims(user_id, reward_date DESC)
    """)

    # --- Referrals ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS referrals (
            id BIGSERIAL PRIMARY KEY,
            referrer_user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            referred_user_id BIGINT UNIQUE NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            referral_code VARCHAR(16) NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'pending',
            tier INTEGER NOT NULL DEFAULT 1 CHECK (tier BETWEEN 1 AND 3),
            referrer_reward_xp INTEGER NOT NULL DEFAULT 0,
            referrer_reward_credits INTEGER NOT NULL DEFAULT 0,
            referred_reward_xp INTEGER NOT NULL DEFAULT 0,
            referred_reward_credits INTEGER NOT NULL DEFAULT 0,
            referred_subscribed_at TIMESTAMPTZ,
            reward_claimed_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            expires_at TIMESTAMPTZ NOT NULL,
            CHECK (referrer_user_id <> referred_user_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_referrals_referrer
        ON referrals(referrer_user_id, created_at DESC)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_referrals_status
        ON referrals(status, expires_at)
    """)

    # --- Activity counters ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_activity_stats (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT UNIQUE NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            predictions_total INTEGER NOT NULL DEFAULT 0,
            predictions_correct INTEGER NOT NULL DEFAULT 0,
            comments_count INTEGER NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ
        )
    """)

    # --- Ads ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS ad_views (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            ad_network VARCHAR(32) NOT NULL,
            ad_unit_id VARCHAR(128) NOT NULL,
            ad_type VARCHAR(32) NOT NULL,
            device_id VARCHAR(128),
            reward_amount INTEGER NOT NULL,
            reward_granted BOOLEAN NOT NULL DEFAULT true,
            completed_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_ad_views_user
        ON ad_views(user_id, completed_at)
    """)

    # --- Job logs ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS job_execution_logs (
            id BIGSERIAL PRIMARY KEY,
            job_name VARCHAR(64) NOT NULL,
            started_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            completed_at TIMESTAMPTZ,
            status VARCHAR(16) NOT NULL DEFAULT 'running',
            items_processed INTEGER NOT NULL DEFAULT 0,
            error_message TEXT,
            duration_ms INTEGER
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_job_execution_logs_name
        ON job_execution_logs(job_name, started_at DESC)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS job_execution_logs CASCADE")
    op.execute("DROP TABLE IF EXISTS ad_views CASCADE")
    op.execute("DROP TABLE IF EXISTS user_activity_stats CASCADE")
    op.execute("DROP TABLE IF EXISTS referrals CASCADE")
    op.execute("DROP TABLE IF EXISTS daily_reward_claims CASCADE")
    op.execute("DROP TABLE IF EXISTS user_badges CASCADE")
    op.execute("DROP TABLE IF EXISTS badges CASCADE")
    op.execute("DROP TABLE IF EXISTS credit_transactions CASCADE")
    op.execute("DROP TABLE IF EXISTS user_credits CASCADE")
    op.execute("DROP TABLE IF EXISTS xp_transactions CASCADE")
    op.execute("DROP TABLE IF EXISTS user_xp CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
