"""Referral program and leaderboard aggregate tables.

Creates referrals, referral_activity_log, referral_earnings, user_wallet,
withdrawal_requests and leaderboard_aggregates. Upstream tables
(subscriptions, user_roles, user_stars, achievement_posts, post_reactions,
user_daily_activity) belong to other LifeHub services.

Revision ID: 001_referral_tables
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_referral_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Referral edges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS referrals (
            id BIGSERIAL PRIMARY KEY,
            referrer_id VARCHAR(64) NOT NULL,
            referred_id VARCHAR(64) NOT NULL UNIQUE,
            is_active BOOLEAN NOT NULL DEFAULT false,
            activated_at TIMESTAMPTZ,
            active_days INTEGER NOT NULL DEFAULT 0,
            total_time_minutes INTEGER NOT NULL DEFAULT 0,
            referred_has_paid BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CHECK (referrer_id <> referred_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_referrals_referrer_id
        ON referrals(referrer_id)
    """)

    # --- Daily activity log ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS referral_activity_log (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            activity_date DATE NOT NULL,
            time_spent_minutes INTEGER NOT NULL DEFAULT 0 CHECK (time_spent_minutes >= 0),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_referral_activity_user_date UNIQUE (user_id, activity_date)
        )
    """)

    # --- Earnings audit log ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS referral_earnings (
            id BIGSERIAL PRIMARY KEY,
            referrer_id VARCHAR(64) NOT NULL,
            referred_id VARCHAR(64),
            earning_type VARCHAR(32) NOT NULL,
            bonus_weeks INTEGER,
            amount_rub NUMERIC(12, 2),
            commission_percent INTEGER,
            milestone_type VARCHAR(32),
            milestone_bonus_rub NUMERIC(12, 2),
            payment_id VARCHAR(128),
            idempotency_key VARCHAR(256) NOT NULL UNIQUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_referral_earnings_referrer_id
        ON referral_earnings(referrer_id, created_at DESC)
    """)

    # --- Wallet ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_wallet (
            user_id VARCHAR(64) PRIMARY KEY,
            balance_rub NUMERIC(12, 2) NOT NULL DEFAULT 0 CHECK (balance_rub >= 0),
            bonus_weeks_earned INTEGER NOT NULL DEFAULT 0,
            total_earned_rub NUMERIC(12, 2) NOT NULL DEFAULT 0,
            total_withdrawn_rub NUMERIC(12, 2) NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Withdrawals ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS withdrawal_requests (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            amount_rub NUMERIC(12, 2) NOT NULL CHECK (amount_rub > 0),
            withdrawal_type VARCHAR(16) NOT NULL
                CHECK (withdrawal_type IN ('cash', 'subscription', 'gift')),
            status VARCHAR(16) NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'completed', 'rejected')),
            applied_multiplier NUMERIC(4, 2),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            processed_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_withdrawal_requests_user_id
        ON withdrawal_requests(user_id, created_at DESC)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_withdrawal_requests_pending
        ON withdrawal_requests(created_at)
        WHERE status = 'pending'
    """)

    # --- Leaderboard aggregates ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS leaderboard_aggregates (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            period_type VARCHAR(16) NOT NULL
                CHECK (period_type IN ('daily', 'monthly', 'yearly', 'all')),
            period_key VARCHAR(16) NOT NULL,
            total_stars INTEGER NOT NULL DEFAULT 0,
            total_likes INTEGER NOT NULL DEFAULT 0,
            total_activity_score INTEGER NOT NULL DEFAULT 0,
            habits_completed INTEGER NOT NULL DEFAULT 0,
            tasks_completed INTEGER NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ NOT NULL,
            CONSTRAINT uq_leaderboard_aggregates_user_period UNIQUE (user_id, period_type, period_key)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_leaderboard_aggregates_period
        ON leaderboard_aggregates(period_type, period_key)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS leaderboard_aggregates CASCADE")
    op.execute("DROP TABLE IF EXISTS withdrawal_requests CASCADE")
    op.execute("DROP TABLE IF EXISTS user_wallet CASCADE")
    op.execute("DROP TABLE IF EXISTS referral_earnings CASCADE")
    op.execute("DROP TABLE IF EXISTS referral_activity_log CASCADE")
    op.execute("DROP TABLE IF EXISTS referrals CASCADE")
