"""ORM models for the referral rewards engine and leaderboard aggregates.

Tables owned by this service are created by Alembic migration
001_referral_tables. Upstream tables (subscriptions, roles, stars, posts,
reactions, daily activity) are written by other LifeHub services and are
only read here; their models exist so queries stay typed.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from lifehub.db.base import Base

# BIGINT ids in PostgreSQL; SQLite only auto-increments INTEGER primary keys.
BigIntId = BigInteger().with_variant(Integer(), "sqlite")

# Opaque user identifier issued by the identity provider.
UserId = String(64)

Money = Numeric(12, 2)


# ---------------------------------------------------------------------------
# Referral program (owned)
# ---------------------------------------------------------------------------


class Referral(Base):
    """Referrer -> referred edge. Created at sign-up, never deleted."""

    __tablename__ = "referrals"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    referrer_id: Mapped[str] = mapped_column(UserId, nullable=False, index=True)
    referred_id: Mapped[str] = mapped_column(UserId, nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    activated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    active_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_time_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    referred_has_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ReferralActivityLog(Base):
    """Minutes of engagement per user per calendar day."""

    __tablename__ = "referral_activity_log"
    __table_args__ = (
        UniqueConstraint("user_id", "activity_date", name="uq_referral_activity_user_date"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(UserId, nullable=False)
    activity_date: Mapped[date] = mapped_column(Date, nullable=False)
    time_spent_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ReferralEarning(Base):
    """Append-only reward audit log with idempotency key."""

    __tablename__ = "referral_earnings"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    referrer_id: Mapped[str] = mapped_column(UserId, nullable=False, index=True)
    referred_id: Mapped[str | None] = mapped_column(UserId, nullable=True)
    earning_type: Mapped[str] = mapped_column(String(32), nullable=False)
    bonus_weeks: Mapped[int | None] = mapped_column(Integer, nullable=True)
    amount_rub: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    commission_percent: Mapped[int | None] = mapped_column(Integer, nullable=True)
    milestone_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    milestone_bonus_rub: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    payment_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    idempotency_key: Mapped[str] = mapped_column(String(256), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class UserWallet(Base):
    """Denormalized referral wallet, single row per user."""

    __tablename__ = "user_wallet"

    user_id: Mapped[str] = mapped_column(UserId, primary_key=True)
    balance_rub: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"), server_default="0")
    bonus_weeks_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_earned_rub: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"), server_default="0")
    total_withdrawn_rub: Mapped[Decimal] = mapped_column(
        Money, nullable=False, default=Decimal("0"), server_default="0"
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WithdrawalRequest(Base):
    """Payout request. pending -> completed | rejected."""

    __tablename__ = "withdrawal_requests"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(UserId, nullable=False, index=True)
    amount_rub: Mapped[Decimal] = mapped_column(Money, nullable=False)
    withdrawal_type: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending", server_default="pending")
    applied_multiplier: Mapped[Decimal | None] = mapped_column(Numeric(4, 2), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Leaderboard (owned, rebuilt by the aggregation job)
# ---------------------------------------------------------------------------


class LeaderboardAggregate(Base):
    """Per-user totals for one instance of a rolling period."""

    __tablename__ = "leaderboard_aggregates"
    __table_args__ = (
        UniqueConstraint("user_id", "period_type", "period_key", name="uq_leaderboard_aggregates_user_period"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(UserId, nullable=False)
    period_type: Mapped[str] = mapped_column(String(16), nullable=False)
    period_key: Mapped[str] = mapped_column(String(16), nullable=False)
    total_stars: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_likes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_activity_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    habits_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    tasks_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Upstream (read-only here)
# ---------------------------------------------------------------------------


class Subscription(Base):
    """Subscription plan record. Read for bonus sizing, extended by bonuses."""

    __tablename__ = "subscriptions"

    user_id: Mapped[str] = mapped_column(UserId, primary_key=True)
    plan: Mapped[str] = mapped_column(String(16), nullable=False, default="free", server_default="free")
    period: Mapped[str | None] = mapped_column(String(16), nullable=True)
    is_trial: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    bonus_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class UserRole(Base):
    """Role grants (e.g. 'admin')."""

    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(UserId, nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False)


class UserStars(Base):
    """All-time star ledger totals."""

    __tablename__ = "user_stars"

    user_id: Mapped[str] = mapped_column(UserId, primary_key=True)
    total_stars: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")


class AchievementPost(Base):
    """Achievement feed post; likes are attributed to its author."""

    __tablename__ = "achievement_posts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(UserId, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class PostReaction(Base):
    """Reaction to an achievement post."""

    __tablename__ = "post_reactions"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    post_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(UserId, nullable=False)
    reaction_type: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class UserDailyActivity(Base):
    """Per-day counters of completed habits, tasks and earned stars."""

    __tablename__ = "user_daily_activity"
    __table_args__ = (
        UniqueConstraint("user_id", "activity_date", name="uq_user_daily_activity_user_date"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(UserId, nullable=False)
    activity_date: Mapped[date] = mapped_column(Date, nullable=False)
    habits_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    tasks_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    stars_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    likes_received: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
