"""Reward crediting: registration bonuses, payment commissions, milestones.

Every reward is one ReferralEarning row whose ``idempotency_key`` is
unique. The row is inserted with ON CONFLICT DO NOTHING and the matching
wallet/subscription effects are applied only when the insert actually
happened, all inside the caller's transaction. Re-running any reward path
for the same subject therefore credits nothing twice.

Key formats:
    registration_bonus:{referrer_id}:{referred_id}
    commission:{payment_id}
    milestone:{referrer_id}:{milestone_type}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lifehub.db.models import Referral, ReferralEarning, Subscription
from lifehub.db.upsert import insert_for
from lifehub.referrals.commission import commission_percent_for, milestone_schedule
from lifehub.referrals.wallet import credit_wallet
from lifehub.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)

REGISTRATION_BONUS = "registration_bonus"
COMMISSION = "payment_commission"
MILESTONE = "milestone"

PRO_BONUS_WEEKS = 2
DEFAULT_BONUS_WEEKS = 1


@dataclass
class PaymentCredit:
    """Outcome of crediting one referred user's payment."""

    referrer_id: str
    commission_rub: Decimal
    commission_percent: int
    paid_referrals: int
    milestones: list[str] = field(default_factory=list)


def registration_bonus_key(referrer_id: str, referred_id: str) -> str:
    return f"{REGISTRATION_BONUS}:{referrer_id}:{referred_id}"


def commission_key(payment_id: str) -> str:
    return f"commission:{payment_id}"


def milestone_key(referrer_id: str, milestone_type: str) -> str:
    return f"{MILESTONE}:{referrer_id}:{milestone_type}"


async def _earning_exists(db: AsyncSession, key: str) -> bool:
    result = await db.execute(
        select(ReferralEarning.id).where(ReferralEarning.idempotency_key == key)
    )
    return result.scalar_one_or_none() is not None


async def _insert_earning(db: AsyncSession, **values: object) -> int | None:
    """Insert an earning row; None when its idempotency key already exists."""
    stmt = (
        insert_for(db, ReferralEarning)
        .values(**values)
        .on_conflict_do_nothing(index_elements=["idempotency_key"])
        .returning(ReferralEarning.id)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def _get_subscription(db: AsyncSession, user_id: str) -> Subscription | None:
    result = await db.execute(
        select(Subscription).where(Subscription.user_id == user_id)
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Registration bonus
# ---------------------------------------------------------------------------


def bonus_weeks_for(subscription: Subscription | None) -> int:
    """2 weeks for a paying Pro referrer, 1 week for everyone else."""
    if subscription is not None and subscription.plan == "pro" and not subscription.is_trial:
        return PRO_BONUS_WEEKS
    return DEFAULT_BONUS_WEEKS


async def extend_subscription(
    db: AsyncSession,
    user_id: str,
    days: int,
    now: datetime,
    subscription: Subscription | None = None,
) -> Subscription:
    """Push expiry forward by `days` from max(current expiry, now) and set plan to pro."""
    if subscription is None:
        subscription = await _get_subscription(db, user_id)
    if subscription is None:
        subscription = Subscription(user_id=user_id, plan="free", is_trial=False, bonus_days=0)
        db.add(subscription)

    base = now
    if subscription.expires_at is not None and as_utc(subscription.expires_at) > now:
        base = as_utc(subscription.expires_at)

    subscription.expires_at = base + timedelta(days=days)
    subscription.plan = "pro"
    subscription.bonus_days = (subscription.bonus_days or 0) + days
    subscription.updated_at = now
    await db.flush()
    return subscription


async def award_registration_bonus(
    db: AsyncSession,
    referrer_id: str,
    referred_id: str,
    now: datetime | None = None,
) -> int | None:
    """Grant the referrer their bonus weeks for one activated referral.

    Returns the weeks granted, or None if this pair was already rewarded.
    Only flushes; the caller owns the transaction.
    """
    now = now or utcnow()
    key = registration_bonus_key(referrer_id, referred_id)
    if await _earning_exists(db, key):
        logger.info("Registration bonus already granted for %s -> %s", referrer_id, referred_id)
        return None

    subscription = await _get_subscription(db, referrer_id)
    weeks = bonus_weeks_for(subscription)

    earning_id = await _insert_earning(
        db,
        referrer_id=referrer_id,
        referred_id=referred_id,
        earning_type=REGISTRATION_BONUS,
        bonus_weeks=weeks,
        idempotency_key=key,
        created_at=now,
    )
    if earning_id is None:
        # Lost a race with a concurrent activation
        logger.info("Registration bonus already granted for %s -> %s", referrer_id, referred_id)
        return None

    await credit_wallet(db, referrer_id, bonus_weeks=weeks, now=now)
    await extend_subscription(db, referrer_id, weeks * 7, now, subscription=subscription)

    logger.info("Registration bonus: %d week(s) to %s for referring %s", weeks, referrer_id, referred_id)
    return weeks


# ---------------------------------------------------------------------------
# Payment commission + milestones
# ---------------------------------------------------------------------------


async def count_paid_referrals(db: AsyncSession, referrer_id: str) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(Referral)
        .where(Referral.referrer_id == referrer_id, Referral.referred_has_paid.is_(True))
    )
    return int(result.scalar_one())


async def credit_milestones(
    db: AsyncSession,
    referrer_id: str,
    paid_referrals: int,
    now: datetime | None = None,
) -> list[str]:
    """Credit every reached milestone not yet credited. Returns the new milestone types."""
    now = now or utcnow()
    credited: list[str] = []
    for milestone in milestone_schedule(paid_referrals):
        if not milestone.reached:
            continue
        bonus = Decimal(milestone.bonus)
        earning_id = await _insert_earning(
            db,
            referrer_id=referrer_id,
            earning_type=MILESTONE,
            amount_rub=bonus,
            milestone_type=milestone.milestone_type,
            milestone_bonus_rub=bonus,
            idempotency_key=milestone_key(referrer_id, milestone.milestone_type),
            created_at=now,
        )
        if earning_id is None:
            continue
        await credit_wallet(db, referrer_id, amount_rub=bonus, now=now)
        credited.append(milestone.milestone_type)
        logger.info("Milestone %s reached by %s: +%s RUB", milestone.milestone_type, referrer_id, bonus)
    return credited


async def credit_payment_commission(
    db: AsyncSession,
    referred_id: str,
    payment_id: str,
    amount_rub: Decimal,
    now: datetime | None = None,
) -> PaymentCredit | None:
    """Credit the referrer's commission for a referred user's payment.

    Marks the referral as paid, applies the tier rate for the referrer's
    paid-referral count (including this one) and credits any milestones
    now reached. Returns None when the payer was not referred or the
    payment was already credited.
    """
    if amount_rub <= 0:
        raise ValueError("Payment amount must be positive")
    now = now or utcnow()

    result = await db.execute(select(Referral).where(Referral.referred_id == referred_id))
    referral = result.scalar_one_or_none()
    if referral is None:
        return None

    key = commission_key(payment_id)
    if await _earning_exists(db, key):
        logger.info("Payment %s already credited", payment_id)
        return None

    if not referral.referred_has_paid:
        referral.referred_has_paid = True
        await db.flush()

    paid = await count_paid_referrals(db, referral.referrer_id)
    percent = commission_percent_for(paid)
    commission = (amount_rub * percent / 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    earning_id = await _insert_earning(
        db,
        referrer_id=referral.referrer_id,
        referred_id=referred_id,
        earning_type=COMMISSION,
        amount_rub=commission,
        commission_percent=percent,
        payment_id=payment_id,
        idempotency_key=key,
        created_at=now,
    )
    if earning_id is None:
        logger.info("Payment %s already credited", payment_id)
        return None

    await credit_wallet(db, referral.referrer_id, amount_rub=commission, now=now)
    milestones = await credit_milestones(db, referral.referrer_id, paid, now)

    logger.info(
        "Commission %s RUB (%d%%) to %s for payment %s",
        commission, percent, referral.referrer_id, payment_id,
    )
    return PaymentCredit(
        referrer_id=referral.referrer_id,
        commission_rub=commission,
        commission_percent=percent,
        paid_referrals=paid,
        milestones=milestones,
    )
