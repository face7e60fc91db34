"""Referral activation engine.

A referred user becomes active once they have logged activity on at least
7 distinct calendar days AND at least 30 minutes in total. Activation is
one-way and triggers the referrer's registration bonus exactly once.

Evaluation runs after every activity flush, in the same transaction as
the log write.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lifehub.activity.service import summarize_activity
from lifehub.db.models import Referral
from lifehub.referrals.rewards import award_registration_bonus
from lifehub.timeutils import utcnow

logger = logging.getLogger(__name__)

ACTIVATION_MIN_DAYS = 7
ACTIVATION_MIN_MINUTES = 30


@dataclass
class ActivationResult:
    referred: bool
    is_active: bool = False
    newly_activated: bool = False
    active_days: int = 0
    total_time_minutes: int = 0
    bonus_weeks: int | None = None


def meets_activation_rule(
    unique_days: int,
    total_minutes: int,
    min_days: int = ACTIVATION_MIN_DAYS,
    min_minutes: int = ACTIVATION_MIN_MINUTES,
) -> bool:
    """Both thresholds must hold."""
    return unique_days >= min_days and total_minutes >= min_minutes


async def get_referral(db: AsyncSession, referred_id: str) -> Referral | None:
    result = await db.execute(select(Referral).where(Referral.referred_id == referred_id))
    return result.scalar_one_or_none()


async def evaluate_activation(
    db: AsyncSession,
    referred_id: str,
    now: datetime | None = None,
    *,
    min_days: int = ACTIVATION_MIN_DAYS,
    min_minutes: int = ACTIVATION_MIN_MINUTES,
) -> ActivationResult:
    """Refresh the referral's progress counters and activate it if eligible.

    Users without a referral record get ``referred=False`` and nothing is
    written. Counters never decrease and an active referral never
    reverts. Only flushes; the caller commits.
    """
    referral = await get_referral(db, referred_id)
    if referral is None:
        return ActivationResult(referred=False)

    unique_days, total_minutes = await summarize_activity(db, referred_id)
    referral.active_days = max(referral.active_days or 0, unique_days)
    referral.total_time_minutes = max(referral.total_time_minutes or 0, total_minutes)

    result = ActivationResult(
        referred=True,
        is_active=referral.is_active,
        active_days=referral.active_days,
        total_time_minutes=referral.total_time_minutes,
    )

    if not referral.is_active and meets_activation_rule(
        referral.active_days, referral.total_time_minutes, min_days, min_minutes,
    ):
        now = now or utcnow()
        referral.is_active = True
        referral.activated_at = now
        result.is_active = True
        result.newly_activated = True
        result.bonus_weeks = await award_registration_bonus(
            db, referral.referrer_id, referred_id, now,
        )
        logger.info(
            "Referral %s -> %s activated after %d days / %d minutes",
            referral.referrer_id, referred_id, referral.active_days, referral.total_time_minutes,
        )

    await db.flush()
    return result
