"""Read-side queries for the affiliate dashboard."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lifehub.db.models import Referral, UserWallet
from lifehub.referrals.commission import (
    Milestone,
    calculate_commission,
    milestone_schedule,
    next_milestone,
)
from lifehub.referrals.wallet import get_wallet, pending_withdrawal_total


@dataclass
class AffiliateStats:
    referrals: list[Referral]
    total_referrals: int
    active_referrals: int
    paid_referrals: int
    tier: int
    commission_percent: int
    is_vip: bool
    milestones: list[Milestone]
    next_milestone: Milestone | None
    wallet: UserWallet | None
    pending_rub: Decimal


async def list_referrals(db: AsyncSession, referrer_id: str) -> list[Referral]:
    result = await db.execute(
        select(Referral)
        .where(Referral.referrer_id == referrer_id)
        .order_by(Referral.created_at.desc(), Referral.id.desc())
    )
    return list(result.scalars().all())


async def get_affiliate_stats(db: AsyncSession, referrer_id: str) -> AffiliateStats:
    """Everything the referral dashboard shows for one referrer."""
    referrals = await list_referrals(db, referrer_id)
    paid = sum(1 for r in referrals if r.referred_has_paid)
    breakdown = calculate_commission(paid, Decimal("0"))

    return AffiliateStats(
        referrals=referrals,
        total_referrals=len(referrals),
        active_referrals=sum(1 for r in referrals if r.is_active),
        paid_referrals=paid,
        tier=breakdown.tier,
        commission_percent=breakdown.commission_percent,
        is_vip=breakdown.is_vip,
        milestones=milestone_schedule(paid),
        next_milestone=next_milestone(paid),
        wallet=await get_wallet(db, referrer_id),
        pending_rub=await pending_withdrawal_total(db, referrer_id),
    )
