"""Affiliate commission and milestone calculator.

Tier 1 (first 50 paid referrals): 20% of the average payment each.
Tier 2 (paid referrals beyond 50): 30% each.

Milestones are flat and cumulative:
    10, 20, 30, 40 paid -> +500 each
    50 paid             -> +1000
    every 25 past 50    -> +1000 (75, 100, 125, ...)
    200 paid            -> +5000 VIP bonus, once

Everything here is pure; amounts are Decimal roubles.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

TIER_1_LIMIT = 50
TIER_1_PERCENT = 20
TIER_2_PERCENT = 30

TIER_1_MILESTONES: tuple[tuple[int, int], ...] = (
    (10, 500),
    (20, 500),
    (30, 500),
    (40, 500),
    (50, 1000),
)
TIER_2_STEP = 25
TIER_2_MILESTONE_BONUS = 1000
VIP_THRESHOLD = 200
VIP_BONUS = 5000


@dataclass(frozen=True)
class CommissionBreakdown:
    commissions: Decimal
    milestones: int
    total: int
    tier: int
    commission_percent: int
    is_vip: bool


@dataclass(frozen=True)
class Milestone:
    threshold: int
    bonus: int
    milestone_type: str
    reached: bool


@dataclass(frozen=True)
class ProjectedEarnings:
    commissions: Decimal
    milestones: int
    total: Decimal


def _to_decimal(value: Decimal | float | int) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _validate(paid_referrals: int, avg_payment: Decimal) -> None:
    if paid_referrals < 0:
        raise ValueError(f"paid_referrals must be >= 0, got {paid_referrals}")
    if avg_payment < 0:
        raise ValueError(f"avg_payment must be >= 0, got {avg_payment}")


def tier_for(paid_referrals: int) -> int:
    """Commission tier for a referrer with this many paid referrals."""
    return 1 if paid_referrals <= TIER_1_LIMIT else 2


def commission_percent_for(paid_referrals: int) -> int:
    """Commission rate (percent) applied at this paid-referral count."""
    return TIER_1_PERCENT if paid_referrals <= TIER_1_LIMIT else TIER_2_PERCENT


def milestone_total(paid_referrals: int) -> int:
    """Sum of every milestone bonus reached at this paid-referral count."""
    total = sum(bonus for threshold, bonus in TIER_1_MILESTONES if paid_referrals >= threshold)
    if paid_referrals > TIER_1_LIMIT:
        total += ((paid_referrals - TIER_1_LIMIT) // TIER_2_STEP) * TIER_2_MILESTONE_BONUS
    if paid_referrals >= VIP_THRESHOLD:
        total += VIP_BONUS
    return total


def calculate_commission(paid_referrals: int, avg_payment: Decimal | float | int) -> CommissionBreakdown:
    """Commission + milestone payout for a paid-referral count.

    Monotonic in paid_referrals for a fixed avg_payment.

    Raises:
        ValueError: on negative inputs.
    """
    avg = _to_decimal(avg_payment)
    _validate(paid_referrals, avg)

    tier_1_count = min(paid_referrals, TIER_1_LIMIT)
    tier_2_count = max(paid_referrals - TIER_1_LIMIT, 0)
    commissions = (
        tier_1_count * avg * TIER_1_PERCENT / 100
        + tier_2_count * avg * TIER_2_PERCENT / 100
    )
    milestones = milestone_total(paid_referrals)
    rounded = int(commissions.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    return CommissionBreakdown(
        commissions=commissions,
        milestones=milestones,
        total=rounded + milestones,
        tier=tier_for(paid_referrals),
        commission_percent=commission_percent_for(paid_referrals),
        is_vip=paid_referrals >= VIP_THRESHOLD,
    )


def milestone_schedule(paid_referrals: int) -> list[Milestone]:
    """Every milestone up to one step past the current count, flagged if reached."""
    if paid_referrals < 0:
        raise ValueError(f"paid_referrals must be >= 0, got {paid_referrals}")

    schedule = [
        Milestone(threshold, bonus, f"milestone_{threshold}", paid_referrals >= threshold)
        for threshold, bonus in TIER_1_MILESTONES
    ]
    threshold = TIER_1_LIMIT + TIER_2_STEP
    while threshold <= max(paid_referrals, TIER_1_LIMIT) + TIER_2_STEP:
        schedule.append(Milestone(
            threshold, TIER_2_MILESTONE_BONUS, f"milestone_{threshold}", paid_referrals >= threshold,
        ))
        threshold += TIER_2_STEP
    schedule.append(Milestone(VIP_THRESHOLD, VIP_BONUS, f"vip_{VIP_THRESHOLD}", paid_referrals >= VIP_THRESHOLD))
    return sorted(schedule, key=lambda m: (m.threshold, m.milestone_type.startswith("vip")))


def next_milestone(paid_referrals: int) -> Milestone | None:
    """First milestone not yet reached."""
    for milestone in milestone_schedule(paid_referrals):
        if not milestone.reached:
            return milestone
    return None


def project_earnings(
    referral_count: int,
    avg_payment: Decimal | float | int,
    payments_per_year: int = 1,
) -> ProjectedEarnings:
    """Yearly projection: each referral pays avg_payment payments_per_year times."""
    avg = _to_decimal(avg_payment)
    _validate(referral_count, avg)
    if payments_per_year < 0:
        raise ValueError(f"payments_per_year must be >= 0, got {payments_per_year}")

    tier_1_count = min(referral_count, TIER_1_LIMIT)
    tier_2_count = max(referral_count - TIER_1_LIMIT, 0)
    commissions = (
        tier_1_count * avg * TIER_1_PERCENT / 100
        + tier_2_count * avg * TIER_2_PERCENT / 100
    ) * payments_per_year
    milestones = milestone_total(referral_count)
    return ProjectedEarnings(
        commissions=commissions,
        milestones=milestones,
        total=commissions + milestones,
    )
