"""Pydantic models for referral, wallet and withdrawal endpoints."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field


# --- Referrals ---


class ReferralEntry(BaseModel):
    referred_id: str
    is_active: bool
    activated_at: datetime | None = None
    active_days: int
    total_time_minutes: int
    referred_has_paid: bool
    created_at: datetime


class MilestoneEntry(BaseModel):
    threshold: int
    bonus: int
    milestone_type: str
    reached: bool


class WalletResponse(BaseModel):
    balance_rub: Decimal
    available_rub: Decimal
    bonus_weeks_earned: int
    total_earned_rub: Decimal
    total_withdrawn_rub: Decimal


class AffiliateStatsResponse(BaseModel):
    total_referrals: int
    active_referrals: int
    paid_referrals: int
    tier: int
    commission_percent: int
    is_vip: bool
    next_milestone: MilestoneEntry | None = None
    milestones: list[MilestoneEntry]
    wallet: WalletResponse
    referrals: list[ReferralEntry]


class CalculatorResponse(BaseModel):
    paid_referrals: int
    avg_payment: Decimal
    tier: int
    commission_percent: int
    commissions: Decimal
    milestones: int
    total: int
    is_vip: bool
    projected_yearly_total: Decimal
    schedule: list[MilestoneEntry]


# --- Withdrawals ---


class WithdrawalCreateRequest(BaseModel):
    amount_rub: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    withdrawal_type: Literal["cash", "subscription", "gift"]


class WithdrawalResponse(BaseModel):
    id: int
    amount_rub: Decimal
    withdrawal_type: str
    status: str
    applied_multiplier: Decimal | None = None
    created_at: datetime
    processed_at: datetime | None = None


class WithdrawalListResponse(BaseModel):
    withdrawals: list[WithdrawalResponse]
    total: int


# --- Admin ---


class PaymentCreditRequest(BaseModel):
    referred_id: str = Field(min_length=1, max_length=64)
    payment_id: str = Field(min_length=1, max_length=128)
    amount_rub: Decimal = Field(gt=0, max_digits=12, decimal_places=2)


class PaymentCreditResponse(BaseModel):
    credited: bool
    referrer_id: str | None = None
    commission_rub: Decimal | None = None
    commission_percent: int | None = None
    paid_referrals: int | None = None
    milestones: list[str] = []
