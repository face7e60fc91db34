"""Referral program API: affiliate stats, calculator, wallet, withdrawals, back office."""

from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from lifehub.auth.dependencies import Principal, get_current_user, require_admin
from lifehub.config import get_settings
from lifehub.database import get_session
from lifehub.db.models import UserWallet, WithdrawalRequest
from lifehub.referrals.commission import (
    Milestone,
    calculate_commission,
    milestone_schedule,
    project_earnings,
)
from lifehub.referrals.rewards import credit_payment_commission
from lifehub.referrals.schemas import (
    AffiliateStatsResponse,
    CalculatorResponse,
    MilestoneEntry,
    PaymentCreditRequest,
    PaymentCreditResponse,
    ReferralEntry,
    WalletResponse,
    WithdrawalCreateRequest,
    WithdrawalListResponse,
    WithdrawalResponse,
)
from lifehub.referrals.stats import get_affiliate_stats
from lifehub.referrals.wallet import (
    complete_withdrawal,
    create_withdrawal,
    get_wallet,
    list_withdrawals,
    pending_withdrawal_total,
    reject_withdrawal,
)

router = APIRouter(prefix="/api/v1/referrals", tags=["Referrals"])
admin_router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])

ZERO = Decimal("0")


def _milestone(m: Milestone) -> MilestoneEntry:
    return MilestoneEntry(
        threshold=m.threshold, bonus=m.bonus, milestone_type=m.milestone_type, reached=m.reached,
    )


def _wallet(wallet: UserWallet | None, pending: Decimal) -> WalletResponse:
    if wallet is None:
        return WalletResponse(
            balance_rub=ZERO, available_rub=ZERO, bonus_weeks_earned=0,
            total_earned_rub=ZERO, total_withdrawn_rub=ZERO,
        )
    return WalletResponse(
        balance_rub=wallet.balance_rub,
        available_rub=wallet.balance_rub - pending,
        bonus_weeks_earned=wallet.bonus_weeks_earned,
        total_earned_rub=wallet.total_earned_rub,
        total_withdrawn_rub=wallet.total_withdrawn_rub,
    )


def _withdrawal(req: WithdrawalRequest) -> WithdrawalResponse:
    return WithdrawalResponse(
        id=req.id,
        amount_rub=req.amount_rub,
        withdrawal_type=req.withdrawal_type,
        status=req.status,
        applied_multiplier=req.applied_multiplier,
        created_at=req.created_at,
        processed_at=req.processed_at,
    )


# ── Public endpoints ──


@router.get("/calculator", response_model=CalculatorResponse)
async def commission_calculator(
    paid_referrals: int = Query(...),
    avg_payment: Decimal = Query(...),
    payments_per_year: int = Query(1),
) -> CalculatorResponse:
    """What a referrer would earn at a given paid-referral count."""
    try:
        breakdown = calculate_commission(paid_referrals, avg_payment)
        projection = project_earnings(paid_referrals, avg_payment, payments_per_year)
        schedule = milestone_schedule(paid_referrals)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return CalculatorResponse(
        paid_referrals=paid_referrals,
        avg_payment=avg_payment,
        tier=breakdown.tier,
        commission_percent=breakdown.commission_percent,
        commissions=breakdown.commissions,
        milestones=breakdown.milestones,
        total=breakdown.total,
        is_vip=breakdown.is_vip,
        projected_yearly_total=projection.total,
        schedule=[_milestone(m) for m in schedule],
    )


# ── Authenticated endpoints ──


@router.get("/me", response_model=AffiliateStatsResponse)
async def my_referrals(
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> AffiliateStatsResponse:
    """Affiliate dashboard: referred users, tier, milestones, wallet."""
    stats = await get_affiliate_stats(db, user.user_id)
    return AffiliateStatsResponse(
        total_referrals=stats.total_referrals,
        active_referrals=stats.active_referrals,
        paid_referrals=stats.paid_referrals,
        tier=stats.tier,
        commission_percent=stats.commission_percent,
        is_vip=stats.is_vip,
        next_milestone=_milestone(stats.next_milestone) if stats.next_milestone else None,
        milestones=[_milestone(m) for m in stats.milestones],
        wallet=_wallet(stats.wallet, stats.pending_rub),
        referrals=[
            ReferralEntry(
                referred_id=r.referred_id,
                is_active=r.is_active,
                activated_at=r.activated_at,
                active_days=r.active_days,
                total_time_minutes=r.total_time_minutes,
                referred_has_paid=r.referred_has_paid,
                created_at=r.created_at,
            )
            for r in stats.referrals
        ],
    )


@router.get("/wallet", response_model=WalletResponse)
async def my_wallet(
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> WalletResponse:
    """Current wallet balance and totals."""
    wallet = await get_wallet(db, user.user_id)
    pending = await pending_withdrawal_total(db, user.user_id)
    return _wallet(wallet, pending)


@router.post("/withdrawals", response_model=WithdrawalResponse, status_code=201)
async def request_withdrawal(
    body: WithdrawalCreateRequest,
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> WithdrawalResponse:
    """Create a pending withdrawal request."""
    settings = get_settings()
    try:
        req = await create_withdrawal(
            db,
            user.user_id,
            body.amount_rub,
            body.withdrawal_type,
            min_withdrawal=Decimal(settings.min_withdrawal_rub),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return _withdrawal(req)


@router.get("/withdrawals", response_model=WithdrawalListResponse)
async def my_withdrawals(
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> WithdrawalListResponse:
    """Withdrawal history, newest first."""
    requests = await list_withdrawals(db, user.user_id)
    return WithdrawalListResponse(
        withdrawals=[_withdrawal(r) for r in requests],
        total=len(requests),
    )


# ── Back office ──


@admin_router.post("/withdrawals/{request_id}/complete", response_model=WithdrawalResponse)
async def admin_complete_withdrawal(
    request_id: int,
    _admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> WithdrawalResponse:
    """Mark a pending withdrawal as paid out and debit the wallet."""
    try:
        req = await complete_withdrawal(db, request_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return _withdrawal(req)


@admin_router.post("/withdrawals/{request_id}/reject", response_model=WithdrawalResponse)
async def admin_reject_withdrawal(
    request_id: int,
    _admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> WithdrawalResponse:
    """Reject a pending withdrawal. The balance is untouched."""
    try:
        req = await reject_withdrawal(db, request_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return _withdrawal(req)


@admin_router.post("/referrals/payments", response_model=PaymentCreditResponse)
async def admin_credit_payment(
    body: PaymentCreditRequest,
    _admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> PaymentCreditResponse:
    """Credit the referrer's commission for a referred user's payment. Idempotent per payment_id."""
    try:
        credit = await credit_payment_commission(db, body.referred_id, body.payment_id, body.amount_rub)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()

    if credit is None:
        return PaymentCreditResponse(credited=False)
    return PaymentCreditResponse(
        credited=True,
        referrer_id=credit.referrer_id,
        commission_rub=credit.commission_rub,
        commission_percent=credit.commission_percent,
        paid_referrals=credit.paid_referrals,
        milestones=credit.milestones,
    )
