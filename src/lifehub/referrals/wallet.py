"""Referral wallet ledger and withdrawal request lifecycle.

Balance only grows through reward credits and only shrinks when a
withdrawal is completed by the back office.

Withdrawal states: pending -> completed | rejected. Terminal states have
no outgoing transitions.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Select, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lifehub.db.models import UserWallet, WithdrawalRequest
from lifehub.db.upsert import insert_for
from lifehub.timeutils import utcnow

logger = logging.getLogger(__name__)

MIN_WITHDRAWAL_RUB = Decimal("1000")

WITHDRAWAL_TYPES = ("cash", "subscription", "gift")

# Converting to a subscription or gift code pays 1:1.5
CONVERSION_MULTIPLIERS: dict[str, Decimal] = {
    "cash": Decimal("1.00"),
    "subscription": Decimal("1.50"),
    "gift": Decimal("1.50"),
}

VALID_TRANSITIONS: dict[str, list[str]] = {
    "pending": ["completed", "rejected"],
    "completed": [],
    "rejected": [],
}


def validate_transition(current_status: str, target_status: str) -> None:
    """Validate a withdrawal status change. Raises ValueError if invalid."""
    valid = VALID_TRANSITIONS.get(current_status, [])
    if target_status not in valid:
        raise ValueError(
            f"Invalid transition: {current_status} -> {target_status}. "
            f"Valid transitions: {valid}"
        )


# ---------------------------------------------------------------------------
# Wallet
# ---------------------------------------------------------------------------


async def get_wallet(db: AsyncSession, user_id: str) -> UserWallet | None:
    """Load the wallet, bypassing stale identity-map state left by upserts."""
    result = await db.execute(
        select(UserWallet)
        .where(UserWallet.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def wallet_for_update(user_id: str) -> Select[tuple[UserWallet]]:
    """Row-locking wallet read. Serializes withdrawals and debits per user."""
    return (
        select(UserWallet)
        .where(UserWallet.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


async def lock_wallet(db: AsyncSession, user_id: str) -> UserWallet | None:
    """Lock the user's wallet row until the transaction ends. None if absent."""
    result = await db.execute(wallet_for_update(user_id))
    return result.scalar_one_or_none()


async def credit_wallet(
    db: AsyncSession,
    user_id: str,
    *,
    amount_rub: Decimal = Decimal("0"),
    bonus_weeks: int = 0,
    now: datetime | None = None,
) -> None:
    """Increment balance / earned totals / bonus weeks in one upsert."""
    if amount_rub < 0 or bonus_weeks < 0:
        raise ValueError("Wallet credits must be non-negative")
    now = now or utcnow()

    stmt = insert_for(db, UserWallet).values(
        user_id=user_id,
        balance_rub=amount_rub,
        bonus_weeks_earned=bonus_weeks,
        total_earned_rub=amount_rub,
        total_withdrawn_rub=Decimal("0"),
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id"],
        set_={
            "balance_rub": UserWallet.balance_rub + stmt.excluded.balance_rub,
            "bonus_weeks_earned": UserWallet.bonus_weeks_earned + stmt.excluded.bonus_weeks_earned,
            "total_earned_rub": UserWallet.total_earned_rub + stmt.excluded.total_earned_rub,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    await db.execute(stmt)


# ---------------------------------------------------------------------------
# Withdrawals
# ---------------------------------------------------------------------------


async def pending_withdrawal_total(db: AsyncSession, user_id: str) -> Decimal:
    """Sum of the user's requests still awaiting review."""
    result = await db.execute(
        select(func.coalesce(func.sum(WithdrawalRequest.amount_rub), 0))
        .where(WithdrawalRequest.user_id == user_id, WithdrawalRequest.status == "pending")
    )
    return Decimal(str(result.scalar_one()))


async def available_balance(db: AsyncSession, user_id: str, *, lock: bool = False) -> Decimal:
    """Balance not yet reserved by pending withdrawals.

    With ``lock=True`` the wallet row stays locked until the caller's
    transaction ends, so the figure cannot be spent twice.
    """
    wallet = await (lock_wallet(db, user_id) if lock else get_wallet(db, user_id))
    balance = wallet.balance_rub if wallet else Decimal("0")
    return balance - await pending_withdrawal_total(db, user_id)


async def create_withdrawal(
    db: AsyncSession,
    user_id: str,
    amount_rub: Decimal,
    withdrawal_type: str,
    *,
    min_withdrawal: Decimal = MIN_WITHDRAWAL_RUB,
    now: datetime | None = None,
) -> WithdrawalRequest:
    """Create a pending withdrawal after validating amount and funds.

    Raises ValueError (and writes nothing) when the amount is below the
    minimum or exceeds the balance left after other pending requests.
    Concurrent requests for the same user queue on the wallet row lock.
    """
    if withdrawal_type not in WITHDRAWAL_TYPES:
        raise ValueError(f"Unknown withdrawal type: {withdrawal_type}")
    if amount_rub < min_withdrawal:
        raise ValueError(f"Minimum withdrawal is {min_withdrawal} RUB")

    available = await available_balance(db, user_id, lock=True)
    if amount_rub > available:
        raise ValueError("Insufficient funds")

    request = WithdrawalRequest(
        user_id=user_id,
        amount_rub=amount_rub,
        withdrawal_type=withdrawal_type,
        status="pending",
        applied_multiplier=CONVERSION_MULTIPLIERS[withdrawal_type],
        created_at=now or utcnow(),
    )
    db.add(request)
    await db.flush()
    logger.info("Withdrawal %d requested: %s RUB (%s) by %s", request.id, amount_rub, withdrawal_type, user_id)
    return request


async def get_withdrawal(db: AsyncSession, request_id: int, *, for_update: bool = False) -> WithdrawalRequest:
    """Get a withdrawal request by ID, optionally row-locked."""
    stmt = select(WithdrawalRequest).where(WithdrawalRequest.id == request_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    request = result.scalar_one_or_none()
    if request is None:
        raise ValueError(f"Withdrawal request {request_id} not found")
    return request


async def debit_wallet(db: AsyncSession, user_id: str, amount_rub: Decimal, now: datetime) -> bool:
    """Atomically move amount from balance to total_withdrawn.

    The decrement runs in SQL and only when the balance covers it; returns
    False (nothing written) otherwise.
    """
    result = await db.execute(
        update(UserWallet)
        .where(UserWallet.user_id == user_id, UserWallet.balance_rub >= amount_rub)
        .values(
            balance_rub=UserWallet.balance_rub - amount_rub,
            total_withdrawn_rub=UserWallet.total_withdrawn_rub + amount_rub,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def complete_withdrawal(
    db: AsyncSession,
    request_id: int,
    now: datetime | None = None,
) -> WithdrawalRequest:
    """pending -> completed. Debits the wallet after re-checking the balance."""
    request = await get_withdrawal(db, request_id, for_update=True)
    validate_transition(request.status, "completed")

    now = now or utcnow()
    await lock_wallet(db, request.user_id)
    if not await debit_wallet(db, request.user_id, request.amount_rub, now):
        raise ValueError("Insufficient funds to complete withdrawal")

    request.status = "completed"
    request.processed_at = now
    await db.flush()

    logger.info("Withdrawal %d completed: %s RUB debited from %s", request.id, request.amount_rub, request.user_id)
    return request


async def reject_withdrawal(
    db: AsyncSession,
    request_id: int,
    now: datetime | None = None,
) -> WithdrawalRequest:
    """pending -> rejected. The balance is untouched."""
    request = await get_withdrawal(db, request_id, for_update=True)
    validate_transition(request.status, "rejected")

    request.status = "rejected"
    request.processed_at = now or utcnow()
    await db.flush()

    logger.info("Withdrawal %d rejected for %s", request.id, request.user_id)
    return request


async def list_withdrawals(db: AsyncSession, user_id: str) -> list[WithdrawalRequest]:
    """Withdrawal history, newest first."""
    result = await db.execute(
        select(WithdrawalRequest)
        .where(WithdrawalRequest.user_id == user_id)
        .order_by(WithdrawalRequest.created_at.desc(), WithdrawalRequest.id.desc())
    )
    return list(result.scalars().all())
