"""Activity flush endpoints: normal flush and teardown beacon."""

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession

from lifehub.activity.schemas import ActivityFlushRequest, ActivityFlushResponse, BeaconRequest
from lifehub.activity.service import check_activity_date, record_activity
from lifehub.auth.dependencies import Principal, get_current_user
from lifehub.config import get_settings
from lifehub.database import get_session
from lifehub.referrals.activation import evaluate_activation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/activity", tags=["Activity"])


async def _flush(db: AsyncSession, user_id: str, activity_date: date, minutes: int) -> ActivityFlushResponse:
    """Log minutes and run activation in one transaction."""
    try:
        check_activity_date(activity_date)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    settings = get_settings()
    try:
        recorded = await record_activity(db, user_id, activity_date, minutes)
        result = await evaluate_activation(
            db,
            user_id,
            min_days=settings.activation_min_days,
            min_minutes=settings.activation_min_minutes,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    return ActivityFlushResponse(
        recorded=recorded,
        referred=result.referred,
        is_active=result.is_active,
        newly_activated=result.newly_activated,
        active_days=result.active_days,
        total_time_minutes=result.total_time_minutes,
        bonus_weeks=result.bonus_weeks,
    )


@router.post("", response_model=ActivityFlushResponse)
async def flush_activity(
    body: ActivityFlushRequest,
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ActivityFlushResponse:
    """Add tracked minutes for a day and re-evaluate referral activation."""
    return await _flush(db, user.user_id, body.activity_date, body.minutes)


@router.post("/beacon", status_code=202)
async def activity_beacon(
    body: BeaconRequest,
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> Response:
    """Best-effort teardown flush. No response body."""
    if body.user_id != user.user_id:
        raise HTTPException(status_code=403, detail="Beacon user does not match token")
    await _flush(db, user.user_id, body.activity_date, body.time_spent_minutes)
    return Response(status_code=202)
