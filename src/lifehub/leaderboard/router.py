"""Leaderboard API: ranked views and the admin aggregation trigger."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from lifehub.auth.dependencies import Principal, get_optional_user, require_admin
from lifehub.config import get_settings
from lifehub.database import get_session
from lifehub.leaderboard.aggregator import run_aggregation
from lifehub.leaderboard.schemas import AggregationResponse, LeaderboardResponse
from lifehub.leaderboard.service import get_leaderboard

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Leaderboard"])


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(
    period: Literal["today", "month", "year", "all"] = Query("all"),
    type: Literal["stars", "likes", "activity"] = Query("stars"),  # noqa: A002
    limit: int = Query(100, ge=1, le=100),
    user: Principal | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_session),
) -> LeaderboardResponse:
    """Ranked aggregates for the current day, month, year or all time."""
    data = await get_leaderboard(
        db, period, type, limit=limit, current_user_id=user.user_id if user else None,
    )
    return LeaderboardResponse(**data)


@router.post("/admin/leaderboard/aggregate", response_model=AggregationResponse)
async def trigger_aggregation(
    _admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> AggregationResponse:
    """Rebuild the leaderboard aggregates now.

    Returns 200 with the run result, including partial failures; 500 only
    if the run could not start.
    """
    settings = get_settings()
    try:
        result = await run_aggregation(
            db,
            batch_size=settings.leaderboard_batch_size,
            timeout=settings.leaderboard_job_timeout_seconds,
        )
    except SQLAlchemyError as e:
        logger.exception("Leaderboard aggregation could not run")
        raise HTTPException(status_code=500, detail="Aggregation failed") from e
    return AggregationResponse(**asdict(result))
