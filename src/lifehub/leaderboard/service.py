"""Leaderboard reads over the precomputed aggregates."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lifehub.db.models import LeaderboardAggregate
from lifehub.leaderboard.periods import VIEW_PERIODS, period_key
from lifehub.timeutils import utcnow

VALUE_COLUMNS = {
    "stars": LeaderboardAggregate.total_stars,
    "likes": LeaderboardAggregate.total_likes,
    "activity": LeaderboardAggregate.total_activity_score,
}


def resolve_period(period: str, now: datetime) -> tuple[str, str]:
    """Map a view period ("today", "month", ...) to (period_type, period_key)."""
    period_type = VIEW_PERIODS.get(period)
    if period_type is None:
        raise ValueError(f"Unknown period: {period}")
    return period_type, period_key(period_type, now)


async def get_leaderboard(
    db: AsyncSession,
    period: str,
    lb_type: str,
    *,
    limit: int = 100,
    current_user_id: str | None = None,
    now: datetime | None = None,
) -> dict:
    """Top entries for the current instance of a period, plus the caller's rank."""
    column = VALUE_COLUMNS.get(lb_type)
    if column is None:
        raise ValueError(f"Unknown leaderboard type: {lb_type}")
    period_type, key = resolve_period(period, now or utcnow())

    result = await db.execute(
        select(LeaderboardAggregate.user_id, column.label("value"))
        .where(
            LeaderboardAggregate.period_type == period_type,
            LeaderboardAggregate.period_key == key,
        )
        .order_by(column.desc(), LeaderboardAggregate.user_id)
        .limit(limit)
    )
    entries = [
        {
            "rank": i + 1,
            "user_id": row.user_id,
            "value": row.value,
            "is_current_user": row.user_id == current_user_id,
        }
        for i, row in enumerate(result)
    ]

    current_user = next((e for e in entries if e["is_current_user"]), None)
    if current_user is None and current_user_id is not None:
        current_user = await get_user_rank(db, period_type, key, column, current_user_id)

    return {
        "period_type": period_type,
        "period_key": key,
        "type": lb_type,
        "entries": entries,
        "current_user": current_user,
    }


async def get_user_rank(db: AsyncSession, period_type: str, key: str, column, user_id: str) -> dict | None:
    """Rank of one user outside the top list: 1 + users with a strictly greater value."""
    result = await db.execute(
        select(column).where(
            LeaderboardAggregate.period_type == period_type,
            LeaderboardAggregate.period_key == key,
            LeaderboardAggregate.user_id == user_id,
        )
    )
    value = result.scalar_one_or_none()
    if value is None:
        return None

    ahead = await db.execute(
        select(func.count()).select_from(LeaderboardAggregate).where(
            LeaderboardAggregate.period_type == period_type,
            LeaderboardAggregate.period_key == key,
            column > value,
        )
    )
    return {
        "rank": int(ahead.scalar_one()) + 1,
        "user_id": user_id,
        "value": value,
        "is_current_user": True,
    }
