"""Daily activity log: additive per-day minute counters."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lifehub.db.models import ReferralActivityLog
from lifehub.db.upsert import insert_for
from lifehub.timeutils import utc_date, utcnow

logger = logging.getLogger(__name__)

# Sessions that cross midnight are dated by their start day
ACCEPTED_PAST_DAYS = 1


def check_activity_date(activity_date: date, now: datetime | None = None) -> None:
    """Reject days other than today or yesterday in UTC. Raises ValueError."""
    today = utc_date(now or utcnow())
    earliest = today - timedelta(days=ACCEPTED_PAST_DAYS)
    if not earliest <= activity_date <= today:
        raise ValueError(
            f"activity_date must be between {earliest.isoformat()} and {today.isoformat()} (UTC)"
        )


async def record_activity(
    db: AsyncSession,
    user_id: str,
    activity_date: date,
    minutes: int,
) -> bool:
    """Add minutes to the (user, day) row, creating it if absent.

    Returns False for non-positive minutes (nothing written). The write is
    `time_spent_minutes += minutes`, never an overwrite, so flushes from
    several devices commute.
    """
    if minutes <= 0:
        return False

    stmt = insert_for(db, ReferralActivityLog).values(
        user_id=user_id,
        activity_date=activity_date,
        time_spent_minutes=minutes,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "activity_date"],
        set_={
            "time_spent_minutes": ReferralActivityLog.time_spent_minutes + stmt.excluded.time_spent_minutes,
        },
    )
    await db.execute(stmt)
    logger.debug("Recorded %d active minutes for %s on %s", minutes, user_id, activity_date)
    return True


async def summarize_activity(db: AsyncSession, user_id: str) -> tuple[int, int]:
    """Return (distinct active days, total minutes) over the user's full history."""
    result = await db.execute(
        select(
            func.count(func.distinct(ReferralActivityLog.activity_date)),
            func.coalesce(func.sum(ReferralActivityLog.time_spent_minutes), 0),
        ).where(ReferralActivityLog.user_id == user_id)
    )
    unique_days, total_minutes = result.one()
    return int(unique_days), int(total_minutes)
