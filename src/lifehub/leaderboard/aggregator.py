"""Leaderboard aggregation job.

Rebuilds `leaderboard_aggregates` for the currently open daily, monthly,
yearly and all-time periods from three upstream sources:

1. all-time star totals (user_stars)
2. "like" reactions, attributed to the author of the liked post
3. per-day habit/task/star counters (user_daily_activity)

Activity score weights: like 2, habit 5, task 3, star earned 1.

All-time `total_stars` is the star ledger total; windowed `total_stars`
is the sum of `stars_earned` over the window. Rows where every summed
field is zero are not written.

The write is an upsert per (user_id, period_type, period_key) in batches,
each batch its own transaction. Rows whose values did not change are left
untouched, so rerunning without new events is a no-op.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from lifehub.db.models import (
    AchievementPost,
    LeaderboardAggregate,
    PostReaction,
    UserDailyActivity,
    UserStars,
)
from lifehub.db.upsert import insert_for
from lifehub.leaderboard.periods import PERIOD_TYPES, current_periods, period_keys_for
from lifehub.timeutils import utcnow

logger = logging.getLogger(__name__)

LIKE_POINTS = 2
HABIT_POINTS = 5
TASK_POINTS = 3
STAR_POINTS = 1

DEFAULT_BATCH_SIZE = 100

SUMMED_FIELDS = (
    "total_stars",
    "total_likes",
    "total_activity_score",
    "habits_completed",
    "tasks_completed",
)


# ---------------------------------------------------------------------------
# Source records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StarTotal:
    user_id: str
    total_stars: int


@dataclass(frozen=True)
class LikeEvent:
    """A like, already attributed to the author of the liked post."""

    author_id: str
    created_at: datetime


@dataclass(frozen=True)
class DailyActivity:
    user_id: str
    activity_date: date
    habits_completed: int = 0
    tasks_completed: int = 0
    stars_earned: int = 0


@dataclass
class Sources:
    stars: list[StarTotal]
    likes: list[LikeEvent]
    activity: list[DailyActivity]


@dataclass
class AggregateRow:
    user_id: str
    period_type: str
    period_key: str
    total_stars: int = 0
    total_likes: int = 0
    total_activity_score: int = 0
    habits_completed: int = 0
    tasks_completed: int = 0

    def is_empty(self) -> bool:
        return all(getattr(self, name) == 0 for name in SUMMED_FIELDS)


@dataclass
class AggregationResult:
    success: bool
    records_written: int
    records_total: int
    failed_batches: int = 0
    timed_out: bool = False
    periods: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Pure aggregation
# ---------------------------------------------------------------------------


def aggregate(
    stars: list[StarTotal],
    likes: list[LikeEvent],
    activity: list[DailyActivity],
    now: datetime,
) -> list[AggregateRow]:
    """Bucket every source record into the current periods it falls in.

    Output is ordered by period type (daily, monthly, yearly, all) and
    then user_id.
    """
    periods = current_periods(now)
    buckets: dict[tuple[str, str], dict[str, AggregateRow]] = {p: {} for p in periods}

    def row_for(period: tuple[str, str], user_id: str) -> AggregateRow:
        rows = buckets[period]
        if user_id not in rows:
            rows[user_id] = AggregateRow(user_id=user_id, period_type=period[0], period_key=period[1])
        return rows[user_id]

    def matching(keys: dict[str, str]) -> list[tuple[str, str]]:
        return [p for p in periods if keys[p[0]] == p[1]]

    all_time = next(p for p in periods if p[0] == "all")
    for star in stars:
        row_for(all_time, star.user_id).total_stars = star.total_stars

    for like in likes:
        for period in matching(period_keys_for(like.created_at)):
            row = row_for(period, like.author_id)
            row.total_likes += 1
            row.total_activity_score += LIKE_POINTS

    for day in activity:
        points = (
            day.habits_completed * HABIT_POINTS
            + day.tasks_completed * TASK_POINTS
            + day.stars_earned * STAR_POINTS
        )
        for period in matching(period_keys_for(day.activity_date)):
            row = row_for(period, day.user_id)
            row.habits_completed += day.habits_completed
            row.tasks_completed += day.tasks_completed
            row.total_activity_score += points
            if period[0] != "all":
                row.total_stars += day.stars_earned

    order = {period_type: i for i, period_type in enumerate(PERIOD_TYPES)}
    out = [row for rows in buckets.values() for row in rows.values() if not row.is_empty()]
    out.sort(key=lambda r: (order[r.period_type], r.user_id))
    return out


# ---------------------------------------------------------------------------
# I/O
# ---------------------------------------------------------------------------


async def load_sources(db: AsyncSession) -> Sources:
    """Read the three upstream sources."""
    stars_result = await db.execute(select(UserStars.user_id, UserStars.total_stars))
    stars = [StarTotal(user_id=r.user_id, total_stars=r.total_stars or 0) for r in stars_result]

    likes_result = await db.execute(
        select(AchievementPost.user_id, PostReaction.created_at)
        .join(AchievementPost, AchievementPost.id == PostReaction.post_id)
        .where(PostReaction.reaction_type == "like")
    )
    likes = [LikeEvent(author_id=r.user_id, created_at=r.created_at) for r in likes_result]

    activity_result = await db.execute(
        select(
            UserDailyActivity.user_id,
            UserDailyActivity.activity_date,
            UserDailyActivity.habits_completed,
            UserDailyActivity.tasks_completed,
            UserDailyActivity.stars_earned,
        )
    )
    activity = [
        DailyActivity(
            user_id=r.user_id,
            activity_date=r.activity_date,
            habits_completed=r.habits_completed or 0,
            tasks_completed=r.tasks_completed or 0,
            stars_earned=r.stars_earned or 0,
        )
        for r in activity_result
    ]
    return Sources(stars=stars, likes=likes, activity=activity)


async def upsert_batch(db: AsyncSession, rows: list[AggregateRow], now: datetime) -> None:
    """Upsert one batch. Unchanged rows keep their updated_at."""
    stmt = insert_for(db, LeaderboardAggregate).values([
        {
            "user_id": r.user_id,
            "period_type": r.period_type,
            "period_key": r.period_key,
            "total_stars": r.total_stars,
            "total_likes": r.total_likes,
            "total_activity_score": r.total_activity_score,
            "habits_completed": r.habits_completed,
            "tasks_completed": r.tasks_completed,
            "updated_at": now,
        }
        for r in rows
    ])
    table = LeaderboardAggregate.__table__
    set_ = {name: stmt.excluded[name] for name in SUMMED_FIELDS}
    set_["updated_at"] = stmt.excluded.updated_at
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "period_type", "period_key"],
        set_=set_,
        where=or_(*(table.c[name] != stmt.excluded[name] for name in SUMMED_FIELDS)),
    )
    await db.execute(stmt)


@dataclass
class WriteProgress:
    records_total: int = 0
    records_written: int = 0
    failed_batches: int = 0


async def write_aggregates(
    db: AsyncSession,
    rows: list[AggregateRow],
    now: datetime,
    batch_size: int = DEFAULT_BATCH_SIZE,
    progress: WriteProgress | None = None,
) -> WriteProgress:
    """Write rows in batches, one transaction each.

    A failing batch is rolled back and logged; later batches still run.
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    progress = progress or WriteProgress(records_total=len(rows))

    for start in range(0, len(rows), batch_size):
        chunk = rows[start:start + batch_size]
        try:
            await upsert_batch(db, chunk, now)
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            progress.failed_batches += 1
            logger.exception("Leaderboard batch at offset %d (%d rows) failed", start, len(chunk))
            continue
        progress.records_written += len(chunk)

    return progress


async def run_aggregation(
    db: AsyncSession,
    now: datetime | None = None,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    timeout: float | None = None,
) -> AggregationResult:
    """Load, aggregate and write one run.

    With a timeout, the run stops at the deadline and reports what was
    written so far with ``timed_out=True``.
    """
    now = now or utcnow()
    periods = [f"{period_type}:{key}" for period_type, key in current_periods(now)]
    progress = WriteProgress()

    async def _run() -> None:
        sources = await load_sources(db)
        rows = aggregate(sources.stars, sources.likes, sources.activity, now)
        progress.records_total = len(rows)
        await write_aggregates(db, rows, now, batch_size, progress)

    timed_out = False
    try:
        await asyncio.wait_for(_run(), timeout=timeout)
    except asyncio.TimeoutError:
        timed_out = True
        await db.rollback()
        logger.warning(
            "Leaderboard aggregation timed out after %ss: %d/%d records written",
            timeout, progress.records_written, progress.records_total,
        )

    success = (
        not timed_out
        and progress.failed_batches == 0
        and progress.records_written == progress.records_total
    )
    logger.info(
        "Leaderboard aggregation %s: %d/%d records, %d failed batch(es)",
        "complete" if success else "partial",
        progress.records_written, progress.records_total, progress.failed_batches,
    )
    return AggregationResult(
        success=success,
        records_written=progress.records_written,
        records_total=progress.records_total,
        failed_batches=progress.failed_batches,
        timed_out=timed_out,
        periods=periods,
    )
