"""Leaderboard aggregation arq worker, full rebuild every 15 minutes."""

from __future__ import annotations

import logging
from dataclasses import asdict

from arq import cron
from arq.connections import RedisSettings
from sqlalchemy.ext.asyncio import AsyncSession

from lifehub.config import get_settings
from lifehub.database import close_db, get_session, init_db
from lifehub.leaderboard.aggregator import run_aggregation

logger = logging.getLogger(__name__)


async def _get_db_session() -> AsyncSession:
    """Get a database session for the worker."""
    async for session in get_session():
        return session
    raise RuntimeError("Failed to get database session")


async def aggregate_leaderboard(ctx: dict) -> dict:  # type: ignore[type-arg]
    """Rebuild daily/monthly/yearly/all-time aggregates."""
    settings = get_settings()
    db = await _get_db_session()
    try:
        result = await run_aggregation(
            db,
            batch_size=settings.leaderboard_batch_size,
            timeout=settings.leaderboard_job_timeout_seconds,
        )
        if not result.success:
            logger.warning(
                "Leaderboard aggregation partial: %d/%d written, %d failed batch(es), timed_out=%s",
                result.records_written, result.records_total, result.failed_batches, result.timed_out,
            )
        return asdict(result)
    finally:
        await db.close()


async def leaderboard_startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize the DB engine on worker startup. arq owns ctx["redis"]."""
    await init_db(get_settings().database_url)
    logger.info("Leaderboard worker started")


async def leaderboard_shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    await close_db()
    logger.info("Leaderboard worker shut down")


class LeaderboardWorkerSettings:
    """arq worker settings for leaderboard aggregation."""

    functions = [aggregate_leaderboard]
    cron_jobs = [
        cron(aggregate_leaderboard, minute={0, 15, 30, 45}, unique=True),
    ]
    on_startup = leaderboard_startup
    on_shutdown = leaderboard_shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
    max_jobs = 1
    job_timeout = get_settings().leaderboard_job_timeout_seconds + 60
