"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from lifehub.activity.router import router as activity_router
from lifehub.config import get_settings
from lifehub.database import close_db, init_db
from lifehub.health.router import router as health_router
from lifehub.leaderboard.router import router as leaderboard_router
from lifehub.middleware import setup_middleware
from lifehub.redis_client import close_redis, init_redis
from lifehub.referrals.router import admin_router as referrals_admin_router
from lifehub.referrals.router import router as referrals_router


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Open DB and Redis on startup, close them on shutdown."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="LifeHub Rewards API",
        description="Referral activity, rewards, withdrawals and leaderboard aggregation for LifeHub",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(activity_router)
    app.include_router(referrals_router)
    app.include_router(referrals_admin_router)
    app.include_router(leaderboard_router)

    return app


app = create_app()
