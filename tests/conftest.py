"""Shared test fixtures.

Tests run against in-memory SQLite (aiosqlite + StaticPool) with the schema
created from the ORM metadata; Redis is not initialised, so the rate
limiter passes requests through.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import AsyncGenerator
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import StaticPool

from lifehub.config import get_settings
from lifehub.database import close_db, get_engine, get_session, init_db
from lifehub.db.base import Base
from lifehub.db.models import Referral, ReferralActivityLog, Subscription, UserRole, UserWallet

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

REFERRER = "user-referrer"
REFERRED = "user-referred"
ADMIN = "user-admin"


def _ensure_test_keys() -> tuple[str, str]:
    """Generate an RSA key pair for signing test tokens (once per process)."""
    existing = os.environ.get("LIFEHUB_JWT_PRIVATE_KEY_PATH")
    if existing and os.path.exists(existing):
        return existing, os.environ["LIFEHUB_JWT_PUBLIC_KEY_PATH"]

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    tmpdir = tempfile.mkdtemp(prefix="lifehub_test_keys_")
    private_path = os.path.join(tmpdir, "jwt_private.pem")
    public_path = os.path.join(tmpdir, "jwt_public.pem")
    with open(private_path, "wb") as f:
        f.write(key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ))
    with open(public_path, "wb") as f:
        f.write(key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ))

    os.environ["LIFEHUB_JWT_PRIVATE_KEY_PATH"] = private_path
    os.environ["LIFEHUB_JWT_PUBLIC_KEY_PATH"] = public_path
    os.environ["LIFEHUB_DATABASE_URL"] = TEST_DATABASE_URL
    get_settings.cache_clear()
    from lifehub.auth.jwt import reset_keys
    reset_keys()
    return private_path, public_path


_ensure_test_keys()


def make_token(user_id: str) -> str:
    from lifehub.auth.jwt import create_access_token
    return create_access_token(user_id)


def auth_headers(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[None, None]:
    """Fresh in-memory database with the full schema."""
    await init_db(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_db()


@pytest_asyncio.fixture
async def db_session(db_engine: None) -> AsyncGenerator[AsyncSession, None]:
    """A session on the test database. Commit seeds before calling the API."""
    async for session in get_session():
        yield session
        break


@pytest_asyncio.fixture
async def client(db_engine: None) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client over the ASGI app, sharing the test database."""
    from lifehub.main import create_app

    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def now() -> datetime:
    return datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------


async def seed_referral(
    db: AsyncSession,
    referrer_id: str = REFERRER,
    referred_id: str = REFERRED,
    **fields: object,
) -> Referral:
    referral = Referral(referrer_id=referrer_id, referred_id=referred_id, **fields)
    db.add(referral)
    await db.flush()
    return referral


async def seed_activity(db: AsyncSession, user_id: str, days: list[tuple[date, int]]) -> None:
    for activity_date, minutes in days:
        db.add(ReferralActivityLog(user_id=user_id, activity_date=activity_date, time_spent_minutes=minutes))
    await db.flush()


async def seed_subscription(db: AsyncSession, user_id: str, **fields: object) -> Subscription:
    subscription = Subscription(user_id=user_id, **fields)
    db.add(subscription)
    await db.flush()
    return subscription


async def seed_wallet(db: AsyncSession, user_id: str, balance: str) -> UserWallet:
    amount = Decimal(balance)
    wallet = UserWallet(
        user_id=user_id,
        balance_rub=amount,
        bonus_weeks_earned=0,
        total_earned_rub=amount,
        total_withdrawn_rub=Decimal("0"),
    )
    db.add(wallet)
    await db.flush()
    return wallet


async def seed_admin(db: AsyncSession, user_id: str = ADMIN) -> None:
    db.add(UserRole(user_id=user_id, role="admin"))
    await db.flush()


