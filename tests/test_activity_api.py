"""Activity flush and beacon endpoints."""

from datetime import timedelta

import pytest
from httpx import AsyncClient

from lifehub.timeutils import utc_date, utcnow
from tests.conftest import REFERRED, REFERRER, auth_headers, seed_activity, seed_referral

TODAY = utc_date(utcnow())


@pytest.mark.asyncio
async def test_flush_requires_auth(client: AsyncClient) -> None:
    response = await client.post("/api/v1/activity", json={"activity_date": TODAY.isoformat(), "minutes": 5})
    assert response.status_code == 401
    assert response.json()["detail"] == "Not authenticated"


@pytest.mark.asyncio
async def test_flush_rejects_bad_token(client: AsyncClient) -> None:
    response = await client.post(
        "/api/v1/activity",
        json={"activity_date": TODAY.isoformat(), "minutes": 5},
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_flush_for_unreferred_user(client: AsyncClient) -> None:
    response = await client.post(
        "/api/v1/activity",
        json={"activity_date": TODAY.isoformat(), "minutes": 5},
        headers=auth_headers("loner"),
    )
    assert response.status_code == 200
    data = response.json()
    assert data["recorded"] is True
    assert data["referred"] is False


@pytest.mark.asyncio
async def test_zero_minutes_not_recorded(client: AsyncClient, db_session) -> None:
    await seed_referral(db_session)
    await db_session.commit()

    response = await client.post(
        "/api/v1/activity",
        json={"activity_date": TODAY.isoformat(), "minutes": 0},
        headers=auth_headers(REFERRED),
    )
    assert response.status_code == 200
    data = response.json()
    assert data["recorded"] is False
    assert data["active_days"] == 0


@pytest.mark.asyncio
async def test_minutes_out_of_range(client: AsyncClient) -> None:
    response = await client.post(
        "/api/v1/activity",
        json={"activity_date": TODAY.isoformat(), "minutes": 1441},
        headers=auth_headers(REFERRED),
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_seventh_day_activates_referral(client: AsyncClient, db_session) -> None:
    await seed_referral(db_session)
    await seed_activity(db_session, REFERRED, [(TODAY - timedelta(days=i), 5) for i in range(1, 7)])
    await db_session.commit()

    response = await client.post(
        "/api/v1/activity",
        json={"activity_date": TODAY.isoformat(), "minutes": 5},
        headers=auth_headers(REFERRED),
    )

    assert response.status_code == 200
    data = response.json()
    assert data["newly_activated"] is True
    assert data["is_active"] is True
    assert data["active_days"] == 7
    assert data["total_time_minutes"] == 35
    assert data["bonus_weeks"] == 1

    wallet = (await client.get("/api/v1/referrals/wallet", headers=auth_headers(REFERRER))).json()
    assert wallet["bonus_weeks_earned"] == 1

    again = await client.post(
        "/api/v1/activity",
        json={"activity_date": TODAY.isoformat(), "minutes": 5},
        headers=auth_headers(REFERRED),
    )
    assert again.json()["newly_activated"] is False
    assert again.json()["bonus_weeks"] is None


@pytest.mark.asyncio
async def test_beacon_records_minutes(client: AsyncClient, db_session) -> None:
    await seed_referral(db_session)
    await db_session.commit()

    response = await client.post(
        "/api/v1/activity/beacon",
        json={"user_id": REFERRED, "activity_date": TODAY.isoformat(), "time_spent_minutes": 12},
        headers=auth_headers(REFERRED),
    )
    assert response.status_code == 202
    assert response.content == b""

    flushed = await client.post(
        "/api/v1/activity",
        json={"activity_date": TODAY.isoformat(), "minutes": 1},
        headers=auth_headers(REFERRED),
    )
    assert flushed.json()["total_time_minutes"] == 13
    assert flushed.json()["active_days"] == 1


@pytest.mark.asyncio
async def test_beacon_user_mismatch(client: AsyncClient) -> None:
    response = await client.post(
        "/api/v1/activity/beacon",
        json={"user_id": "someone-else", "activity_date": TODAY.isoformat(), "time_spent_minutes": 3},
        headers=auth_headers(REFERRED),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_yesterday_is_accepted(client: AsyncClient) -> None:
    yesterday = TODAY - timedelta(days=1)
    response = await client.post(
        "/api/v1/activity",
        json={"activity_date": yesterday.isoformat(), "minutes": 5},
        headers=auth_headers("loner"),
    )
    assert response.status_code == 200
    assert response.json()["recorded"] is True


@pytest.mark.asyncio
@pytest.mark.parametrize("activity_date", ["1990-01-01", "9999-12-31"])
async def test_out_of_window_date_rejected(client: AsyncClient, db_session, activity_date: str) -> None:
    await seed_referral(db_session)
    await db_session.commit()

    response = await client.post(
        "/api/v1/activity",
        json={"activity_date": activity_date, "minutes": 5},
        headers=auth_headers(REFERRED),
    )
    assert response.status_code == 400
    assert "activity_date" in response.json()["detail"]

    progress = await client.post(
        "/api/v1/activity",
        json={"activity_date": TODAY.isoformat(), "minutes": 1},
        headers=auth_headers(REFERRED),
    )
    assert progress.json()["active_days"] == 1
    assert progress.json()["total_time_minutes"] == 1


@pytest.mark.asyncio
async def test_beacon_rejects_stale_date(client: AsyncClient) -> None:
    stale = TODAY - timedelta(days=2)
    response = await client.post(
        "/api/v1/activity/beacon",
        json={"user_id": REFERRED, "activity_date": stale.isoformat(), "time_spent_minutes": 3},
        headers=auth_headers(REFERRED),
    )
    assert response.status_code == 400
