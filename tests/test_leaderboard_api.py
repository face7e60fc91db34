"""Leaderboard view and admin aggregation trigger."""

import pytest
from httpx import AsyncClient

from lifehub.db.models import AchievementPost, PostReaction, UserStars
from lifehub.timeutils import utcnow
from tests.conftest import ADMIN, auth_headers, seed_admin


async def _seed(db_session) -> None:
    now = utcnow()
    db_session.add_all([
        UserStars(user_id="alice", total_stars=30),
        UserStars(user_id="bob", total_stars=70),
        AchievementPost(id="post-1", user_id="alice", created_at=now),
        PostReaction(post_id="post-1", user_id="bob", reaction_type="like", created_at=now),
    ])
    await seed_admin(db_session)
    await db_session.commit()


@pytest.mark.asyncio
async def test_aggregate_requires_auth(client: AsyncClient) -> None:
    response = await client.post("/api/v1/admin/leaderboard/aggregate")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_aggregate_requires_admin(client: AsyncClient) -> None:
    response = await client.post("/api/v1/admin/leaderboard/aggregate", headers=auth_headers("alice"))
    assert response.status_code == 403
    assert response.json()["detail"] == "Admin access required"


@pytest.mark.asyncio
async def test_aggregate_then_read(client: AsyncClient, db_session) -> None:
    await _seed(db_session)

    response = await client.post("/api/v1/admin/leaderboard/aggregate", headers=auth_headers(ADMIN))
    assert response.status_code == 200
    result = response.json()
    assert result["success"] is True
    assert result["records_written"] == result["records_total"] > 0
    assert [p.split(":")[0] for p in result["periods"]] == ["daily", "monthly", "yearly", "all"]

    stars = (await client.get("/api/v1/leaderboard", params={"period": "all", "type": "stars"})).json()
    assert stars["period_type"] == "all"
    assert [(e["rank"], e["user_id"], e["value"]) for e in stars["entries"]] == [
        (1, "bob", 70),
        (2, "alice", 30),
    ]
    assert stars["current_user"] is None

    likes = (
        await client.get(
            "/api/v1/leaderboard",
            params={"period": "today", "type": "likes"},
            headers=auth_headers("alice"),
        )
    ).json()
    assert likes["period_type"] == "daily"
    assert likes["entries"] == [{"rank": 1, "user_id": "alice", "value": 1, "is_current_user": True}]
    assert likes["current_user"]["rank"] == 1


@pytest.mark.asyncio
async def test_leaderboard_empty_before_first_run(client: AsyncClient) -> None:
    response = await client.get("/api/v1/leaderboard", params={"period": "month", "type": "activity"})
    assert response.status_code == 200
    assert response.json()["entries"] == []


@pytest.mark.asyncio
async def test_leaderboard_limit_bounds(client: AsyncClient) -> None:
    response = await client.get("/api/v1/leaderboard", params={"limit": 0})
    assert response.status_code == 422
