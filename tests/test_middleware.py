"""Middleware tests: request ID, rate limiting, CORS and error responses."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError

from lifehub.middleware.rate_limit import route_group


def _fake_redis(count: int) -> MagicMock:
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[count, True])
    redis = MagicMock()
    redis.pipeline.return_value = pipe
    return redis


@pytest.mark.asyncio
async def test_request_id_generated(client: AsyncClient) -> None:
    """Request ID is auto-generated when not provided."""
    response = await client.get("/health")
    assert len(response.headers["x-request-id"]) == 36  # UUID format


@pytest.mark.asyncio
async def test_request_id_preserved(client: AsyncClient) -> None:
    """Custom request ID is echoed back in response."""
    response = await client.get("/health", headers={"X-Request-Id": "test-abc-123"})
    assert response.headers["x-request-id"] == "test-abc-123"


@pytest.mark.asyncio
async def test_oversized_request_id_replaced(client: AsyncClient) -> None:
    response = await client.get("/health", headers={"X-Request-Id": "x" * 500})
    assert len(response.headers["x-request-id"]) == 36


def test_route_groups() -> None:
    assert route_group("/api/v1/activity/beacon") == "activity"
    assert route_group("/api/v1/admin/leaderboard/aggregate") == "admin"
    assert route_group("/api/v1/leaderboard") == "api"


@pytest.mark.asyncio
async def test_rate_limit_headers(client: AsyncClient) -> None:
    """Rate limit headers are present on non-exempt endpoints."""
    with patch("lifehub.middleware.rate_limit.get_redis", return_value=_fake_redis(3)):
        response = await client.get("/api/v1/leaderboard")
    assert response.status_code == 200
    assert response.headers["x-ratelimit-remaining"] == "97"
    assert response.headers["x-ratelimit-limit"] == "100"


@pytest.mark.asyncio
async def test_rate_limit_blocks_excess(client: AsyncClient) -> None:
    """The 101st request in a window returns 429 with Retry-After."""
    with patch("lifehub.middleware.rate_limit.get_redis", return_value=_fake_redis(101)):
        response = await client.get("/api/v1/leaderboard")
    assert response.status_code == 429
    assert 1 <= int(response.headers["retry-after"]) <= 60
    assert response.json()["detail"].startswith("Rate limit exceeded")


@pytest.mark.asyncio
async def test_rate_limit_keys_by_route_group(client: AsyncClient) -> None:
    redis = _fake_redis(1)
    with patch("lifehub.middleware.rate_limit.get_redis", return_value=redis):
        await client.post("/api/v1/activity", json={})
    key = redis.pipeline.return_value.incr.call_args.args[0]
    assert key.startswith("ratelimit:activity:")


@pytest.mark.asyncio
async def test_probes_exempt_from_rate_limit(client: AsyncClient) -> None:
    redis = _fake_redis(10_000)
    with patch("lifehub.middleware.rate_limit.get_redis", return_value=redis):
        response = await client.get("/health")
    assert response.status_code == 200
    redis.pipeline.assert_not_called()


@pytest.mark.asyncio
async def test_redis_outage_lets_requests_through(client: AsyncClient) -> None:
    redis = _fake_redis(0)
    redis.pipeline.return_value.execute = AsyncMock(side_effect=RedisConnectionError("down"))
    with patch("lifehub.middleware.rate_limit.get_redis", return_value=redis):
        response = await client.get("/api/v1/leaderboard")
    assert response.status_code == 200
    assert "x-ratelimit-limit" not in response.headers


@pytest.mark.asyncio
async def test_cors_preflight(client: AsyncClient) -> None:
    """CORS preflight returns access-control-allow-origin for configured origin."""
    response = await client.options(
        "/api/v1/activity/beacon",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "POST",
        },
    )
    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"


@pytest.mark.asyncio
async def test_404_returns_json(client: AsyncClient) -> None:
    """Unknown paths return 404 with JSON body."""
    response = await client.get("/nonexistent-path")
    assert response.status_code == 404
    assert response.headers["content-type"] == "application/json"
    assert response.json()["detail"] == "Not Found"


@pytest.mark.asyncio
async def test_validation_error_shape(client: AsyncClient) -> None:
    response = await client.get("/api/v1/leaderboard", params={"period": "decade"})
    assert response.status_code == 422
    data = response.json()
    assert data["detail"] == "Validation error"
    assert data["errors"]
