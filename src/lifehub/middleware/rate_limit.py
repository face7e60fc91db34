"""Redis-backed fixed-window rate limiting.

Requests are counted per client IP and route group. Tracker traffic
(activity flushes and beacons) gets its own bucket so a chatty client
tab cannot starve the rest of the API for the same IP. When Redis is not
initialised or unreachable the limiter lets requests through.
"""

import time
from typing import Any

from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from lifehub.redis_client import get_redis

# Probes are never limited
_EXEMPT_PATHS = frozenset({"/health", "/ready", "/version"})


def route_group(path: str) -> str:
    """Bucket name for a request path."""
    if path.startswith("/api/v1/activity"):
        return "activity"
    if path.startswith("/api/v1/admin"):
        return "admin"
    return "api"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Return 429 once a client exceeds `requests_per_window` in a route group."""

    def __init__(self, app: Any, requests_per_window: int = 100, window_seconds: int = 60) -> None:  # noqa: ANN401
        super().__init__(app)
        self.requests_per_window = requests_per_window
        self.window_seconds = window_seconds

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in _EXEMPT_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = int(time.time())
        window = now // self.window_seconds
        rate_key = f"ratelimit:{route_group(request.url.path)}:{client_ip}:{window}"

        try:
            redis = get_redis()
            pipe = redis.pipeline()
            pipe.incr(rate_key)
            pipe.expire(rate_key, self.window_seconds + 1)
            results: list[Any] = await pipe.execute()
        except (RuntimeError, RedisError):
            return await call_next(request)

        current_count: int = results[0]
        if current_count > self.requests_per_window:
            retry_after = self.window_seconds - (now % self.window_seconds)
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later."},
                headers={
                    "Retry-After": str(retry_after),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Limit": str(self.requests_per_window),
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self.requests_per_window - current_count))
        response.headers["X-RateLimit-Limit"] = str(self.requests_per_window)
        return response
