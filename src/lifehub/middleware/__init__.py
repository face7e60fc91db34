"""Middleware registration."""

from fastapi import FastAPI

from lifehub.config import Settings
from lifehub.middleware.cors import setup_cors
from lifehub.middleware.error_handler import setup_error_handlers
from lifehub.middleware.logging import setup_logging
from lifehub.middleware.rate_limit import RateLimitMiddleware
from lifehub.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register middleware. Starlette runs them in reverse-add order, so CORS
    (added last) is outermost and also wraps 429 responses.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
