"""CORS for the LifeHub web and Telegram mini-app clients."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from lifehub.config import Settings


def setup_cors(app: FastAPI, settings: Settings) -> None:
    """The API only serves GET/POST; the tracker beacon posts JSON cross-origin."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-Id"],
        expose_headers=["X-Request-Id", "X-RateLimit-Remaining", "X-RateLimit-Limit"],
    )
