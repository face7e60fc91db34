"""Pydantic models for activity flush endpoints."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field


class ActivityFlushRequest(BaseModel):
    activity_date: date
    minutes: int = Field(ge=0, le=1440)


class BeaconRequest(BaseModel):
    """Teardown beacon payload; user_id must match the token subject."""

    user_id: str = Field(min_length=1, max_length=64)
    activity_date: date
    time_spent_minutes: int = Field(ge=0, le=1440)


class ActivityFlushResponse(BaseModel):
    recorded: bool
    referred: bool
    is_active: bool = False
    newly_activated: bool = False
    active_days: int = 0
    total_time_minutes: int = 0
    bonus_weeks: int | None = None
