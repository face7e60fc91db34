"""Pydantic response models for leaderboard endpoints."""

from __future__ import annotations

from pydantic import BaseModel


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    value: int
    is_current_user: bool = False


class LeaderboardResponse(BaseModel):
    period_type: str
    period_key: str
    type: str
    entries: list[LeaderboardEntry]
    current_user: LeaderboardEntry | None = None


class AggregationResponse(BaseModel):
    success: bool
    records_written: int
    records_total: int
    failed_batches: int = 0
    timed_out: bool = False
    periods: list[str] = []
