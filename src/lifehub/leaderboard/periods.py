"""Leaderboard period keys (UTC).

    daily   -> "YYYY-MM-DD"
    monthly -> "YYYY-MM"
    yearly  -> "YYYY"
    all     -> "all"
"""

from __future__ import annotations

from datetime import date, datetime

from lifehub.timeutils import utc_date

PERIOD_TYPES = ("daily", "monthly", "yearly", "all")
ALL_TIME_KEY = "all"

# Public query names used by the leaderboard view
VIEW_PERIODS: dict[str, str] = {
    "today": "daily",
    "month": "monthly",
    "year": "yearly",
    "all": "all",
}


def _as_date(ts: date | datetime) -> date:
    if isinstance(ts, datetime):
        return utc_date(ts)
    return ts


def period_key(period_type: str, ts: date | datetime) -> str:
    """Key of the period instance of `period_type` containing ts."""
    day = _as_date(ts)
    if period_type == "daily":
        return day.isoformat()
    if period_type == "monthly":
        return f"{day.year:04d}-{day.month:02d}"
    if period_type == "yearly":
        return f"{day.year:04d}"
    if period_type == "all":
        return ALL_TIME_KEY
    raise ValueError(f"Unknown period type: {period_type}")


def period_keys_for(ts: date | datetime) -> dict[str, str]:
    """Every period key an event at ts belongs to."""
    return {period_type: period_key(period_type, ts) for period_type in PERIOD_TYPES}


def current_periods(now: datetime) -> list[tuple[str, str]]:
    """The currently open instance of each period type, in fixed order."""
    keys = period_keys_for(now)
    return [(period_type, keys[period_type]) for period_type in PERIOD_TYPES]
