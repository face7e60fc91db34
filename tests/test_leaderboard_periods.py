"""Tests for leaderboard period keys."""

from datetime import date, datetime, timedelta, timezone

import pytest

from lifehub.leaderboard.periods import current_periods, period_key, period_keys_for


def test_current_periods_order_and_format():
    now = datetime(2025, 1, 5, 9, 30, tzinfo=timezone.utc)
    assert current_periods(now) == [
        ("daily", "2025-01-05"),
        ("monthly", "2025-01"),
        ("yearly", "2025"),
        ("all", "all"),
    ]


def test_keys_use_utc_day():
    # 23:30 in UTC-5 is already the next day in UTC
    ts = datetime(2025, 12, 31, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
    assert period_keys_for(ts) == {
        "daily": "2026-01-01",
        "monthly": "2026-01",
        "yearly": "2026",
        "all": "all",
    }


def test_naive_datetimes_are_utc():
    assert period_key("daily", datetime(2025, 3, 15, 23, 59)) == "2025-03-15"


def test_plain_dates():
    assert period_keys_for(date(2024, 2, 29))["monthly"] == "2024-02"


def test_unknown_period_type():
    with pytest.raises(ValueError):
        period_key("weekly", date(2025, 1, 1))
