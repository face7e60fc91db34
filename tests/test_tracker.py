"""Tests for the client-side activity session tracker."""

import asyncio
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from lifehub.activity.tracker import ActivitySessionTracker, whole_minutes

T0 = datetime(2025, 3, 15, 10, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


def _tracker(clock: FakeClock, **kwargs):
    sink = AsyncMock()
    tracker = ActivitySessionTracker("u1", sink, clock=clock, **kwargs)
    return tracker, sink


class TestWholeMinutes:
    def test_floors(self):
        assert whole_minutes(timedelta(minutes=2, seconds=59)) == 2

    def test_never_negative(self):
        assert whole_minutes(timedelta(seconds=-30)) == 0


class TestSessionLifecycle:
    def test_first_touch_opens_session(self):
        clock = FakeClock()
        tracker, _ = _tracker(clock)
        assert tracker.is_open is False
        tracker.touch()
        assert tracker.is_open is True
        assert tracker.session_start == T0

    def test_rapid_touches_keep_single_session(self):
        clock = FakeClock()
        tracker, _ = _tracker(clock)
        tracker.touch()
        for _ in range(5):
            clock.advance(seconds=10)
            tracker.touch()
        assert tracker.session_start == T0
        assert tracker.last_activity == T0 + timedelta(seconds=50)

    @pytest.mark.asyncio
    async def test_idle_close_flushes_up_to_last_activity(self):
        clock = FakeClock()
        tracker, sink = _tracker(clock)
        tracker.touch()
        clock.advance(minutes=4, seconds=30)
        tracker.touch()
        clock.advance(minutes=2)  # idle period is not counted

        minutes = await tracker.close_idle_session()

        assert minutes == 4
        sink.assert_awaited_once_with("u1", date(2025, 3, 15), 4)
        assert tracker.is_open is False

    @pytest.mark.asyncio
    async def test_zero_minute_session_is_not_flushed(self):
        clock = FakeClock()
        tracker, sink = _tracker(clock)
        tracker.touch()
        clock.advance(seconds=45)
        tracker.touch()

        assert await tracker.close_idle_session() == 0
        sink.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_session_is_dated_by_its_start_day(self):
        clock = FakeClock(datetime(2025, 3, 15, 23, 58, tzinfo=timezone.utc))
        tracker, sink = _tracker(clock)
        tracker.touch()
        clock.advance(minutes=5)
        tracker.touch()

        await tracker.close_idle_session()
        sink.assert_awaited_once_with("u1", date(2025, 3, 15), 5)

    @pytest.mark.asyncio
    async def test_touch_after_close_opens_new_session(self):
        clock = FakeClock()
        tracker, _ = _tracker(clock)
        tracker.touch()
        clock.advance(minutes=3)
        tracker.touch()
        await tracker.close_idle_session()

        clock.advance(minutes=10)
        tracker.touch()
        assert tracker.session_start == T0 + timedelta(minutes=13)


class TestPeriodicSave:
    @pytest.mark.asyncio
    async def test_flush_elapsed_resets_start(self):
        clock = FakeClock()
        tracker, sink = _tracker(clock)
        tracker.touch()
        clock.advance(minutes=1, seconds=20)

        assert await tracker.flush_elapsed() == 1
        assert tracker.session_start == clock.now
        sink.assert_awaited_once_with("u1", date(2025, 3, 15), 1)

    @pytest.mark.asyncio
    async def test_idle_close_during_slow_save_does_not_double_count(self):
        clock = FakeClock()
        release = asyncio.Event()
        recorded: list[int] = []

        async def slow_sink(user_id, activity_date, minutes):
            recorded.append(minutes)
            if len(recorded) == 1:
                await release.wait()

        tracker = ActivitySessionTracker("u1", slow_sink, clock=clock)
        tracker.touch()
        clock.advance(minutes=5)
        tracker.touch()

        save = asyncio.create_task(tracker.flush_elapsed())
        await asyncio.sleep(0)
        assert await tracker.close_idle_session() == 0
        release.set()
        assert await save == 5

        assert sum(recorded) == 5
        assert tracker.is_open is False

    @pytest.mark.asyncio
    async def test_failed_save_restores_session_start(self):
        clock = FakeClock()
        tracker, sink = _tracker(clock)
        sink.side_effect = RuntimeError("offline")
        tracker.touch()
        clock.advance(minutes=2)

        with pytest.raises(RuntimeError):
            await tracker.flush_elapsed()
        assert tracker.session_start == T0

    @pytest.mark.asyncio
    async def test_save_then_idle_close_does_not_double_count(self):
        clock = FakeClock()
        tracker, sink = _tracker(clock)
        tracker.touch()
        clock.advance(minutes=3)
        tracker.touch()
        await tracker.flush_elapsed()
        clock.advance(minutes=2)
        tracker.touch()
        await tracker.close_idle_session()

        flushed = sum(call.args[2] for call in sink.await_args_list)
        assert flushed == 5

    @pytest.mark.asyncio
    async def test_flush_elapsed_without_session_is_noop(self):
        tracker, sink = _tracker(FakeClock())
        assert await tracker.flush_elapsed() == 0
        sink.assert_not_awaited()


class TestTeardown:
    def test_beacon_receives_remaining_minutes(self):
        clock = FakeClock()
        beacon = MagicMock()
        tracker = ActivitySessionTracker("u1", AsyncMock(), beacon=beacon, clock=clock)
        tracker.touch()
        clock.advance(minutes=7, seconds=10)
        tracker.touch()

        assert tracker.teardown() == 7
        beacon.assert_called_once_with("u1", date(2025, 3, 15), 7)
        assert tracker.is_open is False

    def test_beacon_failure_is_swallowed(self):
        clock = FakeClock()
        beacon = MagicMock(side_effect=OSError("page unloading"))
        tracker = ActivitySessionTracker("u1", AsyncMock(), beacon=beacon, clock=clock)
        tracker.touch()
        clock.advance(minutes=2)
        tracker.touch()

        assert tracker.teardown() == 2

    def test_teardown_without_session(self):
        beacon = MagicMock()
        tracker = ActivitySessionTracker("u1", AsyncMock(), beacon=beacon, clock=FakeClock())
        assert tracker.teardown() == 0
        beacon.assert_not_called()


class TestTimers:
    @pytest.mark.asyncio
    async def test_idle_timer_closes_session(self):
        clock = FakeClock()
        tracker, sink = _tracker(
            clock,
            inactivity_threshold=timedelta(milliseconds=20),
            save_interval=timedelta(hours=1),
        )
        tracker.start()
        clock.advance(minutes=6)
        tracker.touch()

        await asyncio.sleep(0.1)
        await tracker.stop()

        sink.assert_awaited_once_with("u1", date(2025, 3, 15), 6)
        assert tracker.is_open is False

    @pytest.mark.asyncio
    async def test_save_timer_flushes_open_session(self):
        clock = FakeClock()
        tracker, sink = _tracker(
            clock,
            inactivity_threshold=timedelta(hours=1),
            save_interval=timedelta(milliseconds=20),
        )
        tracker.start()
        clock.advance(minutes=3)

        await asyncio.sleep(0.1)
        await tracker.stop()

        sink.assert_awaited_once_with("u1", date(2025, 3, 15), 3)
        assert tracker.session_start == clock.now

    @pytest.mark.asyncio
    async def test_failed_save_is_retried_without_losing_minutes(self):
        clock = FakeClock()
        recorded: list[int] = []
        attempts = 0

        async def flaky_sink(user_id, activity_date, minutes):
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise RuntimeError("offline")
            recorded.append(minutes)

        tracker = ActivitySessionTracker(
            "u1", flaky_sink, clock=clock,
            inactivity_threshold=timedelta(hours=1),
            save_interval=timedelta(milliseconds=20),
        )
        tracker.start()
        clock.advance(minutes=2)
        await asyncio.sleep(0.1)
        await tracker.stop()

        assert attempts >= 2
        assert recorded == [2]
