"""Client-side activity session tracker.

Turns a stream of interaction signals (pointer, keyboard, scroll, touch)
into whole minutes of engagement per calendar day without counting idle
time:

- The first interaction opens a session; later ones only move
  ``last_activity`` forward. At most one session is open at a time.
- An idle timer, re-armed on every interaction, closes the session once no
  interaction arrives for ``inactivity_threshold`` and flushes
  ``floor(last_activity - session_start)`` minutes.
- A periodic save timer flushes the elapsed minutes of the open session
  every ``save_interval`` and restarts the session at "now", so a crash
  loses at most one interval.
- ``teardown()`` hands the remainder to a fire-and-forget beacon that is
  separate from the normal flush path.

The clock is injected and both timer callbacks are public coroutines, so
the tracker can be driven deterministically in tests.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from datetime import date, datetime, timedelta
from typing import Any

from lifehub.timeutils import utc_date, utcnow

logger = logging.getLogger(__name__)

INACTIVITY_THRESHOLD = timedelta(minutes=2)
SAVE_INTERVAL = timedelta(seconds=60)

# sink(user_id, activity_date, minutes) -- the normal, awaited flush path
FlushSink = Callable[[str, date, int], Awaitable[Any]]
# beacon(user_id, activity_date, minutes) -- best effort, result ignored
Beacon = Callable[[str, date, int], None]


def whole_minutes(elapsed: timedelta) -> int:
    """Round a duration down to whole minutes, never negative."""
    return max(0, int(elapsed.total_seconds() // 60))


class ActivitySessionTracker:
    """Per-user session accumulator with an idle timer and a save timer."""

    def __init__(
        self,
        user_id: str,
        sink: FlushSink,
        *,
        beacon: Beacon | None = None,
        clock: Callable[[], datetime] = utcnow,
        inactivity_threshold: timedelta = INACTIVITY_THRESHOLD,
        save_interval: timedelta = SAVE_INTERVAL,
    ) -> None:
        self.user_id = user_id
        self.inactivity_threshold = inactivity_threshold
        self.save_interval = save_interval
        self.session_start: datetime | None = None
        self.last_activity: datetime | None = None

        self._sink = sink
        self._beacon = beacon
        self._clock = clock
        self._running = False
        self._idle_handle: asyncio.TimerHandle | None = None
        self._save_task: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[Any]] = set()

    @property
    def is_open(self) -> bool:
        """True while a session is accumulating time."""
        return self.session_start is not None

    # --- Signals ---

    def touch(self) -> None:
        """Record a qualifying interaction."""
        now = self._clock()
        self.last_activity = now
        if self.session_start is None:
            self.session_start = now
        self._arm_idle_timer()

    # --- Timer callbacks ---

    async def close_idle_session(self) -> int:
        """Close the open session and flush it up to the last interaction."""
        if self.session_start is None or self.last_activity is None:
            return 0
        started = self.session_start
        minutes = whole_minutes(self.last_activity - started)
        self.session_start = None
        await self._flush(started, minutes)
        return minutes

    async def flush_elapsed(self) -> int:
        """Flush the open session's elapsed minutes and restart it at now."""
        if self.session_start is None:
            return 0
        now = self._clock()
        started = self.session_start
        minutes = whole_minutes(now - started)
        if minutes <= 0:
            return 0
        # Restart before awaiting so an idle close during the flush starts at now
        self.session_start = now
        try:
            await self._flush(started, minutes)
        except Exception:
            # Failed minutes are retried next interval unless the session moved on
            if self.session_start == now:
                self.session_start = started
            raise
        return minutes

    def teardown(self) -> int:
        """Stop timers and send the remaining session through the beacon.

        Returns the number of minutes handed to the beacon. Delivery is not
        confirmed; failures are dropped.
        """
        self._cancel_timers()
        if self.session_start is None or self.last_activity is None:
            return 0
        started = self.session_start
        minutes = whole_minutes(self.last_activity - started)
        self.session_start = None
        if minutes <= 0 or self._beacon is None:
            return 0
        try:
            self._beacon(self.user_id, utc_date(started), minutes)
        except Exception:
            logger.debug("Activity beacon for %s was not delivered", self.user_id, exc_info=True)
        return minutes

    # --- Event loop wiring ---

    def start(self) -> None:
        """Start the save timer and open the initial session. Requires a running loop."""
        if self._running:
            return
        self._running = True
        self._save_task = asyncio.create_task(self._save_loop())
        self.touch()

    async def stop(self) -> None:
        """Cancel both timers and wait for in-flight flushes."""
        self._cancel_timers()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    def _cancel_timers(self) -> None:
        self._running = False
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None
        if self._save_task is not None:
            self._save_task.cancel()
            self._save_task = None

    def _arm_idle_timer(self) -> None:
        if not self._running:
            return
        if self._idle_handle is not None:
            self._idle_handle.cancel()
        loop = asyncio.get_running_loop()
        self._idle_handle = loop.call_later(
            self.inactivity_threshold.total_seconds(), self._on_idle,
        )

    def _on_idle(self) -> None:
        self._idle_handle = None
        self._spawn(self._guarded(self.close_idle_session(), "idle close"))

    async def _save_loop(self) -> None:
        while True:
            await asyncio.sleep(self.save_interval.total_seconds())
            await self._guarded(self.flush_elapsed(), "periodic save")

    async def _guarded(self, coro: Coroutine[Any, Any, int], what: str) -> None:
        try:
            await coro
        except Exception:
            logger.warning("Activity %s failed for %s", what, self.user_id, exc_info=True)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _flush(self, started: datetime, minutes: int) -> None:
        if minutes <= 0:
            return
        await self._sink(self.user_id, utc_date(started), minutes)
