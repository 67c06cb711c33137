"""
Replay State Machine - step-through playback of the team history.

A ReplaySession walks the event log oldest-first. While playing, a single
asyncio task sleeps for `base_interval / speed` seconds and then moves the
cursor forward by one; reaching the last event finishes playback.

States:
    stopped  -> playing            play()
    paused   -> playing            play()
    playing  -> paused             pause(), skip_to_end(), seek()
    playing  -> finished           cursor reaches the last event
    any      -> stopped            reset()

Changing speed while playing replaces the running task immediately, so
there is never more than one timer advancing the cursor.
"""

import asyncio
from datetime import datetime, tzinfo
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, List, Optional

from pydantic import BaseModel

from teamhub.engines.timemachine.aggregation import local_date, sort_events
from teamhub.kernel.events.event_store import EventStoreError
from teamhub.kernel.events.event_types import EventRecord
from teamhub.logging_config import get_logger

logger = get_logger(__name__)

SleepFn = Callable[[float], Awaitable[None]]

DEFAULT_MIN_SPEED = 0.5
DEFAULT_MAX_SPEED = 4.0


class ReplayState(str, Enum):
    STOPPED = "stopped"
    PLAYING = "playing"
    PAUSED = "paused"
    FINISHED = "finished"


class ReplayFrame(BaseModel):
    """Snapshot of a session, as sent to a viewer."""

    state: ReplayState
    cursor: int
    total_events: int
    speed: float
    interval_seconds: float
    progress: float
    day_number: int
    total_days: int
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    current_event: Optional[EventRecord] = None
    # Most recent first
    history: List[EventRecord]


class ReplaySession:
    """
    Controllable playback over one event snapshot.

    Usage:
        async with ReplaySession(events, speed=2) as replay:
            replay.play()
            ...
            replay.set_speed(4)
    """

    def __init__(
        self,
        events: Iterable[EventRecord],
        base_interval: float = 1.0,
        speed: float = 1.0,
        tz: Optional[tzinfo] = None,
        sleep: SleepFn = asyncio.sleep,
        on_change: Optional[Callable[[ReplayFrame], None]] = None,
        min_speed: float = DEFAULT_MIN_SPEED,
        max_speed: float = DEFAULT_MAX_SPEED,
    ):
        if base_interval <= 0:
            raise ValueError("base_interval must be positive")
        if min_speed <= 0 or max_speed < min_speed:
            raise ValueError("invalid speed bounds")

        self.base_interval = base_interval
        self.min_speed = min_speed
        self.max_speed = max_speed
        self.tz = tz
        self.on_change = on_change
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

        self._events: List[EventRecord] = sort_events(events)
        self._cursor = 0
        self._shown = 0  # how many events are in the displayed history
        self._state = ReplayState.STOPPED
        self._speed = self._clamp_speed(speed)

    # Properties

    @property
    def events(self) -> List[EventRecord]:
        return list(self._events)

    @property
    def state(self) -> ReplayState:
        return self._state

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def speed(self) -> float:
        return self._speed

    @property
    def interval(self) -> float:
        return self.base_interval / self._speed

    @property
    def is_empty(self) -> bool:
        return not self._events

    @property
    def is_running(self) -> bool:
        """True while an advancement task is alive."""
        return self._task is not None and not self._task.done()

    @property
    def current_event(self) -> Optional[EventRecord]:
        if self.is_empty:
            return None
        return self._events[self._cursor]

    @property
    def history(self) -> List[EventRecord]:
        """Displayed events, oldest first."""
        return self._events[:self._shown]

    @property
    def recent_history(self) -> List[EventRecord]:
        return list(reversed(self.history))

    @property
    def progress(self) -> float:
        """Percentage of the log reached; 0 for an empty session."""
        if self.is_empty:
            return 0.0
        return (self._cursor + 1) / len(self._events) * 100

    @property
    def total_days(self) -> int:
        if self.is_empty:
            return 0
        first = local_date(self._events[0], self.tz)
        last = local_date(self._events[-1], self.tz)
        return (last - first).days + 1

    @property
    def day_number(self) -> int:
        """Day of the current event counted from the first event's day, 1-based."""
        if self.is_empty:
            return 0
        first = local_date(self._events[0], self.tz)
        current = local_date(self._events[self._cursor], self.tz)
        return min((current - first).days + 1, self.total_days)

    def frame(self, history_limit: Optional[int] = None) -> ReplayFrame:
        recent = self.recent_history
        if history_limit is not None:
            recent = recent[:max(0, history_limit)]
        return ReplayFrame(
            state=self._state,
            cursor=self._cursor,
            total_events=len(self._events),
            speed=self._speed,
            interval_seconds=self.interval,
            progress=round(self.progress, 2),
            day_number=self.day_number,
            total_days=self.total_days,
            start_date=self._events[0].created_at if self._events else None,
            end_date=self._events[-1].created_at if self._events else None,
            current_event=self.current_event,
            history=recent,
        )

    # Controls

    def play(self) -> None:
        """Start or resume playback from the current cursor."""
        if self.is_empty or self._state == ReplayState.PLAYING:
            return
        if self._state == ReplayState.FINISHED:
            # Finished is terminal until reset() or a seek
            return

        self._shown = max(self._shown, self._cursor + 1)
        if self._cursor >= len(self._events) - 1:
            self._set_state(ReplayState.FINISHED)
            return

        self._set_state(ReplayState.PLAYING)
        self._start_timer()

    def pause(self) -> None:
        if self._state != ReplayState.PLAYING:
            return
        self._cancel_timer()
        self._set_state(ReplayState.PAUSED)

    def reset(self) -> None:
        """Back to the first event with an empty history."""
        self._cancel_timer()
        self._cursor = 0
        self._shown = 0
        self._set_state(ReplayState.STOPPED)

    def skip_to_end(self) -> None:
        if self.is_empty:
            return
        self._cancel_timer()
        self._cursor = len(self._events) - 1
        self._shown = len(self._events)
        self._set_state(ReplayState.PAUSED)

    def seek(self, index: int) -> None:
        """Jump to an index (clamped) and pause there."""
        if self.is_empty:
            return
        self._cancel_timer()
        self._cursor = min(max(0, index), len(self._events) - 1)
        self._shown = self._cursor + 1
        self._set_state(ReplayState.PAUSED)

    def set_speed(self, speed: float) -> None:
        """
        Change playback speed.

        While playing, the running timer is cancelled and a new one started
        at the new interval; the cursor is left where it is.
        """
        self._speed = self._clamp_speed(speed)
        if self._state == ReplayState.PLAYING:
            self._cancel_timer()
            self._start_timer()
        self._notify()

    def tick(self) -> bool:
        """
        Advance one step, as the timer does.

        Returns:
            True if the cursor moved
        """
        if self.is_empty:
            return False
        if self._cursor >= len(self._events) - 1:
            if self._state == ReplayState.PLAYING:
                self._set_state(ReplayState.FINISHED)
            return False

        self._cursor += 1
        self._shown = self._cursor + 1
        if self._cursor >= len(self._events) - 1 and self._state == ReplayState.PLAYING:
            self._state = ReplayState.FINISHED
        self._notify()
        return True

    def replace_events(self, events: Iterable[EventRecord]) -> None:
        """
        Swap in a fresh snapshot after the log changed.

        Playback keeps its state and position; the cursor is clamped to the
        new length.
        """
        self._events = sort_events(events)
        if self.is_empty:
            self._cancel_timer()
            self._cursor = 0
            self._shown = 0
            self._set_state(ReplayState.STOPPED)
            return

        last = len(self._events) - 1
        self._cursor = min(self._cursor, last)
        self._shown = min(self._shown, len(self._events))
        if self._state == ReplayState.FINISHED and self._cursor < last:
            # New events arrived after the end; playback can continue
            self._set_state(ReplayState.PAUSED)
        else:
            self._notify()

    async def close(self) -> None:
        """Cancel the timer and wait for it to unwind."""
        task = self._task
        self._cancel_timer()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def __aenter__(self) -> "ReplaySession":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # Internals

    def _clamp_speed(self, speed: float) -> float:
        if speed <= 0:
            raise ValueError("speed must be positive")
        return min(max(float(speed), self.min_speed), self.max_speed)

    def _set_state(self, state: ReplayState) -> None:
        self._state = state
        self._notify()

    def _notify(self) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change(self.frame())
        except Exception:
            logger.exception("Replay change listener failed")

    def _start_timer(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._run(self.interval))

    def _cancel_timer(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self, interval: float) -> None:
        while self._state == ReplayState.PLAYING:
            await self._sleep(interval)
            if self._state != ReplayState.PLAYING:
                break
            self.tick()
        logger.debug("Replay timer stopped", extra={"cursor": self._cursor})


SnapshotFetch = Callable[[], Awaitable[List[EventRecord]]]


class SnapshotFollower:
    """
    Keeps a ReplaySession in step with the event log.

    invalidate() only marks the session dirty; a single background task
    drains the flag by refetching and calling replace_events. Fetches never
    overlap, and a notice that arrives mid-fetch triggers one more fetch, so
    the last snapshot applied is always at least as new as the last notice.

    Usage:
        follower = SnapshotFollower(replay, fetch_events)
        follower.start()
        unsubscribe = notifier.subscribe(follower.invalidate)
        ...
        unsubscribe()
        await follower.close()
    """

    def __init__(self, replay: ReplaySession, fetch: SnapshotFetch):
        self.replay = replay
        self.fetch = fetch
        self._dirty = asyncio.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._task = self._loop.create_task(self._run())

    def invalidate(self, notice: Any = None) -> None:
        """Mark the snapshot stale. Safe to call from any thread or loop."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._dirty.set)

    async def close(self) -> None:
        task, self._task = self._task, None
        self._loop = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            await self._dirty.wait()
            self._dirty.clear()
            try:
                events = await self.fetch()
            except EventStoreError:
                # The next notice retries
                logger.exception("Replay refetch failed")
                continue
            self.replay.replace_events(events)
