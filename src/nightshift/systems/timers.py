"""
Timer scheduling for the shift engine.

The reducer never schedules anything itself. It returns ScheduleTimer
effects; the engine hands them to a TimerScheduler and, when a timer
fires, feeds the matching timer event back through transition().

Each timer carries the token captured when it was scheduled:
    ride request, violation reveal  -> state.version
    countdown tick                  -> state.tick_generation

A timer whose token no longer matches is dropped by the reducer, so
cancelling a timer is an optimisation, never a correctness requirement.

Schedulers:
    ManualScheduler  - virtual clock advanced by hand (tests, simulation)
    AsyncioScheduler - real delays on an asyncio event loop
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol, runtime_checkable

from ..state.events import RequestRide, ResolveViolation, Tick, TimerEvent, TimerKind
from ..state.schema import GamePhase, ShiftState

logger = logging.getLogger(__name__)

# Phases in which the shift clock runs down
COUNTDOWN_PHASES = frozenset({
    GamePhase.RIDE_REQUEST,
    GamePhase.DRIVING,
    GamePhase.INTERACTION,
    GamePhase.DROP_OFF,
})

TIMER_EVENTS: dict[TimerKind, type[TimerEvent]] = {
    TimerKind.RIDE_REQUEST: RequestRide,
    TimerKind.TICK: Tick,
    TimerKind.RESOLVE_VIOLATION: ResolveViolation,
}

TimerCallback = Callable[[], None]


def countdown_active(state: ShiftState) -> bool:
    """Whether the countdown should be running for this state."""
    return (
        state.phase in COUNTDOWN_PHASES
        and state.pending_violation is None
        and state.screen_active
    )


def timer_event(kind: TimerKind, token: int) -> TimerEvent:
    """Build the event a fired timer feeds back into the reducer."""
    return TIMER_EVENTS[kind](token=token)


@runtime_checkable
class TimerScheduler(Protocol):
    """Something that can run a callback after a delay in seconds."""

    def call_later(self, delay: float, callback: TimerCallback) -> Any:
        """Schedule callback; returns a handle accepted by cancel()."""
        ...

    def cancel(self, handle: Any) -> None:
        ...


@dataclass(order=True)
class _Scheduled:
    due: float
    seq: int
    callback: TimerCallback = field(compare=False)
    cancelled: bool = field(default=False, compare=False)


class ManualScheduler:
    """
    Deterministic scheduler on a virtual clock.

    Nothing runs until the clock is advanced. Timers due at the same
    moment run in the order they were scheduled.
    """

    def __init__(self):
        self.now = 0.0
        self._queue: list[_Scheduled] = []
        self._seq = itertools.count()

    def call_later(self, delay: float, callback: TimerCallback) -> _Scheduled:
        item = _Scheduled(due=self.now + max(0.0, delay), seq=next(self._seq), callback=callback)
        heapq.heappush(self._queue, item)
        return item

    def cancel(self, handle: _Scheduled) -> None:
        handle.cancelled = True

    @property
    def pending(self) -> int:
        return sum(1 for item in self._queue if not item.cancelled)

    def next_due(self) -> float | None:
        self._drop_cancelled()
        return self._queue[0].due if self._queue else None

    def run_next(self) -> bool:
        """Jump the clock to the next timer and run it. False if none is pending."""
        self._drop_cancelled()
        if not self._queue:
            return False
        item = heapq.heappop(self._queue)
        self.now = max(self.now, item.due)
        item.callback()
        return True

    def advance(self, seconds: float) -> int:
        """Move the clock forward, running every timer that falls due. Returns how many ran."""
        target = self.now + seconds
        ran = 0
        while True:
            due = self.next_due()
            if due is None or due > target:
                break
            self.run_next()
            ran += 1
        self.now = target
        return ran

    def clear(self) -> None:
        self._queue.clear()

    def _drop_cancelled(self) -> None:
        while self._queue and self._queue[0].cancelled:
            heapq.heappop(self._queue)


class AsyncioScheduler:
    """Scheduler backed by an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay: float, callback: TimerCallback) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay), self._guard(callback))

    def cancel(self, handle: asyncio.TimerHandle) -> None:
        handle.cancel()

    @staticmethod
    def _guard(callback: TimerCallback) -> TimerCallback:
        def run() -> None:
            try:
                callback()
            except Exception:
                logger.exception("Timer callback failed")
        return run
