"""
Events consumed and effects produced by the shift state machine.

Player events come from engine calls. Timer events come from scheduled
callbacks and carry the token captured when they were scheduled; a
timer event whose token no longer matches is dropped as a no-op.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .event_bus import EventType
from .schema import RouteType, ShiftSummary


class TimerKind(str, Enum):
    RIDE_REQUEST = "ride_request"
    TICK = "tick"
    RESOLVE_VIOLATION = "resolve_violation"


# -----------------------------------------------------------------------------
# Events
# -----------------------------------------------------------------------------

class ShiftEvent(BaseModel):
    """Base for everything fed to transition()."""
    at: datetime = Field(default_factory=datetime.now)
    expected_version: int | None = None  # Optional optimistic check for player events


class TimerEvent(ShiftEvent):
    """Event raised by a scheduled timer."""
    token: int


class StartGame(ShiftEvent):
    experience: int = 0


class StartShift(ShiftEvent):
    pass


class RequestRide(TimerEvent):
    pass


class AcceptRide(ShiftEvent):
    pass


class DeclineRide(ShiftEvent):
    pass


class DrivingChoice(ShiftEvent):
    route: RouteType


class PassengerAction(ShiftEvent):
    action_type: str
    payload: dict[str, Any] = Field(default_factory=dict)


class ContinueToDestination(ShiftEvent):
    pass


class ContinueFromDropOff(ShiftEvent):
    pass


class Refuel(ShiftEvent):
    full: bool = True


class UseItem(ShiftEvent):
    name: str


class Tick(TimerEvent):
    pass


class ResolveViolation(TimerEvent):
    pass


class EndShift(ShiftEvent):
    successful: bool
    reason: str | None = None


class ScreenChanged(ShiftEvent):
    """The in-shift screen was shown or hidden; gates the countdown."""
    active: bool


class ResumeShift(ShiftEvent):
    """Re-arm timers for a state restored from a save."""
    pass


# -----------------------------------------------------------------------------
# Effects
# -----------------------------------------------------------------------------

class Effect(BaseModel):
    pass


class ScheduleTimer(Effect):
    kind: TimerKind
    delay: float                       # Seconds
    token: int


class Notify(Effect):
    event: EventType
    data: dict[str, Any] = Field(default_factory=dict)


class UnlockBackstory(Effect):
    passenger_id: int


class ShiftEnded(Effect):
    summary: ShiftSummary
