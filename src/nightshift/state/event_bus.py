"""
Event bus for shift notifications.

Lets a presentation layer react to engine changes without the engine
knowing about screens. Each ShiftEngine owns its own bus.

Usage:
    bus = EventBus()
    bus.on(EventType.RIDE_COMPLETED, my_handler)

    # Engine emits after a transition
    bus.emit(EventType.RIDE_COMPLETED, passenger_id=3, fare=31)

    def my_handler(event: GameEvent):
        print(f"Earned {event.data['fare']}")
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Engine events that can be published."""

    # Lifecycle
    GAME_STARTED = "game.started"
    SHIFT_STARTED = "shift.started"
    SHIFT_ENDED = "shift.ended"
    GAME_RESET = "game.reset"

    # Rides
    RIDE_REQUESTED = "ride.requested"
    RIDE_ACCEPTED = "ride.accepted"
    RIDE_DECLINED = "ride.declined"
    RIDE_COMPLETED = "ride.completed"
    ROUTE_CHOSEN = "route.chosen"
    ACTION_PERFORMED = "action.performed"

    # Rules
    RULE_VIOLATED = "rule.violated"
    HIDDEN_RULE_REVEALED = "rule.hidden_revealed"
    RULE_MODIFIED = "rule.modified"
    WEATHER_RULE_ACTIVATED = "rule.weather_activated"

    # Rewards and resources
    ITEM_RECEIVED = "item.received"
    ITEM_USED = "item.used"
    ITEM_REFUSED = "item.refused"
    ITEM_PROTECTED = "item.protected"
    ITEM_LOST = "item.lost"
    CURSE_TRIGGERED = "item.curse_triggered"
    BACKSTORY_UNLOCKED = "backstory.unlocked"
    REFUELED = "fuel.refueled"
    REFUEL_REFUSED = "fuel.refused"
    TIME_TICK = "time.tick"

    # Persistence
    GAME_SAVED = "game.saved"
    GAME_LOADED = "game.loaded"
    STATS_UPDATED = "stats.updated"


@dataclass
class GameEvent:
    """
    Event payload for the event bus.

    Attributes:
        type: The event type
        data: Event-specific payload
        version: Shift state version after the transition that emitted it
        timestamp: When the event was emitted
    """

    type: EventType
    data: dict = field(default_factory=dict)
    version: int = 0
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        return f"[{self.type.value}] {self.data}"


EventHandler = Callable[[GameEvent], None]


class EventBus:
    """
    Synchronous event bus.

    Listeners are called immediately on emit(). A failing listener is
    logged and skipped; the remaining listeners still run.
    """

    def __init__(self, history_limit: int = 100):
        self._listeners: dict[EventType, list[EventHandler]] = {}
        self._history: list[GameEvent] = []
        self._history_limit = history_limit

    def on(self, event_type: EventType, handler: EventHandler) -> None:
        """Subscribe to an event type."""
        if event_type not in self._listeners:
            self._listeners[event_type] = []
        if handler not in self._listeners[event_type]:
            self._listeners[event_type].append(handler)

    def off(self, event_type: EventType, handler: EventHandler) -> None:
        """Unsubscribe from an event type."""
        if event_type in self._listeners and handler in self._listeners[event_type]:
            self._listeners[event_type].remove(handler)

    def emit(self, event_type: EventType, version: int = 0, **data) -> GameEvent:
        """
        Emit an event to all subscribers.

        Returns:
            The emitted GameEvent
        """
        event = GameEvent(type=event_type, data=data, version=version)

        self._history.append(event)
        if len(self._history) > self._history_limit:
            self._history = self._history[-self._history_limit:]

        for handler in list(self._listeners.get(event_type, [])):
            try:
                handler(event)
            except Exception:
                logger.warning(
                    "Event bus handler failed for %s", event_type.value, exc_info=True
                )

        return event

    def clear(self) -> None:
        """Clear all listeners and history."""
        self._listeners.clear()
        self._history.clear()

    def get_history(self, event_type: EventType | None = None) -> list[GameEvent]:
        """Recent events, optionally filtered by type."""
        if event_type is None:
            return list(self._history)
        return [e for e in self._history if e.type == event_type]

    def listener_count(self, event_type: EventType) -> int:
        return len(self._listeners.get(event_type, []))
