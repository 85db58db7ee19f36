"""
Nightshift: shift simulation engine for a horror-themed night taxi game.

A shift is a run of passenger encounters under rules the driver must
not break, against a fuel gauge, a clock and a minimum-earnings target.
"""

from .config import BalanceConfig, load_config, save_config
from .engine import ShiftEngine
from .state import EventBus, EventType, GameCatalog, GamePhase, RouteType, ShiftState
from .state.store import JsonFileStorage, MemoryStorage
from .systems.shift import InvalidPhaseError, ShiftError, StaleEventError, transition
from .systems.timers import AsyncioScheduler, ManualScheduler
from .tools.rng import ScriptedRandom, SeededRandom

__version__ = "0.4.0"

__all__ = [
    "BalanceConfig",
    "load_config",
    "save_config",
    "ShiftEngine",
    "EventBus",
    "EventType",
    "GameCatalog",
    "GamePhase",
    "RouteType",
    "ShiftState",
    "JsonFileStorage",
    "MemoryStorage",
    "InvalidPhaseError",
    "ShiftError",
    "StaleEventError",
    "transition",
    "AsyncioScheduler",
    "ManualScheduler",
    "ScriptedRandom",
    "SeededRandom",
]
