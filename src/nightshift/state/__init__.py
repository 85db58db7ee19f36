"""State management for Nightshift."""

from .schema import (
    CompletedRide,
    Difficulty,
    GamePhase,
    Hazard,
    InventoryItem,
    ItemDefinition,
    LeaderboardEntry,
    Location,
    Passenger,
    PlayerStats,
    Rarity,
    RelationshipLevel,
    ReputationRecord,
    RouteChoiceRecord,
    RouteOption,
    RoutePhase,
    RouteType,
    Rule,
    RuleKind,
    SavedGame,
    ShiftState,
    ShiftSummary,
    TimeOfDay,
    Weather,
)
from .catalog import GameCatalog
from .store import (
    JsonFileStorage,
    MemoryStorage,
    PersistenceService,
    Storage,
)
from .event_bus import EventBus, EventType, GameEvent

__all__ = [
    # Schema
    "CompletedRide",
    "Difficulty",
    "GamePhase",
    "Hazard",
    "InventoryItem",
    "ItemDefinition",
    "LeaderboardEntry",
    "Location",
    "Passenger",
    "PlayerStats",
    "Rarity",
    "RelationshipLevel",
    "ReputationRecord",
    "RouteChoiceRecord",
    "RouteOption",
    "RoutePhase",
    "RouteType",
    "Rule",
    "RuleKind",
    "SavedGame",
    "ShiftState",
    "ShiftSummary",
    "TimeOfDay",
    "Weather",
    # Catalog
    "GameCatalog",
    # Storage
    "Storage",
    "JsonFileStorage",
    "MemoryStorage",
    "PersistenceService",
    # Events
    "EventBus",
    "EventType",
    "GameEvent",
]
