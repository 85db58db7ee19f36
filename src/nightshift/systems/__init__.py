"""
Shift systems for Nightshift.

Each system is a set of pure functions over (state, catalog, config,
random source). The shift reducer sequences them; none of them holds
state of its own.
"""

from .rules import RuleSet, calculate_experience, difficulty_for, find_conflicts, generate_shift_rules
from .passengers import PassengerSelection, select_passenger
from .routes import calculate_route_costs, get_route_options
from .reputation import get_modifier, relationship_level, update_reputation
from .violations import (
    PlayerAction,
    Violation,
    calculate_violation_penalty,
    check_hidden_rule_violations,
    suggest_conflict_resolution,
    validate_action,
)
from .scoring import ShiftScore, calculate_score, insert_leaderboard_entry, score_shift
from .timers import AsyncioScheduler, ManualScheduler, TimerScheduler, countdown_active
from .shift import (
    InvalidPhaseError,
    ShiftContext,
    ShiftError,
    StaleEventError,
    TransitionResult,
    transition,
)

__all__ = [
    # Rules
    "RuleSet",
    "calculate_experience",
    "difficulty_for",
    "find_conflicts",
    "generate_shift_rules",
    # Passengers
    "PassengerSelection",
    "select_passenger",
    # Routes
    "calculate_route_costs",
    "get_route_options",
    # Reputation
    "get_modifier",
    "relationship_level",
    "update_reputation",
    # Violations
    "PlayerAction",
    "Violation",
    "calculate_violation_penalty",
    "check_hidden_rule_violations",
    "suggest_conflict_resolution",
    "validate_action",
    # Scoring
    "ShiftScore",
    "calculate_score",
    "insert_leaderboard_entry",
    "score_shift",
    # Timers
    "AsyncioScheduler",
    "ManualScheduler",
    "TimerScheduler",
    "countdown_active",
    # State machine
    "InvalidPhaseError",
    "ShiftContext",
    "ShiftError",
    "StaleEventError",
    "TransitionResult",
    "transition",
]
