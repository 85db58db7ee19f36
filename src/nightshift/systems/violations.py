"""
Rule violation checks.

Rule records are plain data. What each rule forbids lives here, in
tables keyed by rule id:

    ACTION_CHECKS  rule id -> (action, state, passenger) -> bool
    CONDITIONS     rule id -> (state, passenger) -> bool, for conditional rules
    HIDDEN_CHECKS  rule id -> (state, passenger) -> bool, run at ride completion
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable

from ..state.catalog import GameCatalog
from ..state.schema import (
    Difficulty,
    Passenger,
    Rule,
    RuleConflict,
    RuleKind,
    ShiftState,
    WeatherType,
)

BASE_PENALTY = 10
COUNTING_LIMIT = 3
RIDE_TIME_LIMIT = 45
SILENCE_WINDOW = 5


@dataclass
class PlayerAction:
    """Something the driver does that the rules may forbid."""
    type: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class Violation:
    rule: Rule
    description: str
    severity: int


@dataclass
class ResolutionHint:
    action: str
    description: str
    weight: int


ActionCheck = Callable[[PlayerAction, ShiftState, Passenger | None], bool]
StateCheck = Callable[[ShiftState, Passenger | None], bool]


# -----------------------------------------------------------------------------
# Conditions
# -----------------------------------------------------------------------------

def _after_midnight_at_cemetery(state: ShiftState, passenger: Passenger | None) -> bool:
    if passenger is None or "Cemetery" not in passenger.pickup:
        return False
    return state.time_of_day is not None and state.time_of_day.hour < 6


def _supernatural_in_storm(state: ShiftState, passenger: Passenger | None) -> bool:
    if passenger is None or passenger.supernatural_type is None:
        return False
    return state.weather is not None and state.weather.type == WeatherType.THUNDERSTORM


def _medical_passenger(state: ShiftState, passenger: Passenger | None) -> bool:
    return passenger is not None and passenger.medical


CONDITIONS: dict[int, StateCheck] = {
    6: _after_midnight_at_cemetery,
    7: _supernatural_in_storm,
    8: _medical_passenger,
}


# -----------------------------------------------------------------------------
# Action checks
# -----------------------------------------------------------------------------

def _forbids(*action_types: str) -> ActionCheck:
    def check(action: PlayerAction, state: ShiftState, passenger: Passenger | None) -> bool:
        return action.type in action_types
    return check


def _conditional_on(action_type: str, rule_id: int) -> ActionCheck:
    def check(action: PlayerAction, state: ShiftState, passenger: Passenger | None) -> bool:
        return action.type == action_type and CONDITIONS[rule_id](state, passenger)
    return check


def _hospital_protocol(action: PlayerAction, state: ShiftState, passenger: Passenger | None) -> bool:
    if action.type != "drop_off_passenger" or not _medical_passenger(state, passenger):
        return False
    return action.payload.get("location") != passenger.pickup


def _emergency_response(action: PlayerAction, state: ShiftState, passenger: Passenger | None) -> bool:
    return action.type == "take_slow_route" and passenger is not None and passenger.in_distress


def _customer_service(action: PlayerAction, state: ShiftState, passenger: Passenger | None) -> bool:
    return action.type == "deny_request" and bool(action.payload.get("reasonable", True))


def _safety_first(action: PlayerAction, state: ShiftState, passenger: Passenger | None) -> bool:
    return (
        action.type == "avoid_eye_contact"
        and passenger is not None
        and passenger.needs_attention_check
    )


ACTION_CHECKS: dict[int, ActionCheck] = {
    1: _forbids("look_at_passenger", "make_eye_contact"),
    2: _forbids("play_music", "turn_on_radio"),
    3: _forbids("accept_tip", "accept_payment"),
    4: _forbids("open_window", "roll_down_window"),
    5: _forbids("take_shortcut", "deviate_route", "take_alternate_route"),
    6: _conditional_on("pickup_passenger", 6),
    7: _conditional_on("pickup_passenger", 7),
    8: _hospital_protocol,
    9: _emergency_response,
    10: _customer_service,
    11: _safety_first,
    99: _forbids("refuse_command"),
    101: _forbids("use_wipers"),
    102: _forbids("turn_off_headlights"),
    103: _forbids("speed_up"),
    104: _forbids("make_stop", "stop_car"),
    105: _forbids("use_air_conditioning"),
    106: _forbids("open_window", "roll_down_window"),
}

ACTION_DESCRIPTIONS: dict[int, str] = {
    1: "Made eye contact with passenger",
    2: "Played music or turned on radio",
    3: "Accepted tip or non-cash payment",
    4: "Opened window",
    5: "Deviated from GPS route",
    6: "Picked up passenger from cemetery after midnight",
    7: "Transported supernatural entity during storm",
    8: "Medical personnel not returned to pickup location",
    9: "Failed to take fastest route for distressed passenger",
    10: "Denied reasonable passenger request",
    11: "Failed to make eye contact to check passenger alertness",
    99: "Refused a command from a city official",
    101: "Used the wipers during a thunderstorm",
    102: "Turned the headlights off in heavy fog",
    103: "Sped on snow",
    104: "Stopped the cab in late-night bad weather",
    105: "Ran the air conditioning with visibility below 30%",
    106: "Opened a window in a windstorm",
}


# -----------------------------------------------------------------------------
# Hidden rule checks
# -----------------------------------------------------------------------------

def _counting_rule(state: ShiftState, passenger: Passenger | None) -> bool:
    """More than three passengers of one supernatural type, current ride included."""
    counts = Counter(
        ride.supernatural_type for ride in state.completed_rides if ride.supernatural_type
    )
    if passenger is not None and passenger.supernatural_type:
        counts[passenger.supernatural_type] += 1
    return any(n > COUNTING_LIMIT for n in counts.values())


def _time_limit(state: ShiftState, passenger: Passenger | None) -> bool:
    """Passenger aboard longer than the limit; the empty pickup leg does not count."""
    ride = state.current_ride
    if ride is None or ride.boarded_time_remaining is None:
        return False
    return ride.boarded_time_remaining - state.time_remaining > RIDE_TIME_LIMIT


def _silence_between(state: ShiftState, passenger: Passenger | None) -> bool:
    return state.last_spoke_at is not None and state.last_spoke_at <= SILENCE_WINDOW


HIDDEN_CHECKS: dict[int, StateCheck] = {
    12: _counting_rule,
    13: _time_limit,
    14: _silence_between,
}


# -----------------------------------------------------------------------------
# Engine API
# -----------------------------------------------------------------------------

def validate_action(
    action: PlayerAction,
    state: ShiftState,
    passenger: Passenger | None,
    catalog: GameCatalog,
) -> list[Violation]:
    """Check an action against every visible, hidden and temporary rule in force."""
    violations = []
    for rule in catalog.rules_for(state.active_rule_ids):
        check = ACTION_CHECKS.get(rule.id)
        if check is not None and check(action, state, passenger):
            violations.append(Violation(
                rule=rule,
                description=ACTION_DESCRIPTIONS.get(rule.id, rule.violation_message or rule.title),
                severity=rule.difficulty.severity,
            ))
    return violations


def check_hidden_rule_violations(
    state: ShiftState,
    passenger: Passenger | None,
    catalog: GameCatalog,
) -> Rule | None:
    """First hidden rule in force whose condition has been met, if any."""
    for rule in catalog.rules_for(state.hidden_rules):
        check = HIDDEN_CHECKS.get(rule.id)
        if check is not None and check(state, passenger):
            return rule
    return None


def calculate_violation_penalty(violation: Violation) -> int:
    """10 x severity, doubled for hidden rules, tripled again for nightmare rules."""
    penalty = BASE_PENALTY * violation.severity
    if violation.rule.kind == RuleKind.HIDDEN:
        penalty *= 2
    if violation.rule.difficulty == Difficulty.NIGHTMARE:
        penalty *= 3
    return penalty


def suggest_conflict_resolution(conflict: RuleConflict) -> list[ResolutionHint]:
    """Generic advice for a rule conflict, strongest first. Display only."""
    if conflict.type == "direct_conflict":
        hints = [
            ResolutionHint("communicate_limitation", "Explain the limitation to the passenger politely", 1),
            ResolutionHint("prioritize_safety", "When in doubt, prioritize passenger and driver safety", 3),
            ResolutionHint("follow_company_policy", "Follow standard company policies over passenger requests", 2),
        ]
    else:
        hints = [ResolutionHint("use_judgment", "Use your best judgment based on the situation", 1)]
    return sorted(hints, key=lambda h: h.weight, reverse=True)


def rule_status(rule: Rule, state: ShiftState, passenger: Passenger | None) -> str:
    """Display status: active, inactive, hidden, revealed, temporary or expired."""
    if rule.kind == RuleKind.WEATHER:
        return "active" if rule.id in state.weather_rules else "inactive"
    if rule.kind == RuleKind.CONDITIONAL and rule.id in CONDITIONS:
        return "active" if CONDITIONS[rule.id](state, passenger) else "inactive"
    if rule.kind == RuleKind.HIDDEN:
        return "revealed" if rule.id in state.revealed_hidden_rules else "hidden"
    if rule.temporary:
        active = any(t.rule_id == rule.id for t in state.temporary_rules)
        return "temporary" if active else "expired"
    return "active"
