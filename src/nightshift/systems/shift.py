"""
Shift state machine.

A single pure reducer sequences a shift:

    LOADING → BRIEFING → WAITING ⇄ RIDE_REQUEST → DRIVING ⇄ INTERACTION
                            ↑                        ↓
                            └──────── DROP_OFF ←─────┘
    any active phase → GAME_OVER | SUCCESS

transition(state, event, ctx) never mutates its input. It returns the
next state plus the effects the engine must carry out (timers, bus
notifications, backstory unlocks, scoring at shift end).

Player events in the wrong phase raise InvalidPhaseError. Timer events
that no longer match the state they were scheduled for are dropped as
no-ops; game over is a phase, never an exception.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, NamedTuple

from ..config import BalanceConfig
from ..state.catalog import GameCatalog
from ..state.event_bus import EventType
from ..state.events import (
    AcceptRide,
    ContinueFromDropOff,
    ContinueToDestination,
    DeclineRide,
    DrivingChoice,
    Effect,
    EndShift,
    Notify,
    PassengerAction,
    Refuel,
    RequestRide,
    ResolveViolation,
    ResumeShift,
    ScheduleTimer,
    ScreenChanged,
    ShiftEnded,
    ShiftEvent,
    StartGame,
    StartShift,
    Tick,
    TimerEvent,
    TimerKind,
    UnlockBackstory,
    UseItem,
)
from ..state.schema import (
    CompletedRide,
    GamePhase,
    ModificationType,
    Passenger,
    Preference,
    Rarity,
    RideInProgress,
    RouteChoiceRecord,
    RouteOption,
    RoutePhase,
    RouteStreak,
    RuleKind,
    ShiftState,
    ShiftSummary,
    TemporaryRule,
)
from ..tools.results import GameResult
from ..tools.rng import RandomSource, chance, choice, uniform, variation
from .environment import generate_weather, time_of_day, update_hazards, weather_triggered_rules
from .items import (
    apply_curses,
    apply_item_effects,
    create_item,
    find_item,
    find_protection,
    process_deterioration,
    use_protective_item,
)
from .passengers import select_passenger
from .reputation import get_modifier, update_reputation
from .routes import ROUTE_ACTIONS, get_route_options
from .rules import generate_shift_rules
from .timers import countdown_active
from .violations import (
    PlayerAction,
    Violation,
    calculate_violation_penalty,
    check_hidden_rule_violations,
    validate_action,
)

logger = logging.getLogger(__name__)

MAX_FUEL = 100

# Valid phase transitions: each phase maps to allowed next phases
VALID_TRANSITIONS: dict[GamePhase, set[GamePhase]] = {
    GamePhase.LOADING: {GamePhase.BRIEFING},
    GamePhase.BRIEFING: {GamePhase.WAITING},
    GamePhase.WAITING: {GamePhase.RIDE_REQUEST, GamePhase.SUCCESS, GamePhase.GAME_OVER},
    GamePhase.RIDE_REQUEST: {
        GamePhase.DRIVING, GamePhase.WAITING, GamePhase.SUCCESS, GamePhase.GAME_OVER,
    },
    GamePhase.DRIVING: {
        GamePhase.INTERACTION, GamePhase.DROP_OFF, GamePhase.SUCCESS, GamePhase.GAME_OVER,
    },
    GamePhase.INTERACTION: {GamePhase.DRIVING, GamePhase.SUCCESS, GamePhase.GAME_OVER},
    GamePhase.DROP_OFF: {GamePhase.WAITING, GamePhase.SUCCESS, GamePhase.GAME_OVER},
    GamePhase.GAME_OVER: {GamePhase.BRIEFING},
    GamePhase.SUCCESS: {GamePhase.BRIEFING},
}

ACTIVE_PHASES = frozenset({
    GamePhase.WAITING,
    GamePhase.RIDE_REQUEST,
    GamePhase.DRIVING,
    GamePhase.INTERACTION,
    GamePhase.DROP_OFF,
})

POSITIVE_ACTIONS = frozenset({
    "make_eye_contact", "look_at_passenger", "play_music", "turn_on_radio",
    "open_window", "roll_down_window", "accept_tip", "comply_request", "chat",
    "comfort_passenger", "accept_offer", "return_to_pickup",
})
NEGATIVE_ACTIONS = frozenset({
    "deny_request", "refuse_command", "ignore_passenger", "decline_offer",
})
SPEAKING_ACTIONS = frozenset({
    "chat", "comfort_passenger", "comply_request", "deny_request",
    "refuse_command", "accept_offer", "decline_offer",
})

# Failure narration
OUT_OF_FUEL_WITH_PASSENGER = "You ran out of fuel with a passenger in the car. They were not pleased..."
ROUTE_OUT_OF_FUEL = "You don't have enough fuel for this route. Your car sputtered to a stop..."
ROUTE_OUT_OF_TIME = "This route would take too long. Time ran out before you could reach your destination..."
OUT_OF_TIME = "Time ran out or you ran out of fuel. The night shift waits for no one..."
GENERIC_FAILURE = "The night shift has ended in failure..."
SHIFT_COMPLETE = "You made it through the night."
NO_PASSENGERS = "No more fares tonight. You head back to the depot."


# -----------------------------------------------------------------------------
# Errors
# -----------------------------------------------------------------------------

class ShiftError(Exception):
    """Error raised by the shift state machine."""
    pass


class InvalidPhaseError(ShiftError):
    """Attempted operation not valid in current phase."""
    def __init__(self, current: GamePhase, attempted: str):
        self.current = current
        self.attempted = attempted
        super().__init__(f"Cannot {attempted} during {current.value} phase.")


class StaleEventError(ShiftError):
    """Event's expected_version doesn't match the current state."""
    def __init__(self, expected: int, got: int):
        self.expected = expected
        self.got = got
        super().__init__(
            f"Stale event: expected version {expected}, state is at {got}. "
            "Refresh and try again."
        )


# -----------------------------------------------------------------------------
# Context and results
# -----------------------------------------------------------------------------

@dataclass
class ShiftContext:
    """Read-only collaborators every transition may consult."""
    catalog: GameCatalog
    config: BalanceConfig
    rng: RandomSource
    unlocked_backstories: frozenset[int] = frozenset()


@dataclass
class TransitionResult:
    state: ShiftState
    effects: list[Effect] = field(default_factory=list)

    def effects_of(self, kind: type[Effect]) -> list[Effect]:
        return [e for e in self.effects if isinstance(e, kind)]


# A handler mutates the draft it is given. Returning None as the state
# means "reject without change": the original state is kept.
Step = tuple[ShiftState | None, list[Effect]]
Handler = Callable[[ShiftState, ShiftEvent, ShiftContext], Step]


class _Route(NamedTuple):
    handler: Handler
    name: str
    phases: frozenset[GamePhase] | None   # None: any phase
    bumps_version: bool = True


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _move(state: ShiftState, phase: GamePhase) -> None:
    if phase not in VALID_TRANSITIONS[state.phase]:
        raise ShiftError(f"Illegal transition {state.phase.value} -> {phase.value}")
    state.phase = phase


def _delay(rng: RandomSource, bounds: tuple[float, float]) -> float:
    low, high = bounds
    return uniform(rng, low, high)


def _schedule_ride_request(state: ShiftState, ctx: ShiftContext, bounds: tuple[float, float]) -> ScheduleTimer:
    return ScheduleTimer(
        kind=TimerKind.RIDE_REQUEST,
        delay=_delay(ctx.rng, bounds),
        token=state.version,
    )


def _schedule_tick(state: ShiftState, ctx: ShiftContext) -> ScheduleTimer:
    return ScheduleTimer(
        kind=TimerKind.TICK,
        delay=ctx.config.tick_interval,
        token=state.tick_generation,
    )


def _passenger(state: ShiftState, ctx: ShiftContext) -> Passenger | None:
    return ctx.catalog.passenger(state.current_passenger_id)


def quote_routes(
    state: ShiftState,
    ctx: ShiftContext,
    passenger: Passenger | None,
) -> GameResult[list[RouteOption]]:
    """Price all four routes for the leg the driver is about to drive."""
    cfg = ctx.config
    if passenger is None:
        location = ""
    elif state.driving_phase == RoutePhase.DESTINATION:
        location = passenger.destination
    else:
        location = passenger.pickup

    risk = ctx.catalog.location_risk(location, cfg.default_risk_level)
    if passenger is not None:
        risk += get_modifier(state.reputation.get(passenger.id)).risk_modifier

    return get_route_options(
        state.fuel,
        state.time_remaining,
        cfg,
        ctx.rng,
        passenger_risk=risk,
        weather=state.weather,
        tod=state.time_of_day,
        hazards=state.hazards,
        passenger=passenger,
        mastery=state.route_mastery,
    )


def action_sentiment(action_type: str) -> str:
    if action_type in POSITIVE_ACTIONS:
        return "positive"
    if action_type in NEGATIVE_ACTIONS:
        return "negative"
    return "neutral"


def summarize(state: ShiftState, ctx: ShiftContext, successful: bool, reason: str) -> ShiftSummary:
    passenger_ids: list[int] = []
    for ride in state.completed_rides:
        if ride.passenger_id not in passenger_ids:
            passenger_ids.append(ride.passenger_id)
    legendary = [
        pid for pid in passenger_ids
        if (p := ctx.catalog.passenger(pid)) is not None and p.rarity == Rarity.LEGENDARY
    ]
    return ShiftSummary(
        successful=successful,
        reason=reason,
        earnings=state.earnings,
        survival_bonus=state.survival_bonus,
        time_remaining=state.time_remaining,
        time_spent=state.elapsed_minutes,
        rides_completed=state.rides_completed,
        fuel_used=state.fuel_used,
        rules_violated=state.rules_violated,
        difficulty_level=state.difficulty_level,
        passenger_ids=passenger_ids,
        legendary_passenger_ids=legendary,
        backstories_unlocked=list(state.backstories_unlocked),
        ended_at=state.ended_at or datetime.now(),
    )


def _failure_reason(state: ShiftState, successful: bool, reason: str | None) -> str:
    if successful and state.earnings < state.minimum_earnings:
        return (
            f"Shift failed: You only earned ${state.earnings} but needed "
            f"${state.minimum_earnings}. The company expects better performance."
        )
    if reason:
        return reason
    if not successful:
        return OUT_OF_TIME
    return GENERIC_FAILURE


def finish(
    state: ShiftState,
    ctx: ShiftContext,
    successful: bool,
    reason: str | None,
    at: datetime,
) -> list[Effect]:
    """
    End the shift on the draft.

    Success needs both the successful flag and the minimum earnings.
    A successful shift earns the survival bonus.
    """
    won = successful and state.earnings >= state.minimum_earnings
    if won:
        state.survival_bonus = ctx.config.survival_bonus
        message = reason or SHIFT_COMPLETE
        _move(state, GamePhase.SUCCESS)
    else:
        state.survival_bonus = 0
        message = _failure_reason(state, successful, reason)
        _move(state, GamePhase.GAME_OVER)

    state.game_over_reason = message
    state.ended_at = at
    state.pending_violation = None
    state.route_options = []

    summary = summarize(state, ctx, won, message)
    logger.info(
        "Shift ended (%s): %s rides, $%s, %s min left",
        "success" if won else "failure", summary.rides_completed,
        summary.total_earnings, summary.time_remaining,
    )
    return [
        ShiftEnded(summary=summary),
        Notify(event=EventType.SHIFT_ENDED, data={
            "successful": won,
            "reason": message,
            "earnings": summary.total_earnings,
            "rides_completed": summary.rides_completed,
        }),
    ]


def _violate(state: ShiftState, ctx: ShiftContext, violation: Violation, at: datetime) -> list[Effect]:
    """A visible rule was broken: immediate game over."""
    state.rules_violated += 1
    rule = violation.rule
    effects: list[Effect] = [Notify(event=EventType.RULE_VIOLATED, data={
        "rule_id": rule.id,
        "title": rule.title,
        "description": violation.description,
        "severity": violation.severity,
        "penalty": calculate_violation_penalty(violation),
    })]
    message = rule.violation_message or f"You broke the rule: {rule.title}"
    return effects + finish(state, ctx, False, message, at)


def _enforce(
    state: ShiftState,
    ctx: ShiftContext,
    action: PlayerAction,
    passenger: Passenger | None,
    at: datetime,
) -> list[Effect]:
    """
    Check an action against the rules in force.

    Each broken rule is absorbed by a protective item that guards it,
    spending one charge; the first one nothing absorbs ends the shift.
    Callers stop when the draft comes back terminal.
    """
    effects: list[Effect] = []
    for violation in validate_action(action, state, passenger, ctx.catalog):
        item = find_protection(state, ctx.catalog, violation.rule.id)
        if item is None:
            return effects + _violate(state, ctx, violation, at)
        used_up = use_protective_item(state, item)
        logger.info("%s absorbed a broken rule %s", item.name, violation.rule.id)
        effects.append(Notify(event=EventType.ITEM_PROTECTED, data={
            "item": item.name,
            "rule_id": violation.rule.id,
            "title": violation.rule.title,
            "uses_remaining": item.uses_remaining,
        }))
        if used_up:
            effects.append(Notify(event=EventType.ITEM_LOST, data={"item": item.name, "reason": "used_up"}))
    return effects


def _weather_rules(state: ShiftState, ctx: ShiftContext) -> list[Effect]:
    """Switch weather rules on or off to match the current conditions."""
    if state.weather is None:
        return []
    rules = ctx.catalog.rules_of_kind(RuleKind.WEATHER)
    active = weather_triggered_rules(rules, state.weather, state.time_of_day)
    effects: list[Effect] = []
    for rule in rules:
        if rule.id in active and rule.id not in state.weather_rules:
            logger.info("Weather rule %s in force: %s", rule.id, rule.title)
            effects.append(Notify(event=EventType.WEATHER_RULE_ACTIVATED, data={
                "rule_id": rule.id,
                "title": rule.title,
                "weather": state.weather.type.value,
            }))
    state.weather_rules = active
    return effects


def _item_upkeep(state: ShiftState, ctx: ShiftContext, elapsed: int) -> list[Effect]:
    """Curses bite and old items crumble between fares."""
    effects: list[Effect] = []
    for hit in apply_curses(state, ctx.catalog, elapsed):
        effects.append(Notify(event=EventType.CURSE_TRIGGERED, data={
            "item": hit.item,
            "penalty": hit.penalty.value,
            "amount": hit.amount,
        }))
    for item in process_deterioration(state, ctx.catalog, elapsed):
        logger.info("%s crumbled away", item.name)
        effects.append(Notify(event=EventType.ITEM_LOST, data={"item": item.name, "reason": "crumbled"}))
    return effects


# -----------------------------------------------------------------------------
# Handlers
# -----------------------------------------------------------------------------

def _start_game(state: ShiftState, event: StartGame, ctx: ShiftContext) -> Step:
    cfg = ctx.config
    rules = generate_shift_rules(ctx.catalog, event.experience, ctx.rng)
    fresh = ShiftState(
        version=state.version,
        tick_generation=state.tick_generation,
        screen_active=state.screen_active,
        fuel=cfg.initial_fuel,
        time_remaining=cfg.initial_time,
        initial_time=cfg.initial_time,
        minimum_earnings=cfg.minimum_earnings,
        experience=event.experience,
        difficulty_level=rules.difficulty_level,
        visible_rules=rules.visible_rules,
        hidden_rules=rules.hidden_rules,
        conflicts=rules.conflicts,
    )
    fresh.phase = state.phase
    _move(fresh, GamePhase.BRIEFING)
    logger.info(
        "Game started: difficulty %s, %s visible rules, %s hidden",
        rules.difficulty_level, len(rules.visible_rules), len(rules.hidden_rules),
    )
    return fresh, [Notify(event=EventType.GAME_STARTED, data={
        "difficulty_level": rules.difficulty_level,
        "visible_rules": list(rules.visible_rules),
        "conflicts": len(rules.conflicts),
    })]


def _start_shift(state: ShiftState, event: StartShift, ctx: ShiftContext) -> Step:
    state.shift_started_at = event.at
    state.weather = generate_weather(ctx.rng)
    state.time_of_day = time_of_day(ctx.config.shift_start_hour, 0)
    _move(state, GamePhase.WAITING)
    return state, [
        Notify(event=EventType.SHIFT_STARTED, data={
            "weather": state.weather.type.value,
            "intensity": state.weather.intensity.value,
        }),
        _schedule_ride_request(state, ctx, ctx.config.ride_request_delay),
    ]


def _request_ride(state: ShiftState, event: RequestRide, ctx: ShiftContext) -> Step:
    cfg = ctx.config
    elapsed = state.elapsed_minutes
    state.time_of_day = time_of_day(cfg.shift_start_hour, elapsed)
    if state.weather is not None:
        state.hazards = update_hazards(state.hazards, state.weather, state.time_of_day, ctx.rng, elapsed)
    effects = _weather_rules(state, ctx)
    effects += _item_upkeep(state, ctx, elapsed)
    if state.time_remaining <= 0:
        return state, effects + finish(state, ctx, False, OUT_OF_TIME, event.at)

    selection = select_passenger(
        ctx.catalog.passengers,
        state.used_passenger_ids,
        state.difficulty_level,
        ctx.rng,
        cfg,
        completed_rides=state.completed_rides,
        unlocked_backstories=ctx.unlocked_backstories | set(state.backstories_unlocked),
    )
    if selection is None:
        logger.warning("Passenger catalog is empty; ending shift")
        return state, effects + finish(state, ctx, True, NO_PASSENGERS, event.at)

    passenger = selection.passenger
    if passenger.id not in state.used_passenger_ids:
        state.used_passenger_ids.append(passenger.id)
    state.current_passenger_id = passenger.id
    state.current_ride = RideInProgress(
        passenger_id=passenger.id,
        first_encounter=selection.first_encounter,
        backstory_rolled=selection.backstory_unlocked,
        related=selection.related,
    )
    _move(state, GamePhase.RIDE_REQUEST)
    effects.append(Notify(event=EventType.RIDE_REQUESTED, data={
        "passenger_id": passenger.id,
        "name": passenger.name,
        "pickup": passenger.pickup,
        "destination": passenger.destination,
        "first_encounter": selection.first_encounter,
        "related": selection.related,
    }))
    return state, effects


def _accept_ride(state: ShiftState, event: AcceptRide, ctx: ShiftContext) -> Step:
    if state.fuel < ctx.config.accept_min_fuel:
        return state, finish(state, ctx, False, OUT_OF_FUEL_WITH_PASSENGER, event.at)

    passenger = _passenger(state, ctx)
    effects = _enforce(state, ctx, PlayerAction("pickup_passenger"), passenger, event.at)
    if state.is_terminal:
        return state, effects

    if state.current_ride is not None:
        state.current_ride.started_time_remaining = state.time_remaining
    state.driving_phase = RoutePhase.PICKUP
    _move(state, GamePhase.DRIVING)
    state.route_options = quote_routes(state, ctx, passenger).data
    return state, effects + [Notify(event=EventType.RIDE_ACCEPTED, data={
        "passenger_id": state.current_passenger_id,
    })]


def _decline_ride(state: ShiftState, event: DeclineRide, ctx: ShiftContext) -> Step:
    declined = state.current_passenger_id
    state.time_remaining = max(0, state.time_remaining - ctx.config.decline_time_penalty)
    state.current_passenger_id = None
    state.current_ride = None
    _move(state, GamePhase.WAITING)

    effects: list[Effect] = [Notify(event=EventType.RIDE_DECLINED, data={
        "passenger_id": declined,
        "time_penalty": ctx.config.decline_time_penalty,
    })]
    if state.time_remaining <= 0:
        return state, effects + finish(state, ctx, False, OUT_OF_TIME, event.at)
    effects.append(_schedule_ride_request(state, ctx, ctx.config.decline_delay))
    return state, effects


def _driving_choice(state: ShiftState, event: DrivingChoice, ctx: ShiftContext) -> Step:
    passenger = _passenger(state, ctx)
    options = state.route_options or quote_routes(state, ctx, passenger).data
    option = next(o for o in options if o.route == event.route)

    if state.fuel < option.fuel_cost:
        return state, finish(state, ctx, False, ROUTE_OUT_OF_FUEL, event.at)
    if state.time_remaining < option.time_cost:
        return state, finish(state, ctx, False, ROUTE_OUT_OF_TIME, event.at)

    action_type = ROUTE_ACTIONS[event.route]
    guarded: list[Effect] = []
    if action_type is not None:
        guarded = _enforce(state, ctx, PlayerAction(action_type), passenger, event.at)
        if state.is_terminal:
            return state, guarded

    state.fuel -= option.fuel_cost
    state.fuel_used += option.fuel_cost
    state.time_remaining -= option.time_cost
    leg = state.driving_phase or RoutePhase.PICKUP
    state.route_history.append(RouteChoiceRecord(
        route=event.route,
        phase=leg,
        fuel_cost=option.fuel_cost,
        time_cost=option.time_cost,
        risk_level=option.risk_level,
        passenger_id=state.current_passenger_id,
        timestamp=event.at,
    ))
    state.route_mastery[event.route] = state.route_mastery.get(event.route, 0) + 1
    if state.route_streak is not None and state.route_streak.route == event.route:
        state.route_streak.count += 1
    else:
        state.route_streak = RouteStreak(route=event.route)
    state.route_options = []

    effects: list[Effect] = guarded + [Notify(event=EventType.ROUTE_CHOSEN, data={
        "route": event.route.value,
        "phase": leg.value,
        "fuel_cost": option.fuel_cost,
        "time_cost": option.time_cost,
        "risk_level": option.risk_level,
        "fallback": option.fallback,
    })]

    if leg == RoutePhase.PICKUP:
        if state.current_ride is not None:
            state.current_ride.boarded_time_remaining = state.time_remaining
        _move(state, GamePhase.INTERACTION)
        return state, effects
    return state, effects + _complete_ride(state, ctx, passenger, event.at)


def _apply_offer(state: ShiftState, ctx: ShiftContext, passenger: Passenger | None) -> list[Effect]:
    """Apply a passenger's rule modification, at most once per ride."""
    ride = state.current_ride
    if passenger is None or passenger.rule_modification is None or ride is None or ride.offer_used:
        return []
    ride.offer_used = True
    mod = passenger.rule_modification
    affected: int | None = None

    if mod.type == ModificationType.REMOVE_RULE:
        removable = [
            rid for rid in state.visible_rules
            if (rule := ctx.catalog.rule(rid)) is not None and rule.kind != RuleKind.BASIC
        ]
        if removable:
            affected = removable[-1]
        elif state.visible_rules:
            affected = state.visible_rules[-1]
        if affected is not None:
            state.visible_rules.remove(affected)
            state.conflicts = [
                c for c in state.conflicts
                if affected not in (c.rule_id, c.conflicting_rule_id)
            ]

    elif mod.type == ModificationType.REVEAL_HIDDEN:
        unrevealed = [rid for rid in state.hidden_rules if rid not in state.revealed_hidden_rules]
        if unrevealed:
            affected = unrevealed[0]
            state.revealed_hidden_rules.append(affected)

    elif mod.type == ModificationType.ADD_TEMPORARY:
        rule = ctx.catalog.rule(mod.rule_id) if mod.rule_id is not None else None
        if rule is not None and all(t.rule_id != rule.id for t in state.temporary_rules):
            affected = rule.id
            state.temporary_rules.append(TemporaryRule(
                rule_id=rule.id,
                expires_after_rides=state.rides_completed + (rule.duration or 1),
            ))

    return [Notify(event=EventType.RULE_MODIFIED, data={
        "passenger_id": passenger.id,
        "type": mod.type.value,
        "rule_id": affected,
        "description": mod.description,
    })]


def _passenger_action(state: ShiftState, event: PassengerAction, ctx: ShiftContext) -> Step:
    passenger = _passenger(state, ctx)
    ride = state.current_ride
    action = PlayerAction(event.action_type, dict(event.payload))

    if action.type == "return_to_pickup" and ride is not None and passenger is not None:
        ride.drop_off_location = passenger.pickup

    guarded = _enforce(state, ctx, action, passenger, event.at)
    if state.is_terminal:
        return state, guarded

    sentiment = action_sentiment(action.type)
    if ride is not None:
        ride.actions.append(action.type)
        if sentiment == "positive":
            ride.positive_actions += 1
        elif sentiment == "negative":
            ride.negative_actions += 1
    if action.type in SPEAKING_ACTIONS:
        state.last_spoke_at = state.time_remaining

    effects: list[Effect] = guarded + [Notify(event=EventType.ACTION_PERFORMED, data={
        "action_type": action.type,
        "sentiment": sentiment,
    })]
    if action.type == "accept_offer":
        effects.extend(_apply_offer(state, ctx, passenger))
    return state, effects


def _continue_to_destination(state: ShiftState, event: ContinueToDestination, ctx: ShiftContext) -> Step:
    state.driving_phase = RoutePhase.DESTINATION
    _move(state, GamePhase.DRIVING)
    state.route_options = quote_routes(state, ctx, _passenger(state, ctx)).data
    return state, []


def _complete_ride(
    state: ShiftState,
    ctx: ShiftContext,
    passenger: Passenger | None,
    at: datetime,
) -> list[Effect]:
    """
    Resolve the ride after the destination leg.

    A broken hidden rule defers the game over: the rule is revealed and
    a timer resolves it, bypassing normal completion.
    """
    cfg, rng = ctx.config, ctx.rng
    ride = state.current_ride or RideInProgress(passenger_id=state.current_passenger_id or 0)

    drop_off = PlayerAction("drop_off_passenger", {
        "location": ride.drop_off_location or (passenger.destination if passenger else None),
    })
    effects = _enforce(state, ctx, drop_off, passenger, at)
    if state.is_terminal:
        return effects

    hidden = check_hidden_rule_violations(state, passenger, ctx.catalog)
    if hidden is not None:
        if hidden.id not in state.revealed_hidden_rules:
            state.revealed_hidden_rules.append(hidden.id)
        state.pending_violation = hidden.id
        state.rules_violated += 1
        logger.info("Hidden rule %s broken on ride with passenger %s", hidden.id, ride.passenger_id)
        return effects + [
            Notify(event=EventType.HIDDEN_RULE_REVEALED, data={
                "rule_id": hidden.id,
                "title": hidden.title,
                "message": hidden.violation_message,
            }),
            ScheduleTimer(
                kind=TimerKind.RESOLVE_VIOLATION,
                delay=cfg.hidden_reveal_delay,
                token=state.version,
            ),
        ]

    last_route = state.route_history[-1].route if state.route_history else None
    pref = passenger.preference_for(last_route) if passenger and last_route else None
    modifier = get_modifier(state.reputation.get(ride.passenger_id))
    base_fare = passenger.fare if passenger else 0
    pref_mult = pref.fare_modifier if pref else 1.0
    fare = max(
        cfg.minimum_fare,
        math.floor(base_fare * pref_mult * modifier.fare_multiplier) + variation(rng, cfg.fare_variation),
    )

    item = None
    if passenger and passenger.items and chance(rng, cfg.item_drop_chance):
        item = choice(rng, passenger.items)
        state.inventory.append(create_item(ctx.catalog, item, passenger.id, state.elapsed_minutes, at))

    unlocked = False
    known = ride.passenger_id in ctx.unlocked_backstories or ride.passenger_id in state.backstories_unlocked
    if passenger is not None and not known:
        if ride.backstory_rolled:
            unlocked = True
        else:
            odds = cfg.backstory_first_chance if ride.first_encounter else cfg.backstory_repeat_chance
            unlocked = chance(rng, odds)
    if unlocked:
        state.backstories_unlocked.append(ride.passenger_id)
        effects.append(UnlockBackstory(passenger_id=ride.passenger_id))
        effects.append(Notify(event=EventType.BACKSTORY_UNLOCKED, data={
            "passenger_id": ride.passenger_id,
            "backstory": passenger.backstory,
        }))

    disliked = pref is not None and pref.preference in (Preference.DISLIKES, Preference.FEARS)
    positive = ride.positive_actions >= ride.negative_actions and not disliked
    state.reputation = update_reputation(state.reputation, ride.passenger_id, positive, at)

    started = ride.started_time_remaining if ride.started_time_remaining is not None else state.time_remaining
    state.completed_rides.append(CompletedRide(
        passenger_id=ride.passenger_id,
        fare=fare,
        duration=max(0, started - state.time_remaining),
        route=last_route,
        item=item,
        backstory_unlocked=unlocked,
        positive=positive,
        supernatural_type=passenger.supernatural_type if passenger else None,
        completed_at=at,
    ))
    state.earnings += fare
    state.temporary_rules = [
        t for t in state.temporary_rules if state.rides_completed < t.expires_after_rides
    ]
    state.driving_phase = None
    _move(state, GamePhase.DROP_OFF)

    effects.insert(0, Notify(event=EventType.RIDE_COMPLETED, data={
        "passenger_id": ride.passenger_id,
        "fare": fare,
        "positive": positive,
        "relationship": state.reputation[ride.passenger_id].relationship_level.value,
    }))
    if item is not None:
        effects.append(Notify(event=EventType.ITEM_RECEIVED, data={
            "item": item,
            "passenger_id": ride.passenger_id,
        }))
    return effects


def _resolve_violation(state: ShiftState, event: ResolveViolation, ctx: ShiftContext) -> Step:
    rule = ctx.catalog.rule(state.pending_violation)
    if rule is not None:
        reason = rule.violation_message or f"You broke a rule you were never told about: {rule.title}"
    else:
        reason = GENERIC_FAILURE
    state.pending_violation = None
    return state, finish(state, ctx, False, reason, event.at)


def _continue_from_drop_off(state: ShiftState, event: ContinueFromDropOff, ctx: ShiftContext) -> Step:
    cfg = ctx.config
    state.current_passenger_id = None
    state.current_ride = None
    _move(state, GamePhase.WAITING)

    if state.time_remaining <= cfg.end_time_threshold or state.fuel <= cfg.end_fuel_threshold:
        return state, finish(state, ctx, True, None, event.at)
    return state, [_schedule_ride_request(state, ctx, cfg.drop_off_delay)]


def _refuel(state: ShiftState, event: Refuel, ctx: ShiftContext) -> Step:
    cfg = ctx.config
    room = MAX_FUEL - state.fuel
    points = room if event.full else min(cfg.partial_refuel, room)
    price = math.ceil(points * cfg.fuel_price)

    if points <= 0 or price > state.earnings:
        why = "tank_full" if points <= 0 else "insufficient_funds"
        return None, [Notify(event=EventType.REFUEL_REFUSED, data={
            "reason": why,
            "points": points,
            "price": price,
        })]

    state.fuel = min(MAX_FUEL, state.fuel + points)
    state.earnings = max(0, state.earnings - price)
    state.time_remaining = max(0, state.time_remaining - cfg.refuel_time_cost)
    effects: list[Effect] = [Notify(event=EventType.REFUELED, data={
        "points": points,
        "price": price,
        "fuel": state.fuel,
    })]
    if state.time_remaining <= 0:
        return state, effects + finish(state, ctx, False, OUT_OF_TIME, event.at)
    effects.append(_schedule_ride_request(state, ctx, cfg.ride_request_delay))
    return state, effects


def _use_item(state: ShiftState, event: UseItem, ctx: ShiftContext) -> Step:
    item = find_item(state, event.name)
    definition = ctx.catalog.item(event.name)
    if item is None or not definition.usable:
        why = "not_carried" if item is None else "not_usable"
        return None, [Notify(event=EventType.ITEM_REFUSED, data={"item": event.name, "reason": why})]

    state.inventory.remove(item)
    changes = apply_item_effects(state, definition)
    effects: list[Effect] = [Notify(event=EventType.ITEM_USED, data={
        "item": item.name,
        "changes": changes,
    })]
    if state.time_remaining <= 0:
        return state, effects + finish(state, ctx, False, OUT_OF_TIME, event.at)
    if state.phase == GamePhase.WAITING:
        effects.append(_schedule_ride_request(state, ctx, ctx.config.ride_request_delay))
    return state, effects


def _tick(state: ShiftState, event: Tick, ctx: ShiftContext) -> Step:
    state.time_remaining = max(0, state.time_remaining - ctx.config.tick_minutes)
    effects: list[Effect] = [Notify(event=EventType.TIME_TICK, data={
        "time_remaining": state.time_remaining,
    })]
    if state.time_remaining <= 0:
        return state, effects + finish(state, ctx, False, OUT_OF_TIME, event.at)
    effects.append(_schedule_tick(state, ctx))
    return state, effects


def _end_shift(state: ShiftState, event: EndShift, ctx: ShiftContext) -> Step:
    return state, finish(state, ctx, event.successful, event.reason, event.at)


def _screen_changed(state: ShiftState, event: ScreenChanged, ctx: ShiftContext) -> Step:
    state.screen_active = event.active
    return state, []


def _resume_shift(state: ShiftState, event: ResumeShift, ctx: ShiftContext) -> Step:
    """Re-arm whatever timers a restored state needs."""
    effects: list[Effect] = []
    if state.phase == GamePhase.WAITING:
        effects.append(_schedule_ride_request(state, ctx, ctx.config.ride_request_delay))
    if state.pending_violation is not None:
        effects.append(ScheduleTimer(
            kind=TimerKind.RESOLVE_VIOLATION,
            delay=ctx.config.hidden_reveal_delay,
            token=state.version,
        ))
    if countdown_active(state):
        state.tick_generation += 1
        effects.append(_schedule_tick(state, ctx))
    return state, effects


_ROUTES: dict[type[ShiftEvent], _Route] = {
    StartGame: _Route(
        _start_game, "start game",
        frozenset({GamePhase.LOADING, GamePhase.GAME_OVER, GamePhase.SUCCESS}),
    ),
    StartShift: _Route(_start_shift, "start shift", frozenset({GamePhase.BRIEFING})),
    RequestRide: _Route(_request_ride, "request ride", frozenset({GamePhase.WAITING})),
    AcceptRide: _Route(_accept_ride, "accept ride", frozenset({GamePhase.RIDE_REQUEST})),
    DeclineRide: _Route(_decline_ride, "decline ride", frozenset({GamePhase.RIDE_REQUEST})),
    DrivingChoice: _Route(_driving_choice, "choose a route", frozenset({GamePhase.DRIVING})),
    PassengerAction: _Route(_passenger_action, "act", frozenset({GamePhase.INTERACTION})),
    ContinueToDestination: _Route(
        _continue_to_destination, "continue to destination", frozenset({GamePhase.INTERACTION}),
    ),
    ContinueFromDropOff: _Route(
        _continue_from_drop_off, "continue from drop-off", frozenset({GamePhase.DROP_OFF}),
    ),
    Refuel: _Route(_refuel, "refuel", frozenset({GamePhase.WAITING})),
    UseItem: _Route(_use_item, "use an item", frozenset({GamePhase.WAITING, GamePhase.INTERACTION})),
    EndShift: _Route(_end_shift, "end shift", ACTIVE_PHASES),
    ResolveViolation: _Route(_resolve_violation, "resolve violation", None),
    Tick: _Route(_tick, "tick", None, bumps_version=False),
    ScreenChanged: _Route(_screen_changed, "change screen", None, bumps_version=False),
    ResumeShift: _Route(_resume_shift, "resume shift", None, bumps_version=False),
}

# Player events still accepted while a hidden-rule violation is pending
_ALLOWED_WHILE_PENDING = (ScreenChanged, ResumeShift)


def _timer_is_current(state: ShiftState, event: TimerEvent) -> bool:
    if isinstance(event, RequestRide):
        return state.phase == GamePhase.WAITING and event.token == state.version
    if isinstance(event, Tick):
        return event.token == state.tick_generation and countdown_active(state)
    if isinstance(event, ResolveViolation):
        return state.pending_violation is not None and event.token == state.version
    return False


def _check_player_event(state: ShiftState, event: ShiftEvent, route: _Route) -> None:
    if event.expected_version is not None and event.expected_version != state.version:
        raise StaleEventError(event.expected_version, state.version)
    if route.phases is not None and state.phase not in route.phases:
        raise InvalidPhaseError(state.phase, route.name)
    if state.pending_violation is not None and not isinstance(event, _ALLOWED_WHILE_PENDING):
        raise InvalidPhaseError(state.phase, f"{route.name} while a violation is pending")


def _sync_countdown(before: ShiftState, after: ShiftState, ctx: ShiftContext) -> list[Effect]:
    """Start a new countdown generation whenever the countdown starts or stops."""
    if countdown_active(before) == countdown_active(after):
        return []
    after.tick_generation += 1
    if countdown_active(after):
        return [_schedule_tick(after, ctx)]
    return []


def transition(state: ShiftState, event: ShiftEvent, ctx: ShiftContext) -> TransitionResult:
    """
    Apply one event to a shift.

    Args:
        state: Current state; never mutated
        event: Player, internal or timer event
        ctx: Catalog, config and random source

    Returns:
        TransitionResult with the next state and effects to run

    Raises:
        InvalidPhaseError: Player event not legal in the current phase
        StaleEventError: Player event's expected_version is out of date
    """
    route = _ROUTES.get(type(event))
    if route is None:
        raise ShiftError(f"No handler for {type(event).__name__}")

    if isinstance(event, TimerEvent):
        if not _timer_is_current(state, event):
            logger.debug(
                "Dropping stale %s (token %s, version %s, generation %s, phase %s)",
                type(event).__name__, event.token, state.version,
                state.tick_generation, state.phase.value,
            )
            return TransitionResult(state=state)
    else:
        _check_player_event(state, event, route)

    draft = state.model_copy(deep=True)
    if route.bumps_version:
        draft.version += 1

    next_state, effects = route.handler(draft, event, ctx)
    if next_state is None:
        return TransitionResult(state=state, effects=effects)

    effects = effects + _sync_countdown(state, next_state, ctx)
    return TransitionResult(state=next_state, effects=effects)
