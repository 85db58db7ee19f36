"""
Shift engine boundary.

ShiftEngine owns the single authoritative ShiftState and is the only
thing that swaps it. Every operation builds an event, runs it through
transition(), stores the new state, then carries out the effects:

    ScheduleTimer   -> scheduler.call_later, firing a timer event later
    Notify          -> event bus
    UnlockBackstory -> persisted backstory set
    ShiftEnded      -> scoring, stats, leaderboard, saved-game cleanup

Collaborators are injected; nothing here touches module-level state.

Usage:
    engine = ShiftEngine(storage=JsonFileStorage("saves"))
    engine.start_game()
    engine.start_shift()
    engine.scheduler.run_next()      # ManualScheduler: ride request fires
    engine.accept_ride()
    engine.handle_driving_choice(RouteType.NORMAL)
"""

from __future__ import annotations

import itertools
import logging
from typing import Any

from .config import BalanceConfig
from .state.catalog import GameCatalog
from .state.event_bus import EventBus, EventType
from .state.events import (
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
    ResumeShift,
    ScheduleTimer,
    ScreenChanged,
    ShiftEnded,
    ShiftEvent,
    StartGame,
    StartShift,
    UnlockBackstory,
    UseItem,
)
from .state.schema import (
    GamePhase,
    LeaderboardEntry,
    PlayerStats,
    RouteOption,
    RouteType,
    SavedGame,
    ShiftState,
    ShiftSummary,
)
from .state.store import MemoryStorage, PersistenceService, Storage
from .systems.rules import calculate_experience
from .systems.scoring import ShiftScore, score_shift
from .systems.shift import ShiftContext, TransitionResult, quote_routes, transition
from .systems.timers import ManualScheduler, TimerScheduler, timer_event
from .tools.results import GameResult
from .tools.rng import RandomSource, SeededRandom

logger = logging.getLogger(__name__)


class ShiftEngine:
    """
    Runs shifts against a catalog, a config and a persistence port.

    Defaults suit tests and simulation: the packaged catalog, default
    balance, a fresh seeded random source, in-memory storage and a
    manual scheduler.
    """

    def __init__(
        self,
        catalog: GameCatalog | None = None,
        config: BalanceConfig | None = None,
        rng: RandomSource | None = None,
        storage: Storage | None = None,
        scheduler: TimerScheduler | None = None,
        bus: EventBus | None = None,
    ):
        self.catalog = catalog or GameCatalog.load_default()
        self.config = config or BalanceConfig()
        self.rng = rng or SeededRandom()
        self.persistence = PersistenceService(
            storage if storage is not None else MemoryStorage(),
            self.config.save_max_age_hours,
        )
        self.scheduler = scheduler if scheduler is not None else ManualScheduler()
        self.bus = bus or EventBus()

        self._state = ShiftState()
        self._timers: dict[int, Any] = {}
        self._timer_ids = itertools.count()

        self._player_stats = self.persistence.load_player_stats()
        self._leaderboard = self.persistence.load_leaderboard()
        self._unlocked_backstories = self.persistence.load_unlocked_backstories()
        self.last_score: ShiftScore | None = None

    # -------------------------------------------------------------------------
    # Read-only views
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ShiftState:
        return self._state

    @property
    def player_stats(self) -> PlayerStats:
        return self._player_stats

    @property
    def leaderboard(self) -> list[LeaderboardEntry]:
        return list(self._leaderboard)

    @property
    def unlocked_backstories(self) -> frozenset[int]:
        return frozenset(self._unlocked_backstories)

    @property
    def pending_timers(self) -> int:
        return len(self._timers)

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def _context(self) -> ShiftContext:
        return ShiftContext(
            catalog=self.catalog,
            config=self.config,
            rng=self.rng,
            unlocked_backstories=frozenset(self._unlocked_backstories),
        )

    def dispatch(self, event: ShiftEvent) -> TransitionResult:
        """
        Apply an event and run its effects.

        Raises:
            InvalidPhaseError: Player event not legal in the current phase
            StaleEventError: Player event's expected_version is out of date
        """
        result = transition(self._state, event, self._context())
        self._state = result.state
        self._run_effects(result.effects)
        return result

    def _run_effects(self, effects: list[Effect]) -> None:
        for effect in effects:
            if isinstance(effect, ScheduleTimer):
                self._schedule(effect)
            elif isinstance(effect, Notify):
                self.bus.emit(effect.event, version=self._state.version, **effect.data)
            elif isinstance(effect, UnlockBackstory):
                self._unlocked_backstories.add(effect.passenger_id)
                self.persistence.save_unlocked_backstories(self._unlocked_backstories)
            elif isinstance(effect, ShiftEnded):
                self._commit(effect.summary)

    def _schedule(self, timer: ScheduleTimer) -> None:
        key = next(self._timer_ids)

        def fire() -> None:
            self._timers.pop(key, None)
            self.dispatch(timer_event(timer.kind, timer.token))

        self._timers[key] = self.scheduler.call_later(timer.delay, fire)

    def cancel_timers(self) -> None:
        """Cancel every outstanding timer this engine scheduled."""
        for handle in self._timers.values():
            self.scheduler.cancel(handle)
        self._timers.clear()

    def _commit(self, summary: ShiftSummary) -> None:
        """Score a finished shift and persist the results."""
        self.cancel_timers()
        scored = score_shift(
            summary,
            self._player_stats,
            self._leaderboard,
            self.config.leaderboard_size,
        )
        self._player_stats = scored.stats
        self._leaderboard = scored.leaderboard
        self.last_score = scored

        self.persistence.save_player_stats(scored.stats)
        self.persistence.save_leaderboard(scored.leaderboard)
        self.persistence.save_unlocked_backstories(self._unlocked_backstories)
        if summary.successful:
            self.persistence.clear_saved_game()

        logger.info("Shift scored %s (%s)", scored.score, "survived" if summary.successful else "failed")
        self.bus.emit(
            EventType.STATS_UPDATED,
            version=self._state.version,
            score=scored.score,
            achievements=scored.new_achievements,
        )

    # -------------------------------------------------------------------------
    # Shift operations
    # -------------------------------------------------------------------------

    def start_game(self) -> ShiftState:
        """Generate tonight's rules from the player's experience."""
        self.cancel_timers()
        experience = calculate_experience(self._player_stats)
        return self.dispatch(StartGame(experience=experience)).state

    def start_shift(self) -> ShiftState:
        return self.dispatch(StartShift()).state

    def accept_ride(self) -> ShiftState:
        return self.dispatch(AcceptRide()).state

    def decline_ride(self) -> ShiftState:
        return self.dispatch(DeclineRide()).state

    def handle_driving_choice(self, route: RouteType | str) -> ShiftState:
        return self.dispatch(DrivingChoice(route=RouteType(route))).state

    def perform_action(self, action_type: str, **payload: Any) -> ShiftState:
        return self.dispatch(PassengerAction(action_type=action_type, payload=payload)).state

    def continue_to_destination(self) -> ShiftState:
        return self.dispatch(ContinueToDestination()).state

    def continue_from_drop_off(self) -> ShiftState:
        return self.dispatch(ContinueFromDropOff()).state

    def refuel(self, full: bool = True) -> ShiftState:
        return self.dispatch(Refuel(full=full)).state

    def use_item(self, name: str) -> ShiftState:
        """Use a carried item. An item that is missing or unusable is refused."""
        return self.dispatch(UseItem(name=name)).state

    def end_shift(self, successful: bool, reason: str | None = None) -> ShiftState:
        return self.dispatch(EndShift(successful=successful, reason=reason)).state

    def set_screen_active(self, active: bool) -> ShiftState:
        """Tell the engine whether the in-shift screen is showing."""
        return self.dispatch(ScreenChanged(active=active)).state

    def get_route_options(self) -> GameResult[list[RouteOption]]:
        """
        Priced routes for the current leg.

        Returns the quotes the driver will be charged when driving, or a
        fresh estimate in any other phase.
        """
        if self._state.route_options:
            return GameResult.ok(list(self._state.route_options))
        passenger = self.catalog.passenger(self._state.current_passenger_id)
        return quote_routes(self._state, self._context(), passenger)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def save_game(self) -> bool:
        """Snapshot the shift in progress. Returns True on success."""
        if self._state.phase == GamePhase.LOADING or self._state.is_terminal:
            logger.warning("Nothing to save in %s phase", self._state.phase.value)
            return False
        saved = SavedGame(game_state=self._state, player_stats=self._player_stats)
        ok = self.persistence.save_game(saved)
        if ok:
            logger.info("Saved game at version %s", self._state.version)
            self.bus.emit(EventType.GAME_SAVED, version=self._state.version, phase=self._state.phase.value)
        return ok

    def load_game(self) -> bool:
        """
        Resume a saved shift.

        Returns False when there is no usable save. Timers the restored
        state needs are re-armed.
        """
        saved = self.persistence.load_saved_game()
        if saved is None:
            return False
        self.cancel_timers()
        self._state = saved.game_state
        logger.info("Loaded game saved at %s", saved.timestamp)
        self.dispatch(ResumeShift())
        self.bus.emit(EventType.GAME_LOADED, version=self._state.version, phase=self._state.phase.value)
        return True

    def reset_game(self) -> ShiftState:
        """Abandon the current shift without scoring it."""
        self.cancel_timers()
        previous = self._state
        self._state = ShiftState(
            version=previous.version + 1,
            tick_generation=previous.tick_generation + 1,
        )
        self.bus.emit(EventType.GAME_RESET, version=self._state.version)
        return self._state
