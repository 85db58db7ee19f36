"""
Automated shift runner for balance testing.

Plays whole shifts through the real engine with a manual scheduler,
so every timer, rule check and scoring path runs exactly as it would
in play; only the clock is virtual.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field

from ..config import BalanceConfig
from ..engine import ShiftEngine
from ..state.catalog import GameCatalog
from ..state.events import StartGame
from ..state.schema import GamePhase
from ..state.store import MemoryStorage
from ..systems.timers import ManualScheduler
from ..tools.rng import SeededRandom
from .strategies import STRATEGIES

logger = logging.getLogger(__name__)

MAX_STEPS = 2000
REFUEL_BELOW = 20
STEP_LIMIT_REASON = "Simulation step limit reached"


@dataclass
class ShiftOutcome:
    """Result of one simulated shift."""

    strategy: str
    seed: int | None
    successful: bool
    reason: str
    score: int
    earnings: int
    rides: int
    time_remaining: int
    fuel: int
    rules_violated: int
    steps: int


@dataclass
class BatchResult:
    """Aggregate over many shifts with one strategy."""

    strategy: str
    outcomes: list[ShiftOutcome] = field(default_factory=list)

    @property
    def runs(self) -> int:
        return len(self.outcomes)

    @property
    def successes(self) -> int:
        return sum(1 for o in self.outcomes if o.successful)

    @property
    def success_rate(self) -> float:
        return self.successes / self.runs if self.runs else 0.0

    def _mean(self, attr: str) -> float:
        if not self.outcomes:
            return 0.0
        return sum(getattr(o, attr) for o in self.outcomes) / self.runs

    @property
    def mean_score(self) -> float:
        return self._mean("score")

    @property
    def mean_earnings(self) -> float:
        return self._mean("earnings")

    @property
    def mean_rides(self) -> float:
        return self._mean("rides")

    @property
    def failure_reasons(self) -> dict[str, int]:
        return dict(Counter(o.reason for o in self.outcomes if not o.successful))


def simulate_shift(
    strategy: str,
    seed: int | None = None,
    catalog: GameCatalog | None = None,
    config: BalanceConfig | None = None,
    experience: int = 0,
    max_steps: int = MAX_STEPS,
) -> ShiftOutcome:
    """
    Play one shift to the end with a named strategy.

    Every ride is accepted and every passenger is driven straight to
    their destination; the strategy only picks routes.
    """
    choose = STRATEGIES[strategy]
    scheduler = ManualScheduler()
    engine = ShiftEngine(
        catalog=catalog,
        config=config,
        rng=SeededRandom(seed),
        storage=MemoryStorage(),
        scheduler=scheduler,
    )
    strategy_rng = SeededRandom(None if seed is None else seed + 1)

    engine.dispatch(StartGame(experience=experience))
    engine.start_shift()

    steps = 0
    while not engine.state.is_terminal and steps < max_steps:
        steps += 1
        state = engine.state

        if state.pending_violation is not None:
            if not scheduler.run_next():
                break
        elif state.phase == GamePhase.WAITING:
            if state.fuel < REFUEL_BELOW:
                engine.refuel()
            if not scheduler.run_next():
                break
        elif state.phase == GamePhase.RIDE_REQUEST:
            engine.accept_ride()
        elif state.phase == GamePhase.DRIVING:
            options = engine.get_route_options().data
            passenger = engine.catalog.passenger(state.current_passenger_id)
            engine.handle_driving_choice(choose(options, passenger, state, strategy_rng))
        elif state.phase == GamePhase.INTERACTION:
            engine.continue_to_destination()
        elif state.phase == GamePhase.DROP_OFF:
            engine.continue_from_drop_off()
        else:
            break

    if not engine.state.is_terminal:
        logger.warning("%s shift (seed %s) stopped after %s steps", strategy, seed, steps)
        engine.end_shift(False, STEP_LIMIT_REASON)

    final = engine.state
    return ShiftOutcome(
        strategy=strategy,
        seed=seed,
        successful=final.phase == GamePhase.SUCCESS,
        reason=final.game_over_reason or "",
        score=engine.last_score.score if engine.last_score else 0,
        earnings=final.earnings + final.survival_bonus,
        rides=final.rides_completed,
        time_remaining=final.time_remaining,
        fuel=final.fuel,
        rules_violated=final.rules_violated,
        steps=steps,
    )


def run_batch(
    strategy: str,
    runs: int = 100,
    seed: int = 0,
    catalog: GameCatalog | None = None,
    config: BalanceConfig | None = None,
    experience: int = 0,
) -> BatchResult:
    """Simulate runs shifts with seeds seed, seed + 2, seed + 4, ..."""
    catalog = catalog or GameCatalog.load_default()
    batch = BatchResult(strategy=strategy)
    for i in range(runs):
        batch.outcomes.append(simulate_shift(
            strategy,
            seed=seed + i * 2,
            catalog=catalog,
            config=config,
            experience=experience,
        ))
    logger.debug("%s: %s/%s shifts survived", strategy, batch.successes, batch.runs)
    return batch


def run_all(
    runs: int = 100,
    seed: int = 0,
    catalog: GameCatalog | None = None,
    config: BalanceConfig | None = None,
    experience: int = 0,
) -> dict[str, BatchResult]:
    """One batch per registered strategy."""
    catalog = catalog or GameCatalog.load_default()
    return {
        name: run_batch(name, runs, seed, catalog, config, experience)
        for name in STRATEGIES
    }
