"""
Pytest fixtures for Nightshift tests.

Provides the packaged catalog, in-memory storage, a manual scheduler
and deterministic random sources for isolated testing.
"""

import pytest

from nightshift.config import BalanceConfig
from nightshift.engine import ShiftEngine
from nightshift.state.catalog import GameCatalog
from nightshift.state.schema import (
    GamePhase,
    RideInProgress,
    RouteOption,
    RoutePhase,
    RouteType,
    ShiftState,
)
from nightshift.state.store import MemoryStorage
from nightshift.systems.shift import ShiftContext
from nightshift.systems.timers import ManualScheduler
from nightshift.tools.rng import ScriptedRandom, SeededRandom


@pytest.fixture(scope="session")
def catalog():
    """Catalog shipped with the package."""
    return GameCatalog.load_default()


@pytest.fixture
def config():
    """Default balance configuration."""
    return BalanceConfig()


@pytest.fixture
def storage():
    """In-memory storage for testing."""
    return MemoryStorage()


@pytest.fixture
def scheduler():
    """Virtual-clock scheduler."""
    return ManualScheduler()


@pytest.fixture
def rng():
    """Seeded random source."""
    return SeededRandom(42)


@pytest.fixture
def steady_rng():
    """Always 0.5: no variation, no item drops, no backstory rolls."""
    return ScriptedRandom([0.5])


@pytest.fixture
def ctx(catalog, config, steady_rng):
    """Deterministic transition context."""
    return ShiftContext(catalog=catalog, config=config, rng=steady_rng)


@pytest.fixture
def engine(catalog, config, storage, scheduler):
    """Engine wired to in-memory storage and a manual scheduler."""
    return ShiftEngine(
        catalog=catalog,
        config=config,
        rng=SeededRandom(7),
        storage=storage,
        scheduler=scheduler,
    )


def make_option(route: RouteType, fuel: int = 8, time: int = 10, risk: int = 1) -> RouteOption:
    return RouteOption(
        route=route,
        name=route.value.title(),
        fuel_cost=fuel,
        time_cost=time,
        risk_level=risk,
    )


def driving_state(
    passenger_id: int = 2,
    leg: RoutePhase = RoutePhase.PICKUP,
    fuel: int = 80,
    time_remaining: int = 400,
    options: list[RouteOption] | None = None,
    **overrides,
) -> ShiftState:
    """A shift in the DRIVING phase with fixed route quotes."""
    state = ShiftState(
        version=10,
        phase=GamePhase.DRIVING,
        fuel=fuel,
        time_remaining=time_remaining,
        current_passenger_id=passenger_id,
        current_ride=RideInProgress(passenger_id=passenger_id, started_time_remaining=time_remaining),
        used_passenger_ids=[passenger_id],
        driving_phase=leg,
        route_options=options if options is not None else [make_option(r) for r in RouteType],
    )
    return state.model_copy(update=overrides)
