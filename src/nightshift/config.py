"""
Balance configuration persistence.

Every tunable number the engine uses lives in BalanceConfig. A config
file only needs the keys it overrides; everything else falls back to
the defaults below.
"""

import json
import logging
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


class RouteBase(BaseModel):
    """Unmodified cost profile for one route type."""
    fuel: int
    time: int  # Minutes
    risk: int


def _default_route_table() -> dict[str, RouteBase]:
    return {
        "normal": RouteBase(fuel=7, time=30, risk=1),
        "shortcut": RouteBase(fuel=4, time=22, risk=3),
        "scenic": RouteBase(fuel=12, time=38, risk=2),
        "police": RouteBase(fuel=10, time=27, risk=0),
    }


def _default_rarity_weights() -> dict[str, float]:
    return {"common": 70.0, "uncommon": 25.0, "rare": 4.5, "legendary": 0.5}


class BalanceConfig(BaseModel):
    """Tunable constants for a shift."""

    # Shift resources
    initial_fuel: int = 100
    initial_time: int = 480               # Minutes in a shift
    minimum_earnings: int = 200
    survival_bonus: int = 50
    shift_start_hour: int = 22            # Clock hour the shift begins

    # Passenger selection
    backstory_first_chance: float = 0.2
    backstory_repeat_chance: float = 0.5
    item_drop_chance: float = 0.4
    related_spawn_chance: float = 0.3
    related_select_chance: float = 0.5
    rarity_weights: dict[str, float] = Field(default_factory=_default_rarity_weights)

    # Route costs
    route_base: dict[str, RouteBase] = Field(default_factory=_default_route_table)
    fuel_variation: int = 3
    time_variation: int = 5
    minimum_fuel_cost: int = 5
    minimum_time_cost: int = 5
    default_risk_level: int = 1
    fallback_route: RouteBase = Field(
        default_factory=lambda: RouteBase(fuel=15, time=20, risk=1)
    )

    # Fares
    fare_variation: int = 5
    minimum_fare: int = 5

    # Timers (seconds)
    ride_request_delay: tuple[float, float] = (2.0, 5.0)
    decline_delay: tuple[float, float] = (2.0, 5.0)
    drop_off_delay: tuple[float, float] = (2.5, 5.0)
    hidden_reveal_delay: float = 3.0
    tick_interval: float = 30.0
    tick_minutes: int = 1

    # Thresholds and penalties
    decline_time_penalty: int = 5
    end_time_threshold: int = 60          # continue_from_drop_off ends the shift at or below
    end_fuel_threshold: int = 5
    accept_min_fuel: int = 5

    # Refueling
    fuel_price: float = 0.5               # Currency per fuel point
    refuel_time_cost: int = 15
    partial_refuel: int = 25

    # Persistence and scoring
    save_max_age_hours: float | None = 24  # None keeps saves forever
    leaderboard_size: int = 10


DEFAULT_CONFIG = BalanceConfig()


def get_config_path(data_dir: Path | str = "saves") -> Path:
    """Get path to the balance config file."""
    return Path(data_dir) / "balance.json"


def load_config(data_dir: Path | str = "saves") -> BalanceConfig:
    """Load config from file, or return defaults if missing or unreadable."""
    path = get_config_path(data_dir)

    if not path.exists():
        return DEFAULT_CONFIG.model_copy(deep=True)

    try:
        with open(path, "r", encoding="utf-8") as f:
            saved = json.load(f)
        # Merge with defaults to handle missing keys
        merged = DEFAULT_CONFIG.model_dump()
        merged.update(saved)
        return BalanceConfig.model_validate(merged)
    except (json.JSONDecodeError, OSError, ValidationError, TypeError) as e:
        logger.warning("Ignoring unreadable balance config %s: %s", path, e)
        return DEFAULT_CONFIG.model_copy(deep=True)


def save_config(config: BalanceConfig, data_dir: Path | str = "saves") -> bool:
    """Save config to file. Returns True on success."""
    path = get_config_path(data_dir)
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config.model_dump(mode="json"), f, indent=2)
        return True
    except OSError as e:
        logger.warning("Could not write balance config %s: %s", path, e)
        return False
