"""
Passenger selection.

A relationship check runs first: passengers tied to someone already
driven tonight can turn up again. Otherwise passengers are drawn by
rarity weight from those not yet seen this shift.
"""

import logging
from dataclasses import dataclass

from ..config import BalanceConfig
from ..state.schema import CompletedRide, Passenger, Rarity
from ..tools.rng import RandomSource, chance, choice, weighted_choice

logger = logging.getLogger(__name__)

# (rare, legendary) weight multipliers per difficulty tier
_TIER_MULTIPLIERS: dict[int, tuple[float, float]] = {
    0: (1.0, 1.0),
    1: (1.0, 1.0),
    2: (1.5, 2.0),
    3: (2.0, 3.0),
    4: (3.0, 5.0),
}


@dataclass
class PassengerSelection:
    """A drawn passenger plus the rolls made for them."""
    passenger: Passenger
    first_encounter: bool
    backstory_unlocked: bool = False
    related: bool = False


def adjusted_rarity_weights(base: dict[str, float], difficulty: int) -> dict[str, float]:
    """Rare and legendary passengers get likelier as difficulty rises."""
    rare_mult, legendary_mult = _TIER_MULTIPLIERS[max(0, min(4, difficulty))]
    weights = dict(base)
    weights[Rarity.RARE.value] = weights.get(Rarity.RARE.value, 0.0) * rare_mult
    weights[Rarity.LEGENDARY.value] = weights.get(Rarity.LEGENDARY.value, 0.0) * legendary_mult
    return weights


def related_candidates(
    passengers: list[Passenger],
    completed_rides: list[CompletedRide],
) -> list[Passenger]:
    """Passengers related to anyone already driven, in first-seen order."""
    by_id = {p.id: p for p in passengers}
    seen: set[int] = set()
    candidates = []
    for ride in completed_rides:
        source = by_id.get(ride.passenger_id)
        if source is None:
            continue
        for related_id in source.relationships:
            if related_id in seen or related_id not in by_id:
                continue
            seen.add(related_id)
            candidates.append(by_id[related_id])
    return candidates


def spawn_related_passenger(
    passengers: list[Passenger],
    completed_rides: list[CompletedRide],
    rng: RandomSource,
    config: BalanceConfig,
) -> Passenger | None:
    """Roll for a relationship-triggered passenger."""
    if not completed_rides or not chance(rng, config.related_spawn_chance):
        return None

    candidates = [
        p for p in related_candidates(passengers, completed_rides)
        if chance(rng, config.related_select_chance)
    ]
    if not candidates:
        return None
    return choice(rng, candidates)


def select_by_rarity(
    available: list[Passenger],
    difficulty: int,
    rng: RandomSource,
    config: BalanceConfig,
) -> Passenger:
    """Weighted draw; falls back to the first passenger if the weights are empty."""
    weights = adjusted_rarity_weights(config.rarity_weights, difficulty)
    picked = weighted_choice(rng, available, [weights.get(p.rarity.value, 1.0) for p in available])
    return picked if picked is not None else available[0]


def select_passenger(
    passengers: list[Passenger],
    used_ids: list[int],
    difficulty: int,
    rng: RandomSource,
    config: BalanceConfig,
    completed_rides: list[CompletedRide] | None = None,
    unlocked_backstories: set[int] | frozenset[int] = frozenset(),
) -> PassengerSelection | None:
    """
    Choose the next passenger.

    Returns None only when the catalog is empty. The caller records the
    passenger id as used.
    """
    if not passengers:
        return None

    used = set(used_ids)
    related = spawn_related_passenger(passengers, completed_rides or [], rng, config)
    if related is not None:
        passenger = related
    else:
        available = [p for p in passengers if p.id not in used] or list(passengers)
        passenger = select_by_rarity(available, difficulty, rng, config)

    first_encounter = passenger.id not in used
    unlocked = False
    if passenger.id not in unlocked_backstories:
        odds = config.backstory_first_chance if first_encounter else config.backstory_repeat_chance
        unlocked = chance(rng, odds)

    logger.debug(
        "Selected passenger %s (related=%s, first=%s, backstory=%s)",
        passenger.id, related is not None, first_encounter, unlocked,
    )
    return PassengerSelection(
        passenger=passenger,
        first_encounter=first_encounter,
        backstory_unlocked=unlocked,
        related=related is not None,
    )
