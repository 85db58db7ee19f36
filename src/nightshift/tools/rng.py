"""
Random sources for the shift engine.

Every probabilistic system takes a RandomSource instead of calling the
random module directly, so a seeded or scripted source reproduces a
whole shift.
"""

import bisect
import itertools
import math
import random
from typing import Protocol, Sequence, TypeVar, runtime_checkable

T = TypeVar("T")


@runtime_checkable
class RandomSource(Protocol):
    """Anything that yields floats in [0, 1)."""

    def next(self) -> float:
        ...


class SeededRandom:
    """Reproducible source backed by random.Random."""

    def __init__(self, seed: int | None = None):
        self.seed = seed
        self._random = random.Random(seed)

    def next(self) -> float:
        return self._random.random()


class ScriptedRandom:
    """
    Replays a fixed sequence of floats.

    Cycles when exhausted, so ScriptedRandom([0.5]) always returns 0.5.
    """

    def __init__(self, values: Sequence[float]):
        if not values:
            raise ValueError("ScriptedRandom needs at least one value")
        for v in values:
            if not 0.0 <= v < 1.0:
                raise ValueError(f"Scripted value {v} outside [0, 1)")
        self.values = list(values)
        self._cycle = itertools.cycle(self.values)
        self.calls = 0

    def next(self) -> float:
        self.calls += 1
        return next(self._cycle)


def chance(rng: RandomSource, probability: float) -> bool:
    """Roll against a probability."""
    return rng.next() < probability


def randint(rng: RandomSource, low: int, high: int) -> int:
    """Uniform integer in [low, high]."""
    return low + min(high - low, int(rng.next() * (high - low + 1)))


def variation(rng: RandomSource, spread: int) -> int:
    """Uniform integer offset in [-spread, spread]; a draw of 0.5 gives 0."""
    if spread <= 0:
        return 0
    return math.floor(rng.next() * (2 * spread + 1)) - spread


def uniform(rng: RandomSource, low: float, high: float) -> float:
    """Uniform float in [low, high)."""
    return low + (high - low) * rng.next()


def choice(rng: RandomSource, items: Sequence[T]) -> T:
    """Pick one element uniformly."""
    if not items:
        raise IndexError("Cannot choose from an empty sequence")
    index = min(len(items) - 1, int(rng.next() * len(items)))
    return items[index]


def sample(rng: RandomSource, items: Sequence[T], count: int) -> list[T]:
    """Pick up to count distinct elements without replacement."""
    pool = list(items)
    picked: list[T] = []
    while pool and len(picked) < count:
        index = min(len(pool) - 1, int(rng.next() * len(pool)))
        picked.append(pool.pop(index))
    return picked


def weighted_choice(rng: RandomSource, items: Sequence[T], weights: Sequence[float]) -> T | None:
    """
    Pick an element with probability proportional to its weight.

    Builds a cumulative-weight array and bisects a single uniform draw,
    so fractional weights work. Returns the first item when every weight
    is zero, or None for an empty sequence.
    """
    if not items:
        return None

    cumulative = list(itertools.accumulate(max(0.0, w) for w in weights))
    total = cumulative[-1] if cumulative else 0.0
    if total <= 0:
        return items[0]

    target = rng.next() * total
    index = bisect.bisect_right(cumulative, target)
    return items[min(index, len(items) - 1)]
