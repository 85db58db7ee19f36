"""Randomness and result helpers shared by the shift systems."""

from .rng import (
    RandomSource,
    SeededRandom,
    ScriptedRandom,
    chance,
    choice,
    randint,
    sample,
    uniform,
    variation,
    weighted_choice,
)
from .results import GameResult, wrap

__all__ = [
    "RandomSource",
    "SeededRandom",
    "ScriptedRandom",
    "chance",
    "choice",
    "randint",
    "sample",
    "uniform",
    "variation",
    "weighted_choice",
    "GameResult",
    "wrap",
]
