"""Automated shifts for balance testing."""

from .strategies import STRATEGIES, Strategy
from .runner import BatchResult, ShiftOutcome, run_all, run_batch, simulate_shift

__all__ = [
    "STRATEGIES",
    "Strategy",
    "BatchResult",
    "ShiftOutcome",
    "run_all",
    "run_batch",
    "simulate_shift",
]
