"""
Result wrapper for fallible engine operations.

Callers get a usable value whether or not the operation worked; the
error code says what went wrong.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class GameResult(Generic[T]):
    """Outcome of a fallible operation."""
    success: bool
    data: T
    error: str | None = None

    @classmethod
    def ok(cls, data: T) -> "GameResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, fallback: T) -> "GameResult[T]":
        return cls(success=False, data=fallback, error=error)


def wrap(fn: Callable[[], T], error_code: str, fallback: T) -> GameResult[T]:
    """
    Run fn, converting an unexpected exception into a failed result.

    Args:
        fn: Zero-argument callable doing the work
        error_code: Short code recorded on failure
        fallback: Value returned as data when fn raises

    Returns:
        GameResult carrying fn's value, or the fallback
    """
    try:
        return GameResult.ok(fn())
    except Exception as e:
        logger.warning("%s: %s", error_code, e)
        return GameResult.fail(f"{error_code}: {e}", fallback)
