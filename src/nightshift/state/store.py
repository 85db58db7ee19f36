"""
Key-value storage abstraction.

Separates persistence from the engine for testability. Every storage
operation is best effort: failures are logged and degrade to defaults,
so a broken disk never interrupts a shift.
"""

import copy
import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from pydantic import ValidationError

from .schema import LeaderboardEntry, PlayerStats, SavedGame

logger = logging.getLogger(__name__)


# Fixed record keys
PLAYER_STATS_KEY = "player_stats"
LEADERBOARD_KEY = "leaderboard"
SAVED_GAME_KEY = "saved_game"
BACKSTORIES_KEY = "unlocked_backstories"


def _local_naive(value: datetime) -> datetime:
    """Naive local time; naive values are taken as local already."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


@runtime_checkable
class Storage(Protocol):
    """
    Abstract key-value storage.

    Implementations:
    - JsonFileStorage: One JSON file per key (production)
    - MemoryStorage: In-memory dict (testing, simulation)
    """

    def load(self, key: str, default: Any = None) -> Any:
        """Load a JSON-compatible value, or default if absent or unreadable."""
        ...

    def save(self, key: str, value: Any) -> bool:
        """Persist a JSON-compatible value. Returns True on success."""
        ...

    def remove(self, key: str) -> bool:
        """Delete a key. Returns True if something was removed."""
        ...


class JsonFileStorage:
    """File-based storage, one <key>.json per record."""

    def __init__(self, data_dir: Path | str = "saves"):
        self.data_dir = Path(data_dir)

    def _path(self, key: str) -> Path:
        return self.data_dir / f"{key}.json"

    def load(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not path.exists():
            return default
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Could not read %s: %s", path, e)
            return default

    def save(self, key: str, value: Any) -> bool:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(value, indent=2), encoding="utf-8")
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Could not write %s: %s", path, e)
            return False

    def remove(self, key: str) -> bool:
        path = self._path(key)
        try:
            if path.exists():
                path.unlink()
                return True
        except OSError as e:
            logger.warning("Could not remove %s: %s", path, e)
        return False


class MemoryStorage:
    """
    In-memory storage for testing.

    Values are deep-copied on the way in and out, so callers can't
    mutate what is stored.
    """

    def __init__(self):
        self.records: dict[str, Any] = {}

    def load(self, key: str, default: Any = None) -> Any:
        if key not in self.records:
            return default
        return copy.deepcopy(self.records[key])

    def save(self, key: str, value: Any) -> bool:
        self.records[key] = copy.deepcopy(value)
        return True

    def remove(self, key: str) -> bool:
        return self.records.pop(key, None) is not None


class PersistenceService:
    """
    Typed records on top of a Storage port.

    Validates what comes back from storage; a corrupt record is logged
    and replaced by its default.
    """

    def __init__(self, storage: Storage, save_max_age_hours: float | None = 24):
        self.storage = storage
        self.save_max_age_hours = save_max_age_hours

    def _load(self, key: str, default: Any = None) -> Any:
        try:
            return self.storage.load(key, default)
        except Exception as e:
            logger.warning("Storage load failed for %s: %s", key, e)
            return default

    def _save(self, key: str, value: Any) -> bool:
        try:
            ok = bool(self.storage.save(key, value))
        except Exception as e:
            logger.warning("Storage save failed for %s: %s", key, e)
            return False
        if not ok:
            logger.warning("Storage refused to save %s", key)
        return ok

    # Player stats

    def load_player_stats(self) -> PlayerStats:
        data = self._load(PLAYER_STATS_KEY)
        if data is None:
            return PlayerStats()
        try:
            return PlayerStats.model_validate(data)
        except ValidationError as e:
            logger.warning("Corrupt player stats, starting fresh: %s", e)
            return PlayerStats()

    def save_player_stats(self, stats: PlayerStats) -> bool:
        return self._save(PLAYER_STATS_KEY, stats.model_dump(mode="json"))

    # Leaderboard

    def load_leaderboard(self) -> list[LeaderboardEntry]:
        data = self._load(LEADERBOARD_KEY, [])
        if not isinstance(data, list):
            logger.warning("Corrupt leaderboard, starting fresh")
            return []
        entries = []
        for raw in data:
            try:
                entries.append(LeaderboardEntry.model_validate(raw))
            except ValidationError:
                logger.warning("Dropping corrupt leaderboard entry: %r", raw)
        return sorted(entries, key=lambda e: e.score, reverse=True)

    def save_leaderboard(self, entries: list[LeaderboardEntry]) -> bool:
        return self._save(LEADERBOARD_KEY, [e.model_dump(mode="json") for e in entries])

    # Saved game

    def load_saved_game(self, now: datetime | None = None) -> SavedGame | None:
        """
        Load the mid-shift save.

        Returns None when there is no save, the save is corrupt, or it is
        older than save_max_age_hours (None disables the age check).
        """
        data = self._load(SAVED_GAME_KEY)
        if data is None:
            return None
        try:
            saved = SavedGame.model_validate(data)
        except ValidationError as e:
            logger.warning("Discarding corrupt saved game: %s", e)
            return None

        if self.save_max_age_hours is not None:
            age = _local_naive(now or datetime.now()) - _local_naive(saved.timestamp)
            if age > timedelta(hours=self.save_max_age_hours):
                logger.warning("Discarding saved game from %s (stale)", saved.timestamp)
                return None
        return saved

    def save_game(self, saved: SavedGame) -> bool:
        return self._save(SAVED_GAME_KEY, saved.model_dump(mode="json"))

    def clear_saved_game(self) -> bool:
        try:
            return bool(self.storage.remove(SAVED_GAME_KEY))
        except Exception as e:
            logger.warning("Storage remove failed for %s: %s", SAVED_GAME_KEY, e)
            return False

    # Backstories

    def load_unlocked_backstories(self) -> set[int]:
        data = self._load(BACKSTORIES_KEY, [])
        try:
            return {int(i) for i in data}
        except (TypeError, ValueError):
            logger.warning("Corrupt backstory list, starting fresh")
            return set()

    def save_unlocked_backstories(self, passenger_ids: set[int]) -> bool:
        return self._save(BACKSTORIES_KEY, sorted(passenger_ids))
