"""
Tests for storage backends and the persistence service.
"""

from datetime import datetime, timedelta, timezone

from nightshift.state.schema import (
    GamePhase,
    LeaderboardEntry,
    PlayerStats,
    SavedGame,
    ShiftState,
)
from nightshift.state.store import (
    LEADERBOARD_KEY,
    PLAYER_STATS_KEY,
    SAVED_GAME_KEY,
    JsonFileStorage,
    MemoryStorage,
    PersistenceService,
    Storage,
)


class FaultyStorage:
    """Storage whose every operation raises."""

    def load(self, key, default=None):
        raise OSError("disk on fire")

    def save(self, key, value):
        raise OSError("disk on fire")

    def remove(self, key):
        raise OSError("disk on fire")


def entry(score: int) -> LeaderboardEntry:
    return LeaderboardEntry(
        score=score,
        time_spent=200,
        survived=True,
        passengers_transported=4,
        difficulty_level=1,
        rules_violated=0,
    )


class TestMemoryStorage:
    """Test in-memory storage."""

    def test_satisfies_protocol(self):
        assert isinstance(MemoryStorage(), Storage)

    def test_missing_key_returns_default(self):
        assert MemoryStorage().load("nope", default=[]) == []

    def test_values_are_copied(self):
        storage = MemoryStorage()
        value = {"ids": [1]}
        storage.save("k", value)
        value["ids"].append(2)
        loaded = storage.load("k")
        loaded["ids"].append(3)
        assert storage.load("k") == {"ids": [1]}

    def test_remove(self):
        storage = MemoryStorage()
        storage.save("k", 1)
        assert storage.remove("k") is True
        assert storage.remove("k") is False


class TestJsonFileStorage:
    """Test file-backed storage."""

    def test_round_trip(self, tmp_path):
        storage = JsonFileStorage(tmp_path / "saves")
        assert storage.save("leaderboard", [{"score": 10}])
        assert (tmp_path / "saves" / "leaderboard.json").exists()
        assert storage.load("leaderboard") == [{"score": 10}]

    def test_unreadable_file_returns_default(self, tmp_path):
        (tmp_path / "player_stats.json").write_text("{not json", encoding="utf-8")
        assert JsonFileStorage(tmp_path).load("player_stats", default="fallback") == "fallback"

    def test_unserializable_value_refused(self, tmp_path):
        assert JsonFileStorage(tmp_path).save("bad", {"x": object()}) is False

    def test_remove(self, tmp_path):
        storage = JsonFileStorage(tmp_path)
        storage.save("k", 1)
        assert storage.remove("k") is True
        assert storage.remove("k") is False


class TestPersistenceService:
    """Test typed records over a storage port."""

    def test_defaults_when_empty(self):
        service = PersistenceService(MemoryStorage())
        assert service.load_player_stats() == PlayerStats()
        assert service.load_leaderboard() == []
        assert service.load_saved_game() is None
        assert service.load_unlocked_backstories() == set()

    def test_player_stats_round_trip(self):
        service = PersistenceService(MemoryStorage())
        stats = PlayerStats(total_rides_completed=12, passengers_encountered=[1, 5])
        assert service.save_player_stats(stats)
        assert service.load_player_stats() == stats

    def test_corrupt_stats_start_fresh(self):
        storage = MemoryStorage()
        storage.save(PLAYER_STATS_KEY, {"total_rides_completed": "lots"})
        assert PersistenceService(storage).load_player_stats() == PlayerStats()

    def test_leaderboard_sorted_and_filtered(self):
        storage = MemoryStorage()
        service = PersistenceService(storage)
        service.save_leaderboard([entry(100), entry(300)])
        raw = storage.load(LEADERBOARD_KEY)
        raw.append({"score": "not a number"})
        storage.save(LEADERBOARD_KEY, raw)
        assert [e.score for e in service.load_leaderboard()] == [300, 100]

    def test_leaderboard_wrong_shape(self):
        storage = MemoryStorage()
        storage.save(LEADERBOARD_KEY, {"score": 1})
        assert PersistenceService(storage).load_leaderboard() == []

    def test_saved_game_round_trip(self):
        service = PersistenceService(MemoryStorage())
        saved = SavedGame(
            game_state=ShiftState(version=4, phase=GamePhase.WAITING, earnings=80),
            player_stats=PlayerStats(),
        )
        assert service.save_game(saved)
        loaded = service.load_saved_game()
        assert loaded.game_state == saved.game_state
        assert service.clear_saved_game() is True
        assert service.load_saved_game() is None

    def test_stale_save_discarded(self):
        service = PersistenceService(MemoryStorage(), save_max_age_hours=24)
        stamp = datetime(2026, 1, 1, 20, 0)
        service.save_game(SavedGame(game_state=ShiftState(), player_stats=PlayerStats(), timestamp=stamp))
        assert service.load_saved_game(now=stamp + timedelta(hours=23)) is not None
        assert service.load_saved_game(now=stamp + timedelta(hours=25)) is None

    def test_timezone_aware_save_loads(self):
        """A save stamped with a UTC offset is aged like a local one."""
        service = PersistenceService(MemoryStorage(), save_max_age_hours=24)
        service.save_game(SavedGame(
            game_state=ShiftState(), player_stats=PlayerStats(), timestamp=datetime.now(timezone.utc),
        ))
        assert service.load_saved_game() is not None

    def test_stale_timezone_aware_save_discarded(self):
        service = PersistenceService(MemoryStorage(), save_max_age_hours=24)
        stamp = datetime.now(timezone.utc) - timedelta(hours=30)
        service.save_game(SavedGame(game_state=ShiftState(), player_stats=PlayerStats(), timestamp=stamp))
        assert service.load_saved_game() is None
        assert service.load_saved_game(now=datetime.now(timezone.utc)) is None

    def test_age_check_can_be_disabled(self):
        service = PersistenceService(MemoryStorage(), save_max_age_hours=None)
        stamp = datetime(2020, 1, 1)
        service.save_game(SavedGame(game_state=ShiftState(), player_stats=PlayerStats(), timestamp=stamp))
        assert service.load_saved_game() is not None

    def test_corrupt_save_discarded(self):
        storage = MemoryStorage()
        storage.save(SAVED_GAME_KEY, {"game_state": "garbage"})
        assert PersistenceService(storage).load_saved_game() is None

    def test_backstories_round_trip(self):
        service = PersistenceService(MemoryStorage())
        service.save_unlocked_backstories({5, 2})
        assert service.load_unlocked_backstories() == {2, 5}

    def test_faulty_storage_degrades_to_defaults(self):
        """A broken storage never raises into the engine."""
        service = PersistenceService(FaultyStorage())
        assert service.load_player_stats() == PlayerStats()
        assert service.load_leaderboard() == []
        assert service.save_player_stats(PlayerStats()) is False
        assert service.clear_saved_game() is False
