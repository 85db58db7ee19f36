"""
Tests for end-of-shift scoring.
"""

from datetime import datetime

from nightshift.state.schema import LeaderboardEntry, PlayerStats, ShiftSummary
from nightshift.systems.scoring import (
    calculate_score,
    check_achievements,
    insert_leaderboard_entry,
    score_shift,
    update_player_stats,
)


def summary(**fields) -> ShiftSummary:
    defaults = dict(
        successful=True,
        reason="You made it through the night.",
        earnings=220,
        survival_bonus=50,
        time_remaining=100,
        time_spent=380,
        rides_completed=6,
        fuel_used=60,
        rules_violated=0,
        difficulty_level=1,
        passenger_ids=[1, 2, 3],
        ended_at=datetime(2026, 1, 1, 6, 0),
    )
    defaults.update(fields)
    return ShiftSummary(**defaults)


def entry(score: int) -> LeaderboardEntry:
    return LeaderboardEntry(
        score=score,
        time_spent=100,
        survived=True,
        passengers_transported=3,
        difficulty_level=0,
        rules_violated=0,
    )


class TestScore:
    """Test the score formula."""

    def test_formula(self):
        """220 + 100x2 + 6x10 + 50 - 0."""
        assert calculate_score(summary()) == 530

    def test_violations_cost_ten_each(self):
        assert calculate_score(summary(rules_violated=3)) == 500

    def test_floored_at_zero(self):
        bad = summary(earnings=0, survival_bonus=0, time_remaining=0, rides_completed=0, rules_violated=5)
        assert calculate_score(bad) == 0


class TestLeaderboard:
    """Test leaderboard insertion."""

    def test_sorted_descending(self):
        board = insert_leaderboard_entry([entry(100), entry(300)], entry(200))
        assert [e.score for e in board] == [300, 200, 100]

    def test_truncated_to_size(self):
        board = [entry(s) for s in range(100, 1100, 100)]
        updated = insert_leaderboard_entry(board, entry(50), size=10)
        assert len(updated) == 10
        assert 50 not in [e.score for e in updated]

    def test_input_untouched(self):
        board = [entry(100)]
        insert_leaderboard_entry(board, entry(200))
        assert len(board) == 1

    def test_failed_shift_recorded_as_not_survived(self):
        result = score_shift(summary(successful=False, survival_bonus=0), PlayerStats(), [])
        assert result.entry.survived is False
        assert result.leaderboard == [result.entry]


class TestPlayerStats:
    """Test cross-shift totals."""

    def test_successful_shift_updates_everything(self):
        stats, _ = update_player_stats(PlayerStats(), summary(), 530)
        assert stats.total_shifts_started == 1
        assert stats.total_shifts_completed == 1
        assert stats.total_rides_completed == 6
        assert stats.total_earnings == 270
        assert stats.best_shift_earnings == 270
        assert stats.best_score == 530
        assert stats.longest_survival_time == 380
        assert stats.passengers_encountered == [1, 2, 3]
        assert stats.first_play_date == stats.last_play_date == datetime(2026, 1, 1, 6, 0)

    def test_failed_shift_leaves_bests_alone(self):
        """Totals move, records and completed count do not."""
        before = PlayerStats(best_score=900, best_shift_earnings=400)
        stats, _ = update_player_stats(before, summary(successful=False, survival_bonus=0), 480)
        assert stats.total_shifts_started == 1
        assert stats.total_shifts_completed == 0
        assert stats.total_rides_completed == 6
        assert stats.best_score == 900
        assert stats.best_shift_earnings == 400
        assert stats.longest_survival_time == 0

    def test_passenger_lists_are_unions(self):
        before = PlayerStats(passengers_encountered=[3, 9])
        stats, _ = update_player_stats(before, summary(), 0)
        assert stats.passengers_encountered == [3, 9, 1, 2]

    def test_first_play_date_kept(self):
        first = datetime(2025, 12, 1)
        stats, _ = update_player_stats(PlayerStats(first_play_date=first), summary(), 0)
        assert stats.first_play_date == first
        assert stats.last_play_date == datetime(2026, 1, 1, 6, 0)

    def test_input_stats_untouched(self):
        before = PlayerStats()
        update_player_stats(before, summary(), 530)
        assert before.total_shifts_started == 0


class TestAchievements:
    """Test achievement unlocking."""

    def test_first_successful_shift(self):
        assert check_achievements(PlayerStats(), summary()) == ["first_shift", "survivor"]

    def test_failed_shift(self):
        assert check_achievements(PlayerStats(), summary(successful=False)) == ["first_shift"]

    def test_already_held_not_repeated(self):
        stats = PlayerStats(achievements_unlocked=["first_shift", "survivor"])
        big = summary(rides_completed=12, earnings=600, legendary_passenger_ids=[15])
        assert check_achievements(stats, big) == ["legend_spotter", "night_owl", "high_earner"]

    def test_recorded_on_stats(self):
        result = score_shift(summary(), PlayerStats(), [])
        assert result.new_achievements == ["first_shift", "survivor"]
        assert result.stats.achievements_unlocked == ["first_shift", "survivor"]
