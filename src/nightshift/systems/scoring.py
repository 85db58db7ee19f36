"""
Scoring service.

Runs once per shift, at shift end. Turns a ShiftSummary into a score,
a leaderboard entry and an updated PlayerStats. Nothing here touches
storage; the engine commits the results.

Score:
    earnings + time_remaining * 2 + rides * 10 + survival_bonus
    - rules_violated * 10, floored at 0
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..state.schema import LeaderboardEntry, PlayerStats, ShiftSummary

TIME_WEIGHT = 2
RIDE_WEIGHT = 10
VIOLATION_PENALTY = 10

NIGHT_OWL_RIDES = 10
HIGH_EARNER_EARNINGS = 500

ACHIEVEMENTS: dict[str, str] = {
    "first_shift": "Finished your first shift",
    "survivor": "Survived a shift",
    "legend_spotter": "Drove a legendary passenger",
    "night_owl": f"Completed {NIGHT_OWL_RIDES} rides in one shift",
    "high_earner": f"Earned {HIGH_EARNER_EARNINGS} in one shift",
}


@dataclass
class ShiftScore:
    """Everything scoring produced for one shift."""
    score: int
    entry: LeaderboardEntry
    stats: PlayerStats
    leaderboard: list[LeaderboardEntry]
    new_achievements: list[str] = field(default_factory=list)


def calculate_score(summary: ShiftSummary) -> int:
    raw = (
        summary.earnings
        + summary.time_remaining * TIME_WEIGHT
        + summary.rides_completed * RIDE_WEIGHT
        + summary.survival_bonus
        - summary.rules_violated * VIOLATION_PENALTY
    )
    return max(0, round(raw))


def leaderboard_entry_for(summary: ShiftSummary, score: int) -> LeaderboardEntry:
    return LeaderboardEntry(
        score=score,
        time_spent=summary.time_spent,
        survived=summary.successful,
        passengers_transported=summary.rides_completed,
        difficulty_level=summary.difficulty_level,
        rules_violated=summary.rules_violated,
        earnings=summary.total_earnings,
        date=summary.ended_at,
    )


def insert_leaderboard_entry(
    entries: list[LeaderboardEntry],
    entry: LeaderboardEntry,
    size: int = 10,
) -> list[LeaderboardEntry]:
    """Insert, sort by score descending, truncate. Returns a new list."""
    board = list(entries) + [entry]
    board.sort(key=lambda e: e.score, reverse=True)
    return board[:size]


def check_achievements(stats: PlayerStats, summary: ShiftSummary) -> list[str]:
    """Achievements this shift earns that stats does not already hold."""
    earned = ["first_shift"]
    if summary.successful:
        earned.append("survivor")
    if summary.legendary_passenger_ids:
        earned.append("legend_spotter")
    if summary.rides_completed >= NIGHT_OWL_RIDES:
        earned.append("night_owl")
    if summary.total_earnings >= HIGH_EARNER_EARNINGS:
        earned.append("high_earner")
    return [a for a in earned if a not in stats.achievements_unlocked]


def _union(existing: list[int], added: list[int]) -> list[int]:
    merged = list(existing)
    for item in added:
        if item not in merged:
            merged.append(item)
    return merged


def update_player_stats(
    stats: PlayerStats,
    summary: ShiftSummary,
    score: int,
) -> tuple[PlayerStats, list[str]]:
    """
    Fold a finished shift into the cross-shift totals.

    Totals always move. Best-shift records only move for a successful
    shift. Returns the new stats and any newly unlocked achievements.
    """
    updated = stats.model_copy(deep=True)

    updated.total_shifts_started += 1
    updated.total_rides_completed += summary.rides_completed
    updated.total_earnings += summary.total_earnings
    updated.total_fuel_used += summary.fuel_used
    updated.total_time_played += summary.time_spent
    updated.total_rules_violated += summary.rules_violated

    if summary.successful:
        updated.total_shifts_completed += 1
        updated.best_shift_earnings = max(updated.best_shift_earnings, summary.total_earnings)
        updated.best_shift_rides = max(updated.best_shift_rides, summary.rides_completed)
        updated.best_score = max(updated.best_score, score)
        updated.longest_survival_time = max(updated.longest_survival_time, summary.time_spent)

    updated.passengers_encountered = _union(updated.passengers_encountered, summary.passenger_ids)
    updated.legendary_passengers = _union(updated.legendary_passengers, summary.legendary_passenger_ids)
    updated.backstories_unlocked = _union(updated.backstories_unlocked, summary.backstories_unlocked)

    new_achievements = check_achievements(stats, summary)
    updated.achievements_unlocked = list(updated.achievements_unlocked) + new_achievements

    if updated.first_play_date is None:
        updated.first_play_date = summary.ended_at
    updated.last_play_date = summary.ended_at

    return updated, new_achievements


def score_shift(
    summary: ShiftSummary,
    stats: PlayerStats,
    leaderboard: list[LeaderboardEntry],
    leaderboard_size: int = 10,
) -> ShiftScore:
    """Score a finished shift against the current stats and leaderboard."""
    score = calculate_score(summary)
    entry = leaderboard_entry_for(summary, score)
    new_stats, new_achievements = update_player_stats(stats, summary, score)
    return ShiftScore(
        score=score,
        entry=entry,
        stats=new_stats,
        leaderboard=insert_leaderboard_entry(leaderboard, entry, leaderboard_size),
        new_achievements=new_achievements,
    )
