"""
Tests for passenger selection.
"""

from collections import Counter

import pytest

from nightshift.state.schema import CompletedRide, Passenger, Rarity
from nightshift.systems.passengers import (
    adjusted_rarity_weights,
    related_candidates,
    select_passenger,
    spawn_related_passenger,
)
from nightshift.tools.rng import ScriptedRandom, SeededRandom


def make_passenger(pid: int, rarity: Rarity = Rarity.COMMON, relationships=None) -> Passenger:
    return Passenger(
        id=pid,
        name=f"Passenger {pid}",
        pickup="Somewhere",
        destination="Elsewhere",
        fare=10,
        rarity=rarity,
        relationships=relationships or [],
    )


@pytest.fixture
def one_of_each():
    return [
        make_passenger(1, Rarity.COMMON),
        make_passenger(2, Rarity.UNCOMMON),
        make_passenger(3, Rarity.RARE),
        make_passenger(4, Rarity.LEGENDARY),
    ]


class TestRarityWeights:
    """Test difficulty scaling of rarity weights."""

    def test_low_difficulty_keeps_base_weights(self, config):
        """Tiers 0 and 1 leave the table alone."""
        assert adjusted_rarity_weights(config.rarity_weights, 1) == config.rarity_weights

    def test_top_difficulty_multiplies_rare_and_legendary(self, config):
        """Tier 4: rare x3, legendary x5, others untouched."""
        weights = adjusted_rarity_weights(config.rarity_weights, 4)
        assert weights["common"] == 70.0
        assert weights["uncommon"] == 25.0
        assert weights["rare"] == pytest.approx(13.5)
        assert weights["legendary"] == pytest.approx(2.5)

    def test_base_table_not_mutated(self, config):
        adjusted_rarity_weights(config.rarity_weights, 4)
        assert config.rarity_weights["rare"] == 4.5

    def test_draws_follow_weights(self, one_of_each, config):
        """About 70% of draws are the common passenger at difficulty 0."""
        rng = SeededRandom(11)
        counts = Counter(
            select_passenger(one_of_each, [], 0, rng, config).passenger.id
            for _ in range(5000)
        )
        assert counts[1] / 5000 == pytest.approx(0.70, abs=0.03)
        assert counts[2] / 5000 == pytest.approx(0.25, abs=0.03)
        assert counts[4] < counts[3] < counts[2]


class TestSelection:
    """Test availability filtering and fallbacks."""

    def test_empty_catalog_returns_none(self, config):
        assert select_passenger([], [], 0, SeededRandom(1), config) is None

    def test_used_passengers_excluded(self, one_of_each, config):
        """Nobody already driven tonight comes back through the rarity draw."""
        for seed in range(50):
            picked = select_passenger(one_of_each, [1, 2, 3], 0, SeededRandom(seed), config)
            assert picked.passenger.id == 4
            assert picked.first_encounter is True

    def test_everyone_used_falls_back_to_full_pool(self, one_of_each, config):
        """With the pool exhausted, repeats are allowed and flagged."""
        picked = select_passenger(one_of_each, [1, 2, 3, 4], 0, SeededRandom(3), config)
        assert picked is not None
        assert picked.first_encounter is False

    def test_known_backstory_never_rolled_again(self, one_of_each, config):
        """A backstory already unlocked is not unlocked twice."""
        rng = ScriptedRandom([0.0])
        picked = select_passenger(one_of_each, [], 0, rng, config, unlocked_backstories={1})
        assert picked.passenger.id == 1
        assert picked.backstory_unlocked is False

    def test_first_encounter_backstory_roll(self, one_of_each, config):
        """0.0 always clears the 20% first-encounter roll."""
        picked = select_passenger(one_of_each, [], 0, ScriptedRandom([0.0]), config)
        assert picked.backstory_unlocked is True


class TestRelationships:
    """Test relationship-triggered spawns."""

    def test_candidates_in_first_seen_order(self):
        passengers = [
            make_passenger(1, relationships=[3, 2]),
            make_passenger(2, relationships=[3]),
            make_passenger(3),
        ]
        rides = [
            CompletedRide(passenger_id=1, fare=10, duration=20),
            CompletedRide(passenger_id=2, fare=10, duration=20),
        ]
        assert [p.id for p in related_candidates(passengers, rides)] == [3, 2]

    def test_unknown_related_ids_skipped(self):
        passengers = [make_passenger(1, relationships=[42])]
        rides = [CompletedRide(passenger_id=1, fare=10, duration=20)]
        assert related_candidates(passengers, rides) == []

    def test_no_rides_no_spawn(self, catalog, config):
        assert spawn_related_passenger(catalog.passengers, [], ScriptedRandom([0.0]), config) is None

    def test_failed_spawn_roll(self, catalog, config):
        """0.9 misses the 30% spawn chance."""
        rides = [CompletedRide(passenger_id=2, fare=22, duration=30)]
        assert spawn_related_passenger(catalog.passengers, rides, ScriptedRandom([0.9]), config) is None

    def test_related_passenger_returns(self, catalog, config):
        """After driving passenger 2, a low roll brings their contact 4."""
        rides = [CompletedRide(passenger_id=2, fare=22, duration=30)]
        picked = select_passenger(
            catalog.passengers, [2], 0, ScriptedRandom([0.1]), config, completed_rides=rides,
        )
        assert picked.passenger.id == 4
        assert picked.related is True
        assert picked.first_encounter is True
        assert picked.backstory_unlocked is True

    def test_related_spawn_may_repeat_a_passenger(self, config):
        """Relationships ignore the used list."""
        passengers = [make_passenger(1, relationships=[2]), make_passenger(2, relationships=[1])]
        rides = [CompletedRide(passenger_id=1, fare=10, duration=20)]
        picked = select_passenger(
            passengers, [1, 2], 0, ScriptedRandom([0.1]), config, completed_rides=rides,
        )
        assert picked.passenger.id == 2
        assert picked.first_encounter is False
        assert picked.related is True
