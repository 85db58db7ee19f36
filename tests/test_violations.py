"""
Tests for rule violation checks.
"""

import pytest

from nightshift.state.schema import (
    CompletedRide,
    Intensity,
    Passenger,
    RideInProgress,
    RuleConflict,
    ShiftState,
    TemporaryRule,
    WeatherType,
)
from nightshift.systems.environment import make_weather, time_of_day
from nightshift.systems.violations import (
    ACTION_CHECKS,
    PlayerAction,
    Violation,
    calculate_violation_penalty,
    check_hidden_rule_violations,
    rule_status,
    suggest_conflict_resolution,
    validate_action,
)


def shift_with(*rule_ids, hidden=(), **fields) -> ShiftState:
    return ShiftState(visible_rules=list(rule_ids), hidden_rules=list(hidden), **fields)


@pytest.fixture
def cemetery_ghost():
    return Passenger(
        id=60,
        name="Gravedigger",
        pickup="Riverside Cemetery",
        destination="Downtown Hotel",
        supernatural_type="ghost",
        fare=20,
    )


class TestActionChecks:
    """Test actions against visible rules."""

    @pytest.mark.parametrize("rule_id,action", [
        (1, "look_at_passenger"),
        (1, "make_eye_contact"),
        (2, "turn_on_radio"),
        (3, "accept_tip"),
        (4, "roll_down_window"),
        (5, "take_shortcut"),
        (5, "take_alternate_route"),
    ])
    def test_basic_rules_forbid_actions(self, catalog, rule_id, action):
        violations = validate_action(PlayerAction(action), shift_with(rule_id), None, catalog)
        assert [v.rule.id for v in violations] == [rule_id]

    def test_allowed_action_passes(self, catalog):
        state = shift_with(1, 2, 3, 4, 5)
        assert validate_action(PlayerAction("check_mirror"), state, None, catalog) == []

    def test_rule_not_in_force_ignored(self, catalog):
        """Making eye contact is fine on a night without rule 1."""
        assert validate_action(PlayerAction("make_eye_contact"), shift_with(2), None, catalog) == []

    def test_violation_carries_description_and_severity(self, catalog):
        violation = validate_action(PlayerAction("accept_tip"), shift_with(3), None, catalog)[0]
        assert violation.description == "Accepted tip or non-cash payment"
        assert violation.severity == 3

    def test_hidden_rules_checked_too(self, catalog):
        """An action check on a hidden rule id still applies."""
        state = shift_with(hidden=[1])
        assert len(validate_action(PlayerAction("make_eye_contact"), state, None, catalog)) == 1

    def test_temporary_rule_enforced(self, catalog):
        state = shift_with(1, temporary_rules=[TemporaryRule(rule_id=99, expires_after_rides=3)])
        violations = validate_action(PlayerAction("refuse_command"), state, None, catalog)
        assert [v.rule.id for v in violations] == [99]

    def test_every_checked_rule_exists(self, catalog):
        assert all(catalog.rule(rid) is not None for rid in ACTION_CHECKS)


class TestWeatherRuleChecks:
    """Test rules the weather switches on."""

    @pytest.mark.parametrize("rule_id,action", [
        (101, "use_wipers"),
        (102, "turn_off_headlights"),
        (103, "speed_up"),
        (104, "make_stop"),
        (104, "stop_car"),
        (105, "use_air_conditioning"),
        (106, "open_window"),
        (106, "roll_down_window"),
    ])
    def test_enforced_while_in_force(self, catalog, rule_id, action):
        state = ShiftState(weather_rules=[rule_id])
        violations = validate_action(PlayerAction(action), state, None, catalog)
        assert [v.rule.id for v in violations] == [rule_id]

    def test_ignored_once_lapsed(self, catalog):
        """Wipers are fine when the storm rule is not in force."""
        assert validate_action(PlayerAction("use_wipers"), ShiftState(), None, catalog) == []

    def test_status_follows_conditions(self, catalog):
        rule = catalog.rule(101)
        assert rule_status(rule, ShiftState(weather_rules=[101]), None) == "active"
        assert rule_status(rule, ShiftState(), None) == "inactive"


class TestConditionalRules:
    """Test rules that only apply in certain situations."""

    def test_cemetery_after_midnight(self, catalog, cemetery_ghost):
        state = shift_with(6, time_of_day=time_of_day(22, 180))
        violations = validate_action(PlayerAction("pickup_passenger"), state, cemetery_ghost, catalog)
        assert [v.rule.id for v in violations] == [6]

    def test_cemetery_before_midnight(self, catalog, cemetery_ghost):
        state = shift_with(6, time_of_day=time_of_day(22, 30))
        assert validate_action(PlayerAction("pickup_passenger"), state, cemetery_ghost, catalog) == []

    def test_supernatural_in_storm(self, catalog):
        state = shift_with(7, weather=make_weather(WeatherType.THUNDERSTORM, Intensity.LIGHT))
        ghost = catalog.passenger(1)
        living = catalog.passenger(8)
        assert len(validate_action(PlayerAction("pickup_passenger"), state, ghost, catalog)) == 1
        assert validate_action(PlayerAction("pickup_passenger"), state, living, catalog) == []

    def test_hospital_protocol(self, catalog):
        """Medical passengers must be returned where they were picked up."""
        doctor = catalog.passenger(4)
        state = shift_with(8)
        away = PlayerAction("drop_off_passenger", {"location": doctor.destination})
        home = PlayerAction("drop_off_passenger", {"location": doctor.pickup})
        assert len(validate_action(away, state, doctor, catalog)) == 1
        assert validate_action(home, state, doctor, catalog) == []

    def test_hospital_protocol_ignores_other_passengers(self, catalog):
        action = PlayerAction("drop_off_passenger", {"location": "Nowhere"})
        assert validate_action(action, shift_with(8), catalog.passenger(2), catalog) == []


class TestConflictingRules:
    """Test conflicting rule checks."""

    def test_slow_route_with_distressed_passenger(self, catalog):
        state = shift_with(9)
        assert len(validate_action(PlayerAction("take_slow_route"), state, catalog.passenger(3), catalog)) == 1
        assert validate_action(PlayerAction("take_slow_route"), state, catalog.passenger(2), catalog) == []

    def test_denying_requests(self, catalog):
        """Only reasonable requests must be honoured."""
        state = shift_with(10)
        assert len(validate_action(PlayerAction("deny_request"), state, None, catalog)) == 1
        unreasonable = PlayerAction("deny_request", {"reasonable": False})
        assert validate_action(unreasonable, state, None, catalog) == []

    def test_attention_check(self, catalog):
        state = shift_with(11)
        action = PlayerAction("avoid_eye_contact")
        assert len(validate_action(action, state, catalog.passenger(9), catalog)) == 1
        assert validate_action(action, state, catalog.passenger(1), catalog) == []

    def test_both_sides_of_a_conflict_can_fire(self, catalog):
        """Rules 1 and 11 together leave no safe choice about eye contact."""
        state = shift_with(1, 11)
        child = catalog.passenger(9)
        look = validate_action(PlayerAction("make_eye_contact"), state, child, catalog)
        avoid = validate_action(PlayerAction("avoid_eye_contact"), state, child, catalog)
        assert [v.rule.id for v in look] == [1]
        assert [v.rule.id for v in avoid] == [11]


class TestHiddenRules:
    """Test hidden checks run at ride completion."""

    def test_counting_rule_includes_current_passenger(self, catalog):
        rides = [CompletedRide(passenger_id=i, fare=10, duration=20, supernatural_type="ghost") for i in (1, 6, 7)]
        state = shift_with(hidden=[12], completed_rides=rides)
        assert check_hidden_rule_violations(state, catalog.passenger(9), catalog).id == 12
        assert check_hidden_rule_violations(state, catalog.passenger(2), catalog) is None

    def test_time_limit(self, catalog):
        """More than 45 minutes with the passenger aboard breaks rule 13."""
        ride = RideInProgress(passenger_id=2, started_time_remaining=400, boarded_time_remaining=400)
        slow = shift_with(hidden=[13], current_ride=ride, time_remaining=354)
        quick = shift_with(hidden=[13], current_ride=ride, time_remaining=355)
        assert check_hidden_rule_violations(slow, None, catalog).id == 13
        assert check_hidden_rule_violations(quick, None, catalog) is None

    def test_time_limit_waits_for_boarding(self, catalog):
        ride = RideInProgress(passenger_id=2, started_time_remaining=400)
        state = shift_with(hidden=[13], current_ride=ride, time_remaining=300)
        assert check_hidden_rule_violations(state, None, catalog) is None

    def test_silence_between(self, catalog):
        state = shift_with(hidden=[14], last_spoke_at=5)
        assert check_hidden_rule_violations(state, None, catalog).id == 14
        assert check_hidden_rule_violations(state.model_copy(update={"last_spoke_at": 6}), None, catalog) is None

    def test_hidden_check_ignores_visible_rules(self, catalog):
        """Only rules dealt as hidden are checked at completion."""
        state = shift_with(14, last_spoke_at=0)
        assert check_hidden_rule_violations(state, None, catalog) is None


class TestPenalties:
    """Test violation penalty arithmetic."""

    def test_basic_penalty(self, catalog):
        rule = catalog.rule(2)
        assert calculate_violation_penalty(Violation(rule, "", rule.difficulty.severity)) == 10

    def test_hidden_penalty_doubles(self, catalog):
        rule = catalog.rule(12)
        assert calculate_violation_penalty(Violation(rule, "", rule.difficulty.severity)) == 80

    def test_nightmare_penalty_triples(self, catalog):
        rule = catalog.rule(99)
        assert calculate_violation_penalty(Violation(rule, "", rule.difficulty.severity)) == 150


class TestDisplayHelpers:
    """Test conflict hints and rule status."""

    def test_direct_conflict_hints_sorted_by_weight(self):
        conflict = RuleConflict(rule_id=9, conflicting_rule_id=5, description="")
        hints = suggest_conflict_resolution(conflict)
        assert [h.action for h in hints] == [
            "prioritize_safety", "follow_company_policy", "communicate_limitation",
        ]

    def test_other_conflicts_get_generic_hint(self):
        conflict = RuleConflict(rule_id=9, conflicting_rule_id=5, description="", type="situational")
        assert [h.action for h in suggest_conflict_resolution(conflict)] == ["use_judgment"]

    def test_rule_status(self, catalog):
        state = ShiftState(
            hidden_rules=[12, 13],
            revealed_hidden_rules=[13],
            temporary_rules=[TemporaryRule(rule_id=99, expires_after_rides=2)],
        )
        assert rule_status(catalog.rule(1), state, None) == "active"
        assert rule_status(catalog.rule(8), state, catalog.passenger(4)) == "active"
        assert rule_status(catalog.rule(8), state, catalog.passenger(2)) == "inactive"
        assert rule_status(catalog.rule(12), state, None) == "hidden"
        assert rule_status(catalog.rule(13), state, None) == "revealed"
        assert rule_status(catalog.rule(99), state, None) == "temporary"
        assert rule_status(catalog.rule(99), ShiftState(), None) == "expired"
