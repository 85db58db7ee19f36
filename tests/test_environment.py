"""
Tests for weather, time of day and hazards.
"""

import pytest

from nightshift.state.schema import DayPhase, HazardType, Intensity, RouteType, Rule, RuleKind, WeatherType
from nightshift.systems.environment import (
    MAX_ACTIVE_HAZARDS,
    WEATHER_TRIGGERS,
    apply_weather_effects,
    generate_hazards,
    generate_weather,
    hazard_chance,
    make_hazard,
    make_weather,
    time_of_day,
    update_hazards,
    weather_triggered_rules,
)
from nightshift.tools.rng import ScriptedRandom, SeededRandom


class TestWeather:
    """Test weather generation and effects."""

    def test_clear_is_always_light(self):
        weather = make_weather(WeatherType.CLEAR, Intensity.HEAVY)
        assert weather.intensity == Intensity.LIGHT
        assert (weather.fuel_pct, weather.time_pct, weather.risk_pct) == (0, 0, 0)
        assert weather.visibility == 100

    def test_intensity_scales_effects(self):
        heavy = make_weather(WeatherType.FOG, Intensity.HEAVY)
        assert heavy.time_pct == 30
        assert heavy.risk_pct == 40
        assert heavy.visibility == 20

    def test_generated_weather_is_valid(self):
        rng = SeededRandom(5)
        for _ in range(100):
            weather = generate_weather(rng)
            if weather.type == WeatherType.CLEAR:
                assert weather.intensity == Intensity.LIGHT

    def test_scripted_weather(self):
        """A mid roll lands on moderate snow."""
        weather = generate_weather(ScriptedRandom([0.5]))
        assert (weather.type, weather.intensity) == (WeatherType.SNOW, Intensity.MODERATE)

    def test_weather_effects_clear_dusk(self):
        """No weather and enough light: costs untouched."""
        tod = time_of_day(17, 0)
        assert apply_weather_effects(10, 30, 2, make_weather(WeatherType.CLEAR, Intensity.LIGHT), tod) == (10, 30, 2)

    def test_weather_effects_risk_capped(self):
        tod = time_of_day(22, 180)
        storm = make_weather(WeatherType.THUNDERSTORM, Intensity.HEAVY)
        assert apply_weather_effects(7, 30, 5, storm, tod)[2] == 5


class TestTimeOfDay:
    """Test the shift clock."""

    @pytest.mark.parametrize("start,elapsed,hour,phase", [
        (22, 0, 22, DayPhase.NIGHT),
        (22, 119, 23, DayPhase.NIGHT),
        (22, 120, 0, DayPhase.LATENIGHT),
        (22, 479, 5, DayPhase.LATENIGHT),
        (22, 480, 6, DayPhase.DAWN),
        (18, 0, 18, DayPhase.DUSK),
    ])
    def test_clock(self, start, elapsed, hour, phase):
        tod = time_of_day(start, elapsed)
        assert (tod.hour, tod.phase) == (hour, phase)

    def test_negative_elapsed_treated_as_start(self):
        assert time_of_day(22, -30).hour == 22


class TestHazards:
    """Test hazard generation and expiry."""

    def test_chance_capped(self):
        heavy = make_weather(WeatherType.RAIN, Intensity.HEAVY)
        assert hazard_chance(heavy, time_of_day(22, 180)) == pytest.approx(0.5)
        assert hazard_chance(make_weather(WeatherType.CLEAR, Intensity.LIGHT), time_of_day(17, 0)) == pytest.approx(0.15)

    def test_severity_scales_effects(self):
        minor = make_hazard(HazardType.ACCIDENT, "minor", "Highway 101", 0)
        extreme = make_hazard(HazardType.ACCIDENT, "extreme", "Highway 101", 0)
        assert (minor.time_delay, minor.risk_increase) == (10, 1)
        assert (extreme.time_delay, extreme.risk_increase) == (30, 3)
        assert extreme.duration > minor.duration

    def test_road_closure_blocks_routes(self):
        closure = make_hazard(HazardType.ROAD_CLOSURE, "major", "Downtown Bridge", 0)
        assert closure.route_blocked == [RouteType.NORMAL, RouteType.SHORTCUT]

    def test_expiry(self):
        hazard = make_hazard(HazardType.SUPERNATURAL_EVENT, "major", "Cemetery Road", 100)
        assert not hazard.expired(114)
        assert hazard.expired(115)

    def test_no_roll_no_hazard(self):
        """A high roll misses; light weather adds nothing."""
        clear = make_weather(WeatherType.CLEAR, Intensity.LIGHT)
        assert generate_hazards(clear, time_of_day(22, 0), ScriptedRandom([0.9]), 0) == []

    def test_heavy_snow_ices_overpass(self):
        snow = make_weather(WeatherType.SNOW, Intensity.HEAVY)
        hazards = generate_hazards(snow, time_of_day(22, 0), ScriptedRandom([0.45]), 30)
        iced = [h for h in hazards if h.weather_triggered and h.location == "Iced overpass"]
        assert len(iced) == 1
        assert iced[0].risk_increase == 3

    def test_update_drops_expired_and_caps(self):
        old = make_hazard(HazardType.SUPERNATURAL_EVENT, "minor", "Forest Route", 0)
        storm = make_weather(WeatherType.THUNDERSTORM, Intensity.HEAVY)
        rng = SeededRandom(3)
        active = update_hazards([old], storm, time_of_day(22, 240), rng, 240)
        assert old not in active
        for elapsed in range(240, 400, 5):
            active = update_hazards(active, storm, time_of_day(22, elapsed), rng, elapsed)
            assert len(active) <= MAX_ACTIVE_HAZARDS


class TestWeatherRules:
    """Test which weather rules the conditions switch on."""

    @pytest.mark.parametrize("weather,intensity,elapsed,expected", [
        (WeatherType.THUNDERSTORM, Intensity.LIGHT, 0, [101]),
        (WeatherType.THUNDERSTORM, Intensity.HEAVY, 0, [101, 105]),
        (WeatherType.FOG, Intensity.HEAVY, 0, [102, 105]),
        (WeatherType.FOG, Intensity.MODERATE, 0, []),
        (WeatherType.SNOW, Intensity.MODERATE, 180, [103, 104]),
        (WeatherType.RAIN, Intensity.LIGHT, 180, [104]),
        (WeatherType.CLEAR, Intensity.LIGHT, 180, []),
        (WeatherType.WIND, Intensity.HEAVY, 0, [106]),
        (WeatherType.WIND, Intensity.MODERATE, 0, []),
    ])
    def test_triggers(self, catalog, weather, intensity, elapsed, expected):
        rules = catalog.rules_of_kind(RuleKind.WEATHER)
        tod = time_of_day(22, elapsed)
        assert weather_triggered_rules(rules, make_weather(weather, intensity), tod) == expected

    def test_unknown_trigger_never_fires(self):
        rule = Rule(id=150, title="Odd", description="", kind=RuleKind.WEATHER, trigger="meteor_shower")
        storm = make_weather(WeatherType.THUNDERSTORM, Intensity.HEAVY)
        assert weather_triggered_rules([rule], storm, time_of_day(22, 180)) == []

    def test_catalog_triggers_are_known(self, catalog):
        assert all(r.trigger in WEATHER_TRIGGERS for r in catalog.rules_of_kind(RuleKind.WEATHER))
