"""
Weather, time of day and road hazards.

Weather is rolled once per shift. Time of day follows the shift clock.
Hazards come and go as rides are requested, and expire after their
duration in shift minutes.
"""

from typing import Callable

from ..state.schema import (
    DayPhase,
    Hazard,
    HazardType,
    Intensity,
    RouteType,
    Rule,
    TimeOfDay,
    Weather,
    WeatherType,
)
from ..tools.rng import RandomSource, chance, choice

MAX_ACTIVE_HAZARDS = 3

HAZARD_LOCATIONS = [
    "Downtown Bridge", "Highway 101", "Industrial District", "Cemetery Road",
    "Forest Route", "Waterfront Drive", "University Avenue", "Hospital District",
]

_INTENSITY_MULTIPLIER = {
    Intensity.LIGHT: 1.0,
    Intensity.MODERATE: 1.5,
    Intensity.HEAVY: 2.0,
}

# Percent effects at light intensity: (fuel, time, risk)
_WEATHER_EFFECTS: dict[WeatherType, tuple[float, float, float]] = {
    WeatherType.CLEAR: (0, 0, 0),
    WeatherType.RAIN: (5, 0, 10),
    WeatherType.FOG: (0, 15, 20),
    WeatherType.SNOW: (10, 20, 15),
    WeatherType.THUNDERSTORM: (0, 0, 25),
    WeatherType.WIND: (8, 0, 0),
}

# (fuel, time, risk, blocked routes) at minor severity
_HAZARD_EFFECTS: dict[HazardType, tuple[int, int, int, list[RouteType]]] = {
    HazardType.CONSTRUCTION: (2, 5, 0, []),
    HazardType.ACCIDENT: (0, 10, 1, []),
    HazardType.SUPERNATURAL_EVENT: (0, 0, 2, []),
    HazardType.ROAD_CLOSURE: (0, 15, 0, [RouteType.NORMAL, RouteType.SHORTCUT]),
    HazardType.POLICE_CHECKPOINT: (0, 8, 1, []),
}

_HAZARD_DURATION = {
    HazardType.CONSTRUCTION: 45,
    HazardType.ACCIDENT: 25,
    HazardType.SUPERNATURAL_EVENT: 15,
    HazardType.ROAD_CLOSURE: 60,
    HazardType.POLICE_CHECKPOINT: 20,
}

_SEVERITY = {"minor": (1, 0.7), "major": (2, 1.0), "extreme": (3, 1.5)}


def make_weather(weather_type: WeatherType, intensity: Intensity) -> Weather:
    """Build a Weather with the percentage effects for its type and intensity."""
    if weather_type == WeatherType.CLEAR:
        intensity = Intensity.LIGHT
    mult = _INTENSITY_MULTIPLIER[intensity]
    fuel, time, risk = _WEATHER_EFFECTS[weather_type]
    return Weather(
        type=weather_type,
        intensity=intensity,
        fuel_pct=fuel * mult,
        time_pct=time * mult,
        risk_pct=risk * mult,
    )


def generate_weather(rng: RandomSource) -> Weather:
    weather_type = choice(rng, list(WeatherType))
    if weather_type == WeatherType.CLEAR:
        return make_weather(weather_type, Intensity.LIGHT)

    roll = rng.next()
    if roll < 0.5:
        intensity = Intensity.LIGHT
    elif roll < 0.8:
        intensity = Intensity.MODERATE
    else:
        intensity = Intensity.HEAVY
    return make_weather(weather_type, intensity)


def time_of_day(start_hour: int, elapsed_minutes: int) -> TimeOfDay:
    """Clock position for a shift that began at start_hour."""
    hour = (start_hour + max(0, elapsed_minutes) // 60) % 24
    if 17 <= hour < 20:
        phase, light = DayPhase.DUSK, 40
    elif 20 <= hour < 24:
        phase, light = DayPhase.NIGHT, 15
    elif hour < 6:
        phase, light = DayPhase.LATENIGHT, 5
    else:
        phase, light = DayPhase.DAWN, 30
    return TimeOfDay(phase=phase, hour=hour, ambient_light=light)


def is_dark(tod: TimeOfDay | None) -> bool:
    return tod is not None and tod.phase in (DayPhase.NIGHT, DayPhase.LATENIGHT)


def apply_weather_effects(
    fuel: float,
    time: float,
    risk: float,
    weather: Weather,
    tod: TimeOfDay,
) -> tuple[int, int, int]:
    """Scale costs by weather percentages and darkness."""
    fuel_mod = 1 + weather.fuel_pct / 100
    time_mod = 1 + weather.time_pct / 100
    risk_mod = 1 + weather.risk_pct / 100

    if is_dark(tod):
        risk_mod += 0.2
    if tod.ambient_light < 30:
        fuel_mod += 0.1  # Headlights

    return (
        round(fuel * fuel_mod),
        round(time * time_mod),
        min(5, round(risk * risk_mod)),
    )


def hazard_chance(weather: Weather, tod: TimeOfDay) -> float:
    odds = 0.15
    if weather.intensity == Intensity.MODERATE:
        odds += 0.1
    elif weather.intensity == Intensity.HEAVY:
        odds += 0.2
    if is_dark(tod):
        odds += 0.15
    return min(0.6, odds)


def make_hazard(
    hazard_type: HazardType,
    severity: str,
    location: str,
    started_at: int,
    weather_triggered: bool = False,
) -> Hazard:
    mult, duration_mult = _SEVERITY[severity]
    fuel, time, risk, blocked = _HAZARD_EFFECTS[hazard_type]
    return Hazard(
        id=f"{hazard_type.value}_{started_at}_{location.lower().replace(' ', '_')}",
        type=hazard_type,
        location=location,
        severity=severity,
        route_blocked=list(blocked),
        fuel_increase=round(fuel * mult),
        time_delay=round(time * mult),
        risk_increase=round(risk * mult),
        duration=round(_HAZARD_DURATION[hazard_type] * duration_mult),
        started_at=started_at,
        weather_triggered=weather_triggered,
    )


def _weather_hazard(weather: Weather, rng: RandomSource, elapsed: int) -> Hazard | None:
    """Heavy rain floods, heavy snow ices, heavy fog blinds."""
    if weather.intensity != Intensity.HEAVY:
        return None
    if weather.type == WeatherType.RAIN and chance(rng, 0.4):
        hazard = make_hazard(HazardType.ROAD_CLOSURE, "major", "Flooded underpass", elapsed, True)
        hazard.time_delay, hazard.risk_increase = 20, 2
    elif weather.type == WeatherType.SNOW and chance(rng, 0.5):
        hazard = make_hazard(HazardType.ACCIDENT, "major", "Iced overpass", elapsed, True)
        hazard.time_delay, hazard.risk_increase = 15, 3
    elif weather.type == WeatherType.FOG and chance(rng, 0.3):
        hazard = make_hazard(HazardType.CONSTRUCTION, "minor", "Fogbound streets", elapsed, True)
        hazard.fuel_increase, hazard.time_delay, hazard.risk_increase = 0, 10, 1
    else:
        return None
    return hazard


def generate_hazards(
    weather: Weather,
    tod: TimeOfDay,
    rng: RandomSource,
    elapsed_minutes: int,
) -> list[Hazard]:
    """Roll for new hazards at the current point in the shift."""
    hazards = []

    if chance(rng, hazard_chance(weather, tod)):
        types = [HazardType.CONSTRUCTION, HazardType.ACCIDENT, HazardType.ROAD_CLOSURE]
        if weather.type == WeatherType.THUNDERSTORM or tod.phase == DayPhase.LATENIGHT:
            types.append(HazardType.SUPERNATURAL_EVENT)
        if is_dark(tod):
            types.append(HazardType.POLICE_CHECKPOINT)

        hazard_type = choice(rng, types)
        roll = rng.next()
        severity = "extreme" if roll < 0.1 else "major" if roll < 0.3 else "minor"
        location = choice(rng, HAZARD_LOCATIONS)
        hazards.append(make_hazard(
            hazard_type, severity, location, elapsed_minutes,
            weather_triggered=weather.intensity == Intensity.HEAVY,
        ))

    weather_hazard = _weather_hazard(weather, rng, elapsed_minutes)
    if weather_hazard is not None:
        hazards.append(weather_hazard)

    return hazards


def update_hazards(
    hazards: list[Hazard],
    weather: Weather,
    tod: TimeOfDay,
    rng: RandomSource,
    elapsed_minutes: int,
) -> list[Hazard]:
    """Drop expired hazards, then roll for new ones up to MAX_ACTIVE_HAZARDS."""
    active = [h for h in hazards if not h.expired(elapsed_minutes)]
    if len(active) < MAX_ACTIVE_HAZARDS:
        known = {h.id for h in active}
        for hazard in generate_hazards(weather, tod, rng, elapsed_minutes):
            if hazard.id not in known and len(active) < MAX_ACTIVE_HAZARDS:
                active.append(hazard)
    return active


# -----------------------------------------------------------------------------
# Weather rules
# -----------------------------------------------------------------------------

LOW_VISIBILITY = 30

WeatherTrigger = Callable[[Weather, TimeOfDay], bool]

WEATHER_TRIGGERS: dict[str, WeatherTrigger] = {
    "thunderstorm": lambda w, tod: w.type == WeatherType.THUNDERSTORM,
    "heavy_fog": lambda w, tod: w.type == WeatherType.FOG and w.intensity == Intensity.HEAVY,
    "snow": lambda w, tod: w.type == WeatherType.SNOW,
    "latenight_badweather": lambda w, tod: tod.phase == DayPhase.LATENIGHT and w.type != WeatherType.CLEAR,
    "low_visibility": lambda w, tod: w.visibility < LOW_VISIBILITY,
    "heavy_wind": lambda w, tod: w.type == WeatherType.WIND and w.intensity == Intensity.HEAVY,
}


def weather_triggered_rules(rules: list[Rule], weather: Weather, tod: TimeOfDay) -> list[int]:
    """
    Ids of the weather rules whose trigger holds right now.

    A rule with an unknown or missing trigger never switches on.
    """
    active = []
    for rule in rules:
        trigger = WEATHER_TRIGGERS.get(rule.trigger or "")
        if trigger is not None and trigger(weather, tod):
            active.append(rule.id)
    return active
