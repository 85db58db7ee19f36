"""
Route cost calculation.

Every route is always available. Bad weather, darkness, frightened
passengers and road hazards only make a route dearer or riskier; they
never take it off the table.

Cost pipeline, in order:
    1. Base fuel/time/risk for the route type
    2. Bounded random variation (floored at the configured minimums)
    3. Passenger risk relative to the default risk level
    4. Additive surcharges: weather scaling, heavy-weather shortcut,
       storm scenic, late-night scenic, passenger fear, hazards
    5. Mastery discount
    6. Final clamp: fuel >= 5, time >= 5, 0 <= risk <= 5
"""

import logging
from dataclasses import dataclass

from ..config import BalanceConfig
from ..state.schema import (
    DayPhase,
    Hazard,
    Intensity,
    Passenger,
    Preference,
    RouteOption,
    RouteType,
    TimeOfDay,
    Weather,
    WeatherType,
)
from ..tools.results import GameResult, wrap
from ..tools.rng import RandomSource, variation
from .environment import apply_weather_effects

logger = logging.getLogger(__name__)

MAX_RISK = 5

ROUTE_LABELS: dict[RouteType, tuple[str, str]] = {
    RouteType.NORMAL: ("Take Normal Route", "Safe and reliable, follows GPS exactly"),
    RouteType.SHORTCUT: (
        "Take Shortcut",
        "Faster and saves fuel, but higher risk of supernatural encounters",
    ),
    RouteType.SCENIC: (
        "Take Scenic Route",
        "Longer route through quiet streets, some passengers pay extra",
    ),
    RouteType.POLICE: ("Police-Patrolled Route", "Safest option, but uses more fuel and time"),
}

# Player action each route counts as when checked against the rules
ROUTE_ACTIONS: dict[RouteType, str | None] = {
    RouteType.NORMAL: None,
    RouteType.SHORTCUT: "take_shortcut",
    RouteType.SCENIC: "take_slow_route",
    RouteType.POLICE: "take_slow_route",
}

FEAR_SURCHARGE = (5, 8, 1)


@dataclass
class RouteCost:
    fuel_cost: int
    time_cost: int
    risk_level: int


def mastery_discount(uses: int) -> tuple[int, int, int]:
    """(fuel, time, risk) reductions earned by using a route repeatedly."""
    return min(4, uses // 3), min(6, uses // 2), min(1, uses // 10)


def calculate_route_costs(
    route: RouteType,
    config: BalanceConfig,
    rng: RandomSource,
    passenger_risk: int | None = None,
    weather: Weather | None = None,
    tod: TimeOfDay | None = None,
    hazards: list[Hazard] | None = None,
    passenger: Passenger | None = None,
    mastery: dict[RouteType, int] | None = None,
) -> RouteCost:
    """Price a single route. Raises KeyError if the route has no base entry."""
    base = config.route_base[route.value]
    min_fuel, min_time = config.minimum_fuel_cost, config.minimum_time_cost

    fuel = max(min_fuel, base.fuel + variation(rng, config.fuel_variation))
    time = max(min_time, base.time + variation(rng, config.time_variation))
    if passenger_risk is None:
        passenger_risk = config.default_risk_level
    risk = base.risk + (passenger_risk - config.default_risk_level)

    if weather is not None and tod is not None:
        fuel, time, risk = apply_weather_effects(fuel, time, risk, weather, tod)

    if weather is not None:
        if (
            route == RouteType.SHORTCUT
            and weather.intensity == Intensity.HEAVY
            and weather.type in (WeatherType.RAIN, WeatherType.FOG, WeatherType.SNOW)
        ):
            fuel += 8
            time += 10
            risk = min(MAX_RISK, risk + 2)
        if route == RouteType.SCENIC and weather.type == WeatherType.THUNDERSTORM:
            fuel += 5
            time += 15
            risk = min(MAX_RISK, risk + 1)

    if tod is not None and route == RouteType.SCENIC and tod.phase == DayPhase.LATENIGHT:
        fuel += 3
        time += 8
        risk = min(MAX_RISK, risk + 1)

    if passenger is not None:
        pref = passenger.preference_for(route)
        if pref is not None and pref.preference == Preference.FEARS:
            fuel += FEAR_SURCHARGE[0]
            time += FEAR_SURCHARGE[1]
            risk = min(MAX_RISK, risk + FEAR_SURCHARGE[2])

    for hazard in hazards or []:
        if route in hazard.route_blocked:
            risk = min(MAX_RISK, risk + 2)
        fuel += hazard.fuel_increase
        time += hazard.time_delay
        risk += hazard.risk_increase

    uses = (mastery or {}).get(route, 0)
    if uses:
        fuel_off, time_off, risk_off = mastery_discount(uses)
        fuel = max(min_fuel, fuel - fuel_off)
        time = max(min_time, time - time_off)
        risk = max(0, risk - risk_off)

    return RouteCost(
        fuel_cost=max(min_fuel, round(fuel)),
        time_cost=max(min_time, round(time)),
        risk_level=max(0, min(MAX_RISK, round(risk))),
    )


def passenger_reaction(preference: Preference | None) -> str:
    if preference in (Preference.LOVES, Preference.LIKES):
        return "positive"
    if preference in (Preference.DISLIKES, Preference.FEARS):
        return "negative"
    return "neutral"


def describe_route(
    route: RouteType,
    passenger: Passenger | None,
    mastery: dict[RouteType, int] | None,
    weather: Weather | None,
    tod: TimeOfDay | None,
    hazards: list[Hazard] | None,
) -> str:
    """Human-readable note on whatever is pushing this route's price around."""
    notes = []
    if passenger is not None:
        pref = passenger.preference_for(route)
        if pref is not None and pref.preference != Preference.NEUTRAL:
            notes.append(f"{passenger.name} {pref.preference.value} this route (x{pref.fare_modifier:g} fare)")
            if pref.preference == Preference.FEARS:
                notes.append("fear surcharge")

    uses = (mastery or {}).get(route, 0)
    fuel_off, time_off, risk_off = mastery_discount(uses)
    if fuel_off or time_off or risk_off:
        notes.append(f"mastery -{fuel_off} fuel -{time_off} min")

    if weather is not None and weather.type != WeatherType.CLEAR:
        notes.append(f"{weather.intensity.value} {weather.type.value}, visibility {weather.visibility}%")
    if tod is not None and route == RouteType.SCENIC and tod.phase == DayPhase.LATENIGHT:
        notes.append("late-night scenic surcharge")

    for hazard in hazards or []:
        if route in hazard.route_blocked:
            notes.append(f"{hazard.location} blocked (extra risk)")

    return "; ".join(notes)


def fallback_option(route: RouteType, config: BalanceConfig) -> RouteOption:
    name, description = ROUTE_LABELS[route]
    fb = config.fallback_route
    return RouteOption(
        route=route,
        name=name,
        description=description,
        fuel_cost=fb.fuel,
        time_cost=fb.time,
        risk_level=fb.risk,
        bonus_info="Route information unavailable",
        fallback=True,
    )


def get_route_options(
    fuel: int,
    time: int,
    config: BalanceConfig,
    rng: RandomSource,
    passenger_risk: int | None = None,
    weather: Weather | None = None,
    tod: TimeOfDay | None = None,
    hazards: list[Hazard] | None = None,
    passenger: Passenger | None = None,
    mastery: dict[RouteType, int] | None = None,
) -> GameResult[list[RouteOption]]:
    """
    Price all four routes.

    Always yields four options, all available. A route whose pricing
    fails is replaced with the configured fallback cost.
    """
    def build() -> list[RouteOption]:
        safe_fuel = max(0, fuel)
        safe_time = max(0, time)
        options = []
        for route in RouteType:
            try:
                cost = calculate_route_costs(
                    route, config, rng, passenger_risk, weather, tod, hazards, passenger, mastery,
                )
                pref = passenger.preference_for(route) if passenger else None
                name, description = ROUTE_LABELS[route]
                option = RouteOption(
                    route=route,
                    name=name,
                    description=description,
                    fuel_cost=cost.fuel_cost,
                    time_cost=cost.time_cost,
                    risk_level=cost.risk_level,
                    bonus_info=describe_route(route, passenger, mastery, weather, tod, hazards),
                    passenger_reaction=passenger_reaction(pref.preference if pref else None),
                    fare_modifier=pref.fare_modifier if pref else 1.0,
                )
            except Exception as e:
                logger.warning("Route pricing failed for %s, using fallback: %s", route.value, e)
                option = fallback_option(route, config)
            option.affordable = safe_fuel >= option.fuel_cost and safe_time >= option.time_cost
            options.append(option)
        return options

    return wrap(
        build,
        "route_options_failed",
        [fallback_option(route, config) for route in RouteType],
    )
