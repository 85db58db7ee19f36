"""Route-choosing strategies for automated shifts."""

from typing import Callable

from ..state.schema import Passenger, Preference, RouteOption, RouteType, ShiftState
from ..tools.rng import RandomSource, choice

# (route options, passenger, state, rng) -> route to drive
Strategy = Callable[[list[RouteOption], Passenger | None, ShiftState, RandomSource], RouteType]

ROUTES = [RouteType.SHORTCUT, RouteType.NORMAL, RouteType.SCENIC, RouteType.POLICE]


def shortcut_spam(options, passenger, state, rng) -> RouteType:
    return RouteType.SHORTCUT


def scenic_only(options, passenger, state, rng) -> RouteType:
    return RouteType.SCENIC


def random_route(options, passenger, state, rng) -> RouteType:
    return choice(rng, ROUTES)


def balanced(options, passenger, state, rng) -> RouteType:
    """Normal route, breaking any streak of two with a random alternative."""
    streak = state.route_streak
    if streak is not None and streak.count >= 2:
        return choice(rng, [r for r in ROUTES if r != streak.route])
    return RouteType.NORMAL


def strategic(options, passenger, state, rng) -> RouteType:
    """Play to the passenger's tastes and steer clear of what they fear."""
    if passenger is None or not passenger.route_preferences:
        return RouteType.NORMAL

    avoided = {
        p.route for p in passenger.route_preferences
        if p.preference in (Preference.FEARS, Preference.DISLIKES)
    }
    for wanted in (Preference.LOVES, Preference.LIKES):
        for pref in passenger.route_preferences:
            if pref.preference == wanted and pref.route not in avoided:
                return pref.route

    if avoided:
        alternatives = [r for r in ROUTES if r not in avoided]
        if alternatives:
            return choice(rng, alternatives)
    return RouteType.NORMAL


def perfect(options, passenger, state, rng) -> RouteType:
    """Best fare multiplier per unit of fuel among the routes we can afford."""
    affordable = [o for o in options if o.affordable] or options
    if not affordable:
        return RouteType.NORMAL
    best = max(affordable, key=lambda o: (o.fare_modifier / max(1, o.fuel_cost), -o.risk_level))
    return best.route


STRATEGIES: dict[str, Strategy] = {
    "shortcut_spam": shortcut_spam,
    "scenic_only": scenic_only,
    "random": random_route,
    "balanced": balanced,
    "strategic": strategic,
    "perfect": perfect,
}
