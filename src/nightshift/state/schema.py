"""
Pydantic models for Nightshift state.

These models define the structure of a shift and everything persisted
between shifts. Catalog records (rules, passengers, locations) are
read-only; a shift refers to them by id and never copies them.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class Difficulty(str, Enum):
    """Rule difficulty tier, ordered easy < ... < nightmare."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    EXPERT = "expert"
    NIGHTMARE = "nightmare"

    @property
    def severity(self) -> int:
        """Ordinal used for penalties (easy=1 ... nightmare=5)."""
        return _DIFFICULTY_ORDER.index(self) + 1


_DIFFICULTY_ORDER = list(Difficulty)


class RuleKind(str, Enum):
    BASIC = "basic"
    CONDITIONAL = "conditional"
    CONFLICTING = "conflicting"
    HIDDEN = "hidden"
    WEATHER = "weather"                # Switched on by conditions, never dealt


class Rarity(str, Enum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    LEGENDARY = "legendary"


class ItemType(str, Enum):
    STORY = "story"
    PROTECTIVE = "protective"         # Absorbs a broken rule
    CURSED = "cursed"
    CONSUMABLE = "consumable"         # Used up by use_item


class ItemEffectType(str, Enum):
    FUEL_BONUS = "fuel_bonus"
    FUEL_DRAIN = "fuel_drain"
    TIME_BONUS = "time_bonus"
    TIME_PENALTY = "time_penalty"
    REPUTATION_MODIFIER = "reputation_modifier"


class CurseType(str, Enum):
    FUEL_DRAIN = "fuel_drain"
    TIME_ACCELERATION = "time_acceleration"
    ATTRACTING_DANGER = "attracting_danger"


class RelationshipLevel(str, Enum):
    """Per-passenger relationship, ordered hostile < neutral < friendly < trusted."""
    HOSTILE = "hostile"
    NEUTRAL = "neutral"
    FRIENDLY = "friendly"
    TRUSTED = "trusted"

    @property
    def rank(self) -> int:
        return list(RelationshipLevel).index(self)


class RouteType(str, Enum):
    NORMAL = "normal"
    SHORTCUT = "shortcut"
    SCENIC = "scenic"
    POLICE = "police"


class RoutePhase(str, Enum):
    PICKUP = "pickup"
    DESTINATION = "destination"


class Preference(str, Enum):
    """How a passenger feels about a route type."""
    LOVES = "loves"
    LIKES = "likes"
    NEUTRAL = "neutral"
    DISLIKES = "dislikes"
    FEARS = "fears"


class ModificationType(str, Enum):
    REMOVE_RULE = "remove_rule"
    REVEAL_HIDDEN = "reveal_hidden"
    ADD_TEMPORARY = "add_temporary"


class GamePhase(str, Enum):
    """Phase state machine for a shift."""
    LOADING = "loading"              # No shift yet
    BRIEFING = "briefing"            # Rules generated, shift not started
    WAITING = "waiting"              # Between rides, may refuel
    RIDE_REQUEST = "ride_request"    # Passenger offered
    DRIVING = "driving"              # Choosing a route
    INTERACTION = "interaction"      # Passenger in the cab
    DROP_OFF = "drop_off"            # Ride resolved
    GAME_OVER = "game_over"
    SUCCESS = "success"


class WeatherType(str, Enum):
    CLEAR = "clear"
    RAIN = "rain"
    FOG = "fog"
    SNOW = "snow"
    THUNDERSTORM = "thunderstorm"
    WIND = "wind"


class Intensity(str, Enum):
    LIGHT = "light"
    MODERATE = "moderate"
    HEAVY = "heavy"


class DayPhase(str, Enum):
    DUSK = "dusk"
    NIGHT = "night"
    LATENIGHT = "latenight"
    DAWN = "dawn"


class HazardType(str, Enum):
    CONSTRUCTION = "construction"
    ACCIDENT = "accident"
    ROAD_CLOSURE = "road_closure"
    SUPERNATURAL_EVENT = "supernatural_event"
    POLICE_CHECKPOINT = "police_checkpoint"


# -----------------------------------------------------------------------------
# Catalog Records
# -----------------------------------------------------------------------------

class Rule(BaseModel):
    """A rule the driver must not break. Behavior lives in systems.violations."""
    id: int
    title: str
    description: str = ""
    difficulty: Difficulty = Difficulty.MEDIUM
    kind: RuleKind = RuleKind.BASIC
    visible: bool = True
    conflicts_with: list[int] = Field(default_factory=list)
    violation_message: str | None = None
    condition_hint: str | None = None
    temporary: bool = False            # Granted by a passenger, never generated
    duration: int | None = None        # Completed rides before a temporary rule lapses
    trigger: str | None = None         # Weather condition that switches a weather rule on


class RoutePreference(BaseModel):
    route: RouteType
    preference: Preference
    fare_modifier: float = 1.0
    dialogue: str | None = None


class RuleModification(BaseModel):
    """What a passenger can offer to change about the night's rules."""
    type: ModificationType
    description: str = ""
    rule_id: int | None = None         # Temporary rule granted by add_temporary


class Passenger(BaseModel):
    id: int
    name: str
    description: str = ""
    pickup: str
    destination: str
    supernatural: str = ""
    supernatural_type: str | None = None  # None for the living
    fare: int
    rarity: Rarity = Rarity.COMMON
    items: list[str] = Field(default_factory=list)
    dialogue: list[str] = Field(default_factory=list)
    relationships: list[int] = Field(default_factory=list)
    backstory: str = ""
    route_preferences: list[RoutePreference] = Field(default_factory=list)
    rule_modification: RuleModification | None = None
    medical: bool = False
    in_distress: bool = False
    needs_attention_check: bool = False

    def preference_for(self, route: RouteType) -> RoutePreference | None:
        for pref in self.route_preferences:
            if pref.route == route:
                return pref
        return None


class ItemEffect(BaseModel):
    type: ItemEffectType
    value: int = 0


class Curse(BaseModel):
    penalty_type: CurseType
    penalty_value: int = 0
    triggers_after: int = 0            # Shift minutes held before the curse bites


class ItemDefinition(BaseModel):
    """Catalog record for an item a passenger can leave behind."""
    name: str
    type: ItemType = ItemType.STORY
    rarity: Rarity = Rarity.COMMON
    description: str = "A mysterious object left behind by a passenger"
    effects: list[ItemEffect] = Field(default_factory=list)
    usable: bool = False
    uses: int | None = None            # Protective charges
    protects_against: list[int] = Field(default_factory=list)  # Rule ids; empty guards any rule
    curse: Curse | None = None
    durability: int | None = None      # Ten-minute spans before the item crumbles


class Location(BaseModel):
    name: str
    description: str = ""
    atmosphere: str = ""
    risk_level: int = Field(default=1, ge=0, le=5)


# -----------------------------------------------------------------------------
# Environment
# -----------------------------------------------------------------------------

class Weather(BaseModel):
    """Shift weather. Percentages scale route costs."""
    type: WeatherType = WeatherType.CLEAR
    intensity: Intensity = Intensity.LIGHT
    fuel_pct: float = 0.0
    time_pct: float = 0.0
    risk_pct: float = 0.0

    @property
    def visibility(self) -> int:
        return max(0, round(100 - self.risk_pct * 2))


class TimeOfDay(BaseModel):
    phase: DayPhase
    hour: int
    ambient_light: int


class Hazard(BaseModel):
    id: str
    type: HazardType
    location: str
    severity: str = "minor"            # minor, major, extreme
    route_blocked: list[RouteType] = Field(default_factory=list)
    fuel_increase: int = 0
    time_delay: int = 0
    risk_increase: int = 0
    duration: int = 30                 # Minutes
    started_at: int = 0                # Elapsed shift minutes
    weather_triggered: bool = False

    def expired(self, elapsed_minutes: int) -> bool:
        return elapsed_minutes >= self.started_at + self.duration


# -----------------------------------------------------------------------------
# Shift Records
# -----------------------------------------------------------------------------

class RuleConflict(BaseModel):
    rule_id: int
    conflicting_rule_id: int
    description: str
    type: str = "direct_conflict"


class TemporaryRule(BaseModel):
    rule_id: int
    expires_after_rides: int           # Lapses once rides_completed reaches this


class ReputationRecord(BaseModel):
    interactions: int = 0
    positive_choices: int = 0
    negative_choices: int = 0
    last_encounter: datetime | None = None
    relationship_level: RelationshipLevel = RelationshipLevel.NEUTRAL


class RouteChoiceRecord(BaseModel):
    """Append-only audit entry for a driving choice."""
    route: RouteType
    phase: RoutePhase
    fuel_cost: int
    time_cost: int
    risk_level: int
    passenger_id: int | None = None
    timestamp: datetime = Field(default_factory=datetime.now)


class RouteOption(BaseModel):
    """A priced route offered to the driver. Every route is always available."""
    route: RouteType
    name: str
    description: str = ""
    fuel_cost: int
    time_cost: int
    risk_level: int
    available: bool = True
    affordable: bool = True
    bonus_info: str = ""
    passenger_reaction: str = "neutral"  # positive, negative, neutral
    fare_modifier: float = 1.0
    fallback: bool = False


class RouteStreak(BaseModel):
    route: RouteType
    count: int = 1


class InventoryItem(BaseModel):
    name: str
    source_passenger_id: int
    acquired_at: datetime = Field(default_factory=datetime.now)
    acquired_minute: int = 0           # Elapsed shift minutes when picked up
    uses_remaining: int | None = None
    durability: int | None = None


class RideInProgress(BaseModel):
    """Bookkeeping for the passenger currently offered or in the cab."""
    passenger_id: int
    first_encounter: bool = True
    backstory_rolled: bool = False     # Selection roll succeeded
    related: bool = False              # Spawned through a relationship
    started_time_remaining: int | None = None  # Set on accept
    boarded_time_remaining: int | None = None  # Set when the pickup leg ends
    positive_actions: int = 0
    negative_actions: int = 0
    actions: list[str] = Field(default_factory=list)
    offer_used: bool = False
    drop_off_location: str | None = None


class CompletedRide(BaseModel):
    passenger_id: int
    fare: int
    duration: int                      # Minutes from accept to drop-off
    route: RouteType | None = None
    item: str | None = None
    backstory_unlocked: bool = False
    positive: bool = True
    supernatural_type: str | None = None
    completed_at: datetime = Field(default_factory=datetime.now)


class ShiftState(BaseModel):
    """
    The single authoritative state of a shift.

    Only systems.shift.transition produces new versions of it.
    """
    version: int = 0
    phase: GamePhase = GamePhase.LOADING

    # Resources
    fuel: int = 100
    earnings: int = 0
    time_remaining: int = 480
    initial_time: int = 480
    minimum_earnings: int = 200
    survival_bonus: int = 0
    fuel_used: int = 0

    # Rules
    experience: int = 0
    difficulty_level: int = 0
    visible_rules: list[int] = Field(default_factory=list)
    hidden_rules: list[int] = Field(default_factory=list)
    temporary_rules: list[TemporaryRule] = Field(default_factory=list)
    weather_rules: list[int] = Field(default_factory=list)  # In force while their trigger holds
    revealed_hidden_rules: list[int] = Field(default_factory=list)
    conflicts: list[RuleConflict] = Field(default_factory=list)
    rules_violated: int = 0
    pending_violation: int | None = None  # Hidden rule awaiting its reveal

    # Passengers
    used_passenger_ids: list[int] = Field(default_factory=list)
    current_passenger_id: int | None = None
    current_ride: RideInProgress | None = None
    reputation: dict[int, ReputationRecord] = Field(default_factory=dict)
    completed_rides: list[CompletedRide] = Field(default_factory=list)
    inventory: list[InventoryItem] = Field(default_factory=list)
    backstories_unlocked: list[int] = Field(default_factory=list)
    last_spoke_at: int | None = None   # time_remaining when the driver last spoke

    # Routes
    driving_phase: RoutePhase | None = None
    route_options: list[RouteOption] = Field(default_factory=list)
    route_history: list[RouteChoiceRecord] = Field(default_factory=list)
    route_mastery: dict[RouteType, int] = Field(default_factory=dict)
    route_streak: RouteStreak | None = None

    # Environment
    weather: Weather | None = None
    time_of_day: TimeOfDay | None = None
    hazards: list[Hazard] = Field(default_factory=list)

    # Countdown
    tick_generation: int = 0
    screen_active: bool = True

    # Lifecycle
    shift_started_at: datetime | None = None
    ended_at: datetime | None = None
    game_over_reason: str | None = None

    @property
    def rides_completed(self) -> int:
        return len(self.completed_rides)

    @property
    def elapsed_minutes(self) -> int:
        return max(0, self.initial_time - self.time_remaining)

    @property
    def active_rule_ids(self) -> list[int]:
        """Visible, hidden, weather and temporary rules in force, without duplicates."""
        ids = list(self.visible_rules)
        for rule_id in self.hidden_rules + self.weather_rules:
            if rule_id not in ids:
                ids.append(rule_id)
        for temp in self.temporary_rules:
            if temp.rule_id not in ids:
                ids.append(temp.rule_id)
        return ids

    @property
    def is_terminal(self) -> bool:
        return self.phase in (GamePhase.GAME_OVER, GamePhase.SUCCESS)


class ShiftSummary(BaseModel):
    """Everything scoring needs from a finished shift."""
    successful: bool
    reason: str
    earnings: int                      # Fares minus refuel spending, before bonus
    survival_bonus: int = 0
    time_remaining: int
    time_spent: int
    rides_completed: int
    fuel_used: int
    rules_violated: int
    difficulty_level: int
    passenger_ids: list[int] = Field(default_factory=list)
    legendary_passenger_ids: list[int] = Field(default_factory=list)
    backstories_unlocked: list[int] = Field(default_factory=list)
    ended_at: datetime = Field(default_factory=datetime.now)

    @property
    def total_earnings(self) -> int:
        return self.earnings + self.survival_bonus


# -----------------------------------------------------------------------------
# Persisted Records
# -----------------------------------------------------------------------------

class PlayerStats(BaseModel):
    """Cross-shift totals. Only scoring at shift end changes them."""
    total_shifts_started: int = 0
    total_shifts_completed: int = 0
    total_rides_completed: int = 0
    total_earnings: int = 0
    total_fuel_used: int = 0
    total_time_played: int = 0         # Minutes
    total_rules_violated: int = 0
    best_shift_earnings: int = 0
    best_shift_rides: int = 0
    best_score: int = 0
    longest_survival_time: int = 0
    passengers_encountered: list[int] = Field(default_factory=list)
    legendary_passengers: list[int] = Field(default_factory=list)
    backstories_unlocked: list[int] = Field(default_factory=list)
    achievements_unlocked: list[str] = Field(default_factory=list)
    first_play_date: datetime | None = None
    last_play_date: datetime | None = None


class LeaderboardEntry(BaseModel):
    score: int
    time_spent: int
    survived: bool
    passengers_transported: int
    difficulty_level: int
    rules_violated: int
    earnings: int = 0
    date: datetime = Field(default_factory=datetime.now)


SAVE_VERSION = "1.0.0"


class SavedGame(BaseModel):
    """A resumable mid-shift snapshot."""
    game_state: ShiftState
    player_stats: PlayerStats
    timestamp: datetime = Field(default_factory=datetime.now)
    version: str = SAVE_VERSION
