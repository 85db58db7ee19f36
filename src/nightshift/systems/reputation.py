"""
Passenger reputation.

Each passenger accumulates a history of positive and negative rides.
The relationship level derived from it scales their fare and the risk
of driving them.
"""

from dataclasses import dataclass, field
from datetime import datetime

from ..state.schema import RelationshipLevel, ReputationRecord

TRUSTED_RATIO = 0.8
TRUSTED_MIN_INTERACTIONS = 3
FRIENDLY_RATIO = 0.6
HOSTILE_RATIO = 0.3


@dataclass
class ReputationModifier:
    fare_multiplier: float = 1.0
    risk_modifier: int = 0
    special_options: list[str] = field(default_factory=list)


MODIFIERS: dict[RelationshipLevel, ReputationModifier] = {
    RelationshipLevel.TRUSTED: ReputationModifier(1.5, -1, ["protective_charm", "safe_route_info"]),
    RelationshipLevel.FRIENDLY: ReputationModifier(1.2, 0, ["warning_about_dangers"]),
    RelationshipLevel.HOSTILE: ReputationModifier(0.7, 2, ["makes_demands", "threatens_driver"]),
    RelationshipLevel.NEUTRAL: ReputationModifier(1.0, 0, []),
}


def relationship_level(positive_choices: int, interactions: int) -> RelationshipLevel:
    """Relationship for a history; neutral when there is none."""
    if interactions <= 0:
        return RelationshipLevel.NEUTRAL

    ratio = positive_choices / interactions
    if ratio >= TRUSTED_RATIO and interactions >= TRUSTED_MIN_INTERACTIONS:
        return RelationshipLevel.TRUSTED
    if ratio >= FRIENDLY_RATIO:
        return RelationshipLevel.FRIENDLY
    if ratio <= HOSTILE_RATIO:
        return RelationshipLevel.HOSTILE
    return RelationshipLevel.NEUTRAL


def record_interaction(
    record: ReputationRecord | None,
    positive: bool,
    timestamp: datetime,
) -> ReputationRecord:
    """New record with one more interaction folded in."""
    record = record.model_copy() if record else ReputationRecord()
    record.interactions += 1
    record.last_encounter = timestamp
    if positive:
        record.positive_choices += 1
    else:
        record.negative_choices += 1
    record.relationship_level = relationship_level(record.positive_choices, record.interactions)
    return record


def update_reputation(
    reputation: dict[int, ReputationRecord],
    passenger_id: int,
    positive: bool,
    timestamp: datetime,
) -> dict[int, ReputationRecord]:
    """Copy of the reputation map with one passenger's record updated."""
    updated = dict(reputation)
    updated[passenger_id] = record_interaction(reputation.get(passenger_id), positive, timestamp)
    return updated


def get_modifier(record: ReputationRecord | None) -> ReputationModifier:
    if record is None:
        return MODIFIERS[RelationshipLevel.NEUTRAL]
    return MODIFIERS[record.relationship_level]
