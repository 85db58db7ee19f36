"""
Shift rule generation.

Difficulty scales with player experience and decides which rule pools
a shift draws from:

    0  2-3 basic rules
    1+ plus 1-2 conditional rules
    2+ plus one conflicting rule, only if its conflict partner is present
    3+ plus 1-2 hidden rules
"""

from dataclasses import dataclass, field

from ..state.catalog import GameCatalog
from ..state.schema import PlayerStats, Rule, RuleConflict, RuleKind
from ..tools.rng import RandomSource, choice, randint, sample

MAX_DIFFICULTY = 4


@dataclass
class RuleSet:
    """Rules selected for one shift."""
    visible_rules: list[int] = field(default_factory=list)
    hidden_rules: list[int] = field(default_factory=list)
    conflicts: list[RuleConflict] = field(default_factory=list)
    difficulty_level: int = 0

    @property
    def all_rules(self) -> list[int]:
        return self.visible_rules + self.hidden_rules


def calculate_experience(stats: PlayerStats) -> int:
    """Rides count once, completed shifts count ten times."""
    return stats.total_rides_completed + stats.total_shifts_completed * 10


def difficulty_for(experience: int) -> int:
    """Difficulty level 0-4 for an experience value."""
    return max(0, min(MAX_DIFFICULTY, experience // 10))


def find_conflicts(rules: list[Rule]) -> list[RuleConflict]:
    """
    Conflicts among a rule selection.

    Only rules that declare conflicts_with are scanned, so a pair yields
    a single record unless both sides declare it.
    """
    by_id = {r.id: r for r in rules}
    conflicts = []
    for rule in rules:
        for target_id in rule.conflicts_with:
            target = by_id.get(target_id)
            if target is None:
                continue
            conflicts.append(RuleConflict(
                rule_id=rule.id,
                conflicting_rule_id=target.id,
                description=f'"{rule.title}" directly conflicts with "{target.title}"',
            ))
    return conflicts


def generate_shift_rules(
    catalog: GameCatalog,
    experience: int,
    rng: RandomSource,
) -> RuleSet:
    """
    Draw the rules for a new shift.

    Empty pools simply contribute nothing.
    """
    difficulty = difficulty_for(experience)
    selected: list[Rule] = []

    basic = catalog.rules_of_kind(RuleKind.BASIC)
    selected.extend(sample(rng, basic, randint(rng, 2, 3)))

    if difficulty >= 1:
        conditional = catalog.rules_of_kind(RuleKind.CONDITIONAL)
        selected.extend(sample(rng, conditional, randint(rng, 1, 2)))

    if difficulty >= 2:
        conflicting = catalog.rules_of_kind(RuleKind.CONFLICTING)
        if conflicting:
            candidate = choice(rng, conflicting)
            present = {r.id for r in selected}
            if any(target in present for target in candidate.conflicts_with):
                selected.append(candidate)

    if difficulty >= 3:
        hidden = catalog.rules_of_kind(RuleKind.HIDDEN)
        selected.extend(sample(rng, hidden, randint(rng, 1, 2)))

    return RuleSet(
        visible_rules=[r.id for r in selected if r.visible],
        hidden_rules=[r.id for r in selected if not r.visible],
        conflicts=find_conflicts(selected),
        difficulty_level=difficulty,
    )
