"""
Inventory items.

Passengers leave things behind, and the catalog's item table says what
each thing does. Consumables change fuel, time or a passenger's
goodwill when used. Protective items absorb a broken rule. Cursed items
cost the driver once they have been held long enough, and some items
crumble with age.

Item time is shift time: possession is counted in elapsed shift
minutes. Everything here works on a shift draft in place.
"""

from dataclasses import dataclass
from datetime import datetime

from ..state.catalog import GameCatalog
from ..state.schema import (
    CurseType,
    HazardType,
    InventoryItem,
    ItemDefinition,
    ItemEffectType,
    ItemType,
    ShiftState,
)
from .environment import MAX_ACTIVE_HAZARDS, make_hazard
from .reputation import relationship_level

MAX_FUEL = 100
DETERIORATION_SPAN = 10            # Shift minutes per point of durability
CURSE_HAZARD_LOCATION = "Your cab"


@dataclass
class CurseHit:
    item: str
    penalty: CurseType
    amount: int


def create_item(
    catalog: GameCatalog,
    name: str,
    passenger_id: int,
    elapsed: int,
    acquired_at: datetime,
) -> InventoryItem:
    definition = catalog.item(name)
    return InventoryItem(
        name=name,
        source_passenger_id=passenger_id,
        acquired_at=acquired_at,
        acquired_minute=elapsed,
        uses_remaining=definition.uses if definition.type == ItemType.PROTECTIVE else None,
        durability=definition.durability,
    )


def find_item(state: ShiftState, name: str) -> InventoryItem | None:
    for item in state.inventory:
        if item.name == name:
            return item
    return None


def apply_item_effects(state: ShiftState, definition: ItemDefinition) -> dict[str, int]:
    """
    Apply an item's effects to the draft.

    Fuel is capped at a full tank and time at the shift's length. A
    reputation modifier counts as extra positive choices with the
    passenger in the cab, and does nothing without one.

    Returns:
        Net change per effect type
    """
    changes: dict[str, int] = {}
    for effect in definition.effects:
        if effect.type == ItemEffectType.FUEL_BONUS:
            before = state.fuel
            state.fuel = min(MAX_FUEL, state.fuel + effect.value)
            delta = state.fuel - before
        elif effect.type == ItemEffectType.FUEL_DRAIN:
            before = state.fuel
            state.fuel = max(0, state.fuel - effect.value)
            delta = state.fuel - before
        elif effect.type == ItemEffectType.TIME_BONUS:
            before = state.time_remaining
            state.time_remaining = min(state.initial_time, state.time_remaining + effect.value)
            delta = state.time_remaining - before
        elif effect.type == ItemEffectType.TIME_PENALTY:
            before = state.time_remaining
            state.time_remaining = max(0, state.time_remaining - effect.value)
            delta = state.time_remaining - before
        else:
            delta = _improve_reputation(state, effect.value)
        changes[effect.type.value] = changes.get(effect.type.value, 0) + delta
    return changes


def _improve_reputation(state: ShiftState, amount: int) -> int:
    if state.current_passenger_id is None:
        return 0
    record = state.reputation.get(state.current_passenger_id)
    if record is None:
        return 0
    record.positive_choices += amount
    record.relationship_level = relationship_level(record.positive_choices, record.interactions)
    return amount


def can_protect_against(item: InventoryItem, definition: ItemDefinition, rule_id: int) -> bool:
    """A charged protective item guards its listed rules, or every rule if it lists none."""
    if definition.type != ItemType.PROTECTIVE or not item.uses_remaining:
        return False
    return not definition.protects_against or rule_id in definition.protects_against


def find_protection(state: ShiftState, catalog: GameCatalog, rule_id: int) -> InventoryItem | None:
    for item in state.inventory:
        if can_protect_against(item, catalog.item(item.name), rule_id):
            return item
    return None


def use_protective_item(state: ShiftState, item: InventoryItem) -> bool:
    """Spend one charge. Returns True when the item is used up and gone."""
    item.uses_remaining = max(0, (item.uses_remaining or 0) - 1)
    if item.uses_remaining == 0:
        state.inventory.remove(item)
        return True
    return False


def apply_curses(state: ShiftState, catalog: GameCatalog, elapsed: int) -> list[CurseHit]:
    """
    Let every cursed item held long enough take its toll.

    Fuel drain and time acceleration bite each time this runs.
    Attracting danger adds a supernatural hazard around the cab while
    there is room for one.
    """
    hits: list[CurseHit] = []
    for item in state.inventory:
        curse = catalog.item(item.name).curse
        if curse is None or elapsed - item.acquired_minute < curse.triggers_after:
            continue

        if curse.penalty_type == CurseType.FUEL_DRAIN:
            amount = min(state.fuel, curse.penalty_value)
            state.fuel -= amount
        elif curse.penalty_type == CurseType.TIME_ACCELERATION:
            amount = min(state.time_remaining, curse.penalty_value)
            state.time_remaining -= amount
        else:
            if len(state.hazards) >= MAX_ACTIVE_HAZARDS:
                continue
            hazard = make_hazard(HazardType.SUPERNATURAL_EVENT, "minor", CURSE_HAZARD_LOCATION, elapsed)
            if any(h.id == hazard.id for h in state.hazards):
                continue
            state.hazards.append(hazard)
            amount = 1

        hits.append(CurseHit(item=item.name, penalty=curse.penalty_type, amount=amount))
    return hits


def process_deterioration(state: ShiftState, catalog: GameCatalog, elapsed: int) -> list[InventoryItem]:
    """Wear items down with time held. Returns the ones that crumbled away."""
    kept: list[InventoryItem] = []
    lost: list[InventoryItem] = []
    for item in state.inventory:
        durability = catalog.item(item.name).durability
        if durability is None:
            kept.append(item)
            continue
        held = max(0, elapsed - item.acquired_minute)
        item.durability = max(0, durability - held // DETERIORATION_SPAN)
        if item.durability > 0:
            kept.append(item)
        else:
            lost.append(item)
    state.inventory = kept
    return lost
