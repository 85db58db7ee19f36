"""
Read-only game catalog.

Rules, passengers, locations and items are static content tables
shipped as JSON under nightshift/data. Systems look records up by id
(items by name); nothing mutates the catalog once it is loaded.
"""

import json
import logging
from importlib import resources
from pathlib import Path

from pydantic import BaseModel, Field, PrivateAttr

from .schema import ItemDefinition, Location, Passenger, Rule, RuleKind

logger = logging.getLogger(__name__)

RULES_FILE = "rules.json"
PASSENGERS_FILE = "passengers.json"
LOCATIONS_FILE = "locations.json"
ITEMS_FILE = "items.json"


class GameCatalog(BaseModel):
    """Static content for a game."""
    rules: list[Rule] = Field(default_factory=list)
    passengers: list[Passenger] = Field(default_factory=list)
    locations: list[Location] = Field(default_factory=list)
    items: list[ItemDefinition] = Field(default_factory=list)

    _rules_by_id: dict[int, Rule] = PrivateAttr(default_factory=dict)
    _passengers_by_id: dict[int, Passenger] = PrivateAttr(default_factory=dict)
    _locations_by_name: dict[str, Location] = PrivateAttr(default_factory=dict)
    _items_by_name: dict[str, ItemDefinition] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context) -> None:
        self._rules_by_id = {r.id: r for r in self.rules}
        self._passengers_by_id = {p.id: p for p in self.passengers}
        self._locations_by_name = {loc.name: loc for loc in self.locations}
        self._items_by_name = {i.name: i for i in self.items}

    def rule(self, rule_id: int) -> Rule | None:
        return self._rules_by_id.get(rule_id)

    def passenger(self, passenger_id: int | None) -> Passenger | None:
        if passenger_id is None:
            return None
        return self._passengers_by_id.get(passenger_id)

    def location(self, name: str) -> Location | None:
        return self._locations_by_name.get(name)

    def item(self, name: str) -> ItemDefinition:
        """Definition for an item; unlisted items are plain keepsakes."""
        return self._items_by_name.get(name) or ItemDefinition(name=name)

    def rules_of_kind(self, kind: RuleKind) -> list[Rule]:
        """Generator pool for a rule kind. Temporary rules are never pooled."""
        return [r for r in self.rules if r.kind == kind and not r.temporary]

    def rules_for(self, rule_ids: list[int]) -> list[Rule]:
        """Resolve ids to rules, skipping unknown ids."""
        return [r for r in (self.rule(i) for i in rule_ids) if r is not None]

    def location_risk(self, name: str, default: int = 1) -> int:
        loc = self.location(name)
        return loc.risk_level if loc else default

    @classmethod
    def from_dir(cls, data_dir: Path | str) -> "GameCatalog":
        """Load the content tables from a directory."""
        data_dir = Path(data_dir)
        return cls(
            rules=_read_table(data_dir / RULES_FILE),
            passengers=_read_table(data_dir / PASSENGERS_FILE),
            locations=_read_table(data_dir / LOCATIONS_FILE),
            items=_read_table(data_dir / ITEMS_FILE),
        )

    @classmethod
    def load_default(cls) -> "GameCatalog":
        """Load the content tables packaged with nightshift."""
        data = resources.files("nightshift") / "data"
        return cls(
            rules=json.loads((data / RULES_FILE).read_text(encoding="utf-8")),
            passengers=json.loads((data / PASSENGERS_FILE).read_text(encoding="utf-8")),
            locations=json.loads((data / LOCATIONS_FILE).read_text(encoding="utf-8")),
            items=json.loads((data / ITEMS_FILE).read_text(encoding="utf-8")),
        )


def _read_table(path: Path) -> list[dict]:
    if not path.exists():
        logger.warning("Catalog table %s missing, using an empty table", path)
        return []
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)
