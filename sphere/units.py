"""
Unit state management for the Fractured Sphere.

Units carry only mutable state (position, health, experience, per-turn
flags); their stats come from the catalog's unit types.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .catalog import GameCatalog, UnitType
from .hexmath import Hex

logger = logging.getLogger(__name__)

MAX_HEALTH = 100


@dataclass
class Unit:
    """A single unit on the map."""
    id: str
    unit_type: str
    faction: str
    q: int
    r: int
    health: int = MAX_HEALTH  # 0-100, destroyed at 0
    experience: int = 0  # monotonic
    veterancy: str = "green"
    moved_this_turn: bool = False
    attacked_this_turn: bool = False

    @property
    def coords(self) -> Hex:
        return (self.q, self.r)

    @property
    def is_destroyed(self) -> bool:
        return self.health <= 0

    def gain_experience(self, amount: int, catalog: GameCatalog):
        """Add experience and promote through veterancy tiers."""
        if amount <= 0:
            return
        self.experience += amount
        tier = catalog.veterancy_for(self.experience)
        if tier.id != self.veterancy:
            logger.debug(f"{self.id} promoted to {tier.id} ({self.experience} xp)")
        self.veterancy = tier.id

    def stats(self, catalog: GameCatalog) -> UnitType:
        return catalog.unit_type(self.unit_type)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "unit_type": self.unit_type,
            "faction": self.faction,
            "q": self.q,
            "r": self.r,
            "health": self.health,
            "experience": self.experience,
            "veterancy": self.veterancy,
            "moved_this_turn": self.moved_this_turn,
            "attacked_this_turn": self.attacked_this_turn,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Unit":
        return cls(**data)


class UnitManager:
    """Owns every living unit, keyed by id."""

    def __init__(self):
        self.units: dict[str, Unit] = {}
        self.next_serial = 1

    def spawn(self, catalog: GameCatalog, unit_type: str, faction: str, q: int, r: int) -> Unit:
        """Create a fresh green unit. Ids are deterministic per game."""
        catalog.unit_type(unit_type)
        unit = Unit(
            id=f"{faction}-{unit_type}-{self.next_serial}",
            unit_type=unit_type,
            faction=faction,
            q=q,
            r=r,
            veterancy=catalog.veterancy[0].id,
        )
        self.next_serial += 1
        self.units[unit.id] = unit
        return unit

    def remove(self, unit_id: str) -> Optional[Unit]:
        return self.units.pop(unit_id, None)

    def get_unit(self, unit_id: str) -> Optional[Unit]:
        return self.units.get(unit_id)

    def get_unit_at(self, q: int, r: int) -> Optional[Unit]:
        """The unit occupying a hex; hexes never hold more than one."""
        for unit in self.units.values():
            if unit.q == q and unit.r == r:
                return unit
        return None

    def occupied(self) -> dict[Hex, Unit]:
        return {unit.coords: unit for unit in self.units.values()}

    def get_units_by_faction(self, faction: str) -> list[Unit]:
        return [u for u in self.units.values() if u.faction == faction]

    def reset_turn_flags(self):
        for unit in self.units.values():
            unit.moved_this_turn = False
            unit.attacked_this_turn = False

    def __iter__(self):
        return iter(list(self.units.values()))

    def __len__(self) -> int:
        return len(self.units)

    def get_stats(self) -> dict:
        by_faction: dict[str, int] = {}
        for unit in self.units.values():
            by_faction[unit.faction] = by_faction.get(unit.faction, 0) + 1
        return {"total_units": len(self.units), "by_faction": by_faction}

    def to_dict(self) -> dict:
        return {
            "next_serial": self.next_serial,
            "units": [unit.to_dict() for unit in self.units.values()],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "UnitManager":
        manager = cls()
        manager.next_serial = data.get("next_serial", 1)
        for raw in data.get("units", []):
            unit = Unit.from_dict(raw)
            manager.units[unit.id] = unit
        return manager
