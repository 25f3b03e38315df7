"""
World state for the Fractured Sphere.

One WorldState object holds everything a game needs: the map, the units,
resource pools, relations, production queues and the turn cursor. The
reducer is the only thing that mutates it, and it always works on a copy.
"""

import copy
import logging
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional

from .catalog import GameCatalog, Relation, RESOURCE_KINDS
from .hexmath import Hex, hex_neighbors
from .map import HexMap
from .units import Unit, UnitManager

logger = logging.getLogger(__name__)


class Phase(Enum):
    """Phases each faction steps through in order, every turn."""
    PRODUCTION = "production"
    DIPLOMACY = "diplomacy"
    MOVEMENT = "movement"
    COMBAT = "combat"


PHASES = [Phase.PRODUCTION, Phase.DIPLOMACY, Phase.MOVEMENT, Phase.COMBAT]


class InsufficientResources(ValueError):
    """A spend was attempted without enough in the pool."""


@dataclass
class Resources:
    """A faction's resource pool. Amounts never drop below zero."""
    gold: int = 0
    iron: int = 0
    grain: int = 0
    influence: int = 0

    def get(self, kind: str) -> int:
        return getattr(self, kind)

    def can_afford(self, cost: dict[str, int]) -> bool:
        return all(self.get(kind) >= amount for kind, amount in cost.items())

    def spend(self, cost: dict[str, int]):
        if not self.can_afford(cost):
            raise InsufficientResources(f"Cannot afford {cost} with {self.to_dict()}")
        for kind, amount in cost.items():
            setattr(self, kind, self.get(kind) - amount)

    def add(self, amounts: dict[str, int]):
        for kind, amount in amounts.items():
            setattr(self, kind, max(0, self.get(kind) + int(amount)))

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Resources":
        return cls(**{k: int(data.get(k, 0)) for k in RESOURCE_KINDS})


@dataclass
class QueueEntry:
    """A building or unit under construction on a hex."""
    kind: str  # "building" or "unit"
    q: int
    r: int
    type_id: str
    owner: str
    turns_remaining: int
    paid: dict[str, int] = field(default_factory=dict)

    @property
    def coords(self) -> Hex:
        return (self.q, self.r)

    def matches(self, q: int, r: int, type_id: str, owner: str) -> bool:
        return (self.q, self.r, self.type_id, self.owner) == (q, r, type_id, owner)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "QueueEntry":
        return cls(**data)


@dataclass
class Selection:
    """Transient UI selection; never saved."""
    hex: Optional[Hex] = None
    unit_id: Optional[str] = None
    legal_moves: set[Hex] = field(default_factory=set)
    legal_attacks: set[str] = field(default_factory=set)

    def clear(self):
        self.hex = None
        self.unit_id = None
        self.legal_moves = set()
        self.legal_attacks = set()

    def to_dict(self) -> dict:
        return {
            "hex": list(self.hex) if self.hex else None,
            "unit_id": self.unit_id,
            "legal_moves": sorted(list(h) for h in self.legal_moves),
            "legal_attacks": sorted(self.legal_attacks),
        }


@dataclass
class PendingCombat:
    """Snapshot of a declared attack awaiting resolution."""
    attacker: Unit
    defender: Unit
    terrain: str
    buildings: list[str]
    attacker_doctrine: str
    defender_doctrine: str

    def to_dict(self) -> dict:
        return {
            "attacker": self.attacker.to_dict(),
            "defender": self.defender.to_dict(),
            "terrain": self.terrain,
            "buildings": list(self.buildings),
            "attacker_doctrine": self.attacker_doctrine,
            "defender_doctrine": self.defender_doctrine,
        }


def relation_key(a: str, b: str) -> tuple[str, str]:
    return (a, b) if a <= b else (b, a)


@dataclass
class WorldState:
    """Complete game state."""
    hex_map: HexMap
    units: UnitManager
    resources: dict[str, Resources]
    relations: dict[tuple[str, str], Relation]
    turn_order: list[str]
    building_queue: list[QueueEntry] = field(default_factory=list)
    training_queue: list[QueueEntry] = field(default_factory=list)
    turn: int = 1
    phase_index: int = 0
    faction_index: int = 0
    player_faction: Optional[str] = None
    selection: Selection = field(default_factory=Selection)
    pending_combat: Optional[PendingCombat] = None
    game_over: bool = False
    winner: Optional[str] = None
    victory_type: Optional[str] = None
    eliminated: list[str] = field(default_factory=list)

    @property
    def phase(self) -> Phase:
        return PHASES[self.phase_index]

    @property
    def acting_faction(self) -> str:
        return self.turn_order[self.faction_index]

    @property
    def living_factions(self) -> list[str]:
        return [f for f in self.turn_order if f not in self.eliminated]

    def get_relation(self, a: str, b: str) -> Relation:
        if a == b:
            return Relation.ALLIED
        return self.relations.get(relation_key(a, b), Relation.NEUTRAL)

    def set_relation(self, a: str, b: str, relation: Relation):
        self.relations[relation_key(a, b)] = relation

    def territory(self, faction: str) -> int:
        return len(self.hex_map.get_cells_by_owner(faction))

    def unit_at(self, q: int, r: int) -> Optional[Unit]:
        return self.units.get_unit_at(q, r)

    def free_hexes_around(self, q: int, r: int) -> list[Hex]:
        """The hex itself, then its on-map neighbors, that hold no unit."""
        occupied = self.units.occupied()
        candidates = [(q, r)] + hex_neighbors(q, r)
        return [h for h in candidates if self.hex_map.in_bounds(*h) and h not in occupied]

    def copy(self) -> "WorldState":
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        """Save snapshot. Selection and pending combat are transient."""
        return {
            "map": self.hex_map.to_dict(),
            "units": self.units.to_dict(),
            "resources": {f: res.to_dict() for f, res in self.resources.items()},
            "relations": [
                {"a": a, "b": b, "relation": rel.value}
                for (a, b), rel in sorted(self.relations.items())
            ],
            "building_queue": [e.to_dict() for e in self.building_queue],
            "training_queue": [e.to_dict() for e in self.training_queue],
            "turn": self.turn,
            "phase_index": self.phase_index,
            "faction_index": self.faction_index,
            "turn_order": list(self.turn_order),
            "player_faction": self.player_faction,
            "game_over": self.game_over,
            "winner": self.winner,
            "victory_type": self.victory_type,
            "eliminated": list(self.eliminated),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WorldState":
        return cls(
            hex_map=HexMap.from_dict(data["map"]),
            units=UnitManager.from_dict(data["units"]),
            resources={f: Resources.from_dict(r) for f, r in data["resources"].items()},
            relations={
                relation_key(entry["a"], entry["b"]): Relation(entry["relation"])
                for entry in data.get("relations", [])
            },
            turn_order=list(data["turn_order"]),
            building_queue=[QueueEntry.from_dict(e) for e in data.get("building_queue", [])],
            training_queue=[QueueEntry.from_dict(e) for e in data.get("training_queue", [])],
            turn=data.get("turn", 1),
            phase_index=data.get("phase_index", 0),
            faction_index=data.get("faction_index", 0),
            player_faction=data.get("player_faction"),
            game_over=data.get("game_over", False),
            winner=data.get("winner"),
            victory_type=data.get("victory_type"),
            eliminated=list(data.get("eliminated", [])),
        )


def new_game(
    catalog: GameCatalog,
    player_faction: Optional[str] = None,
    seed: Optional[int] = None,
    radius: Optional[int] = None,
) -> WorldState:
    """
    Build the opening position.

    Every faction gets the starting resource pool, its starting units on
    and around its capital, and neutral relations with everyone else.
    Visibility is left to the caller's fog refresh beyond the capital
    reveal done by the map generator.
    """
    if player_faction is not None:
        catalog.faction(player_faction)

    hex_map = HexMap.generate(catalog, radius=radius, seed=seed)
    units = UnitManager()
    turn_order = catalog.faction_ids

    state = WorldState(
        hex_map=hex_map,
        units=units,
        resources={f: Resources.from_dict(catalog.starting_resources) for f in turn_order},
        relations={},
        turn_order=turn_order,
        player_faction=player_faction,
    )

    for i, a in enumerate(turn_order):
        for b in turn_order[i + 1:]:
            state.set_relation(a, b, Relation.NEUTRAL)

    for faction_id in turn_order:
        capital = hex_map.get_capital(faction_id)
        for unit_type in catalog.faction(faction_id).starting_units:
            free = state.free_hexes_around(capital.q, capital.r)
            if not free:
                logger.warning(f"No room to place starting {unit_type} for {faction_id}")
                continue
            units.spawn(catalog, unit_type, faction_id, *free[0])

    logger.info(
        f"New game: {len(hex_map.cells)} hexes, {len(units)} units, "
        f"player={player_faction or 'none'}"
    )
    return state
