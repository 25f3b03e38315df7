"""
Hex grid map for the Fractured Sphere.

Uses axial coordinates (q, r) with pointy-top hexes and the origin at the
center of a hexagonal map of a given radius. Terrain is drawn from a seeded
weighted table so that a (seed, radius) pair always reproduces the same map.
"""

import random
import logging
from dataclasses import dataclass, field
from typing import Optional

from .catalog import GameCatalog
from .hexmath import Hex, hex_distance, hex_neighbors, hex_scale, hex_spiral, hex_id

logger = logging.getLogger(__name__)


@dataclass
class HexCell:
    """Individual hex cell in the grid."""
    q: int  # axial coordinate
    r: int  # axial coordinate
    terrain: str
    owner: Optional[str] = None  # faction id, None when unclaimed
    is_capital: bool = False
    buildings: list[str] = field(default_factory=list)
    resources: dict[str, int] = field(default_factory=dict)  # gold / iron / grain yield
    visible: set[str] = field(default_factory=set)  # factions currently seeing the hex
    explored: set[str] = field(default_factory=set)  # factions that have ever seen it

    @property
    def coords(self) -> Hex:
        return (self.q, self.r)

    @property
    def id(self) -> str:
        return hex_id(self.q, self.r)

    def is_visible_to(self, faction: str) -> bool:
        return faction in self.visible

    def is_explored_by(self, faction: str) -> bool:
        return faction in self.explored

    def reveal(self, faction: str):
        self.visible.add(faction)
        self.explored.add(faction)

    def to_dict(self) -> dict:
        return {
            "q": self.q,
            "r": self.r,
            "terrain": self.terrain,
            "owner": self.owner,
            "is_capital": self.is_capital,
            "buildings": list(self.buildings),
            "resources": dict(self.resources),
            "visible": sorted(self.visible),
            "explored": sorted(self.explored),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HexCell":
        return cls(
            q=data["q"],
            r=data["r"],
            terrain=data["terrain"],
            owner=data.get("owner"),
            is_capital=data.get("is_capital", False),
            buildings=list(data.get("buildings", [])),
            resources=dict(data.get("resources", {})),
            visible=set(data.get("visible", [])),
            explored=set(data.get("explored", [])),
        )


class HexMap:
    """
    Hexagonal map of all cells within `radius` steps of the origin.

    Cells are created once and mutated in place for ownership, buildings
    and visibility; they are never removed.
    """

    def __init__(self, radius: int, seed: int = 0):
        self.radius = radius
        self.seed = seed
        self.cells: dict[Hex, HexCell] = {}
        self.blocking_terrain: set[str] = set()

    @classmethod
    def generate(
        cls,
        catalog: GameCatalog,
        radius: Optional[int] = None,
        seed: Optional[int] = None,
    ) -> "HexMap":
        """Build a fresh map with terrain, capitals and initial visibility."""
        radius = catalog.map_rules.radius if radius is None else radius
        seed = catalog.map_rules.seed if seed is None else seed
        if radius < 1:
            raise ValueError(f"Map radius must be at least 1, got {radius}")

        hex_map = cls(radius, seed)
        hex_map.blocking_terrain = {t.id for t in catalog.terrain.values() if t.blocks_sight}
        starts = cls.faction_starts(catalog, radius)
        capital_sites = {coords: faction for faction, coords in starts.items()}

        for q, r in hex_spiral((0, 0), radius):
            terrain = hex_map._select_terrain(catalog, q, r, capital_sites)
            info = catalog.terrain_info(terrain)
            cell = HexCell(q=q, r=r, terrain=terrain, resources=dict(info.yields))
            if (q, r) in capital_sites:
                cell.owner = capital_sites[(q, r)]
                cell.is_capital = True
            hex_map.cells[(q, r)] = cell

        # Capital and its neighbors start revealed for their own faction only
        for faction, coords in starts.items():
            hex_map.cells[coords].reveal(faction)
            for neighbor in hex_map.get_neighbors(*coords):
                neighbor.reveal(faction)

        logger.info(f"Generated map: radius={radius}, seed={seed}, {len(hex_map.cells)} hexes")
        return hex_map

    @staticmethod
    def faction_starts(catalog: GameCatalog, radius: int) -> dict[str, Hex]:
        """Capital coordinates per faction at the map edge."""
        return {
            faction.id: hex_scale(faction.start_direction, radius)
            for faction in catalog.factions.values()
        }

    def _select_terrain(
        self,
        catalog: GameCatalog,
        q: int,
        r: int,
        capital_sites: dict[Hex, str],
    ) -> str:
        """Weighted terrain draw keyed by (seed, q, r)."""
        rules = catalog.map_rules
        if (q, r) == (0, 0) or (q, r) in capital_sites:
            return rules.capital_terrain

        distance = hex_distance((q, r), (0, 0))
        edge_bias = distance / self.radius

        weights = {}
        for terrain, weight in rules.terrain_weights.items():
            if terrain == "mountain":
                weight *= 1 + edge_bias
            elif terrain == "anomaly":
                weight *= edge_bias
            elif terrain == "coastal" and distance < 2:
                weight *= 0.3
            weights[terrain] = weight

        rng = random.Random(f"{self.seed}:{q}:{r}")
        roll = rng.random() * sum(weights.values())
        cumulative = 0.0
        for terrain, weight in weights.items():
            cumulative += weight
            if roll < cumulative:
                return terrain
        return next(iter(weights))

    def get_cell(self, q: int, r: int) -> Optional[HexCell]:
        """Get hex cell at axial coordinates."""
        return self.cells.get((q, r))

    def in_bounds(self, q: int, r: int) -> bool:
        return (q, r) in self.cells

    def get_neighbors(self, q: int, r: int) -> list[HexCell]:
        """Get on-map neighboring cells."""
        return [self.cells[n] for n in hex_neighbors(q, r) if n in self.cells]

    def hex_distance(self, q1: int, r1: int, q2: int, r2: int) -> int:
        return hex_distance((q1, r1), (q2, r2))

    def get_cells_in_radius(self, q: int, r: int, radius: int) -> list[HexCell]:
        """Get all cells within radius of a center hex."""
        return [
            cell for coords, cell in self.cells.items()
            if hex_distance(coords, (q, r)) <= radius
        ]

    def get_cells_by_owner(self, owner: Optional[str]) -> list[HexCell]:
        return [cell for cell in self.cells.values() if cell.owner == owner]

    def get_capital(self, faction: str) -> Optional[HexCell]:
        """The capital hex a faction currently holds, if any."""
        for cell in self.cells.values():
            if cell.is_capital and cell.owner == faction:
                return cell
        return None

    def capitals(self) -> list[HexCell]:
        return [cell for cell in self.cells.values() if cell.is_capital]

    def blockers(self) -> set[Hex]:
        """Coordinates of sight-blocking terrain."""
        return {c for c, cell in self.cells.items() if cell.terrain in self.blocking_terrain}

    def get_stats(self) -> dict:
        """Get map statistics."""
        terrain_counts: dict[str, int] = {}
        owner_counts: dict[str, int] = {}
        for cell in self.cells.values():
            terrain_counts[cell.terrain] = terrain_counts.get(cell.terrain, 0) + 1
            key = cell.owner or "unclaimed"
            owner_counts[key] = owner_counts.get(key, 0) + 1

        return {
            "total_cells": len(self.cells),
            "radius": self.radius,
            "seed": self.seed,
            "terrain_distribution": terrain_counts,
            "control": owner_counts,
        }

    def to_dict(self) -> dict:
        return {
            "radius": self.radius,
            "seed": self.seed,
            "blocking_terrain": sorted(self.blocking_terrain),
            "cells": [cell.to_dict() for cell in self.cells.values()],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HexMap":
        hex_map = cls(data["radius"], data.get("seed", 0))
        hex_map.blocking_terrain = set(data.get("blocking_terrain", []))
        for raw in data["cells"]:
            cell = HexCell.from_dict(raw)
            hex_map.cells[cell.coords] = cell
        return hex_map
