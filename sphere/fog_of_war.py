"""
Fog of war for the Fractured Sphere.

Handles:
- Per-faction visible/explored hex tracking
- Territory and unit sight
- Fog-filtered views of the world for players and commanders

Explored is sticky; visible is rebuilt from scratch on every refresh.
"""

import logging
from typing import Iterable, Optional

from .catalog import GameCatalog
from .hexmath import Hex, field_of_view, hex_distance
from .state import WorldState

logger = logging.getLogger(__name__)


class FogOfWar:
    """
    Recomputes what each faction can see.

    With line_of_sight enabled, unit sight is traced with field_of_view
    against sight-blocking terrain; otherwise sight is a plain radius.
    """

    def __init__(self, line_of_sight: bool = False):
        self.line_of_sight = line_of_sight

    def refresh(
        self,
        state: WorldState,
        catalog: GameCatalog,
        factions: Optional[Iterable[str]] = None,
    ):
        """Rebuild visible sets and extend explored sets."""
        factions = list(factions) if factions is not None else list(state.turn_order)
        blockers = state.hex_map.blockers() if self.line_of_sight else set()

        for faction in factions:
            seen = self.compute_visible(state, catalog, faction, blockers)
            for cell in state.hex_map.cells.values():
                if cell.coords in seen:
                    cell.reveal(faction)
                else:
                    cell.visible.discard(faction)

    def compute_visible(
        self,
        state: WorldState,
        catalog: GameCatalog,
        faction: str,
        blockers: Optional[set[Hex]] = None,
    ) -> set[Hex]:
        hex_map = state.hex_map
        seen: set[Hex] = set()

        # Territory: each owned hex plus its neighbors; relays see further
        for cell in hex_map.get_cells_by_owner(faction):
            radius = 1 + sum(catalog.building(b).sight_bonus for b in cell.buildings)
            seen.update(c.coords for c in hex_map.get_cells_in_radius(cell.q, cell.r, radius))

        for unit in state.units.get_units_by_faction(faction):
            sight = catalog.unit_type(unit.unit_type).sight
            if self.line_of_sight:
                traced = field_of_view(unit.coords, sight, blockers or set())
                seen.update(h for h in traced if hex_map.in_bounds(*h))
            else:
                seen.update(c.coords for c in hex_map.get_cells_in_radius(unit.q, unit.r, sight))

        return seen

    def is_visible(self, state: WorldState, faction: str, q: int, r: int) -> bool:
        cell = state.hex_map.get_cell(q, r)
        return cell is not None and cell.is_visible_to(faction)

    def visible_state(self, state: WorldState, faction: str) -> dict:
        """Game state as visible to a faction."""
        visible = {
            "faction": faction,
            "resources": state.resources[faction].to_dict() if faction in state.resources else {},
            "own_units": [],
            "known_enemies": [],
            "hexes": [],
        }

        for unit in state.units:
            if unit.faction == faction:
                visible["own_units"].append(unit.to_dict())
            elif self.is_visible(state, faction, unit.q, unit.r):
                visible["known_enemies"].append({
                    "id": unit.id,
                    "unit_type": unit.unit_type,
                    "faction": unit.faction,
                    "q": unit.q,
                    "r": unit.r,
                    "health": unit.health,
                    "veterancy": unit.veterancy,
                })

        for cell in state.hex_map.cells.values():
            if not cell.is_explored_by(faction):
                continue
            in_view = cell.is_visible_to(faction)
            visible["hexes"].append({
                "q": cell.q,
                "r": cell.r,
                "terrain": cell.terrain,
                "visible": in_view,
                "owner": cell.owner if in_view else None,
                "is_capital": cell.is_capital,
                "buildings": list(cell.buildings) if in_view else [],
                "resources": dict(cell.resources),
            })

        return visible

    def get_intel_summary(self, state: WorldState, faction: str) -> dict:
        cells = state.hex_map.cells.values()
        return {
            "visible_hexes": sum(1 for c in cells if c.is_visible_to(faction)),
            "explored_hexes": sum(1 for c in cells if c.is_explored_by(faction)),
            "total_hexes": len(state.hex_map.cells),
            "enemies_in_view": sum(
                1 for u in state.units
                if u.faction != faction and self.is_visible(state, faction, u.q, u.r)
            ),
        }

    @staticmethod
    def nearest_visible_enemy(state: WorldState, faction: str, origin: Hex) -> Optional[int]:
        """Distance to the closest enemy unit the faction can currently see."""
        distances = [
            hex_distance(origin, u.coords)
            for u in state.units
            if u.faction != faction
            and state.hex_map.get_cell(u.q, u.r).is_visible_to(faction)
        ]
        return min(distances) if distances else None
