"""
Legality rules shared by the reducer and the commanders.

Nothing here mutates state. The reducer calls these before committing an
action, and the AI calls the very same functions to pick its moves, so a
commander can never do anything a human player could not.
"""

import heapq
import math
from enum import Enum
from typing import Optional

from .catalog import GameCatalog, Relation
from .hexmath import Hex, hex_distance, hex_neighbors
from .map import HexCell
from .state import WorldState
from .units import Unit


class RejectReason(Enum):
    """Why an action was refused. The state is untouched in every case."""
    GAME_OVER = "game_over"
    NOT_YOUR_TURN = "not_your_turn"
    WRONG_PHASE = "wrong_phase"
    OFF_MAP = "off_map"
    UNKNOWN_UNIT = "unknown_unit"
    UNKNOWN_TYPE = "unknown_type"
    UNKNOWN_FACTION = "unknown_faction"
    NOT_SELECTED = "not_selected"
    ILLEGAL_MOVE = "illegal_move"
    ILLEGAL_TARGET = "illegal_target"
    ILLEGAL_DOCTRINE = "illegal_doctrine"
    COMBAT_PENDING = "combat_pending"
    NO_PENDING_COMBAT = "no_pending_combat"
    RESULT_MISMATCH = "result_mismatch"
    NOT_OWNER = "not_owner"
    TERRAIN_FORBIDS = "terrain_forbids"
    BUILDING_LIMIT = "building_limit"
    ALREADY_QUEUED = "already_queued"
    NO_TRAINING_FACILITY = "no_training_facility"
    QUEUE_FULL = "queue_full"
    INSUFFICIENT_RESOURCES = "insufficient_resources"
    NO_QUEUE_ENTRY = "no_queue_entry"
    RELATION_FORBIDS = "relation_forbids"


def movement_budget(catalog: GameCatalog, unit: Unit) -> int:
    unit_type = catalog.unit_type(unit.unit_type)
    return unit_type.movement + catalog.faction(unit.faction).bonuses.movement_bonus


def step_cost(state: WorldState, catalog: GameCatalog, cell: HexCell) -> float:
    season = catalog.season_for_turn(state.turn)
    return catalog.terrain_info(cell.terrain).movement_cost * season.movement


def legal_moves(state: WorldState, catalog: GameCatalog, unit: Unit) -> set[Hex]:
    """
    Hexes the unit can end its move on this turn.

    Uniform-cost search over the movement budget. Units of other factions
    block outright; friendly units can be passed through but not stacked on.
    A unit can always take a single step, whatever the terrain costs.
    """
    if unit.moved_this_turn:
        return set()

    budget = movement_budget(catalog, unit)
    occupied = state.units.occupied()
    start = unit.coords

    best: dict[Hex, float] = {start: 0.0}
    frontier: list[tuple[float, Hex]] = [(0.0, start)]
    reachable: set[Hex] = set()

    while frontier:
        spent, current = heapq.heappop(frontier)
        if spent > best.get(current, math.inf):
            continue
        for neighbor in hex_neighbors(*current):
            cell = state.hex_map.get_cell(*neighbor)
            if cell is None:
                continue
            occupant = occupied.get(neighbor)
            if occupant is not None and occupant.faction != unit.faction:
                continue
            cost = spent + step_cost(state, catalog, cell)
            if cost > budget:
                if current == start and occupant is None:
                    reachable.add(neighbor)
                continue
            if cost >= best.get(neighbor, math.inf):
                continue
            best[neighbor] = cost
            heapq.heappush(frontier, (cost, neighbor))
            if occupant is None:
                reachable.add(neighbor)

    reachable.discard(start)
    return reachable


def can_attack(state: WorldState, attacker: Unit, defender: Unit) -> bool:
    """Faction-level permission: different sides that are not allied."""
    if attacker.faction == defender.faction:
        return False
    return state.get_relation(attacker.faction, defender.faction) != Relation.ALLIED


def legal_attacks(state: WorldState, catalog: GameCatalog, unit: Unit) -> set[str]:
    """Ids of enemy units this unit may attack right now."""
    if unit.attacked_this_turn:
        return set()
    unit_type = catalog.unit_type(unit.unit_type)
    if unit.moved_this_turn and not unit_type.fire_after_move:
        return set()

    targets = set()
    for other in state.units:
        if not can_attack(state, unit, other):
            continue
        if hex_distance(unit.coords, other.coords) > unit_type.range:
            continue
        cell = state.hex_map.get_cell(other.q, other.r)
        if cell is None or not cell.is_visible_to(unit.faction):
            continue
        targets.add(other.id)
    return targets


def building_cost(catalog: GameCatalog, building_id: str, faction: str) -> dict[str, int]:
    """Building cost after the faction's cost reduction, floored."""
    reduction = catalog.faction(faction).bonuses.building_cost_reduction
    return {
        kind: math.floor(amount * (1 - reduction))
        for kind, amount in catalog.building(building_id).cost.items()
    }


def building_issues(
    state: WorldState,
    catalog: GameCatalog,
    q: int,
    r: int,
    building_id: str,
    faction: str,
) -> Optional[RejectReason]:
    """First reason a building cannot be started here, or None."""
    if building_id not in catalog.buildings:
        return RejectReason.UNKNOWN_TYPE
    cell = state.hex_map.get_cell(q, r)
    if cell is None:
        return RejectReason.OFF_MAP
    if cell.owner != faction:
        return RejectReason.NOT_OWNER

    building = catalog.building(building_id)
    if building_id not in catalog.terrain_info(cell.terrain).can_build:
        return RejectReason.TERRAIN_FORBIDS
    if building.requires_terrain and cell.terrain != building.requires_terrain:
        return RejectReason.TERRAIN_FORBIDS
    if cell.buildings.count(building_id) >= building.max_per_hex:
        return RejectReason.BUILDING_LIMIT
    if any(e.matches(q, r, building_id, faction) for e in state.building_queue):
        return RejectReason.ALREADY_QUEUED
    if not state.resources[faction].can_afford(building_cost(catalog, building_id, faction)):
        return RejectReason.INSUFFICIENT_RESOURCES
    return None


def can_train_at(catalog: GameCatalog, cell: HexCell) -> bool:
    """Capitals and hexes with a training building can raise units."""
    if cell.is_capital:
        return True
    return any(b in catalog.production_rules.training_buildings for b in cell.buildings)


def training_issues(
    state: WorldState,
    catalog: GameCatalog,
    q: int,
    r: int,
    unit_type: str,
    faction: str,
) -> Optional[RejectReason]:
    """First reason a unit cannot be queued here, or None."""
    if unit_type not in catalog.units:
        return RejectReason.UNKNOWN_TYPE
    cell = state.hex_map.get_cell(q, r)
    if cell is None:
        return RejectReason.OFF_MAP
    if cell.owner != faction:
        return RejectReason.NOT_OWNER
    if not can_train_at(catalog, cell):
        return RejectReason.NO_TRAINING_FACILITY

    queued = sum(1 for e in state.training_queue if e.coords == (q, r) and e.owner == faction)
    if queued >= catalog.production_rules.training_queue_cap:
        return RejectReason.QUEUE_FULL
    if not state.resources[faction].can_afford(catalog.unit_type(unit_type).cost):
        return RejectReason.INSUFFICIENT_RESOURCES
    return None


def effective_train_time(catalog: GameCatalog, unit_type: str, cell: HexCell) -> int:
    """Base train time, shortened by the best training building on the hex."""
    base = catalog.unit_type(unit_type).train_time
    reduction = max(
        (catalog.building(b).train_time_reduction for b in cell.buildings),
        default=0.0,
    )
    if reduction <= 0:
        return base
    return max(1, math.ceil(base * (1 - reduction)))


def diplomacy_issues(
    state: WorldState,
    catalog: GameCatalog,
    faction: str,
    target: str,
    action_key: str,
) -> Optional[RejectReason]:
    """First reason a diplomatic action cannot be attempted, or None."""
    if action_key not in catalog.diplomatic_actions:
        return RejectReason.UNKNOWN_TYPE
    if target == faction or target not in state.living_factions:
        return RejectReason.UNKNOWN_FACTION

    info = catalog.diplomatic_action(action_key)
    rank = state.get_relation(faction, target).rank
    if not info.min_relation.rank <= rank <= info.max_relation.rank:
        return RejectReason.RELATION_FORBIDS
    if not state.resources[faction].can_afford(info.cost):
        return RejectReason.INSUFFICIENT_RESOURCES
    return None


def refund(paid: dict[str, int], fraction: float) -> dict[str, int]:
    return {kind: math.floor(amount * fraction) for kind, amount in paid.items()}
