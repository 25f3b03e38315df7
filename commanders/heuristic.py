"""
Heuristic commander driven by faction personality weights.

Every phase the commander scores its options with the faction traits
(aggression, expansion, diplomacy, risk tolerance, economy) and issues the
best one through the ordinary action API.
"""

import logging
from typing import Iterator, Optional

from sphere.actions import (
    ActionResult, AdvancePhase, InitiateAttack, MoveUnit,
    PerformDiplomaticAction, ResolveCombat, SelectHex, StartBuilding, StartTraining,
)
from sphere.catalog import BuildingType, GameCatalog, Relation, UnitType
from sphere.fog_of_war import FogOfWar
from sphere.hexmath import Hex, hex_distance, hex_neighbors
from sphere.map import HexCell
from sphere.rules import (
    building_cost, building_issues, can_attack, can_train_at,
    diplomacy_issues, training_issues,
)
from sphere.state import Phase, WorldState
from sphere.units import Unit

from .base import Commander, CommanderConfig

logger = logging.getLogger(__name__)

RESOURCE_WEIGHTS = {"gold": 2.0, "iron": 1.5, "grain": 1.0, "influence": 3.0}


class HeuristicCommander(Commander):
    """Trait-weighted scoring commander."""

    def __init__(self, config: CommanderConfig, catalog: GameCatalog):
        super().__init__(config)
        self.catalog = catalog

    @classmethod
    def create_default(cls, catalog: GameCatalog, faction: str) -> "HeuristicCommander":
        """Create a commander with the faction's own traits."""
        return cls(CommanderConfig.from_faction(catalog.faction(faction)), catalog)

    def take_turn(self, manager) -> Iterator[ActionResult]:
        state = manager.state
        if state.game_over or state.acting_faction != self.faction:
            return
        self.turn_count += 1
        turn = state.turn

        while True:
            state = manager.state
            if state.game_over or state.acting_faction != self.faction or state.turn != turn:
                return

            if state.phase == Phase.PRODUCTION:
                yield from self._production(manager)
            elif state.phase == Phase.DIPLOMACY:
                yield from self._diplomacy(manager)
            elif state.phase == Phase.MOVEMENT:
                yield from self._movement(manager)
            elif state.phase == Phase.COMBAT:
                yield from self._combat(manager)

            yield self.issue(manager, AdvancePhase())

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def hex_value(self, state: WorldState, cell: HexCell) -> float:
        """How much a hex is worth holding."""
        yields = cell.resources
        value = yields.get("gold", 0) * 2 + yields.get("iron", 0) * 1.5 + yields.get("grain", 0)
        if cell.is_capital:
            value += 50
        value += (state.hex_map.radius - hex_distance(cell.coords, (0, 0))) * 2
        value += self.catalog.terrain_info(cell.terrain).defense * 10
        value += 15 * len(cell.buildings)
        value += 3 * sum(1 for n in state.hex_map.get_neighbors(cell.q, cell.r) if n.owner == self.faction)
        return value

    def building_score(self, building: BuildingType, cost: dict[str, int]) -> float:
        cfg = self.config
        output = sum(RESOURCE_WEIGHTS[k] * v for k, v in building.production.items())
        score = output * cfg.economy * 10
        military = building.defense_bonus * 100 + building.train_time_reduction * 100 + building.sight_bonus * 10
        score += military * cfg.aggression
        score -= sum(cost.values()) * (1 - cfg.economy) / 100
        return score

    def unit_score(self, unit_type: UnitType) -> float:
        cfg = self.config
        power = unit_type.attack + unit_type.defense
        efficiency = power / max(1, sum(unit_type.cost.values())) * 100
        return (
            power * cfg.aggression
            + unit_type.movement * cfg.expansion * 3
            + efficiency * cfg.economy
            - unit_type.train_time * 2
        )

    def position_score(self, state: WorldState, unit: Unit, target: Hex) -> float:
        """Desirability of ending this turn's move on `target`."""
        cfg = self.config
        cell = state.hex_map.get_cell(*target)
        score = 0.0

        if cell.owner != self.faction:
            score += self.hex_value(state, cell) * cfg.expansion

        for neighbor in hex_neighbors(*target):
            other = state.unit_at(*neighbor)
            if other is None or not can_attack(state, unit, other):
                continue
            if state.hex_map.get_cell(*neighbor).is_visible_to(self.faction):
                score += cfg.aggression * 20

        nearest = FogOfWar.nearest_visible_enemy(state, self.faction, target)
        if nearest is not None:
            score += cfg.aggression * max(0, 4 - nearest) * 3

        score += self.catalog.terrain_info(cell.terrain).defense * 10 * (1 - cfg.risk_tolerance)

        capital = state.hex_map.get_capital(self.faction)
        if capital is not None:
            score += (5 - hex_distance(target, capital.coords)) * (1 - cfg.aggression)

        score -= hex_distance(unit.coords, target)
        return score

    def military_strength(self, state: WorldState, faction: str) -> float:
        total = 0.0
        for unit in state.units.get_units_by_faction(faction):
            unit_type = self.catalog.unit_type(unit.unit_type)
            total += (unit_type.attack + unit_type.defense) * unit.health / 100
        return total

    def borders(self, state: WorldState, other: str) -> bool:
        mine = [c.coords for c in state.hex_map.get_cells_by_owner(self.faction)]
        theirs = [c.coords for c in state.hex_map.get_cells_by_owner(other)]
        return any(hex_distance(a, b) <= 2 for a in mine for b in theirs)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _affordable_with_reserve(self, state: WorldState, cost: dict[str, int]) -> bool:
        return state.resources[self.faction].gold - cost.get("gold", 0) >= self.config.gold_reserve

    def _production(self, manager) -> Iterator[ActionResult]:
        state = manager.state
        owned = sorted(state.hex_map.get_cells_by_owner(self.faction), key=lambda c: c.coords)

        best_build: Optional[tuple[float, HexCell, str]] = None
        for cell in owned:
            for building_id in self.catalog.terrain_info(cell.terrain).can_build:
                if building_issues(state, self.catalog, cell.q, cell.r, building_id, self.faction):
                    continue
                cost = building_cost(self.catalog, building_id, self.faction)
                if not self._affordable_with_reserve(state, cost):
                    continue
                score = self.building_score(self.catalog.building(building_id), cost)
                if score > 0 and (best_build is None or score > best_build[0]):
                    best_build = (score, cell, building_id)

        if best_build is not None:
            _, cell, building_id = best_build
            yield self.issue(manager, StartBuilding(cell.q, cell.r, building_id, self.faction))

        state = manager.state
        army_cap = 4 + state.territory(self.faction) // 3
        queued = sum(1 for e in state.training_queue if e.owner == self.faction)
        if len(state.units.get_units_by_faction(self.faction)) + queued >= army_cap:
            return

        best_train: Optional[tuple[float, HexCell, str]] = None
        for cell in sorted(state.hex_map.get_cells_by_owner(self.faction), key=lambda c: c.coords):
            if not can_train_at(self.catalog, cell):
                continue
            for unit_type in self.catalog.units.values():
                if training_issues(state, self.catalog, cell.q, cell.r, unit_type.id, self.faction):
                    continue
                if not self._affordable_with_reserve(state, unit_type.cost):
                    continue
                score = self.unit_score(unit_type)
                if best_train is None or score > best_train[0]:
                    best_train = (score, cell, unit_type.id)

        if best_train is not None:
            _, cell, unit_type_id = best_train
            yield self.issue(manager, StartTraining(cell.q, cell.r, unit_type_id, self.faction))

    def _diplomacy(self, manager) -> Iterator[ActionResult]:
        state = manager.state
        cfg = self.config

        for target in sorted(state.living_factions):
            if target == self.faction:
                continue
            relation = state.get_relation(self.faction, target)

            if relation == Relation.WAR and cfg.diplomacy >= 0.5:
                key = "propose_ceasefire"
            elif relation in (Relation.HOSTILE, Relation.NEUTRAL) and cfg.diplomacy >= 0.6:
                key = "improve_relations"
            elif relation == Relation.CORDIAL and cfg.diplomacy >= 0.6:
                key = "propose_alliance"
            elif (relation == Relation.NEUTRAL and cfg.aggression >= 0.7
                  and self.borders(state, target)
                  and self.military_strength(state, self.faction)
                  > 1.2 * self.military_strength(state, target)):
                key = "declare_war"
            else:
                continue

            if key not in self.catalog.diplomatic_actions:
                continue
            if diplomacy_issues(state, self.catalog, self.faction, target, key):
                continue
            if not self._affordable_with_reserve(state, self.catalog.diplomatic_action(key).cost):
                continue
            yield self.issue(manager, PerformDiplomaticAction(target, key, self.faction))
            return

    def _select(self, manager, unit: Unit) -> Iterator[ActionResult]:
        """Select a unit's hex so its legal sets are freshly computed."""
        if manager.state.selection.hex == unit.coords:
            yield self.issue(manager, SelectHex(unit.q, unit.r))
        yield self.issue(manager, SelectHex(unit.q, unit.r))

    def _movement(self, manager) -> Iterator[ActionResult]:
        unit_ids = sorted(u.id for u in manager.state.units.get_units_by_faction(self.faction))
        for unit_id in unit_ids:
            unit = manager.state.units.get_unit(unit_id)
            if unit is None or unit.moved_this_turn:
                continue
            yield from self._select(manager, unit)

            state = manager.state
            moves = sorted(state.selection.legal_moves) if state.selection.unit_id == unit.id else []
            if not moves:
                continue

            stay = self.position_score(state, unit, unit.coords)
            best = max(moves, key=lambda h: self.position_score(state, unit, h))
            if self.position_score(state, unit, best) > stay:
                yield self.issue(manager, MoveUnit(unit.id, *best))

    def _combat(self, manager) -> Iterator[ActionResult]:
        cfg = self.config
        resolver = manager.resolver
        threshold = 20 * (1 - cfg.risk_tolerance)

        unit_ids = sorted(u.id for u in manager.state.units.get_units_by_faction(self.faction))
        for unit_id in unit_ids:
            unit = manager.state.units.get_unit(unit_id)
            if unit is None or unit.attacked_this_turn:
                continue
            yield from self._select(manager, unit)

            state = manager.state
            if state.selection.unit_id != unit.id:
                continue

            best: Optional[tuple[float, str, str]] = None
            for target_id in sorted(state.selection.legal_attacks):
                defender = state.units.get_unit(target_id)
                cell = state.hex_map.get_cell(defender.q, defender.r)
                attacker_doctrine = resolver.recommended_doctrine(unit, defender, cell.terrain, True)
                defender_doctrine = resolver.recommended_doctrine(defender, unit, cell.terrain, False)
                preview = resolver.preview_combat(
                    unit, defender, attacker_doctrine, defender_doctrine, cell.terrain, cell.buildings
                )

                score = preview.win_probability * 100 * cfg.risk_tolerance
                if preview.defender.destroyed:
                    score += 30 + self.hex_value(state, cell)
                if preview.attacker.destroyed:
                    score -= 40 * (1 - cfg.risk_tolerance)
                score += (100 - defender.health) * 0.3
                score += self.catalog.unit_type(defender.unit_type).cost.get("gold", 0) * 0.1
                score *= 0.5 + cfg.aggression

                if best is None or score > best[0]:
                    best = (score, target_id, attacker_doctrine)

            if best is None or best[0] < threshold:
                continue

            _, target_id, attacker_doctrine = best
            declared = self.issue(manager, InitiateAttack(unit.id, target_id, attacker_doctrine))
            yield declared
            if declared.ok:
                yield self.issue(manager, ResolveCombat(manager.roll_pending_combat()))
