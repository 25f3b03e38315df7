"""
Combat resolution for the Fractured Sphere.

A single engagement pits one attacker against one defender. Each side
picks a doctrine; strengths are scaled by veterancy, health, doctrine,
faction bonuses and (for the defender) terrain and fortifications. A fixed
damage pool is split Lanchester-style between the two sides, then shaded by
the doctrines' casualty modifiers.

Casualty rule: a side's own doctrine casualty modifier scales the damage
that side receives, i.e. damage_taken * (1 + casualty).
"""

import random
import logging
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional

from .catalog import Branch, GameCatalog
from .units import Unit

logger = logging.getLogger(__name__)

BASE_DOCTRINES = ("assault", "defensive", "attrition")


class CombatOutcome(Enum):
    DECISIVE_VICTORY = "decisive_victory"
    VICTORY = "victory"
    MARGINAL = "marginal"
    STALEMATE = "stalemate"
    DEFEAT = "defeat"
    DECISIVE_DEFEAT = "decisive_defeat"


@dataclass
class CombatSide:
    """One side of an engagement, before or after variance."""
    unit_id: str
    unit_type: str
    faction: str
    doctrine: str
    health: int  # health going into the fight
    attack: float
    defense: float
    force: float
    damage: int
    new_health: int
    destroyed: bool
    xp_gain: int


@dataclass
class CombatPreview:
    """Deterministic expected outcome of an engagement."""
    attacker: CombatSide
    defender: CombatSide
    doctrine_advantage: float
    terrain: str
    buildings: list[str]
    win_probability: float  # 0.05 - 0.95, informational only
    first_strike_damage: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class CombatResult:
    """Outcome of a resolved engagement, ready to be applied to the world."""
    attacker: CombatSide
    defender: CombatSide
    doctrine_advantage: float
    terrain: str
    outcome: CombatOutcome
    hex_captured: bool
    defender_retreats: bool
    random_factor: float
    notes: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["outcome"] = self.outcome.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "CombatResult":
        return cls(
            attacker=CombatSide(**data["attacker"]),
            defender=CombatSide(**data["defender"]),
            doctrine_advantage=data["doctrine_advantage"],
            terrain=data["terrain"],
            outcome=CombatOutcome(data["outcome"]),
            hex_captured=data["hex_captured"],
            defender_retreats=data["defender_retreats"],
            random_factor=data["random_factor"],
            notes=list(data.get("notes", [])),
        )


class CombatResolver:
    """Previews and resolves engagements against the catalog's rules."""

    def __init__(
        self,
        catalog: GameCatalog,
        rng: Optional[random.Random] = None,
        rng_seed: Optional[int] = None,
    ):
        self.catalog = catalog
        self.rules = catalog.combat_rules
        self.rng = rng if rng is not None else random.Random(rng_seed)

    def effective_strength(
        self,
        unit: Unit,
        doctrine: str,
        terrain: str,
        buildings: list[str],
        is_attacker: bool,
    ) -> tuple[float, float]:
        """Attack and defense after every modifier, rounded to 0.1."""
        unit_type = self.catalog.unit_type(unit.unit_type)
        doc = self.catalog.doctrine(doctrine)
        bonuses = self.catalog.faction(unit.faction).bonuses

        scale = self.catalog.veterancy_multiplier(unit.veterancy) * (unit.health / 100)
        attack = unit_type.attack * scale * (1 + doc.attack)
        defense = unit_type.defense * scale * (1 + doc.defense)

        if is_attacker:
            attack *= 1 + bonuses.attack_bonus
        else:
            defense *= 1 + bonuses.defense_bonus
            terrain_info = self.catalog.terrain_info(terrain)
            defense *= 1 + terrain_info.defense
            defense *= 1 + terrain_info.branch_defense.get(unit_type.branch.value, 0.0)
            fortification = sum(self.catalog.building(b).defense_bonus for b in buildings)
            defense *= 1 + fortification

        return round(attack, 1), round(defense, 1)

    def doctrine_advantage(self, attacker_doctrine: str, defender_doctrine: str) -> float:
        """Rock-paper-scissors bonus for the attacker's doctrine."""
        doc = self.catalog.doctrine(attacker_doctrine)
        self.catalog.doctrine(defender_doctrine)
        if defender_doctrine in doc.strong_against:
            return self.rules.doctrine_advantage
        if defender_doctrine in doc.weak_against:
            return -self.rules.doctrine_advantage
        return 0.0

    def preview_combat(
        self,
        attacker: Unit,
        defender: Unit,
        attacker_doctrine: str,
        defender_doctrine: str,
        terrain: str,
        hex_buildings: Optional[list[str]] = None,
    ) -> CombatPreview:
        """Expected outcome with no randomness applied."""
        buildings = list(hex_buildings or [])
        att_attack, att_defense = self.effective_strength(
            attacker, attacker_doctrine, terrain, buildings, is_attacker=True
        )
        def_attack, def_defense = self.effective_strength(
            defender, defender_doctrine, terrain, buildings, is_attacker=False
        )

        advantage = self.doctrine_advantage(attacker_doctrine, defender_doctrine)
        attack_force = att_attack * (1 + advantage)
        defend_force = def_defense

        # Lanchester split: each side takes damage in proportion to the
        # opposing force.
        pool = self.rules.base_damage
        total = attack_force + defend_force
        if total > 0:
            attacker_damage = round(pool * defend_force / total)
            defender_damage = round(pool * attack_force / total)
        else:
            attacker_damage = defender_damage = round(pool / 2)

        att_doc = self.catalog.doctrine(attacker_doctrine)
        def_doc = self.catalog.doctrine(defender_doctrine)
        attacker_damage = max(0, round(attacker_damage * (1 + att_doc.casualty)))
        defender_damage = max(0, round(defender_damage * (1 + def_doc.casualty)))

        first_strike = 0
        if att_doc.first_strike:
            first_strike = round(defender_damage * self.rules.first_strike_bonus)
            defender_damage += first_strike

        if defend_force > 0:
            ratio = attack_force / defend_force
        else:
            ratio = float("inf") if attack_force > 0 else 1.0
        win_probability = min(0.95, max(0.05, 0.5 + (ratio - 1) * 0.25))

        attacker_side = self._side(attacker, attacker_doctrine, att_attack, att_defense,
                                   attack_force, attacker_damage)
        defender_side = self._side(defender, defender_doctrine, def_attack, def_defense,
                                   defend_force, defender_damage)
        self._award_experience(attacker_side, defender_side)

        return CombatPreview(
            attacker=attacker_side,
            defender=defender_side,
            doctrine_advantage=advantage,
            terrain=terrain,
            buildings=buildings,
            win_probability=round(win_probability, 3),
            first_strike_damage=first_strike,
        )

    def resolve_combat(
        self,
        preview: CombatPreview,
        random_factor: Optional[float] = None,
    ) -> CombatResult:
        """
        Apply ±20% variance to a preview and decide capture and retreat.

        A single draw r gives anti-correlated variance: the attacker takes
        0.8 + 0.4r of its expected damage, the defender 0.8 + 0.4(1 - r).
        """
        r = self.rng.random() if random_factor is None else random_factor
        r = min(max(r, 0.0), 1.0)

        attacker = self._with_damage(preview.attacker, round(preview.attacker.damage * (0.8 + 0.4 * r)))
        defender = self._with_damage(preview.defender, round(preview.defender.damage * (0.8 + 0.4 * (1 - r))))
        self._award_experience(attacker, defender)

        hex_captured = defender.destroyed and not attacker.destroyed
        retreats = (
            not defender.destroyed
            and defender.new_health < self.rules.retreat_threshold
            and r > 0.5
        )
        outcome = self.determine_result(attacker, defender)

        notes = []
        if defender.destroyed:
            notes.append(f"{defender.unit_id} destroyed")
        if attacker.destroyed:
            notes.append(f"{attacker.unit_id} destroyed")
        if retreats:
            notes.append(f"{defender.unit_id} falls back")

        logger.debug(
            f"Combat {attacker.unit_id} vs {defender.unit_id}: "
            f"{attacker.damage}/{defender.damage} damage, {outcome.value}"
        )

        return CombatResult(
            attacker=attacker,
            defender=defender,
            doctrine_advantage=preview.doctrine_advantage,
            terrain=preview.terrain,
            outcome=outcome,
            hex_captured=hex_captured,
            defender_retreats=retreats,
            random_factor=r,
            notes=notes,
        )

    def determine_result(self, attacker: CombatSide, defender: CombatSide) -> CombatOutcome:
        """Label an engagement from the attacker's point of view."""
        if defender.destroyed and not attacker.destroyed:
            return CombatOutcome.DECISIVE_VICTORY
        if attacker.destroyed and not defender.destroyed:
            return CombatOutcome.DECISIVE_DEFEAT

        ratio = defender.damage / max(1, attacker.damage)
        if ratio >= 3.0:
            return CombatOutcome.DECISIVE_VICTORY
        elif ratio >= 1.5:
            return CombatOutcome.VICTORY
        elif ratio >= 1.1:
            return CombatOutcome.MARGINAL
        elif ratio >= 0.9:
            return CombatOutcome.STALEMATE
        elif ratio >= 0.67:
            return CombatOutcome.DEFEAT
        else:
            return CombatOutcome.DECISIVE_DEFEAT

    def available_doctrines(self, unit: Unit) -> list[str]:
        unit_type = self.catalog.unit_type(unit.unit_type)
        available = list(BASE_DOCTRINES)
        if unit_type.movement >= 3:
            available.append("flanking")
        if unit_type.movement >= 2:
            available.append("blitz")
        if unit_type.branch == Branch.ARMOR or unit_type.range > 1:
            available.append("siege")
        return [d for d in available if d in self.catalog.doctrines]

    def recommended_doctrine(
        self,
        unit: Unit,
        opponent: Unit,
        terrain: str,
        is_attacker: bool,
    ) -> str:
        """Pick an aggressive or cautious stance from stats and health."""
        available = self.available_doctrines(unit)
        own = self.catalog.unit_type(unit.unit_type)
        other = self.catalog.unit_type(opponent.unit_type)

        attack_advantage = own.attack / max(1.0, other.defense)
        health_advantage = unit.health / max(1, opponent.health)

        if is_attacker:
            if attack_advantage > 1.5 and health_advantage > 0.8:
                return "blitz" if "blitz" in available else "assault"
            if attack_advantage < 0.7:
                for doctrine in ("flanking", "siege", "attrition"):
                    if doctrine in available:
                        return doctrine
            return "assault"

        good_terrain = self.catalog.terrain_info(terrain).defense >= 0.2
        if good_terrain or health_advantage < 0.7:
            return "defensive"
        if attack_advantage > 1.2:
            return "assault"
        for doctrine in ("defensive", "attrition", "assault"):
            if doctrine in available:
                return doctrine
        return available[0]

    # ------------------------------------------------------------------

    @staticmethod
    def _side(
        unit: Unit,
        doctrine: str,
        attack: float,
        defense: float,
        force: float,
        damage: int,
    ) -> CombatSide:
        new_health = max(0, unit.health - damage)
        return CombatSide(
            unit_id=unit.id,
            unit_type=unit.unit_type,
            faction=unit.faction,
            doctrine=doctrine,
            health=unit.health,
            attack=attack,
            defense=defense,
            force=round(force, 1),
            damage=damage,
            new_health=new_health,
            destroyed=new_health <= 0,
            xp_gain=0,
        )

    @staticmethod
    def _with_damage(side: CombatSide, damage: int) -> CombatSide:
        damage = max(0, damage)
        new_health = max(0, side.health - damage)
        return CombatSide(**{
            **asdict(side),
            "damage": damage,
            "new_health": new_health,
            "destroyed": new_health <= 0,
        })

    def _award_experience(self, attacker: CombatSide, defender: CombatSide):
        for side, opponent in ((attacker, defender), (defender, attacker)):
            if side.destroyed:
                side.xp_gain = 0
            elif opponent.destroyed:
                side.xp_gain = self.rules.xp_kill
            else:
                side.xp_gain = self.rules.xp_survive
