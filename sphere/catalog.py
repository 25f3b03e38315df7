"""
Static game data catalog for the Fractured Sphere.

Loads terrain, building, unit, doctrine, faction and rule definitions from
the YAML schema files under data/schema/ once, validates every cross
reference, and exposes read-only lookups. Unknown ids are configuration
errors and raise CatalogError instead of falling back to defaults.
"""

import os
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_DATA_PATH = Path(__file__).resolve().parent.parent / "data"

RESOURCE_KINDS = ("gold", "iron", "grain", "influence")

SCHEMA_FILES = (
    "terrain.yaml",
    "buildings.yaml",
    "units.yaml",
    "doctrines.yaml",
    "factions.yaml",
    "rules.yaml",
)


class CatalogError(ValueError):
    """Static game data is missing, malformed or inconsistent."""


class Branch(Enum):
    GROUND = "ground"
    AIR = "air"
    ARMOR = "armor"


class Relation(Enum):
    """Diplomatic standing between two factions, worst first."""
    WAR = "war"
    HOSTILE = "hostile"
    NEUTRAL = "neutral"
    CORDIAL = "cordial"
    ALLIED = "allied"

    @property
    def rank(self) -> int:
        return RELATION_ORDER.index(self)

    def step_up(self) -> "Relation":
        return RELATION_ORDER[min(self.rank + 1, len(RELATION_ORDER) - 1)]

    def step_down(self) -> "Relation":
        return RELATION_ORDER[max(self.rank - 1, 0)]


RELATION_ORDER = [
    Relation.WAR,
    Relation.HOSTILE,
    Relation.NEUTRAL,
    Relation.CORDIAL,
    Relation.ALLIED,
]


@dataclass(frozen=True)
class TerrainInfo:
    """Terrain type properties loaded from schema."""
    id: str
    name: str
    movement_cost: float
    defense: float  # defender modifier, 0.3 = +30%
    can_build: tuple[str, ...]
    yields: dict[str, int]  # gold / iron / grain
    branch_defense: dict[str, float] = field(default_factory=dict)
    blocks_sight: bool = False
    color: str = "#333333"
    description: str = ""


@dataclass(frozen=True)
class BuildingType:
    id: str
    name: str
    cost: dict[str, int]
    build_time: int
    production: dict[str, int]
    maintenance: dict[str, int]
    max_per_hex: int = 1
    requires_terrain: Optional[str] = None
    defense_bonus: float = 0.0
    train_time_reduction: float = 0.0
    sight_bonus: int = 0
    description: str = ""


@dataclass(frozen=True)
class UnitType:
    id: str
    name: str
    branch: Branch
    cost: dict[str, int]
    upkeep: dict[str, int]
    train_time: int
    attack: float
    defense: float
    movement: int
    sight: int
    range: int = 1
    fire_after_move: bool = True


@dataclass(frozen=True)
class VeterancyTier:
    id: str
    multiplier: float
    threshold: int


@dataclass(frozen=True)
class Doctrine:
    id: str
    name: str
    attack: float
    defense: float
    casualty: float  # scales damage received by the side using it
    strong_against: tuple[str, ...]
    weak_against: tuple[str, ...]
    first_strike: bool = False
    description: str = ""


@dataclass(frozen=True)
class FactionTraits:
    """AI personality weights, all on a 0-1 scale."""
    aggression: float
    expansion: float
    diplomacy: float
    risk_tolerance: float
    economy: float


@dataclass(frozen=True)
class FactionBonuses:
    attack_bonus: float = 0.0
    defense_bonus: float = 0.0
    movement_bonus: int = 0
    production_bonus: float = 0.0
    supply_bonus: float = 0.0
    building_cost_reduction: float = 0.0
    scavenge_bonus: float = 0.0
    territory_income_bonus: float = 0.0


@dataclass(frozen=True)
class FactionInfo:
    id: str
    name: str
    color: str
    emblem: str
    description: str
    lore: str
    traits: FactionTraits
    bonuses: FactionBonuses
    start_direction: tuple[int, int]
    starting_units: tuple[str, ...]


@dataclass(frozen=True)
class DiplomaticActionInfo:
    id: str
    name: str
    cost: dict[str, int]
    min_relation: Relation
    max_relation: Relation
    success_chance: float
    result: Optional[Relation]  # None means one step up the ladder


@dataclass(frozen=True)
class Season:
    id: str
    name: str
    grain: float = 1.0
    gold: float = 1.0
    movement: float = 1.0
    attrition: float = 0.0


@dataclass(frozen=True)
class MapRules:
    radius: int
    seed: int
    hex_size: float
    capital_terrain: str
    terrain_weights: dict[str, float]


@dataclass(frozen=True)
class CombatRules:
    base_damage: float = 30.0
    doctrine_advantage: float = 0.2
    first_strike_bonus: float = 0.15
    retreat_threshold: int = 30
    xp_kill: int = 15
    xp_survive: int = 5


@dataclass(frozen=True)
class ProductionRules:
    refund_fraction: float = 0.5
    training_queue_cap: int = 3
    training_buildings: tuple[str, ...] = ("academy", "fortress")


@dataclass(frozen=True)
class VictoryRules:
    domination_territory: float = 0.75
    economic_gold: int = 1000
    economic_territory: float = 0.5
    elimination: bool = True


def default_data_path() -> Path:
    """Data directory, overridable with SPHERE_DATA_PATH."""
    env = os.environ.get("SPHERE_DATA_PATH")
    return Path(env) if env else DEFAULT_DATA_PATH


class GameCatalog:
    """
    Immutable reference data for one game.

    All tables are loaded from <data_path>/schema/*.yaml and validated as a
    whole; a catalog that constructs successfully has no dangling ids.
    """

    def __init__(self, data_path: Path | str | None = None):
        self.data_path = Path(data_path) if data_path else default_data_path()
        self.terrain: dict[str, TerrainInfo] = {}
        self.buildings: dict[str, BuildingType] = {}
        self.units: dict[str, UnitType] = {}
        self.veterancy: list[VeterancyTier] = []
        self.doctrines: dict[str, Doctrine] = {}
        self.factions: dict[str, FactionInfo] = {}
        self.diplomatic_actions: dict[str, DiplomaticActionInfo] = {}
        self.seasons: list[Season] = []
        self.turns_per_season = 5

        raw = {name: self._load_yaml(name) for name in SCHEMA_FILES}

        self._load_terrain(raw["terrain.yaml"])
        self._load_buildings(raw["buildings.yaml"])
        self._load_units(raw["units.yaml"])
        self._load_doctrines(raw["doctrines.yaml"])
        self._load_factions(raw["factions.yaml"])
        self._load_rules(raw["rules.yaml"])
        self._validate()

        logger.info(
            f"Loaded catalog from {self.data_path}: {len(self.terrain)} terrains, "
            f"{len(self.buildings)} buildings, {len(self.units)} unit types, "
            f"{len(self.doctrines)} doctrines, {len(self.factions)} factions"
        )

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load_yaml(self, name: str) -> dict:
        path = self.data_path / "schema" / name
        if not path.exists():
            raise CatalogError(f"Schema file not found: {path}")
        with open(path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise CatalogError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise CatalogError(f"{path} must contain a mapping at top level")
        return data

    @staticmethod
    def _require(mapping: dict, key: str, where: str):
        if key not in mapping:
            raise CatalogError(f"{where}: missing required field '{key}'")
        return mapping[key]

    @staticmethod
    def _amounts(raw: Optional[dict], where: str) -> dict[str, int]:
        amounts = {}
        for resource, amount in (raw or {}).items():
            if resource not in RESOURCE_KINDS:
                raise CatalogError(f"{where}: unknown resource '{resource}'")
            if amount < 0:
                raise CatalogError(f"{where}: negative amount for '{resource}'")
            amounts[resource] = int(amount)
        return amounts

    def _load_terrain(self, data: dict):
        for terrain_id, info in self._require(data, "terrain_types", "terrain.yaml").items():
            where = f"terrain '{terrain_id}'"
            self.terrain[terrain_id] = TerrainInfo(
                id=terrain_id,
                name=info.get("name", terrain_id),
                movement_cost=float(self._require(info, "movement_cost", where)),
                defense=float(info.get("defense", 0.0)),
                can_build=tuple(info.get("can_build", [])),
                yields={k: int(info.get("yield", {}).get(k, 0)) for k in ("gold", "iron", "grain")},
                branch_defense={k: float(v) for k, v in info.get("branch_defense", {}).items()},
                blocks_sight=bool(info.get("blocks_sight", False)),
                color=info.get("color", "#333333"),
                description=info.get("description", ""),
            )

    def _load_buildings(self, data: dict):
        for building_id, info in self._require(data, "buildings", "buildings.yaml").items():
            where = f"building '{building_id}'"
            effects = info.get("effects", {})
            self.buildings[building_id] = BuildingType(
                id=building_id,
                name=info.get("name", building_id),
                cost=self._amounts(self._require(info, "cost", where), where),
                build_time=int(self._require(info, "build_time", where)),
                production=self._amounts(info.get("production"), where),
                maintenance=self._amounts(info.get("maintenance"), where),
                max_per_hex=int(info.get("max_per_hex", 1)),
                requires_terrain=info.get("requires_terrain"),
                defense_bonus=float(effects.get("defense_bonus", 0.0)),
                train_time_reduction=float(effects.get("train_time_reduction", 0.0)),
                sight_bonus=int(effects.get("sight_bonus", 0)),
                description=info.get("description", ""),
            )

    def _load_units(self, data: dict):
        for tier in self._require(data, "veterancy", "units.yaml"):
            self.veterancy.append(VeterancyTier(
                id=tier["id"],
                multiplier=float(tier["multiplier"]),
                threshold=int(tier["threshold"]),
            ))
        self.veterancy.sort(key=lambda t: t.threshold)

        for unit_id, info in self._require(data, "unit_types", "units.yaml").items():
            where = f"unit type '{unit_id}'"
            stats = self._require(info, "stats", where)
            try:
                branch = Branch(self._require(info, "branch", where))
            except ValueError:
                raise CatalogError(f"{where}: unknown branch '{info['branch']}'") from None
            self.units[unit_id] = UnitType(
                id=unit_id,
                name=info.get("name", unit_id),
                branch=branch,
                cost=self._amounts(self._require(info, "cost", where), where),
                upkeep=self._amounts(info.get("upkeep"), where),
                train_time=int(self._require(info, "train_time", where)),
                attack=float(self._require(stats, "attack", where)),
                defense=float(self._require(stats, "defense", where)),
                movement=int(self._require(stats, "movement", where)),
                sight=int(stats.get("sight", 2)),
                range=int(stats.get("range", 1)),
                fire_after_move=bool(info.get("fire_after_move", True)),
            )

    def _load_doctrines(self, data: dict):
        for doctrine_id, info in self._require(data, "doctrines", "doctrines.yaml").items():
            self.doctrines[doctrine_id] = Doctrine(
                id=doctrine_id,
                name=info.get("name", doctrine_id),
                attack=float(info.get("attack", 0.0)),
                defense=float(info.get("defense", 0.0)),
                casualty=float(info.get("casualty", 0.0)),
                strong_against=tuple(info.get("strong_against", [])),
                weak_against=tuple(info.get("weak_against", [])),
                first_strike=bool(info.get("first_strike", False)),
                description=info.get("description", ""),
            )

    @staticmethod
    def _relation(value: str, where: str) -> Relation:
        try:
            return Relation(value)
        except ValueError:
            raise CatalogError(f"{where}: unknown relation '{value}'") from None

    def _load_factions(self, data: dict):
        ladder = self._require(data, "relations", "factions.yaml")
        if ladder != [r.value for r in RELATION_ORDER]:
            raise CatalogError(f"factions.yaml: relation ladder {ladder} does not match engine order")

        for faction_id, info in self._require(data, "factions", "factions.yaml").items():
            where = f"faction '{faction_id}'"
            traits = self._require(info, "traits", where)
            direction = self._require(info, "start_direction", where)
            self.factions[faction_id] = FactionInfo(
                id=faction_id,
                name=info.get("name", faction_id),
                color=info.get("color", "#888888"),
                emblem=info.get("emblem", ""),
                description=info.get("description", ""),
                lore=info.get("lore", ""),
                traits=FactionTraits(**{k: float(traits[k]) for k in (
                    "aggression", "expansion", "diplomacy", "risk_tolerance", "economy"
                )}),
                bonuses=FactionBonuses(**info.get("bonuses", {})),
                start_direction=(int(direction[0]), int(direction[1])),
                starting_units=tuple(info.get("starting_units", [])),
            )

        for action_id, info in self._require(data, "diplomatic_actions", "factions.yaml").items():
            where = f"diplomatic action '{action_id}'"
            result = self._require(info, "result", where)
            self.diplomatic_actions[action_id] = DiplomaticActionInfo(
                id=action_id,
                name=info.get("name", action_id),
                cost=self._amounts(info.get("cost"), where),
                min_relation=self._relation(self._require(info, "min_relation", where), where),
                max_relation=self._relation(info.get("max_relation", "allied"), where),
                success_chance=float(info.get("success_chance", 1.0)),
                result=None if result == "+1" else self._relation(result, where),
            )

    def _load_rules(self, data: dict):
        map_cfg = self._require(data, "map", "rules.yaml")
        self.map_rules = MapRules(
            radius=int(map_cfg.get("radius", 3)),
            seed=int(map_cfg.get("seed", 42)),
            hex_size=float(map_cfg.get("hex_size", 50)),
            capital_terrain=self._require(map_cfg, "capital_terrain", "rules.yaml map"),
            terrain_weights={k: float(v) for k, v in self._require(
                map_cfg, "terrain_weights", "rules.yaml map").items()},
        )
        self.starting_resources = self._amounts(
            self._require(data, "starting_resources", "rules.yaml"), "starting_resources"
        )
        self.combat_rules = CombatRules(**data.get("combat", {}))

        production = dict(data.get("production", {}))
        if "training_buildings" in production:
            production["training_buildings"] = tuple(production["training_buildings"])
        self.production_rules = ProductionRules(**production)

        seasons = self._require(data, "seasons", "rules.yaml")
        self.turns_per_season = int(seasons.get("turns_per_season", 5))
        for entry in seasons.get("order", []):
            self.seasons.append(Season(id=entry["id"], name=entry.get("name", entry["id"]),
                                       **entry.get("effects", {})))

        victory = data.get("victory", {})
        self.victory_rules = VictoryRules(
            domination_territory=float(victory.get("domination", {}).get("territory", 0.75)),
            economic_gold=int(victory.get("economic", {}).get("gold", 1000)),
            economic_territory=float(victory.get("economic", {}).get("territory", 0.5)),
            elimination="elimination" in victory,
        )

    def _validate(self):
        """Check every cross reference between tables."""
        for terrain in self.terrain.values():
            for building_id in terrain.can_build:
                if building_id not in self.buildings:
                    raise CatalogError(f"terrain '{terrain.id}' allows unknown building '{building_id}'")
            for branch in terrain.branch_defense:
                if branch not in {b.value for b in Branch}:
                    raise CatalogError(f"terrain '{terrain.id}' has modifier for unknown branch '{branch}'")

        for building in self.buildings.values():
            if building.requires_terrain and building.requires_terrain not in self.terrain:
                raise CatalogError(
                    f"building '{building.id}' requires unknown terrain '{building.requires_terrain}'"
                )

        for doctrine in self.doctrines.values():
            for other in doctrine.strong_against + doctrine.weak_against:
                if other not in self.doctrines:
                    raise CatalogError(f"doctrine '{doctrine.id}' references unknown doctrine '{other}'")
        for required in ("assault", "defensive", "attrition"):
            if required not in self.doctrines:
                raise CatalogError(f"base doctrine '{required}' is not defined")

        for faction in self.factions.values():
            for unit_id in faction.starting_units:
                if unit_id not in self.units:
                    raise CatalogError(f"faction '{faction.id}' starts with unknown unit '{unit_id}'")

        if not self.veterancy or self.veterancy[0].threshold != 0:
            raise CatalogError("veterancy tiers must start at threshold 0")

        if self.map_rules.capital_terrain not in self.terrain:
            raise CatalogError(f"capital terrain '{self.map_rules.capital_terrain}' is not defined")
        for terrain_id in self.map_rules.terrain_weights:
            if terrain_id not in self.terrain:
                raise CatalogError(f"terrain weight for unknown terrain '{terrain_id}'")
        if self.map_rules.radius < 1:
            raise CatalogError("map radius must be at least 1")

        for building_id in self.production_rules.training_buildings:
            if building_id not in self.buildings:
                raise CatalogError(f"training building '{building_id}' is not defined")

        if not self.seasons:
            raise CatalogError("at least one season must be defined")

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @staticmethod
    def _lookup(table: dict, key: str, kind: str):
        try:
            return table[key]
        except KeyError:
            raise CatalogError(f"Unknown {kind}: '{key}'") from None

    def terrain_info(self, terrain_id: str) -> TerrainInfo:
        return self._lookup(self.terrain, terrain_id, "terrain")

    def building(self, building_id: str) -> BuildingType:
        return self._lookup(self.buildings, building_id, "building")

    def unit_type(self, unit_id: str) -> UnitType:
        return self._lookup(self.units, unit_id, "unit type")

    def doctrine(self, doctrine_id: str) -> Doctrine:
        return self._lookup(self.doctrines, doctrine_id, "doctrine")

    def faction(self, faction_id: str) -> FactionInfo:
        return self._lookup(self.factions, faction_id, "faction")

    def diplomatic_action(self, action_id: str) -> DiplomaticActionInfo:
        return self._lookup(self.diplomatic_actions, action_id, "diplomatic action")

    @property
    def faction_ids(self) -> list[str]:
        return list(self.factions)

    def veterancy_for(self, experience: int) -> VeterancyTier:
        """Highest tier whose threshold the experience has reached."""
        tier = self.veterancy[0]
        for candidate in self.veterancy:
            if experience >= candidate.threshold:
                tier = candidate
        return tier

    def veterancy_multiplier(self, tier_id: str) -> float:
        for tier in self.veterancy:
            if tier.id == tier_id:
                return tier.multiplier
        raise CatalogError(f"Unknown veterancy tier: '{tier_id}'")

    def season_for_turn(self, turn: int) -> Season:
        index = ((max(turn, 1) - 1) // self.turns_per_season) % len(self.seasons)
        return self.seasons[index]

    def get_stats(self) -> dict:
        return {
            "terrain": len(self.terrain),
            "buildings": len(self.buildings),
            "unit_types": len(self.units),
            "doctrines": len(self.doctrines),
            "factions": len(self.factions),
        }
