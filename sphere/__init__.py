"""
Simulation engine for the Fractured Sphere, a four-faction hex strategy game.

Core modules:
- hexmath: Axial hex geometry
- catalog: Static game data from data/schema/*.yaml
- map: Hex grid generation
- units: Unit state management
- combat: Doctrine-based combat resolution
- state: The single world state
- rules: Shared move/attack/production legality
- reducer: Transactional action dispatch
- upkeep: End-of-turn processing
- fog_of_war: Visibility
- turn: Turn sequencing and the engine facade
"""

from .catalog import GameCatalog, CatalogError, Branch, Relation
from .hexmath import hex_distance, hex_neighbors, hex_id, parse_hex_id
from .map import HexMap, HexCell
from .units import UnitManager, Unit
from .combat import CombatResolver, CombatPreview, CombatResult, CombatOutcome
from .events import EventLog, EventType, GameEvent
from .state import WorldState, Resources, QueueEntry, Phase, InsufficientResources, new_game
from .rules import RejectReason
from .actions import ActionResult
from .fog_of_war import FogOfWar
from .reducer import ReducerContext, apply_action
from .turn import TurnManager

__all__ = [
    # Data
    "GameCatalog", "CatalogError", "Branch", "Relation",
    # Map
    "HexMap", "HexCell", "hex_distance", "hex_neighbors", "hex_id", "parse_hex_id",
    # Units
    "UnitManager", "Unit",
    # Combat
    "CombatResolver", "CombatPreview", "CombatResult", "CombatOutcome",
    # Events
    "EventLog", "EventType", "GameEvent",
    # State
    "WorldState", "Resources", "QueueEntry", "Phase", "InsufficientResources", "new_game",
    # Dispatch
    "RejectReason", "ActionResult", "ReducerContext", "apply_action",
    # Fog of War
    "FogOfWar",
    # Turn Management
    "TurnManager",
]
