"""
Turn sequencing for the Fractured Sphere.

Each living faction steps through production → diplomacy → movement →
combat in turn order; after the last faction the turn is closed out
(queues, income, fog, victory) and the next one begins.

TurnManager owns the single WorldState and serializes every change to it
through the reducer. Human players and commanders use the same methods.
"""

import json
import random
import logging
from pathlib import Path
from typing import Callable, Iterator, Optional

from .actions import (
    Action, ActionResult, AdvancePhase, CancelBuilding, CancelCombat,
    CancelTraining, EndTurn, InitiateAttack, MoveUnit, PerformDiplomaticAction,
    ResolveCombat, SelectHex, StartBuilding, StartTraining,
)
from .catalog import GameCatalog
from .combat import CombatResolver, CombatResult
from .events import EventLog, EventType, GameEvent
from .fog_of_war import FogOfWar
from .reducer import ReducerContext, apply_action
from .state import Phase, WorldState, new_game

logger = logging.getLogger(__name__)


class TurnManager:
    """Manages the world state, turn cursor and action dispatch."""

    def __init__(
        self,
        catalog: GameCatalog,
        rng_seed: Optional[int] = None,
        line_of_sight: bool = False,
    ):
        self.catalog = catalog
        self.rng = random.Random(rng_seed)
        self.resolver = CombatResolver(catalog, rng=self.rng)
        self.fog = FogOfWar(line_of_sight=line_of_sight)
        self.events = EventLog()
        self.state: Optional[WorldState] = None

        # AI commanders keyed by faction, created at game start
        self.commanders: dict = {}

        # Callbacks for presentation layers
        self.on_turn_start: Optional[Callable[[int], None]] = None
        self.on_phase_start: Optional[Callable[[Phase, str], None]] = None
        self.on_phase_end: Optional[Callable[[Phase, str], None]] = None
        self.on_turn_end: Optional[Callable[[int], None]] = None

    @property
    def context(self) -> ReducerContext:
        return ReducerContext(
            catalog=self.catalog,
            resolver=self.resolver,
            rng=self.rng,
            fog=self.fog,
        )

    def _require_state(self) -> WorldState:
        if self.state is None:
            raise RuntimeError("Game not started")
        return self.state

    def start_game(
        self,
        faction_id: Optional[str] = None,
        seed: Optional[int] = None,
        radius: Optional[int] = None,
    ) -> WorldState:
        """
        Start a new game.

        faction_id is the human player's faction; None makes every faction
        AI-controlled.
        """
        from commanders import HeuristicCommander

        self.state = new_game(self.catalog, faction_id, seed=seed, radius=radius)
        self.fog.refresh(self.state, self.catalog)
        self.events.clear()

        self.commanders = {
            faction: HeuristicCommander.create_default(self.catalog, faction)
            for faction in self.state.turn_order
            if faction != faction_id
        }

        season = self.catalog.season_for_turn(1)
        self.events.append(GameEvent(
            type=EventType.SYSTEM,
            turn=0,
            phase="setup",
            faction=faction_id,
            message=f"The Sphere fractures: {len(self.state.hex_map.cells)} sectors, "
                    f"{len(self.state.turn_order)} factions",
            data={"map": self.state.hex_map.get_stats()},
        ))
        self.events.append(GameEvent(
            type=EventType.TURN_START,
            turn=1,
            phase=self.state.phase.value,
            faction=self.state.acting_faction,
            message=f"Turn 1 begins, {season.name}",
            data={"season": season.id},
        ))
        if self.on_turn_start:
            self.on_turn_start(1)
        if self.on_phase_start:
            self.on_phase_start(self.state.phase, self.state.acting_faction)
        return self.state

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, action: Action) -> ActionResult:
        """Apply one action; the new state is committed only on success."""
        state = self._require_state()
        before = (state.turn, state.phase, state.acting_faction)

        result = apply_action(state, action, self.context)
        if not result.ok:
            return result

        self.state = result.state
        self.events.extend(result.events)

        after = (self.state.turn, self.state.phase, self.state.acting_faction)
        if after != before:
            if self.on_phase_end:
                self.on_phase_end(before[1], before[2])
            if after[0] != before[0]:
                if self.on_turn_end:
                    self.on_turn_end(before[0])
                if self.on_turn_start and not self.state.game_over:
                    self.on_turn_start(after[0])
            if self.on_phase_start and not self.state.game_over:
                self.on_phase_start(after[1], after[2])
        return result

    def select_hex(self, q: int, r: int) -> ActionResult:
        return self.dispatch(SelectHex(q, r))

    def move_unit(self, unit_id: str, q: int, r: int) -> ActionResult:
        return self.dispatch(MoveUnit(unit_id, q, r))

    def initiate_attack(
        self,
        attacker_id: str,
        defender_id: str,
        attacker_doctrine: Optional[str] = None,
        defender_doctrine: Optional[str] = None,
    ) -> ActionResult:
        return self.dispatch(InitiateAttack(attacker_id, defender_id, attacker_doctrine, defender_doctrine))

    def roll_pending_combat(self) -> Optional[CombatResult]:
        """Roll the declared combat without applying it."""
        pending = self._require_state().pending_combat
        if pending is None:
            return None
        preview = self.resolver.preview_combat(
            pending.attacker, pending.defender,
            pending.attacker_doctrine, pending.defender_doctrine,
            pending.terrain, pending.buildings,
        )
        return self.resolver.resolve_combat(preview)

    def resolve_combat(self, result: Optional[CombatResult] = None) -> ActionResult:
        """Resolve the pending combat, rolling it here when no result is supplied."""
        if result is None:
            result = self.roll_pending_combat()
        return self.dispatch(ResolveCombat(result))

    def cancel_combat(self) -> ActionResult:
        return self.dispatch(CancelCombat())

    def start_building(self, q: int, r: int, building_type: str, faction: str) -> ActionResult:
        return self.dispatch(StartBuilding(q, r, building_type, faction))

    def start_training(self, q: int, r: int, unit_type: str, faction: str) -> ActionResult:
        return self.dispatch(StartTraining(q, r, unit_type, faction))

    def cancel_building(self, q: int, r: int, building_type: str, faction: str) -> ActionResult:
        return self.dispatch(CancelBuilding(q, r, building_type, faction))

    def cancel_training(self, q: int, r: int, unit_type: str, faction: str) -> ActionResult:
        return self.dispatch(CancelTraining(q, r, unit_type, faction))

    def perform_diplomatic_action(
        self,
        target: str,
        action_key: str,
        faction: Optional[str] = None,
    ) -> ActionResult:
        return self.dispatch(PerformDiplomaticAction(target, action_key, faction))

    def advance_phase(self) -> ActionResult:
        return self.dispatch(AdvancePhase())

    def end_turn(self) -> ActionResult:
        return self.dispatch(EndTurn())

    # ------------------------------------------------------------------
    # AI
    # ------------------------------------------------------------------

    def is_ai_turn(self) -> bool:
        state = self._require_state()
        return not state.game_over and state.acting_faction in self.commanders

    def iter_ai_faction(self) -> Iterator[ActionResult]:
        """Yield each intent of the acting faction's commander as it is applied."""
        state = self._require_state()
        faction, turn = state.acting_faction, state.turn
        yield from self.commanders[faction].take_turn(self)

        # A commander that stalls still hands off
        if not self.state.game_over and (self.state.acting_faction, self.state.turn) == (faction, turn):
            logger.warning(f"Commander for {faction} did not finish its turn; ending it")
            yield self.end_turn()

    def play_ai_faction(self) -> list[ActionResult]:
        """Let the acting faction's commander play out its phases."""
        return list(self.iter_ai_faction())

    def run_ai(self, until_turn: Optional[int] = None) -> list[ActionResult]:
        """
        Play AI factions until a human faction is up or the game ends.

        With no human player this runs until victory or until the turn
        counter passes `until_turn`.
        """
        results = []
        while self.is_ai_turn():
            if until_turn is not None and self.state.turn > until_turn:
                break
            results.extend(self.play_ai_faction())
        return results

    # ------------------------------------------------------------------
    # Views and persistence
    # ------------------------------------------------------------------

    def get_game_state_for_faction(self, faction: str) -> dict:
        """Fog-filtered game state for a player or commander."""
        state = self._require_state()
        self.catalog.faction(faction)
        season = self.catalog.season_for_turn(state.turn)
        view = self.fog.visible_state(state, faction)
        view.update({
            "turn": state.turn,
            "phase": state.phase.value,
            "acting_faction": state.acting_faction,
            "season": season.id,
            "relations": {
                other: state.get_relation(faction, other).value
                for other in state.turn_order if other != faction
            },
            "building_queue": [e.to_dict() for e in state.building_queue if e.owner == faction],
            "training_queue": [e.to_dict() for e in state.training_queue if e.owner == faction],
            "intel_summary": self.fog.get_intel_summary(state, faction),
            "eliminated": list(state.eliminated),
            "game_over": state.game_over,
            "winner": state.winner,
            "victory_type": state.victory_type,
        })
        return view

    def save_game(self, filepath: Path | str):
        """Save game state to file."""
        state = self._require_state()
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(state.to_dict(), f, indent=2)
        logger.info(f"Game saved to {filepath}")

    def load_game(self, filepath: Path | str) -> WorldState:
        """Load game state from file."""
        from commanders import HeuristicCommander

        with open(filepath, encoding="utf-8") as f:
            self.state = WorldState.from_dict(json.load(f))
        self.commanders = {
            faction: HeuristicCommander.create_default(self.catalog, faction)
            for faction in self.state.turn_order
            if faction != self.state.player_faction
        }
        logger.info(f"Game loaded from {filepath}: turn {self.state.turn}")
        return self.state
