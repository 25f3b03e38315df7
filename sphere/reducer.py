"""
The action reducer.

apply_action(state, action, ctx) validates an action against the current
phase and the rules, applies it to a deep copy of the state, and returns an
ActionResult. A rejected action returns the original state object untouched
with a RejectReason; nothing is ever half-applied.
"""

import logging
import random
from dataclasses import dataclass
from typing import Callable, Optional

from .actions import (
    Action, ActionResult, AdvancePhase, CancelBuilding, CancelCombat,
    CancelTraining, EndTurn, InitiateAttack, MoveUnit, PerformDiplomaticAction,
    ResolveCombat, SelectHex, StartBuilding, StartTraining,
)
from .catalog import GameCatalog, Relation
from .combat import CombatResolver, CombatResult
from .events import EventType, GameEvent
from .fog_of_war import FogOfWar
from .hexmath import hex_distance, hex_neighbors
from .rules import (
    RejectReason, building_cost, building_issues, diplomacy_issues,
    effective_train_time, legal_attacks, legal_moves, refund, training_issues,
)
from .state import PHASES, PendingCombat, Phase, QueueEntry, WorldState
from .units import Unit
from .upkeep import end_of_turn

logger = logging.getLogger(__name__)


@dataclass
class ReducerContext:
    """Collaborators the reducer needs but does not own."""
    catalog: GameCatalog
    resolver: CombatResolver
    rng: random.Random
    fog: FogOfWar


class ActionRejected(Exception):
    """Raised inside a handler to abandon the working copy."""

    def __init__(self, reason: RejectReason, message: str = ""):
        super().__init__(message or reason.value)
        self.reason = reason
        self.message = message or reason.value.replace("_", " ")


ALWAYS_ALLOWED = (SelectHex, AdvancePhase, EndTurn)

PHASE_ACTIONS: dict[Phase, tuple[type, ...]] = {
    Phase.PRODUCTION: (StartBuilding, StartTraining, CancelBuilding, CancelTraining),
    Phase.DIPLOMACY: (PerformDiplomaticAction,),
    Phase.MOVEMENT: (MoveUnit,),
    Phase.COMBAT: (InitiateAttack, ResolveCombat, CancelCombat),
}


def apply_action(state: WorldState, action: Action, ctx: ReducerContext) -> ActionResult:
    """Apply one action transactionally."""
    handler = HANDLERS.get(type(action))
    if handler is None:
        raise TypeError(f"Unknown action type: {type(action).__name__}")

    if state.game_over and not isinstance(action, SelectHex):
        return _reject(state, action, RejectReason.GAME_OVER, "The game is over")

    if not isinstance(action, ALWAYS_ALLOWED + PHASE_ACTIONS[state.phase]):
        return _reject(
            state, action, RejectReason.WRONG_PHASE,
            f"{type(action).__name__} is not allowed in the {state.phase.value} phase",
        )

    working = state.copy()
    events: list[GameEvent] = []
    try:
        data = handler(working, action, ctx, events) or {}
    except ActionRejected as e:
        return _reject(state, action, e.reason, e.message)

    message = data.pop("message", events[-1].message if events else "")
    return ActionResult(ok=True, state=working, message=message, events=events, data=data)


def _reject(state: WorldState, action: Action, reason: RejectReason, message: str) -> ActionResult:
    logger.debug(f"Rejected {action}: {reason.value} ({message})")
    return ActionResult(ok=False, state=state, reason=reason, message=message)


def _event(
    state: WorldState,
    event_type: EventType,
    message: str,
    faction: Optional[str] = None,
    **data,
) -> GameEvent:
    return GameEvent(
        type=event_type,
        turn=state.turn,
        phase=state.phase.value,
        faction=faction if faction is not None else state.acting_faction,
        message=message,
        data=data,
    )


def _require_acting(state: WorldState, faction: str):
    if faction != state.acting_faction:
        raise ActionRejected(
            RejectReason.NOT_YOUR_TURN,
            f"It is {state.acting_faction}'s turn, not {faction}'s",
        )


def _capture(state: WorldState, ctx: ReducerContext, q: int, r: int, faction: str,
             events: list[GameEvent]) -> bool:
    """Transfer a hex to `faction` unless it is friendly or allied land."""
    cell = state.hex_map.get_cell(q, r)
    previous = cell.owner
    if previous == faction:
        return False
    if previous is not None and state.get_relation(previous, faction) == Relation.ALLIED:
        return False
    cell.owner = faction

    # Work queued by the loser dies with the hex; no refund
    lost = [e for e in state.building_queue + state.training_queue if e.coords == (q, r)]
    if lost:
        state.building_queue = [e for e in state.building_queue if e.coords != (q, r)]
        state.training_queue = [e for e in state.training_queue if e.coords != (q, r)]
        logger.info(f"{len(lost)} queued item(s) at ({q},{r}) lost by {previous}")

    label = "capital" if cell.is_capital else "hex"
    from_whom = f" from {previous}" if previous else ""
    logger.info(f"Turn {state.turn}: {faction} captures {label} ({q},{r}){from_whom}")
    events.append(_event(
        state, EventType.CAPTURE,
        f"{ctx.catalog.faction(faction).name} claims ({q},{r}){from_whom}",
        faction=faction, q=q, r=r, previous_owner=previous, capital=cell.is_capital,
        lost_queue=[e.type_id for e in lost],
    ))
    return True


# ----------------------------------------------------------------------
# Selection and movement
# ----------------------------------------------------------------------

def _handle_select_hex(state: WorldState, action: SelectHex, ctx: ReducerContext, events):
    if not state.hex_map.in_bounds(action.q, action.r):
        raise ActionRejected(RejectReason.OFF_MAP, f"({action.q},{action.r}) is off the map")

    selection = state.selection
    if selection.hex == (action.q, action.r):
        selection.clear()
        return {"message": "Selection cleared", "selection": selection.to_dict()}

    selection.clear()
    selection.hex = (action.q, action.r)

    unit = state.unit_at(action.q, action.r)
    if unit is not None and unit.faction == state.acting_faction and not state.game_over:
        selection.unit_id = unit.id
        if state.phase == Phase.MOVEMENT:
            selection.legal_moves = legal_moves(state, ctx.catalog, unit)
        elif state.phase == Phase.COMBAT:
            selection.legal_attacks = legal_attacks(state, ctx.catalog, unit)

    return {"message": f"Selected ({action.q},{action.r})", "selection": selection.to_dict()}


def _handle_move_unit(state: WorldState, action: MoveUnit, ctx: ReducerContext, events):
    unit = state.units.get_unit(action.unit_id)
    if unit is None:
        raise ActionRejected(RejectReason.UNKNOWN_UNIT, f"No unit {action.unit_id}")
    _require_acting(state, unit.faction)
    if state.selection.unit_id != unit.id:
        raise ActionRejected(RejectReason.NOT_SELECTED, f"{unit.id} is not selected")
    if (action.q, action.r) not in state.selection.legal_moves:
        raise ActionRejected(
            RejectReason.ILLEGAL_MOVE, f"{unit.id} cannot reach ({action.q},{action.r})"
        )

    origin = unit.coords
    unit.q, unit.r = action.q, action.r
    unit.moved_this_turn = True
    events.append(_event(
        state, EventType.UNIT_MOVE,
        f"{ctx.catalog.unit_type(unit.unit_type).name} moves to ({unit.q},{unit.r})",
        unit_id=unit.id, origin=list(origin), destination=[unit.q, unit.r],
    ))

    defended = any(
        u.coords == unit.coords and u.faction != unit.faction for u in state.units
    )
    if not defended:
        _capture(state, ctx, unit.q, unit.r, unit.faction, events)

    ctx.fog.refresh(state, ctx.catalog)

    state.selection.clear()
    state.selection.hex = unit.coords
    state.selection.unit_id = unit.id
    state.selection.legal_attacks = legal_attacks(state, ctx.catalog, unit)
    return {"selection": state.selection.to_dict()}


# ----------------------------------------------------------------------
# Combat
# ----------------------------------------------------------------------

def _handle_initiate_attack(state: WorldState, action: InitiateAttack, ctx: ReducerContext, events):
    if state.pending_combat is not None:
        raise ActionRejected(RejectReason.COMBAT_PENDING, "Resolve or cancel the pending combat first")

    attacker = state.units.get_unit(action.attacker_id)
    defender = state.units.get_unit(action.defender_id)
    if attacker is None or defender is None:
        raise ActionRejected(RejectReason.UNKNOWN_UNIT, "Attacker or defender does not exist")
    _require_acting(state, attacker.faction)
    if state.selection.unit_id != attacker.id:
        raise ActionRejected(RejectReason.NOT_SELECTED, f"{attacker.id} is not selected")
    if (defender.id not in state.selection.legal_attacks
            or defender.id not in legal_attacks(state, ctx.catalog, attacker)):
        raise ActionRejected(RejectReason.ILLEGAL_TARGET, f"{attacker.id} cannot attack {defender.id}")

    cell = state.hex_map.get_cell(defender.q, defender.r)
    resolver = ctx.resolver
    attacker_doctrine = action.attacker_doctrine or resolver.recommended_doctrine(
        attacker, defender, cell.terrain, is_attacker=True
    )
    defender_doctrine = action.defender_doctrine or resolver.recommended_doctrine(
        defender, attacker, cell.terrain, is_attacker=False
    )
    if attacker_doctrine not in resolver.available_doctrines(attacker):
        raise ActionRejected(RejectReason.ILLEGAL_DOCTRINE, f"{attacker.id} cannot use {attacker_doctrine}")
    if defender_doctrine not in resolver.available_doctrines(defender):
        raise ActionRejected(RejectReason.ILLEGAL_DOCTRINE, f"{defender.id} cannot use {defender_doctrine}")

    pending = PendingCombat(
        attacker=Unit.from_dict(attacker.to_dict()),
        defender=Unit.from_dict(defender.to_dict()),
        terrain=cell.terrain,
        buildings=list(cell.buildings),
        attacker_doctrine=attacker_doctrine,
        defender_doctrine=defender_doctrine,
    )
    state.pending_combat = pending

    preview = resolver.preview_combat(
        pending.attacker, pending.defender, attacker_doctrine, defender_doctrine,
        pending.terrain, pending.buildings,
    )
    events.append(_event(
        state, EventType.ATTACK_DECLARED,
        f"{attacker.id} ({attacker_doctrine}) attacks {defender.id} ({defender_doctrine})",
        attacker_id=attacker.id, defender_id=defender.id,
        win_probability=preview.win_probability,
    ))
    return {"pending_combat": pending.to_dict(), "preview": preview.to_dict()}


def _handle_resolve_combat(state: WorldState, action: ResolveCombat, ctx: ReducerContext, events):
    pending = state.pending_combat
    if pending is None:
        raise ActionRejected(RejectReason.NO_PENDING_COMBAT, "No combat to resolve")
    if action.result is None or (action.result.attacker.unit_id, action.result.defender.unit_id) != (
        pending.attacker.id, pending.defender.id
    ):
        raise ActionRejected(RejectReason.RESULT_MISMATCH, "Result does not match the pending combat")
    result = CombatResult.from_dict(action.result.to_dict())

    attacker = state.units.get_unit(pending.attacker.id)
    defender = state.units.get_unit(pending.defender.id)
    if attacker is None or defender is None:
        raise ActionRejected(RejectReason.UNKNOWN_UNIT, "A combatant no longer exists")

    catalog = ctx.catalog
    for unit, side in ((attacker, result.attacker), (defender, result.defender)):
        unit.health = max(0, min(unit.health, side.new_health))
        if not unit.is_destroyed:
            unit.gain_experience(side.xp_gain, catalog)
    attacker.attacked_this_turn = True

    defender_origin = defender.coords
    for unit, opponent in ((defender, attacker), (attacker, defender)):
        if not unit.is_destroyed:
            continue
        state.units.remove(unit.id)
        scavenge = catalog.faction(opponent.faction).bonuses.scavenge_bonus
        if scavenge > 0 and not opponent.is_destroyed:
            salvage = refund(catalog.unit_type(unit.unit_type).cost, scavenge)
            state.resources[opponent.faction].add(salvage)
            result.notes.append(f"{opponent.faction} salvages {salvage}")

    if result.hex_captured and not attacker.is_destroyed:
        _capture(state, ctx, *defender_origin, attacker.faction, events)
        if hex_distance(attacker.coords, defender_origin) == 1 and state.unit_at(*defender_origin) is None:
            attacker.q, attacker.r = defender_origin

    if result.defender_retreats and not defender.is_destroyed:
        occupied = state.units.occupied()
        options = [
            h for h in hex_neighbors(*defender.coords)
            if state.hex_map.in_bounds(*h) and h not in occupied
        ]
        if options:
            defender.q, defender.r = max(options, key=lambda h: hex_distance(h, attacker.coords))

    state.pending_combat = None
    state.selection.clear()
    ctx.fog.refresh(state, catalog)

    events.append(_event(
        state, EventType.COMBAT_RESULT,
        f"{attacker.id} vs {defender.id}: {result.outcome.value.replace('_', ' ')} "
        f"({result.attacker.damage} taken, {result.defender.damage} dealt)",
        **result.to_dict(),
    ))
    return {"result": result.to_dict()}


def _handle_cancel_combat(state: WorldState, action: CancelCombat, ctx: ReducerContext, events):
    if state.pending_combat is None:
        raise ActionRejected(RejectReason.NO_PENDING_COMBAT, "No combat to cancel")
    state.pending_combat = None
    return {"message": "Attack called off"}


# ----------------------------------------------------------------------
# Production
# ----------------------------------------------------------------------

def _handle_start_building(state: WorldState, action: StartBuilding, ctx: ReducerContext, events):
    _require_acting(state, action.faction)
    issue = building_issues(state, ctx.catalog, action.q, action.r, action.building_type, action.faction)
    if issue is not None:
        raise ActionRejected(issue, f"Cannot build {action.building_type} at ({action.q},{action.r}): {issue.value}")

    cost = building_cost(ctx.catalog, action.building_type, action.faction)
    state.resources[action.faction].spend(cost)
    building = ctx.catalog.building(action.building_type)
    state.building_queue.append(QueueEntry(
        kind="building",
        q=action.q,
        r=action.r,
        type_id=action.building_type,
        owner=action.faction,
        turns_remaining=building.build_time,
        paid=cost,
    ))
    events.append(_event(
        state, EventType.BUILD_STARTED,
        f"Construction of {building.name} begins at ({action.q},{action.r})",
        building=action.building_type, q=action.q, r=action.r, cost=cost,
    ))


def _handle_start_training(state: WorldState, action: StartTraining, ctx: ReducerContext, events):
    _require_acting(state, action.faction)
    issue = training_issues(state, ctx.catalog, action.q, action.r, action.unit_type, action.faction)
    if issue is not None:
        raise ActionRejected(issue, f"Cannot train {action.unit_type} at ({action.q},{action.r}): {issue.value}")

    unit_type = ctx.catalog.unit_type(action.unit_type)
    cell = state.hex_map.get_cell(action.q, action.r)
    turns = effective_train_time(ctx.catalog, action.unit_type, cell)
    cost = dict(unit_type.cost)
    state.resources[action.faction].spend(cost)
    state.training_queue.append(QueueEntry(
        kind="unit",
        q=action.q,
        r=action.r,
        type_id=action.unit_type,
        owner=action.faction,
        turns_remaining=turns,
        paid=cost,
    ))
    events.append(_event(
        state, EventType.TRAINING_STARTED,
        f"Training {unit_type.name} at ({action.q},{action.r}), {turns} turn(s)",
        unit_type=action.unit_type, q=action.q, r=action.r, turns=turns, cost=cost,
    ))


def _cancel_entry(state: WorldState, queue: list[QueueEntry], q: int, r: int, type_id: str,
                  faction: str, ctx: ReducerContext, events) -> dict:
    _require_acting(state, faction)
    for i, entry in enumerate(queue):
        if entry.matches(q, r, type_id, faction):
            break
    else:
        raise ActionRejected(RejectReason.NO_QUEUE_ENTRY, f"Nothing matching {type_id} queued at ({q},{r})")

    entry = queue.pop(i)
    refunded = refund(entry.paid, ctx.catalog.production_rules.refund_fraction)
    state.resources[faction].add(refunded)
    events.append(_event(
        state, EventType.SYSTEM,
        f"Cancelled {type_id} at ({q},{r}), refunded {refunded}",
        kind=entry.kind, type_id=type_id, q=q, r=r, refund=refunded,
    ))
    return {"refund": refunded}


def _handle_cancel_building(state: WorldState, action: CancelBuilding, ctx: ReducerContext, events):
    return _cancel_entry(state, state.building_queue, action.q, action.r,
                         action.building_type, action.faction, ctx, events)


def _handle_cancel_training(state: WorldState, action: CancelTraining, ctx: ReducerContext, events):
    return _cancel_entry(state, state.training_queue, action.q, action.r,
                         action.unit_type, action.faction, ctx, events)


# ----------------------------------------------------------------------
# Diplomacy
# ----------------------------------------------------------------------

def _handle_diplomacy(state: WorldState, action: PerformDiplomaticAction, ctx: ReducerContext, events):
    faction = action.faction or state.acting_faction
    _require_acting(state, faction)
    issue = diplomacy_issues(state, ctx.catalog, faction, action.target, action.action_key)
    if issue is not None:
        raise ActionRejected(issue, f"Cannot {action.action_key} with {action.target}: {issue.value}")

    info = ctx.catalog.diplomatic_action(action.action_key)
    state.resources[faction].spend(info.cost)

    before = state.get_relation(faction, action.target)
    success = info.success_chance >= 1.0 or ctx.rng.random() < info.success_chance
    target_name = ctx.catalog.faction(action.target).name
    if success:
        after = before.step_up() if info.result is None else info.result
        state.set_relation(faction, action.target, after)
        message = f"{info.name} succeeded: relations with {target_name} are now {after.value}"
    else:
        after = before
        message = f"{info.name} failed: {target_name} rebuffed the overture"

    logger.info(f"Turn {state.turn}: {faction} {action.action_key} -> {action.target}: {after.value}")
    events.append(_event(
        state, EventType.DIPLOMACY, message, faction=faction,
        target=action.target, action=action.action_key,
        success=success, before=before.value, after=after.value,
    ))
    return {"success": success, "message": message, "relation": after.value}


# ----------------------------------------------------------------------
# Phase cursor
# ----------------------------------------------------------------------

def _hand_off(state: WorldState, ctx: ReducerContext, events: list[GameEvent]):
    """Pass control to the next living faction, or close out the turn."""
    state.selection.clear()
    state.pending_combat = None

    living = set(state.living_factions)
    for index in range(state.faction_index + 1, len(state.turn_order)):
        if state.turn_order[index] in living:
            state.faction_index = index
            state.phase_index = 0
            events.append(_event(
                state, EventType.PHASE_CHANGE,
                f"{ctx.catalog.faction(state.acting_faction).name} takes command",
                phase=state.phase.value,
            ))
            return

    end_of_turn(state, ctx.catalog, ctx.fog, events)
    if state.game_over:
        return

    state.turn += 1
    state.faction_index = state.turn_order.index(state.living_factions[0])
    state.phase_index = 0
    season = ctx.catalog.season_for_turn(state.turn)
    logger.info(f"Turn {state.turn} begins ({season.name})")
    events.append(_event(
        state, EventType.TURN_START, f"Turn {state.turn} begins, {season.name}",
        season=season.id,
    ))


def _handle_advance_phase(state: WorldState, action: AdvancePhase, ctx: ReducerContext, events):
    state.selection.clear()
    state.pending_combat = None
    if state.phase_index < len(PHASES) - 1:
        state.phase_index += 1
        events.append(_event(
            state, EventType.PHASE_CHANGE, f"{state.phase.value.capitalize()} phase",
            phase=state.phase.value,
        ))
    else:
        _hand_off(state, ctx, events)


def _handle_end_turn(state: WorldState, action: EndTurn, ctx: ReducerContext, events):
    _hand_off(state, ctx, events)


HANDLERS: dict[type, Callable] = {
    SelectHex: _handle_select_hex,
    MoveUnit: _handle_move_unit,
    InitiateAttack: _handle_initiate_attack,
    ResolveCombat: _handle_resolve_combat,
    CancelCombat: _handle_cancel_combat,
    StartBuilding: _handle_start_building,
    StartTraining: _handle_start_training,
    CancelBuilding: _handle_cancel_building,
    CancelTraining: _handle_cancel_training,
    PerformDiplomaticAction: _handle_diplomacy,
    AdvancePhase: _handle_advance_phase,
    EndTurn: _handle_end_turn,
}
