"""
End-of-turn processing.

Runs once after every living faction has taken its phases, in a fixed
order: production queues, unit refresh, income, fog, then eliminations and
victory.
"""

import math
import logging
from collections import defaultdict

from .catalog import GameCatalog
from .events import EventType, GameEvent
from .fog_of_war import FogOfWar
from .state import WorldState

logger = logging.getLogger(__name__)


def end_of_turn(
    state: WorldState,
    catalog: GameCatalog,
    fog: FogOfWar,
    events: list[GameEvent],
):
    """Mutates `state` in place; the reducer hands it a working copy."""
    process_queues(state, catalog, events)
    refresh_units(state, catalog)
    collect_income(state, catalog, events)
    fog.refresh(state, catalog)
    check_eliminations(state, events)
    check_victory(state, catalog, events)


def _event(state: WorldState, event_type: EventType, faction, message: str, **data) -> GameEvent:
    return GameEvent(
        type=event_type,
        turn=state.turn,
        phase="upkeep",
        faction=faction,
        message=message,
        data=data,
    )


def _drop_orphaned(state: WorldState):
    """Forget queued work on hexes its owner no longer holds."""
    def held(entry) -> bool:
        return state.hex_map.get_cell(entry.q, entry.r).owner == entry.owner

    for name in ("building_queue", "training_queue"):
        queue = getattr(state, name)
        kept = [e for e in queue if held(e)]
        if len(kept) != len(queue):
            logger.info(f"Dropped {len(queue) - len(kept)} orphaned {name} entries")
        setattr(state, name, kept)


def process_queues(state: WorldState, catalog: GameCatalog, events: list[GameEvent]):
    """Tick every queue entry once and complete those that reach zero."""
    _drop_orphaned(state)

    remaining = []
    for entry in state.building_queue:
        entry.turns_remaining = max(0, entry.turns_remaining - 1)
        if entry.turns_remaining > 0:
            remaining.append(entry)
            continue
        cell = state.hex_map.get_cell(entry.q, entry.r)
        cell.buildings.append(entry.type_id)
        name = catalog.building(entry.type_id).name
        events.append(_event(
            state, EventType.BUILD_COMPLETE, entry.owner,
            f"{name} completed at ({entry.q},{entry.r})",
            building=entry.type_id, q=entry.q, r=entry.r,
        ))
    state.building_queue = remaining

    remaining = []
    for entry in state.training_queue:
        entry.turns_remaining = max(0, entry.turns_remaining - 1)
        if entry.turns_remaining > 0:
            remaining.append(entry)
            continue
        free = state.free_hexes_around(entry.q, entry.r)
        if not free:
            # Waits at zero until a hex clears
            remaining.append(entry)
            continue
        unit = state.units.spawn(catalog, entry.type_id, entry.owner, *free[0])
        unit.moved_this_turn = True
        unit.attacked_this_turn = True
        events.append(_event(
            state, EventType.UNIT_TRAINED, entry.owner,
            f"{catalog.unit_type(entry.type_id).name} ready at ({unit.q},{unit.r})",
            unit_id=unit.id, unit_type=entry.type_id, q=unit.q, r=unit.r,
        ))
    state.training_queue = remaining


def refresh_units(state: WorldState, catalog: GameCatalog):
    """Clear per-turn flags; winter wears down units outside friendly land."""
    season = catalog.season_for_turn(state.turn)
    attrition = int(season.attrition * 100)

    state.units.reset_turn_flags()
    for unit in state.units:
        if attrition > 0:
            cell = state.hex_map.get_cell(unit.q, unit.r)
            if cell.owner != unit.faction:
                unit.health = max(1, unit.health - attrition)


def faction_income(state: WorldState, catalog: GameCatalog, faction: str) -> dict[str, int]:
    """Resources a faction collects at this turn end, after multipliers."""
    bonuses = catalog.faction(faction).bonuses
    season = catalog.season_for_turn(state.turn)

    territory: dict[str, float] = defaultdict(float)
    production: dict[str, float] = defaultdict(float)
    for cell in state.hex_map.get_cells_by_owner(faction):
        for kind, amount in cell.resources.items():
            territory[kind] += amount
        for building_id in cell.buildings:
            for kind, amount in catalog.building(building_id).production.items():
                production[kind] += amount

    income = {}
    for kind in ("gold", "iron", "grain", "influence"):
        amount = territory[kind] + production[kind] * (1 + bonuses.production_bonus)
        if kind == "gold":
            amount *= season.gold * (1 + bonuses.territory_income_bonus)
        elif kind == "grain":
            amount *= season.grain * (1 + bonuses.supply_bonus)
        income[kind] = math.floor(amount)
    return income


def collect_income(state: WorldState, catalog: GameCatalog, events: list[GameEvent]):
    for faction in state.living_factions:
        income = faction_income(state, catalog, faction)
        state.resources[faction].add(income)
        events.append(_event(
            state, EventType.INCOME, faction,
            f"{catalog.faction(faction).name} collects "
            + ", ".join(f"{amount} {kind}" for kind, amount in income.items() if amount),
            income=income,
        ))


def check_eliminations(state: WorldState, events: list[GameEvent]):
    """A faction with neither units nor territory is out of the game."""
    for faction in state.living_factions:
        if state.units.get_units_by_faction(faction) or state.territory(faction):
            continue
        state.eliminated.append(faction)
        state.building_queue = [e for e in state.building_queue if e.owner != faction]
        state.training_queue = [e for e in state.training_queue if e.owner != faction]
        logger.info(f"Turn {state.turn}: {faction} eliminated")
        events.append(_event(state, EventType.ELIMINATION, faction, f"{faction} has been eliminated"))


def check_victory(state: WorldState, catalog: GameCatalog, events: list[GameEvent]):
    """Domination, economic and elimination victories, in that order."""
    rules = catalog.victory_rules
    total = len(state.hex_map.cells)
    living = state.living_factions

    winner = None
    victory_type = None

    for faction in living:
        share = state.territory(faction) / total
        if share >= rules.domination_territory:
            winner, victory_type = faction, "domination"
            break
        if (state.resources[faction].gold >= rules.economic_gold
                and share >= rules.economic_territory):
            winner, victory_type = faction, "economic"
            break

    if winner is None and rules.elimination:
        capital_holders = {c.owner for c in state.hex_map.capitals() if c.owner is not None}
        if len(living) == 1:
            winner, victory_type = living[0], "elimination"
        elif len(capital_holders) == 1:
            holder = capital_holders.pop()
            if holder in living:
                winner, victory_type = holder, "elimination"

    if winner is None:
        return

    state.game_over = True
    state.winner = winner
    state.victory_type = victory_type
    logger.info(f"Turn {state.turn}: {winner} wins by {victory_type}")
    events.append(_event(
        state, EventType.VICTORY, winner,
        f"{catalog.faction(winner).name} achieves {victory_type} victory",
        victory_type=victory_type,
    ))
