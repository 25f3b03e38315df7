"""Shared test fixtures and helpers."""

import random

import pytest

from sphere import CombatResolver, FogOfWar, GameCatalog, TurnManager, new_game
from sphere.reducer import ReducerContext
from sphere.state import PHASES, Phase, WorldState
from sphere.units import Unit


# --- Fixtures ---


@pytest.fixture(scope="session")
def catalog():
    """Catalog loaded from the repo's data/schema."""
    return GameCatalog()


@pytest.fixture
def rng():
    """Deterministic RNG seeded at 42."""
    return random.Random(42)


@pytest.fixture
def state(catalog):
    """Fresh opening position (seed=42, radius=3), fog refreshed."""
    world = new_game(catalog, seed=42)
    FogOfWar().refresh(world, catalog)
    return world


@pytest.fixture
def board(state, catalog):
    """Opening position with no units, plains everywhere but the capitals, all revealed."""
    clear_units(state)
    plains = catalog.terrain_info("plains")
    for cell in state.hex_map.cells.values():
        if not cell.is_capital:
            cell.terrain = "plains"
            cell.resources = dict(plains.yields)
    reveal_all(state)
    return state


@pytest.fixture
def ctx(catalog, rng):
    """Reducer collaborators sharing one seeded RNG."""
    return ReducerContext(
        catalog=catalog,
        resolver=CombatResolver(catalog, rng=rng),
        rng=rng,
        fog=FogOfWar(),
    )


@pytest.fixture
def manager(catalog):
    """Turn manager with an all-AI game started on seed 42."""
    mgr = TurnManager(catalog, rng_seed=42)
    mgr.start_game(None, seed=42)
    return mgr


# --- Helper functions ---


def make_unit(state: WorldState, catalog: GameCatalog, unit_type: str, faction: str,
              q: int, r: int, **overrides) -> Unit:
    """Spawn a unit on the state and apply attribute overrides."""
    unit = state.units.spawn(catalog, unit_type, faction, q, r)
    for key, value in overrides.items():
        setattr(unit, key, value)
    return unit


def clear_units(state: WorldState):
    """Remove every unit from the board."""
    state.units.units.clear()


def set_cursor(state: WorldState, faction: str, phase: Phase):
    """Put the turn cursor on a faction and phase."""
    state.faction_index = state.turn_order.index(faction)
    state.phase_index = PHASES.index(phase)
    state.selection.clear()
    state.pending_combat = None


def reveal_all(state: WorldState):
    """Make every hex visible to every faction."""
    for cell in state.hex_map.cells.values():
        for faction in state.turn_order:
            cell.reveal(faction)
