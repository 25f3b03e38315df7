"""Tests for fog of war."""

import pytest

from sphere.fog_of_war import FogOfWar

from conftest import make_unit


@pytest.fixture
def fog():
    return FogOfWar()


def visible_to(state, faction):
    return {c.coords for c in state.hex_map.cells.values() if c.is_visible_to(faction)}


class TestRefresh:
    def test_territory_sees_neighbors(self, catalog, board, fog):
        fog.refresh(board, catalog)
        seen = visible_to(board, "collective")
        assert seen == {(0, 3)} | {c.coords for c in board.hex_map.get_neighbors(0, 3)}

    def test_explored_is_sticky(self, catalog, board, fog):
        fog.refresh(board, catalog)
        cell = board.hex_map.get_cell(0, 0)
        assert not cell.is_visible_to("collective")
        assert cell.is_explored_by("collective")

    def test_units_extend_sight(self, catalog, board, fog):
        make_unit(board, catalog, "scout", "reclaimers", 0, 0)
        fog.refresh(board, catalog)
        assert len(visible_to(board, "reclaimers")) == 37

    def test_relay_extends_territory_sight(self, catalog, board, fog):
        fog.refresh(board, catalog)
        assert (0, 1) not in visible_to(board, "collective")
        board.hex_map.get_cell(0, 3).buildings.append("relay")
        fog.refresh(board, catalog)
        assert (0, 1) in visible_to(board, "collective")

    def test_refresh_subset(self, catalog, board, fog):
        fog.refresh(board, catalog, factions=["collective"])
        assert (0, 0) in visible_to(board, "continuity")
        assert (0, 0) not in visible_to(board, "collective")


class TestLineOfSight:
    @pytest.fixture
    def ridge(self, catalog, board):
        board.hex_map.get_cell(1, 0).terrain = "mountain"
        make_unit(board, catalog, "infantry", "collective", 0, 0)
        return board

    def test_radius_sight_ignores_terrain(self, catalog, ridge):
        FogOfWar().refresh(ridge, catalog)
        assert (2, 0) in visible_to(ridge, "collective")

    def test_ridges_block_sight(self, catalog, ridge):
        FogOfWar(line_of_sight=True).refresh(ridge, catalog)
        seen = visible_to(ridge, "collective")
        assert (1, 0) in seen
        assert (2, 0) not in seen


class TestViews:
    def test_hidden_enemies_are_left_out(self, catalog, board, fog):
        own = make_unit(board, catalog, "infantry", "collective", 0, 2)
        near = make_unit(board, catalog, "infantry", "reclaimers", 0, 1)
        make_unit(board, catalog, "infantry", "continuity", 0, -2)
        fog.refresh(board, catalog)

        view = fog.visible_state(board, "collective")
        assert [u["id"] for u in view["own_units"]] == [own.id]
        assert [u["id"] for u in view["known_enemies"]] == [near.id]

    def test_remembered_hexes_hide_current_owner(self, catalog, board, fog):
        fog.refresh(board, catalog)
        board.hex_map.get_cell(0, 0).owner = "continuity"
        view = fog.visible_state(board, "collective")
        center = next(h for h in view["hexes"] if (h["q"], h["r"]) == (0, 0))
        assert center["visible"] is False
        assert center["owner"] is None

    def test_unexplored_hexes_are_absent(self, catalog, state, fog):
        view = fog.visible_state(state, "collective")
        explored = sum(1 for c in state.hex_map.cells.values() if c.is_explored_by("collective"))
        assert len(view["hexes"]) == explored < 37

    def test_intel_summary(self, catalog, board, fog):
        make_unit(board, catalog, "infantry", "reclaimers", 0, 2)
        fog.refresh(board, catalog)
        intel = fog.get_intel_summary(board, "collective")
        assert intel["visible_hexes"] == 4
        assert intel["explored_hexes"] == 37
        assert intel["total_hexes"] == 37
        assert intel["enemies_in_view"] == 1

    def test_nearest_visible_enemy(self, catalog, board, fog):
        fog.refresh(board, catalog)
        assert FogOfWar.nearest_visible_enemy(board, "collective", (0, 3)) is None
        make_unit(board, catalog, "infantry", "reclaimers", 0, 2)
        fog.refresh(board, catalog)
        assert FogOfWar.nearest_visible_enemy(board, "collective", (0, 3)) == 1
