"""Tests for the static game catalog."""

import shutil

import pytest

from sphere.catalog import CatalogError, GameCatalog, Relation, RESOURCE_KINDS


class TestLoading:
    def test_counts(self, catalog):
        stats = catalog.get_stats()
        assert stats["terrain"] == 7
        assert stats["buildings"] == 7
        assert stats["unit_types"] == 9
        assert stats["doctrines"] == 6
        assert stats["factions"] == 4

    def test_faction_order(self, catalog):
        assert catalog.faction_ids == ["continuity", "ascendant", "collective", "reclaimers"]

    def test_starting_resources(self, catalog):
        assert catalog.starting_resources == {"gold": 200, "iron": 100, "grain": 150, "influence": 10}
        assert set(catalog.starting_resources) <= set(RESOURCE_KINDS)

    def test_unit_defaults(self, catalog):
        infantry = catalog.unit_type("infantry")
        assert infantry.range == 1
        assert infantry.fire_after_move is True
        artillery = catalog.unit_type("artillery")
        assert artillery.range == 3
        assert artillery.fire_after_move is False

    def test_rules(self, catalog):
        assert catalog.map_rules.radius == 3
        assert catalog.map_rules.seed == 42
        assert catalog.combat_rules.base_damage == 30
        assert catalog.production_rules.training_queue_cap == 3
        assert catalog.victory_rules.domination_territory == 0.75


class TestLookups:
    @pytest.mark.parametrize("lookup", [
        "terrain_info", "building", "unit_type", "doctrine", "faction", "diplomatic_action",
    ])
    def test_unknown_ids_raise(self, catalog, lookup):
        with pytest.raises(CatalogError):
            getattr(catalog, lookup)("does_not_exist")

    def test_catalog_error_is_value_error(self):
        assert issubclass(CatalogError, ValueError)

    def test_veterancy_tiers(self, catalog):
        assert catalog.veterancy_for(0).id == "green"
        assert catalog.veterancy_for(19).id == "green"
        assert catalog.veterancy_for(20).id == "trained"
        assert catalog.veterancy_for(250).id == "legendary"
        assert catalog.veterancy_multiplier("elite") == 1.5

    def test_seasons_rotate(self, catalog):
        assert catalog.season_for_turn(1).id == "spring"
        assert catalog.season_for_turn(5).id == "spring"
        assert catalog.season_for_turn(6).id == "summer"
        assert catalog.season_for_turn(16).id == "winter"
        assert catalog.season_for_turn(21).id == "spring"
        assert catalog.season_for_turn(16).movement == 1.5

    def test_diplomatic_actions(self, catalog):
        war = catalog.diplomatic_action("declare_war")
        assert war.result == Relation.WAR
        assert war.success_chance == 1.0
        outreach = catalog.diplomatic_action("improve_relations")
        assert outreach.result is None
        assert outreach.cost == {"influence": 15, "gold": 50}


class TestRelation:
    def test_ladder(self):
        assert Relation.WAR.rank < Relation.NEUTRAL.rank < Relation.ALLIED.rank
        assert Relation.NEUTRAL.step_up() == Relation.CORDIAL
        assert Relation.ALLIED.step_up() == Relation.ALLIED
        assert Relation.WAR.step_down() == Relation.WAR


class TestBrokenData:
    def test_missing_schema_dir(self, tmp_path):
        with pytest.raises(CatalogError):
            GameCatalog(tmp_path)

    def test_dangling_reference(self, catalog, tmp_path):
        schema = tmp_path / "schema"
        shutil.copytree(catalog.data_path / "schema", schema)
        units = schema / "units.yaml"
        units.write_text(units.read_text().replace("branch: ground", "branch: naval", 1))
        with pytest.raises(CatalogError):
            GameCatalog(tmp_path)

    def test_env_override(self, catalog, tmp_path, monkeypatch):
        shutil.copytree(catalog.data_path / "schema", tmp_path / "schema")
        monkeypatch.setenv("SPHERE_DATA_PATH", str(tmp_path))
        assert GameCatalog().data_path == tmp_path
