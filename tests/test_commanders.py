"""Tests for the AI commanders."""

import pytest

from commanders import CommanderConfig, HeuristicCommander
from sphere.catalog import Relation
from sphere.state import Phase

from conftest import make_unit, reveal_all, set_cursor


@pytest.fixture
def continuity(manager):
    return manager.commanders["continuity"]


def actions(commander):
    return [entry["action"] for entry in commander.history]


class TestConfig:
    def test_traits_come_from_faction(self, catalog):
        commander = HeuristicCommander.create_default(catalog, "ascendant")
        assert commander.faction == "ascendant"
        assert commander.config.aggression == 0.8
        assert commander.config.risk_tolerance == 0.7

    def test_defaults(self):
        config = CommanderConfig(faction="collective")
        assert config.aggression == 0.5
        assert config.gold_reserve == 40

    def test_reset(self, manager, continuity):
        continuity.play_turn(manager)
        continuity.reset()
        assert continuity.history == []
        assert continuity.turn_count == 0


class TestTurn:
    def test_plays_all_phases_and_hands_off(self, manager, continuity):
        results = continuity.play_turn(manager)
        assert results
        assert manager.state.acting_faction == "ascendant"
        assert actions(continuity).count("AdvancePhase") == 4
        assert continuity.turn_count == 1

    def test_idle_when_not_its_turn(self, manager):
        assert manager.commanders["ascendant"].play_turn(manager) == []

    def test_every_intent_goes_through_dispatch(self, manager, continuity):
        dispatched = []
        original = manager.dispatch

        def counting(action):
            dispatched.append(type(action).__name__)
            return original(action)

        manager.dispatch = counting
        continuity.play_turn(manager)
        assert dispatched == actions(continuity)

    def test_opening_production(self, manager, continuity):
        continuity.play_turn(manager)
        started = [
            entry for entry in continuity.history
            if entry["action"] in ("StartBuilding", "StartTraining") and entry["ok"]
        ]
        assert started
        assert manager.state.resources["continuity"].gold >= continuity.config.gold_reserve


class TestDecisions:
    @pytest.fixture
    def front(self, catalog, manager):
        state = manager.state
        state.units.units.clear()
        reveal_all(state)
        tank = make_unit(state, catalog, "tank", "continuity", 0, 0)
        target = make_unit(state, catalog, "infantry", "ascendant", 1, 0, health=10)
        set_cursor(state, "continuity", Phase.COMBAT)
        return state, tank, target

    def test_attacks_a_weak_target(self, manager, continuity, front):
        _, _, target = front
        continuity.play_turn(manager)
        assert "InitiateAttack" in actions(continuity)
        assert "ResolveCombat" in actions(continuity)
        assert manager.state.units.get_unit(target.id) is None

    def test_leaves_allies_alone(self, manager, continuity, front):
        state, _, target = front
        state.set_relation("continuity", "ascendant", Relation.ALLIED)
        continuity.play_turn(manager)
        assert "InitiateAttack" not in actions(continuity)
        assert manager.state.units.get_unit(target.id) is not None

    def test_diplomat_reaches_out(self, manager, continuity):
        state = manager.state
        state.resources["continuity"].influence = 100
        set_cursor(state, "continuity", Phase.DIPLOMACY)
        results = list(continuity._diplomacy(manager))
        assert len(results) == 1
        assert results[0].ok
        assert actions(continuity) == ["PerformDiplomaticAction"]

    def test_skips_unaffordable_diplomacy(self, manager, continuity):
        set_cursor(manager.state, "continuity", Phase.DIPLOMACY)
        assert list(continuity._diplomacy(manager)) == []

    def test_capitals_are_valuable(self, catalog, manager, continuity):
        state = manager.state
        capital = state.hex_map.get_capital("ascendant")
        plain = state.hex_map.get_cell(1, -1)
        assert continuity.hex_value(state, capital) > continuity.hex_value(state, plain)

    def test_economy_prefers_producers(self, catalog, continuity):
        market = catalog.building("market")
        fortress = catalog.building("fortress")
        assert continuity.building_score(market, market.cost) > continuity.building_score(fortress, fortress.cost)
