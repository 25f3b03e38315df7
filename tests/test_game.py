"""Tests for the headless simulation runner."""

import json

from game import SphereSimulation


def test_short_game_writes_log(tmp_path):
    sim = SphereSimulation(log_dir=str(tmp_path), seed=42)
    results = sim.run_game(max_turns=2)

    assert results["turns_played"] <= 2
    assert set(results["territory"]) == {"continuity", "ascendant", "collective", "reclaimers"}

    logs = list(tmp_path.glob("game_*.json"))
    assert len(logs) == 1
    saved = json.loads(logs[0].read_text())
    kinds = [entry["event"] for entry in saved["log"]]
    assert kinds[0] == "game_start"
    assert kinds[-1] == "game_end"
    assert kinds.count("turn_complete") == results["turns_played"]
    assert saved["events"][0]["type"] == "system"


def test_turn_summary(tmp_path):
    sim = SphereSimulation(log_dir=str(tmp_path), seed=9)
    sim.initialize()
    summary = sim.run_turn()
    assert summary["turn"] == 1
    assert summary["season"] == "spring"
    assert sim.manager.state.turn == 2 or sim.manager.state.game_over
