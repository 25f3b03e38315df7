"""
Headless runner for the Fractured Sphere.

Plays an all-AI game to a turn limit or to victory and writes a JSON game
log.
"""

import os
import json
import logging
from pathlib import Path
from datetime import datetime
from typing import Optional

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent / ".env")

from sphere import GameCatalog, TurnManager, EventType

logging.basicConfig(level=os.environ.get("SPHERE_LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

DEFAULT_TURNS = 30


class SphereSimulation:
    """Main simulation orchestrator."""

    def __init__(
        self,
        data_path: Optional[str] = None,
        log_dir: str = "logs",
        seed: Optional[int] = None,
        radius: Optional[int] = None,
        line_of_sight: bool = False,
    ):
        self.log_dir = Path(log_dir)
        self.seed = seed
        self.radius = radius

        logger.info("Loading catalog...")
        self.catalog = GameCatalog(data_path)

        logger.info("Initializing turn manager...")
        self.manager = TurnManager(self.catalog, rng_seed=seed, line_of_sight=line_of_sight)

        # Game log
        self.game_log: list[dict] = []
        self.start_time: Optional[datetime] = None

    def initialize(self):
        """Start an all-AI game."""
        state = self.manager.start_game(None, seed=self.seed, radius=self.radius)
        self.start_time = datetime.now()

        self._log_event("game_start", {
            "seed": state.hex_map.seed,
            "radius": state.hex_map.radius,
            "factions": list(state.turn_order),
            "map": state.hex_map.get_stats(),
        })

        logger.info("Game initialized")
        for faction in state.turn_order:
            logger.info(f"  {faction}: {len(state.units.get_units_by_faction(faction))} units")

    def run_turn(self) -> dict:
        """Let every living faction play one turn."""
        turn = self.manager.state.turn
        logger.info(f"\n{'='*60}")
        logger.info(f"TURN {turn}")
        logger.info(f"{'='*60}")

        first_event = len(self.manager.events)
        while not self.manager.state.game_over and self.manager.state.turn == turn:
            self.manager.play_ai_faction()

        state = self.manager.state
        new_events = self.manager.events.since(first_event)
        combats = [e for e in new_events if e.type == EventType.COMBAT_RESULT]
        captures = [e for e in new_events if e.type == EventType.CAPTURE]

        turn_log = {
            "turn": turn,
            "season": self.catalog.season_for_turn(turn).id,
            "combats": len(combats),
            "captures": len(captures),
            "territory": {f: state.territory(f) for f in state.turn_order},
            "units": {f: len(state.units.get_units_by_faction(f)) for f in state.turn_order},
            "resources": {f: state.resources[f].to_dict() for f in state.turn_order},
            "relations": {
                f"{a}:{b}": relation.value for (a, b), relation in sorted(state.relations.items())
            },
        }
        self._log_event("turn_complete", turn_log)

        logger.info(f"\nTurn {turn} Complete:")
        logger.info(f"  Combat engagements: {len(combats)}, hexes captured: {len(captures)}")
        for faction in state.turn_order:
            logger.info(
                f"  {faction}: {turn_log['territory'][faction]} hexes, "
                f"{turn_log['units'][faction]} units, "
                f"{turn_log['resources'][faction]['gold']} gold"
            )
        return turn_log

    def run_game(self, max_turns: Optional[int] = None) -> dict:
        """Run the full game."""
        self.initialize()
        max_turns = max_turns or DEFAULT_TURNS

        while self.manager.state.turn <= max_turns and not self.manager.state.game_over:
            self.run_turn()

        results = self._compile_results()
        self._log_event("game_end", results)
        self._save_game_log()
        return results

    def _compile_results(self) -> dict:
        """Compile final game results."""
        state = self.manager.state
        return {
            "turns_played": state.turn if state.game_over else state.turn - 1,
            "winner": state.winner,
            "victory_type": state.victory_type,
            "eliminated": list(state.eliminated),
            "territory": {f: state.territory(f) for f in state.turn_order},
            "surviving_units": {
                f: len(state.units.get_units_by_faction(f)) for f in state.turn_order
            },
            "duration": str(datetime.now() - self.start_time) if self.start_time else None,
        }

    def _log_event(self, event_type: str, data: dict):
        """Log a game event."""
        self.game_log.append({
            "timestamp": datetime.now().isoformat(),
            "event": event_type,
            "data": data,
        })

    def _save_game_log(self) -> Path:
        """Save the game log and the engine event stream to file."""
        self.log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_path = self.log_dir / f"game_{timestamp}.json"

        with open(log_path, "w", encoding="utf-8") as f:
            json.dump(
                {"log": self.game_log, "events": self.manager.events.to_list()},
                f, indent=2, default=str,
            )

        logger.info(f"Game log saved to: {log_path}")
        return log_path


def main():
    """Run a Fractured Sphere simulation."""
    import argparse

    env_seed = os.environ.get("SPHERE_SEED")

    parser = argparse.ArgumentParser(description="Fractured Sphere AI-vs-AI Simulation")
    parser.add_argument("--turns", type=int, default=None, help=f"Max turns (default: {DEFAULT_TURNS})")
    parser.add_argument("--seed", type=int, default=int(env_seed) if env_seed else None,
                        help="Map and dice seed (default: SPHERE_SEED or rules seed)")
    parser.add_argument("--radius", type=int, default=None, help="Map radius (default: rules radius)")
    parser.add_argument("--data", default=None, help="Data directory path")
    parser.add_argument("--logs", default="logs", help="Log directory path")
    parser.add_argument("--los", action="store_true", help="Use line-of-sight fog of war")

    args = parser.parse_args()

    sim = SphereSimulation(
        data_path=args.data,
        log_dir=args.logs,
        seed=args.seed,
        radius=args.radius,
        line_of_sight=args.los,
    )

    results = sim.run_game(max_turns=args.turns)

    print("\n" + "="*60)
    print("FINAL RESULTS")
    print("="*60)
    print(f"Turns played: {results['turns_played']}")
    print(f"Winner: {results['winner'] or 'none'} ({results['victory_type'] or 'turn limit'})")
    print(f"Territory: {results['territory']}")
    print(f"Surviving units: {results['surviving_units']}")
    print(f"Duration: {results['duration']}")


if __name__ == "__main__":
    main()
