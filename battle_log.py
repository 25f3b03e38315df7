#!/usr/bin/env python3
"""
Live chronicle - streams game events as they happen.
"""

import os
import sys
import time
import logging
from pathlib import Path

# Load .env from project root (same as game.py)
from dotenv import load_dotenv
load_dotenv(Path(__file__).parent / ".env")

from sphere import GameCatalog, TurnManager, EventType, GameEvent

logging.basicConfig(level=os.environ.get("SPHERE_LOG_LEVEL", "WARNING").upper())

# Configuration
MAX_TURNS = int(os.environ.get("SPHERE_CHRONICLE_TURNS", "5"))
PACE = float(os.environ.get("SPHERE_AI_DELAY", "0.3")) / 6

PREFIXES = {
    EventType.COMBAT_RESULT: "💥 COMBAT",
    EventType.ATTACK_DECLARED: "⚔️  ATTACK",
    EventType.CAPTURE: "🚩 CAPTURE",
    EventType.DIPLOMACY: "📜 ENVOY",
    EventType.BUILD_STARTED: "🏗️  BUILD",
    EventType.BUILD_COMPLETE: "🏛️  BUILT",
    EventType.TRAINING_STARTED: "🎖️  MUSTER",
    EventType.UNIT_TRAINED: "🎖️  READY",
    EventType.INCOME: "💰 INCOME",
    EventType.ELIMINATION: "☠️  FALLEN",
    EventType.VICTORY: "👑 VICTORY",
    EventType.SYSTEM: "⚡ SYSTEM",
}

# Routine cursor chatter stays off the chronicle
QUIET = {EventType.PHASE_CHANGE}


def log_header(text):
    """Print a header."""
    print(f"\n{'='*70}")
    print(f"  {text}")
    print(f"{'='*70}\n")
    sys.stdout.flush()


def chronicle(event: GameEvent):
    """Print one event entry."""
    if event.type in QUIET:
        return
    if event.type == EventType.TURN_START:
        log_header(f"TURN {event.turn} - {event.message}")
        return
    prefix = PREFIXES.get(event.type, event.type.value.upper())
    who = f"[{event.faction}] " if event.faction else ""
    print(f"T{event.turn:>3} {prefix}: {who}{event.message}")
    sys.stdout.flush()
    time.sleep(PACE)


def summarize(manager: TurnManager):
    state = manager.state
    print("\n📊 Standing:")
    for faction in state.turn_order:
        status = "eliminated" if faction in state.eliminated else (
            f"{state.territory(faction)} hexes, "
            f"{len(state.units.get_units_by_faction(faction))} units, "
            f"{state.resources[faction].gold} gold"
        )
        print(f"   {faction:<12} {status}")


def main():
    print("Initializing simulation...")
    catalog = GameCatalog()
    seed = os.environ.get("SPHERE_SEED")
    manager = TurnManager(catalog, rng_seed=int(seed) if seed else None)
    manager.events.subscribe(chronicle)

    log_header("THE SPHERE FRACTURES")
    print(f"Running {MAX_TURNS} turns...\n")
    manager.start_game(None, seed=int(seed) if seed else None)

    manager.run_ai(until_turn=MAX_TURNS)
    summarize(manager)

    state = manager.state
    if state.game_over:
        winner = state.winner or "nobody"
        log_header(f"{winner.upper()} PREVAILS ({state.victory_type})")
    else:
        log_header("CHRONICLE PAUSED")
        print(f"Completed {MAX_TURNS} turns.")


if __name__ == "__main__":
    main()
