"""
WebSocket game server for human vs AI Fractured Sphere games.

One connection is one game session. The human player drives their faction
with action messages; the AI factions play between the player's turns and
their intents are streamed back as events.
"""

import os
import json
import asyncio
import logging
from pathlib import Path
from typing import Callable, Iterator, Optional

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent / ".env")

import websockets
from websockets.http11 import Response
from websockets.datastructures import Headers

from sphere import ActionResult, CatalogError, GameCatalog, TurnManager

logging.basicConfig(level=os.environ.get("SPHERE_LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

AI_DELAY = float(os.environ.get("SPHERE_AI_DELAY", "0.3"))


class GameSession:
    """Wraps the engine for a single human vs AI game, independent of transport."""

    def __init__(self, catalog: Optional[GameCatalog] = None, line_of_sight: bool = False):
        self.catalog = catalog or GameCatalog()
        self.line_of_sight = line_of_sight
        self.manager: Optional[TurnManager] = None
        self.human_faction: Optional[str] = None
        self._event_cursor = 0

        self._actions: dict[str, Callable[[dict], ActionResult]] = {
            "select_hex": lambda m: self.manager.select_hex(int(m["q"]), int(m["r"])),
            "move_unit": lambda m: self.manager.move_unit(m["unit_id"], int(m["q"]), int(m["r"])),
            "initiate_attack": lambda m: self.manager.initiate_attack(
                m["attacker_id"], m["defender_id"],
                m.get("attacker_doctrine"), m.get("defender_doctrine"),
            ),
            "resolve_combat": lambda m: self.manager.resolve_combat(),
            "cancel_combat": lambda m: self.manager.cancel_combat(),
            "start_building": lambda m: self.manager.start_building(
                int(m["q"]), int(m["r"]), m["building_type"], self.human_faction
            ),
            "start_training": lambda m: self.manager.start_training(
                int(m["q"]), int(m["r"]), m["unit_type"], self.human_faction
            ),
            "cancel_building": lambda m: self.manager.cancel_building(
                int(m["q"]), int(m["r"]), m["building_type"], self.human_faction
            ),
            "cancel_training": lambda m: self.manager.cancel_training(
                int(m["q"]), int(m["r"]), m["unit_type"], self.human_faction
            ),
            "diplomacy": lambda m: self.manager.perform_diplomatic_action(
                m["target"], m["action"], self.human_faction
            ),
            "advance_phase": lambda m: self.manager.advance_phase(),
            "end_turn": lambda m: self.manager.end_turn(),
        }

    @property
    def started(self) -> bool:
        return self.manager is not None and self.manager.state is not None

    @property
    def awaiting_ai(self) -> bool:
        return self.started and self.manager.is_ai_turn()

    def initialize(self, faction: str, seed: Optional[int] = None, radius: Optional[int] = None):
        """Start a game with the human playing `faction`."""
        self.manager = TurnManager(self.catalog, rng_seed=seed, line_of_sight=self.line_of_sight)
        self.manager.start_game(faction, seed=seed, radius=radius)
        self.human_faction = faction
        self._event_cursor = 0
        logger.info(
            f"Game initialized: human={faction}, "
            f"AI={', '.join(sorted(self.manager.commanders))}"
        )

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    @staticmethod
    def error(message: str) -> dict:
        return {"type": "error", "message": message}

    def state_message(self) -> dict:
        """Fog-filtered player view plus selection and pending combat."""
        state = self.manager.state
        view = self.manager.get_game_state_for_faction(self.human_faction)
        pending = state.pending_combat
        return {
            "type": "state",
            **view,
            "selection": state.selection.to_dict(),
            "pending_combat": pending.to_dict() if pending else None,
        }

    def drain_events(self) -> list[dict]:
        """Event messages for everything logged since the last drain."""
        events = self.manager.events.since(self._event_cursor)
        self._event_cursor = len(self.manager.events)
        return [{**e.to_dict(), "type": "event", "event_type": e.type.value} for e in events]

    def game_over_message(self) -> dict:
        state = self.manager.state
        return {
            "type": "game_over",
            "winner": state.winner,
            "victory_type": state.victory_type,
            "turn": state.turn,
            "eliminated": list(state.eliminated),
        }

    def handle_message(self, msg: dict) -> list[dict]:
        """Apply one inbound message and return the replies to send."""
        msg_type = msg.get("type", "")

        if msg_type == "start_game":
            faction = msg.get("faction")
            if faction not in self.catalog.faction_ids:
                return [self.error(f"Invalid faction: {faction}")]
            try:
                seed = int(msg["seed"]) if msg.get("seed") is not None else None
                radius = int(msg["radius"]) if msg.get("radius") is not None else None
            except (TypeError, ValueError):
                return [self.error("seed and radius must be integers")]
            logger.info(f"Starting game: human={faction}")
            self.initialize(faction, seed=seed, radius=radius)
            return [
                {"type": "game_init", "faction": faction, "turn_order": list(self.manager.state.turn_order)},
                *self.drain_events(),
                self.state_message(),
            ]

        if msg_type != "get_state" and msg_type not in self._actions:
            return [self.error(f"Unknown message type: {msg_type}")]
        if not self.started:
            return [self.error("No game in progress")]
        if msg_type == "get_state":
            return [self.state_message()]
        if self.awaiting_ai:
            return [self.error("AI factions are still playing")]

        try:
            result = self._actions[msg_type](msg)
        except (KeyError, TypeError, ValueError) as e:
            return [self.error(f"Malformed {msg_type} message: {e}")]

        payload = result.to_dict()
        payload.pop("events")
        replies = [{"type": "action_result", "action": msg_type, **payload}]
        replies.extend(self.drain_events())
        replies.append(self.state_message())
        if self.manager.state.game_over:
            replies.append(self.game_over_message())
        return replies

    def ai_steps(self) -> Iterator[list[dict]]:
        """
        Play AI factions until the human is up again, one intent at a time.

        Each step yields the event messages that intent produced; a final
        step carries the refreshed state (and game_over when it applies).
        """
        while self.awaiting_ai:
            for _ in self.manager.iter_ai_faction():
                events = self.drain_events()
                if events:
                    yield events

        final = [self.state_message()]
        if self.manager.state.game_over:
            final.append(self.game_over_message())
        yield final


# ── WebSocket Game Server ──


async def handle_websocket(websocket):
    """Handle a single WebSocket connection (one game session)."""
    session = GameSession()

    async def send_json(msg: dict):
        await websocket.send(json.dumps(msg, default=str))

    try:
        async for raw in websocket:
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                await send_json(GameSession.error("Invalid JSON"))
                continue
            if not isinstance(msg, dict):
                await send_json(GameSession.error("Messages must be JSON objects"))
                continue

            for reply in session.handle_message(msg):
                await send_json(reply)

            if session.awaiting_ai:
                for step in session.ai_steps():
                    for reply in step:
                        await send_json(reply)
                    await asyncio.sleep(AI_DELAY)

    except websockets.exceptions.ConnectionClosed:
        logger.info("Client disconnected")


def http_handler(connection, request):
    """Answer GET /health (websockets process_request)."""
    if request.path == "/health":
        body = b"OK"
        return Response(
            200,
            "OK",
            Headers([
                ("Content-Type", "text/plain; charset=utf-8"),
                ("Content-Length", str(len(body))),
            ]),
            body,
        )
    return None  # Let websockets handle WebSocket upgrade


async def main():
    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8080"))

    try:
        GameCatalog()
    except CatalogError as e:
        logger.error(f"Game data failed to load: {e}")
        raise

    logger.info(f"Starting server on ws://{host}:{port}")

    async with websockets.serve(
        handle_websocket,
        host,
        port,
        process_request=http_handler,
        max_size=1024 * 1024,
    ):
        await asyncio.Future()  # run forever


if __name__ == "__main__":
    asyncio.run(main())
