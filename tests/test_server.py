"""Tests for the WebSocket game session and handlers."""

import asyncio
import json
from types import SimpleNamespace

import pytest

import server
from server import GameSession, handle_websocket, http_handler


@pytest.fixture
def session(catalog):
    return GameSession(catalog)


@pytest.fixture
def playing(session):
    """Session where the human plays the first faction in turn order."""
    session.handle_message({"type": "start_game", "faction": "continuity", "seed": 42})
    return session


def types(replies):
    return [r["type"] for r in replies]


class TestStart:
    def test_start_game(self, session):
        replies = session.handle_message({"type": "start_game", "faction": "continuity", "seed": 42})
        assert replies[0] == {
            "type": "game_init",
            "faction": "continuity",
            "turn_order": ["continuity", "ascendant", "collective", "reclaimers"],
        }
        assert types(replies)[1:-1] == ["event", "event"]
        assert [r["event_type"] for r in replies[1:-1]] == ["system", "turn_start"]
        state = replies[-1]
        assert state["type"] == "state"
        assert state["faction"] == "continuity"
        assert state["selection"]["unit_id"] is None
        assert state["pending_combat"] is None

    def test_invalid_faction(self, session):
        replies = session.handle_message({"type": "start_game", "faction": "pirates"})
        assert replies == [{"type": "error", "message": "Invalid faction: pirates"}]
        assert not session.started

    def test_bad_seed(self, session):
        replies = session.handle_message({"type": "start_game", "faction": "continuity", "seed": "x"})
        assert types(replies) == ["error"]

    def test_custom_radius(self, session):
        session.handle_message({"type": "start_game", "faction": "continuity", "radius": 4})
        assert len(session.manager.state.hex_map.cells) == 61


class TestMessages:
    def test_unknown_type(self, playing):
        assert playing.handle_message({"type": "teleport"})[0]["message"] == "Unknown message type: teleport"

    def test_no_game(self, session):
        for msg_type in ("get_state", "advance_phase"):
            assert session.handle_message({"type": msg_type}) == [
                {"type": "error", "message": "No game in progress"}
            ]

    def test_get_state(self, playing):
        replies = playing.handle_message({"type": "get_state"})
        assert types(replies) == ["state"]
        assert replies[0]["acting_faction"] == "continuity"

    def test_action_reply_shape(self, playing):
        replies = playing.handle_message({"type": "advance_phase"})
        result = replies[0]
        assert result["type"] == "action_result"
        assert result["action"] == "advance_phase"
        assert result["ok"] is True
        assert "events" not in result
        assert types(replies)[1:] == ["event", "state"]
        assert replies[1]["event_type"] == "phase_change"
        assert replies[-1]["phase"] == "diplomacy"

    def test_rejected_action(self, playing):
        replies = playing.handle_message(
            {"type": "start_building", "q": 0, "r": 0, "building_type": "market"}
        )
        assert replies[0]["ok"] is False
        assert replies[0]["reason"] == "not_owner"
        assert types(replies) == ["action_result", "state"]

    def test_malformed(self, playing):
        replies = playing.handle_message({"type": "select_hex", "q": 0})
        assert types(replies) == ["error"]
        assert replies[0]["message"].startswith("Malformed select_hex message")

    def test_human_builds_for_own_faction(self, playing):
        replies = playing.handle_message(
            {"type": "start_building", "q": 0, "r": -3, "building_type": "market"}
        )
        assert replies[0]["ok"] is True
        assert replies[-1]["building_queue"][0]["owner"] == "continuity"

    def test_game_over_appended(self, playing):
        playing.manager.state.game_over = True
        playing.manager.state.winner = "continuity"
        replies = playing.handle_message({"type": "select_hex", "q": 0, "r": 0})
        assert replies[-1]["type"] == "game_over"
        assert replies[-1]["winner"] == "continuity"


class TestAITurns:
    def test_actions_blocked_while_ai_plays(self, session):
        session.handle_message({"type": "start_game", "faction": "collective", "seed": 42})
        assert session.awaiting_ai
        replies = session.handle_message({"type": "advance_phase"})
        assert replies == [{"type": "error", "message": "AI factions are still playing"}]

    def test_ai_steps_hand_back_to_human(self, session):
        session.handle_message({"type": "start_game", "faction": "collective", "seed": 42})
        steps = list(session.ai_steps())
        assert len(steps) > 1
        assert all(msg["type"] == "event" for step in steps[:-1] for msg in step)
        final = steps[-1]
        assert final[0]["type"] == "state"
        assert final[0]["acting_faction"] == "collective"
        assert not session.awaiting_ai

    def test_end_turn_wakes_ai(self, playing):
        playing.handle_message({"type": "end_turn"})
        assert playing.awaiting_ai
        list(playing.ai_steps())
        assert playing.manager.state.turn == 2
        assert playing.manager.state.acting_faction == "continuity"


class FakeSocket:
    def __init__(self, messages):
        self.messages = messages
        self.sent = []

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.messages:
            yield message

    async def send(self, data):
        self.sent.append(json.loads(data))


class TestTransport:
    def test_websocket_session(self, monkeypatch):
        monkeypatch.setattr(server, "AI_DELAY", 0)
        socket = FakeSocket([
            "not json",
            "[1, 2]",
            json.dumps({"type": "start_game", "faction": "ascendant", "seed": 7}),
        ])
        asyncio.run(handle_websocket(socket))

        assert socket.sent[0] == {"type": "error", "message": "Invalid JSON"}
        assert socket.sent[1]["type"] == "error"
        assert "game_init" in types(socket.sent)
        last_state = [m for m in socket.sent if m["type"] == "state"][-1]
        assert last_state["acting_faction"] == "ascendant"

    def test_health_check(self):
        response = http_handler(None, SimpleNamespace(path="/health"))
        assert response.status_code == 200
        assert response.body == b"OK"

    def test_other_paths_upgrade(self):
        assert http_handler(None, SimpleNamespace(path="/")) is None
