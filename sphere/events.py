"""
Game event stream.

Every dispatch produces zero or more GameEvents. Narrative, audio and
replay layers read the EventLog; nothing in it feeds back into the engine.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class EventType(Enum):
    TURN_START = "turn_start"
    PHASE_CHANGE = "phase_change"
    UNIT_MOVE = "unit_move"
    ATTACK_DECLARED = "attack_declared"
    COMBAT_RESULT = "combat_result"
    BUILD_STARTED = "build_started"
    BUILD_COMPLETE = "build_complete"
    TRAINING_STARTED = "training_started"
    UNIT_TRAINED = "unit_trained"
    INCOME = "income"
    CAPTURE = "capture"
    DIPLOMACY = "diplomacy"
    ELIMINATION = "elimination"
    VICTORY = "victory"
    SYSTEM = "system"


@dataclass
class GameEvent:
    """A single discrete thing that happened in the game."""
    type: EventType
    turn: int
    phase: str
    faction: Optional[str]
    message: str
    data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "turn": self.turn,
            "phase": self.phase,
            "faction": self.faction,
            "message": self.message,
            "data": self.data,
        }


class EventLog:
    """Append-only event list with subscriber callbacks."""

    def __init__(self):
        self.events: list[GameEvent] = []
        self._subscribers: list[Callable[[GameEvent], None]] = []

    def subscribe(self, callback: Callable[[GameEvent], None]):
        self._subscribers.append(callback)

    def append(self, event: GameEvent):
        self.events.append(event)
        for callback in self._subscribers:
            callback(event)

    def extend(self, events: list[GameEvent]):
        for event in events:
            self.append(event)

    def since(self, index: int) -> list[GameEvent]:
        """Events appended at or after position `index`."""
        return self.events[index:]

    def of_type(self, event_type: EventType) -> list[GameEvent]:
        return [e for e in self.events if e.type == event_type]

    def clear(self):
        self.events = []

    def to_list(self) -> list[dict]:
        return [event.to_dict() for event in self.events]

    def __len__(self) -> int:
        return len(self.events)
