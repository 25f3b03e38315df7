"""
Base commander for AI-controlled factions.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterator

from sphere.actions import Action, ActionResult
from sphere.catalog import FactionInfo


@dataclass
class CommanderConfig:
    """Personality of an AI faction, 0-1 weights from the faction traits."""
    faction: str
    aggression: float = 0.5
    expansion: float = 0.5
    diplomacy: float = 0.5
    risk_tolerance: float = 0.5
    economy: float = 0.5
    gold_reserve: int = 40  # gold kept back from production spending

    @classmethod
    def from_faction(cls, info: FactionInfo) -> "CommanderConfig":
        traits = info.traits
        return cls(
            faction=info.id,
            aggression=traits.aggression,
            expansion=traits.expansion,
            diplomacy=traits.diplomacy,
            risk_tolerance=traits.risk_tolerance,
            economy=traits.economy,
        )


class Commander(ABC):
    """
    Base class for AI commanders.

    A commander only ever acts through the manager's dispatch, exactly
    like a human player. take_turn is a generator so a presentation layer
    can pace the intents; play_turn drains it in one go.
    """

    def __init__(self, config: CommanderConfig):
        self.config = config
        self.faction = config.faction
        self.turn_count = 0
        self.history: list[dict] = []

    @abstractmethod
    def take_turn(self, manager) -> Iterator[ActionResult]:
        """Play the acting faction's phases, yielding each dispatch result."""

    def issue(self, manager, action: Action) -> ActionResult:
        result = manager.dispatch(action)
        self.history.append({
            "turn": manager.state.turn,
            "action": type(action).__name__,
            "ok": result.ok,
            "reason": result.reason.value if result.reason else None,
            "message": result.message,
        })
        return result

    def play_turn(self, manager) -> list[ActionResult]:
        return list(self.take_turn(manager))

    def reset(self):
        """Reset commander state for a new game."""
        self.turn_count = 0
        self.history = []
