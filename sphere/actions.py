"""
The closed set of actions the engine accepts, and the result of applying one.

Players and commanders alike build these and hand them to the reducer; it
is the only way to change a WorldState.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from .combat import CombatResult
from .events import GameEvent
from .rules import RejectReason
from .state import WorldState


@dataclass(frozen=True)
class SelectHex:
    q: int
    r: int


@dataclass(frozen=True)
class MoveUnit:
    unit_id: str
    q: int
    r: int


@dataclass(frozen=True)
class InitiateAttack:
    attacker_id: str
    defender_id: str
    attacker_doctrine: Optional[str] = None  # None picks the recommended one
    defender_doctrine: Optional[str] = None


@dataclass(frozen=True)
class ResolveCombat:
    result: Optional[CombatResult]


@dataclass(frozen=True)
class CancelCombat:
    pass


@dataclass(frozen=True)
class StartBuilding:
    q: int
    r: int
    building_type: str
    faction: str


@dataclass(frozen=True)
class StartTraining:
    q: int
    r: int
    unit_type: str
    faction: str


@dataclass(frozen=True)
class CancelBuilding:
    q: int
    r: int
    building_type: str
    faction: str


@dataclass(frozen=True)
class CancelTraining:
    q: int
    r: int
    unit_type: str
    faction: str


@dataclass(frozen=True)
class PerformDiplomaticAction:
    target: str
    action_key: str
    faction: Optional[str] = None  # defaults to the acting faction


@dataclass(frozen=True)
class AdvancePhase:
    pass


@dataclass(frozen=True)
class EndTurn:
    pass


Action = (
    SelectHex | MoveUnit | InitiateAttack | ResolveCombat | CancelCombat
    | StartBuilding | StartTraining | CancelBuilding | CancelTraining
    | PerformDiplomaticAction | AdvancePhase | EndTurn
)


@dataclass
class ActionResult:
    """Outcome of one dispatch. On rejection `state` is the unchanged input."""
    ok: bool
    state: WorldState
    reason: Optional[RejectReason] = None
    message: str = ""
    events: list[GameEvent] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "reason": self.reason.value if self.reason else None,
            "message": self.message,
            "events": [e.to_dict() for e in self.events],
            "data": self.data,
        }
