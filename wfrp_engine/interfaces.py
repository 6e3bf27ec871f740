"""
Boundaries to the host.

The engine never writes state itself. Every change is a StateUpdate handed to
a Store; dialogs, notifications and audio cues are optional side channels.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Protocol, runtime_checkable

from wfrp_engine.data_models import ConditionId, DiceResult


class UpdateOp(str, Enum):
    UPDATE = "update"
    CREATE_CHILD = "create_child"
    DELETE_CHILD = "delete_child"


@dataclass(frozen=True)
class StateUpdate:
    """
    One requested change to persisted state.

    UPDATE targets a character id (dotted paths such as "wounds.value") or a
    possession id (field names). CREATE_CHILD adds a possession or condition
    under parent_id. DELETE_CHILD removes target_id.
    """
    op: UpdateOp
    target_id: Optional[str] = None
    changes: dict[str, Any] = field(default_factory=dict)
    parent_id: Optional[str] = None
    kind: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)
    reason: str = ""

    @classmethod
    def update(cls, target_id: str, changes: dict[str, Any], reason: str = "") -> "StateUpdate":
        return cls(op=UpdateOp.UPDATE, target_id=target_id, changes=dict(changes), reason=reason)

    @classmethod
    def create_child(cls, parent_id: str, kind: str, data: dict[str, Any], reason: str = "") -> "StateUpdate":
        return cls(op=UpdateOp.CREATE_CHILD, parent_id=parent_id, kind=kind, data=dict(data), reason=reason)

    @classmethod
    def delete_child(cls, target_id: str, parent_id: Optional[str] = None, reason: str = "") -> "StateUpdate":
        return cls(op=UpdateOp.DELETE_CHILD, target_id=target_id, parent_id=parent_id, reason=reason)


def condition_child_id(character_id: str, condition_id: ConditionId) -> str:
    """Store id of a condition attached to a character."""
    return f"{character_id}/{ConditionId(condition_id).value}"


# =============================================================================
# PROTOCOLS
# =============================================================================


@runtime_checkable
class Store(Protocol):
    """Persistence owned by the host."""

    def get(self, entity_id: str) -> Any:
        ...

    def update(self, entity_id: str, changes: dict[str, Any]) -> Any:
        ...

    def create_child(self, parent_id: str, kind: str, data: dict[str, Any]) -> Any:
        ...

    def delete_child(self, entity_id: str) -> Any:
        ...


class RandomSource(Protocol):
    """Dice. DiceRoller is the standard implementation."""

    def roll_percentile(self, reason: str = "") -> DiceResult:
        ...

    def roll(self, dice: str, reason: str = "") -> DiceResult:
        ...


class Dialog(Protocol):
    """Lets a player review and edit a test before it is rolled.

    Returns the (possibly edited) specification, or None if cancelled.
    """

    def confirm(self, spec: Any) -> Optional[Any]:
        ...


class Notifier(Protocol):
    def notify(self, level: str, message: str) -> None:
        ...


class AudioHint(Protocol):
    def play(self, context: dict[str, Any]) -> None:
        ...
