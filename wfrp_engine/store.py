"""
In-memory Store.

Holds Character records and applies StateUpdates to them. Useful for tests
and for hosts without their own persistence.

Ids resolve to, in order: a character, a condition child
("<character_id>/<condition_id>"), or a possession on any stored character.
"""

from dataclasses import fields, is_dataclass
from enum import Enum
from typing import Any, Iterable, Optional
import logging

from wfrp_engine.data_models import (
    Character,
    Condition,
    ConditionId,
    ExperienceLogEntry,
    Possession,
    build_possession,
)
from wfrp_engine.errors import SubjectNotFoundError
from wfrp_engine.interfaces import StateUpdate, UpdateOp, condition_child_id

logger = logging.getLogger(__name__)


def _coerce(current: Any, value: Any) -> Any:
    """Keep enum-typed fields as enums when given their raw value."""
    if isinstance(current, Enum) and not isinstance(value, Enum) and value is not None:
        return type(current)(value)
    return value


def _set_path(target: Any, path: str, value: Any) -> None:
    """Set a dotted attribute path such as "wounds.value"."""
    *parents, leaf = path.split(".")
    for name in parents:
        target = getattr(target, name)
    if not hasattr(target, leaf):
        raise AttributeError(f"{type(target).__name__} has no field {leaf!r}")
    if leaf == "log" and isinstance(value, list):
        value = [ExperienceLogEntry(**e) if isinstance(e, dict) else e for e in value]
    setattr(target, leaf, _coerce(getattr(target, leaf), value))


class InMemoryStore:
    """Dictionary-backed Store for Character records."""

    def __init__(self, characters: Optional[Iterable[Character]] = None):
        self._characters: dict[str, Character] = {}
        for character in characters or []:
            self.add(character)

    def add(self, character: Character) -> None:
        self._characters[character.character_id] = character

    def characters(self) -> list[Character]:
        return list(self._characters.values())

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def get_character(self, character_id: str) -> Optional[Character]:
        return self._characters.get(character_id)

    def _find_condition(self, entity_id: str) -> Optional[tuple[Character, Condition]]:
        if "/" not in entity_id:
            return None
        character_id, condition_key = entity_id.split("/", 1)
        character = self._characters.get(character_id)
        if character is None:
            return None
        condition = character.get_condition(condition_key)
        return (character, condition) if condition else None

    def _find_possession(self, entity_id: str) -> Optional[tuple[Character, Possession]]:
        for character in self._characters.values():
            possession = character.get_possession(entity_id)
            if possession is not None:
                return character, possession
        return None

    def get(self, entity_id: str) -> Any:
        if entity_id in self._characters:
            return self._characters[entity_id]
        found = self._find_condition(entity_id) or self._find_possession(entity_id)
        return found[1] if found else None

    # -------------------------------------------------------------------------
    # Store protocol
    # -------------------------------------------------------------------------

    def update(self, entity_id: str, changes: dict[str, Any]) -> Any:
        entity = self.get(entity_id)
        if entity is None:
            raise SubjectNotFoundError(f"No stored entity {entity_id!r}", subject=entity_id)
        for path, value in changes.items():
            _set_path(entity, path, value)
        return entity

    def create_child(self, parent_id: str, kind: str, data: dict[str, Any]) -> Any:
        character = self._characters.get(parent_id)
        if character is None:
            raise SubjectNotFoundError(f"No stored character {parent_id!r}", subject=parent_id)

        if kind == "condition":
            condition = Condition(condition_id=ConditionId(data["condition_id"]), value=data.get("value"))
            character.conditions.append(condition)
            return condition

        possession = build_possession(kind, data)
        if is_dataclass(possession):
            for f in fields(possession):
                value = getattr(possession, f.name)
                if f.name in data and isinstance(f.default, Enum):
                    setattr(possession, f.name, _coerce(f.default, value))
        character.possessions.append(possession)
        return possession

    def delete_child(self, entity_id: str) -> Any:
        found = self._find_condition(entity_id)
        if found is not None:
            character, condition = found
            character.conditions.remove(condition)
            return condition
        found = self._find_possession(entity_id)
        if found is not None:
            character, possession = found
            character.possessions.remove(possession)
            return possession
        logger.debug(f"delete_child: {entity_id} already gone")
        return None

    # -------------------------------------------------------------------------
    # Batches
    # -------------------------------------------------------------------------

    def apply(self, update: StateUpdate) -> Any:
        if update.op == UpdateOp.UPDATE:
            return self.update(update.target_id, update.changes)
        if update.op == UpdateOp.CREATE_CHILD:
            return self.create_child(update.parent_id, update.kind, update.data)
        return self.delete_child(update.target_id)

    def apply_all(self, updates: Iterable[StateUpdate]) -> int:
        """Apply updates in order; returns how many were applied."""
        count = 0
        for update in updates:
            self.apply(update)
            count += 1
        return count


__all__ = ["InMemoryStore", "condition_child_id"]
