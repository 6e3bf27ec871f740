"""
Setters for clamped status pools.

Each returns the StateUpdate to submit; the value is always clamped into
[0, max] first.
"""

import logging

from wfrp_engine.character.derived_attributes import PreparedCharacter, clamp
from wfrp_engine.interfaces import StateUpdate

logger = logging.getLogger(__name__)


def set_advantage(character: PreparedCharacter, value: int) -> StateUpdate:
    clamped = clamp(value, 0, character.advantage.max)
    if clamped != value:
        logger.debug(f"{character.name}: advantage {value} clamped to {clamped}")
    return StateUpdate.update(character.character_id, {"advantage.value": clamped}, reason="advantage")


def modify_advantage(character: PreparedCharacter, delta: int) -> StateUpdate:
    return set_advantage(character, character.advantage.value + delta)


def set_wounds(character: PreparedCharacter, value: int) -> StateUpdate:
    clamped = clamp(value, 0, character.wounds.max)
    return StateUpdate.update(character.character_id, {"wounds.value": clamped}, reason="wounds")


def modify_wounds(character: PreparedCharacter, delta: int) -> StateUpdate:
    return set_wounds(character, character.wounds.value + delta)
