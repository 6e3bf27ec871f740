"""Character preparation: derived attributes, status setters and creation."""

from wfrp_engine.character.derived_attributes import (
    DerivedAttributeEngine,
    PreparedCharacter,
    PreparedCharacteristic,
    PreparedMovement,
    PreparedPool,
    calculate_wounds,
)
from wfrp_engine.character.factory import new_character, starter_possessions
from wfrp_engine.character.status import (
    modify_advantage,
    modify_wounds,
    set_advantage,
    set_wounds,
)

__all__ = [
    "DerivedAttributeEngine",
    "PreparedCharacter",
    "PreparedCharacteristic",
    "PreparedMovement",
    "PreparedPool",
    "calculate_wounds",
    "new_character",
    "starter_possessions",
    "modify_advantage",
    "modify_wounds",
    "set_advantage",
    "set_wounds",
]
