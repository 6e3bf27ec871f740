"""
Mutable context objects handed to hook callbacks, one per trigger family.

Hooks read what they need and either mutate the documented fields or return
ModifierContribution lists (prefill triggers).
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from wfrp_engine.data_models import BodyLocation, Character, CharacteristicId


@dataclass
class PrepareHookContext:
    """PRE_PREPARE_DATA, PREPARE_DATA, PRE_WOUND_CALC and WOUND_CALC."""
    character: Character
    characteristic_modifiers: dict[CharacteristicId, int] = field(default_factory=dict)
    wound_multipliers: dict[str, int] = field(default_factory=lambda: {"sb": 0, "tb": 0, "wpb": 0})
    melee_damage_increase: int = 0
    ranged_damage_increase: int = 0
    flags: dict[str, Any] = field(default_factory=dict)
    # Set before WOUND_CALC; hooks may overwrite it
    wounds: Optional[int] = None


@dataclass
class PrefillHookContext:
    """PREFILL_DIALOG and TARGET_PREFILL_DIALOG. Return contributions."""
    actor: Any  # PreparedCharacter
    category: Any  # TestCategory
    subject_name: str
    options: Any  # TestOptions
    weapon: Any = None  # PreparedWeapon
    target: Any = None  # PreparedCharacter


@dataclass
class RollHookContext:
    """ROLL_TEST. Hooks may adjust sl and add payload entries."""
    actor_id: str
    spec: Any  # TestSpecification
    roll: int
    target: int
    success: bool
    sl: int
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class DamageHookContext:
    """
    PRE_TAKE_DAMAGE, TAKE_DAMAGE (defender scope) and APPLY_DAMAGE (attacker scope).

    total_wound_loss is the raw damage before toughness and armour for
    PRE_TAKE_DAMAGE, and the mitigated wound loss afterwards.
    """
    defender: Any  # PreparedCharacter
    attacker: Any  # PreparedCharacter or None
    location: BodyLocation
    total_wound_loss: int
    damage_type: Any  # DamageType
    messages: list[str] = field(default_factory=list)
