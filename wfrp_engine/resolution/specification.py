"""
Value objects passed between test setup, confirmation and resolution.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional

from wfrp_engine.config import RuleConfig
from wfrp_engine.data_models import AttackType, CharacteristicId, SizeCategory, new_id
from wfrp_engine.equipment.equipment_resolver import PreparedWeapon
from wfrp_engine.modifiers.accumulator import ModifierContribution


class TestCategory(str, Enum):
    """What kind of test is being rolled."""

    __test__ = False

    CHARACTERISTIC = "characteristic"
    SKILL = "skill"
    WEAPON = "weapon"
    CAST = "cast"
    CHANNEL = "channel"
    PRAYER = "prayer"
    TRAIT = "trait"


@dataclass
class AbsoluteOverrides:
    """Values the caller insists on; None leaves the computed value."""
    modifier: Optional[int] = None
    difficulty: Optional[str] = None
    sl_bonus: Optional[int] = None
    success_bonus: Optional[int] = None


@dataclass
class TestOptions:
    """Free-form options for a test request."""

    __test__ = False

    title: str = ""
    characteristic: Optional[CharacteristicId] = None  # test a skill against another characteristic
    dodge: bool = False
    charging: bool = False
    offhand: bool = False
    corruption: Optional[str] = None  # minor / moderate / major
    mutate: bool = False
    rest: bool = False
    income: bool = False
    extended_test_id: Optional[str] = None
    disease_id: Optional[str] = None
    modify: Optional[ModifierContribution] = None
    absolute: Optional[AbsoluteOverrides] = None
    bypass: bool = False  # skip the confirmation dialog
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class TargetInfo:
    actor: Any  # PreparedCharacter
    distance: Optional[float] = None


@dataclass
class OpposingAttack:
    """The attack being defended against."""
    actor: Any  # PreparedCharacter
    weapon: Optional[PreparedWeapon] = None
    is_trait: bool = False


@dataclass
class SituationalContext:
    targets: list[TargetInfo] = field(default_factory=list)
    attacker: Optional[OpposingAttack] = None
    options: TestOptions = field(default_factory=TestOptions)

    @property
    def target(self) -> Optional[TargetInfo]:
        """The target, when exactly one is selected."""
        return self.targets[0] if len(self.targets) == 1 else None


@dataclass(frozen=True)
class TestSpecification:
    """
    Everything needed to resolve one test.

    Created by TestRequestBuilder, optionally edited by the dialog (via
    with_changes), then consumed once by TestResolver.
    """

    __test__ = False

    category: TestCategory
    actor_id: str
    actor_name: str
    subject_name: str
    base_target: int
    difficulty: str
    modifier: int = 0
    sl_bonus: int = 0
    success_bonus: int = 0
    hit_location: bool = False
    subject_id: Optional[str] = None
    characteristic: Optional[CharacteristicId] = None
    skill_name: Optional[str] = None
    contributions: tuple[ModifierContribution, ...] = ()
    options: TestOptions = field(default_factory=TestOptions)
    weapon: Optional[PreparedWeapon] = None
    attack_type: Optional[AttackType] = None
    damage: Optional[int] = None
    size: SizeCategory = SizeCategory.AVERAGE
    cn: int = 0
    channelled_sl: int = 0
    sin: int = 0
    warnings: tuple[str, ...] = ()
    spec_id: str = field(default_factory=lambda: new_id("test"))

    def effective_target(self, config: RuleConfig) -> int:
        return self.base_target + self.modifier + config.difficulty_modifier(self.difficulty)

    @property
    def tooltip(self) -> list[str]:
        return [c.describe() for c in self.contributions if not c.is_zero]

    def with_changes(self, **changes: Any) -> "TestSpecification":
        return replace(self, **changes)
