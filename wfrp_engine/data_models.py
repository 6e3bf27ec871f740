"""
Core data models for the WFRP rules engine.

Contains the raw (authoritative) character record, the possession variants a
character can own, status conditions, and the DiceRoller through which every
random draw is made. Derived values never live here; they are produced by the
DerivedAttributeEngine as a separate prepared view.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Optional, Union
import logging
import random
import re
import uuid

logger = logging.getLogger(__name__)


def new_id(prefix: str = "") -> str:
    """Generate a short unique id for a new record."""
    suffix = uuid.uuid4().hex[:12]
    return f"{prefix}_{suffix}" if prefix else suffix


# =============================================================================
# ENUMS
# =============================================================================


class CharacteristicId(str, Enum):
    """The ten characteristics."""
    WS = "ws"
    BS = "bs"
    S = "s"
    T = "t"
    I = "i"
    AG = "ag"
    DEX = "dex"
    INT = "int"
    WP = "wp"
    FEL = "fel"


class SizeCategory(str, Enum):
    """Creature size tiers, smallest first."""
    TINY = "tiny"
    LITTLE = "ltl"
    SMALL = "sml"
    AVERAGE = "avg"
    LARGE = "lrg"
    ENORMOUS = "enor"
    MONSTROUS = "mnst"


class ActorType(str, Enum):
    CHARACTER = "character"
    NPC = "npc"
    CREATURE = "creature"


class PossessionKind(str, Enum):
    """Discriminant for the possession variants."""
    SKILL = "skill"
    TALENT = "talent"
    TRAIT = "trait"
    WEAPON = "weapon"
    ARMOUR = "armour"
    AMMUNITION = "ammunition"
    SPELL = "spell"
    PRAYER = "prayer"
    CAREER = "career"
    DISEASE = "disease"
    INJURY = "injury"
    TRAPPING = "trapping"
    CONTAINER = "container"
    EXTENDED_TEST = "extended_test"
    MONEY = "money"


class AttackType(str, Enum):
    MELEE = "melee"
    RANGED = "ranged"


class BodyLocation(str, Enum):
    """Hit locations. Shield AP is tracked separately."""
    HEAD = "head"
    BODY = "body"
    LEFT_ARM = "lArm"
    RIGHT_ARM = "rArm"
    LEFT_LEG = "lLeg"
    RIGHT_LEG = "rLeg"


class ArmourType(str, Enum):
    SOFT_LEATHER = "softLeather"
    BOILED_LEATHER = "boiledLeather"
    MAIL = "mail"
    PLATE = "plate"
    OTHER = "other"


class CompletionPolicy(str, Enum):
    """What an extended test tracker does once its target is reached."""
    NONE = "none"
    RESET = "reset"
    REMOVE = "remove"


class StatusTier(str, Enum):
    BRASS = "b"
    SILVER = "s"
    GOLD = "g"


class ConditionId(str, Enum):
    """Status conditions, including system-managed encumbrance states."""
    ABLAZE = "ablaze"
    BLEEDING = "bleeding"
    BLINDED = "blinded"
    BROKEN = "broken"
    DEAFENED = "deafened"
    ENTANGLED = "entangled"
    FATIGUED = "fatigued"
    POISONED = "poisoned"
    PRONE = "prone"
    STUNNED = "stunned"
    SURPRISED = "surprised"
    UNCONSCIOUS = "unconscious"
    ENGAGED = "engaged"
    DEAD = "dead"
    ENC1 = "enc1"
    ENC2 = "enc2"
    ENC3 = "enc3"


# =============================================================================
# DICE
# =============================================================================


@dataclass
class DiceResult:
    """Result of a dice roll with full information."""
    notation: str
    rolls: list[int]
    modifier: int
    total: int
    reason: str
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        if self.modifier > 0:
            return f"{self.notation}: {self.rolls} + {self.modifier} = {self.total}"
        elif self.modifier < 0:
            return f"{self.notation}: {self.rolls} - {abs(self.modifier)} = {self.total}"
        return f"{self.notation}: {self.rolls} = {self.total}"


class DiceRoller:
    """
    Randomization interface.

    All dice rolls go through an instance of this class so they can be
    seeded, scripted in tests, and recorded on the run log.
    """

    _NOTATION = re.compile(r"^(\d*)d(\d+)(?:([+-])(\d+))?$", re.IGNORECASE)
    _CONSTANT = re.compile(r"^[+-]?\d+$")

    def __init__(self, seed: Optional[int] = None, run_log: Any = None):
        self._seed = seed
        self._random = random.Random(seed)
        self._roll_log: list[DiceResult] = []
        self.run_log = run_log

    def set_seed(self, seed: int) -> None:
        """Set random seed for reproducibility."""
        self._seed = seed
        self._random.seed(seed)
        if self.run_log is not None:
            self.run_log.set_seed(seed)

    def _roll_die(self, die_size: int) -> int:
        return self._random.randint(1, die_size)

    def roll(self, dice: Union[str, int], reason: str = "") -> DiceResult:
        """
        Roll dice using standard notation (e.g. '2d10', '1d10+3', '8').

        Args:
            dice: Dice notation string; a bare integer is a fixed amount
            reason: Why this roll is being made (for logging)

        Returns:
            DiceResult with individual rolls and total

        Raises:
            ValueError: If the notation cannot be parsed
        """
        notation = str(dice).replace(" ", "")

        if self._CONSTANT.match(notation):
            value = int(notation)
            result = DiceResult(notation=notation, rolls=[], modifier=value, total=value, reason=reason)
            self._record(result)
            return result

        match = self._NOTATION.match(notation)
        if not match:
            raise ValueError(f"Invalid dice notation: {dice!r}")

        num_dice = int(match.group(1)) if match.group(1) else 1
        die_size = int(match.group(2))
        modifier = int(match.group(4)) if match.group(4) else 0
        if match.group(3) == "-":
            modifier = -modifier

        rolls = [self._roll_die(die_size) for _ in range(num_dice)]
        result = DiceResult(
            notation=notation,
            rolls=rolls,
            modifier=modifier,
            total=sum(rolls) + modifier,
            reason=reason,
        )
        self._record(result)
        return result

    def _record(self, result: DiceResult) -> None:
        self._roll_log.append(result)
        logger.debug(f"Rolled {result} ({result.reason})")
        if self.run_log is not None:
            self.run_log.log_roll(
                notation=result.notation,
                rolls=result.rolls,
                modifier=result.modifier,
                total=result.total,
                reason=result.reason,
            )

    def roll_percentile(self, reason: str = "") -> DiceResult:
        """Roll d100 for a test."""
        return self.roll("1d100", reason)

    def roll_die(self, expression: str, reason: str = "") -> int:
        """Roll an expression and return only the total."""
        return self.roll(expression, reason).total

    def get_roll_log(self) -> list[DiceResult]:
        """Get every roll made through this roller."""
        return self._roll_log.copy()

    def clear_roll_log(self) -> None:
        self._roll_log = []


# =============================================================================
# CHARACTER COMPONENTS
# =============================================================================


@dataclass
class Characteristic:
    """Raw characteristic record. value and bonus are derived."""
    initial: int = 0
    advances: int = 0
    modifier: int = 0
    calculation_bonus_modifier: int = 0


@dataclass
class StatusPool:
    value: int = 0
    max: int = 0


@dataclass
class Movement:
    value: int = 4
    walk: int = 8
    run: int = 16


@dataclass
class AutoCalcFlags:
    """Which derived stats are computed rather than taken from raw values."""
    run: bool = True
    walk: bool = True
    wounds: bool = True
    critical_wounds: bool = True
    corruption: bool = True
    encumbrance: bool = True
    size: bool = True


@dataclass
class ExperienceLogEntry:
    reason: str
    amount: int
    spent: int
    total: int
    entry_type: str = "total"  # "total" or "spent"


@dataclass
class Experience:
    total: int = 0
    spent: int = 0
    log: list[ExperienceLogEntry] = field(default_factory=list)

    @property
    def current(self) -> int:
        return self.total - self.spent


# =============================================================================
# POSSESSIONS
# =============================================================================


class PropertiesMixin:
    """Lookup helpers for items carrying qualities and flaws.

    Both are stored as lower-case name -> optional rating.
    """

    qualities: dict[str, Optional[int]]
    flaws: dict[str, Optional[int]]

    def has_quality(self, name: str) -> bool:
        return name.lower() in self.qualities

    def has_flaw(self, name: str) -> bool:
        return name.lower() in self.flaws

    def quality_value(self, name: str, default: int = 0) -> int:
        value = self.qualities.get(name.lower())
        return default if value is None else value

    def flaw_value(self, name: str, default: int = 0) -> int:
        value = self.flaws.get(name.lower())
        return default if value is None else value


@dataclass
class Possession:
    """Any owned item. Concrete variants set ``kind``."""
    possession_id: str
    name: str
    encumbrance: float = 0.0
    quantity: int = 1
    container_id: Optional[str] = None

    kind: ClassVar[Optional[PossessionKind]] = None

    @property
    def total_encumbrance(self) -> float:
        return self.encumbrance * self.quantity


@dataclass
class Skill(Possession):
    characteristic: CharacteristicId = CharacteristicId.INT
    advances: int = 0
    modifier: int = 0
    advanced: bool = False

    kind: ClassVar[PossessionKind] = PossessionKind.SKILL


@dataclass
class Talent(Possession):
    advances: int = 1  # times taken
    tests: str = ""

    kind: ClassVar[PossessionKind] = PossessionKind.TALENT


@dataclass
class TraitRoll:
    """How a rollable trait is tested and what damage it deals."""
    characteristic: CharacteristicId
    skill: Optional[str] = None
    bonus_characteristic: Optional[CharacteristicId] = None
    damage: Optional[int] = None
    attack_type: Optional[AttackType] = None
    default_difficulty: str = "challenging"


@dataclass
class Trait(Possession, PropertiesMixin):
    specification: str = ""
    rollable: Optional[TraitRoll] = None
    disabled: bool = False
    qualities: dict[str, Optional[int]] = field(default_factory=dict)
    flaws: dict[str, Optional[int]] = field(default_factory=dict)

    kind: ClassVar[PossessionKind] = PossessionKind.TRAIT

    @property
    def specification_value(self) -> Optional[int]:
        """Leading integer in the specification, e.g. 9 for "9+"."""
        match = re.search(r"-?\d+", self.specification or "")
        return int(match.group(0)) if match else None


@dataclass
class Weapon(Possession, PropertiesMixin):
    damage: str = "0"
    weapon_group: str = "basic"
    attack_type: AttackType = AttackType.MELEE
    reach: str = "average"
    range: str = ""
    skill: Optional[str] = None
    two_handed: bool = False
    offhand: bool = False
    equipped: bool = True
    qualities: dict[str, Optional[int]] = field(default_factory=dict)
    flaws: dict[str, Optional[int]] = field(default_factory=dict)
    consumes_ammo: bool = False
    ammunition_group: Optional[str] = None
    current_ammo_id: Optional[str] = None
    loaded: bool = False
    loaded_amount: int = 0
    loaded_max: int = 1
    damage_to_item: int = 0

    kind: ClassVar[PossessionKind] = PossessionKind.WEAPON

    @property
    def is_loading(self) -> bool:
        """Weapons with the Reload flaw must be loaded before firing."""
        return self.has_flaw("reload")


@dataclass
class Armour(Possession, PropertiesMixin):
    armour_type: ArmourType = ArmourType.SOFT_LEATHER
    ap: dict[BodyLocation, int] = field(default_factory=dict)
    damage_to_item: dict[BodyLocation, int] = field(default_factory=dict)
    worn: bool = True
    qualities: dict[str, Optional[int]] = field(default_factory=dict)
    flaws: dict[str, Optional[int]] = field(default_factory=dict)

    kind: ClassVar[PossessionKind] = PossessionKind.ARMOUR

    @property
    def is_metal(self) -> bool:
        return self.armour_type in (ArmourType.MAIL, ArmourType.PLATE)


@dataclass
class Ammunition(Possession, PropertiesMixin):
    ammunition_group: str = ""
    damage: str = ""
    range_modifier: str = ""
    qualities: dict[str, Optional[int]] = field(default_factory=dict)
    flaws: dict[str, Optional[int]] = field(default_factory=dict)

    kind: ClassVar[PossessionKind] = PossessionKind.AMMUNITION


@dataclass
class Spell(Possession):
    cn: int = 0
    lore: str = ""
    wind: str = ""
    damage: str = ""
    magic_missile: bool = False
    channelled_sl: int = 0
    ingredient_id: Optional[str] = None

    kind: ClassVar[PossessionKind] = PossessionKind.SPELL


@dataclass
class Prayer(Possession):
    prayer_type: str = "blessing"
    damage: str = ""

    kind: ClassVar[PossessionKind] = PossessionKind.PRAYER


@dataclass
class Career(Possession):
    career_class: str = ""
    tier: StatusTier = StatusTier.BRASS
    standing: int = 1
    level: int = 1
    current: bool = False

    kind: ClassVar[PossessionKind] = PossessionKind.CAREER


@dataclass
class Disease(Possession):
    incubation: Union[int, str] = 0
    duration: Union[int, str] = 0
    duration_unit: str = "days"
    active: bool = False
    symptoms: list[str] = field(default_factory=list)

    kind: ClassVar[PossessionKind] = PossessionKind.DISEASE

    @property
    def lingering(self) -> bool:
        return any(s.lower().startswith("lingering") for s in self.symptoms)


@dataclass
class Injury(Possession):
    duration: Union[int, str] = 0
    location: str = ""
    penalty: str = ""

    kind: ClassVar[PossessionKind] = PossessionKind.INJURY


@dataclass
class Trapping(Possession):
    trapping_type: str = "misc"

    kind: ClassVar[PossessionKind] = PossessionKind.TRAPPING


@dataclass
class Container(Possession):
    count_contents: bool = False
    worn: bool = False
    capacity: int = 0

    kind: ClassVar[PossessionKind] = PossessionKind.CONTAINER


@dataclass
class ExtendedTest(Possession):
    test_name: str = ""
    target_sl: int = 1
    current_sl: int = 0
    failing_decreases: bool = False
    negative_possible: bool = False
    completion: CompletionPolicy = CompletionPolicy.NONE
    hidden: bool = False
    reloading_weapon_id: Optional[str] = None

    kind: ClassVar[PossessionKind] = PossessionKind.EXTENDED_TEST


@dataclass
class Money(Possession):
    coin_value: int = 1  # in brass pennies

    kind: ClassVar[PossessionKind] = PossessionKind.MONEY


POSSESSION_TYPES: dict[PossessionKind, type] = {
    cls.kind: cls
    for cls in (
        Skill, Talent, Trait, Weapon, Armour, Ammunition, Spell, Prayer,
        Career, Disease, Injury, Trapping, Container, ExtendedTest, Money,
    )
}


def build_possession(kind: Union[PossessionKind, str], data: dict[str, Any]) -> Possession:
    """Create a possession variant from a kind discriminant and field data."""
    cls = POSSESSION_TYPES[PossessionKind(kind)]
    fields = dict(data)
    fields.setdefault("possession_id", new_id(PossessionKind(kind).value))
    return cls(**fields)


# =============================================================================
# CONDITIONS
# =============================================================================


@dataclass
class Condition:
    """A status effect. value is None for boolean conditions."""
    condition_id: ConditionId
    value: Optional[int] = None

    @property
    def is_numbered(self) -> bool:
        return self.value is not None


# =============================================================================
# CHARACTER
# =============================================================================


def default_characteristics() -> dict[CharacteristicId, Characteristic]:
    return {cid: Characteristic() for cid in CharacteristicId}


@dataclass
class Character:
    """
    Raw character record.

    This is the authoritative state. Nothing derived is stored here except
    the cached maxima the host persists (wounds.max and friends), which are
    refreshed through explicit state updates.
    """
    character_id: str
    name: str
    actor_type: ActorType = ActorType.CHARACTER
    species: str = "human"
    characteristics: dict[CharacteristicId, Characteristic] = field(default_factory=default_characteristics)
    wounds: StatusPool = field(default_factory=StatusPool)
    advantage: StatusPool = field(default_factory=lambda: StatusPool(0, 10))
    corruption: StatusPool = field(default_factory=StatusPool)
    critical_wounds: StatusPool = field(default_factory=StatusPool)
    fortune: StatusPool = field(default_factory=StatusPool)
    sin: int = 0
    size: SizeCategory = SizeCategory.AVERAGE
    encumbrance_max: int = 0
    movement: Movement = field(default_factory=Movement)
    auto_calc: AutoCalcFlags = field(default_factory=AutoCalcFlags)
    experience: Experience = field(default_factory=Experience)
    possessions: list[Possession] = field(default_factory=list)
    conditions: list[Condition] = field(default_factory=list)
    mount_id: Optional[str] = None
    mounted: bool = False

    def get_possession(self, possession_id: str) -> Optional[Possession]:
        for possession in self.possessions:
            if possession.possession_id == possession_id:
                return possession
        return None

    def possessions_of(self, cls: type) -> list:
        return [p for p in self.possessions if isinstance(p, cls)]

    def _find_named(self, cls: type, name: str) -> Optional[Any]:
        wanted = name.strip().lower()
        for possession in self.possessions_of(cls):
            if possession.name.strip().lower() == wanted:
                return possession
        return None

    def find_skill(self, name: str) -> Optional[Skill]:
        return self._find_named(Skill, name)

    def find_talent(self, name: str) -> Optional[Talent]:
        return self._find_named(Talent, name)

    def find_trait(self, name: str) -> Optional[Trait]:
        trait = self._find_named(Trait, name)
        if trait is None or trait.disabled:
            return None
        return trait

    def get_condition(self, condition_id: Union[ConditionId, str]) -> Optional[Condition]:
        cid = ConditionId(condition_id)
        for condition in self.conditions:
            if condition.condition_id == cid:
                return condition
        return None

    def has_condition(self, condition_id: Union[ConditionId, str]) -> bool:
        return self.get_condition(condition_id) is not None

    @property
    def current_career(self) -> Optional[Career]:
        for career in self.possessions_of(Career):
            if career.current:
                return career
        return None
