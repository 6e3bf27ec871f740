"""
Rule configuration and the explicit context bundle.

RuleConfig holds the static lookup tables of the ruleset. GameSettings holds
the house-rule toggles a table can change. RuleContext bundles both with the
hook registry, dice and run log so every component receives them explicitly.
"""

from dataclasses import dataclass, field
from typing import Optional
import logging

from wfrp_engine.data_models import (
    ArmourType,
    BodyLocation,
    CharacteristicId,
    ConditionId,
    DiceRoller,
    SizeCategory,
    StatusTier,
)
from wfrp_engine.hooks.registry import HookRegistry
from wfrp_engine.observability.run_log import RunLog, get_run_log

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Configure console logging for hosts that want it."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )


# =============================================================================
# STATIC TABLES
# =============================================================================


# Ordered easiest to hardest; stepping a difficulty by +1 makes it harder.
DIFFICULTY_MODIFIERS: dict[str, int] = {
    "veasy": 60,
    "easy": 40,
    "average": 20,
    "challenging": 0,
    "difficult": -10,
    "hard": -20,
    "vhard": -30,
}

DIFFICULTY_LABELS: dict[str, str] = {
    "veasy": "Very Easy",
    "easy": "Easy",
    "average": "Average",
    "challenging": "Challenging",
    "difficult": "Difficult",
    "hard": "Hard",
    "vhard": "Very Hard",
}

CHARACTERISTIC_LABELS: dict[CharacteristicId, str] = {
    CharacteristicId.WS: "Weapon Skill",
    CharacteristicId.BS: "Ballistic Skill",
    CharacteristicId.S: "Strength",
    CharacteristicId.T: "Toughness",
    CharacteristicId.I: "Initiative",
    CharacteristicId.AG: "Agility",
    CharacteristicId.DEX: "Dexterity",
    CharacteristicId.INT: "Intelligence",
    CharacteristicId.WP: "Willpower",
    CharacteristicId.FEL: "Fellowship",
}

SIZE_NUMBERS: dict[SizeCategory, int] = {size: index for index, size in enumerate(SizeCategory)}

SIZE_LABELS: dict[SizeCategory, str] = {
    SizeCategory.TINY: "Tiny",
    SizeCategory.LITTLE: "Little",
    SizeCategory.SMALL: "Small",
    SizeCategory.AVERAGE: "Average",
    SizeCategory.LARGE: "Large",
    SizeCategory.ENORMOUS: "Enormous",
    SizeCategory.MONSTROUS: "Monstrous",
}

RANGED_SIZE_MODIFIERS: dict[SizeCategory, int] = {
    SizeCategory.TINY: -30,
    SizeCategory.LITTLE: -20,
    SizeCategory.SMALL: -10,
    SizeCategory.AVERAGE: 0,
    SizeCategory.LARGE: 20,
    SizeCategory.ENORMOUS: 40,
    SizeCategory.MONSTROUS: 60,
}

ARMOUR_STEALTH_PENALTIES: dict[ArmourType, int] = {
    ArmourType.MAIL: -10,
    ArmourType.PLATE: -10,
}


@dataclass(frozen=True)
class RangeBand:
    """A discrete range band as a fraction of the weapon's range."""
    name: str
    difficulty: str
    lower_factor: float
    upper_factor: float


RANGE_BANDS: tuple[RangeBand, ...] = (
    RangeBand("Point Blank", "easy", 0.0, 0.1),
    RangeBand("Short Range", "average", 0.1, 0.5),
    RangeBand("Normal", "challenging", 0.5, 1.0),
    RangeBand("Long Range", "difficult", 1.0, 2.0),
    RangeBand("Extreme", "vhard", 2.0, 3.0),
)

# Multiplier on the career standing; gold pays the product directly,
# brass and silver roll that many d10.
STATUS_TIER_EARNINGS: dict[StatusTier, int] = {
    StatusTier.BRASS: 2,
    StatusTier.SILVER: 1,
    StatusTier.GOLD: 1,
}

STATUS_TIER_LABELS: dict[StatusTier, str] = {
    StatusTier.BRASS: "Brass",
    StatusTier.SILVER: "Silver",
    StatusTier.GOLD: "Gold",
}

# (low, high, location) inclusive percentile bands
HIT_LOCATION_TABLE: tuple[tuple[int, int, BodyLocation], ...] = (
    (1, 9, BodyLocation.HEAD),
    (10, 24, BodyLocation.LEFT_ARM),
    (25, 44, BodyLocation.RIGHT_ARM),
    (45, 79, BodyLocation.BODY),
    (80, 89, BodyLocation.LEFT_LEG),
    (90, 100, BodyLocation.RIGHT_LEG),
)

CRITICAL_TABLES: dict[BodyLocation, str] = {
    BodyLocation.HEAD: "crithead",
    BodyLocation.BODY: "critbody",
    BodyLocation.LEFT_ARM: "critarm",
    BodyLocation.RIGHT_ARM: "critarm",
    BodyLocation.LEFT_LEG: "critleg",
    BodyLocation.RIGHT_LEG: "critleg",
}

CORRUPTION_TABLES: tuple[str, ...] = ("mutatephys", "mutatemental")


@dataclass(frozen=True)
class CorruptionStrength:
    """Gain on failure and the SL thresholds under which a success still gains."""
    on_failure: int
    # (sl_below, gain) checked in order; first match wins
    on_success: tuple[tuple[int, int], ...] = ()


CORRUPTION_STRENGTHS: dict[str, CorruptionStrength] = {
    "minor": CorruptionStrength(on_failure=1),
    "moderate": CorruptionStrength(on_failure=2, on_success=((2, 1),)),
    "major": CorruptionStrength(on_failure=3, on_success=((2, 2), (4, 1))),
}


@dataclass(frozen=True)
class ConditionDefinition:
    """Static behaviour of one condition."""
    numbered: bool
    modifier_per_stack: int = 0
    # None applies to every test; otherwise characteristics whose tests suffer
    affects: Optional[tuple[CharacteristicId, ...]] = None
    # skills (name prefix) affected in addition to the characteristics
    affects_skills: tuple[str, ...] = ()
    # modifier granted to melee attackers targeting a character with it
    attacker_bonus: int = 0
    system: bool = False


CONDITION_DEFINITIONS: dict[ConditionId, ConditionDefinition] = {
    ConditionId.ABLAZE: ConditionDefinition(numbered=True),
    ConditionId.BLEEDING: ConditionDefinition(numbered=True),
    ConditionId.BLINDED: ConditionDefinition(
        numbered=True, modifier_per_stack=-10,
        affects=(CharacteristicId.WS, CharacteristicId.BS), affects_skills=("Perception",),
    ),
    ConditionId.BROKEN: ConditionDefinition(numbered=True, modifier_per_stack=-10),
    ConditionId.DEAFENED: ConditionDefinition(numbered=True, modifier_per_stack=-10, affects=(), affects_skills=("Perception",)),
    ConditionId.ENTANGLED: ConditionDefinition(numbered=True, modifier_per_stack=-10, affects=(CharacteristicId.AG,)),
    ConditionId.FATIGUED: ConditionDefinition(numbered=True, modifier_per_stack=-10),
    ConditionId.POISONED: ConditionDefinition(numbered=True, modifier_per_stack=-10),
    ConditionId.STUNNED: ConditionDefinition(numbered=True, modifier_per_stack=-10),
    ConditionId.PRONE: ConditionDefinition(numbered=False, attacker_bonus=20),
    ConditionId.SURPRISED: ConditionDefinition(numbered=False, attacker_bonus=20),
    ConditionId.UNCONSCIOUS: ConditionDefinition(numbered=False, attacker_bonus=20),
    ConditionId.ENGAGED: ConditionDefinition(numbered=False),
    ConditionId.DEAD: ConditionDefinition(numbered=False),
    ConditionId.ENC1: ConditionDefinition(numbered=False, modifier_per_stack=-10, affects=(CharacteristicId.AG,), system=True),
    ConditionId.ENC2: ConditionDefinition(numbered=False, modifier_per_stack=-20, affects=(CharacteristicId.AG,), system=True),
    ConditionId.ENC3: ConditionDefinition(numbered=False, modifier_per_stack=-30, affects=(CharacteristicId.AG,), system=True),
}

# Reaching zero on these numbered conditions leaves the character fatigued.
FATIGUE_ON_ZERO: frozenset[ConditionId] = frozenset({
    ConditionId.BLEEDING,
    ConditionId.POISONED,
    ConditionId.BROKEN,
    ConditionId.STUNNED,
})

BASIC_SKILLS: tuple[tuple[str, CharacteristicId], ...] = (
    ("Art", CharacteristicId.DEX),
    ("Athletics", CharacteristicId.AG),
    ("Bribery", CharacteristicId.FEL),
    ("Charm", CharacteristicId.FEL),
    ("Charm Animal", CharacteristicId.WP),
    ("Climb", CharacteristicId.S),
    ("Cool", CharacteristicId.WP),
    ("Consume Alcohol", CharacteristicId.T),
    ("Dodge", CharacteristicId.AG),
    ("Drive", CharacteristicId.AG),
    ("Endurance", CharacteristicId.T),
    ("Entertain", CharacteristicId.FEL),
    ("Gamble", CharacteristicId.INT),
    ("Gossip", CharacteristicId.FEL),
    ("Haggle", CharacteristicId.FEL),
    ("Intimidate", CharacteristicId.S),
    ("Intuition", CharacteristicId.I),
    ("Leadership", CharacteristicId.FEL),
    ("Melee (Basic)", CharacteristicId.WS),
    ("Navigation", CharacteristicId.I),
    ("Outdoor Survival", CharacteristicId.INT),
    ("Perception", CharacteristicId.I),
    ("Ride", CharacteristicId.AG),
    ("Row", CharacteristicId.S),
    ("Stealth", CharacteristicId.AG),
)

# (name, value in brass pennies), highest first
STARTER_MONEY: tuple[tuple[str, int], ...] = (
    ("Gold Crown", 240),
    ("Silver Shilling", 12),
    ("Brass Penny", 1),
)

MONEY_BY_TIER: dict[StatusTier, str] = {
    StatusTier.BRASS: "Brass Penny",
    StatusTier.SILVER: "Silver Shilling",
    StatusTier.GOLD: "Gold Crown",
}

# XP per advance; each entry covers five advances.
CHARACTERISTIC_ADVANCE_COSTS: tuple[int, ...] = (25, 30, 40, 50, 70, 90, 120, 150, 190, 230)
SKILL_ADVANCE_COSTS: tuple[int, ...] = (10, 15, 20, 30, 40, 60, 80, 110, 140, 180)


@dataclass(frozen=True)
class RuleConfig:
    """Read-only ruleset tables, versioned with the ruleset."""
    version: str = "4e"
    difficulty_modifiers: dict[str, int] = field(default_factory=lambda: dict(DIFFICULTY_MODIFIERS))
    difficulty_labels: dict[str, str] = field(default_factory=lambda: dict(DIFFICULTY_LABELS))
    size_numbers: dict[SizeCategory, int] = field(default_factory=lambda: dict(SIZE_NUMBERS))
    size_labels: dict[SizeCategory, str] = field(default_factory=lambda: dict(SIZE_LABELS))
    ranged_size_modifiers: dict[SizeCategory, int] = field(default_factory=lambda: dict(RANGED_SIZE_MODIFIERS))
    armour_stealth_penalties: dict[ArmourType, int] = field(default_factory=lambda: dict(ARMOUR_STEALTH_PENALTIES))
    range_bands: tuple[RangeBand, ...] = RANGE_BANDS
    status_tier_earnings: dict[StatusTier, int] = field(default_factory=lambda: dict(STATUS_TIER_EARNINGS))
    hit_location_table: tuple[tuple[int, int, BodyLocation], ...] = HIT_LOCATION_TABLE
    critical_tables: dict[BodyLocation, str] = field(default_factory=lambda: dict(CRITICAL_TABLES))
    corruption_tables: tuple[str, ...] = CORRUPTION_TABLES
    corruption_strengths: dict[str, CorruptionStrength] = field(default_factory=lambda: dict(CORRUPTION_STRENGTHS))
    condition_definitions: dict[ConditionId, ConditionDefinition] = field(default_factory=lambda: dict(CONDITION_DEFINITIONS))
    basic_skills: tuple[tuple[str, CharacteristicId], ...] = BASIC_SKILLS
    starter_money: tuple[tuple[str, int], ...] = STARTER_MONEY
    characteristic_advance_costs: tuple[int, ...] = CHARACTERISTIC_ADVANCE_COSTS
    skill_advance_costs: tuple[int, ...] = SKILL_ADVANCE_COSTS
    advantage_ceiling: int = 10
    default_difficulty: str = "challenging"

    @property
    def difficulty_order(self) -> list[str]:
        return list(self.difficulty_modifiers)

    def difficulty_modifier(self, difficulty: str) -> int:
        return self.difficulty_modifiers.get(difficulty, 0)

    def step_difficulty(self, difficulty: str, steps: int) -> str:
        """Move a difficulty along the ladder; positive steps make it harder."""
        order = self.difficulty_order
        if difficulty not in order:
            difficulty = self.default_difficulty
        index = max(0, min(len(order) - 1, order.index(difficulty) + steps))
        return order[index]

    def size_from_label(self, label: str) -> Optional[SizeCategory]:
        """Find a size by key or display label (case-insensitive)."""
        wanted = label.strip().lower()
        for size, size_label in self.size_labels.items():
            if wanted in (size.value, size_label.lower()):
                return size
        return None

    def hit_location(self, roll: int) -> BodyLocation:
        for low, high, location in self.hit_location_table:
            if low <= roll <= high:
                return location
        return BodyLocation.BODY


# =============================================================================
# SETTINGS
# =============================================================================


@dataclass
class GameSettings:
    """House rules and automation toggles."""
    auto_fill_advantage: bool = True
    cap_advantage_ib: bool = False
    range_auto_calculation: bool = True
    test_default_difficulty: bool = False
    extended_tests_zero_sl: bool = False
    dangerous_crits: bool = False
    dangerous_crits_mod: int = 10
    channelling_ingredients: bool = True
    overcast_from_sl: bool = False


@dataclass
class RuleContext:
    """Everything a component needs besides the character itself."""
    config: RuleConfig = field(default_factory=RuleConfig)
    settings: GameSettings = field(default_factory=GameSettings)
    hooks: HookRegistry = field(default_factory=HookRegistry)
    dice: DiceRoller = field(default_factory=DiceRoller)
    run_log: RunLog = field(default_factory=get_run_log)
    combat_active: bool = False
    combat_started: bool = False

    def __post_init__(self):
        if self.dice.run_log is None:
            self.dice.run_log = self.run_log
