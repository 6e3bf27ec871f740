"""
WFRP rules engine.

Prepares characters, builds and resolves tests, and turns results into
state updates for a host-owned store.
"""

from wfrp_engine.config import GameSettings, RuleConfig, RuleContext, setup_logging
from wfrp_engine.consequences import ConsequenceReport, DamageType, FollowUpTest, TablePrompt
from wfrp_engine.data_models import (
    BodyLocation,
    Character,
    CharacteristicId,
    Condition,
    ConditionId,
    DiceRoller,
    PossessionKind,
    build_possession,
)
from wfrp_engine.engine import RulesEngine, TestRun
from wfrp_engine.errors import (
    ConcurrencyRaceError,
    DataIntegrityWarning,
    InvalidExtendedTestError,
    NoAmmoError,
    NoFortuneError,
    NonRollableTraitError,
    NotLoadedError,
    RuleHookError,
    RulesEngineError,
    SubjectNotFoundError,
    UserInputError,
)
from wfrp_engine.interfaces import StateUpdate, Store, UpdateOp
from wfrp_engine.resolution import SituationalContext, TestCategory, TestOptions, TestResult, TestSpecification
from wfrp_engine.store import InMemoryStore

__version__ = "0.1.0"

__all__ = [
    "GameSettings",
    "RuleConfig",
    "RuleContext",
    "setup_logging",
    "ConsequenceReport",
    "DamageType",
    "FollowUpTest",
    "TablePrompt",
    "BodyLocation",
    "Character",
    "CharacteristicId",
    "Condition",
    "ConditionId",
    "DiceRoller",
    "PossessionKind",
    "build_possession",
    "RulesEngine",
    "TestRun",
    "ConcurrencyRaceError",
    "DataIntegrityWarning",
    "InvalidExtendedTestError",
    "NoAmmoError",
    "NoFortuneError",
    "NonRollableTraitError",
    "NotLoadedError",
    "RuleHookError",
    "RulesEngineError",
    "SubjectNotFoundError",
    "UserInputError",
    "StateUpdate",
    "Store",
    "UpdateOp",
    "SituationalContext",
    "TestCategory",
    "TestOptions",
    "TestResult",
    "TestSpecification",
    "InMemoryStore",
]
