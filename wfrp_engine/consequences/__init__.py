"""Consequences of resolved tests: damage, progress, corruption, afflictions."""

from wfrp_engine.consequences.afflictions import AfflictionTracker
from wfrp_engine.consequences.consequence_processor import (
    ConsequenceProcessor,
    corruption_gain,
    extended_contribution,
)
from wfrp_engine.consequences.damage import (
    CriticalPrompt,
    DamageReport,
    DamageType,
    apply_basic_damage,
    apply_damage,
)
from wfrp_engine.consequences.report import (
    ConsequenceReport,
    FollowUpTest,
    IncomeResult,
    TablePrompt,
)

__all__ = [
    "AfflictionTracker",
    "ConsequenceProcessor",
    "corruption_gain",
    "extended_contribution",
    "CriticalPrompt",
    "DamageReport",
    "DamageType",
    "apply_basic_damage",
    "apply_damage",
    "ConsequenceReport",
    "FollowUpTest",
    "IncomeResult",
    "TablePrompt",
]
