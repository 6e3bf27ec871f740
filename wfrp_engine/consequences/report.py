"""
Records returned by the consequence layer.

A ConsequenceReport is the processor's whole output: the StateUpdates for the
host's store, a readable summary, and anything the host still has to roll
(follow-up tests, table prompts).
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from wfrp_engine.data_models import CharacteristicId
from wfrp_engine.interfaces import StateUpdate
from wfrp_engine.resolution.specification import TestCategory, TestOptions


@dataclass
class FollowUpTest:
    """A test the rules demand next (mutation, lingering disease, terror)."""
    actor_id: str
    category: TestCategory
    subject: Union[str, CharacteristicId]
    options: TestOptions = field(default_factory=TestOptions)
    # Characteristic to test when the character lacks the skill
    fallback: Optional[CharacteristicId] = None
    reason: str = ""


@dataclass(frozen=True)
class TablePrompt:
    """A roll table the host should present."""
    table: str
    modifier: int = 0
    reason: str = ""


@dataclass
class IncomeResult:
    amount: int
    tier: str
    description: str


@dataclass
class ConsequenceReport:
    """Everything one result does to the game state."""
    actor_id: str
    updates: list[StateUpdate] = field(default_factory=list)
    summary: list[str] = field(default_factory=list)
    follow_up_tests: list[FollowUpTest] = field(default_factory=list)
    table_prompts: list[TablePrompt] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    income: Optional[IncomeResult] = None
    details: dict[str, Any] = field(default_factory=dict)

    def merge(self, other: "ConsequenceReport") -> "ConsequenceReport":
        self.updates.extend(other.updates)
        self.summary.extend(other.summary)
        self.follow_up_tests.extend(other.follow_up_tests)
        self.table_prompts.extend(other.table_prompts)
        self.warnings.extend(other.warnings)
        if other.income is not None:
            self.income = other.income
        self.details.update(other.details)
        return self
