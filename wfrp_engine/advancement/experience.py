"""
Experience for WFRP characters.

Experience is tracked as a running total and an amount spent; the current
pool is the difference. Every award or expenditure appends an entry to the
character's experience log so the history can be audited or reversed by hand.

Advance costs follow the banded tables in RuleConfig: each band covers five
advances, and buying past the last band keeps the last band's price.
"""

from dataclasses import dataclass, field
import logging

from wfrp_engine.config import RuleConfig
from wfrp_engine.data_models import Character, ExperienceLogEntry
from wfrp_engine.errors import UserInputError
from wfrp_engine.interfaces import StateUpdate

logger = logging.getLogger(__name__)


ADVANCES_PER_BAND = 5


# =============================================================================
# ADVANCE COSTS
# =============================================================================


def advance_cost(current_advances: int, table: tuple[int, ...]) -> int:
    """XP price of the next advance given how many have been bought."""
    band = max(0, current_advances) // ADVANCES_PER_BAND
    return table[min(band, len(table) - 1)]


def cost_to_advance(current_advances: int, target_advances: int, table: tuple[int, ...]) -> int:
    """Total XP to go from current_advances to target_advances."""
    return sum(advance_cost(n, table) for n in range(current_advances, target_advances))


def characteristic_advance_cost(current_advances: int, config: RuleConfig) -> int:
    return advance_cost(current_advances, config.characteristic_advance_costs)


def skill_advance_cost(current_advances: int, config: RuleConfig) -> int:
    return advance_cost(current_advances, config.skill_advance_costs)


# =============================================================================
# RESULT DATACLASSES
# =============================================================================


@dataclass
class ExperienceResult:
    """Outcome of an award or expenditure."""
    character_id: str
    amount: int
    total: int
    spent: int
    entry: ExperienceLogEntry
    updates: list[StateUpdate] = field(default_factory=list)

    @property
    def current(self) -> int:
        return self.total - self.spent


# =============================================================================
# EXPERIENCE MANAGER
# =============================================================================


class ExperienceManager:
    """Builds the state updates for experience changes."""

    def award(self, character: Character, amount: int, reason: str = "") -> ExperienceResult:
        """
        Award experience. Negative amounts remove experience.

        Args:
            character: Recipient
            amount: XP to add to the total
            reason: Free text recorded in the log
        """
        experience = character.experience
        total = experience.total + amount
        entry = ExperienceLogEntry(
            reason=reason,
            amount=amount,
            spent=experience.spent,
            total=total,
            entry_type="total",
        )
        logger.info(f"{character.name} awarded {amount} XP ({reason or 'no reason'}), total {total}")
        return self._result(character, amount, total, experience.spent, entry)

    def spend(self, character: Character, amount: int, reason: str = "") -> ExperienceResult:
        """
        Spend experience.

        Raises:
            UserInputError: If the character does not have enough unspent XP
        """
        experience = character.experience
        if amount > experience.current:
            raise UserInputError(
                f"{character.name} has {experience.current} XP, needs {amount}",
                subject=character.name,
            )
        spent = experience.spent + amount
        entry = ExperienceLogEntry(
            reason=reason,
            amount=amount,
            spent=spent,
            total=experience.total,
            entry_type="spent",
        )
        logger.info(f"{character.name} spent {amount} XP ({reason or 'no reason'})")
        return self._result(character, amount, experience.total, spent, entry)

    @staticmethod
    def _result(
        character: Character,
        amount: int,
        total: int,
        spent: int,
        entry: ExperienceLogEntry,
    ) -> ExperienceResult:
        log = list(character.experience.log) + [entry]
        update = StateUpdate.update(
            character.character_id,
            {"experience.total": total, "experience.spent": spent, "experience.log": log},
            reason=entry.reason or "experience",
        )
        return ExperienceResult(
            character_id=character.character_id,
            amount=amount,
            total=total,
            spent=spent,
            entry=entry,
            updates=[update],
        )

