"""
Condition ledger.

Boolean conditions are present or absent. Numbered conditions stack; removing
stacks past zero deletes the condition rather than storing a negative value.
A fixed table of cross-condition rules applies:

- gaining Unconscious also makes the character Prone
- losing Unconscious leaves the character Fatigued
- Bleeding, Poisoned, Broken or Stunned reaching exactly zero leaves the
  character Fatigued

The ledger also turns present conditions into test modifiers for the
ModifierAccumulator, and keeps the encumbrance states in step with the
prepared encumbrance tier.
"""

from dataclasses import dataclass, field
from typing import Optional, Union
import logging

from wfrp_engine.config import FATIGUE_ON_ZERO, RuleContext
from wfrp_engine.data_models import Character, CharacteristicId, ConditionId
from wfrp_engine.interfaces import StateUpdate, condition_child_id
from wfrp_engine.modifiers.accumulator import ModifierContribution
from wfrp_engine.observability.run_log import EventType

logger = logging.getLogger(__name__)

ENCUMBRANCE_STATES = (ConditionId.ENC1, ConditionId.ENC2, ConditionId.ENC3)


@dataclass
class ConditionChange:
    """Result of one ledger operation."""
    character_id: str
    updates: list[StateUpdate] = field(default_factory=list)
    added: list[ConditionId] = field(default_factory=list)
    removed: list[ConditionId] = field(default_factory=list)
    values: dict[ConditionId, Optional[int]] = field(default_factory=dict)
    summary: list[str] = field(default_factory=list)


class _WorkingSet:
    """Condition values as they stand part-way through an operation."""

    def __init__(self, character: Character):
        self.character_id = character.character_id
        self.present: dict[ConditionId, Optional[int]] = {
            c.condition_id: c.value for c in character.conditions
        }
        self.change = ConditionChange(character_id=character.character_id)

    def child_id(self, condition_id: ConditionId) -> str:
        return condition_child_id(self.character_id, condition_id)

    def create(self, condition_id: ConditionId, value: Optional[int]) -> None:
        self.present[condition_id] = value
        self.change.added.append(condition_id)
        self.change.values[condition_id] = value
        self.change.updates.append(
            StateUpdate.create_child(
                self.character_id,
                "condition",
                {"condition_id": condition_id.value, "value": value},
                reason=f"gain {condition_id.value}",
            )
        )
        self.change.summary.append(f"Gained {condition_id.value}" + (f" ({value})" if value is not None else ""))

    def set_value(self, condition_id: ConditionId, value: int) -> None:
        self.present[condition_id] = value
        self.change.values[condition_id] = value
        self.change.updates.append(
            StateUpdate.update(self.child_id(condition_id), {"value": value}, reason=f"{condition_id.value} now {value}")
        )
        self.change.summary.append(f"{condition_id.value.title()} now {value}")

    def delete(self, condition_id: ConditionId) -> None:
        del self.present[condition_id]
        self.change.removed.append(condition_id)
        self.change.values[condition_id] = None
        self.change.updates.append(
            StateUpdate.delete_child(self.child_id(condition_id), parent_id=self.character_id, reason=f"lose {condition_id.value}")
        )
        self.change.summary.append(f"Lost {condition_id.value}")


class ConditionLedger:
    """Adds, removes and evaluates conditions."""

    def __init__(self, context: RuleContext):
        self.context = context

    def _is_numbered(self, condition_id: ConditionId) -> bool:
        definition = self.context.config.condition_definitions.get(condition_id)
        return bool(definition and definition.numbered)

    # -------------------------------------------------------------------------
    # Add / remove
    # -------------------------------------------------------------------------

    def add(self, character: Character, condition_id: Union[ConditionId, str], amount: int = 1) -> ConditionChange:
        """
        Add a condition (or stacks of a numbered one).

        Returns:
            ConditionChange with the StateUpdates to submit
        """
        working = _WorkingSet(character)
        self._add(working, ConditionId(condition_id), amount)
        self._log(character, "add", ConditionId(condition_id), amount, working.change)
        return working.change

    def remove(self, character: Character, condition_id: Union[ConditionId, str], amount: int = 1) -> ConditionChange:
        """Remove a condition (or stacks of a numbered one)."""
        working = _WorkingSet(character)
        self._remove(working, ConditionId(condition_id), amount)
        self._log(character, "remove", ConditionId(condition_id), amount, working.change)
        return working.change

    def _add(self, working: _WorkingSet, condition_id: ConditionId, amount: int) -> None:
        if self._is_numbered(condition_id):
            if amount <= 0:
                return
            current = working.present.get(condition_id, None)
            if condition_id in working.present:
                working.set_value(condition_id, (current or 0) + amount)
            else:
                working.create(condition_id, amount)
        elif condition_id not in working.present:
            working.create(condition_id, None)

        if condition_id == ConditionId.UNCONSCIOUS:
            self._add(working, ConditionId.PRONE, 1)

    def _remove(self, working: _WorkingSet, condition_id: ConditionId, amount: int) -> None:
        if condition_id not in working.present:
            return

        if not self._is_numbered(condition_id):
            working.delete(condition_id)
            if condition_id == ConditionId.UNCONSCIOUS:
                self._add(working, ConditionId.FATIGUED, 1)
            return

        value = (working.present[condition_id] or 0) - amount
        if value == 0 and condition_id in FATIGUE_ON_ZERO:
            self._add(working, ConditionId.FATIGUED, 1)
        if value <= 0:
            working.delete(condition_id)
        else:
            working.set_value(condition_id, value)

    def sync_encumbrance(self, character: Character, tier: int) -> ConditionChange:
        """Make the enc1/enc2/enc3 system conditions match an encumbrance tier."""
        working = _WorkingSet(character)
        wanted = ENCUMBRANCE_STATES[tier - 1] if tier > 0 else None
        for state in ENCUMBRANCE_STATES:
            if state != wanted and state in working.present:
                working.delete(state)
        if wanted is not None and wanted not in working.present:
            working.create(wanted, None)
        if working.change.updates:
            self._log(character, "encumbrance", wanted or ConditionId.ENC1, tier, working.change)
        return working.change

    def _log(self, character: Character, action: str, condition_id: ConditionId, amount: int, change: ConditionChange) -> None:
        if not change.updates:
            logger.debug(f"{character.name}: {action} {condition_id.value} changed nothing")
            return
        logger.info(f"{character.name}: {'; '.join(change.summary)}")
        self.context.run_log.log_custom(
            f"condition_{action}",
            {"condition": condition_id.value, "amount": amount, "summary": change.summary},
            event_type=EventType.CONDITION,
            actor_id=character.character_id,
        )

    # -------------------------------------------------------------------------
    # Modifiers
    # -------------------------------------------------------------------------

    def contributions(
        self,
        character: Character,
        characteristic: Optional[CharacteristicId],
        skill_name: Optional[str] = None,
    ) -> list[ModifierContribution]:
        """Penalties the character's own conditions impose on a test."""
        result = []
        for condition in character.conditions:
            definition = self.context.config.condition_definitions.get(condition.condition_id)
            if definition is None or not definition.modifier_per_stack:
                continue
            if not self._affects(definition, characteristic, skill_name):
                continue
            stacks = condition.value if condition.value is not None else 1
            label = condition.condition_id.value.title()
            if condition.value is not None:
                label = f"{label} {condition.value}"
            result.append(
                ModifierContribution(label=label, modifier=definition.modifier_per_stack * stacks, source="conditions")
            )
        return result

    @staticmethod
    def _affects(definition, characteristic: Optional[CharacteristicId], skill_name: Optional[str]) -> bool:
        if definition.affects is None:
            return True
        if characteristic is not None and characteristic in definition.affects:
            return True
        if skill_name:
            return any(skill_name.lower().startswith(prefix.lower()) for prefix in definition.affects_skills)
        return False

    def target_contributions(self, target: Character, melee: bool) -> list[ModifierContribution]:
        """Bonuses for attacking a target in a vulnerable condition (melee only)."""
        if not melee:
            return []
        result = []
        for condition in target.conditions:
            definition = self.context.config.condition_definitions.get(condition.condition_id)
            if definition and definition.attacker_bonus:
                result.append(
                    ModifierContribution(
                        label=f"Target: {condition.condition_id.value.title()}",
                        modifier=definition.attacker_bonus,
                        source="target conditions",
                    )
                )
        return result
