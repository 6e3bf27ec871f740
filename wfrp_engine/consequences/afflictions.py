"""
Diseases, injuries, Fear and Terror.

Diseases incubate, then run for a rolled duration. A disease with a
Lingering symptom asks for an Endurance test when it ends; failing it
extends or worsens the illness. Injuries count down their duration. Non-numeric
durations cannot be counted down and are reported as data problems.

Fear is an extended Cool test that removes itself once passed. Terror adds a
Fear of the same rating and an immediate Cool test whose failure breaks the
character.
"""

from typing import Optional, Union
import logging
import re

from wfrp_engine.config import RuleContext
from wfrp_engine.data_models import (
    Character,
    CharacteristicId,
    CompletionPolicy,
    ConditionId,
    Disease,
    Injury,
    PossessionKind,
    new_id,
)
from wfrp_engine.errors import DataIntegrityWarning
from wfrp_engine.conditions.condition_ledger import ConditionLedger
from wfrp_engine.consequences.report import ConsequenceReport, FollowUpTest
from wfrp_engine.interfaces import StateUpdate
from wfrp_engine.resolution.specification import AbsoluteOverrides, TestCategory, TestOptions
from wfrp_engine.resolution.test_resolver import TestResult

logger = logging.getLogger(__name__)

LINGERING_DIFFICULTY = re.compile(r"\(([^)]+)\)")

# Lingering failures by |SL|: up to 1 extends, up to 5 festers, worse rots
FESTERING_WOUND = "Festering Wound"
BLOOD_ROT = "Blood Rot"


def _as_int(value: Union[int, str]) -> Optional[int]:
    if isinstance(value, int):
        return value
    text = str(value).strip()
    return int(text) if re.fullmatch(r"-?\d+", text) else None


class AfflictionTracker:
    """Counts down diseases and injuries, applies Fear and Terror."""

    def __init__(self, context: RuleContext, ledger: Optional[ConditionLedger] = None):
        self.context = context
        self.ledger = ledger or ConditionLedger(context)

    def _data_warning(self, report: ConsequenceReport, message: str) -> None:
        warning = DataIntegrityWarning(message)
        logger.warning(str(warning))
        report.warnings.append(str(warning))

    # =========================================================================
    # INJURIES
    # =========================================================================

    def decrement_injuries(self, character: Character) -> ConsequenceReport:
        report = ConsequenceReport(actor_id=character.character_id)
        for injury in character.possessions_of(Injury):
            report.merge(self.decrement_injury(character, injury))
        return report

    def decrement_injury(self, character: Character, injury: Injury) -> ConsequenceReport:
        report = ConsequenceReport(actor_id=character.character_id)
        duration = _as_int(injury.duration)
        if duration is None:
            self._data_warning(report, f"Cannot decrement {injury.name} as its duration is not a number")
            return report

        duration = max(0, duration - 1)
        report.updates.append(
            StateUpdate.update(injury.possession_id, {"duration": duration}, reason=f"{injury.name} heals")
        )
        if duration == 0:
            report.summary.append(f"{injury.name} duration complete")
        return report

    # =========================================================================
    # DISEASES
    # =========================================================================

    def decrement_diseases(self, character: Character) -> ConsequenceReport:
        report = ConsequenceReport(actor_id=character.character_id)
        for disease in character.possessions_of(Disease):
            report.merge(self.decrement_disease(character, disease))
        return report

    def decrement_disease(self, character: Character, disease: Disease) -> ConsequenceReport:
        """
        Advance a disease by one unit of time.

        Incubating diseases count down incubation and activate at 0; active
        diseases count down their duration and finish at 0.
        """
        report = ConsequenceReport(actor_id=character.character_id)

        if not disease.active:
            incubation = _as_int(disease.incubation)
            if incubation is None:
                self._data_warning(report, f"Attempted to decrement {disease.name} incubation but value is non-numeric")
                return report
            incubation -= 1
            if incubation <= 0:
                return report.merge(self.activate_disease(character, disease))
            report.updates.append(StateUpdate.update(disease.possession_id, {"incubation": incubation}))
            return report

        duration = _as_int(disease.duration)
        if duration is None:
            self._data_warning(report, f"Attempted to decrement {disease.name} duration but value is non-numeric")
            return report
        duration -= 1
        report.updates.append(StateUpdate.update(disease.possession_id, {"duration": duration}))
        if duration == 0:
            report.merge(self.finish_disease(character, disease))
        return report

    def activate_disease(self, character: Character, disease: Disease) -> ConsequenceReport:
        """End incubation and roll the duration expression."""
        report = ConsequenceReport(actor_id=character.character_id)
        changes: dict = {"active": True, "incubation": 0}
        message = f"{disease.name} incubation finished."
        try:
            duration = self.context.dice.roll(str(disease.duration), f"{disease.name} duration").total
        except ValueError:
            self._data_warning(report, f"{disease.name}: cannot roll duration {disease.duration!r}")
            message += " Error occurred when rolling for duration."
        else:
            changes["duration"] = duration
            message += f" Duration of {duration} {disease.duration_unit} has begun"
        report.updates.append(StateUpdate.update(disease.possession_id, changes, reason=f"{disease.name} activates"))
        report.summary.append(message)
        logger.info(f"{character.name}: {message}")
        return report

    def finish_disease(self, character: Character, disease: Disease) -> ConsequenceReport:
        """A disease ran its course; lingering ones ask for an Endurance test."""
        report = ConsequenceReport(actor_id=character.character_id)
        report.summary.append(f"{disease.name} duration finished.")

        if not disease.lingering:
            report.updates.append(
                StateUpdate.delete_child(disease.possession_id, parent_id=character.character_id, reason="recovered")
            )
            return report

        symptom = next(s for s in disease.symptoms if s.lower().startswith("lingering"))
        match = LINGERING_DIFFICULTY.search(symptom)
        difficulty = self._difficulty_key(match.group(1)) if match else None
        options = TestOptions(title=f"Lingering: {disease.name}", disease_id=disease.possession_id)
        if difficulty:
            options.absolute = AbsoluteOverrides(difficulty=difficulty)
        report.follow_up_tests.append(
            FollowUpTest(
                actor_id=character.character_id,
                category=TestCategory.SKILL,
                subject="Endurance",
                options=options,
                fallback=CharacteristicId.T,
                reason=f"{disease.name} lingers",
            )
        )
        return report

    def _difficulty_key(self, label: str) -> Optional[str]:
        wanted = label.strip().lower()
        for key, display in self.context.config.difficulty_labels.items():
            if wanted in (key, display.lower()):
                return key
        return None

    def lingering_result(self, character: Character, result: TestResult) -> ConsequenceReport:
        """Apply the outcome of a lingering Endurance test."""
        report = ConsequenceReport(actor_id=character.character_id)
        disease = character.get_possession(result.spec.options.disease_id or "")
        if not isinstance(disease, Disease):
            self._data_warning(report, f"Lingering test refers to missing disease {result.spec.options.disease_id!r}")
            return report

        if result.success:
            report.summary.append(f"{character.name} shakes off {disease.name}")
            report.updates.append(
                StateUpdate.delete_child(disease.possession_id, parent_id=character.character_id, reason="recovered")
            )
            return report

        failed_by = abs(result.sl)
        if failed_by <= 1:
            days = self.context.dice.roll("1d10", "lingering extension").total
            report.updates.append(StateUpdate.update(disease.possession_id, {"duration": days}, reason="lingering"))
            report.summary.append(f"Lingering: Duration extended by {days} days")
            return report

        worse = FESTERING_WOUND if failed_by <= 5 else BLOOD_ROT
        report.updates.append(
            StateUpdate.delete_child(disease.possession_id, parent_id=character.character_id, reason="lingering")
        )
        report.updates.append(
            StateUpdate.create_child(
                character.character_id,
                PossessionKind.DISEASE.value,
                {"possession_id": new_id("disease"), "name": worse, "incubation": 0, "active": False},
                reason="lingering",
            )
        )
        report.summary.append(f"Lingering: developed {worse}")
        return report

    # =========================================================================
    # FEAR AND TERROR
    # =========================================================================

    def apply_fear(self, character: Character, value: int = 0, name: Optional[str] = None) -> ConsequenceReport:
        """Create a Fear extended test tracker."""
        report = ConsequenceReport(actor_id=character.character_id)
        value = value or 0
        label = f"Fear ({name})" if name else "Fear"
        report.updates.append(
            StateUpdate.create_child(
                character.character_id,
                PossessionKind.EXTENDED_TEST.value,
                {
                    "possession_id": new_id("extended"),
                    "name": label,
                    "test_name": "Cool",
                    "target_sl": value,
                    "completion": CompletionPolicy.REMOVE.value,
                },
                reason="fear",
            )
        )
        report.summary.append(f"{character.name} gains {label} {value}")
        return report

    def apply_terror(self, character: Character, value: int = 1, name: Optional[str] = None) -> ConsequenceReport:
        """Terror: a Fear of the same rating plus an immediate Cool test."""
        value = value or 1
        report = self.apply_fear(character, value, name)
        options = TestOptions(title=f"Terror {value}" + (f" ({name})" if name else ""))
        options.extra["terror"] = value
        report.follow_up_tests.append(
            FollowUpTest(
                actor_id=character.character_id,
                category=TestCategory.SKILL,
                subject="Cool",
                options=options,
                fallback=CharacteristicId.WP,
                reason="terror",
            )
        )
        return report

    def terror_result(self, character: Character, result: TestResult) -> ConsequenceReport:
        """Failing a Terror test gives Broken equal to the rating plus the failed SL."""
        report = ConsequenceReport(actor_id=character.character_id)
        if result.success:
            report.summary.append(f"{character.name} holds firm against the terror")
            return report
        value = int(result.spec.options.extra.get("terror", 1))
        broken = value + abs(result.sl)
        change = self.ledger.add(character, ConditionId.BROKEN, broken)
        report.updates.extend(change.updates)
        report.summary.extend(change.summary)
        return report
