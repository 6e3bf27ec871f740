"""
RulesEngine: the host-facing facade.

Ties the components together around a Store. A full test runs as

    prepare -> build -> dialog confirm -> resolve -> consequences -> store

Nothing is written before resolution, so a cancelled dialog leaves the
character untouched. Every state change goes through dispatch(), which hands
StateUpdates to the store in order.

Notifications and audio cues are best effort: a failing side channel is
logged and ignored.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Optional, Union
import logging

from wfrp_engine.advancement.experience import ExperienceManager, ExperienceResult
from wfrp_engine.character.derived_attributes import DerivedAttributeEngine, PreparedCharacter
from wfrp_engine.character.status import modify_advantage, set_advantage
from wfrp_engine.conditions.condition_ledger import ConditionChange, ConditionLedger
from wfrp_engine.config import RuleContext
from wfrp_engine.consequences.consequence_processor import ConsequenceProcessor
from wfrp_engine.consequences.damage import DamageReport, DamageType, apply_basic_damage
from wfrp_engine.consequences.report import ConsequenceReport, FollowUpTest
from wfrp_engine.data_models import BodyLocation, Character, ConditionId, Weapon
from wfrp_engine.errors import SubjectNotFoundError, UserInputError
from wfrp_engine.hooks.builtin_rules import register_builtin_rules
from wfrp_engine.interfaces import AudioHint, Dialog, Notifier, StateUpdate, Store, UpdateOp
from wfrp_engine.resolution.opposed import OpposedResult, resolve_opposed
from wfrp_engine.resolution.specification import (
    SituationalContext,
    TestCategory,
    TestSpecification,
)
from wfrp_engine.resolution.test_builder import Subject, TestRequestBuilder
from wfrp_engine.resolution.test_resolver import TestResolver, TestResult, offhand_roll
from wfrp_engine.store import InMemoryStore

logger = logging.getLogger(__name__)

CharacterRef = Union[Character, str]


@dataclass
class TestRun:
    """One confirmed and resolved test with its consequences."""

    __test__ = False

    spec: TestSpecification
    result: TestResult
    report: ConsequenceReport


class RulesEngine:
    """
    Entry point for hosts.

    Args:
        store: Persistence for characters; an InMemoryStore by default
        context: Rule context; a fresh one with the built-in rules by default
        dialog: Confirms or edits a test before rolling; None skips confirmation
        notifier: Receives user-facing messages
        audio: Receives sound cues
        register_builtins: Register the built-in talent rules on the context's registry
    """

    def __init__(
        self,
        store: Optional[Store] = None,
        context: Optional[RuleContext] = None,
        dialog: Optional[Dialog] = None,
        notifier: Optional[Notifier] = None,
        audio: Optional[AudioHint] = None,
        register_builtins: bool = True,
    ):
        self.store = store if store is not None else InMemoryStore()
        self.context = context or RuleContext()
        self.dialog = dialog
        self.notifier = notifier
        self.audio = audio

        if register_builtins:
            register_builtin_rules(self.context.hooks)

        self.derived = DerivedAttributeEngine(self.context)
        self.ledger = ConditionLedger(self.context)
        self.builder = TestRequestBuilder(self.context, self.ledger)
        self.resolver = TestResolver(self.context)
        self.processor = ConsequenceProcessor(self.context, self.ledger)
        self.afflictions = self.processor.afflictions
        self.experience = ExperienceManager()

    # =========================================================================
    # STORE ACCESS
    # =========================================================================

    def character(self, ref: CharacterRef) -> Character:
        """Current stored record for a character or character id."""
        character_id = ref.character_id if isinstance(ref, Character) else ref
        found = self.store.get(character_id)
        if not isinstance(found, Character):
            raise SubjectNotFoundError(f"No character {character_id!r}", subject=character_id)
        return found

    def dispatch(self, updates: Iterable[StateUpdate]) -> int:
        """Submit updates to the store in order; returns how many were sent."""
        count = 0
        for update in updates:
            if update.op == UpdateOp.UPDATE:
                self.store.update(update.target_id, update.changes)
            elif update.op == UpdateOp.CREATE_CHILD:
                self.store.create_child(update.parent_id, update.kind, update.data)
            else:
                self.store.delete_child(update.target_id)
            logger.debug(f"Dispatched {update.op.value} {update.target_id or update.parent_id} {update.reason}")
            count += 1
        return count

    # =========================================================================
    # SIDE CHANNELS
    # =========================================================================

    def _notify(self, level: str, message: str) -> None:
        if self.notifier is None or not message:
            return
        try:
            self.notifier.notify(level, message)
        except Exception as e:
            logger.warning(f"Notifier failed: {e}")

    def _play(self, context: dict[str, Any]) -> None:
        if self.audio is None or not context:
            return
        try:
            self.audio.play(context)
        except Exception as e:
            logger.warning(f"Audio hint failed: {e}")

    # =========================================================================
    # PREPARATION
    # =========================================================================

    def prepare_character(self, ref: CharacterRef, write_back: bool = True) -> PreparedCharacter:
        """
        Prepare a stored character (and its mount first, when riding).

        With write_back the refreshed derived maxima are sent to the store.
        Test building never writes back, so a cancelled test changes nothing.
        Preparing twice without changes gives the same result.
        """
        character = self.character(ref)
        mount = None
        if character.mount_id:
            found = self.store.get(character.mount_id)
            mount = found if isinstance(found, Character) else None
        prepared = self.derived.prepare(character, mount)
        if write_back and prepared.pending_updates:
            self.dispatch(prepared.pending_updates)
        return prepared

    def sync_encumbrance(self, ref: CharacterRef) -> ConditionChange:
        """Bring the encumbrance conditions in line with carried weight."""
        character = self.character(ref)
        prepared = self.prepare_character(character)
        change = self.ledger.sync_encumbrance(character, prepared.encumbrance.tier)
        self.dispatch(change.updates)
        return change

    # =========================================================================
    # TESTS
    # =========================================================================

    def build_test(
        self,
        ref: CharacterRef,
        category: TestCategory,
        subject: Subject,
        situation: Optional[SituationalContext] = None,
    ) -> TestSpecification:
        """
        Build a test specification without rolling.

        Raises:
            UserInputError: No ammunition, not loaded, unknown subject and so on
        """
        prepared = self.prepare_character(ref, write_back=False)
        return self.builder.build(prepared, category, subject, situation)

    def build_follow_up(self, follow_up: FollowUpTest) -> TestSpecification:
        """Build a follow-up test, using its fallback characteristic if the skill is missing."""
        prepared = self.prepare_character(follow_up.actor_id, write_back=False)
        situation = SituationalContext(options=follow_up.options)
        try:
            return self.builder.build(prepared, follow_up.category, follow_up.subject, situation)
        except SubjectNotFoundError:
            if follow_up.fallback is None:
                raise
            logger.debug(f"{prepared.name} lacks {follow_up.subject}, testing {follow_up.fallback.value}")
            return self.builder.build(prepared, TestCategory.CHARACTERISTIC, follow_up.fallback, situation)

    def build_extended(
        self,
        ref: CharacterRef,
        tracker_id: str,
        situation: Optional[SituationalContext] = None,
    ) -> TestSpecification:
        prepared = self.prepare_character(ref, write_back=False)
        return self.builder.build_extended(prepared, tracker_id, situation)

    def resolve_test(self, spec: TestSpecification, roll: Optional[int] = None) -> TestResult:
        actor = self.store.get(spec.actor_id)
        return self.resolver.resolve(spec, roll, actor=actor if isinstance(actor, Character) else None)

    def apply_consequences(
        self,
        result: TestResult,
        opposed: Optional[OpposedResult] = None,
        opponent: Optional[CharacterRef] = None,
        damage_type: DamageType = DamageType.NORMAL,
    ) -> ConsequenceReport:
        """
        Work out and store everything a result does.

        The character is re-read from the store, so consequences see any
        change made since the test was built.
        """
        character = self.character(result.actor_id)
        prepared_opponent = self.prepare_character(opponent) if opponent is not None else None
        report = self.processor.apply(result, character, opposed, prepared_opponent, damage_type)
        self.dispatch(report.updates)

        for line in report.summary:
            self._notify("info", line)
        for warning in report.warnings:
            self._notify("warning", warning)
        self._play(result.sound_context())
        damage = report.details.get("damage")
        if isinstance(damage, DamageReport):
            self._play(damage.sound)
        return report

    def confirm(self, spec: TestSpecification) -> Optional[TestSpecification]:
        """Let the dialog review the built test. None means cancelled."""
        if self.dialog is None or spec.options.bypass:
            return spec
        confirmed = self.dialog.confirm(spec)
        if confirmed is None:
            logger.info(f"{spec.actor_name}: {spec.subject_name} test cancelled")
        return confirmed

    def _run(self, spec: TestSpecification, roll: Optional[int]) -> Optional[TestRun]:
        confirmed = self.confirm(spec)
        if confirmed is None:
            return None
        result = self.resolve_test(confirmed, roll)
        self._notify("info", str(result))
        report = self.apply_consequences(result)
        return TestRun(spec=confirmed, result=result, report=report)

    def run_test(
        self,
        ref: CharacterRef,
        category: TestCategory,
        subject: Subject,
        situation: Optional[SituationalContext] = None,
        roll: Optional[int] = None,
    ) -> Optional[TestRun]:
        """
        Build, confirm, resolve and apply a test.

        Returns:
            TestRun, or None if the dialog was cancelled

        Raises:
            UserInputError: The test cannot be made; nothing is changed
        """
        try:
            spec = self.build_test(ref, category, subject, situation)
        except UserInputError as e:
            self._notify("error", str(e))
            raise
        return self._run(spec, roll)

    def run_follow_up(self, follow_up: FollowUpTest, roll: Optional[int] = None) -> Optional[TestRun]:
        return self._run(self.build_follow_up(follow_up), roll)

    def run_extended(
        self,
        ref: CharacterRef,
        tracker_id: str,
        situation: Optional[SituationalContext] = None,
        roll: Optional[int] = None,
    ) -> Optional[TestRun]:
        return self._run(self.build_extended(ref, tracker_id, situation), roll)

    def offhand_attack(
        self,
        primary: TestResult,
        weapon: Union[Weapon, str],
        situation: Optional[SituationalContext] = None,
    ) -> Optional[TestRun]:
        """
        Attack with the offhand weapon after a primary attack.

        A successful primary attack lends its roll with the digits reversed;
        otherwise, or on a double, the offhand attack is rolled fresh.
        """
        situation = situation or SituationalContext()
        situation.options.offhand = True
        spec = self.build_test(primary.actor_id, TestCategory.WEAPON, weapon, situation)
        roll = offhand_roll(primary.roll) if primary.success else None
        return self._run(spec, roll)

    # =========================================================================
    # FORTUNE
    # =========================================================================

    def reroll(self, result: TestResult, roll: Optional[int] = None) -> TestRun:
        """
        Spend a Fortune point to reroll.

        Raises:
            NoFortuneError: No Fortune left
        """
        amendment = self.resolver.reroll(result, self.character(result.actor_id), roll)
        self.dispatch(amendment.updates)
        report = self.apply_consequences(amendment.result)
        return TestRun(spec=amendment.result.spec, result=amendment.result, report=report)

    def add_sl(self, result: TestResult) -> TestRun:
        """
        Spend a Fortune point for +1 SL.

        Raises:
            NoFortuneError: No Fortune left
        """
        amendment = self.resolver.add_sl(result, self.character(result.actor_id))
        self.dispatch(amendment.updates)
        report = self.apply_consequences(amendment.result)
        return TestRun(spec=amendment.result.spec, result=amendment.result, report=report)

    def use_fortune(self, result: TestResult, mode: str = "reroll", roll: Optional[int] = None) -> TestRun:
        if mode == "reroll":
            return self.reroll(result, roll)
        if mode == "add_sl":
            return self.add_sl(result)
        raise UserInputError(f"Unknown fortune use {mode!r}", subject=mode)

    def dark_deal(self, result: TestResult, roll: Optional[int] = None) -> TestRun:
        """Take a Corruption point to reroll; going over the limit forces a test."""
        amendment = self.resolver.dark_deal(result, self.character(result.actor_id), roll)
        self.dispatch(amendment.updates)
        report = self.apply_consequences(amendment.result)
        if amendment.corruption_exceeded:
            check = self.processor.check_corruption(self.character(result.actor_id))
            self.dispatch(check.updates)
            report.merge(check)
        return TestRun(spec=amendment.result.spec, result=amendment.result, report=report)

    # =========================================================================
    # COMBAT
    # =========================================================================

    def opposed(self, attacker: TestResult, defender: TestResult) -> OpposedResult:
        return resolve_opposed(attacker, defender)

    def apply_damage(
        self,
        opposed: OpposedResult,
        damage_type: DamageType = DamageType.NORMAL,
    ) -> ConsequenceReport:
        """Apply an opposed test's damage to the defender, if the attacker won."""
        attacker = self.character(opposed.attacker.actor_id)
        if not opposed.attacker_won:
            return ConsequenceReport(actor_id=attacker.character_id, summary=["Defender wins, no damage"])
        defender = self.prepare_character(opposed.defender.actor_id)
        report = self.processor.damage(opposed, attacker, defender, damage_type)
        self.dispatch(report.updates)
        for line in report.summary:
            self._notify("info", line)
        damage = report.details.get("damage")
        if isinstance(damage, DamageReport):
            self._play(damage.sound)
        return report

    def apply_basic_damage(
        self,
        ref: CharacterRef,
        damage: int,
        damage_type: DamageType = DamageType.NORMAL,
        minimum_one: bool = True,
        location: BodyLocation = BodyLocation.BODY,
    ) -> DamageReport:
        prepared = self.prepare_character(ref)
        report = apply_basic_damage(self.context, prepared, damage, damage_type, minimum_one, location)
        self.dispatch(report.updates)
        self._notify("info", report.summary)
        return report

    def set_advantage(self, ref: CharacterRef, value: int) -> int:
        update = set_advantage(self.prepare_character(ref), value)
        self.dispatch([update])
        return update.changes["advantage.value"]

    def modify_advantage(self, ref: CharacterRef, delta: int) -> int:
        update = modify_advantage(self.prepare_character(ref), delta)
        self.dispatch([update])
        return update.changes["advantage.value"]

    def start_reload(self, ref: CharacterRef, weapon_id: str) -> ConsequenceReport:
        character = self.character(ref)
        weapon = character.get_possession(weapon_id)
        if not isinstance(weapon, Weapon):
            raise SubjectNotFoundError(f"{character.name} has no weapon {weapon_id!r}", subject=weapon_id)
        report = self.processor.start_reload(character, weapon)
        self.dispatch(report.updates)
        return report

    # =========================================================================
    # CONDITIONS AND AFFLICTIONS
    # =========================================================================

    def add_condition(self, ref: CharacterRef, condition_id: Union[ConditionId, str], amount: int = 1) -> ConditionChange:
        change = self.ledger.add(self.character(ref), condition_id, amount)
        self.dispatch(change.updates)
        for line in change.summary:
            self._notify("info", line)
        return change

    def remove_condition(self, ref: CharacterRef, condition_id: Union[ConditionId, str], amount: int = 1) -> ConditionChange:
        change = self.ledger.remove(self.character(ref), condition_id, amount)
        self.dispatch(change.updates)
        for line in change.summary:
            self._notify("info", line)
        return change

    def apply_fear(self, ref: CharacterRef, value: int = 0, name: Optional[str] = None) -> ConsequenceReport:
        report = self.afflictions.apply_fear(self.character(ref), value, name)
        self.dispatch(report.updates)
        return report

    def apply_terror(self, ref: CharacterRef, value: int = 1, name: Optional[str] = None) -> ConsequenceReport:
        """Adds the Fear tracker; the Cool test is returned as a follow-up."""
        report = self.afflictions.apply_terror(self.character(ref), value, name)
        self.dispatch(report.updates)
        return report

    def decrement_diseases(self, ref: CharacterRef) -> ConsequenceReport:
        report = self.afflictions.decrement_diseases(self.character(ref))
        self.dispatch(report.updates)
        return report

    def decrement_injuries(self, ref: CharacterRef) -> ConsequenceReport:
        report = self.afflictions.decrement_injuries(self.character(ref))
        self.dispatch(report.updates)
        return report

    # =========================================================================
    # EXPERIENCE
    # =========================================================================

    def award_experience(self, ref: CharacterRef, amount: int, reason: str = "") -> ExperienceResult:
        result = self.experience.award(self.character(ref), amount, reason)
        self.dispatch(result.updates)
        return result

    def spend_experience(self, ref: CharacterRef, amount: int, reason: str = "") -> ExperienceResult:
        """
        Raises:
            UserInputError: Not enough unspent experience
        """
        result = self.experience.spend(self.character(ref), amount, reason)
        self.dispatch(result.updates)
        return result
