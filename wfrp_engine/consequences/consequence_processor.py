"""
Consequence processing.

ConsequenceProcessor turns a resolved TestResult into StateUpdates: damage,
extended test progress, income, corruption and mutation, ammunition and
reloading, channelling progress and ingredient use. Nothing is written here;
the host's store receives the updates.

Rerolls and other fortune amendments arrive as a result that points back at
the one it replaces. Corruption and extended test progress undo the previous
result's contribution before adding the new one, so an amended result never
double counts. Ammunition and ingredients are only spent by the original
roll.

Each step re-reads the character as it is now. A step whose precondition no
longer holds (the ammunition ran out, the tracker was deleted) is skipped
with a warning instead of aborting the rest.
"""

from typing import Callable, Optional
import logging

from wfrp_engine.character.derived_attributes import DerivedAttributeEngine, PreparedCharacter
from wfrp_engine.conditions.condition_ledger import ConditionLedger
from wfrp_engine.config import MONEY_BY_TIER, RuleContext
from wfrp_engine.consequences.afflictions import AfflictionTracker
from wfrp_engine.consequences.damage import DamageType, apply_damage
from wfrp_engine.consequences.report import (
    ConsequenceReport,
    FollowUpTest,
    IncomeResult,
    TablePrompt,
)
from wfrp_engine.data_models import (
    Ammunition,
    Character,
    CharacteristicId,
    CompletionPolicy,
    ExtendedTest,
    Possession,
    PossessionKind,
    Spell,
    StatusTier,
    Weapon,
    new_id,
)
from wfrp_engine.errors import ConcurrencyRaceError, DataIntegrityWarning
from wfrp_engine.interfaces import StateUpdate
from wfrp_engine.resolution.opposed import OpposedResult
from wfrp_engine.resolution.specification import TestCategory, TestOptions
from wfrp_engine.resolution.test_resolver import TestResult

logger = logging.getLogger(__name__)

COIN_PLURALS: dict[StatusTier, str] = {
    StatusTier.BRASS: "brass pennies",
    StatusTier.SILVER: "silver shillings",
    StatusTier.GOLD: "gold crowns",
}

MISCAST_TABLES = {"minor": "minormis", "major": "majormis"}
WRATH_TABLE = "wrath"
FUMBLE_TABLE = "oops"


def corruption_gain(context: RuleContext, strength: str, result: TestResult) -> int:
    """Corruption gained from one corruption test result."""
    definition = context.config.corruption_strengths.get(strength)
    if definition is None:
        return 0
    if not result.success:
        return definition.on_failure
    for sl_below, gain in definition.on_success:
        if result.sl < sl_below:
            return gain
    return 0


def extended_contribution(context: RuleContext, tracker: ExtendedTest, result: TestResult) -> int:
    """SL one result adds to an extended test tracker."""
    sl = result.sl
    if context.settings.extended_tests_zero_sl and sl == 0:
        sl = 1 if result.success else -1
    if tracker.failing_decreases:
        return sl
    return sl if sl > 0 else 0


class ConsequenceProcessor:
    """Turns results into StateUpdates."""

    def __init__(self, context: RuleContext, ledger: Optional[ConditionLedger] = None):
        self.context = context
        self.ledger = ledger or ConditionLedger(context)
        self.afflictions = AfflictionTracker(context, self.ledger)
        self.derived = DerivedAttributeEngine(context)

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def apply(
        self,
        result: TestResult,
        character: Character,
        opposed: Optional[OpposedResult] = None,
        opponent: Optional[PreparedCharacter] = None,
        damage_type: DamageType = DamageType.NORMAL,
    ) -> ConsequenceReport:
        """
        Work out everything a result does.

        Args:
            result: Resolved test
            character: The tester, as currently stored
            opposed: Opposed outcome, when the test was opposed
            opponent: Prepared defender, to apply damage to
            damage_type: Mitigation for opposed damage

        Returns:
            ConsequenceReport with updates and summary
        """
        report = ConsequenceReport(actor_id=character.character_id)
        spec = result.spec
        options = spec.options

        steps: list[tuple[str, Callable[[], ConsequenceReport]]] = []
        if options.corruption:
            steps.append(("corruption", lambda: self.corruption(result, character)))
        if options.mutate:
            steps.append(("mutation", lambda: self.mutation(result, character)))
        if options.extended_test_id:
            steps.append(("extended", lambda: self.extended(result, character)))
        if options.income:
            steps.append(("income", lambda: self.income(result, character)))
        if options.disease_id:
            steps.append(("lingering", lambda: self.afflictions.lingering_result(character, result)))
        if "terror" in options.extra:
            steps.append(("terror", lambda: self.afflictions.terror_result(character, result)))
        if spec.category == TestCategory.WEAPON:
            steps.append(("ammunition", lambda: self.weapon_usage(result, character)))
        if spec.category in (TestCategory.CAST, TestCategory.CHANNEL):
            steps.append(("magic", lambda: self.magic(result, character)))
        if spec.category == TestCategory.PRAYER and result.wrath:
            report.table_prompts.append(TablePrompt(WRATH_TABLE, reason="Wrath of the Gods"))
            report.summary.append("Wrath of the Gods")
        if result.fumble:
            report.table_prompts.append(TablePrompt(FUMBLE_TABLE, reason="Fumble"))
        if opposed is not None and opponent is not None and opposed.attacker_won:
            steps.append(("damage", lambda: self.damage(opposed, character, opponent, damage_type)))

        for label, step in steps:
            try:
                report.merge(step())
            except ConcurrencyRaceError as e:
                message = f"Skipped {label}: {e}"
                logger.warning(message)
                report.warnings.append(message)

        if report.summary:
            logger.info(f"{character.name}: {'; '.join(report.summary)}")
        self.context.run_log.log_consequence(
            character.character_id, spec.category.value, report.summary, len(report.updates)
        )
        return report

    # =========================================================================
    # DAMAGE
    # =========================================================================

    def damage(
        self,
        opposed: OpposedResult,
        attacker: Character,
        defender: PreparedCharacter,
        damage_type: DamageType = DamageType.NORMAL,
    ) -> ConsequenceReport:
        prepared_attacker = self.derived.prepare(attacker)
        damage = apply_damage(self.context, opposed, defender, prepared_attacker, damage_type)
        report = ConsequenceReport(actor_id=attacker.character_id, updates=list(damage.updates))
        report.summary.append(damage.summary)
        report.summary.extend(damage.messages)
        report.warnings.extend(damage.warnings)
        if damage.critical is not None:
            report.table_prompts.append(
                TablePrompt(damage.critical.table, damage.critical.modifier, reason=f"{defender.name} critical wound")
            )
        report.details["damage"] = damage
        return report

    # =========================================================================
    # CORRUPTION
    # =========================================================================

    def corruption(self, result: TestResult, character: Character) -> ConsequenceReport:
        """
        Corruption gained from a corruption test.

        A reroll first takes back what the previous result gave.
        """
        report = ConsequenceReport(actor_id=character.character_id)
        strength = result.spec.options.corruption
        gained = corruption_gain(self.context, strength, result)
        delta = gained
        if result.reverts_previous and result.previous is not None:
            delta -= corruption_gain(self.context, strength, result.previous)

        new_value = max(0, int(character.corruption.value) + delta)
        report.updates.append(
            StateUpdate.update(character.character_id, {"corruption.value": new_value}, reason=f"{strength} corruption")
        )
        if result.reverts_previous:
            report.summary.append(f"{character.name} rerolled corruption, corruption changes by {delta}")
        else:
            report.summary.append(f"{character.name} gains {gained} Corruption")
        report.details["corruption_delta"] = delta

        if delta > 0:
            report.merge(self.check_corruption(character, new_value))
        return report

    def check_corruption(self, character: Character, value: Optional[int] = None) -> ConsequenceReport:
        """Ask for a mutation test when corruption exceeds its maximum."""
        report = ConsequenceReport(actor_id=character.character_id)
        value = int(character.corruption.value) if value is None else value
        maximum = self.derived.prepare(character).corruption.max
        if value > maximum:
            report.follow_up_tests.append(
                FollowUpTest(
                    actor_id=character.character_id,
                    category=TestCategory.SKILL,
                    subject="Endurance",
                    options=TestOptions(title="Mutation", mutate=True),
                    fallback=CharacteristicId.T,
                    reason=f"corruption {value}/{maximum}",
                )
            )
            report.summary.append(f"{character.name} must resist mutation")
        return report

    def mutation(self, result: TestResult, character: Character) -> ConsequenceReport:
        """Failing a mutation test costs WPB corruption and a corruption table roll."""
        report = ConsequenceReport(actor_id=character.character_id)
        if result.success:
            report.summary.append("You have managed to hold off your corruption. For now.")
            return report

        wpb = self.derived.prepare(character).bonus(CharacteristicId.WP)
        new_value = max(0, int(character.corruption.value) - wpb)
        report.updates.append(
            StateUpdate.update(character.character_id, {"corruption.value": new_value}, reason="mutation")
        )
        report.summary.append(f"{character.name} loses {wpb} Corruption")
        for table in self.context.config.corruption_tables:
            report.table_prompts.append(TablePrompt(table, reason="Dissolution of Body and Mind"))
        return report

    # =========================================================================
    # EXTENDED TESTS
    # =========================================================================

    def extended(self, result: TestResult, character: Character) -> ConsequenceReport:
        report = ConsequenceReport(actor_id=character.character_id)
        tracker = character.get_possession(result.spec.options.extended_test_id)
        if not isinstance(tracker, ExtendedTest):
            raise ConcurrencyRaceError(f"extended test {result.spec.options.extended_test_id} no longer exists")

        current = tracker.current_sl
        if result.reverts_previous and result.previous is not None:
            current -= extended_contribution(self.context, tracker, result.previous)
        current += extended_contribution(self.context, tracker, result)
        if not tracker.negative_possible and current < 0:
            current = 0

        display = f"{tracker.name} {current} / {tracker.target_sl} SL"
        if current < tracker.target_sl:
            report.updates.append(StateUpdate.update(tracker.possession_id, {"current_sl": current}))
            report.summary.append(display)
            return report

        if tracker.reloading_weapon_id:
            weapon = character.get_possession(tracker.reloading_weapon_id)
            if isinstance(weapon, Weapon):
                report.updates.append(
                    StateUpdate.update(
                        weapon.possession_id,
                        {"loaded": True, "loaded_amount": weapon.loaded_max},
                        reason="reloaded",
                    )
                )

        if tracker.completion == CompletionPolicy.RESET:
            report.updates.append(StateUpdate.update(tracker.possession_id, {"current_sl": 0}))
        elif tracker.completion == CompletionPolicy.REMOVE:
            report.updates.append(
                StateUpdate.delete_child(tracker.possession_id, parent_id=character.character_id, reason="completed")
            )
        else:
            report.updates.append(StateUpdate.update(tracker.possession_id, {"current_sl": current}))
        report.summary.append(f"{display} Completed")
        report.details["extended_completed"] = tracker.possession_id
        return report

    # =========================================================================
    # INCOME
    # =========================================================================

    def income(self, result: TestResult, character: Character) -> ConsequenceReport:
        """
        Earnings from an income test.

        Brass and silver roll (earnings x standing)d10, gold pays the product
        directly. Success pays in full, a failure by less than 6 SL pays half
        (rounded up on .5), worse pays nothing.
        """
        report = ConsequenceReport(actor_id=character.character_id)
        career = character.current_career
        if career is None:
            warning = DataIntegrityWarning(f"{character.name} has no current career to earn income from")
            logger.warning(str(warning))
            report.warnings.append(str(warning))
            return report

        tier = StatusTier(career.tier)
        dice = self.context.config.status_tier_earnings[tier] * career.standing
        if tier == StatusTier.GOLD:
            earned = dice
        else:
            earned = self.context.dice.roll(f"{dice}d10", "income").total

        if result.success:
            amount = earned
        elif result.sl > -6:
            amount = (earned + 1) // 2
        else:
            amount = 0

        if amount:
            description = f"You earn {amount} {COIN_PLURALS[tier]}."
        else:
            description = "You earn nothing."
        report.income = IncomeResult(amount=amount, tier=tier.value, description=description)
        report.summary.append(description)
        report.details["income_coin"] = MONEY_BY_TIER[tier]
        return report

    # =========================================================================
    # WEAPONS
    # =========================================================================

    def weapon_usage(self, result: TestResult, character: Character) -> ConsequenceReport:
        """Spend ammunition and a loaded shot. Amended results spend nothing."""
        report = ConsequenceReport(actor_id=character.character_id)
        if result.is_reroll:
            return report

        weapon = character.get_possession(result.spec.subject_id or "")
        if not isinstance(weapon, Weapon):
            raise ConcurrencyRaceError(f"weapon {result.spec.subject_id} no longer exists")

        if weapon.consumes_ammo:
            ammo = self._current_ammo(weapon, character)
            if ammo is None or ammo.quantity <= 0:
                raise ConcurrencyRaceError(f"no ammunition left for {weapon.name}")
            report.updates.append(
                StateUpdate.update(ammo.possession_id, {"quantity": ammo.quantity - 1}, reason=f"fire {weapon.name}")
            )

        if weapon.is_loading:
            remaining = weapon.loaded_amount - 1
            if remaining <= 0:
                report.updates.append(
                    StateUpdate.update(weapon.possession_id, {"loaded_amount": 0, "loaded": False}, reason="fired")
                )
                report.summary.append(f"{weapon.name} must be reloaded")
                report.merge(self.start_reload(character, weapon, loaded_amount=0))
            else:
                report.updates.append(StateUpdate.update(weapon.possession_id, {"loaded_amount": remaining}))
        return report

    @staticmethod
    def _current_ammo(weapon: Weapon, character: Character) -> Optional[Possession]:
        if weapon.ammunition_group and weapon.ammunition_group != "none":
            ammo = character.get_possession(weapon.current_ammo_id or "")
            return ammo if isinstance(ammo, Ammunition) else None
        return weapon

    def start_reload(
        self,
        character: Character,
        weapon: Weapon,
        loaded_amount: Optional[int] = None,
    ) -> ConsequenceReport:
        """
        Create the reload extended test for an empty weapon.

        A weapon that is loaded again has its leftover reload tracker removed.
        """
        report = ConsequenceReport(actor_id=character.character_id)
        if not weapon.is_loading:
            return report

        amount = weapon.loaded_amount if loaded_amount is None else loaded_amount
        existing = [
            t for t in character.possessions_of(ExtendedTest)
            if t.reloading_weapon_id == weapon.possession_id
        ]
        for tracker in existing:
            report.updates.append(
                StateUpdate.delete_child(tracker.possession_id, parent_id=character.character_id, reason="reload")
            )

        if amount > 0:
            if existing:
                report.summary.append(f"{weapon.name} finished reloading")
            return report

        target = weapon.flaw_value("reload", 1) or 1
        report.updates.append(
            StateUpdate.create_child(
                character.character_id,
                PossessionKind.EXTENDED_TEST.value,
                {
                    "possession_id": new_id("extended"),
                    "name": f"Reloading {weapon.name}",
                    "test_name": weapon.skill or "Ballistic Skill",
                    "target_sl": target,
                    "completion": CompletionPolicy.REMOVE.value,
                    "reloading_weapon_id": weapon.possession_id,
                },
                reason="reload",
            )
        )
        report.summary.append(f"Reload test created for {weapon.name} ({target} SL)")
        return report

    # =========================================================================
    # MAGIC
    # =========================================================================

    def magic(self, result: TestResult, character: Character) -> ConsequenceReport:
        """Channelling progress, the reset after casting, ingredients and miscasts."""
        report = ConsequenceReport(actor_id=character.character_id)
        spell = character.get_possession(result.spec.subject_id or "")
        if not isinstance(spell, Spell):
            raise ConcurrencyRaceError(f"spell {result.spec.subject_id} no longer exists")

        if result.spec.category == TestCategory.CHANNEL:
            channelled = result.channelled_sl or 0
            report.updates.append(StateUpdate.update(spell.possession_id, {"channelled_sl": channelled}))
            report.summary.append(f"{spell.name}: {channelled}/{spell.cn} channelled")
        elif spell.channelled_sl > 0:
            report.updates.append(StateUpdate.update(spell.possession_id, {"channelled_sl": 0}))

        if result.spec.category == TestCategory.CAST and result.success:
            report.summary.append(f"{spell.name} cast" + (f" with {result.overcasts} overcasts" if result.overcasts else ""))

        if result.miscast:
            table = MISCAST_TABLES.get(result.miscast, MISCAST_TABLES["minor"])
            report.table_prompts.append(TablePrompt(table, reason=f"{result.miscast.title()} Miscast"))
            report.summary.append(f"{result.miscast.title()} Miscast")

        if self.context.settings.channelling_ingredients and spell.ingredient_id and not result.is_reroll:
            ingredient = character.get_possession(spell.ingredient_id)
            if ingredient is not None and ingredient.quantity > 0:
                report.updates.append(
                    StateUpdate.update(ingredient.possession_id, {"quantity": ingredient.quantity - 1}, reason="ingredient")
                )
        return report
