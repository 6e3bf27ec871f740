"""
Tests for the consequence processor.

Tests corruption and mutation, extended test progress, income, ammunition
and reloading, channelling and the table prompts results raise.
"""

import pytest

from wfrp_engine.consequences import ConsequenceProcessor, corruption_gain, extended_contribution
from wfrp_engine.data_models import (
    AttackType,
    Career,
    CompletionPolicy,
    ExtendedTest,
    Spell,
    StatusPool,
    StatusTier,
    Trapping,
    Weapon,
)
from wfrp_engine.interfaces import UpdateOp
from wfrp_engine.observability.run_log import EventType
from wfrp_engine.resolution import TestCategory, TestOptions, TestResolver, TestSpecification


@pytest.fixture
def processor(context):
    return ConsequenceProcessor(context)


@pytest.fixture
def resolver(context):
    return TestResolver(context)


def make_spec(base_target=36, category=TestCategory.SKILL, subject_id=None, cn=0, channelled_sl=0, sin=0, **options):
    """Reiner's test against a fixed target with the given options."""
    return TestSpecification(
        category=category,
        actor_id="reiner",
        actor_name="Reiner",
        subject_name="Endurance",
        base_target=base_target,
        difficulty="challenging",
        subject_id=subject_id,
        cn=cn,
        channelled_sl=channelled_sl,
        sin=sin,
        options=TestOptions(**options),
    )


def tracker(**fields):
    fields.setdefault("target_sl", 5)
    return ExtendedTest(possession_id="pick", name="Pick Lock", test_name="Stealth", **fields)


class TestCorruption:
    """Tests for corruption tests and mutation."""

    @pytest.mark.parametrize(
        "strength,roll,expected",
        [
            ("minor", 60, 1),
            ("minor", 20, 0),
            ("moderate", 60, 2),
            ("moderate", 20, 1),
            ("moderate", 5, 0),
            ("major", 60, 3),
            ("major", 20, 2),
            ("major", 5, 1),
        ],
    )
    def test_corruption_gain(self, context, resolver, strength, roll, expected):
        """Test gains by strength for a failure, SL 1 and SL 3."""
        result = resolver.resolve(make_spec(corruption=strength), roll)
        assert corruption_gain(context, strength, result) == expected

    def test_unknown_strength_gains_nothing(self, context, resolver):
        result = resolver.resolve(make_spec(), 60)
        assert corruption_gain(context, "cosmic", result) == 0

    def test_failure_adds_corruption(self, processor, resolver, reiner):
        """Test a failed corruption test raises the corruption value."""
        report = processor.apply(resolver.resolve(make_spec(corruption="moderate"), 60), reiner)

        assert report.updates[0].changes == {"corruption.value": 2}
        assert "Reiner gains 2 Corruption" in report.summary
        assert report.follow_up_tests == []

    def test_reroll_replaces_previous_gain(self, processor, resolver, reiner):
        """Test a rerolled corruption test takes back what the first roll gave."""
        first = resolver.resolve(make_spec(corruption="moderate"), 60)
        reiner.corruption = StatusPool(2, 5)
        second = resolver.reroll(first, reiner, 20).result

        report = processor.corruption(second, reiner)
        assert report.details["corruption_delta"] == -1
        assert report.updates[0].changes == {"corruption.value": 1}

    def test_exceeding_maximum_requires_mutation_test(self, processor, resolver, reiner):
        """Test going over the corruption maximum asks for an Endurance test."""
        reiner.corruption = StatusPool(4, 5)
        report = processor.apply(resolver.resolve(make_spec(corruption="major"), 60), reiner)

        assert report.updates[0].changes == {"corruption.value": 7}
        follow_up = report.follow_up_tests[0]
        assert follow_up.subject == "Endurance"
        assert follow_up.options.mutate is True
        assert follow_up.fallback.value == "t"

    def test_failed_mutation_test(self, processor, resolver, reiner):
        """Test failing to resist mutation costs WPB corruption and prompts the tables."""
        reiner.corruption = StatusPool(6, 5)
        report = processor.apply(resolver.resolve(make_spec(mutate=True), 60), reiner)

        assert report.updates[0].changes == {"corruption.value": 4}
        assert [p.table for p in report.table_prompts] == ["mutatephys", "mutatemental"]

    def test_passed_mutation_test(self, processor, resolver, reiner):
        """Test resisting mutation changes nothing."""
        report = processor.apply(resolver.resolve(make_spec(mutate=True), 20), reiner)
        assert report.updates == []
        assert report.table_prompts == []


class TestExtendedProgress:
    """Tests for extended test trackers."""

    def test_success_adds_sl(self, processor, resolver, reiner):
        """Test a success adds its SL to the tracker."""
        reiner.possessions.append(tracker())
        report = processor.apply(resolver.resolve(make_spec(30, extended_test_id="pick"), 10), reiner)

        assert report.updates[0].target_id == "pick"
        assert report.updates[0].changes == {"current_sl": 2}
        assert report.summary == ["Pick Lock 2 / 5 SL"]

    def test_failure_adds_nothing_by_default(self, processor, resolver, reiner):
        reiner.possessions.append(tracker(current_sl=2))
        report = processor.extended(resolver.resolve(make_spec(30, extended_test_id="pick"), 60), reiner)
        assert report.updates[0].changes == {"current_sl": 2}

    def test_failing_decreases(self, processor, resolver, reiner):
        """Test failures subtract when the tracker says so."""
        reiner.possessions.append(tracker(current_sl=4, failing_decreases=True))
        report = processor.extended(resolver.resolve(make_spec(30, extended_test_id="pick"), 60), reiner)
        assert report.updates[0].changes == {"current_sl": 1}

    def test_negative_clamped_unless_allowed(self, processor, resolver, reiner):
        """Test progress stops at 0 unless negative totals are allowed."""
        reiner.possessions.append(tracker(current_sl=1, failing_decreases=True))
        result = resolver.resolve(make_spec(30, extended_test_id="pick"), 60)
        assert processor.extended(result, reiner).updates[0].changes == {"current_sl": 0}

        reiner.get_possession("pick").negative_possible = True
        assert processor.extended(result, reiner).updates[0].changes == {"current_sl": -2}

    def test_zero_sl_setting(self, context, resolver):
        """Test a zero SL success counts as 1 with the setting on."""
        result = resolver.resolve(make_spec(30), 30)
        assert extended_contribution(context, tracker(), result) == 0
        context.settings.extended_tests_zero_sl = True
        assert extended_contribution(context, tracker(), result) == 1

    @pytest.mark.parametrize(
        "completion,op,changes",
        [
            (CompletionPolicy.NONE, UpdateOp.UPDATE, {"current_sl": 6}),
            (CompletionPolicy.RESET, UpdateOp.UPDATE, {"current_sl": 0}),
            (CompletionPolicy.REMOVE, UpdateOp.DELETE_CHILD, {}),
        ],
    )
    def test_completion(self, processor, resolver, reiner, completion, op, changes):
        """Test what each completion policy does once the target is reached."""
        reiner.possessions.append(tracker(current_sl=4, completion=completion))
        report = processor.extended(resolver.resolve(make_spec(30, extended_test_id="pick"), 10), reiner)

        assert report.updates[-1].op == op
        assert report.updates[-1].changes == changes
        assert report.summary == ["Pick Lock 6 / 5 SL Completed"]
        assert report.details["extended_completed"] == "pick"

    def test_reroll_replaces_contribution(self, processor, resolver, reiner):
        """Test a rerolled extended test replaces the first roll's SL."""
        reiner.possessions.append(tracker())
        first = resolver.resolve(make_spec(30, extended_test_id="pick"), 10)
        reiner.get_possession("pick").current_sl = 2
        second = resolver.reroll(first, reiner, 20).result

        assert processor.extended(second, reiner).updates[0].changes == {"current_sl": 1}

    def test_completed_reload_loads_weapon(self, processor, resolver, reiner):
        """Test finishing a reload tracker loads its weapon."""
        reiner.possessions.append(
            Weapon(possession_id="xbow", name="Crossbow", damage="9", flaws={"reload": 1}, loaded_max=1)
        )
        reiner.possessions.append(
            tracker(target_sl=1, completion=CompletionPolicy.REMOVE, reloading_weapon_id="xbow")
        )
        report = processor.extended(resolver.resolve(make_spec(30, extended_test_id="pick"), 10), reiner)

        assert report.updates[0].target_id == "xbow"
        assert report.updates[0].changes == {"loaded": True, "loaded_amount": 1}
        assert report.updates[1].op == UpdateOp.DELETE_CHILD

    def test_missing_tracker_is_skipped(self, processor, resolver, reiner):
        """Test a deleted tracker is skipped with a warning."""
        report = processor.apply(resolver.resolve(make_spec(30, extended_test_id="gone"), 10), reiner)
        assert report.updates == []
        assert report.warnings[0].startswith("Skipped extended")


class TestIncome:
    """Tests for income tests."""

    def test_success_pays_in_full(self, processor, resolver, reiner, dice):
        """Test silver standing 2 rolls 2d10 shillings on a success."""
        dice.script(4, 5)
        report = processor.apply(resolver.resolve(make_spec(income=True), 20), reiner)

        assert report.income.amount == 9
        assert report.income.tier == "s"
        assert report.income.description == "You earn 9 silver shillings."
        assert report.details["income_coin"] == "Silver Shilling"

    def test_failure_pays_half_rounded_up(self, processor, resolver, reiner, dice):
        dice.script(4, 5)
        report = processor.income(resolver.resolve(make_spec(income=True), 60), reiner)
        assert report.income.amount == 5

    def test_bad_failure_pays_nothing(self, processor, resolver, reiner):
        """Test failing by 6 SL or more earns nothing."""
        report = processor.income(resolver.resolve(make_spec(income=True), 96), reiner)
        assert report.income.amount == 0
        assert report.income.description == "You earn nothing."

    def test_gold_is_not_rolled(self, processor, resolver, reiner):
        """Test gold tier pays the standing directly."""
        reiner.get_possession("career_soldier").current = False
        reiner.possessions.append(
            Career(possession_id="career_noble", name="Noble", tier=StatusTier.GOLD, standing=3, current=True)
        )
        report = processor.income(resolver.resolve(make_spec(income=True), 20), reiner)
        assert report.income.amount == 3
        assert report.income.description == "You earn 3 gold crowns."

    def test_no_career_warns(self, processor, resolver, goblin):
        """Test a character without a current career gets a warning and no income."""
        report = processor.income(resolver.resolve(make_spec(income=True), 20), goblin)
        assert report.income is None
        assert "no current career" in report.warnings[0]


class TestWeaponUsage:
    """Tests for ammunition and reloading."""

    def test_firing_spends_ammunition(self, engine, dice):
        """Test firing the bow uses one arrow."""
        spec = engine.build_test("reiner", TestCategory.WEAPON, "bow")
        dice.script(50)
        engine.apply_consequences(engine.resolve_test(spec, 20))
        assert engine.character("reiner").get_possession("arrows").quantity == 9

    def test_reroll_spends_no_ammunition(self, engine, dice):
        """Test a Fortune reroll of a shot does not use another arrow."""
        spec = engine.build_test("reiner", TestCategory.WEAPON, "bow")
        dice.script(50)
        result = engine.resolve_test(spec, 20)
        engine.apply_consequences(result)
        dice.script(50)
        engine.reroll(result, 21)

        reiner = engine.character("reiner")
        assert reiner.get_possession("arrows").quantity == 9
        assert reiner.fortune.value == 1

    def test_ammunition_gone_since_building(self, engine, dice):
        """Test ammunition used up after building is skipped with a warning."""
        spec = engine.build_test("reiner", TestCategory.WEAPON, "bow")
        engine.character("reiner").get_possession("arrows").quantity = 0
        dice.script(50)
        report = engine.apply_consequences(engine.resolve_test(spec, 20))

        assert report.warnings[0].startswith("Skipped ammunition")
        assert engine.character("reiner").get_possession("arrows").quantity == 0

    def test_last_shot_starts_reload(self, engine, dice):
        """Test firing the loaded shot empties the weapon and creates a reload test."""
        engine.character("reiner").possessions.append(
            Weapon(
                possession_id="xbow",
                name="Crossbow",
                damage="9",
                attack_type=AttackType.RANGED,
                range="60",
                flaws={"reload": 2},
                loaded=True,
                loaded_amount=1,
            )
        )
        spec = engine.build_test("reiner", TestCategory.WEAPON, "xbow")
        dice.script(50)
        report = engine.apply_consequences(engine.resolve_test(spec, 20))

        reiner = engine.character("reiner")
        crossbow = reiner.get_possession("xbow")
        assert crossbow.loaded is False
        assert crossbow.loaded_amount == 0
        reload = reiner.possessions_of(ExtendedTest)[0]
        assert reload.name == "Reloading Crossbow"
        assert reload.target_sl == 2
        assert reload.completion == CompletionPolicy.REMOVE
        assert "Crossbow must be reloaded" in report.summary

    def test_reload_on_loaded_weapon_removes_tracker(self, processor, reiner):
        """Test a loaded weapon's leftover reload tracker is removed."""
        crossbow = Weapon(possession_id="xbow", name="Crossbow", flaws={"reload": 1}, loaded=True, loaded_amount=1)
        reiner.possessions.extend([crossbow, tracker(reloading_weapon_id="xbow")])
        report = processor.start_reload(reiner, crossbow)

        assert report.updates[0].op == UpdateOp.DELETE_CHILD
        assert report.updates[0].target_id == "pick"
        assert report.summary == ["Crossbow finished reloading"]

    def test_non_loading_weapon_needs_no_reload(self, processor, reiner):
        assert processor.start_reload(reiner, reiner.get_possession("sword")).updates == []


class TestMagic:
    """Tests for channelling and casting consequences."""

    @pytest.fixture
    def dart(self, reiner):
        spell = Spell(possession_id="dart", name="Dart", cn=4, channelled_sl=2, ingredient_id="herb")
        reiner.possessions.extend([spell, Trapping(possession_id="herb", name="Herb", quantity=2)])
        return spell

    def test_channelling_progress(self, processor, resolver, reiner, dart):
        """Test channelling stores its running total and uses an ingredient."""
        spec = make_spec(60, TestCategory.CHANNEL, subject_id="dart", cn=4, channelled_sl=2)
        report = processor.apply(resolver.resolve(spec, 30), reiner)

        assert report.updates[0].changes == {"channelled_sl": 5}
        assert "Dart: 5/4 channelled" in report.summary
        assert report.updates[1].target_id == "herb"
        assert report.updates[1].changes == {"quantity": 1}

    def test_ingredients_setting(self, processor, resolver, reiner, dart):
        """Test ingredients are kept when the setting is off."""
        processor.context.settings.channelling_ingredients = False
        spec = make_spec(60, TestCategory.CHANNEL, subject_id="dart", cn=4, channelled_sl=2)
        report = processor.apply(resolver.resolve(spec, 30), reiner)
        assert [u.target_id for u in report.updates] == ["dart"]

    def test_casting_resets_channelling(self, processor, resolver, reiner, dart):
        """Test casting clears the channelled SL and reports overcasts."""
        processor.context.settings.channelling_ingredients = False
        spec = make_spec(50, TestCategory.CAST, subject_id="dart", cn=4, channelled_sl=2)
        report = processor.apply(resolver.resolve(spec, 20), reiner)

        assert report.updates[0].changes == {"channelled_sl": 0}
        assert "Dart cast with 1 overcasts" in report.summary

    def test_miscast_prompts_table(self, processor, resolver, reiner, dart):
        """Test a miscast asks for a roll on the minor miscast table."""
        spec = make_spec(50, TestCategory.CAST, subject_id="dart", cn=4)
        report = processor.apply(resolver.resolve(spec, 77), reiner)

        assert report.table_prompts[0].table == "minormis"
        assert "Minor Miscast" in report.summary

    def test_missing_spell_is_skipped(self, processor, resolver, reiner):
        spec = make_spec(50, TestCategory.CAST, subject_id="gone", cn=4)
        report = processor.apply(resolver.resolve(spec, 20), reiner)
        assert report.warnings[0].startswith("Skipped magic")


class TestPrompts:
    """Tests for wrath, fumbles and logging."""

    def test_wrath_of_the_gods(self, processor, resolver, reiner):
        """Test Wrath prompts the wrath table."""
        report = processor.apply(resolver.resolve(make_spec(50, TestCategory.PRAYER, sin=2), 41), reiner)
        assert report.table_prompts[0].table == "wrath"
        assert "Wrath of the Gods" in report.summary

    def test_fumble_prompts_oops(self, engine):
        """Test a fumbled attack prompts the fumble table."""
        result = engine.resolve_test(engine.build_test("reiner", TestCategory.WEAPON, "sword"), 66)
        report = engine.apply_consequences(result)
        assert [p.table for p in report.table_prompts] == ["oops"]

    def test_consequences_are_logged(self, processor, resolver, reiner, run_log):
        """Test each applied result is recorded on the run log."""
        processor.apply(resolver.resolve(make_spec(corruption="minor"), 60), reiner)
        events = run_log.get_events(EventType.CONSEQUENCE)

        assert len(events) == 1
        assert events[0].actor_id == "reiner"
        assert events[0].update_count == 1
