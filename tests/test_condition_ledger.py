"""
Tests for the condition ledger.

Tests adding and removing conditions, the cross-condition rules, encumbrance
states and the modifiers conditions impose.
"""

import pytest

from wfrp_engine.conditions.condition_ledger import ConditionLedger
from wfrp_engine.data_models import CharacteristicId, Condition, ConditionId
from wfrp_engine.interfaces import UpdateOp
from wfrp_engine.observability.run_log import EventType


@pytest.fixture
def ledger(context):
    return ConditionLedger(context)


class TestAddCondition:
    """Tests for ConditionLedger.add."""

    def test_add_numbered_creates_child(self, ledger, reiner):
        """Test a new numbered condition is created with its stack count."""
        change = ledger.add(reiner, ConditionId.BLEEDING, 2)

        assert change.added == [ConditionId.BLEEDING]
        assert change.values[ConditionId.BLEEDING] == 2
        update = change.updates[0]
        assert update.op == UpdateOp.CREATE_CHILD
        assert update.parent_id == "reiner"
        assert update.kind == "condition"
        assert update.data == {"condition_id": "bleeding", "value": 2}

    def test_add_stacks_existing(self, ledger, reiner):
        """Test adding to a present numbered condition updates its value."""
        reiner.conditions.append(Condition(ConditionId.STUNNED, 1))
        change = ledger.add(reiner, "stunned", 2)

        assert change.added == []
        assert change.values[ConditionId.STUNNED] == 3
        assert change.updates[0].op == UpdateOp.UPDATE
        assert change.updates[0].target_id == "reiner/stunned"
        assert change.updates[0].changes == {"value": 3}

    def test_add_boolean_is_idempotent(self, ledger, reiner):
        """Test adding a boolean condition that is present changes nothing."""
        reiner.conditions.append(Condition(ConditionId.PRONE))
        assert ledger.add(reiner, ConditionId.PRONE).updates == []

    def test_add_boolean_has_no_value(self, ledger, reiner):
        """Test boolean conditions carry no value."""
        change = ledger.add(reiner, ConditionId.SURPRISED)
        assert change.updates[0].data == {"condition_id": "surprised", "value": None}

    def test_unconscious_adds_prone(self, ledger, reiner):
        """Test gaining Unconscious also makes the character Prone."""
        change = ledger.add(reiner, ConditionId.UNCONSCIOUS)
        assert change.added == [ConditionId.UNCONSCIOUS, ConditionId.PRONE]

    def test_unconscious_when_already_prone(self, ledger, reiner):
        """Test Prone is not added twice."""
        reiner.conditions.append(Condition(ConditionId.PRONE))
        change = ledger.add(reiner, ConditionId.UNCONSCIOUS)
        assert change.added == [ConditionId.UNCONSCIOUS]

    def test_non_positive_amount_ignored(self, ledger, reiner):
        """Test adding zero stacks does nothing."""
        assert ledger.add(reiner, ConditionId.BLEEDING, 0).updates == []

    def test_changes_are_logged(self, ledger, reiner, run_log):
        """Test condition changes are recorded on the run log."""
        ledger.add(reiner, ConditionId.BLEEDING)
        events = run_log.get_events(EventType.CONDITION)
        assert len(events) == 1
        assert events[0].actor_id == "reiner"


class TestRemoveCondition:
    """Tests for ConditionLedger.remove."""

    def test_remove_some_stacks(self, ledger, reiner):
        """Test removing fewer stacks than present lowers the value."""
        reiner.conditions.append(Condition(ConditionId.POISONED, 3))
        change = ledger.remove(reiner, ConditionId.POISONED, 1)
        assert change.values[ConditionId.POISONED] == 2
        assert change.removed == []

    def test_bleeding_to_zero_leaves_fatigued(self, ledger, reiner):
        """Test Bleeding reaching exactly zero is deleted and adds Fatigued."""
        reiner.conditions.append(Condition(ConditionId.BLEEDING, 1))
        change = ledger.remove(reiner, ConditionId.BLEEDING, 1)

        assert change.removed == [ConditionId.BLEEDING]
        assert change.added == [ConditionId.FATIGUED]
        delete = next(u for u in change.updates if u.op == UpdateOp.DELETE_CHILD)
        assert delete.target_id == "reiner/bleeding"

    def test_overshoot_deletes_without_fatigue(self, ledger, reiner):
        """Test removing past zero deletes but does not add Fatigued."""
        reiner.conditions.append(Condition(ConditionId.BLEEDING, 1))
        change = ledger.remove(reiner, ConditionId.BLEEDING, 3)
        assert change.removed == [ConditionId.BLEEDING]
        assert change.added == []

    def test_ablaze_to_zero_no_fatigue(self, ledger, reiner):
        """Test conditions outside the fatigue list just disappear."""
        reiner.conditions.append(Condition(ConditionId.ABLAZE, 1))
        change = ledger.remove(reiner, ConditionId.ABLAZE, 1)
        assert change.added == []

    def test_fatigue_stacks_when_present(self, ledger, reiner):
        """Test the Fatigued from zeroing a condition stacks on existing Fatigued."""
        reiner.conditions.extend([Condition(ConditionId.STUNNED, 1), Condition(ConditionId.FATIGUED, 1)])
        change = ledger.remove(reiner, ConditionId.STUNNED, 1)
        assert change.values[ConditionId.FATIGUED] == 2

    def test_losing_unconscious_adds_fatigued(self, ledger, reiner):
        """Test waking up leaves the character Fatigued."""
        reiner.conditions.append(Condition(ConditionId.UNCONSCIOUS))
        change = ledger.remove(reiner, ConditionId.UNCONSCIOUS)
        assert change.removed == [ConditionId.UNCONSCIOUS]
        assert change.added == [ConditionId.FATIGUED]

    def test_remove_absent_is_noop(self, ledger, reiner):
        """Test removing a condition that is not present changes nothing."""
        assert ledger.remove(reiner, ConditionId.BROKEN).updates == []


class TestEncumbranceStates:
    """Tests for ConditionLedger.sync_encumbrance."""

    def test_tier_adds_matching_state(self, ledger, reiner):
        """Test tier 2 adds enc2."""
        change = ledger.sync_encumbrance(reiner, 2)
        assert change.added == [ConditionId.ENC2]

    def test_tier_change_replaces_state(self, ledger, reiner):
        """Test moving from tier 1 to tier 3 swaps the states."""
        reiner.conditions.append(Condition(ConditionId.ENC1))
        change = ledger.sync_encumbrance(reiner, 3)
        assert change.removed == [ConditionId.ENC1]
        assert change.added == [ConditionId.ENC3]

    def test_unencumbered_clears_states(self, ledger, reiner):
        """Test tier 0 removes any encumbrance state."""
        reiner.conditions.append(Condition(ConditionId.ENC2))
        change = ledger.sync_encumbrance(reiner, 0)
        assert change.removed == [ConditionId.ENC2]
        assert change.added == []

    def test_matching_state_is_kept(self, ledger, reiner):
        """Test nothing changes when the state already matches."""
        reiner.conditions.append(Condition(ConditionId.ENC1))
        assert ledger.sync_encumbrance(reiner, 1).updates == []


class TestConditionModifiers:
    """Tests for condition penalties and target bonuses."""

    def test_fatigued_penalises_every_test(self, ledger, reiner):
        """Test each Fatigued stack is -10 on any characteristic."""
        reiner.conditions.append(Condition(ConditionId.FATIGUED, 2))
        contributions = ledger.contributions(reiner, CharacteristicId.INT)
        assert len(contributions) == 1
        assert contributions[0].modifier == -20
        assert contributions[0].label == "Fatigued 2"

    def test_entangled_only_affects_agility(self, ledger, reiner):
        """Test Entangled penalises Agility tests only."""
        reiner.conditions.append(Condition(ConditionId.ENTANGLED, 1))
        assert ledger.contributions(reiner, CharacteristicId.AG)[0].modifier == -10
        assert ledger.contributions(reiner, CharacteristicId.WS) == []

    def test_deafened_affects_perception(self, ledger, reiner):
        """Test Deafened penalises Perception but not other Initiative tests."""
        reiner.conditions.append(Condition(ConditionId.DEAFENED, 1))
        assert ledger.contributions(reiner, CharacteristicId.I, "Perception")[0].modifier == -10
        assert ledger.contributions(reiner, CharacteristicId.I, "Intuition") == []

    def test_encumbrance_penalises_agility(self, ledger, reiner):
        """Test enc3 is -30 to Agility tests."""
        reiner.conditions.append(Condition(ConditionId.ENC3))
        assert ledger.contributions(reiner, CharacteristicId.AG)[0].modifier == -30

    def test_prone_target_bonus_melee_only(self, ledger, goblin):
        """Test attacking a Prone target gives +20 in melee only."""
        goblin.conditions.append(Condition(ConditionId.PRONE))
        melee = ledger.target_contributions(goblin, melee=True)
        assert [c.modifier for c in melee] == [20]
        assert ledger.target_contributions(goblin, melee=False) == []
