"""
Tests for starter character creation.
"""

from wfrp_engine.character import DerivedAttributeEngine, new_character
from wfrp_engine.config import RuleConfig
from wfrp_engine.data_models import ActorType, CharacteristicId, Money, Skill


class TestNewCharacter:
    """Tests for new_character."""

    def test_basic_skills(self):
        """Test every basic skill is added without advances."""
        config = RuleConfig()
        character = new_character("Anna", config)
        skills = character.possessions_of(Skill)

        assert len(skills) == len(config.basic_skills)
        assert all(s.advances == 0 for s in skills)
        assert character.find_skill("Cool").characteristic == CharacteristicId.WP

    def test_money_highest_first(self):
        """Test the purse holds each coin, empty, gold first."""
        character = new_character("Anna", RuleConfig())
        coins = character.possessions_of(Money)

        assert [c.name for c in coins] == ["Gold Crown", "Silver Shilling", "Brass Penny"]
        assert all(c.quantity == 0 for c in coins)

    def test_characteristics_and_ids(self):
        character = new_character(
            "Brute",
            RuleConfig(),
            {CharacteristicId.S: 45},
            actor_type=ActorType.NPC,
            character_id="brute",
        )
        assert character.character_id == "brute"
        assert character.actor_type == ActorType.NPC
        assert character.characteristics[CharacteristicId.S].initial == 45
        assert character.characteristics[CharacteristicId.T].initial == 0

    def test_auto_calculation_on(self):
        character = new_character("Anna", RuleConfig())
        assert character.auto_calc.wounds
        assert character.auto_calc.encumbrance
        assert character.auto_calc.size

    def test_prepares_cleanly(self, context):
        """Test a starter character can be prepared straight away."""
        values = {cid: 30 for cid in CharacteristicId}
        prepared = DerivedAttributeEngine(context).prepare(new_character("Anna", context.config, values))

        assert prepared.wounds.max == 12
        assert prepared.skill_total("Athletics") == 30
        assert prepared.encumbrance.current == 0
