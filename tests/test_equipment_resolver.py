"""
Tests for equipment resolution.

Tests formula evaluation, armour tables, encumbrance, ammunition checks and
prepared weapon profiles.
"""

import pytest

from wfrp_engine.config import RuleConfig
from wfrp_engine.data_models import (
    Ammunition,
    Armour,
    ArmourType,
    AttackType,
    BodyLocation,
    Container,
    Trapping,
    Weapon,
)
from wfrp_engine.equipment import EquipmentResolver, evaluate_formula
from wfrp_engine.errors import NoAmmoError, NotLoadedError


@pytest.fixture
def resolver():
    return EquipmentResolver(RuleConfig())


class TestEvaluateFormula:
    """Tests for evaluate_formula."""

    def test_bonus_plus_constant(self):
        """Test the common SB+X damage form."""
        assert evaluate_formula("SB+4", {"SB": 4}) == 8

    def test_multiplication_and_precedence(self):
        """Test * binds tighter than +."""
        assert evaluate_formula("SB*3+2", {"SB": 4}) == 14

    def test_division_floors(self):
        """Test division rounds down, including negatives."""
        assert evaluate_formula("(SB+1)/2", {"SB": 4}) == 2
        assert evaluate_formula("-3/2", {}) == -2

    def test_tokens_are_case_insensitive(self):
        """Test lower-case tokens resolve."""
        assert evaluate_formula("tb*2", {"TB": 3}) == 6

    def test_empty_formula_is_zero(self):
        """Test an empty formula evaluates to 0."""
        assert evaluate_formula("", {}) == 0

    def test_unknown_token_raises(self):
        """Test a token that is not a bonus raises ValueError."""
        with pytest.raises(ValueError):
            evaluate_formula("XB+1", {"SB": 4})

    def test_malformed_formula_raises(self):
        """Test dangling operators and parentheses raise ValueError."""
        with pytest.raises(ValueError):
            evaluate_formula("SB+", {"SB": 4})
        with pytest.raises(ValueError):
            evaluate_formula("(SB+1", {"SB": 4})


class TestArmour:
    """Tests for armour tables and stealth penalties."""

    def test_layers_sum_by_location(self, resolver):
        """Test worn layers stack and damage reduces each layer."""
        possessions = [
            Armour(possession_id="jack", name="Jack", ap={BodyLocation.BODY: 1, BodyLocation.LEFT_ARM: 1}),
            Armour(
                possession_id="mail",
                name="Mail Shirt",
                armour_type=ArmourType.MAIL,
                ap={BodyLocation.BODY: 2},
                damage_to_item={BodyLocation.BODY: 1},
            ),
        ]
        table = resolver.armour_table(possessions)

        assert table.ap(BodyLocation.BODY) == 2
        assert table.ap(BodyLocation.LEFT_ARM) == 1
        assert table.ap(BodyLocation.HEAD) == 0
        assert len(table.at(BodyLocation.BODY).layers) == 2
        assert table.at(BodyLocation.BODY).layers[1].metal is True

    def test_unworn_armour_is_ignored(self, resolver):
        """Test armour that is carried but not worn gives no AP."""
        possessions = [Armour(possession_id="helm", name="Helm", ap={BodyLocation.HEAD: 2}, worn=False)]
        assert resolver.armour_table(possessions).ap(BodyLocation.HEAD) == 0

    def test_layer_flags(self, resolver):
        """Test partial and weakpoints flaws are carried on the layer."""
        possessions = [
            Armour(
                possession_id="brig",
                name="Brigandine",
                ap={BodyLocation.BODY: 2},
                flaws={"partial": None, "weakpoints": None},
            )
        ]
        layer = resolver.armour_table(possessions).at(BodyLocation.BODY).layers[0]
        assert layer.partial is True
        assert layer.weakpoints is True
        assert layer.impenetrable is False

    def test_shield_tracked_separately(self, resolver):
        """Test a shield's rating goes to the shield slot, not a location."""
        possessions = [Weapon(possession_id="shield", name="Shield", qualities={"shield": 2})]
        table = resolver.armour_table(possessions)
        assert table.shield == 2
        assert table.ap(BodyLocation.LEFT_ARM) == 0

    def test_stealth_penalty(self, resolver):
        """Test metal armour penalises stealth and practical offsets it."""
        mail = Armour(possession_id="mail", name="Mail", armour_type=ArmourType.MAIL, ap={BodyLocation.BODY: 2})
        practical = Armour(possession_id="coif", name="Coif", ap={BodyLocation.HEAD: 1}, qualities={"practical": None})

        assert resolver.stealth_penalty([mail]) == -10
        assert resolver.stealth_penalty([mail, practical]) == 0
        assert resolver.stealth_penalty([practical]) == 0

    def test_stealth_penalty_once_per_armour_type(self, resolver):
        """Test several pieces of one armour type penalise stealth only once."""
        coat = Armour(possession_id="coat", name="Mail Coat", armour_type=ArmourType.MAIL, ap={BodyLocation.BODY: 2})
        coif = Armour(possession_id="coif", name="Mail Coif", armour_type=ArmourType.MAIL, ap={BodyLocation.HEAD: 2})
        helm = Armour(possession_id="helm", name="Helm", armour_type=ArmourType.PLATE, ap={BodyLocation.HEAD: 2})

        assert resolver.stealth_penalty([coat, coif]) == -10
        assert resolver.stealth_penalty([coat, coif, helm]) == -20

    def test_practical_without_penalty_gives_no_bonus(self, resolver):
        """Test practical pieces only offset a penalty, never go above zero."""
        jack = Armour(
            possession_id="jack",
            name="Leather Jack",
            armour_type=ArmourType.SOFT_LEATHER,
            ap={BodyLocation.BODY: 1},
            qualities={"practical": None},
        )
        coat = Armour(possession_id="coat", name="Mail Coat", armour_type=ArmourType.MAIL, ap={BodyLocation.BODY: 2})
        helm = Armour(possession_id="helm", name="Helm", armour_type=ArmourType.PLATE, ap={BodyLocation.HEAD: 2})

        assert resolver.stealth_penalty([jack]) == 0
        assert resolver.stealth_penalty([jack, coat, helm]) == -10


class TestEncumbrance:
    """Tests for carried encumbrance."""

    def test_counts_quantity(self, resolver):
        """Test encumbrance is per item times quantity, rounded down."""
        possessions = [
            Trapping(possession_id="rope", name="Rope", encumbrance=1),
            Trapping(possession_id="torch", name="Torch", encumbrance=0.5, quantity=3),
        ]
        summary = resolver.encumbrance(possessions, capacity=10)
        assert summary.current == 2
        assert summary.over == 0
        assert summary.tier == 0

    def test_non_counting_container_excludes_contents(self, resolver):
        """Test items in a container that does not count are skipped."""
        possessions = [
            Container(possession_id="cart", name="Cart", encumbrance=0),
            Container(possession_id="pack", name="Backpack", encumbrance=1, count_contents=True),
            Trapping(possession_id="anvil", name="Anvil", encumbrance=10, container_id="cart"),
            Trapping(possession_id="rations", name="Rations", encumbrance=2, container_id="pack"),
        ]
        assert resolver.encumbrance(possessions, capacity=10).current == 3

    def test_tier_from_ratio(self, resolver):
        """Test the tier rises as the load passes multiples of capacity."""
        possessions = [Trapping(possession_id="load", name="Load", encumbrance=25)]
        summary = resolver.encumbrance(possessions, capacity=10)
        assert summary.over == 15
        assert summary.tier == 2

    def test_skills_do_not_count(self, reiner, resolver):
        """Test non-physical possessions carry no weight."""
        assert resolver.encumbrance(reiner.possessions, capacity=10).current == 0


class TestAmmunition:
    """Tests for ammunition availability."""

    def test_selected_ammo_available(self, reiner, resolver):
        """Test a bow with arrows selected is ready."""
        status = resolver.require_ammo(reiner.get_possession("bow"), reiner.possessions)
        assert status.available is True
        assert status.ammo_id == "arrows"
        assert status.quantity == 10

    def test_empty_quiver_raises(self, reiner, resolver):
        """Test zero arrows raises NoAmmoError."""
        reiner.get_possession("arrows").quantity = 0
        with pytest.raises(NoAmmoError) as exc_info:
            resolver.require_ammo(reiner.get_possession("bow"), reiner.possessions)
        assert exc_info.value.code == "NoAmmo"
        assert exc_info.value.subject == "Bow"

    def test_no_ammo_selected(self, reiner, resolver):
        """Test a bow with no ammunition selected is unavailable."""
        bow = reiner.get_possession("bow")
        bow.current_ammo_id = None
        status = resolver.ammo_status(bow, reiner.possessions)
        assert status.available is False
        assert "No ammunition selected" in status.reason

    def test_thrown_weapon_uses_own_quantity(self, resolver):
        """Test thrown weapons count themselves as ammunition."""
        knives = Weapon(
            possession_id="knives",
            name="Throwing Knife",
            attack_type=AttackType.RANGED,
            consumes_ammo=True,
            quantity=0,
        )
        assert resolver.ammo_status(knives, [knives]).available is False
        knives.quantity = 3
        assert resolver.ammo_status(knives, [knives]).quantity == 3

    def test_reload_flaw_requires_loading(self):
        """Test an unloaded weapon with Reload raises NotLoadedError."""
        crossbow = Weapon(possession_id="xbow", name="Crossbow", flaws={"reload": 1})
        with pytest.raises(NotLoadedError):
            EquipmentResolver.require_loaded(crossbow)
        crossbow.loaded = True
        EquipmentResolver.require_loaded(crossbow)


class TestPrepareWeapon:
    """Tests for prepared weapon profiles."""

    def test_melee_damage(self, reiner, resolver):
        """Test SB+4 with SB 4 gives 8 damage."""
        prepared = resolver.prepare_weapon(reiner.get_possession("sword"), {"SB": 4}, reiner.possessions)
        assert prepared.damage == 8
        assert prepared.is_melee
        assert prepared.range is None

    def test_damage_increase(self, reiner, resolver):
        """Test flat talent damage is added."""
        prepared = resolver.prepare_weapon(
            reiner.get_possession("sword"), {"SB": 4}, reiner.possessions, damage_increase=2
        )
        assert prepared.damage == 10

    def test_range_bands(self, reiner, resolver):
        """Test bands are cut from the weapon's range."""
        prepared = resolver.prepare_weapon(reiner.get_possession("bow"), {"SB": 4}, reiner.possessions)
        bands = {band.name: band for band in prepared.range_bands}

        assert prepared.range == 50
        assert (bands["Point Blank"].low, bands["Point Blank"].high) == (0, 5)
        assert (bands["Short Range"].low, bands["Short Range"].high) == (5, 25)
        assert (bands["Normal"].low, bands["Normal"].high) == (25, 50)
        assert bands["Point Blank"].modifier == 40
        assert bands["Short Range"].modifier == 20
        assert bands["Normal"].modifier == 0
        assert bands["Extreme"].modifier == -30

    def test_band_for_distance(self, reiner, resolver):
        """Test distances fall in the first matching band."""
        prepared = resolver.prepare_weapon(reiner.get_possession("bow"), {"SB": 4}, reiner.possessions)
        assert prepared.band_for(3).name == "Point Blank"
        assert prepared.band_for(30).name == "Normal"
        assert prepared.band_for(75).name == "Long Range"
        assert prepared.band_for(500) is None

    def test_ammunition_merges_into_profile(self, resolver):
        """Test ammunition damage, qualities and range modifier apply."""
        bow = Weapon(
            possession_id="bow",
            name="Bow",
            damage="SB+3",
            attack_type=AttackType.RANGED,
            range="50",
            consumes_ammo=True,
            ammunition_group="bow",
            current_ammo_id="bodkin",
        )
        bodkin = Ammunition(
            possession_id="bodkin",
            name="Bodkin Arrow",
            ammunition_group="bow",
            damage="1",
            range_modifier="*0.5",
            qualities={"penetrating": None},
            quantity=5,
        )
        prepared = resolver.prepare_weapon(bow, {"SB": 4}, [bow, bodkin])

        assert prepared.damage == 8
        assert prepared.range == 25
        assert prepared.has_quality("penetrating")
        assert prepared.ammo.ammo_id == "bodkin"
