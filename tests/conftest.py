"""
Pytest fixtures for the WFRP rules engine test suite.

Provides scripted dice, a fresh rule context per test, and sample characters
with the possessions most tests need.
"""

import pytest
from typing import Optional

from wfrp_engine.config import GameSettings, RuleConfig, RuleContext
from wfrp_engine.data_models import (
    Ammunition,
    Armour,
    ArmourType,
    AttackType,
    BodyLocation,
    Career,
    Character,
    Characteristic,
    CharacteristicId,
    DiceRoller,
    Skill,
    StatusPool,
    StatusTier,
    Weapon,
)
from wfrp_engine.engine import RulesEngine
from wfrp_engine.hooks.registry import HookRegistry
from wfrp_engine.observability.run_log import RunLog
from wfrp_engine.store import InMemoryStore


class ScriptedDiceRoller(DiceRoller):
    """DiceRoller that returns scripted die faces first, then random ones."""

    def __init__(self, seed: Optional[int] = 7, run_log=None):
        super().__init__(seed=seed, run_log=run_log)
        self.queue: list[int] = []

    def script(self, *faces: int) -> "ScriptedDiceRoller":
        self.queue.extend(faces)
        return self

    def _roll_die(self, die_size: int) -> int:
        if self.queue:
            return self.queue.pop(0)
        return super()._roll_die(die_size)


def make_character(
    character_id: str,
    name: str,
    characteristics: Optional[dict[CharacteristicId, int]] = None,
    possessions: Optional[list] = None,
    **fields,
) -> Character:
    """Character with the given initial characteristics (default 30)."""
    values = {cid: 30 for cid in CharacteristicId}
    values.update(characteristics or {})
    return Character(
        character_id=character_id,
        name=name,
        characteristics={cid: Characteristic(initial=value) for cid, value in values.items()},
        possessions=list(possessions or []),
        **fields,
    )


# =============================================================================
# CONTEXT FIXTURES
# =============================================================================


@pytest.fixture
def run_log():
    """A fresh run log, never the process-wide one."""
    return RunLog()


@pytest.fixture
def dice(run_log):
    """Seeded dice that can be scripted with dice.script(...)."""
    return ScriptedDiceRoller(seed=7, run_log=run_log)


@pytest.fixture
def context(dice, run_log):
    """Rule context with default tables and settings and an empty hook registry."""
    return RuleContext(
        config=RuleConfig(),
        settings=GameSettings(),
        hooks=HookRegistry(),
        dice=dice,
        run_log=run_log,
    )


# =============================================================================
# CHARACTER FIXTURES
# =============================================================================


@pytest.fixture
def reiner():
    """
    A soldier: WS 40, BS 35, S 42, T 31, WP 25, everything else 30.

    SB 4, TB 3, WPB 2 gives 12 wounds at average size.
    """
    return make_character(
        "reiner",
        "Reiner",
        {
            CharacteristicId.WS: 40,
            CharacteristicId.BS: 35,
            CharacteristicId.S: 42,
            CharacteristicId.T: 31,
            CharacteristicId.WP: 25,
        },
        possessions=[
            Skill(possession_id="skill_dodge", name="Dodge", characteristic=CharacteristicId.AG),
            Skill(possession_id="skill_endurance", name="Endurance", characteristic=CharacteristicId.T, advances=5),
            Skill(possession_id="skill_cool", name="Cool", characteristic=CharacteristicId.WP),
            Skill(possession_id="skill_melee", name="Melee (Basic)", characteristic=CharacteristicId.WS, advances=5),
            Skill(possession_id="skill_bow", name="Ranged (Bow)", characteristic=CharacteristicId.BS),
            Skill(possession_id="skill_stealth", name="Stealth", characteristic=CharacteristicId.AG),
            Weapon(
                possession_id="sword",
                name="Hand Weapon",
                damage="SB+4",
                skill="Melee (Basic)",
            ),
            Weapon(
                possession_id="bow",
                name="Bow",
                damage="SB+3",
                attack_type=AttackType.RANGED,
                weapon_group="bow",
                range="50",
                skill="Ranged (Bow)",
                two_handed=True,
                consumes_ammo=True,
                ammunition_group="bow",
                current_ammo_id="arrows",
            ),
            Ammunition(possession_id="arrows", name="Arrow", ammunition_group="bow", quantity=10),
            Armour(
                possession_id="jack",
                name="Leather Jack",
                armour_type=ArmourType.SOFT_LEATHER,
                ap={BodyLocation.BODY: 1, BodyLocation.LEFT_ARM: 1, BodyLocation.RIGHT_ARM: 1},
            ),
            Career(
                possession_id="career_soldier",
                name="Soldier",
                tier=StatusTier.SILVER,
                standing=2,
                current=True,
            ),
        ],
        fortune=StatusPool(2, 2),
        corruption=StatusPool(0, 5),
    )


@pytest.fixture
def goblin():
    """A plain opponent: WS 25, T 40 (TB 4), 3 AP mail on the body."""
    return make_character(
        "goblin",
        "Goblin",
        {CharacteristicId.WS: 25, CharacteristicId.T: 40},
        possessions=[
            Skill(possession_id="goblin_melee", name="Melee (Basic)", characteristic=CharacteristicId.WS),
            Weapon(possession_id="goblin_spear", name="Spear", damage="SB+3"),
            Armour(
                possession_id="goblin_mail",
                name="Mail Shirt",
                armour_type=ArmourType.MAIL,
                ap={BodyLocation.BODY: 3},
            ),
        ],
    )


@pytest.fixture
def store(reiner, goblin):
    return InMemoryStore([reiner, goblin])


@pytest.fixture
def engine(store, context):
    """Engine over the sample characters; derived maxima written back."""
    engine = RulesEngine(store=store, context=context)
    engine.prepare_character("reiner")
    engine.prepare_character("goblin")
    return engine
