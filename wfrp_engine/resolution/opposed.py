"""
Opposed tests.

Two resolved tests are compared: the higher SL wins, a tie goes to the
higher target. When the attacker wins with a damaging test the opposed result
carries the damage (weapon damage plus the SL difference) and the attacker's
hit location.
"""

from dataclasses import dataclass
from typing import Optional
import logging

from wfrp_engine.data_models import BodyLocation
from wfrp_engine.resolution.test_resolver import TestResult, units_die

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OpposedResult:
    """Outcome of an attacker/defender pair."""
    attacker: TestResult
    defender: TestResult
    winner: str  # "attacker" or "defender"
    differential_sl: int
    damage: Optional[int] = None
    hit_location: Optional[BodyLocation] = None

    @property
    def attacker_won(self) -> bool:
        return self.winner == "attacker"


def resolve_opposed(attacker: TestResult, defender: TestResult) -> OpposedResult:
    """
    Compare an attacker's test with a defender's.

    Args:
        attacker: Resolved attacking test
        defender: Resolved defending test

    Returns:
        OpposedResult
    """
    if attacker.sl != defender.sl:
        attacker_wins = attacker.sl > defender.sl
    else:
        attacker_wins = attacker.target > defender.target

    differential = attacker.sl - defender.sl
    damage = None
    hit_location = None

    if attacker_wins:
        spec = attacker.spec
        if spec.damage is not None:
            damage = spec.damage + differential
            weapon = spec.weapon
            if weapon is not None:
                units = units_die(attacker.roll)
                if weapon.has_quality("damaging") and units > differential:
                    damage = spec.damage + units
                if weapon.has_quality("impact"):
                    damage += units
        hit_location = attacker.hit_location or BodyLocation.BODY

    result = OpposedResult(
        attacker=attacker,
        defender=defender,
        winner="attacker" if attacker_wins else "defender",
        differential_sl=differential,
        damage=damage,
        hit_location=hit_location,
    )
    logger.info(
        f"Opposed: {attacker.spec.actor_name} {attacker.sl:+d} vs {defender.spec.actor_name} {defender.sl:+d} "
        f"-> {result.winner} wins" + (f", {damage} damage to {hit_location.value}" if damage is not None else "")
    )
    return result
