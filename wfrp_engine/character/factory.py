"""
Character creation.

New characters start with every basic skill (no advances) and an empty purse
of each coin, highest denomination first, with all auto-calculation on.
"""

from typing import Optional
import logging

from wfrp_engine.config import RuleConfig
from wfrp_engine.data_models import (
    ActorType,
    Character,
    Characteristic,
    CharacteristicId,
    Money,
    Skill,
    new_id,
)

logger = logging.getLogger(__name__)

COIN_ENCUMBRANCE = 0.005  # 200 coins to 1 encumbrance


def starter_possessions(config: RuleConfig) -> list:
    """Basic skills and currency for a new character."""
    possessions: list = [
        Skill(possession_id=new_id("skill"), name=name, characteristic=characteristic)
        for name, characteristic in config.basic_skills
    ]
    for name, value in sorted(config.starter_money, key=lambda coin: coin[1], reverse=True):
        possessions.append(
            Money(
                possession_id=new_id("money"),
                name=name,
                coin_value=value,
                quantity=0,
                encumbrance=COIN_ENCUMBRANCE,
            )
        )
    return possessions


def new_character(
    name: str,
    config: RuleConfig,
    characteristics: Optional[dict[CharacteristicId, int]] = None,
    actor_type: ActorType = ActorType.CHARACTER,
    character_id: Optional[str] = None,
    species: str = "human",
) -> Character:
    """
    Create a character with the default starter possessions.

    Args:
        name: Display name
        config: Rule tables
        characteristics: Initial value per characteristic (default 0)
        actor_type: character, npc or creature
        character_id: Id to use; generated if omitted
        species: Free-text species
    """
    initial = characteristics or {}
    character = Character(
        character_id=character_id or new_id("char"),
        name=name,
        actor_type=actor_type,
        species=species,
        characteristics={cid: Characteristic(initial=initial.get(cid, 0)) for cid in CharacteristicId},
        possessions=starter_possessions(config),
    )
    logger.info(f"Created {actor_type.value} '{name}' ({character.character_id})")
    return character
