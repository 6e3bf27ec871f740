"""
Derived attribute computation.

DerivedAttributeEngine.prepare() is a pure function of the raw Character (plus
the rule context): it never mutates the record and returns a frozen
PreparedCharacter. Where the host caches a derived maximum on the record
(wounds.max, corruption.max, ...) and the cached value is stale, the prepared
view carries the StateUpdate that refreshes it.
"""

from dataclasses import dataclass
from typing import Any, Optional
import logging

from wfrp_engine.advancement.experience import characteristic_advance_cost
from wfrp_engine.config import STATUS_TIER_LABELS, RuleContext
from wfrp_engine.data_models import (
    ActorType,
    AttackType,
    Character,
    CharacteristicId,
    SizeCategory,
    Skill,
    Weapon,
)
from wfrp_engine.equipment.equipment_resolver import (
    ArmourTable,
    EncumbranceSummary,
    EquipmentResolver,
    PreparedWeapon,
    bonus_token,
)
from wfrp_engine.errors import DataIntegrityWarning
from wfrp_engine.hooks.contexts import PrepareHookContext
from wfrp_engine.hooks.registry import HookTrigger
from wfrp_engine.interfaces import StateUpdate

logger = logging.getLogger(__name__)


# =============================================================================
# PREPARED VIEW
# =============================================================================


@dataclass(frozen=True)
class PreparedCharacteristic:
    initial: int
    advances: int
    modifier: int
    value: int
    bonus: int
    cost: int = 0


@dataclass(frozen=True)
class PreparedPool:
    value: int
    max: int


@dataclass(frozen=True)
class PreparedMovement:
    value: int
    walk: int
    run: int


@dataclass(frozen=True)
class PreparedCharacter:
    """Immutable derived view of a Character."""
    character_id: str
    name: str
    actor_type: ActorType
    source: Character
    characteristics: dict[CharacteristicId, PreparedCharacteristic]
    size: SizeCategory
    wounds: PreparedPool
    advantage: PreparedPool
    corruption: PreparedPool
    critical_wounds: PreparedPool
    fortune: int
    movement: PreparedMovement
    encumbrance: EncumbranceSummary
    armour: ArmourTable
    weapons: dict[str, PreparedWeapon]
    skills: dict[str, int]
    flags: dict[str, Any]
    experience_current: int
    status: str = ""
    mounted: bool = False
    mount: Optional["PreparedCharacter"] = None
    pending_updates: tuple[StateUpdate, ...] = ()
    warnings: tuple[str, ...] = ()

    def value(self, characteristic: CharacteristicId) -> int:
        return self.characteristics[CharacteristicId(characteristic)].value

    def bonus(self, characteristic: CharacteristicId) -> int:
        return self.characteristics[CharacteristicId(characteristic)].bonus

    @property
    def bonuses(self) -> dict[str, int]:
        """Formula tokens (SB, TB, ...) for damage and range formulas."""
        return {bonus_token(cid): c.bonus for cid, c in self.characteristics.items()}

    def skill_total(self, name: str) -> Optional[int]:
        return self.skills.get(name.strip().lower())

    def weapon(self, weapon_id: str) -> Optional[PreparedWeapon]:
        return self.weapons.get(weapon_id)

    @property
    def effective_size(self) -> SizeCategory:
        """Size that matters in melee: the mount's when riding."""
        if self.mounted and self.mount is not None:
            return self.mount.size
        return self.size


# =============================================================================
# WOUNDS
# =============================================================================


def calculate_wounds(
    size: SizeCategory,
    sb: int,
    tb: int,
    wpb: int,
    multipliers: Optional[dict[str, int]] = None,
) -> int:
    """
    Wounds for a size tier.

    multipliers add extra multiples of each bonus (e.g. Hardy adds one TB per
    time taken); they apply to every tier.
    """
    multipliers = multipliers or {}
    extra = tb * multipliers.get("tb", 0) + sb * multipliers.get("sb", 0) + wpb * multipliers.get("wpb", 0)
    average = sb + 2 * tb + wpb + extra

    if size == SizeCategory.TINY:
        return 1 + extra
    if size == SizeCategory.LITTLE:
        return tb + extra
    if size == SizeCategory.SMALL:
        return 2 * tb + wpb + extra
    if size == SizeCategory.LARGE:
        return average * 2
    if size == SizeCategory.ENORMOUS:
        return average * 4
    if size == SizeCategory.MONSTROUS:
        return average * 8
    return average


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def calculation_bonus(
    character: Character,
    characteristics: dict[CharacteristicId, PreparedCharacteristic],
    cid: CharacteristicId,
) -> int:
    """Characteristic bonus plus its calculation-only modifier (wounds, critical wounds)."""
    raw = character.characteristics.get(cid)
    extra = raw.calculation_bonus_modifier if raw else 0
    return characteristics[cid].bonus + extra


# =============================================================================
# ENGINE
# =============================================================================


class DerivedAttributeEngine:
    """Computes prepared views of characters."""

    def __init__(self, context: RuleContext):
        self.context = context
        self.equipment = EquipmentResolver(context.config)

    def prepare(self, character: Character, mount: Optional[Character] = None) -> PreparedCharacter:
        """
        Build the prepared view of a character.

        Args:
            character: Raw record (not modified)
            mount: Raw record of the character's mount, prepared first

        Returns:
            PreparedCharacter
        """
        warnings: list[str] = []
        updates: list[StateUpdate] = []
        auto = character.auto_calc

        prepared_mount = None
        if mount is not None and character.mounted:
            prepared_mount = self.prepare(mount)

        hook_ctx = PrepareHookContext(
            character=character,
            characteristic_modifiers={cid: 0 for cid in CharacteristicId},
        )
        self._run_hooks(HookTrigger.PRE_PREPARE_DATA, character, hook_ctx, warnings)

        characteristics = self._characteristics(character, hook_ctx)
        sb = characteristics[CharacteristicId.S].bonus
        tb = characteristics[CharacteristicId.T].bonus
        wpb = characteristics[CharacteristicId.WP].bonus
        ib = characteristics[CharacteristicId.I].bonus

        capacity = tb + sb if auto.encumbrance else character.encumbrance_max
        equipment = self.equipment.resolve(character.possessions, capacity)

        size = self.resolve_size(character, warnings) if auto.size else character.size
        if size != character.size:
            updates.append(StateUpdate.update(character.character_id, {"size": size}, reason="size"))

        # Mount
        mounted = character.mounted
        if mounted and prepared_mount is not None and prepared_mount.wounds.value <= 0:
            mounted = False
            updates.append(StateUpdate.update(character.character_id, {"mounted": False}, reason="mount has no wounds"))
        movement = self._movement(character, prepared_mount if mounted else None)

        # Advantage
        advantage_max = ib if self.context.settings.cap_advantage_ib else self.context.config.advantage_ceiling
        advantage = PreparedPool(clamp(character.advantage.value, 0, advantage_max), advantage_max)
        if (advantage.value, advantage.max) != (character.advantage.value, character.advantage.max):
            updates.append(
                StateUpdate.update(
                    character.character_id,
                    {"advantage.value": advantage.value, "advantage.max": advantage.max},
                    reason="advantage clamp",
                )
            )

        # Wounds
        wounds = self._wounds(character, size, characteristics, hook_ctx, warnings, updates)

        critical_tb = calculation_bonus(character, characteristics, CharacteristicId.T)
        critical_max = critical_tb if auto.critical_wounds else character.critical_wounds.max
        if critical_max != character.critical_wounds.max:
            updates.append(
                StateUpdate.update(character.character_id, {"critical_wounds.max": critical_max}, reason="critical wounds")
            )

        corruption_max = character.corruption.max
        if character.actor_type == ActorType.CHARACTER and auto.corruption:
            corruption_max = tb + wpb
            if corruption_max != character.corruption.max:
                updates.append(
                    StateUpdate.update(character.character_id, {"corruption.max": corruption_max}, reason="corruption")
                )

        skills = self._skills(character, characteristics)

        hook_ctx.flags.setdefault(
            "defensive",
            sum(1 for w in character.possessions_of(Weapon) if w.equipped and w.has_quality("defensive")),
        )
        self._run_hooks(HookTrigger.PREPARE_DATA, character, hook_ctx, warnings)

        weapons = self._weapons(character, characteristics, hook_ctx, prepared_mount if mounted else None)

        career = character.current_career
        status = ""
        if career is not None:
            status = f"{STATUS_TIER_LABELS[career.tier]} {career.standing}"

        prepared = PreparedCharacter(
            character_id=character.character_id,
            name=character.name,
            actor_type=character.actor_type,
            source=character,
            characteristics=characteristics,
            size=size,
            wounds=wounds,
            advantage=advantage,
            corruption=PreparedPool(character.corruption.value, corruption_max),
            critical_wounds=PreparedPool(character.critical_wounds.value, critical_max),
            fortune=character.fortune.value,
            movement=movement,
            encumbrance=equipment.encumbrance,
            armour=equipment.armour,
            weapons=weapons,
            skills=skills,
            flags=dict(hook_ctx.flags),
            experience_current=character.experience.current,
            status=status,
            mounted=mounted,
            mount=prepared_mount if mounted else None,
            pending_updates=tuple(updates),
            warnings=tuple(warnings),
        )
        logger.debug(
            f"Prepared {character.name}: W {wounds.value}/{wounds.max}, size {size.value}, "
            f"enc {equipment.encumbrance.current}/{equipment.encumbrance.max}"
        )
        return prepared

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _characteristics(
        self,
        character: Character,
        hook_ctx: PrepareHookContext,
    ) -> dict[CharacteristicId, PreparedCharacteristic]:
        result = {}
        for cid in CharacteristicId:
            raw = character.characteristics.get(cid)
            if raw is None:
                result[cid] = PreparedCharacteristic(0, 0, 0, 0, 0)
                continue
            modifier = raw.modifier + hook_ctx.characteristic_modifiers.get(cid, 0)
            value = raw.initial + raw.advances + modifier
            result[cid] = PreparedCharacteristic(
                initial=raw.initial,
                advances=raw.advances,
                modifier=modifier,
                value=value,
                bonus=value // 10,
                cost=characteristic_advance_cost(raw.advances, self.context.config),
            )
        return result

    def resolve_size(self, character: Character, warnings: Optional[list[str]] = None) -> SizeCategory:
        """Size trait specification, then the Small talent, then average."""
        size_trait = character.find_trait("Size")
        if size_trait is not None:
            size = self.context.config.size_from_label(size_trait.specification)
            if size is not None:
                return size
            warning = DataIntegrityWarning(
                f"{character.name}: unknown size '{size_trait.specification}' on Size trait, using defaults"
            )
            logger.warning(str(warning))
            if warnings is not None:
                warnings.append(str(warning))
        if character.find_talent("Small") is not None:
            return SizeCategory.SMALL
        return SizeCategory.AVERAGE

    def _movement(self, character: Character, mount: Optional[PreparedCharacter]) -> PreparedMovement:
        move = mount.movement.value if mount is not None else character.movement.value
        walk = move * 2 if character.auto_calc.walk else character.movement.walk
        run = move * 4 if character.auto_calc.run else character.movement.run
        return PreparedMovement(value=move, walk=walk, run=run)

    def _wounds(
        self,
        character: Character,
        size: SizeCategory,
        characteristics: dict[CharacteristicId, PreparedCharacteristic],
        hook_ctx: PrepareHookContext,
        warnings: list[str],
        updates: list[StateUpdate],
    ) -> PreparedPool:
        stored = character.wounds
        if not character.auto_calc.wounds:
            return PreparedPool(clamp(stored.value, 0, stored.max), stored.max)

        self._run_hooks(HookTrigger.PRE_WOUND_CALC, character, hook_ctx, warnings)

        hook_ctx.wounds = calculate_wounds(
            size,
            calculation_bonus(character, characteristics, CharacteristicId.S),
            calculation_bonus(character, characteristics, CharacteristicId.T),
            calculation_bonus(character, characteristics, CharacteristicId.WP),
            hook_ctx.wound_multipliers,
        )
        self._run_hooks(HookTrigger.WOUND_CALC, character, hook_ctx, warnings)
        wounds = int(hook_ctx.wounds)

        if wounds != stored.max:
            updates.append(
                StateUpdate.update(
                    character.character_id,
                    {"wounds.max": wounds, "wounds.value": wounds},
                    reason="wounds recalculated",
                )
            )
            return PreparedPool(wounds, wounds)
        return PreparedPool(clamp(stored.value, 0, wounds), wounds)

    def _skills(
        self,
        character: Character,
        characteristics: dict[CharacteristicId, PreparedCharacteristic],
    ) -> dict[str, int]:
        return {
            skill.name.strip().lower(): characteristics[skill.characteristic].value + skill.advances + skill.modifier
            for skill in character.possessions_of(Skill)
        }

    def _weapons(
        self,
        character: Character,
        characteristics: dict[CharacteristicId, PreparedCharacteristic],
        hook_ctx: PrepareHookContext,
        mount: Optional[PreparedCharacter],
    ) -> dict[str, PreparedWeapon]:
        bonuses = {bonus_token(cid): c.bonus for cid, c in characteristics.items()}
        if mount is not None and mount.bonus(CharacteristicId.S) > bonuses["SB"]:
            # Mounted melee uses the mount's strength
            mounted_bonuses = dict(bonuses, SB=mount.bonus(CharacteristicId.S))
        else:
            mounted_bonuses = bonuses

        weapons = {}
        for weapon in character.possessions_of(Weapon):
            is_melee = weapon.attack_type == AttackType.MELEE
            increase = hook_ctx.melee_damage_increase if is_melee else hook_ctx.ranged_damage_increase
            try:
                weapons[weapon.possession_id] = self.equipment.prepare_weapon(
                    weapon,
                    mounted_bonuses if is_melee else bonuses,
                    character.possessions,
                    damage_increase=increase,
                )
            except ValueError as e:
                logger.warning(f"{character.name}: cannot prepare weapon '{weapon.name}': {e}")
        return weapons

    def _run_hooks(
        self,
        trigger: HookTrigger,
        character: Character,
        hook_ctx: PrepareHookContext,
        warnings: list[str],
    ) -> None:
        run = self.context.hooks.run(trigger, character, hook_ctx, self.context.run_log)
        for error in run.errors:
            warnings.append(str(error))
