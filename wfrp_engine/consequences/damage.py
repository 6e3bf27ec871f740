"""
Damage application.

Opposed damage starts from the opposed result's damage, then subtracts
Toughness Bonus and the armour at the hit location:

- partial armour is ignored on an even roll or a critical
- weakpoints are ignored on an impaling critical
- penetrating ignores 1 point of metal armour, all of any other layer
- an odd roll against an impenetrable layer nullifies criticals
- undamaging weapons face double armour and may do no damage at all

Anything else always does at least 1 wound. Dropping to 0 wounds prompts a
critical wound roll. Daemonic and Ward traits get a 1d10 save that voids the
whole hit.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
import logging

from wfrp_engine.character.derived_attributes import PreparedCharacter
from wfrp_engine.config import RuleContext
from wfrp_engine.data_models import ArmourType, BodyLocation
from wfrp_engine.errors import DataIntegrityWarning
from wfrp_engine.hooks.contexts import DamageHookContext
from wfrp_engine.hooks.registry import HookTrigger
from wfrp_engine.interfaces import StateUpdate
from wfrp_engine.resolution.opposed import OpposedResult

logger = logging.getLogger(__name__)

SAVING_TRAITS = ("Daemonic", "Ward")


class DamageType(str, Enum):
    """Which mitigation applies."""
    NORMAL = "normal"
    IGNORE_AP = "ignore_ap"
    IGNORE_TB = "ignore_tb"
    IGNORE_ALL = "ignore_all"

    @property
    def applies_ap(self) -> bool:
        return self in (DamageType.NORMAL, DamageType.IGNORE_TB)

    @property
    def applies_tb(self) -> bool:
        return self in (DamageType.NORMAL, DamageType.IGNORE_AP)


@dataclass(frozen=True)
class CriticalPrompt:
    """A critical wound table the host should roll on."""
    table: str
    modifier: int = 0


@dataclass
class DamageReport:
    """What a hit did to the defender."""
    defender_id: str
    location: BodyLocation
    wound_loss: int
    new_wounds: int
    summary: str
    updates: list[StateUpdate] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)
    critical: Optional[CriticalPrompt] = None
    impenetrable: bool = False
    voided: bool = False
    save_roll: Optional[int] = None
    ap_used: int = 0
    ap_value: int = 0
    sound: dict[str, Any] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


def _armour_sound_type(current: Optional[str], armour_type: ArmourType) -> str:
    """Plate beats mail beats leather for the hit sound."""
    if armour_type == ArmourType.PLATE or current == ArmourType.PLATE.value:
        return ArmourType.PLATE.value
    if armour_type == ArmourType.MAIL or current == ArmourType.MAIL.value:
        return ArmourType.MAIL.value
    return "leather"


def apply_damage(
    context: RuleContext,
    opposed: OpposedResult,
    defender: PreparedCharacter,
    attacker: Optional[PreparedCharacter] = None,
    damage_type: DamageType = DamageType.NORMAL,
) -> DamageReport:
    """
    Apply an opposed test's damage to the defender.

    Args:
        context: Rule context (dice for saves, settings, hooks)
        opposed: Opposed result won by the attacker
        defender: Prepared defending character
        attacker: Prepared attacking character, for APPLY_DAMAGE hooks
        damage_type: Which mitigation applies

    Returns:
        DamageReport with the wounds update, or no updates if voided
    """
    damage_type = DamageType(damage_type)
    location = opposed.hit_location or BodyLocation.BODY
    attacker_result = opposed.attacker
    weapon = attacker_result.spec.weapon
    roll = attacker_result.roll
    critical = attacker_result.critical

    if not opposed.damage:
        return DamageReport(
            defender_id=defender.character_id,
            location=location,
            wound_loss=0,
            new_wounds=defender.wounds.value,
            summary="No damage",
        )

    total = opposed.damage
    elements: list[str] = []
    report_warnings: list[str] = []

    pre_ctx = DamageHookContext(
        defender=defender,
        attacker=attacker,
        location=location,
        total_wound_loss=total,
        damage_type=damage_type,
    )
    run = context.hooks.run(HookTrigger.PRE_TAKE_DAMAGE, defender.source, pre_ctx, context.run_log)
    report_warnings.extend(str(e) for e in run.errors)
    total = pre_ctx.total_wound_loss

    sound: dict[str, Any] = {"item": {}, "action": "hit"}
    impenetrable = False
    undamaging = weapon is not None and weapon.has_flaw("undamaging")
    hack = weapon is not None and weapon.has_quality("hack")
    impale = weapon is not None and weapon.has_quality("impale")
    penetrating = weapon is not None and weapon.has_quality("penetrating")
    tb = defender.bonus("t")

    if damage_type.applies_tb:
        total -= tb
        elements.append(f"{tb} TB")

    armour = defender.armour.at(location)
    ap_used = 0
    if damage_type.applies_ap:
        ignored = 0
        ignore_partial = roll % 2 == 0 or critical
        ignore_weakpoints = critical and impale
        for layer in armour.layers:
            if ignore_weakpoints and layer.weakpoints:
                ignored += layer.value
            elif ignore_partial and layer.partial:
                ignored += layer.value
            elif penetrating:
                ignored += 1 if layer.metal else layer.value
            if roll % 2 != 0 and layer.impenetrable:
                impenetrable = True
                sound["outcome"] = "impenetrable"
            if layer.value:
                sound["item"]["armourType"] = _armour_sound_type(sound["item"].get("armourType"), layer.armour_type)

        ap_used = max(0, armour.value - ignored)
        if undamaging:
            ap_used *= 2
        elements.append(f"{ap_used}/{armour.value} AP" if ignored else f"{ap_used} AP")

        shield = 0
        defending_weapon = opposed.defender.spec.weapon
        if defending_weapon is not None:
            shield = defending_weapon.shield
        if shield:
            elements.append(f"{shield} Shield")
        total -= ap_used + shield

        if weapon is not None and weapon.is_melee and "outcome" not in sound:
            sound["item"]["type"] = "armour" if ap_used else "hit"
            if hack:
                sound["outcome"] = "hack"
            elif ap_used and total <= 1:
                sound["outcome"] = "blocked"
            elif not ap_used and (impale or penetrating):
                sound["outcome"] = "normal_slash"
            else:
                sound["outcome"] = "normal"

    floor = 0 if undamaging else 1
    total = max(floor, total)

    hook_ctx = DamageHookContext(
        defender=defender,
        attacker=attacker,
        location=location,
        total_wound_loss=total,
        damage_type=damage_type,
        messages=list(pre_ctx.messages),
    )
    report_warnings.extend(_run_damage_hooks(context, hook_ctx, defender, attacker))
    total = max(floor, hook_ctx.total_wound_loss)

    new_wounds = defender.wounds.value - total
    summary = f"{defender.name} takes {total} wounds ({' + '.join(elements)})" if elements else f"{defender.name} takes {total} wounds"
    messages = list(hook_ctx.messages)

    critical_prompt = None
    if new_wounds <= 0 and not impenetrable:
        critical_prompt = critical_for(context, location, new_wounds, tb)
        messages.append(f"Critical wound: {critical_prompt.table}" + (f" ({critical_prompt.modifier:+d})" if critical_prompt.modifier else ""))
    elif impenetrable:
        messages.append("Impenetrable: criticals nullified")
    if hack:
        messages.append(f"Hack: damage the armour at {location.value}")

    report = DamageReport(
        defender_id=defender.character_id,
        location=location,
        wound_loss=total,
        new_wounds=max(0, new_wounds),
        summary=summary,
        messages=messages,
        critical=critical_prompt,
        impenetrable=impenetrable,
        ap_used=ap_used,
        ap_value=armour.value,
        sound=sound,
        warnings=report_warnings,
    )

    if _daemonic_or_ward_save(context, defender, report):
        return report

    report.updates.append(
        StateUpdate.update(defender.character_id, {"wounds.value": report.new_wounds}, reason=f"{total} damage")
    )
    logger.info(summary)
    return report


def critical_for(context: RuleContext, location: BodyLocation, new_wounds: int, tb: int) -> CriticalPrompt:
    """Critical table prompt for a character reduced to new_wounds."""
    table = context.config.critical_tables.get(location, f"crit{location.value}")
    excess = abs(new_wounds) - tb
    mod = context.settings.dangerous_crits_mod
    if context.settings.dangerous_crits and mod and excess > 0:
        return CriticalPrompt(table=table, modifier=excess * mod)
    if abs(new_wounds) < tb:
        return CriticalPrompt(table=table, modifier=-20)
    return CriticalPrompt(table=table)


def _run_damage_hooks(
    context: RuleContext,
    hook_ctx: DamageHookContext,
    defender: PreparedCharacter,
    attacker: Optional[PreparedCharacter],
) -> list[str]:
    errors = []
    run = context.hooks.run(HookTrigger.TAKE_DAMAGE, defender.source, hook_ctx, context.run_log)
    errors.extend(str(e) for e in run.errors)
    if attacker is not None:
        run = context.hooks.run(HookTrigger.APPLY_DAMAGE, attacker.source, hook_ctx, context.run_log)
        errors.extend(str(e) for e in run.errors)
    return errors


def _daemonic_or_ward_save(context: RuleContext, defender: PreparedCharacter, report: DamageReport) -> bool:
    """Roll any Daemonic/Ward save; on success mark the report voided."""
    for name in SAVING_TRAITS:
        trait = defender.source.find_trait(name)
        if trait is None:
            continue
        target = trait.specification_value
        if target is None:
            warning = DataIntegrityWarning(
                f"{defender.name}: {name} trait has no numeric rating ({trait.specification!r}), no save rolled"
            )
            logger.warning(str(warning))
            report.warnings.append(str(warning))
            continue
        save = context.dice.roll("1d10", f"{name} save").total
        report.save_roll = save
        if save >= target:
            report.voided = True
            report.summary = f"~~{report.summary}~~ {name} save ({save})"
            report.critical = None
            logger.info(f"{defender.name} ignores the damage: {name} save {save} vs {target}+")
            return True
    return False


def apply_basic_damage(
    context: RuleContext,
    defender: PreparedCharacter,
    damage: int,
    damage_type: DamageType = DamageType.NORMAL,
    minimum_one: bool = True,
    location: BodyLocation = BodyLocation.BODY,
) -> DamageReport:
    """
    Apply a flat amount of damage outside an opposed test.

    Args:
        context: Rule context
        defender: Prepared character taking the damage
        damage: Raw damage
        damage_type: Which mitigation applies
        minimum_one: Force at least 1 wound when mitigation reduces it to 0
        location: Location whose armour applies
    """
    damage_type = DamageType(damage_type)
    location = BodyLocation(location)
    modified = damage
    elements = []

    if damage_type.applies_ap:
        ap = defender.armour.ap(location)
        modified -= ap
        elements.append(f"{ap} AP")
    if damage_type.applies_tb:
        tb = defender.bonus("t")
        modified -= tb
        elements.append(f"{tb} TB")

    if minimum_one and modified <= 0:
        modified = 1
    elif modified < 0:
        modified = 0

    new_wounds = max(0, defender.wounds.value - modified)
    summary = f"{defender.name} takes {modified} damage" + (f" ({' + '.join(elements)})" if elements else "")
    logger.info(summary)
    return DamageReport(
        defender_id=defender.character_id,
        location=location,
        wound_loss=modified,
        new_wounds=new_wounds,
        summary=summary,
        updates=[StateUpdate.update(defender.character_id, {"wounds.value": new_wounds}, reason=f"{modified} damage")],
    )
