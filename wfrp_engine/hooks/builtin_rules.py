"""
Built-in rule plugins.

Talents and traits whose effects are numeric adjustments at a fixed point of
the pipeline are registered here as ordinary hooks. Hosts can register more
through the same registry.
"""

import logging

from wfrp_engine.hooks.contexts import DamageHookContext, PrepareHookContext
from wfrp_engine.hooks.registry import HookRegistry, HookTrigger, owns_talent

logger = logging.getLogger(__name__)


def _talent_advances(character, name: str) -> int:
    talent = character.find_talent(name)
    return talent.advances if talent else 0


def hardy(ctx: PrepareHookContext) -> None:
    """Each time taken adds another Toughness Bonus to wounds."""
    ctx.wound_multipliers["tb"] = ctx.wound_multipliers.get("tb", 0) + _talent_advances(ctx.character, "Hardy")


def ambidextrous(ctx: PrepareHookContext) -> None:
    ctx.flags["ambidextrous"] = _talent_advances(ctx.character, "Ambidextrous")


def strike_mighty_blow(ctx: PrepareHookContext) -> None:
    ctx.melee_damage_increase += _talent_advances(ctx.character, "Strike Mighty Blow")


def accurate_shot(ctx: PrepareHookContext) -> None:
    ctx.ranged_damage_increase += _talent_advances(ctx.character, "Accurate Shot")


def robust(ctx: DamageHookContext) -> None:
    """Reduce wounds suffered by one per time taken, never below the minimum already applied."""
    reduction = _talent_advances(ctx.defender.source, "Robust")
    floor = min(1, ctx.total_wound_loss)
    reduced = max(floor, ctx.total_wound_loss - reduction)
    if reduced != ctx.total_wound_loss:
        ctx.messages.append(f"Robust: -{ctx.total_wound_loss - reduced} wounds")
        ctx.total_wound_loss = reduced


BUILTIN_RULES = (
    (HookTrigger.PRE_WOUND_CALC, hardy, "Hardy"),
    (HookTrigger.PREPARE_DATA, ambidextrous, "Ambidextrous"),
    (HookTrigger.PREPARE_DATA, strike_mighty_blow, "Strike Mighty Blow"),
    (HookTrigger.PREPARE_DATA, accurate_shot, "Accurate Shot"),
    (HookTrigger.TAKE_DAMAGE, robust, "Robust"),
)


def register_builtin_rules(registry: HookRegistry) -> HookRegistry:
    """Register the built-in talent rules, each scoped to owners of the talent."""
    for trigger, callback, talent in BUILTIN_RULES:
        registry.register(trigger, callback, label=talent, scope=owns_talent(talent))
    logger.debug(f"Registered {len(BUILTIN_RULES)} built-in rules")
    return registry
