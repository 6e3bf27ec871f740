"""Rule hooks: typed triggers, scoped callbacks and the built-in rules."""

from wfrp_engine.hooks.builtin_rules import register_builtin_rules
from wfrp_engine.hooks.contexts import (
    DamageHookContext,
    PrefillHookContext,
    PrepareHookContext,
    RollHookContext,
)
from wfrp_engine.hooks.registry import (
    HookRegistry,
    HookRunResult,
    HookTrigger,
    RuleHook,
    has_condition,
    owns_talent,
    owns_trait,
)

__all__ = [
    "register_builtin_rules",
    "DamageHookContext",
    "PrefillHookContext",
    "PrepareHookContext",
    "RollHookContext",
    "HookRegistry",
    "HookRunResult",
    "HookTrigger",
    "RuleHook",
    "has_condition",
    "owns_talent",
    "owns_trait",
]
