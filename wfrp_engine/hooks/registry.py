"""
Rule hook registry.

Maps a typed trigger to an ordered list of callbacks. Each callback is scoped
to the characters it applies to (usually "owns this talent/trait" or "has this
condition"), receives a mutable context object for its trigger, and may return
modifier contributions. A callback that raises, or returns anything other than
contributions, is isolated: its changes to the context are discarded, its
contribution is zero, a RuleHookError is recorded, and the remaining hooks
still run.
"""

from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any, Callable, Optional
import copy
import logging

from wfrp_engine.data_models import Character, ConditionId, new_id
from wfrp_engine.errors import RuleHookError

logger = logging.getLogger(__name__)


class HookTrigger(str, Enum):
    """Points in the pipeline where hooks run."""
    PRE_PREPARE_DATA = "prePrepareData"
    PREPARE_DATA = "prepareData"
    PRE_WOUND_CALC = "preWoundCalc"
    WOUND_CALC = "woundCalc"
    PREFILL_DIALOG = "prefillDialog"
    TARGET_PREFILL_DIALOG = "targetPrefillDialog"
    ROLL_TEST = "rollTest"
    PRE_TAKE_DAMAGE = "preTakeDamage"
    TAKE_DAMAGE = "takeDamage"
    APPLY_DAMAGE = "applyDamage"


HookCallback = Callable[[Any], Optional[list]]
HookScope = Callable[[Character], bool]


@dataclass
class RuleHook:
    """A registered callback."""
    trigger: HookTrigger
    callback: HookCallback
    label: str
    scope: Optional[HookScope] = None
    priority: int = 0
    hook_id: str = field(default_factory=lambda: new_id("hook"))

    def applies_to(self, actor: Character) -> bool:
        return self.scope is None or bool(self.scope(actor))


@dataclass
class HookRunResult:
    """What a trigger run produced."""
    contributions: list = field(default_factory=list)
    errors: list[RuleHookError] = field(default_factory=list)
    fired: list[str] = field(default_factory=list)


class HookRegistry:
    """
    Typed registry of rule hooks.

    One registry is normally shared by every character at a table and passed
    in through the RuleContext.
    """

    def __init__(self) -> None:
        self._hooks: dict[HookTrigger, list[RuleHook]] = {trigger: [] for trigger in HookTrigger}

    def register(
        self,
        trigger: HookTrigger,
        callback: HookCallback,
        label: str,
        scope: Optional[HookScope] = None,
        priority: int = 0,
    ) -> RuleHook:
        """
        Register a callback for a trigger.

        Args:
            trigger: When the hook runs
            callback: Receives the trigger's context object; may return one
                ModifierContribution or a list of them
            label: Human-readable source, used in audit tooltips
            scope: Predicate selecting which characters the hook applies to
            priority: Lower runs first; ties keep registration order

        Returns:
            The registered RuleHook (keep its hook_id to unregister)
        """
        hook = RuleHook(trigger=HookTrigger(trigger), callback=callback, label=label, scope=scope, priority=priority)
        self._hooks[hook.trigger].append(hook)
        self._hooks[hook.trigger].sort(key=lambda h: h.priority)
        logger.debug(f"Registered hook '{label}' on {hook.trigger.value}")
        return hook

    def unregister(self, hook_id: str) -> bool:
        for hooks in self._hooks.values():
            for hook in hooks:
                if hook.hook_id == hook_id:
                    hooks.remove(hook)
                    return True
        return False

    def hooks_for(self, trigger: HookTrigger, actor: Optional[Character] = None) -> list[RuleHook]:
        """Hooks registered on a trigger that apply to the actor."""
        hooks = self._hooks[HookTrigger(trigger)]
        if actor is None:
            return [h for h in hooks if h.scope is None]
        return [h for h in hooks if self._in_scope(h, actor)]

    @staticmethod
    def _in_scope(hook: RuleHook, actor: Character) -> bool:
        try:
            return hook.applies_to(actor)
        except Exception as e:
            logger.warning(f"Hook scope check '{hook.label}' failed: {e}")
            return False

    def run(
        self,
        trigger: HookTrigger,
        actor: Optional[Character],
        context: Any,
        run_log: Any = None,
    ) -> HookRunResult:
        """
        Run every applicable hook for a trigger.

        Each callback works on its own copy of the context. The copy is
        written back only when the callback returns normally with None, one
        ModifierContribution or a list of them; otherwise the hook has no
        effect and a RuleHookError is recorded.

        Returns:
            HookRunResult with the (label, contribution) pairs returned by the
            hooks and any errors that were swallowed
        """
        result = HookRunResult()
        for hook in self.hooks_for(trigger, actor):
            working = _working_copy(context)
            try:
                contributed = _as_contributions(hook.callback(working))
            except Exception as e:
                error = RuleHookError(hook.label, e)
                logger.warning(f"Hook '{hook.label}' on {hook.trigger.value} failed: {e}")
                if run_log is not None:
                    run_log.log_hook_error(hook.label, e, actor.character_id if actor else None)
                result.errors.append(error)
                continue

            _commit(context, working)
            result.fired.append(hook.label)
            for contribution in contributed:
                if not contribution.label:
                    contribution.label = hook.label
                result.contributions.append(contribution)
        return result

    def clear(self) -> None:
        for hooks in self._hooks.values():
            hooks.clear()

    def __len__(self) -> int:
        return sum(len(hooks) for hooks in self._hooks.values())


def _working_copy(context: Any) -> Any:
    """Shallow copy of a hook context with its dict/list/set fields copied deeply."""
    if not is_dataclass(context) or isinstance(context, type):
        return context
    working = copy.copy(context)
    for f in fields(context):
        value = getattr(context, f.name)
        if isinstance(value, (dict, list, set)):
            setattr(working, f.name, copy.deepcopy(value))
    return working


def _commit(context: Any, working: Any) -> None:
    if working is context:
        return
    for f in fields(context):
        setattr(context, f.name, getattr(working, f.name))


def _as_contributions(returned: Any) -> list:
    """Normalise a callback's return value to a list of contributions."""
    from wfrp_engine.modifiers.accumulator import ModifierContribution

    if returned is None:
        return []
    if isinstance(returned, ModifierContribution):
        return [returned]
    if isinstance(returned, (list, tuple)):
        wrong = [type(item).__name__ for item in returned if not isinstance(item, ModifierContribution)]
        if wrong:
            raise TypeError(f"hook returned non-contribution items: {', '.join(wrong)}")
        return list(returned)
    raise TypeError(f"hook returned {type(returned).__name__}, expected ModifierContribution or a list of them")


# =============================================================================
# SCOPES
# =============================================================================


def owns_talent(name: str) -> HookScope:
    """Scope: the character has taken the named talent."""
    return lambda actor: actor.find_talent(name) is not None


def owns_trait(name: str) -> HookScope:
    """Scope: the character has the named (enabled) trait."""
    return lambda actor: actor.find_trait(name) is not None


def has_condition(condition_id: ConditionId) -> HookScope:
    return lambda actor: actor.has_condition(condition_id)
