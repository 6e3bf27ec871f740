"""
Modifier accumulation for test setup.

Every rule that adjusts a test (advantage, qualities, range, size, armour,
conditions, hooks) adds a labelled ModifierContribution. The accumulator sums
them into one PrefillModifiers value and keeps the labelled list for the audit
tooltip. Summation is commutative; only difficulty changes are applied in
order.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional
import logging

from wfrp_engine.config import RuleConfig
from wfrp_engine.errors import RuleHookError

logger = logging.getLogger(__name__)


@dataclass
class ModifierContribution:
    """One labelled adjustment to a test."""
    label: str = ""
    modifier: int = 0
    sl_bonus: int = 0
    success_bonus: int = 0
    difficulty_step: int = 0  # positive is harder
    difficulty: Optional[str] = None  # forces a difficulty
    source: str = ""

    @property
    def is_zero(self) -> bool:
        return not (
            self.modifier or self.sl_bonus or self.success_bonus
            or self.difficulty_step or self.difficulty
        )

    def describe(self) -> str:
        parts = []
        if self.modifier:
            parts.append(f"{self.modifier:+d}")
        if self.sl_bonus:
            parts.append(f"{self.sl_bonus:+d} SL")
        if self.success_bonus:
            parts.append(f"{self.success_bonus:+d} success bonus")
        if self.difficulty:
            parts.append(f"difficulty {self.difficulty}")
        if self.difficulty_step:
            parts.append(f"difficulty {self.difficulty_step:+d} step")
        return f"{self.label} ({', '.join(parts)})" if parts else self.label


@dataclass(frozen=True)
class PrefillModifiers:
    """Combined prefill value handed to the dialog and the resolver."""
    modifier: int
    difficulty: str
    sl_bonus: int
    success_bonus: int
    contributions: tuple[ModifierContribution, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def tooltip(self) -> list[str]:
        return [c.describe() for c in self.contributions if not c.is_zero]


class ModifierAccumulator:
    """
    Collects contributions for a single test build.

    Args:
        difficulty: Starting difficulty key
        config: Rule tables, used for difficulty stepping
        run_log: Optional run log for swallowed step failures
        actor_id: Character the test belongs to (for the log)
    """

    def __init__(
        self,
        difficulty: str,
        config: RuleConfig,
        run_log: Any = None,
        actor_id: Optional[str] = None,
    ):
        self._base_difficulty = difficulty
        self._config = config
        self._run_log = run_log
        self._actor_id = actor_id
        self._contributions: list[ModifierContribution] = []
        self._warnings: list[str] = []
        self._absolute: dict[str, Any] = {}

    def add(
        self,
        label: str,
        modifier: int = 0,
        sl_bonus: int = 0,
        success_bonus: int = 0,
        difficulty_step: int = 0,
        difficulty: Optional[str] = None,
        source: str = "",
    ) -> ModifierContribution:
        contribution = ModifierContribution(
            label=label,
            modifier=modifier,
            sl_bonus=sl_bonus,
            success_bonus=success_bonus,
            difficulty_step=difficulty_step,
            difficulty=difficulty,
            source=source,
        )
        self.append(contribution)
        return contribution

    def append(self, contribution: ModifierContribution) -> None:
        if contribution.is_zero:
            return
        self._contributions.append(contribution)
        logger.debug(f"Modifier: {contribution.describe()}")

    def extend(self, contributions: Iterable[ModifierContribution], source: str = "") -> None:
        for contribution in contributions:
            if source and not contribution.source:
                contribution.source = source
            self.append(contribution)

    def collect(self, step: str, producer: Callable[[], Optional[Iterable[ModifierContribution]]]) -> bool:
        """
        Run one modifier step in isolation.

        Contributions are only kept if the whole step succeeds; a step that
        raises adds nothing and leaves a warning.

        Returns:
            True if the step completed
        """
        try:
            produced = list(producer() or [])
        except Exception as e:
            error = RuleHookError(step, e)
            message = f"Modifier step '{step}' failed and was ignored: {e}"
            logger.warning(message)
            self._warnings.append(message)
            if self._run_log is not None:
                self._run_log.log_hook_error(error.label, e, self._actor_id)
            return False
        self.extend(produced, source=step)
        return True

    def warn(self, message: str) -> None:
        logger.warning(message)
        self._warnings.append(message)

    def set_absolute(
        self,
        modifier: Optional[int] = None,
        difficulty: Optional[str] = None,
        sl_bonus: Optional[int] = None,
        success_bonus: Optional[int] = None,
    ) -> None:
        """Caller overrides; any value given wins over everything computed."""
        for key, value in (
            ("modifier", modifier),
            ("difficulty", difficulty),
            ("sl_bonus", sl_bonus),
            ("success_bonus", success_bonus),
        ):
            if value is not None:
                self._absolute[key] = value

    @property
    def contributions(self) -> list[ModifierContribution]:
        return list(self._contributions)

    @property
    def warnings(self) -> list[str]:
        return list(self._warnings)

    @property
    def modifier(self) -> int:
        if "modifier" in self._absolute:
            return self._absolute["modifier"]
        return sum(c.modifier for c in self._contributions)

    @property
    def sl_bonus(self) -> int:
        if "sl_bonus" in self._absolute:
            return self._absolute["sl_bonus"]
        return sum(c.sl_bonus for c in self._contributions)

    @property
    def success_bonus(self) -> int:
        if "success_bonus" in self._absolute:
            return self._absolute["success_bonus"]
        return sum(c.success_bonus for c in self._contributions)

    @property
    def difficulty(self) -> str:
        if "difficulty" in self._absolute:
            return self._absolute["difficulty"]
        difficulty = self._base_difficulty
        for contribution in self._contributions:
            if contribution.difficulty:
                difficulty = contribution.difficulty
            if contribution.difficulty_step:
                difficulty = self._config.step_difficulty(difficulty, contribution.difficulty_step)
        return difficulty

    def result(self) -> PrefillModifiers:
        return PrefillModifiers(
            modifier=self.modifier,
            difficulty=self.difficulty,
            sl_bonus=self.sl_bonus,
            success_bonus=self.success_bonus,
            contributions=tuple(self._contributions),
            warnings=tuple(self._warnings),
        )
