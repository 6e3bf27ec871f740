"""
Error taxonomy for the rules engine.

Only UserInputError subclasses ever propagate out of a public entry point.
Everything else is caught at the component boundary, logged, and turned into
a warning on the returned record.
"""

from typing import Optional


class RulesEngineError(Exception):
    """Base class for all rules engine errors."""
    pass


# =============================================================================
# USER INPUT ERRORS
# =============================================================================


class UserInputError(RulesEngineError):
    """
    A request that cannot be fulfilled as asked.

    Aborts the current request only; no state has been changed.
    """

    code = "UserInput"

    def __init__(self, message: str, subject: Optional[str] = None):
        self.message = message
        self.subject = subject
        super().__init__(message)


class NoAmmoError(UserInputError):
    """Ranged weapon has no usable ammunition selected."""

    code = "NoAmmo"


class NotLoadedError(UserInputError):
    """Weapon with the Reload flaw has not been loaded."""

    code = "NotLoaded"


class NonRollableTraitError(UserInputError):
    """Trait has no roll definition."""

    code = "NonRollableTrait"


class InvalidExtendedTestError(UserInputError):
    """Extended test has a non-positive target or an unknown test."""

    code = "InvalidExtendedTest"


class SubjectNotFoundError(UserInputError):
    """Named skill, possession or characteristic is not on the character."""

    code = "SubjectNotFound"


class NoFortuneError(UserInputError):
    """Character has no fortune points left to spend."""

    code = "NoFortune"


# =============================================================================
# RECOVERABLE ERRORS
# =============================================================================


class RuleHookError(RulesEngineError):
    """A hook callback or modifier step raised; its contribution is zero."""

    def __init__(self, label: str, original: Exception):
        self.label = label
        self.original = original
        super().__init__(f"{label}: {original}")


class ConcurrencyRaceError(RulesEngineError):
    """A precondition checked at build time no longer holds."""
    pass


class DataIntegrityWarning(UserWarning):
    """Raw data is missing or malformed; a safe default was used."""
    pass
