"""Labelled test modifiers and their accumulation."""

from wfrp_engine.modifiers.accumulator import (
    ModifierAccumulator,
    ModifierContribution,
    PrefillModifiers,
)

__all__ = ["ModifierAccumulator", "ModifierContribution", "PrefillModifiers"]
