"""Condition ledger."""

from wfrp_engine.conditions.condition_ledger import ConditionChange, ConditionLedger

__all__ = ["ConditionChange", "ConditionLedger"]
