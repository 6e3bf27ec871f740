"""Armour, encumbrance, ammunition and weapon profiles."""

from wfrp_engine.equipment.equipment_resolver import (
    AmmoStatus,
    ArmourLayer,
    ArmourTable,
    EncumbranceSummary,
    EquipmentResolver,
    EquipmentSummary,
    LocationArmour,
    PreparedWeapon,
    RangeBandResult,
    evaluate_formula,
)

__all__ = [
    "AmmoStatus",
    "ArmourLayer",
    "ArmourTable",
    "EncumbranceSummary",
    "EquipmentResolver",
    "EquipmentSummary",
    "LocationArmour",
    "PreparedWeapon",
    "RangeBandResult",
    "evaluate_formula",
]
