"""
Advancement for the rules engine.

Handles experience awards and spending, and advance costs by band.
"""

from wfrp_engine.advancement.experience import (
    ADVANCES_PER_BAND,
    ExperienceManager,
    ExperienceResult,
    advance_cost,
    characteristic_advance_cost,
    cost_to_advance,
    skill_advance_cost,
)

__all__ = [
    "ADVANCES_PER_BAND",
    "ExperienceManager",
    "ExperienceResult",
    "advance_cost",
    "characteristic_advance_cost",
    "cost_to_advance",
    "skill_advance_cost",
]
