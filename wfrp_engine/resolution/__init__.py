"""Test building, resolution and opposed tests."""

from wfrp_engine.resolution.opposed import OpposedResult, resolve_opposed
from wfrp_engine.resolution.specification import (
    AbsoluteOverrides,
    OpposingAttack,
    SituationalContext,
    TargetInfo,
    TestCategory,
    TestOptions,
    TestSpecification,
)
from wfrp_engine.resolution.test_builder import TestRequestBuilder
from wfrp_engine.resolution.test_resolver import (
    Amendment,
    AmendmentResult,
    TestOutcome,
    TestResolver,
    TestResult,
    describe,
    offhand_roll,
)

__all__ = [
    "OpposedResult",
    "resolve_opposed",
    "AbsoluteOverrides",
    "OpposingAttack",
    "SituationalContext",
    "TargetInfo",
    "TestCategory",
    "TestOptions",
    "TestSpecification",
    "TestRequestBuilder",
    "Amendment",
    "AmendmentResult",
    "TestOutcome",
    "TestResolver",
    "TestResult",
    "describe",
    "offhand_roll",
]
