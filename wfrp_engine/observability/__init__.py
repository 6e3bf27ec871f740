"""
Observability for the rules engine.

Records every roll, test and consequence so results can be audited.
"""

from wfrp_engine.observability.run_log import (
    RunLog,
    LogEvent,
    EventType,
    RollEvent,
    TestEvent,
    ConsequenceEvent,
    HookErrorEvent,
    get_run_log,
    reset_run_log,
)

__all__ = [
    "RunLog",
    "LogEvent",
    "EventType",
    "RollEvent",
    "TestEvent",
    "ConsequenceEvent",
    "HookErrorEvent",
    "get_run_log",
    "reset_run_log",
]
