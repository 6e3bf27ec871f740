"""
Run Log for rules-engine auditing.

Captures every dice draw, test specification, resolved test, applied
consequence and swallowed hook failure so a table can audit how a number
was reached.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Callable
import json
import logging

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Types of events that can be logged."""

    ROLL = "roll"  # Dice roll
    TEST_BUILT = "test_built"  # Test specification assembled
    TEST_RESOLVED = "test_resolved"  # Roll applied to a specification
    CONSEQUENCE = "consequence"  # State updates produced by a result
    CONDITION = "condition"  # Condition added or removed
    HOOK_ERROR = "hook_error"  # Hook or modifier step raised
    CUSTOM = "custom"  # Custom event


@dataclass
class LogEvent:
    """Base class for all logged events."""

    # Subclasses set the correct value in __post_init__
    event_type: EventType = EventType.CUSTOM
    timestamp: datetime = field(default_factory=datetime.now)
    sequence_number: int = 0
    actor_id: Optional[str] = None
    context: dict[str, Any] = field(default_factory=dict)

    def _base_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "sequence_number": self.sequence_number,
            "actor_id": self.actor_id,
            "context": self.context,
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return self._base_dict()

    @staticmethod
    def _base_kwargs(data: dict[str, Any]) -> dict[str, Any]:
        return {
            "timestamp": datetime.fromisoformat(data["timestamp"]),
            "sequence_number": data.get("sequence_number", 0),
            "actor_id": data.get("actor_id"),
            "context": data.get("context", {}),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LogEvent":
        """Create from dictionary."""
        return cls(event_type=EventType(data["event_type"]), **cls._base_kwargs(data))

    def __str__(self) -> str:
        name = self.context.get("event_name", self.event_type.value)
        return f"[{self.sequence_number}] {name.upper()} {self.context}"


@dataclass
class RollEvent(LogEvent):
    """A dice roll event."""

    notation: str = ""  # e.g., "1d100", "2d10"
    rolls: list[int] = field(default_factory=list)
    modifier: int = 0
    total: int = 0
    reason: str = ""

    def __post_init__(self):
        self.event_type = EventType.ROLL

    def to_dict(self) -> dict[str, Any]:
        base = self._base_dict()
        base.update(
            {
                "notation": self.notation,
                "rolls": self.rolls,
                "modifier": self.modifier,
                "total": self.total,
                "reason": self.reason,
            }
        )
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RollEvent":
        return cls(
            notation=data.get("notation", ""),
            rolls=data.get("rolls", []),
            modifier=data.get("modifier", 0),
            total=data.get("total", 0),
            reason=data.get("reason", ""),
            **cls._base_kwargs(data),
        )

    def __str__(self) -> str:
        if self.modifier and self.rolls:
            return f"[{self.sequence_number}] ROLL {self.notation}: {self.rolls} {self.modifier:+d} = {self.total} ({self.reason})"
        return f"[{self.sequence_number}] ROLL {self.notation}: {self.rolls} = {self.total} ({self.reason})"


@dataclass
class TestEvent(LogEvent):
    """A test being built or resolved."""

    __test__ = False

    category: str = ""
    subject: str = ""
    target: int = 0
    difficulty: str = ""
    roll: Optional[int] = None
    sl: Optional[int] = None
    outcome: str = ""
    contributions: list[str] = field(default_factory=list)

    def __post_init__(self):
        if self.event_type == EventType.CUSTOM:
            self.event_type = EventType.TEST_BUILT

    def to_dict(self) -> dict[str, Any]:
        base = self._base_dict()
        base.update(
            {
                "category": self.category,
                "subject": self.subject,
                "target": self.target,
                "difficulty": self.difficulty,
                "roll": self.roll,
                "sl": self.sl,
                "outcome": self.outcome,
                "contributions": self.contributions,
            }
        )
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TestEvent":
        return cls(
            event_type=EventType(data["event_type"]),
            category=data.get("category", ""),
            subject=data.get("subject", ""),
            target=data.get("target", 0),
            difficulty=data.get("difficulty", ""),
            roll=data.get("roll"),
            sl=data.get("sl"),
            outcome=data.get("outcome", ""),
            contributions=data.get("contributions", []),
            **cls._base_kwargs(data),
        )

    def __str__(self) -> str:
        if self.event_type == EventType.TEST_RESOLVED:
            return (
                f"[{self.sequence_number}] TEST {self.category} {self.subject}: "
                f"{self.roll} vs {self.target} -> {self.outcome} (SL {self.sl or 0:+d})"
            )
        return f"[{self.sequence_number}] BUILD {self.category} {self.subject}: target {self.target} ({self.difficulty})"


@dataclass
class ConsequenceEvent(LogEvent):
    """State updates emitted for a resolved test or damage application."""

    source: str = ""
    summary: list[str] = field(default_factory=list)
    update_count: int = 0

    def __post_init__(self):
        self.event_type = EventType.CONSEQUENCE

    def to_dict(self) -> dict[str, Any]:
        base = self._base_dict()
        base.update(
            {
                "source": self.source,
                "summary": self.summary,
                "update_count": self.update_count,
            }
        )
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConsequenceEvent":
        return cls(
            source=data.get("source", ""),
            summary=data.get("summary", []),
            update_count=data.get("update_count", 0),
            **cls._base_kwargs(data),
        )

    def __str__(self) -> str:
        return f"[{self.sequence_number}] CONSEQUENCE {self.source}: {'; '.join(self.summary)} ({self.update_count} updates)"


@dataclass
class HookErrorEvent(LogEvent):
    """A hook or modifier step that raised and was treated as zero."""

    label: str = ""
    error: str = ""

    def __post_init__(self):
        self.event_type = EventType.HOOK_ERROR

    def to_dict(self) -> dict[str, Any]:
        base = self._base_dict()
        base.update({"label": self.label, "error": self.error})
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HookErrorEvent":
        return cls(label=data.get("label", ""), error=data.get("error", ""), **cls._base_kwargs(data))

    def __str__(self) -> str:
        return f"[{self.sequence_number}] HOOK ERROR {self.label}: {self.error}"


EVENT_CLASSES: dict[EventType, type] = {
    EventType.ROLL: RollEvent,
    EventType.TEST_BUILT: TestEvent,
    EventType.TEST_RESOLVED: TestEvent,
    EventType.CONSEQUENCE: ConsequenceEvent,
    EventType.HOOK_ERROR: HookErrorEvent,
}


class RunLog:
    """
    Audit log for all rules events.

    Use get_run_log() for the process-wide instance; components receive the
    log through their RuleContext.
    """

    def __init__(self):
        self._events: list[LogEvent] = []
        self._sequence: int = 0
        self._seed: Optional[int] = None
        self._session_start: datetime = datetime.now()
        self._subscribers: list[Callable[[LogEvent], None]] = []
        self._paused: bool = False

    def reset(self) -> None:
        """Reset the log for a new session."""
        self._events = []
        self._sequence = 0
        self._session_start = datetime.now()
        logger.info("RunLog reset")

    def set_seed(self, seed: int) -> None:
        """Record the RNG seed used for this session."""
        self._seed = seed
        logger.info(f"RunLog seed set: {seed}")

    def get_seed(self) -> Optional[int]:
        return self._seed

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    def is_paused(self) -> bool:
        return self._paused

    def subscribe(self, callback: Callable[[LogEvent], None]) -> None:
        """Subscribe to receive events as they are logged."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[LogEvent], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def _log_event(self, event: LogEvent) -> None:
        if self._paused:
            return

        self._sequence += 1
        event.sequence_number = self._sequence
        self._events.append(event)

        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception as e:
                logger.warning(f"Subscriber error: {e}")

    def log_roll(
        self,
        notation: str,
        rolls: list[int],
        modifier: int,
        total: int,
        reason: str = "",
        context: Optional[dict[str, Any]] = None,
    ) -> RollEvent:
        """Log a dice roll."""
        event = RollEvent(
            notation=notation,
            rolls=list(rolls),
            modifier=modifier,
            total=total,
            reason=reason,
            context=context or {},
        )
        self._log_event(event)
        return event

    def log_test(
        self,
        event_type: EventType,
        actor_id: Optional[str],
        category: str,
        subject: str,
        target: int,
        difficulty: str = "",
        roll: Optional[int] = None,
        sl: Optional[int] = None,
        outcome: str = "",
        contributions: Optional[list[str]] = None,
    ) -> TestEvent:
        """Log a built or resolved test."""
        event = TestEvent(
            event_type=event_type,
            actor_id=actor_id,
            category=category,
            subject=subject,
            target=target,
            difficulty=difficulty,
            roll=roll,
            sl=sl,
            outcome=outcome,
            contributions=contributions or [],
        )
        self._log_event(event)
        return event

    def log_consequence(
        self,
        actor_id: Optional[str],
        source: str,
        summary: list[str],
        update_count: int,
    ) -> ConsequenceEvent:
        """Log the consequences applied for a result."""
        event = ConsequenceEvent(
            actor_id=actor_id,
            source=source,
            summary=list(summary),
            update_count=update_count,
        )
        self._log_event(event)
        return event

    def log_hook_error(self, label: str, error: Exception, actor_id: Optional[str] = None) -> HookErrorEvent:
        """Log a hook failure that was swallowed."""
        event = HookErrorEvent(actor_id=actor_id, label=label, error=f"{type(error).__name__}: {error}")
        self._log_event(event)
        return event

    def log_custom(
        self,
        event_name: str,
        details: dict[str, Any],
        event_type: EventType = EventType.CUSTOM,
        actor_id: Optional[str] = None,
    ) -> LogEvent:
        """Log a custom event."""
        event = LogEvent(
            event_type=event_type,
            actor_id=actor_id,
            context={"event_name": event_name, **details},
        )
        self._log_event(event)
        return event

    def get_events(
        self,
        event_type: Optional[EventType] = None,
        since_sequence: int = 0,
    ) -> list[LogEvent]:
        """
        Get logged events.

        Args:
            event_type: Filter by event type (None = all)
            since_sequence: Only events after this sequence number

        Returns:
            List of events
        """
        events = [e for e in self._events if e.sequence_number > since_sequence]
        if event_type:
            events = [e for e in events if e.event_type == event_type]
        return events

    def get_rolls(self) -> list[RollEvent]:
        return [e for e in self._events if isinstance(e, RollEvent)]

    def get_hook_errors(self) -> list[HookErrorEvent]:
        return [e for e in self._events if isinstance(e, HookErrorEvent)]

    def get_event_count(self) -> int:
        return len(self._events)

    def get_summary(self) -> dict[str, Any]:
        """Get a summary of the run log."""
        return {
            "session_start": self._session_start.isoformat(),
            "seed": self._seed,
            "total_events": len(self._events),
            "rolls": len(self.get_rolls()),
            "tests": len(self.get_events(EventType.TEST_RESOLVED)),
            "consequences": len(self.get_events(EventType.CONSEQUENCE)),
            "hook_errors": len(self.get_hook_errors()),
            "last_sequence": self._sequence,
        }

    def to_dict(self) -> dict[str, Any]:
        """Serialize the entire log to a dictionary."""
        return {
            "session_start": self._session_start.isoformat(),
            "seed": self._seed,
            "sequence": self._sequence,
            "events": [e.to_dict() for e in self._events],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)

    def save(self, filepath: str) -> None:
        """Save the log to a file."""
        with open(filepath, "w", encoding="utf-8") as f:
            f.write(self.to_json())
        logger.info(f"RunLog saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> "RunLog":
        """Load a log from a file into a new RunLog."""
        with open(filepath, "r", encoding="utf-8") as f:
            data = json.load(f)

        log = cls()
        log._session_start = datetime.fromisoformat(data["session_start"])
        log._seed = data.get("seed")
        log._sequence = data.get("sequence", 0)

        for event_data in data.get("events", []):
            event_cls = EVENT_CLASSES.get(EventType(event_data["event_type"]), LogEvent)
            log._events.append(event_cls.from_dict(event_data))

        logger.info(f"RunLog loaded from {filepath}: {len(log._events)} events")
        return log

    def format_log(
        self,
        event_types: Optional[list[EventType]] = None,
        max_events: Optional[int] = None,
    ) -> str:
        """Format the log as a human-readable string."""
        lines = [
            "=== Run Log ===",
            f"Session: {self._session_start.isoformat()}",
            f"Seed: {self._seed or 'not set'}",
            f"Total Events: {len(self._events)}",
            "",
        ]

        events = self._events
        if event_types:
            events = [e for e in events if e.event_type in event_types]
        if max_events:
            events = events[-max_events:]

        for event in events:
            lines.append(str(event))

        return "\n".join(lines)


# Process-wide instance
_run_log: Optional[RunLog] = None


def get_run_log() -> RunLog:
    """Get the global RunLog instance."""
    global _run_log
    if _run_log is None:
        _run_log = RunLog()
    return _run_log


def reset_run_log() -> RunLog:
    """Reset and return the global RunLog instance."""
    log = get_run_log()
    log.reset()
    return log
