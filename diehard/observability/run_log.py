"""
Run Log: the moderator's audit trail.

Captures every processed roll and every fudge or karma adjustment made to
it. Adjustment events are the moderator-only audit records; subscribers
(such as the Foundry bridge) turn them into GM whispers. Nothing in the log
is ever meant for the acting player.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional
import html
import json
import logging

from diehard.data_models import AdjustmentKind, DieChange

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Types of events that can be logged."""

    ROLL = "roll"  # Roll processed by the engine
    ADJUSTMENT = "adjustment"  # Fudge or karma changed dice
    CUSTOM = "custom"  # Custom event


@dataclass
class LogEvent:
    """Base class for all logged events."""

    # Subclasses set the correct value in __post_init__
    event_type: EventType = EventType.CUSTOM
    timestamp: datetime = field(default_factory=datetime.now)
    sequence_number: int = 0
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "sequence_number": self.sequence_number,
            "context": self.context,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LogEvent":
        """Create from dictionary."""
        return cls(
            event_type=EventType(data["event_type"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            sequence_number=data.get("sequence_number", 0),
            context=data.get("context", {}),
        )

    def __str__(self) -> str:
        return f"[{self.sequence_number}] {self.event_type.value.upper()} {self.context}"


@dataclass
class RollEvent(LogEvent):
    """A roll after all adjustment passes."""

    actor_id: str = ""
    formula: str = ""
    original_values: list[int] = field(default_factory=list)
    final_values: list[int] = field(default_factory=list)
    modifier: int = 0
    total: int = 0

    def __post_init__(self):
        self.event_type = EventType.ROLL

    @property
    def adjusted(self) -> bool:
        return self.original_values != self.final_values

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update(
            {
                "actor_id": self.actor_id,
                "formula": self.formula,
                "original_values": self.original_values,
                "final_values": self.final_values,
                "modifier": self.modifier,
                "total": self.total,
            }
        )
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RollEvent":
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            sequence_number=data.get("sequence_number", 0),
            context=data.get("context", {}),
            actor_id=data.get("actor_id", ""),
            formula=data.get("formula", ""),
            original_values=data.get("original_values", []),
            final_values=data.get("final_values", []),
            modifier=data.get("modifier", 0),
            total=data.get("total", 0),
        )

    def __str__(self) -> str:
        marker = " (adjusted)" if self.adjusted else ""
        return f"[{self.sequence_number}] ROLL {self.actor_id} {self.formula}: {self.final_values} = {self.total}{marker}"


@dataclass
class AdjustmentEvent(LogEvent):
    """
    Moderator-only audit record for one fudge or karma adjustment.

    Fudge records carry the rule's formula text; karma records carry the
    active threshold.
    """

    kind: AdjustmentKind = AdjustmentKind.FUDGE
    actor_id: str = ""
    actor_name: str = ""
    changes: list[DieChange] = field(default_factory=list)
    formula: Optional[str] = None
    threshold: Optional[int] = None
    rule_id: Optional[str] = None
    counter: Optional[int] = None

    def __post_init__(self):
        self.event_type = EventType.ADJUSTMENT

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update(
            {
                "kind": self.kind.value,
                "actor_id": self.actor_id,
                "actor_name": self.actor_name,
                "changes": [c.to_dict() for c in self.changes],
                "formula": self.formula,
                "threshold": self.threshold,
                "rule_id": self.rule_id,
                "counter": self.counter,
            }
        )
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AdjustmentEvent":
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            sequence_number=data.get("sequence_number", 0),
            context=data.get("context", {}),
            kind=AdjustmentKind(data.get("kind", AdjustmentKind.FUDGE.value)),
            actor_id=data.get("actor_id", ""),
            actor_name=data.get("actor_name", ""),
            changes=[DieChange.from_dict(c) for c in data.get("changes", [])],
            formula=data.get("formula"),
            threshold=data.get("threshold"),
            rule_id=data.get("rule_id"),
            counter=data.get("counter"),
        )

    def to_whisper_html(self) -> str:
        """Render the record as GM whisper chat content."""
        name = html.escape(self.actor_name or self.actor_id or "Unknown")
        lines = [
            '<div class="die-hard-whisper">',
            f"<h3>{html.escape(self.kind.value)} Applied</h3>",
            f"<p><strong>User:</strong> {name}</p>",
        ]
        if self.formula is not None:
            lines.append(f"<p><strong>Formula:</strong> {html.escape(self.formula)}</p>")
        if self.threshold is not None:
            lines.append(f"<p><strong>Threshold:</strong> {self.threshold}</p>")
        if self.counter:
            lines.append(f"<p><strong>Cumulative:</strong> {self.counter}</p>")
        for change in self.changes:
            lines.append(f"<p>d{change.faces}: {change.from_value} &rarr; {change.to_value}</p>")
        lines.append("</div>")
        return "\n".join(lines)

    def __str__(self) -> str:
        detail = f"formula {self.formula}" if self.formula is not None else f"threshold {self.threshold}"
        changes = ", ".join(f"{c.from_value}->{c.to_value}" for c in self.changes)
        return f"[{self.sequence_number}] {self.kind.value.upper()} {self.actor_name or self.actor_id} ({detail}): {changes}"


class RunLog:
    """
    Audit log for one moderator session.

    Instances are passed explicitly to the engine; there is no process-wide
    log.
    """

    def __init__(self):
        self._events: list[LogEvent] = []
        self._sequence: int = 0
        self._session_start: datetime = datetime.now()
        self._subscribers: list[Callable[[LogEvent], None]] = []
        self._paused: bool = False

    def reset(self) -> None:
        """Reset the log for a new session."""
        self._events = []
        self._sequence = 0
        self._session_start = datetime.now()
        logger.info("RunLog reset")

    def pause(self) -> None:
        """Pause logging."""
        self._paused = True

    def resume(self) -> None:
        """Resume logging."""
        self._paused = False

    def is_paused(self) -> bool:
        return self._paused

    def subscribe(self, callback: Callable[[LogEvent], None]) -> None:
        """Subscribe to receive events as they are logged."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[LogEvent], None]) -> None:
        """Unsubscribe from events."""
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def _log_event(self, event: LogEvent) -> None:
        """Internal method to log an event."""
        if self._paused:
            return

        self._sequence += 1
        event.sequence_number = self._sequence
        self._events.append(event)

        # A failing subscriber must not abort the roll being processed
        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception as e:
                logger.warning(f"Subscriber error: {e}")

    def log_roll(
        self,
        actor_id: str,
        formula: str,
        original_values: list[int],
        final_values: list[int],
        modifier: int,
        total: int,
        context: Optional[dict[str, Any]] = None,
    ) -> RollEvent:
        """Log a processed roll."""
        event = RollEvent(
            actor_id=actor_id,
            formula=formula,
            original_values=original_values,
            final_values=final_values,
            modifier=modifier,
            total=total,
            context=context or {},
        )
        self._log_event(event)
        return event

    def log_adjustment(
        self,
        kind: AdjustmentKind,
        actor_id: str,
        changes: list[DieChange],
        actor_name: str = "",
        formula: Optional[str] = None,
        threshold: Optional[int] = None,
        rule_id: Optional[str] = None,
        counter: Optional[int] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> AdjustmentEvent:
        """Log an audit record for one adjustment."""
        event = AdjustmentEvent(
            kind=kind,
            actor_id=actor_id,
            actor_name=actor_name,
            changes=list(changes),
            formula=formula,
            threshold=threshold,
            rule_id=rule_id,
            counter=counter,
            context=context or {},
        )
        self._log_event(event)
        return event

    def log_custom(self, event_name: str, details: dict[str, Any]) -> LogEvent:
        """Log a custom event."""
        event = LogEvent(
            event_type=EventType.CUSTOM,
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
        """
        events = [e for e in self._events if e.sequence_number > since_sequence]
        if event_type:
            events = [e for e in events if e.event_type == event_type]
        return events

    def get_rolls(self) -> list[RollEvent]:
        return [e for e in self._events if isinstance(e, RollEvent)]

    def get_adjustments(
        self,
        kind: Optional[AdjustmentKind] = None,
        actor_id: Optional[str] = None,
    ) -> list[AdjustmentEvent]:
        """Audit records, optionally filtered by kind and actor."""
        return [
            e for e in self._events
            if isinstance(e, AdjustmentEvent)
            and (kind is None or e.kind == kind)
            and (actor_id is None or e.actor_id == actor_id)
        ]

    def get_event_count(self) -> int:
        return len(self._events)

    def get_summary(self) -> dict[str, Any]:
        """Get a summary of the run log."""
        return {
            "session_start": self._session_start.isoformat(),
            "total_events": len(self._events),
            "rolls": len(self.get_rolls()),
            "fudges": len(self.get_adjustments(AdjustmentKind.FUDGE)),
            "simple_karma": len(self.get_adjustments(AdjustmentKind.SIMPLE_KARMA)),
            "average_karma": len(self.get_adjustments(AdjustmentKind.AVERAGE_KARMA)),
            "last_sequence": self._sequence,
        }

    def to_dict(self) -> dict[str, Any]:
        """Serialize the entire log to a dictionary."""
        return {
            "session_start": self._session_start.isoformat(),
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
        log._sequence = data.get("sequence", 0)

        for event_data in data.get("events", []):
            event_type = EventType(event_data["event_type"])
            event: LogEvent
            if event_type == EventType.ROLL:
                event = RollEvent.from_dict(event_data)
            elif event_type == EventType.ADJUSTMENT:
                event = AdjustmentEvent.from_dict(event_data)
            else:
                event = LogEvent.from_dict(event_data)
            log._events.append(event)

        logger.info(f"RunLog loaded from {filepath}: {len(log._events)} events")
        return log

    def format_log(
        self,
        event_types: Optional[list[EventType]] = None,
        max_events: Optional[int] = None,
    ) -> str:
        """Format the log as a human-readable string."""
        lines = [
            "=== Die Hard Run Log ===",
            f"Session: {self._session_start.isoformat()}",
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
