"""
Audit trail for the roll adjustment engine.

Records every processed roll and every fudge or karma adjustment as a
moderator-only event.
"""

from diehard.observability.run_log import (
    AdjustmentEvent,
    EventType,
    LogEvent,
    RollEvent,
    RunLog,
)

__all__ = [
    "AdjustmentEvent",
    "EventType",
    "LogEvent",
    "RollEvent",
    "RunLog",
]
