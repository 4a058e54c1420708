"""Per-actor history, cumulative counter and fudge rule storage."""

from diehard.storage.stores import (
    CumulativeCounterStore,
    FudgeRuleStore,
    InMemoryCounterStore,
    InMemoryHistoryStore,
    InMemoryRuleStore,
    RollHistoryStore,
    StoreError,
    trim_history,
)
from diehard.storage.json_store import (
    JsonCounterStore,
    JsonDocument,
    JsonHistoryStore,
    JsonRuleStore,
)

__all__ = [
    "CumulativeCounterStore",
    "FudgeRuleStore",
    "InMemoryCounterStore",
    "InMemoryHistoryStore",
    "InMemoryRuleStore",
    "RollHistoryStore",
    "StoreError",
    "trim_history",
    "JsonCounterStore",
    "JsonDocument",
    "JsonHistoryStore",
    "JsonRuleStore",
]
