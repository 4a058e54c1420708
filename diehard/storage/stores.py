"""
Store interfaces consumed by the roll adjustment engine, plus in-memory
implementations.

Stores are the only place per-actor history, cumulative counters and fudge
rules live between roll events. The engine never caches a value across
invocations; every read goes back through the store.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional, Union
import copy
import logging
import threading

from diehard.data_models import DieHardError, FudgeRule, HistoryEntry

logger = logging.getLogger(__name__)


class StoreError(DieHardError):
    """Raised when a store read or write fails."""

    pass


# Supplies the current maximum window size for history trimming.
WindowSizeProvider = Callable[[], int]

# Maps the current rule set to the new one.
RuleMutation = Callable[[list[FudgeRule]], list[FudgeRule]]


class RollHistoryStore(ABC):
    """Durable per-actor window of recent raw values."""

    @abstractmethod
    def get_history(self, actor_id: str) -> list[HistoryEntry]:
        """Return the actor's history, oldest first."""

    @abstractmethod
    def append_history(self, actor_id: str, entry: HistoryEntry) -> list[HistoryEntry]:
        """Append an entry, trim to the max window, and return the new history."""

    @abstractmethod
    def clear_history(self, actor_id: str) -> None:
        """Forget one actor's history."""

    @abstractmethod
    def clear_all(self) -> None:
        """Forget every actor's history."""

    @abstractmethod
    def actor_ids(self) -> list[str]:
        """Actors with recorded history."""


class CumulativeCounterStore(ABC):
    """Durable per-actor cumulative counter for average karma."""

    @abstractmethod
    def get_counter(self, actor_id: str) -> int:
        """Current counter, 0 when none has been created."""

    @abstractmethod
    def set_counter(self, actor_id: str, value: int) -> None:
        """Persist a counter value (never negative)."""

    def reset_counter(self, actor_id: str) -> None:
        self.set_counter(actor_id, 0)


class FudgeRuleStore(ABC):
    """Durable storage for the moderator's fudge rules."""

    @abstractmethod
    def load_rules(self) -> list[FudgeRule]:
        """Return every stored rule in creation order."""

    @abstractmethod
    def save_rules(self, rules: list[FudgeRule]) -> None:
        """Replace the stored rule set."""

    @abstractmethod
    def update_rules(self, mutate: RuleMutation) -> list[FudgeRule]:
        """
        Read-modify-write the rule set as one atomic step.

        The mutate callback receives the current rules and returns the new
        rule set, which is stored and returned.
        """


def trim_history(entries: list[HistoryEntry], max_size: int) -> list[HistoryEntry]:
    """Keep the newest max_size entries (FIFO eviction)."""
    if max_size < 1:
        return []
    if len(entries) > max_size:
        return entries[-max_size:]
    return entries


# =============================================================================
# IN-MEMORY IMPLEMENTATIONS
# =============================================================================


class InMemoryHistoryStore(RollHistoryStore):
    """History kept in a dict; used for tests and embedding."""

    def __init__(self, max_size: Union[int, WindowSizeProvider] = 20):
        self._max_size = max_size
        self._history: dict[str, list[HistoryEntry]] = {}

    @property
    def max_size(self) -> int:
        return self._max_size() if callable(self._max_size) else self._max_size

    def get_history(self, actor_id: str) -> list[HistoryEntry]:
        return list(self._history.get(actor_id, []))

    def append_history(self, actor_id: str, entry: HistoryEntry) -> list[HistoryEntry]:
        entries = self._history.get(actor_id, []) + [entry]
        self._history[actor_id] = trim_history(entries, self.max_size)
        return list(self._history[actor_id])

    def clear_history(self, actor_id: str) -> None:
        self._history.pop(actor_id, None)

    def clear_all(self) -> None:
        self._history = {}

    def actor_ids(self) -> list[str]:
        return list(self._history)


class InMemoryCounterStore(CumulativeCounterStore):
    """Counters kept in a dict."""

    def __init__(self):
        self._counters: dict[str, int] = {}

    def get_counter(self, actor_id: str) -> int:
        return self._counters.get(actor_id, 0)

    def set_counter(self, actor_id: str, value: int) -> None:
        self._counters[actor_id] = max(0, int(value))


class InMemoryRuleStore(FudgeRuleStore):
    """Rules kept in a list; returned as copies so callers cannot alias."""

    def __init__(self, rules: Optional[list[FudgeRule]] = None):
        self._rules: list[FudgeRule] = copy.deepcopy(rules or [])
        self._lock = threading.RLock()

    def load_rules(self) -> list[FudgeRule]:
        with self._lock:
            return copy.deepcopy(self._rules)

    def save_rules(self, rules: list[FudgeRule]) -> None:
        with self._lock:
            self._rules = copy.deepcopy(rules)

    def update_rules(self, mutate: RuleMutation) -> list[FudgeRule]:
        with self._lock:
            self._rules = copy.deepcopy(mutate(copy.deepcopy(self._rules)))
            return copy.deepcopy(self._rules)
