"""
JSON file backed stores.

Each store owns one JSON document under a data directory. Every read and
read-modify-write cycle holds an exclusive portalocker lock on a sidecar
lock file, and writes go to a temp file that atomically replaces the
document, so a crash never leaves half-written state behind.

Documents that parse as JSON but have the wrong shape (a list where an
object belongs, an entry missing a field, a counter that is not a number)
raise StoreError like unreadable files do.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Union
import json
import logging
import os

import portalocker

from diehard.data_models import FudgeRule, HistoryEntry
from diehard.storage.stores import (
    CumulativeCounterStore,
    FudgeRuleStore,
    RollHistoryStore,
    RuleMutation,
    StoreError,
    WindowSizeProvider,
    trim_history,
)

logger = logging.getLogger(__name__)

LOCK_TIMEOUT_SECONDS = 5.0

# Raised while decoding a well-formed JSON document of the wrong shape.
MALFORMED_DATA_ERRORS = (KeyError, TypeError, ValueError, AttributeError)


@contextmanager
def malformed_data(path: Path) -> Iterator[None]:
    """Re-raise shape errors from decoding a document as StoreError."""
    try:
        yield
    except MALFORMED_DATA_ERRORS as e:
        raise StoreError(f"Malformed data in {path}: {e!r}") from e


class JsonDocument:
    """A locked, atomically written JSON document."""

    def __init__(self, path: Union[str, Path], default: Any):
        self.path = Path(path)
        self._default = default
        self._lock_path = self.path.with_name(self.path.name + ".lock")

    def _lock(self) -> portalocker.Lock:
        return portalocker.Lock(
            str(self._lock_path),
            mode="a",
            timeout=LOCK_TIMEOUT_SECONDS,
        )

    def _read_unlocked(self) -> Any:
        if not self.path.exists():
            return json.loads(json.dumps(self._default))
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, type(self._default)):
            raise ValueError(f"expected a JSON {type(self._default).__name__}, got {type(data).__name__}")
        return data

    def _write_unlocked(self, data: Any) -> None:
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(temp_path, self.path)
        finally:
            if temp_path.exists():
                temp_path.unlink()

    def read(self) -> Any:
        """Read the document under lock."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self._lock():
                return self._read_unlocked()
        except (OSError, ValueError, portalocker.LockException) as e:
            raise StoreError(f"Failed to read {self.path}: {e}") from e

    def update(self, mutate: Callable[[Any], Any]) -> Any:
        """
        Read-modify-write under one lock.

        The mutate callback receives the current document and returns the new
        one, which is written and returned. Shape errors raised by the
        callback become StoreError; any other exception propagates and leaves
        the document untouched.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self._lock():
                current = self._read_unlocked()
                with malformed_data(self.path):
                    data = mutate(current)
                self._write_unlocked(data)
                return data
        except (OSError, ValueError, portalocker.LockException) as e:
            raise StoreError(f"Failed to update {self.path}: {e}") from e


class JsonHistoryStore(RollHistoryStore):
    """Per-actor roll history in history.json."""

    def __init__(
        self,
        data_dir: Union[str, Path],
        max_size: Union[int, WindowSizeProvider] = 20,
    ):
        self._doc = JsonDocument(Path(data_dir) / "history.json", default={})
        self._max_size = max_size

    @property
    def max_size(self) -> int:
        return self._max_size() if callable(self._max_size) else self._max_size

    def _entries(self, data: dict[str, Any], actor_id: str) -> list[HistoryEntry]:
        with malformed_data(self._doc.path):
            return [HistoryEntry.from_dict(e) for e in data.get(actor_id, [])]

    def get_history(self, actor_id: str) -> list[HistoryEntry]:
        return self._entries(self._doc.read(), actor_id)

    def append_history(self, actor_id: str, entry: HistoryEntry) -> list[HistoryEntry]:
        max_size = self.max_size

        def mutate(data: dict[str, Any]) -> dict[str, Any]:
            # Decode first so bad entries fail before anything is written
            existing = [HistoryEntry.from_dict(e).to_dict() for e in data.get(actor_id, [])]
            entries = existing + [entry.to_dict()]
            data[actor_id] = trim_history(entries, max_size)
            return data

        return self._entries(self._doc.update(mutate), actor_id)

    def clear_history(self, actor_id: str) -> None:
        def mutate(data: dict[str, Any]) -> dict[str, Any]:
            data.pop(actor_id, None)
            return data

        self._doc.update(mutate)
        logger.info(f"Roll history cleared for {actor_id}")

    def clear_all(self) -> None:
        self._doc.update(lambda data: {})
        logger.info("All roll history cleared")

    def actor_ids(self) -> list[str]:
        return list(self._doc.read())


class JsonCounterStore(CumulativeCounterStore):
    """Per-actor cumulative counters in counters.json."""

    def __init__(self, data_dir: Union[str, Path]):
        self._doc = JsonDocument(Path(data_dir) / "counters.json", default={})

    def get_counter(self, actor_id: str) -> int:
        data = self._doc.read()
        with malformed_data(self._doc.path):
            return max(0, int(data.get(actor_id, 0)))

    def set_counter(self, actor_id: str, value: int) -> None:
        def mutate(data: dict[str, Any]) -> dict[str, Any]:
            data[actor_id] = max(0, int(value))
            return data

        self._doc.update(mutate)


class JsonRuleStore(FudgeRuleStore):
    """Fudge rules in fudges.json, keyed by rule id in creation order."""

    def __init__(self, data_dir: Union[str, Path]):
        self._doc = JsonDocument(Path(data_dir) / "fudges.json", default={})

    def _decode(self, data: dict[str, Any]) -> list[FudgeRule]:
        with malformed_data(self._doc.path):
            return [FudgeRule.from_dict(r) for r in data.values()]

    def load_rules(self) -> list[FudgeRule]:
        return self._decode(self._doc.read())

    def save_rules(self, rules: list[FudgeRule]) -> None:
        self._doc.update(lambda data: {r.rule_id: r.to_dict() for r in rules})

    def update_rules(self, mutate: RuleMutation) -> list[FudgeRule]:
        def apply(data: dict[str, Any]) -> dict[str, Any]:
            rules = mutate(self._decode(data))
            return {r.rule_id: r.to_dict() for r in rules}

        return self._decode(self._doc.update(apply))
