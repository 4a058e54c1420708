"""
Test helpers for the Die Hard test suite.

Builders for roll outcomes and history, plus stores and a rule book that
misbehave on demand.
"""

from typing import Optional
import time

from diehard.data_models import DieResult, HistoryEntry, RollOutcome
from diehard.rules.rule_book import FudgeRuleBook
from diehard.storage.stores import InMemoryHistoryStore, InMemoryRuleStore, StoreError


def seed_history(store, actor_id: str, values: list[int]) -> None:
    """Append raw values to an actor's history, oldest first."""
    for value in values:
        store.append_history(actor_id, HistoryEntry(value=value))


def make_outcome(*values: int, modifier: int = 0, roll_type: Optional[str] = None) -> RollOutcome:
    """A roll of d20s showing the given values."""
    return RollOutcome(
        dice=[DieResult(faces=20, value=v) for v in values],
        modifier=modifier,
        roll_type=roll_type,
        formula=f"{len(values)}d20",
    )


def history_values(store, actor_id: str) -> list[int]:
    return [e.value for e in store.get_history(actor_id)]


class FailingHistoryStore(InMemoryHistoryStore):
    """History store whose reads and writes can be made to fail."""

    def __init__(self, max_size: int = 20):
        super().__init__(max_size)
        self.fail_reads = False
        self.fail_writes = False

    def get_history(self, actor_id):
        if self.fail_reads:
            raise StoreError("history unavailable")
        return super().get_history(actor_id)

    def append_history(self, actor_id, entry):
        if self.fail_writes:
            raise StoreError("history unavailable")
        return super().append_history(actor_id, entry)


class SlowRuleStore(InMemoryRuleStore):
    """Rule store with a delay on every load, to widen race windows."""

    def __init__(self, delay: float = 0.01):
        super().__init__()
        self.delay = delay

    def load_rules(self):
        time.sleep(self.delay)
        return super().load_rules()


class ConsumedElsewhereRuleBook(FudgeRuleBook):
    """Rule book whose single-shot rules are always used up by someone else."""

    def __init__(self, store=None, fail: bool = False):
        super().__init__(store)
        self.fail = fail

    def consume_rule(self, rule_id):
        if self.fail:
            raise StoreError("rules unavailable")
        return False
