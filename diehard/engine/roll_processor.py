"""
Roll adjustment orchestration.

Runs one roll event through every pass in a fixed order:

1. Fudge: each active rule for the actor, oldest first (skipped while
   fudging is disabled or paused)
2. Simple karma
3. Average karma
4. Total recomputation, audit records, history update

Fudge runs first so karma sees overridden values, and a single-shot rule is
deactivated before the next roll for the same actor is considered. Roll
events for one actor are serialized on a per-actor lock; different actors
proceed independently, except that the fudge pass for every actor runs
under one rules lock.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union
import logging
import threading

from diehard.data_models import (
    AdjustmentKind,
    DieChange,
    HistoryEntry,
    RollOutcome,
)
from diehard.engine.fudge_engine import FudgeEngine
from diehard.engine.karma_engine import KarmaEngine
from diehard.observability.run_log import AdjustmentEvent, RunLog
from diehard.rules.rule_book import FudgeRuleBook
from diehard.settings.settings import DieHardSettings
from diehard.storage.json_store import JsonCounterStore, JsonHistoryStore, JsonRuleStore
from diehard.storage.stores import (
    CumulativeCounterStore,
    InMemoryCounterStore,
    InMemoryHistoryStore,
    InMemoryRuleStore,
    RollHistoryStore,
    StoreError,
)

logger = logging.getLogger(__name__)


def revert_changes(outcome: RollOutcome, changes: list[DieChange]) -> None:
    """Put dice back to the values they showed before the changes."""
    for change in reversed(changes):
        outcome.dice[change.die_index].value = change.from_value


@dataclass
class RollReport:
    """Everything the engine did to one roll."""

    actor_id: str
    outcome: RollOutcome
    original_values: list[int]
    records: list[AdjustmentEvent] = field(default_factory=list)
    deactivated_rules: list[str] = field(default_factory=list)
    history_entry: Optional[HistoryEntry] = None
    counter_after: Optional[int] = None
    errors: list[str] = field(default_factory=list)

    @property
    def modified(self) -> bool:
        return bool(self.records)

    @property
    def changes(self) -> list[DieChange]:
        return [c for record in self.records for c in record.changes]


class RollAdjustmentEngine:
    """
    Applies fudge and karma to roll events.

    All collaborators are injected: settings, the rule book, the history and
    counter stores, and the run log that receives audit records.
    """

    def __init__(
        self,
        settings: DieHardSettings,
        rule_book: FudgeRuleBook,
        history_store: RollHistoryStore,
        counter_store: CumulativeCounterStore,
        run_log: Optional[RunLog] = None,
    ):
        self.settings = settings
        self.rule_book = rule_book
        self.history_store = history_store
        self.counter_store = counter_store
        self.run_log = run_log if run_log is not None else RunLog()
        self.fudge_engine = FudgeEngine(settings.primary_die_faces)
        self.karma_engine = KarmaEngine(settings.primary_die_faces)

        self._actor_locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()
        self._rules_lock = threading.RLock()

    def _actor_lock(self, actor_id: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._actor_locks.get(actor_id)
            if lock is None:
                lock = self._actor_locks[actor_id] = threading.RLock()
            return lock

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def process_roll(
        self,
        outcome: RollOutcome,
        actor_id: str,
        actor_name: str = "",
    ) -> RollReport:
        """
        Run every enabled pass over one roll and record it.

        The outcome is mutated in place and its total recomputed. Store
        failures abandon the affected pass only; they are logged and listed
        in the report's errors.
        """
        with self._actor_lock(actor_id):
            report = RollReport(
                actor_id=actor_id,
                outcome=outcome,
                original_values=outcome.values(),
            )

            if self.settings.enable_fudge and not self.settings.fudges_paused:
                self._run_pass("fudge", report, self._fudge_pass, actor_name)

            if self.settings.enable_karma and self.settings.is_karma_enabled_for(actor_id):
                karma = self.settings.karma
                if karma.simple.enabled:
                    self._run_pass("simple karma", report, self._simple_karma_pass, actor_name)
                if karma.average.enabled:
                    self._run_pass("average karma", report, self._average_karma_pass, actor_name)

            outcome.recompute_total()

            if self.settings.enable_karma:
                self._run_pass("history update", report, self._record_history, actor_name)

            self.run_log.log_roll(
                actor_id=actor_id,
                formula=outcome.formula,
                original_values=report.original_values,
                final_values=outcome.values(),
                modifier=outcome.modifier,
                total=outcome.total,
            )
            return report

    # -------------------------------------------------------------------------
    # Passes
    # -------------------------------------------------------------------------

    def _run_pass(self, name: str, report: RollReport, run, actor_name: str) -> None:
        try:
            run(report, actor_name)
        except StoreError as e:
            message = f"{name} pass abandoned for {report.actor_id}: {e}"
            logger.error(message)
            report.errors.append(message)

    def _fudge_pass(self, report: RollReport, actor_name: str) -> None:
        # "all" rules are shared between actors: select, apply and deactivate
        # under the engine-wide rules lock.
        with self._rules_lock:
            self._apply_rules(report, actor_name)

    def _apply_rules(self, report: RollReport, actor_name: str) -> None:
        outcome = report.outcome
        for rule in self.rule_book.active_rules_for(report.actor_id, outcome.roll_type):
            result = self.fudge_engine.apply_fudge(outcome, rule)
            if not result.modified:
                continue

            try:
                consumed = rule.persistent or self.rule_book.consume_rule(rule.rule_id)
            except StoreError:
                revert_changes(outcome, result.changes)
                raise
            if not consumed:
                # Consumed by another process since it was selected
                revert_changes(outcome, result.changes)
                logger.info(f"Single-shot fudge {rule.rule_id} already used; roll left unchanged")
                continue

            record = self.run_log.log_adjustment(
                AdjustmentKind.FUDGE,
                actor_id=report.actor_id,
                actor_name=actor_name,
                changes=result.changes,
                formula=rule.formula,
                rule_id=rule.rule_id,
            )
            report.records.append(record)

            if not rule.persistent:
                report.deactivated_rules.append(rule.rule_id)
                logger.info(f"Single-shot fudge {rule.rule_id} deactivated after firing")

    def _simple_karma_pass(self, report: RollReport, actor_name: str) -> None:
        config = self.settings.karma.simple
        history = self.history_store.get_history(report.actor_id)
        result = self.karma_engine.apply_simple_karma(report.outcome, history, config)
        if result.modified:
            record = self.run_log.log_adjustment(
                AdjustmentKind.SIMPLE_KARMA,
                actor_id=report.actor_id,
                actor_name=actor_name,
                changes=result.changes,
                threshold=config.threshold,
            )
            report.records.append(record)

    def _average_karma_pass(self, report: RollReport, actor_name: str) -> None:
        config = self.settings.karma.average
        history = self.history_store.get_history(report.actor_id)
        counter = self.counter_store.get_counter(report.actor_id)
        result = self.karma_engine.apply_average_karma(report.outcome, history, config, counter)

        if result.modified:
            record = self.run_log.log_adjustment(
                AdjustmentKind.AVERAGE_KARMA,
                actor_id=report.actor_id,
                actor_name=actor_name,
                changes=result.changes,
                threshold=config.threshold,
                counter=result.counter_after,
            )
            report.records.append(record)

        if result.counter_after is not None:
            report.counter_after = result.counter_after
            if result.counter_after != counter:
                self.counter_store.set_counter(report.actor_id, result.counter_after)

    def _record_history(self, report: RollReport, actor_name: str) -> None:
        primary = report.outcome.dice_with_faces(self.settings.primary_die_faces)
        if not primary:
            logger.debug(f"Roll for {report.actor_id} has no primary die; history unchanged")
            return
        entry = HistoryEntry(value=primary[0][1].value)
        self.history_store.append_history(report.actor_id, entry)
        report.history_entry = entry


def create_engine(
    settings: DieHardSettings,
    data_dir: Optional[Union[str, Path]] = None,
    run_log: Optional[RunLog] = None,
) -> RollAdjustmentEngine:
    """
    Wire an engine with default stores.

    With a data_dir the stores are JSON files under it; otherwise they live
    in memory. History is trimmed to the largest configured karma window.
    """
    def window() -> int:
        return settings.karma.max_history_size

    if data_dir is not None:
        history_store = JsonHistoryStore(data_dir, max_size=window)
        counter_store = JsonCounterStore(data_dir)
        rule_book = FudgeRuleBook(JsonRuleStore(data_dir))
    else:
        history_store = InMemoryHistoryStore(max_size=window)
        counter_store = InMemoryCounterStore()
        rule_book = FudgeRuleBook(InMemoryRuleStore())

    return RollAdjustmentEngine(
        settings=settings,
        rule_book=rule_book,
        history_store=history_store,
        counter_store=counter_store,
        run_log=run_log,
    )
