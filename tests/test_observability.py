"""
Tests for the audit log.

Tests RunLog, RollEvent and AdjustmentEvent from
diehard/observability/run_log.py.
"""

import pytest

from diehard.data_models import AdjustmentKind, DieChange
from diehard.observability.run_log import (
    AdjustmentEvent,
    EventType,
    RollEvent,
    RunLog,
)


def change(from_value=3, to_value=15):
    return DieChange(die_index=0, faces=20, from_value=from_value, to_value=to_value)


class TestRunLog:
    """Tests for the RunLog class."""

    def test_instances_are_independent(self):
        """Test that each engine gets its own log."""
        first = RunLog()
        first.log_custom("note", {})
        assert RunLog().get_event_count() == 0

    def test_log_roll(self, run_log):
        event = run_log.log_roll(
            actor_id="alice", formula="1d20", original_values=[3],
            final_values=[15], modifier=0, total=15,
        )
        assert isinstance(event, RollEvent)
        assert event.adjusted
        assert event.sequence_number == 1
        assert run_log.get_rolls() == [event]

    def test_log_adjustment(self, run_log):
        event = run_log.log_adjustment(
            AdjustmentKind.FUDGE, actor_id="alice", changes=[change()], formula=">= 15",
        )
        assert event.event_type == EventType.ADJUSTMENT
        assert run_log.get_adjustments(AdjustmentKind.FUDGE) == [event]
        assert run_log.get_adjustments(AdjustmentKind.SIMPLE_KARMA) == []
        assert run_log.get_adjustments(actor_id="bob") == []

    def test_summary_counts(self, run_log):
        run_log.log_adjustment(AdjustmentKind.FUDGE, "alice", [change()])
        run_log.log_adjustment(AdjustmentKind.SIMPLE_KARMA, "alice", [change()], threshold=10)
        run_log.log_adjustment(AdjustmentKind.AVERAGE_KARMA, "bob", [change(4, 6)], threshold=10)
        summary = run_log.get_summary()
        assert summary["fudges"] == 1
        assert summary["simple_karma"] == 1
        assert summary["average_karma"] == 1
        assert summary["total_events"] == 3

    def test_pause_drops_events(self, run_log):
        run_log.pause()
        run_log.log_custom("ignored", {})
        run_log.resume()
        assert run_log.get_event_count() == 0

    def test_subscribers_notified(self, run_log):
        received = []
        run_log.subscribe(received.append)
        run_log.log_custom("note", {"x": 1})
        run_log.unsubscribe(received.append)
        run_log.log_custom("note", {"x": 2})
        assert len(received) == 1

    def test_failing_subscriber_does_not_break_logging(self, run_log, caplog):
        def boom(event):
            raise RuntimeError("subscriber down")

        run_log.subscribe(boom)
        run_log.log_custom("note", {})
        assert run_log.get_event_count() == 1
        assert "subscriber down" in caplog.text

    def test_get_events_since(self, run_log):
        run_log.log_custom("a", {})
        run_log.log_custom("b", {})
        assert [e.context["event_name"] for e in run_log.get_events(since_sequence=1)] == ["b"]

    def test_save_and_load(self, run_log, tmp_path):
        run_log.log_roll("alice", "1d20", [3], [15], 0, 15)
        run_log.log_adjustment(
            AdjustmentKind.AVERAGE_KARMA, "alice", [change()], threshold=10, counter=2,
        )
        path = tmp_path / "log.json"
        run_log.save(str(path))

        loaded = RunLog.load(str(path))
        assert loaded.get_event_count() == 2
        adjustment = loaded.get_adjustments()[0]
        assert adjustment.kind == AdjustmentKind.AVERAGE_KARMA
        assert adjustment.counter == 2
        assert adjustment.changes == [change()]
        assert loaded.get_rolls()[0].final_values == [15]

    def test_format_log(self, run_log):
        run_log.log_adjustment(AdjustmentKind.FUDGE, "alice", [change()], actor_name="Alice", formula=">= 15")
        text = run_log.format_log()
        assert "FUDGE Alice" in text
        assert "3->15" in text


class TestAdjustmentEvent:
    """Tests for whisper rendering."""

    def test_fudge_whisper(self):
        event = AdjustmentEvent(
            kind=AdjustmentKind.FUDGE, actor_name="Alice", changes=[change()], formula=">= 15",
        )
        html = event.to_whisper_html()
        assert "<h3>Fudge Applied</h3>" in html
        assert "&gt;= 15" in html
        assert "3 &rarr; 15" in html

    def test_karma_whisper_shows_threshold_and_counter(self):
        event = AdjustmentEvent(
            kind=AdjustmentKind.AVERAGE_KARMA, actor_id="bob", changes=[change(4, 8)],
            threshold=10, counter=2,
        )
        html = event.to_whisper_html()
        assert "Average Karma Applied" in html
        assert "<strong>Threshold:</strong> 10" in html
        assert "<strong>Cumulative:</strong> 2" in html
        assert "bob" in html

    def test_names_are_escaped(self):
        event = AdjustmentEvent(actor_name="<script>", changes=[change()], formula="> 1")
        assert "<script>" not in event.to_whisper_html()
