"""
Karma: history-driven compensation.

Simple Karma floors a die after a cold streak: when every one of the last N
raw values is below the threshold, any primary die below min_value is raised
to min_value.

Average Karma nudges dice while the rolling average stays below the
threshold. With cumulative mode on, a per-actor counter grows by one on every
low-average roll and scales the adjustment; it resets as soon as the average
recovers, whether on its own or because of the adjustment just made.
"""

from typing import Optional
import logging

from diehard.data_models import (
    PRIMARY_DIE_FACES,
    AdjustmentResult,
    AverageKarmaConfig,
    HistoryEntry,
    RollOutcome,
    SimpleKarmaConfig,
    set_die_value,
)

logger = logging.getLogger(__name__)


def recent_window(history: list[HistoryEntry], size: int) -> Optional[list[int]]:
    """
    Values of the most recent `size` entries.

    Returns None when the window cannot be filled. A size below one never
    fills, so misconfigured policies never trigger.
    """
    if size < 1 or len(history) < size:
        return None
    return [entry.value for entry in history[-size:]]


class KarmaEngine:
    """Evaluates both karma policies against one outcome."""

    def __init__(self, primary_die_faces: int = PRIMARY_DIE_FACES):
        self.primary_die_faces = primary_die_faces

    # -------------------------------------------------------------------------
    # Simple karma
    # -------------------------------------------------------------------------

    def is_cold(self, history: list[HistoryEntry], config: SimpleKarmaConfig) -> bool:
        window = recent_window(history, config.history_size)
        return window is not None and all(v < config.threshold for v in window)

    def apply_simple_karma(
        self,
        outcome: RollOutcome,
        history: list[HistoryEntry],
        config: SimpleKarmaConfig,
    ) -> AdjustmentResult:
        """Raise primary dice to min_value while the recent window is cold."""
        result = AdjustmentResult()
        if not self.is_cold(history, config):
            return result

        matching = outcome.dice_with_faces(self.primary_die_faces)
        if not matching:
            logger.debug("Simple karma: no primary die in outcome")
            return result

        for index, die in matching:
            if die.value < config.min_value:
                change = set_die_value(outcome, index, min(config.min_value, die.faces))
                if change:
                    result.changes.append(change)

        result.modified = bool(result.changes)
        if result.modified:
            logger.debug(f"Simple karma triggered: {[str(c) for c in result.changes]}")
        return result

    # -------------------------------------------------------------------------
    # Average karma
    # -------------------------------------------------------------------------

    def apply_average_karma(
        self,
        outcome: RollOutcome,
        history: list[HistoryEntry],
        config: AverageKarmaConfig,
        counter: int,
    ) -> AdjustmentResult:
        """
        Nudge primary dice below the threshold while the window average is low.

        Args:
            outcome: Roll to adjust in place
            history: Actor's history, oldest first
            config: Average karma configuration
            counter: Actor's cumulative counter before this roll

        Returns:
            AdjustmentResult whose counter_after is the value to persist.
            counter_after is None when the roll has no primary die or the
            history window is not yet full.
        """
        matching = outcome.dice_with_faces(self.primary_die_faces)
        if not matching:
            logger.debug("Average karma: no primary die in outcome")
            return AdjustmentResult()

        window = recent_window(history, config.history_size)
        if window is None:
            return AdjustmentResult()

        average = sum(window) / len(window)
        if average >= config.threshold:
            return AdjustmentResult(counter_after=0)

        if config.cumulative:
            counter += 1
            multiplier = counter
        else:
            multiplier = 1
        adjustment = multiplier * config.adjustment

        result = AdjustmentResult(counter_after=counter)
        for index, die in matching:
            if die.value < config.threshold:
                change = set_die_value(outcome, index, die.value + adjustment)
                if change:
                    result.changes.append(change)

        result.modified = bool(result.changes)
        if result.modified:
            hypothetical = window[:-1] + [result.changes[0].to_value]
            if sum(hypothetical) / len(hypothetical) >= config.threshold:
                result.counter_after = 0
            logger.debug(
                f"Average karma triggered (avg {average:.2f}, adjustment {adjustment:+d}): "
                f"{[str(c) for c in result.changes]}"
            )
        return result
