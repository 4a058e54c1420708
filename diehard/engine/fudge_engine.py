"""
Fudge application.

Applies one moderator-authored rule to a produced roll by setting matching
dice directly to a target value derived from the rule's formula:

- "=" / "==": the threshold, whatever the die shows
- ">" / ">=": the threshold when the die is below it (raise to a floor)
- "<" / "<=": the threshold when the die is above it (lower to a ceiling)
- "!=": the threshold (exact override)

Targets are clamped to the die's face range.
"""

from typing import Optional
import logging

from diehard.data_models import (
    PRIMARY_DIE_FACES,
    AdjustmentResult,
    FudgeRule,
    RollOutcome,
    set_die_value,
)
from diehard.engine.formula_parser import Formula, FormulaParser

logger = logging.getLogger(__name__)


def fudge_target(formula: Formula, current: int) -> int:
    """Compute the unclamped target value for one die."""
    if formula.operator in (">", ">="):
        return formula.threshold if current < formula.threshold else current
    if formula.operator in ("<", "<="):
        return formula.threshold if current > formula.threshold else current
    # "=", "==" and "!=" all override to the threshold
    return formula.threshold


class FudgeEngine:
    """
    Applies fudge rules to roll outcomes.

    The engine only changes die values. Deactivating single-shot rules and
    emitting audit records is the caller's job, driven by the returned
    AdjustmentResult.
    """

    def __init__(
        self,
        primary_die_faces: int = PRIMARY_DIE_FACES,
        parser: Optional[FormulaParser] = None,
    ):
        self.primary_die_faces = primary_die_faces
        self._parser = parser or FormulaParser()

    def parse_rule(self, rule: FudgeRule) -> Optional[Formula]:
        formula = self._parser.parse(rule.formula)
        if formula is None:
            logger.warning(f"Fudge rule {rule.rule_id} has malformed formula {rule.formula!r}; skipping")
        return formula

    def apply_fudge(self, outcome: RollOutcome, rule: FudgeRule) -> AdjustmentResult:
        """
        Apply a rule to every primary die in the outcome.

        A malformed formula leaves the rule inert for this pass. The caller
        recomputes the outcome total when the result is modified.
        """
        formula = self.parse_rule(rule)
        if formula is None:
            return AdjustmentResult()

        matching = outcome.dice_with_faces(self.primary_die_faces)
        if not matching:
            logger.debug(f"No d{self.primary_die_faces} in {outcome.formula or 'roll'}; fudge skipped")
            return AdjustmentResult()

        result = AdjustmentResult()
        for index, die in matching:
            change = set_die_value(outcome, index, fudge_target(formula, die.value))
            if change:
                result.changes.append(change)

        result.modified = bool(result.changes)
        if result.modified:
            logger.debug(f"Fudge {formula} changed {[str(c) for c in result.changes]}")
        else:
            logger.debug(f"Roll {outcome.values()} already meets formula {formula}")
        return result
