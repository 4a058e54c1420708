"""
Roll adjustment engine.

Formula parsing, fudge application and the two karma policies. The per-roll
orchestration lives in diehard.engine.roll_processor.
"""

from diehard.engine.formula_parser import (
    OPERATORS,
    Formula,
    FormulaParseError,
    FormulaParser,
    parse_formula,
)
from diehard.engine.fudge_engine import FudgeEngine, fudge_target
from diehard.engine.karma_engine import KarmaEngine, recent_window

__all__ = [
    "OPERATORS",
    "Formula",
    "FormulaParseError",
    "FormulaParser",
    "parse_formula",
    "FudgeEngine",
    "fudge_target",
    "KarmaEngine",
    "recent_window",
]
