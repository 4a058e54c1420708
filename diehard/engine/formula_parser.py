"""
Fudge formula parsing.

A formula is a comparison operator followed by a signed integer, e.g.
"> 15", "<=5", "= 20", "!= 1". Operators are matched longest first so that
"<=" is never read as "<" followed by "=5".
"""

from dataclasses import dataclass
from typing import Callable, Optional
import logging
import operator as op
import re

from diehard.data_models import DieHardError

logger = logging.getLogger(__name__)


class FormulaParseError(DieHardError):
    """Raised when a fudge formula cannot be parsed."""

    pass


# Longest tokens first.
OPERATORS: dict[str, Callable[[int, int], bool]] = {
    "<=": op.le,
    ">=": op.ge,
    "==": op.eq,
    "!=": op.ne,
    "<": op.lt,
    ">": op.gt,
    "=": op.eq,
}

_INTEGER = re.compile(r"^[+-]?\d+$")


@dataclass(frozen=True)
class Formula:
    """A parsed fudge condition."""

    operator: str
    threshold: int
    text: str = ""

    def test(self, value: int) -> bool:
        """Whether a value satisfies the predicate."""
        return OPERATORS[self.operator](value, self.threshold)

    @property
    def is_exact(self) -> bool:
        return self.operator in ("=", "==")

    def __str__(self) -> str:
        return self.text or f"{self.operator} {self.threshold}"


class FormulaParser:
    """Parses formula text into a Formula. Stateless."""

    def parse(self, text: object) -> Optional[Formula]:
        """
        Parse formula text.

        Returns:
            The parsed Formula, or None when the text is empty, not a string,
            has no recognized leading operator, or the remainder is not an
            integer.
        """
        if not isinstance(text, str):
            return None
        stripped = text.strip()
        if not stripped:
            return None

        for token in OPERATORS:
            if stripped.startswith(token):
                remainder = stripped[len(token):].strip()
                if not _INTEGER.match(remainder):
                    return None
                return Formula(operator=token, threshold=int(remainder), text=stripped)
        return None

    def parse_strict(self, text: object) -> Formula:
        """Parse formula text, raising FormulaParseError on failure."""
        formula = self.parse(text)
        if formula is None:
            raise FormulaParseError(
                f"Invalid formula {text!r}. Use format: OPERATOR VALUE (e.g., > 15)"
            )
        return formula


_default_parser = FormulaParser()


def parse_formula(text: object) -> Optional[Formula]:
    """Module-level convenience wrapper around FormulaParser.parse."""
    return _default_parser.parse(text)
