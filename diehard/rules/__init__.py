"""Fudge rule authoring surface."""

from diehard.rules.rule_book import EDITABLE_FIELDS, FudgeRuleBook, RuleNotFoundError

__all__ = [
    "EDITABLE_FIELDS",
    "FudgeRuleBook",
    "RuleNotFoundError",
]
