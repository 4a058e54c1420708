"""
Fudge rule authoring.

The rule book is the moderator's side of fudging: creating, editing,
toggling and deleting rules. The adjustment engine only reads the active
rules and deactivates single-shot rules after they fire.
"""

from typing import Any, Callable, Optional
import logging

from diehard.data_models import ALL_ACTORS, DieHardError, FudgeRule, RollType
from diehard.engine.formula_parser import FormulaParser
from diehard.storage.stores import FudgeRuleStore, InMemoryRuleStore

logger = logging.getLogger(__name__)


class RuleNotFoundError(DieHardError):
    """Raised when a rule id does not exist in the rule book."""

    pass


# Fields a moderator may change on an existing rule.
EDITABLE_FIELDS = ("target_actor_id", "roll_type", "formula", "persistent", "active")


class FudgeRuleBook:
    """
    CRUD surface over a FudgeRuleStore.

    Every operation reads through the store, so two rule books over the same
    durable store see each other's changes.
    """

    def __init__(
        self,
        store: Optional[FudgeRuleStore] = None,
        parser: Optional[FormulaParser] = None,
    ):
        self._store = store or InMemoryRuleStore()
        self._parser = parser or FormulaParser()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def all_rules(self) -> list[FudgeRule]:
        return self._store.load_rules()

    def get_rule(self, rule_id: str) -> FudgeRule:
        for rule in self._store.load_rules():
            if rule.rule_id == rule_id:
                return rule
        raise RuleNotFoundError(f"No fudge rule with id {rule_id!r}")

    def active_rules_for(self, actor_id: str, roll_type: Optional[str] = None) -> list[FudgeRule]:
        """Active rules targeting the actor (or everyone), oldest first."""
        return [
            r for r in self._store.load_rules()
            if r.active and r.applies_to_actor(actor_id) and r.applies_to_roll_type(roll_type)
        ]

    def has_active_rules(self) -> bool:
        return any(r.active for r in self._store.load_rules())

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def add_rule(
        self,
        formula: str,
        target_actor_id: str = ALL_ACTORS,
        roll_type: str = RollType.RAW.value,
        persistent: bool = False,
    ) -> FudgeRule:
        """
        Create an active rule.

        Raises:
            FormulaParseError: If the formula is malformed
        """
        parsed = self._parser.parse_strict(formula)
        rule = FudgeRule(
            formula=parsed.text,
            target_actor_id=target_actor_id or ALL_ACTORS,
            roll_type=roll_type or RollType.RAW.value,
            persistent=persistent,
        )
        self._store.update_rules(lambda rules: rules + [rule])
        logger.info(f"Fudge added: {rule.formula} for {rule.target_actor_id} (id {rule.rule_id})")
        return rule

    def _modify(self, rule_id: str, change: Callable[[FudgeRule], None]) -> FudgeRule:
        """Apply change to one rule inside a single store update."""
        modified: list[FudgeRule] = []

        def mutate(rules: list[FudgeRule]) -> list[FudgeRule]:
            for rule in rules:
                if rule.rule_id == rule_id:
                    change(rule)
                    modified.append(rule)
                    return rules
            raise RuleNotFoundError(f"No fudge rule with id {rule_id!r}")

        self._store.update_rules(mutate)
        return modified[0]

    def update_rule(self, rule_id: str, /, **updates: Any) -> FudgeRule:
        """
        Update editable fields of a rule.

        Raises:
            RuleNotFoundError: If the rule does not exist
            FormulaParseError: If a new formula is malformed
            ValueError: If an unknown field is given
        """
        unknown = set(updates) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")
        if "formula" in updates:
            updates["formula"] = self._parser.parse_strict(updates["formula"]).text

        def change(rule: FudgeRule) -> None:
            for key, value in updates.items():
                setattr(rule, key, value)

        rule = self._modify(rule_id, change)
        logger.info(f"Fudge updated: {rule_id} {updates}")
        return rule

    def disable_rule(self, rule_id: str) -> FudgeRule:
        return self.update_rule(rule_id, active=False)

    def consume_rule(self, rule_id: str) -> bool:
        """
        Deactivate a rule only if it is still active.

        Returns True for the one caller that performed the transition; a
        rule already inactive (or removed) returns False.
        """
        consumed: list[bool] = []

        def mutate(rules: list[FudgeRule]) -> list[FudgeRule]:
            for rule in rules:
                if rule.rule_id == rule_id and rule.active:
                    rule.active = False
                    consumed.append(True)
            return rules

        self._store.update_rules(mutate)
        return bool(consumed)

    def toggle_active(self, rule_id: str) -> FudgeRule:
        def change(rule: FudgeRule) -> None:
            rule.active = not rule.active

        return self._modify(rule_id, change)

    def toggle_persistent(self, rule_id: str) -> FudgeRule:
        def change(rule: FudgeRule) -> None:
            rule.persistent = not rule.persistent

        return self._modify(rule_id, change)

    def remove_rule(self, rule_id: str) -> None:
        def mutate(rules: list[FudgeRule]) -> list[FudgeRule]:
            remaining = [r for r in rules if r.rule_id != rule_id]
            if len(remaining) == len(rules):
                raise RuleNotFoundError(f"No fudge rule with id {rule_id!r}")
            return remaining

        self._store.update_rules(mutate)
        logger.info(f"Fudge removed: {rule_id}")

    def clear(self) -> None:
        self._store.update_rules(lambda rules: [])
        logger.info("All fudges cleared")
