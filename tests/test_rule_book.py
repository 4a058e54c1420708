"""
Tests for fudge rule authoring.

Tests FudgeRuleBook from diehard/rules/rule_book.py.
"""

import pytest

from diehard.data_models import FudgeRule
from diehard.engine.formula_parser import FormulaParseError
from diehard.rules.rule_book import FudgeRuleBook, RuleNotFoundError
from diehard.storage.json_store import JsonRuleStore


class TestRuleBookAuthoring:
    """Tests for creating and editing rules."""

    def test_add_rule_defaults(self, rule_book):
        rule = rule_book.add_rule("  >= 15 ")
        assert rule.formula == ">= 15"
        assert rule.target_actor_id == "all"
        assert rule.roll_type == "raw"
        assert rule.active
        assert not rule.persistent
        assert rule_book.get_rule(rule.rule_id).formula == ">= 15"

    def test_add_rule_rejects_bad_formula(self, rule_book):
        with pytest.raises(FormulaParseError):
            rule_book.add_rule("high please")
        assert rule_book.all_rules() == []

    def test_rule_ids_are_unique(self, rule_book):
        ids = {rule_book.add_rule("> 10").rule_id for _ in range(20)}
        assert len(ids) == 20

    def test_update_rule(self, rule_book):
        rule = rule_book.add_rule("> 10")
        updated = rule_book.update_rule(rule.rule_id, formula="<5", target_actor_id="bob")
        assert updated.formula == "<5"
        assert rule_book.get_rule(rule.rule_id).target_actor_id == "bob"

    def test_update_unknown_field(self, rule_book):
        rule = rule_book.add_rule("> 10")
        with pytest.raises(ValueError):
            rule_book.update_rule(rule.rule_id, rule_id="other")

    def test_update_validates_formula(self, rule_book):
        rule = rule_book.add_rule("> 10")
        with pytest.raises(FormulaParseError):
            rule_book.update_rule(rule.rule_id, formula="nope")
        assert rule_book.get_rule(rule.rule_id).formula == "> 10"

    def test_toggles(self, rule_book):
        rule = rule_book.add_rule("> 10")
        assert not rule_book.toggle_active(rule.rule_id).active
        assert rule_book.toggle_active(rule.rule_id).active
        assert rule_book.toggle_persistent(rule.rule_id).persistent

    def test_disable_rule(self, rule_book):
        rule = rule_book.add_rule("> 10")
        rule_book.disable_rule(rule.rule_id)
        assert not rule_book.get_rule(rule.rule_id).active
        assert not rule_book.has_active_rules()

    def test_remove_and_clear(self, rule_book):
        first = rule_book.add_rule("> 10")
        rule_book.add_rule("< 5")
        rule_book.remove_rule(first.rule_id)
        assert len(rule_book.all_rules()) == 1
        rule_book.clear()
        assert rule_book.all_rules() == []

    def test_missing_rule(self, rule_book):
        with pytest.raises(RuleNotFoundError):
            rule_book.get_rule("missing")
        with pytest.raises(RuleNotFoundError):
            rule_book.remove_rule("missing")
        with pytest.raises(RuleNotFoundError):
            rule_book.disable_rule("missing")


class TestActiveRulesFor:
    """Tests for rule selection."""

    def test_targets_actor_or_everyone(self, rule_book):
        everyone = rule_book.add_rule("> 10")
        alice = rule_book.add_rule("> 12", target_actor_id="alice")
        rule_book.add_rule("> 14", target_actor_id="bob")
        ids = [r.rule_id for r in rule_book.active_rules_for("alice")]
        assert ids == [everyone.rule_id, alice.rule_id]

    def test_inactive_rules_skipped(self, rule_book):
        rule = rule_book.add_rule("> 10")
        rule_book.disable_rule(rule.rule_id)
        assert rule_book.active_rules_for("alice") == []

    def test_system_roll_type_must_match(self, rule_book):
        attack = rule_book.add_rule("> 10", roll_type="attack")
        raw = rule_book.add_rule("> 12", roll_type="raw")
        assert [r.rule_id for r in rule_book.active_rules_for("alice", "attack")] == [
            attack.rule_id, raw.rule_id,
        ]
        assert [r.rule_id for r in rule_book.active_rules_for("alice", "save")] == [raw.rule_id]
        assert [r.rule_id for r in rule_book.active_rules_for("alice")] == [raw.rule_id]

    def test_rule_books_share_durable_store(self, tmp_path):
        """Test that two books over one file see each other's changes."""
        first = FudgeRuleBook(JsonRuleStore(tmp_path))
        second = FudgeRuleBook(JsonRuleStore(tmp_path))
        rule = first.add_rule("> 10")
        second.disable_rule(rule.rule_id)
        assert not first.get_rule(rule.rule_id).active


class TestFudgeRuleSerialization:
    """Tests for FudgeRule dict conversion."""

    def test_from_dict_defaults(self):
        rule = FudgeRule.from_dict({"rule_id": "abc", "formula": "> 3"})
        assert rule.target_actor_id == "all"
        assert rule.roll_type == "raw"
        assert rule.active
        assert not rule.persistent


class TestConsumeRule:
    """Tests for single-shot rule consumption."""

    def test_consume_succeeds_once(self, rule_book):
        rule = rule_book.add_rule(">= 15")
        assert rule_book.consume_rule(rule.rule_id) is True
        assert rule_book.consume_rule(rule.rule_id) is False
        assert not rule_book.get_rule(rule.rule_id).active

    def test_consume_inactive_or_missing_rule(self, rule_book):
        rule = rule_book.add_rule(">= 15")
        rule_book.disable_rule(rule.rule_id)
        assert rule_book.consume_rule(rule.rule_id) is False
        assert rule_book.consume_rule("missing") is False

    def test_consume_leaves_other_rules_alone(self, rule_book):
        first = rule_book.add_rule(">= 15")
        second = rule_book.add_rule("<= 5")
        rule_book.consume_rule(first.rule_id)
        assert rule_book.get_rule(second.rule_id).active

    def test_consume_seen_by_second_book_over_same_file(self, tmp_path):
        """Test that a rule consumed through one book is inactive in the other."""
        first = FudgeRuleBook(JsonRuleStore(tmp_path))
        second = FudgeRuleBook(JsonRuleStore(tmp_path))
        rule = first.add_rule("= 20")
        assert second.consume_rule(rule.rule_id) is True
        assert first.consume_rule(rule.rule_id) is False

    def test_concurrent_edits_through_two_books_are_kept(self, tmp_path):
        """Test that an add in one book survives an edit made through another."""
        first = FudgeRuleBook(JsonRuleStore(tmp_path))
        second = FudgeRuleBook(JsonRuleStore(tmp_path))
        original = first.add_rule(">= 15")
        added = second.add_rule("<= 5")
        first.update_rule(original.rule_id, persistent=True)
        rules = {r.rule_id: r for r in second.all_rules()}
        assert set(rules) == {original.rule_id, added.rule_id}
        assert rules[original.rule_id].persistent
