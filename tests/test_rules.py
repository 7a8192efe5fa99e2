"""
Test Rules Module
=================

Unit tests for rule models, validation and the rules engine.
"""

import pytest
from datetime import datetime, timezone
from pathlib import Path

# Add parent directory to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from rules.models import (
    Condition, Rule, RuleResponse, Settings, MessageContext,
    validate_rule, validate_settings,
)
from rules.engine import RulesEngine
from core.exceptions import ValidationError


def make_context(body="hello", sender="+15550001111", is_group=False):
    return MessageContext(body, sender, is_group, datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))


def make_rule(name, keyword="hello", priority=1, enabled=True, rule_id=None):
    return Rule(
        id=rule_id,
        name=name,
        priority=priority,
        enabled=enabled,
        conditions=[Condition("keyword", "contains", keyword)],
        response=RuleResponse("text", f"reply from {name}"),
    )


class TestRuleModel:
    """Tests for Rule serialization."""

    def test_from_dict_accepts_camel_case(self):
        rule = Rule.from_dict({
            "name": "Greeting",
            "priority": 5,
            "conditions": [{"type": "keyword", "operator": "contains", "value": "hi", "caseSensitive": True}],
            "response": {"type": "text", "content": "Hey!", "useAI": True},
        })
        assert rule.conditions[0].case_sensitive is True
        assert rule.response.use_ai is True
        assert rule.priority == 5

    def test_to_dict(self):
        data = make_rule("Greeting", rule_id=3).to_dict()
        assert data["id"] == 3
        assert data["conditions"][0]["type"] == "keyword"
        assert data["response"]["content"] == "reply from Greeting"


class TestValidation:
    """Tests for rule and settings validation."""

    def test_valid_rule(self):
        validate_rule(make_rule("Greeting"))

    def test_requires_conditions(self):
        rule = make_rule("Empty")
        rule.conditions = []
        with pytest.raises(ValidationError):
            validate_rule(rule)

    @pytest.mark.parametrize("priority", [0, 101, "5", True])
    def test_priority_range(self, priority):
        rule = make_rule("Bad priority")
        rule.priority = priority
        with pytest.raises(ValidationError):
            validate_rule(rule)

    def test_between_only_for_time(self):
        rule = make_rule("Bad")
        rule.conditions = [Condition("keyword", "between", ["a", "b"])]
        with pytest.raises(ValidationError):
            validate_rule(rule)

    @pytest.mark.parametrize("condition", [
        Condition("keyword", "contains", ""),
        Condition("keyword", "contains", "   "),
        Condition("keyword", "contains", [""]),
        Condition("keyword", "contains", ["hi", " "]),
        Condition("contact", "equals", None),
    ])
    def test_empty_condition_values_rejected(self, condition):
        rule = make_rule("Catch-all")
        rule.conditions = [condition]
        with pytest.raises(ValidationError):
            validate_rule(rule)

    def test_time_needs_two_hhmm_values(self):
        rule = make_rule("Night")
        rule.conditions = [Condition("time", "between", ["22:00", "6am"])]
        with pytest.raises(ValidationError):
            validate_rule(rule)

        rule.conditions = [Condition("time", "between", ["22:00", "06:00"])]
        validate_rule(rule)

    def test_text_response_needs_content(self):
        rule = make_rule("No content")
        rule.response = RuleResponse("text", None)
        with pytest.raises(ValidationError):
            validate_rule(rule)

    def test_ai_response_without_content(self):
        rule = make_rule("AI")
        rule.response = RuleResponse("ai")
        validate_rule(rule)

    def test_name_length(self):
        with pytest.raises(ValidationError):
            validate_rule(make_rule("x" * 101))

    def test_settings_validation(self):
        validate_settings(Settings(sleep_start="23:00", sleep_end="07:00", timezone="Asia/Kolkata"))
        with pytest.raises(ValidationError):
            validate_settings(Settings(sleep_start="11pm"))
        with pytest.raises(ValidationError):
            validate_settings(Settings(timezone="Mars/Olympus"))


class TestRulesEngine:
    """Tests for first-match selection."""

    @pytest.fixture
    def engine(self):
        return RulesEngine()

    def test_first_match_wins(self, engine):
        rules = [make_rule("high", priority=10), make_rule("low", priority=1)]
        match = engine.match(make_context(), rules)
        assert match.rule.name == "high"
        assert match.position == 0

    def test_skips_non_matching(self, engine):
        rules = [make_rule("price", keyword="price", priority=10), make_rule("greeting", priority=1)]
        match = engine.match(make_context("hello"), rules)
        assert match.rule.name == "greeting"
        assert match.position == 1

    def test_no_match(self, engine):
        assert engine.match(make_context("bye"), [make_rule("greeting")]) is None

    def test_no_rules(self, engine):
        assert engine.match(make_context(), []) is None

    def test_disabled_rule_skipped(self, engine):
        rules = [make_rule("off", enabled=False), make_rule("on")]
        assert engine.match(make_context(), rules).rule.name == "on"

    def test_all_conditions_must_hold(self, engine):
        rule = make_rule("group greeting")
        rule.conditions.append(Condition("message_type", "equals", "group"))
        assert engine.match(make_context(is_group=False), [rule]) is None
        assert engine.match(make_context(is_group=True), [rule]) is not None

    def test_rule_without_conditions_never_matches(self, engine):
        rule = make_rule("empty")
        rule.conditions = []
        assert not engine.rule_matches(rule, make_context())
