"""
Test Response Resolver
======================

Unit tests for turning match outcomes into reply plans.
"""

from datetime import datetime, timezone
from pathlib import Path

# Add parent directory to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from rules.engine import RuleMatch
from rules.models import Condition, MessageContext, Rule, RuleResponse
from services.responder import ResponseResolver, StepKind, Outcome


def make_match(response):
    rule = Rule(
        id=7,
        name="Greeting",
        conditions=[Condition("keyword", "contains", "hi")],
        response=response,
    )
    context = MessageContext("hi", "+15550001111", False, datetime.now(timezone.utc))
    return RuleMatch(rule=rule, context=context)


class TestResponseResolver:
    """Tests for ResponseResolver."""

    def setup_method(self):
        self.resolver = ResponseResolver()

    def test_text(self):
        plan = self.resolver.resolve(make_match(RuleResponse("text", "Hey!")))
        assert plan.outcome == Outcome.MATCHED
        assert [(s.kind, s.text) for s in plan.steps] == [(StepKind.TEXT, "Hey!")]
        assert plan.rule_id == 7
        assert plan.rule_name == "Greeting"

    def test_text_with_ai_sends_twice(self):
        plan = self.resolver.resolve(make_match(RuleResponse("text", "Hey!", use_ai=True)))
        assert [s.kind for s in plan.steps] == [StepKind.TEXT, StepKind.GENERATE]

    def test_text_without_content_skips_text_step(self):
        assert self.resolver.resolve(make_match(RuleResponse("text", None))).is_silent

        plan = self.resolver.resolve(make_match(RuleResponse("text", "", use_ai=True)))
        assert [s.kind for s in plan.steps] == [StepKind.GENERATE]

    def test_ai(self):
        plan = self.resolver.resolve(make_match(RuleResponse("ai")))
        assert [s.kind for s in plan.steps] == [StepKind.GENERATE]

    def test_none_is_silent(self):
        plan = self.resolver.resolve(make_match(RuleResponse("none", "ignored", use_ai=True)))
        assert plan.is_silent
        assert plan.outcome == Outcome.MATCHED

    def test_no_match_generates(self):
        plan = self.resolver.resolve(None)
        assert plan.outcome == Outcome.NO_MATCH
        assert [s.kind for s in plan.steps] == [StepKind.GENERATE]
        assert plan.rule_id is None

    def test_match_error_fails_open(self):
        plan = self.resolver.resolve(None, error=RuntimeError("db locked"))
        assert plan.outcome == Outcome.MATCH_ERROR
        assert [s.kind for s in plan.steps] == [StepKind.GENERATE]
