"""
Response Resolver - Turns a match outcome into a reply plan
===========================================================

The resolver does not send anything. It produces an ordered list of
steps the dispatcher executes:
- ``text``: send fixed text
- ``generate``: ask the generative fallback and send its output
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from core.logging import get_logger
from rules.engine import RuleMatch
from rules.models import ResponseType

logger = get_logger("services.responder")


class StepKind(str, Enum):
    TEXT = "text"
    GENERATE = "generate"


class Outcome(str, Enum):
    """How the plan was reached."""
    MATCHED = "matched"
    NO_MATCH = "no_match"
    MATCH_ERROR = "match_error"


@dataclass
class ReplyStep:
    kind: StepKind
    text: Optional[str] = None


@dataclass
class ReplyPlan:
    """
    Ordered reply steps for one message.

    An empty plan means the message gets no reply.
    """
    outcome: Outcome
    steps: List[ReplyStep] = field(default_factory=list)
    rule_id: Optional[int] = None
    rule_name: Optional[str] = None

    @property
    def is_silent(self) -> bool:
        return not self.steps


class ResponseResolver:
    """
    Example:
        plan = ResponseResolver().resolve(engine.match(context, rules))
        for step in plan.steps:
            ...
    """

    def resolve(self, match: Optional[RuleMatch], error: Optional[BaseException] = None) -> ReplyPlan:
        """
        Build the reply plan.

        Args:
            match: Matching rule, or None when nothing matched
            error: Exception raised while matching; handled like no match

        Returns:
            ReplyPlan
        """
        if error is not None:
            logger.warning(f"Rule matching failed, falling back to generation: {error}")
            return ReplyPlan(Outcome.MATCH_ERROR, [ReplyStep(StepKind.GENERATE)])

        if match is None:
            return ReplyPlan(Outcome.NO_MATCH, [ReplyStep(StepKind.GENERATE)])

        rule = match.rule
        response = rule.response
        plan = ReplyPlan(Outcome.MATCHED, rule_id=rule.id, rule_name=rule.name)

        if response.type == ResponseType.TEXT.value:
            if response.content:
                plan.steps.append(ReplyStep(StepKind.TEXT, response.content))
            else:
                logger.warning(f"Text rule {rule.name!r} has no content, skipping text reply")
            if response.use_ai:
                plan.steps.append(ReplyStep(StepKind.GENERATE))

        elif response.type == ResponseType.AI.value:
            plan.steps.append(ReplyStep(StepKind.GENERATE))

        elif response.type == ResponseType.NONE.value:
            logger.info(f"Rule {rule.name!r} requests no reply")

        else:
            logger.warning(f"Rule {rule.name!r} has unknown response type {response.type!r}, not replying")

        return plan
