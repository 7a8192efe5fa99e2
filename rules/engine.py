"""
Rules Engine - First-match rule selection
=========================================

This module matches an incoming message against the enabled rules.
Rules arrive ordered by priority (highest first) and then recency
(newest first); the first rule whose conditions all hold wins and no
further rules are considered.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from core.logging import get_logger
from .conditions import evaluate
from .models import MessageContext, Rule

logger = get_logger("rules.engine")


@dataclass
class RuleMatch:
    """
    Result of a rule matching a message.

    Attributes:
        rule (Rule): The matching rule
        context (MessageContext): The message it matched
        position (int): Index of the rule in the evaluated sequence
    """
    rule: Rule
    context: MessageContext
    position: int = 0


class RulesEngine:
    """
    Matches messages against an ordered rule sequence.

    The engine holds no rules itself; callers pass the current snapshot
    of enabled rules so a rule edited mid-message only affects the next
    message.

    Example:
        engine = RulesEngine()
        match = engine.match(context, database.list_enabled_rules())
        if match:
            print(match.rule.name)
    """

    def rule_matches(self, rule: Rule, context: MessageContext) -> bool:
        """All conditions must hold. A rule without conditions never matches."""
        if not rule.conditions:
            return False
        return all(evaluate(condition, context) for condition in rule.conditions)

    def match(
        self,
        context: MessageContext,
        rules: Sequence[Rule]
    ) -> Optional[RuleMatch]:
        """
        Find the first fully matching rule.

        Args:
            context: Message context
            rules: Enabled rules, ordered by (priority desc, created_at desc)

        Returns:
            RuleMatch if found, None otherwise
        """
        for position, rule in enumerate(rules):
            if not rule.enabled:
                continue
            if self.rule_matches(rule, context):
                logger.info(f"Rule matched: {rule.name!r}", extra={"rule_id": rule.id})
                return RuleMatch(rule=rule, context=context, position=position)

        logger.debug(f"No rule matched among {len(rules)} rule(s)")
        return None
