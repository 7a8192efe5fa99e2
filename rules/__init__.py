"""
Rules Module - Condition matching and reply gating
==================================================

This module provides the rule side of the reply pipeline:
- Rule, condition and settings models
- Condition evaluators (keyword, time, contact, message type)
- First-match rules engine
- Gate chain (bot switch, chat type, sleep window)
"""

from .models import (
    Condition,
    ConditionType,
    MessageContext,
    Operator,
    ResponseType,
    Rule,
    RuleResponse,
    Settings,
    validate_rule,
    validate_settings,
)
from .conditions import evaluate, EVALUATORS
from .engine import RulesEngine, RuleMatch
from .gates import GateChain, GateResult, GateReason

__all__ = [
    "Condition",
    "ConditionType",
    "MessageContext",
    "Operator",
    "ResponseType",
    "Rule",
    "RuleResponse",
    "Settings",
    "validate_rule",
    "validate_settings",
    "evaluate",
    "EVALUATORS",
    "RulesEngine",
    "RuleMatch",
    "GateChain",
    "GateResult",
    "GateReason",
]
