"""
Condition Evaluators - One predicate per condition type
=======================================================

Each evaluator is a pure function ``(condition, context) -> bool``.
Malformed conditions evaluate to False instead of raising, so a bad
rule is skipped without aborting evaluation of the others.
"""

from typing import Callable, Dict, List, Optional

from core.logging import get_logger
from .clock import parse_hhmm, minutes_of_day, in_window
from .models import Condition, ConditionType, MessageContext, Operator

logger = get_logger("rules.conditions")

Evaluator = Callable[[Condition, MessageContext], bool]


def _candidates(value) -> Optional[List[str]]:
    """
    Coerce a condition value to a list of strings, or None if malformed.

    Missing values and empty strings are malformed: an empty candidate
    would match every message.
    """
    if isinstance(value, str):
        return [value] if value else None
    if isinstance(value, (list, tuple)) and value and all(isinstance(v, str) and v for v in value):
        return list(value)
    return None


def _string_match(operator: str, text: str, candidate: str) -> bool:
    if operator == Operator.CONTAINS:
        return candidate in text
    if operator == Operator.EQUALS:
        return text == candidate
    if operator == Operator.STARTS_WITH:
        return text.startswith(candidate)
    if operator == Operator.ENDS_WITH:
        return text.endswith(candidate)
    return False


def evaluate_keyword(condition: Condition, context: MessageContext) -> bool:
    """Any candidate satisfies the operator against the message body."""
    candidates = _candidates(condition.value)
    if candidates is None or not isinstance(context.body, str):
        return False

    text = context.body if condition.case_sensitive else context.body.lower()
    for candidate in candidates:
        needle = candidate if condition.case_sensitive else candidate.lower()
        if _string_match(condition.operator, text, needle):
            return True
    return False


def evaluate_time(condition: Condition, context: MessageContext) -> bool:
    """
    ``between`` window over the context's local time of day.

    Windows with start after end wrap past midnight.
    """
    if condition.operator != Operator.BETWEEN:
        return False

    value = condition.value
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        return False

    start, end = parse_hhmm(value[0]), parse_hhmm(value[1])
    if start is None or end is None:
        return False

    return in_window(minutes_of_day(context.timestamp), start, end)


def evaluate_contact(condition: Condition, context: MessageContext) -> bool:
    """Any candidate satisfies the operator against the sender. Always case-sensitive."""
    candidates = _candidates(condition.value)
    if candidates is None or not isinstance(context.sender, str):
        return False

    return any(_string_match(condition.operator, context.sender, c) for c in candidates)


def evaluate_message_type(condition: Condition, context: MessageContext) -> bool:
    if condition.value == "group":
        return context.is_group
    if condition.value == "personal":
        return not context.is_group
    return False


EVALUATORS: Dict[str, Evaluator] = {
    ConditionType.KEYWORD.value: evaluate_keyword,
    ConditionType.TIME.value: evaluate_time,
    ConditionType.CONTACT.value: evaluate_contact,
    ConditionType.MESSAGE_TYPE.value: evaluate_message_type,
}


def evaluate(condition: Condition, context: MessageContext) -> bool:
    """
    Evaluate one condition through the evaluator table.

    Unknown condition types and evaluator failures count as non-matches.
    """
    evaluator = EVALUATORS.get(condition.type)
    if evaluator is None:
        logger.debug(f"Unknown condition type {condition.type!r}")
        return False

    try:
        return bool(evaluator(condition, context))
    except Exception as e:
        logger.warning(f"Condition {condition.type!r} failed to evaluate: {e}")
        return False
