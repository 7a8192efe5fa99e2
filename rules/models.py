"""
Rule Models - Rules, conditions, responses, settings and message context
=======================================================================

Plain dataclasses exchanged between storage and the reply pipeline.
``from_dict`` is tolerant so that malformed stored data reaches the
evaluators (which treat it as a non-match); ``validate_rule`` is the
strict check used when rules are created or edited.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any, Union
from dataclasses import dataclass, field

from core.exceptions import ValidationError
from .clock import parse_hhmm, is_valid_zone


class ConditionType(str, Enum):
    """Kinds of condition a rule can hold."""
    KEYWORD = "keyword"
    TIME = "time"
    CONTACT = "contact"
    MESSAGE_TYPE = "message_type"


class Operator(str, Enum):
    """Condition operators."""
    CONTAINS = "contains"
    EQUALS = "equals"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    BETWEEN = "between"


class ResponseType(str, Enum):
    """What a matched rule asks for."""
    TEXT = "text"
    AI = "ai"
    NONE = "none"


RULE_NAME_MAX = 100
RULE_DESCRIPTION_MAX = 500
RESPONSE_CONTENT_MAX = 2000
PRIORITY_MIN = 1
PRIORITY_MAX = 100


@dataclass(frozen=True)
class MessageContext:
    """
    Per-message input to the gates and evaluators.

    Attributes:
        body (str): Message text
        sender (str): Sender identifier (phone number, chat id)
        is_group (bool): Whether the message came from a group chat
        timestamp (datetime): Receive time, localized to the reference zone
    """
    body: str
    sender: str
    is_group: bool
    timestamp: datetime


@dataclass
class Condition:
    """
    A single predicate clause of a rule.

    ``type`` and ``operator`` are kept as plain strings so unknown values
    loaded from storage survive until evaluation.
    """
    type: str
    operator: str
    value: Union[str, List[str], None]
    case_sensitive: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "operator": self.operator,
            "value": self.value,
            "case_sensitive": self.case_sensitive,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Condition':
        return cls(
            type=str(data.get("type", "")),
            operator=str(data.get("operator", "")),
            value=data.get("value"),
            case_sensitive=bool(data.get("case_sensitive", data.get("caseSensitive", False))),
        )


@dataclass
class RuleResponse:
    """Action attached to a rule."""
    type: str = ResponseType.TEXT.value
    content: Optional[str] = None
    use_ai: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "content": self.content, "use_ai": self.use_ai}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RuleResponse':
        return cls(
            type=str(data.get("type", ResponseType.TEXT.value)),
            content=data.get("content"),
            use_ai=bool(data.get("use_ai", data.get("useAI", False))),
        )


@dataclass
class Rule:
    """
    A prioritized automation entry.

    All conditions must hold for the rule to match. Among enabled rules,
    higher priority wins and newer rules win ties.

    Attributes:
        name (str): Display name
        conditions (list): Conditions, AND-ed together
        response (RuleResponse): What to do on match
        priority (int): 1-100, higher is evaluated first
        enabled (bool): Whether the rule is active
        id (int): Storage id
        description (str): Optional free text
        created_at (datetime): Creation time, used to break priority ties
    """
    name: str
    conditions: List[Condition]
    response: RuleResponse
    priority: int = 1
    enabled: bool = True
    id: Optional[int] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "priority": self.priority,
            "conditions": [c.to_dict() for c in self.conditions],
            "response": self.response.to_dict(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Rule':
        return cls(
            id=data.get("id"),
            name=data.get("name", ""),
            description=data.get("description"),
            enabled=bool(data.get("enabled", True)),
            priority=data.get("priority", 1),
            conditions=[
                Condition.from_dict(c) for c in data.get("conditions") or []
                if isinstance(c, dict)
            ],
            response=RuleResponse.from_dict(data.get("response") or {}),
            created_at=_parse_datetime(data.get("created_at")),
            updated_at=_parse_datetime(data.get("updated_at")),
        )


@dataclass
class Settings:
    """
    Bot-wide switches read before each message.

    Defaults apply when no settings were ever stored: bot enabled,
    no sleep window, reply to personal chats only.
    """
    bot_enabled: bool = True
    sleep_start: Optional[str] = None
    sleep_end: Optional[str] = None
    timezone: Optional[str] = None
    reply_to_personal_chats: bool = True
    reply_to_group_chats: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bot_enabled": self.bot_enabled,
            "sleep_start": self.sleep_start,
            "sleep_end": self.sleep_end,
            "timezone": self.timezone,
            "reply_to_personal_chats": self.reply_to_personal_chats,
            "reply_to_group_chats": self.reply_to_group_chats,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Settings':
        defaults = cls()
        return cls(**{key: data.get(key, getattr(defaults, key)) for key in defaults.to_dict()})


def _parse_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def validate_rule(rule: Rule) -> None:
    """
    Strict validation for rules entering storage.

    Raises:
        ValidationError: Describing the first problem found
    """
    if not rule.name or not rule.name.strip():
        raise ValidationError("Rule name is required")
    if len(rule.name) > RULE_NAME_MAX:
        raise ValidationError(f"Rule name must be at most {RULE_NAME_MAX} characters")
    if rule.description and len(rule.description) > RULE_DESCRIPTION_MAX:
        raise ValidationError(f"Description must be at most {RULE_DESCRIPTION_MAX} characters")

    if isinstance(rule.priority, bool) or not isinstance(rule.priority, int):
        raise ValidationError("Priority must be an integer", {"priority": rule.priority})
    if not PRIORITY_MIN <= rule.priority <= PRIORITY_MAX:
        raise ValidationError(
            f"Priority must be between {PRIORITY_MIN} and {PRIORITY_MAX}",
            {"priority": rule.priority}
        )

    if not rule.conditions:
        raise ValidationError("A rule needs at least one condition")
    for index, condition in enumerate(rule.conditions):
        _validate_condition(condition, index)

    _validate_response(rule.response)


def _validate_condition(condition: Condition, index: int) -> None:
    details = {"condition": index}
    types = {t.value for t in ConditionType}
    operators = {o.value for o in Operator}

    if condition.type not in types:
        raise ValidationError(f"Unknown condition type: {condition.type!r}", details)
    if condition.operator not in operators:
        raise ValidationError(f"Unknown operator: {condition.operator!r}", details)

    value = condition.value
    if isinstance(value, list):
        if not value or not all(isinstance(v, str) and v.strip() for v in value):
            raise ValidationError("Condition value list must hold non-empty strings", details)
    elif not isinstance(value, str):
        raise ValidationError("Condition value must be a string or list of strings", details)
    elif not value.strip():
        raise ValidationError("Condition value is required", details)

    if condition.type == ConditionType.TIME:
        if condition.operator != Operator.BETWEEN:
            raise ValidationError("Time conditions only support 'between'", details)
        if not isinstance(value, list) or len(value) != 2:
            raise ValidationError("Time conditions need [start, end]", details)
        if any(parse_hhmm(v) is None for v in value):
            raise ValidationError("Time values must be HH:MM", details)
    elif condition.operator == Operator.BETWEEN:
        raise ValidationError("'between' only applies to time conditions", details)

    if condition.type == ConditionType.MESSAGE_TYPE and value not in ("group", "personal"):
        raise ValidationError("Message type must be 'group' or 'personal'", details)


def _validate_response(response: RuleResponse) -> None:
    types = {t.value for t in ResponseType}
    if response.type not in types:
        raise ValidationError(f"Unknown response type: {response.type!r}")

    if response.type == ResponseType.TEXT:
        if not response.content or not response.content.strip():
            raise ValidationError("Text responses need content")
    if response.content and len(response.content) > RESPONSE_CONTENT_MAX:
        raise ValidationError(f"Response content must be at most {RESPONSE_CONTENT_MAX} characters")


def validate_settings(settings: Settings) -> None:
    """
    Raises:
        ValidationError: For malformed sleep bounds or time zones
    """
    for name in ("sleep_start", "sleep_end"):
        value = getattr(settings, name)
        if value is not None and parse_hhmm(value) is None:
            raise ValidationError(f"{name} must be HH:MM", {name: value})

    if settings.timezone and not is_valid_zone(settings.timezone):
        raise ValidationError(f"Unknown timezone: {settings.timezone}")

    for name in ("bot_enabled", "reply_to_personal_chats", "reply_to_group_chats"):
        if not isinstance(getattr(settings, name), bool):
            raise ValidationError(f"{name} must be a boolean")
