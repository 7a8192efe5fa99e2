"""
Gate Chain - Filters applied before rule matching
=================================================

Gates run in a fixed order against the current settings; the first one
that fires drops the reply. A dropped message is still recorded by the
dispatcher, only the reply is suppressed.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from core.logging import get_logger
from .clock import parse_hhmm, minutes_of_day, in_window
from .models import MessageContext, Settings

logger = get_logger("rules.gates")


class GateReason(str, Enum):
    """Why a message was dropped."""
    BOT_DISABLED = "bot_disabled"
    GROUP_CHATS_DISABLED = "group_chats_disabled"
    PERSONAL_CHATS_DISABLED = "personal_chats_disabled"
    SLEEP_WINDOW = "sleep_window"


@dataclass
class GateResult:
    passed: bool
    reason: Optional[GateReason] = None

    def __bool__(self) -> bool:
        return self.passed


def in_sleep_window(settings: Settings, context: MessageContext) -> bool:
    """
    Whether the context's local time falls in the configured sleep window.

    Equal bounds describe an empty window. Unparseable bounds are ignored.
    """
    if not settings.sleep_start or not settings.sleep_end:
        return False

    start, end = parse_hhmm(settings.sleep_start), parse_hhmm(settings.sleep_end)
    if start is None or end is None:
        logger.warning(
            f"Ignoring malformed sleep window {settings.sleep_start!r}-{settings.sleep_end!r}"
        )
        return False

    if start == end:
        return False

    return in_window(minutes_of_day(context.timestamp), start, end)


class GateChain:
    """
    Ordered reply filters.

    1. bot disabled
    2. group message while group replies are off
    3. personal message while personal replies are off
    4. inside the sleep window
    """

    def evaluate(self, settings: Settings, context: MessageContext) -> GateResult:
        if not settings.bot_enabled:
            return GateResult(False, GateReason.BOT_DISABLED)

        if context.is_group and not settings.reply_to_group_chats:
            return GateResult(False, GateReason.GROUP_CHATS_DISABLED)

        if not context.is_group and not settings.reply_to_personal_chats:
            return GateResult(False, GateReason.PERSONAL_CHATS_DISABLED)

        if in_sleep_window(settings, context):
            return GateResult(False, GateReason.SLEEP_WINDOW)

        return GateResult(True)
