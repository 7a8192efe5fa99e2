"""
Test Gate Chain
===============

Unit tests for the reply gates applied before rule matching.
"""

import pytest
from datetime import datetime, timezone
from pathlib import Path

# Add parent directory to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from rules.gates import GateChain, GateReason, in_sleep_window
from rules.models import MessageContext, Settings


def make_context(is_group=False, at="12:00"):
    hour, minute = (int(p) for p in at.split(":"))
    return MessageContext("hi", "+15550001111", is_group, datetime(2024, 1, 1, hour, minute, tzinfo=timezone.utc))


@pytest.fixture
def chain():
    return GateChain()


class TestGateChain:
    """Tests for gate order and outcomes."""

    def test_defaults_pass_personal(self, chain):
        result = chain.evaluate(Settings(), make_context())
        assert result
        assert result.reason is None

    def test_defaults_drop_group(self, chain):
        result = chain.evaluate(Settings(), make_context(is_group=True))
        assert not result
        assert result.reason == GateReason.GROUP_CHATS_DISABLED

    def test_bot_disabled_fires_first(self, chain):
        settings = Settings(bot_enabled=False, sleep_start="00:00", sleep_end="23:59")
        result = chain.evaluate(settings, make_context(is_group=True))
        assert result.reason == GateReason.BOT_DISABLED

    def test_personal_disabled(self, chain):
        settings = Settings(reply_to_personal_chats=False, reply_to_group_chats=True)
        assert chain.evaluate(settings, make_context()).reason == GateReason.PERSONAL_CHATS_DISABLED
        assert chain.evaluate(settings, make_context(is_group=True))

    def test_sleep_window(self, chain):
        settings = Settings(sleep_start="22:00", sleep_end="06:00")
        assert chain.evaluate(settings, make_context(at="23:30")).reason == GateReason.SLEEP_WINDOW
        assert chain.evaluate(settings, make_context(at="12:00"))


class TestSleepWindow:
    """Tests for sleep window edge cases."""

    def test_equal_bounds_never_sleep(self):
        settings = Settings(sleep_start="08:00", sleep_end="08:00")
        for at in ("08:00", "00:00", "12:00", "23:59"):
            assert not in_sleep_window(settings, make_context(at=at))

    def test_only_one_bound_set(self):
        assert not in_sleep_window(Settings(sleep_start="22:00"), make_context(at="23:00"))

    def test_malformed_bounds_ignored(self):
        settings = Settings(sleep_start="late", sleep_end="06:00")
        assert not in_sleep_window(settings, make_context(at="23:00"))

    def test_same_day_window(self):
        settings = Settings(sleep_start="13:00", sleep_end="14:00")
        assert in_sleep_window(settings, make_context(at="13:30"))
        assert not in_sleep_window(settings, make_context(at="14:30"))
