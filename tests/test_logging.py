"""
Test Logging Module
===================

Unit tests for identifier masking and per-task log context.
"""

import json
import logging
from pathlib import Path

# Add parent directory to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.logging import (
    ContextFilter, JSONFormatter, get_logger, mask_identifier,
    set_log_context, clear_log_context,
)


def make_record(context=None):
    record = logging.LogRecord("auto_reply.test", logging.INFO, __file__, 1, "hello", None, None)
    if context is not None:
        record.context = context
    return record


class TestMaskIdentifier:
    """Tests for mask_identifier."""

    def test_phone_number(self):
        assert mask_identifier("+1234567890") == "+12****7890"

    def test_short_and_empty(self):
        assert mask_identifier("123") == "****"
        assert mask_identifier("") == "****"


class TestLogContext:
    """Tests for context propagation."""

    def teardown_method(self):
        clear_log_context()

    def test_filter_merges_task_context(self):
        set_log_context(chat="+15****1111")
        record = make_record({"rule_id": 4})

        ContextFilter().filter(record)

        assert record.context == {"chat": "+15****1111", "rule_id": 4}

    def test_cleared_context(self):
        set_log_context(chat="+15****1111")
        clear_log_context()
        record = make_record()

        ContextFilter().filter(record)

        assert not hasattr(record, "context")

    def test_json_formatter_includes_context(self):
        data = json.loads(JSONFormatter().format(make_record({"chat": "x"})))
        assert data["message"] == "hello"
        assert data["context"] == {"chat": "x"}

    def test_adapter_moves_extra_into_context(self):
        logger = get_logger("test", component="dispatcher")
        msg, kwargs = logger.process("hi", {"extra": {"rule_id": 2}})
        assert kwargs["extra"] == {"context": {"component": "dispatcher", "rule_id": 2}}
        assert logger.logger.name == "auto_reply.test"
