"""
Test Termux SMS Transport
=========================

Unit tests for the Termux SMS transport with subprocess mocked out.
"""

import json
import subprocess
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch, MagicMock
from pathlib import Path

# Add parent directory to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.config import TransportConfig
from core.exceptions import SessionClosedError, TransportError
from transport.base import AUTH_FAILED, CONNECTED
from transport.termux import TermuxSMSTransport


def completed(returncode=0, stdout="", stderr=""):
    return MagicMock(returncode=returncode, stdout=stdout, stderr=stderr)


def sms(number, body, received, sms_type=1):
    return {"number": number, "body": body, "type": sms_type, "received": received}


@pytest.fixture
def transport():
    return TermuxSMSTransport(TransportConfig(command_timeout=5))


class TestHelpers:
    """Tests for static helpers."""

    def test_phone_normalization(self):
        assert TermuxSMSTransport.normalize_number("+1 (234) 567-8900") == "+12345678900"
        assert TermuxSMSTransport.normalize_number("123-456") == "123456"

    def test_sms_type_mapping(self):
        assert TermuxSMSTransport.SMS_TYPE_MAP[1] == "incoming"
        assert TermuxSMSTransport.SMS_TYPE_MAP[2] == "outgoing"
        assert TermuxSMSTransport.SMS_TYPE_MAP[5] == "failed"

    def test_parse_timestamp(self):
        parsed = TermuxSMSTransport.parse_timestamp("1614556800000")
        assert parsed == datetime(2021, 3, 1, tzinfo=timezone.utc)

        iso = TermuxSMSTransport.parse_timestamp("2024-01-01T10:00:00+00:00")
        assert iso.hour == 10
        assert iso.tzinfo is not None


class TestSend:
    """Tests for sending."""

    @pytest.mark.asyncio
    @patch("subprocess.run")
    async def test_send(self, mock_run, transport):
        mock_run.return_value = completed()

        await transport.send("+1 234 567 890", "Test message")

        cmd = mock_run.call_args[0][0]
        assert cmd == ["termux-sms-send", "-n", "+1234567890"]
        assert mock_run.call_args[1]["input"] == "Test message"

    @pytest.mark.asyncio
    @patch("subprocess.run")
    async def test_send_failure_is_transient(self, mock_run, transport):
        mock_run.return_value = completed(returncode=1, stderr="radio busy")
        with pytest.raises(TransportError) as exc_info:
            await transport.send("+1234567890", "hi")
        assert not isinstance(exc_info.value, SessionClosedError)

    @pytest.mark.asyncio
    @patch("subprocess.run")
    async def test_permission_denied_closes_session(self, mock_run, transport):
        mock_run.return_value = completed(returncode=1, stderr="Permission denied")
        with pytest.raises(SessionClosedError):
            await transport.send("+1234567890", "hi")

    @pytest.mark.asyncio
    @patch("subprocess.run", side_effect=FileNotFoundError)
    async def test_missing_command_closes_session(self, mock_run, transport):
        with pytest.raises(SessionClosedError):
            await transport.send("+1234567890", "hi")

    @pytest.mark.asyncio
    @patch("subprocess.run", side_effect=subprocess.TimeoutExpired("termux-sms-send", 5))
    async def test_timeout(self, mock_run, transport):
        with pytest.raises(TransportError):
            await transport.send("+1234567890", "hi")


class TestPolling:
    """Tests for listing and polling."""

    @pytest.mark.asyncio
    @patch("subprocess.run")
    async def test_list_messages(self, mock_run, transport):
        mock_run.return_value = completed(stdout=json.dumps([
            {"address": "+1234567890", "body": "in", "type": 1, "date": "1614556800000"},
            {"address": "+0987654321", "body": "out", "type": 2, "date": "1614556800000"},
        ]))
        messages = await transport.list_messages()
        assert [m["direction"] for m in messages] == ["incoming", "outgoing"]

    @pytest.mark.asyncio
    @patch("subprocess.run")
    async def test_list_messages_error(self, mock_run, transport):
        mock_run.return_value = completed(returncode=1, stderr="Error listing messages")
        with pytest.raises(TransportError):
            await transport.list_messages()

    @pytest.mark.asyncio
    @patch("subprocess.run")
    async def test_first_poll_seeds_then_dispatches_new(self, mock_run, transport):
        transport.start_time = datetime.now(timezone.utc) - timedelta(minutes=5)
        recent = (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat()
        later = datetime.now(timezone.utc).isoformat()
        old = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()

        received = []

        async def handler(message):
            received.append(message)

        transport.on_message(handler)

        mock_run.return_value = completed(stdout=json.dumps([
            sms("+15550001111", "already here", recent),
            sms("+15550002222", "before start", old),
        ]))
        assert await transport.poll_once() == []

        mock_run.return_value = completed(stdout=json.dumps([
            sms("+15550003333", "new one", later),
            sms("+15550001111", "already here", recent),
            sms("+15550004444", "sent by us", later, sms_type=2),
        ]))
        new = await transport.poll_once()

        assert [m.body for m in new] == ["new one"]
        assert [m.sender for m in received] == ["+15550003333"]
        assert received[0].is_group is False

    @pytest.mark.asyncio
    @patch("subprocess.run")
    async def test_seen_ids_are_capped(self, mock_run, transport):
        transport.start_time = datetime.now(timezone.utc) - timedelta(minutes=5)
        transport.seen_limit = 2
        stamps = [(datetime.now(timezone.utc) - timedelta(minutes=m)).isoformat() for m in (1, 2, 3)]

        mock_run.return_value = completed(stdout=json.dumps([
            sms("+15550001111", f"message {i}", stamp) for i, stamp in enumerate(stamps)
        ]))
        await transport.poll_once()

        assert len(transport._seen) == 2


class TestLifecycle:
    """Tests for start and availability checks."""

    @pytest.mark.asyncio
    @patch("transport.termux.shutil.which", return_value=None)
    async def test_start_without_termux_api(self, mock_which, transport):
        events = []
        transport.on(AUTH_FAILED, events.append)
        with pytest.raises(SessionClosedError):
            await transport.start()
        assert len(events) == 1

    @pytest.mark.asyncio
    @patch("subprocess.run")
    @patch("transport.termux.shutil.which", return_value="/usr/bin/termux-sms-list")
    async def test_start_permission_denied(self, mock_which, mock_run, transport):
        mock_run.return_value = completed(returncode=1, stderr="SMS permission denied")
        events = []
        transport.on(AUTH_FAILED, events.append)
        with pytest.raises(SessionClosedError):
            await transport.start()
        assert "permission" in events[0]["error"].lower()

    @pytest.mark.asyncio
    @patch("subprocess.run")
    @patch("transport.termux.shutil.which", return_value="/usr/bin/termux-sms-list")
    async def test_start_and_stop(self, mock_which, mock_run, transport):
        mock_run.return_value = completed(stdout="[]")
        events = []
        transport.on(CONNECTED, events.append)

        await transport.start()
        await transport.stop()

        assert events == [{}]
