"""
Termux SMS Transport - SMS over the Termux API
==============================================

This module connects the reply pipeline to Android SMS through the
Termux:API commands:
- ``termux-sms-list`` is polled for new inbound messages
- ``termux-sms-send`` sends replies

Requirements:
- Termux app and Termux:API app installed
- termux-api package: pkg install termux-api
- SMS permissions granted
"""

import asyncio
import hashlib
import json
import re
import shutil
import subprocess
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from core.config import TransportConfig
from core.exceptions import SessionClosedError, TransportError
from core.logging import get_logger, mask_identifier
from .base import Transport, InboundMessage, CONNECTED, DISCONNECTED, AUTH_FAILED

logger = get_logger("transport.termux")

PERMISSION_MARKERS = ("permission", "denied")

# Must stay well above the listing limit
SEEN_LIMIT = 1000


class TermuxSMSTransport(Transport):
    """
    Polling SMS transport.

    Messages received before ``start`` are ignored; the first poll only
    records what is already in the inbox. SMS has no group chats, so
    every inbound message is personal.

    Example:
        transport = TermuxSMSTransport(config.transport)
        transport.on_message(dispatcher.handle)
        await transport.start()
    """

    # Android SMS type values
    SMS_TYPE_MAP = {
        1: "incoming",    # MESSAGE_TYPE_INBOX
        2: "outgoing",    # MESSAGE_TYPE_SENT
        3: "draft",       # MESSAGE_TYPE_DRAFT
        4: "outgoing",    # MESSAGE_TYPE_OUTBOX
        5: "failed",      # MESSAGE_TYPE_FAILED
        6: "outgoing",    # MESSAGE_TYPE_QUEUED
    }

    def __init__(self, config: Optional[TransportConfig] = None, address: str = "me"):
        super().__init__()
        self.config = config or TransportConfig()
        self.address = address
        self.start_time = datetime.now(timezone.utc)
        self.seen_limit = SEEN_LIMIT
        self._seen: "OrderedDict[str, None]" = OrderedDict()
        self._first_poll = True
        self._poll_task: Optional[asyncio.Task] = None

    async def _run(self, cmd: List[str], stdin: Optional[str] = None) -> subprocess.CompletedProcess:
        return await asyncio.to_thread(
            subprocess.run,
            cmd,
            input=stdin,
            capture_output=True,
            text=True,
            timeout=self.config.command_timeout,
        )

    async def check_available(self) -> None:
        """
        Verify the Termux API commands exist and SMS permission is granted.

        Raises:
            SessionClosedError: If SMS cannot be used
        """
        if not shutil.which(self.config.termux_list_path):
            raise SessionClosedError(
                f"{self.config.termux_list_path} command not found",
                details={"hint": "Install termux-api package: pkg install termux-api"}
            )

        try:
            result = await self._run([self.config.termux_list_path, "-l", "1"])
        except subprocess.TimeoutExpired:
            raise SessionClosedError("SMS availability check timed out")

        if result.returncode != 0:
            error = (result.stderr or "").strip() or "Unknown error"
            if any(marker in error.lower() for marker in PERMISSION_MARKERS):
                raise SessionClosedError(
                    "SMS permission not granted",
                    details={"hint": "Settings > Apps > Termux:API > Permissions > SMS"}
                )
            raise SessionClosedError(f"SMS list failed: {error}")

        if not shutil.which(self.config.termux_send_path):
            logger.warning(f"{self.config.termux_send_path} not found, replies will fail")

    async def start(self) -> None:
        """
        Check availability and start polling.

        Raises:
            SessionClosedError: If SMS cannot be used (``auth-failed`` is fired first)
        """
        if self._poll_task is not None:
            return

        try:
            await self.check_available()
        except SessionClosedError as e:
            logger.error(f"SMS transport unavailable: {e}")
            self._fire(AUTH_FAILED, {"error": e.message})
            raise

        self.start_time = datetime.now(timezone.utc)
        self._poll_task = asyncio.create_task(self._poll_loop())
        logger.info(f"Started SMS listener (poll interval: {self.config.poll_interval}s)")
        self._fire(CONNECTED, {})

    async def stop(self) -> None:
        if self._poll_task is None:
            return

        self._poll_task.cancel()
        try:
            await self._poll_task
        except asyncio.CancelledError:
            pass
        self._poll_task = None
        logger.info("Stopped SMS listener")
        self._fire(DISCONNECTED, {"reason": "stopped"})

    async def send(self, target: str, text: str) -> None:
        """
        Send an SMS.

        Raises:
            SessionClosedError: If the command is missing or permission is denied
            TransportError: For timeouts and other failures
        """
        number = self.normalize_number(target)
        logger.info("Sending SMS", extra={"phone": mask_identifier(number), "length": len(text)})

        try:
            result = await self._run([self.config.termux_send_path, "-n", number], stdin=text)
        except FileNotFoundError:
            raise SessionClosedError(
                f"Termux API command not found: {self.config.termux_send_path}",
                details={"hint": "Install termux-api package: pkg install termux-api"}
            )
        except subprocess.TimeoutExpired:
            raise TransportError(
                "SMS send command timed out",
                details={"timeout": self.config.command_timeout}
            )

        if result.returncode != 0:
            error = (result.stderr or "").strip() or "Unknown error"
            if any(marker in error.lower() for marker in PERMISSION_MARKERS):
                raise SessionClosedError(f"SMS permission lost: {error}")
            raise TransportError(
                f"Failed to send SMS: {error}",
                details={"returncode": result.returncode}
            )

    async def list_messages(self, limit: int = 20) -> List[Dict[str, Any]]:
        """
        Read recent SMS from the device.

        Returns:
            Raw message dictionaries with a ``direction`` key added

        Raises:
            TransportError: If listing fails
        """
        try:
            result = await self._run([self.config.termux_list_path, "-l", str(limit)])
        except subprocess.TimeoutExpired:
            raise TransportError("SMS list command timed out")

        if result.returncode != 0:
            raise TransportError(f"Failed to list SMS: {(result.stderr or '').strip() or 'Unknown error'}")

        try:
            messages = json.loads(result.stdout)
        except json.JSONDecodeError:
            raise TransportError("Failed to parse SMS list response")

        if not isinstance(messages, list):
            raise TransportError("Unexpected SMS list response")

        for msg in messages:
            msg["direction"] = self.SMS_TYPE_MAP.get(msg.get("type", 1), "incoming")
        return messages

    async def poll_once(self) -> List[InboundMessage]:
        """
        Fetch new inbound messages and hand them to the handlers.

        The first call only seeds the seen set.

        Returns:
            Messages dispatched by this poll
        """
        new_messages = []

        for data in await self.list_messages():
            if data["direction"] != "incoming":
                continue

            message = InboundMessage(
                sender=data.get("number", data.get("address", "")),
                recipient=self.address,
                body=data.get("body", data.get("text", "")) or "",
                is_group=False,
                timestamp=self.parse_timestamp(data.get("received", data.get("date"))),
            )

            if message.timestamp < self.start_time:
                continue

            message_id = self._message_id(message)
            if message_id in self._seen:
                continue
            self._remember(message_id)

            if not self._first_poll:
                new_messages.append(message)

        if self._first_poll:
            logger.info(f"Initial scan complete. Tracking {len(self._seen)} existing messages")
            self._first_poll = False

        for message in new_messages:
            logger.info(f"New SMS from {mask_identifier(message.sender)}")
            await self._dispatch(message)

        return new_messages

    def _remember(self, message_id: str) -> None:
        self._seen[message_id] = None
        while len(self._seen) > self.seen_limit:
            self._seen.popitem(last=False)

    async def _poll_loop(self) -> None:
        while True:
            try:
                await self.poll_once()
            except TransportError as e:
                logger.error(f"Listener poll failed: {e}")
            await asyncio.sleep(self.config.poll_interval)

    @staticmethod
    def _message_id(message: InboundMessage) -> str:
        unique = f"{message.sender}|{message.timestamp.isoformat()}|{message.body[:50]}"
        return hashlib.sha256(unique.encode()).hexdigest()[:16]

    @staticmethod
    def normalize_number(phone: str) -> str:
        """Remove everything but digits and a leading plus."""
        return re.sub(r'[^\d+]', '', phone)

    @staticmethod
    def parse_timestamp(value) -> datetime:
        """
        Parse Termux timestamps (ISO strings or epoch milliseconds).

        Naive values are taken as device local time. Unparseable values
        count as "now".
        """
        if isinstance(value, int) or (isinstance(value, str) and value.isdigit()):
            try:
                return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
            except (ValueError, OverflowError, OSError):
                pass
        elif value:
            try:
                parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
                return parsed if parsed.tzinfo else parsed.astimezone()
            except ValueError:
                pass

        return datetime.now(timezone.utc)
