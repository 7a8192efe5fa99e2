"""
Transport Base - Interface to the chat network
==============================================

A transport delivers inbound messages to registered handlers, sends
text, and reports connection lifecycle events. Handlers are awaited one
at a time per transport, so messages from one connection are handled
serially.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from core.exceptions import SessionClosedError, TransportError
from core.logging import get_logger

logger = get_logger("transport.base")

# Lifecycle events
CONNECTED = "connected"
DISCONNECTED = "disconnected"
QR_READY = "qr-ready"
AUTH_FAILED = "auth-failed"
LIFECYCLE_EVENTS = (CONNECTED, DISCONNECTED, QR_READY, AUTH_FAILED)

# Error texts that mean the session is gone
SESSION_LOST_MARKERS = ("session closed", "protocol error", "not connected")


@dataclass
class InboundMessage:
    """
    A message received from the chat network.

    Attributes:
        sender (str): Chat the message came from
        recipient (str): Our own address on the network
        body (str): Message text
        is_group (bool): Whether the chat is a group chat
        timestamp (datetime): Receive time (timezone-aware)
    """
    sender: str
    recipient: str
    body: str
    is_group: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __str__(self) -> str:
        return f"[{'group' if self.is_group else 'personal'}] {self.sender}: {self.body[:50]}"


MessageHandler = Callable[[InboundMessage], Awaitable[Any]]
LifecycleCallback = Callable[[Dict[str, Any]], None]


def is_session_lost(error: BaseException) -> bool:
    """
    Classify a send failure.

    ``SessionClosedError`` always counts as session loss; other errors
    are classified by their message text.
    """
    if isinstance(error, SessionClosedError):
        return True
    text = str(error).lower()
    return any(marker in text for marker in SESSION_LOST_MARKERS)


class Transport(ABC):
    """
    Abstract chat transport.

    Subclasses implement ``start``, ``stop`` and ``send`` and call
    ``_dispatch`` / ``_fire`` to deliver messages and lifecycle events.
    """

    def __init__(self):
        self._handlers: List[MessageHandler] = []
        self._listeners: Dict[str, List[LifecycleCallback]] = {e: [] for e in LIFECYCLE_EVENTS}

    def on_message(self, handler: MessageHandler) -> None:
        """Register a coroutine function called for every inbound message."""
        self._handlers.append(handler)

    def on(self, event: str, callback: LifecycleCallback) -> None:
        """Register a callback for a lifecycle event."""
        if event not in self._listeners:
            raise ValueError(f"Unknown transport event: {event}")
        self._listeners[event].append(callback)

    async def _dispatch(self, message: InboundMessage) -> None:
        for handler in list(self._handlers):
            try:
                await handler(message)
            except Exception as e:
                logger.error(f"Message handler failed: {e}", exc_info=True)

    def _fire(self, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(payload or {})
            except Exception as e:
                logger.error(f"Lifecycle callback failed for {event}: {e}", exc_info=True)

    @abstractmethod
    async def start(self) -> None:
        """Connect and begin delivering messages."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop delivering messages."""

    @abstractmethod
    async def send(self, target: str, text: str) -> None:
        """
        Send text to a chat.

        Raises:
            SessionClosedError: If the session is gone
            TransportError: For other send failures
        """

    async def logout(self) -> None:
        """End the session. Transports without sessions just stop."""
        await self.stop()


__all__ = [
    "CONNECTED",
    "DISCONNECTED",
    "QR_READY",
    "AUTH_FAILED",
    "InboundMessage",
    "MessageHandler",
    "Transport",
    "TransportError",
    "SessionClosedError",
    "is_session_lost",
]
