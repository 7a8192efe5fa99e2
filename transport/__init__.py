"""
Transport Module - Chat network adapters
========================================

This module provides:
- Transport base class and inbound message type
- Termux SMS transport
- In-process local transport
"""

from .base import (
    Transport,
    InboundMessage,
    is_session_lost,
    CONNECTED,
    DISCONNECTED,
    QR_READY,
    AUTH_FAILED,
)
from .local import LocalTransport
from .termux import TermuxSMSTransport

__all__ = [
    "Transport",
    "InboundMessage",
    "is_session_lost",
    "CONNECTED",
    "DISCONNECTED",
    "QR_READY",
    "AUTH_FAILED",
    "LocalTransport",
    "TermuxSMSTransport",
]
