"""
Core Module - Foundation components for the auto responder
==========================================================

This module provides the foundational components including:
- Configuration management
- Logging setup
- Exception handling
- Shared connection state and observers

The SQLite store lives in ``core.database`` and is imported from there
directly, since it depends on the rule models.
"""

from .config import Config, load_config, save_config, create_default_config
from .exceptions import (
    AutoReplyError,
    ConfigError,
    DatabaseError,
    ValidationError,
    LLMError,
    TransportError,
    SessionClosedError,
)
from .logging import setup_logging, get_logger
from .state import ConnectionState, ConnectionStatus, Notifier

__all__ = [
    "Config",
    "load_config",
    "save_config",
    "create_default_config",
    "AutoReplyError",
    "ConfigError",
    "DatabaseError",
    "ValidationError",
    "LLMError",
    "TransportError",
    "SessionClosedError",
    "setup_logging",
    "get_logger",
    "ConnectionState",
    "ConnectionStatus",
    "Notifier",
]
