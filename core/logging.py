"""
Logging Module - Centralized logging configuration
=================================================

This module provides logging setup and utilities including:
- Structured JSON logging
- File and console handlers
- Per-message context carried across asyncio tasks
- Identifier masking for log lines
"""

import logging
import sys
import json
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any

ROOT_LOGGER = "auto_reply"

_log_context: ContextVar[Dict[str, Any]] = ContextVar("auto_reply_log_context", default={})


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Outputs log records as JSON objects for easy parsing and
    integration with log aggregation systems.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if getattr(record, "context", None):
            log_data["context"] = record.context

        return json.dumps(log_data, default=str)


class ColoredFormatter(logging.Formatter):
    """
    Colored console formatter for readable terminal output.

    Uses ANSI color codes to highlight different log levels.
    """

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"
    BOLD = "\033[1m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

        formatted = (
            f"{color}{self.BOLD}[{record.levelname}]{self.RESET} "
            f"{timestamp} | {record.name}:{record.lineno} | "
            f"{record.getMessage()}"
        )

        context = getattr(record, "context", None)
        if context:
            pairs = " ".join(f"{k}={v}" for k, v in context.items())
            formatted += f" [{pairs}]"

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


class ContextFilter(logging.Filter):
    """
    Logging filter that attaches the current message context to records.

    The context lives in a ContextVar, so each asyncio task handling a
    message sees only its own values.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        context = _log_context.get()
        if context:
            merged = dict(context)
            merged.update(getattr(record, "context", None) or {})
            record.context = merged
        return True


class LoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter with extra context support.

    Extra values passed at construction are merged into every record's
    ``context`` attribute, next to anything passed through ``extra=``.
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = dict(kwargs.get("extra") or {})
        context = dict(self.extra)
        context.update(extra.pop("context", {}))
        context.update(extra)
        kwargs["extra"] = {"context": context} if context else {}
        return msg, kwargs


_configured = False


def setup_logging(
    log_dir: Optional[str] = None,
    log_level: str = "INFO",
    json_format: bool = False,
    console_output: bool = True
) -> None:
    """
    Set up logging configuration for the application.

    This should be called once at application startup.

    Args:
        log_dir: Directory for log files (optional)
        log_level: Minimum log level to capture
        json_format: Use JSON format for file logs
        console_output: Also output to console
    """
    global _configured

    if _configured:
        return

    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.handlers.clear()

    context_filter = ContextFilter()

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.DEBUG)
        console_handler.addFilter(context_filter)
        console_handler.setFormatter(ColoredFormatter())
        root_logger.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path / "auto-reply.log", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.addFilter(context_filter)

        if json_format:
            file_handler.setFormatter(JSONFormatter())
        else:
            file_handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
                )
            )
        root_logger.addHandler(file_handler)

        error_handler = logging.FileHandler(log_path / "errors.log", encoding="utf-8")
        error_handler.setLevel(logging.ERROR)
        error_handler.addFilter(context_filter)
        error_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(error_handler)

    _configured = True


def get_logger(name: str, **extra) -> LoggerAdapter:
    """
    Get a logger instance for a module.

    Args:
        name: Logger name, placed under the ``auto_reply`` tree
        **extra: Extra context to include in all log messages

    Returns:
        LoggerAdapter instance

    Example:
        logger = get_logger("services.dispatcher", component="dispatcher")
        logger.info("Reply sent", extra={"chat": "+91****1234"})
    """
    full_name = name if name.startswith(ROOT_LOGGER) else f"{ROOT_LOGGER}.{name}"
    return LoggerAdapter(logging.getLogger(full_name), extra)


def set_log_context(**kwargs) -> None:
    """
    Add values to the logging context of the current task.

    Example:
        set_log_context(chat="+91****1234")
        logger.info("Processing message")  # carries chat=...
    """
    context = dict(_log_context.get())
    context.update(kwargs)
    _log_context.set(context)


def clear_log_context() -> None:
    """Clear the logging context of the current task."""
    _log_context.set({})


def mask_identifier(identifier: str) -> str:
    """
    Mask a phone number or chat id for logging.

    Keeps the first three and last four characters.
    """
    if not identifier:
        return "****"
    if len(identifier) > 7:
        return identifier[:3] + "****" + identifier[-4:]
    return "****"
