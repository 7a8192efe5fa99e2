"""
Exception Definitions - Custom exceptions for the auto responder
================================================================

This module defines all custom exceptions used throughout the application,
providing clear error handling and meaningful error messages.
"""


class AutoReplyError(Exception):
    """
    Base exception for all auto responder errors.

    All custom exceptions in this application inherit from this base class,
    allowing for easy catching of all application-specific errors.

    Attributes:
        message (str): Human-readable error description
        details (dict): Additional error details for debugging
    """

    def __init__(self, message: str, details: dict = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            details: Optional dictionary with additional error context
        """
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return formatted error message with details if present."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigError(AutoReplyError):
    """
    Configuration-related errors.

    Raised at startup when there are issues with:
    - Missing configuration files or credentials
    - Invalid configuration values
    - Configuration parsing errors
    """
    pass


class DatabaseError(AutoReplyError):
    """
    Database operation errors.

    Raised when there are issues with:
    - Database connection failures
    - Query execution errors
    - Unknown record kinds
    """
    pass


class ValidationError(AutoReplyError):
    """
    Invalid rule or settings data.

    Raised by the management operations (create/update a rule, update
    settings). The message pipeline never raises it: malformed stored
    data simply fails to match.
    """
    pass


class LLMError(AutoReplyError):
    """
    Generative provider errors.

    Raised when there are issues with:
    - API connection failures
    - Non-2xx responses
    - Malformed payloads
    """
    pass


class TransportError(AutoReplyError):
    """
    Chat transport errors.

    Raised when a message cannot be sent. Plain instances are
    transient failures.
    """
    pass


class SessionClosedError(TransportError):
    """
    The transport session or connection is gone.

    Raised by transports when sending cannot succeed until the
    connection is re-established.
    """
    pass
