"""
Exception hierarchy for native push delivery.

Configuration problems are fatal at startup. Token format and delivery
problems are raised by provider adapters and contained per token by the
dispatch loop.
"""

from __future__ import annotations

from typing import Any


class NativePushError(Exception):
    """Base exception for all native push errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ==================== Startup Errors ====================


class ConfigurationError(NativePushError):
    """Raised when required provider configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.missing = missing or []


class InitializationError(ConfigurationError):
    """Raised when providers are initialized more than once."""
    pass


# ==================== Per-token Errors ====================


class TokenFormatError(NativePushError):
    """Stored token cannot be interpreted for its provider.

    Indicates corrupt stored data rather than a transient delivery failure.
    """
    pass


class DeliveryError(NativePushError):
    """Provider rejected the notification or could not be reached."""
    pass


# ==================== Storage Errors ====================


class DuplicateTokenError(NativePushError):
    """The (token, provider) pair is already registered."""
    pass
