"""
Custom exceptions for the book feed.

Exception hierarchy:
- BookFeedError (base)
  - TransportError: WebSocket construction/connection issues
  - MessageParseError: Invalid/malformed messages or levels
  - ConfigurationError: Invalid configuration

Only ConfigurationError is ever raised to callers of the public API; the other
errors are raised and handled inside the engine.
"""

from __future__ import annotations

from typing import Any, Optional


class BookFeedError(Exception):
    """Base exception for all book feed errors."""

    def __init__(
        self,
        message: str,
        *,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.component = component
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.component:
            parts.append(f"[component={self.component}]")
        if self.details:
            parts.append(f"[details={self.details}]")
        return " ".join(parts)


class TransportError(BookFeedError):
    """Raised when the transport cannot be built or opened, or is lost."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        reconnect_attempt: int = 0,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.url = url
        self.reconnect_attempt = reconnect_attempt
        details = details or {}
        if url:
            details["url"] = url
        details["reconnect_attempt"] = reconnect_attempt
        super().__init__(message, component=component, details=details)


class MessageParseError(BookFeedError):
    """Raised when a message or a single level cannot be parsed."""

    def __init__(
        self,
        message: str,
        *,
        expected_type: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.expected_type = expected_type
        details = details or {}
        if expected_type:
            details["expected_type"] = expected_type
        super().__init__(message, component=component, details=details)


class ConfigurationError(BookFeedError):
    """Raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.field = field
        self.value = value
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, component=component, details=details)
