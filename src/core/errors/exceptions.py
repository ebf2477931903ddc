"""
Exception hierarchy for the event feed client.

Every error raised by this library (as opposed to errors of the underlying
HTTP stack, which propagate unchanged) derives from FeedError and carries an
ErrorCategory so callers can decide how to react.
"""

from typing import Any

from core.types import ErrorCategory


class FeedError(Exception):
    """
    Base exception for all client errors.

    Attributes:
        message: Human-readable error description
        category: Error classification
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN
    kind: str = "UNKNOWN"

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        return self.category == ErrorCategory.TRANSIENT

    def __str__(self) -> str:
        parts = [f"{self.kind}: {self.message}"]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Local errors
# =============================================================================


class ConfigError(FeedError):
    """Invalid setup: malformed token, missing credential fields, bad options."""

    category = ErrorCategory.PERMANENT
    kind = "CONFIG"


class ParserError(FeedError):
    """A body was expected to be JSON (of a known shape) and was not."""

    category = ErrorCategory.PERMANENT
    kind = "PARSER"


# =============================================================================
# Remote errors
# =============================================================================


class IdentityError(FeedError):
    """Non-2xx response from the identity (token / revoke) endpoints."""

    category = ErrorCategory.AUTH
    kind = "IDENTITY"

    def __init__(
        self,
        message: str,
        status: int | None = None,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause, context)
        self.status = status


class ApplicationFrameworkError(FeedError):
    """
    Non-2xx response from the data-plane API.

    The remote service conveys machine-readable error codes in the body, so
    the parsed body is kept untouched for the caller to inspect.
    """

    kind = "APPLICATION_FRAMEWORK"

    def __init__(
        self,
        status: int,
        body: Any,
        url: str | None = None,
    ):
        self.status = status
        self.body = body
        self.url = url
        self.category = classify_http_status(status)
        super().__init__(
            f"HTTP {status}: {self.error_message or 'error response'}",
            context={"http_status": status, "url": url},
        )

    @property
    def error_code(self) -> str | None:
        if isinstance(self.body, dict):
            code = self.body.get("errorCode", self.body.get("error"))
            return str(code) if code is not None else None
        return None

    @property
    def error_message(self) -> str | None:
        if isinstance(self.body, dict):
            msg = self.body.get("errorMessage", self.body.get("message"))
            return str(msg) if msg is not None else None
        return None


# =============================================================================
# Classification utilities
# =============================================================================


def classify_http_status(status_code: int) -> ErrorCategory:
    """Classify HTTP status code into error category."""
    if 200 <= status_code < 300:
        return ErrorCategory.UNKNOWN  # Not an error

    if status_code == 401:
        return ErrorCategory.AUTH

    if status_code == 429:
        return ErrorCategory.TRANSIENT

    if 400 <= status_code < 500:
        return ErrorCategory.PERMANENT

    if status_code >= 500:
        return ErrorCategory.TRANSIENT

    return ErrorCategory.UNKNOWN


def is_feed_error(exc: BaseException) -> bool:
    """True when the exception was raised by this library."""
    return isinstance(exc, FeedError)
