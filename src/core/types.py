"""
Core types and protocols used across modules.

This module provides base types, enums, and protocol definitions that are
shared across the core library to ensure consistency and type safety.
"""

from enum import Enum
from typing import Protocol


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures that may succeed later
                   (e.g., 429/503 responses from the data plane)
        AUTH: Authentication failures related to the bearer credential
              (e.g., 401 responses, identity endpoint rejections)
        PERMANENT: Failures that won't succeed on retry
                   (e.g., malformed tokens, unparsable bodies, 4xx)
        UNKNOWN: Unclassified errors
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class TokenSource(Protocol):
    """
    Protocol for bearer token holders consumed by the transport layer.

    Implemented by core.oauth2.CredentialManager; tests substitute fakes.
    """

    def current_access_token(self) -> str:
        """Return the last known access token without any I/O."""
        ...

    async def auto_refresh(self) -> bool:
        """Refresh the token if close to expiry. Never raises."""
        ...

    async def refresh_access_token(self) -> None:
        """Force a refresh. Propagates identity and parser errors."""
        ...


__all__ = [
    "ErrorCategory",
    "TokenSource",
]
