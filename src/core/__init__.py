"""
Core library: Reusable, transport-agnostic components.

Modules:
    oauth2      - Bearer credential lifecycle (JWT expiry, refresh, revoke)
    resilience  - Fixed-delay retry for transport calls
    logging     - Structured JSON/console logging with credential redaction
    errors      - Error classification and exception hierarchy

Design Principles:
    - No dependencies on the event feed layer
    - All modules are independently testable
    - Async-first where applicable
"""

from .types import ErrorCategory, TokenSource

__version__ = "0.1.0"

__all__ = [
    "ErrorCategory",
    "TokenSource",
]
