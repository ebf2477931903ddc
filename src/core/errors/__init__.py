"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory enum for classifying errors
- FeedError hierarchy (Config, Identity, Parser, ApplicationFramework)
- Classification utilities for error handling
"""

from core.errors.exceptions import (
    ApplicationFrameworkError,
    ConfigError,
    # Base classes
    FeedError,
    IdentityError,
    ParserError,
    # Classification utilities
    classify_http_status,
    is_feed_error,
)
from core.types import ErrorCategory

__all__ = [
    # Enums
    "ErrorCategory",
    # Base classes
    "FeedError",
    "ConfigError",
    "IdentityError",
    "ParserError",
    "ApplicationFrameworkError",
    # Classification utilities
    "classify_http_status",
    "is_feed_error",
]
