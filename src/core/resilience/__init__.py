"""
Resilience patterns module.

Components:
    - RetryConfig: Fixed-delay retry configuration
    - retrier: Await an operation with bounded, fixed-delay retries
    - @with_retry: Decorator form of retrier
"""

from .retry import (
    DEFAULT_DELAY_SECONDS,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_RETRY,
    RetryConfig,
    retrier,
    with_retry,
)

__all__ = [
    "RetryConfig",
    "retrier",
    "with_retry",
    "DEFAULT_RETRY",
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_DELAY_SECONDS",
]
