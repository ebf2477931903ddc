"""
Fixed-delay retry for transport calls.

The remote API is fronted by a gateway that recovers quickly from connection
hiccups, so attempts are spaced by a constant delay (no exponential backoff).
The last failure is re-raised exactly as the operation raised it.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any, TypeVar

from core.errors.exceptions import ConfigError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_DELAY_SECONDS = 0.1


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    delay: float = DEFAULT_DELAY_SECONDS  # seconds between attempts

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.max_attempts = int(self.max_attempts)
        self.delay = float(self.delay)
        if self.max_attempts < 1:
            raise ConfigError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.delay < 0:
            raise ConfigError(f"delay must be >= 0, got {self.delay}")

    @classmethod
    def from_millis(cls, max_attempts: int, delay_ms: float) -> "RetryConfig":
        return cls(max_attempts=max_attempts, delay=float(delay_ms) / 1000.0)


DEFAULT_RETRY = RetryConfig()


def _operation_name(operation: Callable) -> str:
    return getattr(operation, "__qualname__", None) or getattr(
        operation, "__name__", repr(operation)
    )


async def retrier(
    operation: Callable[..., Awaitable[T]],
    *args: Any,
    config: RetryConfig | None = None,
    **kwargs: Any,
) -> T:
    """
    Await ``operation(*args, **kwargs)`` up to ``config.max_attempts`` times.

    Any exception counts as a rejected attempt. Between attempts the retrier
    sleeps ``config.delay`` seconds. When the final attempt fails its exception
    is re-raised unchanged.

    Args:
        operation: Coroutine function to invoke
        config: Retry configuration (defaults to DEFAULT_RETRY)

    Returns:
        The result of the first successful attempt
    """
    config = config or DEFAULT_RETRY
    op_name = _operation_name(operation)

    for attempt in range(1, config.max_attempts + 1):
        try:
            result = await operation(*args, **kwargs)
        except Exception as e:
            if attempt >= config.max_attempts:
                logger.error(
                    "Max retries exhausted for %s: %s",
                    op_name,
                    str(e)[:200],
                    extra={
                        "operation": op_name,
                        "max_attempts": config.max_attempts,
                        "error_type": type(e).__name__,
                        "error_message": str(e)[:200],
                    },
                )
                raise

            logger.warning(
                "Attempt failed for %s, will retry",
                op_name,
                extra={
                    "operation": op_name,
                    "attempt": attempt,
                    "max_attempts": config.max_attempts,
                    "delay_seconds": config.delay,
                    "error_type": type(e).__name__,
                    "error_message": str(e)[:200],
                },
            )
            await asyncio.sleep(config.delay)
            continue

        if attempt > 1:
            logger.info(
                "Retry succeeded for %s after %d attempts",
                op_name,
                attempt,
                extra={
                    "operation": op_name,
                    "attempt": attempt,
                    "total_attempts": config.max_attempts,
                },
            )
        return result

    # max_attempts >= 1 is enforced by RetryConfig
    raise AssertionError("unreachable")


def with_retry(config: RetryConfig | None = None):
    """
    Decorator form of :func:`retrier` for coroutine functions.

    Usage:
        @with_retry(RetryConfig(max_attempts=5, delay=0.25))
        async def fetch():
            ...
    """

    def decorator(func: Callable[..., Awaitable[T]]):
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            return await retrier(func, *args, config=config, **kwargs)

        return wrapper

    return decorator


__all__ = [
    "RetryConfig",
    "DEFAULT_RETRY",
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_DELAY_SECONDS",
    "retrier",
    "with_retry",
]
