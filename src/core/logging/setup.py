"""Logging setup and configuration."""

import logging
import secrets
import sys
from datetime import datetime
from typing import TextIO

from core.logging.formatters import ConsoleFormatter, JSONFormatter

DEFAULT_LEVEL = logging.INFO

# Top-level loggers owned by this library
LIBRARY_LOGGERS = ["core", "eventfeed"]

# Noisy loggers to suppress
NOISY_LOGGERS = [
    "aiohttp",
    "asyncio",
    "urllib3",
]

_HANDLER_MARKER = "_eventfeed_handler"


def _coerce_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def setup_logging(
    level: int | str = DEFAULT_LEVEL,
    json_format: bool = False,
    stream: TextIO | None = None,
    suppress_noisy: bool = True,
) -> logging.Logger:
    """
    Attach one console handler to the library loggers.

    The root logger is left alone so an embedding application keeps control
    of its own handlers. Calling this again replaces the handler installed by
    the previous call instead of stacking a second one.

    Args:
        level: Minimum level for library loggers (int or name, e.g. "DEBUG")
        json_format: Emit one JSON object per line instead of console text
        stream: Output stream (default: sys.stdout)
        suppress_noisy: Quiet down HTTP client and event loop loggers

    Returns:
        The ``eventfeed`` logger
    """
    resolved = _coerce_level(level)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JSONFormatter() if json_format else ConsoleFormatter())
    setattr(handler, _HANDLER_MARKER, True)

    for name in LIBRARY_LOGGERS:
        lib_logger = logging.getLogger(name)
        for existing in list(lib_logger.handlers):
            if getattr(existing, _HANDLER_MARKER, False):
                lib_logger.removeHandler(existing)
        lib_logger.addHandler(handler)
        lib_logger.setLevel(resolved)
        lib_logger.propagate = False

    if suppress_noisy:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    return logging.getLogger("eventfeed")


def get_logger(name: str, level: int | str | None = None) -> logging.Logger:
    """
    Get a logger instance suitable for injection into a component.

    Use this instead of logging.getLogger() to ensure consistent naming. When
    ``level`` is given it is set on this logger only, so level filtering stays
    a property of the injected logger rather than process-wide state.

    Args:
        name: Logger name (typically __name__)
        level: Optional minimum level for this logger

    Returns:
        Logger instance
    """
    named = logging.getLogger(name)
    if level is not None:
        named.setLevel(_coerce_level(level))
    return named


def generate_cycle_id() -> str:
    """
    Generate unique poll cycle identifier.

    Format: c-YYYYMMDD-HHMMSS-XXXX where XXXX is random hex.
    """
    ts = datetime.now().strftime("%Y%m%d-%H%M%S")
    suffix = secrets.token_hex(2)
    return f"c-{ts}-{suffix}"
