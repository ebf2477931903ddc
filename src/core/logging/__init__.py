"""
Structured logging module.

Provides JSON and console logging with poll-cycle context propagation and
credential redaction.
"""

from core.logging.context import (
    clear_log_context,
    get_log_context,
    set_log_context,
)
from core.logging.formatters import ConsoleFormatter, JSONFormatter, mask_secrets
from core.logging.periodic_logger import PeriodicStatsLogger, format_stats_delta
from core.logging.setup import (
    generate_cycle_id,
    get_logger,
    setup_logging,
)
from core.logging.utilities import log_exception, log_with_context

__all__ = [
    # Setup
    "setup_logging",
    "get_logger",
    "generate_cycle_id",
    # Formatters
    "JSONFormatter",
    "ConsoleFormatter",
    "mask_secrets",
    # Context
    "set_log_context",
    "get_log_context",
    "clear_log_context",
    # Periodic stats
    "PeriodicStatsLogger",
    "format_stats_delta",
    # Utilities
    "log_with_context",
    "log_exception",
]
