"""Log formatters for JSON and console output."""

import json
import logging
import re
import sys
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any

from core.logging.context import get_log_context

MASK = "[REDACTED]"

# Extra fields that must never reach a sink in clear text
SECRET_FIELDS = frozenset(
    {
        "access_token",
        "refresh_token",
        "client_secret",
        "authorization",
        "code",
    }
)

# Bearer headers and token-like key/value pairs embedded in free text
_BEARER_PATTERN = re.compile(r"(Bearer\s+)[A-Za-z0-9\-_.~+/]+=*", re.IGNORECASE)
_SECRET_PAIR_PATTERN = re.compile(
    r"([\"']?(?:access_token|refresh_token|client_secret)[\"']?\s*[:=]\s*[\"']?)[^\"'&,\s}]+",
    re.IGNORECASE,
)


def mask_secrets(text: str) -> str:
    """Redact bearer tokens and credential values embedded in a string."""
    text = _BEARER_PATTERN.sub(rf"\1{MASK}", text)
    return _SECRET_PAIR_PATTERN.sub(rf"\1{MASK}", text)


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (bytes, bytearray)):
        return f"<{len(obj)} bytes>"
    return str(obj)


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter with context injection.

    Produces one JSON object per line for easy parsing with jq/grep.
    Credential material is redacted before serialization.
    """

    # Fields to extract from LogRecord extras
    EXTRA_FIELDS = [
        # HTTP
        "http_status",
        "http_method",
        "http_url",
        "duration_ms",
        # Errors
        "error_category",
        "error_message",
        "error_code",
        "error",
        "error_type",
        "callback_error",
        # Resilience
        "operation",
        "attempt",
        "max_attempts",
        "total_attempts",
        "delay_seconds",
        # Credentials
        "valid_until",
        "expires_in",
        # Feed
        "topic",
        "source",
        "log_type",
        "record_count",
        "batch_count",
        "subscriber",
        "state",
        "sleep_seconds",
        # Correlation
        "buffer_size",
        "matched",
        "expired",
        "gc_evicted",
        "threshold",
        # Stats snapshots
        "stats",
    ]

    NUMERIC_FIELDS = {
        "duration_ms": float,
        "delay_seconds": float,
        "sleep_seconds": float,
        "http_status": int,
        "attempt": int,
        "max_attempts": int,
        "total_attempts": int,
        "valid_until": int,
        "expires_in": int,
        "record_count": int,
        "batch_count": int,
        "buffer_size": int,
        "matched": int,
        "expired": int,
        "gc_evicted": int,
        "threshold": int,
    }

    def _ensure_type(self, field: str, value: Any) -> Any:
        if field not in self.NUMERIC_FIELDS or value is None:
            return value
        try:
            return self.NUMERIC_FIELDS[field](value)
        except (ValueError, TypeError):
            return None

    @staticmethod
    def _sanitize_value(value: Any) -> Any:
        if isinstance(value, str):
            return mask_secrets(value)
        return value

    @staticmethod
    def _base_log_entry(record: logging.LogRecord) -> dict[str, Any]:
        return {
            "ts": datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": mask_secrets(record.getMessage()),
        }

    @staticmethod
    def _inject_context(log_entry: dict[str, Any], log_context: dict[str, str]) -> None:
        for field in ("cycle_id", "channel_id", "component"):
            if log_context.get(field):
                log_entry[field] = log_context[field]

    def _inject_extra_fields(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = self._sanitize_value(self._ensure_type(field, value))

        for field in SECRET_FIELDS:
            if getattr(record, field, None) is not None:
                log_entry[field] = MASK

    def _inject_exception(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        if not record.exc_info:
            return

        exc_type, exc_value, _ = record.exc_info
        log_entry["exception"] = {
            "type": exc_type.__name__ if exc_type else None,
            "message": mask_secrets(str(exc_value)) if exc_value else None,
            "stacktrace": self.formatException(record.exc_info),
        }

    def format(self, record: logging.LogRecord) -> str:
        log_entry = self._base_log_entry(record)
        self._inject_context(log_entry, get_log_context())

        if record.levelno in (logging.DEBUG, logging.ERROR, logging.CRITICAL):
            log_entry["file"] = f"{record.filename}:{record.lineno}"

        self._inject_extra_fields(log_entry, record)
        self._inject_exception(log_entry, record)

        return json.dumps(log_entry, default=_json_default, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter with color-coded log levels.

    Colors are auto-disabled when output is not a TTY (pipes, files).
    """

    # ANSI color codes
    COLORS = {
        logging.DEBUG: "\033[36m",  # Cyan
        logging.INFO: "\033[32m",  # Green
        logging.WARNING: "\033[33m",  # Yellow
        logging.ERROR: "\033[31m",  # Red
        logging.CRITICAL: "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, *args, use_colors: bool | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._use_colors = sys.stdout.isatty() if use_colors is None else use_colors

    def _format_level_name(self, record: logging.LogRecord) -> str:
        level_name = record.levelname
        if not self._use_colors:
            return level_name

        color = self.COLORS.get(record.levelno, "")
        if not color:
            return level_name

        return f"{color}{level_name}{self.RESET}"

    @staticmethod
    def _build_prefix(level_name: str, record: logging.LogRecord, log_context: dict[str, str]) -> str:
        parts = [
            datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            level_name,
            record.name,
        ]
        if log_context.get("component"):
            parts.append(f"[{log_context['component']}]")
        return " - ".join(parts)

    @staticmethod
    def _build_tags(record: logging.LogRecord, log_context: dict[str, str]) -> list[str]:
        tags = []
        channel_id = log_context.get("channel_id")
        cycle_id = log_context.get("cycle_id")
        topic = getattr(record, "topic", None)

        if channel_id:
            tags.append(f"[ch:{channel_id}]")
        if cycle_id:
            tags.append(f"[{cycle_id}]")
        if topic:
            tags.append(f"[topic:{topic}]")
        return tags

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for console output with optional color coding."""
        log_context = get_log_context()

        level_name = self._format_level_name(record)
        prefix = self._build_prefix(level_name, record, log_context)
        tags = self._build_tags(record, log_context)
        message = mask_secrets(record.getMessage())

        if tags:
            line = f"{prefix} - {' '.join(tags)} {message}"
        else:
            line = f"{prefix} - {message}"

        if record.exc_info:
            line = f"{line}\n{mask_secrets(self.formatException(record.exc_info))}"
        return line
