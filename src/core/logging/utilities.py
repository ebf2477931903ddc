"""Structured logging helpers shared by the client components."""

import logging
from typing import Any

from core.logging.formatters import mask_secrets

# Attributes LogRecord already owns; passing them in ``extra`` raises KeyError
_RESERVED_LOG_KEYS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
}

MAX_ERROR_MESSAGE_LENGTH = 500


def _safe_extra(fields: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in fields.items() if k not in _RESERVED_LOG_KEYS}


def log_with_context(
    logger: logging.Logger,
    level: int,
    msg: str,
    **kwargs: Any,
) -> None:
    """
    Log ``msg`` with keyword arguments as structured fields.

    ``exc_info`` is forwarded to the logger; names that collide with
    LogRecord attributes are dropped instead of raising.

    Example:
        log_with_context(
            logger, logging.INFO, "Batch routed",
            topic="event",
            record_count=42,
        )
    """
    exc_info = kwargs.pop("exc_info", None)
    logger.log(level, msg, exc_info=exc_info, extra=_safe_extra(kwargs))


def _error_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {"error_type": type(exc).__name__}

    category = getattr(exc, "category", None)
    if category is not None:
        fields["error_category"] = getattr(category, "value", str(category))

    # ApplicationFrameworkError / IdentityError carry the HTTP answer
    status = getattr(exc, "status", None)
    if isinstance(status, int):
        fields["http_status"] = status
    error_code = getattr(exc, "error_code", None)
    if error_code is not None:
        fields["error_code"] = error_code

    error_msg = mask_secrets(str(exc))
    if len(error_msg) > MAX_ERROR_MESSAGE_LENGTH:
        error_msg = error_msg[:MAX_ERROR_MESSAGE_LENGTH] + "..."
    fields["error_message"] = error_msg
    return fields


def log_exception(
    logger: logging.Logger,
    exc: BaseException,
    msg: str,
    level: int = logging.ERROR,
    include_traceback: bool = True,
    **kwargs: Any,
) -> None:
    """
    Log an exception together with what the error hierarchy knows about it.

    Adds ``error_type``, ``error_message`` (masked, truncated), the FeedError
    ``error_category`` and, for HTTP answers, ``http_status``/``error_code``.
    Explicit keyword arguments win over the extracted fields.

    Example:
        try:
            await service.poll()
        except Exception as e:
            log_exception(logger, e, "Poll failed", operation="poll")
    """
    fields = {**_error_fields(exc), **kwargs}
    logger.log(
        level,
        msg,
        exc_info=exc if include_traceback else None,
        extra=_safe_extra(fields),
    )
