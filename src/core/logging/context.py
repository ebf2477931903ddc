"""Context variables for structured logging."""

from contextvars import ContextVar

_cycle_id: ContextVar[str] = ContextVar("cycle_id", default="")
_channel_id: ContextVar[str] = ContextVar("channel_id", default="")
_component: ContextVar[str] = ContextVar("component", default="")


def set_log_context(
    cycle_id: str | None = None,
    channel_id: str | None = None,
    component: str | None = None,
) -> None:
    if cycle_id is not None:
        _cycle_id.set(cycle_id)
    if channel_id is not None:
        _channel_id.set(channel_id)
    if component is not None:
        _component.set(component)


def get_log_context() -> dict[str, str]:
    return {
        "cycle_id": _cycle_id.get(),
        "channel_id": _channel_id.get(),
        "component": _component.get(),
    }


def clear_log_context() -> None:
    _cycle_id.set("")
    _channel_id.set("")
    _component.set("")
