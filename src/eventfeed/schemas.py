"""
Wire and in-memory models for the event feed.

Poll responses and filter documents are validated with Pydantic; the records
themselves are opaque dicts and are never reshaped.
"""

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.errors.exceptions import ParserError

Record = dict[str, Any]


class LogType(str, Enum):
    """Log types served by the feed. Unknown types are passed through as strings."""

    TRAFFIC = "traffic"
    THREAT = "threat"
    URL = "url"
    FILE_DATA = "file_data"
    DATA = "data"
    WILDFIRE = "wildfire"
    TUNNEL = "tunnel"
    AUTH = "auth"
    USERID = "userid"
    DECRYPTION = "decryption"
    GLOBALPROTECT = "globalprotect"
    HIPMATCH = "hipmatch"
    CONFIG = "config"
    SYSTEM = "system"


def _log_type_value(log_type: "LogType | str") -> str:
    return log_type.value if isinstance(log_type, LogType) else str(log_type)


@dataclass(frozen=True)
class EventBatch:
    """
    Records of one log type produced by one poll cycle.

    Attributes:
        source: Producing service (e.g. "EventService")
        log_type: Log type of every record in the batch
        records: Records in arrival order
    """

    source: str
    log_type: str
    records: tuple[Record, ...] = ()

    @classmethod
    def of(cls, source: str, log_type: "LogType | str", records: Iterable[Record]) -> "EventBatch":
        return cls(source=source, log_type=_log_type_value(log_type), records=tuple(records))

    def __len__(self) -> int:
        return len(self.records)

    def __bool__(self) -> bool:
        return bool(self.records)


class PollGroup(BaseModel):
    """One ``{logType, event: [...]}`` group of a poll response."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    log_type: str = Field(..., alias="logType", min_length=1)
    event: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("event", mode="before")
    @classmethod
    def _null_event_is_empty(cls, value):
        return [] if value is None else value


def parse_poll_response(body: Any, source: str) -> list[EventBatch]:
    """
    Turn a decoded poll response into EventBatches.

    ``None`` (empty HTTP body) means "no events" and yields an empty list.

    Raises:
        ParserError: Body is not a list of ``{logType, event}`` groups
    """
    if body is None:
        return []
    if not isinstance(body, list):
        raise ParserError(
            f"Poll response must be a list of groups, got {type(body).__name__}"
        )

    try:
        groups = [PollGroup.model_validate(item) for item in body]
    except ValidationError as e:
        raise ParserError("Unparseable poll response", cause=e) from e

    return [EventBatch.of(source, g.log_type, g.event) for g in groups]


# =============================================================================
# Filters
# =============================================================================


class FilterEntry(BaseModel):
    """Per-table filter: a SQL-like statement plus optional batching hints."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    filter: str
    timeout: int | None = None
    batch_size: int | None = Field(default=None, alias="batchSize")


class EventFilter(BaseModel):
    """
    Filter document of an event channel.

    Wire shape: ``{"filters": [{"<table>": {"filter": ..., ...}}], "flush": bool}``
    """

    model_config = ConfigDict(extra="allow")

    filters: list[dict[str, FilterEntry]] = Field(default_factory=list)
    flush: bool | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    @property
    def tables(self) -> list[str]:
        return [table for entry in self.filters for table in entry]


@dataclass
class FilterSpec:
    """High-level description of one table subscription used by filter_builder."""

    table: "LogType | str"
    where: str | None = None
    timeout: int | None = None
    batch_size: int | None = None

    def to_entry(self) -> dict[str, FilterEntry]:
        table = _log_type_value(self.table)
        statement = f"SELECT * FROM `{table}`"
        if self.where:
            statement = f"{statement} WHERE {self.where}"
        return {
            table: FilterEntry(
                filter=statement,
                timeout=self.timeout,
                batch_size=self.batch_size,
            )
        }


def build_filter(specs: Sequence[FilterSpec], flush: bool = False) -> EventFilter:
    return EventFilter(filters=[spec.to_entry() for spec in specs], flush=flush)


# =============================================================================
# Poll options
# =============================================================================


class PollOptions(BaseModel):
    """Server-side poll parameters (milliseconds)."""

    model_config = ConfigDict(populate_by_name=True)

    poll_timeout: int = Field(default=1000, alias="pollTimeout", ge=0)
    fetch_timeout: int = Field(default=45000, alias="fetchTimeout", ge=0)

    def to_wire(self) -> dict[str, int]:
        return self.model_dump(by_alias=True)


@dataclass
class FilterOptions:
    """
    Client-side behaviour attached to a filter.

    Providing any callback starts auto-polling when the filter is set.

    Attributes:
        event_callback: Subscriber for the ``event`` topic
        correlation_callback: Subscriber for the ``correlation`` topic
        pcap_callback: Subscriber for the ``pcap`` topic
        sleep: Seconds between poll cycles (service default if None)
        poll: Server-side poll options (service default if None)
        ack: Acknowledge each batch after it has been routed
    """

    event_callback: Callable | None = None
    correlation_callback: Callable | None = None
    pcap_callback: Callable | None = None
    sleep: float | None = None
    poll: PollOptions | None = None
    ack: bool | None = None

    def __post_init__(self):
        if self.sleep is not None and self.sleep < 0:
            raise ValueError(f"sleep must be >= 0, got {self.sleep}")

    @property
    def has_callbacks(self) -> bool:
        return any(
            cb is not None
            for cb in (self.event_callback, self.correlation_callback, self.pcap_callback)
        )


__all__ = [
    "Record",
    "LogType",
    "EventBatch",
    "PollGroup",
    "parse_poll_response",
    "FilterEntry",
    "EventFilter",
    "FilterSpec",
    "build_filter",
    "PollOptions",
    "FilterOptions",
]
