"""
Time-windowed join of split traffic records.

A session is sometimes reported in two halves: one record carrying the
network addresses and one carrying the MAC addresses. The engine buffers a
half keyed by session id and merges it with its complement when the complement
arrives within the window. Memory stays bounded by the window and by a
size-triggered garbage collection that evicts the oldest halves first.

Unmatched halves are never dropped: they leave the buffer as plain records on
expiry, garbage collection, supersession or flush.
"""

import logging
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from core.errors.exceptions import ConfigError
from eventfeed.schemas import EventBatch, LogType, Record
from eventfeed.stats import CorrelationStats

DEFAULT_TIME_WINDOW_SECONDS = 120.0
DEFAULT_GC_MULTIPLIER = 10
DEFAULT_EXPECTED_SIZE = 1000

SESSION_KEY = "session_id"
TIME_FIELD = "time_generated"
MAC_FIELD = "extended-traffic-log-mac"
MAC_STC_FIELD = "extended-traffic-log-mac-stc"
REQUIRED_FIELDS = ("src", "dst", MAC_FIELD, MAC_STC_FIELD)

# time_generated values above this are taken as milliseconds
_EPOCH_MILLIS_THRESHOLD = 1e11


@dataclass
class CorrelationConfig:
    """
    Correlation engine settings.

    Attributes:
        time_window: Seconds a half may wait for its complement
        absolute_time: Age halves by the wall clock instead of by record time
        gc_multiplier: Buffer may grow to gc_multiplier * expected_size entries
        expected_size: Steady-state number of pending halves
        session_key: Record field holding the correlation key
        log_types: Log types taking part in correlation
        required_fields: Fields a complete record carries
    """

    time_window: float = DEFAULT_TIME_WINDOW_SECONDS
    absolute_time: bool = False
    gc_multiplier: int = DEFAULT_GC_MULTIPLIER
    expected_size: int = DEFAULT_EXPECTED_SIZE
    session_key: str = SESSION_KEY
    log_types: tuple[str, ...] = (LogType.TRAFFIC.value,)
    required_fields: tuple[str, ...] = REQUIRED_FIELDS

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.time_window = float(self.time_window)
        self.gc_multiplier = int(self.gc_multiplier)
        self.expected_size = int(self.expected_size)
        self.log_types = tuple(
            lt.value if isinstance(lt, LogType) else str(lt) for lt in self.log_types
        )
        self.required_fields = tuple(self.required_fields)

        if self.time_window <= 0:
            raise ConfigError(f"time_window must be > 0, got {self.time_window}")
        if self.gc_multiplier < 1:
            raise ConfigError(f"gc_multiplier must be >= 1, got {self.gc_multiplier}")
        if self.expected_size < 1:
            raise ConfigError(f"expected_size must be >= 1, got {self.expected_size}")
        if not self.required_fields:
            raise ConfigError("required_fields cannot be empty")

    @property
    def gc_threshold(self) -> int:
        return self.gc_multiplier * self.expected_size


@dataclass
class PendingCorrelation:
    """A buffered half waiting for its complement."""

    key: str
    source: str
    log_type: str
    record: Record
    first_seen: float


@dataclass
class CorrelationResult:
    """Output of one process/flush call, grouped by (source, log_type)."""

    plain: list[EventBatch] = field(default_factory=list)
    correlated: list[EventBatch] = field(default_factory=list)

    @property
    def plain_records(self) -> list[Record]:
        return [r for batch in self.plain for r in batch.records]

    @property
    def correlated_records(self) -> list[Record]:
        return [r for batch in self.correlated for r in batch.records]

    def __bool__(self) -> bool:
        return bool(self.plain or self.correlated)


class _Grouper:
    """Collects records per (source, log_type) in first-appearance order."""

    def __init__(self):
        self._groups: OrderedDict[tuple[str, str], list[Record]] = OrderedDict()

    def add(self, source: str, log_type: str, record: Record) -> None:
        self._groups.setdefault((source, log_type), []).append(record)

    def batches(self) -> list[EventBatch]:
        return [
            EventBatch(source=source, log_type=log_type, records=tuple(records))
            for (source, log_type), records in self._groups.items()
        ]


def _present(value: Any) -> bool:
    return value is not None and value != ""


def parse_event_time(value: Any) -> float | None:
    """
    Read a record timestamp as epoch seconds.

    Accepts epoch seconds or milliseconds (number or numeric string) and
    ISO-8601 strings; naive datetimes are taken as UTC.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        ts = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            ts = float(text)
        except ValueError:
            try:
                parsed = datetime.fromisoformat(text)
            except ValueError:
                return None
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=UTC)
            return parsed.timestamp()
    else:
        return None
    return ts / 1000.0 if ts > _EPOCH_MILLIS_THRESHOLD else ts


class CorrelationEngine:
    """
    Buffers partial records and joins them by session id.

    Usage:
        engine = CorrelationEngine(CorrelationConfig(time_window=60))
        result = engine.process(batch)
        for record in result.correlated_records:
            ...
        leftovers = engine.flush()

    Not thread-safe; the buffer is only touched from process() and flush().
    """

    def __init__(
        self,
        config: CorrelationConfig | None = None,
        clock: Callable[[], float] = time.time,
        stats: CorrelationStats | None = None,
        logger: logging.Logger | None = None,
    ):
        self.config = config or CorrelationConfig()
        self.stats = stats if stats is not None else CorrelationStats()
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)
        self._buffer: OrderedDict[str, PendingCorrelation] = OrderedDict()
        self._now: float | None = None

    def __len__(self) -> int:
        return len(self._buffer)

    def __contains__(self, key: object) -> bool:
        return key in self._buffer

    def pending(self) -> list[PendingCorrelation]:
        return list(self._buffer.values())

    # ------------------------------------------------------------------
    # Clock
    # ------------------------------------------------------------------

    def _advance(self, record: Record) -> float | None:
        """Move the relative clock forward from ``record``'s own timestamp."""
        ts = parse_event_time(record.get(TIME_FIELD))
        if ts is not None and (self._now is None or ts > self._now):
            self._now = ts
        return ts

    def _observe(self, record: Record) -> float:
        """Timestamp for ``record`` and advance the engine clock."""
        if self.config.absolute_time:
            now = self._clock()
            self._now = now
            return now

        ts = self._advance(record)
        if ts is not None:
            return ts
        # No usable time: age it from the feed clock, which it must not move
        return self._now if self._now is not None else self._clock()

    def _current_time(self) -> float:
        if self.config.absolute_time or self._now is None:
            return self._clock()
        return self._now

    def _is_expired(self, entry: PendingCorrelation, now: float) -> bool:
        return now - entry.first_seen > self.config.time_window

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def _participates(self, log_type: str, record: Record) -> bool:
        return log_type in self.config.log_types and _present(
            record.get(self.config.session_key)
        )

    def _is_complete(self, record: Record) -> bool:
        return all(_present(record.get(f)) for f in self.config.required_fields)

    def _completes(self, buffered: Record, record: Record) -> bool:
        return all(
            _present(buffered.get(f)) or _present(record.get(f))
            for f in self.config.required_fields
        )

    @staticmethod
    def merge(buffered: Record, record: Record) -> Record:
        """Buffered values win; the newer record fills every missing field."""
        merged = dict(buffered)
        for key, value in record.items():
            if _present(value) and not _present(merged.get(key)):
                merged[key] = value
        return merged

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process(self, batch: EventBatch) -> CorrelationResult:
        """
        Run one batch through the engine.

        Records are handled in arrival order. After the batch, expired halves
        are released and the buffer is trimmed to the GC threshold.
        """
        plain = _Grouper()
        correlated = _Grouper()

        for record in batch.records:
            self.stats.processed += 1
            self._process_record(batch.source, batch.log_type, record, plain, correlated)

        self._expire(plain)
        self._collect_garbage(plain)
        self.stats.buffer_size = len(self._buffer)

        return CorrelationResult(plain=plain.batches(), correlated=correlated.batches())

    def process_many(self, batches: Iterable[EventBatch]) -> CorrelationResult:
        """Process several batches and concatenate their results."""
        result = CorrelationResult()
        for batch in batches:
            partial = self.process(batch)
            result.plain.extend(partial.plain)
            result.correlated.extend(partial.correlated)
        return result

    def _process_record(
        self,
        source: str,
        log_type: str,
        record: Record,
        plain: _Grouper,
        correlated: _Grouper,
    ) -> None:
        if not self._participates(log_type, record) or self._is_complete(record):
            self.stats.passthrough += 1
            if not self.config.absolute_time:
                self._advance(record)
            plain.add(source, log_type, record)
            return

        key = str(record[self.config.session_key])
        seen = self._observe(record)
        buffered = self._buffer.pop(key, None)

        if buffered is not None:
            if self._is_expired(buffered, seen):
                self.stats.expired += 1
                plain.add(buffered.source, buffered.log_type, buffered.record)
            elif self._completes(buffered.record, record):
                self.stats.matched += 1
                correlated.add(
                    buffered.source, buffered.log_type, self.merge(buffered.record, record)
                )
                return
            else:
                # Last write wins
                self.stats.superseded += 1
                plain.add(buffered.source, buffered.log_type, buffered.record)

        self._buffer[key] = PendingCorrelation(
            key=key,
            source=source,
            log_type=log_type,
            record=record,
            first_seen=seen,
        )

    def _expire(self, plain: _Grouper) -> None:
        now = self._current_time()
        expired = [key for key, entry in self._buffer.items() if self._is_expired(entry, now)]
        for key in expired:
            entry = self._buffer.pop(key)
            plain.add(entry.source, entry.log_type, entry.record)
        if expired:
            self.stats.expired += len(expired)
            self._logger.debug(
                "Released expired partial records",
                extra={"expired": len(expired), "buffer_size": len(self._buffer)},
            )

    def _collect_garbage(self, plain: _Grouper) -> None:
        threshold = self.config.gc_threshold
        excess = len(self._buffer) - threshold
        if excess <= 0:
            return

        oldest = sorted(self._buffer.values(), key=lambda e: e.first_seen)[:excess]
        for entry in oldest:
            del self._buffer[entry.key]
            plain.add(entry.source, entry.log_type, entry.record)

        self.stats.gc_runs += 1
        self.stats.gc_evicted += len(oldest)
        self._logger.info(
            "Correlation buffer over threshold, evicted oldest entries",
            extra={
                "gc_evicted": len(oldest),
                "threshold": threshold,
                "buffer_size": len(self._buffer),
            },
        )

    def flush(self) -> CorrelationResult:
        """Release every buffered half as plain and empty the buffer."""
        plain = _Grouper()
        for entry in self._buffer.values():
            plain.add(entry.source, entry.log_type, entry.record)

        flushed = len(self._buffer)
        self._buffer.clear()
        self.stats.flushed += flushed
        self.stats.buffer_size = 0

        if flushed:
            self._logger.info(
                "Correlation buffer flushed",
                extra={"record_count": flushed},
            )
        return CorrelationResult(plain=plain.batches())


__all__ = [
    "CorrelationConfig",
    "CorrelationEngine",
    "CorrelationResult",
    "PendingCorrelation",
    "parse_event_time",
    "DEFAULT_TIME_WINDOW_SECONDS",
    "DEFAULT_GC_MULTIPLIER",
    "DEFAULT_EXPECTED_SIZE",
    "REQUIRED_FIELDS",
    "SESSION_KEY",
    "TIME_FIELD",
    "MAC_FIELD",
    "MAC_STC_FIELD",
]
