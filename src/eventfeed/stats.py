"""Monotonic counters exposed to callers as read-only snapshots."""

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class CorrelationStats:
    """Counters owned by the correlation engine."""

    buffer_size: int = 0
    processed: int = 0
    matched: int = 0
    passthrough: int = 0
    expired: int = 0
    gc_evicted: int = 0
    superseded: int = 0
    flushed: int = 0
    gc_runs: int = 0


@dataclass
class FeedStats:
    """
    Session-wide counters.

    Attributes:
        api_transactions: Completed transport calls (one per call, not per retry)
        events_emitted: Records published on the ``event`` topic
        pcaps_emitted: PCAP files published on the ``pcap`` topic
        correlation_emitted: Records published on the ``correlation`` topic
        subscriber_errors: Subscriber callbacks that raised during publish
        polls: Poll cycles started by the scheduler
        poll_failures: Poll cycles that ended in an exception
        records_polled: Records received from the poll endpoint
        acks: Acknowledgements sent
        nacks: Negative acknowledgements sent
        correlation: Correlation engine counters, when correlation is enabled
    """

    api_transactions: int = 0
    events_emitted: int = 0
    pcaps_emitted: int = 0
    correlation_emitted: int = 0
    subscriber_errors: int = 0
    polls: int = 0
    poll_failures: int = 0
    records_polled: int = 0
    acks: int = 0
    nacks: int = 0
    correlation: CorrelationStats | None = field(default=None)

    def snapshot(self) -> dict[str, Any]:
        """Plain-dict copy; mutating it does not affect the live counters."""
        data = asdict(self)
        if data["correlation"] is None:
            del data["correlation"]
        return data


__all__ = ["FeedStats", "CorrelationStats"]
