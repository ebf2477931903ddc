"""Event Service client: channel filters, poll/ack cycle and auto-poll."""

import logging
from collections.abc import Sequence
from typing import Any

from core.errors.exceptions import ParserError
from core.logging.setup import get_logger
from core.oauth2.manager import CredentialManager
from eventfeed.config import EventFeedConfig
from eventfeed.correlation import CorrelationResult
from eventfeed.dispatcher import Subscriber, Topic
from eventfeed.scheduler import DEFAULT_SLEEP_SECONDS, AutoPollScheduler, SchedulerState
from eventfeed.schemas import (
    EventBatch,
    EventFilter,
    FilterOptions,
    FilterSpec,
    PollOptions,
    build_filter,
    parse_poll_response,
)
from eventfeed.session import Session
from eventfeed.stats import FeedStats

logger = logging.getLogger(__name__)

EVENT_SERVICE_PATH = "/event-service/v1/channels"
SOURCE = "EventService"

# Extra client-side slack over the server-side fetch timeout
_FETCH_GRACE_SECONDS = 5.0


class EventService:
    """
    Client for one Event Service channel.

    Setting a filter with a callback turns auto-poll on: every cycle polls the
    channel, runs the batches through correlation and the dispatcher and, in
    acknowledgement mode, acks the cycle once everything was dispatched.

    Usage:
        service = EventService(session)
        await service.filter_builder(
            [FilterSpec(table=LogType.TRAFFIC, where="action = 'deny'")],
            FilterOptions(event_callback=print, ack=True),
        )
        ...
        await service.close()
    """

    def __init__(
        self,
        session: Session,
        channel_id: str = "EventFilter",
        poll_options: PollOptions | None = None,
        sleep: float = DEFAULT_SLEEP_SECONDS,
        ack: bool = False,
        logger: logging.Logger | None = None,
    ):
        self.session = session
        self.poll_options = poll_options or PollOptions()
        self.ack_mode = ack
        self._logger = logger or session.logger
        self._set_channel(channel_id)

        self.scheduler = AutoPollScheduler(
            poll=self.poll,
            route=self.session.emitter.route,
            ack=self.ack if ack else None,
            sleep=sleep,
            stats=self.session.stats,
            logger=self._logger,
        )

    def _set_channel(self, channel_id: str) -> None:
        self.channel_id = channel_id
        base = f"{EVENT_SERVICE_PATH}/{channel_id}"
        self.filter_path = f"{base}/filters"
        self.poll_path = f"{base}/poll"
        self.ack_path = f"{base}/ack"
        self.nack_path = f"{base}/nack"
        self.flush_path = f"{base}/flush"

    @classmethod
    def from_config(cls, config: EventFeedConfig, credentials: CredentialManager) -> "EventService":
        """Build a service and its session from a loaded configuration."""
        feed_logger = get_logger("eventfeed", config.log_level)
        session = Session(
            credentials=credentials,
            entry_point=config.entry_point,
            retry=config.retry,
            auto_refresh=config.auto_refresh,
            timeout=config.fetch_timeout_seconds,
            allow_duplicates=config.allow_duplicates,
            correlation=config.correlation.to_engine_config(),
            logger=feed_logger,
        )
        return cls(
            session,
            channel_id=config.channel_id,
            poll_options=config.poll.to_poll_options(),
            sleep=config.poll.sleep_seconds,
            ack=config.poll.ack,
            logger=feed_logger,
        )

    @property
    def stats(self) -> FeedStats:
        return self.session.stats

    @property
    def state(self) -> SchedulerState:
        return self.scheduler.state

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    async def get_filters(self) -> EventFilter:
        body = await self.session.transport.get(self.filter_path)
        if body is None:
            return EventFilter()
        try:
            return EventFilter.model_validate(body)
        except ValueError as e:
            raise ParserError("Unparseable filter document", cause=e) from e

    async def set_filters(
        self,
        event_filter: EventFilter | dict[str, Any],
        options: FilterOptions | None = None,
    ) -> "EventService":
        """
        Replace the channel filter.

        Auto-poll is paused while the filter changes. Callbacks in ``options``
        are subscribed to their topics and, when any was given, auto-poll is
        resumed afterwards.
        """
        if not isinstance(event_filter, EventFilter):
            try:
                event_filter = EventFilter.model_validate(event_filter)
            except ValueError as e:
                raise ParserError("Invalid filter document", cause=e) from e

        if options is not None and options.sleep is not None:
            self.scheduler.set_sleep(options.sleep)

        self.pause()
        await self.session.transport.void_operation(self.filter_path, event_filter.to_wire())
        self._logger.info(
            "Event Service filter set",
            extra={"operation": "set_filters", "record_count": len(event_filter.filters)},
        )

        if options is None:
            return self

        self._apply_options(options)
        if options.has_callbacks:
            self.resume()
        return self

    def _apply_options(self, options: FilterOptions) -> None:
        if options.event_callback is not None:
            self.subscribe(Topic.EVENT, options.event_callback)
        if options.correlation_callback is not None:
            self.subscribe(Topic.CORRELATION, options.correlation_callback)
        if options.pcap_callback is not None:
            self.subscribe(Topic.PCAP, options.pcap_callback)
        if options.poll is not None:
            self.poll_options = options.poll
        if options.ack is not None:
            self.ack_mode = options.ack
            self.scheduler.set_ack(self.ack if options.ack else None)

    async def filter_builder(
        self,
        specs: Sequence[FilterSpec],
        options: FilterOptions | None = None,
        flush: bool = False,
    ) -> "EventService":
        """Set a filter of ``SELECT * FROM `table` [WHERE ...]`` statements."""
        return await self.set_filters(build_filter(specs, flush=flush), options)

    async def clear_filter(self, flush: bool = False) -> "EventService":
        return await self.set_filters(EventFilter(filters=[], flush=flush))

    # ------------------------------------------------------------------
    # Poll cycle
    # ------------------------------------------------------------------

    async def poll(self) -> list[EventBatch]:
        """One POLL call. An empty answer yields no batches."""
        timeout = self.poll_options.fetch_timeout / 1000.0 + _FETCH_GRACE_SECONDS
        body = await self.session.transport.post(
            self.poll_path, self.poll_options.to_wire(), timeout=timeout
        )
        return parse_poll_response(body, SOURCE)

    async def ack(self) -> None:
        await self.session.transport.void_operation(self.ack_path)
        self.stats.acks += 1

    async def nack(self) -> None:
        await self.session.transport.void_operation(self.nack_path)
        self.stats.nacks += 1

    async def flush(self) -> None:
        """Drop the channel backlog server-side."""
        await self.session.transport.void_operation(self.flush_path)

    # ------------------------------------------------------------------
    # Auto-poll and dispatch
    # ------------------------------------------------------------------

    def pause(self) -> None:
        self.scheduler.pause()

    def resume(self, sleep: float | None = None) -> None:
        self.scheduler.resume(sleep)

    def subscribe(self, topic: Topic | str, callback: Subscriber) -> bool:
        return self.session.subscribe(topic, callback)

    def unsubscribe(self, topic: Topic | str, callback: Subscriber) -> None:
        self.session.unsubscribe(topic, callback)

    def flush_correlation(self) -> CorrelationResult:
        return self.session.emitter.flush_correlation()

    async def close(self, flush_correlation: bool = True) -> None:
        """
        Stop auto-poll, optionally release pending correlation halves on the
        ``event`` topic, then close the transport.
        """
        self.pause()
        await self.scheduler.wait_stopped()
        if flush_correlation:
            self.flush_correlation()
        await self.session.close()

    async def __aenter__(self) -> "EventService":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


__all__ = ["EventService", "EVENT_SERVICE_PATH", "SOURCE"]
