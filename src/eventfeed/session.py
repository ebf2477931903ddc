"""Shared session capability: credential, transport, dispatcher and stats."""

import logging

import aiohttp

from core.oauth2.manager import CredentialManager
from core.resilience.retry import RetryConfig
from eventfeed.correlation import CorrelationConfig, CorrelationEngine
from eventfeed.dispatcher import Dispatcher, Subscriber, Topic
from eventfeed.emitter import EventEmitter
from eventfeed.stats import CorrelationStats, FeedStats
from eventfeed.transport import DEFAULT_TIMEOUT_SECONDS, ResilientTransport


class Session:
    """
    Everything a service needs to talk to the API and publish what it gets.

    Services hold a Session by reference and expose only the operations they
    need; nothing inherits from it.

    The credential manager may be shared by several sessions. Refreshes are
    not serialized across sessions, so sharing one across concurrently
    polling services needs external coordination.
    """

    def __init__(
        self,
        credentials: CredentialManager,
        entry_point: str,
        retry: RetryConfig | None = None,
        auto_refresh: bool = True,
        timeout: float | None = DEFAULT_TIMEOUT_SECONDS,
        allow_duplicates: bool = False,
        correlation: CorrelationConfig | None = None,
        http_session: aiohttp.ClientSession | None = None,
        logger: logging.Logger | None = None,
    ):
        self.credentials = credentials
        self.logger = logger or logging.getLogger(__name__)
        self.stats = FeedStats()

        self.transport = ResilientTransport(
            base_url=entry_point,
            credentials=credentials,
            stats=self.stats,
            retry=retry,
            auto_refresh=auto_refresh,
            timeout=timeout,
            session=http_session,
            logger=self.logger,
        )
        self.dispatcher = Dispatcher(
            stats=self.stats,
            allow_duplicates=allow_duplicates,
            logger=self.logger,
        )

        engine = None
        if correlation is not None:
            self.stats.correlation = CorrelationStats()
            engine = CorrelationEngine(
                correlation, stats=self.stats.correlation, logger=self.logger
            )
        self.emitter = EventEmitter(self.dispatcher, engine, logger=self.logger)

    @property
    def correlation(self) -> CorrelationEngine | None:
        return self.emitter.correlation

    def subscribe(self, topic: Topic | str, callback: Subscriber) -> bool:
        return self.dispatcher.subscribe(topic, callback)

    def unsubscribe(self, topic: Topic | str, callback: Subscriber) -> None:
        self.dispatcher.unsubscribe(topic, callback)

    async def refresh(self) -> None:
        await self.transport.refresh()

    async def close(self) -> None:
        """Close the transport. The credential manager is left to its owner."""
        await self.transport.close()


__all__ = ["Session"]
