"""Topic-keyed publish/subscribe registry."""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from core.logging.utilities import log_exception
from eventfeed.stats import FeedStats


class Topic(str, Enum):
    EVENT = "event"
    PCAP = "pcap"
    CORRELATION = "correlation"


@dataclass(frozen=True)
class EmittedMessage:
    """
    Payload delivered to subscribers.

    Attributes:
        source: Producing service (e.g. "EventService")
        log_type: Log type of the carried records, if any
        message: Records (event/correlation topics) or raw pcap bytes
    """

    source: str
    log_type: str | None = None
    message: Any = None

    @property
    def record_count(self) -> int:
        if self.message is None:
            return 0
        if isinstance(self.message, (bytes, bytearray, str)):
            return 1
        if isinstance(self.message, Sequence):
            return len(self.message)
        return 1


Subscriber = Callable[[EmittedMessage], Any]

_STAT_FIELD = {
    Topic.EVENT: "events_emitted",
    Topic.PCAP: "pcaps_emitted",
    Topic.CORRELATION: "correlation_emitted",
}


class Dispatcher:
    """
    Routes messages to the callbacks registered on each topic.

    Subscribers run synchronously in registration order. A subscriber that
    raises is logged and skipped; the remaining subscribers still run and the
    producer never sees the exception.

    One instance per client session; there is no global bus.
    """

    def __init__(
        self,
        stats: FeedStats | None = None,
        allow_duplicates: bool = False,
        logger: logging.Logger | None = None,
    ):
        self.stats = stats if stats is not None else FeedStats()
        self.allow_duplicates = allow_duplicates
        self._logger = logger or logging.getLogger(__name__)
        self._subscribers: dict[Topic, list[Subscriber]] = {t: [] for t in Topic}
        self._notifier: dict[Topic, bool] = {t: False for t in Topic}

    def _refresh_notifier(self, topic: Topic) -> None:
        self._notifier[topic] = bool(self._subscribers[topic])

    def subscribe(self, topic: Topic | str, callback: Subscriber) -> bool:
        """
        Register ``callback`` on ``topic``.

        Returns:
            False when the identical pair is already registered and
            duplicates are not allowed; True otherwise
        """
        topic = Topic(topic)
        registered = self._subscribers[topic]
        if not self.allow_duplicates and callback in registered:
            self._logger.debug(
                "Rejected duplicate subscription",
                extra={"topic": topic.value, "subscriber": _callback_name(callback)},
            )
            return False

        registered.append(callback)
        self._refresh_notifier(topic)
        self._logger.debug(
            "Subscriber registered",
            extra={"topic": topic.value, "subscriber": _callback_name(callback)},
        )
        return True

    def unsubscribe(self, topic: Topic | str, callback: Subscriber) -> None:
        """Remove the most recent registration of ``callback``; no-op if absent."""
        topic = Topic(topic)
        registered = self._subscribers[topic]
        for index in range(len(registered) - 1, -1, -1):
            if registered[index] == callback:
                del registered[index]
                break
        self._refresh_notifier(topic)

    def has_subscribers(self, topic: Topic | str) -> bool:
        return self._notifier[Topic(topic)]

    def subscribers(self, topic: Topic | str) -> list[Subscriber]:
        return list(self._subscribers[Topic(topic)])

    def clear(self) -> None:
        for topic in Topic:
            self._subscribers[topic].clear()
            self._refresh_notifier(topic)

    def publish(self, topic: Topic | str, message: EmittedMessage) -> int:
        """
        Deliver ``message`` to every subscriber of ``topic``.

        The emitted-count stat grows by the number of records carried, not by
        the number of subscribers.

        Returns:
            Number of subscribers that raised
        """
        topic = Topic(topic)
        setattr(
            self.stats,
            _STAT_FIELD[topic],
            getattr(self.stats, _STAT_FIELD[topic]) + message.record_count,
        )

        failures = 0
        for callback in list(self._subscribers[topic]):
            try:
                callback(message)
            except Exception as e:
                failures += 1
                self.stats.subscriber_errors += 1
                log_exception(
                    self._logger,
                    e,
                    "Subscriber raised while handling message",
                    topic=topic.value,
                    subscriber=_callback_name(callback),
                    source=message.source,
                    log_type=message.log_type,
                )
        return failures


def _callback_name(callback: Callable) -> str:
    return getattr(callback, "__qualname__", None) or repr(callback)


__all__ = ["Dispatcher", "EmittedMessage", "Subscriber", "Topic"]
