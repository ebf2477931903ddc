"""Routes polled batches to the dispatcher topics."""

import logging

from eventfeed.correlation import TIME_FIELD, CorrelationEngine, CorrelationResult
from eventfeed.dispatcher import Dispatcher, EmittedMessage, Topic
from eventfeed.pcap import pcaptize
from eventfeed.schemas import EventBatch, Record


class EventEmitter:
    """
    Glue between the correlation engine and the dispatcher.

    Expensive work only happens for topics somebody listens to: packets are
    extracted only with a ``pcap`` subscriber and the correlation projection is
    only built with a ``correlation`` subscriber. Correlation itself always runs
    when an engine is configured, since it decides what the ``event`` topic sees.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        correlation: CorrelationEngine | None = None,
        logger: logging.Logger | None = None,
    ):
        self.dispatcher = dispatcher
        self.correlation = correlation
        self._logger = logger or logging.getLogger(__name__)

    def _projection(self, record: Record) -> Record:
        config = self.correlation.config
        fields = (TIME_FIELD, config.session_key, *config.required_fields)
        return {f: record.get(f) for f in fields}

    def _emit_pcap(self, batch: EventBatch) -> None:
        for record in batch.records:
            body = pcaptize(record)
            if body:
                self.dispatcher.publish(
                    Topic.PCAP,
                    EmittedMessage(source=batch.source, log_type=batch.log_type, message=body),
                )

    def _emit_batches(self, topic: Topic, batches: list[EventBatch]) -> None:
        for batch in batches:
            if not batch:
                continue
            self.dispatcher.publish(
                topic,
                EmittedMessage(
                    source=batch.source,
                    log_type=batch.log_type,
                    message=list(batch.records),
                ),
            )

    def _emit_correlation(self, result: CorrelationResult) -> None:
        for batch in result.correlated:
            self.dispatcher.publish(
                Topic.CORRELATION,
                EmittedMessage(
                    source=batch.source,
                    log_type=batch.log_type,
                    message=[self._projection(r) for r in batch.records],
                ),
            )

    def route(self, batch: EventBatch) -> CorrelationResult:
        """
        Send one batch to its topics.

        Order: pcap, correlation projection, then on ``event`` the correlated
        records followed by the plain ones.

        Returns:
            What the batch turned into after correlation
        """
        if self.dispatcher.has_subscribers(Topic.PCAP):
            self._emit_pcap(batch)

        if self.correlation is not None:
            result = self.correlation.process(batch)
            if self.dispatcher.has_subscribers(Topic.CORRELATION):
                self._emit_correlation(result)
        else:
            result = CorrelationResult(plain=[batch])

        if self.dispatcher.has_subscribers(Topic.EVENT):
            self._emit_batches(Topic.EVENT, result.correlated)
            self._emit_batches(Topic.EVENT, result.plain)

        return result

    def flush_correlation(self) -> CorrelationResult:
        """Release every buffered half on the ``event`` topic."""
        if self.correlation is None:
            return CorrelationResult()

        result = self.correlation.flush()
        if self.dispatcher.has_subscribers(Topic.EVENT):
            self._emit_batches(Topic.EVENT, result.plain)
        self._logger.info(
            "Flushed the correlation engine",
            extra={"record_count": len(result.plain_records)},
        )
        return result


__all__ = ["EventEmitter"]
