"""
Event feed client.

Keeps a bearer credential alive, polls an Event Service channel on a timer,
joins split traffic records within a time window and publishes the result on
the ``event``, ``correlation`` and ``pcap`` topics.

Basic Usage:
    from core.oauth2 import CredentialManager
    from eventfeed import EventService, FilterOptions, FilterSpec, LogType, load_config

    config = load_config("config.yaml")
    creds = await CredentialManager.create(
        client_id=config.credentials.client_id,
        client_secret=config.credentials.client_secret,
        refresh_token=config.credentials.refresh_token,
    )
    service = EventService.from_config(config, creds)
    await service.filter_builder(
        [FilterSpec(table=LogType.TRAFFIC)],
        FilterOptions(event_callback=lambda msg: print(msg.message)),
    )
"""

from eventfeed.config import EventFeedConfig, load_config
from eventfeed.correlation import CorrelationConfig, CorrelationEngine, CorrelationResult
from eventfeed.dispatcher import Dispatcher, EmittedMessage, Topic
from eventfeed.emitter import EventEmitter
from eventfeed.event_service import EventService
from eventfeed.pcap import pcaptize
from eventfeed.scheduler import AutoPollScheduler, SchedulerState
from eventfeed.schemas import (
    EventBatch,
    EventFilter,
    FilterOptions,
    FilterSpec,
    LogType,
    PollOptions,
)
from eventfeed.session import Session
from eventfeed.stats import CorrelationStats, FeedStats
from eventfeed.transport import ResilientTransport

__version__ = "0.1.0"

__all__ = [
    # Service
    "EventService",
    "Session",
    # Building blocks
    "ResilientTransport",
    "Dispatcher",
    "EmittedMessage",
    "Topic",
    "EventEmitter",
    "AutoPollScheduler",
    "SchedulerState",
    "CorrelationEngine",
    "CorrelationConfig",
    "CorrelationResult",
    "pcaptize",
    # Models
    "EventBatch",
    "EventFilter",
    "FilterSpec",
    "FilterOptions",
    "LogType",
    "PollOptions",
    # Stats
    "FeedStats",
    "CorrelationStats",
    # Config
    "EventFeedConfig",
    "load_config",
]
