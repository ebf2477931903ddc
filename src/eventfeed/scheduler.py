"""Timer-driven poll loop turning the request/response feed into a stream."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from core.logging.context import set_log_context
from core.logging.setup import generate_cycle_id
from core.logging.utilities import log_exception
from eventfeed.schemas import EventBatch
from eventfeed.stats import FeedStats

DEFAULT_SLEEP_SECONDS = 0.2

PollFn = Callable[[], Awaitable[list[EventBatch]]]
RouteFn = Callable[[EventBatch], Any]
AckFn = Callable[[], Awaitable[None]]


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    POLLING = "polling"


class AutoPollScheduler:
    """
    Repeats ``poll -> route -> ack`` with a fixed pause between cycles.

    A cycle never overlaps the previous one: the pause starts only once the
    previous cycle has finished. A failed cycle is logged and counted; the
    loop keeps going. ``pause()`` stops the loop at the next pause point and
    lets an in-flight cycle complete, including its dispatch.

    Usage:
        scheduler = AutoPollScheduler(service.poll, emitter.route, ack=service.ack)
        scheduler.resume(0.5)
        ...
        scheduler.pause()
        await scheduler.wait_stopped()
    """

    def __init__(
        self,
        poll: PollFn,
        route: RouteFn,
        ack: AckFn | None = None,
        sleep: float = DEFAULT_SLEEP_SECONDS,
        stats: FeedStats | None = None,
        logger: logging.Logger | None = None,
    ):
        """
        Args:
            poll: Coroutine returning the batches of one poll cycle
            route: Callable consuming one batch (correlation + dispatch)
            ack: Coroutine acknowledging a routed cycle; None disables ack mode
            sleep: Seconds between the end of a cycle and the start of the next
            stats: Counters to update (private instance if omitted)
            logger: Logger to report through (module logger if omitted)
        """
        self._poll = poll
        self._route = route
        self._ack = ack
        self.sleep = float(sleep)
        self.stats = stats if stats is not None else FeedStats()
        self._logger = logger or logging.getLogger(__name__)

        self._state = SchedulerState.STOPPED
        self._task: asyncio.Task | None = None
        self._wakeup = asyncio.Event()
        self._in_cycle = False

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_polling(self) -> bool:
        return self._state is SchedulerState.POLLING

    @property
    def in_cycle(self) -> bool:
        return self._in_cycle

    def set_ack(self, ack: AckFn | None) -> None:
        self._ack = ack

    def set_sleep(self, sleep: float) -> None:
        """Change the pause between cycles; takes effect after the current one."""
        if sleep < 0:
            raise ValueError(f"sleep must be >= 0, got {sleep}")
        self.sleep = float(sleep)

    def resume(self, sleep: float | None = None) -> None:
        """
        Start (or keep) polling. No-op while already polling.

        Must be called from within a running event loop.
        """
        if sleep is not None:
            self.set_sleep(sleep)

        if self._state is SchedulerState.POLLING:
            return

        self._state = SchedulerState.POLLING
        self._wakeup.clear()

        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="eventfeed-autopoll")

        self._logger.info(
            "Auto-poll started",
            extra={"state": self._state.value, "sleep_seconds": self.sleep},
        )

    def pause(self) -> None:
        """Stop polling. Safe to call when already stopped."""
        if self._state is SchedulerState.STOPPED:
            return

        self._state = SchedulerState.STOPPED
        self._wakeup.set()
        self._logger.info("Auto-poll paused", extra={"state": self._state.value})

    async def wait_stopped(self) -> None:
        """Wait for the loop task to finish after pause()."""
        task = self._task
        if task is None:
            return
        try:
            await task
        finally:
            if self._task is task:
                self._task = None

    async def run_once(self) -> int:
        """
        Run a single cycle.

        Returns:
            Number of records received

        Raises:
            Whatever poll, route or ack raised
        """
        self._in_cycle = True
        try:
            set_log_context(cycle_id=generate_cycle_id())
            self.stats.polls += 1

            batches = await self._poll()
            received = sum(len(b) for b in batches)
            self.stats.records_polled += received

            for batch in batches:
                self._route(batch)

            if self._ack is not None and batches:
                await self._ack()

            if received:
                self._logger.debug(
                    "Poll cycle routed",
                    extra={"batch_count": len(batches), "record_count": received},
                )
            return received
        finally:
            self._in_cycle = False

    async def _run(self) -> None:
        while self._state is SchedulerState.POLLING:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.stats.poll_failures += 1
                log_exception(
                    self._logger,
                    e,
                    "Poll cycle failed, will retry on next cycle",
                    operation="poll",
                )

            if self._state is not SchedulerState.POLLING:
                break

            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.sleep)
            except TimeoutError:
                pass

        self._logger.debug("Auto-poll loop exited", extra={"state": self._state.value})


__all__ = ["AutoPollScheduler", "SchedulerState", "DEFAULT_SLEEP_SECONDS"]
