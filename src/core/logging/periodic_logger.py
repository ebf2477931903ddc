"""Periodic statistics logging for long-running feed consumers."""

import asyncio
import logging
from collections.abc import Callable, Mapping

logger = logging.getLogger(__name__)

StatsProvider = Callable[[], Mapping[str, object]]


def format_stats_delta(
    cycle_count: int,
    current: Mapping[str, object],
    previous: Mapping[str, object],
    interval_seconds: float,
) -> tuple[str, dict[str, int]]:
    """
    Build a one-line summary of counter changes since the previous report.

    Only integer counters are diffed; nested mappings (e.g. correlation stats)
    are carried in the structured ``stats`` field but not summarised.

    Returns:
        (message, deltas)
    """
    deltas: dict[str, int] = {}
    for key, value in current.items():
        if isinstance(value, bool) or not isinstance(value, int):
            continue
        prev = previous.get(key, 0)
        deltas[key] = value - (prev if isinstance(prev, int) else 0)

    changed = [f"{k}=+{v}" for k, v in deltas.items() if v]
    events = deltas.get("events_emitted", 0)
    rate = events / interval_seconds if interval_seconds > 0 else 0.0

    if not changed:
        return f"Cycle {cycle_count}: idle", deltas
    return f"Cycle {cycle_count}: {', '.join(changed)} | {rate:.1f} events/s", deltas


class PeriodicStatsLogger:
    """
    Logs a stats snapshot every ``interval_seconds`` with deltas since the
    last report.

    Usage:
        reporter = PeriodicStatsLogger(60, service.stats.snapshot)
        reporter.start()
        ...
        await reporter.stop()
    """

    def __init__(
        self,
        interval_seconds: float,
        get_stats: StatsProvider,
        logger: logging.Logger | None = None,
    ):
        """
        Args:
            interval_seconds: Logging interval in seconds
            get_stats: Callback returning the current cumulative counters
            logger: Logger to report through (module logger if omitted)
        """
        self.interval_seconds = interval_seconds
        self.get_stats = get_stats
        self._logger = logger or logging.getLogger(__name__)
        self._task: asyncio.Task | None = None
        self._cycle_count = 0
        self._previous_stats: dict[str, object] = {}

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the periodic logging task."""
        if self._task is not None:
            self._logger.warning("Periodic logger already running")
            return

        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the periodic logging task."""
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    def report(self) -> dict[str, int]:
        """Log one report now and return the deltas it covered."""
        current = dict(self.get_stats())
        msg, deltas = format_stats_delta(
            self._cycle_count, current, self._previous_stats, self.interval_seconds
        )
        self._previous_stats = current
        self._logger.info(msg, extra={"stats": current})
        return deltas

    async def _run(self) -> None:
        self.report()
        try:
            while True:
                await asyncio.sleep(self.interval_seconds)
                self._cycle_count += 1
                self.report()
        except asyncio.CancelledError:
            self._logger.debug("Periodic stats logger task cancelled")
            raise
