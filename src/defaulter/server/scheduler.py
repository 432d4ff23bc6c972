"""Cron-scheduled partial runs for the daemon.

The scheduler sleeps until the next fire time of the configured cron
expression, then awaits one partial run. Fire times that pass while a run
is still in progress are skipped rather than queued.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from croniter import croniter

logger = logging.getLogger(__name__)


class PartialRunScheduler:
    """Background task triggering partial runs on a cron schedule.

    Usage:
        scheduler = PartialRunScheduler("0 * * * *", run_partial)
        task = asyncio.create_task(scheduler.run())
        # ... later ...
        scheduler.stop()
    """

    def __init__(
        self,
        expression: str,
        run_callback: Callable[[], Awaitable[None]],
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            expression: Cron expression (5 fields).
            run_callback: Coroutine function performing one partial run.
            clock: Returns the current aware datetime (injectable for tests).

        Raises:
            ValueError: If the expression is not a valid cron expression.
        """
        if not croniter.is_valid(expression):
            raise ValueError(f"Invalid cron expression: {expression}")
        self.expression = expression
        self._run_callback = run_callback
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._stop_event = asyncio.Event()

    def next_fire_time(self, after: datetime | None = None) -> datetime:
        """Return the first fire time strictly after ``after`` (default now)."""
        base = after or self._clock()
        return croniter(self.expression, base).get_next(datetime)

    def seconds_until_next(self) -> float:
        now = self._clock()
        return max((self.next_fire_time(now) - now).total_seconds(), 0.0)

    async def run(self) -> None:
        """Run the scheduling loop until stop() is called."""
        logger.info("Cron job set up successfully (%s)", self.expression)
        try:
            while not self._stop_event.is_set():
                delay = self.seconds_until_next()
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                    break
                except asyncio.TimeoutError:
                    pass  # Fire time reached

                logger.info(
                    "Running scheduled partial run at %s", self._clock().isoformat()
                )
                await self._run_callback()
        finally:
            logger.info("Partial run scheduler stopped")

    def stop(self) -> None:
        """Signal the scheduling loop to stop."""
        self._stop_event.set()
