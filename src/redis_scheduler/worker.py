"""SchedulerWorker: background task draining a scheduler."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .driver import Handler
    from .scheduler import RedisScheduler

logger = logging.getLogger("redis_scheduler.worker")


class SchedulerWorker:
    """Runs ``scheduler.each`` in the background.

    Uses trigger + polling fallback. Call :meth:`trigger` to wake
    immediately (e.g. right after scheduling something due now); otherwise
    drains every ``poll_interval`` seconds. The scheduler must be
    non-blocking so that each cycle ends once nothing is ready.

    A failing item has already been rescheduled by the time the error
    reaches the worker, so the error is logged and the loop carries on.
    """

    def __init__(
        self,
        scheduler: RedisScheduler,
        handler: Handler,
        *,
        descriptor: str | None = None,
        poll_interval: float = 1.0,
    ) -> None:
        if scheduler.config.blocking:
            raise ValueError("SchedulerWorker needs a non-blocking scheduler")
        self._scheduler = scheduler
        self._handler = handler
        self._descriptor = descriptor
        self._poll_interval = poll_interval
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._trigger = asyncio.Event()

    def trigger(self) -> None:
        """Wake the worker immediately."""
        self._trigger.set()

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            "SchedulerWorker started (poll_interval=%.1fs)", self._poll_interval
        )

    async def stop(self) -> None:
        self._running = False
        self._trigger.set()
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError, asyncio.TimeoutError):
                await asyncio.wait_for(self._task, timeout=5.0)
        logger.info("SchedulerWorker stopped")

    async def run_once(self) -> int:
        """Drain everything that is ready once (useful in tests)."""
        count = await self._scheduler.each(self._handler, self._descriptor)
        if count > 0:
            logger.info("SchedulerWorker: processed %d item(s)", count)
        return count

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except Exception:
                logger.exception("SchedulerWorker error")
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(
                    self._trigger.wait(), timeout=self._poll_interval
                )
            self._trigger.clear()
