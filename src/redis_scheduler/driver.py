"""Consumer loop: claim, run the handler, release or reschedule."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from .exceptions import ProcessingFailedError
from .instrumentation import OperationContext, get_scheduler_hooks
from .records import Failure

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

    from .claim import ClaimEngine
    from .records import ClaimedEntry, ProcessingResult
    from .registry import ProcessingRegistry
    from .schedule import Schedule

    Handler = Callable[[str, datetime], Awaitable[ProcessingResult | None]]

logger = logging.getLogger("redis_scheduler.driver")


class IterationDriver:
    """
    Runs a handler over every ready item.

    In non-blocking mode :meth:`each` returns as soon as nothing is ready,
    even if entries are still pending for later. In blocking mode it polls
    every ``poll_delay`` seconds and never returns on its own; it ends when
    an error propagates or the task running it is cancelled.

    A handler returns ``None`` or :class:`Success` when it is done with the
    item, or :class:`Failure` to have it put back. A failed or raising
    handler gets its item rescheduled at the original ready time, and the
    failure ends the loop.
    """

    def __init__(
        self,
        engine: ClaimEngine,
        schedule: Schedule,
        registry: ProcessingRegistry,
        *,
        blocking: bool,
        poll_delay: float,
    ) -> None:
        self._engine = engine
        self._schedule = schedule
        self._registry = registry
        self._blocking = blocking
        self._poll_delay = poll_delay

    async def each(self, handler: Handler, descriptor: str | None = None) -> int:
        """
        Process ready items until none are left (or forever when blocking).

        Returns:
            Number of items the handler completed.

        Raises:
            ProcessingFailedError: The handler returned :class:`Failure`.
            Exception: Anything the handler raised, after rescheduling.
        """
        processed = 0
        while True:
            claimed = await self._next(descriptor)
            if claimed is None:
                return processed
            await self.process(claimed, handler)
            processed += 1

    async def _next(self, descriptor: str | None) -> ClaimedEntry | None:
        while True:
            claimed = await self._engine.claim(descriptor)
            if claimed is not None or not self._blocking:
                return claimed
            logger.debug(
                "Nothing ready in %s, polling again in %.2fs",
                self._schedule.key,
                self._poll_delay,
            )
            await asyncio.sleep(self._poll_delay)

    async def process(self, claimed: ClaimedEntry, handler: Handler) -> None:
        """Run ``handler`` for one claimed entry and clean up its record."""
        context = OperationContext(
            "scheduler.process",
            key=self._schedule.key,
            item=claimed.item,
            ready_at=claimed.ready_at,
            descriptor=claimed.record.descriptor,
        )
        await get_scheduler_hooks().run(
            context, lambda: self._process_internal(claimed, handler)
        )

    async def _process_internal(self, claimed: ClaimedEntry, handler: Handler) -> None:
        try:
            try:
                result = await handler(claimed.item, claimed.ready_at)
            except BaseException as exc:  # noqa: BLE001
                await self._reschedule(claimed, exc)
                raise

            if isinstance(result, Failure):
                await self._reschedule(claimed, result.reason)
                raise ProcessingFailedError(
                    claimed.item, claimed.ready_at, result.reason
                )
        finally:
            await self._registry.remove(claimed.handle)

    async def _reschedule(self, claimed: ClaimedEntry, reason: object) -> None:
        logger.warning(
            "Rescheduling %r at %s: %r",
            claimed.item,
            claimed.ready_at.isoformat(),
            reason,
        )
        context = OperationContext(
            "scheduler.reschedule",
            key=self._schedule.key,
            item=claimed.item,
            ready_at=claimed.ready_at,
            descriptor=claimed.record.descriptor,
        )
        await get_scheduler_hooks().run(
            context, lambda: self._schedule.insert(claimed.item, claimed.ready_at)
        )
