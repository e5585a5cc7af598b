"""Optimistic claim of the earliest ready entry."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from redis.exceptions import RedisError, WatchError

from .exceptions import ClaimContentionError, SchedulerStoreError
from .instrumentation import OperationContext, get_scheduler_hooks
from .records import ClaimedEntry, ProcessingRecord

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from redis.asyncio import Redis

    from .codec import EntryCodec
    from .registry import ProcessingRegistry
    from .schedule import Schedule

logger = logging.getLogger("redis_scheduler.claim")


class ClaimEngine:
    """
    Moves the earliest ready entry from the schedule into the processing set.

    Each attempt WATCHes the schedule, reads the earliest ready entry and
    then, in one MULTI/EXEC, removes it and adds its processing record. If
    any other client touched the schedule in between, Redis rejects the
    transaction and the attempt is retried after ``cas_delay`` seconds.

    Retries are unbounded unless ``max_attempts`` is given. Under sustained
    contention an unbounded claim may stall, but an entry is never handed
    to two claimers.
    """

    def __init__(
        self,
        redis_client: Redis[Any],
        schedule: Schedule,
        registry: ProcessingRegistry,
        codec: EntryCodec,
        clock: Callable[[], datetime],
        *,
        cas_delay: float,
        max_attempts: int | None = None,
    ) -> None:
        self._redis = redis_client
        self._schedule = schedule
        self._registry = registry
        self._codec = codec
        self._clock = clock
        self._cas_delay = cas_delay
        self._max_attempts = max_attempts

    async def claim(self, descriptor: str | None = None) -> ClaimedEntry | None:
        """
        Claim the earliest entry whose ready time has passed.

        Args:
            descriptor: Opaque value stored with the processing record to
                help an external sweep decide whether to recover it.

        Returns:
            The claimed entry, or None if nothing is ready yet.

        Raises:
            CorruptEntryError: The earliest ready member cannot be decoded.
            ClaimContentionError: ``max_attempts`` races were lost.
            SchedulerStoreError: Redis failed.
        """
        context = OperationContext(
            "scheduler.claim", key=self._schedule.key, descriptor=descriptor
        )
        return await get_scheduler_hooks().run(
            context, lambda: self._claim_internal(descriptor)
        )

    async def _claim_internal(self, descriptor: str | None) -> ClaimedEntry | None:
        attempt = 0
        while True:
            attempt += 1
            try:
                claimed = await self._attempt(descriptor)
            except WatchError:
                if self._max_attempts is not None and attempt >= self._max_attempts:
                    raise ClaimContentionError(attempt) from None
                logger.debug(
                    "Claim on %s lost a race (attempt %d), retrying in %.2fs",
                    self._schedule.key,
                    attempt,
                    self._cas_delay,
                )
                await asyncio.sleep(self._cas_delay)
                continue
            except RedisError as exc:
                logger.error(
                    "Redis failure while claiming from %s: %s", self._schedule.key, exc
                )
                raise SchedulerStoreError(
                    f"Technical failure claiming from {self._schedule.key}: {exc}"
                ) from exc
            return claimed

    async def _attempt(self, descriptor: str | None) -> ClaimedEntry | None:
        async with self._redis.pipeline(transaction=True) as pipe:
            await pipe.watch(self._schedule.key)
            now = self._clock()
            found = await self._schedule.earliest_ready(now, client=pipe)
            if found is None:
                return None
            member, ready_at = found
            item = self._codec.decode(member)
            record = ProcessingRecord(
                item=item,
                claimed_at=now.replace(microsecond=0),
                descriptor=descriptor,
            )

            pipe.multi()
            self._schedule.stage_remove(pipe, member)
            handle = self._registry.stage_insert(pipe, record)
            await pipe.execute()

        logger.debug("Claimed %r (ready at %s)", item, ready_at.isoformat())
        return ClaimedEntry(item=item, ready_at=ready_at, record=record, handle=handle)
