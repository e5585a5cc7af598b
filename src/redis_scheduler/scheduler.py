"""RedisScheduler: a chronological work scheduler on top of Redis."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from .claim import ClaimEngine
from .codec import EntryCodec
from .config import SchedulerConfig
from .driver import IterationDriver
from .enumerator import ScheduleItems
from .instrumentation import OperationContext, get_scheduler_hooks
from .records import from_score, to_score
from .registry import ProcessingRegistry
from .schedule import Schedule

if TYPE_CHECKING:
    from collections.abc import Callable

    from redis.asyncio import Redis

    from .driver import Handler
    from .records import ClaimedEntry, ProcessingRecord

logger = logging.getLogger("redis_scheduler")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RedisScheduler:
    """
    A basic chronological scheduler for Redis.

    Use :meth:`schedule` to add an item to be processed at an arbitrary
    point in time, and :meth:`each` to process the items whose time has
    come. Items are strings and are handed back as such.

    Reliability:
        Items being processed sit in a *processing set*. If a consumer dies
        without unwinding (killed, OOM, segfault) its item stays there and
        no longer appears in the schedule. To avoid losing work, periodically
        inspect :meth:`processing_set_items` and re-schedule abandoned items.
        Passing a meaningful ``descriptor`` to :meth:`each` (host name and
        pid, say) makes that decision easier.

    Contract:
        ``uniq`` must not change for a given namespace. Mixing unique and
        non-unique schedulers on the same keys is undefined.

    Example:
        ```python
        scheduler = RedisScheduler(redis, namespace="mailer/", blocking=True)
        await scheduler.schedule("user:42", datetime.now(timezone.utc))

        async def send(item: str, ready_at: datetime) -> None:
            ...

        await scheduler.each(send, descriptor=f"{socket.gethostname()}:{os.getpid()}")
        ```
    """

    def __init__(
        self,
        redis_client: Redis[Any],
        *,
        config: SchedulerConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
        **options: Any,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            redis_client: Async Redis client shared by all operations.
            config: Ready-made configuration. Mutually exclusive with
                ``options``.
            clock: Returns the current aware datetime. Injectable for tests.
            **options: Fields of :class:`SchedulerConfig` (``namespace``,
                ``blocking``, ``uniq``, ``poll_delay``, ``cas_delay``,
                ``max_claim_attempts``, ``page_size``).
        """
        if config is not None and options:
            raise TypeError("Pass either config or keyword options, not both")
        self._config = config or SchedulerConfig(**options)
        self._redis = redis_client
        self._keys = self._config.keys

        codec = EntryCodec(unique=self._config.uniq)
        self._schedule = Schedule(redis_client, self._keys, codec)
        self._registry = ProcessingRegistry(redis_client, self._keys)
        self._engine = ClaimEngine(
            redis_client,
            self._schedule,
            self._registry,
            codec,
            clock,
            cas_delay=self._config.cas_delay,
            max_attempts=self._config.max_claim_attempts,
        )
        self._driver = IterationDriver(
            self._engine,
            self._schedule,
            self._registry,
            blocking=self._config.blocking,
            poll_delay=self._config.poll_delay,
        )

    @property
    def config(self) -> SchedulerConfig:
        return self._config

    async def schedule(self, item: str, ready_at: datetime | float) -> None:
        """Schedule ``item`` at ``ready_at`` (aware datetime or epoch seconds).

        In ``uniq`` mode an already scheduled item is moved to the new time.
        """
        item = str(item)
        context = OperationContext(
            "scheduler.schedule",
            key=self._keys.queue,
            item=item,
            ready_at=from_score(to_score(ready_at)),
        )
        await get_scheduler_hooks().run(
            context, lambda: self._schedule.insert(item, ready_at)
        )

    async def reset(self) -> None:
        """Drop all data and reset the schedule entirely."""
        context = OperationContext("scheduler.reset", key=self._keys.queue)
        await get_scheduler_hooks().run(context, self._reset_internal)

    async def _reset_internal(self) -> None:
        await self._schedule.reset()
        await self._registry.reset()
        logger.info("Reset scheduler keys %s", ", ".join(self._keys.all()))

    async def size(self) -> int:
        """Total number of items in the schedule."""
        return await self._schedule.size()

    async def processing_set_size(self) -> int:
        """Number of items currently being processed."""
        return await self._registry.size()

    async def each(self, handler: Handler, descriptor: str | None = None) -> int:
        """
        Call ``handler(item, ready_at)`` for every item that is ready.

        Only items at or after their scheduled time are handed out. When not
        blocking, returns the number of completed items once nothing else
        is ready; when blocking, waits for items and never returns.

        If the handler raises or returns :class:`Failure`, the item goes back
        into the schedule at its original time and the error is raised.

        Args:
            handler: Async callable returning ``None``, ``Success()`` or
                ``Failure(reason)``.
            descriptor: Optional string stored alongside each item while it
                is in the processing set.
        """
        return await self._driver.each(handler, descriptor)

    async def claim(self, descriptor: str | None = None) -> ClaimedEntry | None:
        """Claim a single ready item without running a handler.

        The caller owns the claim and must finish it with :meth:`complete`
        (or re-schedule the item itself) to clear the processing record.
        """
        return await self._engine.claim(descriptor)

    async def complete(self, claimed: ClaimedEntry) -> None:
        """Remove the processing record of a claim obtained via :meth:`claim`."""
        await self._registry.remove(claimed.handle)

    def items(self) -> ScheduleItems:
        """
        Return a paginated, unsynchronised view over every scheduled item.

        Mainly useful for debugging. See :class:`ScheduleItems`.
        """
        return ScheduleItems(self._schedule, page_size=self._config.page_size)

    async def processing_set_items(self) -> list[ProcessingRecord]:
        """
        Return the in-flight records, with ``claimed_at`` set to when each item
        was removed from the schedule for processing.
        """
        return await self._registry.list_records()
