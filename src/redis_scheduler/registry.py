"""The processing registry: a Redis set of in-flight claim records."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .exceptions import store_errors
from .records import ProcessingRecord

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from redis.asyncio.client import Pipeline

    from .config import SchedulerKeys

logger = logging.getLogger("redis_scheduler.registry")


class ProcessingRegistry:
    """In-flight claims, kept so that crashed work can be recovered.

    A record is added in the same transaction that removes its entry from
    the schedule and is removed once the consumer finishes. Records left
    behind by a dead consumer stay here until something external looks at
    :meth:`list_records` and decides what to do with them.
    """

    def __init__(self, redis_client: Redis[Any], keys: SchedulerKeys) -> None:
        self._redis = redis_client
        self._keys = keys

    @property
    def key(self) -> str:
        return self._keys.processing

    def stage_insert(self, pipe: Pipeline[Any], record: ProcessingRecord) -> str:
        """Queue ``record`` inside an open MULTI block and return its handle."""
        handle = record.dump()
        pipe.sadd(self._keys.processing, handle)
        return handle

    async def remove(self, handle: str) -> None:
        with store_errors(self._keys.processing, "releasing a record from"):
            removed = await self._redis.srem(self._keys.processing, handle)
        if not removed:
            logger.debug("Processing record already gone: %s", handle)

    async def size(self) -> int:
        with store_errors(self._keys.processing, "counting"):
            return int(await self._redis.scard(self._keys.processing))

    async def list_records(self) -> list[ProcessingRecord]:
        with store_errors(self._keys.processing, "listing"):
            members = await self._redis.smembers(self._keys.processing)
        return [ProcessingRecord.load(raw) for raw in members]

    async def reset(self) -> None:
        with store_errors(self._keys.processing, "resetting"):
            await self._redis.delete(self._keys.processing)
