"""The pending schedule: a Redis sorted set scored by ready time."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .exceptions import store_errors
from .records import ScheduledItem, from_score, to_score

if TYPE_CHECKING:
    from datetime import datetime

    from redis.asyncio import Redis
    from redis.asyncio.client import Pipeline

    from .codec import EntryCodec
    from .config import SchedulerKeys

logger = logging.getLogger("redis_scheduler.schedule")


class Schedule:
    """Time-ordered collection of pending entries.

    In non-unique mode every insert takes a fresh sequence id from the
    namespace counter, so repeated items become independent entries. In
    unique mode ``ZADD`` updates the score of an existing member.
    """

    def __init__(
        self, redis_client: Redis[Any], keys: SchedulerKeys, codec: EntryCodec
    ) -> None:
        self._redis = redis_client
        self._keys = keys
        self._codec = codec

    @property
    def key(self) -> str:
        return self._keys.queue

    async def insert(self, item: str, ready_at: datetime | float) -> None:
        score = to_score(ready_at)
        with store_errors(self._keys.queue, "scheduling into"):
            sequence_id = None
            if not self._codec.unique:
                sequence_id = await self._redis.incr(self._keys.counter)
            member = self._codec.encode(item, sequence_id)
            await self._redis.zadd(self._keys.queue, {member: score})
        logger.debug("Scheduled %s at %.6f", member, score)

    async def size(self) -> int:
        with store_errors(self._keys.queue, "counting"):
            return int(await self._redis.zcard(self._keys.queue))

    async def earliest_ready(
        self, now: datetime, *, client: Redis[Any] | Pipeline[Any] | None = None
    ) -> tuple[str | bytes, datetime] | None:
        """Return the earliest entry scored at or before ``now`` without removing it.

        ``client`` lets the claim engine read through a watching pipeline.
        Redis errors are left to the caller, which needs to tell a lost
        WATCH race apart from a broken connection.
        """
        conn = client if client is not None else self._redis
        entries = await conn.zrangebyscore(
            self._keys.queue, "-inf", to_score(now), start=0, num=1, withscores=True
        )
        if not entries:
            return None
        member, score = entries[0]
        return member, from_score(score)

    def stage_remove(self, pipe: Pipeline[Any], member: str | bytes) -> None:
        """Queue removal of ``member`` inside an open MULTI block.

        The removal only commits if the watched schedule is unchanged when
        the transaction executes.
        """
        pipe.zrem(self._keys.queue, member)

    async def at(self, index: int) -> ScheduledItem | None:
        entries = await self._zrange(index, index)
        return self._decode_page(entries)[0] if entries else None

    async def range(self, start: int, count: int) -> list[ScheduledItem]:
        """Decode ``count`` entries starting at rank ``start``."""
        if start < 0 or count < 0:
            raise ValueError(
                f"range needs a non-negative start and count, got {start}, {count}"
            )
        if count == 0:
            return []
        return self._decode_page(await self._zrange(start, start + count - 1))

    async def slice(self, start: int, stop: int | None) -> list[ScheduledItem]:
        """Decode ranks ``start`` up to (excluding) ``stop``, as ``list[start:stop]`` would.

        Negative bounds count from the end of the schedule.
        """
        if stop is None:
            end = -1
        elif stop == 0:
            return []
        else:
            end = stop - 1
        return self._decode_page(await self._zrange(start, end))

    async def reset(self) -> None:
        with store_errors(self._keys.queue, "resetting"):
            await self._redis.delete(self._keys.queue, self._keys.counter)

    async def _zrange(self, start: int, end: int) -> list[tuple[Any, float]]:
        with store_errors(self._keys.queue, "reading"):
            return list(
                await self._redis.zrange(self._keys.queue, start, end, withscores=True)
            )

    def _decode_page(self, entries: list[tuple[Any, float]]) -> list[ScheduledItem]:
        return [
            ScheduledItem(self._codec.decode(member), from_score(score))
            for member, score in entries
        ]
