"""Tests for the optimistic claim protocol."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from conftest import FrozenClock, at, make_scheduler
from fakeredis import FakeAsyncRedis, FakeServer
from redis.exceptions import ConnectionError as RedisConnectionError

from redis_scheduler import (
    ClaimContentionError,
    ConcurrencyError,
    RedisScheduler,
    SchedulerStoreError,
)


def racing_reads(scheduler: RedisScheduler, rival: Any, races: int) -> Any:
    """Touch the schedule from another client during the first ``races`` reads."""
    schedule = scheduler._schedule
    original = schedule.earliest_ready
    calls = {"count": 0}

    async def earliest_ready(now: datetime, *, client: Any = None) -> Any:
        calls["count"] += 1
        found = await original(now, client=client)
        if calls["count"] <= races:
            member = f"{900 + calls['count']}:rival"
            await rival.zadd(schedule.key, {member: at(500).timestamp()})
        return found

    return patch.object(schedule, "earliest_ready", earliest_ready), calls


@pytest.mark.asyncio
class TestClaimEngine:
    async def test_claim_moves_entry_into_processing_set(
        self, scheduler: RedisScheduler, redis: Any
    ) -> None:
        await scheduler.schedule("a", at(0))

        claimed = await scheduler.claim("desc")

        assert claimed is not None
        assert claimed.item == "a"
        assert claimed.ready_at == at(0)
        assert claimed.record.descriptor == "desc"
        assert await scheduler.size() == 0
        assert await redis.smembers(scheduler.config.keys.processing) == {
            claimed.handle
        }

    async def test_nothing_ready_returns_none(
        self, scheduler: RedisScheduler
    ) -> None:
        await scheduler.schedule("a", at(1))

        assert await scheduler.claim() is None
        assert await scheduler.size() == 1
        assert await scheduler.processing_set_size() == 0

    async def test_lost_race_is_retried(
        self, scheduler: RedisScheduler, server: FakeServer
    ) -> None:
        await scheduler.schedule("a", at(0))
        rival = FakeAsyncRedis(server=server, decode_responses=True)
        patcher, calls = racing_reads(scheduler, rival, races=1)

        with patcher:
            claimed = await scheduler.claim()

        assert claimed is not None
        assert claimed.item == "a"
        assert calls["count"] == 2
        assert await scheduler.size() == 1  # the rival's entry
        assert await scheduler.processing_set_size() == 1
        await rival.aclose()

    async def test_bounded_retries_raise_contention_error(
        self, redis: Any, server: FakeServer, clock: FrozenClock
    ) -> None:
        sched = make_scheduler(redis, clock, max_claim_attempts=3)
        await sched.schedule("a", at(0))
        rival = FakeAsyncRedis(server=server, decode_responses=True)
        patcher, calls = racing_reads(sched, rival, races=100)

        with patcher, pytest.raises(ClaimContentionError) as exc:
            await sched.claim()

        assert isinstance(exc.value, ConcurrencyError)
        assert exc.value.attempts == 3
        assert calls["count"] == 3
        assert await sched.processing_set_size() == 0
        assert [e.item for e in await sched.items()[0:1]] == ["a"]
        await sched.reset()
        await rival.aclose()

    async def test_only_one_concurrent_claimer_wins(
        self, server: FakeServer, clock: FrozenClock
    ) -> None:
        clients = [
            FakeAsyncRedis(server=server, decode_responses=True) for _ in range(5)
        ]
        schedulers = [make_scheduler(client, clock) for client in clients]
        await schedulers[0].schedule("a", at(0))

        results = await asyncio.gather(
            *(sched.claim(f"consumer-{i}") for i, sched in enumerate(schedulers))
        )

        winners = [r for r in results if r is not None]
        assert len(winners) == 1
        assert winners[0].item == "a"
        assert await schedulers[0].size() == 0
        assert await schedulers[0].processing_set_size() == 1
        for client in clients:
            await client.aclose()

    async def test_concurrent_consumers_never_share_items(
        self, server: FakeServer, clock: FrozenClock
    ) -> None:
        clients = [
            FakeAsyncRedis(server=server, decode_responses=True) for _ in range(4)
        ]
        schedulers = [make_scheduler(client, clock) for client in clients]
        expected = [f"job-{i}" for i in range(20)]
        for i, item in enumerate(expected):
            await schedulers[0].schedule(item, at(-i))

        seen: list[str] = []

        async def handler(item: str, ready_at: datetime) -> None:
            seen.append(item)
            await asyncio.sleep(0)

        counts = await asyncio.gather(*(sched.each(handler) for sched in schedulers))

        assert sum(counts) == 20
        assert sorted(seen) == sorted(expected)
        assert await schedulers[0].size() == 0
        assert await schedulers[0].processing_set_size() == 0
        for client in clients:
            await client.aclose()


@pytest.mark.asyncio
class TestClaimStoreErrors:
    @pytest.fixture
    def broken_redis(self) -> MagicMock:
        redis = MagicMock()
        pipe = AsyncMock()
        pipe.watch.side_effect = RedisConnectionError("Redis crash")
        pipe.__aenter__.return_value = pipe
        pipe.__aexit__.return_value = None
        redis.pipeline = MagicMock(return_value=pipe)
        return redis

    async def test_technical_failure_is_wrapped(
        self, broken_redis: MagicMock, clock: FrozenClock
    ) -> None:
        sched = make_scheduler(broken_redis, clock)

        with pytest.raises(SchedulerStoreError) as exc:
            await sched.claim()

        assert isinstance(exc.value.__cause__, RedisConnectionError)
        broken_redis.pipeline.assert_called_once_with(transaction=True)

    async def test_technical_failure_ends_each(
        self, broken_redis: MagicMock, clock: FrozenClock
    ) -> None:
        sched = make_scheduler(broken_redis, clock, blocking=True)
        handler = AsyncMock()

        with pytest.raises(SchedulerStoreError):
            await sched.each(handler)

        handler.assert_not_called()
