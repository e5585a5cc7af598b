from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis, FakeServer

from redis_scheduler import RedisScheduler

TIME = datetime(2012, 1, 1, 15, 0, 0, tzinfo=timezone.utc)
NAMESPACE = "test-8ee2027983915ec78acc45027d874316/"
UNIQ_NAMESPACE = "test-8ee2027983915ec78acc45027d874317/"


def at(seconds: float) -> datetime:
    return TIME + timedelta(seconds=seconds)


class FrozenClock:
    """Mutable stand-in for ``datetime.now(timezone.utc)``."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def travel(self, now: datetime) -> None:
        self.now = now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(TIME)


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest_asyncio.fixture
async def redis(server: FakeServer) -> Any:
    client = FakeAsyncRedis(server=server, decode_responses=True)
    yield client
    await client.aclose()


def make_scheduler(
    redis_client: Any, clock: FrozenClock, **options: Any
) -> RedisScheduler:
    options.setdefault("namespace", NAMESPACE)
    options.setdefault("cas_delay", 0.01)
    options.setdefault("poll_delay", 0.01)
    return RedisScheduler(redis_client, clock=clock, **options)


@pytest_asyncio.fixture
async def scheduler(redis: Any, clock: FrozenClock) -> Any:
    sched = make_scheduler(redis, clock)
    yield sched
    await sched.reset()


@pytest_asyncio.fixture
async def uniq_scheduler(redis: Any, clock: FrozenClock) -> Any:
    sched = make_scheduler(redis, clock, namespace=UNIQ_NAMESPACE, uniq=True)
    yield sched
    await sched.reset()
