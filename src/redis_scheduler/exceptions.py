"""Scheduler exceptions."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

from redis.exceptions import RedisError

if TYPE_CHECKING:
    from collections.abc import Iterator
    from datetime import datetime

logger = logging.getLogger("redis_scheduler")


class SchedulerError(Exception):
    """Root exception for redis-scheduler."""


class CorruptEntryError(SchedulerError):
    """Raised when a stored member cannot be decoded.

    This should basically never happen unless something other than the
    scheduler writes to its keys.
    """

    def __init__(self, entry: str | bytes) -> None:
        self.entry = entry
        super().__init__(f"Invalid schedule entry: {entry!r}")


class ProcessingFailedError(SchedulerError):
    """Raised by ``each`` when a handler reports :class:`Failure`.

    The item has already been put back at its original time.
    """

    def __init__(self, item: str, ready_at: datetime, reason: object = None) -> None:
        self.item = item
        self.ready_at = ready_at
        self.reason = reason

        msg = f"Processing of {item!r} scheduled at {ready_at.isoformat()} failed"
        if reason is not None:
            msg += f" - {reason}"

        super().__init__(msg)


class ConcurrencyError(SchedulerError):
    """Base class for contention-related failures."""


class ClaimContentionError(ConcurrencyError):
    """Raised when a bounded claim loop keeps losing the WATCH race."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"Claim still contended after {attempts} attempt(s)")


class SchedulerStoreError(SchedulerError):
    """Raised when Redis fails for a technical reason."""


@contextmanager
def store_errors(key: str, action: str) -> Iterator[None]:
    """Re-raise any :class:`RedisError` as :class:`SchedulerStoreError`."""
    try:
        yield
    except RedisError as exc:
        logger.error("Redis failure while %s %s: %s", action, key, exc)
        raise SchedulerStoreError(
            f"Technical failure while {action} {key}: {exc}"
        ) from exc
