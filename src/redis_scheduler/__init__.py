"""Chronological work scheduler backed by Redis sorted sets."""

from __future__ import annotations

from .config import SchedulerConfig, SchedulerKeys
from .exceptions import (
    ClaimContentionError,
    ConcurrencyError,
    CorruptEntryError,
    ProcessingFailedError,
    SchedulerError,
    SchedulerStoreError,
)
from .instrumentation import (
    OperationContext,
    SchedulerHooks,
    SchedulerOperation,
    get_scheduler_hooks,
    set_scheduler_hooks,
)
from .records import (
    ClaimedEntry,
    Failure,
    ProcessingRecord,
    ProcessingResult,
    ScheduledItem,
    Success,
)
from .scheduler import RedisScheduler
from .worker import SchedulerWorker

__all__ = [
    "RedisScheduler",
    "SchedulerWorker",
    "SchedulerConfig",
    "SchedulerKeys",
    "ClaimedEntry",
    "ProcessingRecord",
    "ScheduledItem",
    "Success",
    "Failure",
    "ProcessingResult",
    "SchedulerHooks",
    "SchedulerOperation",
    "OperationContext",
    "get_scheduler_hooks",
    "set_scheduler_hooks",
    "SchedulerError",
    "CorruptEntryError",
    "ProcessingFailedError",
    "ConcurrencyError",
    "ClaimContentionError",
    "SchedulerStoreError",
]
