"""Scheduler configuration and Redis key layout."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field

POLL_DELAY = 1.0  # seconds
CAS_DELAY = 0.5  # seconds
PAGE_SIZE = 50


@dataclass(frozen=True)
class SchedulerKeys:
    """Redis keys owned by one namespace.

    The namespace is a raw prefix, so ``"scheduler/"`` yields
    ``scheduler/q``, ``scheduler/processing`` and ``scheduler/counter``.
    """

    queue: str
    processing: str
    counter: str

    @classmethod
    def for_namespace(cls, namespace: str) -> SchedulerKeys:
        return cls(
            queue=f"{namespace}q",
            processing=f"{namespace}processing",
            counter=f"{namespace}counter",
        )

    def all(self) -> tuple[str, str, str]:
        return (self.queue, self.processing, self.counter)


class SchedulerConfig(BaseModel):
    """Options for :class:`~redis_scheduler.scheduler.RedisScheduler`.

    ``uniq`` must stay fixed for the lifetime of a namespace. Mixing unique
    and non-unique access against the same keys is undefined.

    ``blocking`` only decides whether ``each`` waits for future items. A
    non-blocking ``each`` may still pause briefly while it loses claim races
    to other consumers.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    namespace: str = ""
    blocking: bool = False
    uniq: bool = False
    poll_delay: float = Field(default=POLL_DELAY, gt=0)
    cas_delay: float = Field(default=CAS_DELAY, ge=0)
    max_claim_attempts: int | None = Field(
        default=None, ge=1, description="None retries contended claims forever"
    )
    page_size: int = Field(default=PAGE_SIZE, ge=1)

    @property
    def keys(self) -> SchedulerKeys:
        return SchedulerKeys.for_namespace(self.namespace)
