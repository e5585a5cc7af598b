"""Hooks around scheduler operations.

Every store-touching step of the scheduler runs as one of the
:data:`SchedulerOperation` values. Hooks registered on the current
:class:`SchedulerHooks` wrap those steps, which is where tracing, metrics
or audit logging plug in::

    async def timed(context: OperationContext, proceed):
        started = time.monotonic()
        try:
            return await proceed()
        finally:
            stats.timing(context.operation, time.monotonic() - started)

    get_scheduler_hooks().register(timed, operations={"scheduler.claim"})
"""

from __future__ import annotations

import functools
import logging
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Literal,
    Protocol,
    TypeVar,
    cast,
    get_args,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable
    from datetime import datetime

logger = logging.getLogger("redis_scheduler.instrumentation")

SchedulerOperation = Literal[
    "scheduler.schedule",
    "scheduler.claim",
    "scheduler.process",
    "scheduler.reschedule",
    "scheduler.reset",
]
OPERATIONS: frozenset[str] = frozenset(get_args(SchedulerOperation))

_T = TypeVar("_T")


@dataclass(frozen=True)
class OperationContext:
    """What a hook gets to see about the operation it wraps.

    ``key`` is the schedule key, so hooks can tell namespaces apart.
    ``item`` and ``ready_at`` are unset for claims (the item is not known
    before the claim runs) and for resets.
    """

    operation: SchedulerOperation
    key: str
    item: str | None = None
    ready_at: datetime | None = None
    descriptor: str | None = None


class SchedulerHook(Protocol):
    async def __call__(
        self, context: OperationContext, proceed: Callable[[], Awaitable[Any]]
    ) -> Any:
        """Wrap one operation. Must await ``proceed`` exactly once."""
        ...


@dataclass
class HookRegistration:
    """A hook plus the operations and schedule key it is limited to."""

    hook: SchedulerHook
    operations: frozenset[SchedulerOperation] = frozenset()
    key: str | None = None
    priority: int = 0
    enabled: bool = True
    _order: int = field(default=0, repr=False)

    def applies_to(self, context: OperationContext) -> bool:
        if not self.enabled:
            return False
        if self.operations and context.operation not in self.operations:
            return False
        return self.key is None or self.key == context.key


class SchedulerHooks:
    """Hooks for the current context; lower ``priority`` wraps further out."""

    def __init__(self) -> None:
        self._registrations: list[HookRegistration] = []
        self._counter = 0

    def __len__(self) -> int:
        return len(self._registrations)

    def register(
        self,
        hook: SchedulerHook,
        *,
        operations: Iterable[SchedulerOperation] | None = None,
        key: str | None = None,
        priority: int = 0,
    ) -> HookRegistration:
        """
        Register ``hook``.

        Args:
            hook: Async callable ``(context, proceed)``.
            operations: Limit the hook to these operations (default: all).
            key: Limit the hook to one schedule key, i.e. one namespace.
            priority: Ordering; equal priorities keep registration order.

        Raises:
            ValueError: ``operations`` names something the scheduler never runs.
        """
        wanted = frozenset(operations or ())
        unknown = wanted - OPERATIONS
        if unknown:
            raise ValueError(f"Unknown scheduler operation(s): {sorted(unknown)}")

        self._counter += 1
        registration = HookRegistration(
            hook,
            operations=cast("frozenset[SchedulerOperation]", wanted),
            key=key,
            priority=priority,
            _order=self._counter,
        )
        self._registrations.append(registration)
        self._registrations.sort(key=lambda r: (r.priority, r._order))
        return registration

    def unregister(self, registration: HookRegistration) -> None:
        if registration in self._registrations:
            self._registrations.remove(registration)

    def clear(self) -> None:
        self._registrations.clear()

    async def run(
        self, context: OperationContext, proceed: Callable[[], Awaitable[_T]]
    ) -> _T:
        """Run ``proceed`` wrapped by every hook that applies to ``context``."""
        call: Callable[[], Awaitable[Any]] = proceed
        for registration in reversed(self._registrations):
            if registration.applies_to(context):
                call = functools.partial(registration.hook, context, call)
        if call is not proceed:
            logger.debug("Running %s through hooks", context.operation)
        return cast("_T", await call())


_hooks_var: ContextVar[SchedulerHooks | None] = ContextVar(
    "redis_scheduler_hooks", default=None
)


def get_scheduler_hooks() -> SchedulerHooks:
    """Hooks for the current context, created empty on first use."""
    hooks = _hooks_var.get()
    if hooks is None:
        hooks = SchedulerHooks()
        _hooks_var.set(hooks)
    return hooks


def set_scheduler_hooks(hooks: SchedulerHooks) -> None:
    _hooks_var.set(hooks)
