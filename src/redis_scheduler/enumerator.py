"""Paginated, read-only view over the whole schedule."""

from __future__ import annotations

from typing import TYPE_CHECKING, overload

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable

    from .records import ScheduledItem
    from .schedule import Schedule


class ScheduleItems:
    """
    Iterate over every scheduled item, earliest first, regardless of ready time.

    Reads are paginated, so this works for very large schedules, but they
    are not synchronised with writers: an iteration that overlaps with
    claims or inserts may see duplicates or miss items. Use it for
    debugging, never for consumption.

    Supports random access, with the same caveats::

        first = await scheduler.items()[0]
        first_two = await scheduler.items()[0:2]
        all_but_last = await scheduler.items()[:-1]
    """

    def __init__(self, schedule: Schedule, *, page_size: int = 50) -> None:
        self._schedule = schedule
        self._page_size = page_size

    async def __aiter__(self) -> AsyncIterator[ScheduledItem]:
        start = 0
        while start < await self.size():
            page = await self._schedule.range(start, self._page_size)
            if not page:
                break
            for entry in page:
                yield entry
            start += len(page)

    @overload
    def __getitem__(self, key: int) -> Awaitable[ScheduledItem | None]: ...

    @overload
    def __getitem__(self, key: slice) -> Awaitable[list[ScheduledItem]]: ...

    def __getitem__(
        self, key: int | slice
    ) -> Awaitable[ScheduledItem | None] | Awaitable[list[ScheduledItem]]:
        if isinstance(key, slice):
            if key.step not in (None, 1):
                raise ValueError("ScheduleItems slices do not support a step")
            return self._schedule.slice(key.start or 0, key.stop)
        return self._schedule.at(key)

    async def range(self, start: int, count: int) -> list[ScheduledItem]:
        """Return up to ``count`` items starting at position ``start``."""
        return await self._schedule.range(start, count)

    async def size(self) -> int:
        return await self._schedule.size()
