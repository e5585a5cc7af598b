"""Value types passed between the scheduler components."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer

from .exceptions import CorruptEntryError


def to_score(when: datetime | float) -> float:
    """Convert a ready time into a sorted-set score (epoch seconds)."""
    if isinstance(when, datetime):
        if when.tzinfo is None:
            raise ValueError("Naive datetimes are ambiguous; pass an aware datetime")
        return when.timestamp()
    return float(when)


def from_score(score: float) -> datetime:
    return datetime.fromtimestamp(float(score), tz=timezone.utc)


class ScheduledItem(NamedTuple):
    """An ``(item, ready_at)`` pair as stored in the schedule."""

    item: str
    ready_at: datetime


class ProcessingRecord(BaseModel):
    """A claimed item that has not been completed yet.

    Serialised to JSON and kept in the processing set until the consumer
    cleans it up. ``claimed_at`` is stored with one-second precision.
    ``descriptor`` is never interpreted by the scheduler.
    """

    model_config = ConfigDict(frozen=True)

    item: str
    claimed_at: datetime
    descriptor: str | None = None
    claim_id: str = Field(default_factory=lambda: uuid.uuid4().hex)

    @field_serializer("claimed_at")
    def _serialize_claimed_at(self, value: datetime) -> int:
        return int(value.timestamp())

    def dump(self) -> str:
        return self.model_dump_json()

    @classmethod
    def load(cls, raw: str | bytes) -> ProcessingRecord:
        try:
            return cls.model_validate_json(raw)
        except ValidationError as err:
            raise CorruptEntryError(raw) from err


@dataclass(frozen=True)
class ClaimedEntry:
    """Result of a successful claim.

    ``handle`` is the exact processing-set member to remove on completion.
    """

    item: str
    ready_at: datetime
    record: ProcessingRecord
    handle: str


@dataclass(frozen=True)
class Success:
    """Handler outcome: the item is done."""


@dataclass(frozen=True)
class Failure:
    """Handler outcome: put the item back at its original time."""

    reason: object = None


ProcessingResult = Success | Failure
