"""Entry codec for members of the schedule sorted set."""

from __future__ import annotations

import re

from .exceptions import CorruptEntryError

_ENTRY_RE = re.compile(r"^\d+:(.*)\Z", re.DOTALL)


class EntryCodec:
    """Encodes items into sorted-set members and back.

    Non-unique members are ``"{sequence_id}:{item}"`` so the same item can be
    scheduled any number of times. Unique members are the bare item, which
    lets ``ZADD`` update the score of an existing entry instead.
    """

    def __init__(self, *, unique: bool = False) -> None:
        self.unique = unique

    def encode(self, item: str, sequence_id: int | None = None) -> str:
        if self.unique:
            return item
        if sequence_id is None:
            raise ValueError("Non-unique entries require a sequence id")
        return f"{sequence_id}:{item}"

    def decode(self, member: str | bytes) -> str:
        if isinstance(member, bytes):
            try:
                member = member.decode("utf-8")
            except UnicodeDecodeError as err:
                raise CorruptEntryError(member) from err
        if self.unique:
            return member
        match = _ENTRY_RE.match(member)
        if match is None:
            raise CorruptEntryError(member)
        return match.group(1)
