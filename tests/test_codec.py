"""Tests for the entry codec and record serialisation."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from redis_scheduler import CorruptEntryError, ProcessingRecord
from redis_scheduler.codec import EntryCodec
from redis_scheduler.records import from_score, to_score


class TestEntryCodec:
    def test_non_unique_encoding_prefixes_sequence_id(self) -> None:
        codec = EntryCodec()
        assert codec.encode("a", 7) == "7:a"
        assert codec.decode("7:a") == "a"

    def test_non_unique_requires_sequence_id(self) -> None:
        with pytest.raises(ValueError, match="sequence id"):
            EntryCodec().encode("a")

    @pytest.mark.parametrize(
        ("member", "item"),
        [
            ("12:user:42", "user:42"),
            ("1:with spaces", "with spaces"),
            ("3:", ""),
            ("4:multi\nline", "multi\nline"),
            (b"5:bytes", "bytes"),
        ],
    )
    def test_decode_returns_everything_after_the_prefix(
        self, member: str | bytes, item: str
    ) -> None:
        assert EntryCodec().decode(member) == item

    @pytest.mark.parametrize("member", ["a", ":a", "x1:a", " 1:a", "", b"\xff\xfe"])
    def test_decode_rejects_members_without_numeric_prefix(
        self, member: str | bytes
    ) -> None:
        with pytest.raises(CorruptEntryError) as exc:
            EntryCodec().decode(member)
        assert exc.value.entry == member

    def test_unique_mode_is_identity(self) -> None:
        codec = EntryCodec(unique=True)
        assert codec.encode("a", 7) == "a"
        assert codec.encode("12:a") == "12:a"
        assert codec.decode("12:a") == "12:a"
        assert codec.decode("anything at all") == "anything at all"
        assert codec.decode(b"a") == "a"


class TestProcessingRecord:
    def test_claimed_at_is_stored_as_epoch_seconds(self) -> None:
        claimed_at = datetime(2012, 1, 1, 15, 0, 0, tzinfo=timezone.utc)
        record = ProcessingRecord(item="a", claimed_at=claimed_at, descriptor="d")

        payload = json.loads(record.dump())

        assert payload["item"] == "a"
        assert payload["claimed_at"] == int(claimed_at.timestamp())
        assert payload["descriptor"] == "d"
        assert payload["claim_id"] == record.claim_id

    def test_load_restores_record(self) -> None:
        claimed_at = datetime(2012, 1, 1, 15, 0, 0, tzinfo=timezone.utc)
        record = ProcessingRecord(item="a", claimed_at=claimed_at)

        loaded = ProcessingRecord.load(record.dump())

        assert loaded.model_dump() == record.model_dump()
        assert loaded.claimed_at == claimed_at
        assert loaded.descriptor is None

    def test_claim_ids_are_unique(self) -> None:
        now = datetime.now(timezone.utc)
        first = ProcessingRecord(item="a", claimed_at=now)
        second = ProcessingRecord(item="a", claimed_at=now)
        assert first.dump() != second.dump()

    @pytest.mark.parametrize("raw", ["not json", "{}", '{"item": "a"}'])
    def test_load_rejects_garbage(self, raw: str) -> None:
        with pytest.raises(CorruptEntryError):
            ProcessingRecord.load(raw)


class TestScores:
    def test_round_trip_preserves_aware_datetimes(self) -> None:
        when = datetime(2012, 1, 1, 15, 0, 0, 250000, tzinfo=timezone.utc)
        assert from_score(to_score(when)) == when

    def test_floats_are_epoch_seconds(self) -> None:
        assert to_score(1325430000) == 1325430000.0
        assert from_score(1325430000.0) == datetime(
            2012, 1, 1, 15, 0, 0, tzinfo=timezone.utc
        )

    def test_naive_datetimes_are_rejected(self) -> None:
        with pytest.raises(ValueError, match="aware"):
            to_score(datetime(2012, 1, 1))
