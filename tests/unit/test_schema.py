"""
Unit tests for the canonical log schema.

Tests the Pydantic models, identity keys and the storage row format.
"""

import pytest
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from fritzlog.core.exceptions import StoreError
from fritzlog.data.schema import (
    DeviceRequest,
    LogRecord,
    PollUpdate,
    RawLogEntry,
    Repetition,
)

BERLIN = ZoneInfo("Europe/Berlin")


class TestRawLogEntry:
    """Test RawLogEntry model."""

    def test_from_fields(self, raw_entry):
        entry = RawLogEntry.from_fields(raw_entry(message="WLAN-Gerät angemeldet"))

        assert entry.date == "01.01.23"
        assert entry.time == "01:01:01"
        assert entry.message == "WLAN-Gerät angemeldet"
        assert entry.message_id == "1"
        assert entry.help_link == "16_000_000"

    def test_to_fields_round_trip(self, raw_entry):
        fields = raw_entry()

        assert RawLogEntry.from_fields(fields).to_fields() == fields

    def test_wrong_field_count(self):
        with pytest.raises(ValueError):
            RawLogEntry.from_fields(["01.01.23", "01:01:01"])


class TestRepetition:
    """Test Repetition model."""

    def test_count_must_be_at_least_two(self, at):
        with pytest.raises(ValidationError):
            Repetition(first_seen=at(1, 1, 1), count=1)

    def test_first_seen_must_be_aware(self):
        with pytest.raises(ValidationError):
            Repetition(first_seen=datetime(2023, 1, 1, 1, 1, 1), count=2)


class TestLogRecord:
    """Test LogRecord model."""

    def test_minimal_record(self, at):
        record = LogRecord(
            timestamp=at(1, 1, 1),
            message="Internetverbindung wurde erfolgreich hergestellt.",
            message_id=23,
            category_id=1,
        )

        assert record.repetition is None
        assert record.earliest_timestamp == at(1, 1, 1)

    def test_naive_timestamp_rejected(self):
        with pytest.raises(ValidationError):
            LogRecord(
                timestamp=datetime(2023, 1, 1, 1, 1, 1),
                message="x",
                message_id=1,
                category_id=1,
            )

    def test_first_seen_after_timestamp_rejected(self, make_log):
        with pytest.raises(ValidationError):
            make_log((1, 1, 1), repetition=((1, 1, 2), 2))

    def test_records_are_immutable(self, make_log):
        record = make_log((1, 1, 1))

        with pytest.raises(ValidationError):
            record.message_id = 2

    def test_earliest_timestamp_uses_first_seen(self, make_log, at):
        record = make_log((1, 1, 5), repetition=((1, 1, 1), 3))

        assert record.earliest_timestamp == at(1, 1, 1)
        assert record.latest_timestamp_ms - record.earliest_timestamp_ms == 4000

    def test_identity_key_is_utc_millis(self, make_log):
        record = make_log((1, 1, 1), message_id=23, category_id=4)

        # 2023-01-01T00:01:01Z
        assert record.identity_key == (1672531261000, 23, 4)

    def test_identity_key_ignores_zone_of_representation(self, make_log):
        record = make_log((1, 1, 1))
        as_utc = record.model_copy(update={"timestamp": record.timestamp.astimezone(timezone.utc)})

        assert as_utc.identity_key == record.identity_key

    def test_same_entry_across_repetition_updates(self, make_log):
        """A repeating entry keeps its identity while count and timestamp grow."""
        first = make_log((1, 1, 2), repetition=((1, 1, 1), 2))
        later = make_log((1, 1, 9), repetition=((1, 1, 1), 7))

        assert first.same_entry(later)
        assert first != later

    def test_different_ids_are_different_entries(self, make_log):
        assert not make_log((1, 1, 1), 1, 1).same_entry(make_log((1, 1, 1), 1, 2))
        assert not make_log((1, 1, 1), 1, 1).same_entry(make_log((1, 1, 1), 2, 1))

    def test_str_without_repetition(self, make_log):
        assert str(make_log((1, 1, 1), 23, 1)) == "[  23,  1] 2023-01-01 01:01:01+01:00"

    def test_str_with_repetition(self, make_log):
        record = make_log((1, 1, 3), 23, 1, repetition=((1, 1, 1), 5))

        assert str(record) == (
            "[  23,  1] 2023-01-01 01:01:03+01:00 ( 5 since 2023-01-01 01:01:01+01:00)"
        )


class TestStorageRow:
    """Test to_row/from_row."""

    def test_to_row_without_repetition(self, make_log):
        row = make_log((1, 1, 1), 23, 4, message="hello").to_row()

        assert row == {
            "datetime": 1672531261000,
            "message": "hello",
            "message_id": 23,
            "category_id": 4,
            "repetition_datetime": None,
            "repetition_count": None,
        }

    def test_to_row_with_repetition(self, make_log):
        row = make_log((1, 1, 3), repetition=((1, 1, 1), 5)).to_row()

        assert row["datetime"] == 1672531263000
        assert row["repetition_datetime"] == 1672531261000
        assert row["repetition_count"] == 5

    def test_from_row_restores_record(self, make_log):
        record = make_log((1, 1, 3), repetition=((1, 1, 1), 5))

        restored = LogRecord.from_row(record.to_row(), BERLIN)

        assert restored == record
        assert restored.timestamp.tzinfo == BERLIN

    def test_from_row_defaults_to_utc(self, make_log):
        restored = LogRecord.from_row(make_log((1, 1, 1)).to_row())

        assert restored.timestamp.utcoffset().total_seconds() == 0

    def test_from_row_half_repetition_rejected(self, make_log):
        row = make_log((1, 1, 1)).to_row()
        row["repetition_count"] = 3

        with pytest.raises(StoreError):
            LogRecord.from_row(row)


class TestMetadataModels:
    """Test PollUpdate and DeviceRequest."""

    def test_poll_update(self):
        update = PollUpdate(datetime=datetime(2023, 1, 1, tzinfo=timezone.utc), upserted_rows=3)

        assert update.upserted_rows == 3

    def test_poll_update_negative_rejected(self):
        with pytest.raises(ValidationError):
            PollUpdate(datetime=datetime(2023, 1, 1, tzinfo=timezone.utc), upserted_rows=-1)

    def test_device_request_defaults(self):
        request = DeviceRequest(
            datetime=datetime(2023, 1, 1, tzinfo=timezone.utc),
            name="logs",
            url="https://fritz.box/data.lua",
            method="POST",
        )

        assert request.duration_ms == 0
        assert request.response_code is None
        assert request.session_id is None
