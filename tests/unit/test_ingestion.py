"""
Unit tests for archived response ingestion.
"""

import logging

import pytest
from datetime import datetime

from fritzlog.data.ingestion import (
    LogIngestionError,
    SavedResponseSource,
    response_filename,
)


def write_response(directory, captured_at, text, name="logs"):
    path = directory / response_filename(captured_at, name)
    path.write_text(text, encoding="utf-8")
    return path


class TestResponseFilename:
    """Test the archive naming scheme."""

    def test_format(self):
        name = response_filename(datetime(2023, 1, 1, 1, 2, 3, 456789), "logs")

        assert name == "response_2023-01-01_01-02-03.456_logs.txt"


class TestSavedResponseSource:
    """Test replaying an archive directory."""

    def test_missing_directory(self, tmp_path):
        with pytest.raises(LogIngestionError):
            SavedResponseSource(tmp_path / "nope")

    def test_files_in_capture_order(self, tmp_path, log_payload):
        late = write_response(tmp_path, datetime(2023, 1, 2, 0, 0, 0), log_payload([]))
        early = write_response(tmp_path, datetime(2023, 1, 1, 23, 59, 59, 999000), log_payload([]))

        assert SavedResponseSource(tmp_path).files() == [early, late]

    def test_other_requests_are_ignored(self, tmp_path, log_payload):
        write_response(tmp_path, datetime(2023, 1, 1), "<SessionInfo/>", name="login-challenge")
        (tmp_path / "notes.txt").write_text("hello")
        logs = write_response(tmp_path, datetime(2023, 1, 1), log_payload([]))

        assert SavedResponseSource(tmp_path).files() == [logs]

    def test_ingest_yields_entries(self, tmp_path, raw_entry, log_payload):
        write_response(
            tmp_path,
            datetime(2023, 1, 1),
            log_payload([raw_entry(time="01:01:02"), raw_entry(time="01:01:01")]),
        )

        [(path, entries)] = list(SavedResponseSource(tmp_path).ingest())

        assert [e.time for e in entries] == ["01:01:02", "01:01:01"]

    def test_malformed_file_is_skipped(self, tmp_path, raw_entry, log_payload, caplog):
        write_response(tmp_path, datetime(2023, 1, 1, 0, 0, 0), "<html>")
        write_response(tmp_path, datetime(2023, 1, 1, 0, 0, 1), log_payload([raw_entry()]))

        with caplog.at_level(logging.WARNING, logger="fritzlog.data.ingestion"):
            batches = list(SavedResponseSource(tmp_path).ingest())

        assert len(batches) == 1
        assert "Skipping" in caplog.text

    def test_undecodable_file_is_skipped(self, tmp_path, raw_entry, log_payload, caplog):
        broken = write_response(tmp_path, datetime(2023, 1, 1, 0, 0, 0), "")
        broken.write_bytes(b"\xff\xfe\x00garbage\x80")
        good = write_response(tmp_path, datetime(2023, 1, 1, 0, 0, 1), log_payload([raw_entry()]))

        with caplog.at_level(logging.WARNING, logger="fritzlog.data.ingestion"):
            batches = list(SavedResponseSource(tmp_path).ingest())

        assert [path for path, _ in batches] == [good]
        assert "Error reading" in caplog.text

    def test_impossible_capture_time_is_skipped(self, tmp_path, log_payload, caplog):
        (tmp_path / "response_2023-13-45_00-00-00.000_logs.txt").write_text(log_payload([]))
        logs = write_response(tmp_path, datetime(2023, 1, 1), log_payload([]))

        with caplog.at_level(logging.WARNING, logger="fritzlog.data.ingestion"):
            files = SavedResponseSource(tmp_path).files()

        assert files == [logs]
        assert "bad capture time" in caplog.text
