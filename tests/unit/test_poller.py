"""
Unit tests for the poll driver.

The device client, clock and sleep are faked; polls run instantly.
"""

import logging

import pytest

from fritzlog.core.exceptions import DeviceError
from fritzlog.data.schema import RawLogEntry
from fritzlog.merge.engine import MergeCase, UnsortedBatch
from backend.device.session import DeviceSession, SessionId
from backend.poller import LogPoller, merge_raw_batch, run_poller


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class FakeClient:
    """
    Serves queued fetch results; an exception instance is raised instead.

    ``fetch_duration`` advances the clock on every fetch.
    """

    def __init__(self, clock, batches):
        self.clock = clock
        self.batches = list(batches)
        self.fetch_duration = []
        self.logged_out = []
        self.logout_error = None

    def login(self):
        return DeviceSession(SessionId.parse("0de8afc227e5abeb"))

    def ensure_session(self, session):
        return session if session is not None else self.login()

    def fetch_logs(self, session):
        if self.fetch_duration:
            self.clock.now += self.fetch_duration.pop(0)
        batch = self.batches.pop(0)
        if isinstance(batch, Exception):
            raise batch
        return batch

    def logout(self, session):
        self.logged_out.append(session)
        if self.logout_error is not None:
            raise self.logout_error


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def device_batch(raw_entry):
    """Build a newest-first device batch from (time, message_id) pairs, oldest first."""
    def build(*entries):
        return [
            RawLogEntry.from_fields(raw_entry(time=t, message_id=str(mid)))
            for t, mid in reversed(entries)
        ]
    return build


def make_poller(client, store, settings, clock):
    return LogPoller(client=client, store=store, settings=settings, sleep=clock.sleep, clock=clock)


class TestMergeRawBatch:
    """Test normalizing and merging a device batch."""

    def test_device_order_is_reversed(self, memory_store, test_config, device_batch):
        outcome = merge_raw_batch(
            memory_store, device_batch(("01:01:01", 1), ("01:01:02", 2)), test_config
        )

        assert outcome.fetched == 2
        assert outcome.upserted == 2
        assert [r.message_id for r in memory_store.select_logs()] == [2, 1]

    def test_records_poll_update(self, memory_store, test_config, device_batch):
        merge_raw_batch(memory_store, device_batch(("01:01:01", 1)), test_config)
        merge_raw_batch(memory_store, device_batch(("01:01:01", 1)), test_config)

        assert [u.upserted_rows for u in memory_store.updates] == [1, 0]

    def test_invalid_entries_are_skipped(self, memory_store, test_config, raw_entry):
        entries = [
            RawLogEntry.from_fields(raw_entry(time="01:01:02")),
            RawLogEntry.from_fields(raw_entry(message_id="bad")),
        ]

        outcome = merge_raw_batch(memory_store, entries, test_config)

        assert outcome.skipped == 1
        assert outcome.upserted == 1

    def test_empty_batch(self, memory_store, test_config):
        outcome = merge_raw_batch(memory_store, [], test_config)

        assert outcome.result.case == MergeCase.EMPTY_BATCH
        assert memory_store.updates[0].upserted_rows == 0


class TestLogPoller:
    """Test the poll loop."""

    def test_poll_once(self, memory_store, test_config, clock, device_batch):
        client = FakeClient(clock, [device_batch(("01:01:01", 1))])
        poller = make_poller(client, memory_store, test_config, clock)

        outcome = poller.poll_once()

        assert outcome.upserted == 1
        assert poller.session is not None

    def test_ticks_are_spaced(self, memory_store, test_config, clock, device_batch):
        batch = device_batch(("01:01:01", 1))
        client = FakeClient(clock, [batch, batch, batch])

        completed = make_poller(client, memory_store, test_config, clock).run(max_polls=3)

        assert completed == 3
        assert clock.sleeps == [5, 5]

    def test_missed_ticks_are_skipped(self, memory_store, test_config, clock, device_batch):
        batch = device_batch(("01:01:01", 1))
        client = FakeClient(clock, [batch, batch, batch])
        client.fetch_duration = [12, 0, 0]

        make_poller(client, memory_store, test_config, clock).run(max_polls=3)

        assert clock.sleeps == [3]

    def test_fetch_errors_are_retried(self, memory_store, test_config, clock, device_batch, caplog):
        client = FakeClient(clock, [DeviceError("device restarting"), device_batch(("01:01:01", 1))])

        with caplog.at_level(logging.WARNING, logger="backend.poller"):
            completed = make_poller(client, memory_store, test_config, clock).run(max_polls=1)

        assert completed == 1
        assert memory_store.count() == 1
        assert "device restarting" in caplog.text
        assert clock.sleeps == [5]

    def test_merge_errors_stop_the_loop(self, memory_store, test_config, clock, raw_entry):
        # Device order is newest first; this batch is oldest first, so it arrives unsorted
        unsorted = [
            RawLogEntry.from_fields(raw_entry(time="01:01:01", message_id="1")),
            RawLogEntry.from_fields(raw_entry(time="01:01:02", message_id="2")),
        ]
        client = FakeClient(clock, [unsorted])

        with pytest.raises(UnsortedBatch):
            make_poller(client, memory_store, test_config, clock).run(max_polls=3)

        assert memory_store.count() == 0


class TestRunPoller:
    """Test login/logout around the loop."""

    def test_logs_out_after_loop(self, memory_store, test_config, device_batch):
        client = FakeClient(FakeClock(), [device_batch(("01:01:01", 1))])

        completed = run_poller(client, memory_store, test_config, max_polls=1)

        assert completed == 1
        assert len(client.logged_out) == 1

    def test_logs_out_after_failure(self, memory_store, test_config, raw_entry):
        unsorted = [
            RawLogEntry.from_fields(raw_entry(time="01:01:01", message_id="1")),
            RawLogEntry.from_fields(raw_entry(time="01:01:02", message_id="2")),
        ]
        client = FakeClient(FakeClock(), [unsorted])

        with pytest.raises(UnsortedBatch):
            run_poller(client, memory_store, test_config, max_polls=1)

        assert len(client.logged_out) == 1

    def test_logout_error_is_logged(self, memory_store, test_config, device_batch, caplog):
        client = FakeClient(FakeClock(), [device_batch(("01:01:01", 1))])
        client.logout_error = DeviceError("gone")

        with caplog.at_level(logging.WARNING, logger="backend.poller"):
            run_poller(client, memory_store, test_config, max_polls=1)

        assert "Couldn't log out" in caplog.text
