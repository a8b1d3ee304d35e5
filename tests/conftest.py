"""
Pytest configuration and shared fixtures.

Provides record factories, stores and a fake HTTP session so unit and
integration tests never touch the network or the real database file.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

import pytest

from fritzlog.core.config import Config
from fritzlog.data.schema import LogRecord, Repetition
from fritzlog.store.memory import InMemoryLogStore
from fritzlog.store.sqlite import SqliteLogStore

BERLIN = ZoneInfo("Europe/Berlin")


def _at(hour: int, minute: int, second: int) -> datetime:
    """2023-01-01 hh:mm:ss in the device's zone."""
    return datetime(2023, 1, 1, hour, minute, second, tzinfo=BERLIN)


def _make_log(
    hms: Tuple[int, int, int],
    message_id: int = 1,
    category_id: int = 1,
    repetition: Optional[Tuple[Tuple[int, int, int], int]] = None,
    message: str = "message",
) -> LogRecord:
    """
    Build a LogRecord on 2023-01-01.

    Example:
        make_log((1, 1, 3), 1, 1, ((1, 1, 1), 5))  # 5 repeats since 01:01:01
    """
    rep = None
    if repetition is not None:
        first_seen, count = repetition
        rep = Repetition(first_seen=_at(*first_seen), count=count)
    return LogRecord(
        timestamp=_at(*hms),
        message=message,
        message_id=message_id,
        category_id=category_id,
        repetition=rep,
    )


def _raw_entry(
    date: str = "01.01.23",
    time: str = "01:01:01",
    message: str = "message",
    message_id: str = "1",
    category_id: str = "1",
    help_link: str = "16_000_000",
) -> List[str]:
    return [date, time, message, message_id, category_id, help_link]


def _log_payload(entries: List[List[str]]) -> str:
    return json.dumps({"pid": "log", "data": {"log": entries, "filter": "0"}})


@pytest.fixture
def at():
    return _at


@pytest.fixture
def make_log():
    """Factory fixture: ``make_log((h, m, s), message_id, category_id, ((h, m, s), count))``."""
    return _make_log


@pytest.fixture
def raw_entry():
    """Factory fixture for the device's 6-string log lines."""
    return _raw_entry


@pytest.fixture
def log_payload():
    """Factory fixture for a device log page response body."""
    return _log_payload


@pytest.fixture
def test_config(tmp_path) -> Config:
    """
    Configuration with explicit values (not from .env).
    """
    return Config(
        domain="fritz.test",
        username="fritz3713",
        password="vorab9049",
        timezone="Europe/Berlin",
        refresh_pause_seconds=5,
        database_path=tmp_path / "logs.db3",
        logs_dir=tmp_path / "logs",
        skip_invalid_entries=True,
        log_level="WARNING",
    )


@pytest.fixture
def memory_store() -> InMemoryLogStore:
    return InMemoryLogStore()


@pytest.fixture
def sqlite_store(tmp_path):
    store = SqliteLogStore(tmp_path / "logs.db3", tz=BERLIN)
    yield store
    store.close()


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path):
    """Every store implementation, for contract tests."""
    if request.param == "memory":
        yield InMemoryLogStore()
        return
    store = SqliteLogStore(tmp_path / "contract.db3", tz=BERLIN)
    yield store
    store.close()


class FakeResponse:
    def __init__(self, text: str, status_code: int = 200):
        self.text = text
        self.status_code = status_code


class FakeHttpSession:
    """
    Stand-in for requests.Session.

    Responses are queued per (method, path) through ``route``: a string is a
    200 response body, a (body, status) tuple sets the status, an exception
    instance is raised. Every call is recorded in ``calls``.
    """

    def __init__(self):
        self.verify: Any = True
        self.calls: List[Dict[str, Any]] = []
        self._routes: Dict[Tuple[str, str], List[Any]] = {}

    def route(self, method: str, path: str, *responses: Any) -> None:
        self._routes.setdefault((method, path), []).extend(responses)

    def request(self, method: str, url: str, data=None, timeout=None, **kwargs):
        path = "/" + url.split("/", 3)[3]
        self.calls.append({"method": method, "url": url, "path": path, "data": data})
        queue = self._routes.get((method, path))
        if not queue:
            raise AssertionError(f"unexpected request {method} {url} {data}")
        response = queue.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, tuple):
            return FakeResponse(*response)
        return FakeResponse(response)


@pytest.fixture
def fake_http() -> FakeHttpSession:
    return FakeHttpSession()


def pytest_configure(config):
    """
    Pytest hook for custom configuration.

    Registers custom markers used throughout tests.
    """
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running (deferred CI)"
    )
