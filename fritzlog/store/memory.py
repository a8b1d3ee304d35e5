"""
In-memory store, used for tests and dry runs.
"""

from __future__ import annotations

import logging
import threading
from typing import List, Optional, Sequence

from fritzlog.core.exceptions import StoreError
from fritzlog.data.schema import DeviceRequest, LogRecord, PollUpdate

from .base import LogStore

LOGGER = logging.getLogger(__name__)


class InMemoryLogStore(LogStore):
    """
    Keeps rows in insertion order; reads sort by timestamp.

    Identity-key uniqueness is enforced the same way the SQLite store's unique
    index enforces it.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._rows: List[LogRecord] = []
        self.updates: List[PollUpdate] = []
        self.requests: List[DeviceRequest] = []

    def select_latest(self) -> Optional[LogRecord]:
        with self._lock:
            ordered = self._ordered()
            return ordered[0] if ordered else None

    def append(self, records: Sequence[LogRecord]) -> None:
        with self._lock:
            keys = {row.identity_key for row in self._rows}
            for record in records:
                if record.identity_key in keys:
                    raise StoreError(f"duplicate identity key {record.identity_key}")
                keys.add(record.identity_key)
            self._rows.extend(records)

    def replace(self, old: LogRecord, new: LogRecord) -> None:
        with self._lock:
            matches = [i for i, row in enumerate(self._rows) if row.same_entry(old)]
            if len(matches) != 1:
                LOGGER.error("Replace of %s matched %d rows", old, len(matches))
                raise StoreError(f"replace affected {len(matches)} rows, expected 1")
            clash = any(
                row.same_entry(new)
                for i, row in enumerate(self._rows)
                if i != matches[0]
            )
            if clash:
                raise StoreError(f"duplicate identity key {new.identity_key}")
            self._rows[matches[0]] = new

    def select_logs(self, offset: int = 0, limit: Optional[int] = None) -> List[LogRecord]:
        with self._lock:
            ordered = self._ordered()
        end = None if limit is None else offset + limit
        return ordered[offset:end]

    def count(self) -> int:
        with self._lock:
            return len(self._rows)

    def clear(self) -> None:
        with self._lock:
            self._rows.clear()

    def insert_update(self, update: PollUpdate) -> None:
        with self._lock:
            self.updates.append(update)

    def insert_request(self, request: DeviceRequest) -> None:
        with self._lock:
            self.requests.append(request)

    def _ordered(self) -> List[LogRecord]:
        # Newest timestamp first; on ties the later insert wins, like ORDER BY datetime DESC, id DESC
        indexed = list(enumerate(self._rows))
        indexed.sort(key=lambda item: (item[1].latest_timestamp_ms, item[0]), reverse=True)
        return [row for _, row in indexed]
