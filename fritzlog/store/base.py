"""
Store adapter contract.

A store keeps the persisted, time-ordered log history. It exposes ordered
read/append/update primitives and never decides on its own what is new:
that is the merge engine's job.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from fritzlog.data.schema import DeviceRequest, LogRecord, PollUpdate


class LogStore(ABC):
    @abstractmethod
    def select_latest(self) -> Optional[LogRecord]:
        """Most recent record by timestamp, or None when the store is empty."""
        raise NotImplementedError

    @abstractmethod
    def append(self, records: Sequence[LogRecord]) -> None:
        """
        Append records in the given order.

        Must not reorder or deduplicate. Raises StoreError if a record's
        identity key is already stored.
        """
        raise NotImplementedError

    @abstractmethod
    def replace(self, old: LogRecord, new: LogRecord) -> None:
        """
        Overwrite the unique row with old's identity key with new's fields.

        Raises StoreError unless exactly one row was affected.
        """
        raise NotImplementedError

    @abstractmethod
    def select_logs(self, offset: int = 0, limit: Optional[int] = None) -> List[LogRecord]:
        """Records in descending timestamp order, newest insert first on ties."""
        raise NotImplementedError

    @abstractmethod
    def count(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> None:
        """Remove all log records."""
        raise NotImplementedError

    @abstractmethod
    def insert_update(self, update: PollUpdate) -> None:
        raise NotImplementedError

    @abstractmethod
    def insert_request(self, request: DeviceRequest) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self) -> "LogStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
