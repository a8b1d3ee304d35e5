"""
SQLite-backed store.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import tzinfo
from pathlib import Path
from typing import List, Optional, Sequence, Union

from fritzlog.core.config import config
from fritzlog.core.exceptions import StoreError
from fritzlog.data.schema import DeviceRequest, LogRecord, PollUpdate
from fritzlog.data.timestamps import to_utc_millis

from .base import LogStore

LOGGER = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS "logs"
(
    "id"                  INTEGER PRIMARY KEY,
    "datetime"            INTEGER NOT NULL,
    "message"             TEXT    NOT NULL,
    "message_id"          INTEGER NOT NULL,
    "category_id"         INTEGER NOT NULL,
    "repetition_datetime" INTEGER NULL,
    "repetition_count"    INTEGER NULL,
    CHECK (("repetition_datetime" IS NULL) = ("repetition_count" IS NULL))
);

CREATE UNIQUE INDEX IF NOT EXISTS "logs_identity"
    ON "logs" (COALESCE("repetition_datetime", "datetime"), "message_id", "category_id");

CREATE INDEX IF NOT EXISTS "logs_datetime" ON "logs" ("datetime");

CREATE TABLE IF NOT EXISTS "requests"
(
    "id"            INTEGER PRIMARY KEY,
    "datetime"      INTEGER NOT NULL,
    "name"          TEXT    NOT NULL,
    "url"           TEXT    NOT NULL,
    "method"        TEXT    NOT NULL,
    "duration_ms"   INTEGER NOT NULL,
    "response_code" INTEGER NULL,
    "session_id"    TEXT    NULL
);

CREATE TABLE IF NOT EXISTS "updates"
(
    "id"            INTEGER PRIMARY KEY,
    "datetime"      INTEGER NOT NULL,
    "upserted_rows" INTEGER NOT NULL
);
"""

_LOG_COLUMNS = (
    '"datetime", "message", "message_id", "category_id", '
    '"repetition_datetime", "repetition_count"'
)


class SqliteLogStore(LogStore):
    """
    SQLite implementation of the store contract.

    Design notes:
    - Timestamps are stored as UTC unix milliseconds.
    - A unique expression index over the identity key
      (COALESCE(repetition_datetime, datetime), message_id, category_id)
      guarantees at most one row per logical entry.
    - append() is a single transaction: either every record lands or none.
    - replace() rolls back unless exactly one row was updated.
    """

    _BUSY_TIMEOUT_MS = 5000

    def __init__(self, filename: Union[str, Path, None] = None, tz: Optional[tzinfo] = None) -> None:
        self._filename = str(filename) if filename is not None else ":memory:"
        self._tz = tz if tz is not None else config.tzinfo
        self._lock = threading.RLock()
        LOGGER.info("Opening SQLite database at %s", self._filename)
        try:
            self._connection = sqlite3.connect(self._filename, check_same_thread=False)
            self._connection.row_factory = sqlite3.Row
            self._connection.execute(f"PRAGMA busy_timeout = {self._BUSY_TIMEOUT_MS}")
            self._connection.executescript(_SCHEMA)
        except sqlite3.Error as e:
            raise StoreError(f"cannot open database {self._filename}: {e}") from e

    def close(self) -> None:
        with self._lock:
            LOGGER.info("Closing SQLite database at %s", self._filename)
            self._connection.close()

    def select_latest(self) -> Optional[LogRecord]:
        rows = self._fetch_logs(0, 1)
        return rows[0] if rows else None

    def append(self, records: Sequence[LogRecord]) -> None:
        if not records:
            return
        params = [record.to_row() for record in records]
        with self._lock:
            try:
                with self._connection:
                    self._connection.executemany(
                        f'INSERT INTO "logs" ({_LOG_COLUMNS}) '
                        "VALUES (:datetime, :message, :message_id, :category_id, "
                        ":repetition_datetime, :repetition_count)",
                        params,
                    )
            except sqlite3.IntegrityError as e:
                raise StoreError(f"append violates log identity: {e}") from e
            except (sqlite3.Error, OverflowError) as e:
                raise StoreError(f"append failed: {e}") from e
        LOGGER.debug("Appended %d log rows", len(params))

    def replace(self, old: LogRecord, new: LogRecord) -> None:
        earliest, message_id, category_id = old.identity_key
        params = dict(new.to_row())
        params.update(
            old_earliest=earliest,
            old_message_id=message_id,
            old_category_id=category_id,
        )
        with self._lock:
            try:
                with self._connection:
                    cursor = self._connection.execute(
                        """
                        UPDATE "logs"
                        SET "datetime" = :datetime,
                            "message" = :message,
                            "message_id" = :message_id,
                            "category_id" = :category_id,
                            "repetition_datetime" = :repetition_datetime,
                            "repetition_count" = :repetition_count
                        WHERE COALESCE("repetition_datetime", "datetime") = :old_earliest
                          AND "message_id" = :old_message_id
                          AND "category_id" = :old_category_id
                        """,
                        params,
                    )
                    if cursor.rowcount != 1:
                        LOGGER.error("Replace of %s matched %d rows", old, cursor.rowcount)
                        raise StoreError(f"replace affected {cursor.rowcount} rows, expected 1")
            except sqlite3.IntegrityError as e:
                raise StoreError(f"replace violates log identity: {e}") from e
            except (sqlite3.Error, OverflowError) as e:
                raise StoreError(f"replace failed: {e}") from e

    def select_logs(self, offset: int = 0, limit: Optional[int] = None) -> List[LogRecord]:
        return self._fetch_logs(offset, limit)

    def count(self) -> int:
        with self._lock:
            row = self._connection.execute('SELECT COUNT(*) FROM "logs"').fetchone()
        return int(row[0])

    def clear(self) -> None:
        with self._lock:
            with self._connection:
                self._connection.execute('DELETE FROM "logs"')

    def insert_update(self, update: PollUpdate) -> None:
        with self._lock:
            try:
                with self._connection:
                    self._connection.execute(
                        'INSERT INTO "updates" ("datetime", "upserted_rows") VALUES (?, ?)',
                        (to_utc_millis(update.datetime), update.upserted_rows),
                    )
            except sqlite3.Error as e:
                raise StoreError(f"insert update failed: {e}") from e

    def insert_request(self, request: DeviceRequest) -> None:
        with self._lock:
            try:
                with self._connection:
                    self._connection.execute(
                        'INSERT INTO "requests" '
                        '("datetime", "name", "url", "method", "duration_ms", "response_code", "session_id") '
                        "VALUES (?, ?, ?, ?, ?, ?, ?)",
                        (
                            to_utc_millis(request.datetime),
                            request.name,
                            request.url,
                            request.method,
                            request.duration_ms,
                            request.response_code,
                            request.session_id,
                        ),
                    )
            except sqlite3.Error as e:
                raise StoreError(f"insert request failed: {e}") from e

    def count_updates(self) -> int:
        with self._lock:
            row = self._connection.execute('SELECT COUNT(*) FROM "updates"').fetchone()
        return int(row[0])

    def count_requests(self) -> int:
        with self._lock:
            row = self._connection.execute('SELECT COUNT(*) FROM "requests"').fetchone()
        return int(row[0])

    def _fetch_logs(self, offset: int, limit: Optional[int]) -> List[LogRecord]:
        # SQLite treats a negative LIMIT as "no limit"
        limit = -1 if limit is None else limit
        with self._lock:
            try:
                rows = self._connection.execute(
                    f'SELECT {_LOG_COLUMNS} FROM "logs" '
                    'ORDER BY "datetime" DESC, "id" DESC LIMIT ? OFFSET ?',
                    (limit, offset),
                ).fetchall()
            except sqlite3.Error as e:
                raise StoreError(f"select logs failed: {e}") from e
        return [LogRecord.from_row(dict(row), self._tz) for row in rows]
