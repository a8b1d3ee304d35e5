"""
Canonical internal log schema for fritzlog.

This module defines the normalized representation of a single device log
event. Raw device entries are converted to this schema by the normalizer and
every other component (merge engine, stores, CLI) works on it.

Design rationale:
- Records are immutable; an update to a repeating entry is a new record
  with the same identity key
- Timestamps are timezone-aware; identity keys and storage use UTC
  milliseconds so the host's time zone never matters
- The device's repetition annotation is structured data, never part of the
  message text
"""

from datetime import datetime, timezone, tzinfo
from typing import Any, Dict, Optional, Tuple

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, model_validator

from fritzlog.core.exceptions import StoreError
from fritzlog.data.timestamps import from_utc_millis, to_utc_millis

# (earliest timestamp in UTC milliseconds, message id, category id)
IdentityKey = Tuple[int, int, int]


class RawLogEntry(BaseModel):
    """
    One log line exactly as the device delivers it.

    The device sends six strings per line:
    ``[date, time, message, message_id, category_id, help_link]``
    e.g. ``["31.12.23", "23:59:59", "...", "23", "1", "16_000_000"]``.
    """

    model_config = ConfigDict(frozen=True)

    date: str
    time: str
    message: str
    message_id: str
    category_id: str
    help_link: str = ""

    @classmethod
    def from_fields(cls, fields: Any) -> "RawLogEntry":
        """Build from the device's 6-element list."""
        date, time, message, message_id, category_id, help_link = fields
        return cls(
            date=date,
            time=time,
            message=message,
            message_id=message_id,
            category_id=category_id,
            help_link=help_link,
        )

    def to_fields(self) -> list:
        return [
            self.date,
            self.time,
            self.message,
            self.message_id,
            self.category_id,
            self.help_link,
        ]


class Repetition(BaseModel):
    """
    The device collapsed several identical messages into one line.

    Attributes:
        first_seen: When the message was logged for the first time
        count: How many times it was logged (always at least 2)
    """

    model_config = ConfigDict(frozen=True)

    first_seen: AwareDatetime = Field(..., description="First occurrence")
    count: int = Field(..., ge=2, description="Number of occurrences")


class LogRecord(BaseModel):
    """
    Canonical representation of one device log event.

    Attributes:
        timestamp: When the device last reported the event (updated every
            time a repetition is added)
        message: Message text with the repetition annotation stripped
        message_id: Device-assigned message template id
        category_id: Device-assigned subsystem id
        repetition: Present when the device collapsed repeated messages

    Notes:
        - Two records describe the same logical entry iff their
          identity_key is equal; only timestamp and repetition.count may
          differ between them
        - repetition.first_seen is never after timestamp
    """

    model_config = ConfigDict(frozen=True)

    timestamp: AwareDatetime = Field(..., description="Last reported time")
    message: str = Field(..., description="Message text")
    message_id: int = Field(..., description="Message template id")
    category_id: int = Field(..., description="Subsystem id")
    repetition: Optional[Repetition] = Field(default=None)

    @model_validator(mode="after")
    def _first_seen_not_after_timestamp(self) -> "LogRecord":
        if self.repetition is not None and self.repetition.first_seen > self.timestamp:
            raise ValueError(
                f"repetition first seen at {self.repetition.first_seen} "
                f"is after timestamp {self.timestamp}"
            )
        return self

    @property
    def earliest_timestamp(self) -> datetime:
        if self.repetition is not None:
            return self.repetition.first_seen
        return self.timestamp

    @property
    def earliest_timestamp_ms(self) -> int:
        return to_utc_millis(self.earliest_timestamp)

    @property
    def latest_timestamp_ms(self) -> int:
        return to_utc_millis(self.timestamp)

    @property
    def identity_key(self) -> IdentityKey:
        return (self.earliest_timestamp_ms, self.message_id, self.category_id)

    def same_entry(self, other: "LogRecord") -> bool:
        """True if both records describe the same logical entry."""
        return self.identity_key == other.identity_key

    def to_row(self) -> Dict[str, Any]:
        """Flatten into the storage row format (UTC milliseconds)."""
        repetition = self.repetition
        return {
            "datetime": self.latest_timestamp_ms,
            "message": self.message,
            "message_id": self.message_id,
            "category_id": self.category_id,
            "repetition_datetime": (
                to_utc_millis(repetition.first_seen) if repetition else None
            ),
            "repetition_count": repetition.count if repetition else None,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any], tz: tzinfo = timezone.utc) -> "LogRecord":
        """
        Rebuild a record from a storage row.

        Args:
            row: Mapping with the keys produced by to_row()
            tz: Zone to express timestamps in

        Raises:
            StoreError: If only one of the repetition columns is set
        """
        rep_datetime = row.get("repetition_datetime")
        rep_count = row.get("repetition_count")
        if (rep_datetime is None) != (rep_count is None):
            raise StoreError(
                f"invalid repetition columns ({rep_datetime!r}, {rep_count!r})"
            )

        repetition = None
        if rep_datetime is not None:
            repetition = Repetition(
                first_seen=from_utc_millis(rep_datetime, tz),
                count=rep_count,
            )

        return cls(
            timestamp=from_utc_millis(row["datetime"], tz),
            message=row["message"],
            message_id=row["message_id"],
            category_id=row["category_id"],
            repetition=repetition,
        )

    def __str__(self) -> str:
        text = f"[{self.message_id:>4}, {self.category_id:>2}] {self.timestamp}"
        if self.repetition is not None:
            text += f" ({self.repetition.count:>2} since {self.repetition.first_seen})"
        return text


class PollUpdate(BaseModel):
    """
    Bookkeeping row written after every poll.

    Attributes:
        datetime: When the poll finished (UTC)
        upserted_rows: Number of records incorporated by the merge
    """

    datetime: AwareDatetime
    upserted_rows: int = Field(..., ge=0)


class DeviceRequest(BaseModel):
    """
    Metadata about one HTTP request made to the device.
    """

    datetime: AwareDatetime
    name: str
    url: str
    method: str
    duration_ms: int = Field(0, ge=0)
    response_code: Optional[int] = None
    session_id: Optional[str] = None
