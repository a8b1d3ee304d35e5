"""
Raw entry normalization: turn device log lines into canonical LogRecords.

Design:
- Date/time strings are interpreted in the device's civil time zone;
  times inside a DST gap or overlap are rejected, never guessed
- Message and category ids must be plain decimal numbers
- A trailing " [N Meldungen seit DD.MM.YY HH:MM:SS]" annotation becomes a
  structured Repetition and is removed from the message text
- Every failure names the field, the raw value and (in batches) the index;
  nothing is coerced to a default
- Pure functions, no I/O
"""

import logging
import re
from datetime import datetime, tzinfo
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from fritzlog.core.config import config
from fritzlog.core.exceptions import DataValidationError
from fritzlog.data.schema import LogRecord, RawLogEntry, Repetition
from fritzlog.data.timestamps import LocalTimeError, localize, parse_naive

logger = logging.getLogger(__name__)

# "N occurrences since <date> <time>", appended by the device to collapsed lines
REPETITION_PATTERN = re.compile(
    r" \[(?P<count>\S+) Meldungen seit (?P<date>\S+) (?P<time>\S+)\]\Z"
)

_DECIMAL = re.compile(r"[0-9]+")

# Ids and counts are stored as SQLite INTEGER (signed 64-bit)
MAX_ID = 2**63 - 1


class NormalizationError(DataValidationError):
    """
    Raised when a raw entry cannot be normalized.

    Attributes:
        field: Name of the raw field that failed
        raw: The offending raw value
        index: Position of the entry in its batch, if known
    """

    def __init__(self, reason: str, field: str, raw: object, index: Optional[int] = None):
        self.reason = reason
        self.field = field
        self.raw = raw
        self.index = index
        super().__init__(reason)

    def __str__(self) -> str:
        where = f" at index {self.index}" if self.index is not None else ""
        return f"{self.field}{where}: {self.reason} (raw={self.raw!r})"


class MalformedTimestamp(NormalizationError):
    """Date or time does not match the device format or is not a unique local time."""
    pass


class MalformedField(NormalizationError):
    """A numeric id field is not a decimal number."""
    pass


class MalformedRepetition(NormalizationError):
    """A repetition annotation is present but its count or timestamp is invalid."""
    pass


def normalize_timestamp(
    date_str: str,
    time_str: str,
    tz: Optional[tzinfo] = None,
    field: str = "datetime",
    error_cls: type = MalformedTimestamp,
) -> datetime:
    """
    Parse device date and time strings into an aware datetime.

    Args:
        date_str: Date as ``DD.MM.YY``
        time_str: Time as ``HH:MM:SS``
        tz: Device time zone (configured zone when omitted)
        field: Field name reported on failure
        error_cls: Exception type raised on failure

    Returns:
        Timezone-aware datetime in the device's zone

    Raises:
        MalformedTimestamp: If the strings do not parse or the local time is
            skipped/repeated by a DST transition
    """
    tz = tz if tz is not None else config.tzinfo
    raw = f"{date_str} {time_str}"

    try:
        naive = parse_naive(date_str, time_str)
    except (TypeError, ValueError) as e:
        raise error_cls(f"invalid date/time: {e}", field, raw) from e

    try:
        return localize(naive, tz)
    except LocalTimeError as e:
        raise error_cls(str(e), field, raw) from e


def normalize_id(value: str, field: str) -> int:
    """
    Parse a device id field.

    Raises:
        MalformedField: If the value is not a plain decimal number or does
            not fit a signed 64-bit integer
    """
    if not isinstance(value, str) or not _DECIMAL.fullmatch(value):
        raise MalformedField("expected a decimal number", field, value)
    number = int(value)
    if number > MAX_ID:
        raise MalformedField("id out of range", field, value)
    return number


def extract_repetition(
    message: str, tz: Optional[tzinfo] = None
) -> Tuple[str, Optional[Repetition]]:
    """
    Split the repetition annotation off a message.

    Args:
        message: Raw message text
        tz: Device time zone

    Returns:
        Tuple of (message without annotation, Repetition or None)

    Raises:
        MalformedRepetition: If the annotation is present but invalid

    Example:
        >>> extract_repetition("X [3 Meldungen seit 01.01.23 01:01:01]")
        ('X', Repetition(first_seen=..., count=3))
    """
    match = REPETITION_PATTERN.search(message)
    if match is None:
        return message, None

    annotation = match.group(0)
    count_str = match.group("count")
    if not _DECIMAL.fullmatch(count_str):
        raise MalformedRepetition("count is not a decimal number", "message", annotation)
    if int(count_str) > MAX_ID:
        raise MalformedRepetition("count out of range", "message", annotation)

    first_seen = normalize_timestamp(
        match.group("date"),
        match.group("time"),
        tz,
        field="message",
        error_cls=MalformedRepetition,
    )

    try:
        repetition = Repetition(first_seen=first_seen, count=int(count_str))
    except ValidationError as e:
        raise MalformedRepetition(f"invalid repetition: {e}", "message", annotation) from e

    return message[: match.start()], repetition


def normalize_entry(
    entry: Union[RawLogEntry, Sequence[str]],
    tz: Optional[tzinfo] = None,
    index: Optional[int] = None,
) -> LogRecord:
    """
    Convert one raw device entry into a canonical LogRecord.

    Args:
        entry: RawLogEntry or the device's 6-element list
        tz: Device time zone (configured zone when omitted)
        index: Position in the batch, attached to any error raised

    Returns:
        LogRecord

    Raises:
        MalformedTimestamp, MalformedField, MalformedRepetition
    """
    if not isinstance(entry, RawLogEntry):
        try:
            entry = RawLogEntry.from_fields(list(entry))
        except (TypeError, ValueError, ValidationError) as e:
            raise MalformedField(f"expected 6 string fields: {e}", "entry", entry, index) from e

    try:
        timestamp = normalize_timestamp(entry.date, entry.time, tz)
        message_id = normalize_id(entry.message_id, "message_id")
        category_id = normalize_id(entry.category_id, "category_id")
        message, repetition = extract_repetition(entry.message, tz)

        try:
            return LogRecord(
                timestamp=timestamp,
                message=message,
                message_id=message_id,
                category_id=category_id,
                repetition=repetition,
            )
        except ValidationError as e:
            raise MalformedRepetition(
                f"inconsistent repetition: {e}", "message", entry.message
            ) from e
    except NormalizationError as e:
        if e.index is None:
            e.index = index
        raise


def normalize_entries(
    entries: Iterable[Union[RawLogEntry, Sequence[str]]],
    tz: Optional[tzinfo] = None,
    skip_invalid: Optional[bool] = None,
) -> Tuple[List[LogRecord], int]:
    """
    Normalize a batch of raw entries, preserving order.

    Args:
        entries: Raw entries (old to new when feeding the merge engine)
        tz: Device time zone
        skip_invalid: Skip entries that fail (True) or raise on the first
            failure (False); defaults to config.skip_invalid_entries

    Returns:
        Tuple of (records, skipped_count)

    Raises:
        NormalizationError: On the first failure when not skipping
    """
    if skip_invalid is None:
        skip_invalid = config.skip_invalid_entries

    records: List[LogRecord] = []
    skipped = 0

    for idx, entry in enumerate(entries):
        try:
            records.append(normalize_entry(entry, tz, index=idx))
        except NormalizationError as e:
            if not skip_invalid:
                raise
            logger.warning(f"Skipped log entry: {e}")
            skipped += 1

    return records, skipped
