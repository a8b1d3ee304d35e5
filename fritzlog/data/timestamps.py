"""
Timestamp helpers.

The device reports local civil time as two strings (``31.12.23`` and
``23:59:59``). Records keep timezone-aware datetimes; storage and identity
keys use UTC milliseconds so they do not depend on the host's time zone.
"""

from datetime import datetime, timedelta, timezone, tzinfo

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

DATE_FORMAT = "%d.%m.%y"
TIME_FORMAT = "%H:%M:%S"


class LocalTimeError(ValueError):
    """Raised when a wall-clock time does not map to exactly one instant."""
    pass


def parse_naive(date_str: str, time_str: str) -> datetime:
    """
    Parse device date and time strings into a naive datetime.

    Raises:
        ValueError: If either part does not match the device format
    """
    date_part = datetime.strptime(date_str, DATE_FORMAT).date()
    time_part = datetime.strptime(time_str, TIME_FORMAT).time()
    return datetime.combine(date_part, time_part)


def localize(naive: datetime, tz: tzinfo) -> datetime:
    """
    Attach a time zone to a wall-clock time, refusing DST gaps and overlaps.

    Args:
        naive: Wall-clock time without tzinfo
        tz: Zone the wall-clock time was observed in

    Returns:
        Timezone-aware datetime

    Raises:
        LocalTimeError: If the time is skipped (gap) or repeated (overlap)
    """
    earlier = naive.replace(tzinfo=tz, fold=0)
    later = naive.replace(tzinfo=tz, fold=1)
    if earlier.utcoffset() == later.utcoffset():
        return earlier

    round_trip = earlier.astimezone(timezone.utc).astimezone(tz).replace(tzinfo=None)
    if round_trip != naive:
        raise LocalTimeError(f"{naive.isoformat()} does not exist in {tz}")
    raise LocalTimeError(f"{naive.isoformat()} is ambiguous in {tz}")


def to_utc_millis(value: datetime) -> int:
    """Convert an aware datetime to unix time in milliseconds."""
    if value.tzinfo is None:
        raise ValueError("naive datetime cannot be converted to UTC")
    return (value - EPOCH) // timedelta(milliseconds=1)


def from_utc_millis(millis: int, tz: tzinfo = timezone.utc) -> datetime:
    """Convert unix time in milliseconds to an aware datetime in ``tz``."""
    return (EPOCH + timedelta(milliseconds=millis)).astimezone(tz)
