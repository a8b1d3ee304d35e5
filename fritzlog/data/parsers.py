"""
Device log feed parsing.

Converts the JSON body returned by the device's log page into a list of
RawLogEntry objects. Parsing is strict about the payload shape: a response
that does not look like a log feed is an error for the whole poll, while
problems inside individual fields are left to the normalizer.

Expected payload (abridged):

    {"data": {"log": [["31.12.23", "23:59:59", "message", "23", "1", "..."], ...]}}

The device lists entries newest first; parse_log_response keeps that order.
"""

import json
import logging
from typing import Any, List

from fritzlog.core.exceptions import DataValidationError
from fritzlog.data.schema import RawLogEntry

logger = logging.getLogger(__name__)

RAW_FIELD_COUNT = 6


class ParsingError(DataValidationError):
    """Raised when a log feed payload has an unexpected shape."""
    pass


def parse_raw_entry(fields: Any, index: int = 0) -> RawLogEntry:
    """
    Parse one device log line.

    Args:
        fields: List of six strings from the payload
        index: Position in the payload, used in error messages

    Returns:
        RawLogEntry

    Raises:
        ParsingError: If the line is not a list of six strings
    """
    if not isinstance(fields, list):
        raise ParsingError(f"log entry {index}: expected list, got {type(fields).__name__}")
    if len(fields) != RAW_FIELD_COUNT:
        raise ParsingError(
            f"log entry {index}: expected {RAW_FIELD_COUNT} fields, got {len(fields)}"
        )
    if not all(isinstance(f, str) for f in fields):
        raise ParsingError(f"log entry {index}: all fields must be strings")

    return RawLogEntry.from_fields(fields)


def parse_log_payload(payload: Any) -> List[RawLogEntry]:
    """
    Extract raw entries from an already decoded payload.

    Raises:
        ParsingError: If ``data.log`` is missing or malformed
    """
    if not isinstance(payload, dict):
        raise ParsingError(f"expected JSON object, got {type(payload).__name__}")

    data = payload.get("data")
    if not isinstance(data, dict):
        raise ParsingError("payload has no 'data' object")

    logs = data.get("log")
    if not isinstance(logs, list):
        raise ParsingError("payload has no 'data.log' list")

    return [parse_raw_entry(fields, idx) for idx, fields in enumerate(logs)]


def parse_log_response(text: str) -> List[RawLogEntry]:
    """
    Parse the device's log page response body.

    Args:
        text: Response body (JSON)

    Returns:
        Raw entries in device order (newest first)

    Raises:
        ParsingError: If the body is not JSON or not a log feed
    """
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParsingError(f"response is not valid JSON: {e}") from e

    entries = parse_log_payload(payload)
    logger.debug(f"Parsed {len(entries)} raw log entries")
    return entries
