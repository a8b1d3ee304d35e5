"""
Data module: device feed parsing, normalization, and the canonical record model.

Pipeline:

    Device response (JSON, newest first)
        ↓
    Parsing (fritzlog/data/parsers.py) → RawLogEntry
        ↓
    Reversal to old → new (poll driver)
        ↓
    Normalization (fritzlog/data/normalizers.py) → LogRecord
        ↓
    Ready for merging (fritzlog/merge)

Stored records can be classified by category, and Internet messages turned
into connection events (fritzlog/data/messages.py).
"""

from fritzlog.data.ingestion import (
    LogIngestionError,
    SavedResponseSource,
    response_filename,
)
from fritzlog.data.messages import (
    Category,
    InternetEvent,
    InternetEventKind,
    MalformedMessage,
    category_of,
    disconnects,
    internet_events,
    parse_internet_event,
    parse_internet_message,
)
from fritzlog.data.normalizers import (
    MalformedField,
    MalformedRepetition,
    MalformedTimestamp,
    NormalizationError,
    extract_repetition,
    normalize_entries,
    normalize_entry,
    normalize_id,
    normalize_timestamp,
)
from fritzlog.data.parsers import (
    ParsingError,
    parse_log_payload,
    parse_log_response,
    parse_raw_entry,
)
from fritzlog.data.schema import (
    DeviceRequest,
    IdentityKey,
    LogRecord,
    PollUpdate,
    RawLogEntry,
    Repetition,
)

__all__ = [
    # Schema
    "LogRecord",
    "Repetition",
    "RawLogEntry",
    "IdentityKey",
    "PollUpdate",
    "DeviceRequest",

    # Parsing
    "parse_log_response",
    "parse_log_payload",
    "parse_raw_entry",
    "ParsingError",

    # Normalization
    "normalize_entry",
    "normalize_entries",
    "normalize_timestamp",
    "normalize_id",
    "extract_repetition",
    "NormalizationError",
    "MalformedTimestamp",
    "MalformedField",
    "MalformedRepetition",

    # Ingestion
    "SavedResponseSource",
    "LogIngestionError",
    "response_filename",

    # Message classification
    "Category",
    "InternetEvent",
    "InternetEventKind",
    "MalformedMessage",
    "category_of",
    "parse_internet_event",
    "parse_internet_message",
    "internet_events",
    "disconnects",
]
