"""
Message classification for stored log records.

The device tags every entry with a category id. Internet connection messages
follow fixed German templates, so their text can be turned into structured
events (connect, disconnect, DSL sync, PPP failures).

Design:
- Classification reads an already normalized LogRecord; it never changes it
- Unknown category ids and unrecognized Internet messages are not errors
- A recognized template whose details cannot be read raises MalformedMessage
- Pure functions, no I/O
"""

import logging
import re
from datetime import datetime
from enum import Enum, IntEnum
from ipaddress import IPv4Address
from typing import Iterable, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from fritzlog.core.exceptions import DataValidationError
from fritzlog.data.schema import LogRecord

logger = logging.getLogger(__name__)


class Category(IntEnum):
    """Device log categories, by the id the device sends."""

    SYSTEM = 1
    INTERNET = 2
    PHONE = 3
    WLAN = 4
    USB = 5


class InternetEventKind(str, Enum):
    """Kinds of Internet connection messages."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    PPP_TIMEOUT = "ppp_timeout"
    PPP_UNKNOWN = "ppp_unknown"
    DSL_SYNC_BEGIN = "dsl_sync_begin"
    DSL_NO_ANSWER = "dsl_no_answer"
    DSL_READY = "dsl_ready"
    SIGN_IN_FAILED = "sign_in_failed"
    UNKNOWN = "unknown"


class MalformedMessage(DataValidationError):
    """A known message template is missing the details it always carries."""
    pass


class ConnectedDetails(BaseModel):
    """Addresses reported when the Internet connection comes up."""

    model_config = ConfigDict(frozen=True)

    ip: IPv4Address = Field(..., description="Public address")
    dns: Tuple[IPv4Address, IPv4Address] = Field(..., description="Primary and secondary DNS")
    gateway: IPv4Address


class DslRate(BaseModel):
    """Line rate reported when DSL synchronization succeeds, in kbit/s."""

    model_config = ConfigDict(frozen=True)

    up: int = Field(..., ge=0)
    down: int = Field(..., ge=0)


class InternetEvent(BaseModel):
    """
    One classified Internet connection message.

    Fields:
    - kind: which template matched
    - connected: addresses, only for CONNECTED
    - dsl_rate: line rate, only for DSL_READY
    """

    model_config = ConfigDict(frozen=True)

    kind: InternetEventKind
    connected: Optional[ConnectedDetails] = None
    dsl_rate: Optional[DslRate] = None


CONNECTED_PREFIX = "Internetverbindung wurde erfolgreich hergestellt."
DSL_READY_PREFIX = "DSL ist verfügbar"

# Checked in order; the first matching prefix decides the kind
SIMPLE_PREFIXES: List[Tuple[str, InternetEventKind]] = [
    ("Internetverbindung wurde getrennt.", InternetEventKind.DISCONNECTED),
    ("Verbindung getrennt", InternetEventKind.DISCONNECTED),
    ("Zeitüberschreitung bei der PPP-Aushandlung", InternetEventKind.PPP_TIMEOUT),
    ("PPPoE-Fehler: Zeitüberschreitung.", InternetEventKind.PPP_TIMEOUT),
    ("PPPoE-Fehler: Unbekannter Fehler.", InternetEventKind.PPP_UNKNOWN),
    ("DSL-Synchronisierung beginnt (Training).", InternetEventKind.DSL_SYNC_BEGIN),
    ("DSL antwortet nicht (Keine DSL-Synchronisierung).", InternetEventKind.DSL_NO_ANSWER),
    ("Anmeldung beim Internetanbieter ist fehlgeschlagen.", InternetEventKind.SIGN_IN_FAILED),
]

IP_PATTERN = re.compile(r"IP-Adresse: ([0-9.]+)")
DNS_PATTERN = re.compile(r"DNS-Server: ([0-9.]+) und ([0-9.]+)")
GATEWAY_PATTERN = re.compile(r"Gateway: ([0-9.]+)")
DSL_RATE_PATTERN = re.compile(r"DSL-Synchronisierung besteht mit ([0-9]+)/([0-9]+) kbit/s")


def category_of(record: LogRecord) -> Optional[Category]:
    """Category of a record, or None for an id the device never documented."""
    try:
        return Category(record.category_id)
    except ValueError:
        logger.debug(f"Unknown category id {record.category_id} for message {record.message_id}")
        return None


def _address(pattern: re.Pattern, message: str, what: str) -> Tuple[IPv4Address, ...]:
    match = pattern.search(message)
    if match is None:
        raise MalformedMessage(f"connected message without {what}: {message!r}")
    try:
        return tuple(IPv4Address(group) for group in match.groups())
    except ValueError as e:
        raise MalformedMessage(f"invalid {what} in {message!r}: {e}") from e


def parse_connected(message: str) -> ConnectedDetails:
    """
    Read the addresses out of a successful connection message.

    Example:
        >>> parse_connected("Internetverbindung wurde erfolgreich hergestellt. "
        ...                 "IP-Adresse: 192.0.2.10, DNS-Server: 192.0.2.1 und 192.0.2.2, "
        ...                 "Gateway: 192.0.2.254")
        ConnectedDetails(ip=IPv4Address('192.0.2.10'), ...)

    Raises:
        MalformedMessage: If the prefix or any address is missing or invalid
    """
    if not message.startswith(CONNECTED_PREFIX):
        raise MalformedMessage(f"not a connected message: {message!r}")

    (ip,) = _address(IP_PATTERN, message, "public ip")
    dns = _address(DNS_PATTERN, message, "dns servers")
    (gateway,) = _address(GATEWAY_PATTERN, message, "gateway")
    return ConnectedDetails(ip=ip, dns=dns, gateway=gateway)


def parse_dsl_rate(message: str) -> DslRate:
    """
    Read the line rate out of a DSL ready message.

    Raises:
        MalformedMessage: If the prefix or the rate is missing
    """
    if not message.startswith(DSL_READY_PREFIX):
        raise MalformedMessage(f"not a DSL ready message: {message!r}")

    match = DSL_RATE_PATTERN.search(message)
    if match is None:
        raise MalformedMessage(f"DSL ready message without rate: {message!r}")
    return DslRate(up=int(match.group(1)), down=int(match.group(2)))


def parse_internet_message(message: str) -> InternetEvent:
    """
    Classify the text of an Internet category message.

    Args:
        message: Message text (repetition annotation already removed)

    Returns:
        InternetEvent; kind UNKNOWN for templates not listed here

    Raises:
        MalformedMessage: If a connected or DSL ready message lacks its details
    """
    text = message.strip()

    for prefix, kind in SIMPLE_PREFIXES:
        if text.startswith(prefix):
            return InternetEvent(kind=kind)

    if text.startswith(CONNECTED_PREFIX):
        return InternetEvent(kind=InternetEventKind.CONNECTED, connected=parse_connected(text))
    if text.startswith(DSL_READY_PREFIX):
        return InternetEvent(kind=InternetEventKind.DSL_READY, dsl_rate=parse_dsl_rate(text))

    return InternetEvent(kind=InternetEventKind.UNKNOWN)


def parse_internet_event(record: LogRecord) -> Optional[InternetEvent]:
    """Internet event for a record, or None if it belongs to another category."""
    if category_of(record) is not Category.INTERNET:
        return None
    return parse_internet_message(record.message)


def internet_events(records: Iterable[LogRecord]) -> Iterator[Tuple[LogRecord, InternetEvent]]:
    """
    Yield (record, event) for every Internet record.

    Records whose message cannot be read are logged and skipped.
    """
    for record in records:
        try:
            event = parse_internet_event(record)
        except MalformedMessage as e:
            logger.warning(f"Skipping {record}: {e}")
            continue
        if event is not None:
            yield record, event


def disconnects(records: Iterable[LogRecord], since: datetime) -> List[LogRecord]:
    """
    Disconnect records reported at or after ``since``.

    Args:
        records: Records in any order
        since: Timezone-aware lower bound, compared with each record's
            latest report time

    Returns:
        Matching records, in input order
    """
    if since.tzinfo is None:
        raise ValueError("since must be timezone-aware")

    return [
        record
        for record, event in internet_events(records)
        if event.kind is InternetEventKind.DISCONNECTED and record.timestamp >= since
    ]
