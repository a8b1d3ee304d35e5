"""
Device session model.

The login endpoint answers with a ``SessionInfo`` XML document:

    <SessionInfo>
        <SID>0000000000000000</SID>
        <Challenge>2$60000$...$6000$...</Challenge>
        <BlockTime>0</BlockTime>
        <Rights/>
        <Users><User last="1">fritz3713</User></Users>
    </SessionInfo>

An all-zero SID means "not logged in".
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fritzlog.core.exceptions import AuthenticationError

from .challenge import Challenge

SESSION_ID_LENGTH = 8


@dataclass(frozen=True)
class SessionId:
    value: bytes

    @classmethod
    def parse(cls, text: str) -> "SessionId":
        try:
            value = bytes.fromhex(text.strip())
        except ValueError as e:
            raise AuthenticationError(f"invalid session id {text!r}") from e
        if len(value) != SESSION_ID_LENGTH:
            raise AuthenticationError(f"session id must be {SESSION_ID_LENGTH} bytes, got {len(value)}")
        return cls(value)

    @property
    def is_valid(self) -> bool:
        return any(self.value)

    def __str__(self) -> str:
        return self.value.hex()


@dataclass(frozen=True)
class User:
    name: str
    is_last: bool = False


@dataclass(frozen=True)
class SessionInfo:
    session_id: SessionId
    challenge: Challenge
    block_time: int
    users: List[User] = field(default_factory=list)

    @classmethod
    def from_xml(cls, text: str) -> "SessionInfo":
        """
        Parse the login endpoint's XML answer.

        Raises:
            AuthenticationError: If the document is malformed
        """
        try:
            root = ET.fromstring(text.strip())
        except ET.ParseError as e:
            raise AuthenticationError(f"invalid session info xml: {e}") from e

        sid = root.findtext("SID")
        challenge = root.findtext("Challenge")
        block_time = root.findtext("BlockTime")
        if sid is None or challenge is None or block_time is None:
            raise AuthenticationError("session info is missing SID, Challenge or BlockTime")

        try:
            block = int(block_time)
        except ValueError as e:
            raise AuthenticationError(f"invalid block time {block_time!r}") from e

        users = [
            User(name=(node.text or "").strip(), is_last=node.get("last") == "1")
            for node in root.findall("./Users/User")
        ]

        return cls(
            session_id=SessionId.parse(sid),
            challenge=Challenge.parse(challenge),
            block_time=block,
            users=users,
        )

    def has_user(self, username: str) -> bool:
        return any(user.name == username for user in self.users)

    def make_response(self, password: str) -> str:
        return str(self.challenge.make_response(password))


@dataclass
class DeviceSession:
    """
    A logged-in session, owned by whoever drives the polling.

    The device expires sessions after a period without requests; ``touch``
    is called after every successful request to push the local expiry.
    """

    session_id: SessionId
    idle_timeout: timedelta = timedelta(minutes=20)
    last_used: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now if now is not None else datetime.now(timezone.utc)
        return now - self.last_used >= self.idle_timeout

    def touch(self, now: Optional[datetime] = None) -> None:
        self.last_used = now if now is not None else datetime.now(timezone.utc)

    def __str__(self) -> str:
        return str(self.session_id)
