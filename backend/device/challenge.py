"""
Challenge-response login scheme used by the device.

The device sends a challenge ``2$<rounds_1>$<salt_1>$<rounds_2>$<salt_2>``
(salts are 16 bytes, hex encoded). The client answers with
``<salt_2 hex>$<hash hex>`` where

    hash = PBKDF2-HMAC-SHA256(PBKDF2-HMAC-SHA256(password, salt_1, rounds_1), salt_2, rounds_2)

and both derivations produce 32 bytes.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from fritzlog.core.exceptions import AuthenticationError

SUPPORTED_VERSION = "2"
SALT_LENGTH = 16
HASH_LENGTH = 32


class ChallengeError(AuthenticationError):
    """Raised when a challenge string cannot be parsed."""
    pass


@dataclass(frozen=True)
class ChallengeResponse:
    salt: bytes
    hash: bytes

    def __str__(self) -> str:
        return f"{self.salt.hex()}${self.hash.hex()}"


@dataclass(frozen=True)
class Challenge:
    rounds_1: int
    salt_1: bytes
    rounds_2: int
    salt_2: bytes

    @classmethod
    def parse(cls, text: str) -> "Challenge":
        """
        Parse a version 2 challenge string.

        Raises:
            ChallengeError: On a wrong version, field count, round count or salt
        """
        parts = text.strip().split("$")
        if len(parts) != 5:
            raise ChallengeError(f"expected 5 challenge fields, got {len(parts)}")

        version, rounds_1, salt_1, rounds_2, salt_2 = parts
        if version != SUPPORTED_VERSION:
            raise ChallengeError(f"unsupported challenge version {version!r}")

        return cls(
            rounds_1=_parse_rounds(rounds_1, "rounds_1"),
            salt_1=_parse_salt(salt_1, "salt_1"),
            rounds_2=_parse_rounds(rounds_2, "rounds_2"),
            salt_2=_parse_salt(salt_2, "salt_2"),
        )

    def make_response(self, password: str) -> ChallengeResponse:
        hash_1 = hashlib.pbkdf2_hmac(
            "sha256", password.encode("utf-8"), self.salt_1, self.rounds_1, HASH_LENGTH
        )
        hash_2 = hashlib.pbkdf2_hmac("sha256", hash_1, self.salt_2, self.rounds_2, HASH_LENGTH)
        return ChallengeResponse(salt=self.salt_2, hash=hash_2)


def _parse_rounds(value: str, name: str) -> int:
    if not (value.isascii() and value.isdigit()) or int(value) < 1:
        raise ChallengeError(f"invalid {name}: {value!r}")
    return int(value)


def _parse_salt(value: str, name: str) -> bytes:
    try:
        salt = bytes.fromhex(value)
    except ValueError as e:
        raise ChallengeError(f"invalid {name}: {value!r}") from e
    if len(salt) != SALT_LENGTH:
        raise ChallengeError(f"{name} must be {SALT_LENGTH} bytes, got {len(salt)}")
    return salt


def make_response(challenge: str, password: str) -> str:
    """Answer a challenge string; returns the response in wire format."""
    return str(Challenge.parse(challenge).make_response(password))
