"""
Device access: login scheme, sessions, and the HTTP client.
"""

from .challenge import Challenge, ChallengeError, ChallengeResponse, make_response
from .client import FritzClient
from .session import DeviceSession, SessionId, SessionInfo, User

__all__ = [
    "Challenge",
    "ChallengeError",
    "ChallengeResponse",
    "make_response",
    "FritzClient",
    "DeviceSession",
    "SessionId",
    "SessionInfo",
    "User",
]
