"""
Connectivity events consumed by the session manager.

Transports translate whatever the messaging platform reports into these
records and hand them to the session manager, which processes them one at
a time from a single queue.
"""

from dataclasses import dataclass
from typing import Optional, Union

from .enums import ConnectionStatus


@dataclass(frozen=True)
class ConnectionUpdate:
    """Connection state change, challenge issuance, or both."""

    connection: Optional[ConnectionStatus] = None
    challenge: Optional[str] = None
    close_code: Optional[int] = None


@dataclass(frozen=True)
class CredentialsUpdate:
    """The platform rotated the credential blob; it must be persisted."""

    credentials: dict


@dataclass(frozen=True)
class MessageObserved:
    """An inbound message arrived, which implies a working connection."""

    sender: Optional[str] = None


@dataclass(frozen=True)
class ChallengeExpired:
    """Posted by the challenge timer; ``cycle`` ties it to one transport start."""

    cycle: int


SessionEvent = Union[ConnectionUpdate, CredentialsUpdate, MessageObserved, ChallengeExpired]
