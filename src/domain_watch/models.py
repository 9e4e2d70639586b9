"""
Data models for the domain watch system.

This module defines the session record owned by the session manager, the
results of expiration lookups, and the records exchanged between the
orchestrator and the notifier.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from .enums import AlertTier, ExpirySource, RunKind, SessionState


@dataclass
class Session:
    """
    The single messaging session of the process.

    Only SessionManager mutates it; everything else reads liveness.
    """

    state: SessionState = SessionState.DISCONNECTED
    challenge_attempt: int = 0
    connected: bool = False
    credentials: Optional[dict] = None  # opaque, never interpreted
    user: Optional[str] = None
    last_close_code: Optional[int] = None
    reconnect_count: int = 0


@dataclass(frozen=True)
class ExpirationResult:
    """Expiration date of a domain and the protocol that produced it."""

    domain: str
    expiry: datetime  # timezone-aware, UTC
    source: ExpirySource


@dataclass(frozen=True)
class NotificationRequest:
    """A single outgoing message to a canonical recipient address."""

    text: str
    recipient_id: str


@dataclass
class NotificationResult:
    """Result of a successful delivery."""

    recipient_id: str
    success: bool
    response: Optional[Any] = None  # platform payload, not inspected
    connection_attempts: int = 0  # connect() calls made before the send


@dataclass
class ScheduleTrigger:
    """A named recurring trigger."""

    name: str
    cron_expression: str


@dataclass
class AlertMessage:
    """A classified alert ready for delivery."""

    tier: AlertTier
    text: str
    days_until_expiry: Optional[int] = None


@dataclass
class CheckOutcome:
    """Everything that happened during one expiration check."""

    run_kind: RunKind
    result: Optional[ExpirationResult] = None
    alert: Optional[AlertMessage] = None
    delivered: Optional[NotificationResult] = None
    error: Optional[str] = None
