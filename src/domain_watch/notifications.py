"""
Notifier module for the domain watch system.

Delivers alert texts to the configured recipient over the messaging session.
Before every send the session is made live (``ensure_connection``); if that
fails, or delivery fails, the problem is logged and ``send`` returns None.
``send`` never raises, so a failed alert cannot take the scheduler down.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from .audit_logger import AuditLogger
from .config import NotifierConfig
from .enums import LogLevel
from .exceptions import DeliveryError, SessionConnectionError
from .models import NotificationRequest, NotificationResult
from .session_manager import SessionManager
from .transport import MessagingTransport


def normalize_recipient(recipient: str, suffix: str = "@s.whatsapp.net") -> str:
    """
    Convert a phone number or address into the platform's address form.

    Surrounding whitespace and a leading '+' are dropped and the suffix is
    appended unless already present.

    Examples:
        >>> normalize_recipient(" +491701234567 ")
        '491701234567@s.whatsapp.net'
    """
    value = recipient.strip().lstrip("+")
    if suffix and not value.endswith(suffix):
        value = f"{value}{suffix}"
    return value


@dataclass
class ConnectionAttempt:
    """Record of a single ensure_connection round."""

    attempt_number: int
    error: Optional[str]
    timestamp: str


class Notifier:
    """
    Sends text messages once the session is live.

    Implements:
    - Liveness check with bounded connect retries before sending
    - Recipient normalization
    - Conversion of every failure into a logged None result
    """

    def __init__(
        self,
        session_manager: SessionManager,
        transport: MessagingTransport,
        config: Optional[NotifierConfig] = None,
        logger: Optional[AuditLogger] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the notifier.

        Args:
            session_manager: Owner of the messaging session
            transport: Transport used for the actual send
            config: Recipient, address suffix and retry settings
            logger: Optional audit logger
            sleep: Awaitable used between connection checks
        """
        self._sessions = session_manager
        self._transport = transport
        self._config = config or NotifierConfig()
        self._logger = logger
        self._sleep = sleep

    async def ensure_connection(self, max_retries: Optional[int] = None) -> bool:
        """
        Make sure the session is live, connecting if needed.

        Each round checks liveness, otherwise calls ``connect()`` (errors are
        logged) and waits ``retry_delay_seconds`` before checking again.

        Args:
            max_retries: Number of rounds (defaults to the configured value)

        Returns:
            True if the session is live
        """
        live, _ = await self._connect_until_live(max_retries)
        return live

    async def _connect_until_live(
        self, max_retries: Optional[int] = None
    ) -> tuple[bool, list[ConnectionAttempt]]:
        if max_retries is None:
            max_retries = self._config.max_retries

        attempts: list[ConnectionAttempt] = []
        for attempt in range(1, max_retries + 1):
            if self._sessions.is_live():
                return True, attempts

            try:
                await self._sessions.connect()
            except SessionConnectionError as e:
                self._log_error("Connection attempt failed", e, {"attempt": attempt})
                attempts.append(ConnectionAttempt(
                    attempt_number=attempt,
                    error=str(e),
                    timestamp=datetime.now(timezone.utc).isoformat(),
                ))
                if e.terminal:
                    break
            else:
                attempts.append(ConnectionAttempt(
                    attempt_number=attempt,
                    error=None,
                    timestamp=datetime.now(timezone.utc).isoformat(),
                ))

            await self._sleep(self._config.retry_delay_seconds)

        if self._sessions.is_live():
            return True, attempts

        self._log(LogLevel.ERROR, "Session could not be made live", {
            "max_retries": max_retries,
            "attempts": [
                {"attempt": a.attempt_number, "error": a.error, "timestamp": a.timestamp}
                for a in attempts
            ],
        })
        return False, attempts

    async def send(
        self, text: str, recipient_id: Optional[str] = None
    ) -> Optional[NotificationResult]:
        """
        Send a text message to a recipient (default: the configured one).

        Returns:
            NotificationResult on delivery, None on any failure
        """
        recipient = recipient_id or self._config.recipient
        if not recipient:
            self._log(LogLevel.ERROR, "No recipient configured, message not sent", {})
            return None

        request = NotificationRequest(
            text=text,
            recipient_id=normalize_recipient(recipient, self._config.address_suffix),
        )

        live, attempts = await self._connect_until_live()
        if not live:
            self._log(LogLevel.ERROR, "Message not sent: session is not live", {
                "recipient_id": request.recipient_id,
            })
            return None

        try:
            response = await self._transport.send_message(request.recipient_id, request.text)
        except DeliveryError as e:
            self._log_error("Message delivery failed", e, {"recipient_id": request.recipient_id})
            return None
        except Exception as e:
            self._log_error("Unexpected error while sending", e, {
                "recipient_id": request.recipient_id,
            })
            return None

        self._log(LogLevel.INFO, "Message sent", {
            "recipient_id": request.recipient_id,
            "length": len(request.text),
        })
        return NotificationResult(
            recipient_id=request.recipient_id,
            success=True,
            response=response,
            connection_attempts=len(attempts),
        )

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "Notifier", message, data)

    def _log_error(self, message: str, error: Exception, data: dict) -> None:
        if self._logger:
            self._logger.log_error("Notifier", message, error, data)
