"""
Messaging transport module.

A transport owns the actual connection to the messaging platform. It reports
everything that happens on that connection as session events (see
``events.py``) through the sink handed to ``open`` and sends text messages on
request. It makes no decisions: challenge limits, reconnects and credential
persistence belong to the session manager.

``HTTPBridgeTransport`` talks to a self-hosted WhatsApp HTTP bridge with a
WAHA-style REST API and turns the bridge's session status into events.
"""

import asyncio
from abc import abstractmethod
from typing import Any, Callable, Optional, Protocol, runtime_checkable

import httpx

from .audit_logger import AuditLogger
from .config import BridgeConfig
from .enums import ConnectionStatus, LogLevel
from .events import ConnectionUpdate, CredentialsUpdate, SessionEvent
from .exceptions import DeliveryError


EventSink = Callable[[SessionEvent], None]

# Close codes reported by the bridge transport
CLOSE_LOGGED_OUT = 401
CLOSE_CONNECTION_CLOSED = 428
CLOSE_BAD_SESSION = 500
CLOSE_UNAVAILABLE = 503


@runtime_checkable
class MessagingTransport(Protocol):
    """Protocol defining the interface for messaging platform connections."""

    @property
    @abstractmethod
    def user(self) -> Optional[str]:
        """Authenticated account id, or None while not logged in."""
        ...

    @abstractmethod
    async def open(self, credentials: Optional[dict], emit: EventSink) -> None:
        """
        Start connecting; progress is reported through ``emit``.

        Args:
            credentials: Previously persisted credential blob, if any
            emit: Synchronous sink receiving session events
        """
        ...

    @abstractmethod
    async def request_challenge(self) -> None:
        """Ask the platform for a fresh authentication challenge."""
        ...

    @abstractmethod
    async def send_message(self, recipient_id: str, text: str) -> Any:
        """
        Send a text message.

        Returns:
            Platform response payload

        Raises:
            DeliveryError: If the message could not be delivered
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Stop the connection and release resources."""
        ...


class HTTPBridgeTransport:
    """
    Transport backed by an HTTP WhatsApp bridge.

    The bridge session status is polled and mapped to events:

    - ``SCAN_QR_CODE``: challenge (the QR payload); after ``WORKING`` it
      means the account was logged out (close 401)
    - ``STARTING``: connecting
    - ``WORKING``: credentials update followed by open
    - ``FAILED``: close 500
    - ``STOPPED``: close 428
    - bridge unreachable: close 503

    Polling stops after any close; the session manager reopens the
    transport when it decides to reconnect.
    """

    def __init__(
        self,
        config: BridgeConfig,
        logger: Optional[AuditLogger] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the bridge transport.

        Args:
            config: Bridge URL, session name and polling settings
            logger: Optional audit logger
            transport: Optional httpx transport (used by tests)
        """
        self._config = config
        self._logger = logger
        self._http_transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._emit: Optional[EventSink] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._last_status: Optional[str] = None
        self._last_challenge: Optional[str] = None
        self._user: Optional[str] = None

    @property
    def user(self) -> Optional[str]:
        return self._user

    @property
    def session_name(self) -> str:
        return self._config.session_name

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self._config.api_key:
                headers["X-Api-Key"] = self._config.api_key
            self._client = httpx.AsyncClient(
                base_url=self._config.base_url.rstrip("/"),
                headers=headers,
                timeout=httpx.Timeout(self._config.request_timeout_seconds),
                transport=self._http_transport,
            )
        return self._client

    async def open(self, credentials: Optional[dict], emit: EventSink) -> None:
        """Start the bridge session and begin polling its status."""
        await self._stop_polling()

        self._emit = emit
        self._last_status = None
        self._last_challenge = None
        self._user = None

        client = self._ensure_client()
        if credentials and credentials.get("session") not in (None, self.session_name):
            self._log(LogLevel.WARN, "Stored credentials belong to another bridge session", {
                "stored_session": credentials.get("session"),
                "session": self.session_name,
            })

        try:
            response = await client.post(
                "/api/sessions/start", json={"name": self.session_name}
            )
            # 422: the bridge already runs this session
            if response.status_code not in (200, 201, 422):
                response.raise_for_status()
        except httpx.HTTPError as e:
            self._log(LogLevel.ERROR, "Bridge session start failed", {"error": str(e)})
            emit(ConnectionUpdate(connection=ConnectionStatus.CLOSE, close_code=CLOSE_UNAVAILABLE))
            return

        emit(ConnectionUpdate(connection=ConnectionStatus.CONNECTING))
        self._poll_task = asyncio.create_task(self._poll_loop())

    async def request_challenge(self) -> None:
        """Forget the displayed QR so the next poll reports the current one."""
        self._last_challenge = None

    async def send_message(self, recipient_id: str, text: str) -> Any:
        """Send a text message through the bridge."""
        if self._user is None:
            raise DeliveryError(
                code="not_connected",
                message="Bridge session is not authenticated",
                details={"recipient_id": recipient_id},
            )

        client = self._ensure_client()
        try:
            response = await client.post(
                "/api/sendText",
                json={"session": self.session_name, "chatId": recipient_id, "text": text},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise DeliveryError(
                code="send_failed",
                message=f"Bridge rejected message: HTTP {e.response.status_code}",
                details={"recipient_id": recipient_id, "status_code": e.response.status_code},
            )
        except httpx.HTTPError as e:
            raise DeliveryError(
                code="network_error",
                message=f"Bridge unreachable: {e}",
                details={"recipient_id": recipient_id},
            )

        try:
            return response.json()
        except ValueError:
            return response.text

    async def close(self) -> None:
        """Stop polling, stop the bridge session and close the HTTP client."""
        await self._stop_polling()
        self._user = None

        if self._client is None:
            return

        try:
            await self._client.post("/api/sessions/stop", json={"name": self.session_name})
        except httpx.HTTPError as e:
            self._log(LogLevel.WARN, "Bridge session stop failed", {"error": str(e)})
        finally:
            await self._client.aclose()
            self._client = None

    async def _stop_polling(self) -> None:
        task = self._poll_task
        self._poll_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _poll_loop(self) -> None:
        while await self.poll_once():
            await asyncio.sleep(self._config.poll_interval_seconds)

    async def poll_once(self) -> bool:
        """
        Fetch the session status once and emit the resulting events.

        Returns:
            False once a close was emitted and polling should stop
        """
        client = self._ensure_client()
        try:
            response = await client.get(f"/api/sessions/{self.session_name}")
            response.raise_for_status()
            info = response.json()
        except (httpx.HTTPError, ValueError) as e:
            self._log(LogLevel.WARN, "Bridge status poll failed", {"error": str(e)})
            return self._close_with(CLOSE_UNAVAILABLE)

        if not isinstance(info, dict):
            info = {}
        status = str(info.get("status", "")).upper()
        previous = self._last_status
        self._last_status = status

        if status != previous:
            self._log(LogLevel.DEBUG, "Bridge session status changed", {
                "previous": previous,
                "status": status,
            })

        if status == "SCAN_QR_CODE":
            if previous == "WORKING":
                return self._close_with(CLOSE_LOGGED_OUT)
            await self._report_challenge()
        elif status == "STARTING":
            pass
        elif status == "WORKING":
            if previous != "WORKING":
                self._report_open(info)
        elif status == "FAILED":
            return self._close_with(CLOSE_BAD_SESSION)
        elif status == "STOPPED":
            return self._close_with(CLOSE_CONNECTION_CLOSED)
        return True

    async def _report_challenge(self) -> None:
        client = self._ensure_client()
        try:
            response = await client.get(
                f"/api/{self.session_name}/auth/qr", params={"format": "raw"}
            )
            response.raise_for_status()
            challenge = response.json().get("value")
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            self._log(LogLevel.WARN, "Fetching QR challenge failed", {"error": str(e)})
            return

        if challenge and challenge != self._last_challenge:
            self._last_challenge = challenge
            self._dispatch(ConnectionUpdate(challenge=challenge))

    def _report_open(self, info: dict) -> None:
        me = info.get("me") or {}
        self._user = me.get("id") if isinstance(me, dict) else None
        self._last_challenge = None
        self._dispatch(CredentialsUpdate(credentials={"session": self.session_name, "me": me}))
        self._dispatch(ConnectionUpdate(connection=ConnectionStatus.OPEN))

    def _close_with(self, code: int) -> bool:
        self._user = None
        self._dispatch(ConnectionUpdate(connection=ConnectionStatus.CLOSE, close_code=code))
        return False

    def _dispatch(self, event: SessionEvent) -> None:
        if self._emit is not None:
            self._emit(event)

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "HTTPBridgeTransport", message, data)
