"""
Session Manager for the messaging connection.

Owns the single Session of the process and drives it through its lifecycle:

- DISCONNECTED -> AWAITING_CHALLENGE when the platform issues an
  authentication challenge (at most ``max_challenge_attempts`` per
  connection cycle, each valid for ``challenge_timeout_seconds``)
- any state -> CONNECTED when the platform reports the connection open or a
  message is observed
- CONNECTED -> CLOSING on terminal close codes (logged out, session
  expired), or -> DISCONNECTED followed by a delayed transport restart on
  any other close code

All events, including the internal challenge timer, go through one queue
and are handled one at a time by a single pump task.
"""

import asyncio
import sys
from abc import abstractmethod
from typing import Awaitable, Callable, Optional, Protocol, TextIO, runtime_checkable

from .audit_logger import AuditLogger
from .config import SessionConfig
from .credential_store import CredentialStore
from .enums import ConnectionStatus, LogLevel, SessionState
from .events import (
    ChallengeExpired,
    ConnectionUpdate,
    CredentialsUpdate,
    MessageObserved,
    SessionEvent,
)
from .exceptions import (
    ChallengeLimitError,
    ConnectionTimeoutError,
    PersistenceError,
    SessionClosedError,
    SessionConnectionError,
    TamperingError,
)
from .i18n import get_message
from .models import Session
from .transport import MessagingTransport


# 401 means the account unlinked this device; stored credentials are useless
CLOSE_LOGGED_OUT = 401


@runtime_checkable
class ChallengeRenderer(Protocol):
    """Displays an authentication challenge to the operator."""

    @abstractmethod
    def render(self, challenge: str, attempt: int, max_attempts: int) -> None:
        ...


class ConsoleChallengeRenderer:
    """Prints the challenge payload to the terminal."""

    def __init__(self, language: str = "en", stream: Optional[TextIO] = None) -> None:
        self._language = language
        self._stream = stream or sys.stdout

    def render(self, challenge: str, attempt: int, max_attempts: int) -> None:
        header = get_message(
            "challenge.header", self._language, attempt=attempt, max_attempts=max_attempts
        )
        self._stream.write(f"\n{header}\n{challenge}\n\n")
        self._stream.flush()


class SessionManager:
    """
    State machine for the messaging session.

    ``connect()`` is idempotent and may be called concurrently: all callers
    share one pending attempt, which resolves when the session becomes live
    or fails with a SessionConnectionError subclass.
    """

    def __init__(
        self,
        transport: MessagingTransport,
        config: Optional[SessionConfig] = None,
        credential_store: Optional[CredentialStore] = None,
        renderer: Optional[ChallengeRenderer] = None,
        logger: Optional[AuditLogger] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the session manager.

        Args:
            transport: Platform connection that emits events
            config: State machine limits and delays
            credential_store: Optional persistence for the credential blob
            renderer: Challenge display (defaults to the console)
            logger: Optional audit logger
            sleep: Awaitable used for the reconnect delay
        """
        self._transport = transport
        self._config = config or SessionConfig()
        self._store = credential_store
        self._renderer = renderer or ConsoleChallengeRenderer()
        self._logger = logger
        self._sleep = sleep

        self._session = Session()
        self._queue: Optional[asyncio.Queue] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._cycle = 0
        self._transport_active = False
        self._challenge_displayed = False
        self._challenge_timer: Optional[asyncio.TimerHandle] = None
        self._pending: Optional[asyncio.Future] = None
        self._deadline: Optional[asyncio.TimerHandle] = None
        self._closed = False

    @property
    def session(self) -> Session:
        """The managed session (read-only for callers)."""
        return self._session

    @property
    def cycle(self) -> int:
        """Number of transport starts so far."""
        return self._cycle

    def is_live(self) -> bool:
        """True when connected, in CONNECTED state and the transport has a user."""
        return (
            self._session.connected
            and self._session.state == SessionState.CONNECTED
            and self._transport.user is not None
        )

    async def connect(self) -> Session:
        """
        Bring the session up, or join the attempt already in progress.

        Returns:
            The live Session

        Raises:
            SessionClosedError: If the session is closing or was closed
            ChallengeLimitError: If the challenge cap was reached
            ConnectionTimeoutError: If the session did not come up in time
            SessionConnectionError: If the transport failed to start
        """
        if self.is_live():
            return self._session

        if self._closed or self._session.state == SessionState.CLOSING:
            raise SessionClosedError(
                code="session_closed",
                message="session is closing",
                details={"last_close_code": self._session.last_close_code},
            )

        self._ensure_pump()

        pending = self._pending
        if pending is None or pending.done():
            pending = self._new_pending()
            if not self._transport_active:
                try:
                    await self._start_transport()
                except Exception as e:
                    self._fail_pending(SessionConnectionError(
                        code="transport_error",
                        message=f"transport failed to start: {e}",
                        details={"error_type": type(e).__name__},
                    ))

        return await asyncio.shield(pending)

    async def process_event(self, event: SessionEvent) -> None:
        """
        Apply a single event to the state machine.

        Normally called by the pump task; tests may call it directly.
        """
        if isinstance(event, ConnectionUpdate):
            if event.challenge:
                await self._on_challenge(event.challenge)
            if event.connection == ConnectionStatus.OPEN:
                self._mark_connected()
            elif event.connection == ConnectionStatus.CLOSE:
                await self._on_close(event.close_code)
        elif isinstance(event, CredentialsUpdate):
            self._on_credentials(event.credentials)
        elif isinstance(event, MessageObserved):
            if not self._session.connected:
                self._mark_connected()
        elif isinstance(event, ChallengeExpired):
            await self._on_challenge_expired(event)

    async def wait_idle(self) -> None:
        """Wait until every queued event has been handled."""
        if self._queue is not None:
            await self._queue.join()

    async def close(self) -> None:
        """Shut the manager down; the session ends in CLOSING."""
        self._closed = True
        self._cancel_challenge_timer()

        task = self._pump_task
        self._pump_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        self._session.connected = False
        self._session.state = SessionState.CLOSING
        self._fail_pending(SessionClosedError(
            code="manager_closed", message="session manager closed"
        ))

        if self._transport_active:
            self._transport_active = False
            await self._transport.close()

    # Event queue

    def _ensure_pump(self) -> None:
        if self._queue is None:
            self._queue = asyncio.Queue()
        if self._pump_task is None or self._pump_task.done():
            self._pump_task = asyncio.get_running_loop().create_task(self._pump())

    def _emit(self, event: SessionEvent) -> None:
        if self._closed:
            return
        self._ensure_pump()
        self._queue.put_nowait(event)

    async def _pump(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.process_event(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._log_error("Session event handler failed", e, {
                    "event": type(event).__name__,
                })
            finally:
                self._queue.task_done()

    # Transport lifecycle

    async def _start_transport(self) -> None:
        session = self._session
        self._cycle += 1
        self._cancel_challenge_timer()
        self._challenge_displayed = False
        if session.challenge_attempt >= self._config.max_challenge_attempts:
            session.challenge_attempt = 0

        credentials = self._load_credentials()
        if credentials is not None:
            session.credentials = credentials

        self._transport_active = True
        self._log(LogLevel.INFO, "Starting transport", {
            "cycle": self._cycle,
            "reconnect_count": session.reconnect_count,
            "has_credentials": session.credentials is not None,
        })
        try:
            await self._transport.open(session.credentials, self._emit)
        except Exception:
            self._transport_active = False
            raise

    def _load_credentials(self) -> Optional[dict]:
        if self._store is None:
            return None
        try:
            return self._store.load()
        except TamperingError as e:
            self._log_error("Stored credentials failed integrity check, starting without them", e)
        except PersistenceError as e:
            self._log_error("Stored credentials could not be read, starting without them", e)
        return None

    # Event handlers

    async def _on_challenge(self, challenge: str) -> None:
        session = self._session
        if session.connected or session.state in (SessionState.CONNECTED, SessionState.CLOSING):
            self._log(LogLevel.DEBUG, "Ignoring challenge while connected", {
                "state": session.state.value,
            })
            return
        if self._challenge_displayed:
            return

        max_attempts = self._config.max_challenge_attempts
        if session.challenge_attempt >= max_attempts:
            session.state = SessionState.DISCONNECTED
            self._cancel_challenge_timer()
            error = ChallengeLimitError(
                code="challenge_limit",
                message="maximum challenge attempts reached",
                details={"max_attempts": max_attempts, "cycle": self._cycle},
            )
            self._log_error("Maximum challenge attempts reached, closing transport", error)
            self._fail_pending(error)
            self._transport_active = False
            await self._transport.close()
            return

        session.challenge_attempt += 1
        session.state = SessionState.AWAITING_CHALLENGE
        self._challenge_displayed = True
        self._log(LogLevel.INFO, "Authentication challenge issued", {
            "attempt": session.challenge_attempt,
            "max_attempts": max_attempts,
            "challenge": challenge,
        })
        self._renderer.render(challenge, session.challenge_attempt, max_attempts)
        self._start_challenge_timer()

    async def _on_challenge_expired(self, event: ChallengeExpired) -> None:
        if event.cycle != self._cycle:
            return
        self._cancel_challenge_timer()
        if not self._transport_active or self._session.state != SessionState.AWAITING_CHALLENGE:
            return

        self._challenge_displayed = False
        self._log(LogLevel.INFO, "Challenge expired without scan, requesting a new one", {
            "attempt": self._session.challenge_attempt,
        })
        await self._transport.request_challenge()

    def _mark_connected(self) -> None:
        session = self._session
        if not self._transport_active or session.state == SessionState.CLOSING:
            return

        self._cancel_challenge_timer()
        self._challenge_displayed = False
        session.challenge_attempt = 0
        session.connected = True
        session.state = SessionState.CONNECTED
        session.user = self._transport.user
        self._log(LogLevel.INFO, "Session connected", {
            "user": session.user,
            "cycle": self._cycle,
        })
        self._resolve_pending()

    async def _on_close(self, close_code: Optional[int]) -> None:
        if not self._transport_active:
            return

        session = self._session
        session.connected = False
        session.user = None
        session.last_close_code = close_code
        self._transport_active = False
        self._cancel_challenge_timer()
        self._challenge_displayed = False

        if close_code in self._config.terminal_close_codes:
            session.state = SessionState.CLOSING
            error = SessionClosedError(
                code="session_closed",
                message=f"session closed by platform (code {close_code})",
                details={"close_code": close_code},
            )
            self._log_error("Session closed permanently, not reconnecting", error)
            self._fail_pending(error)
            if close_code == CLOSE_LOGGED_OUT:
                self._clear_credentials()
            await self._transport.close()
            return

        session.state = SessionState.DISCONNECTED
        delay = self._config.reconnect_delay_seconds
        self._log(LogLevel.WARN, "Connection closed, reconnecting", {
            "close_code": close_code,
            "delay_seconds": delay,
        })
        await self._sleep(delay)
        if self._closed or self._transport_active:
            return

        session.reconnect_count += 1
        await self._start_transport()

    def _on_credentials(self, credentials: dict) -> None:
        self._session.credentials = credentials
        if self._store is None:
            return
        try:
            self._store.save(credentials)
            self._log(LogLevel.DEBUG, "Credentials persisted", {
                "file_path": str(self._store.file_path),
            })
        except PersistenceError as e:
            self._log_error("Failed to persist credentials", e)

    def _clear_credentials(self) -> None:
        self._session.credentials = None
        if self._store is None:
            return
        try:
            self._store.clear()
        except PersistenceError as e:
            self._log_error("Failed to remove stored credentials", e)

    # Timers and pending connect

    def _start_challenge_timer(self) -> None:
        self._cancel_challenge_timer()
        loop = asyncio.get_running_loop()
        self._challenge_timer = loop.call_later(
            self._config.challenge_timeout_seconds,
            self._emit,
            ChallengeExpired(cycle=self._cycle),
        )

    def _cancel_challenge_timer(self) -> None:
        if self._challenge_timer is not None:
            self._challenge_timer.cancel()
            self._challenge_timer = None

    def _new_pending(self) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        pending = loop.create_future()
        self._pending = pending
        self._deadline = loop.call_later(
            self._config.connect_timeout_seconds, self._expire_pending, pending
        )
        return pending

    def _expire_pending(self, pending: asyncio.Future) -> None:
        if self._pending is pending:
            self._pending = None
            self._deadline = None
        if pending.done():
            return
        timeout = self._config.connect_timeout_seconds
        error = ConnectionTimeoutError(
            code="connect_timeout",
            message=f"no connection within {timeout:g}s",
            details={"timeout_seconds": timeout, "state": self._session.state.value},
        )
        self._log_error("Connect timed out, transport keeps running", error)
        pending.set_exception(error)

    def _resolve_pending(self) -> None:
        pending = self._take_pending()
        if pending is not None and not pending.done():
            pending.set_result(self._session)

    def _fail_pending(self, error: SessionConnectionError) -> None:
        pending = self._take_pending()
        if pending is not None and not pending.done():
            pending.set_exception(error)

    def _take_pending(self) -> Optional[asyncio.Future]:
        if self._deadline is not None:
            self._deadline.cancel()
            self._deadline = None
        pending = self._pending
        self._pending = None
        return pending

    # Logging

    def _log(self, level: LogLevel, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log(level, "SessionManager", message, data)

    def _log_error(self, message: str, error: Exception, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log_error("SessionManager", message, error, data)
