"""
Check Orchestrator for the domain watch system.

Wires all components together and runs the expiration check:

- once at startup, after bringing the messaging session up and letting it
  settle
- daily on the configured cron schedule

The check resolves the expiration date, classifies it, and sends the alert.
A failed lookup produces an error report on the startup run and only a log
entry on the daily run.
"""

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from .audit_logger import AuditLogger
from .config import AppConfig
from .credential_store import CredentialStore
from .decision_engine import DecisionEngine
from .enums import LogLevel, RunKind
from .exceptions import ExpirationLookupError, SessionConnectionError, ValidationError
from .expiration_resolver import ExpirationResolver
from .models import CheckOutcome, ScheduleTrigger
from .notifications import Notifier
from .rdap_client import RDAPClient
from .scheduler import Scheduler
from .session_manager import ChallengeRenderer, ConsoleChallengeRenderer, SessionManager
from .transport import HTTPBridgeTransport, MessagingTransport
from .whois_client import WHOISClient


DAILY_TASK_NAME = "daily_check"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CheckOrchestrator:
    """
    Main orchestrator for expiration checks.

    Coordinates the resolver, decision engine, notifier and session manager,
    and drives the startup and daily runs.
    """

    def __init__(
        self,
        config: AppConfig,
        resolver: ExpirationResolver,
        session_manager: SessionManager,
        notifier: Notifier,
        decision_engine: Optional[DecisionEngine] = None,
        scheduler: Optional[Scheduler] = None,
        logger: Optional[AuditLogger] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """
        Initialize the check orchestrator.

        Args:
            config: Application configuration
            resolver: Expiration date lookup
            session_manager: Messaging session owner
            notifier: Alert delivery
            decision_engine: Alert classification (built from config if omitted)
            scheduler: Daily trigger (built if omitted)
            logger: Optional audit logger
            sleep: Awaitable used for the startup settle delay
            clock: Returns the current UTC time for classification
        """
        self._config = config
        self._resolver = resolver
        self._sessions = session_manager
        self._notifier = notifier
        self._decision_engine = decision_engine or DecisionEngine(
            warning_days=config.schedule.warning_days,
            daily_info_messages=config.schedule.daily_info_messages,
            language=config.language,
        )
        self._scheduler = scheduler or Scheduler(logger=logger)
        self._logger = logger
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        logger: Optional[AuditLogger] = None,
        transport: Optional[MessagingTransport] = None,
        renderer: Optional[ChallengeRenderer] = None,
    ) -> "CheckOrchestrator":
        """Build the full component graph from configuration."""
        resolver = ExpirationResolver(
            whois_client=WHOISClient(
                timeout=config.lookup.whois_timeout_seconds,
                custom_servers=config.lookup.whois_servers,
            ),
            rdap_client=RDAPClient(
                base_url=config.lookup.rdap_base_url,
                timeout=config.lookup.rdap_timeout_seconds,
            ),
            logger=logger,
        )
        transport = transport or HTTPBridgeTransport(config.bridge, logger=logger)
        session_manager = SessionManager(
            transport=transport,
            config=config.session,
            credential_store=CredentialStore(
                config.persistence.credentials_file,
                config.persistence.hmac_secret,
            ),
            renderer=renderer or ConsoleChallengeRenderer(language=config.language),
            logger=logger,
        )
        notifier = Notifier(
            session_manager=session_manager,
            transport=transport,
            config=config.notifier,
            logger=logger,
        )
        return cls(
            config=config,
            resolver=resolver,
            session_manager=session_manager,
            notifier=notifier,
            logger=logger,
        )

    async def __aenter__(self) -> "CheckOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def run_check(self, run_kind: RunKind) -> CheckOutcome:
        """
        Run one expiration check.

        Args:
            run_kind: STARTUP or DAILY (controls info suppression and error reports)

        Returns:
            CheckOutcome describing what was found and sent
        """
        outcome = CheckOutcome(run_kind=run_kind)
        domain = self._config.domain or ""

        self._log(LogLevel.INFO, "Starting expiration check", {
            "domain": domain,
            "run_kind": run_kind.value,
        })

        try:
            result = await self._resolver.resolve(domain)
        except (ExpirationLookupError, ValidationError) as e:
            self._log_error("Expiration lookup failed", e, {
                "domain": domain,
                "run_kind": run_kind.value,
            })
            return await self._report_failure(outcome, e)
        except Exception as e:
            self._log_error("Unexpected error during expiration lookup", e, {
                "domain": domain,
                "run_kind": run_kind.value,
            })
            return await self._report_failure(outcome, e)

        outcome.result = result
        outcome.alert = self._decision_engine.build_alert(result, run_kind, now=self._clock())

        if outcome.alert is None:
            self._log(LogLevel.INFO, "No alert for this run", {
                "domain": result.domain,
                "expiry": result.expiry.isoformat(),
                "run_kind": run_kind.value,
            })
            return outcome

        self._log(LogLevel.INFO, "Dispatching alert", {
            "domain": result.domain,
            "tier": outcome.alert.tier.value,
            "days_until_expiry": outcome.alert.days_until_expiry,
            "source": result.source.value,
        })
        outcome.delivered = await self._notifier.send(outcome.alert.text)
        return outcome

    async def _report_failure(self, outcome: CheckOutcome, error: Exception) -> CheckOutcome:
        # Startup runs tell the recipient; daily runs only log.
        outcome.error = getattr(error, "message", None) or str(error)
        if outcome.run_kind == RunKind.STARTUP:
            outcome.alert = self._decision_engine.build_error_report(error)
            outcome.delivered = await self._notifier.send(outcome.alert.text)
        return outcome

    async def startup(self) -> CheckOutcome:
        """
        Connect the session, let it settle, then run the startup check.

        Connection failures are logged; the check still runs and the
        notifier makes its own connection attempts.
        """
        try:
            await self._sessions.connect()
        except SessionConnectionError as e:
            self._log_error("Initial connection failed", e)

        await self._sleep(self._config.schedule.startup_settle_seconds)

        if not self._sessions.is_live():
            await self._notifier.ensure_connection()

        return await self.run_check(RunKind.STARTUP)

    async def daily_check(self) -> None:
        """Scheduler callback for the daily run."""
        await self.run_check(RunKind.DAILY)

    async def start(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """
        Arm the daily trigger, run the startup check, and keep scheduling.

        Runs until ``stop_event`` is set or the task is cancelled.

        Raises:
            CronParseError: If the daily cron expression is invalid
        """
        self._scheduler.add_trigger(self.daily_trigger, self.daily_check)
        scheduler_task = asyncio.create_task(self._scheduler.run(stop_event))

        try:
            try:
                await self.startup()
            except (asyncio.CancelledError, KeyboardInterrupt):
                raise
            except Exception as e:
                self._log_error("Startup check failed, scheduler stays armed", e)
            await scheduler_task
        finally:
            self._scheduler.stop()
            if not scheduler_task.done():
                scheduler_task.cancel()
                try:
                    await scheduler_task
                except asyncio.CancelledError:
                    pass
            await self.close()

    async def close(self) -> None:
        """Close the session and release lookup clients."""
        await self._sessions.close()
        await self._resolver.close()

    def _log(self, level: LogLevel, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log(level, "CheckOrchestrator", message, data)

    def _log_error(self, message: str, error: Exception, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log_error("CheckOrchestrator", message, error, data)

    @property
    def daily_trigger(self) -> ScheduleTrigger:
        """The recurring trigger for the daily check."""
        return ScheduleTrigger(name=DAILY_TASK_NAME, cron_expression=self._config.schedule.daily_cron)

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    @property
    def session_manager(self) -> SessionManager:
        return self._sessions

    @property
    def decision_engine(self) -> DecisionEngine:
        return self._decision_engine
