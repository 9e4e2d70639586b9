"""
Property-based tests for Check Orchestrator module.

Uses Hypothesis with mock resolver, session manager and notifier to test
the startup and daily runs end to end.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from io import StringIO
from typing import Optional

from hypothesis import given, settings
from hypothesis import strategies as st

from domain_watch.audit_logger import AuditLogger
from domain_watch.config import AppConfig, NotifierConfig, ScheduleConfig
from domain_watch.enums import AlertTier, ExpirySource, RunKind
from domain_watch.exceptions import (
    ChallengeLimitError,
    ExpirationLookupError,
    ValidationError,
)
from domain_watch.models import ExpirationResult, NotificationResult
from domain_watch.orchestrator import DAILY_TASK_NAME, CheckOrchestrator
from domain_watch.scheduler import CronParseError, Scheduler
from domain_watch.session_manager import SessionManager


NOW = datetime(2024, 2, 1, 9, 0, tzinfo=timezone.utc)


class MockResolver:
    def __init__(self, expiry: Optional[datetime] = None, error: Optional[Exception] = None) -> None:
        self.expiry = expiry
        self.error = error
        self.queries: list[str] = []
        self.closed = False

    async def resolve(self, domain: str) -> ExpirationResult:
        self.queries.append(domain)
        if self.error is not None:
            raise self.error
        return ExpirationResult(domain=domain, expiry=self.expiry, source=ExpirySource.PRIMARY)

    async def close(self) -> None:
        self.closed = True


class MockSessionManager:
    def __init__(self, live: bool = True, error: Optional[Exception] = None) -> None:
        self.live = live
        self.error = error
        self.connect_calls = 0
        self.closed = False

    def is_live(self) -> bool:
        return self.live

    async def connect(self):
        self.connect_calls += 1
        if self.error is not None:
            raise self.error

    async def close(self) -> None:
        self.closed = True


class MockNotifier:
    def __init__(self) -> None:
        self.sent: list[str] = []
        self.ensure_calls = 0

    async def ensure_connection(self, max_retries: Optional[int] = None) -> bool:
        self.ensure_calls += 1
        return False

    async def send(self, text: str, recipient_id: Optional[str] = None) -> Optional[NotificationResult]:
        self.sent.append(text)
        return NotificationResult(recipient_id="491701234567@s.whatsapp.net", success=True)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_orchestrator(
    resolver: MockResolver,
    sessions: Optional[MockSessionManager] = None,
    config: Optional[AppConfig] = None,
    scheduler: Optional[Scheduler] = None,
    logger: Optional[AuditLogger] = None,
):
    config = config or AppConfig(
        domain="example.com",
        notifier=NotifierConfig(recipient="491701234567"),
    )
    notifier = MockNotifier()
    sleep = RecordingSleep()
    orchestrator = CheckOrchestrator(
        config=config,
        resolver=resolver,
        session_manager=sessions or MockSessionManager(),
        notifier=notifier,
        scheduler=scheduler,
        logger=logger,
        sleep=sleep,
        clock=lambda: NOW,
    )
    return orchestrator, notifier, sleep


def lookup_error() -> ExpirationLookupError:
    return ExpirationLookupError(
        code="expiration_unavailable",
        message="expiration date unavailable",
        details={"domain": "example.com"},
    )


class TestRunCheckProperty:
    """
    Property-based tests for a single check.

    **Feature: domain-watch, Property 44: Each check sends at most one message**
    """

    @given(
        offset_days=st.integers(min_value=-400, max_value=400),
        run_kind=st.sampled_from(list(RunKind)),
    )
    @settings(max_examples=100)
    def test_at_most_one_message(self, offset_days: int, run_kind: RunKind) -> None:
        """
        Property 44: One message per check.

        *For any* expiry and run kind, the check sends exactly the alert it
        built, or nothing when the alert is suppressed.
        """
        resolver = MockResolver(expiry=NOW + timedelta(days=offset_days, hours=1))
        orchestrator, notifier, _ = make_orchestrator(resolver)

        outcome = asyncio.run(orchestrator.run_check(run_kind))

        assert resolver.queries == ["example.com"]
        if outcome.alert is None:
            assert run_kind == RunKind.DAILY
            assert notifier.sent == []
            assert outcome.delivered is None
        else:
            assert notifier.sent == [outcome.alert.text]
            assert outcome.delivered.success

    def test_expired_domain_alerts(self) -> None:
        resolver = MockResolver(expiry=datetime(2024, 1, 1, tzinfo=timezone.utc))
        orchestrator, notifier, _ = make_orchestrator(resolver)

        outcome = asyncio.run(orchestrator.run_check(RunKind.DAILY))

        assert outcome.alert.tier == AlertTier.EXPIRED
        assert notifier.sent == [
            "🚨 ATTENTION! example.com appears to have expired! Check immediately!"
        ]

    def test_daily_far_expiry_is_silent(self) -> None:
        resolver = MockResolver(expiry=NOW + timedelta(days=90))
        orchestrator, notifier, _ = make_orchestrator(resolver)

        outcome = asyncio.run(orchestrator.run_check(RunKind.DAILY))

        assert outcome.result is not None
        assert outcome.alert is None
        assert notifier.sent == []

    def test_startup_far_expiry_informs(self) -> None:
        resolver = MockResolver(expiry=NOW + timedelta(days=90))
        orchestrator, notifier, _ = make_orchestrator(resolver)

        asyncio.run(orchestrator.run_check(RunKind.STARTUP))

        assert notifier.sent == ["ℹ️ Domain example.com will expire in 90 days."]

    def test_daily_info_when_enabled(self) -> None:
        config = AppConfig(
            domain="example.com",
            schedule=ScheduleConfig(daily_info_messages=True),
        )
        orchestrator, notifier, _ = make_orchestrator(
            MockResolver(expiry=NOW + timedelta(days=90)), config=config
        )

        asyncio.run(orchestrator.run_check(RunKind.DAILY))

        assert len(notifier.sent) == 1


class TestLookupFailureReportProperty:
    """
    Tests for failed lookups.

    **Feature: domain-watch, Property 45: Lookup failures are reported at startup and only logged daily**
    """

    def test_startup_sends_error_report(self) -> None:
        orchestrator, notifier, _ = make_orchestrator(MockResolver(error=lookup_error()))

        outcome = asyncio.run(orchestrator.run_check(RunKind.STARTUP))

        assert outcome.error == "expiration date unavailable"
        assert outcome.alert.tier == AlertTier.ERROR
        assert notifier.sent == ["Whois Bot Error: expiration date unavailable"]

    def test_daily_only_logs(self) -> None:
        logger = AuditLogger(output_format="json", output_stream=StringIO())
        orchestrator, notifier, _ = make_orchestrator(
            MockResolver(error=lookup_error()), logger=logger
        )

        outcome = asyncio.run(orchestrator.run_check(RunKind.DAILY))

        assert outcome.error == "expiration date unavailable"
        assert notifier.sent == []
        errors = [e for e in logger.entries if e.level.value == "error"]
        assert errors[0].data["error_code"] == "expiration_unavailable"
        assert errors[0].data["run_kind"] == "daily"

    def test_unexpected_error_reported_at_startup(self) -> None:
        logger = AuditLogger(output_format="json", output_stream=StringIO())
        orchestrator, notifier, _ = make_orchestrator(
            MockResolver(error=RuntimeError("boom")), logger=logger
        )

        outcome = asyncio.run(orchestrator.run_check(RunKind.STARTUP))

        assert outcome.error == "boom"
        assert outcome.alert.tier == AlertTier.ERROR
        assert notifier.sent == ["Whois Bot Error: boom"]
        errors = [e for e in logger.entries if e.level.value == "error"]
        assert errors[0].data["error_type"] == "RuntimeError"

    def test_unexpected_error_only_logged_daily(self) -> None:
        orchestrator, notifier, _ = make_orchestrator(MockResolver(error=OverflowError("date value out of range")))

        outcome = asyncio.run(orchestrator.run_check(RunKind.DAILY))

        assert outcome.error == "date value out of range"
        assert outcome.alert is None
        assert notifier.sent == []

    def test_invalid_domain_reported_at_startup(self) -> None:
        error = ValidationError(code="invalid_tld", message="Could not extract TLD from domain")
        orchestrator, notifier, _ = make_orchestrator(MockResolver(error=error))

        asyncio.run(orchestrator.run_check(RunKind.STARTUP))

        assert notifier.sent == ["Whois Bot Error: Could not extract TLD from domain"]


class TestStartupProperty:
    """
    Tests for the startup sequence.

    **Feature: domain-watch, Property 46: Startup connects, settles, then checks**
    """

    def test_live_session_skips_extra_connection(self) -> None:
        sessions = MockSessionManager(live=True)
        orchestrator, notifier, sleep = make_orchestrator(
            MockResolver(expiry=NOW + timedelta(days=10)), sessions=sessions
        )

        outcome = asyncio.run(orchestrator.startup())

        assert outcome.run_kind == RunKind.STARTUP
        assert sessions.connect_calls == 1
        assert sleep.delays == [15.0]
        assert notifier.ensure_calls == 0
        assert notifier.sent == ["⚠️ Warning: Domain example.com will expire in 10 days!"]

    def test_connect_failure_still_checks(self) -> None:
        sessions = MockSessionManager(live=False, error=ChallengeLimitError(
            code="challenge_limit", message="maximum challenge attempts reached"
        ))
        orchestrator, notifier, sleep = make_orchestrator(
            MockResolver(expiry=NOW + timedelta(days=10)), sessions=sessions
        )

        asyncio.run(orchestrator.startup())

        assert sleep.delays == [15.0]
        assert notifier.ensure_calls == 1
        assert len(notifier.sent) == 1


class TestLifecycleProperty:
    """
    Tests for start and shutdown.

    **Feature: domain-watch, Property 47: The daily task is armed and everything is closed on exit**
    """

    def test_start_arms_daily_task_and_closes(self) -> None:
        resolver = MockResolver(expiry=NOW + timedelta(days=90))
        sessions = MockSessionManager()
        scheduler = Scheduler()
        orchestrator, notifier, _ = make_orchestrator(
            resolver, sessions=sessions, scheduler=scheduler
        )

        async def scenario():
            stop = asyncio.Event()
            stop.set()
            await orchestrator.start(stop)

        asyncio.run(scenario())

        task = scheduler.get_task(DAILY_TASK_NAME)
        assert task.schedule.original_expression == "0 9 * * *"
        assert task.trigger == orchestrator.daily_trigger
        assert task.trigger.name == DAILY_TASK_NAME
        assert notifier.sent == ["ℹ️ Domain example.com will expire in 90 days."]
        assert sessions.closed
        assert resolver.closed
        assert not scheduler.is_running()

    def test_daily_task_runs_daily_check(self) -> None:
        resolver = MockResolver(expiry=NOW + timedelta(days=5))
        scheduler = Scheduler()
        orchestrator, notifier, _ = make_orchestrator(resolver, scheduler=scheduler)

        async def scenario():
            scheduler.schedule(DAILY_TASK_NAME, "0 9 * * *", orchestrator.daily_check)
            return await scheduler.run_pending(datetime(2024, 2, 1, 9, 0))

        assert asyncio.run(scenario()) == [DAILY_TASK_NAME]
        assert notifier.sent == ["⚠️ Warning: Domain example.com will expire in 5 days!"]

    def test_invalid_cron_raises(self) -> None:
        config = AppConfig(domain="example.com", schedule=ScheduleConfig(daily_cron="0 25 * * *"))
        orchestrator, _, _ = make_orchestrator(MockResolver(), config=config)

        try:
            asyncio.run(orchestrator.start())
            assert False, "Expected CronParseError"
        except CronParseError as e:
            assert e.code == "invalid_cron"

    def test_from_config_builds_components(self) -> None:
        config = AppConfig(
            domain="example.com",
            schedule=ScheduleConfig(warning_days=14),
            language="de",
        )
        orchestrator = CheckOrchestrator.from_config(config)

        assert isinstance(orchestrator.session_manager, SessionManager)
        assert orchestrator.decision_engine.warning_days == 14
        assert orchestrator.scheduler.list_tasks() == []
        asyncio.run(orchestrator.close())
