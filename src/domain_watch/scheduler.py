"""
Scheduler module for the domain watch system.

Cron-compatible scheduling at minute resolution. The loop wakes at every
minute boundary of the local clock, fires each matching task at most once
for that minute, and logs task failures so the scheduler stays armed.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from .audit_logger import AuditLogger
from .enums import LogLevel
from .exceptions import ConfigurationError
from .models import ScheduleTrigger


class CronParseError(ConfigurationError):
    """Raised when a cron expression cannot be parsed."""

    def __init__(self, message: str, expression: str) -> None:
        self.expression = expression
        super().__init__(
            code="invalid_cron",
            message=f"{message}: '{expression}'",
            details={"expression": expression},
        )


@dataclass
class CronField:
    """Represents a parsed cron field with allowed values."""

    values: set[int]
    min_value: int
    max_value: int

    def matches(self, value: int) -> bool:
        """Check if a value matches this field."""
        return value in self.values

    @property
    def is_wildcard(self) -> bool:
        return self.values == set(range(self.min_value, self.max_value + 1))


@dataclass
class CronSchedule:
    """Represents a parsed cron schedule."""

    minute: CronField
    hour: CronField
    day_of_month: CronField
    month: CronField
    day_of_week: CronField
    original_expression: str

    def matches(self, dt: datetime) -> bool:
        """Check if a datetime (minute precision) matches this schedule."""
        # cron numbering: 0 = Sunday
        weekday = (dt.weekday() + 1) % 7

        if self.day_of_month.is_wildcard and self.day_of_week.is_wildcard:
            day_match = True
        elif self.day_of_month.is_wildcard:
            day_match = self.day_of_week.matches(weekday)
        elif self.day_of_week.is_wildcard:
            day_match = self.day_of_month.matches(dt.day)
        else:
            # Both restricted: either may match
            day_match = self.day_of_month.matches(dt.day) or self.day_of_week.matches(weekday)

        return (
            self.minute.matches(dt.minute)
            and self.hour.matches(dt.hour)
            and self.month.matches(dt.month)
            and day_match
        )


class CronParser:
    """Parser for cron expressions."""

    # Field definitions: (min, max, name)
    FIELD_DEFS = [
        (0, 59, "minute"),
        (0, 23, "hour"),
        (1, 31, "day_of_month"),
        (1, 12, "month"),
        (0, 7, "day_of_week"),  # 0 and 7 = Sunday
    ]

    MONTH_NAMES = {
        "jan": 1, "feb": 2, "mar": 3, "apr": 4,
        "may": 5, "jun": 6, "jul": 7, "aug": 8,
        "sep": 9, "oct": 10, "nov": 11, "dec": 12,
    }

    DOW_NAMES = {
        "sun": 0, "mon": 1, "tue": 2, "wed": 3,
        "thu": 4, "fri": 5, "sat": 6,
    }

    def parse(self, expression: str) -> CronSchedule:
        """
        Parse a cron expression into a CronSchedule.

        Supports standard 5-field cron expressions:
        - minute (0-59)
        - hour (0-23)
        - day of month (1-31)
        - month (1-12 or jan-dec)
        - day of week (0-7 or sun-sat, 0 and 7 both Sunday)

        6-field expressions are accepted; the leading seconds field is
        ignored. ``*``, lists, ranges and steps are supported.

        Raises:
            CronParseError: If the expression is invalid
        """
        expression = (expression or "").strip()
        if not expression:
            raise CronParseError("Empty cron expression", expression)

        fields = expression.split()

        if len(fields) == 6:
            fields = fields[1:]
        elif len(fields) != 5:
            raise CronParseError(
                f"Invalid number of fields (expected 5 or 6, got {len(fields)})",
                expression,
            )

        parsed_fields = []
        for field_str, (min_val, max_val, name) in zip(fields, self.FIELD_DEFS):
            try:
                parsed_fields.append(self._parse_field(field_str, min_val, max_val, name))
            except ValueError as e:
                raise CronParseError(f"Invalid {name} field: {e}", expression) from e

        day_of_week = parsed_fields[4]
        if 7 in day_of_week.values:
            day_of_week = CronField(
                values=(day_of_week.values - {7}) | {0}, min_value=0, max_value=6
            )
        else:
            day_of_week = CronField(values=day_of_week.values, min_value=0, max_value=6)

        return CronSchedule(
            minute=parsed_fields[0],
            hour=parsed_fields[1],
            day_of_month=parsed_fields[2],
            month=parsed_fields[3],
            day_of_week=day_of_week,
            original_expression=expression,
        )

    def _parse_field(
        self, field_str: str, min_val: int, max_val: int, field_name: str
    ) -> CronField:
        """Parse a single cron field."""
        values: set[int] = set()

        field_str = field_str.lower()
        names = {"month": self.MONTH_NAMES, "day_of_week": self.DOW_NAMES}.get(field_name, {})
        for name, num in names.items():
            field_str = field_str.replace(name, str(num))

        for part in field_str.split(","):
            part = part.strip()
            if not part:
                continue

            step = 1
            if "/" in part:
                part, step_str = part.split("/", 1)
                try:
                    step = int(step_str)
                except ValueError as e:
                    raise ValueError(f"Invalid step value: {step_str}") from e
                if step < 1:
                    raise ValueError(f"Step must be >= 1, got {step}")

            if part == "*":
                values.update(range(min_val, max_val + 1, step))
                continue

            if "-" in part:
                range_parts = part.split("-", 1)
                try:
                    start = int(range_parts[0])
                    end = int(range_parts[1])
                except ValueError as e:
                    raise ValueError(f"Invalid range: {part}") from e

                if start < min_val or start > max_val:
                    raise ValueError(
                        f"Range start {start} out of bounds [{min_val}-{max_val}]"
                    )
                if end < min_val or end > max_val:
                    raise ValueError(
                        f"Range end {end} out of bounds [{min_val}-{max_val}]"
                    )
                if start > end:
                    raise ValueError(f"Range start {start} > end {end}")

                values.update(range(start, end + 1, step))
                continue

            try:
                val = int(part)
            except ValueError as e:
                raise ValueError(f"Invalid value: {part}") from e

            if val < min_val or val > max_val:
                raise ValueError(f"Value {val} out of bounds [{min_val}-{max_val}]")

            values.add(val)

        if not values:
            raise ValueError("No values parsed from field")

        return CronField(values=values, min_value=min_val, max_value=max_val)


@dataclass
class ScheduledTask:
    """Represents a scheduled task."""

    name: str
    schedule: CronSchedule
    callback: Callable[[], Awaitable[None]]
    trigger: ScheduleTrigger
    last_run: Optional[datetime] = None
    enabled: bool = True


class Scheduler:
    """Cron-compatible scheduler with minute-boundary alignment."""

    def __init__(
        self,
        logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            logger: Optional audit logger for task failures
            clock: Returns the current local time
            sleep: Awaitable used to wait for the next minute
        """
        self._parser = CronParser()
        self._tasks: dict[str, ScheduledTask] = {}
        self._running = False
        self._logger = logger
        self._clock = clock
        self._sleep = sleep

    def schedule(
        self,
        name: str,
        cron_expression: str,
        callback: Callable[[], Awaitable[None]],
    ) -> CronSchedule:
        """
        Schedule a task with a cron expression.

        Args:
            name: Unique name for the task
            cron_expression: Cron expression (5 or 6 fields)
            callback: Async function to call when schedule matches

        Returns:
            The parsed CronSchedule

        Raises:
            CronParseError: If the cron expression is invalid
            ValueError: If a task with the same name already exists
        """
        if name in self._tasks:
            raise ValueError(f"Task '{name}' already exists")

        schedule = self._parser.parse(cron_expression)
        self._tasks[name] = ScheduledTask(
            name=name,
            schedule=schedule,
            callback=callback,
            trigger=ScheduleTrigger(name=name, cron_expression=cron_expression),
        )
        return schedule

    def add_trigger(
        self,
        trigger: ScheduleTrigger,
        callback: Callable[[], Awaitable[None]],
    ) -> ScheduledTask:
        """
        Schedule a task from a named trigger.

        Raises:
            CronParseError: If the trigger's cron expression is invalid
            ValueError: If a task with the same name already exists
        """
        self.schedule(trigger.name, trigger.cron_expression, callback)
        return self._tasks[trigger.name]

    def unschedule(self, name: str) -> bool:
        """Remove a scheduled task. Returns True if it existed."""
        return self._tasks.pop(name, None) is not None

    def get_task(self, name: str) -> Optional[ScheduledTask]:
        """Get a scheduled task by name."""
        return self._tasks.get(name)

    def list_tasks(self) -> list[ScheduledTask]:
        """List all scheduled tasks."""
        return list(self._tasks.values())

    async def run_pending(self, now: Optional[datetime] = None) -> list[str]:
        """
        Fire every enabled task matching the current minute.

        A task fires at most once per minute, however often this is called.

        Returns:
            Names of the tasks fired
        """
        now_minute = (now or self._clock()).replace(second=0, microsecond=0)
        fired: list[str] = []

        for task in list(self._tasks.values()):
            if not task.enabled or not task.schedule.matches(now_minute):
                continue
            if task.last_run is not None and task.last_run >= now_minute:
                continue

            task.last_run = now_minute
            fired.append(task.name)
            try:
                await task.callback()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if self._logger:
                    self._logger.log_error(
                        "Scheduler",
                        f"Scheduled task '{task.name}' failed",
                        e,
                        {"minute": now_minute.isoformat()},
                    )

        return fired

    def seconds_until_next_minute(self, now: Optional[datetime] = None) -> float:
        """Seconds from ``now`` to the start of the next minute."""
        now = now or self._clock()
        next_minute = now.replace(second=0, microsecond=0) + timedelta(minutes=1)
        return max((next_minute - now).total_seconds(), 0.0)

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """
        Run the scheduler loop until stopped.

        Args:
            stop_event: Optional event to signal the scheduler to stop
        """
        self._running = True
        if self._logger:
            self._logger.log(LogLevel.INFO, "Scheduler", "Scheduler started", {
                "tasks": {t.name: t.schedule.original_expression for t in self._tasks.values()},
            })

        try:
            while self._running:
                if stop_event is not None and stop_event.is_set():
                    break
                await self._sleep(self.seconds_until_next_minute())
                if stop_event is not None and stop_event.is_set():
                    break
                await self.run_pending()
        finally:
            self._running = False

    def stop(self) -> None:
        """Signal the scheduler to stop."""
        self._running = False

    def is_running(self) -> bool:
        """Check if the scheduler is running."""
        return self._running

    def parse_cron(self, expression: str) -> CronSchedule:
        """
        Parse a cron expression without scheduling a task.

        Raises:
            CronParseError: If the expression is invalid
        """
        return self._parser.parse(expression)
