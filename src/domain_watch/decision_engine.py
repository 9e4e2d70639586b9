"""
Decision Engine for expiration alerts.

Classifies an expiration date relative to "now" into an alert tier and builds
the message text:

- expiry in the past: EXPIRED
- 0 <= days left <= warning window: WARNING
- otherwise: INFO, which the daily run suppresses unless configured
  otherwise

Days are whole days, rounded down.
"""

import math
from datetime import datetime, timezone
from typing import Optional

from .enums import AlertTier, RunKind
from .i18n import get_message
from .models import AlertMessage, ExpirationResult


SECONDS_PER_DAY = 86400


def days_until(expiry: datetime, now: datetime) -> int:
    """Whole days from ``now`` to ``expiry``, rounded down (negative if past)."""
    return math.floor((expiry - now).total_seconds() / SECONDS_PER_DAY)


class DecisionEngine:
    """Pure alert classification; holds only its thresholds and language."""

    def __init__(
        self,
        warning_days: int = 30,
        daily_info_messages: bool = False,
        language: str = "en",
    ) -> None:
        self._warning_days = warning_days
        self._daily_info_messages = daily_info_messages
        self._language = language

    @property
    def warning_days(self) -> int:
        return self._warning_days

    def classify(self, expiry: datetime, now: Optional[datetime] = None) -> tuple[AlertTier, int]:
        """
        Determine the alert tier for an expiration date.

        Args:
            expiry: Aware expiration datetime
            now: Reference time (defaults to the current UTC time)

        Returns:
            (tier, days_until_expiry)
        """
        now = now or datetime.now(timezone.utc)
        days = days_until(expiry, now)

        if expiry < now:
            return AlertTier.EXPIRED, days
        if 0 <= days <= self._warning_days:
            return AlertTier.WARNING, days
        return AlertTier.INFO, days

    def build_alert(
        self,
        result: ExpirationResult,
        run_kind: RunKind,
        now: Optional[datetime] = None,
    ) -> Optional[AlertMessage]:
        """
        Build the alert to send for a lookup result.

        Returns:
            AlertMessage, or None when the tier is suppressed for this run
        """
        tier, days = self.classify(result.expiry, now)

        if tier == AlertTier.INFO and run_kind == RunKind.DAILY and not self._daily_info_messages:
            return None

        key = {
            AlertTier.EXPIRED: "alert.expired",
            AlertTier.WARNING: "alert.warning",
            AlertTier.INFO: "alert.info",
        }[tier]
        text = get_message(key, self._language, domain=result.domain, days=days)
        return AlertMessage(tier=tier, text=text, days_until_expiry=days)

    def build_error_report(self, error: Exception) -> AlertMessage:
        """Build the error-report message sent when the lookup failed."""
        message = getattr(error, "message", None) or str(error)
        text = get_message("alert.lookup_error", self._language, error=message)
        return AlertMessage(tier=AlertTier.ERROR, text=text)
