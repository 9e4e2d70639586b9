"""
Configuration dataclasses for the domain watch system.

This module defines all configuration structures used throughout the system,
including the session state machine limits, lookup protocols, notification
delivery, scheduling, persistence, and logging configuration. The complete
configuration is built once at startup (see ``load_config_from_env``) and
passed into the components that need it.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from .exceptions import ConfigurationError


@dataclass
class SessionConfig:
    """Limits and delays of the session state machine."""

    max_challenge_attempts: int = 3
    challenge_timeout_seconds: float = 60.0
    connect_timeout_buffer_seconds: float = 10.0
    reconnect_delay_seconds: float = 5.0
    # 401 = logged out, 408 = session expired
    terminal_close_codes: tuple[int, ...] = (401, 408)

    @property
    def connect_timeout_seconds(self) -> float:
        """Global timeout for a single connect() call."""
        return (
            self.max_challenge_attempts * self.challenge_timeout_seconds
            + self.connect_timeout_buffer_seconds
        )


@dataclass
class LookupConfig:
    """WHOIS and RDAP lookup configuration."""

    whois_timeout_seconds: float = 10.0
    whois_servers: dict[str, str] = field(default_factory=dict)
    rdap_base_url: str = "https://rdap.org"
    rdap_timeout_seconds: float = 10.0


@dataclass
class NotifierConfig:
    """Delivery guarantees for outgoing messages."""

    recipient: Optional[str] = None
    address_suffix: str = "@s.whatsapp.net"
    max_retries: int = 3
    retry_delay_seconds: float = 10.0


@dataclass
class ScheduleConfig:
    """Startup and daily check scheduling."""

    daily_cron: str = "0 9 * * *"
    warning_days: int = 30
    startup_settle_seconds: float = 15.0
    daily_info_messages: bool = False


@dataclass
class BridgeConfig:
    """HTTP messaging bridge the transport talks to."""

    base_url: str = "http://localhost:3000"
    session_name: str = "default"
    api_key: Optional[str] = None
    poll_interval_seconds: float = 2.0
    request_timeout_seconds: float = 30.0


@dataclass
class PersistenceConfig:
    """Credential storage configuration."""

    auth_dir: Path = field(default_factory=lambda: Path("auth_info"))
    hmac_secret: str = "default-secret-change-me"

    @property
    def credentials_file(self) -> Path:
        """Path of the credential blob inside the auth directory."""
        return self.auth_dir / "credentials.json"


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class AppConfig:
    """Main configuration combining all sub-configurations."""

    domain: Optional[str] = None
    session: SessionConfig = field(default_factory=SessionConfig)
    lookup: LookupConfig = field(default_factory=LookupConfig)
    notifier: NotifierConfig = field(default_factory=NotifierConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    bridge: BridgeConfig = field(default_factory=BridgeConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    language: str = "en"  # 'de' or 'en'

    def validate_for_run(self) -> None:
        """
        Check that everything the long-running bot needs is present.

        Raises:
            ConfigurationError: If the domain or recipient is missing
        """
        missing = []
        if not self.domain:
            missing.append("CHECK_DOMAIN")
        if not self.notifier.recipient:
            missing.append("RECIPIENT_NUMBER")
        if missing:
            raise ConfigurationError(
                code="missing_settings",
                message=f"Missing required settings: {', '.join(missing)}",
                details={"missing": missing},
            )


def _str_env(env: Mapping[str, str], name: str, default: Optional[str] = None) -> Optional[str]:
    value = env.get(name)
    if value is None:
        return default
    value = value.strip()
    return value or default


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    try:
        return int(env.get(name, str(default)))
    except (TypeError, ValueError):
        return default


def _float_env(env: Mapping[str, str], name: str, default: float) -> float:
    try:
        return float(env.get(name, str(default)))
    except (TypeError, ValueError):
        return default


def _bool_env(env: Mapping[str, str], name: str, default: bool) -> bool:
    value = env.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config_from_env(env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """
    Build the application configuration from environment variables.

    Unparseable numeric values fall back to their defaults. Required values
    are not enforced here; see ``AppConfig.validate_for_run``.

    Args:
        env: Mapping to read from (defaults to os.environ)

    Returns:
        AppConfig populated from the environment
    """
    if env is None:
        env = os.environ

    language = (_str_env(env, "LANGUAGE", "en") or "en").lower()
    if language not in ("de", "en"):
        language = "en"

    output_format = (_str_env(env, "LOG_FORMAT", "text") or "text").lower()
    if output_format not in ("json", "text", "both"):
        output_format = "text"

    return AppConfig(
        domain=_str_env(env, "CHECK_DOMAIN"),
        session=SessionConfig(
            max_challenge_attempts=_int_env(env, "MAX_CHALLENGE_ATTEMPTS", 3),
            challenge_timeout_seconds=_float_env(env, "CHALLENGE_TIMEOUT_SECONDS", 60.0),
            reconnect_delay_seconds=_float_env(env, "RECONNECT_DELAY_SECONDS", 5.0),
        ),
        lookup=LookupConfig(
            whois_timeout_seconds=_float_env(env, "WHOIS_TIMEOUT", 10.0),
            rdap_base_url=_str_env(env, "RDAP_BASE_URL", "https://rdap.org"),
            rdap_timeout_seconds=_float_env(env, "RDAP_TIMEOUT", 10.0),
        ),
        notifier=NotifierConfig(
            recipient=_str_env(env, "RECIPIENT_NUMBER"),
            address_suffix=_str_env(env, "ADDRESS_SUFFIX", "@s.whatsapp.net"),
            max_retries=_int_env(env, "SEND_MAX_RETRIES", 3),
            retry_delay_seconds=_float_env(env, "SEND_RETRY_DELAY_SECONDS", 10.0),
        ),
        schedule=ScheduleConfig(
            daily_cron=_str_env(env, "DAILY_CRON", "0 9 * * *"),
            warning_days=_int_env(env, "WARNING_DAYS", 30),
            startup_settle_seconds=_float_env(env, "STARTUP_SETTLE_SECONDS", 15.0),
            daily_info_messages=_bool_env(env, "DAILY_INFO_MESSAGES", False),
        ),
        bridge=BridgeConfig(
            base_url=_str_env(env, "BRIDGE_URL", "http://localhost:3000"),
            session_name=_str_env(env, "BRIDGE_SESSION", "default"),
            api_key=_str_env(env, "BRIDGE_API_KEY"),
            poll_interval_seconds=_float_env(env, "BRIDGE_POLL_SECONDS", 2.0),
        ),
        persistence=PersistenceConfig(
            auth_dir=Path(_str_env(env, "AUTH_DIR", "auth_info")),
            hmac_secret=_str_env(env, "CREDENTIALS_SECRET", "default-secret-change-me"),
        ),
        logging=LoggingConfig(
            level=(_str_env(env, "LOG_LEVEL", "info") or "info").lower(),
            output_format=output_format,
        ),
        language=language,
    )
