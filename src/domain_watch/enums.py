"""
Enumeration types for the domain watch system.

These enums provide type-safe constants for session states, lookup results,
alert tiers, and configuration options throughout the system.
"""

from enum import Enum


class SessionState(Enum):
    """Lifecycle state of the messaging session."""

    DISCONNECTED = "disconnected"
    AWAITING_CHALLENGE = "awaiting_challenge"
    CONNECTED = "connected"
    CLOSING = "closing"


class ConnectionStatus(Enum):
    """Connection status reported by the messaging platform."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSE = "close"


class ExpirySource(Enum):
    """Protocol that produced an expiration date."""

    PRIMARY = "primary"
    FALLBACK = "fallback"


class AlertTier(Enum):
    """Severity tier of an expiration alert."""

    EXPIRED = "expired"
    WARNING = "warning"
    INFO = "info"
    ERROR = "error"


class RunKind(Enum):
    """Which trigger started a check."""

    STARTUP = "startup"
    DAILY = "daily"


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class DomainValidationErrorCode(Enum):
    """Error codes for domain validation failures."""

    FORBIDDEN_CHARS = "forbidden_chars"
    INVALID_TLD = "invalid_tld"
    IDNA_ERROR = "idna_error"
    EMPTY_INPUT = "empty_input"


class RDAPErrorCode(Enum):
    """Error codes for RDAP client operations."""

    NETWORK_ERROR = "network_error"
    TLS_ERROR = "tls_error"
    TIMEOUT = "timeout"
    PARSE_ERROR = "parse_error"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    NOT_FOUND = "not_found"
    NO_EXPIRATION = "no_expiration"


class RDAPStatus(Enum):
    """RDAP query result status."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


class WHOISErrorCode(Enum):
    """Error codes for WHOIS client operations."""

    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    NO_SERVER = "no_server"
    RATE_LIMITED = "rate_limited"
    NO_EXPIRATION = "no_expiration"


class WHOISStatus(Enum):
    """WHOIS query result status."""

    FOUND = "found"
    RATE_LIMITED = "rate_limited"
    ERROR = "error"
