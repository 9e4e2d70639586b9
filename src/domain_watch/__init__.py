"""
Domain Watch - domain expiration alerts over a WhatsApp session.

This package keeps an authenticated messaging session alive, looks up a
domain's registration expiration date (WHOIS with RDAP fallback), and sends
expired, warning and info alerts at startup and once a day.
"""

__version__ = "0.1.0"
__author__ = "Domain Watch Team"

from domain_watch.exceptions import (
    DomainWatchError,
    ValidationError,
    ConfigurationError,
    SessionConnectionError,
    SessionClosedError,
    ChallengeLimitError,
    ConnectionTimeoutError,
    ExpirationLookupError,
    DeliveryError,
    PersistenceError,
    TamperingError,
)
from domain_watch.enums import (
    SessionState,
    ConnectionStatus,
    ExpirySource,
    AlertTier,
    RunKind,
    LogLevel,
    DomainValidationErrorCode,
    RDAPErrorCode,
    RDAPStatus,
    WHOISErrorCode,
    WHOISStatus,
)
from domain_watch.config import (
    SessionConfig,
    LookupConfig,
    NotifierConfig,
    ScheduleConfig,
    BridgeConfig,
    PersistenceConfig,
    LoggingConfig,
    AppConfig,
    load_config_from_env,
)
from domain_watch.models import (
    Session,
    ExpirationResult,
    NotificationRequest,
    NotificationResult,
    ScheduleTrigger,
    AlertMessage,
    CheckOutcome,
)
from domain_watch.events import (
    ConnectionUpdate,
    CredentialsUpdate,
    MessageObserved,
    ChallengeExpired,
    SessionEvent,
)
from domain_watch.audit_logger import AuditLogger, LogEntry
from domain_watch.credential_store import CredentialStore
from domain_watch.domain_validator import (
    DomainValidator,
    DomainValidationResult,
    DomainValidationError,
)
from domain_watch.whois_client import WHOISClient, WHOISResponse, parse_expiry_date
from domain_watch.rdap_client import RDAPClient, RDAPResponse
from domain_watch.expiration_resolver import ExpirationResolver
from domain_watch.transport import MessagingTransport, HTTPBridgeTransport
from domain_watch.session_manager import (
    ChallengeRenderer,
    ConsoleChallengeRenderer,
    SessionManager,
)
from domain_watch.notifications import Notifier, normalize_recipient
from domain_watch.decision_engine import DecisionEngine
from domain_watch.scheduler import CronParser, CronParseError, CronSchedule, Scheduler
from domain_watch.orchestrator import CheckOrchestrator
from domain_watch.i18n import get_message, SUPPORTED_LANGUAGES

__all__ = [
    # Version
    "__version__",
    # Exceptions
    "DomainWatchError",
    "ValidationError",
    "ConfigurationError",
    "SessionConnectionError",
    "SessionClosedError",
    "ChallengeLimitError",
    "ConnectionTimeoutError",
    "ExpirationLookupError",
    "DeliveryError",
    "PersistenceError",
    "TamperingError",
    # Enums
    "SessionState",
    "ConnectionStatus",
    "ExpirySource",
    "AlertTier",
    "RunKind",
    "LogLevel",
    "DomainValidationErrorCode",
    "RDAPErrorCode",
    "RDAPStatus",
    "WHOISErrorCode",
    "WHOISStatus",
    # Config
    "SessionConfig",
    "LookupConfig",
    "NotifierConfig",
    "ScheduleConfig",
    "BridgeConfig",
    "PersistenceConfig",
    "LoggingConfig",
    "AppConfig",
    "load_config_from_env",
    # Models
    "Session",
    "ExpirationResult",
    "NotificationRequest",
    "NotificationResult",
    "ScheduleTrigger",
    "AlertMessage",
    "CheckOutcome",
    # Events
    "ConnectionUpdate",
    "CredentialsUpdate",
    "MessageObserved",
    "ChallengeExpired",
    "SessionEvent",
    # Components
    "AuditLogger",
    "LogEntry",
    "CredentialStore",
    "DomainValidator",
    "DomainValidationResult",
    "DomainValidationError",
    "WHOISClient",
    "WHOISResponse",
    "parse_expiry_date",
    "RDAPClient",
    "RDAPResponse",
    "ExpirationResolver",
    "MessagingTransport",
    "HTTPBridgeTransport",
    "ChallengeRenderer",
    "ConsoleChallengeRenderer",
    "SessionManager",
    "Notifier",
    "normalize_recipient",
    "DecisionEngine",
    "CronParser",
    "CronParseError",
    "CronSchedule",
    "Scheduler",
    "CheckOrchestrator",
    # i18n
    "get_message",
    "SUPPORTED_LANGUAGES",
]
