"""
Exception classes for the domain watch system.

All exceptions inherit from DomainWatchError and provide structured
error information with codes, messages, and optional details. Session and
lookup failures additionally subclass the matching builtin (ConnectionError,
LookupError) so callers can catch them either way.
"""

from typing import Optional


class DomainWatchError(Exception):
    """Base exception for all domain watch errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(DomainWatchError):
    """Raised when domain validation fails."""

    pass


class ConfigurationError(DomainWatchError):
    """Raised when required configuration is missing or malformed."""

    pass


class SessionConnectionError(DomainWatchError, ConnectionError):
    """
    Raised when the messaging session cannot be brought up.

    ``terminal`` is True when the platform ended the session for good
    (logged out, expired session) and no automatic retry will follow.
    """

    terminal = False


class SessionClosedError(SessionConnectionError):
    """Raised when the platform closed the session with a terminal close code."""

    terminal = True


class ChallengeLimitError(SessionConnectionError):
    """Raised when the maximum number of authentication challenges was issued."""

    pass


class ConnectionTimeoutError(SessionConnectionError):
    """Raised when no connection was established within the global timeout."""

    pass


class ExpirationLookupError(DomainWatchError, LookupError):
    """Raised when neither WHOIS nor RDAP yields an expiration date."""

    pass


class DeliveryError(DomainWatchError):
    """Raised by transports when a message could not be delivered."""

    pass


class PersistenceError(DomainWatchError):
    """Raised when persistence operations fail (file I/O, HMAC validation)."""

    pass


class TamperingError(PersistenceError):
    """Raised when HMAC validation fails, indicating data tampering."""

    pass
