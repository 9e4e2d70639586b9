"""
Expiration Resolver for the domain watch system.

Resolves a domain's registration expiration date with a primary-then-fallback
protocol: WHOIS is asked first, and only when it yields no usable date
(protocol error, rate limit, unrecognized response) is RDAP consulted.
A WHOIS answer always wins over RDAP.
"""

from typing import Optional

from .audit_logger import AuditLogger
from .domain_validator import DomainValidator
from .enums import ExpirySource, LogLevel, RDAPStatus, WHOISStatus
from .exceptions import ExpirationLookupError
from .models import ExpirationResult
from .rdap_client import RDAPClient, RDAPResponse
from .whois_client import WHOISClient, WHOISResponse


# Raw WHOIS text kept in debug logs when no field matched
_RAW_PREVIEW_CHARS = 2000


class ExpirationResolver:
    """
    Resolves expiration dates via WHOIS with RDAP fallback.

    Both clients report failures through their response objects; this class
    turns "neither produced a date" into ExpirationLookupError.
    """

    def __init__(
        self,
        whois_client: Optional[WHOISClient] = None,
        rdap_client: Optional[RDAPClient] = None,
        validator: Optional[DomainValidator] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the resolver.

        Args:
            whois_client: Primary lookup client
            rdap_client: Fallback lookup client
            validator: Domain normalizer
            logger: Optional audit logger
        """
        self._whois = whois_client or WHOISClient()
        self._rdap = rdap_client or RDAPClient()
        self._validator = validator or DomainValidator()
        self._logger = logger

    async def resolve(self, domain: str) -> ExpirationResult:
        """
        Resolve the expiration date of a domain.

        Args:
            domain: Domain as configured (normalized here)

        Returns:
            ExpirationResult tagged PRIMARY (WHOIS) or FALLBACK (RDAP)

        Raises:
            ValidationError: If the domain is malformed
            ExpirationLookupError: If neither protocol yields a date
        """
        canonical = self._validator.canonicalize(domain)

        whois_response = await self._whois.query(canonical)
        if whois_response.status == WHOISStatus.FOUND and whois_response.expiry:
            self._log(LogLevel.INFO, "Expiration date found via WHOIS", {
                "domain": canonical,
                "expiry": whois_response.expiry.isoformat(),
                "label": whois_response.matched_label,
                "server": whois_response.server,
            })
            return ExpirationResult(
                domain=canonical,
                expiry=whois_response.expiry,
                source=ExpirySource.PRIMARY,
            )

        self._log_whois_miss(canonical, whois_response)

        rdap_response = await self._rdap.query(canonical)
        if rdap_response.status == RDAPStatus.FOUND and rdap_response.expiry:
            self._log(LogLevel.INFO, "Expiration date found via RDAP", {
                "domain": canonical,
                "expiry": rdap_response.expiry.isoformat(),
            })
            return ExpirationResult(
                domain=canonical,
                expiry=rdap_response.expiry,
                source=ExpirySource.FALLBACK,
            )

        raise ExpirationLookupError(
            code="expiration_unavailable",
            message="expiration date unavailable",
            details={
                "domain": canonical,
                "whois": self._whois_diagnostics(whois_response),
                "rdap": self._rdap_diagnostics(rdap_response),
            },
        )

    def _log_whois_miss(self, domain: str, response: WHOISResponse) -> None:
        data = {"domain": domain, **self._whois_diagnostics(response)}
        if response.status == WHOISStatus.RATE_LIMITED:
            self._log(LogLevel.WARN, "WHOIS rate limited, using RDAP", data)
            return

        self._log(LogLevel.WARN, "WHOIS lookup gave no expiration date, using RDAP", data)
        if response.raw_response:
            self._log(LogLevel.DEBUG, "Unrecognized WHOIS response", {
                "domain": domain,
                "raw_response": response.raw_response[:_RAW_PREVIEW_CHARS],
            })

    @staticmethod
    def _whois_diagnostics(response: WHOISResponse) -> dict:
        return {
            "status": response.status.value,
            "server": response.server,
            "error_code": response.error.code.value if response.error else None,
            "error_message": response.error.message if response.error else None,
        }

    @staticmethod
    def _rdap_diagnostics(response: RDAPResponse) -> dict:
        return {
            "status": response.status.value,
            "http_status_code": response.http_status_code,
            "error_code": response.error.code.value if response.error else None,
            "error_message": response.error.message if response.error else None,
        }

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "ExpirationResolver", message, data)

    async def close(self) -> None:
        """Release the RDAP HTTP client."""
        await self._rdap.close()
