"""
RDAP Client for expiration lookups.

This module provides an async RDAP client with TLS enforcement. It is the
fallback protocol: the structured ``events`` array of an RDAP domain object
carries the expiration date, so no free-text parsing is needed.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional
from urllib.parse import urlparse
import time

import httpx

from .enums import RDAPErrorCode, RDAPStatus
from .whois_client import parse_expiry_date


# Event actions that carry the expiration date
EXPIRATION_ACTIONS = frozenset({"expiration", "registrationexpiration"})


@dataclass
class RDAPEvent:
    """A single RDAP event (e.g., registration, expiration)."""

    event_action: str
    event_date: str


@dataclass
class RDAPParsedFields:
    """Fields extracted from an RDAP domain object; everything else is ignored."""

    domain_name: str
    status: list[str]
    events: list[RDAPEvent]


@dataclass
class RDAPError:
    """Error information from an RDAP query."""

    code: RDAPErrorCode
    message: str
    http_status_code: Optional[int] = None


@dataclass
class RDAPResponse:
    """Complete RDAP query response."""

    status: RDAPStatus
    http_status_code: int
    raw_response: Optional[Any]
    parsed_fields: Optional[RDAPParsedFields]
    expiry: Optional[datetime]
    error: Optional[RDAPError]
    response_time_ms: float = 0.0


def find_expiration(events: list[RDAPEvent]) -> Optional[datetime]:
    """
    Return the date of the first expiration event, in list order.

    Either action counts; an event whose date does not parse is skipped.

    Args:
        events: Parsed RDAP events

    Returns:
        Aware UTC datetime, or None if no expiration event parses
    """
    for event in events:
        if event.event_action.lower() not in EXPIRATION_ACTIONS:
            continue
        expiry = parse_expiry_date(event.event_date)
        if expiry is not None:
            return expiry
    return None


class RDAPClient:
    """
    Async RDAP client with TLS enforcement.

    Queries ``{base_url}/domain/{domain}``. The default base is the rdap.org
    bootstrap redirector, which forwards to the registry's own server, so
    redirects are followed.
    """

    def __init__(
        self,
        base_url: str = "https://rdap.org",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the RDAP client.

        Args:
            base_url: RDAP service base URL (must be HTTPS)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "RDAPClient":
        """Async context manager entry."""
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    @property
    def base_url(self) -> str:
        return self._base_url

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                verify=True,  # TLS certificate verification enforced
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    def _is_tls_endpoint(self) -> bool:
        return urlparse(self._base_url).scheme.lower() == "https"

    def parse_domain_object(self, json_data: Any) -> Optional[RDAPParsedFields]:
        """
        Parse an RDAP domain object, extracting only the fields used here.

        Args:
            json_data: The decoded JSON response

        Returns:
            Parsed fields, or None if the payload is not a JSON object
        """
        if not isinstance(json_data, dict):
            return None

        domain_name = json_data.get("ldhName") or json_data.get("unicodeName") or ""

        status = json_data.get("status", [])
        if not isinstance(status, list):
            status = [status] if status else []

        events = []
        raw_events = json_data.get("events", [])
        if isinstance(raw_events, list):
            for event in raw_events:
                if isinstance(event, dict):
                    event_action = event.get("eventAction", "")
                    event_date = event.get("eventDate", "")
                    if isinstance(event_action, str) and isinstance(event_date, str) \
                            and event_action and event_date:
                        events.append(RDAPEvent(
                            event_action=event_action,
                            event_date=event_date,
                        ))

        return RDAPParsedFields(domain_name=domain_name, status=status, events=events)

    async def query(self, domain: str) -> RDAPResponse:
        """
        Query RDAP for the domain's expiration date.

        Args:
            domain: The domain to query (should be in canonical form)

        Returns:
            RDAPResponse whose status is FOUND only when an expiration date
            was extracted; every failure is reported via ``error``
        """
        start_time = time.perf_counter()

        if not self._is_tls_endpoint():
            return self._error(
                RDAPErrorCode.TLS_ERROR,
                f"RDAP endpoint must use HTTPS: {self._base_url}",
                start_time,
            )

        rdap_url = f"{self._base_url}/domain/{domain}"
        client = self._ensure_client()

        try:
            response = await asyncio.wait_for(
                client.get(
                    rdap_url,
                    headers={"Accept": "application/rdap+json, application/json"},
                ),
                timeout=self._timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError):
            return self._error(
                RDAPErrorCode.TIMEOUT,
                f"RDAP request timed out after {self._timeout}s",
                start_time,
            )
        except httpx.ConnectError as e:
            error_msg = str(e)
            if "ssl" in error_msg.lower() or "certificate" in error_msg.lower():
                return self._error(
                    RDAPErrorCode.TLS_ERROR, f"TLS connection error: {error_msg}", start_time
                )
            return self._error(
                RDAPErrorCode.NETWORK_ERROR, f"Connection error: {error_msg}", start_time
            )
        except httpx.HTTPError as e:
            return self._error(RDAPErrorCode.NETWORK_ERROR, f"HTTP error: {e}", start_time)

        if response.status_code == 404:
            return RDAPResponse(
                status=RDAPStatus.NOT_FOUND,
                http_status_code=404,
                raw_response=None,
                parsed_fields=None,
                expiry=None,
                error=RDAPError(
                    code=RDAPErrorCode.NOT_FOUND,
                    message=f"RDAP has no record for {domain}",
                    http_status_code=404,
                ),
                response_time_ms=self._elapsed_ms(start_time),
            )

        if response.status_code == 429:
            return self._error(
                RDAPErrorCode.RATE_LIMITED,
                "Rate limited by RDAP server",
                start_time,
                http_status_code=429,
            )

        if response.status_code != 200:
            return self._error(
                RDAPErrorCode.SERVER_ERROR,
                f"Unexpected HTTP status: {response.status_code}",
                start_time,
                http_status_code=response.status_code,
            )

        try:
            json_data = response.json()
        except ValueError as e:
            return self._error(
                RDAPErrorCode.PARSE_ERROR,
                f"Failed to parse RDAP response: {e}",
                start_time,
                http_status_code=200,
            )

        parsed = self.parse_domain_object(json_data)
        if parsed is None:
            return self._error(
                RDAPErrorCode.PARSE_ERROR,
                "Response does not contain a domain object",
                start_time,
                http_status_code=200,
            )

        expiry = find_expiration(parsed.events)
        if expiry is None:
            return RDAPResponse(
                status=RDAPStatus.ERROR,
                http_status_code=200,
                raw_response=json_data,
                parsed_fields=parsed,
                expiry=None,
                error=RDAPError(
                    code=RDAPErrorCode.NO_EXPIRATION,
                    message="No expiration event in RDAP response",
                    http_status_code=200,
                ),
                response_time_ms=self._elapsed_ms(start_time),
            )

        return RDAPResponse(
            status=RDAPStatus.FOUND,
            http_status_code=200,
            raw_response=json_data,
            parsed_fields=parsed,
            expiry=expiry,
            error=None,
            response_time_ms=self._elapsed_ms(start_time),
        )

    def _error(
        self,
        code: RDAPErrorCode,
        message: str,
        start_time: float,
        http_status_code: int = 0,
    ) -> RDAPResponse:
        return RDAPResponse(
            status=RDAPStatus.ERROR,
            http_status_code=http_status_code,
            raw_response=None,
            parsed_fields=None,
            expiry=None,
            error=RDAPError(
                code=code,
                message=message,
                http_status_code=http_status_code or None,
            ),
            response_time_ms=self._elapsed_ms(start_time),
        )

    def _elapsed_ms(self, start_time: float) -> float:
        """Calculate elapsed time in milliseconds."""
        return (time.perf_counter() - start_time) * 1000

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
