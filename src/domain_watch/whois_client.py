"""
WHOIS Client module for expiration lookups.

This module queries WHOIS servers over TCP port 43 and extracts the
registration expiration date from the free-text response. Registries label
that field in many different ways and print the date in many formats, so
extraction walks a fixed, ordered list of label patterns and a list of date
formats. WHOIS is the primary lookup protocol; an unusable answer (error,
rate limit, no recognizable field) is reported, never raised, so the caller
can fall back to RDAP.
"""

import asyncio
import re
import socket
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .enums import WHOISErrorCode, WHOISStatus


IANA_WHOIS_SERVER = "whois.iana.org"

# Checked in this order; the first label yielding a valid date wins.
EXPIRY_PATTERNS: list[tuple[str, re.Pattern]] = [
    ("registry_expiry", re.compile(r"Registry Expiry Date:[ \t]*(.+)", re.IGNORECASE)),
    (
        "registrar_expiry",
        re.compile(r"Registrar Registration Expiration Date:[ \t]*(.+)", re.IGNORECASE),
    ),
    ("expiration_date", re.compile(r"(?:Domain )?Expiration Date:[ \t]*(.+)", re.IGNORECASE)),
    ("expires_on", re.compile(r"Expires on:[ \t]*(.+)", re.IGNORECASE)),
    ("expiry_date", re.compile(r"Expiry date:[ \t]*(.+)", re.IGNORECASE)),
]

# Phrases registries use when they refuse to answer because of query volume
RATE_LIMIT_SIGNALS = [
    "rate limit exceeded",
    "query rate limit exceeded",
    "too many queries",
    "too many requests",
    "number of allowed queries exceeded",
]

# strptime formats tried after ISO 8601, most common first
DATE_FORMATS = [
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%Y.%m.%d %H:%M:%S",
    "%Y.%m.%d",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d",
    "%d-%b-%Y %H:%M:%S",
    "%d-%b-%Y",
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%Y",
    "%d/%m/%Y",
    "%d %b %Y",
    "%b %d %Y",
    "%a %b %d %H:%M:%S %Y",
    "%Y%m%d",
]

_ZONE_SUFFIX = re.compile(r"\s*\(?\b(?:UTC|GMT)\b\)?\s*$", re.IGNORECASE)
_FRACTION = re.compile(r"\.(\d+)(?=(?:[+-]\d{2}:?\d{2})?$)")


def _normalize_fraction(match: re.Match) -> str:
    return "." + match.group(1)[:6].ljust(6, "0")


def parse_expiry_date(value: str) -> Optional[datetime]:
    """
    Parse a registry date string into an aware UTC datetime.

    Accepts ISO 8601 (with 'Z', offsets or any number of fractional digits)
    and the common registry formats in DATE_FORMATS, optionally followed by
    a UTC/GMT label. Naive values are taken as UTC.

    Args:
        value: Raw date text from a WHOIS or RDAP response

    Returns:
        The parsed datetime, or None if no format matched or the value
        falls outside the datetime range once converted to UTC
    """
    text = (value or "").strip()
    if not text:
        return None

    parsed: Optional[datetime] = None

    iso = text[:-1] + "+00:00" if text[-1] in "Zz" else text
    iso = _FRACTION.sub(_normalize_fraction, iso)
    try:
        parsed = datetime.fromisoformat(iso)
    except ValueError:
        bare = _ZONE_SUFFIX.sub("", text).strip()
        for fmt in DATE_FORMATS:
            try:
                parsed = datetime.strptime(bare, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except (OverflowError, ValueError):
        # Offset pushes the value past datetime.max or before datetime.min
        return None


@dataclass
class WHOISError:
    """Error information from a WHOIS query."""

    code: WHOISErrorCode
    message: str


@dataclass
class WHOISResponse:
    """Response from a WHOIS query."""

    status: WHOISStatus
    raw_response: Optional[str]
    expiry: Optional[datetime]
    matched_label: Optional[str]
    server: Optional[str]
    error: Optional[WHOISError]


class WHOISClient:
    """
    WHOIS client that extracts expiration dates.

    Servers come from a per-TLD table; TLDs missing from it are resolved
    once through the IANA referral service and cached.
    """

    # Default WHOIS servers per TLD
    WHOIS_SERVERS: dict[str, str] = {
        "com": "whois.verisign-grs.com",
        "net": "whois.verisign-grs.com",
        "org": "whois.pir.org",
        "info": "whois.nic.info",
        "biz": "whois.nic.biz",
        "io": "whois.nic.io",
        "co": "whois.nic.co",
        "de": "whois.denic.de",
        "eu": "whois.eu",
        "uk": "whois.nic.uk",
        "nl": "whois.domain-registry.nl",
        "fr": "whois.nic.fr",
        "it": "whois.nic.it",
        "app": "whois.nic.google",
        "dev": "whois.nic.google",
    }

    def __init__(
        self,
        timeout: float = 10.0,
        custom_servers: Optional[dict[str, str]] = None,
    ) -> None:
        """
        Initialize the WHOIS client.

        Args:
            timeout: Socket timeout in seconds
            custom_servers: Optional custom WHOIS servers per TLD
        """
        self._timeout = timeout

        self._servers = dict(self.WHOIS_SERVERS)
        if custom_servers:
            self._servers.update({k.lower(): v for k, v in custom_servers.items()})

    async def query(self, domain: str) -> WHOISResponse:
        """
        Query WHOIS for a domain and extract its expiration date.

        Args:
            domain: The domain to query (should be in canonical form)

        Returns:
            WHOISResponse whose status is:
            - FOUND: an expiration date was extracted
            - RATE_LIMITED: the server refused because of query volume
            - ERROR: network failure, no server, or no recognizable field
        """
        tld = self._extract_tld(domain)

        try:
            server = await self.resolve_server(tld)
        except (asyncio.TimeoutError, OSError) as e:
            return self._error(WHOISErrorCode.NO_SERVER, f"Server discovery failed for .{tld}: {e}")

        if not server:
            return self._error(WHOISErrorCode.NO_SERVER, f"No WHOIS server known for TLD: {tld}")

        try:
            raw_response = await self._execute_whois_query(domain, server)
        except asyncio.TimeoutError:
            return self._error(
                WHOISErrorCode.TIMEOUT,
                f"WHOIS query timed out after {self._timeout}s",
                server=server,
            )
        except OSError as e:
            return self._error(WHOISErrorCode.NETWORK_ERROR, f"Socket error: {e}", server=server)

        return self.parse_response(raw_response, server=server)

    def parse_response(self, raw_response: str, server: Optional[str] = None) -> WHOISResponse:
        """
        Classify a raw WHOIS answer and extract the expiration date.

        A recognized expiration date always wins. Rate limiting is only
        reported for answers that carry no date.

        Args:
            raw_response: Raw WHOIS response text
            server: Server that produced it (for diagnostics)

        Returns:
            WHOISResponse with appropriate status
        """
        extracted = self.extract_expiration(raw_response)
        if extracted is None:
            if self.is_rate_limited(raw_response):
                return WHOISResponse(
                    status=WHOISStatus.RATE_LIMITED,
                    raw_response=raw_response,
                    expiry=None,
                    matched_label=None,
                    server=server,
                    error=WHOISError(
                        code=WHOISErrorCode.RATE_LIMITED,
                        message="WHOIS server reported rate limiting",
                    ),
                )
            return WHOISResponse(
                status=WHOISStatus.ERROR,
                raw_response=raw_response,
                expiry=None,
                matched_label=None,
                server=server,
                error=WHOISError(
                    code=WHOISErrorCode.NO_EXPIRATION,
                    message="No recognizable expiration field in WHOIS response",
                ),
            )

        label, expiry = extracted
        return WHOISResponse(
            status=WHOISStatus.FOUND,
            raw_response=raw_response,
            expiry=expiry,
            matched_label=label,
            server=server,
            error=None,
        )

    def is_rate_limited(self, raw_response: Optional[str]) -> bool:
        """Check whether a response is a rate-limit refusal."""
        if not raw_response:
            return False
        lowered = raw_response.lower()
        return any(signal in lowered for signal in RATE_LIMIT_SIGNALS)

    def extract_expiration(self, raw_response: Optional[str]) -> Optional[tuple[str, datetime]]:
        """
        Find the expiration date using the ordered label patterns.

        Patterns are tried in priority order. Within a pattern every
        occurrence is tried; a label whose value does not parse does not
        stop the search.

        Returns:
            (pattern name, expiry) or None
        """
        if not raw_response:
            return None

        for name, pattern in EXPIRY_PATTERNS:
            for match in pattern.finditer(raw_response):
                expiry = parse_expiry_date(match.group(1))
                if expiry is not None:
                    return name, expiry
        return None

    async def resolve_server(self, tld: str) -> Optional[str]:
        """
        Return the WHOIS server for a TLD, asking IANA when it is unknown.

        Raises:
            asyncio.TimeoutError, OSError: If the IANA query fails
        """
        tld = tld.lower()
        if not tld:
            return None
        if tld in self._servers:
            return self._servers[tld]

        answer = await self._execute_whois_query(tld, IANA_WHOIS_SERVER)
        server = self.parse_referral(answer)
        if server:
            self._servers[tld] = server
        return server

    @staticmethod
    def parse_referral(iana_response: str) -> Optional[str]:
        """Extract the ``refer:`` (or ``whois:``) server from an IANA answer."""
        for key in ("refer", "whois"):
            match = re.search(rf"^{key}:\s*(\S+)", iana_response or "", re.IGNORECASE | re.MULTILINE)
            if match:
                return match.group(1).strip()
        return None

    async def _execute_whois_query(self, query: str, server: str) -> str:
        """
        Execute the actual WHOIS query via socket.

        Args:
            query: Text to send (domain or TLD)
            server: WHOIS server hostname

        Returns:
            Raw WHOIS response as string
        """
        loop = asyncio.get_running_loop()

        def _sync_query() -> str:
            with socket.create_connection((server, 43), timeout=self._timeout) as sock:
                sock.sendall(f"{query}\r\n".encode("utf-8"))

                response_parts: list[bytes] = []
                while True:
                    data = sock.recv(4096)
                    if not data:
                        break
                    response_parts.append(data)

                return b"".join(response_parts).decode("utf-8", errors="replace")

        return await asyncio.wait_for(
            loop.run_in_executor(None, _sync_query),
            timeout=self._timeout,
        )

    def _extract_tld(self, domain: str) -> str:
        parts = domain.lower().rstrip(".").split(".")
        return parts[-1] if len(parts) > 1 else ""

    def _error(
        self, code: WHOISErrorCode, message: str, server: Optional[str] = None
    ) -> WHOISResponse:
        return WHOISResponse(
            status=WHOISStatus.ERROR,
            raw_response=None,
            expiry=None,
            matched_label=None,
            server=server,
            error=WHOISError(code=code, message=message),
        )

    def get_supported_tlds(self) -> list[str]:
        """Return list of TLDs with known WHOIS servers."""
        return list(self._servers.keys())
