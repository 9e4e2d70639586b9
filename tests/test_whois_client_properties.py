"""
Property-based tests for WHOIS client module.

Uses Hypothesis for property-based testing of expiration extraction,
rate-limit detection and server discovery.
"""

import asyncio
import string
from datetime import datetime, timezone
from typing import Optional

from hypothesis import given, settings, assume
from hypothesis import strategies as st

from domain_watch.whois_client import (
    IANA_WHOIS_SERVER,
    RATE_LIMIT_SIGNALS,
    WHOISClient,
    parse_expiry_date,
)
from domain_watch.enums import WHOISErrorCode, WHOISStatus


class FakeWHOISClient(WHOISClient):
    """WHOIS client answering from a dict instead of port 43."""

    def __init__(self, answers: dict, error: Optional[Exception] = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.answers = answers
        self.error = error
        self.queries: list[tuple[str, str]] = []

    async def _execute_whois_query(self, query: str, server: str) -> str:
        self.queries.append((query, server))
        if self.error is not None:
            raise self.error
        return self.answers.get((query, server), "")


# Noise lines that cannot contain a label (no colon) or a rate-limit phrase
noise_strategy = st.text(
    alphabet=string.ascii_lowercase + string.digits + " \n",
    max_size=200,
).filter(lambda s: not any(signal in s for signal in RATE_LIMIT_SIGNALS))

expiry_strategy = st.datetimes(
    min_value=datetime(2000, 1, 1),
    max_value=datetime(2099, 12, 31),
).map(lambda dt: dt.replace(microsecond=0, tzinfo=timezone.utc))


class TestExpirationExtractionProperty:
    """
    Property-based tests for expiration extraction.

    **Feature: domain-watch, Property 13: The expiration field is found among arbitrary noise**
    """

    LABELS = {
        "registry_expiry": "Registry Expiry Date:",
        "registrar_expiry": "Registrar Registration Expiration Date:",
        "expiration_date": "Expiration Date:",
        "expires_on": "Expires on:",
        "expiry_date": "Expiry date:",
    }

    @given(
        name=st.sampled_from(sorted(LABELS)),
        expiry=expiry_strategy,
        before=noise_strategy,
        after=noise_strategy,
    )
    @settings(max_examples=100)
    def test_label_found_in_noise(
        self, name: str, expiry: datetime, before: str, after: str
    ) -> None:
        """
        Property 13: Extraction among noise.

        *For any* recognized label carrying an ISO date, surrounded by
        arbitrary text, the response is FOUND with that date and label.
        """
        raw = f"{before}\n{self.LABELS[name]} {expiry:%Y-%m-%dT%H:%M:%SZ}\n{after}"

        result = WHOISClient().parse_response(raw, server="whois.example")

        assert result.status == WHOISStatus.FOUND
        assert result.expiry == expiry
        assert result.matched_label == name
        assert result.server == "whois.example"
        assert result.error is None

    @given(first=expiry_strategy, second=expiry_strategy)
    @settings(max_examples=50)
    def test_registry_label_has_priority(self, first: datetime, second: datetime) -> None:
        """
        Property 13b: Label priority.

        *For any* response with both a registrar and a registry field, the
        registry expiry wins regardless of line order.
        """
        raw = (
            f"Registrar Registration Expiration Date: {second:%Y-%m-%dT%H:%M:%SZ}\n"
            f"Registry Expiry Date: {first:%Y-%m-%dT%H:%M:%SZ}\n"
        )
        label, expiry = WHOISClient().extract_expiration(raw)
        assert label == "registry_expiry"
        assert expiry == first

    def test_unparseable_value_does_not_stop_search(self) -> None:
        raw = (
            "Registry Expiry Date: REDACTED\n"
            "Expiry date: 13.08.2027\n"
        )
        label, expiry = WHOISClient().extract_expiration(raw)
        assert label == "expiry_date"
        assert expiry == datetime(2027, 8, 13, tzinfo=timezone.utc)

    @given(noise=noise_strategy)
    @settings(max_examples=100)
    def test_no_label_is_error(self, noise: str) -> None:
        """A response without any recognized field is ERROR/NO_EXPIRATION."""
        result = WHOISClient().parse_response(noise)
        assert result.status == WHOISStatus.ERROR
        assert result.expiry is None
        assert result.error.code == WHOISErrorCode.NO_EXPIRATION
        assert result.raw_response == noise


class TestRateLimitProperty:
    """
    Property-based tests for rate limit detection.

    **Feature: domain-watch, Property 14: Rate-limit refusals without a date are reported as rate limiting**
    """

    @given(
        signal=st.sampled_from(RATE_LIMIT_SIGNALS),
        upper=st.booleans(),
    )
    @settings(max_examples=50)
    def test_refusal_is_rate_limited(self, signal: str, upper: bool) -> None:
        """
        Property 14: Rate limiting.

        *For any* dateless response containing a rate-limit phrase in any
        case, the status is RATE_LIMITED.
        """
        phrase = signal.upper() if upper else signal
        raw = f"% {phrase}\n% Please try again later.\n"

        result = WHOISClient().parse_response(raw)

        assert result.status == WHOISStatus.RATE_LIMITED
        assert result.expiry is None
        assert result.error.code == WHOISErrorCode.RATE_LIMITED

    @given(
        signal=st.sampled_from(RATE_LIMIT_SIGNALS),
        expiry=expiry_strategy,
    )
    @settings(max_examples=50)
    def test_date_beats_rate_limit_phrase(self, signal: str, expiry: datetime) -> None:
        raw = f"% {signal}\nRegistry Expiry Date: {expiry:%Y-%m-%dT%H:%M:%SZ}\n"

        result = WHOISClient().parse_response(raw)

        assert result.status == WHOISStatus.FOUND
        assert result.expiry == expiry

    def test_query_limit_footer_keeps_date(self) -> None:
        raw = (
            "Domain Name: EXAMPLE.COM\n"
            "Registry Expiry Date: 2030-01-01T00:00:00Z\n"
            "NOTICE: automated access is subject to a query limit per IP.\n"
            "Access beyond the limit exceeded by abusive clients may be blocked.\n"
        )

        result = WHOISClient().parse_response(raw)

        assert result.status == WHOISStatus.FOUND
        assert result.expiry == datetime(2030, 1, 1, tzinfo=timezone.utc)
        assert result.matched_label == "registry_expiry"

    def test_query_limit_footer_alone_is_not_rate_limited(self) -> None:
        raw = "NOTICE: automated access is subject to a query limit per IP.\n"
        assert not WHOISClient().is_rate_limited(raw)
        assert WHOISClient().parse_response(raw).error.code == WHOISErrorCode.NO_EXPIRATION

    def test_empty_response_is_not_rate_limited(self) -> None:
        assert not WHOISClient().is_rate_limited("")
        assert not WHOISClient().is_rate_limited(None)


class TestDateParsingProperty:
    """
    Tests for registry date formats.

    **Feature: domain-watch, Property 15: Registry date formats parse to aware UTC datetimes**
    """

    @given(
        expiry=expiry_strategy,
        fmt=st.sampled_from([
            "%Y-%m-%dT%H:%M:%SZ",
            "%Y-%m-%dT%H:%M:%S+00:00",
            "%Y-%m-%d %H:%M:%S",
            "%Y-%m-%d %H:%M:%S UTC",
            "%Y.%m.%d %H:%M:%S",
            "%Y/%m/%d %H:%M:%S",
            "%d-%b-%Y %H:%M:%S",
            "%d.%m.%Y %H:%M:%S",
        ]),
    )
    @settings(max_examples=100)
    def test_formats_round_trip(self, expiry: datetime, fmt: str) -> None:
        """
        Property 15: Date formats.

        *For any* timestamp written in a supported registry format, parsing
        returns the same instant in UTC.
        """
        parsed = parse_expiry_date(expiry.strftime(fmt))
        assert parsed == expiry
        assert parsed.tzinfo is not None

    def test_offset_is_converted_to_utc(self) -> None:
        parsed = parse_expiry_date("2025-08-13T06:00:00+02:00")
        assert parsed == datetime(2025, 8, 13, 4, 0, tzinfo=timezone.utc)

    def test_long_fraction_is_accepted(self) -> None:
        parsed = parse_expiry_date("2025-08-13T04:00:00.1234567Z")
        assert parsed == datetime(2025, 8, 13, 4, 0, 0, 123456, tzinfo=timezone.utc)

    def test_date_only_formats(self) -> None:
        expected = datetime(2025, 8, 13, tzinfo=timezone.utc)
        for text in ("2025-08-13", "13-Aug-2025", "13.08.2025", "2025/08/13", "20250813"):
            assert parse_expiry_date(text) == expected, text

    @given(text=st.sampled_from(["", "   ", "REDACTED FOR PRIVACY", "never", "2025-13-45"]))
    def test_garbage_is_none(self, text: str) -> None:
        assert parse_expiry_date(text) is None

    @given(text=st.sampled_from([
        "9999-12-31T23:00:00-05:00",
        "9999-12-31T20:00:00-10:00",
        "0001-01-01T00:30:00+01:00",
    ]))
    def test_out_of_range_after_utc_conversion_is_none(self, text: str) -> None:
        assert parse_expiry_date(text) is None

    def test_out_of_range_label_does_not_stop_search(self) -> None:
        raw = (
            "Registry Expiry Date: 9999-12-31T23:00:00-05:00\n"
            "Registrar Registration Expiration Date: 2030-06-01T00:00:00Z\n"
        )
        result = WHOISClient().parse_response(raw)

        assert result.status == WHOISStatus.FOUND
        assert result.matched_label == "registrar_expiry"
        assert result.expiry == datetime(2030, 6, 1, tzinfo=timezone.utc)


class TestServerDiscoveryProperty:
    """
    Tests for WHOIS server resolution and query error mapping.

    **Feature: domain-watch, Property 16: Unknown TLDs are resolved through IANA once**
    """

    def test_known_tld_uses_table(self) -> None:
        client = FakeWHOISClient({
            ("example.com", "whois.verisign-grs.com"): "Registry Expiry Date: 2030-01-01T00:00:00Z",
        })
        result = asyncio.run(client.query("example.com"))

        assert result.status == WHOISStatus.FOUND
        assert result.server == "whois.verisign-grs.com"
        assert client.queries == [("example.com", "whois.verisign-grs.com")]

    def test_unknown_tld_is_resolved_and_cached(self) -> None:
        client = FakeWHOISClient({
            ("xyz", IANA_WHOIS_SERVER): "domain: XYZ\nrefer: whois.nic.xyz\n",
            ("a.xyz", "whois.nic.xyz"): "Registry Expiry Date: 2030-01-01T00:00:00Z",
            ("b.xyz", "whois.nic.xyz"): "Registry Expiry Date: 2031-01-01T00:00:00Z",
        })

        first = asyncio.run(client.query("a.xyz"))
        second = asyncio.run(client.query("b.xyz"))

        assert first.status == WHOISStatus.FOUND
        assert second.expiry == datetime(2031, 1, 1, tzinfo=timezone.utc)
        assert [q for q in client.queries if q[1] == IANA_WHOIS_SERVER] == [("xyz", IANA_WHOIS_SERVER)]
        assert "xyz" in client.get_supported_tlds()

    def test_custom_servers_override_table(self) -> None:
        client = FakeWHOISClient({}, custom_servers={"COM": "whois.custom.test"})
        asyncio.run(client.query("example.com"))
        assert client.queries == [("example.com", "whois.custom.test")]

    @given(server=st.from_regex(r"whois\.[a-z]{2,10}\.[a-z]{2,4}", fullmatch=True))
    def test_parse_referral(self, server: str) -> None:
        assert WHOISClient.parse_referral(f"% IANA WHOIS server\n\nrefer:        {server}\n") == server
        assert WHOISClient.parse_referral(f"whois: {server}") == server
        assert WHOISClient.parse_referral("status: ACTIVE") is None

    def test_no_referral_is_no_server(self) -> None:
        client = FakeWHOISClient({("zz", IANA_WHOIS_SERVER): "status: ACTIVE\n"})
        result = asyncio.run(client.query("example.zz"))
        assert result.status == WHOISStatus.ERROR
        assert result.error.code == WHOISErrorCode.NO_SERVER

    def test_domain_without_tld_is_no_server(self) -> None:
        result = asyncio.run(FakeWHOISClient({}).query("localhost"))
        assert result.error.code == WHOISErrorCode.NO_SERVER

    def test_socket_error_is_network_error(self) -> None:
        client = FakeWHOISClient({}, error=ConnectionRefusedError("refused"))
        result = asyncio.run(client.query("example.com"))
        assert result.status == WHOISStatus.ERROR
        assert result.error.code == WHOISErrorCode.NETWORK_ERROR
        assert result.server == "whois.verisign-grs.com"

    def test_timeout_is_reported(self) -> None:
        client = FakeWHOISClient({}, error=asyncio.TimeoutError())
        result = asyncio.run(client.query("example.com"))
        assert result.error.code == WHOISErrorCode.TIMEOUT
