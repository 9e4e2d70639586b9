"""
Property-based tests for domain validation module.

Uses Hypothesis for property-based testing of canonicalization of the
configured domain before it is handed to WHOIS and RDAP.
"""

import string

import idna
from hypothesis import given, settings, assume
from hypothesis import strategies as st

from domain_watch.domain_validator import DomainValidator
from domain_watch.enums import DomainValidationErrorCode
from domain_watch.exceptions import ValidationError


TLDS = ["de", "com", "net", "org", "eu", "io", "dev"]


# Labels cannot start or end with hyphen per RFC 1035
def valid_ascii_label() -> st.SearchStrategy[str]:
    """Generate valid ASCII domain labels (no leading/trailing hyphens)."""
    alphanumeric = st.sampled_from(string.ascii_lowercase + string.digits)

    return st.one_of(
        alphanumeric,
        st.builds(
            lambda first, middle, last: first + middle + last,
            alphanumeric,
            st.text(
                alphabet=string.ascii_lowercase + string.digits + "-",
                min_size=0,
                max_size=10,
            ),
            alphanumeric,
        ),
    ).filter(lambda s: len(s) <= 63 and "--" not in s[:4])


def valid_ascii_domain() -> st.SearchStrategy[str]:
    """Generate valid ASCII domain names."""
    return st.builds(
        lambda label, tld: f"{label}.{tld}",
        valid_ascii_label(),
        st.sampled_from(TLDS),
    )


def valid_idn_domain() -> st.SearchStrategy[str]:
    """Generate internationalized domain names."""
    international_chars = "äöüéèêàâáçñø"
    valid_chars = string.ascii_lowercase + string.digits + international_chars

    return st.builds(
        lambda first, middle, last, tld: f"{first}{middle}{last}.{tld}",
        st.sampled_from(valid_chars),
        st.text(alphabet=valid_chars, min_size=0, max_size=8),
        st.sampled_from(valid_chars),
        st.sampled_from(TLDS),
    )


class TestDomainNormalizationProperty:
    """
    Property-based tests for domain normalization.

    **Feature: domain-watch, Property 10: Canonical form is lowercase ASCII**
    """

    @given(domain=valid_ascii_domain())
    @settings(max_examples=100)
    def test_ascii_domain_unchanged_except_case(self, domain: str) -> None:
        """
        Property 10a: ASCII domains are only lowercased.

        *For any* ASCII domain in any case, the canonical form equals the
        lowercased input.
        """
        validator = DomainValidator()

        for variant in (domain, domain.upper(), domain.swapcase()):
            assert validator.canonicalize(variant) == domain.lower()

    @given(domain=valid_idn_domain())
    @settings(max_examples=100)
    def test_idn_produces_valid_idna_encoding(self, domain: str) -> None:
        """
        Property 10b: International domains are punycode encoded.

        *For any* domain containing international characters, the canonical
        form is ASCII and decodes back to the input.
        """
        assume(any(ord(c) > 127 for c in domain))
        validator = DomainValidator()

        try:
            canonical = validator.normalize_to_canonical(domain)
        except ValidationError:
            # Some generated strings are not valid IDNA
            return

        assert canonical.isascii()
        assert canonical.split(".")[0].startswith("xn--")
        assert idna.decode(canonical) == domain.lower()

    @given(domain=st.one_of(valid_ascii_domain(), valid_idn_domain()))
    @settings(max_examples=100)
    def test_normalization_is_idempotent(self, domain: str) -> None:
        """Canonicalizing a canonical domain does not change it."""
        validator = DomainValidator()
        result = validator.validate(domain)
        assume(result.valid)

        assert validator.canonicalize(result.canonical_domain) == result.canonical_domain

    @given(
        domain=valid_ascii_domain(),
        scheme=st.sampled_from(["", "http://", "https://", "HTTPS://"]),
        path=st.sampled_from(["", "/", "/index.html", "/a/b?c=d"]),
        trailing_dot=st.booleans(),
    )
    @settings(max_examples=100)
    def test_decorations_are_stripped(
        self, domain: str, scheme: str, path: str, trailing_dot: bool
    ) -> None:
        """
        Property 10c: URL decorations do not reach the lookup.

        *For any* domain wrapped in a scheme, path or trailing dot, the
        canonical form is the bare domain.
        """
        raw = f"  {scheme}{domain}{'.' if trailing_dot else ''}{path} "
        assert DomainValidator().canonicalize(raw) == domain


class TestForbiddenCharactersProperty:
    """
    Property-based tests for forbidden character rejection.

    **Feature: domain-watch, Property 11: Forbidden characters cause rejection**
    """

    FORBIDDEN_CHARS = [
        '\x00', '\x01', '\x1f', '\x7f',
        ' ', '\t', '\n',
        '!', '@', '#', '$', '%', '^', '&', '*', '(', ')', '+', '=',
        '[', ']', '{', '}', '|', '\\', ':', ';', '"', "'", '<', '>',
        ',', '?', '`', '~',
    ]

    @given(
        base_label=st.text(
            alphabet=string.ascii_lowercase + string.digits,
            min_size=2,
            max_size=10,
        ),
        forbidden_char=st.sampled_from(FORBIDDEN_CHARS),
        tld=st.sampled_from(TLDS),
    )
    @settings(max_examples=100)
    def test_forbidden_chars_in_label_cause_rejection(
        self, base_label: str, forbidden_char: str, tld: str
    ) -> None:
        """
        Property 11: Forbidden characters in label cause rejection.

        *For any* domain with a forbidden character inside its label,
        validation fails with FORBIDDEN_CHARS and canonicalize raises.
        """
        mid = len(base_label) // 2
        domain = f"{base_label[:mid]}{forbidden_char}{base_label[mid:]}.{tld}"
        validator = DomainValidator()

        result = validator.validate(domain)

        assert not result.valid
        assert result.canonical_domain is None
        assert result.error.code == DomainValidationErrorCode.FORBIDDEN_CHARS

        try:
            validator.canonicalize(domain)
            assert False, "Expected ValidationError"
        except ValidationError as e:
            assert e.code == DomainValidationErrorCode.FORBIDDEN_CHARS.value


class TestStructuralErrorsProperty:
    """
    Tests for empty input and missing TLD.

    **Feature: domain-watch, Property 12: Inputs without a TLD are rejected**
    """

    @given(blank=st.text(alphabet=" \t\n", max_size=5))
    def test_blank_input_is_empty(self, blank: str) -> None:
        result = DomainValidator().validate(blank)
        assert not result.valid
        assert result.error.code == DomainValidationErrorCode.EMPTY_INPUT

    @given(label=valid_ascii_label())
    @settings(max_examples=50)
    def test_single_label_has_no_tld(self, label: str) -> None:
        """A bare label without a dot is rejected with INVALID_TLD."""
        result = DomainValidator().validate(label)
        assert not result.valid
        assert result.error.code == DomainValidationErrorCode.INVALID_TLD

    def test_leading_dot_has_no_registrable_label(self) -> None:
        result = DomainValidator().validate(".com")
        assert not result.valid
        assert result.error.code == DomainValidationErrorCode.INVALID_TLD
