"""
Domain validation and normalization module.

Turns the configured domain (which may be an internationalized name, carry a
scheme or trailing dot, or use mixed case) into the canonical ASCII form the
WHOIS and RDAP services expect.
"""

import re
from dataclasses import dataclass
from typing import Optional

import idna

from .enums import DomainValidationErrorCode
from .exceptions import ValidationError


# Forbidden characters in domain names (control chars, spaces, special symbols)
# Based on RFC 1035 and RFC 5891 (IDNA2008)
FORBIDDEN_CHARS_PATTERN = re.compile(
    r'[\x00-\x1f\x7f'           # Control characters
    r'\s'                        # Whitespace
    r'!@#$%^&*()+=\[\]{}|\\:;"\'<>,?/`~]'  # Special symbols not allowed
)

_SCHEME_PATTERN = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)


@dataclass
class DomainValidationError:
    """Structured error information for domain validation failures."""

    code: DomainValidationErrorCode
    message: str
    details: dict


@dataclass
class DomainValidationResult:
    """Result of domain validation operation."""

    valid: bool
    canonical_domain: Optional[str]
    error: Optional[DomainValidationError]


class DomainValidator:
    """
    Validates and normalizes domain names.

    Handles:
    - Stripping of a URL scheme, path and trailing dot
    - Conversion to lowercase canonical form
    - IDNA encoding for international characters
    - Rejection of forbidden characters
    - Presence of a TLD label
    """

    def validate(self, raw_domain: str) -> DomainValidationResult:
        """
        Validate and normalize a domain string.

        Args:
            raw_domain: The raw domain string to validate

        Returns:
            DomainValidationResult with validation status and canonical form or error
        """
        if not raw_domain or not raw_domain.strip():
            return self._failure(
                DomainValidationErrorCode.EMPTY_INPUT,
                "Domain input is empty",
                {"raw_input": raw_domain},
            )

        domain = self._strip_decorations(raw_domain.strip())

        if FORBIDDEN_CHARS_PATTERN.search(domain):
            return self._failure(
                DomainValidationErrorCode.FORBIDDEN_CHARS,
                "Domain contains forbidden characters",
                {
                    "raw_input": raw_domain,
                    "forbidden_chars": FORBIDDEN_CHARS_PATTERN.findall(domain),
                },
            )

        try:
            canonical = self.normalize_to_canonical(domain)
        except ValidationError as e:
            return self._failure(DomainValidationErrorCode.IDNA_ERROR, e.message, e.details)

        if not self._extract_tld(canonical):
            return self._failure(
                DomainValidationErrorCode.INVALID_TLD,
                "Could not extract TLD from domain",
                {"raw_input": raw_domain, "canonical": canonical},
            )

        return DomainValidationResult(valid=True, canonical_domain=canonical, error=None)

    def canonicalize(self, raw_domain: str) -> str:
        """
        Validate and return the canonical form, raising on failure.

        Raises:
            ValidationError: If the domain is not valid
        """
        result = self.validate(raw_domain)
        if not result.valid:
            raise ValidationError(
                code=result.error.code.value,
                message=result.error.message,
                details=result.error.details,
            )
        return result.canonical_domain

    def normalize_to_canonical(self, domain: str) -> str:
        """
        Convert domain to canonical form (lowercase, IDNA-encoded).

        Raises:
            ValidationError: If IDNA encoding fails
        """
        domain_lower = domain.lower()

        if not any(ord(c) > 127 for c in domain_lower):
            return domain_lower

        try:
            return idna.encode(domain_lower, uts46=True).decode("ascii")
        except idna.IDNAError as e:
            raise ValidationError(
                code=DomainValidationErrorCode.IDNA_ERROR.value,
                message=f"IDNA encoding failed: {e}",
                details={"domain": domain, "idna_error": str(e)},
            )

    def _strip_decorations(self, domain: str) -> str:
        # "https://example.com/path" -> "example.com", "example.com." -> "example.com"
        domain = _SCHEME_PATTERN.sub("", domain)
        domain = domain.split("/", 1)[0]
        return domain.rstrip(".")

    def _extract_tld(self, domain: str) -> Optional[str]:
        if not domain or "." not in domain:
            return None

        sld, tld = domain.rsplit(".", 1)
        if not sld or not tld:
            return None

        return tld.lower()

    def _failure(
        self, code: DomainValidationErrorCode, message: str, details: dict
    ) -> DomainValidationResult:
        return DomainValidationResult(
            valid=False,
            canonical_domain=None,
            error=DomainValidationError(code=code, message=message, details=details),
        )
