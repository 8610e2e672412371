"""
Domain name canonicalization.

Domain names are compared and sent to the registrar in canonical form:
stripped, lowercase, without a trailing root dot, IDNA-encoded when they
contain international characters.
"""

import re
from typing import Optional

import idna

from .enums import ErrorCode
from .exceptions import ValidationError

# Control characters, whitespace and symbols that never appear in a host name
FORBIDDEN_CHARS_PATTERN = re.compile(
    r'[\x00-\x1f\x7f'
    r'\s'
    r'!@#$%^&*()+=\[\]{}|\\:;"\'<>,?/`~]'
)


class DomainValidator:
    """Validates domain names and splits them into SLD and TLD."""

    def canonicalize(self, raw_domain: str) -> str:
        """
        Convert a domain to canonical form.

        Raises:
            ValidationError: Empty input, forbidden characters, missing TLD,
                             or IDNA encoding failure
        """
        if not raw_domain or not raw_domain.strip():
            raise ValidationError(
                code=ErrorCode.EMPTY_INPUT.value,
                message="Domain input is empty",
                details={"raw_input": raw_domain},
            )

        domain = raw_domain.strip().rstrip(".").lower()

        forbidden = FORBIDDEN_CHARS_PATTERN.findall(domain)
        if forbidden:
            raise ValidationError(
                code=ErrorCode.FORBIDDEN_CHARS.value,
                message="Domain contains forbidden characters",
                details={"raw_input": raw_domain, "forbidden_chars": forbidden},
            )

        if any(ord(c) > 127 for c in domain):
            try:
                domain = idna.encode(domain, uts46=True).decode("ascii")
            except idna.IDNAError as e:
                raise ValidationError(
                    code=ErrorCode.IDNA_ERROR.value,
                    message=f"IDNA encoding failed: {e}",
                    details={"raw_input": raw_domain, "idna_error": str(e)},
                ) from e

        sld, _, tld = domain.partition(".")
        if not sld or not tld or not all(tld.split(".")):
            raise ValidationError(
                code=ErrorCode.INVALID_TLD.value,
                message="Could not extract TLD from domain",
                details={"raw_input": raw_domain, "canonical": domain},
            )

        return domain

    def split(self, domain: str) -> tuple[str, str]:
        """Split a domain into (SLD, TLD): example.co.uk -> ('example', 'co.uk')."""
        canonical = self.canonicalize(domain)
        sld, _, tld = canonical.partition(".")
        return sld, tld

    def is_valid(self, raw_domain: str) -> bool:
        try:
            self.canonicalize(raw_domain)
        except ValidationError:
            return False
        return True


def same_domain(a: Optional[str], b: Optional[str]) -> bool:
    """Compare two domain names ignoring case and a trailing root dot."""
    if a is None or b is None:
        return a is None and b is None
    return a.strip().rstrip(".").lower() == b.strip().rstrip(".").lower()
