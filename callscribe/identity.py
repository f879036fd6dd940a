"""
Participant identity and conversation keys.

Both legs of a call derive the room/conversation key independently, so the
derivation must be symmetric and stable:

    derive_key("+65 9033 9936", "90339937") == derive_key("90339937", "+65 9033 9936")
    == "room-6590339936-6590339937"

Accepted identifier forms (after removing spaces, hyphens, parentheses and '+'):
- 8 digits starting with 8 or 9 (local mobile) -> country prefix is prepended
- 10 digits starting with the country prefix -> already canonical
Everything else is rejected with InvalidIdentifier.
"""
from __future__ import annotations

import re

KEY_PREFIX = "room-"
KEY_SEPARATOR = "-"
DEFAULT_COUNTRY_PREFIX = "65"

_STRIP_RE = re.compile(r"[\s\-()+]")
_DIGITS_RE = re.compile(r"[0-9]+")


class InvalidIdentifier(ValueError):
    """Identifier is empty or not in an accepted phone-like form."""

    def __init__(self, raw: object, reason: str):
        super().__init__(f"Invalid identifier {raw!r}: {reason}")
        self.raw = raw
        self.reason = reason


def _digits_only(raw: str) -> str:
    if raw is None or not isinstance(raw, str):
        raise InvalidIdentifier(raw, "identifier must be a string")
    cleaned = _STRIP_RE.sub("", raw)
    if not cleaned:
        raise InvalidIdentifier(raw, "no digits")
    if not _DIGITS_RE.fullmatch(cleaned):
        raise InvalidIdentifier(raw, "contains characters other than digits")
    return cleaned


def canonicalize(raw: str, country_prefix: str = DEFAULT_COUNTRY_PREFIX) -> str:
    """Return the canonical digit-only form of a phone-like identifier. Idempotent."""
    digits = _digits_only(raw)
    local_len = 8
    full_len = len(country_prefix) + local_len
    if len(digits) == local_len and digits[0] in "89":
        return f"{country_prefix}{digits}"
    if len(digits) == full_len and digits.startswith(country_prefix):
        return digits
    raise InvalidIdentifier(
        raw,
        f"expected {local_len} digits starting with 8/9 or {full_len} digits starting with {country_prefix}",
    )


def derive_key(raw_a: str, raw_b: str, country_prefix: str = DEFAULT_COUNTRY_PREFIX) -> str:
    """Symmetric conversation key: room-<min>-<max> of the two canonical identifiers."""
    first, second = sorted(
        (canonicalize(raw_a, country_prefix), canonicalize(raw_b, country_prefix))
    )
    return f"{KEY_PREFIX}{first}{KEY_SEPARATOR}{second}"


def parse_key(key: str) -> tuple[str, str]:
    """Split a conversation key into its two canonical segments (sorted)."""
    if not isinstance(key, str) or not key.startswith(KEY_PREFIX):
        raise InvalidIdentifier(key, f"conversation key must start with {KEY_PREFIX!r}")
    parts = key[len(KEY_PREFIX):].split(KEY_SEPARATOR)
    if len(parts) != 2 or not all(p and _DIGITS_RE.fullmatch(p) for p in parts):
        raise InvalidIdentifier(key, "conversation key must hold exactly two digit segments")
    if parts[0] > parts[1]:
        raise InvalidIdentifier(key, "conversation key segments are not sorted")
    return parts[0], parts[1]


class IdentityResolver:
    """Canonicalization bound to one country prefix (from settings)."""

    def __init__(self, country_prefix: str = DEFAULT_COUNTRY_PREFIX) -> None:
        self._country_prefix = country_prefix

    def canonicalize(self, raw: str) -> str:
        return canonicalize(raw, self._country_prefix)

    def derive_key(self, raw_a: str, raw_b: str) -> str:
        return derive_key(raw_a, raw_b, self._country_prefix)
