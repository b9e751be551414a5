"""Account address grammar.

Addresses are 58 characters of RFC 4648 base32 without padding (A-Z, 2-7).
Checked locally before any network call.
"""

from __future__ import annotations

import re

from ..core.exceptions import ValidationException

ADDRESS_LENGTH = 58
_ADDRESS_RE = re.compile(r"^[A-Z2-7]{58}$")


def is_valid_address(value: object) -> bool:
    return isinstance(value, str) and _ADDRESS_RE.fullmatch(value) is not None


def require_valid_address(value: object, field: str = "address") -> str:
    """Return ``value`` unchanged, or raise ValidationException."""
    if not is_valid_address(value):
        raise ValidationException("Invalid ledger address format", field, value)
    return value  # type: ignore[return-value]


def format_address(address: str, length: int = 6) -> str:
    """Shorten an address for display: ``ABCDEF...UVWXYZ``."""
    if not address:
        return ""
    if len(address) <= length * 2:
        return address
    return f"{address[:length]}...{address[-length:]}"
