"""Validation functions for claims and stakes.

All checks here are local and raise before any ledger I/O.
"""

from __future__ import annotations

from decimal import Decimal

from ..core.exceptions import InsufficientStakeError, ValidationException
from ..ledger.amounts import as_amount
from .constants import ClaimConstants
from .enums import StakeSide


def validate_content(content: str, max_length: int) -> str:
    """Return the stripped claim text, or raise ValidationException."""
    if not isinstance(content, str):
        raise ValidationException("Claim content must be text", "content", content)
    text = content.strip()
    if len(text) < ClaimConstants.MIN_CONTENT_LENGTH:
        raise ValidationException("Claim content cannot be empty", "content")
    if len(text) > max_length:
        raise ValidationException(
            f"Claim content exceeds {max_length} characters", "content", len(text)
        )
    return text


def validate_stake_amount(amount: Decimal | int | float | str, minimum: Decimal) -> Decimal:
    """Coerce a stake to a Decimal and check it against the minimum."""
    value = as_amount(amount)
    if value < minimum:
        raise InsufficientStakeError(value, minimum)
    return value


def validate_side(side: StakeSide | str) -> StakeSide:
    try:
        return StakeSide(side)
    except ValueError as e:
        raise ValidationException(
            "Stake side must be 'support' or 'oppose'", "side", side
        ) from e
