"""Unit conversion at the ledger boundary.

The core works in decimal units (1 unit = 1 ALGO); the network works in
integer microunits. Nothing outside the ledger package should need
``to_microunits``.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from ..core.exceptions import ValidationException

MICROUNITS_PER_UNIT = 1_000_000
_QUANTUM = Decimal(1) / MICROUNITS_PER_UNIT


def as_amount(value: Decimal | int | float | str) -> Decimal:
    """Coerce user input to a Decimal amount quantized to one microunit.

    Floats go through ``str`` so 0.1 stays 0.1.
    """
    if isinstance(value, bool):
        raise ValidationException("Amount must be numeric", "amount", value)
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (ArithmeticError, TypeError, ValueError) as e:
        raise ValidationException(f"Invalid amount: {value!r}", "amount", value) from e
    if not amount.is_finite():
        raise ValidationException("Amount must be finite", "amount", value)
    return amount.quantize(_QUANTUM, rounding=ROUND_HALF_UP)


def to_microunits(amount: Decimal | int | float | str) -> int:
    return int(as_amount(amount) * MICROUNITS_PER_UNIT)


def from_microunits(microunits: int) -> Decimal:
    return (Decimal(int(microunits)) / MICROUNITS_PER_UNIT).quantize(_QUANTUM)
