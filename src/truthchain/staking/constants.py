"""Constants for the claim lifecycle.

Policy values that operators tune (minimum stake, fee buffer, window length,
reputation deltas) live in ``CoreSettings``; these are fixed by the product.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal


class ClaimConstants:
    """Fixed values for claims and stakes."""

    # Content
    MIN_CONTENT_LENGTH = 1

    # Expiry indicator
    EXPIRING_THRESHOLD = timedelta(days=1)

    # Suggested stake by confidence percentage, highest threshold first
    STAKE_RECOMMENDATIONS = (
        (90, Decimal("5")),
        (70, Decimal("2")),
        (50, Decimal("1")),
    )
    FALLBACK_RECOMMENDATION = Decimal("0.5")

    # Ledger memo prefix
    MEMO_PREFIX = "truthchain"
