"""Signer contract for ledger submissions.

Signing happens on a device the core never sees (browser wallet, mobile
wallet, HSM). The ledger client only needs something that turns a
``PaymentIntent`` into signed transaction bytes, or refuses.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .models import PaymentIntent


@runtime_checkable
class TransactionSigner(Protocol):
    """Signs payments on behalf of an account holder."""

    async def sign(self, intent: PaymentIntent) -> bytes:
        """Return the signed transaction bytes.

        Raises:
            SigningDeclinedError: The holder refused, or the device is unavailable.
        """
        ...
