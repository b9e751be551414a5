"""Ledger network access: addresses, amounts, submission and confirmation."""

from .address import format_address, is_valid_address, require_valid_address
from .amounts import MICROUNITS_PER_UNIT, as_amount, from_microunits, to_microunits
from .client import LedgerClient
from .models import (
    Confirmation,
    NetworkStatus,
    PaymentIntent,
    SuggestedParams,
    TransactionDetails,
    TransactionState,
    TransactionStatusInfo,
)
from .signing import TransactionSigner

__all__ = [
    "MICROUNITS_PER_UNIT",
    "Confirmation",
    "LedgerClient",
    "NetworkStatus",
    "PaymentIntent",
    "SuggestedParams",
    "TransactionDetails",
    "TransactionSigner",
    "TransactionState",
    "TransactionStatusInfo",
    "as_amount",
    "format_address",
    "from_microunits",
    "is_valid_address",
    "require_valid_address",
    "to_microunits",
]
