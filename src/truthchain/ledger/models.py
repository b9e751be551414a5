"""Data models for the ledger client.

Amounts are Decimal units on every model here except ``PaymentIntent``,
which is the wire-facing object handed to the external signer and so
carries integer microunits.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from .amounts import from_microunits


class TransactionState(str, Enum):
    """Where a transaction is as far as the ledger node knows."""
    PENDING = "pending"          # In the transaction pool
    CONFIRMED = "confirmed"      # Included in a block
    FAILED = "failed"            # Dropped from the pool with an error
    NOT_FOUND = "not_found"      # Unknown to the node


@dataclass
class TransactionStatusInfo:
    """Result of a single status query."""

    tx_id: str
    state: TransactionState
    confirmed_round: int | None = None
    pool_error: str | None = None

    @classmethod
    def from_pending_response(cls, tx_id: str, data: dict[str, Any]) -> TransactionStatusInfo:
        """Parse a node ``/v2/transactions/pending/{txid}`` body."""
        confirmed_round = data.get("confirmed-round") or 0
        pool_error = data.get("pool-error") or ""
        if confirmed_round > 0:
            return cls(tx_id, TransactionState.CONFIRMED, confirmed_round=confirmed_round)
        if pool_error:
            return cls(tx_id, TransactionState.FAILED, pool_error=pool_error)
        return cls(tx_id, TransactionState.PENDING)


@dataclass(frozen=True)
class Confirmation:
    """A transaction observed in a block."""

    tx_id: str
    confirmed: bool
    block_ref: int


@dataclass
class TransactionDetails:
    """Explorer view of a ledger transaction."""

    tx_id: str
    amount: Decimal
    sender: str
    receiver: str
    status: TransactionState
    block_ref: int | None = None
    note: str | None = None

    @classmethod
    def from_indexer(cls, data: dict[str, Any]) -> TransactionDetails:
        """Parse the ``transaction`` object of an indexer lookup."""
        payment = data.get("payment-transaction") or {}
        confirmed_round = data.get("confirmed-round")
        return cls(
            tx_id=data["id"],
            amount=from_microunits(payment.get("amount", 0)),
            sender=data.get("sender", ""),
            receiver=payment.get("receiver", ""),
            status=TransactionState.CONFIRMED if confirmed_round else TransactionState.PENDING,
            block_ref=confirmed_round,
            note=_decode_note(data.get("note")),
        )

    @classmethod
    def from_pending(cls, tx_id: str, data: dict[str, Any]) -> TransactionDetails:
        """Parse a node pending-pool body (``txn.txn`` holds the raw fields)."""
        txn = (data.get("txn") or {}).get("txn") or {}
        status = TransactionStatusInfo.from_pending_response(tx_id, data)
        return cls(
            tx_id=tx_id,
            amount=from_microunits(txn.get("amt", 0)),
            sender=txn.get("snd", ""),
            receiver=txn.get("rcv", ""),
            status=status.state,
            block_ref=status.confirmed_round,
            note=_decode_note(txn.get("note")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "tx_id": self.tx_id,
            "amount": str(self.amount),
            "sender": self.sender,
            "receiver": self.receiver,
            "status": self.status.value,
            "block_ref": self.block_ref,
            "note": self.note,
        }


def _decode_note(raw: str | None) -> str | None:
    if not raw:
        return None
    try:
        return base64.b64decode(raw).decode("utf-8")
    except (ValueError, UnicodeDecodeError):
        return raw


@dataclass(frozen=True)
class SuggestedParams:
    """Network parameters a transaction must be built against."""

    fee: int
    min_fee: int
    first_valid: int
    last_valid: int
    genesis_id: str
    genesis_hash: str

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> SuggestedParams:
        last_round = int(data["last-round"])
        return cls(
            fee=int(data.get("fee", 0)),
            min_fee=int(data.get("min-fee", 1000)),
            first_valid=last_round,
            last_valid=last_round + 1000,
            genesis_id=data.get("genesis-id", ""),
            genesis_hash=data.get("genesis-hash", ""),
        )


@dataclass(frozen=True)
class PaymentIntent:
    """Unsigned payment handed to the external signer.

    The signer (wallet, hardware device) owns transaction encoding and the
    signature scheme; it returns the signed bytes ready for submission.
    """

    sender: str
    receiver: str
    amount: int
    note: bytes
    params: SuggestedParams

    def describe(self) -> dict[str, Any]:
        return {
            "sender": self.sender,
            "receiver": self.receiver,
            "amount": str(from_microunits(self.amount)),
            "note": self.note.decode("utf-8", errors="replace"),
        }


@dataclass
class NetworkStatus:
    healthy: bool
    last_round: int = 0
    time_since_last_round_ms: int = 0
    error: str | None = None


@dataclass
class _CachedBalance:
    amount: Decimal
    fetched_at: float


@dataclass
class BalanceCache:
    """Read-through balance cache. Written only by the ledger client."""

    ttl: float
    _entries: dict[str, _CachedBalance] = field(default_factory=dict)

    def get(self, address: str, now: float) -> Decimal | None:
        entry = self._entries.get(address)
        if entry is None or now - entry.fetched_at > self.ttl:
            return None
        return entry.amount

    def put(self, address: str, amount: Decimal, now: float) -> None:
        self._entries[address] = _CachedBalance(amount, now)

    def invalidate(self, address: str) -> None:
        self._entries.pop(address, None)
