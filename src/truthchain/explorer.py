# SPDX-License-Identifier: MIT
# Copyright (c) 2026 TruthChain Contributors

"""Read-only transaction explorer.

Joins the platform's audit record for a transaction with what the ledger
reports about it. Lookups never raise on ledger trouble: the caller gets
``lookup_failed`` and whatever the audit record already knows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any

from .core.exceptions import LedgerException
from .ledger.models import TransactionDetails
from .staking.models import TransactionRecord

if TYPE_CHECKING:
    from .ledger.client import LedgerClient
    from .store.interface import ClaimStore

logger = logging.getLogger(__name__)


class LookupState(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    LOOKUP_FAILED = "lookup_failed"


@dataclass
class ExplorerResult:
    tx_id: str
    state: LookupState
    amount: Decimal | None = None
    sender: str | None = None
    receiver: str | None = None
    status: str | None = None
    block_ref: int | None = None
    note: str | None = None
    claim_id: str | None = None
    kind: str | None = None
    audit_status: str | None = None
    error: str | None = None

    @property
    def found(self) -> bool:
        return self.state == LookupState.FOUND

    def to_dict(self) -> dict[str, Any]:
        return {
            "tx_id": self.tx_id,
            "state": self.state.value,
            "amount": str(self.amount) if self.amount is not None else None,
            "sender": self.sender,
            "receiver": self.receiver,
            "status": self.status,
            "block_ref": self.block_ref,
            "note": self.note,
            "claim_id": self.claim_id,
            "kind": self.kind,
            "audit_status": self.audit_status,
            "error": self.error,
        }


def _from_audit(tx_id: str, state: LookupState, record: TransactionRecord | None) -> ExplorerResult:
    result = ExplorerResult(tx_id=tx_id, state=state)
    if record is not None:
        result.amount = record.amount
        result.sender = record.staker
        result.claim_id = record.claim_id
        result.kind = record.kind.value
        result.audit_status = record.status.value
        result.block_ref = record.block_ref
    return result


class TransactionExplorer:
    """Looks up stake transactions for auditing."""

    def __init__(self, store: ClaimStore, ledger: LedgerClient):
        self.store = store
        self.ledger = ledger

    async def lookup(self, tx_id: str) -> ExplorerResult:
        tx_id = (tx_id or "").strip()
        if not tx_id:
            return ExplorerResult(tx_id=tx_id, state=LookupState.NOT_FOUND)
        record = await self.store.get_transaction(tx_id)

        try:
            details = await self.ledger.lookup_transaction(tx_id)
        except LedgerException as e:
            logger.warning(f"Explorer lookup for {tx_id} failed: {e}")
            result = _from_audit(tx_id, LookupState.LOOKUP_FAILED, record)
            result.error = e.message
            return result

        if details is None:
            return _from_audit(tx_id, LookupState.NOT_FOUND, record)
        return self._merge(details, record)

    async def recent(self, limit: int = 20) -> list[TransactionRecord]:
        """Most recent audit records, newest first."""
        return await self.store.list_transactions(limit=limit)

    @staticmethod
    def _merge(details: TransactionDetails, record: TransactionRecord | None) -> ExplorerResult:
        result = _from_audit(details.tx_id, LookupState.FOUND, record)
        result.amount = details.amount
        result.sender = details.sender
        result.receiver = details.receiver
        result.status = details.status.value
        result.block_ref = details.block_ref
        result.note = details.note
        return result
