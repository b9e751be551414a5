# SPDX-License-Identifier: MIT
# Copyright (c) 2026 TruthChain Contributors

"""Stake escrow.

The StakeLedger is the only writer of Stake rows and of a claim's
``total_staked``/``verification_count``. Every stake goes through the same
sequence:

1. Local checks (amount, address, claim state, duplicates).
2. Idempotency fence: an existing audit record for (claim, staker) is
   resumed rather than paid again.
3. Submit to the ledger and record the transaction as ``submitted``.
4. Wait for confirmation.
5. Apply the stake and counters in one atomic store operation.
6. Mark the record ``confirmed`` and bump the staker's profile, together.

Counters move only in step 5. A timeout or cancellation in step 4 leaves the
record ``submitted``; the next attempt for the same (claim, staker) picks the
transaction up again by its id. A stake applied in step 5 whose record is not
yet ``confirmed`` is finished by the next attempt instead of being refused as
a duplicate.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from ..core.config import CoreSettings, get_config
from ..core.exceptions import (
    ClaimNotAcceptingStakesError,
    DuplicateStakeError,
    NotFoundError,
    SelfStakeError,
    SubmissionRejectedError,
)
from ..core.locks import KeyedLocks
from ..ledger.address import require_valid_address
from ..ledger.models import Confirmation, TransactionState
from .constants import ClaimConstants
from .enums import ClaimStatus, StakeSide, TransactionKind, TransactionStatus
from .models import Claim, Stake, TransactionRecord, utcnow
from .validators import validate_side, validate_stake_amount

if TYPE_CHECKING:
    from ..ledger.client import LedgerClient
    from ..store.interface import ClaimStore

logger = logging.getLogger(__name__)


def build_memo(kind: TransactionKind, claim_id: str, side: StakeSide) -> str:
    """Ledger note tying a payment to its claim."""
    return json.dumps(
        {
            "app": ClaimConstants.MEMO_PREFIX,
            "type": kind.value,
            "claim": claim_id,
            "side": side.value,
        },
        sort_keys=True,
        separators=(",", ":"),
    )


class StakeLedger:
    """Escrows stakes on the ledger and records them against claims."""

    def __init__(
        self,
        store: ClaimStore,
        ledger: LedgerClient,
        *,
        settings: CoreSettings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.ledger = ledger
        self.settings = settings or get_config()
        self._clock = clock
        self._locks = KeyedLocks()

    async def escrow(
        self,
        claim_id: str,
        staker: str,
        side: StakeSide | str,
        amount: Decimal | int | float | str,
    ) -> Stake:
        """Escrow a verification stake on a pending claim.

        Raises:
            InsufficientStakeError: Amount below the minimum.
            ValidationException: Bad address or side.
            NotFoundError: No such claim.
            SelfStakeError: The author staking on their own pending claim.
            DuplicateStakeError: The staker already has a stake on this claim.
            ClaimNotAcceptingStakesError: Claim not pending, or window expired.
            InsufficientFundsError: Balance minus fee buffer does not cover it.
            LedgerException: Any ledger failure (signing, rejection, transport, timeout).
        """
        value = validate_stake_amount(amount, self.settings.min_stake)
        require_valid_address(staker, "staker")
        side = validate_side(side)

        async with self._locks.hold((claim_id, staker)):
            claim = await self.store.get_claim(claim_id)
            if claim is None:
                raise NotFoundError("Claim", claim_id)
            if claim.status == ClaimStatus.PENDING and staker == claim.author:
                raise SelfStakeError(claim_id, staker)
            existing = await self.store.get_stake(claim_id, staker)
            if existing is not None:
                return await self._finish_applied(existing)
            reason = claim.closed_reason(self._clock())
            if reason:
                raise ClaimNotAcceptingStakesError(claim_id, reason)

            return await self._escrow_locked(
                claim, staker, side, value, TransactionKind.VERIFICATION_STAKE
            )

    async def escrow_creation_stake(
        self, claim: Claim, amount: Decimal | int | float | str
    ) -> Stake:
        """Escrow the author's own stake while the claim is still a draft."""
        value = validate_stake_amount(amount, self.settings.min_stake)
        require_valid_address(claim.author, "author")

        async with self._locks.hold((claim.id, claim.author)):
            current = await self.store.get_claim(claim.id)
            if current is None:
                raise NotFoundError("Claim", claim.id)
            if current.status != ClaimStatus.DRAFT:
                raise ClaimNotAcceptingStakesError(claim.id, "claim is not a draft")
            return await self._escrow_locked(
                claim, claim.author, StakeSide.SUPPORT, value, TransactionKind.CLAIM_STAKE
            )

    # =========================================================================
    # Internals (caller holds the (claim, staker) lock)
    # =========================================================================

    async def _escrow_locked(
        self,
        claim: Claim,
        staker: str,
        side: StakeSide,
        amount: Decimal,
        kind: TransactionKind,
    ) -> Stake:
        record = await self.store.find_transaction(claim.id, staker)
        confirmation: Confirmation | None = None

        if record is not None and record.status == TransactionStatus.SUBMITTED:
            logger.info(
                f"Resuming transaction {record.tx_id} for {staker} on claim {claim.id}",
                extra={"extra_data": {"tx_id": record.tx_id, "claim_id": claim.id}},
            )
            confirmation = await self._resume(record)
            if confirmation is None:
                record = None
        elif record is not None and record.status == TransactionStatus.CONFIRMED:
            confirmation = Confirmation(record.tx_id, True, record.block_ref or 0)
        else:
            record = None

        if record is None:
            record = await self._submit(claim, staker, side, amount, kind)
            confirmation = await self._wait(record)

        return await self._apply(record, confirmation)

    async def _submit(
        self,
        claim: Claim,
        staker: str,
        side: StakeSide,
        amount: Decimal,
        kind: TransactionKind,
    ) -> TransactionRecord:
        tx_id = await self.ledger.submit_stake(
            staker,
            self.settings.escrow_address,
            amount,
            build_memo(kind, claim.id, side),
        )
        now = self._clock()
        record = TransactionRecord(
            tx_id=tx_id,
            claim_id=claim.id,
            staker=staker,
            side=side,
            kind=kind,
            amount=amount,
            status=TransactionStatus.SUBMITTED,
            created_at=now,
            updated_at=now,
        )
        await self.store.save_transaction(record)
        return record

    async def _wait(self, record: TransactionRecord) -> Confirmation:
        handle = self.ledger.await_confirmation(record.tx_id)
        try:
            return await handle
        except SubmissionRejectedError as e:
            await self.store.update_transaction(
                record.tx_id, TransactionStatus.FAILED, error=e.reason
            )
            raise
        finally:
            if not handle.done:
                handle.cancel()

    async def _resume(self, record: TransactionRecord) -> Confirmation | None:
        """Re-query a submitted transaction.

        Returns its confirmation, or None when it failed or vanished and a new
        submission is allowed.
        """
        info = await self.ledger.get_transaction_status(record.tx_id)
        if info.state == TransactionState.CONFIRMED:
            return Confirmation(record.tx_id, True, info.confirmed_round or 0)
        if info.state == TransactionState.PENDING:
            return await self._wait(record)
        if info.state == TransactionState.NOT_FOUND:
            # Confirmed transactions leave the pending pool; the indexer keeps them
            details = await self.ledger.lookup_transaction(record.tx_id)
            if details is not None and details.status == TransactionState.CONFIRMED:
                return Confirmation(record.tx_id, True, details.block_ref or 0)
            if details is not None:
                return await self._wait(record)

        error = info.pool_error or "transaction dropped from pool"
        await self.store.update_transaction(record.tx_id, TransactionStatus.FAILED, error=error)
        logger.warning(
            f"Transaction {record.tx_id} failed ({error}), submitting again",
            extra={"extra_data": {"tx_id": record.tx_id, "claim_id": record.claim_id}},
        )
        return None

    async def _apply(self, record: TransactionRecord, confirmation: Confirmation) -> Stake:
        now = self._clock()
        stake = Stake(
            claim_id=record.claim_id,
            staker=record.staker,
            side=record.side,
            amount=record.amount,
            placed_at=now,
            ledger_tx_id=record.tx_id,
            block_ref=confirmation.block_ref,
            is_creation=record.kind == TransactionKind.CLAIM_STAKE,
        )
        try:
            claim = await self.store.apply_stake(stake, now)
        except ClaimNotAcceptingStakesError:
            await self.store.update_transaction(
                record.tx_id, TransactionStatus.UNAPPLIED, block_ref=confirmation.block_ref
            )
            logger.warning(
                f"Transaction {record.tx_id} confirmed after claim {record.claim_id} closed",
                extra={"extra_data": {"tx_id": record.tx_id, "staker": record.staker}},
            )
            raise
        except DuplicateStakeError:
            existing = await self.store.get_stake(record.claim_id, record.staker)
            if existing is None or existing.ledger_tx_id != record.tx_id:
                raise
            # Applied by an earlier attempt that stopped before marking the record
            await self._confirm(record.tx_id, confirmation.block_ref)
            return existing

        await self._confirm(record.tx_id, confirmation.block_ref)

        logger.info(
            f"Stake of {stake.amount} ({stake.side.value}) by {stake.staker} applied to "
            f"claim {claim.id}: total_staked={claim.total_staked}",
            extra={
                "extra_data": {
                    "claim_id": claim.id,
                    "tx_id": record.tx_id,
                    "block_ref": confirmation.block_ref,
                    "verification_count": claim.verification_count,
                }
            },
        )
        return stake

    async def _finish_applied(self, stake: Stake) -> Stake:
        """Confirm the record of a stake applied by an interrupted attempt.

        Raises:
            DuplicateStakeError: The stake and its record are both settled.
        """
        record = None
        if stake.ledger_tx_id:
            record = await self.store.get_transaction(stake.ledger_tx_id)
        if record is None or record.status == TransactionStatus.CONFIRMED:
            raise DuplicateStakeError(stake.claim_id, stake.staker)

        logger.info(
            f"Finishing applied stake {record.tx_id} for {stake.staker} on claim {stake.claim_id}",
            extra={"extra_data": {"tx_id": record.tx_id, "claim_id": stake.claim_id}},
        )
        await self._confirm(record.tx_id, stake.block_ref)
        return stake

    async def _confirm(self, tx_id: str, block_ref: int | None) -> None:
        await self.store.confirm_stake(
            tx_id,
            block_ref,
            initial_reputation=self.settings.initial_reputation,
            now=self._clock(),
        )
