# SPDX-License-Identifier: MIT
# Copyright (c) 2026 TruthChain Contributors

"""Claim lifecycle.

Stored status moves ``draft -> pending -> resolved`` and nowhere else. The
verified/challenged labels seen while a claim is open are computed on read
from the current tally; they are never written.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from ..core.config import CoreSettings, get_config
from ..core.exceptions import ConflictError, NotFoundError, TruthChainException
from ..core.logging import correlation_context
from ..ledger.address import format_address, require_valid_address
from .constants import ClaimConstants
from .enums import ClaimStatus, DisplayStatus, ExpiryState, Outcome, StakeSide, TransactionStatus
from .models import Claim, Stake, TransactionRecord, tally_stakes, utcnow
from .stake_ledger import StakeLedger
from .validators import validate_content, validate_stake_amount

if TYPE_CHECKING:
    from ..store.interface import ClaimStore

logger = logging.getLogger(__name__)

_LIVE_STATUSES = (TransactionStatus.SUBMITTED, TransactionStatus.CONFIRMED)


def display_status(claim: Claim, stakes: list[Stake]) -> DisplayStatus:
    """Label shown for a claim given its current stakes."""
    if claim.status == ClaimStatus.RESOLVED:
        return DisplayStatus.RESOLVED
    leader = tally_stakes(stakes).leader
    if leader == Outcome.SUPPORT:
        return DisplayStatus.VERIFIED
    if leader == Outcome.OPPOSE:
        return DisplayStatus.CHALLENGED
    return DisplayStatus.PENDING


def time_remaining(claim: Claim, now: datetime) -> timedelta:
    """Time left in the resolution window, never negative."""
    return max(claim.expires_at - now, timedelta(0))


def expiry_state(claim: Claim, now: datetime) -> ExpiryState:
    remaining = claim.expires_at - now
    if remaining <= timedelta(0):
        return ExpiryState.EXPIRED
    if remaining < ClaimConstants.EXPIRING_THRESHOLD:
        return ExpiryState.EXPIRING
    return ExpiryState.ACTIVE


def format_time_remaining(claim: Claim, now: datetime) -> str:
    """Short human form: ``3h 12m left`` or ``Expired``."""
    remaining = time_remaining(claim, now)
    if remaining <= timedelta(0):
        return "Expired"
    hours, rest = divmod(int(remaining.total_seconds()), 3600)
    minutes = rest // 60
    if hours:
        return f"{hours}h {minutes}m left"
    return f"{minutes}m left"


def narration_text(claim: Claim) -> str:
    """Plain text handed to avatar and voice services."""
    return (
        f"Claim by {format_address(claim.author)}: {claim.content} "
        f"Backed by {claim.total_staked} staked across "
        f"{claim.verification_count + 1} stakes."
    )


def recommend_stake(confidence: float, minimum: Decimal) -> Decimal:
    """Suggested stake for a confidence percentage (0-100)."""
    for threshold, amount in ClaimConstants.STAKE_RECOMMENDATIONS:
        if confidence >= threshold:
            return max(amount, minimum)
    return max(ClaimConstants.FALLBACK_RECOMMENDATION, minimum)


class ClaimLifecycle:
    """Creates claims and routes stakes to the StakeLedger."""

    def __init__(
        self,
        store: ClaimStore,
        stake_ledger: StakeLedger,
        *,
        settings: CoreSettings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.stake_ledger = stake_ledger
        self.settings = settings or get_config()
        self._clock = clock

    async def create(
        self, author: str, content: str, stake: Decimal | int | float | str
    ) -> Claim:
        """Create a claim backed by the author's stake.

        The claim exists as a draft, invisible to readers, until the stake is
        confirmed on the ledger. If escrow fails before anything reached the
        ledger the draft is discarded. A draft whose transaction was submitted
        is kept, and the next ``create`` with the same author and content (or
        ``recover_drafts``) resumes it instead of paying again.
        """
        text = validate_content(content, self.settings.max_content_length)
        amount = validate_stake_amount(stake, self.settings.min_stake)
        require_valid_address(author, "author")

        claim = await self._resumable_draft(author, text)
        if claim is None:
            claim = Claim.draft(
                author=author,
                content=text,
                stake=amount,
                resolution_window=self.settings.resolution_window,
                now=self._clock(),
            )
            await self.store.insert_claim(claim)
        else:
            logger.info(f"Resuming draft claim {claim.id} for {author}")

        with correlation_context(claim.id):
            try:
                creation_stake = await self.stake_ledger.escrow_creation_stake(claim, amount)
            except (Exception, asyncio.CancelledError):
                await self._discard_unpaid(claim)
                raise

            created = await self._activate(claim.id, creation_stake.ledger_tx_id)
            logger.info(
                f"Claim {created.id} created by {author} with stake {creation_stake.amount}",
                extra={"extra_data": {"claim_id": created.id, "tx_id": created.ledger_tx_id}},
            )
            return created

    async def recover_drafts(self) -> list[Claim]:
        """Finish drafts left behind by an interrupted ``create``.

        Only drafts with a submitted or confirmed creation transaction are
        touched. A draft that still cannot be finished is logged and left for
        the next pass.
        """
        recovered = []
        for claim in await self.store.list_claims(status=ClaimStatus.DRAFT):
            record = await self._live_record(claim)
            if record is None:
                continue
            with correlation_context(claim.id):
                try:
                    creation_stake = await self.stake_ledger.escrow_creation_stake(
                        claim, record.amount
                    )
                    recovered.append(await self._activate(claim.id, creation_stake.ledger_tx_id))
                except TruthChainException as e:
                    logger.warning(
                        f"Could not recover draft claim {claim.id}: {e}",
                        extra={"extra_data": e.to_dict()},
                    )
                    continue
            logger.info(f"Recovered draft claim {claim.id} from transaction {record.tx_id}")
        return recovered

    async def stake(
        self,
        claim_id: str,
        staker: str,
        side: StakeSide | str,
        amount: Decimal | int | float | str,
    ) -> Stake:
        with correlation_context(claim_id):
            return await self.stake_ledger.escrow(claim_id, staker, side, amount)

    async def get(self, claim_id: str) -> Claim:
        """Fetch a visible claim. Drafts are not visible."""
        claim = await self.store.get_claim(claim_id)
        if claim is None or claim.status == ClaimStatus.DRAFT:
            raise NotFoundError("Claim", claim_id)
        return claim

    async def list_visible(self, limit: int | None = None) -> list[Claim]:
        claims = await self.store.list_claims(limit=None)
        visible = [c for c in claims if c.status != ClaimStatus.DRAFT]
        return visible[:limit] if limit is not None else visible

    async def display_status(self, claim_id: str) -> DisplayStatus:
        claim = await self.get(claim_id)
        return display_status(claim, await self.store.list_stakes(claim_id))

    async def due_for_resolution(self, now: datetime | None = None) -> list[Claim]:
        return await self.store.list_expired_pending(now or self._clock())

    def recommend_stake(self, confidence: float) -> Decimal:
        return recommend_stake(confidence, self.settings.min_stake)

    # =========================================================================
    # Internals
    # =========================================================================

    async def _live_record(self, claim: Claim) -> TransactionRecord | None:
        """The draft's creation transaction, if it reached the ledger."""
        record = await self.store.find_transaction(claim.id, claim.author)
        if record is not None and record.status in _LIVE_STATUSES:
            return record
        return None

    async def _resumable_draft(self, author: str, content: str) -> Claim | None:
        for claim in await self.store.list_claims(status=ClaimStatus.DRAFT):
            if claim.author == author and claim.content == content:
                if await self._live_record(claim) is not None:
                    return claim
        return None

    async def _discard_unpaid(self, claim: Claim) -> None:
        record = await self._live_record(claim)
        if record is not None:
            logger.warning(
                f"Keeping draft claim {claim.id}: transaction {record.tx_id} is {record.status.value}",
                extra={"extra_data": {"claim_id": claim.id, "tx_id": record.tx_id}},
            )
            return
        await self.store.delete_draft(claim.id)
        logger.info(f"Discarded draft claim {claim.id} after failed escrow")

    async def _activate(self, claim_id: str, ledger_tx_id: str | None) -> Claim:
        try:
            return await self.store.activate_claim(claim_id, ledger_tx_id, self._clock())
        except ConflictError:
            # Another caller finished the same draft
            current = await self.store.get_claim(claim_id)
            if (
                current is not None
                and current.status == ClaimStatus.PENDING
                and current.ledger_tx_id == ledger_tx_id
            ):
                return current
            raise
