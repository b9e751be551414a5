# SPDX-License-Identifier: MIT
# Copyright (c) 2026 TruthChain Contributors

"""Verification resolver.

Decides a claim's outcome once its resolution window has closed and turns
the outcome into profile counter changes. Resolution happens exactly once
per claim: the store flips ``pending -> resolved`` and applies every profile
change in one operation. A failure leaves the claim pending with no profile
touched, and the next pass starts over.

This is the one component allowed to continue in a degraded mode: a stake
whose ledger transaction cannot be re-checked is left out of the tally and
the resolution is flagged ``degraded`` instead of blocking.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Union

from ..core.config import CoreSettings, get_config
from ..core.exceptions import (
    DatabaseException,
    LedgerUnreachableError,
    NotFoundError,
    TruthChainException,
    ValidationException,
)
from ..core.locks import KeyedLocks
from ..core.logging import correlation_context
from ..core.tasks import PeriodicTask
from ..ledger.models import TransactionState
from .enums import ClaimStatus, Outcome
from .models import ProfileAdjustment, Resolution, Stake, tally_stakes, utcnow

if TYPE_CHECKING:
    from ..ledger.client import LedgerClient
    from ..store.interface import ClaimStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolutionEvent:
    """Published after a claim's resolution and reputation changes are stored."""
    claim_id: str
    resolution: Resolution


ResolutionListener = Callable[[ResolutionEvent], Union[Awaitable[None], None]]


class VerificationResolver:
    """Resolves claims whose window has closed."""

    def __init__(
        self,
        store: ClaimStore,
        ledger: LedgerClient | None = None,
        *,
        settings: CoreSettings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.ledger = ledger
        self.settings = settings or get_config()
        self._clock = clock
        self._locks = KeyedLocks()
        self._listeners: list[ResolutionListener] = []

    def add_listener(self, listener: ResolutionListener) -> Callable[[], None]:
        """Register a listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def resolve(self, claim_id: str) -> Resolution:
        """Resolve a claim, or return its stored resolution if already resolved.

        Raises:
            NotFoundError: No such claim (drafts count as missing).
            ValidationException: The resolution window is still open.
            DatabaseException: The claim is resolved but has no stored resolution.
        """
        claim = await self.store.get_claim(claim_id)
        if claim is None or claim.status == ClaimStatus.DRAFT:
            raise NotFoundError("Claim", claim_id)
        if claim.status == ClaimStatus.RESOLVED:
            return _stored_resolution(claim_id, claim.resolution)

        now = self._clock()
        if now < claim.expires_at:
            raise ValidationException(
                f"Resolution window for claim {claim_id} is still open until "
                f"{claim.expires_at.isoformat()}",
                "claim_id",
                claim_id,
            )

        with correlation_context(claim_id):
            async with self._locks.hold(claim_id):
                stakes = await self.store.list_stakes(claim_id)
                excluded = await self._unverifiable_stakers(stakes)
                resolution = self._decide(claim_id, stakes, excluded, now)

                resolved = await self.store.resolve_claim(
                    claim_id,
                    resolution,
                    self._adjustments(resolution),
                    initial_reputation=self.settings.initial_reputation,
                    now=now,
                )
                if not resolved:
                    stored = await self.store.get_claim(claim_id)
                    logger.debug(f"Claim {claim_id} was already resolved")
                    return _stored_resolution(claim_id, stored.resolution if stored else None)

            logger.info(
                f"Claim {claim_id} resolved: {resolution.outcome.value} "
                f"(support={resolution.tally.support_total}, oppose={resolution.tally.oppose_total})",
                extra={"extra_data": resolution.to_dict()},
            )
            await self._notify(ResolutionEvent(claim_id, resolution))
        return resolution

    async def resolve_due(self, now: datetime | None = None) -> list[Resolution]:
        """Resolve every pending claim whose window has closed.

        A claim that fails to resolve is logged and left for the next pass.
        """
        due = await self.store.list_expired_pending(now or self._clock())
        resolutions = []
        for claim in due:
            try:
                resolutions.append(await self.resolve(claim.id))
            except TruthChainException as e:
                logger.error(
                    f"Failed to resolve claim {claim.id}: {e}",
                    extra={"extra_data": e.to_dict()},
                )
        return resolutions

    def start(self, interval: float) -> PeriodicTask:
        """Run ``resolve_due`` every ``interval`` seconds until cancelled."""
        return PeriodicTask(self.resolve_due, interval, name="resolve-due").start()

    # =========================================================================
    # Internals
    # =========================================================================

    async def _unverifiable_stakers(self, stakes: list[Stake]) -> list[str]:
        """Stakers whose transaction could not be confirmed on the ledger again."""
        if self.ledger is None or not self.settings.reverify_stakes_on_resolution:
            return []

        async def check(stake: Stake) -> str | None:
            if not stake.ledger_tx_id:
                return stake.staker
            try:
                details = await self.ledger.lookup_transaction(stake.ledger_tx_id)
            except LedgerUnreachableError as e:
                logger.warning(
                    f"Could not re-verify stake by {stake.staker} ({stake.ledger_tx_id}): {e}"
                )
                return stake.staker
            if details is None or details.status != TransactionState.CONFIRMED:
                logger.warning(
                    f"Stake by {stake.staker} has no confirmed transaction {stake.ledger_tx_id}"
                )
                return stake.staker
            return None

        results = await asyncio.gather(*(check(s) for s in stakes))
        return [staker for staker in results if staker is not None]

    def _decide(
        self,
        claim_id: str,
        stakes: list[Stake],
        excluded: list[str],
        now: datetime,
    ) -> Resolution:
        tally = tally_stakes(stakes, exclude=excluded)
        outcome = tally.leader
        counted = [s for s in stakes if s.staker not in excluded]

        winners: list[str] = []
        losers: list[str] = []
        if outcome != Outcome.TIE:
            for stake in counted:
                if stake.side.value == outcome.value:
                    winners.append(stake.staker)
                else:
                    losers.append(stake.staker)

        degraded = bool(excluded)
        if degraded:
            logger.warning(
                f"Degraded resolution for claim {claim_id}: excluded {len(excluded)} stake(s)",
                extra={"extra_data": {"claim_id": claim_id, "excluded": excluded}},
            )

        return Resolution(
            claim_id=claim_id,
            outcome=outcome,
            tally=tally,
            winners=winners,
            losers=losers,
            excluded_stakers=list(excluded),
            degraded=degraded,
            resolved_at=now,
        )

    def _adjustments(self, resolution: Resolution) -> list[ProfileAdjustment]:
        reward = self.settings.reputation_reward
        penalty = self.settings.reputation_penalty
        return [
            ProfileAdjustment(
                user_id,
                verifications_correct=1,
                verifications_total=1,
                reputation_delta=reward,
            )
            for user_id in resolution.winners
        ] + [
            ProfileAdjustment(user_id, verifications_total=1, reputation_delta=-penalty)
            for user_id in resolution.losers
        ]

    async def _notify(self, event: ResolutionEvent) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:  # noqa: BLE001
                logger.exception(f"Resolution listener failed for claim {event.claim_id}")


def _stored_resolution(claim_id: str, resolution: Resolution | None) -> Resolution:
    if resolution is None:
        raise DatabaseException(f"Claim {claim_id} is resolved but has no stored resolution")
    return resolution
