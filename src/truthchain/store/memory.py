# SPDX-License-Identifier: MIT
# Copyright (c) 2026 TruthChain Contributors

"""In-memory implementation of ClaimStore.

Used by tests and single-process deployments. Every mutation of a claim or
profile happens under that entity's own ``asyncio.Lock``; there is no global
lock. Values handed out are copies, so callers cannot change stored state
behind the store's back.
"""

from __future__ import annotations

import copy
from contextlib import AsyncExitStack
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Optional

from ..core.exceptions import (
    ClaimNotAcceptingStakesError,
    ConflictError,
    DuplicateStakeError,
    NotFoundError,
)
from ..core.locks import KeyedLocks
from ..reputation.models import LeaderboardCategory, LeaderboardEntry, LeaderboardPeriod
from ..staking.enums import ClaimStatus, TransactionStatus
from ..staking.models import (
    Claim,
    Profile,
    ProfileAdjustment,
    Resolution,
    Stake,
    TransactionRecord,
    utcnow,
)


class InMemoryStore:
    """In-memory implementation of ClaimStore."""

    def __init__(self) -> None:
        self._claims: dict[str, Claim] = {}
        self._stakes: dict[str, dict[str, Stake]] = {}  # claim_id -> staker -> stake
        self._transactions: dict[str, TransactionRecord] = {}
        self._profiles: dict[str, Profile] = {}
        self._leaderboards: dict[tuple[LeaderboardCategory, LeaderboardPeriod], tuple[LeaderboardEntry, ...]] = {}

        self.claim_locks = KeyedLocks()
        self.profile_locks = KeyedLocks()

    # =========================================================================
    # Claims
    # =========================================================================

    async def insert_claim(self, claim: Claim) -> None:
        if claim.id in self._claims:
            raise ConflictError(f"Claim already exists: {claim.id}", existing_id=claim.id)
        self._claims[claim.id] = copy.deepcopy(claim)
        self._stakes[claim.id] = {}

    async def get_claim(self, claim_id: str) -> Optional[Claim]:
        claim = self._claims.get(claim_id)
        return copy.deepcopy(claim) if claim else None

    async def delete_draft(self, claim_id: str) -> bool:
        async with self.claim_locks.hold(claim_id):
            claim = self._claims.get(claim_id)
            if claim is None or claim.status != ClaimStatus.DRAFT:
                return False
            del self._claims[claim_id]
            self._stakes.pop(claim_id, None)
            return True

    async def activate_claim(self, claim_id: str, ledger_tx_id: str, now: datetime) -> Claim:
        async with self.claim_locks.hold(claim_id):
            claim = self._require_claim(claim_id)
            if claim.status != ClaimStatus.DRAFT:
                raise ConflictError(f"Claim {claim_id} is already {claim.status.value}", claim_id)
            claim.status = ClaimStatus.PENDING
            claim.created_at = now
            claim.ledger_tx_id = ledger_tx_id
            return copy.deepcopy(claim)

    async def list_claims(
        self, status: Optional[ClaimStatus] = None, limit: Optional[int] = None
    ) -> list[Claim]:
        claims = [
            c for c in self._claims.values()
            if status is None or c.status == status
        ]
        claims.sort(key=lambda c: c.created_at, reverse=True)
        if limit is not None:
            claims = claims[:limit]
        return [copy.deepcopy(c) for c in claims]

    async def list_expired_pending(self, now: datetime) -> list[Claim]:
        claims = [
            c for c in self._claims.values()
            if c.status == ClaimStatus.PENDING and c.expires_at <= now
        ]
        claims.sort(key=lambda c: c.expires_at)
        return [copy.deepcopy(c) for c in claims]

    async def resolve_claim(
        self,
        claim_id: str,
        resolution: Resolution,
        adjustments: list[ProfileAdjustment],
        *,
        initial_reputation: float,
        now: datetime,
    ) -> bool:
        async with self.claim_locks.hold(claim_id), AsyncExitStack() as stack:
            claim = self._require_claim(claim_id)
            if claim.status != ClaimStatus.PENDING:
                return False
            for user_id in sorted({a.user_id for a in adjustments}):
                await stack.enter_async_context(self.profile_locks.hold(user_id))

            for adjustment in adjustments:
                profile = self._profile_for(adjustment.user_id, initial_reputation, now)
                _adjust(
                    profile,
                    verifications_correct=adjustment.verifications_correct,
                    verifications_total=adjustment.verifications_total,
                    reputation_delta=adjustment.reputation_delta,
                )
            claim.status = ClaimStatus.RESOLVED
            claim.resolution = copy.deepcopy(resolution)
            return True

    def _require_claim(self, claim_id: str) -> Claim:
        claim = self._claims.get(claim_id)
        if claim is None:
            raise NotFoundError("Claim", claim_id)
        return claim

    # =========================================================================
    # Stakes
    # =========================================================================

    async def get_stake(self, claim_id: str, staker: str) -> Optional[Stake]:
        stake = self._stakes.get(claim_id, {}).get(staker)
        return replace(stake) if stake else None

    async def list_stakes(self, claim_id: str) -> list[Stake]:
        return [replace(s) for s in self._stakes.get(claim_id, {}).values()]

    async def apply_stake(self, stake: Stake, now: datetime) -> Claim:
        async with self.claim_locks.hold(stake.claim_id):
            claim = self._require_claim(stake.claim_id)
            stakes = self._stakes.setdefault(claim.id, {})
            if stake.staker in stakes:
                raise DuplicateStakeError(claim.id, stake.staker)

            if stake.is_creation:
                if claim.status != ClaimStatus.DRAFT:
                    raise ClaimNotAcceptingStakesError(claim.id, "creation stake already applied")
            else:
                reason = claim.closed_reason(now)
                if reason:
                    raise ClaimNotAcceptingStakesError(claim.id, reason)

            stakes[stake.staker] = replace(stake)
            claim.total_staked += stake.amount
            if not stake.is_creation:
                claim.verification_count += 1
            return copy.deepcopy(claim)

    # =========================================================================
    # Transaction audit
    # =========================================================================

    async def save_transaction(self, record: TransactionRecord) -> None:
        self._transactions[record.tx_id] = replace(record)

    async def get_transaction(self, tx_id: str) -> Optional[TransactionRecord]:
        record = self._transactions.get(tx_id)
        return replace(record) if record else None

    async def find_transaction(self, claim_id: str, staker: str) -> Optional[TransactionRecord]:
        matches = [
            r for r in self._transactions.values()
            if r.claim_id == claim_id and r.staker == staker
        ]
        if not matches:
            return None
        # Latest wins; a failed record never shadows a live one from the same instant
        matches.sort(key=lambda r: (r.created_at, r.status != TransactionStatus.FAILED))
        return replace(matches[-1])

    async def confirm_stake(
        self,
        tx_id: str,
        block_ref: Optional[int],
        *,
        initial_reputation: float,
        now: datetime,
    ) -> bool:
        record = self._transactions.get(tx_id)
        if record is None:
            raise NotFoundError("Transaction", tx_id)
        async with self.profile_locks.hold(record.staker):
            if record.status == TransactionStatus.CONFIRMED:
                return False
            profile = self._profile_for(record.staker, initial_reputation, now)
            _adjust(profile, total_stakes=1)
            record.status = TransactionStatus.CONFIRMED
            if block_ref is not None:
                record.block_ref = block_ref
            record.updated_at = utcnow()
            return True

    async def update_transaction(
        self,
        tx_id: str,
        status: TransactionStatus,
        block_ref: Optional[int] = None,
        error: Optional[str] = None,
    ) -> Optional[TransactionRecord]:
        record = self._transactions.get(tx_id)
        if record is None:
            return None
        record.status = status
        if block_ref is not None:
            record.block_ref = block_ref
        if error is not None:
            record.error = error
        record.updated_at = utcnow()
        return replace(record)

    async def list_transactions(
        self,
        status: Optional[TransactionStatus] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[TransactionRecord]:
        records = [
            r for r in self._transactions.values()
            if (status is None or r.status == status)
            and (since is None or r.created_at >= since)
        ]
        records.sort(key=lambda r: r.created_at, reverse=True)
        if limit is not None:
            records = records[:limit]
        return [replace(r) for r in records]

    # =========================================================================
    # Profiles
    # =========================================================================

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        profile = self._profiles.get(user_id)
        return replace(profile) if profile else None

    async def ensure_profile(self, user_id: str, reputation: float, now: datetime) -> Profile:
        async with self.profile_locks.hold(user_id):
            return replace(self._profile_for(user_id, reputation, now))

    async def adjust_profile(
        self,
        user_id: str,
        *,
        total_stakes: int = 0,
        verifications_correct: int = 0,
        verifications_total: int = 0,
        reputation_delta: float = 0.0,
        total_rewarded: Decimal = Decimal(0),
    ) -> Profile:
        async with self.profile_locks.hold(user_id):
            profile = self._profiles.get(user_id)
            if profile is None:
                raise NotFoundError("Profile", user_id)
            _adjust(
                profile,
                total_stakes=total_stakes,
                verifications_correct=verifications_correct,
                verifications_total=verifications_total,
                reputation_delta=reputation_delta,
                total_rewarded=total_rewarded,
            )
            return replace(profile)

    async def list_profiles(self) -> list[Profile]:
        return [replace(p) for p in self._profiles.values()]

    def _profile_for(self, user_id: str, reputation: float, now: datetime) -> Profile:
        """Stored profile, created if missing. Caller holds the profile lock."""
        profile = self._profiles.get(user_id)
        if profile is None:
            profile = Profile(user_id=user_id, reputation_score=reputation, created_at=now)
            self._profiles[user_id] = profile
        return profile

    # =========================================================================
    # Leaderboards
    # =========================================================================

    async def replace_leaderboard(
        self,
        category: LeaderboardCategory,
        period: LeaderboardPeriod,
        entries: list[LeaderboardEntry],
    ) -> None:
        self._leaderboards[(category, period)] = tuple(entries)

    async def get_leaderboard(
        self,
        category: LeaderboardCategory,
        period: LeaderboardPeriod,
        limit: Optional[int] = None,
    ) -> list[LeaderboardEntry]:
        entries = list(self._leaderboards.get((category, period), ()))
        if limit is not None:
            entries = entries[:limit]
        return entries


def _adjust(
    profile: Profile,
    *,
    total_stakes: int = 0,
    verifications_correct: int = 0,
    verifications_total: int = 0,
    reputation_delta: float = 0.0,
    total_rewarded: Decimal = Decimal(0),
) -> None:
    profile.total_stakes += total_stakes
    profile.verifications_correct += verifications_correct
    profile.verifications_total += verifications_total
    profile.reputation_score = max(0.0, profile.reputation_score + reputation_delta)
    profile.total_rewarded += total_rewarded
