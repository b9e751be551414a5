# SPDX-License-Identifier: MIT
# Copyright (c) 2026 TruthChain Contributors

"""Storage contract for claims, stakes, profiles, leaderboards and audit records.

Implementations must make every counter change atomic per entity: a claim's
``total_staked``/``verification_count`` pair and a profile's counters are
only ever changed by a single add under that entity's lock (or row lock).
Unrelated claims and profiles never wait on each other.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, Protocol

if TYPE_CHECKING:
    from ..reputation.models import LeaderboardCategory, LeaderboardEntry, LeaderboardPeriod
    from ..staking.enums import ClaimStatus, TransactionStatus
    from ..staking.models import (
        Claim,
        Profile,
        ProfileAdjustment,
        Resolution,
        Stake,
        TransactionRecord,
    )


class ClaimStore(Protocol):
    """Protocol for the persistent store behind the staking core."""

    # -- Claims ---------------------------------------------------------------

    async def insert_claim(self, claim: Claim) -> None:
        """Store a new claim (normally in draft)."""
        ...

    async def get_claim(self, claim_id: str) -> Optional[Claim]:
        ...

    async def delete_draft(self, claim_id: str) -> bool:
        """Discard a claim still in draft, with any stake rows it has."""
        ...

    async def activate_claim(self, claim_id: str, ledger_tx_id: str, now: datetime) -> Claim:
        """Move a draft claim to pending, stamping ``created_at`` and its tx id."""
        ...

    async def list_claims(
        self, status: Optional[ClaimStatus] = None, limit: Optional[int] = None
    ) -> list[Claim]:
        """Claims newest first, optionally filtered by status."""
        ...

    async def list_expired_pending(self, now: datetime) -> list[Claim]:
        """Pending claims whose resolution window has closed, oldest first."""
        ...

    async def resolve_claim(
        self,
        claim_id: str,
        resolution: Resolution,
        adjustments: list[ProfileAdjustment],
        *,
        initial_reputation: float,
        now: datetime,
    ) -> bool:
        """Compare-and-set ``pending -> resolved`` together with the profile changes.

        The status change, the stored resolution and every adjustment commit
        together or not at all. Missing profiles are created with
        ``initial_reputation`` first. Returns False, changing nothing, when the
        claim is no longer pending.

        Raises:
            NotFoundError: No such claim.
        """
        ...

    # -- Stakes ---------------------------------------------------------------

    async def get_stake(self, claim_id: str, staker: str) -> Optional[Stake]:
        ...

    async def list_stakes(self, claim_id: str) -> list[Stake]:
        ...

    async def apply_stake(self, stake: Stake, now: datetime) -> Claim:
        """Append a confirmed stake and add it to the claim's counters atomically.

        Creation stakes need the claim in draft; verification stakes need it
        pending with ``now`` before its expiry.

        Raises:
            NotFoundError: No such claim.
            DuplicateStakeError: A stake already exists for (claim, staker).
            ClaimNotAcceptingStakesError: The claim is not in the required state.
        """
        ...

    # -- Transaction audit ----------------------------------------------------

    async def save_transaction(self, record: TransactionRecord) -> None:
        """Insert or replace the audit record keyed by ``tx_id``."""
        ...

    async def get_transaction(self, tx_id: str) -> Optional[TransactionRecord]:
        ...

    async def find_transaction(self, claim_id: str, staker: str) -> Optional[TransactionRecord]:
        """Latest audit record for (claim, staker), if any."""
        ...

    async def confirm_stake(
        self,
        tx_id: str,
        block_ref: Optional[int],
        *,
        initial_reputation: float,
        now: datetime,
    ) -> bool:
        """Mark an applied stake's record ``confirmed`` and bump the staker's ``total_stakes``.

        Both changes commit together, creating the profile if needed. Returns
        False, changing nothing, when the record is already confirmed.

        Raises:
            NotFoundError: No such audit record.
        """
        ...

    async def update_transaction(
        self,
        tx_id: str,
        status: TransactionStatus,
        block_ref: Optional[int] = None,
        error: Optional[str] = None,
    ) -> Optional[TransactionRecord]:
        ...

    async def list_transactions(
        self,
        status: Optional[TransactionStatus] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[TransactionRecord]:
        """Audit records newest first."""
        ...

    # -- Profiles -------------------------------------------------------------

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        ...

    async def ensure_profile(self, user_id: str, reputation: float, now: datetime) -> Profile:
        """Return the profile, creating it with ``reputation`` if missing."""
        ...

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
        """Add deltas to a profile's counters atomically. Reputation floors at 0."""
        ...

    async def list_profiles(self) -> list[Profile]:
        ...

    # -- Leaderboards ---------------------------------------------------------

    async def replace_leaderboard(
        self,
        category: LeaderboardCategory,
        period: LeaderboardPeriod,
        entries: list[LeaderboardEntry],
    ) -> None:
        """Swap the whole entry set for (category, period) in one step."""
        ...

    async def get_leaderboard(
        self,
        category: LeaderboardCategory,
        period: LeaderboardPeriod,
        limit: Optional[int] = None,
    ) -> list[LeaderboardEntry]:
        """Entries by rank ascending."""
        ...
