# SPDX-License-Identifier: MIT
# Copyright (c) 2026 TruthChain Contributors

"""PostgreSQL implementation of ClaimStore.

Each operation runs synchronously on a pooled connection (``get_cursor``)
inside ``asyncio.to_thread``. Counter changes are single ``UPDATE ... SET
col = col + %s`` statements; stake application additionally takes the claim
row lock with ``SELECT ... FOR UPDATE`` so the duplicate and window checks
and the increment commit together.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Optional, TypeVar

import psycopg2
from psycopg2.extras import Json

from ..core.db import get_connection, get_cursor
from ..core.exceptions import (
    ClaimNotAcceptingStakesError,
    ConflictError,
    DatabaseException,
    DuplicateStakeError,
    NotFoundError,
)
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
from . import schema

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PostgresStore:
    """ClaimStore backed by the pooled psycopg2 connections in ``core.db``."""

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(func, *args)
        except psycopg2.Error as e:
            logger.error(f"Database error in {func.__name__}: {e}")
            raise DatabaseException(f"Database error: {e}") from e

    def create_schema(self) -> None:
        """Create tables if they do not exist."""
        with get_connection() as conn:
            schema.up(conn)
            conn.commit()
        logger.info(f"Schema {schema.version} ({schema.description}) applied")

    # =========================================================================
    # Claims
    # =========================================================================

    async def insert_claim(self, claim: Claim) -> None:
        def _insert() -> None:
            with get_cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO claims (id, author, content, original_stake, total_staked,
                        verification_count, status, created_at, resolution_window_seconds,
                        ledger_tx_id)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (id) DO NOTHING
                    RETURNING id
                    """,
                    (
                        claim.id,
                        claim.author,
                        claim.content,
                        claim.original_stake,
                        claim.total_staked,
                        claim.verification_count,
                        claim.status.value,
                        claim.created_at,
                        int(claim.resolution_window.total_seconds()),
                        claim.ledger_tx_id,
                    ),
                )
                if cur.fetchone() is None:
                    raise ConflictError(f"Claim already exists: {claim.id}", existing_id=claim.id)

        await self._run(_insert)

    async def get_claim(self, claim_id: str) -> Optional[Claim]:
        def _get() -> Optional[Claim]:
            with get_cursor() as cur:
                cur.execute("SELECT * FROM claims WHERE id = %s", (claim_id,))
                row = cur.fetchone()
                return Claim.from_row(row) if row else None

        return await self._run(_get)

    async def delete_draft(self, claim_id: str) -> bool:
        def _delete() -> bool:
            with get_cursor() as cur:
                cur.execute(
                    "DELETE FROM claims WHERE id = %s AND status = 'draft' RETURNING id",
                    (claim_id,),
                )
                return cur.fetchone() is not None

        return await self._run(_delete)

    async def activate_claim(self, claim_id: str, ledger_tx_id: str, now: datetime) -> Claim:
        def _activate() -> Claim:
            with get_cursor() as cur:
                cur.execute(
                    """
                    UPDATE claims SET status = 'pending', created_at = %s, ledger_tx_id = %s
                    WHERE id = %s AND status = 'draft'
                    RETURNING *
                    """,
                    (now, ledger_tx_id, claim_id),
                )
                row = cur.fetchone()
                if row is not None:
                    return Claim.from_row(row)
                cur.execute("SELECT status FROM claims WHERE id = %s", (claim_id,))
                existing = cur.fetchone()
                if existing is None:
                    raise NotFoundError("Claim", claim_id)
                raise ConflictError(f"Claim {claim_id} is already {existing['status']}", claim_id)

        return await self._run(_activate)

    async def list_claims(
        self, status: Optional[ClaimStatus] = None, limit: Optional[int] = None
    ) -> list[Claim]:
        def _list() -> list[Claim]:
            sql = "SELECT * FROM claims"
            params: list[Any] = []
            if status is not None:
                sql += " WHERE status = %s"
                params.append(status.value)
            sql += " ORDER BY created_at DESC"
            if limit is not None:
                sql += " LIMIT %s"
                params.append(limit)
            with get_cursor() as cur:
                cur.execute(sql, params)
                return [Claim.from_row(row) for row in cur.fetchall()]

        return await self._run(_list)

    async def list_expired_pending(self, now: datetime) -> list[Claim]:
        def _list() -> list[Claim]:
            with get_cursor() as cur:
                cur.execute(
                    """
                    SELECT * FROM claims
                    WHERE status = 'pending'
                      AND created_at + make_interval(secs => resolution_window_seconds) <= %s
                    ORDER BY created_at + make_interval(secs => resolution_window_seconds)
                    """,
                    (now,),
                )
                return [Claim.from_row(row) for row in cur.fetchall()]

        return await self._run(_list)

    async def resolve_claim(
        self,
        claim_id: str,
        resolution: Resolution,
        adjustments: list[ProfileAdjustment],
        *,
        initial_reputation: float,
        now: datetime,
    ) -> bool:
        def _resolve() -> bool:
            with get_cursor() as cur:
                cur.execute(
                    """
                    UPDATE claims SET status = 'resolved', resolution = %s
                    WHERE id = %s AND status = 'pending'
                    RETURNING id
                    """,
                    (Json(resolution.to_dict()), claim_id),
                )
                if cur.fetchone() is None:
                    cur.execute("SELECT 1 FROM claims WHERE id = %s", (claim_id,))
                    if cur.fetchone() is None:
                        raise NotFoundError("Claim", claim_id)
                    return False

                # Stable row lock order
                for adjustment in sorted(adjustments, key=lambda a: a.user_id):
                    _insert_profile(cur, adjustment.user_id, initial_reputation, now)
                    cur.execute(
                        """
                        UPDATE profiles
                        SET verifications_correct = verifications_correct + %s,
                            verifications_total = verifications_total + %s,
                            reputation_score = GREATEST(0, reputation_score + %s)
                        WHERE user_id = %s
                        """,
                        (
                            adjustment.verifications_correct,
                            adjustment.verifications_total,
                            adjustment.reputation_delta,
                            adjustment.user_id,
                        ),
                    )
                return True

        return await self._run(_resolve)

    # =========================================================================
    # Stakes
    # =========================================================================

    async def get_stake(self, claim_id: str, staker: str) -> Optional[Stake]:
        def _get() -> Optional[Stake]:
            with get_cursor() as cur:
                cur.execute(
                    "SELECT * FROM stakes WHERE claim_id = %s AND staker = %s",
                    (claim_id, staker),
                )
                row = cur.fetchone()
                return Stake.from_row(row) if row else None

        return await self._run(_get)

    async def list_stakes(self, claim_id: str) -> list[Stake]:
        def _list() -> list[Stake]:
            with get_cursor() as cur:
                cur.execute(
                    "SELECT * FROM stakes WHERE claim_id = %s ORDER BY placed_at",
                    (claim_id,),
                )
                return [Stake.from_row(row) for row in cur.fetchall()]

        return await self._run(_list)

    async def apply_stake(self, stake: Stake, now: datetime) -> Claim:
        def _apply() -> Claim:
            with get_cursor() as cur:
                cur.execute("SELECT * FROM claims WHERE id = %s FOR UPDATE", (stake.claim_id,))
                row = cur.fetchone()
                if row is None:
                    raise NotFoundError("Claim", stake.claim_id)
                claim = Claim.from_row(row)

                cur.execute(
                    "SELECT 1 FROM stakes WHERE claim_id = %s AND staker = %s",
                    (stake.claim_id, stake.staker),
                )
                if cur.fetchone() is not None:
                    raise DuplicateStakeError(stake.claim_id, stake.staker)

                if stake.is_creation:
                    if claim.status != ClaimStatus.DRAFT:
                        raise ClaimNotAcceptingStakesError(
                            claim.id, "creation stake already applied"
                        )
                else:
                    reason = claim.closed_reason(now)
                    if reason:
                        raise ClaimNotAcceptingStakesError(claim.id, reason)

                cur.execute(
                    """
                    INSERT INTO stakes (claim_id, staker, side, amount, placed_at,
                        ledger_tx_id, block_ref, is_creation)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        stake.claim_id,
                        stake.staker,
                        stake.side.value,
                        stake.amount,
                        stake.placed_at,
                        stake.ledger_tx_id,
                        stake.block_ref,
                        stake.is_creation,
                    ),
                )
                cur.execute(
                    """
                    UPDATE claims
                    SET total_staked = total_staked + %s,
                        verification_count = verification_count + %s
                    WHERE id = %s
                    RETURNING *
                    """,
                    (stake.amount, 0 if stake.is_creation else 1, stake.claim_id),
                )
                return Claim.from_row(cur.fetchone())

        return await self._run(_apply)

    # =========================================================================
    # Transaction audit
    # =========================================================================

    async def save_transaction(self, record: TransactionRecord) -> None:
        def _save() -> None:
            with get_cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO stake_transactions (tx_id, claim_id, staker, side, kind,
                        amount, status, block_ref, error, created_at, updated_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (tx_id) DO UPDATE SET
                        status = EXCLUDED.status,
                        block_ref = EXCLUDED.block_ref,
                        error = EXCLUDED.error,
                        updated_at = EXCLUDED.updated_at
                    """,
                    (
                        record.tx_id,
                        record.claim_id,
                        record.staker,
                        record.side.value,
                        record.kind.value,
                        record.amount,
                        record.status.value,
                        record.block_ref,
                        record.error,
                        record.created_at,
                        record.updated_at,
                    ),
                )

        await self._run(_save)

    async def get_transaction(self, tx_id: str) -> Optional[TransactionRecord]:
        def _get() -> Optional[TransactionRecord]:
            with get_cursor() as cur:
                cur.execute("SELECT * FROM stake_transactions WHERE tx_id = %s", (tx_id,))
                row = cur.fetchone()
                return TransactionRecord.from_row(row) if row else None

        return await self._run(_get)

    async def find_transaction(self, claim_id: str, staker: str) -> Optional[TransactionRecord]:
        def _find() -> Optional[TransactionRecord]:
            with get_cursor() as cur:
                cur.execute(
                    """
                    SELECT * FROM stake_transactions
                    WHERE claim_id = %s AND staker = %s
                    ORDER BY created_at DESC, (status = 'failed')
                    LIMIT 1
                    """,
                    (claim_id, staker),
                )
                row = cur.fetchone()
                return TransactionRecord.from_row(row) if row else None

        return await self._run(_find)

    async def confirm_stake(
        self,
        tx_id: str,
        block_ref: Optional[int],
        *,
        initial_reputation: float,
        now: datetime,
    ) -> bool:
        def _confirm() -> bool:
            with get_cursor() as cur:
                cur.execute(
                    """
                    UPDATE stake_transactions
                    SET status = 'confirmed',
                        block_ref = COALESCE(%s, block_ref),
                        updated_at = NOW()
                    WHERE tx_id = %s AND status <> 'confirmed'
                    RETURNING staker
                    """,
                    (block_ref, tx_id),
                )
                row = cur.fetchone()
                if row is None:
                    cur.execute("SELECT 1 FROM stake_transactions WHERE tx_id = %s", (tx_id,))
                    if cur.fetchone() is None:
                        raise NotFoundError("Transaction", tx_id)
                    return False

                _insert_profile(cur, row["staker"], initial_reputation, now)
                cur.execute(
                    "UPDATE profiles SET total_stakes = total_stakes + 1 WHERE user_id = %s",
                    (row["staker"],),
                )
                return True

        return await self._run(_confirm)

    async def update_transaction(
        self,
        tx_id: str,
        status: TransactionStatus,
        block_ref: Optional[int] = None,
        error: Optional[str] = None,
    ) -> Optional[TransactionRecord]:
        def _update() -> Optional[TransactionRecord]:
            with get_cursor() as cur:
                cur.execute(
                    """
                    UPDATE stake_transactions
                    SET status = %s,
                        block_ref = COALESCE(%s, block_ref),
                        error = COALESCE(%s, error),
                        updated_at = NOW()
                    WHERE tx_id = %s
                    RETURNING *
                    """,
                    (status.value, block_ref, error, tx_id),
                )
                row = cur.fetchone()
                return TransactionRecord.from_row(row) if row else None

        return await self._run(_update)

    async def list_transactions(
        self,
        status: Optional[TransactionStatus] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[TransactionRecord]:
        def _list() -> list[TransactionRecord]:
            conditions = []
            params: list[Any] = []
            if status is not None:
                conditions.append("status = %s")
                params.append(status.value)
            if since is not None:
                conditions.append("created_at >= %s")
                params.append(since)
            sql = "SELECT * FROM stake_transactions"
            if conditions:
                sql += " WHERE " + " AND ".join(conditions)
            sql += " ORDER BY created_at DESC"
            if limit is not None:
                sql += " LIMIT %s"
                params.append(limit)
            with get_cursor() as cur:
                cur.execute(sql, params)
                return [TransactionRecord.from_row(row) for row in cur.fetchall()]

        return await self._run(_list)

    # =========================================================================
    # Profiles
    # =========================================================================

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        def _get() -> Optional[Profile]:
            with get_cursor() as cur:
                cur.execute("SELECT * FROM profiles WHERE user_id = %s", (user_id,))
                row = cur.fetchone()
                return Profile.from_row(row) if row else None

        return await self._run(_get)

    async def ensure_profile(self, user_id: str, reputation: float, now: datetime) -> Profile:
        def _ensure() -> Profile:
            with get_cursor() as cur:
                _insert_profile(cur, user_id, reputation, now)
                cur.execute("SELECT * FROM profiles WHERE user_id = %s", (user_id,))
                return Profile.from_row(cur.fetchone())

        return await self._run(_ensure)

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
        def _adjust() -> Profile:
            with get_cursor() as cur:
                cur.execute(
                    """
                    UPDATE profiles
                    SET total_stakes = total_stakes + %s,
                        verifications_correct = verifications_correct + %s,
                        verifications_total = verifications_total + %s,
                        reputation_score = GREATEST(0, reputation_score + %s),
                        total_rewarded = total_rewarded + %s
                    WHERE user_id = %s
                    RETURNING *
                    """,
                    (
                        total_stakes,
                        verifications_correct,
                        verifications_total,
                        reputation_delta,
                        total_rewarded,
                        user_id,
                    ),
                )
                row = cur.fetchone()
                if row is None:
                    raise NotFoundError("Profile", user_id)
                return Profile.from_row(row)

        return await self._run(_adjust)

    async def list_profiles(self) -> list[Profile]:
        def _list() -> list[Profile]:
            with get_cursor() as cur:
                cur.execute("SELECT * FROM profiles ORDER BY created_at")
                return [Profile.from_row(row) for row in cur.fetchall()]

        return await self._run(_list)

    # =========================================================================
    # Leaderboards
    # =========================================================================

    async def replace_leaderboard(
        self,
        category: LeaderboardCategory,
        period: LeaderboardPeriod,
        entries: list[LeaderboardEntry],
    ) -> None:
        def _replace() -> None:
            with get_cursor() as cur:
                cur.execute(
                    "DELETE FROM leaderboard_entries WHERE category = %s AND period = %s",
                    (category.value, period.value),
                )
                cur.executemany(
                    """
                    INSERT INTO leaderboard_entries (category, period, user_id, score, rank,
                        updated_at)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    """,
                    [
                        (category.value, period.value, e.user_id, e.score, e.rank, e.updated_at)
                        for e in entries
                    ],
                )

        await self._run(_replace)

    async def get_leaderboard(
        self,
        category: LeaderboardCategory,
        period: LeaderboardPeriod,
        limit: Optional[int] = None,
    ) -> list[LeaderboardEntry]:
        def _get() -> list[LeaderboardEntry]:
            sql = """
                SELECT * FROM leaderboard_entries
                WHERE category = %s AND period = %s
                ORDER BY rank
            """
            params: list[Any] = [category.value, period.value]
            if limit is not None:
                sql += " LIMIT %s"
                params.append(limit)
            with get_cursor() as cur:
                cur.execute(sql, params)
                return [LeaderboardEntry.from_row(row) for row in cur.fetchall()]

        return await self._run(_get)


def _insert_profile(cur: Any, user_id: str, reputation: float, now: datetime) -> None:
    cur.execute(
        """
        INSERT INTO profiles (user_id, reputation_score, created_at)
        VALUES (%s, %s, %s)
        ON CONFLICT (user_id) DO NOTHING
        """,
        (user_id, reputation, now),
    )
