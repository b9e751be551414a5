"""Schema for the PostgreSQL store.

Migration-module shape: ``version``, ``description``, ``up(conn)`` and
``down(conn)`` taking a psycopg2 connection.
"""

from __future__ import annotations

version = "001"
description = "initial_schema"

_STATEMENTS = [
    (
        "claims",
        """
        CREATE TABLE IF NOT EXISTS claims (
            id TEXT PRIMARY KEY,
            author TEXT NOT NULL,
            content TEXT NOT NULL,
            original_stake NUMERIC(20, 6) NOT NULL,
            total_staked NUMERIC(20, 6) NOT NULL DEFAULT 0,
            verification_count INTEGER NOT NULL DEFAULT 0,
            status TEXT NOT NULL DEFAULT 'draft'
                CHECK (status IN ('draft', 'pending', 'resolved')),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            resolution_window_seconds INTEGER NOT NULL DEFAULT 86400,
            ledger_tx_id TEXT,
            resolution JSONB,
            CHECK (total_staked >= 0)
        )
        """,
    ),
    (
        "claims status index",
        "CREATE INDEX IF NOT EXISTS idx_claims_status ON claims (status, created_at)",
    ),
    (
        "stakes",
        """
        CREATE TABLE IF NOT EXISTS stakes (
            claim_id TEXT NOT NULL REFERENCES claims (id) ON DELETE CASCADE,
            staker TEXT NOT NULL,
            side TEXT NOT NULL CHECK (side IN ('support', 'oppose')),
            amount NUMERIC(20, 6) NOT NULL CHECK (amount > 0),
            placed_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            ledger_tx_id TEXT,
            block_ref BIGINT,
            is_creation BOOLEAN NOT NULL DEFAULT FALSE,
            PRIMARY KEY (claim_id, staker)
        )
        """,
    ),
    (
        "transactions",
        """
        CREATE TABLE IF NOT EXISTS stake_transactions (
            tx_id TEXT PRIMARY KEY,
            claim_id TEXT NOT NULL,
            staker TEXT NOT NULL,
            side TEXT NOT NULL,
            kind TEXT NOT NULL CHECK (kind IN ('claim_stake', 'verification_stake')),
            amount NUMERIC(20, 6) NOT NULL,
            status TEXT NOT NULL
                CHECK (status IN ('submitted', 'confirmed', 'failed', 'unapplied')),
            block_ref BIGINT,
            error TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        """,
    ),
    (
        "transactions by claim and staker",
        """
        CREATE INDEX IF NOT EXISTS idx_stake_transactions_claim_staker
            ON stake_transactions (claim_id, staker, created_at DESC)
        """,
    ),
    (
        "profiles",
        """
        CREATE TABLE IF NOT EXISTS profiles (
            user_id TEXT PRIMARY KEY,
            reputation_score DOUBLE PRECISION NOT NULL DEFAULT 100,
            total_stakes INTEGER NOT NULL DEFAULT 0,
            total_rewarded NUMERIC(20, 6) NOT NULL DEFAULT 0,
            verifications_correct INTEGER NOT NULL DEFAULT 0,
            verifications_total INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CHECK (reputation_score >= 0)
        )
        """,
    ),
    (
        "leaderboard entries",
        """
        CREATE TABLE IF NOT EXISTS leaderboard_entries (
            category TEXT NOT NULL,
            period TEXT NOT NULL,
            user_id TEXT NOT NULL,
            score DOUBLE PRECISION NOT NULL,
            rank INTEGER NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            PRIMARY KEY (category, period, user_id),
            UNIQUE (category, period, rank)
        )
        """,
    ),
]


def up(conn) -> None:
    with conn.cursor() as cur:
        for _desc, sql in _STATEMENTS:
            cur.execute(sql)


def down(conn) -> None:
    with conn.cursor() as cur:
        cur.execute("DROP TABLE IF EXISTS leaderboard_entries")
        cur.execute("DROP TABLE IF EXISTS profiles")
        cur.execute("DROP TABLE IF EXISTS stake_transactions")
        cur.execute("DROP TABLE IF EXISTS stakes")
        cur.execute("DROP TABLE IF EXISTS claims")
