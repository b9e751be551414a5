"""Global test fixtures for the TruthChain test suite."""

from __future__ import annotations

import os
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from tests.fakes import ESCROW, FakeLedger, FakeSigner, MutableClock
from truthchain.core.config import clear_config_cache, load_settings
from truthchain.reputation.leaderboard import LeaderboardEngine
from truthchain.staking.lifecycle import ClaimLifecycle
from truthchain.staking.resolver import VerificationResolver
from truthchain.staking.stake_ledger import StakeLedger
from truthchain.store.memory import InMemoryStore

# ============================================================================
# PostgreSQL Availability Detection
# ============================================================================


def _check_postgres_available() -> tuple[bool, str | None]:
    """Check if PostgreSQL is available for integration tests.

    Returns:
        Tuple of (is_available, error_message)
    """
    try:
        import psycopg2
    except ImportError:
        return False, "psycopg2 not installed"

    try:
        conn = psycopg2.connect(
            host=os.environ.get("TRUTHCHAIN_DB_HOST", "localhost"),
            port=int(os.environ.get("TRUTHCHAIN_DB_PORT", "5432")),
            dbname=os.environ.get("TRUTHCHAIN_DB_NAME", "truthchain"),
            user=os.environ.get("TRUTHCHAIN_DB_USER", "truthchain"),
            password=os.environ.get("TRUTHCHAIN_DB_PASSWORD", ""),
            connect_timeout=3,
        )
        conn.close()
        return True, None
    except psycopg2.OperationalError as e:
        return False, f"PostgreSQL connection failed: {e}"


POSTGRES_AVAILABLE, POSTGRES_ERROR = _check_postgres_available()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "requires_postgres: mark test as requiring a real PostgreSQL database"
    )


def pytest_collection_modifyitems(config, items):
    """Skip PostgreSQL-backed tests when no database is reachable."""
    if POSTGRES_AVAILABLE:
        return

    skip_postgres = pytest.mark.skip(reason=f"PostgreSQL not available: {POSTGRES_ERROR}")
    for item in items:
        if "requires_postgres" in item.keywords:
            item.add_marker(skip_postgres)


# ============================================================================
# Environment and settings
# ============================================================================


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all TRUTHCHAIN_ environment variables."""
    for key in list(os.environ.keys()):
        if key.startswith("TRUTHCHAIN_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def reset_config():
    """Drop the config singleton around each test."""
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def settings(clean_env):
    return load_settings(
        algod_url="http://algod.test",
        indexer_url="http://indexer.test",
        algod_token="test-token",
        escrow_address=ESCROW,
        confirmation_poll_interval=0.01,
        confirmation_timeout=1.0,
        balance_cache_ttl=10.0,
        min_stake=Decimal("1"),
        fee_buffer=Decimal("0.1"),
        resolution_window_hours=24,
        reputation_reward=10.0,
        reputation_penalty=0.0,
    )


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def signer() -> FakeSigner:
    return FakeSigner()


@pytest.fixture
def fake_ledger(settings) -> FakeLedger:
    return FakeLedger(settings)


# ============================================================================
# Core services over the in-memory store
# ============================================================================


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def stake_ledger(store, fake_ledger, settings, clock) -> StakeLedger:
    return StakeLedger(store, fake_ledger, settings=settings, clock=clock)


@pytest.fixture
def lifecycle(store, stake_ledger, settings, clock) -> ClaimLifecycle:
    return ClaimLifecycle(store, stake_ledger, settings=settings, clock=clock)


@pytest.fixture
def resolver(store, fake_ledger, settings, clock) -> VerificationResolver:
    return VerificationResolver(store, fake_ledger, settings=settings, clock=clock)


@pytest.fixture
def engine(store, settings, clock) -> LeaderboardEngine:
    return LeaderboardEngine(store, settings=settings, clock=clock)


# ============================================================================
# Database mocking
# ============================================================================


@pytest.fixture
def mock_psycopg2_pool():
    """Mock the psycopg2 connection pool used by ``core.db``."""
    from truthchain.core import db

    mock_conn = MagicMock()
    mock_conn.closed = False
    mock_cursor = MagicMock()
    mock_pool = MagicMock()

    mock_conn.cursor.return_value = mock_cursor
    mock_cursor.__enter__ = MagicMock(return_value=mock_cursor)
    mock_cursor.__exit__ = MagicMock(return_value=False)

    mock_pool.getconn.return_value = mock_conn

    db._pool = None
    with patch("truthchain.core.db.psycopg2_pool.ThreadedConnectionPool") as mock_pool_class:
        mock_pool_class.return_value = mock_pool
        yield {
            "pool_class": mock_pool_class,
            "pool": mock_pool,
            "connection": mock_conn,
            "cursor": mock_cursor,
        }
    db._pool = None
