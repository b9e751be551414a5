# SPDX-License-Identifier: MIT
# Copyright (c) 2026 TruthChain Contributors

"""Database connection management for TruthChain.

Config via TRUTHCHAIN_DB_* environment variables (see core.config).
"""

from __future__ import annotations

import queue
import threading
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

import psycopg2
from psycopg2 import pool as psycopg2_pool
from psycopg2.extras import RealDictCursor
from psycopg2.pool import PoolError

from .exceptions import DatabaseException

# Connection pool (lazy init, thread-safe)
_pool: psycopg2_pool.ThreadedConnectionPool | None = None
_pool_lock = threading.Lock()


def _get_pool() -> psycopg2_pool.ThreadedConnectionPool:
    """Get or create the connection pool."""
    from .config import get_config

    global _pool
    if _pool is None:
        with _pool_lock:
            if _pool is None:
                config = get_config()
                try:
                    _pool = psycopg2_pool.ThreadedConnectionPool(
                        **config.pool_config,
                        **config.connection_params,
                    )
                except psycopg2.OperationalError as e:
                    raise DatabaseException(f"Failed to create connection pool: {e}") from e
    return _pool


def _get_conn_with_timeout(pool: psycopg2_pool.ThreadedConnectionPool, timeout: int) -> Any:
    """Get a connection from pool with timeout.

    Raises:
        PoolError: If timeout expires before connection is available
    """
    result_queue: queue.Queue = queue.Queue()

    def _get_conn():
        try:
            conn = pool.getconn()
            result_queue.put(("success", conn))
        except Exception as e:
            result_queue.put(("error", e))

    thread = threading.Thread(target=_get_conn, daemon=True)
    thread.start()

    try:
        result_type, result_value = result_queue.get(timeout=timeout)
        if result_type == "error":
            raise result_value
        return result_value
    except queue.Empty:
        raise PoolError(f"Connection pool timeout after {timeout} seconds")


def _validate_connection(conn: Any) -> bool:
    """Check if a connection is open and answers a trivial query."""
    if conn.closed:
        return False

    try:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
            cur.fetchone()
        return True
    except psycopg2.Error:
        return False


def _get_healthy_connection(pool: psycopg2_pool.ThreadedConnectionPool, timeout: int) -> Any:
    """Get a healthy connection from pool, discarding stale ones."""
    max_attempts = 3
    for _attempt in range(max_attempts):
        conn = _get_conn_with_timeout(pool, timeout)
        if _validate_connection(conn):
            return conn
        pool.putconn(conn, close=True)

    raise PoolError("Failed to get healthy connection after multiple attempts")


@contextmanager
def get_cursor() -> Generator[Any, None, None]:
    """Get a database cursor with commit on success, rollback on error.

    Usage:
        with get_cursor() as cur:
            cur.execute("SELECT * FROM claims WHERE id = %s", (claim_id,))
            row = cur.fetchone()
    """
    from .config import get_config

    pool = _get_pool()
    config = get_config()
    try:
        conn = _get_healthy_connection(pool, config.db_pool_timeout)
    except PoolError as e:
        raise DatabaseException(str(e)) from e
    try:
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        pool.putconn(conn)


@contextmanager
def get_connection() -> Generator[Any, None, None]:
    """Get a raw connection from the pool (schema setup, migrations)."""
    from .config import get_config

    pool = _get_pool()
    config = get_config()
    conn = _get_healthy_connection(pool, config.db_pool_timeout)
    try:
        yield conn
    finally:
        pool.putconn(conn)


def close_pool() -> None:
    """Close the connection pool."""
    global _pool
    if _pool is not None:
        _pool.closeall()
        _pool = None


def check_connection() -> bool:
    """Check if database connection is working."""
    try:
        with get_cursor() as cur:
            cur.execute("SELECT 1")
        return True
    except (psycopg2.Error, DatabaseException):
        return False
