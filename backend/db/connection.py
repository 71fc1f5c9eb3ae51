"""
db/connection.py
-----------------
Shared psycopg2 connection pool for the Postgres plan-store backend.

    from db.connection import get_conn

    with get_conn() as conn:
        itinerary_repo.insert_version(conn, "g1", 4, plan, meta)

get_conn() is one transaction: commit when the block exits cleanly,
rollback (and re-raise) when it doesn't. The pool is created on first use,
so importing this module never touches the network; with the default
PLAN_STORE_BACKEND=in_memory it is never created at all.

Settings (config.py): POSTGRES_HOST / PORT / DB / USER / PASSWORD,
POSTGRES_MIN_CONN / MAX_CONN, POSTGRES_CONNECT_TIMEOUT_S.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator

import psycopg2
import psycopg2.extensions
import psycopg2.pool

import config

logger = logging.getLogger(__name__)

_pool: psycopg2.pool.ThreadedConnectionPool | None = None
_pool_lock = threading.Lock()


def get_pool() -> psycopg2.pool.ThreadedConnectionPool:
    """Singleton pool; rebuilt if a previous one was closed."""
    global _pool
    with _pool_lock:
        if _pool is None or _pool.closed:
            logger.info(
                "opening Postgres pool %s@%s:%s/%s (max %d)",
                config.POSTGRES_USER, config.POSTGRES_HOST, config.POSTGRES_PORT,
                config.POSTGRES_DB, config.POSTGRES_MAX_CONN,
            )
            _pool = psycopg2.pool.ThreadedConnectionPool(
                minconn=config.POSTGRES_MIN_CONN,
                maxconn=config.POSTGRES_MAX_CONN,
                host=config.POSTGRES_HOST,
                port=config.POSTGRES_PORT,
                dbname=config.POSTGRES_DB,
                user=config.POSTGRES_USER,
                password=config.POSTGRES_PASSWORD,
                connect_timeout=config.POSTGRES_CONNECT_TIMEOUT_S,
            )
        return _pool


@contextmanager
def get_conn() -> Iterator[psycopg2.extensions.connection]:
    """Borrow a pooled connection for one transaction."""
    pool = get_pool()
    conn = pool.getconn()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        # a connection broken mid-transaction is discarded, not reused
        pool.putconn(conn, close=bool(conn.closed))


def check_connection() -> bool:
    """True when a trivial query succeeds; failures are logged, not raised."""
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                return cur.fetchone() == (1,)
    except psycopg2.Error as exc:
        logger.warning("Postgres health check failed: %s", exc)
        return False


def close_pool() -> None:
    """Close every pooled connection (application shutdown)."""
    global _pool
    with _pool_lock:
        if _pool is not None and not _pool.closed:
            _pool.closeall()
        _pool = None
