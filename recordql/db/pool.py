"""Process-wide PostgreSQL connection pool.

The pool is opened lazily by the first statement and owned by this module.
Every pooled connection uses :class:`psycopg.RawCursor`, so statements are
sent with native ``$1..$n`` placeholders, and returns rows as dicts.
"""
from __future__ import annotations

import threading
from typing import Optional

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from recordql.config import Settings, get_settings
from recordql.errors import ConfigurationError
from recordql.utils.logging import get_logger

logger = get_logger(__name__)

_lock = threading.Lock()
_pool: Optional[ConnectionPool] = None
_settings: Optional[Settings] = None


def configure_db(settings: Settings) -> None:
    """Use ``settings`` instead of the environment when the pool is opened.

    Raises:
        ConfigurationError: If the pool has already been opened.
    """
    global _settings
    with _lock:
        if _pool is not None:
            raise ConfigurationError(
                "Database pool is already open; call close_pool() before reconfiguring",
                setting="pool",
            )
        _settings = settings


def get_pool() -> ConnectionPool:
    """Return the shared pool, opening it on first use."""
    global _pool
    with _lock:
        if _pool is None:
            settings = _settings or get_settings()
            _pool = ConnectionPool(
                settings.get_connection_string(),
                min_size=settings.pool_min_size,
                max_size=settings.pool_max_size,
                timeout=settings.pool_timeout,
                kwargs={"row_factory": dict_row, "cursor_factory": psycopg.RawCursor},
                open=True,
            )
            logger.info(
                "pool.opened",
                host=settings.db_host,
                database=settings.db_name,
                min_size=settings.pool_min_size,
                max_size=settings.pool_max_size,
            )
        return _pool


def close_pool() -> None:
    """Close the shared pool, if open.  The next statement opens a new one."""
    global _pool
    with _lock:
        if _pool is None:
            return
        _pool.close()
        _pool = None
        logger.info("pool.closed")
