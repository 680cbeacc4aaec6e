"""Database connection factory.

Provides a singleton async connection to the SQLite telemetry store with WAL
mode, so a live ingestion process can keep reading while an import writes.
"""
from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

from observer import config
from observer.errors import StoreError

logger = logging.getLogger("observer.db")

_connection: aiosqlite.Connection | None = None


async def open_connection(path: str | Path) -> aiosqlite.Connection:
    """Open a new configured connection. `:memory:` is accepted for tests."""
    target = str(path)
    try:
        if target != ":memory:":
            Path(target).expanduser().parent.mkdir(parents=True, exist_ok=True)
            target = str(Path(target).expanduser())
        conn = await aiosqlite.connect(target)
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA busy_timeout=5000")
    except (OSError, aiosqlite.Error) as exc:
        raise StoreError(f"opening telemetry store {path}: {exc}") from exc
    return conn


async def get_connection(path: str | Path | None = None) -> aiosqlite.Connection:
    """Return the singleton database connection, creating it if needed."""
    global _connection
    if _connection is not None:
        return _connection

    db_path = path if path is not None else config.DATABASE_PATH
    _connection = await open_connection(db_path)
    logger.info("Database connection established: %s", db_path)
    return _connection


async def close_connection() -> None:
    """Close the database connection."""
    global _connection
    if _connection is not None:
        await _connection.close()
        _connection = None
        logger.info("Database connection closed")
