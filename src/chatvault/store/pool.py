"""
Shared SQLite connections for ``ChatStore``.

One ``ConnectionPool`` holds a single ``aiosqlite.Connection`` per database
file plus a per-file write lock. Every ``ChatStore`` that points at the same
file borrows that connection, and all of them run their write transactions
under the same lock, so a chat insert from one request can never be committed
half-way by another request's ``COMMIT`` on the shared connection.

Usage::

    pool = ConnectionPool()
    store_a = ChatStore(config, pool=pool)
    store_b = ChatStore(config, pool=pool)   # same file, same connection
    await store_a.initialize()
    await store_b.initialize()
    ...
    await pool.close_all()
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import aiosqlite
import structlog

_logger = structlog.get_logger("chatvault.store.pool")


def resolve_db_path(db_path: str) -> str:
    """Expand ``~`` and resolve *db_path* to the key used by the pool."""
    return str(Path(db_path).expanduser().resolve())


async def open_connection(
    db_path: str,
    *,
    wal_mode: bool = True,
    connection_timeout: float = 30.0,
) -> aiosqlite.Connection:
    """
    Open a configured connection: ``Row`` factory, foreign keys on, optional WAL.

    The parent directory is created if needed. The connection is closed again
    if any pragma fails.
    """
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = await aiosqlite.connect(db_path, timeout=connection_timeout)
    try:
        conn.row_factory = aiosqlite.Row
        if wal_mode:
            await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA foreign_keys=ON")
        await conn.execute("PRAGMA synchronous=NORMAL")
    except Exception:
        await conn.close()
        raise
    return conn


class ConnectionPool:
    """
    Process-scoped registry of open connections, keyed by resolved file path.

    Only safe within a single asyncio event loop. Concurrent ``acquire()``
    calls for the same path open the file once.
    """

    def __init__(self) -> None:
        self._connections: dict[str, aiosqlite.Connection] = {}
        self._write_locks: dict[str, asyncio.Lock] = {}
        self._open_locks: dict[str, asyncio.Lock] = {}

    async def acquire(
        self,
        db_path: str,
        *,
        wal_mode: bool = True,
        connection_timeout: float = 30.0,
    ) -> aiosqlite.Connection:
        """Return the shared connection for *db_path*, opening it on first use."""
        resolved = resolve_db_path(db_path)
        conn = self._connections.get(resolved)
        if conn is not None:
            return conn

        open_lock = self._open_locks.setdefault(resolved, asyncio.Lock())
        async with open_lock:
            conn = self._connections.get(resolved)
            if conn is not None:
                return conn
            conn = await open_connection(
                resolved, wal_mode=wal_mode, connection_timeout=connection_timeout
            )
            self._connections[resolved] = conn
            self._write_locks[resolved] = asyncio.Lock()
            _logger.debug("pool_connection_opened", db_path=resolved)
            return conn

    def write_lock(self, db_path: str) -> asyncio.Lock:
        """
        Return the write lock for *db_path*.

        Raises:
            KeyError: If ``acquire()`` has not been called for this path.
        """
        return self._write_locks[resolve_db_path(db_path)]

    @property
    def open_paths(self) -> list[str]:
        """Resolved paths that currently have an open connection."""
        return list(self._connections)

    async def close_all(self) -> None:
        """Close every connection managed by this pool."""
        for resolved in list(self._connections):
            conn = self._connections.pop(resolved)
            self._write_locks.pop(resolved, None)
            self._open_locks.pop(resolved, None)
            await conn.close()
            _logger.debug("pool_connection_closed", db_path=resolved)
