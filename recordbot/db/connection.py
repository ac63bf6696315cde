"""Async SQLite connection pool and schema bootstrap.

Wraps `aiosqlite` connections, creates the tables the core needs, and hands
out pooled connections. A `Database` is constructed once at startup and passed
to whatever needs it; there is no module-level instance.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

import aiosqlite

from recordbot.errors import DatabaseInitError, StorageError

CURRENT_SCHEMA_VERSION = 1
MEMORY_PATH = ":memory:"
MEMORY_POOL_CAPACITY = 10

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS user_strikes (
    user_id     INTEGER NOT NULL,
    strike_id   INTEGER NOT NULL CHECK (strike_id >= 0),
    reason      TEXT    NOT NULL,
    author_id   INTEGER NOT NULL,
    created_at  TEXT    NOT NULL,
    edited_at   TEXT    NOT NULL,
    PRIMARY KEY (user_id, strike_id)
);

CREATE TABLE IF NOT EXISTS guild_ticket_channels (
    guild_id    INTEGER NOT NULL,
    ticket_id   INTEGER NOT NULL CHECK (ticket_id >= 0),
    channel_id  INTEGER NOT NULL,
    ticket_type INTEGER NOT NULL DEFAULT 0,
    creator_id  INTEGER NOT NULL,
    created_at  TEXT    NOT NULL,
    PRIMARY KEY (guild_id, ticket_id)
);

CREATE TABLE IF NOT EXISTS build_records (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    build_id        INTEGER NOT NULL,
    record_id       INTEGER NOT NULL,
    verified        INTEGER NOT NULL DEFAULT 0 CHECK (verified IN (0, 1)),
    verifier_id     INTEGER,
    verified_at     TEXT,
    reported        INTEGER NOT NULL DEFAULT 0 CHECK (reported IN (0, 1)),
    reporter_id     INTEGER,
    reported_at     TEXT,
    is_joint        INTEGER NOT NULL DEFAULT 0 CHECK (is_joint IN (0, 1)),
    joint_root_id   INTEGER,
    submitter_id    INTEGER NOT NULL,
    created_at      TEXT    NOT NULL,
    edited_at       TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_build_records_record_id ON build_records (record_id);
CREATE INDEX IF NOT EXISTS idx_build_records_build_id ON build_records (build_id);
"""


async def _initialize_schema(conn: aiosqlite.Connection) -> None:
    await conn.execute("PRAGMA foreign_keys = ON;")
    cursor = await conn.execute("PRAGMA user_version;")
    row = await cursor.fetchone()
    current_version = row[0] if row else 0

    await conn.executescript(SCHEMA)
    if current_version < CURRENT_SCHEMA_VERSION:
        await conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION};")
        logger.info("Schema created, version set to %d", CURRENT_SCHEMA_VERSION)
    else:
        logger.info("Database schema is up-to-date (version %d)", current_version)
    await conn.commit()


class Database:
    """A bounded pool of aiosqlite connections to one database file."""

    def __init__(self, path: str, *, pool_size: int = 5, pool_timeout: float = 30.0) -> None:
        self.path = path
        self.pool_size = pool_size
        self.pool_timeout = pool_timeout
        self._pool: Optional[asyncio.Queue[aiosqlite.Connection]] = None
        self._connections: List[aiosqlite.Connection] = []

    @classmethod
    async def open(cls, path: str, *, pool_size: int = 5, pool_timeout: float = 30.0) -> "Database":
        """Create the pool and the schema; raise `DatabaseInitError` on failure."""
        db = cls(path, pool_size=pool_size, pool_timeout=pool_timeout)
        try:
            await db._initialize_pool()
        except (aiosqlite.Error, OSError) as e:
            logger.exception("Failed to initialize database at %s: %s", path, e)
            await db.close()
            raise DatabaseInitError(f"failed to open database {path!r}") from e
        return db

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    async def _connect(self) -> aiosqlite.Connection:
        conn = await aiosqlite.connect(self.path, timeout=self.pool_timeout, cached_statements=128)
        self._connections.append(conn)
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    async def _initialize_pool(self) -> None:
        # `:memory:` gives every connection its own empty database, so the pool
        # hands out one shared connection instead.
        if self.path == MEMORY_PATH:
            conn = await self._connect()
            await _initialize_schema(conn)
            q: asyncio.Queue[aiosqlite.Connection] = asyncio.Queue(maxsize=MEMORY_POOL_CAPACITY)
            for _ in range(MEMORY_POOL_CAPACITY):
                q.put_nowait(conn)
            self._pool = q
            logger.info(
                "Database connection pool initialized with a shared in-memory connection (capacity: %d)",
                MEMORY_POOL_CAPACITY,
            )
            return

        first = await self._connect()
        await _initialize_schema(first)
        q = asyncio.Queue(maxsize=self.pool_size)
        q.put_nowait(first)
        for i in range(1, self.pool_size):
            conn = await self._connect()
            q.put_nowait(conn)
            logger.debug("Opened connection %d/%d", i + 1, self.pool_size)
        self._pool = q
        logger.info("Database connection pool initialized with size %d", self.pool_size)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Acquire a connection from the pool.

        Usage:
            async with database.connection() as conn:
                await conn.execute(...)
                await conn.commit()
        """
        if self._pool is None:
            raise StorageError("Database is not open")
        try:
            conn = await asyncio.wait_for(self._pool.get(), timeout=self.pool_timeout)
        except asyncio.TimeoutError as e:
            logger.error("Timed out waiting for database connection")
            raise StorageError("Database connection timeout") from e
        logger.debug("Acquired database connection from pool")

        start_time = time.monotonic()
        try:
            yield conn
        finally:
            elapsed = time.monotonic() - start_time
            logger.debug("Database connection held for %.3f seconds", elapsed)
            if self._pool is not None:
                self._pool.put_nowait(conn)

    async def close(self) -> None:
        """Close every connection and reset the pool."""
        self._pool = None
        connections, self._connections = self._connections, []
        for conn in connections:
            try:
                await conn.close()
            except aiosqlite.Error as exc:  # pragma: no cover - cleanup best effort
                logger.warning("Error closing DB connection: %s", exc)
        if connections:
            logger.info("Database connection pool closed")
