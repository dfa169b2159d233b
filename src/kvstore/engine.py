from __future__ import annotations

import asyncio
import os
import sqlite3
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import aiosqlite

from kvstore.errors import (
    BucketNotFound,
    EngineClosed,
    EngineError,
    LockTimeout,
    TxReadOnly,
)

Entry = tuple[Optional[bytes], Optional[bytes]]

FORMAT_VERSION = 1  # stored in PRAGMA user_version

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS buckets (
        name BLOB PRIMARY KEY
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS entries (
        bucket BLOB NOT NULL,
        key    BLOB NOT NULL,
        value  BLOB NOT NULL,
        PRIMARY KEY (bucket, key)
    ) WITHOUT ROWID
    """,
)


def _wrap(exc: sqlite3.Error) -> EngineError:
    if isinstance(exc, sqlite3.OperationalError) and "locked" in str(exc):
        return LockTimeout(str(exc))
    return EngineError(str(exc))


class Engine:
    """
    Bucketed, ordered, transactional key/value engine backed by one SQLite file.

    - Buckets are independent keyspaces; keys within a bucket sort bytewise.
    - update() runs a read-write transaction: an exception inside the block
      rolls everything back, a clean exit commits atomically.
    - view() runs a read-only transaction.
    - The file is held with an exclusive lock for the engine's lifetime, so a
      second opener (another process, or another Engine here) gets LockTimeout
      after `timeout` seconds instead of blocking.

    One connection is shared by all transactions and an asyncio.Lock admits
    one transaction at a time (single-writer discipline). Readers queue behind
    writers and therefore never see an uncommitted write.

    Usage:
        engine = await Engine.open("state.db")
        async with engine.update() as tx:
            b = await tx.create_bucket_if_not_exists(b"pastes")
            await b.put(b"k", b"v")
        await engine.close()
    """

    def __init__(self, path: str, conn: aiosqlite.Connection):
        self.path = path
        self._conn: Optional[aiosqlite.Connection] = conn
        self._lock = asyncio.Lock()

    # ---------------------------- lifecycle ---------------------------- #

    @classmethod
    async def open(cls, path: str | os.PathLike, *, timeout: float = 0.05, mode: int = 0o640) -> "Engine":
        """
        Open (creating with `mode` if needed) the database file at `path`.
        Leading directories must already exist.
        """
        path = os.fspath(path)
        try:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, mode)
        except FileExistsError:
            pass
        except OSError as e:
            raise EngineError(f"cannot create {path}: {e}") from e
        else:
            os.close(fd)

        try:
            conn = await aiosqlite.connect(path, timeout=timeout, isolation_level=None)
        except sqlite3.Error as e:
            raise _wrap(e) from e

        try:
            # exclusive locking mode keeps the lock taken below until close()
            await conn.execute("PRAGMA locking_mode=EXCLUSIVE")
            await conn.execute("BEGIN EXCLUSIVE")
            async with conn.execute("PRAGMA user_version") as cur:
                (version,) = await cur.fetchone()
            if version not in (0, FORMAT_VERSION):
                await conn.execute("ROLLBACK")
                raise EngineError(f"{path}: unsupported format version {version}")
            for stmt in _SCHEMA:
                await conn.execute(stmt)
            await conn.execute(f"PRAGMA user_version = {FORMAT_VERSION}")
            await conn.execute("COMMIT")
        except sqlite3.Error as e:
            await conn.close()
            raise _wrap(e) from e
        except EngineError:
            await conn.close()
            raise

        return cls(path, conn)

    async def close(self) -> None:
        """Release the file lock and the connection. Safe to call twice."""
        async with self._lock:
            if self._conn is None:
                return
            conn, self._conn = self._conn, None
            try:
                await conn.close()
            except sqlite3.Error as e:
                raise _wrap(e) from e

    @property
    def closed(self) -> bool:
        return self._conn is None

    # --------------------------- transactions -------------------------- #

    @asynccontextmanager
    async def update(self) -> AsyncIterator["Tx"]:
        async with self._tx(writable=True) as tx:
            yield tx

    @asynccontextmanager
    async def view(self) -> AsyncIterator["Tx"]:
        async with self._tx(writable=False) as tx:
            yield tx

    @asynccontextmanager
    async def _tx(self, writable: bool) -> AsyncIterator["Tx"]:
        async with self._lock:
            if self._conn is None:
                raise EngineClosed("engine is closed")
            conn = self._conn
            try:
                await conn.execute("BEGIN IMMEDIATE" if writable else "BEGIN")
            except sqlite3.Error as e:
                raise _wrap(e) from e

            tx = Tx(conn, writable)
            try:
                yield tx
            except BaseException:
                tx._done = True
                try:
                    await conn.execute("ROLLBACK")
                except sqlite3.Error:
                    # keep the caller's exception
                    pass
                raise

            tx._done = True
            try:
                await conn.execute("COMMIT" if writable else "ROLLBACK")
            except sqlite3.Error as e:
                raise _wrap(e) from e


class Tx:
    """A single transaction. Only valid inside its `async with` block."""

    def __init__(self, conn: aiosqlite.Connection, writable: bool):
        self._conn = conn
        self.writable = writable
        self._done = False

    async def bucket(self, name: bytes) -> Optional["Bucket"]:
        row = await self._fetchone("SELECT 1 FROM buckets WHERE name = ?", (name,))
        return Bucket(self, name) if row is not None else None

    async def create_bucket_if_not_exists(self, name: bytes) -> "Bucket":
        self._check_writable()
        await self._exec("INSERT OR IGNORE INTO buckets(name) VALUES(?)", (name,))
        return Bucket(self, name)

    async def delete_bucket(self, name: bytes) -> None:
        self._check_writable()
        if await self.bucket(name) is None:
            raise BucketNotFound(f"bucket {name!r} not found")
        await self._exec("DELETE FROM entries WHERE bucket = ?", (name,))
        await self._exec("DELETE FROM buckets WHERE name = ?", (name,))

    # --------------------------- internals ---------------------------- #

    def _check_open(self) -> None:
        if self._done:
            raise EngineError("transaction has been closed")

    def _check_writable(self) -> None:
        self._check_open()
        if not self.writable:
            raise TxReadOnly("write in read-only transaction")

    async def _exec(self, sql: str, params: tuple = ()) -> int:
        self._check_open()
        try:
            cur = await self._conn.execute(sql, params)
            n = cur.rowcount
            await cur.close()
            return n
        except sqlite3.Error as e:
            raise _wrap(e) from e

    async def _fetchone(self, sql: str, params: tuple = ()):
        self._check_open()
        try:
            async with self._conn.execute(sql, params) as cur:
                return await cur.fetchone()
        except sqlite3.Error as e:
            raise _wrap(e) from e


class Bucket:
    """Ordered key/value collection inside a transaction."""

    def __init__(self, tx: Tx, name: bytes):
        self.tx = tx
        self.name = name

    async def get(self, key: bytes) -> Optional[bytes]:
        row = await self.tx._fetchone(
            "SELECT value FROM entries WHERE bucket = ? AND key = ?", (self.name, key)
        )
        return None if row is None else bytes(row[0])

    async def put(self, key: bytes, value: bytes) -> None:
        self.tx._check_writable()
        await self.tx._exec(
            """
            INSERT INTO entries(bucket, key, value) VALUES(?, ?, ?)
            ON CONFLICT(bucket, key) DO UPDATE SET value=excluded.value
            """,
            (self.name, key, value),
        )

    async def delete(self, key: bytes) -> bool:
        """Remove `key`; returns False if it was not there."""
        self.tx._check_writable()
        n = await self.tx._exec(
            "DELETE FROM entries WHERE bucket = ? AND key = ?", (self.name, key)
        )
        return n > 0

    def cursor(self) -> "Cursor":
        return Cursor(self)


class Cursor:
    """
    Forward cursor over a bucket in byte order.

    seek(k) positions on the first key >= k, which may be a different key
    (e.g. seeking b"a" lands on b"ab" when b"a" is absent). Callers wanting
    an exact match must compare the returned key.
    """

    def __init__(self, bucket: Bucket):
        self.bucket = bucket
        self._key: Optional[bytes] = None

    async def first(self) -> Entry:
        return await self._move(
            "SELECT key, value FROM entries WHERE bucket = ? ORDER BY key LIMIT 1",
            (self.bucket.name,),
        )

    async def seek(self, key: bytes) -> Entry:
        return await self._move(
            "SELECT key, value FROM entries WHERE bucket = ? AND key >= ? ORDER BY key LIMIT 1",
            (self.bucket.name, key),
        )

    async def next(self) -> Entry:
        if self._key is None:
            return None, None
        return await self._move(
            "SELECT key, value FROM entries WHERE bucket = ? AND key > ? ORDER BY key LIMIT 1",
            (self.bucket.name, self._key),
        )

    async def delete(self) -> None:
        """Delete the entry the cursor is positioned on."""
        if self._key is None:
            raise EngineError("cursor is not positioned on an entry")
        await self.bucket.delete(self._key)

    async def _move(self, sql: str, params: tuple) -> Entry:
        row = await self.bucket.tx._fetchone(sql, params)
        if row is None:
            self._key = None
            return None, None
        self._key = bytes(row[0])
        return self._key, bytes(row[1])
