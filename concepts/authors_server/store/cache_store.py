"""
SQLite-backed author cache store.

This module manages the single embedded database that caches transformed
authors. The database holds exactly one table (the "bucket") mapping an
author UUID to its JSON-encoded representation.

Invariants:
    - One SQLite file per service instance, one bucket per file
    - Keys are iterated in byte-lexicographic order (BINARY collation)
    - Every write is a single transaction: a batch commits fully or not at all
    - Iteration reads from its own connection inside one read transaction,
      so a traversal sees a point-in-time snapshot

How to change safely:
    - The bucket is dropped and recreated on every full reload, so schema
      changes only need to be applied in recreate_bucket()
    - Keep journal_mode=WAL, iterators rely on it to read while the
      writer connection commits
    - Callers coordinate readers and writers with the service lock; the
      store itself only guarantees transactional atomicity

Table schema:
    <bucket>:
        - key TEXT PRIMARY KEY (author UUID)
        - value BLOB (JSON-encoded author)
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator, Mapping
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_BUCKET = "author"


class StoreError(Exception):
    """Base exception for cache store operations."""

    pass


class StoreIOError(StoreError):
    """The cache file could not be opened, read or written."""

    pass


class StoreNotOpenError(StoreIOError):
    """Operation attempted on a store that is closed or was never opened."""

    pass


class BucketNotFoundError(StoreIOError):
    """The cache bucket does not exist in the store."""

    pass


class CacheStore:
    """Single-bucket ordered key/value store on top of SQLite.

    The store keeps one long-lived connection (the handle) for writes and
    point reads. Each call to iterate() opens a separate read connection so
    that a traversal is isolated from concurrent commits.

    Thread safety:
        All methods are meant to be called from one event loop. Concurrent
        writers are serialized by SQLite's own locking; read/write
        consistency across calls is the caller's responsibility.

    Example:
        >>> store = CacheStore("/var/lib/authors/cache.db")
        >>> await store.open()
        >>> await store.recreate_bucket()
        >>> await store.put_batch({"uuid-1": b'{"uuid": "uuid-1"}'})
        >>> await store.get("uuid-1")
        b'{"uuid": "uuid-1"}'
    """

    def __init__(
        self,
        path: str,
        bucket: str = DEFAULT_BUCKET,
        open_timeout_ms: int = 1000,
    ) -> None:
        """Initialize the cache store.

        Args:
            path: Path of the SQLite cache file
            bucket: Name of the bucket table
            open_timeout_ms: Maximum time to wait for the file lock
        """
        if not bucket.isidentifier():
            raise ValueError(f"Invalid bucket name: {bucket!r}")
        self.path = Path(path)
        self.bucket = bucket
        self.open_timeout_ms = open_timeout_ms
        self._conn: sqlite3.Connection | None = None
        self._iterators: set[sqlite3.Connection] = set()

    @property
    def is_open(self) -> bool:
        """Whether the store handle is open."""
        return self._conn is not None

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self.path),
            timeout=self.open_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        try:
            conn.execute(f"PRAGMA busy_timeout = {self.open_timeout_ms}")
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    def _handle(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreNotOpenError(f"Cache store not open: {self.path}")
        return self._conn

    async def open(self) -> None:
        """Open or create the cache file.

        Raises:
            StoreIOError: If the file cannot be opened within the timeout,
                is locked, or is not a valid database
        """
        if self._conn is not None:
            return
        logger.info(f"Opening cache store '{self.path}'")
        try:
            self._conn = self._connect()
        except sqlite3.Error as e:
            logger.error(f"Error opening cache store '{self.path}': {e}")
            raise StoreIOError(f"Cannot open cache store {self.path}: {e}") from e

    async def close(self) -> None:
        """Close the store handle and any open iterators."""
        for conn in list(self._iterators):
            conn.close()
        self._iterators.clear()
        if self._conn is None:
            raise StoreNotOpenError(f"Cache store not open: {self.path}")
        self._conn.close()
        self._conn = None
        logger.info(f"Closed cache store '{self.path}'")

    async def recreate_bucket(self) -> None:
        """Drop the bucket if present and create an empty one.

        Raises:
            StoreIOError: If the transaction fails
        """
        conn = self._handle()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                exists = conn.execute(
                    "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
                    (self.bucket,),
                ).fetchone()
                if exists:
                    logger.info(f"Deleting bucket '{self.bucket}'")
                    conn.execute(f'DROP TABLE "{self.bucket}"')
                logger.info(f"Creating bucket '{self.bucket}'")
                conn.execute(
                    f"""
                    CREATE TABLE "{self.bucket}" (
                        key TEXT PRIMARY KEY NOT NULL,
                        value BLOB NOT NULL
                    ) WITHOUT ROWID
                    """
                )
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise
        except sqlite3.Error as e:
            raise StoreIOError(f"Cannot recreate bucket {self.bucket}: {e}") from e

    async def put_batch(self, entries: Mapping[str, bytes]) -> int:
        """Write several entries in one transaction.

        Args:
            entries: Mapping of key to encoded value

        Returns:
            Number of entries written

        Raises:
            StoreIOError: If any write fails; nothing from the batch is kept
        """
        conn = self._handle()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                conn.executemany(
                    f'INSERT OR REPLACE INTO "{self.bucket}" (key, value) VALUES (?, ?)',
                    entries.items(),
                )
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise
        except sqlite3.OperationalError as e:
            raise self._operational_error(e) from e
        except (sqlite3.Error, TypeError, ValueError) as e:
            raise StoreIOError(f"Cannot write batch of {len(entries)} entries: {e}") from e
        return len(entries)

    async def get(self, key: str) -> bytes | None:
        """Get the value stored under a key.

        Args:
            key: Entry key

        Returns:
            The stored bytes, or None if the key is absent
        """
        try:
            row = self._handle().execute(
                f'SELECT value FROM "{self.bucket}" WHERE key = ?', (key,)
            ).fetchone()
        except sqlite3.OperationalError as e:
            raise self._operational_error(e) from e
        except sqlite3.Error as e:
            raise StoreIOError(f"Cannot read key {key}: {e}") from e
        if row is None:
            return None
        return bytes(row[0])

    async def count(self) -> int:
        """Number of keys in the bucket."""
        try:
            row = self._handle().execute(f'SELECT COUNT(*) FROM "{self.bucket}"').fetchone()
        except sqlite3.OperationalError as e:
            raise self._operational_error(e) from e
        except sqlite3.Error as e:
            raise StoreIOError(f"Cannot count bucket {self.bucket}: {e}") from e
        return int(row[0])

    def iterate(self) -> Iterator[tuple[str, bytes]]:
        """Iterate over a snapshot of the bucket in key order.

        The snapshot is taken on first use and released when the iterator is
        exhausted or closed.

        Yields:
            (key, value) pairs

        Raises:
            StoreNotOpenError: If the store is (or becomes) closed
            BucketNotFoundError: If the bucket does not exist
        """
        self._handle()
        try:
            conn = self._connect()
        except sqlite3.Error as e:
            raise StoreIOError(f"Cannot open snapshot of {self.path}: {e}") from e
        self._iterators.add(conn)
        try:
            try:
                conn.execute("BEGIN")
                cursor = conn.execute(f'SELECT key, value FROM "{self.bucket}" ORDER BY key')
                for key, value in cursor:
                    yield key, bytes(value)
            except sqlite3.ProgrammingError as e:
                raise StoreNotOpenError(f"Cache store closed during iteration: {e}") from e
            except sqlite3.OperationalError as e:
                raise self._operational_error(e) from e
        finally:
            if conn in self._iterators:
                self._iterators.discard(conn)
                conn.close()

    def _operational_error(self, error: sqlite3.OperationalError) -> StoreIOError:
        if "no such table" in str(error):
            return BucketNotFoundError(f"Bucket {self.bucket} not found")
        return StoreIOError(str(error))
