"""
SQLite-backed key-value store.

Each record is stored as one row per property path, which keeps the
hash-per-key shape of a flat record: a put replaces every row of the key,
a get reads them all back. A separate membership table lists the ids of
each keyspace and drives count() and scans.

Invariants:
    - One SQLite file per store
    - put() and delete() run in a single transaction covering both tables
    - Scans walk ids in ascending order and resume strictly after the last
      id examined

How to change safely:
    - Schema migrations must be backward compatible
    - Use transactions for all write operations
    - Map sqlite3 errors to StoreError subclasses; busy/locked is transient

Table schema:
    record_paths:
        - key TEXT (keyspace:id, see create_key)
        - path TEXT
        - value BLOB
        - PRIMARY KEY (key, path)

    keyspace_members:
        - keyspace TEXT
        - id TEXT
        - PRIMARY KEY (keyspace, id)
"""

from __future__ import annotations

import fnmatch
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from ..errors import StoreConnectionError, StoreError, StoreTimeoutError
from .base import KEY_SEPARATOR, START_TOKEN, FlatRecord, ScanBatch, create_key

logger = logging.getLogger(__name__)

# Prefix of mid-sweep tokens; the rest of the token is the last id examined
_RESUME_PREFIX = ">"


class SqliteKeyValueStore:
    """KeyValueStore persisted in a SQLite database file.

    Thread safety:
        Each operation opens its own connection.
        SQLite handles concurrent access via WAL mode.

    Example:
        >>> store = SqliteKeyValueStore("/var/lib/kvgraph")
        >>> await store.connect()
        >>> await store.put("persons", "1", {"name": b"rand"})
    """

    SCHEMA_VERSION = 1

    def __init__(
        self,
        data_dir: str,
        db_name: str = "kvgraph.db",
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the store.

        Args:
            data_dir: Directory for the database file
            db_name: Database file name
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
        """
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / db_name
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Whether connect() has succeeded and close() was not called."""
        return self._connected

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection for one operation.

        Raises:
            StoreConnectionError: If the store is not connected
            StoreTimeoutError: If the database stays locked
            StoreError: On any other SQLite failure
        """
        if not self._connected:
            raise StoreConnectionError("Not connected")

        try:
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.busy_timeout_ms / 1000.0,
                isolation_level=None,  # Autocommit by default, explicit transactions
            )
        except sqlite3.Error as e:
            raise StoreConnectionError(f"Cannot open {self.db_path}: {e}") from e

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")

            yield conn
        except sqlite3.OperationalError as e:
            if "locked" in str(e) or "busy" in str(e):
                raise StoreTimeoutError(f"SQLite busy: {e}") from e
            raise StoreError(f"SQLite error: {e}") from e
        except sqlite3.Error as e:
            raise StoreError(f"SQLite error: {e}") from e
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        """Create database schema."""
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS record_paths (
                key TEXT NOT NULL,
                path TEXT NOT NULL,
                value BLOB NOT NULL,
                PRIMARY KEY (key, path)
            );

            CREATE TABLE IF NOT EXISTS keyspace_members (
                keyspace TEXT NOT NULL,
                id TEXT NOT NULL,
                PRIMARY KEY (keyspace, id)
            );

            INSERT OR IGNORE INTO schema_version (version, applied_at)
            VALUES (1, strftime('%s', 'now') * 1000);
        """)

    async def connect(self) -> None:
        """Create the data directory and schema.

        Raises:
            StoreConnectionError: If the database cannot be created
        """
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreConnectionError(f"Cannot create {self.data_dir}: {e}") from e

        self._connected = True
        try:
            with self._get_connection() as conn:
                self._create_schema(conn)
        except StoreError:
            self._connected = False
            raise

        logger.info("SQLite store connected", extra={"db_path": str(self.db_path)})

    async def close(self) -> None:
        """Mark the store closed; connections are per operation."""
        self._connected = False
        logger.debug("SQLite store closed", extra={"db_path": str(self.db_path)})

    async def get(self, keyspace: str, id: str) -> Optional[FlatRecord]:
        """Read every path of a record."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT path, value FROM record_paths WHERE key = ?",
                (create_key(keyspace, id),),
            ).fetchall()
        if not rows:
            return None
        return {path: bytes(value) for path, value in rows}

    async def put(self, keyspace: str, id: str, record: FlatRecord) -> None:
        """Replace a record and register its id in the keyspace."""
        key = create_key(keyspace, id)
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                conn.execute("DELETE FROM record_paths WHERE key = ?", (key,))
                conn.executemany(
                    "INSERT INTO record_paths (key, path, value) VALUES (?, ?, ?)",
                    [(key, path, value) for path, value in record.items()],
                )
                conn.execute(
                    "INSERT OR IGNORE INTO keyspace_members (keyspace, id) VALUES (?, ?)",
                    (keyspace, id),
                )
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        logger.debug(
            "Record stored",
            extra={"keyspace": keyspace, "id": id, "paths": len(record)},
        )

    async def delete(self, keyspace: str, id: str) -> bool:
        """Delete a record and its keyspace membership."""
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                conn.execute(
                    "DELETE FROM record_paths WHERE key = ?", (create_key(keyspace, id),)
                )
                cursor = conn.execute(
                    "DELETE FROM keyspace_members WHERE keyspace = ? AND id = ?",
                    (keyspace, id),
                )
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise
        return cursor.rowcount > 0

    async def exists(self, keyspace: str, id: str) -> bool:
        """Whether a record exists."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM keyspace_members WHERE keyspace = ? AND id = ?",
                (keyspace, id),
            ).fetchone()
        return row is not None

    async def count(self, keyspace: str) -> int:
        """Number of records in a keyspace."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM keyspace_members WHERE keyspace = ?",
                (keyspace,),
            ).fetchone()
        return int(row[0])

    async def delete_keyspace(self, keyspace: str) -> int:
        """Delete every record of a keyspace."""
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                conn.execute(
                    "DELETE FROM record_paths WHERE key IN "
                    "(SELECT ? || id FROM keyspace_members WHERE keyspace = ?)",
                    (keyspace + KEY_SEPARATOR, keyspace),
                )
                cursor = conn.execute(
                    "DELETE FROM keyspace_members WHERE keyspace = ?", (keyspace,)
                )
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        logger.info(
            "Keyspace deleted",
            extra={"keyspace": keyspace, "records": cursor.rowcount},
        )
        return cursor.rowcount

    async def scan_batch(
        self,
        keyspace: str,
        token: str,
        batch_size: int,
        match: Optional[str] = None,
    ) -> ScanBatch:
        """Return the next batch of ids in ascending order.

        Args:
            keyspace: Keyspace to enumerate
            token: START_TOKEN or a token from the previous batch
            batch_size: Number of candidate ids examined
            match: Optional glob filtering the examined candidates

        Returns:
            ScanBatch with the matching ids of this step
        """
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")

        if token == START_TOKEN:
            query = "SELECT id FROM keyspace_members WHERE keyspace = ? ORDER BY id LIMIT ?"
            params: tuple = (keyspace, batch_size + 1)
        elif token.startswith(_RESUME_PREFIX):
            query = (
                "SELECT id FROM keyspace_members WHERE keyspace = ? AND id > ? "
                "ORDER BY id LIMIT ?"
            )
            params = (keyspace, token[len(_RESUME_PREFIX):], batch_size + 1)
        else:
            raise ValueError(f"Invalid scan token {token!r}")

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()

        candidates = [row[0] for row in rows[:batch_size]]
        exhausted = len(rows) <= batch_size
        if match is not None:
            ids = tuple(i for i in candidates if fnmatch.fnmatchcase(i, match))
        else:
            ids = tuple(candidates)

        next_token = START_TOKEN if exhausted else _RESUME_PREFIX + candidates[-1]
        return ScanBatch(ids=ids, next_token=next_token, exhausted=exhausted)
