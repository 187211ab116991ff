"""Embedded transactional key-value engine with nested, ordered buckets.

Buckets live in a single SQLite file. Every bucket is a row in ``buckets`` and
its entries are rows in ``entries`` keyed by ``(bucket_id, key)``. SQLite orders
BLOB keys with ``memcmp``, so cursors walk keys in byte-wise order.

Write transactions are serialized by an in-process lock and ``BEGIN
IMMEDIATE``. Readers run on their own per-thread connection in WAL mode and
observe a consistent snapshot without blocking the writer.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from settings import get_settings

logger = logging.getLogger(__name__)

Entry = Tuple[Optional[bytes], Optional[bytes]]

_TOP_LEVEL = 0

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS buckets (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        parent_id INTEGER NOT NULL,
        name BLOB NOT NULL,
        UNIQUE (parent_id, name)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS entries (
        bucket_id INTEGER NOT NULL,
        key BLOB NOT NULL,
        value BLOB NOT NULL,
        PRIMARY KEY (bucket_id, key)
    ) WITHOUT ROWID
    """,
)


class EngineError(Exception):
    """Raised for any failure inside the key-value engine."""


class ReadOnlyTransactionError(EngineError):
    pass


class BucketNameRequiredError(EngineError):
    pass


class KeyRequiredError(EngineError):
    pass


class TransactionClosedError(EngineError):
    pass


class Transaction:
    """A read-only or read-write view over the engine's buckets."""

    def __init__(self, connection: sqlite3.Connection, writable: bool) -> None:
        self._connection = connection
        self.writable = writable
        self.closed = False

    def bucket(self, name: bytes) -> Optional["Bucket"]:
        return self._find_bucket(_TOP_LEVEL, name)

    def create_bucket_if_not_exists(self, name: bytes) -> "Bucket":
        return self._ensure_bucket(_TOP_LEVEL, name)

    def bucket_names(self) -> List[bytes]:
        return self._child_names(_TOP_LEVEL)

    def _find_bucket(self, parent_id: int, name: bytes) -> Optional["Bucket"]:
        row = self._fetchone(
            "SELECT id FROM buckets WHERE parent_id = ? AND name = ?",
            (parent_id, bytes(name)),
        )
        if row is None:
            return None
        return Bucket(self, row[0], bytes(name))

    def _ensure_bucket(self, parent_id: int, name: bytes) -> "Bucket":
        if not name:
            raise BucketNameRequiredError("Bucket name must not be empty.")
        existing = self._find_bucket(parent_id, name)
        if existing is not None:
            return existing
        self._require_writable()
        cursor = self._execute(
            "INSERT INTO buckets (parent_id, name) VALUES (?, ?)",
            (parent_id, bytes(name)),
        )
        return Bucket(self, cursor.lastrowid, bytes(name))

    def _child_names(self, parent_id: int) -> List[bytes]:
        rows = self._execute(
            "SELECT name FROM buckets WHERE parent_id = ? ORDER BY name",
            (parent_id,),
        ).fetchall()
        return [bytes(row[0]) for row in rows]

    def _require_writable(self) -> None:
        if not self.writable:
            raise ReadOnlyTransactionError("Transaction is read-only.")

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        if self.closed:
            raise TransactionClosedError("Transaction has already finished.")
        try:
            return self._connection.execute(sql, params)
        except sqlite3.Error as exc:
            raise EngineError(str(exc)) from exc

    def _fetchone(self, sql: str, params: tuple = ()) -> Optional[tuple]:
        return self._execute(sql, params).fetchone()


class Bucket:
    """A named, ordered collection of entries, possibly holding child buckets."""

    def __init__(self, tx: Transaction, bucket_id: int, name: bytes) -> None:
        self._tx = tx
        self._id = bucket_id
        self.name = name

    def bucket(self, name: bytes) -> Optional["Bucket"]:
        return self._tx._find_bucket(self._id, name)

    def create_bucket_if_not_exists(self, name: bytes) -> "Bucket":
        return self._tx._ensure_bucket(self._id, name)

    def bucket_names(self) -> List[bytes]:
        return self._tx._child_names(self._id)

    def get(self, key: bytes) -> Optional[bytes]:
        row = self._tx._fetchone(
            "SELECT value FROM entries WHERE bucket_id = ? AND key = ?",
            (self._id, bytes(key)),
        )
        return bytes(row[0]) if row is not None else None

    def put(self, key: bytes, value: bytes) -> None:
        if not key:
            raise KeyRequiredError("Key must not be empty.")
        self._tx._require_writable()
        self._tx._execute(
            "INSERT OR REPLACE INTO entries (bucket_id, key, value) VALUES (?, ?, ?)",
            (self._id, bytes(key), bytes(value)),
        )

    def delete(self, key: bytes) -> None:
        self._tx._require_writable()
        self._tx._execute(
            "DELETE FROM entries WHERE bucket_id = ? AND key = ?",
            (self._id, bytes(key)),
        )

    def cursor(self) -> "Cursor":
        return Cursor(self._tx, self._id)


class Cursor:
    """Ordered iteration over a bucket's entries.

    Every positioning call returns ``(key, value)`` or ``(None, None)`` once
    the cursor moves past either end of the bucket.
    """

    def __init__(self, tx: Transaction, bucket_id: int) -> None:
        self._tx = tx
        self._bucket_id = bucket_id
        self._position: Optional[bytes] = None

    def first(self) -> Entry:
        return self._move(
            "SELECT key, value FROM entries WHERE bucket_id = ? ORDER BY key ASC LIMIT 1",
            (self._bucket_id,),
        )

    def last(self) -> Entry:
        return self._move(
            "SELECT key, value FROM entries WHERE bucket_id = ? ORDER BY key DESC LIMIT 1",
            (self._bucket_id,),
        )

    def seek(self, key: bytes) -> Entry:
        return self._move(
            "SELECT key, value FROM entries WHERE bucket_id = ? AND key >= ? "
            "ORDER BY key ASC LIMIT 1",
            (self._bucket_id, bytes(key)),
        )

    def next(self) -> Entry:
        if self._position is None:
            return None, None
        return self._move(
            "SELECT key, value FROM entries WHERE bucket_id = ? AND key > ? "
            "ORDER BY key ASC LIMIT 1",
            (self._bucket_id, self._position),
        )

    def _move(self, sql: str, params: tuple) -> Entry:
        row = self._tx._fetchone(sql, params)
        if row is None:
            self._position = None
            return None, None
        key, value = bytes(row[0]), bytes(row[1])
        self._position = key
        return key, value


class BucketEngine:
    """Durable bucket store shared by all sensors and readers of one file."""

    def __init__(self, path: Path, timeout: float = 1.0) -> None:
        self.path = Path(path)
        self.timeout = timeout
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._closed = False
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise EngineError(f"Cannot create directory for {self.path}: {exc}") from exc
        with self.update() as tx:
            for statement in _SCHEMA:
                tx._execute(statement)
        logger.info("Opened bucket engine at %s", self.path)

    @contextmanager
    def view(self) -> Iterator[Transaction]:
        """Yield a read-only transaction over a consistent snapshot."""
        connection = self._connection()
        self._begin(connection, "BEGIN")
        tx = Transaction(connection, writable=False)
        try:
            yield tx
        finally:
            tx.closed = True
            self._rollback(connection)

    @contextmanager
    def update(self) -> Iterator[Transaction]:
        """Yield the single read-write transaction; commit on clean exit."""
        connection = self._connection()
        with self._write_lock:
            self._begin(connection, "BEGIN IMMEDIATE")
            tx = Transaction(connection, writable=True)
            try:
                yield tx
            except BaseException:
                tx.closed = True
                self._rollback(connection)
                raise
            tx.closed = True
            try:
                connection.execute("COMMIT")
            except sqlite3.Error as exc:
                self._rollback(connection)
                raise EngineError(f"Cannot commit transaction: {exc}") from exc

    def close(self) -> None:
        with self._connections_lock:
            if self._closed:
                return
            self._closed = True
            connections, self._connections = self._connections, []
        for connection in connections:
            connection.close()
        logger.info("Closed bucket engine at %s", self.path)

    @property
    def closed(self) -> bool:
        return self._closed

    def _connection(self) -> sqlite3.Connection:
        if self._closed:
            raise EngineError(f"Engine at {self.path} is closed.")
        connection = getattr(self._local, "connection", None)
        if connection is not None:
            return connection
        try:
            connection = sqlite3.connect(
                str(self.path),
                timeout=self.timeout,
                isolation_level=None,
                check_same_thread=False,
            )
            connection.execute("PRAGMA journal_mode=WAL")
        except sqlite3.Error as exc:
            raise EngineError(f"Cannot open {self.path}: {exc}") from exc
        with self._connections_lock:
            self._connections.append(connection)
        self._local.connection = connection
        return connection

    @staticmethod
    def _begin(connection: sqlite3.Connection, statement: str) -> None:
        try:
            connection.execute(statement)
        except sqlite3.Error as exc:
            raise EngineError(f"Cannot begin transaction: {exc}") from exc

    @staticmethod
    def _rollback(connection: sqlite3.Connection) -> None:
        # SQLite may already have rolled back on its own after an I/O error.
        if not connection.in_transaction:
            return
        try:
            connection.execute("ROLLBACK")
        except sqlite3.Error as exc:
            raise EngineError(f"Cannot roll back transaction: {exc}") from exc


@lru_cache
def build_default_engine(path: Optional[str] = None) -> BucketEngine:
    settings = get_settings()
    engine_path = settings.database_path if path is None else path
    return BucketEngine(Path(engine_path))
