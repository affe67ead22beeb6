"""
store/sqlite_backend.py - SQLite-backed key-value store

Keys live in an index database under the store directory, values in a
separate value log database under the value directory; the value log is
attached to the index connection so a write touches both atomically.
Keys are BLOBs, so SQLite orders them bytewise.
"""

from __future__ import annotations

import logging
import sqlite3
import weakref
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from kvshell.errors import (
    ErrorCode,
    IterationError,
    StoreClosedError,
    StoreError,
    StoreOpenError,
    ValueFetchError,
)

from .base import (
    DEFAULT_ITERATOR_OPTIONS,
    MAX_USER_META,
    Item,
    Iterator,
    IteratorOptions,
    KVStore,
    StoreOptions,
)

logger = logging.getLogger("store.sqlite")

INDEX_FILE = "index.db"
VALUE_LOG_FILE = "vlog.db"

# Stays under SQLite's default bound-parameter limit.
MAX_PREFETCH_SIZE = 500

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS main.keys (
        key BLOB PRIMARY KEY,
        meta INTEGER NOT NULL DEFAULT 0,
        vptr INTEGER NOT NULL
    ) WITHOUT ROWID
    """,
    """
    CREATE TABLE IF NOT EXISTS vlog.entries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        key BLOB NOT NULL,
        value BLOB NOT NULL
    )
    """,
)


def _check_key(key: bytes) -> None:
    if not key:
        raise StoreError("key cannot be empty")


class SQLiteIterator(Iterator):
    """Lazy iterator pulling index rows in batches of ``prefetch_size``."""

    def __init__(self, store: "SQLiteKVStore", options: IteratorOptions):
        super().__init__()
        self._store = store
        self._options = options
        self._batch_size = max(1, min(options.prefetch_size, MAX_PREFETCH_SIZE))
        self._cursor: Optional[sqlite3.Cursor] = None
        self._buffer: List[Item] = []
        self._pos = 0
        self._exhausted = False

    def rewind(self) -> None:
        self._check_open()
        self._release_cursor()
        order = "DESC" if self._options.reverse else "ASC"
        try:
            self._cursor = self._store._connection().execute(
                f"SELECT key, meta, vptr FROM main.keys ORDER BY key {order}"
            )
        except sqlite3.Error as e:
            raise IterationError(f"cannot start iteration: {e}") from e
        self._buffer = []
        self._pos = 0
        self._exhausted = False
        self._fill()

    def valid(self) -> bool:
        return not self._closed and self._pos < len(self._buffer)

    def next(self) -> None:
        self._check_open()
        self._pos += 1
        if self._pos >= len(self._buffer):
            self._fill()

    def item(self) -> Item:
        self._check_open()
        if not self.valid():
            raise IterationError("iterator is not positioned on an item")
        return self._buffer[self._pos]

    def close(self) -> None:
        if self._closed:
            return
        self._release_cursor()
        self._buffer = []
        super().close()
        logger.debug("Iterator closed")

    def _release_cursor(self) -> None:
        if self._cursor is not None:
            try:
                self._cursor.close()
            except sqlite3.Error:
                logger.debug("Ignoring error while closing cursor", exc_info=True)
            self._cursor = None

    def _fill(self) -> None:
        """Replace the buffer with the next batch of rows."""
        self._buffer = []
        self._pos = 0
        if self._exhausted or self._cursor is None:
            return
        try:
            rows: List[Tuple[bytes, int, int]] = self._cursor.fetchmany(self._batch_size)
        except sqlite3.Error as e:
            raise IterationError(f"iteration failed: {e}") from e
        if len(rows) < self._batch_size:
            self._exhausted = True
        if not rows:
            return

        prefetched: Optional[Dict[int, bytes]] = None
        if self._options.prefetch_values:
            prefetched = self._store._read_values([vptr for _, _, vptr in rows])

        for key, meta, vptr in rows:
            self._buffer.append(Item(key, meta, self._loader(key, vptr, prefetched)))

    def _loader(self, key: bytes, vptr: int, prefetched: Optional[Dict[int, bytes]]):
        store = self._store

        def load() -> bytes:
            if prefetched is not None:
                if vptr in prefetched:
                    return prefetched[vptr]
                raise ValueFetchError(f"value log entry {vptr} is missing", key=key)
            return store._read_value(key, vptr)

        return load


class SQLiteKVStore(KVStore):
    """Key-value store over an index database and an attached value log."""

    def __init__(self, conn: sqlite3.Connection, options: StoreOptions):
        self._conn: Optional[sqlite3.Connection] = conn
        self.options = options
        self._iterators: "weakref.WeakSet[SQLiteIterator]" = weakref.WeakSet()

    @classmethod
    def open(cls, options: StoreOptions) -> "SQLiteKVStore":
        """
        Open (creating if allowed) the store described by ``options``.

        Raises:
            StoreOpenError: if the directories or databases cannot be opened.
        """
        index_dir = Path(options.dir)
        value_dir = Path(options.value_dir or options.dir)

        for directory in (index_dir, value_dir):
            if directory.is_dir():
                continue
            if not options.create_if_missing:
                raise StoreOpenError(f"directory does not exist: {directory}")
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StoreOpenError(f"cannot create directory {directory}: {e}") from e

        conn = None
        try:
            conn = sqlite3.connect(str(index_dir / INDEX_FILE))
            conn.execute("ATTACH DATABASE ? AS vlog", (str(value_dir / VALUE_LOG_FILE),))
            synchronous = "FULL" if options.sync_writes else "OFF"
            conn.execute(f"PRAGMA main.synchronous = {synchronous}")
            conn.execute(f"PRAGMA vlog.synchronous = {synchronous}")
            with conn:
                for statement in _SCHEMA:
                    conn.execute(statement)
        except sqlite3.Error as e:
            if conn is not None:
                conn.close()
            raise StoreOpenError(f"cannot open store at {index_dir}: {e}") from e

        logger.info(f"Opened store: dir={index_dir} value_dir={value_dir}")
        return cls(conn, options)

    # ---- KVStore ----

    def get(self, key: bytes) -> Item:
        _check_key(key)
        conn = self._connection()
        try:
            row = conn.execute("SELECT meta, vptr FROM main.keys WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"get failed: {e}", code=ErrorCode.STO_READ) from e
        if row is None:
            return Item(key)
        meta, vptr = row
        value = self._read_value(key, vptr)
        return Item(key, meta, lambda: value)

    def set(self, key: bytes, value: bytes, user_meta: int = 0) -> None:
        _check_key(key)
        if not 0 <= user_meta <= MAX_USER_META:
            raise StoreError(f"user meta must fit in one byte, got {user_meta}", code=ErrorCode.STO_WRITE)
        conn = self._connection()
        try:
            with conn:
                old = conn.execute("SELECT vptr FROM main.keys WHERE key = ?", (key,)).fetchone()
                cur = conn.execute(
                    "INSERT INTO vlog.entries (key, value) VALUES (?, ?)", (key, value)
                )
                conn.execute(
                    "INSERT INTO main.keys (key, meta, vptr) VALUES (?, ?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET meta = excluded.meta, vptr = excluded.vptr",
                    (key, user_meta, cur.lastrowid),
                )
                if old is not None:
                    conn.execute("DELETE FROM vlog.entries WHERE id = ?", (old[0],))
        except sqlite3.Error as e:
            raise StoreError(f"set failed: {e}", code=ErrorCode.STO_WRITE) from e

    def delete(self, key: bytes) -> None:
        _check_key(key)
        conn = self._connection()
        try:
            with conn:
                old = conn.execute("SELECT vptr FROM main.keys WHERE key = ?", (key,)).fetchone()
                if old is None:
                    return
                conn.execute("DELETE FROM main.keys WHERE key = ?", (key,))
                conn.execute("DELETE FROM vlog.entries WHERE id = ?", (old[0],))
        except sqlite3.Error as e:
            raise StoreError(f"delete failed: {e}", code=ErrorCode.STO_WRITE) from e

    def new_iterator(self, options: IteratorOptions = DEFAULT_ITERATOR_OPTIONS) -> SQLiteIterator:
        self._connection()
        it = SQLiteIterator(self, options)
        self._iterators.add(it)
        return it

    def close(self) -> None:
        if self._conn is None:
            return
        for it in list(self._iterators):
            it.close()
        self._conn.close()
        self._conn = None
        logger.info(f"Closed store: dir={self.options.dir}")

    @property
    def closed(self) -> bool:
        return self._conn is None

    # ---- internals ----

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreClosedError("store is closed")
        return self._conn

    def _read_value(self, key: bytes, vptr: int) -> bytes:
        try:
            row = self._connection().execute(
                "SELECT value FROM vlog.entries WHERE id = ?", (vptr,)
            ).fetchone()
        except sqlite3.Error as e:
            raise ValueFetchError(f"cannot read value log entry {vptr}: {e}", key=key) from e
        if row is None:
            raise ValueFetchError(f"value log entry {vptr} is missing", key=key)
        return row[0]

    def _read_values(self, vptrs: List[int]) -> Dict[int, bytes]:
        placeholders = ", ".join("?" for _ in vptrs)
        try:
            rows = self._connection().execute(
                f"SELECT id, value FROM vlog.entries WHERE id IN ({placeholders})", vptrs
            ).fetchall()
        except sqlite3.Error as e:
            raise IterationError(f"cannot prefetch values: {e}") from e
        return {vptr: value for vptr, value in rows}
