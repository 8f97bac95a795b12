"""
SQLite-backed key-value store.

The on-device equivalent of the app's async storage: one row per key, the
value kept as JSON text.

PROPERTIES:
1. WAL mode (readers never block the write-behind worker)
2. Explicit transactions per write
3. Thread-local connections (the write-behind worker has its own)
4. Schema versioning table for future migrations

USAGE:
    store = SqliteKeyValueStore(Path("data/ubazol.db"))
    store.set("cartData", {"items": [], ...})
    cart = store.get("cartData")
    store.multi_remove(["userData", "favorites"])
    store.close()
"""

import sqlite3
import threading
from pathlib import Path
from typing import Any, Iterable, List, Optional

from ubazol.errors import PersistenceError
from ubazol.logging import get_logger, LogStream
from ubazol.storage.kv_store import decode_value, encode_value
from ubazol.time import Clock, RealTimeClock, format_timestamp


class SqliteKeyValueStore:
    """SQLite key-value persistence."""

    SCHEMA_VERSION = 1

    CREATE_TABLE_SQL = """
        CREATE TABLE IF NOT EXISTS kv (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """

    CREATE_VERSION_TABLE_SQL = """
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY
        )
    """

    def __init__(self, db_path: Path, clock: Optional[Clock] = None):
        """
        Args:
            db_path: Path to SQLite database file
            clock: Clock for updated_at stamps
        """
        self.db_path = Path(db_path)
        self.clock = clock or RealTimeClock()
        self.logger = get_logger(LogStream.STORAGE)

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()

        self._initialize_db()

        self.logger.info("SqliteKeyValueStore initialized", extra={
            "db_path": str(self.db_path),
            "schema_version": self.SCHEMA_VERSION
        })

    def _get_connection(self) -> sqlite3.Connection:
        """Thread-local connection."""
        conn = getattr(self._local, "connection", None)
        if conn is None:
            try:
                conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
                conn.execute("PRAGMA journal_mode=WAL")
                conn.isolation_level = None  # explicit transactions
            except sqlite3.Error as e:
                raise PersistenceError(f"Cannot open {self.db_path}: {e}") from e

            self._local.connection = conn
            with self._connections_lock:
                self._connections.append(conn)

        return conn

    def _initialize_db(self):
        conn = self._get_connection()
        try:
            conn.execute(self.CREATE_TABLE_SQL)
            conn.execute(self.CREATE_VERSION_TABLE_SQL)

            row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
            if row is None:
                conn.execute(
                    "INSERT INTO schema_version (version) VALUES (?)",
                    (self.SCHEMA_VERSION,)
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to initialize {self.db_path}: {e}") from e

    def get(self, key: str) -> Optional[Any]:
        conn = self._get_connection()
        try:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to read {key!r}: {e}") from e

        return decode_value(key, row[0] if row else None)

    def set(self, key: str, value: Any) -> None:
        encoded = encode_value(key, value)
        conn = self._get_connection()

        try:
            conn.execute("BEGIN")
            conn.execute(
                "REPLACE INTO kv (key, value, updated_at) VALUES (?, ?, ?)",
                (key, encoded, format_timestamp(self.clock.now()))
            )
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            self._rollback(conn)
            self.logger.error(
                f"Failed to store {key}",
                extra={"key": key, "error": str(e)},
                exc_info=True
            )
            raise PersistenceError(f"Failed to store {key!r}: {e}") from e

        self.logger.debug(f"Stored {key}", extra={"key": key, "bytes": len(encoded)})

    def remove(self, key: str) -> None:
        self.multi_remove([key])

    def multi_remove(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return

        conn = self._get_connection()
        try:
            conn.execute("BEGIN")
            conn.executemany("DELETE FROM kv WHERE key = ?", [(k,) for k in keys])
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            self._rollback(conn)
            raise PersistenceError(f"Failed to remove {keys}: {e}") from e

        self.logger.debug("Removed keys", extra={"keys": keys})

    def keys(self) -> List[str]:
        conn = self._get_connection()
        try:
            rows = conn.execute("SELECT key FROM kv ORDER BY key").fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to list keys: {e}") from e
        return [row[0] for row in rows]

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.execute("ROLLBACK")

    def close(self):
        """Close every connection opened by this store. Call on shutdown."""
        with self._connections_lock:
            for conn in self._connections:
                conn.close()
            self._connections.clear()
        self._local = threading.local()

        self.logger.info("SqliteKeyValueStore closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
