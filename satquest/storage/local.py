"""
Local progress stores - SQLite file and in-memory implementations

The SQLite store keeps a tiny key/value table so the progress snapshot
survives restarts. WAL mode lets a reader and the writer overlap.
"""

import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

from satquest.errors import StorageReadError, StorageWriteError
from satquest.storage.base import LocalProgressStore

logger = logging.getLogger(__name__)

PROGRESS_KEY = "satquest:user_progress"


class SQLiteProgressStore(LocalProgressStore):
    """Progress snapshot stored as JSON in a SQLite key/value table."""

    def __init__(self, db_path: Union[str, Path], key: str = PROGRESS_KEY):
        self.db_path = Path(db_path)
        self.key = key
        self._initialized = False
        self._init_lock = threading.Lock()

    @property
    def store_name(self) -> str:
        return "sqlite"

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        try:
            with self._init_lock:
                if not self._initialized:
                    conn.execute("PRAGMA journal_mode=WAL")
                    conn.execute("""
                        CREATE TABLE IF NOT EXISTS kv_store (
                            key TEXT PRIMARY KEY,
                            value TEXT NOT NULL,
                            updated_at TEXT
                        )
                    """)
                    conn.commit()
                    self._initialized = True
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    def _read(self) -> Optional[Dict[str, Any]]:
        try:
            conn = self._connect()
            try:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?", (self.key,)
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageReadError(f"Could not read {self.db_path}: {e}", cause=e)

        if row is None:
            return None

        try:
            return json.loads(row[0])
        except json.JSONDecodeError as e:
            raise StorageReadError(f"Stored progress is not valid JSON: {e}", cause=e)

    def _write(self, data: Dict[str, Any]) -> None:
        try:
            conn = self._connect()
            try:
                conn.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                                   updated_at = excluded.updated_at
                """,
                    (self.key, json.dumps(data), datetime.now().isoformat()),
                )
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageWriteError(f"Could not write {self.db_path}: {e}", cause=e)

    def _delete(self) -> None:
        try:
            conn = self._connect()
            try:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (self.key,))
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageWriteError(f"Could not clear {self.db_path}: {e}", cause=e)


class InMemoryProgressStore(LocalProgressStore):
    """Process-local store for tests and ephemeral sessions."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data = json.loads(json.dumps(initial)) if initial is not None else None
        self.reads = 0
        self.writes = 0

    @property
    def store_name(self) -> str:
        return "memory"

    def _read(self) -> Optional[Dict[str, Any]]:
        self.reads += 1
        if self._data is None:
            return None
        # Round-trip through JSON so callers never share state with the store
        return json.loads(json.dumps(self._data))

    def _write(self, data: Dict[str, Any]) -> None:
        self.writes += 1
        self._data = json.loads(json.dumps(data))

    def _delete(self) -> None:
        self._data = None
