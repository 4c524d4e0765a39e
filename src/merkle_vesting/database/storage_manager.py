"""
Provides a simple, persistent key-value storage layer using SQLite.

The vesting ledger persists its snapshot (phases and claim flags) through
this store. Values are serialized to JSON.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

from ..core.exceptions import StorageError

logger = logging.getLogger("merkle_vesting.database.storage_manager")


class StorageManager:
    """
    Manages a persistent key-value store backed by a SQLite database.

    Provides a get/set interface and handles the connection, cursor
    management and JSON serialization.
    """

    def __init__(self, db_path: Path | str):
        """
        Args:
            db_path: Path to the SQLite database file. The parent directory
                is created if it does not exist.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None

        try:
            self._conn = sqlite3.connect(
                self.db_path, check_same_thread=False, isolation_level="EXCLUSIVE"
            )
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._conn.execute("PRAGMA synchronous=NORMAL;")
            self._create_table()
        except sqlite3.Error as e:
            logger.error("Database connection failed for %s: %s", self.db_path, e)
            raise StorageError(f"Database connection failed: {e}") from e

    def _create_table(self) -> None:
        with self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS key_value_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )

    def set(self, key: str, value: Any) -> None:
        """Save or update ``value`` under ``key``."""
        try:
            value_json = json.dumps(value)
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO key_value_store (key, value)
                    VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value
                    """,
                    (key, value_json),
                )
        except (sqlite3.Error, TypeError) as e:
            # TypeError for objects that can't be JSON serialized
            logger.error("Failed to set key '%s': %s", key, e)
            raise StorageError(f"Failed to set key '{key}': {e}") from e

    def get(self, key: str, default: Any | None = None) -> Any:
        """Return the value stored under ``key``, or ``default`` if absent."""
        try:
            cursor = self._conn.cursor()
            cursor.execute("SELECT value FROM key_value_store WHERE key = ?", (key,))
            row = cursor.fetchone()
        except sqlite3.Error as e:
            logger.error("Failed to get key '%s': %s", key, e)
            raise StorageError(f"Failed to get key '{key}': {e}") from e
        if row:
            return json.loads(row[0])
        return default

    def delete(self, key: str) -> None:
        try:
            with self._conn:
                self._conn.execute("DELETE FROM key_value_store WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise StorageError(f"Failed to delete key '{key}': {e}") from e

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
