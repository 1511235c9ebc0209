"""
SQLite-based storage for progression records.

Each service persists one JSON record under its own key. Writes report a
PersistResult instead of raising so callers can log failures and carry on
with their in-memory state.
"""

import json
import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path

from src.config import get_db_path

logger = logging.getLogger(__name__)

ACHIEVEMENTS_KEY = "achievements"
STREAK_KEY = "streak"
CHALLENGES_KEY = "challenges"
COSMETICS_KEY = "cosmetics"

RECORD_KEYS = (ACHIEVEMENTS_KEY, STREAK_KEY, CHALLENGES_KEY, COSMETICS_KEY)


@dataclass
class PersistResult:
    """Outcome of a storage write."""

    ok: bool
    key: str
    error: str | None = None


class ProgressStorage:
    """SQLite-based key-value storage for progression records."""

    def __init__(self, db_path: str | Path | None = None):
        """
        Initialize the progress storage.

        Args:
            db_path: Path to the SQLite database file.
                     Defaults to ~/.symbi/progress.db
        """
        if db_path is None:
            db_path = get_db_path()
        self.db_path = Path(db_path)
        self._init_db()

    def _init_db(self) -> None:
        """Create tables if they don't exist."""
        # Ensure parent directory exists
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS records (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.commit()

    def load_record(self, key: str) -> dict | None:
        """
        Load a persisted record.

        Args:
            key: The record key (one of RECORD_KEYS)

        Returns:
            The decoded record, or None if it is missing or unreadable
        """
        try:
            with sqlite3.connect(self.db_path) as conn:
                row = conn.execute(
                    "SELECT value FROM records WHERE key = ?",
                    (key,),
                ).fetchone()
        except sqlite3.Error as e:
            logger.warning("Failed to read record %s: %s", key, e)
            return None

        if row is None:
            return None

        try:
            data = json.loads(row[0])
        except json.JSONDecodeError as e:
            logger.warning("Discarding corrupt record %s: %s", key, e)
            return None

        if not isinstance(data, dict):
            logger.warning("Discarding record %s: expected an object", key)
            return None
        return data

    def save_record(self, key: str, data: dict) -> PersistResult:
        """
        Save a record (upserts).

        Args:
            key: The record key
            data: JSON-serializable record

        Returns:
            PersistResult describing whether the write succeeded
        """
        try:
            value = json.dumps(data, sort_keys=True)
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO records (key, value, updated_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (key, value),
                )
                conn.commit()
        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.warning("Failed to persist record %s: %s", key, e)
            return PersistResult(ok=False, key=key, error=str(e))

        return PersistResult(ok=True, key=key)

    def delete_record(self, key: str) -> bool:
        """
        Delete a record.

        Returns:
            True if a record was deleted
        """
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.execute("DELETE FROM records WHERE key = ?", (key,))
                conn.commit()
        except sqlite3.Error as e:
            logger.warning("Failed to delete record %s: %s", key, e)
            return False
        return cursor.rowcount > 0

    def clear(self) -> bool:
        """
        Delete all progression records. Used for a full data reset.

        Returns:
            True if the records were wiped
        """
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute("DELETE FROM records")
                conn.commit()
        except sqlite3.Error as e:
            logger.warning("Failed to clear records: %s", e)
            return False
        return True

    def get_setting(self, key: str, default: str | None = None) -> str | None:
        """
        Get a setting value by key.

        Args:
            key: The setting key
            default: Default value if key doesn't exist or can't be read

        Returns:
            The setting value or default
        """
        try:
            with sqlite3.connect(self.db_path) as conn:
                row = conn.execute(
                    "SELECT value FROM settings WHERE key = ?",
                    (key,),
                ).fetchone()
        except sqlite3.Error as e:
            logger.warning("Failed to read setting %s: %s", key, e)
            return default
        return row[0] if row else default

    def set_setting(self, key: str, value: str) -> PersistResult:
        """
        Set a setting value (upserts).

        Args:
            key: The setting key
            value: The value to store

        Returns:
            PersistResult describing whether the write succeeded
        """
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO settings (key, value, updated_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (key, value),
                )
                conn.commit()
        except sqlite3.Error as e:
            logger.warning("Failed to persist setting %s: %s", key, e)
            return PersistResult(ok=False, key=key, error=str(e))

        return PersistResult(ok=True, key=key)
