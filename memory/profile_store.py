"""Opt-in cross-session storage of learning style profiles."""

import sqlite3
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Optional

from schemas.style import StyleProfile

logger = logging.getLogger(__name__)


class ProfileStore(ABC):
    """Key-value store of style profiles keyed by user id."""

    @abstractmethod
    def get(self, user_id: str) -> Optional[StyleProfile]:
        pass

    @abstractmethod
    def put(self, user_id: str, profile: StyleProfile):
        pass

    @abstractmethod
    def delete(self, user_id: str) -> bool:
        pass


class InMemoryProfileStore(ProfileStore):
    """Process-local profile store."""

    def __init__(self):
        self._profiles: dict[str, StyleProfile] = {}

    def get(self, user_id: str) -> Optional[StyleProfile]:
        profile = self._profiles.get(user_id)
        return profile.model_copy(deep=True) if profile else None

    def put(self, user_id: str, profile: StyleProfile):
        self._profiles[user_id] = profile.model_copy(deep=True)

    def delete(self, user_id: str) -> bool:
        return self._profiles.pop(user_id, None) is not None


class SQLiteProfileStore(ProfileStore):
    """SQLite-based persistent profile store."""

    def __init__(self, db_path: str = "data/profiles.db"):
        """
        Initialize SQLite profile store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        """Initialize database schema."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS style_profiles (
                user_id TEXT PRIMARY KEY,
                profile TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        conn.commit()
        conn.close()
        logger.info(f"Profile database initialized at {self.db_path}")

    def get(self, user_id: str) -> Optional[StyleProfile]:
        """
        Get a user's stored profile.

        Args:
            user_id: User ID

        Returns:
            StyleProfile or None if the user has no stored profile
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute(
            "SELECT profile FROM style_profiles WHERE user_id = ?",
            (user_id,)
        )
        row = cursor.fetchone()
        conn.close()

        if not row:
            return None

        return StyleProfile.model_validate_json(row["profile"])

    def put(self, user_id: str, profile: StyleProfile):
        """
        Create or replace a user's profile.

        Args:
            user_id: User ID
            profile: Profile to store
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute(
            """
            INSERT OR REPLACE INTO style_profiles (user_id, profile, updated_at)
            VALUES (?, ?, ?)
            """,
            (user_id, profile.model_dump_json(), datetime.now().isoformat())
        )

        conn.commit()
        conn.close()

    def delete(self, user_id: str) -> bool:
        """
        Delete a user's profile.

        Returns:
            True if a profile was removed
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("DELETE FROM style_profiles WHERE user_id = ?", (user_id,))
        removed = cursor.rowcount > 0

        conn.commit()
        conn.close()
        return removed
