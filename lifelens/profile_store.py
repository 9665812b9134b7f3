"""SQLite storage for owner profiles (one row per owner)."""

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Optional

from .types import PROFILE_FIELDS, Profile, utc_now

logger = logging.getLogger(__name__)


class ProfileStore:
    """Free-text profile fields keyed by owner."""

    def __init__(self, db_path: Path):
        self._db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS profiles (
                owner_id TEXT PRIMARY KEY,
                fields TEXT NOT NULL DEFAULT '{}',
                updated_at TEXT NOT NULL
            )
        """)
        self._conn.commit()

    def get(self, owner_id: str) -> Optional[Profile]:
        cursor = self._conn.execute(
            "SELECT fields, updated_at FROM profiles WHERE owner_id = ?",
            (owner_id,),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        try:
            fields = json.loads(row[0]) if row[0] else {}
        except json.JSONDecodeError:
            logger.warning("Unreadable profile for %s", owner_id)
            fields = {}
        return Profile(owner_id=owner_id, fields=fields, updated_at=row[1])

    def upsert(self, owner_id: str, fields: dict[str, str], *, replace: bool = False) -> Profile:
        """
        Create or update a profile.

        By default the given fields are merged into the existing ones; an
        empty string clears a field. With ``replace=True`` fields not given
        are dropped.

        Raises:
            ValueError: If a field name is not a known profile field
        """
        unknown = sorted(set(fields) - set(PROFILE_FIELDS))
        if unknown:
            raise ValueError(
                f"Unknown profile field(s): {', '.join(unknown)}. "
                f"Known fields: {', '.join(PROFILE_FIELDS)}"
            )
        now = utc_now()
        with self._lock:
            existing = self.get(owner_id)
            merged = {} if (replace or existing is None) else dict(existing.fields)
            for name, value in fields.items():
                value = (value or "").strip()
                if value:
                    merged[name] = value
                else:
                    merged.pop(name, None)
            self._conn.execute("""
                INSERT INTO profiles (owner_id, fields, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(owner_id) DO UPDATE SET
                    fields = excluded.fields,
                    updated_at = excluded.updated_at
            """, (owner_id, json.dumps(merged, ensure_ascii=False), now))
            self._conn.commit()
        logger.info("Updated profile for %s (%d fields)", owner_id, len(merged))
        return Profile(owner_id=owner_id, fields=merged, updated_at=now)

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
