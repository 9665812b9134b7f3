"""
SQLite storage for analyzable items.

Each item carries its own analysis status. Transitions are guarded
updates (``UPDATE ... WHERE status = ?``) so a caller only moves an item
it actually holds:

    pending -> analyzing        acquire()
    analyzing -> completed      complete()
    analyzing -> failed         fail(), recover_stale()
    failed -> pending           requeue()

Acquisition runs inside a BEGIN IMMEDIATE transaction, so concurrent
analyzers (threads or processes) cannot both claim one item.
"""

import json
import logging
import sqlite3
import threading
import uuid
from pathlib import Path
from typing import Any, Optional

from .schemas import result_from_dict, result_to_dict
from .types import AnalysisStatus, AnalyzableItem, Category, utc_now

logger = logging.getLogger(__name__)

# Items left in 'analyzing' longer than this are treated as orphaned
STALE_ANALYSIS_SECONDS = 1800  # 30 minutes

STALE_ERROR = "Analysis did not finish (claim expired); retry to analyze again"

_COLUMNS = (
    "seq, id, owner_id, category, content, status, result, error, "
    "raw_response, analyzed_at, created_at, claimed_at"
)


class ItemStore:
    """
    SQLite-backed store for items and their analysis state.

    Items are never deleted here; removal belongs to whoever ingested them.
    """

    def __init__(self, db_path: Path):
        """
        Args:
            db_path: Path to SQLite database file
        """
        self._db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        # isolation_level=None gives us manual transaction control
        # so we can use BEGIN IMMEDIATE for atomic acquisition
        self._conn = sqlite3.connect(
            str(self._db_path), check_same_thread=False,
            isolation_level=None,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS items (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                owner_id TEXT NOT NULL,
                category TEXT NOT NULL,
                content TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                result TEXT,
                error TEXT,
                raw_response TEXT,
                analyzed_at TEXT,
                created_at TEXT NOT NULL,
                claimed_at TEXT,
                updated_at TEXT NOT NULL
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_items_owner_status
            ON items(owner_id, status)
        """)

    def _row_to_item(self, row: tuple) -> AnalyzableItem:
        category = Category(row[3])
        result = None
        if row[6]:
            try:
                result = result_from_dict(category, json.loads(row[6]))
            except (json.JSONDecodeError, TypeError):
                logger.warning("Unreadable stored result for item %s", row[1])
        return AnalyzableItem(
            seq=row[0],
            id=row[1],
            owner_id=row[2],
            category=category,
            content=row[4],
            status=AnalysisStatus(row[5]),
            result=result,
            error=row[7],
            raw_response=row[8],
            analyzed_at=row[9],
            created_at=row[10],
            claimed_at=row[11],
        )

    # -- Creation and lookup --------------------------------------------------

    def create(
        self,
        owner_id: str,
        category: Category,
        content: str,
        *,
        id: Optional[str] = None,
    ) -> AnalyzableItem:
        """Insert a new item in 'pending' status."""
        item_id = id or uuid.uuid4().hex
        now = utc_now()
        with self._lock:
            try:
                self._conn.execute("""
                    INSERT INTO items
                    (id, owner_id, category, content, status, created_at, updated_at)
                    VALUES (?, ?, ?, ?, 'pending', ?, ?)
                """, (item_id, owner_id, category.value, content, now, now))
            except sqlite3.IntegrityError:
                raise ValueError(f"Item already exists: {item_id}") from None
        logger.info("Created %s item %s for %s", category.value, item_id, owner_id)
        return self.get(item_id)

    def get(self, id: str) -> Optional[AnalyzableItem]:
        cursor = self._conn.execute(
            f"SELECT {_COLUMNS} FROM items WHERE id = ?", (id,)
        )
        row = cursor.fetchone()
        return self._row_to_item(row) if row else None

    def list_by_owner(
        self,
        owner_id: str,
        status: Optional[AnalysisStatus] = None,
        category: Optional[Category] = None,
    ) -> list[AnalyzableItem]:
        """List an owner's items in creation order."""
        sql = f"SELECT {_COLUMNS} FROM items WHERE owner_id = ?"
        params: list[Any] = [owner_id]
        if status is not None:
            sql += " AND status = ?"
            params.append(status.value)
        if category is not None:
            sql += " AND category = ?"
            params.append(category.value)
        sql += " ORDER BY seq ASC"
        cursor = self._conn.execute(sql, params)
        return [self._row_to_item(row) for row in cursor.fetchall()]

    def pending_ids(self, owner_id: Optional[str] = None, limit: int = 10) -> list[str]:
        """Oldest pending item ids, optionally for one owner."""
        if owner_id is None:
            cursor = self._conn.execute(
                "SELECT id FROM items WHERE status = 'pending' ORDER BY seq ASC LIMIT ?",
                (limit,),
            )
        else:
            cursor = self._conn.execute(
                "SELECT id FROM items WHERE status = 'pending' AND owner_id = ? "
                "ORDER BY seq ASC LIMIT ?",
                (owner_id, limit),
            )
        return [row[0] for row in cursor.fetchall()]

    def status_counts(self, owner_id: str) -> dict[str, int]:
        """Count of items per status (every status present, zero if none)."""
        cursor = self._conn.execute("""
            SELECT status, COUNT(*) FROM items
            WHERE owner_id = ?
            GROUP BY status
        """, (owner_id,))
        by_status = {row[0]: row[1] for row in cursor.fetchall()}
        return {s.value: by_status.get(s.value, 0) for s in AnalysisStatus}

    # -- Guarded transitions --------------------------------------------------

    def acquire(self, id: str) -> Optional[AnalyzableItem]:
        """
        Claim a pending item for analysis (pending -> analyzing).

        The status check and the update are one statement inside an
        IMMEDIATE transaction. Returns the claimed item, or None if the
        item does not exist or is not pending.
        """
        now = utc_now()
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                cursor = self._conn.execute("""
                    UPDATE items
                    SET status = 'analyzing', claimed_at = ?, updated_at = ?
                    WHERE id = ? AND status = 'pending'
                """, (now, now, id))
                acquired = cursor.rowcount == 1
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise
        if not acquired:
            return None
        return self.get(id)

    def complete(self, id: str, result) -> bool:
        """Store a result (analyzing -> completed). False if not held."""
        now = utc_now()
        payload = json.dumps(result_to_dict(result), ensure_ascii=False)
        with self._lock:
            cursor = self._conn.execute("""
                UPDATE items
                SET status = 'completed', result = ?, error = NULL,
                    raw_response = NULL, analyzed_at = ?, claimed_at = NULL,
                    updated_at = ?
                WHERE id = ? AND status = 'analyzing'
            """, (payload, now, now, id))
            self._conn.commit()
            return cursor.rowcount == 1

    def fail(self, id: str, error: str, raw_response: Optional[str] = None) -> bool:
        """Record a failure (analyzing -> failed). False if not held."""
        now = utc_now()
        with self._lock:
            cursor = self._conn.execute("""
                UPDATE items
                SET status = 'failed', result = NULL, error = ?,
                    raw_response = ?, analyzed_at = NULL, claimed_at = NULL,
                    updated_at = ?
                WHERE id = ? AND status = 'analyzing'
            """, (error or "unknown error", raw_response, now, id))
            self._conn.commit()
            return cursor.rowcount == 1

    def requeue(self, id: str) -> bool:
        """Put a failed item back in the queue (failed -> pending).

        Clears the error and any diagnostics. False if the item is not failed.
        """
        now = utc_now()
        with self._lock:
            cursor = self._conn.execute("""
                UPDATE items
                SET status = 'pending', result = NULL, error = NULL,
                    raw_response = NULL, analyzed_at = NULL, claimed_at = NULL,
                    updated_at = ?
                WHERE id = ? AND status = 'failed'
            """, (now, id))
            self._conn.commit()
            return cursor.rowcount == 1

    def recover_stale(self, max_age_seconds: int = STALE_ANALYSIS_SECONDS) -> list[str]:
        """
        Fail items stuck in 'analyzing' longer than ``max_age_seconds``.

        These were claimed by a process that died mid-analysis. Moving them
        to 'failed' makes them visible and retryable. Returns their ids.
        """
        now = utc_now()
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                cursor = self._conn.execute("""
                    SELECT id FROM items
                    WHERE status = 'analyzing'
                      AND claimed_at IS NOT NULL
                      AND julianday(?) - julianday(claimed_at) > ? / 86400.0
                """, (now, max_age_seconds))
                ids = [row[0] for row in cursor.fetchall()]
                if ids:
                    self._conn.executemany("""
                        UPDATE items
                        SET status = 'failed', error = ?, claimed_at = NULL,
                            updated_at = ?
                        WHERE id = ? AND status = 'analyzing'
                    """, [(STALE_ERROR, now, item_id) for item_id in ids])
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise
        if ids:
            logger.warning("Marked %d stale analyses as failed", len(ids))
        return ids

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
