"""
Append-only SQLite storage for composite estimates.

One table per estimate kind. Records are inserted once and never updated
or deleted; re-running an estimator adds a new row, so the table is the
owner's estimate history.
"""

import dataclasses
import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Optional, Union

from .types import (
    AxisScore,
    EmotionEstimate,
    EstimateKind,
    Report,
    TimelineEntry,
    TypeEstimate,
)

logger = logging.getLogger(__name__)

Estimate = Union[TypeEstimate, EmotionEstimate, Report]


def table_for(kind: EstimateKind) -> str:
    if kind is EstimateKind.TYPE:
        return "type_estimates"
    elif kind is EstimateKind.EMOTION:
        return "emotion_estimates"
    elif kind is EstimateKind.REPORT:
        return "reports"
    raise ValueError(f"No table for estimate kind: {kind!r}")


def estimate_to_dict(estimate: Estimate) -> dict:
    data = dataclasses.asdict(estimate)
    data["kind"] = estimate.kind.value
    return data


def estimate_from_dict(kind: EstimateKind, data: dict) -> Estimate:
    """Rebuild an estimate from its stored JSON payload."""
    data = {k: v for k, v in data.items() if k != "kind"}
    if kind is EstimateKind.TYPE:
        data["axes"] = [AxisScore(**axis) for axis in data.get("axes", [])]
        return TypeEstimate(**data)
    elif kind is EstimateKind.EMOTION:
        data["emotion_timeline"] = [
            TimelineEntry(**entry) for entry in data.get("emotion_timeline", [])
        ]
        return EmotionEstimate(**data)
    elif kind is EstimateKind.REPORT:
        return Report(**data)
    raise ValueError(f"Unknown estimate kind: {kind!r}")


class EstimateStore:
    """History of type estimates, emotion analyses and reports per owner."""

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
        for kind in EstimateKind:
            table = table_for(kind)
            self._conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    owner_id TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            self._conn.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{table}_owner
                ON {table}(owner_id, seq)
            """)
        self._conn.commit()

    def add(self, estimate: Estimate) -> Estimate:
        """Append an estimate. Raises ValueError if its id already exists."""
        table = table_for(estimate.kind)
        payload = json.dumps(estimate_to_dict(estimate), ensure_ascii=False)
        with self._lock:
            try:
                self._conn.execute(
                    f"INSERT INTO {table} (id, owner_id, payload, created_at) VALUES (?, ?, ?, ?)",
                    (estimate.id, estimate.owner_id, payload, estimate.created_at),
                )
                self._conn.commit()
            except sqlite3.IntegrityError:
                self._conn.rollback()
                raise ValueError(f"Estimate already exists: {estimate.id}") from None
        logger.info("Stored %s %s for %s", estimate.kind.value, estimate.id, estimate.owner_id)
        return estimate

    def get(self, kind: EstimateKind, id: str) -> Optional[Estimate]:
        cursor = self._conn.execute(
            f"SELECT payload FROM {table_for(kind)} WHERE id = ?", (id,)
        )
        row = cursor.fetchone()
        return estimate_from_dict(kind, json.loads(row[0])) if row else None

    def latest(self, kind: EstimateKind, owner_id: str) -> Optional[Estimate]:
        """Most recently stored estimate of a kind, or None."""
        cursor = self._conn.execute(
            f"SELECT payload FROM {table_for(kind)} WHERE owner_id = ? "
            f"ORDER BY seq DESC LIMIT 1",
            (owner_id,),
        )
        row = cursor.fetchone()
        return estimate_from_dict(kind, json.loads(row[0])) if row else None

    def history(self, kind: EstimateKind, owner_id: str, limit: int = 20) -> list[Estimate]:
        """Estimates of a kind, newest first."""
        cursor = self._conn.execute(
            f"SELECT payload FROM {table_for(kind)} WHERE owner_id = ? "
            f"ORDER BY seq DESC LIMIT ?",
            (owner_id, limit),
        )
        return [estimate_from_dict(kind, json.loads(row[0])) for row in cursor.fetchall()]

    def count(self, kind: EstimateKind, owner_id: str) -> int:
        cursor = self._conn.execute(
            f"SELECT COUNT(*) FROM {table_for(kind)} WHERE owner_id = ?", (owner_id,)
        )
        return cursor.fetchone()[0]

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
