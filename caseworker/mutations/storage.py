"""
SQLite storage layer for the durable mutation queue.

Entries survive process restarts. AUTOINCREMENT ids are never reused, so
id order is insertion order even after deletes.
"""
import asyncio
import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from ..exceptions import QueueStorageError
from .models import QueuedMutation

logger = logging.getLogger("caseworker.mutations.storage")


SCHEMA = """
-- Mutations captured while offline, replayed in id order
CREATE TABLE IF NOT EXISTS queued_mutations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    url TEXT NOT NULL,
    method TEXT NOT NULL,
    headers TEXT NOT NULL,
    body BLOB,
    enqueued_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_queued_mutations_enqueued ON queued_mutations(enqueued_at);
"""


class MutationQueue:
    """
    SQLite-backed queue of failed mutation requests.

    Supports enqueue, full scan in insertion order and delete-by-id.
    Every operation opens its own connection, so concurrent callers are
    serialized by SQLite's own write locking.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Initialize database with schema."""
        with self._get_connection() as conn:
            conn.executescript(SCHEMA)
            conn.commit()

    @contextmanager
    def _get_connection(self):
        """Get a database connection; sqlite errors surface as QueueStorageError."""
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        except sqlite3.Error as e:
            raise QueueStorageError(f"Cannot open queue database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.Error as e:
            conn.rollback()
            raise QueueStorageError(f"Queue database error: {e}") from e
        finally:
            conn.close()

    # =========================================================================
    # Async API
    # =========================================================================

    async def enqueue(
        self,
        url: str,
        method: str,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[bytes] = None,
    ) -> QueuedMutation:
        return await asyncio.to_thread(self._enqueue_sync, url, method, headers or {}, body)

    async def all(self) -> List[QueuedMutation]:
        """Every queued mutation, oldest first."""
        return await asyncio.to_thread(self._all_sync)

    async def get(self, mutation_id: int) -> Optional[QueuedMutation]:
        return await asyncio.to_thread(self._get_sync, mutation_id)

    async def delete(self, mutation_id: int) -> bool:
        return await asyncio.to_thread(self._delete_sync, mutation_id)

    async def count(self) -> int:
        return await asyncio.to_thread(self._count_sync)

    async def clear(self) -> int:
        return await asyncio.to_thread(self._clear_sync)

    # =========================================================================
    # Synchronous internals
    # =========================================================================

    def _enqueue_sync(
        self,
        url: str,
        method: str,
        headers: Dict[str, str],
        body: Optional[bytes],
    ) -> QueuedMutation:
        enqueued_at = datetime.now(timezone.utc)
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO queued_mutations (url, method, headers, body, enqueued_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (url, method.upper(), json.dumps(headers), body, enqueued_at.isoformat()),
            )
            conn.commit()
            mutation_id = cursor.lastrowid

        logger.info(f"Queued mutation {mutation_id}: {method.upper()} {url}")
        return QueuedMutation(
            id=mutation_id,
            url=url,
            method=method.upper(),
            headers=dict(headers),
            body=body,
            enqueued_at=enqueued_at,
        )

    def _all_sync(self) -> List[QueuedMutation]:
        with self._get_connection() as conn:
            cursor = conn.execute("SELECT * FROM queued_mutations ORDER BY id")
            return [self._row_to_mutation(row) for row in cursor.fetchall()]

    def _get_sync(self, mutation_id: int) -> Optional[QueuedMutation]:
        with self._get_connection() as conn:
            cursor = conn.execute("SELECT * FROM queued_mutations WHERE id = ?", (mutation_id,))
            row = cursor.fetchone()
            return self._row_to_mutation(row) if row else None

    def _delete_sync(self, mutation_id: int) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM queued_mutations WHERE id = ?", (mutation_id,))
            conn.commit()
            deleted = cursor.rowcount > 0
        if deleted:
            logger.debug(f"Removed queued mutation {mutation_id}")
        return deleted

    def _count_sync(self) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute("SELECT COUNT(*) FROM queued_mutations")
            return cursor.fetchone()[0]

    def _clear_sync(self) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM queued_mutations")
            conn.commit()
            return cursor.rowcount

    def _row_to_mutation(self, row: sqlite3.Row) -> QueuedMutation:
        """Convert a database row to a QueuedMutation."""
        body = row["body"]
        return QueuedMutation(
            id=row["id"],
            url=row["url"],
            method=row["method"],
            headers=json.loads(row["headers"]),
            body=bytes(body) if body is not None else None,
            enqueued_at=datetime.fromisoformat(row["enqueued_at"]),
        )
