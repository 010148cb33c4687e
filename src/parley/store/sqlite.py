"""SQLite document store."""

import asyncio
import json
import sqlite3
from pathlib import Path
from typing import Any

from parley.store.base import BaseDocumentStore


class SQLiteStore(BaseDocumentStore):
    """Stores every record kind as JSON documents in a single table.

    Queries run in a worker thread so a slow disk never stalls the event loop.
    """

    def __init__(self, db_path: str | Path):
        """Initialize storage with database path.

        Args:
            db_path: Path to SQLite database file
        """
        super().__init__()
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_db()

    def _initialize_db(self) -> None:
        """Create the documents table and indexes if they don't exist."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    kind TEXT NOT NULL,
                    id TEXT NOT NULL,
                    scope TEXT,
                    data TEXT NOT NULL,
                    PRIMARY KEY (kind, id)
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_documents_scope ON documents(kind, scope)")
            conn.commit()

    async def _put(self, kind: str, doc_id: str, data: dict[str, Any], scope: str | None) -> None:
        await asyncio.to_thread(self._put_sync, kind, doc_id, json.dumps(data), scope)

    async def _get(self, kind: str, doc_id: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._get_sync, kind, doc_id)

    async def _delete(self, kind: str, doc_id: str) -> None:
        await asyncio.to_thread(self._delete_sync, kind, doc_id)

    async def _scan(self, kind: str, scope: str | None = None) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._scan_sync, kind, scope)

    def _put_sync(self, kind: str, doc_id: str, data: str, scope: str | None) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO documents (kind, id, scope, data) VALUES (?, ?, ?, ?)
                ON CONFLICT(kind, id) DO UPDATE SET scope = excluded.scope, data = excluded.data
            """,
                (kind, doc_id, scope, data),
            )
            conn.commit()

    def _get_sync(self, kind: str, doc_id: str) -> dict[str, Any] | None:
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT data FROM documents WHERE kind = ? AND id = ?", (kind, doc_id)
            ).fetchone()
        return json.loads(row[0]) if row else None

    def _delete_sync(self, kind: str, doc_id: str) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("DELETE FROM documents WHERE kind = ? AND id = ?", (kind, doc_id))
            conn.commit()

    def _scan_sync(self, kind: str, scope: str | None) -> list[dict[str, Any]]:
        with sqlite3.connect(self.db_path) as conn:
            if scope is None:
                cursor = conn.execute("SELECT data FROM documents WHERE kind = ?", (kind,))
            else:
                cursor = conn.execute(
                    "SELECT data FROM documents WHERE kind = ? AND scope = ?", (kind, scope)
                )
            return [json.loads(row[0]) for row in cursor.fetchall()]
