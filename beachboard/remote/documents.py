from __future__ import annotations

import threading
from collections.abc import Sequence
from pathlib import Path
from typing import Any
from uuid import uuid4

from .. import db
from ..utils import MonotonicClock, compute_cursor, parse_cursor
from .types import BatchWrite, RemoteDocument


class DocumentDatabase:
    """SQLite-backed collections of JSON documents with server-assigned timestamps.

    Every write gets a fresh ``update_time`` that is strictly later than any
    earlier one, so ``(update_time, doc_id)`` is a stable change-feed cursor.
    """

    def __init__(self, db_path: Path | str = db.DEFAULT_DOCUMENTS_DB_PATH) -> None:
        self.db_path = Path(db_path).expanduser()
        self.conn = db.connect(self.db_path, check_same_thread=False)
        db.initialize_document_schema(self.conn)
        self._lock = threading.RLock()
        self._clock = MonotonicClock()
        row = self.conn.execute("SELECT MAX(update_time) AS latest FROM documents").fetchone()
        self._clock.seed(row["latest"] if row else None)

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    def _row_to_document(self, row: Any) -> RemoteDocument:
        data = db.from_json(row["data_json"])
        return RemoteDocument(
            collection=str(row["collection"]),
            doc_id=str(row["doc_id"]),
            data=data if isinstance(data, dict) else {},
            create_time=str(row["create_time"]),
            update_time=str(row["update_time"]),
        )

    def get(self, collection: str, doc_id: str) -> RemoteDocument | None:
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id),
            ).fetchone()
        return self._row_to_document(row) if row else None

    def _write(self, collection: str, doc_id: str, data: dict[str, Any], merge: bool) -> str:
        existing = self.get(collection, doc_id)
        stamp = self._clock.next_iso()
        if existing is not None and merge:
            merged = {**existing.data, **data}
        else:
            merged = dict(data)
        self.conn.execute(
            """
            INSERT INTO documents(collection, doc_id, data_json, create_time, update_time)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(collection, doc_id) DO UPDATE SET
                data_json = excluded.data_json,
                update_time = excluded.update_time
            """,
            (collection, doc_id, db.to_json(merged), stamp, stamp),
        )
        return stamp

    def set(self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = True) -> str:
        with self._lock:
            stamp = self._write(collection, doc_id, data, merge)
            self.conn.commit()
        return stamp

    def add(self, collection: str, data: dict[str, Any]) -> tuple[str, str]:
        doc_id = uuid4().hex
        return doc_id, self.set(collection, doc_id, data, merge=False)

    def batch_set(self, writes: Sequence[BatchWrite]) -> str | None:
        """Apply all writes in one transaction."""
        if not writes:
            return None
        stamp: str | None = None
        with self._lock:
            try:
                for write in writes:
                    stamp = self._write(write["collection"], write["doc_id"], write["data"], True)
            except Exception:
                self.conn.rollback()
                raise
            self.conn.commit()
        return stamp

    def changes_since(
        self, collection: str, cursor: str | None, *, limit: int = 200
    ) -> tuple[list[RemoteDocument], str | None]:
        parsed = parse_cursor(cursor)
        with self._lock:
            if parsed is None:
                rows = self.conn.execute(
                    """
                    SELECT * FROM documents
                    WHERE collection = ?
                    ORDER BY update_time ASC, doc_id ASC
                    LIMIT ?
                    """,
                    (collection, limit),
                ).fetchall()
            else:
                update_time, doc_id = parsed
                rows = self.conn.execute(
                    """
                    SELECT * FROM documents
                    WHERE collection = ?
                      AND (update_time > ? OR (update_time = ? AND doc_id > ?))
                    ORDER BY update_time ASC, doc_id ASC
                    LIMIT ?
                    """,
                    (collection, update_time, update_time, doc_id, limit),
                ).fetchall()
        docs = [self._row_to_document(row) for row in rows]
        next_cursor = compute_cursor(docs[-1].update_time, docs[-1].doc_id) if docs else cursor
        return docs, next_cursor

    def collections(self) -> dict[str, int]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT collection, COUNT(*) AS total FROM documents GROUP BY collection"
            ).fetchall()
        return {str(row["collection"]): int(row["total"]) for row in rows}
