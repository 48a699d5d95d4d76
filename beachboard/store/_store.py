from __future__ import annotations

import threading
from pathlib import Path
from typing import Any

from .. import db
from ..config import DEFAULT_DB_PATH
from ..elements import Element, ElementKind, validate_step
from ..errors import InvalidStepError
from ..utils import now_iso
from .types import ConnectionStatus, PendingWrite

CUSTOMER_NAME_FIELD = "customer_name"
PENDING_PREFIX = "pending:"
VISIBILITY_PREFIX = "visibility:"


class LocalStore:
    """Station-local key-value namespace backed by SQLite.

    Mirrors what the browser board kept in localStorage: one JSON blob per
    element keyed by id, plain strings for scalars.
    """

    def __init__(
        self,
        db_path: Path | str = DEFAULT_DB_PATH,
        *,
        check_same_thread: bool = False,
    ):
        self.db_path = Path(db_path).expanduser()
        self.conn = db.connect(self.db_path, check_same_thread=check_same_thread)
        db.initialize_schema(self.conn)
        self._lock = threading.RLock()

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    # raw namespace

    def get(self, key: str, default: str | None = None) -> str | None:
        with self._lock:
            row = self.conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if row is None:
            return default
        return str(row["value"])

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self.conn.execute(
                """
                INSERT INTO kv(key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, value),
            )
            self.conn.commit()

    def remove(self, key: str) -> None:
        with self._lock:
            self.conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            self.conn.commit()

    def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT key FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            ).fetchall()
        return [str(row["key"]) for row in rows]

    def clear(self) -> None:
        with self._lock:
            self.conn.execute("DELETE FROM kv")
            self.conn.commit()

    def get_json(self, key: str, default: Any = None) -> Any:
        raw = self.get(key)
        if raw is None:
            return default
        value = db.from_json(raw)
        return default if value == {} and default is not None else value

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, db.to_json(value))

    # elements

    @staticmethod
    def element_key(kind: ElementKind, element_id: str) -> str:
        return f"{kind.key_prefix}{element_id}"

    def load_element(self, kind: ElementKind, element_id: str) -> Element:
        record = self.get_json(self.element_key(kind, element_id))
        if not isinstance(record, dict) or not record:
            return Element(id=element_id, kind=kind)
        try:
            step = validate_step(kind, record.get("step", 0))
        except InvalidStepError:
            step = 0
        name = record.get(CUSTOMER_NAME_FIELD)
        updated = record.get("last_updated")
        return Element(
            id=element_id,
            kind=kind,
            step=step,
            customer_name=str(name) if name else None,
            last_updated=str(updated) if updated else None,
        )

    def has_element(self, kind: ElementKind, element_id: str) -> bool:
        return self.get(self.element_key(kind, element_id)) is not None

    def save_element(self, element: Element) -> None:
        self.set_json(self.element_key(element.kind, element.id), element.to_record())

    def reset_except_customers(self) -> int:
        """Drop ledger, totals and notes; keep element records, visibility and pending writes.

        Element steps are cleared through the sync path so other stations see them.
        """
        kept = (
            ElementKind.SEAT.key_prefix,
            ElementKind.CIRCLE.key_prefix,
            VISIBILITY_PREFIX,
            PENDING_PREFIX,
            "circles_visible",
        )
        removed = 0
        with self._lock:
            for key in self.keys():
                if key.startswith(kept):
                    continue
                self.conn.execute("DELETE FROM kv WHERE key = ?", (key,))
                removed += 1
            self.conn.commit()
        return removed

    # pending remote writes, last mutation per document wins

    @staticmethod
    def pending_key(collection: str, doc_id: str) -> str:
        return f"{PENDING_PREFIX}{collection}:{doc_id}"

    def put_pending(self, write: PendingWrite) -> None:
        self.set_json(self.pending_key(write["collection"], write["doc_id"]), write)

    def drop_pending(self, collection: str, doc_id: str) -> None:
        self.remove(self.pending_key(collection, doc_id))

    def load_pending(self) -> list[PendingWrite]:
        writes: list[PendingWrite] = []
        for key in self.keys(PENDING_PREFIX):
            value = self.get_json(key)
            if isinstance(value, dict) and value.get("collection") and value.get("doc_id"):
                writes.append(value)  # type: ignore[arg-type]
        writes.sort(key=lambda item: str(item.get("queued_at") or ""))
        return writes

    def pending_count(self) -> int:
        return len(self.keys(PENDING_PREFIX))

    # connection status, one row

    def get_connection_state(self) -> ConnectionStatus | None:
        with self._lock:
            row = self.conn.execute("SELECT * FROM connection_state WHERE id = 1").fetchone()
        if row is None:
            return None
        return ConnectionStatus(
            connected=bool(row["connected"]),
            last_check=row["last_check"],
            attempts=int(row["attempts"] or 0),
            last_error=row["last_error"],
            error_kind=row["error_kind"],
            latency_ms=row["latency_ms"],
            needs_manual_retry=bool(row["needs_manual_retry"]),
            last_ok_at=row["last_ok_at"],
        )

    def set_connection_state(self, status: ConnectionStatus) -> None:
        with self._lock:
            self.conn.execute(
                """
                INSERT INTO connection_state(
                    id, connected, attempts, last_check, last_ok_at,
                    last_error, error_kind, latency_ms, needs_manual_retry
                )
                VALUES (1, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    connected = excluded.connected,
                    attempts = excluded.attempts,
                    last_check = excluded.last_check,
                    last_ok_at = excluded.last_ok_at,
                    last_error = excluded.last_error,
                    error_kind = excluded.error_kind,
                    latency_ms = excluded.latency_ms,
                    needs_manual_retry = excluded.needs_manual_retry
                """,
                (
                    1 if status.connected else 0,
                    status.attempts,
                    status.last_check,
                    status.last_ok_at,
                    status.last_error,
                    status.error_kind,
                    status.latency_ms,
                    1 if status.needs_manual_retry else 0,
                ),
            )
            self.conn.commit()

    def mark_synced(self) -> str:
        stamp = now_iso()
        self.set("last_sync_time", stamp)
        return stamp
