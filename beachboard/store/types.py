from __future__ import annotations

from dataclasses import dataclass
from typing import Any, TypedDict


class PendingWrite(TypedDict):
    collection: str
    doc_id: str
    data: dict[str, Any]
    queued_at: str


@dataclass
class ConnectionStatus:
    connected: bool = False
    last_check: str | None = None
    attempts: int = 0
    last_error: str | None = None
    error_kind: str | None = None
    latency_ms: float | None = None
    needs_manual_retry: bool = False
    last_ok_at: str | None = None

    @property
    def indicator(self) -> str:
        """Short status badge: OK, latency, ``!`` for permissions, ``X`` otherwise."""
        if self.connected:
            if self.latency_ms is not None and self.latency_ms >= 100:
                return f"{int(self.latency_ms)}ms"
            return "OK"
        if self.error_kind == "permission_denied":
            return "!"
        if self.last_check is None:
            return "..."
        return "X"
