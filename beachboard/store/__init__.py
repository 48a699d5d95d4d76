from __future__ import annotations

from ._store import PENDING_PREFIX, VISIBILITY_PREFIX, LocalStore
from .types import ConnectionStatus, PendingWrite

__all__ = [
    "PENDING_PREFIX",
    "VISIBILITY_PREFIX",
    "ConnectionStatus",
    "LocalStore",
    "PendingWrite",
]
