from __future__ import annotations

from ..config import BeachBoardConfig
from . import discovery
from .http_store import HttpDocumentStore
from .memory import MemoryDocumentStore
from .types import (
    MAX_BATCH_WRITES,
    BatchWrite,
    DocumentChange,
    RemoteDocument,
    RemoteStore,
    Subscription,
)

__all__ = [
    "MAX_BATCH_WRITES",
    "BatchWrite",
    "DocumentChange",
    "HttpDocumentStore",
    "MemoryDocumentStore",
    "RemoteDocument",
    "RemoteStore",
    "Subscription",
    "build_remote",
]


def build_remote(config: BeachBoardConfig) -> RemoteStore | None:
    """Remote store for ``config.remote_url``; ``None`` keeps the station offline-only."""
    url = config.remote_url.strip()
    if not url:
        return None
    if url == "memory":
        return MemoryDocumentStore()
    if url == "auto":
        # Browsed on first use so a station can start before the service is up.
        return HttpDocumentStore(
            "",
            timeout_s=config.remote_timeout_s,
            poll_interval_s=config.poll_interval_s,
            resolve=_discovered_address,
        )
    return HttpDocumentStore(
        url, timeout_s=config.remote_timeout_s, poll_interval_s=config.poll_interval_s
    )


def _discovered_address() -> str | None:
    addresses = discovery.service_addresses(discovery.discover_services())
    return addresses[0] if addresses else None
