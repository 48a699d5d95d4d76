from __future__ import annotations

import copy
import logging
import threading
import time
from collections import deque
from collections.abc import Sequence
from typing import Any
from uuid import uuid4

from ..errors import RemotePermissionError, RemoteUnavailableError
from ..utils import MonotonicClock
from .types import (
    PROBE_COLLECTION,
    PROBE_DOC_ID,
    BatchWrite,
    ChangeHandler,
    DocumentChange,
    ErrorHandler,
    RemoteDocument,
)

logger = logging.getLogger(__name__)

WRITE_LOG_LIMIT = 1000


class _MemorySubscription:
    def __init__(
        self,
        store: MemoryDocumentStore,
        collection: str,
        on_changes: ChangeHandler,
        on_error: ErrorHandler | None,
    ) -> None:
        self.collection = collection
        self.on_changes = on_changes
        self.on_error = on_error
        self._store = store
        self.active = True

    def unsubscribe(self) -> None:
        self.active = False
        self._store._detach(self)


class MemoryDocumentStore:
    """In-process document store.

    Change fan-out is synchronous: every subscriber of a collection sees a
    write before ``set`` returns. ``set_online`` and ``deny_writes`` simulate
    outages and permission failures. ``write_log`` keeps the most recent
    ``WRITE_LOG_LIMIT`` written documents.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._docs: dict[str, dict[str, RemoteDocument]] = {}
        self._subscriptions: list[_MemorySubscription] = []
        self._clock = MonotonicClock()
        self.online = True
        self.deny_writes = False
        self.write_log: deque[tuple[str, str]] = deque(maxlen=WRITE_LOG_LIMIT)

    def set_online(self, online: bool) -> None:
        with self._lock:
            self.online = online
            broken = [] if online else list(self._subscriptions)
            if not online:
                self._subscriptions.clear()
        error = RemoteUnavailableError("remote store unavailable")
        for subscription in broken:
            subscription.active = False
            if subscription.on_error is not None:
                subscription.on_error(error)

    def _check_online(self) -> None:
        if not self.online:
            raise RemoteUnavailableError("remote store unavailable")

    def _check_writable(self) -> None:
        self._check_online()
        if self.deny_writes:
            raise RemotePermissionError("permission denied")

    def _write(self, collection: str, doc_id: str, data: dict[str, Any], merge: bool) -> DocumentChange:
        docs = self._docs.setdefault(collection, {})
        existing = docs.get(doc_id)
        stamp = self._clock.next_iso()
        if existing is not None and merge:
            merged = {**existing.data, **copy.deepcopy(data)}
        else:
            merged = copy.deepcopy(data)
        create_time = existing.create_time if existing is not None else stamp
        docs[doc_id] = RemoteDocument(collection, doc_id, merged, create_time, stamp)
        self.write_log.append((collection, doc_id))
        return DocumentChange(
            type="modified" if existing is not None else "added",
            collection=collection,
            doc_id=doc_id,
            data=copy.deepcopy(merged),
            update_time=stamp,
        )

    def _fan_out(self, changes: list[DocumentChange]) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            relevant = [change for change in changes if change.collection == subscription.collection]
            if relevant and subscription.active:
                subscription.on_changes(relevant)

    def set(self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = True) -> str:
        with self._lock:
            self._check_writable()
            change = self._write(collection, doc_id, data, merge)
        self._fan_out([change])
        return change.update_time

    def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = uuid4().hex
        self.set(collection, doc_id, data, merge=False)
        return doc_id

    def get(self, collection: str, doc_id: str) -> RemoteDocument | None:
        with self._lock:
            self._check_online()
            doc = self._docs.get(collection, {}).get(doc_id)
        if doc is None:
            return None
        return RemoteDocument(
            doc.collection, doc.doc_id, copy.deepcopy(doc.data), doc.create_time, doc.update_time
        )

    def batch_set(self, writes: Sequence[BatchWrite]) -> str | None:
        if not writes:
            return None
        with self._lock:
            self._check_writable()
            changes = [
                self._write(write["collection"], write["doc_id"], write["data"], True)
                for write in writes
            ]
        self._fan_out(changes)
        return changes[-1].update_time

    def documents(self, collection: str) -> list[RemoteDocument]:
        with self._lock:
            return list(self._docs.get(collection, {}).values())

    def subscribe(
        self,
        collection: str,
        on_changes: ChangeHandler,
        on_error: ErrorHandler | None = None,
    ) -> _MemorySubscription:
        with self._lock:
            self._check_online()
            subscription = _MemorySubscription(self, collection, on_changes, on_error)
            snapshot = [
                DocumentChange(
                    type="added",
                    collection=collection,
                    doc_id=doc.doc_id,
                    data=copy.deepcopy(doc.data),
                    update_time=doc.update_time,
                )
                for doc in sorted(
                    self._docs.get(collection, {}).values(), key=lambda item: item.update_time
                )
            ]
            self._subscriptions.append(subscription)
        if snapshot:
            on_changes(snapshot)
        return subscription

    def _detach(self, subscription: _MemorySubscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def subscriber_count(self, collection: str | None = None) -> int:
        with self._lock:
            return sum(
                1 for sub in self._subscriptions if collection is None or sub.collection == collection
            )

    def probe(self, timeout_s: float = 5.0) -> float:
        started = time.monotonic()
        self.set(PROBE_COLLECTION, PROBE_DOC_ID, {"checked": True})
        self.get(PROBE_COLLECTION, PROBE_DOC_ID)
        return (time.monotonic() - started) * 1000.0

    def close(self) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)
            self._subscriptions.clear()
        for subscription in subscriptions:
            subscription.active = False
        logger.debug("memory document store closed with %d subscriptions", len(subscriptions))
