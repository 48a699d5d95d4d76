from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from ..elements import Element, ElementKind, validate_step
from ..errors import BeachBoardError, ElementNotFoundError, InvalidStepError, RemoteError
from ..layout import BoardLayout
from ..remote.types import (
    MAX_BATCH_WRITES,
    BatchWrite,
    DocumentChange,
    RemoteStore,
    Subscription,
)
from ..store import LocalStore, PendingWrite
from ..utils import MonotonicClock, is_newer

logger = logging.getLogger(__name__)

PAYMENTS_COLLECTION = "payments"
VISIBILITY_COLLECTION = "visibility"
ELEMENT_COLLECTIONS = (ElementKind.SEAT.collection, ElementKind.CIRCLE.collection)
SUBSCRIBED_COLLECTIONS = (
    ElementKind.SEAT.collection,
    ElementKind.CIRCLE.collection,
    PAYMENTS_COLLECTION,
    VISIBILITY_COLLECTION,
)

ElementListener = Callable[[Element], None]
DocumentHandler = Callable[[DocumentChange], None]


class SyncCoordinator:
    """Keeps the local cache and the remote store converged.

    Local mutations land in the local store first and are queued as pending
    remote writes keyed by document, so only the latest state per document is
    ever replayed. Remote changes are applied last-write-wins on the server's
    ``update_time``.
    """

    def __init__(
        self,
        local: LocalStore,
        layout: BoardLayout,
        remote: RemoteStore | None = None,
    ) -> None:
        self.local = local
        self.layout = layout
        self.remote = remote
        self.online = False
        self.on_connection_lost: Callable[[Exception], None] | None = None
        self._lock = threading.RLock()
        self._flush_lock = threading.Lock()
        self._clock = MonotonicClock()
        self._listeners: list[ElementListener] = []
        self._handlers: dict[str, DocumentHandler] = {}
        self._subscriptions: list[Subscription] = []

    # listeners

    def add_listener(self, listener: ElementListener) -> None:
        self._listeners.append(listener)

    def register_handler(self, collection: str, handler: DocumentHandler) -> None:
        self._handlers[collection] = handler

    def _notify(self, element: Element) -> None:
        for listener in list(self._listeners):
            try:
                listener(element)
            except Exception:
                logger.exception("element listener failed for %s", element.id)

    # local mutations

    def element(self, element_id: str) -> Element:
        kind = self.layout.kind_of(element_id)
        return self.local.load_element(kind, element_id)

    def elements(self, kind: ElementKind | None = None) -> list[Element]:
        return [self.element(element_id) for element_id in self.layout.ids(kind)]

    def toggle(self, element_id: str) -> Element:
        with self._lock:
            stored = self._commit(self.element(element_id).cycled())
        self.flush()
        return stored

    def set_step(self, element_id: str, step: object) -> Element:
        with self._lock:
            stored = self._commit(self.element(element_id).with_step(step))
        self.flush()
        return stored

    def set_customer_name(self, element_id: str, name: str | None) -> Element:
        with self._lock:
            current = self.element(element_id)
            if current.kind is not ElementKind.SEAT:
                raise BeachBoardError(f"{element_id} does not take a customer name")
            stored = self._commit(current.with_name(name))
        self.flush()
        return stored

    def clear(self, element_id: str) -> Element:
        with self._lock:
            current = self.element(element_id)
            stored = self._commit(current.with_step(0).with_name(None))
        self.flush()
        return stored

    def _commit(self, element: Element) -> Element:
        stamp = self._clock.next_iso()
        stored = Element(
            id=element.id,
            kind=element.kind,
            step=element.step,
            customer_name=element.customer_name,
            last_updated=stamp,
        )
        self.local.save_element(stored)
        self._queue(element.kind.collection, element.id, stored.to_document(), stamp)
        self._notify(stored)
        return stored

    # pending writes

    def enqueue(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._queue(collection, doc_id, data, self._clock.next_iso())
        self.flush()

    def _queue(self, collection: str, doc_id: str, data: dict[str, Any], stamp: str) -> None:
        self.local.put_pending(
            {"collection": collection, "doc_id": doc_id, "data": data, "queued_at": stamp}
        )

    def pending(self) -> list[PendingWrite]:
        return self.local.load_pending()

    def flush(self) -> int:
        """Replay pending writes in batches; returns how many were acknowledged."""
        if self.remote is None or not self.online:
            return 0
        with self._flush_lock:
            pending = self.local.load_pending()
            written = 0
            for start in range(0, len(pending), MAX_BATCH_WRITES):
                chunk = pending[start : start + MAX_BATCH_WRITES]
                writes: list[BatchWrite] = [
                    {"collection": item["collection"], "doc_id": item["doc_id"], "data": item["data"]}
                    for item in chunk
                ]
                try:
                    server_stamp = self.remote.batch_set(writes)
                except RemoteError as exc:
                    logger.warning("flush of %d pending writes failed: %s", len(chunk), exc)
                    self._lost(exc)
                    return written
                for item in chunk:
                    if self._acknowledge(item) and server_stamp:
                        self._adopt_server_stamp(item, server_stamp)
                written += len(chunk)
        if written:
            self.local.mark_synced()
            logger.debug("flushed %d pending writes", written)
        return written

    def _acknowledge(self, item: PendingWrite) -> bool:
        key = self.local.pending_key(item["collection"], item["doc_id"])
        current = self.local.get_json(key)
        # A newer mutation of the same document was queued while this one was in flight.
        if isinstance(current, dict) and current.get("queued_at") != item["queued_at"]:
            return False
        self.local.remove(key)
        return True

    def _adopt_server_stamp(self, item: PendingWrite, server_stamp: str) -> None:
        """Replace the station-clock stamp of an acknowledged element with the server's.

        The batch stamp is the newest in the batch, so it is never older than the
        stamp the server gave this element.
        """
        if item["collection"] not in ELEMENT_COLLECTIONS or item["doc_id"] not in self.layout:
            return
        kind = ElementKind.from_collection(item["collection"])
        with self._lock:
            current = self.local.load_element(kind, item["doc_id"])
            # A remote change or a newer local edit already replaced this version.
            if current.last_updated != item["queued_at"]:
                return
            self.local.save_element(replace(current, last_updated=server_stamp))

    # connection lifecycle

    def connect(self) -> int:
        """Replay pending writes, then resubscribe. Returns the number replayed."""
        if self.remote is None:
            return 0
        with self._lock:
            self.online = True
        replayed = self.flush()
        if not self.online:
            return replayed
        self.subscribe_all()
        if self.online:
            self.local.mark_synced()
        return replayed

    def disconnect(self) -> None:
        with self._lock:
            self.online = False
        self.unsubscribe_all()

    def _lost(self, exc: Exception) -> None:
        with self._lock:
            was_online = self.online
            self.online = False
        if was_online and self.on_connection_lost is not None:
            self.on_connection_lost(exc)

    def subscribe_all(self) -> None:
        if self.remote is None:
            return
        self.unsubscribe_all()
        for collection in SUBSCRIBED_COLLECTIONS:
            try:
                subscription = self.remote.subscribe(
                    collection, self.apply_changes, on_error=self._subscription_failed
                )
            except RemoteError as exc:
                logger.warning("subscribe to %s failed: %s", collection, exc)
                self._lost(exc)
                self.unsubscribe_all()
                return
            with self._lock:
                self._subscriptions.append(subscription)

    def unsubscribe_all(self) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)
            self._subscriptions.clear()
        for subscription in subscriptions:
            subscription.unsubscribe()

    def subscription_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def _subscription_failed(self, exc: Exception) -> None:
        logger.warning("change stream failed: %s", exc)
        self._lost(exc)
        self.unsubscribe_all()

    # remote changes

    def apply_changes(self, changes: list[DocumentChange]) -> None:
        for change in changes:
            if change.type == "removed":
                continue
            try:
                if change.collection in ELEMENT_COLLECTIONS:
                    self.apply_remote_element(change)
                    continue
                handler = self._handlers.get(change.collection)
                if handler is not None:
                    handler(change)
            except (BeachBoardError, ValueError, TypeError) as exc:
                logger.warning(
                    "skipping remote %s/%s", change.collection, change.doc_id, exc_info=exc
                )

    def apply_remote_element(self, change: DocumentChange) -> bool:
        kind = ElementKind.from_collection(change.collection)
        if change.doc_id not in self.layout:
            raise ElementNotFoundError(change.doc_id)
        if self.layout.kind_of(change.doc_id) is not kind:
            raise InvalidStepError(f"{change.doc_id} is not a {kind.value}")
        with self._lock:
            current = self.local.load_element(kind, change.doc_id)
            known = self.local.has_element(kind, change.doc_id)
            if known and not is_newer(change.update_time, current.last_updated):
                return False
            step = validate_step(kind, change.data.get("step", current.step))
            name = current.customer_name
            if kind is ElementKind.SEAT and "customer_name" in change.data:
                name = change.data.get("customer_name") or None
            updated = Element(
                id=change.doc_id,
                kind=kind,
                step=step,
                customer_name=name,
                last_updated=change.update_time or None,
            )
            self.local.save_element(updated)
            self._clock.seed(change.update_time)
            # The remote state is newer than any queued local write for this element.
            self.local.drop_pending(kind.collection, change.doc_id)
        self._notify(updated)
        return True
