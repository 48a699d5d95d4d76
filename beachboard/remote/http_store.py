from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from typing import Any
from urllib.parse import urlencode

from ..errors import RemoteError, RemoteUnavailableError
from . import http_client
from .types import (
    MAX_BATCH_WRITES,
    PROBE_COLLECTION,
    PROBE_DOC_ID,
    BatchWrite,
    ChangeHandler,
    DocumentChange,
    ErrorHandler,
    RemoteDocument,
)

logger = logging.getLogger(__name__)

CHANGES_PAGE_SIZE = 200


def _document(payload: dict[str, Any]) -> RemoteDocument:
    data = payload.get("data")
    return RemoteDocument(
        collection=str(payload.get("collection") or ""),
        doc_id=str(payload.get("doc_id") or ""),
        data=data if isinstance(data, dict) else {},
        create_time=str(payload.get("create_time") or ""),
        update_time=str(payload.get("update_time") or ""),
    )


class _PollingSubscription:
    """Follows ``/v1/changes/<collection>`` from a cursor on a background thread.

    The first page is fetched by the caller so subscribe failures surface
    immediately. Any later failure is reported once through ``on_error`` and
    ends the subscription.
    """

    def __init__(
        self,
        store: HttpDocumentStore,
        collection: str,
        on_changes: ChangeHandler,
        on_error: ErrorHandler | None,
    ) -> None:
        self.collection = collection
        self._store = store
        self._on_changes = on_changes
        self._on_error = on_error
        self._cursor: str | None = None
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def poll(self) -> int:
        delivered = 0
        while not self._stop.is_set():
            docs, next_cursor = self._store.changes_since(self.collection, self._cursor)
            if docs:
                changes = [
                    DocumentChange(
                        type="added" if doc.create_time == doc.update_time else "modified",
                        collection=doc.collection,
                        doc_id=doc.doc_id,
                        data=doc.data,
                        update_time=doc.update_time,
                    )
                    for doc in docs
                ]
                self._on_changes(changes)
                delivered += len(changes)
            self._cursor = next_cursor
            if len(docs) < CHANGES_PAGE_SIZE:
                break
        return delivered

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self._run, name=f"beachboard-poll-{self.collection}", daemon=True
        )
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.wait(self._store.poll_interval_s):
            try:
                self.poll()
            except RemoteError as exc:
                logger.info("subscription to %s lost: %s", self.collection, exc)
                self._stop.set()
                self._store._detach(self)
                if self._on_error is not None:
                    self._on_error(exc)
                return

    def unsubscribe(self) -> None:
        self._stop.set()
        self._store._detach(self)
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)


class HttpDocumentStore:
    """Client for the board document service.

    With a ``resolve`` callable and no ``base_url`` the service address is looked
    up on first use, and looked up again after the service stops answering.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: float = 5.0,
        poll_interval_s: float = 2.0,
        resolve: Callable[[], str | None] | None = None,
    ):
        self.base_url = http_client.build_base_url(base_url)
        if not self.base_url and resolve is None:
            raise ValueError("remote url is empty")
        self._resolve = resolve
        self.timeout_s = timeout_s
        self.poll_interval_s = poll_interval_s
        self._lock = threading.Lock()
        self._subscriptions: list[_PollingSubscription] = []

    def resolve_base_url(self) -> str:
        if not self.base_url and self._resolve is not None:
            address = self._resolve()
            if not address:
                raise RemoteUnavailableError("no board service found via mDNS")
            self.base_url = http_client.build_base_url(address)
            logger.info("using board service at %s", self.base_url)
        return self.base_url

    def _request(
        self, method: str, path: str, body: dict[str, Any] | None = None, *, timeout_s: float | None = None
    ) -> tuple[int, dict[str, Any] | None]:
        base_url = self.resolve_base_url()
        try:
            return http_client.request_json(
                method,
                f"{base_url}{path}",
                body=body,
                timeout_s=self.timeout_s if timeout_s is None else timeout_s,
            )
        except RemoteUnavailableError:
            if self._resolve is not None:
                self.base_url = ""
            raise

    def status(self) -> dict[str, Any]:
        status, payload = self._request("GET", "/v1/status")
        http_client.raise_for_status(status, payload, "status")
        return payload or {}

    def set(self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = True) -> str:
        status, payload = self._request(
            "PUT", http_client.doc_path(collection, doc_id), {"data": data, "merge": merge}
        )
        http_client.raise_for_status(status, payload, f"write {collection}/{doc_id}")
        return str((payload or {}).get("update_time") or "")

    def add(self, collection: str, data: dict[str, Any]) -> str:
        status, payload = self._request("POST", http_client.doc_path(collection), {"data": data})
        http_client.raise_for_status(status, payload, f"add to {collection}")
        return str((payload or {}).get("doc_id") or "")

    def get(self, collection: str, doc_id: str) -> RemoteDocument | None:
        status, payload = self._request("GET", http_client.doc_path(collection, doc_id))
        if status == 404:
            return None
        http_client.raise_for_status(status, payload, f"read {collection}/{doc_id}")
        doc = (payload or {}).get("doc")
        return _document(doc) if isinstance(doc, dict) else None

    def _push_batch(self, writes: list[BatchWrite]) -> str | None:
        status, payload = self._request("POST", "/v1/batch", {"writes": writes})
        if 200 <= status < 300:
            return (payload or {}).get("update_time")
        detail = http_client.error_detail(payload)
        if status == 413 and len(writes) > 1 and detail in {"payload_too_large", "too_many_writes"}:
            mid = len(writes) // 2
            self._push_batch(writes[:mid])
            return self._push_batch(writes[mid:])
        http_client.raise_for_status(status, payload, "batch write")
        return None

    def batch_set(self, writes: Sequence[BatchWrite]) -> str | None:
        if not writes:
            return None
        items = list(writes)
        stamp: str | None = None
        for start in range(0, len(items), MAX_BATCH_WRITES):
            stamp = self._push_batch(items[start : start + MAX_BATCH_WRITES])
        return stamp

    def changes_since(
        self, collection: str, cursor: str | None, *, limit: int = CHANGES_PAGE_SIZE
    ) -> tuple[list[RemoteDocument], str | None]:
        query: dict[str, Any] = {"limit": limit}
        if cursor:
            query["since"] = cursor
        path = f"/v1/changes/{collection}?{urlencode(query)}"
        status, payload = self._request("GET", path)
        http_client.raise_for_status(status, payload, f"changes for {collection}")
        body = payload or {}
        docs = [_document(item) for item in body.get("docs") or [] if isinstance(item, dict)]
        next_cursor = body.get("next_cursor")
        return docs, str(next_cursor) if next_cursor else cursor

    def subscribe(
        self,
        collection: str,
        on_changes: ChangeHandler,
        on_error: ErrorHandler | None = None,
    ) -> _PollingSubscription:
        subscription = _PollingSubscription(self, collection, on_changes, on_error)
        subscription.poll()
        with self._lock:
            self._subscriptions.append(subscription)
        subscription.start()
        return subscription

    def _detach(self, subscription: _PollingSubscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def probe(self, timeout_s: float = 5.0) -> float:
        started = time.monotonic()
        status, payload = self._request(
            "PUT",
            http_client.doc_path(PROBE_COLLECTION, PROBE_DOC_ID),
            {"data": {"checked": True}, "merge": True},
            timeout_s=timeout_s,
        )
        http_client.raise_for_status(status, payload, "probe write")
        status, payload = self._request(
            "GET", http_client.doc_path(PROBE_COLLECTION, PROBE_DOC_ID), timeout_s=timeout_s
        )
        if status == 404:
            raise RemoteUnavailableError("probe document missing after write")
        http_client.raise_for_status(status, payload, "probe read")
        return (time.monotonic() - started) * 1000.0

    def close(self) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription.unsubscribe()
