from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, TypedDict

MAX_BATCH_WRITES = 500
PROTOCOL_VERSION = "1"
PROBE_COLLECTION = "connection_test"
PROBE_DOC_ID = "probe"


@dataclass(frozen=True)
class RemoteDocument:
    collection: str
    doc_id: str
    data: dict[str, Any]
    create_time: str
    update_time: str


@dataclass(frozen=True)
class DocumentChange:
    type: str  # added | modified | removed
    collection: str
    doc_id: str
    data: dict[str, Any] = field(default_factory=dict)
    update_time: str = ""


class BatchWrite(TypedDict):
    collection: str
    doc_id: str
    data: dict[str, Any]


ChangeHandler = Callable[[list[DocumentChange]], None]
ErrorHandler = Callable[[Exception], None]


class Subscription(Protocol):
    collection: str

    def unsubscribe(self) -> None: ...


class RemoteStore(Protocol):
    """A document store with server timestamps and per-collection change streams."""

    def set(
        self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = True
    ) -> str: ...

    def add(self, collection: str, data: dict[str, Any]) -> str: ...

    def get(self, collection: str, doc_id: str) -> RemoteDocument | None: ...

    def batch_set(self, writes: Sequence[BatchWrite]) -> str | None: ...

    def subscribe(
        self,
        collection: str,
        on_changes: ChangeHandler,
        on_error: ErrorHandler | None = None,
    ) -> Subscription: ...

    def probe(self, timeout_s: float = 5.0) -> float: ...

    def close(self) -> None: ...
