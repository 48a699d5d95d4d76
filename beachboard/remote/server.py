from __future__ import annotations

import contextlib
import json
import logging
import os
import socket
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, unquote, urlparse

from .. import db
from ..utils import now_iso
from .discovery import advertise_mdns
from .documents import DocumentDatabase
from .types import MAX_BATCH_WRITES, PROTOCOL_VERSION, BatchWrite

logger = logging.getLogger(__name__)


def _safe_int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


MAX_BODY_BYTES = _safe_int_env("BEACHBOARD_MAX_BODY_BYTES", 1048576)


def _read_body(handler: BaseHTTPRequestHandler) -> bytes:
    length = int(handler.headers.get("Content-Length", "0") or 0)
    if length <= 0:
        return b""
    if length > MAX_BODY_BYTES:
        raise ValueError("payload_too_large")
    return handler.rfile.read(length)


def _parse_json_body(raw: bytes) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        data = json.loads(raw.decode("utf-8"))
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def _send_json(handler: BaseHTTPRequestHandler, payload: dict[str, Any], status: int = 200) -> None:
    body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    handler.send_response(status)
    handler.send_header("Content-Type", "application/json; charset=utf-8")
    handler.send_header("Content-Length", str(len(body)))
    handler.end_headers()
    handler.wfile.write(body)


def _segments(path: str) -> list[str]:
    return [unquote(part) for part in path.split("/") if part]


def _document_payload(doc: Any) -> dict[str, Any]:
    return {
        "collection": doc.collection,
        "doc_id": doc.doc_id,
        "data": doc.data,
        "create_time": doc.create_time,
        "update_time": doc.update_time,
    }


def _normalize_writes(raw: Any) -> list[BatchWrite] | None:
    if not isinstance(raw, list):
        return None
    writes: list[BatchWrite] = []
    for item in raw:
        if not isinstance(item, dict):
            return None
        collection = item.get("collection")
        doc_id = item.get("doc_id")
        data = item.get("data")
        if not isinstance(collection, str) or not collection:
            return None
        if not isinstance(doc_id, str) or not doc_id or not isinstance(data, dict):
            return None
        writes.append({"collection": collection, "doc_id": doc_id, "data": data})
    return writes


def build_document_handler(database: DocumentDatabase, *, read_only: bool = False):
    class DocumentHandler(BaseHTTPRequestHandler):
        def log_message(self, format: str, *args: object) -> None:  # noqa: A003
            if os.environ.get("BEACHBOARD_SERVE_LOGS") == "1":
                super().log_message(format, *args)

        def _denied(self) -> None:
            _send_json(self, {"error": "permission_denied"}, status=403)

        def _read_json(self) -> dict[str, Any] | None:
            try:
                raw = _read_body(self)
            except ValueError:
                _send_json(self, {"error": "payload_too_large"}, status=413)
                return None
            data = _parse_json_body(raw)
            if data is None:
                _send_json(self, {"error": "invalid_json"}, status=400)
            return data

        def do_GET(self) -> None:  # noqa: N802
            parsed = urlparse(self.path)
            parts = _segments(parsed.path)
            try:
                if parts == ["v1", "status"]:
                    _send_json(
                        self,
                        {
                            "ok": True,
                            "protocol_version": PROTOCOL_VERSION,
                            "read_only": read_only,
                            "time": now_iso(),
                            "collections": database.collections(),
                        },
                    )
                    return
                if len(parts) == 4 and parts[:2] == ["v1", "docs"]:
                    doc = database.get(parts[2], parts[3])
                    if doc is None:
                        _send_json(self, {"error": "not_found"}, status=404)
                        return
                    _send_json(self, {"doc": _document_payload(doc)})
                    return
                if len(parts) == 3 and parts[:2] == ["v1", "changes"]:
                    params = parse_qs(parsed.query)
                    cursor = params.get("since", [None])[0]
                    limit_value = params.get("limit", ["200"])[0]
                    try:
                        limit = max(1, min(int(limit_value), 1000))
                    except (TypeError, ValueError):
                        limit = 200
                    docs, next_cursor = database.changes_since(parts[2], cursor, limit=limit)
                    _send_json(
                        self,
                        {
                            "docs": [_document_payload(doc) for doc in docs],
                            "next_cursor": next_cursor,
                        },
                    )
                    return
            except Exception:
                logger.exception("document GET failed: %s", self.path)
                _send_json(self, {"error": "internal_error"}, status=500)
                return
            _send_json(self, {"error": "not_found"}, status=404)

        def do_PUT(self) -> None:  # noqa: N802
            parts = _segments(urlparse(self.path).path)
            if len(parts) != 4 or parts[:2] != ["v1", "docs"]:
                _send_json(self, {"error": "not_found"}, status=404)
                return
            if read_only:
                self._denied()
                return
            body = self._read_json()
            if body is None:
                return
            data = body.get("data")
            if not isinstance(data, dict):
                _send_json(self, {"error": "invalid_data"}, status=400)
                return
            merge = body.get("merge", True) is not False
            try:
                update_time = database.set(parts[2], parts[3], data, merge=merge)
            except Exception:
                logger.exception("document PUT failed: %s", self.path)
                _send_json(self, {"error": "internal_error"}, status=500)
                return
            _send_json(self, {"doc_id": parts[3], "update_time": update_time})

        def do_POST(self) -> None:  # noqa: N802
            parts = _segments(urlparse(self.path).path)
            is_add = len(parts) == 3 and parts[:2] == ["v1", "docs"]
            is_batch = parts == ["v1", "batch"]
            if not is_add and not is_batch:
                _send_json(self, {"error": "not_found"}, status=404)
                return
            if read_only:
                self._denied()
                return
            body = self._read_json()
            if body is None:
                return
            if is_add:
                data = body.get("data")
                if not isinstance(data, dict):
                    _send_json(self, {"error": "invalid_data"}, status=400)
                    return
                try:
                    doc_id, update_time = database.add(parts[2], data)
                except Exception:
                    logger.exception("document add failed: %s", self.path)
                    _send_json(self, {"error": "internal_error"}, status=500)
                    return
                _send_json(self, {"doc_id": doc_id, "update_time": update_time})
                return
            writes = _normalize_writes(body.get("writes"))
            if writes is None:
                _send_json(self, {"error": "invalid_writes"}, status=400)
                return
            if len(writes) > MAX_BATCH_WRITES:
                _send_json(self, {"error": "too_many_writes"}, status=413)
                return
            try:
                update_time = database.batch_set(writes)
            except Exception:
                logger.exception("batch write failed")
                _send_json(self, {"error": "internal_error"}, status=500)
                return
            _send_json(self, {"count": len(writes), "update_time": update_time})

    return DocumentHandler


def run_document_server(
    host: str,
    port: int,
    *,
    db_path: Path | None = None,
    read_only: bool = False,
    mdns: bool = True,
    stop_event: threading.Event | None = None,
) -> None:
    database = DocumentDatabase(db_path or db.DEFAULT_DOCUMENTS_DB_PATH)
    handler = build_document_handler(database, read_only=read_only)

    class Server(ThreadingHTTPServer):
        address_family = socket.AF_INET6 if ":" in host else socket.AF_INET
        daemon_threads = True

        def server_bind(self) -> None:
            if self.address_family == socket.AF_INET6:
                with contextlib.suppress(OSError):
                    self.socket.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
            super().server_bind()

    server = Server((host, port), handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    logger.info("document service listening on %s:%s (read_only=%s)", host, port, read_only)
    advertisement = advertise_mdns(port=port) if mdns else None
    stop = stop_event or threading.Event()
    try:
        stop.wait()
    finally:
        server.shutdown()
        server.server_close()
        database.close()
        if advertisement is not None:
            try:
                advertisement.close()
            except Exception:
                logger.warning("failed to withdraw mDNS advertisement", exc_info=True)
