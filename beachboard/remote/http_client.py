from __future__ import annotations

import json
from http.client import HTTPConnection, HTTPException, HTTPSConnection
from typing import Any
from urllib.parse import quote, urlparse

from ..errors import RemoteError, RemotePermissionError, RemoteUnavailableError


def build_base_url(address: str) -> str:
    trimmed = address.strip().rstrip("/")
    if not trimmed:
        return ""
    # "board.local:7447" parses with a scheme of "board.local"
    if urlparse(trimmed).scheme in ("http", "https"):
        return trimmed
    return f"http://{trimmed}"


def doc_path(collection: str, doc_id: str | None = None) -> str:
    path = f"/v1/docs/{quote(collection, safe='')}"
    if doc_id is not None:
        path = f"{path}/{quote(doc_id, safe='')}"
    return path


def _open_connection(url: str, timeout_s: float) -> tuple[HTTPConnection, str]:
    parsed = urlparse(url)
    if not parsed.hostname:
        raise ValueError(f"remote url has no host: {url!r}")
    secure = parsed.scheme == "https"
    connection_class = HTTPSConnection if secure else HTTPConnection
    conn = connection_class(parsed.hostname, parsed.port or (443 if secure else 80), timeout=timeout_s)
    target = parsed.path or "/"
    return conn, f"{target}?{parsed.query}" if parsed.query else target


def _decode_payload(raw: bytes) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        decoded = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        preview = raw[:200].decode("utf-8", errors="replace").strip()
        return {"error": "non_json_response", "reason": preview} if preview else {"error": "non_json_response"}
    if isinstance(decoded, dict):
        return decoded
    return {"error": "unexpected_json", "reason": type(decoded).__name__}


def request_json(
    method: str,
    url: str,
    *,
    body: dict[str, Any] | None = None,
    timeout_s: float = 5.0,
) -> tuple[int, dict[str, Any] | None]:
    """Send one JSON request; transport failures surface as RemoteUnavailableError."""
    conn, target = _open_connection(url, timeout_s)
    headers = {"Accept": "application/json"}
    encoded = None
    if body is not None:
        encoded = json.dumps(body, ensure_ascii=False).encode("utf-8")
        headers["Content-Type"] = "application/json"
        headers["Content-Length"] = str(len(encoded))
    try:
        conn.request(method, target, body=encoded, headers=headers)
        response = conn.getresponse()
        return int(response.status), _decode_payload(response.read())
    except (OSError, HTTPException) as exc:
        raise RemoteUnavailableError(f"{method} {url} failed: {exc}") from exc
    finally:
        conn.close()


def error_detail(payload: dict[str, Any] | None) -> str | None:
    if not payload or not isinstance(payload.get("error"), str):
        return None
    reason = payload.get("reason")
    return f"{payload['error']}:{reason}" if isinstance(reason, str) and reason else payload["error"]


def raise_for_status(status: int, payload: dict[str, Any] | None, action: str) -> None:
    """Map a non-2xx answer onto the remote error hierarchy."""
    if 200 <= status < 300:
        return
    detail = error_detail(payload)
    message = f"{action} failed ({status}: {detail})" if detail else f"{action} failed ({status})"
    if status in (401, 403):
        raise RemotePermissionError(message)
    if status in (502, 503, 504):
        raise RemoteUnavailableError(message)
    raise RemoteError(message)
