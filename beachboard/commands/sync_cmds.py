from __future__ import annotations

import threading
import time
from pathlib import Path

from rich import print

from beachboard.config import get_config_path
from beachboard.elements import Element
from beachboard.errors import RemoteError

from .common import fail, format_status_line, mdns_runtime_status


def status_cmd(*, open_board, db_path: str | None) -> None:
    """Show connection status, pending writes and the last sync."""

    with open_board(db_path, connect=False) as board:
        status = board.status()
    connection = status["connection"]
    print(format_status_line(status))
    print(f"- Station: {status['station_id']}")
    print(f"- Config: {get_config_path()}")
    print(f"- Remote: {status['remote'] or 'offline-only'}")
    print(f"- Pending writes: {status['pending']}")
    print(f"- Last sync: {status['last_sync_time'] or 'never'}")
    print(f"- Last check: {connection.last_check or 'never'}")
    if connection.latency_ms is not None:
        print(f"- Latency: {connection.latency_ms:.0f}ms")
    if connection.last_error:
        print(f"- Last error ({connection.error_kind}): {connection.last_error}")
    if connection.needs_manual_retry:
        print("[yellow]- Automatic retries stopped; run `beachboard probe`[/yellow]")


def probe_cmd(*, open_board, db_path: str | None, remote: str | None) -> None:
    """Reset the retry counter and probe the remote store now."""

    with open_board(db_path, remote, connect=False) as board:
        if board.monitor is None:
            print("[yellow]No remote configured (offline-only station)[/yellow]")
            return
        ok = board.retry()
        status = board.status()
    connection = status["connection"]
    if ok:
        print(f"[green]Remote reachable[/green] ({connection.latency_ms:.0f}ms)")
        return
    if connection.error_kind == "permission_denied":
        print(f"[red]Permission denied[/red]: {connection.last_error}")
    else:
        print(f"[red]Remote unreachable[/red]: {connection.last_error}")
    raise fail(RemoteError(connection.last_error or "probe failed"))


def sync_cmd(*, open_board, db_path: str | None, remote: str | None) -> None:
    """Replay pending writes and pull remote changes once."""

    with open_board(db_path, remote, connect=False) as board:
        if board.monitor is None:
            print("[yellow]No remote configured (offline-only station)[/yellow]")
            return
        before = board.local.pending_count()
        ok = board.connect()
        remaining = board.local.pending_count()
        status = board.status()
    if not ok:
        raise fail(RemoteError(status["connection"].last_error or "remote unreachable"))
    print(f"[green]Synced[/green]: {before - remaining} pending writes replayed, {remaining} left")


def watch_cmd(*, open_board, db_path: str | None, remote: str | None, duration_s: float) -> None:
    """Run a live station: keep the connection up and print element changes."""

    def _show(element: Element) -> None:
        name = f" ({element.customer_name})" if element.customer_name else ""
        print(f"{element.id} -> step {element.step}{name}")

    with open_board(db_path, remote, connect=False) as board:
        if board.monitor is None:
            raise fail(RemoteError("watch needs a remote (set remote_url)"))
        board.coordinator.add_listener(_show)
        board.start()
        print(format_status_line(board.status()))
        stop = threading.Event()
        deadline = time.monotonic() + duration_s if duration_s > 0 else None
        try:
            while not stop.wait(1.0):
                if deadline is not None and time.monotonic() >= deadline:
                    break
        except KeyboardInterrupt:
            print("[dim]stopping[/dim]")
        print(format_status_line(board.status()))


def serve_cmd(
    *,
    run_document_server,
    load_config,
    host: str | None,
    port: int | None,
    db_path: str | None,
    read_only: bool,
    mdns: bool | None,
) -> None:
    """Run the board document service."""

    config = load_config()
    resolved_host = host or config.serve_host
    resolved_port = port or config.serve_port
    use_mdns = config.serve_mdns if mdns is None else mdns
    enabled, detail = mdns_runtime_status(use_mdns)
    print(f"[green]Serving board documents on {resolved_host}:{resolved_port}[/green]")
    print(f"- mDNS: {detail}")
    if read_only:
        print("- Mode: read-only (writes answer 403)")
    try:
        run_document_server(
            resolved_host,
            resolved_port,
            db_path=Path(db_path) if db_path else None,
            read_only=read_only,
            mdns=enabled,
        )
    except OSError as exc:
        raise fail(exc) from exc
    except KeyboardInterrupt:
        print("[dim]stopped[/dim]")
