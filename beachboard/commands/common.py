from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import typer
from rich import print
from rich.markup import escape

from beachboard.app import BoardApp
from beachboard.config import BeachBoardConfig, load_config, read_config_file
from beachboard.errors import BeachBoardError


def read_config_or_exit() -> dict[str, Any]:
    try:
        return read_config_file()
    except ValueError as exc:
        print(f"[red]Invalid config file: {exc}[/red]")
        raise typer.Exit(code=1) from exc


def resolve_config(db_path: str | None = None, remote: str | None = None) -> BeachBoardConfig:
    read_config_or_exit()
    config = load_config()
    if db_path:
        config.db_path = db_path
    if remote is not None:
        config.remote_url = remote
    return config


def fail(exc: Exception) -> typer.Exit:
    print(f"[red]{exc}[/red]")
    return typer.Exit(code=1)


@contextmanager
def open_board(
    db_path: str | None = None,
    remote: str | None = None,
    *,
    connect: bool = True,
) -> Iterator[BoardApp]:
    """Board for a one-shot command; one probe so pending writes flush when the remote is up."""
    config = resolve_config(db_path, remote)
    try:
        board = BoardApp(config)
    except BeachBoardError as exc:
        raise fail(exc) from exc
    try:
        if connect:
            board.connect()
        yield board
    finally:
        board.close()


def format_status_line(status: dict[str, Any]) -> str:
    connection = status["connection"]
    remote = status["remote"] or "offline-only"
    return (
        f"{escape('[' + connection.indicator + ']')} remote={remote} pending={status['pending']}"
        f" last_sync={status['last_sync_time'] or 'never'}"
    )


def mdns_runtime_status(enabled: bool) -> tuple[bool, str]:
    if not enabled:
        return False, "disabled"
    try:
        import zeroconf  # type: ignore[import-not-found]

        version = getattr(zeroconf, "__version__", "unknown")
        return True, f"enabled (zeroconf {version})"
    except ImportError:
        return False, "enabled but zeroconf missing"
