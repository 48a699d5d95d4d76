from __future__ import annotations

import logging

import typer
from rich import print

from . import __version__
from .commands.board_cmds import (
    board_cmd,
    comments_cmd,
    mutate_cmd,
    reset_day_cmd,
    visibility_cmd,
)
from .commands.common import open_board
from .commands.ledger_cmds import (
    export_cmd,
    export_log_cmd,
    history_cmd,
    pay_cmd,
    refund_cmd,
    reset_ledger_cmd,
    totals_cmd,
)
from .commands.sync_cmds import probe_cmd, serve_cmd, status_cmd, sync_cmd, watch_cmd
from .config import load_config
from .remote.server import run_document_server

app = typer.Typer(help="beachboard: seat board and till for a beach concession")


@app.callback()
def _configure(
    log_level: str = typer.Option(
        None, "--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)"
    ),
) -> None:
    level_name = (log_level or load_config().log_level or "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("board")
def board(
    db_path: str = typer.Option(None, help="Path to SQLite database"),
    kind: str = typer.Option(None, help="Only seat or circle elements"),
    active: bool = typer.Option(False, "--active", help="Only elements with a step set"),
) -> None:
    """List seats and circles with their step and customer."""

    board_cmd(open_board=open_board, db_path=db_path, kind=kind, active=active)


@app.command("toggle")
def toggle(
    element_id: str = typer.Argument(..., help="Element id, e.g. clon_12 or circle_3"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Advance an element to its next colour step."""

    mutate_cmd(open_board=open_board, db_path=db_path, action="toggle", element_id=element_id)


@app.command("set-step")
def set_step(
    element_id: str = typer.Argument(..., help="Element id"),
    step: int = typer.Argument(..., help="Step (0 clears)"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Set an element's step directly."""

    mutate_cmd(
        open_board=open_board, db_path=db_path, action="set-step", element_id=element_id, value=step
    )


@app.command("name")
def name(
    element_id: str = typer.Argument(..., help="Seat id"),
    customer: str = typer.Argument("", help="Customer name; empty removes it"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Set or remove the customer name on a seat."""

    mutate_cmd(
        open_board=open_board, db_path=db_path, action="name", element_id=element_id, value=customer
    )


@app.command("clear")
def clear(
    element_id: str = typer.Argument(..., help="Element id"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Reset an element to step 0 and drop its customer name."""

    mutate_cmd(open_board=open_board, db_path=db_path, action="clear", element_id=element_id)


@app.command("pay")
def pay(
    element_id: str = typer.Argument(..., help="Seat the payment is for"),
    total: str = typer.Argument(..., help="Amount due"),
    received: str = typer.Option(None, help="Amount handed over (defaults to the total)"),
    method: str = typer.Option("cash", help="cash or card"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Record a payment and show the change."""

    pay_cmd(
        open_board=open_board,
        db_path=db_path,
        element_id=element_id,
        total=total,
        received=received,
        method=method,
    )


@app.command("refund")
def refund(
    element_id: str = typer.Argument(..., help="Seat the refund is for"),
    total: str = typer.Argument(..., help="Amount refunded"),
    method: str = typer.Option("cash", help="cash or card"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Record a refund as a reversal entry."""

    refund_cmd(
        open_board=open_board, db_path=db_path, element_id=element_id, total=total, method=method
    )


@app.command("totals")
def totals(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Show running cash, card and overall totals."""

    totals_cmd(open_board=open_board, db_path=db_path)


@app.command("history")
def history(
    db_path: str = typer.Option(None, help="Path to SQLite database"),
    limit: int = typer.Option(0, help="Show only the newest N entries"),
) -> None:
    """Show the transaction history, newest first."""

    history_cmd(open_board=open_board, db_path=db_path, limit=limit)


@app.command("reset-ledger")
def reset_ledger(
    db_path: str = typer.Option(None, help="Path to SQLite database"),
    yes: bool = typer.Option(False, "--yes", help="Confirm the reset"),
) -> None:
    """Zero the totals and clear the history."""

    reset_ledger_cmd(open_board=open_board, db_path=db_path, yes=yes)


@app.command("export")
def export(
    db_path: str = typer.Option(None, help="Path to SQLite database"),
    output: str = typer.Option(None, "--output", "-o", help="CSV file to write"),
) -> None:
    """Export the daily and monthly summary as CSV."""

    export_cmd(open_board=open_board, db_path=db_path, output=output)


@app.command("export-log")
def export_log(
    db_path: str = typer.Option(None, help="Path to SQLite database"),
    output: str = typer.Option(None, "--output", "-o", help="CSV file to write"),
) -> None:
    """Export the individual operations log as CSV."""

    export_log_cmd(open_board=open_board, db_path=db_path, output=output)


@app.command("visibility")
def visibility(
    group: str = typer.Argument(None, help="Group to toggle, e.g. row_3 or free_zone_1"),
    circles: bool = typer.Option(False, "--circles", help="Toggle the circles instead"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Toggle a seat group's visibility, or list all flags."""

    visibility_cmd(open_board=open_board, db_path=db_path, group=group, circles=circles)


@app.command("comments")
def comments(
    text: str = typer.Argument(None, help="New notes text"),
    clear: bool = typer.Option(False, "--clear", help="Remove the notes"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Show or replace the station notes."""

    comments_cmd(open_board=open_board, db_path=db_path, text=text, clear=clear)


@app.command("status")
def status(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Show connection status and pending writes."""

    status_cmd(open_board=open_board, db_path=db_path)


@app.command("probe")
def probe(
    db_path: str = typer.Option(None, help="Path to SQLite database"),
    remote: str = typer.Option(None, help="Remote URL override"),
) -> None:
    """Reset retries and probe the remote store."""

    probe_cmd(open_board=open_board, db_path=db_path, remote=remote)


@app.command("sync")
def sync(
    db_path: str = typer.Option(None, help="Path to SQLite database"),
    remote: str = typer.Option(None, help="Remote URL override"),
) -> None:
    """Replay pending writes and pull remote changes once."""

    sync_cmd(open_board=open_board, db_path=db_path, remote=remote)


@app.command("watch")
def watch(
    db_path: str = typer.Option(None, help="Path to SQLite database"),
    remote: str = typer.Option(None, help="Remote URL override"),
    duration_s: float = typer.Option(0.0, "--duration", help="Stop after N seconds (0 runs until Ctrl-C)"),
) -> None:
    """Run a live station that follows remote changes."""

    watch_cmd(open_board=open_board, db_path=db_path, remote=remote, duration_s=duration_s)


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, help="Host to bind"),
    port: int | None = typer.Option(None, help="Port to bind"),
    db_path: str = typer.Option(None, help="Path to the documents database"),
    read_only: bool = typer.Option(False, "--read-only", help="Reject all writes with 403"),
    mdns: bool | None = typer.Option(None, "--mdns/--no-mdns", help="Advertise over mDNS"),
) -> None:
    """Run the shared board document service."""

    serve_cmd(
        run_document_server=run_document_server,
        load_config=load_config,
        host=host,
        port=port,
        db_path=db_path,
        read_only=read_only,
        mdns=mdns,
    )


@app.command("reset-day")
def reset_day(
    db_path: str = typer.Option(None, help="Path to SQLite database"),
    yes: bool = typer.Option(False, "--yes", help="Confirm the reset"),
) -> None:
    """Start a new day: clear steps, ledger and notes, keep customer names."""

    reset_day_cmd(open_board=open_board, db_path=db_path, yes=yes)


def main() -> None:
    app()


@app.command("version")
def version() -> None:
    """Print version."""

    print(__version__)
