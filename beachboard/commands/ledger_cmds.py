from __future__ import annotations

from pathlib import Path

from rich import print

from beachboard.errors import LedgerValidationError
from beachboard.export import (
    OPERATIONS_FILENAME,
    SUMMARY_FILENAME,
    operations_csv,
    summary_csv,
    write_csv,
)
from beachboard.ledger import format_amount

from .common import fail


def pay_cmd(
    *,
    open_board,
    db_path: str | None,
    element_id: str,
    total: str,
    received: str | None,
    method: str,
) -> None:
    """Record a payment and print the change due."""

    with open_board(db_path) as board:
        try:
            entry = board.ledger.record_payment(element_id, total, received, method)
        except LedgerValidationError as exc:
            raise fail(exc) from exc
    print(f"[green]Change: €{format_amount(entry.change)}[/green]")
    print(entry.history_line())


def refund_cmd(
    *, open_board, db_path: str | None, element_id: str, total: str, method: str
) -> None:
    with open_board(db_path) as board:
        try:
            entry = board.ledger.record_refund(element_id, total, method)
        except LedgerValidationError as exc:
            raise fail(exc) from exc
    print(f"[yellow]Refund: €{format_amount(entry.total)}[/yellow]")


def totals_cmd(*, open_board, db_path: str | None) -> None:
    with open_board(db_path, connect=False) as board:
        cash, card, overall = board.ledger.totals()
    print(f"- Cash: €{format_amount(cash)}")
    print(f"- Card: €{format_amount(card)}")
    print(f"- Total: €{format_amount(overall)}")


def history_cmd(*, open_board, db_path: str | None, limit: int) -> None:
    with open_board(db_path, connect=False) as board:
        lines = board.ledger.history_lines()
    if not lines:
        print("[dim]No transactions[/dim]")
        return
    for line in lines[: max(limit, 0) or None]:
        print(line)


def reset_ledger_cmd(*, open_board, db_path: str | None, yes: bool) -> None:
    """Zero the totals and clear the history; the operations log is kept."""

    if not yes:
        print("[yellow]This zeroes the totals and clears the history. Re-run with --yes.[/yellow]")
        return
    with open_board(db_path, connect=False) as board:
        board.ledger.reset()
    print("[green]Ledger reset[/green]")


def _target(output: str | None, export_dir: str, default_name: str) -> Path:
    if output:
        return Path(output)
    return Path(export_dir).expanduser() / default_name


def export_cmd(*, open_board, db_path: str | None, output: str | None) -> None:
    """Write the daily and monthly summary CSV."""

    with open_board(db_path, connect=False) as board:
        text = summary_csv(board.ledger.entries())
        target = _target(output, board.config.export_dir, SUMMARY_FILENAME)
    try:
        path = write_csv(target, text)
    except OSError as exc:
        raise fail(exc) from exc
    print(f"[green]Wrote {path}[/green]")


def export_log_cmd(*, open_board, db_path: str | None, output: str | None) -> None:
    with open_board(db_path, connect=False) as board:
        text = operations_csv(board.ledger.operations())
        target = _target(output, board.config.export_dir, OPERATIONS_FILENAME)
    try:
        path = write_csv(target, text)
    except OSError as exc:
        raise fail(exc) from exc
    print(f"[green]Wrote {path}[/green]")
