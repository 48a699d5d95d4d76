from __future__ import annotations

from rich import print
from rich.markup import escape

from beachboard.elements import Element, ElementKind
from beachboard.errors import BeachBoardError, RemoteError
from beachboard.layout import VISIBILITY_GROUPS

from .common import fail


def _describe(element: Element) -> str:
    label = f"{element.id}: step {element.step}/{element.kind.max_step}"
    if element.customer_name:
        label = f"{label} ({escape(element.customer_name)})"
    return label


def board_cmd(*, open_board, db_path: str | None, kind: str | None, active: bool) -> None:
    """List element states."""

    try:
        selected = ElementKind(kind) if kind else None
    except ValueError as exc:
        raise fail(ValueError(f"unknown kind: {kind} (use seat or circle)")) from exc
    with open_board(db_path, connect=False) as board:
        hidden = board.visibility.hidden_elements()
        elements = board.coordinator.elements(selected)
        shown = 0
        for element in elements:
            if active and not element.step:
                continue
            suffix = " [dim](hidden)[/dim]" if element.id in hidden else ""
            print(f"- {_describe(element)}{suffix}")
            shown += 1
        print(f"{shown} of {len(elements)} elements")


def mutate_cmd(*, open_board, db_path: str | None, action: str, element_id: str, value=None) -> None:
    with open_board(db_path) as board:
        try:
            if action == "toggle":
                element = board.coordinator.toggle(element_id)
            elif action == "set-step":
                element = board.coordinator.set_step(element_id, value)
            elif action == "name":
                element = board.coordinator.set_customer_name(element_id, value)
            else:
                element = board.coordinator.clear(element_id)
        except BeachBoardError as exc:
            raise fail(exc) from exc
        pending = board.local.pending_count()
    note = f" [yellow]({pending} pending)[/yellow]" if pending else ""
    print(f"[green]{_describe(element)}[/green]{note}")


def visibility_cmd(
    *, open_board, db_path: str | None, group: str | None, circles: bool
) -> None:
    """Toggle a seat group or the circles; list the flags when nothing is given."""

    with open_board(db_path, connect=bool(group or circles)) as board:
        try:
            if circles:
                visible = board.visibility.toggle_circles()
                print(f"circles: {'visible' if visible else 'hidden'}")
                return
            if group:
                visible = board.visibility.toggle(group)
                print(f"{group}: {'visible' if visible else 'hidden'}")
                return
        except KeyError as exc:
            raise fail(ValueError(f"unknown visibility group: {group}")) from exc
        for name, visible in board.visibility.groups().items():
            members = len(VISIBILITY_GROUPS[name])
            state = "visible" if visible else "[yellow]hidden[/yellow]"
            print(f"- {name} ({members} seats): {state}")
        print(f"- circles: {'visible' if board.visibility.circles_visible() else '[yellow]hidden[/yellow]'}")


def comments_cmd(*, open_board, db_path: str | None, text: str | None, clear: bool) -> None:
    with open_board(db_path, connect=False) as board:
        if clear:
            board.set_comments("")
            print("Comments cleared")
            return
        if text is not None:
            board.set_comments(text)
            print("Comments saved")
            return
        current = board.comments()
        print(current if current else "[dim]no comments[/dim]")


def reset_day_cmd(*, open_board, db_path: str | None, yes: bool) -> None:
    """Clear every step and the ledger; customer names and visibility stay."""

    if not yes:
        print("[yellow]This clears every seat, the ledger and the notes. Re-run with --yes.[/yellow]")
        return
    with open_board(db_path) as board:
        try:
            result = board.reset_day()
        except RemoteError as exc:
            raise fail(exc) from exc
    print(f"[green]New day started[/green]: {result['cleared']} elements cleared")
