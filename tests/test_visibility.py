from __future__ import annotations

from pathlib import Path

import pytest

from beachboard.layout import BoardLayout
from beachboard.remote import DocumentChange, MemoryDocumentStore
from beachboard.store import LocalStore
from beachboard.sync import VISIBILITY_COLLECTION, SyncCoordinator
from beachboard.visibility import VisibilityBoard


@pytest.fixture
def local(tmp_path: Path):
    store = LocalStore(tmp_path / "board.sqlite")
    yield store
    store.close()


def test_groups_start_visible(local: LocalStore) -> None:
    board = VisibilityBoard(local)
    assert all(board.groups().values())
    assert board.circles_visible() is True
    assert board.hidden_elements() == set()


def test_toggle_hides_group_members(local: LocalStore) -> None:
    board = VisibilityBoard(local)
    assert board.toggle("row_8") is False
    assert board.hidden_elements() == {"clon_9", "clon_10", "clon_11", "clon_12"}
    assert board.toggle("row_8") is True


def test_unknown_group_is_rejected(local: LocalStore) -> None:
    with pytest.raises(KeyError):
        VisibilityBoard(local).toggle("row_99")


def test_circles_flag(local: LocalStore) -> None:
    board = VisibilityBoard(local)
    assert board.toggle_circles() is False
    assert board.document()["circles_visible"] is False


def test_remote_visibility_applies_newest_only(local: LocalStore) -> None:
    board = VisibilityBoard(local)
    newer = DocumentChange(
        type="modified",
        collection=VISIBILITY_COLLECTION,
        doc_id="current",
        data={"groups": {"seat_0": False, "row_77": False}, "circles_visible": False},
        update_time="2026-07-01T10:00:00.000002+00:00",
    )
    older = DocumentChange(
        type="modified",
        collection=VISIBILITY_COLLECTION,
        doc_id="current",
        data={"groups": {"seat_0": True}, "circles_visible": True},
        update_time="2026-07-01T10:00:00.000001+00:00",
    )

    board.handle_change(newer)
    board.handle_change(older)

    assert board.is_visible("seat_0") is False
    assert board.circles_visible() is False


def test_visibility_is_shared_between_stations(tmp_path: Path) -> None:
    remote = MemoryDocumentStore()
    boards = []
    for name in ("a", "b"):
        store = LocalStore(tmp_path / f"{name}.sqlite")
        coordinator = SyncCoordinator(store, BoardLayout(), remote)
        board = VisibilityBoard(store, coordinator)
        coordinator.register_handler(VISIBILITY_COLLECTION, board.handle_change)
        coordinator.connect()
        boards.append(board)

    boards[0].toggle("free_zone_2")

    assert boards[1].is_visible("free_zone_2") is False
    assert remote.get("visibility", "current") is not None
