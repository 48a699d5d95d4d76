from __future__ import annotations

from pathlib import Path

import pytest

from beachboard.elements import Element
from beachboard.errors import BeachBoardError, RemotePermissionError
from beachboard.layout import BoardLayout
from beachboard.remote import DocumentChange, MemoryDocumentStore
from beachboard.store import LocalStore
from beachboard.sync import SUBSCRIBED_COLLECTIONS, SyncCoordinator


@pytest.fixture
def remote() -> MemoryDocumentStore:
    return MemoryDocumentStore()


def _station(tmp_path: Path, name: str, remote: MemoryDocumentStore | None) -> SyncCoordinator:
    local = LocalStore(tmp_path / f"{name}.sqlite")
    return SyncCoordinator(local, BoardLayout(), remote)


def test_offline_mutation_is_local_and_queued(tmp_path: Path, remote: MemoryDocumentStore) -> None:
    station = _station(tmp_path, "a", remote)

    element = station.toggle("clon_1")

    assert element.step == 1
    assert station.element("clon_1").step == 1
    assert [item["doc_id"] for item in station.pending()] == ["clon_1"]
    assert remote.get("sunbeds", "clon_1") is None


def test_reconnect_replays_each_pending_document_once(
    tmp_path: Path, remote: MemoryDocumentStore
) -> None:
    station = _station(tmp_path, "a", remote)
    station.toggle("clon_5")
    station.toggle("clon_5")
    station.toggle("clon_5")
    station.set_step("circle_2", 2)
    station.set_customer_name("clon_7", "Ana")
    station.set_customer_name("clon_7", "Ana Maria")

    replayed = station.connect()

    assert replayed == 3
    for key in (("sunbeds", "clon_5"), ("circles", "circle_2"), ("sunbeds", "clon_7")):
        assert remote.write_log.count(key) == 1
    assert remote.get("sunbeds", "clon_7").data["customer_name"] == "Ana Maria"
    doc = remote.get("sunbeds", "clon_5")
    assert doc is not None and doc.data["step"] == 3
    assert station.pending() == []
    assert station.local.get("last_sync_time")
    assert station.subscription_count() == len(SUBSCRIBED_COLLECTIONS)


def test_pending_writes_survive_a_restart(tmp_path: Path, remote: MemoryDocumentStore) -> None:
    station = _station(tmp_path, "a", remote)
    station.set_customer_name("clon_8", "Pilar")
    station.local.close()

    restarted = _station(tmp_path, "a", remote)
    restarted.connect()

    doc = remote.get("sunbeds", "clon_8")
    assert doc is not None
    assert doc.data["customer_name"] == "Pilar"


def test_remote_change_applies_last_write_wins(tmp_path: Path) -> None:
    station = _station(tmp_path, "a", None)
    station.set_step("clon_1", 2)

    older = DocumentChange("modified", "sunbeds", "clon_1", {"step": 5}, "2000-01-01T00:00:00+00:00")
    newer = DocumentChange("modified", "sunbeds", "clon_1", {"step": "4"}, "2999-01-01T00:00:00+00:00")

    assert station.apply_remote_element(older) is False
    assert station.element("clon_1").step == 2
    assert station.apply_remote_element(newer) is True
    assert station.element("clon_1").step == 4
    assert station.element("clon_1").last_updated == "2999-01-01T00:00:00+00:00"
    assert station.pending() == []


def test_remote_change_for_unknown_local_record_is_applied(tmp_path: Path) -> None:
    station = _station(tmp_path, "a", None)
    change = DocumentChange(
        "added", "sunbeds", "clon_2", {"step": 1, "customer_name": "Rosa"}, "2000-01-01T00:00:00+00:00"
    )
    assert station.apply_remote_element(change) is True
    assert station.element("clon_2").customer_name == "Rosa"


def test_invalid_remote_payloads_are_skipped(tmp_path: Path) -> None:
    station = _station(tmp_path, "a", None)
    stamp = "2026-07-01T10:00:00+00:00"
    station.apply_changes(
        [
            DocumentChange("added", "sunbeds", "clon_1", {"step": "lots"}, stamp),
            DocumentChange("added", "sunbeds", "clon_999", {"step": 1}, stamp),
            DocumentChange("added", "circles", "circle_1", {"step": 5}, stamp),
            DocumentChange("added", "circles", "clon_3", {"step": 1}, stamp),
            DocumentChange("added", "sunbeds", "clon_4", {"step": 6}, stamp),
        ]
    )
    assert station.element("clon_1").step == 0
    assert station.element("circle_1").step == 0
    assert station.element("clon_3").step == 0
    assert station.element("clon_4").step == 6


def test_stations_converge_through_the_shared_store(
    tmp_path: Path, remote: MemoryDocumentStore
) -> None:
    station_a = _station(tmp_path, "a", remote)
    station_b = _station(tmp_path, "b", remote)
    station_a.connect()
    station_b.connect()
    seen: list[Element] = []
    station_b.add_listener(seen.append)

    station_a.toggle("clon_3")
    assert station_b.element("clon_3").step == 1
    assert [element.id for element in seen] == ["clon_3"]

    station_b.set_customer_name("clon_3", "Ana")
    assert station_a.element("clon_3").customer_name == "Ana"
    assert station_a.element("clon_3").step == 1

    station_a.clear("clon_3")
    assert station_b.element("clon_3").step == 0
    assert station_b.element("clon_3").customer_name is None


def test_late_joiner_receives_existing_state(tmp_path: Path, remote: MemoryDocumentStore) -> None:
    station_a = _station(tmp_path, "a", remote)
    station_a.connect()
    station_a.set_step("circle_4", 3)

    station_b = _station(tmp_path, "b", remote)
    station_b.connect()

    assert station_b.element("circle_4").step == 3


def test_flush_failure_goes_offline_and_keeps_pending(
    tmp_path: Path, remote: MemoryDocumentStore
) -> None:
    station = _station(tmp_path, "a", remote)
    lost: list[Exception] = []
    station.on_connection_lost = lost.append
    station.connect()
    remote.deny_writes = True

    station.toggle("clon_6")

    assert station.online is False
    assert len(lost) == 1
    assert isinstance(lost[0], RemotePermissionError)
    assert [item["doc_id"] for item in station.pending()] == ["clon_6"]


def test_lost_change_stream_marks_offline(tmp_path: Path, remote: MemoryDocumentStore) -> None:
    station = _station(tmp_path, "a", remote)
    lost: list[Exception] = []
    station.on_connection_lost = lost.append
    station.connect()

    remote.set_online(False)

    assert station.online is False
    assert len(lost) == 1
    assert station.subscription_count() == 0


def test_registered_handlers_receive_their_collection(tmp_path: Path, remote: MemoryDocumentStore) -> None:
    station = _station(tmp_path, "a", remote)
    received: list[DocumentChange] = []
    station.register_handler("payments", received.append)
    station.connect()

    remote.set("payments", "p1", {"total": "3.00"})

    assert [change.doc_id for change in received] == ["p1"]


def test_circles_do_not_take_customer_names(tmp_path: Path) -> None:
    station = _station(tmp_path, "a", None)
    with pytest.raises(BeachBoardError):
        station.set_customer_name("circle_1", "Ana")


def test_flushed_element_takes_the_server_timestamp(
    tmp_path: Path, remote: MemoryDocumentStore
) -> None:
    station = _station(tmp_path, "a", remote)
    station.connect()

    station.set_step("clon_2", 3)

    doc = remote.get("sunbeds", "clon_2")
    assert doc is not None
    assert station.element("clon_2").last_updated == doc.update_time


def test_station_with_fast_clock_still_follows_the_server(
    tmp_path: Path, remote: MemoryDocumentStore
) -> None:
    fast = _station(tmp_path, "fast", remote)
    other = _station(tmp_path, "other", remote)
    fast.connect()
    other.connect()
    fast._clock.seed("2999-01-01T00:00:00+00:00")

    fast.set_step("clon_1", 2)
    other.set_step("clon_1", 5)

    assert remote.get("sunbeds", "clon_1").data["step"] == 5
    assert other.element("clon_1").step == 5
    assert fast.element("clon_1").step == 5

    fast.toggle("clon_1")
    assert other.element("clon_1").step == 6


def test_unflushed_edit_keeps_its_local_stamp(tmp_path: Path, remote: MemoryDocumentStore) -> None:
    station = _station(tmp_path, "a", remote)

    stored = station.set_step("circle_3", 1)

    assert station.element("circle_3").last_updated == stored.last_updated
    assert station.pending()[0]["queued_at"] == stored.last_updated
