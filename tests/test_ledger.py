from __future__ import annotations

import datetime as dt
from decimal import Decimal
from pathlib import Path

import pytest

from beachboard.errors import LedgerValidationError
from beachboard.layout import BoardLayout
from beachboard.ledger import Ledger, LedgerEntry, parse_amount
from beachboard.remote import MemoryDocumentStore
from beachboard.store import LocalStore
from beachboard.sync import PAYMENTS_COLLECTION, SyncCoordinator


@pytest.fixture
def ledger(tmp_path: Path):
    local = LocalStore(tmp_path / "board.sqlite")
    yield Ledger(local, station_id="kiosk")
    local.close()


def test_payment_computes_change_and_updates_totals(ledger: Ledger) -> None:
    entry = ledger.record_payment("clon_1", "20", "50", "cash")

    assert entry.change == Decimal("30.00")
    assert entry.received - entry.total == entry.change
    assert ledger.totals() == (Decimal("20.00"), Decimal("0.00"), Decimal("20.00"))
    assert len(ledger.entries()) == 1
    assert ledger.operations()[0]["paid"] == "20.00"


def test_card_payment_defaults_received_to_total(ledger: Ledger) -> None:
    entry = ledger.record_payment("clon_2", "12,5", method="card")
    assert entry.total == Decimal("12.50")
    assert entry.change == Decimal("0.00")
    assert ledger.totals()[1] == Decimal("12.50")


def test_insufficient_payment_is_rejected_without_side_effects(ledger: Ledger) -> None:
    with pytest.raises(LedgerValidationError, match="insufficient"):
        ledger.record_payment("clon_1", "20", "10", "cash")
    assert ledger.entries() == []
    assert ledger.totals()[2] == Decimal("0.00")


@pytest.mark.parametrize("value", ["abc", "-5", "inf", "NaN", None, True, ""])
def test_bad_amounts_are_rejected(value: object) -> None:
    with pytest.raises(LedgerValidationError):
        parse_amount(value)


def test_unknown_method_is_rejected(ledger: Ledger) -> None:
    with pytest.raises(LedgerValidationError, match="payment method"):
        ledger.record_payment("clon_1", "5", "5", "cheque")


def test_refund_appends_reversal_and_subtracts(ledger: Ledger) -> None:
    ledger.record_payment("clon_1", "30", "30", "cash")
    refund = ledger.record_refund("clon_1", "10", "cash")

    assert refund.kind == "refund"
    assert refund.change == Decimal("0.00")
    assert [entry.kind for entry in ledger.entries()] == ["payment", "refund"]
    assert ledger.totals()[0] == Decimal("20.00")
    assert ledger.operations()[1]["refunded"] == "10.00"
    assert ledger.operations()[1]["paid"] == ""


def test_history_lines_newest_first(ledger: Ledger) -> None:
    ledger.record_payment("clon_1", "20", "50", "cash")
    ledger.record_payment("clon_2", "5", "5", "card")

    lines = ledger.history_lines(tz=dt.UTC)

    assert lines[0].startswith("Sunbed clon_2 - Total: €5.00 - Received: €5.00 - Change: €0.00")
    assert lines[1].startswith(
        "Sunbed clon_1 - Total: €20.00 - Received: €50.00 - Change: €30.00 - Method: cash - "
    )
    assert lines[1][-16:-6].count("/") == 2


def test_reset_keeps_operations_log(ledger: Ledger) -> None:
    ledger.record_payment("clon_1", "20", "20", "cash")
    ledger.reset()

    assert ledger.entries() == []
    assert ledger.totals()[2] == Decimal("0.00")
    assert len(ledger.operations()) == 1

    ledger.reset(clear_operations=True)
    assert ledger.operations() == []


def test_remote_entries_are_idempotent(ledger: Ledger) -> None:
    data = {
        "total": "8.00",
        "received": "10.00",
        "change": "2.00",
        "method": "cash",
        "element_id": "clon_9",
        "timestamp": "2026-07-01T10:00:00+00:00",
    }
    assert ledger.apply_remote_entry("remote-1", data) is True
    assert ledger.apply_remote_entry("remote-1", data) is False
    assert ledger.totals()[0] == Decimal("8.00")
    assert ledger.operations() == []


def test_seen_entries_survive_a_restart_and_clear_on_reset(tmp_path: Path) -> None:
    local = LocalStore(tmp_path / "board.sqlite")
    first = Ledger(local, station_id="kiosk")
    for index in range(50):
        data = {
            "total": "1.00",
            "received": "1.00",
            "change": "0.00",
            "method": "card",
            "timestamp": f"2026-07-01T10:{index:02d}:00+00:00",
        }
        assert first.apply_remote_entry(f"remote-{index}", data) is True
    own = first.record_payment("clon_2", "4", method="card")

    restarted = Ledger(local, station_id="kiosk")
    assert restarted.apply_remote_entry("remote-7", {"total": "1.00", "method": "card"}) is False
    assert restarted.apply_remote_entry(own.entry_id, own.to_dict()) is False
    assert restarted.totals()[1] == Decimal("54.00")
    assert len(local.keys("ledger:seen:")) == 51

    restarted.reset()
    assert local.keys("ledger:seen:") == []
    local.close()


def test_remote_entries_must_satisfy_the_change_invariant(ledger: Ledger) -> None:
    with pytest.raises(LedgerValidationError):
        ledger.apply_remote_entry(
            "bad", {"total": "8.00", "received": "5.00", "change": "-3.00", "method": "cash"}
        )


def test_remote_entries_from_before_a_reset_are_ignored(ledger: Ledger) -> None:
    ledger.reset()
    stale = {
        "total": "8.00",
        "received": "8.00",
        "change": "0.00",
        "method": "card",
        "timestamp": "2001-01-01T00:00:00+00:00",
    }
    assert ledger.apply_remote_entry("old", stale) is False


def test_entry_round_trips_through_a_document() -> None:
    entry = LedgerEntry(
        entry_id="e1",
        element_id="clon_1",
        total=Decimal("10.00"),
        received=Decimal("20.00"),
        change=Decimal("10.00"),
        method="cash",
        timestamp="2026-07-01T10:00:00+00:00",
    )
    assert LedgerEntry.from_dict(entry.to_dict()) == entry


def test_payments_are_shared_between_stations(tmp_path: Path) -> None:
    remote = MemoryDocumentStore()
    stations = []
    for name in ("a", "b"):
        local = LocalStore(tmp_path / f"{name}.sqlite")
        coordinator = SyncCoordinator(local, BoardLayout(), remote)
        station_ledger = Ledger(local, coordinator, station_id=name)
        coordinator.register_handler(PAYMENTS_COLLECTION, station_ledger.handle_change)
        coordinator.connect()
        stations.append(station_ledger)
    ledger_a, ledger_b = stations

    entry = ledger_a.record_payment("clon_4", "15", "20", "cash")

    assert remote.get("payments", entry.entry_id) is not None
    assert ledger_b.totals()[0] == Decimal("15.00")
    assert ledger_a.totals()[0] == Decimal("15.00")
    assert len(ledger_a.entries()) == 1
