from __future__ import annotations

import datetime as dt
from decimal import Decimal
from pathlib import Path

from beachboard.export import operations_csv, summary_csv, write_csv
from beachboard.ledger import LedgerEntry


def _entry(entry_id: str, total: str, method: str, timestamp: str, kind: str = "payment") -> LedgerEntry:
    amount = Decimal(total)
    return LedgerEntry(
        entry_id=entry_id,
        element_id="clon_1",
        total=amount,
        received=amount,
        change=Decimal("0.00"),
        method=method,
        kind=kind,
        timestamp=timestamp,
    )


def test_summary_for_one_day() -> None:
    entries = [
        _entry("a", "10", "cash", "2026-07-14T10:00:00+00:00"),
        _entry("b", "5", "card", "2026-07-14T12:30:00+00:00"),
    ]

    text = summary_csv(entries, tz=dt.UTC)

    assert text == (
        "Daily summary\n"
        "Day,Cash,Card,Total\n"
        "14/07/2026,10.00,5.00,15.00\n"
        "\n"
        "Monthly summary\n"
        "Month,Cash,Card,Total\n"
        "07/2026,10.00,5.00,15.00\n"
    )


def test_summary_orders_days_and_subtracts_refunds() -> None:
    entries = [
        _entry("a", "20", "cash", "2026-08-02T09:00:00+00:00"),
        _entry("b", "7.5", "card", "2026-07-31T18:00:00+00:00"),
        _entry("c", "5", "cash", "2026-08-02T11:00:00+00:00", kind="refund"),
    ]

    lines = summary_csv(entries, tz=dt.UTC).splitlines()

    assert lines[2] == "31/07/2026,0.00,7.50,7.50"
    assert lines[3] == "02/08/2026,15.00,0.00,15.00"
    assert lines[-2] == "07/2026,0.00,7.50,7.50"
    assert lines[-1] == "08/2026,15.00,0.00,15.00"


def test_summary_with_no_entries_has_headers_only() -> None:
    assert summary_csv([]).splitlines() == [
        "Daily summary",
        "Day,Cash,Card,Total",
        "",
        "Monthly summary",
        "Month,Cash,Card,Total",
    ]


def test_operations_log() -> None:
    text = operations_csv(
        [
            {"timestamp": "2026-07-14T10:05:00+00:00", "element_id": "clon_3", "paid": "12.00", "refunded": ""},
            {"timestamp": "2026-07-14T11:00:00+00:00", "element_id": "clon_3", "paid": "", "refunded": "4.00"},
        ],
        tz=dt.UTC,
    )
    assert text.splitlines() == [
        "Date,Time,Sunbed,Paid,Refunded",
        "14/07/2026,10:05,clon_3,12.00,",
        "14/07/2026,11:00,clon_3,,4.00",
    ]


def test_write_csv_creates_parent_and_uses_utf8(tmp_path: Path) -> None:
    path = write_csv(tmp_path / "exports" / "summary.csv", "Day,Cash\n01/07/2026,€\n")
    assert path.read_bytes().decode("utf-8").endswith("€\n")
