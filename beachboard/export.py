from __future__ import annotations

import csv
import datetime as dt
import io
from collections.abc import Iterable
from decimal import Decimal
from pathlib import Path
from typing import Any

from .ledger import CASH, LedgerEntry, format_amount
from .utils import parse_iso8601

SUMMARY_FILENAME = "accounting_summary.csv"
OPERATIONS_FILENAME = "operations_log.csv"


def _local_time(timestamp: str, tz: dt.tzinfo | None) -> dt.datetime | None:
    parsed = parse_iso8601(timestamp) if timestamp else None
    return parsed.astimezone(tz) if parsed is not None else None


def _writer(buffer: io.StringIO) -> Any:
    return csv.writer(buffer, lineterminator="\n")


def summary_csv(entries: Iterable[LedgerEntry], *, tz: dt.tzinfo | None = None) -> str:
    """Daily and monthly cash/card totals; refunds count negative."""
    daily: dict[dt.date, list[Decimal]] = {}
    monthly: dict[tuple[int, int], list[Decimal]] = {}
    for entry in entries:
        when = _local_time(entry.timestamp, tz)
        if when is None:
            continue
        slot = 0 if entry.method == CASH else 1
        for bucket in (
            daily.setdefault(when.date(), [Decimal(0), Decimal(0)]),
            monthly.setdefault((when.year, when.month), [Decimal(0), Decimal(0)]),
        ):
            bucket[slot] += entry.signed_total

    buffer = io.StringIO()
    writer = _writer(buffer)
    writer.writerow(["Daily summary"])
    writer.writerow(["Day", "Cash", "Card", "Total"])
    for day in sorted(daily):
        cash, card = daily[day]
        writer.writerow(
            [day.strftime("%d/%m/%Y"), format_amount(cash), format_amount(card), format_amount(cash + card)]
        )
    writer.writerow([])
    writer.writerow(["Monthly summary"])
    writer.writerow(["Month", "Cash", "Card", "Total"])
    for year, month in sorted(monthly):
        cash, card = monthly[(year, month)]
        writer.writerow(
            [f"{month:02d}/{year}", format_amount(cash), format_amount(card), format_amount(cash + card)]
        )
    return buffer.getvalue()


def operations_csv(operations: Iterable[dict[str, Any]], *, tz: dt.tzinfo | None = None) -> str:
    buffer = io.StringIO()
    writer = _writer(buffer)
    writer.writerow(["Date", "Time", "Sunbed", "Paid", "Refunded"])
    for operation in operations:
        when = _local_time(str(operation.get("timestamp") or ""), tz)
        writer.writerow(
            [
                when.strftime("%d/%m/%Y") if when else "",
                when.strftime("%H:%M") if when else "",
                operation.get("element_id") or "-",
                operation.get("paid") or "",
                operation.get("refunded") or "",
            ]
        )
    return buffer.getvalue()


def write_csv(path: Path, text: str) -> Path:
    target = path.expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8")
    return target
