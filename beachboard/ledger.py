"""Cash/card ledger: payments with change, refunds as reversal entries, running totals."""

from __future__ import annotations

import datetime as dt
import logging
import threading
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any
from uuid import uuid4

from .errors import LedgerValidationError
from .remote.types import DocumentChange
from .store import LocalStore
from .sync.coordinator import PAYMENTS_COLLECTION, SyncCoordinator
from .utils import is_newer, now_iso, parse_iso8601

logger = logging.getLogger(__name__)

CASH = "cash"
CARD = "card"
METHODS = (CASH, CARD)
PAYMENT = "payment"
REFUND = "refund"

HISTORY_KEY = "ledger:history"
OPERATIONS_KEY = "ledger:operations"
SEEN_PREFIX = "ledger:seen:"
SINCE_KEY = "ledger:since"
TOTAL_KEYS = {CASH: "totals:cash", CARD: "totals:card"}

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def parse_amount(value: object, *, field: str = "amount") -> Decimal:
    if isinstance(value, bool) or value is None:
        raise LedgerValidationError(f"{field} must be a number")
    if isinstance(value, Decimal):
        amount = value
    else:
        text = str(value).strip().replace(",", ".")
        try:
            amount = Decimal(text)
        except InvalidOperation:
            raise LedgerValidationError(f"{field} must be a number: {value!r}") from None
    if not amount.is_finite():
        raise LedgerValidationError(f"{field} must be finite")
    if amount < 0:
        raise LedgerValidationError(f"{field} cannot be negative")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_method(value: object) -> str:
    method = str(value or "").strip().lower()
    if method not in METHODS:
        raise LedgerValidationError(f"payment method must be one of {', '.join(METHODS)}")
    return method


def format_amount(amount: Decimal) -> str:
    return f"{amount.quantize(CENT, rounding=ROUND_HALF_UP):.2f}"


def display_time(timestamp: str, tz: dt.tzinfo | None = None) -> str:
    parsed = parse_iso8601(timestamp)
    if parsed is None:
        return timestamp
    return parsed.astimezone(tz).strftime("%d/%m/%Y %H:%M")


@dataclass(frozen=True)
class LedgerEntry:
    entry_id: str
    element_id: str
    total: Decimal
    received: Decimal
    change: Decimal
    method: str
    kind: str = PAYMENT
    timestamp: str = ""
    station_id: str = ""

    @property
    def signed_total(self) -> Decimal:
        return -self.total if self.kind == REFUND else self.total

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "element_id": self.element_id,
            "total": format_amount(self.total),
            "received": format_amount(self.received),
            "change": format_amount(self.change),
            "method": self.method,
            "kind": self.kind,
            "timestamp": self.timestamp,
            "station_id": self.station_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, entry_id: str | None = None) -> LedgerEntry:
        kind = str(data.get("kind") or PAYMENT)
        if kind not in (PAYMENT, REFUND):
            raise LedgerValidationError(f"unknown ledger entry kind: {kind}")
        total = parse_amount(data.get("total"), field="total")
        received = parse_amount(data.get("received", data.get("total")), field="received")
        change = parse_amount(data.get("change", "0"), field="change")
        if received < total or change != received - total:
            raise LedgerValidationError("entry does not satisfy change = received - total")
        resolved_id = entry_id or str(data.get("entry_id") or "")
        if not resolved_id:
            raise LedgerValidationError("entry has no id")
        return cls(
            entry_id=resolved_id,
            element_id=str(data.get("element_id") or "-"),
            total=total,
            received=received,
            change=change,
            method=parse_method(data.get("method")),
            kind=kind,
            timestamp=str(data.get("timestamp") or ""),
            station_id=str(data.get("station_id") or ""),
        )

    def history_line(self, tz: dt.tzinfo | None = None) -> str:
        when = display_time(self.timestamp, tz)
        if self.kind == REFUND:
            return (
                f"Refund Sunbed {self.element_id} - Total: €{format_amount(self.total)}"
                f" - Refunded: €{format_amount(self.total)} - Method: {self.method} - {when}"
            )
        return (
            f"Sunbed {self.element_id} - Total: €{format_amount(self.total)}"
            f" - Received: €{format_amount(self.received)}"
            f" - Change: €{format_amount(self.change)} - Method: {self.method} - {when}"
        )


class Ledger:
    """Running totals and append-only history persisted in the local store.

    Entries recorded here are mirrored to the ``payments`` collection; entries
    from other stations arrive through ``handle_change`` and only touch the
    history and totals.
    """

    def __init__(
        self,
        local: LocalStore,
        coordinator: SyncCoordinator | None = None,
        *,
        station_id: str = "station",
    ) -> None:
        self.local = local
        self.coordinator = coordinator
        self.station_id = station_id
        self._lock = threading.RLock()

    def entries(self) -> list[LedgerEntry]:
        raw = self.local.get_json(HISTORY_KEY, [])
        entries: list[LedgerEntry] = []
        for item in raw if isinstance(raw, list) else []:
            try:
                entries.append(LedgerEntry.from_dict(item))
            except (LedgerValidationError, AttributeError) as exc:
                logger.warning("dropping unreadable ledger entry: %s", exc)
        return entries

    def operations(self) -> list[dict[str, Any]]:
        raw = self.local.get_json(OPERATIONS_KEY, [])
        return [item for item in raw if isinstance(item, dict)] if isinstance(raw, list) else []

    def _total(self, method: str) -> Decimal:
        raw = self.local.get(TOTAL_KEYS[method])
        if not raw:
            return ZERO
        try:
            return Decimal(raw).quantize(CENT)
        except InvalidOperation:
            logger.warning("resetting unreadable %s total %r", method, raw)
            return ZERO

    def totals(self) -> tuple[Decimal, Decimal, Decimal]:
        cash = self._total(CASH)
        card = self._total(CARD)
        return cash, card, cash + card

    def _seen(self, entry_id: str) -> bool:
        return self.local.get(f"{SEEN_PREFIX}{entry_id}") is not None

    def _append(self, entry: LedgerEntry, *, local_operation: bool) -> None:
        history = self.local.get_json(HISTORY_KEY, [])
        if not isinstance(history, list):
            history = []
        history.append(entry.to_dict())
        self.local.set_json(HISTORY_KEY, history)
        total_key = TOTAL_KEYS[entry.method]
        self.local.set(total_key, format_amount(self._total(entry.method) + entry.signed_total))
        # One key per entry keeps the duplicate check a single lookup.
        self.local.set(f"{SEEN_PREFIX}{entry.entry_id}", entry.timestamp)
        if local_operation:
            operations = self.operations()
            operations.append(
                {
                    "entry_id": entry.entry_id,
                    "timestamp": entry.timestamp,
                    "element_id": entry.element_id,
                    "paid": format_amount(entry.total) if entry.kind == PAYMENT else "",
                    "refunded": format_amount(entry.total) if entry.kind == REFUND else "",
                }
            )
            self.local.set_json(OPERATIONS_KEY, operations)

    def _record(self, entry: LedgerEntry) -> LedgerEntry:
        with self._lock:
            self._append(entry, local_operation=True)
        if self.coordinator is not None:
            self.coordinator.enqueue(PAYMENTS_COLLECTION, entry.entry_id, entry.to_dict())
        logger.info("recorded %s %s for %s", entry.kind, format_amount(entry.total), entry.element_id)
        return entry

    def record_payment(
        self,
        element_id: str,
        total: object,
        received: object | None = None,
        method: str = CASH,
    ) -> LedgerEntry:
        amount = parse_amount(total, field="total")
        paid = amount if received is None else parse_amount(received, field="received")
        if paid < amount:
            raise LedgerValidationError("received amount is insufficient")
        entry = LedgerEntry(
            entry_id=uuid4().hex,
            element_id=(element_id or "").strip() or "-",
            total=amount,
            received=paid,
            change=paid - amount,
            method=parse_method(method),
            kind=PAYMENT,
            timestamp=now_iso(),
            station_id=self.station_id,
        )
        return self._record(entry)

    def record_refund(self, element_id: str, total: object, method: str = CASH) -> LedgerEntry:
        amount = parse_amount(total, field="total")
        entry = LedgerEntry(
            entry_id=uuid4().hex,
            element_id=(element_id or "").strip() or "-",
            total=amount,
            received=amount,
            change=ZERO,
            method=parse_method(method),
            kind=REFUND,
            timestamp=now_iso(),
            station_id=self.station_id,
        )
        return self._record(entry)

    def apply_remote_entry(self, entry_id: str, data: dict[str, Any]) -> bool:
        entry = LedgerEntry.from_dict(data, entry_id=entry_id)
        with self._lock:
            if self._seen(entry.entry_id):
                return False
            since = self.local.get(SINCE_KEY)
            if since and not is_newer(entry.timestamp, since):
                return False
            self._append(entry, local_operation=False)
        logger.debug("applied remote %s %s from %s", entry.kind, entry.entry_id, entry.station_id)
        return True

    def handle_change(self, change: DocumentChange) -> None:
        self.apply_remote_entry(change.doc_id, change.data)

    def history_lines(self, tz: dt.tzinfo | None = None) -> list[str]:
        return [entry.history_line(tz) for entry in reversed(self.entries())]

    def reset(self, *, clear_operations: bool = False) -> None:
        """Zero the totals and clear the history; the operations log survives unless asked."""
        with self._lock:
            for key in (HISTORY_KEY, *TOTAL_KEYS.values(), *self.local.keys(SEEN_PREFIX)):
                self.local.remove(key)
            if clear_operations:
                self.local.remove(OPERATIONS_KEY)
            self.local.set(SINCE_KEY, now_iso())
