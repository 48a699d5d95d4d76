from __future__ import annotations

import datetime as dt


def now_iso() -> str:
    return dt.datetime.now(dt.UTC).isoformat()


def compute_cursor(update_time: str, doc_id: str) -> str:
    return f"{update_time}|{doc_id}"


def parse_cursor(cursor: str | None) -> tuple[str, str] | None:
    if not cursor:
        return None
    if "|" not in cursor:
        return None
    update_time, doc_id = cursor.split("|", 1)
    if not update_time or not doc_id:
        return None
    return update_time, doc_id


def parse_iso8601(value: str) -> dt.datetime | None:
    raw = value.strip()
    if not raw:
        return None
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = dt.datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.UTC)
    return parsed.astimezone(dt.UTC)


def is_newer(candidate: str | None, existing: str | None) -> bool:
    """Last-write-wins comparison of two ISO timestamps.

    A missing or unparseable existing value always loses; a missing or
    unparseable candidate never wins.
    """
    candidate_dt = parse_iso8601(candidate) if candidate else None
    if candidate_dt is None:
        return False
    existing_dt = parse_iso8601(existing) if existing else None
    if existing_dt is None:
        return True
    return candidate_dt > existing_dt


class MonotonicClock:
    """Hands out strictly increasing UTC timestamps, even within one microsecond."""

    def __init__(self) -> None:
        self._last: dt.datetime | None = None

    def seed(self, value: str | None) -> None:
        parsed = parse_iso8601(value) if value else None
        if parsed is not None and (self._last is None or parsed > self._last):
            self._last = parsed

    def next_iso(self) -> str:
        now = dt.datetime.now(dt.UTC)
        if self._last is not None and now <= self._last:
            now = self._last + dt.timedelta(microseconds=1)
        self._last = now
        return now.isoformat(timespec="microseconds")
