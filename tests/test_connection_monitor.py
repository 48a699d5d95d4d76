from __future__ import annotations

import time
from pathlib import Path

from beachboard.remote import MemoryDocumentStore
from beachboard.store import LocalStore
from beachboard.sync import ConnectionMonitor


def _monitor(remote: MemoryDocumentStore, **kwargs) -> tuple[ConnectionMonitor, list, list]:
    reconnects: list[bool] = []
    disconnects: list[Exception] = []
    monitor = ConnectionMonitor(
        remote,
        on_reconnect=lambda: reconnects.append(True),
        on_disconnect=disconnects.append,
        **kwargs,
    )
    return monitor, reconnects, disconnects


def test_backoff_doubles_until_manual_retry_is_needed() -> None:
    remote = MemoryDocumentStore()
    remote.set_online(False)
    monitor, _reconnects, disconnects = _monitor(remote)

    delays = []
    for _ in range(5):
        assert monitor.probe() is False
        delays.append(monitor.next_delay())

    assert delays == [2.0, 4.0, 8.0, 16.0, None]
    status = monitor.status
    assert status.attempts == 5
    assert status.needs_manual_retry is True
    assert status.error_kind == "unavailable"
    assert status.indicator == "X"
    assert len(disconnects) == 5


def test_backoff_delay_is_capped() -> None:
    monitor, _r, _d = _monitor(MemoryDocumentStore(), base_s=1.0, max_s=30.0)
    assert monitor.backoff_delay(0) == 1.0
    assert monitor.backoff_delay(4) == 16.0
    assert monitor.backoff_delay(5) == 30.0
    assert monitor.backoff_delay(12) == 30.0


def test_retry_resets_attempts_and_reconnects() -> None:
    remote = MemoryDocumentStore()
    remote.set_online(False)
    monitor, reconnects, _d = _monitor(remote, max_attempts=2)
    monitor.probe()
    monitor.probe()
    assert monitor.status.needs_manual_retry is True

    remote.set_online(True)
    assert monitor.retry() is True

    status = monitor.status
    assert status.connected is True
    assert status.attempts == 0
    assert status.needs_manual_retry is False
    assert status.last_error is None
    assert reconnects == [True]
    assert monitor.next_delay() == monitor.probe_interval_s


def test_only_transitions_fire_reconnect() -> None:
    monitor, reconnects, _d = _monitor(MemoryDocumentStore())
    assert monitor.probe() is True
    assert monitor.probe() is True
    assert reconnects == [True]


def test_permission_failures_are_reported_distinctly() -> None:
    remote = MemoryDocumentStore()
    remote.deny_writes = True
    monitor, _r, disconnects = _monitor(remote)

    assert monitor.probe() is False

    status = monitor.status
    assert status.error_kind == "permission_denied"
    assert status.indicator == "!"
    assert disconnects and disconnects[0].kind == "permission_denied"


def test_status_is_persisted(tmp_path: Path) -> None:
    local = LocalStore(tmp_path / "board.sqlite")
    try:
        monitor, _r, _d = _monitor(MemoryDocumentStore(), local=local)
        monitor.probe()
        stored = local.get_connection_state()
        assert stored is not None
        assert stored.connected is True
        assert stored.last_ok_at
    finally:
        local.close()


def test_callback_errors_do_not_break_probing() -> None:
    def _boom() -> None:
        raise RuntimeError("listener failed")

    monitor = ConnectionMonitor(MemoryDocumentStore(), on_reconnect=_boom)
    assert monitor.probe() is True
    assert monitor.status.connected is True


def test_background_loop_probes_and_stops() -> None:
    remote = MemoryDocumentStore()
    monitor, reconnects, _d = _monitor(remote, probe_interval_s=0.05)
    monitor.start()
    try:
        deadline = time.monotonic() + 3.0
        while not reconnects and time.monotonic() < deadline:
            time.sleep(0.02)
        assert reconnects == [True]
        probes_before = remote.write_log.count(("connection_test", "probe"))
        time.sleep(0.3)
        assert remote.write_log.count(("connection_test", "probe")) > probes_before
    finally:
        monitor.stop()
    assert monitor._thread is None


def test_reported_failure_counts_as_an_attempt() -> None:
    monitor, _r, disconnects = _monitor(MemoryDocumentStore())
    monitor.probe()
    monitor.record_failure(RuntimeError("stream closed"))
    status = monitor.status
    assert status.connected is False
    assert status.attempts == 1
    assert status.error_kind == "unavailable"
    assert len(disconnects) == 1
