from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import replace

from ..errors import RemoteError
from ..remote.types import RemoteStore
from ..store import ConnectionStatus, LocalStore
from ..utils import now_iso

logger = logging.getLogger(__name__)


class ConnectionMonitor:
    """Probes the remote store and tracks connectivity with capped exponential backoff.

    After ``max_attempts`` consecutive failures the monitor stops probing on
    its own and waits for ``retry()``.
    """

    def __init__(
        self,
        remote: RemoteStore,
        *,
        local: LocalStore | None = None,
        base_s: float = 1.0,
        max_s: float = 30.0,
        max_attempts: int = 5,
        probe_interval_s: float = 30.0,
        timeout_s: float = 5.0,
        on_reconnect: Callable[[], None] | None = None,
        on_disconnect: Callable[[Exception], None] | None = None,
    ) -> None:
        self.remote = remote
        self.local = local
        self.base_s = base_s
        self.max_s = max_s
        self.max_attempts = max_attempts
        self.probe_interval_s = probe_interval_s
        self.timeout_s = timeout_s
        self.on_reconnect = on_reconnect
        self.on_disconnect = on_disconnect
        self._status = ConnectionStatus()
        self._lock = threading.RLock()
        self._probe_lock = threading.Lock()
        self._wake = threading.Event()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def status(self) -> ConnectionStatus:
        with self._lock:
            return replace(self._status)

    def backoff_delay(self, attempts: int) -> float:
        return min(self.base_s * 2**attempts, self.max_s)

    def next_delay(self) -> float | None:
        """Seconds until the next automatic probe; ``None`` when waiting for ``retry()``."""
        with self._lock:
            if self._status.connected:
                return self.probe_interval_s
            if self._status.needs_manual_retry:
                return None
            return self.backoff_delay(self._status.attempts)

    def probe(self) -> bool:
        with self._probe_lock:
            try:
                latency_ms = self.remote.probe(self.timeout_s)
            except RemoteError as exc:
                self.record_failure(exc)
                return False
            self._record_success(latency_ms)
            return True

    def _record_success(self, latency_ms: float) -> None:
        stamp = now_iso()
        with self._lock:
            was_connected = self._status.connected
            self._status = ConnectionStatus(
                connected=True,
                last_check=stamp,
                attempts=0,
                latency_ms=round(latency_ms, 1),
                last_ok_at=stamp,
            )
            self._persist()
        if not was_connected:
            logger.info("remote store reachable (%.0fms)", latency_ms)
            self._fire(self.on_reconnect)

    def record_failure(self, exc: Exception) -> None:
        kind = exc.kind if isinstance(exc, RemoteError) else "unavailable"
        with self._lock:
            attempts = self._status.attempts + 1
            self._status = replace(
                self._status,
                connected=False,
                last_check=now_iso(),
                attempts=attempts,
                last_error=str(exc),
                error_kind=kind,
                latency_ms=None,
                needs_manual_retry=attempts >= self.max_attempts,
            )
            self._persist()
            manual = self._status.needs_manual_retry
        if kind == "permission_denied":
            logger.error("remote store denied access: %s", exc)
        elif manual:
            logger.warning("remote store unreachable after %d attempts, waiting for retry", attempts)
        else:
            logger.info(
                "remote store unreachable (attempt %d, next probe in %.0fs): %s",
                attempts,
                self.backoff_delay(attempts),
                exc,
            )
        self._fire(self.on_disconnect, exc)
        self._wake.set()

    def retry(self) -> bool:
        with self._lock:
            self._status = replace(self._status, attempts=0, needs_manual_retry=False)
            self._persist()
        ok = self.probe()
        self._wake.set()
        return ok

    def _persist(self) -> None:
        if self.local is not None:
            self.local.set_connection_state(self._status)

    def _fire(self, callback: Callable[..., None] | None, *args: object) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("connection callback failed")

    def run(self, stop_event: threading.Event | None = None) -> None:
        stop = stop_event or self._stop
        self._safe_probe()
        while not stop.is_set():
            woke = self._wake.wait(self.next_delay())
            self._wake.clear()
            if stop.is_set():
                break
            if woke:
                # retry() or a reported failure already updated the status
                continue
            self._safe_probe()

    def _safe_probe(self) -> None:
        try:
            self.probe()
        except Exception:
            logger.exception("connection probe crashed")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self.run, args=(self._stop,), name="beachboard-monitor", daemon=True
        )
        self._thread.start()

    def stop(self, timeout_s: float = 2.0) -> None:
        self._stop.set()
        self._wake.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout_s)
        self._thread = None
