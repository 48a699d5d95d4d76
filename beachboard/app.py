from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from .config import BeachBoardConfig, load_config
from .elements import ElementKind
from .layout import BoardLayout
from .ledger import Ledger
from .remote import build_remote
from .remote.types import RemoteStore
from .store import ConnectionStatus, LocalStore
from .sync import PAYMENTS_COLLECTION, VISIBILITY_COLLECTION, ConnectionMonitor, SyncCoordinator
from .visibility import VisibilityBoard

logger = logging.getLogger(__name__)

COMMENTS_KEY = "comments"


class BoardApp:
    """One station: local store, remote store, sync, ledger and connection monitor.

    ``start()`` probes the remote store and, once reachable, replays pending
    writes and subscribes. ``close()`` tears everything down again.
    """

    def __init__(
        self,
        config: BeachBoardConfig | None = None,
        *,
        remote: RemoteStore | None = None,
        local: LocalStore | None = None,
    ) -> None:
        self.config = config or load_config()
        self.layout = BoardLayout(self.config.circle_count)
        self.local = local or LocalStore(Path(self.config.db_path))
        self.remote = remote if remote is not None else build_remote(self.config)
        self.coordinator = SyncCoordinator(self.local, self.layout, self.remote)
        self.ledger = Ledger(self.local, self.coordinator, station_id=self.config.station_id)
        self.visibility = VisibilityBoard(self.local, self.coordinator)
        self.coordinator.register_handler(PAYMENTS_COLLECTION, self.ledger.handle_change)
        self.coordinator.register_handler(VISIBILITY_COLLECTION, self.visibility.handle_change)
        self.monitor: ConnectionMonitor | None = None
        if self.remote is not None:
            self.monitor = ConnectionMonitor(
                self.remote,
                local=self.local,
                base_s=self.config.backoff_base_s,
                max_s=self.config.backoff_max_s,
                max_attempts=self.config.max_attempts,
                probe_interval_s=self.config.probe_interval_s,
                timeout_s=self.config.remote_timeout_s,
                on_reconnect=self._on_reconnect,
                on_disconnect=self._on_disconnect,
            )
            self.coordinator.on_connection_lost = self.monitor.record_failure

    def __enter__(self) -> BoardApp:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _on_reconnect(self) -> None:
        replayed = self.coordinator.connect()
        if replayed:
            logger.info("replayed %d pending writes", replayed)

    def _on_disconnect(self, exc: Exception) -> None:
        self.coordinator.disconnect()

    def connect(self) -> bool:
        """Probe once; a reachable remote triggers replay and subscription."""
        if self.monitor is None:
            return False
        return self.monitor.probe()

    def start(self, *, background: bool = True) -> bool:
        if self.monitor is None:
            return False
        if background:
            self.monitor.start()
            return self.coordinator.online
        return self.monitor.probe()

    def retry(self) -> bool:
        if self.monitor is None:
            return False
        return self.monitor.retry()

    def close(self) -> None:
        if self.monitor is not None:
            self.monitor.stop()
        self.coordinator.disconnect()
        if self.remote is not None:
            self.remote.close()
        self.local.close()

    def status(self) -> dict[str, Any]:
        connection = self.monitor.status if self.monitor is not None else None
        if connection is None or connection.last_check is None:
            connection = self.local.get_connection_state() or ConnectionStatus()
        return {
            "station_id": self.config.station_id,
            "remote": self.config.remote_url or None,
            "online": self.coordinator.online,
            "pending": self.local.pending_count(),
            "last_sync_time": self.local.get("last_sync_time"),
            "connection": connection,
        }

    # comments are station-local notes

    def comments(self) -> str:
        return self.local.get(COMMENTS_KEY, "") or ""

    def set_comments(self, text: str) -> None:
        self.local.set(COMMENTS_KEY, text)

    def reset_day(self) -> dict[str, int]:
        """Start a new day: clear every step, the ledger and notes; keep customer names."""
        cleared = 0
        for kind in ElementKind:
            for element in self.coordinator.elements(kind):
                if element.step:
                    self.coordinator.set_step(element.id, 0)
                    cleared += 1
        removed = self.local.reset_except_customers()
        self.ledger.reset(clear_operations=True)
        logger.info("new day: cleared %d elements, dropped %d keys", cleared, removed)
        return {"cleared": cleared, "removed": removed}
