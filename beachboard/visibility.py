from __future__ import annotations

import logging
from typing import Any

from .layout import VISIBILITY_GROUPS, BoardLayout
from .remote.types import DocumentChange
from .store import VISIBILITY_PREFIX, LocalStore
from .sync.coordinator import VISIBILITY_COLLECTION, SyncCoordinator
from .utils import is_newer

logger = logging.getLogger(__name__)

VISIBILITY_DOC_ID = "current"
CIRCLES_KEY = "circles_visible"
UPDATED_KEY = "visibility_updated"
VISIBLE = "visible"
HIDDEN = "hidden"


class VisibilityBoard:
    """Show/hide flags for seat groups and the circles, shared across stations."""

    def __init__(self, local: LocalStore, coordinator: SyncCoordinator | None = None) -> None:
        self.local = local
        self.coordinator = coordinator

    def is_visible(self, group: str) -> bool:
        BoardLayout.group_members(group)
        return self.local.get(f"{VISIBILITY_PREFIX}{group}", VISIBLE) != HIDDEN

    def groups(self) -> dict[str, bool]:
        return {group: self.is_visible(group) for group in VISIBILITY_GROUPS}

    def circles_visible(self) -> bool:
        return self.local.get(CIRCLES_KEY, "true") != "false"

    def hidden_elements(self) -> set[str]:
        hidden: set[str] = set()
        for group, visible in self.groups().items():
            if not visible:
                hidden.update(VISIBILITY_GROUPS[group])
        return hidden

    def set_group(self, group: str, visible: bool) -> bool:
        BoardLayout.group_members(group)
        self.local.set(f"{VISIBILITY_PREFIX}{group}", VISIBLE if visible else HIDDEN)
        self._mirror()
        return visible

    def toggle(self, group: str) -> bool:
        return self.set_group(group, not self.is_visible(group))

    def set_circles(self, visible: bool) -> bool:
        self.local.set(CIRCLES_KEY, "true" if visible else "false")
        self._mirror()
        return visible

    def toggle_circles(self) -> bool:
        return self.set_circles(not self.circles_visible())

    def document(self) -> dict[str, Any]:
        return {"groups": self.groups(), "circles_visible": self.circles_visible()}

    def _mirror(self) -> None:
        if self.coordinator is not None:
            self.coordinator.enqueue(VISIBILITY_COLLECTION, VISIBILITY_DOC_ID, self.document())

    def handle_change(self, change: DocumentChange) -> None:
        if change.doc_id != VISIBILITY_DOC_ID:
            return
        if not is_newer(change.update_time, self.local.get(UPDATED_KEY)):
            return
        groups = change.data.get("groups")
        if isinstance(groups, dict):
            for group, visible in groups.items():
                if group not in VISIBILITY_GROUPS:
                    logger.warning("ignoring unknown visibility group %r", group)
                    continue
                self.local.set(f"{VISIBILITY_PREFIX}{group}", VISIBLE if visible else HIDDEN)
        if "circles_visible" in change.data:
            self.local.set(CIRCLES_KEY, "true" if change.data["circles_visible"] else "false")
        self.local.set(UPDATED_KEY, change.update_time)
