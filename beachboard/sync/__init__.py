from .coordinator import (
    PAYMENTS_COLLECTION,
    SUBSCRIBED_COLLECTIONS,
    VISIBILITY_COLLECTION,
    SyncCoordinator,
)
from .monitor import ConnectionMonitor

__all__ = [
    "PAYMENTS_COLLECTION",
    "SUBSCRIBED_COLLECTIONS",
    "VISIBILITY_COLLECTION",
    "ConnectionMonitor",
    "SyncCoordinator",
]
