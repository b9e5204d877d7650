"""Data models used by the SiteOps sync layer."""
from .operation import MUTATION_PATHS, Operation, OperationKind
from .queue_item import QueueItem, QueueStats, QueueStatus, SyncReport
from .storage_entry import StorageEntry

__all__ = [
    "MUTATION_PATHS",
    "Operation",
    "OperationKind",
    "QueueItem",
    "QueueStats",
    "QueueStatus",
    "StorageEntry",
    "SyncReport",
]
