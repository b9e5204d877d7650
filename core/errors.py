"""Exceptions raised by the offline sync layer and the migration tools."""
from __future__ import annotations


class SyncError(Exception):
    """Base class for every error raised by this package."""


class InvalidOperationError(SyncError):
    """An operation was rejected before it entered the queue."""


class UnknownOperationError(SyncError):
    """The dispatcher has no mutation for an operation type."""

    def __init__(self, operation_type: object):
        super().__init__(f"Unknown operation type: {operation_type}")
        self.operation_type = operation_type


class TransientSyncError(SyncError):
    """The remote side rejected a mutation during a drain attempt."""


class NoConnectionError(SyncError):
    """A manual sync was requested while offline."""


class UpdateFailedError(SyncError):
    """An optimistic write was reverted because the server rejected it."""


class FoldError(SyncError):
    """An optimistic fold does not fit the value it is applied to."""


class ConvexError(SyncError):
    """A Convex function call failed or the deployment is unreachable."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class BackupError(SyncError):
    """A local storage backup could not be created or read."""


class BackupNotFoundError(BackupError):
    def __init__(self, backup_key: str):
        super().__init__(f"Backup not found: {backup_key}")
        self.backup_key = backup_key


__all__ = [
    "BackupError",
    "BackupNotFoundError",
    "ConvexError",
    "FoldError",
    "InvalidOperationError",
    "NoConnectionError",
    "SyncError",
    "TransientSyncError",
    "UnknownOperationError",
    "UpdateFailedError",
]
