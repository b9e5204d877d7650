"""Whole-storage snapshots kept inside the storage itself."""
from __future__ import annotations

import json
from datetime import datetime
from typing import Dict, List

from sqlalchemy.exc import SQLAlchemyError

from core.errors import BackupError, BackupNotFoundError
from datetime_utils import to_iso
from storage.local_storage import LocalStorage


def backup_key_for(prefix: str, moment: datetime) -> str:
    return f"{prefix}{to_iso(moment)}"


def list_backups(storage: LocalStorage, prefix: str) -> List[str]:
    """Return backup keys, newest first."""

    keys = [key for key in storage.keys() if key.startswith(prefix)]
    # keys embed an ISO timestamp, so lexical order is chronological
    keys.sort(reverse=True)
    return keys


def create_snapshot(storage: LocalStorage, prefix: str, moment: datetime) -> str:
    """Copy every non-backup key into one JSON blob and return its key."""

    snapshot: Dict[str, str] = {}
    for key in storage.keys():
        if key.startswith(prefix):
            continue
        value = storage.get(key)
        if value is not None:
            snapshot[key] = value

    backup_key = backup_key_for(prefix, moment)
    try:
        payload = json.dumps(snapshot, ensure_ascii=False, sort_keys=True)
        storage.set(backup_key, payload)
    except (TypeError, ValueError, SQLAlchemyError) as exc:
        raise BackupError(f"Backup failed: {exc}") from exc
    return backup_key


def read_snapshot(storage: LocalStorage, backup_key: str) -> Dict[str, str]:
    raw = storage.get(backup_key)
    if raw is None:
        raise BackupNotFoundError(backup_key)
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise BackupError(f"Backup {backup_key} is corrupted: {exc}") from exc
    if not isinstance(data, dict) or not all(isinstance(v, str) for v in data.values()):
        raise BackupError(f"Backup {backup_key} is corrupted: unexpected layout")
    return data


def restore_snapshot(storage: LocalStorage, backup_key: str, prefix: str) -> Dict[str, str]:
    """Replace all non-backup keys with the snapshot contents.

    The snapshot is read and validated before anything is removed.
    """

    snapshot = read_snapshot(storage, backup_key)
    for key in storage.keys():
        if not key.startswith(prefix):
            storage.remove(key)
    for key, value in snapshot.items():
        storage.set(key, value)
    return snapshot


def prune_snapshots(storage: LocalStorage, prefix: str, *, keep: int = 5) -> List[str]:
    """Delete all but the ``keep`` newest backups; return the removed keys."""

    removed = list_backups(storage, prefix)[max(keep, 0):]
    for key in removed:
        storage.remove(key)
    return removed


__all__ = [
    "backup_key_for",
    "create_snapshot",
    "list_backups",
    "prune_snapshots",
    "read_snapshot",
    "restore_snapshot",
]
