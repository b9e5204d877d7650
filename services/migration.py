"""Move records kept in local storage into Convex.

The manager snapshots local storage before anything else, submits records
one at a time and stops at the first failure. A stopped migration can be
undone with :meth:`MigrationManager.rollback_migration` and run again.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from core.errors import BackupError
from core.logs import ensure_logger
from core.settings import KEYS, MIGRATION, MIGRATION_LOG_PATH
from datetime_utils import to_iso, utc_now
from services.notices import Notifier, rollback_complete
from storage import backup
from storage.local_storage import LocalStorage


RemoteMutation = Callable[[str, Dict[str, Any]], Awaitable[Any]]

COMMON_KEY_FIELDS = ("id", "name", "title")
TYPE_KEY_FIELDS = {
    "projectName": ("projectName", "clientInfo"),
    "equipmentName": ("equipmentName", "equipmentType"),
    "fullName": ("fullName", "email"),
    "staffName": ("staffName", "employeeId"),
}


@dataclass(frozen=True)
class MigrationPreset:
    data_type: str
    source_key: str
    mutation: str


MIGRATION_PRESETS: Dict[str, MigrationPreset] = {
    "projects": MigrationPreset("projects", "projects", "projects:createProject"),
    "attendance": MigrationPreset("attendance", "attendanceLog", "attendance:createAttendanceRecord"),
    "equipment": MigrationPreset("equipment", "cmsEquipment", "equipment:createEquipment"),
    "alerts": MigrationPreset("alerts", "cmsUrgentAlerts", "communications:createNotice"),
}


@dataclass
class MigrationRun:
    backup_key: str
    migrated: Dict[str, List[Any]] = field(default_factory=dict)
    removed_backups: List[str] = field(default_factory=list)


def _ensure_logger() -> logging.Logger:
    return ensure_logger("siteops.migration", MIGRATION_LOG_PATH)


class MigrationManager:
    def __init__(
        self,
        mutate: RemoteMutation,
        storage: LocalStorage,
        *,
        notifier: Optional[Notifier] = None,
        backup_prefix: str = KEYS.backup_prefix,
        log_key: str = KEYS.migration_log,
        keep_backups: int = MIGRATION.keep_backups,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.mutate = mutate
        self.storage = storage
        self.notifier = notifier
        self.backup_prefix = backup_prefix
        self.log_key = log_key
        self.keep_backups = keep_backups
        self.clock = clock
        self.migration_log: List[Dict[str, str]] = []
        self.logger = _ensure_logger()

    # ------------------------------------------------------------------
    # Backups
    def backup_local_storage(self) -> str:
        try:
            backup_key = backup.create_snapshot(self.storage, self.backup_prefix, self.clock())
        except BackupError as exc:
            self.log("BACKUP_ERROR", f"Failed to create backup: {exc}")
            raise
        self.log("BACKUP_CREATED", f"Backup created: {backup_key}")
        return backup_key

    def rollback_migration(self, backup_key: str) -> None:
        try:
            backup.restore_snapshot(self.storage, backup_key, self.backup_prefix)
        except BackupError as exc:
            self.log("ROLLBACK_ERROR", f"Rollback failed: {exc}")
            raise
        self.log("ROLLBACK_SUCCESS", f"Rolled back to backup: {backup_key}")
        if self.notifier is not None:
            self.notifier.notify(rollback_complete())

    def cleanup_old_backups(self) -> List[str]:
        removed = backup.prune_snapshots(self.storage, self.backup_prefix, keep=self.keep_backups)
        for key in removed:
            self.log("CLEANUP", f"Removed old backup: {key}")
        return removed

    def list_backups(self) -> List[str]:
        return backup.list_backups(self.storage, self.backup_prefix)

    # ------------------------------------------------------------------
    # Migration
    def _read_records(self, source_key: str) -> List[Dict[str, Any]]:
        raw = self.storage.get(source_key)
        if not raw:
            return []
        data = json.loads(raw)
        if not isinstance(data, list):
            raise ValueError(f"{source_key} does not hold a list")
        return data

    async def migrate_data_type(self, data_type: str, source_key: str, mutation: str) -> List[Any]:
        try:
            records = self._read_records(source_key)
            if not records:
                self.log("MIGRATION_SKIP", f"No data to migrate for {data_type}")
                return []

            migrated: List[Any] = []
            for record in records:
                payload = {
                    **record,
                    "migratedFrom": MIGRATION.migrated_from,
                    "migrationDate": to_iso(self.clock()),
                    "originalKey": source_key,
                }
                try:
                    result = await self.mutate(mutation, payload)
                except Exception as exc:
                    self.log("MIGRATION_ITEM_ERROR", f"Failed to migrate {data_type} item: {exc}")
                    raise
                migrated.append(result)
                self.log("MIGRATION_ITEM", f"Migrated {data_type} item: {record.get('id', 'unknown')}")

            self.log("MIGRATION_COMPLETE", f"Migrated {len(migrated)} {data_type} records")
            return migrated
        except Exception as exc:
            self.log("MIGRATION_ERROR", f"Migration failed for {data_type}: {exc}")
            raise

    async def run_presets(self, names: Optional[Iterable[str]] = None) -> MigrationRun:
        """Back up, migrate the named presets in order, then trim old backups."""
        selected = list(names) if names is not None else list(MIGRATION_PRESETS)
        unknown = [name for name in selected if name not in MIGRATION_PRESETS]
        if unknown:
            raise ValueError(f"Unknown migration presets: {', '.join(unknown)}")

        run = MigrationRun(backup_key=self.backup_local_storage())
        for name in selected:
            preset = MIGRATION_PRESETS[name]
            run.migrated[name] = await self.migrate_data_type(
                preset.data_type, preset.source_key, preset.mutation
            )
        run.removed_backups = self.cleanup_old_backups()
        return run

    # ------------------------------------------------------------------
    # Validation
    def get_key_fields_for_validation(self, record: Dict[str, Any]) -> List[str]:
        for marker, fields in TYPE_KEY_FIELDS.items():
            if record.get(marker):
                return [*COMMON_KEY_FIELDS, *fields]
        return list(COMMON_KEY_FIELDS)

    def validate_migration(
        self,
        original_data: Sequence[Dict[str, Any]],
        migrated_data: Sequence[Dict[str, Any]],
    ) -> List[str]:
        issues: List[str] = []
        if len(original_data) != len(migrated_data):
            issues.append(f"Record count mismatch: {len(original_data)} vs {len(migrated_data)}")

        by_id = {item.get("id"): item for item in migrated_data if isinstance(item, dict)}
        for original in original_data:
            record_id = original.get("id")
            migrated = by_id.get(record_id)
            if migrated is None:
                issues.append(f"Missing record: {record_id}")
                continue
            for name in self.get_key_fields_for_validation(original):
                if original.get(name) and not migrated.get(name):
                    issues.append(f"Missing field {name} in record {record_id}")
        return issues

    # ------------------------------------------------------------------
    # Log
    def log(self, entry_type: str, message: str) -> None:
        entry = {"timestamp": to_iso(self.clock()), "type": entry_type, "message": message}
        self.migration_log.append(entry)
        self.logger.info("[MIGRATION %s] %s", entry_type, message)
        self.storage.set_json(self.log_key, self.migration_log)

    def get_log(self) -> List[Dict[str, str]]:
        return list(self.migration_log)


__all__ = [
    "MIGRATION_PRESETS",
    "MigrationManager",
    "MigrationPreset",
    "MigrationRun",
]
