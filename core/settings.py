"""Centralized application configuration."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import os
import sys


DATA_DIR_ENV = "SITEOPS_DATA_DIR"


def get_default_data_dir(
    app_name: str,
    *,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return an OS-specific user data directory for ``app_name``.

    ``SITEOPS_DATA_DIR`` in the environment takes precedence over the
    platform defaults.
    """

    platform_id = (platform or sys.platform).lower()
    environ = dict(env if env is not None else os.environ)
    home_dir = Path(home or Path.home())

    override = environ.get(DATA_DIR_ENV)
    if override:
        return Path(override).expanduser()

    sanitized = app_name.strip() or "app"
    sanitized = sanitized.replace("/", "-").replace("\\", "-")

    if platform_id.startswith("win"):
        base = Path(environ.get("APPDATA") or home_dir / "AppData" / "Roaming")
    elif platform_id == "darwin":
        base = Path(environ.get("APPDATA") or home_dir / "Library" / "Application Support")
    else:
        base = Path(environ.get("XDG_DATA_HOME") or home_dir / ".local" / "share")

    return (base.expanduser() / sanitized)


APP_NAME = "SiteOps"


DATA_DIR = get_default_data_dir(APP_NAME)
LOG_DIR = DATA_DIR / "logs"

STORAGE_DB_PATH = DATA_DIR / "storage.db"
SYNC_LOG_PATH = LOG_DIR / "sync.log"
MIGRATION_LOG_PATH = LOG_DIR / "migration.log"


@dataclass(frozen=True)
class StorageKeys:
    offline_queue: str = "cms_offline_queue"
    failed_queue: str = "cms_offline_queue_failed"
    convex_offline_queue: str = "convex_offline_queue"
    backup_prefix: str = "cms_backup_"
    migration_log: str = "cms_migration_log"


KEYS = StorageKeys()


@dataclass(frozen=True)
class SyncSettings:
    max_retries: int = 3
    # progressive backoff in seconds, indexed by an item's retry count
    retry_delays: tuple[float, ...] = (1.0, 3.0, 10.0)
    reconnect_delay_sec: float = 2.0
    enqueue_delay_sec: float = 0.1
    retry_failed_delay_sec: float = 1.0
    connectivity_poll_sec: int = 15


SYNC = SyncSettings()


@dataclass(frozen=True)
class ConvexSettings:
    deployment_url: Optional[str] = os.environ.get("CONVEX_URL") or None
    auth_token: Optional[str] = os.environ.get("CONVEX_AUTH_TOKEN") or None
    timeout_sec: float = 15.0
    query_poll_interval_sec: int = 10


CONVEX = ConvexSettings()


@dataclass(frozen=True)
class MigrationSettings:
    keep_backups: int = 5
    migrated_from: str = "localStorage"


MIGRATION = MigrationSettings()


__all__ = [
    "APP_NAME",
    "CONVEX",
    "DATA_DIR",
    "DATA_DIR_ENV",
    "KEYS",
    "LOG_DIR",
    "MIGRATION",
    "MIGRATION_LOG_PATH",
    "STORAGE_DB_PATH",
    "SYNC",
    "SYNC_LOG_PATH",
    "get_default_data_dir",
]
