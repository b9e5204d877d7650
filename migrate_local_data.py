"""Console utility to move locally stored records into Convex."""
from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence

from core.settings import MIGRATION_LOG_PATH
from services.convex_client import ConvexClient
from services.migration import MIGRATION_PRESETS, MigrationManager, MigrationRun
from storage.db import init_db
from storage.local_storage import LocalStorage


def build_manager(
    *,
    deployment_url: Optional[str] = None,
    storage: Optional[LocalStorage] = None,
    client: Optional[ConvexClient] = None,
) -> MigrationManager:
    client = client or ConvexClient(deployment_url)
    return MigrationManager(client.mutation, storage or LocalStorage())


async def migrate_local_data(
    manager: MigrationManager,
    presets: Optional[Sequence[str]] = None,
) -> MigrationRun:
    """Run the selected presets and log how many records each one moved."""

    run = await manager.run_presets(presets)
    for name, results in run.migrated.items():
        logging.info("Preset %s: %d records migrated", name, len(results))
    return run


def _setup_logging(log_path: Path) -> None:
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        filename=str(log_path),
        filemode="a",
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__ or "")
    parser.add_argument("--url", help="Convex deployment URL (default: $CONVEX_URL)")
    parser.add_argument(
        "--preset",
        action="append",
        choices=sorted(MIGRATION_PRESETS),
        help="Preset to migrate; repeat for several (default: all)",
    )
    parser.add_argument("--rollback", metavar="BACKUP_KEY", help="Restore local storage from a backup")
    parser.add_argument("--cleanup", action="store_true", help="Keep only the newest backups")
    parser.add_argument("--list-backups", action="store_true", help="Print available backups")
    parser.add_argument(
        "--log",
        type=Path,
        default=MIGRATION_LOG_PATH,
        help="Path to a log file (default: %(default)s)",
    )
    args = parser.parse_args(argv)

    _setup_logging(args.log)
    init_db()
    storage = LocalStorage()

    if args.list_backups or args.rollback or args.cleanup:
        # these only touch local storage
        manager = MigrationManager(_offline_mutation, storage)
        if args.list_backups:
            for key in manager.list_backups():
                print(key)
        if args.rollback:
            manager.rollback_migration(args.rollback)
            print(f"Restored local storage from {args.rollback}")
        if args.cleanup:
            removed = manager.cleanup_old_backups()
            print(f"Removed {len(removed)} old backups")
        return 0

    manager = build_manager(deployment_url=args.url, storage=storage)
    try:
        run = asyncio.run(migrate_local_data(manager, args.preset))
    except Exception as exc:  # pragma: no cover
        logging.exception("Migration failed: %s", exc)
        backups = manager.list_backups()
        if backups:
            print(f"Migration failed: {exc}. Roll back with --rollback {backups[0]}")
        raise
    total = sum(len(results) for results in run.migrated.values())
    print(f"Migration complete: {total} records migrated, backup {run.backup_key}")
    return 0


async def _offline_mutation(path, args):
    raise RuntimeError(f"No Convex connection configured for {path}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
