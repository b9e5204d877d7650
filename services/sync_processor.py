from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Protocol

from core.settings import SYNC
from datetime_utils import utc_now
from models.queue_item import QueueStatus, SyncReport
from services.connectivity import NetworkStatus
from services.offline_queue import OfflineQueueStore


logger = logging.getLogger("siteops.sync")


class Dispatcher(Protocol):
    async def invoke(self, operation_type: str, payload: Dict[str, Any]) -> Any: ...


class SyncProcessor:
    """Runs drain passes: every non-terminal item is sent once, in order."""

    def __init__(
        self,
        queue: OfflineQueueStore,
        dispatcher: Dispatcher,
        network: NetworkStatus,
        *,
        max_retries: int = SYNC.max_retries,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.queue = queue
        self.dispatcher = dispatcher
        self.network = network
        self.max_retries = max_retries
        self.clock = clock
        self.is_syncing = False
        self.last_sync_attempt: Optional[datetime] = None

    async def drain(self) -> Optional[SyncReport]:
        if self.is_syncing or self.queue.is_empty() or not self.network.is_online:
            return None

        self.is_syncing = True
        self.last_sync_attempt = self.clock()
        report = SyncReport()
        try:
            # items queued after this point wait for the next pass
            for item in self.queue.items():
                if item.status is QueueStatus.COMPLETED:
                    continue
                try:
                    await self.dispatcher.invoke(item.operation.type, dict(item.operation.data))
                except Exception as exc:
                    logger.warning("Failed to sync item %s (%s): %s", item.id, item.operation.type, exc)
                    updated = self.queue.record_failure(item.id, str(exc), self.max_retries)
                    if updated is not None and updated.status is QueueStatus.RETRY:
                        report.retrying.append(updated)
                else:
                    self.queue.mark_completed(item.id)
                    report.succeeded.append(item.id)
                    logger.info("Synced item %s (%s)", item.id, item.operation.type)

            _, failed = self.queue.purge_terminal()
            report.failed.extend(failed)
            for item in failed:
                logger.error(
                    "Item %s (%s) failed permanently after %d attempts: %s",
                    item.id,
                    item.operation.type,
                    item.retries,
                    item.last_error,
                )
        finally:
            self.is_syncing = False
        return report


__all__ = ["Dispatcher", "SyncProcessor"]
