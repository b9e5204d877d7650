from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from core.errors import InvalidOperationError, NoConnectionError
from core.logs import ensure_logger
from core.settings import KEYS, SYNC, SYNC_LOG_PATH, SyncSettings
from models.operation import Operation
from models.optimistic import Fold
from models.queue_item import QueueItem, QueueStats, SyncReport
from services.connectivity import NetworkStatus
from services.convex_client import ConvexClient
from services.dispatcher import SingleMutationDispatcher
from services.notices import (
    LogNotifier,
    Notifier,
    no_connection,
    queue_cleared,
    sync_complete,
    sync_error,
    sync_failed,
)
from services.offline_queue import OfflineQueueStore
from services.optimistic import OptimisticStateManager
from services.retry_scheduler import AsyncioTimer, RetryScheduler, Timer
from services.sync_processor import Dispatcher, SyncProcessor
from storage.local_storage import LocalStorage


def _ensure_logger() -> logging.Logger:
    return ensure_logger("siteops.sync", SYNC_LOG_PATH)


class OfflineSync:
    """Queue writes while offline and replay them when the network returns."""

    def __init__(
        self,
        storage: LocalStorage,
        dispatcher: Dispatcher,
        *,
        network: Optional[NetworkStatus] = None,
        notifier: Optional[Notifier] = None,
        timer: Optional[Timer] = None,
        optimistic: Optional[OptimisticStateManager] = None,
        queue: Optional[OfflineQueueStore] = None,
        settings: SyncSettings = SYNC,
    ) -> None:
        self.logger = _ensure_logger()
        self.settings = settings
        self.network = network or NetworkStatus()
        self.notifier = notifier or LogNotifier(self.logger)
        self.queue = queue or OfflineQueueStore(storage)
        self.optimistic = optimistic or OptimisticStateManager()
        self.processor = SyncProcessor(
            self.queue,
            dispatcher,
            self.network,
            max_retries=settings.max_retries,
        )
        self.scheduler = RetryScheduler(
            timer=timer or AsyncioTimer(),
            network=self.network,
            drain=self.process_queue,
            has_items=lambda: not self.queue.is_empty(),
            notifier=self.notifier,
            settings=settings,
        )
        self._started = False

    # ------------------------------------------------------------------
    # Lifecycle
    def start(self) -> None:
        if self._started:
            return
        self.network.subscribe(self.scheduler.on_connectivity_change)
        self._started = True
        if self.network.is_online and not self.queue.is_empty():
            self.scheduler.schedule(self.settings.reconnect_delay_sec)

    def close(self) -> None:
        self.network.unsubscribe(self.scheduler.on_connectivity_change)
        self.scheduler.cancel()
        self._started = False

    # ------------------------------------------------------------------
    # Public API
    @property
    def is_online(self) -> bool:
        return self.network.is_online

    @property
    def is_syncing(self) -> bool:
        return self.processor.is_syncing

    @property
    def last_sync_attempt(self) -> Optional[datetime]:
        return self.processor.last_sync_attempt

    @property
    def stats(self) -> QueueStats:
        return self.queue.stats()

    def items(self) -> list[QueueItem]:
        return self.queue.items()

    def queue_operation(self, operation: Union[Operation, Mapping[str, Any]]) -> Optional[str]:
        try:
            item_id = self.queue.enqueue(operation)
        except InvalidOperationError as exc:
            self.logger.error("Invalid operation queued: %s", exc)
            return None
        if self.network.is_online:
            self.scheduler.schedule(self.settings.enqueue_delay_sec)
        return item_id

    def queue_optimistic(
        self,
        operation: Union[Operation, Mapping[str, Any]],
        fold: Fold,
    ) -> Optional[str]:
        """Queue ``operation`` and overlay ``fold`` until the item settles."""
        item_id = self.queue_operation(operation)
        if item_id is not None:
            self.optimistic.apply_optimistic(item_id, fold)
        return item_id

    def view(self, base: Any) -> Any:
        return self.optimistic.apply_optimistic_updates(base)

    async def process_queue(self) -> Optional[SyncReport]:
        try:
            report = await self.processor.drain()
        except SQLAlchemyError as exc:
            self.logger.exception("Queue processing error: %s", exc)
            self.notifier.notify(sync_error())
            return None
        if report is None:
            return None

        for item_id in report.succeeded:
            self.optimistic.confirm_optimistic(item_id)
        for item in report.failed:
            self.optimistic.rollback_optimistic(item.id)

        if report.success_count:
            self.notifier.notify(sync_complete(report.success_count))
        if report.failure_count:
            self.notifier.notify(sync_failed(report.failure_count))

        # covers retry items and anything queued while the pass ran
        self.scheduler.schedule_retry(self.queue.items())
        self.logger.info(
            "Drain finished: %d synced, %d failed, %d to retry",
            report.success_count,
            report.failure_count,
            len(report.retrying),
        )
        return report

    async def manual_sync(self) -> Optional[SyncReport]:
        if not self.network.is_online:
            self.notifier.notify(no_connection())
            raise NoConnectionError("Cannot sync while offline")
        return await self.process_queue()

    def clear_queue(self) -> None:
        for item in [*self.queue.items(), *self.queue.failed_items()]:
            self.optimistic.rollback_optimistic(item.id)
        self.queue.clear()
        self.scheduler.cancel()
        self.notifier.notify(queue_cleared())

    def retry_failed(self) -> int:
        count = self.queue.requeue_failed()
        if count and self.network.is_online:
            self.scheduler.schedule(self.settings.retry_failed_delay_sec)
        return count

    def status(self) -> Dict[str, Any]:
        return {
            "isOnline": self.is_online,
            "isSyncing": self.is_syncing,
            "lastSyncAttempt": self.last_sync_attempt,
            "stats": self.stats.as_dict(),
        }


def single_mutation_sync(
    storage: LocalStorage,
    client: ConvexClient,
    sync_path: str,
    **kwargs: Any,
) -> OfflineSync:
    """Queue under ``convex_offline_queue`` with every write sent to ``sync_path``."""
    queue = OfflineQueueStore(
        storage,
        key=KEYS.convex_offline_queue,
        failed_key=f"{KEYS.convex_offline_queue}_failed",
        known_types_only=False,
    )
    return OfflineSync(storage, SingleMutationDispatcher(client, sync_path), queue=queue, **kwargs)


__all__ = ["OfflineSync", "single_mutation_sync"]
