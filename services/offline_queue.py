from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional, Tuple, Union

from core.errors import InvalidOperationError
from core.settings import KEYS
from datetime_utils import epoch_millis, to_iso, utc_now
from models.operation import Operation
from models.queue_item import QueueItem, QueueStats, QueueStatus
from storage.local_storage import LocalStorage


logger = logging.getLogger("siteops.sync")


def _new_item_id(now: datetime) -> str:
    return f"offline_{epoch_millis(now)}_{uuid.uuid4().hex[:9]}"


def _coerce_operation(operation: Union[Operation, Mapping[str, Any], None]) -> Operation:
    if isinstance(operation, Operation):
        return operation
    if not isinstance(operation, Mapping):
        raise InvalidOperationError(f"Invalid operation queued: {operation!r}")
    try:
        return Operation.from_dict(operation)
    except ValueError as exc:
        raise InvalidOperationError(f"Invalid operation queued: {exc}") from exc


class OfflineQueueStore:
    """Ordered queue of deferred writes, persisted on every change.

    Active items live under ``key``. Items that exhausted their retries are
    moved to ``failed_key`` so they survive a restart and can be requeued.
    """

    def __init__(
        self,
        storage: LocalStorage,
        *,
        key: str = KEYS.offline_queue,
        failed_key: str = KEYS.failed_queue,
        known_types_only: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.storage = storage
        self.key = key
        self.failed_key = failed_key
        self.known_types_only = known_types_only
        self.clock = clock
        self._items: List[QueueItem] = []
        self._failed: List[QueueItem] = []
        self.load()

    # ------------------------------------------------------------------
    # Persistence
    def _read(self, key: str) -> List[QueueItem]:
        raw = self.storage.get(key)
        if not raw:
            return []
        try:
            entries = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.error("Failed to load offline queue %s: %s", key, exc)
            self.storage.remove(key)
            return []
        if not isinstance(entries, list):
            logger.error("Offline queue %s is not a list, discarding", key)
            self.storage.remove(key)
            return []

        items: List[QueueItem] = []
        for entry in entries:
            if not isinstance(entry, Mapping) or not entry.get("id"):
                logger.warning("Skipping queue entry without id in %s", key)
                continue
            try:
                items.append(QueueItem.from_dict(entry))
            except (TypeError, ValueError) as exc:
                logger.warning("Skipping malformed queue entry %s: %s", entry.get("id"), exc)
        return items

    def _write(self, key: str, items: List[QueueItem]) -> None:
        payload = json.dumps(
            [item.to_dict() for item in items],
            ensure_ascii=False,
            sort_keys=True,
        )
        self.storage.set(key, payload)

    def load(self) -> None:
        items = self._read(self.key)
        self._failed = self._read(self.failed_key)
        self._items = [item for item in items if not item.is_terminal]
        if len(self._items) == len(items):
            return

        # a pass that stopped before purging leaves terminal items behind
        stranded = [item for item in items if item.status is QueueStatus.FAILED]
        logger.warning(
            "Settling %d finished items left in %s (%d failed)",
            len(items) - len(self._items),
            self.key,
            len(stranded),
        )
        self._failed.extend(stranded)
        self.persist()
        self._persist_failed()

    def persist(self) -> None:
        self._write(self.key, self._items)

    def _persist_failed(self) -> None:
        if self._failed:
            self._write(self.failed_key, self._failed)
        else:
            self.storage.remove(self.failed_key)

    # ------------------------------------------------------------------
    # Queue API
    def enqueue(self, operation: Union[Operation, Mapping[str, Any]]) -> str:
        op = _coerce_operation(operation)
        if self.known_types_only and op.kind is None:
            raise InvalidOperationError(f"Unsupported operation type: {op.type}")
        if not isinstance(op.data, Mapping):
            raise InvalidOperationError(f"Operation {op.type} data must be an object")

        now = self.clock()
        item = QueueItem(
            id=_new_item_id(now),
            timestamp=to_iso(now),
            operation=op,
        )
        self._items.append(item)
        self.persist()
        logger.debug("Queued %s as %s", op.type, item.id)
        return item.id

    def items(self) -> List[QueueItem]:
        return list(self._items)

    def failed_items(self) -> List[QueueItem]:
        return list(self._failed)

    def get(self, item_id: str) -> Optional[QueueItem]:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def __len__(self) -> int:
        return len(self._items)

    def is_empty(self) -> bool:
        return not self._items

    def mark_completed(self, item_id: str) -> Optional[QueueItem]:
        item = self.get(item_id)
        if item is None:
            return None
        item.status = QueueStatus.COMPLETED
        self.persist()
        return item

    def record_failure(self, item_id: str, error: str, max_retries: int) -> Optional[QueueItem]:
        item = self.get(item_id)
        if item is None:
            return None
        item.retries += 1
        item.last_attempt = to_iso(self.clock())
        item.last_error = (error or "")[:1000]
        item.status = QueueStatus.FAILED if item.retries >= max_retries else QueueStatus.RETRY
        self.persist()
        return item

    def purge_terminal(self) -> Tuple[List[str], List[QueueItem]]:
        """Drop completed items and move failed ones to the failed list."""

        completed = [item.id for item in self._items if item.status is QueueStatus.COMPLETED]
        failed = [item for item in self._items if item.status is QueueStatus.FAILED]
        if not completed and not failed:
            return completed, failed

        self._items = [item for item in self._items if not item.is_terminal]
        self.persist()
        if failed:
            self._failed.extend(failed)
            self._persist_failed()
        return completed, failed

    def requeue_failed(self) -> int:
        """Move permanently failed items back into the queue as ``pending``."""

        if not self._failed:
            return 0
        for item in self._failed:
            item.status = QueueStatus.PENDING
            item.retries = 0
        count = len(self._failed)
        self._items.extend(self._failed)
        self._failed = []
        self.persist()
        self._persist_failed()
        return count

    def clear(self) -> None:
        self._items = []
        self._failed = []
        self.storage.remove(self.key)
        self.storage.remove(self.failed_key)

    def stats(self) -> QueueStats:
        pending = sum(1 for item in self._items if item.status is QueueStatus.PENDING)
        retry = sum(1 for item in self._items if item.status is QueueStatus.RETRY)
        failed = len(self._failed)
        total = len(self._items) + failed
        return QueueStats(
            total=total,
            pending=pending,
            retry=retry,
            failed=failed,
            has_items=total > 0,
            needs_attention=failed > 0,
        )


__all__ = ["OfflineQueueStore"]
