"""In-memory overlay of writes the server has not confirmed yet."""
from __future__ import annotations

import logging
from typing import Any, Dict, List

from core.errors import SyncError
from models.optimistic import Fold, OptimisticOperation, apply_fold


logger = logging.getLogger("siteops.sync")


class OptimisticStateManager:
    def __init__(self) -> None:
        self._operations: Dict[str, OptimisticOperation] = {}
        self.dropped_count = 0

    @property
    def has_optimistic_updates(self) -> bool:
        return bool(self._operations)

    def operations(self) -> List[OptimisticOperation]:
        return list(self._operations.values())

    def apply_optimistic(self, operation_id: str, fold: Fold) -> None:
        # re-applying an id keeps its original position in the fold order
        self._operations[operation_id] = OptimisticOperation(operation_id, fold)

    def confirm_optimistic(self, operation_id: str) -> None:
        self._operations.pop(operation_id, None)

    def rollback_optimistic(self, operation_id: str) -> None:
        self._operations.pop(operation_id, None)

    def apply_optimistic_updates(self, base: Any) -> Any:
        """Fold every outstanding operation over ``base`` in insertion order.

        An operation whose fold raises is dropped and counted; the rest still
        apply.
        """
        result = base
        for operation in list(self._operations.values()):
            try:
                result = apply_fold(operation.fold, result)
            except (SyncError, TypeError, ValueError, KeyError) as exc:
                self._operations.pop(operation.operation_id, None)
                self.dropped_count += 1
                logger.warning(
                    "Dropped optimistic update %s (%d dropped so far): %s",
                    operation.operation_id,
                    self.dropped_count,
                    exc,
                )
        return result


__all__ = ["OptimisticStateManager"]
