"""Queue entries for writes waiting to reach the server."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from models.operation import Operation


class QueueStatus(str, Enum):
    PENDING = "pending"
    RETRY = "retry"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class QueueItem:
    id: str
    timestamp: str
    operation: Operation
    retries: int = 0
    last_attempt: Optional[str] = None
    last_error: Optional[str] = None
    status: QueueStatus = QueueStatus.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.status in (QueueStatus.COMPLETED, QueueStatus.FAILED)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "QueueItem":
        item_id = raw.get("id")
        if not item_id:
            raise ValueError("queue item has no id")
        operation = raw.get("operation")
        if not isinstance(operation, Mapping):
            raise ValueError(f"queue item {item_id} has no operation")
        return cls(
            id=str(item_id),
            timestamp=str(raw.get("timestamp") or ""),
            operation=Operation.from_dict(operation),
            retries=int(raw.get("retries") or 0),
            last_attempt=raw.get("lastAttempt"),
            last_error=raw.get("lastError"),
            status=QueueStatus(raw.get("status") or QueueStatus.PENDING.value),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "operation": self.operation.to_dict(),
            "retries": self.retries,
            "lastAttempt": self.last_attempt,
            "lastError": self.last_error,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class QueueStats:
    total: int = 0
    pending: int = 0
    retry: int = 0
    failed: int = 0
    has_items: bool = False
    needs_attention: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "pending": self.pending,
            "retry": self.retry,
            "failed": self.failed,
            "hasItems": self.has_items,
            "needsAttention": self.needs_attention,
        }


@dataclass
class SyncReport:
    """Outcome of one drain pass."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[QueueItem] = field(default_factory=list)
    retrying: list[QueueItem] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)


__all__ = ["QueueItem", "QueueStats", "QueueStatus", "SyncReport"]
