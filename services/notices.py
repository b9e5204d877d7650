"""User-visible notices emitted by the sync layer."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class NoticeLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Notice:
    title: str
    description: str
    level: NoticeLevel = NoticeLevel.INFO


class Notifier(Protocol):
    def notify(self, notice: Notice) -> None: ...


class LogNotifier:
    """Writes notices to a logger; used when no UI is attached."""

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger("siteops.notices")

    def notify(self, notice: Notice) -> None:
        level = logging.ERROR if notice.level is NoticeLevel.ERROR else logging.INFO
        self.logger.log(level, "%s: %s", notice.title, notice.description)


def offline_mode() -> Notice:
    return Notice("Offline Mode", "Changes will be saved locally and synced when reconnected")


def sync_complete(count: int) -> Notice:
    return Notice("Sync Complete", f"{count} offline changes synchronized", NoticeLevel.SUCCESS)


def sync_failed(count: int) -> Notice:
    return Notice("Sync Failed", f"{count} items could not be synchronized", NoticeLevel.ERROR)


def sync_error() -> Notice:
    return Notice("Sync Error", "Failed to process offline queue", NoticeLevel.ERROR)


def no_connection() -> Notice:
    return Notice("No Connection", "Cannot sync while offline", NoticeLevel.ERROR)


def queue_cleared() -> Notice:
    return Notice("Queue Cleared", "All offline items removed")


def update_failed() -> Notice:
    return Notice(
        "Update Failed",
        "Changes could not be saved. Please try again.",
        NoticeLevel.ERROR,
    )


def rollback_complete() -> Notice:
    return Notice("Rollback Complete", "Data restored from backup", NoticeLevel.SUCCESS)


__all__ = [
    "LogNotifier",
    "Notice",
    "NoticeLevel",
    "Notifier",
    "no_connection",
    "offline_mode",
    "queue_cleared",
    "rollback_complete",
    "sync_complete",
    "sync_error",
    "sync_failed",
    "update_failed",
]
