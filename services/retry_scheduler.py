"""Decides when the offline queue is drained."""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Iterable, Optional, Protocol, Sequence, Set

from core.settings import SYNC, SyncSettings
from models.queue_item import QueueItem
from services.connectivity import NetworkStatus
from services.notices import Notifier, offline_mode


logger = logging.getLogger("siteops.sync")


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Timer(Protocol):
    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle: ...


class AsyncioTimer:
    """Timer backed by the running event loop.

    Coroutines returned by callbacks are scheduled as tasks and kept
    referenced until they finish.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop
        self._tasks: Set[asyncio.Future] = set()

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(delay, 0), self._run, callback)

    def _run(self, callback: Callable[[], Any]) -> None:
        result = callback()
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)


def backoff_delay(retries: int, delays: Sequence[float] = SYNC.retry_delays) -> float:
    """Return the delay for an item with ``retries`` failed attempts."""
    if not delays:
        return 0.0
    index = min(max(retries, 0), len(delays) - 1)
    return delays[index]


class RetryScheduler:
    """Keeps at most one pending drain timer."""

    def __init__(
        self,
        *,
        timer: Timer,
        network: NetworkStatus,
        drain: Callable[[], Any],
        has_items: Callable[[], bool],
        notifier: Optional[Notifier] = None,
        settings: SyncSettings = SYNC,
    ) -> None:
        self.timer = timer
        self.network = network
        self.drain = drain
        self.has_items = has_items
        self.notifier = notifier
        self.settings = settings
        self._handle: Optional[TimerHandle] = None
        self.next_delay: Optional[float] = None

    @property
    def is_scheduled(self) -> bool:
        return self._handle is not None

    def schedule(self, delay: float = 0.0) -> None:
        self.cancel()
        self.next_delay = delay
        self._handle = self.timer.call_later(delay, self._fire)
        logger.debug("Drain scheduled in %.1fs", delay)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self.next_delay = None

    def _fire(self) -> Any:
        self._handle = None
        self.next_delay = None
        if self.network.is_online and self.has_items():
            return self.drain()
        return None

    # ------------------------------------------------------------------
    # Connectivity transitions
    def on_online(self) -> None:
        if self.has_items():
            self.schedule(self.settings.reconnect_delay_sec)

    def on_offline(self) -> None:
        self.cancel()
        if self.notifier is not None:
            self.notifier.notify(offline_mode())

    def on_connectivity_change(self, online: bool) -> None:
        if online:
            self.on_online()
        else:
            self.on_offline()

    # ------------------------------------------------------------------
    def schedule_retry(self, items: Iterable[QueueItem]) -> Optional[float]:
        """Schedule the next attempt using the smallest backoff among ``items``.

        Pending items count with their retry count of 0, so anything queued
        during a pass is picked up by the next one.
        """
        delays = [
            backoff_delay(item.retries, self.settings.retry_delays)
            for item in items
            if not item.is_terminal
        ]
        if not delays:
            return None
        delay = min(delays)
        self.schedule(delay)
        return delay


__all__ = ["AsyncioTimer", "RetryScheduler", "Timer", "TimerHandle", "backoff_delay"]
