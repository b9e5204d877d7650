"""Network status provider with online/offline transition listeners."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List

from core.settings import SYNC


logger = logging.getLogger("siteops.sync")


class NetworkStatus:
    def __init__(self, online: bool = True) -> None:
        self._online = online
        self._listeners: List[Callable[[bool], None]] = []
        self._watch_task: asyncio.Task | None = None

    @property
    def is_online(self) -> bool:
        return self._online

    def subscribe(self, callback: Callable[[bool], None]) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def unsubscribe(self, callback: Callable[[bool], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def set_online(self, online: bool) -> None:
        """Record the current state; listeners hear only real transitions."""
        online = bool(online)
        if online == self._online:
            return
        self._online = online
        logger.info("Network is now %s", "online" if online else "offline")
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception:  # pragma: no cover
                logger.exception("Connectivity listener failed")

    # ------------------------------------------------------------------
    def watch(
        self,
        probe: Callable[[], Awaitable[bool]],
        interval_sec: float = SYNC.connectivity_poll_sec,
    ) -> asyncio.Task:
        """Poll ``probe`` in the background and feed the result to :meth:`set_online`."""

        async def _loop():
            while True:
                try:
                    online = await probe()
                except Exception as exc:
                    logger.warning("Connectivity probe failed, assuming offline: %s", exc)
                    online = False
                self.set_online(online)
                await asyncio.sleep(interval_sec)

        self.stop_watching()
        self._watch_task = asyncio.create_task(_loop())
        return self._watch_task

    def stop_watching(self) -> None:
        if self._watch_task is not None:
            self._watch_task.cancel()
        self._watch_task = None


__all__ = ["NetworkStatus"]
