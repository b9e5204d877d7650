"""Optimistic single-value and list storage backed by Convex mutations."""
from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional

from core.errors import UpdateFailedError
from datetime_utils import epoch_millis, to_iso, utc_now
from services.connectivity import NetworkStatus
from services.notices import Notifier, update_failed
from storage.local_storage import LocalStorage


logger = logging.getLogger("siteops.sync")

Mutation = Callable[[Any], Awaitable[Any]]

_UNSET: Any = object()

# passed to ``receive`` by a source that has not produced a value yet
LOADING: Any = object()


class ConvexStorage:
    """A value that reads like local storage and writes through a mutation.

    Reads return the optimistic value if one is active, else the last server
    value, else ``default``. Any new server value clears the optimistic
    overlay, which assumes a single writer per value.
    """

    def __init__(
        self,
        mutate: Mutation,
        default: Any = None,
        *,
        network: Optional[NetworkStatus] = None,
        notifier: Optional[Notifier] = None,
        storage: Optional[LocalStorage] = None,
        local_storage_key: Optional[str] = None,
        enable_optimistic: bool = True,
        offline_fallback: bool = True,
    ) -> None:
        self.mutate = mutate
        self.default = default
        self.network = network or NetworkStatus()
        self.notifier = notifier
        self.storage = storage
        self.local_storage_key = local_storage_key
        self.enable_optimistic = enable_optimistic
        self.offline_fallback = offline_fallback
        self.is_updating = False
        self._server: Any = _UNSET
        self._optimistic: Any = _UNSET
        self._pending: List[Awaitable[Any]] = []
        self._load_offline_fallback()

    # ------------------------------------------------------------------
    @property
    def value(self) -> Any:
        if self._optimistic is not _UNSET:
            return self._optimistic
        if self._server is not _UNSET and self._server is not None:
            return self._server
        return self.default

    @property
    def server_value(self) -> Any:
        return None if self._server is _UNSET else self._server

    @property
    def has_optimistic_data(self) -> bool:
        return self._optimistic is not _UNSET

    @property
    def pending_updates(self) -> int:
        return len(self._pending)

    def attach(self, source) -> None:
        """Follow a value source exposing ``subscribe(callback)``."""
        source.subscribe(self.receive)

    def receive(self, server_value: Any) -> None:
        """Take a new server value.

        ``None`` is a real (empty) server value and clears the overlay;
        :data:`LOADING` leaves the overlay alone.
        """
        if server_value is LOADING:
            self._load_offline_fallback()
            return
        self._server = server_value
        if self._optimistic is not _UNSET:
            self._optimistic = _UNSET
            self.is_updating = False
        if server_value is None:
            self._load_offline_fallback()

    # ------------------------------------------------------------------
    async def set_value(self, new_value: Any) -> Any:
        updated = new_value(self.value) if callable(new_value) else new_value
        self.is_updating = True
        try:
            if self.enable_optimistic:
                self._optimistic = updated
            self._store_fallback(updated)

            pending = self.mutate(updated)
            self._pending.append(pending)
            try:
                return await pending
            finally:
                self._pending.remove(pending)
        except Exception as exc:
            logger.error("Failed to update Convex data: %s", exc)
            if self.enable_optimistic and self._optimistic is updated:
                # reads fall back to the last server value; a newer write keeps its overlay
                self._optimistic = _UNSET
            if self.notifier is not None:
                self.notifier.notify(update_failed())
            raise UpdateFailedError("Changes could not be saved. Please try again.") from exc
        finally:
            self.is_updating = bool(self._pending)

    # ------------------------------------------------------------------
    def _store_fallback(self, value: Any) -> None:
        if not (self.offline_fallback and self.local_storage_key and self.storage is not None):
            return
        self.storage.set(self.local_storage_key, json.dumps(value, ensure_ascii=False, sort_keys=True))

    def _load_offline_fallback(self) -> None:
        if not (self.offline_fallback and self.local_storage_key and self.storage is not None):
            return
        if self.network.is_online or self.server_value is not None:
            return
        raw = self.storage.get(self.local_storage_key)
        if not raw:
            return
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Failed to load offline fallback data: %s", exc)
            return
        if data:
            self._optimistic = data


def _temp_id() -> str:
    return f"temp_{epoch_millis(utc_now())}_{uuid.uuid4().hex[:9]}"


class ConvexList:
    """List helpers on top of :class:`ConvexStorage`.

    ``update_item`` and ``remove_item`` use their dedicated mutations and fall
    back to rewriting the whole list when those fail.
    """

    def __init__(
        self,
        storage: ConvexStorage,
        update_mutation: Callable[[Dict[str, Any]], Awaitable[Any]],
        delete_mutation: Callable[[Dict[str, Any]], Awaitable[Any]],
    ) -> None:
        self.storage = storage
        self.update_mutation = update_mutation
        self.delete_mutation = delete_mutation

    @property
    def data(self) -> List[Dict[str, Any]]:
        return list(self.storage.value or [])

    async def add_item(self, item: Dict[str, Any]) -> Dict[str, Any]:
        new_item = {
            **item,
            "id": item.get("id") or _temp_id(),
            "createdAt": to_iso(utc_now()),
        }
        await self.storage.set_value(lambda prev: [*(prev or []), new_item])
        return new_item

    async def update_item(self, item_id: Any, updates: Dict[str, Any]) -> None:
        try:
            await self.update_mutation({"id": item_id, **updates})
        except Exception as exc:
            logger.warning("Update mutation for %s failed, rewriting list: %s", item_id, exc)
            await self.storage.set_value(
                lambda prev: [
                    {**entry, **updates} if entry.get("id") == item_id else entry
                    for entry in (prev or [])
                ]
            )

    async def remove_item(self, item_id: Any) -> None:
        try:
            await self.delete_mutation({"id": item_id})
        except Exception as exc:
            logger.warning("Delete mutation for %s failed, rewriting list: %s", item_id, exc)
            await self.storage.set_value(
                lambda prev: [entry for entry in (prev or []) if entry.get("id") != item_id]
            )

    def find_item(self, item_id: Any) -> Optional[Dict[str, Any]]:
        for entry in self.data:
            if entry.get("id") == item_id:
                return entry
        return None


__all__ = ["LOADING", "ConvexList", "ConvexStorage"]
