"""Durable key/value storage with a ``localStorage``-like API."""
from __future__ import annotations

import json
from typing import Any, Callable, List, Optional

from sqlmodel import Session, select

from datetime_utils import utc_now
from models.storage_entry import StorageEntry
from storage.db import get_session


class LocalStorage:
    """Synchronous string store keyed by name, persisted in SQLite."""

    def __init__(self, session_factory: Callable[[], Session] = get_session):
        self._session_factory = session_factory

    def get(self, key: str) -> Optional[str]:
        with self._session_factory() as session:
            row = session.get(StorageEntry, key)
            return row.value if row else None

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"Storage values must be strings, got {type(value).__name__}")
        with self._session_factory() as session:
            row = session.get(StorageEntry, key)
            if row is None:
                row = StorageEntry(key=key, value=value)
            else:
                row.value = value
                row.updated_at = utc_now()
            session.add(row)
            session.commit()

    def remove(self, key: str) -> None:
        with self._session_factory() as session:
            row = session.get(StorageEntry, key)
            if row:
                session.delete(row)
                session.commit()

    def keys(self) -> List[str]:
        with self._session_factory() as session:
            stmt = select(StorageEntry.key).order_by(StorageEntry.key)
            return list(session.exec(stmt))

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    # ----- JSON helpers -----
    def get_json(self, key: str, default: Any = None) -> Any:
        raw = self.get(key)
        if raw is None:
            return default
        return json.loads(raw)

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value, ensure_ascii=False, sort_keys=True))


__all__ = ["LocalStorage"]
