"""Shared fixtures: in-memory storage, a manual timer and fake collaborators."""
import inspect
import os
import tempfile
from datetime import datetime, timedelta, timezone

# keep log files and the storage database out of the real data directory
os.environ.setdefault("SITEOPS_DATA_DIR", tempfile.mkdtemp(prefix="siteops-tests-"))

import pytest
from sqlmodel import Session, SQLModel, create_engine

import models.storage_entry  # noqa: F401
from services.connectivity import NetworkStatus
from storage.local_storage import LocalStorage


class FakeHandle:
    def __init__(self, timer, delay, callback):
        self.timer = timer
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeTimer:
    """Records scheduled callbacks; tests fire them explicitly."""

    def __init__(self):
        self.handles = []

    def call_later(self, delay, callback):
        handle = FakeHandle(self, delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def active(self):
        return [h for h in self.handles if not h.cancelled]

    async def fire_next(self):
        handle = self.active[0]
        handle.cancelled = True
        result = handle.callback()
        if inspect.isawaitable(result):
            return await result
        return result


class RecordingNotifier:
    def __init__(self):
        self.notices = []

    def notify(self, notice):
        self.notices.append(notice)

    def titles(self):
        return [notice.title for notice in self.notices]


class FakeDispatcher:
    """Fails the types listed in ``failing`` and records every call."""

    def __init__(self, failing=None, fail_all=False):
        self.failing = set(failing or ())
        self.fail_all = fail_all
        self.calls = []

    async def invoke(self, operation_type, payload):
        self.calls.append((operation_type, payload))
        if self.fail_all or operation_type in self.failing:
            raise RuntimeError(f"rejected {operation_type}")
        return {"ok": True}


class StepClock:
    """Returns a new moment, one second later, on every call."""

    def __init__(self, start=None):
        self.current = start or datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self):
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


@pytest.fixture()
def session_factory():
    engine = create_engine("sqlite:///:memory:")
    SQLModel.metadata.create_all(engine)

    def factory():
        return Session(engine)

    return factory


@pytest.fixture()
def storage(session_factory):
    return LocalStorage(session_factory)


@pytest.fixture()
def timer():
    return FakeTimer()


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def network():
    return NetworkStatus(online=True)


@pytest.fixture()
def clock():
    return StepClock()
