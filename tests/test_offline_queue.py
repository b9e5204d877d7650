import asyncio
import json

import pytest

from conftest import FakeDispatcher
from core.errors import InvalidOperationError
from models import Operation, OperationKind, QueueStatus
from services.offline_queue import OfflineQueueStore
from services.sync_processor import SyncProcessor


KEY = "cms_offline_queue"
FAILED_KEY = "cms_offline_queue_failed"


def _project(name="Tower A"):
    return {"type": "CREATE_PROJECT", "data": {"name": name}}


def test_enqueue_assigns_id_and_persists(storage, clock):
    queue = OfflineQueueStore(storage, clock=clock)

    item_id = queue.enqueue(_project())

    assert item_id.startswith("offline_")
    stored = json.loads(storage.get(KEY))
    assert len(stored) == 1
    entry = stored[0]
    assert entry["id"] == item_id
    assert entry["status"] == "pending"
    assert entry["retries"] == 0
    assert entry["lastAttempt"] is None
    assert entry["timestamp"] == "2024-03-01T08:00:00.000Z"
    assert entry["operation"] == {"type": "CREATE_PROJECT", "data": {"name": "Tower A"}}


def test_enqueue_accepts_operation_objects(storage):
    queue = OfflineQueueStore(storage)
    queue.enqueue(Operation.of(OperationKind.CREATE_ATTENDANCE, {"userId": "u1"}))
    assert queue.items()[0].operation.kind is OperationKind.CREATE_ATTENDANCE


@pytest.mark.parametrize(
    "operation",
    [
        None,
        {},
        {"data": {"name": "x"}},
        {"type": ""},
        {"type": "DROP_DATABASE", "data": {}},
        {"type": "CREATE_PROJECT", "data": ["not", "a", "record"]},
    ],
)
def test_enqueue_rejects_invalid_operations(storage, operation):
    queue = OfflineQueueStore(storage)
    with pytest.raises(InvalidOperationError):
        queue.enqueue(operation)
    assert len(queue) == 0
    assert storage.get(KEY) is None


def test_unknown_types_allowed_when_not_strict(storage):
    queue = OfflineQueueStore(storage, key="convex_offline_queue", known_types_only=False)
    queue.enqueue({"type": "legacySync", "data": {}})
    assert queue.items()[0].operation.kind is None


def test_load_skips_malformed_entries(storage):
    good = {
        "id": "offline_1_abc",
        "timestamp": "2024-03-01T08:00:00.000Z",
        "operation": {"type": "CREATE_PROJECT", "data": {}},
        "retries": 1,
        "lastAttempt": None,
        "lastError": "boom",
        "status": "retry",
    }
    storage.set(
        KEY,
        json.dumps(
            [
                good,
                {"timestamp": "no id"},
                None,
                {"id": "offline_2", "operation": "bad"},
                {"id": "offline_3", "operation": {"type": "CREATE_PROJECT"}, "status": "weird"},
            ]
        ),
    )

    queue = OfflineQueueStore(storage)

    assert [item.id for item in queue.items()] == ["offline_1_abc"]
    item = queue.items()[0]
    assert item.status is QueueStatus.RETRY
    assert item.retries == 1
    assert item.last_error == "boom"


def test_unknown_types_from_older_clients_still_load(storage):
    storage.set(
        KEY,
        json.dumps([{"id": "offline_9", "operation": {"type": "ARCHIVE_PROJECT", "data": {}}}]),
    )
    queue = OfflineQueueStore(storage)
    assert queue.items()[0].operation.type == "ARCHIVE_PROJECT"


def test_corrupted_queue_is_discarded(storage):
    storage.set(KEY, "{not json")
    queue = OfflineQueueStore(storage)
    assert queue.is_empty()
    assert storage.get(KEY) is None


def test_reload_then_persist_is_byte_identical(storage, clock):
    queue = OfflineQueueStore(storage, clock=clock)
    queue.enqueue(_project("Tower A"))
    queue.enqueue({"type": "CREATE_NOTICE", "data": {"title": "Crane inspection", "tags": ["safety"]}})
    first_id = queue.items()[0].id
    queue.record_failure(first_id, "timeout", max_retries=3)
    before = storage.get(KEY)

    reloaded = OfflineQueueStore(storage)
    reloaded.persist()

    assert storage.get(KEY) == before


def test_record_failure_walks_to_failed(storage):
    queue = OfflineQueueStore(storage)
    item_id = queue.enqueue(_project())

    for attempt in (1, 2):
        item = queue.record_failure(item_id, "offline", max_retries=3)
        assert item.retries == attempt
        assert item.status is QueueStatus.RETRY
        assert item.last_attempt is not None

    item = queue.record_failure(item_id, "offline", max_retries=3)
    assert item.retries == 3
    assert item.status is QueueStatus.FAILED


def test_purge_moves_failed_items_aside(storage):
    queue = OfflineQueueStore(storage)
    done_id = queue.enqueue(_project("A"))
    failed_id = queue.enqueue(_project("B"))
    waiting_id = queue.enqueue(_project("C"))
    queue.mark_completed(done_id)
    queue.record_failure(failed_id, "nope", max_retries=1)

    completed, failed = queue.purge_terminal()

    assert completed == [done_id]
    assert [item.id for item in failed] == [failed_id]
    assert [item.id for item in queue.items()] == [waiting_id]
    assert [entry["id"] for entry in json.loads(storage.get(FAILED_KEY))] == [failed_id]

    stats = queue.stats()
    assert (stats.total, stats.pending, stats.retry, stats.failed) == (2, 1, 0, 1)
    assert stats.needs_attention is True

    # failed items survive a restart
    assert [item.id for item in OfflineQueueStore(storage).failed_items()] == [failed_id]


def test_requeue_failed_resets_retries(storage):
    queue = OfflineQueueStore(storage)
    item_id = queue.enqueue(_project())
    queue.record_failure(item_id, "nope", max_retries=1)
    queue.purge_terminal()

    assert queue.requeue_failed() == 1

    item = queue.get(item_id)
    assert item.status is QueueStatus.PENDING
    assert item.retries == 0
    assert queue.failed_items() == []
    assert storage.get(FAILED_KEY) is None


def test_clear_removes_everything(storage):
    queue = OfflineQueueStore(storage)
    item_id = queue.enqueue(_project())
    queue.enqueue(_project("B"))
    queue.record_failure(item_id, "nope", max_retries=1)
    queue.purge_terminal()

    queue.clear()

    assert queue.stats().as_dict() == {
        "total": 0,
        "pending": 0,
        "retry": 0,
        "failed": 0,
        "hasItems": False,
        "needsAttention": False,
    }
    assert storage.get(KEY) is None
    assert storage.get(FAILED_KEY) is None


def test_reload_settles_items_left_by_an_interrupted_pass(storage, network):
    def entry(item_id, status, retries):
        return {
            "id": item_id,
            "timestamp": "2024-03-01T08:00:00.000Z",
            "operation": {"type": "CREATE_PROJECT", "data": {"name": item_id}},
            "retries": retries,
            "lastAttempt": None,
            "lastError": None,
            "status": status,
        }

    storage.set(
        KEY,
        json.dumps(
            [
                entry("offline_done", "completed", 0),
                entry("offline_dead", "failed", 3),
                entry("offline_next", "pending", 0),
            ]
        ),
    )

    queue = OfflineQueueStore(storage)

    assert [item.id for item in queue.items()] == ["offline_next"]
    assert [item.id for item in queue.failed_items()] == ["offline_dead"]
    stats = queue.stats()
    assert (stats.total, stats.pending, stats.failed) == (2, 1, 1)
    assert stats.needs_attention is True
    assert [e["id"] for e in json.loads(storage.get(KEY))] == ["offline_next"]
    assert [e["id"] for e in json.loads(storage.get(FAILED_KEY))] == ["offline_dead"]

    dispatcher = FakeDispatcher(fail_all=True)
    asyncio.run(SyncProcessor(queue, dispatcher, network, max_retries=3).drain())

    assert dispatcher.calls == [("CREATE_PROJECT", {"name": "offline_next"})]
    assert queue.failed_items()[0].retries == 3
