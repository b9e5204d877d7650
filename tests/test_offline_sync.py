import asyncio

import pytest
from sqlalchemy.exc import SQLAlchemyError

from conftest import FakeDispatcher
from core.errors import NoConnectionError
from core.settings import SyncSettings
from models.optimistic import Insert
from services.connectivity import NetworkStatus
from services.offline_sync import OfflineSync, single_mutation_sync


def _sync(storage, dispatcher, network, notifier, timer, **kwargs):
    sync = OfflineSync(
        storage,
        dispatcher,
        network=network,
        notifier=notifier,
        timer=timer,
        **kwargs,
    )
    sync.start()
    return sync


def test_offline_write_syncs_after_reconnect(storage, notifier, timer):
    network = NetworkStatus(online=False)
    dispatcher = FakeDispatcher()
    sync = _sync(storage, dispatcher, network, notifier, timer)

    item_id = sync.queue_operation({"type": "CREATE_PROJECT", "data": {"name": "Tower A"}})

    assert item_id is not None
    assert sync.stats.pending == 1
    assert timer.active == []

    network.set_online(True)
    assert [handle.delay for handle in timer.active] == [2.0]

    report = asyncio.run(timer.fire_next())

    assert report.succeeded == [item_id]
    assert dispatcher.calls == [("CREATE_PROJECT", {"name": "Tower A"})]
    assert sync.stats.total == 0
    assert notifier.titles() == ["Sync Complete"]
    assert notifier.notices[0].description == "1 offline changes synchronized"


def test_rejected_writes_fail_after_three_attempts(storage, network, notifier, timer):
    dispatcher = FakeDispatcher(fail_all=True)
    sync = _sync(storage, dispatcher, network, notifier, timer)
    for name in ("A", "B", "C"):
        sync.queue_operation({"type": "CREATE_PROJECT", "data": {"name": name}})
    assert [handle.delay for handle in timer.active] == [0.1]

    asyncio.run(timer.fire_next())
    assert [handle.delay for handle in timer.active] == [3.0]
    assert sync.stats.retry == 3

    asyncio.run(timer.fire_next())
    assert [handle.delay for handle in timer.active] == [10.0]

    asyncio.run(timer.fire_next())

    assert timer.active == []
    assert len(dispatcher.calls) == 9
    stats = sync.stats
    assert (stats.total, stats.pending, stats.retry, stats.failed) == (3, 0, 0, 3)
    assert stats.needs_attention is True
    assert notifier.titles() == ["Sync Failed"]
    assert notifier.notices[0].description == "3 items could not be synchronized"


def test_item_queued_during_a_pass_gets_its_own_drain(storage, network, notifier, timer):
    class EnqueueingDispatcher(FakeDispatcher):
        async def invoke(self, operation_type, payload):
            if payload.get("name") == "first":
                sync.queue_operation({"type": "CREATE_PROJECT", "data": {"name": "late"}})
                # the armed timer fires while the pass is still running
                assert await timer.fire_next() is None
            return await super().invoke(operation_type, payload)

    dispatcher = EnqueueingDispatcher()
    sync = _sync(storage, dispatcher, network, notifier, timer)
    sync.queue_operation({"type": "CREATE_PROJECT", "data": {"name": "first"}})

    asyncio.run(timer.fire_next())

    assert sync.stats.pending == 1
    assert [handle.delay for handle in timer.active] == [1.0]

    asyncio.run(timer.fire_next())

    assert [payload["name"] for _, payload in dispatcher.calls] == ["first", "late"]
    assert sync.stats.total == 0
    assert timer.active == []


def test_retry_failed_requeues_and_schedules(storage, network, notifier, timer):
    sync = _sync(
        storage,
        FakeDispatcher(fail_all=True),
        network,
        notifier,
        timer,
        settings=SyncSettings(max_retries=1),
    )
    sync.queue_operation({"type": "CREATE_NOTICE", "data": {"title": "Crane"}})
    asyncio.run(timer.fire_next())
    assert sync.stats.failed == 1

    assert sync.retry_failed() == 1

    assert sync.stats.pending == 1
    assert sync.stats.failed == 0
    assert [handle.delay for handle in timer.active] == [1.0]


def test_retry_failed_with_nothing_failed(storage, network, notifier, timer):
    sync = _sync(storage, FakeDispatcher(), network, notifier, timer)
    assert sync.retry_failed() == 0
    assert timer.active == []


def test_manual_sync_offline_raises(storage, notifier, timer):
    sync = _sync(storage, FakeDispatcher(), NetworkStatus(online=False), notifier, timer)
    sync.queue_operation({"type": "CREATE_PROJECT", "data": {}})

    with pytest.raises(NoConnectionError):
        asyncio.run(sync.manual_sync())

    assert notifier.titles() == ["No Connection"]
    assert sync.stats.pending == 1


def test_manual_sync_online_drains(storage, network, notifier, timer):
    dispatcher = FakeDispatcher()
    sync = _sync(storage, dispatcher, network, notifier, timer)
    sync.queue_operation({"type": "CREATE_TIMESHEET", "data": {"hours": 8}})

    report = asyncio.run(sync.manual_sync())

    assert report.success_count == 1
    assert sync.last_sync_attempt is not None
    assert sync.is_syncing is False


def test_invalid_operation_is_rejected(storage, network, notifier, timer):
    sync = _sync(storage, FakeDispatcher(), network, notifier, timer)

    assert sync.queue_operation({"type": "DROP_TABLES", "data": {}}) is None
    assert sync.queue_operation({"data": {}}) is None

    assert sync.stats.total == 0
    assert timer.active == []


def test_clear_queue(storage, network, notifier, timer):
    sync = _sync(storage, FakeDispatcher(), network, notifier, timer)
    sync.queue_optimistic(
        {"type": "CREATE_PROJECT", "data": {"name": "Tower A"}},
        Insert({"id": "temp_1", "name": "Tower A"}),
    )

    sync.clear_queue()

    assert sync.stats.total == 0
    assert sync.view([]) == []
    assert timer.active == []
    assert notifier.titles() == ["Queue Cleared"]
    assert storage.get("cms_offline_queue") is None


def test_optimistic_overlay_confirmed_on_success(storage, network, notifier, timer):
    sync = _sync(storage, FakeDispatcher(), network, notifier, timer)
    sync.queue_optimistic(
        {"type": "CREATE_PROJECT", "data": {"name": "Tower A"}},
        Insert({"id": "temp_1", "name": "Tower A"}),
    )
    assert sync.view([]) == [{"id": "temp_1", "name": "Tower A"}]

    asyncio.run(timer.fire_next())

    assert sync.view([]) == []
    assert not sync.optimistic.has_optimistic_updates


def test_optimistic_overlay_rolled_back_on_failure(storage, network, notifier, timer):
    sync = _sync(
        storage,
        FakeDispatcher(fail_all=True),
        network,
        notifier,
        timer,
        settings=SyncSettings(max_retries=2),
    )
    sync.queue_optimistic(
        {"type": "CREATE_PROJECT", "data": {"name": "Tower A"}},
        Insert({"id": "temp_1", "name": "Tower A"}),
    )

    asyncio.run(timer.fire_next())
    # still retrying, so the overlay stays
    assert sync.view([]) == [{"id": "temp_1", "name": "Tower A"}]

    asyncio.run(timer.fire_next())
    assert sync.view([]) == []


def test_storage_errors_surface_as_notice(storage, network, notifier, timer):
    sync = _sync(storage, FakeDispatcher(), network, notifier, timer)
    sync.queue_operation({"type": "CREATE_PROJECT", "data": {}})

    async def broken_drain():
        raise SQLAlchemyError("database is locked")

    sync.processor.drain = broken_drain

    assert asyncio.run(sync.process_queue()) is None
    assert notifier.titles() == ["Sync Error"]


def test_start_schedules_leftover_items(storage, network, notifier, timer):
    offline = NetworkStatus(online=False)
    first = _sync(storage, FakeDispatcher(), offline, notifier, timer)
    first.queue_operation({"type": "CREATE_PROJECT", "data": {}})
    first.close()

    second = _sync(storage, FakeDispatcher(), network, notifier, timer)

    assert second.stats.pending == 1
    assert [handle.delay for handle in timer.active] == [2.0]


def test_going_offline_cancels_pending_drain(storage, network, notifier, timer):
    sync = _sync(storage, FakeDispatcher(), network, notifier, timer)
    sync.queue_operation({"type": "CREATE_PROJECT", "data": {}})

    network.set_online(False)

    assert timer.active == []
    assert notifier.titles() == ["Offline Mode"]
    assert sync.status() == {
        "isOnline": False,
        "isSyncing": False,
        "lastSyncAttempt": None,
        "stats": {
            "total": 1,
            "pending": 1,
            "retry": 0,
            "failed": 0,
            "hasItems": True,
            "needsAttention": False,
        },
    }


class RecordingClient:
    def __init__(self):
        self.calls = []

    async def mutation(self, path, args):
        self.calls.append((path, args))
        return None


def test_single_mutation_sync(storage, network, notifier, timer):
    client = RecordingClient()
    sync = single_mutation_sync(
        storage,
        client,
        "sync:syncOfflineData",
        network=network,
        notifier=notifier,
        timer=timer,
    )
    sync.start()

    sync.queue_operation({"type": "saveDraft", "data": {"id": "d1"}})
    assert storage.get("convex_offline_queue") is not None
    assert storage.get("cms_offline_queue") is None

    asyncio.run(timer.fire_next())

    assert client.calls == [
        ("sync:syncOfflineData", {"type": "saveDraft", "data": {"id": "d1"}})
    ]
    assert sync.stats.total == 0
