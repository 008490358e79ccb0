import asyncio
import logging
import time

import pytest

from conftest import SCOPE, FlakyRemote, HangingRemote, new_store
from tracker.domain import ActionKind, AppData, EntityKind, EntityRef, Income, SyncAction
from tracker.events import SYNC_FAILED, SYNC_FINISHED, UPDATE_OF_MISSING
from tracker.remote import RemoteError
from tracker.storage import MemoryStorage


def income(id, amount=100):
    return Income(id=id, title="Salary", amount=amount, date="2024-01-01")


def queued(n, kind, payload):
    return SyncAction(id=f"a{n}", kind=kind, entity=EntityKind.INCOME, payload=payload)


@pytest.mark.asyncio
async def test_sync_is_a_noop_when_offline_or_queue_empty():
    store = new_store(online=True)
    assert await store.engine.sync() is None

    offline = new_store(online=False)
    offline.queue.append(queued(1, ActionKind.ADD, income("i1")))
    assert await offline.engine.sync() is None
    assert len(offline.queue) == 1


@pytest.mark.asyncio
async def test_sync_replays_queue_on_remote_snapshot():
    remote = FlakyRemote(MemoryStorage())
    await remote.save(SCOPE, AppData(incomes=(income("remote", 7),)))
    store = new_store(remote=remote)
    store.queue.append(queued(1, ActionKind.ADD, income("i1")))
    store.queue.append(queued(2, ActionKind.UPDATE, income("remote", 9)))

    result = await store.engine.sync()

    assert result.applied == 2
    assert [(i.id, i.amount) for i in result.data.incomes] == [("remote", 9), ("i1", 100)]
    assert (await remote.fetch(SCOPE)).incomes == result.data.incomes
    assert store.incomes == result.data.incomes
    assert store.cache.load().incomes == result.data.incomes
    assert store.queue.is_empty()
    assert not store.engine.is_syncing


@pytest.mark.asyncio
async def test_update_of_missing_is_reported(caplog):
    store = new_store()
    events = []
    store.session.bus.subscribe(UPDATE_OF_MISSING, lambda e, p: events.append(p))
    store.queue.append(queued(1, ActionKind.UPDATE, income("ghost")))

    with caplog.at_level(logging.WARNING, logger="tracker.sync"):
        result = await store.engine.sync()

    assert result.missing_updates == ("ghost",)
    assert events == [{"entity": "income", "id": "ghost"}]
    assert "Update of missing income ghost" in caplog.text
    assert store.incomes == (income("ghost"),)


@pytest.mark.asyncio
async def test_failed_save_keeps_queue_and_clears_busy_flag():
    remote = FlakyRemote(MemoryStorage(), fail_saves=1)
    store = new_store(remote=remote)
    store.queue.append(queued(1, ActionKind.ADD, income("i1")))
    failures = []
    store.session.bus.subscribe(SYNC_FAILED, lambda e, p: failures.append(p))

    with pytest.raises(RemoteError):
        await store.engine.sync()

    assert not store.engine.is_syncing
    assert len(store.queue) == 1
    assert store.incomes == ()
    assert failures and failures[0]["pending"] == 1

    result = await store.engine.retry()
    assert result.applied == 1
    assert store.queue.is_empty()
    assert store.incomes == (income("i1"),)


@pytest.mark.asyncio
async def test_hung_remote_times_out():
    store = new_store(remote=HangingRemote(), sync_timeout=0.01)
    store.queue.append(queued(1, ActionKind.ADD, income("i1")))

    with pytest.raises(asyncio.TimeoutError):
        await store.engine.sync()

    assert not store.engine.is_syncing
    assert len(store.queue) == 1


@pytest.mark.asyncio
async def test_overlapping_passes_do_not_double_apply():
    remote = FlakyRemote(MemoryStorage())
    store = new_store(remote=remote)
    store.queue.append(queued(1, ActionKind.ADD, income("i1")))

    first = asyncio.ensure_future(store.engine.sync())
    await asyncio.sleep(0)
    assert store.engine.is_syncing
    assert await store.engine.sync() is None
    await first

    assert (await remote.fetch(SCOPE)).incomes == (income("i1"),)
    assert remote.saves == 1


@pytest.mark.asyncio
async def test_actions_queued_during_a_pass_survive():
    remote = FlakyRemote(MemoryStorage())
    store = new_store(remote=remote)
    store.queue.append(queued(1, ActionKind.ADD, income("i1")))

    first = asyncio.ensure_future(store.engine.sync())
    await asyncio.sleep(0)
    store.queue.append(queued(2, ActionKind.ADD, income("i2")))
    await first
    await store.session.drain()

    assert store.queue.is_empty()
    assert [i.id for i in (await remote.fetch(SCOPE)).incomes] == ["i1", "i2"]


@pytest.mark.asyncio
async def test_going_online_triggers_sync():
    store = new_store(online=False)
    finished = []
    store.session.bus.subscribe(SYNC_FINISHED, lambda e, p: finished.append(p))
    store.queue.append(queued(1, ActionKind.ADD, income("i1")))
    store.queue.append(queued(2, ActionKind.DELETE, EntityRef("i1")))

    store.monitor.set_online(True)
    await store.session.drain()

    assert finished == [{"applied": 2, "missing_updates": []}]
    assert store.queue.is_empty()
    assert store.incomes == ()


def test_retry_is_due_only_after_the_interval():
    remote = FlakyRemote(MemoryStorage(), fail_fetches=1)
    store = new_store(remote=remote, retry_interval=60)
    engine = store.engine
    assert not engine.retry_due()

    store.queue.append(queued(1, ActionKind.ADD, income("i1")))
    assert engine.retry_due()

    with pytest.raises(RemoteError):
        asyncio.run(engine.retry())
    assert not engine.retry_due()
    assert engine.retry_due(now=time.monotonic() + 61)

    store.monitor.set_online(False)
    assert not engine.retry_due(now=time.monotonic() + 61)


def test_retry_without_interval_is_never_due():
    store = new_store()
    store.queue.append(queued(1, ActionKind.ADD, income("i1")))
    assert not store.engine.retry_due()


@pytest.mark.asyncio
async def test_pass_dropped_when_data_replaced_during_save():
    remote = FlakyRemote(MemoryStorage())
    store = new_store(remote=remote)
    store.queue.append(queued(1, ActionKind.ADD, income("i1")))
    merged = []
    store.engine.on_merged = merged.append

    async def replace_while_saving(scope, data):
        store.engine.data_replaced()

    remote.save = replace_while_saving
    assert await store.engine.sync() is None
    assert merged == []
    assert len(store.queue) == 1
    assert not store.engine.is_syncing
