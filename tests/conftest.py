import asyncio
from typing import Optional

import pytest

from tracker.cache import LocalCache
from tracker.connectivity import ConnectivityMonitor
from tracker.domain import AppData
from tracker.remote import RemoteError, RemoteStore, SimulatedRemote
from tracker.session import Session
from tracker.storage import MemoryStorage, Storage
from tracker.store import DataStore
from tracker.sync_queue import SyncQueue

SCOPE = "test"


class FlakyRemote(SimulatedRemote):
    """Simulated remote whose next N fetches/saves fail."""

    def __init__(self, storage: Storage, fail_fetches: int = 0, fail_saves: int = 0):
        super().__init__(storage, latency=0)
        self.fail_fetches = fail_fetches
        self.fail_saves = fail_saves
        self.saves = 0

    async def fetch(self, scope: str) -> Optional[AppData]:
        if self.fail_fetches:
            self.fail_fetches -= 1
            raise RemoteError("remote unavailable")
        return await super().fetch(scope)

    async def save(self, scope: str, data: AppData) -> None:
        if self.fail_saves:
            self.fail_saves -= 1
            raise RemoteError("remote unavailable")
        self.saves += 1
        await super().save(scope, data)


class HangingRemote(RemoteStore):

    async def fetch(self, scope: str) -> Optional[AppData]:
        await asyncio.Event().wait()

    async def save(self, scope: str, data: AppData) -> None:
        await asyncio.Event().wait()


def new_store(
    online: bool = True,
    local: Optional[Storage] = None,
    remote: Optional[RemoteStore] = None,
    sync_timeout: Optional[float] = None,
    retry_interval: Optional[float] = None,
) -> DataStore:
    session = Session(SCOPE)
    local = local or MemoryStorage()
    remote = remote or FlakyRemote(MemoryStorage())
    monitor = ConnectivityMonitor(session.bus, online=online)
    return DataStore(
        session, LocalCache(local, SCOPE), SyncQueue(local, SCOPE), remote, monitor,
        sync_timeout=sync_timeout, retry_interval=retry_interval,
    )


@pytest.fixture
def make_store():
    return new_store
