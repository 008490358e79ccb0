"""Reconciliation of the local sync queue with the remote store.

A pass fetches the remote snapshot, replays every queued action on it in
insertion order, saves the result back, hands it to the entity store and
only then drops the replayed actions from the queue. A failure anywhere
before the save leaves the queue untouched for the next pass.
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable, NamedTuple, Optional, Tuple

from tracker.connectivity import ConnectivityMonitor
from tracker.domain import AppData, SyncAction
from tracker.events import (
    ONLINE,
    SYNC_FAILED,
    SYNC_FINISHED,
    SYNC_STARTED,
    UPDATE_OF_MISSING,
)
from tracker.remote import RemoteError, RemoteStore
from tracker.session import Session
from tracker.storage import StorageError
from tracker.sync_queue import SyncQueue
from tracker.transforms import replay

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (RemoteError, StorageError, asyncio.TimeoutError, OSError)


class SyncResult(NamedTuple):
    applied: int
    missing_updates: Tuple[str, ...]
    data: AppData


class SyncEngine:

    def __init__(
        self,
        session: Session,
        remote: RemoteStore,
        queue: SyncQueue,
        monitor: ConnectivityMonitor,
        on_merged: Callable[[AppData], None],
        timeout: Optional[float] = None,
        retry_interval: Optional[float] = None,
    ):
        self.session = session
        self.remote = remote
        self.queue = queue
        self.monitor = monitor
        self.on_merged = on_merged
        self.timeout = timeout
        self.retry_interval = retry_interval
        self._syncing = False
        self._generation = 0
        self._last_attempt: Optional[float] = None
        session.bus.subscribe(ONLINE, self._on_online)

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    def _on_online(self, event, payload):
        return self.session.spawn(self.sync())

    async def _bounded(self, call: Awaitable):
        if self.timeout is None:
            return await call
        return await asyncio.wait_for(call, self.timeout)

    def _report_missing(self, action: SyncAction) -> None:
        logger.warning(
            "Update of missing %s %s during sync; appending it instead",
            action.entity.value, action.target_id,
        )
        self.session.bus.publish(
            UPDATE_OF_MISSING, {"entity": action.entity.value, "id": action.target_id}
        )

    def data_replaced(self) -> None:
        """Mark the local data as wholesale replaced; a pass in flight is dropped."""
        self._generation += 1

    def _stale(self, generation: int) -> bool:
        if generation == self._generation:
            return False
        logger.info("Local data was replaced during sync; dropping this pass")
        return True

    async def sync(self) -> Optional[SyncResult]:
        """Run one reconciliation pass.

        Returns None when there was nothing to do (offline, already syncing or
        empty queue) or when the local data was replaced mid-pass. Remote
        failures propagate after the busy flag is reset.
        """
        if not self.monitor.is_online or self._syncing:
            return None
        actions = self.queue.pending()
        if not actions:
            return None

        self._syncing = True
        self._last_attempt = time.monotonic()
        generation = self._generation
        scope = self.session.scope
        bus = self.session.bus
        logger.info("Starting sync for %d item(s)", len(actions))
        bus.publish(SYNC_STARTED, {"pending": len(actions)})
        try:
            snapshot = await self._bounded(self.remote.fetch(scope))
            if self._stale(generation):
                return None
            outcome = replay(snapshot or AppData.empty(), actions, self._report_missing)
            await self._bounded(self.remote.save(scope, outcome.data))
            if self._stale(generation):
                return None
            self.on_merged(outcome.data)
            if len(self.queue) == len(actions):
                self.queue.clear()
            else:
                self.queue.discard(a.id for a in actions)
        except TRANSIENT_ERRORS as exc:
            logger.warning("Sync failed, %d item(s) stay queued: %r", len(actions), exc)
            bus.publish(SYNC_FAILED, {"pending": len(actions), "error": repr(exc)})
            raise
        finally:
            self._syncing = False

        missing = tuple(a.target_id for a in outcome.missing_updates)
        logger.info("Sync completed successfully")
        bus.publish(SYNC_FINISHED, {"applied": len(actions), "missing_updates": list(missing)})
        if self.monitor.is_online and not self.queue.is_empty():
            # mutations queued while this pass was in flight
            self.session.spawn(self.sync())
        return SyncResult(len(actions), missing, outcome.data)

    async def retry(self) -> Optional[SyncResult]:
        logger.info("Manual sync retry requested (%d pending)", len(self.queue))
        return await self.sync()

    def retry_due(self, now: Optional[float] = None) -> bool:
        """True when queued work is waiting and ``retry_interval`` has passed since the last pass."""
        if self.retry_interval is None or self._syncing:
            return False
        if not self.monitor.is_online or self.queue.is_empty():
            return False
        if self._last_attempt is None:
            return True
        now = time.monotonic() if now is None else now
        return now - self._last_attempt >= self.retry_interval
