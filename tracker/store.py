import asyncio
import logging
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from tracker.cache import LocalCache
from tracker.config import Settings
from tracker.connectivity import ConnectivityMonitor
from tracker.domain import (
    ActionKind,
    AppData,
    EntityKind,
    EntityRef,
    Expense,
    Income,
    Segment,
    SyncAction,
    make_entity,
    new_id,
)
from tracker.events import DATA_CHANGED
from tracker.functional import (
    Either,
    Right,
    can_delete_segment,
    find_by_id,
    validate_backup,
    validate_expense_segment,
)
from tracker import reports
from tracker.remote import RemoteStore, SimulatedRemote
from tracker.session import Session
from tracker.storage import FileStorage, Storage
from tracker.sync import TRANSIENT_ERRORS, SyncEngine
from tracker.sync_queue import SyncQueue
from tracker.transforms import (
    add_record,
    assign_default_colors,
    clean_app_data,
    default_color,
    remove_record,
    update_record,
)

logger = logging.getLogger(__name__)

SNAPSHOT_WAIT = 0.05


class DataStore:
    """In-memory incomes, expenses and segments for one session.

    Every mutation is applied optimistically, written to the local cache and
    then either pushed to the remote (online) or queued (offline). Reads
    always reflect the latest applied state.
    """

    def __init__(
        self,
        session: Session,
        cache: LocalCache,
        queue: SyncQueue,
        remote: RemoteStore,
        monitor: ConnectivityMonitor,
        sync_timeout: Optional[float] = None,
        retry_interval: Optional[float] = None,
    ):
        self.session = session
        self.cache = cache
        self.queue = queue
        self.remote = remote
        self.monitor = monitor
        self.engine = SyncEngine(
            session, remote, queue, monitor, on_merged=self._apply_merged,
            timeout=sync_timeout, retry_interval=retry_interval,
        )
        self._data = AppData.empty()
        self._pushing = 0
        self.is_loading = True

    # -- read access ---------------------------------------------------

    @property
    def data(self) -> AppData:
        return self._data

    @property
    def incomes(self) -> Tuple[Income, ...]:
        return self._data.incomes

    @property
    def expenses(self) -> Tuple[Expense, ...]:
        return self._data.expenses

    @property
    def segments(self) -> Tuple[Segment, ...]:
        return self._data.segments

    @property
    def is_online(self) -> bool:
        return self.monitor.is_online

    @property
    def is_syncing(self) -> bool:
        return self.engine.is_syncing or self._pushing > 0

    @property
    def total_income(self) -> float:
        return reports.total_income(self.incomes)

    @property
    def total_expenses(self) -> float:
        return reports.total_expenses(self.expenses)

    @property
    def balance(self) -> float:
        return reports.remaining_balance(self._data)

    def spent_by_segment(self) -> Dict[str, float]:
        return reports.spent_by_segment(self.expenses, self.segments)

    # -- lifecycle -----------------------------------------------------

    async def load(self) -> AppData:
        """Initial load: remote snapshot when there is one, else the local cache."""
        self.is_loading = True
        try:
            snapshot = None
            if self.monitor.is_online:
                try:
                    snapshot = await self.remote.fetch(self.session.scope)
                except TRANSIENT_ERRORS as exc:
                    logger.warning("Remote fetch failed during load, using local cache: %r", exc)
            if snapshot is None:
                snapshot = self.cache.load() or AppData.empty()
            self._set(snapshot)
        finally:
            self.is_loading = False
        if self.monitor.is_online and not self.queue.is_empty():
            self.session.spawn(self.engine.sync())
        return self._data

    def close(self) -> None:
        """Sign-out: drop in-memory state and stop background work."""
        self.session.close()
        self._data = AppData.empty()
        self._pushing = 0
        self.is_loading = True

    # -- internals -----------------------------------------------------

    def _set(self, data: AppData) -> None:
        data = data.with_collection(EntityKind.SEGMENT, assign_default_colors(data.segments))
        self._data = data
        self.cache.save(data)
        self.session.bus.publish(DATA_CHANGED, {"data": data})

    def _apply_merged(self, data: AppData) -> None:
        self._set(data)

    def _commit(self, data: AppData, kind: ActionKind, entity: EntityKind, payload) -> None:
        self._data = data
        self.cache.save(data)
        self.session.bus.publish(DATA_CHANGED, {"data": data})
        action = SyncAction(id=new_id(), kind=kind, entity=entity, payload=payload)
        if not self.monitor.is_online:
            self.queue.append(action)
            return
        if self.engine.is_syncing or not self.queue.is_empty():
            # keep ordering behind actions that have not reached the remote yet
            self.queue.append(action)
            self.session.spawn(self.engine.sync())
            return
        self.session.spawn(self._push(data, action))

    async def _push(self, data: AppData, action: SyncAction) -> None:
        self._pushing += 1
        try:
            await self.remote.save(self.session.scope, data)
        except TRANSIENT_ERRORS as exc:
            logger.warning("Remote write failed, queueing %s %s: %r",
                           action.kind.value, action.entity.value, exc)
            self.queue.append(action)
            return
        finally:
            self._pushing -= 1
        await self.engine.sync()

    def _add(self, entity: EntityKind, values: Mapping[str, Any]):
        record = make_entity(entity, new_id(), values)
        records = add_record(self._data.collection(entity), record)
        self._commit(self._data.with_collection(entity, records), ActionKind.ADD, entity, record)
        return record

    def _update(self, entity: EntityKind, record_id: str, values: Mapping[str, Any]):
        record = make_entity(entity, record_id, values)
        records = self._data.collection(entity)
        if find_by_id(records, record_id).is_none():
            logger.debug("Update of unknown %s %s; only the action is recorded", entity.value, record_id)
        self._commit(
            self._data.with_collection(entity, update_record(records, record)),
            ActionKind.UPDATE, entity, record,
        )
        return record

    def _delete(self, entity: EntityKind, record_id: str) -> None:
        records = remove_record(self._data.collection(entity), record_id)
        self._commit(
            self._data.with_collection(entity, records),
            ActionKind.DELETE, entity, EntityRef(record_id),
        )

    # -- mutators ------------------------------------------------------

    def add_income(self, values: Mapping[str, Any]) -> Either[dict, Income]:
        return Right(self._add(EntityKind.INCOME, values))

    def update_income(self, income_id: str, values: Mapping[str, Any]) -> Income:
        return self._update(EntityKind.INCOME, income_id, values)

    def delete_income(self, income_id: str) -> None:
        self._delete(EntityKind.INCOME, income_id)

    def add_expense(self, values: Mapping[str, Any]) -> Either[dict, Expense]:
        return validate_expense_segment(values.get("segment_id"), self.segments).map(
            lambda _: self._add(EntityKind.EXPENSE, values)
        )

    def update_expense(self, expense_id: str, values: Mapping[str, Any]) -> Expense:
        return self._update(EntityKind.EXPENSE, expense_id, values)

    def delete_expense(self, expense_id: str) -> None:
        self._delete(EntityKind.EXPENSE, expense_id)

    def add_segment(self, values: Mapping[str, Any]) -> Either[dict, Segment]:
        if not values.get("color"):
            values = {**values, "color": default_color(len(self.segments))}
        return Right(self._add(EntityKind.SEGMENT, values))

    def update_segment(self, segment_id: str, values: Mapping[str, Any]) -> Segment:
        if not values.get("color"):
            current = find_by_id(self.segments, segment_id)
            color = current.map(lambda s: s.color).get_or_else(None)
            values = {**values, "color": color or default_color(len(self.segments))}
        return self._update(EntityKind.SEGMENT, segment_id, values)

    def delete_segment(self, segment_id: str) -> Either[dict, str]:
        refusal = can_delete_segment(segment_id, self.expenses)
        if refusal.is_left():
            logger.info("Refused to delete segment %s: %s", segment_id, refusal.get_error()["message"])
            return refusal
        self._delete(EntityKind.SEGMENT, segment_id)
        return refusal

    def replace_all_data(self, raw: Union[AppData, Mapping[str, Any]]) -> Either[dict, AppData]:
        """Full-backup import: overwrite everything and forget pending actions."""
        if isinstance(raw, AppData):
            raw = raw.to_dict()
        checked = validate_backup(raw)
        if checked.is_left():
            logger.info("Rejected backup import: %s", checked.get_error()["message"])
            return checked
        self.engine.data_replaced()
        self._set(clean_app_data(dict(checked.get_or_else(raw))))
        self.queue.clear()
        if self.monitor.is_online:
            logger.info("Full data import, pushing snapshot to remote")
            self.session.spawn(self._push_snapshot(self._data))
        return Right(self._data)

    async def _push_snapshot(self, data: AppData) -> None:
        self._pushing += 1
        try:
            while self.engine.is_syncing:
                # a pass in flight still holds the remote; it drops itself once it sees the import
                await asyncio.sleep(SNAPSHOT_WAIT)
            await self.remote.save(self.session.scope, data)
        finally:
            self._pushing -= 1


def build_store(
    settings: Settings,
    session: Session,
    storage: Optional[Storage] = None,
    remote: Optional[RemoteStore] = None,
    online: bool = True,
) -> DataStore:
    """Wire cache, queue, remote and connectivity for ``session``."""
    storage = storage or FileStorage(settings.data_dir / "local")
    if remote is None:
        remote = SimulatedRemote(FileStorage(settings.data_dir / "remote"), latency=settings.remote_latency)
    monitor = ConnectivityMonitor(
        session.bus, online=online, probe_host=settings.probe_host, probe_port=settings.probe_port
    )
    return DataStore(
        session,
        LocalCache(storage, session.scope),
        SyncQueue(storage, session.scope),
        remote,
        monitor,
        sync_timeout=settings.sync_timeout,
        retry_interval=settings.retry_interval,
    )
