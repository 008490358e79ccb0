import logging
from typing import Any, Callable, Iterable, List, NamedTuple, Optional, Tuple

from tracker.domain import (
    ActionKind,
    AppData,
    COLLECTIONS,
    ENTITY_TYPES,
    EntityKind,
    Segment,
    SyncAction,
)

logger = logging.getLogger(__name__)

DEFAULT_COLORS = ('#38BDF8', '#FBBF24', '#22C55E', '#8B5CF6', '#EC4899', '#EF4444')


def add_record(records: tuple, record) -> tuple:
    return records + (record,)


def update_record(records: tuple, record) -> tuple:
    return tuple(record if r.id == record.id else r for r in records)


def remove_record(records: tuple, record_id: str) -> tuple:
    return tuple(r for r in records if r.id != record_id)


def upsert_record(records: tuple, record) -> Tuple[tuple, bool]:
    """Replace by id, or append when missing. Returns (records, found)."""
    for index, r in enumerate(records):
        if r.id == record.id:
            return records[:index] + (record,) + records[index + 1:], True
    return records + (record,), False


def default_color(position: int) -> str:
    return DEFAULT_COLORS[position % len(DEFAULT_COLORS)]


def assign_default_colors(segments: Iterable[Segment]) -> Tuple[Segment, ...]:
    return tuple(
        s if s.color else Segment(s.id, s.name, s.allocated_amount, default_color(index))
        for index, s in enumerate(segments)
    )


def clean_app_data(raw: Any) -> AppData:
    """Best-effort AppData from untrusted storage.

    Missing or non-list collections become empty, falsy or malformed entries
    are dropped.
    """
    if not isinstance(raw, dict):
        return AppData.empty()
    data = AppData.empty()
    for kind in EntityKind:
        items = raw.get(COLLECTIONS[kind])
        if not isinstance(items, list):
            continue
        parsed = []
        for index, item in enumerate(items):
            if not item:
                continue
            try:
                parsed.append(ENTITY_TYPES[kind].from_dict(item))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Dropping malformed %s at index %s: %s", kind.value, index, exc)
        data = data.with_collection(kind, parsed)
    return data


def apply_action(data: AppData, action: SyncAction) -> Tuple[AppData, bool]:
    """Apply one queued action to a snapshot.

    Returns the new snapshot and whether the action's target was found.
    Adds always count as found; an add whose id is already present replaces
    that record, so ids stay unique. An update of a missing record is appended.
    """
    records = data.collection(action.entity)
    if action.kind is ActionKind.ADD:
        records, existed = upsert_record(records, action.payload)
        if existed:
            logger.debug("%s %s already present, add replaces it", action.entity.value, action.target_id)
        return data.with_collection(action.entity, records), True
    if action.kind is ActionKind.UPDATE:
        records, found = upsert_record(records, action.payload)
        return data.with_collection(action.entity, records), found
    remaining = remove_record(records, action.target_id)
    return data.with_collection(action.entity, remaining), len(remaining) != len(records)


class ReplayOutcome(NamedTuple):
    data: AppData
    missing_updates: Tuple[SyncAction, ...]


def replay(
    data: AppData,
    actions: Iterable[SyncAction],
    on_missing_update: Optional[Callable[[SyncAction], Any]] = None,
) -> ReplayOutcome:
    """Replay ``actions`` in order against ``data``."""
    missing: List[SyncAction] = []
    for action in actions:
        logger.debug("Replaying %s %s %s", action.kind.value, action.entity.value, action.target_id)
        data, found = apply_action(data, action)
        if not found and action.kind is ActionKind.UPDATE:
            missing.append(action)
            if on_missing_update is not None:
                on_missing_update(action)
    return ReplayOutcome(data, tuple(missing))
