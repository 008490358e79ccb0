import logging
from typing import Iterable, List

from tracker.domain import SyncAction
from tracker.storage import Storage, read_json, write_json

logger = logging.getLogger(__name__)


class SyncQueue:
    """Persisted FIFO of mutations waiting for the remote store.

    Every call reads the stored list afresh so the persisted blob is the only
    state; nothing is buffered in memory.
    """

    def __init__(self, storage: Storage, scope: str):
        self.storage = storage
        self.key = f"syncQueue_{scope}"

    def _raw(self) -> list:
        raw = read_json(self.storage, self.key, [])
        if not isinstance(raw, list):
            logger.warning("Discarding sync queue %r: expected a list", self.key)
            self.storage.remove(self.key)
            return []
        return raw

    def pending(self) -> List[SyncAction]:
        actions = []
        for index, item in enumerate(self._raw()):
            try:
                actions.append(SyncAction.from_dict(item))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed sync action at index %s: %s", index, exc)
        return actions

    def append(self, action: SyncAction) -> None:
        raw = self._raw()
        raw.append(action.to_dict())
        write_json(self.storage, self.key, raw)
        logger.debug("Queued %s %s %s (%d pending)",
                     action.kind.value, action.entity.value, action.target_id, len(raw))

    def discard(self, action_ids: Iterable[str]) -> None:
        """Drop the given actions, keeping anything queued after them."""
        done = set(action_ids)
        left = [
            item for item in self._raw()
            if not (isinstance(item, dict) and str(item.get("id")) in done)
        ]
        if left:
            write_json(self.storage, self.key, left)
        else:
            self.clear()

    def clear(self) -> None:
        self.storage.remove(self.key)

    def __len__(self) -> int:
        return len(self._raw())

    def is_empty(self) -> bool:
        return len(self) == 0
