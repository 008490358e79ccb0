import logging
from typing import Optional

from tracker.domain import AppData
from tracker.storage import Storage, read_json, write_json
from tracker.transforms import clean_app_data

logger = logging.getLogger(__name__)


class LocalCache:
    """Durable mirror of the entity store for one scope."""

    def __init__(self, storage: Storage, scope: str):
        self.storage = storage
        self.key = f"localData_{scope}"

    def load(self) -> Optional[AppData]:
        raw = read_json(self.storage, self.key)
        if raw is None:
            return None
        return clean_app_data(raw)

    def save(self, data: AppData) -> None:
        write_json(self.storage, self.key, data.to_dict())
        logger.debug("Saved %s (%d incomes, %d expenses, %d segments)",
                     self.key, len(data.incomes), len(data.expenses), len(data.segments))

    def clear(self) -> None:
        self.storage.remove(self.key)
