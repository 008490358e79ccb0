import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Optional

from tracker.domain import AppData
from tracker.storage import Storage, StorageError
from tracker.transforms import clean_app_data

logger = logging.getLogger(__name__)

DEFAULT_LATENCY = 1.5


class RemoteError(Exception):
    """The remote store could not complete a fetch or save."""


class RemoteStore(ABC):
    """Remote durable sink for a scope's AppData."""

    @abstractmethod
    async def fetch(self, scope: str) -> Optional[AppData]:
        pass

    @abstractmethod
    async def save(self, scope: str, data: AppData) -> None:
        pass


class SimulatedRemote(RemoteStore):
    """Stand-in backend: a storage blob behind a fixed delay."""

    def __init__(self, storage: Storage, latency: float = DEFAULT_LATENCY):
        self.storage = storage
        self.latency = latency

    @staticmethod
    def key(scope: str) -> str:
        return f"cloud_sync_mock_{scope}"

    async def fetch(self, scope: str) -> Optional[AppData]:
        await asyncio.sleep(self.latency)
        logger.info("Fetching remote data for %s", scope)
        try:
            raw = self.storage.get(self.key(scope))
            if raw is None:
                logger.info("No remote data for %s", scope)
                return None
            return clean_app_data(json.loads(raw))
        except StorageError as exc:
            raise RemoteError(str(exc)) from exc
        except ValueError as exc:
            logger.error("Failed to parse remote data for %s: %s", scope, exc)
            return None

    async def save(self, scope: str, data: AppData) -> None:
        await asyncio.sleep(self.latency)
        logger.info("Saving remote data for %s", scope)
        try:
            self.storage.set(self.key(scope), json.dumps(data.to_dict(), ensure_ascii=False))
        except StorageError as exc:
            raise RemoteError(str(exc)) from exc
