"""Durable key-value storage for serialized blobs.

Two backends share the ``Storage`` interface: ``FileStorage`` keeps one
JSON file per key under a directory and replaces it atomically on every
write, ``MemoryStorage`` keeps strings in a dict (tests, simulated remote).
"""
import json
import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.@-]+$")


class StorageError(Exception):
    pass


def check_key(key: str) -> str:
    if not _KEY_PATTERN.match(key):
        raise ValueError(f"invalid storage key: {key!r}")
    return key


class Storage(ABC):

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        pass


class MemoryStorage(Storage):

    def __init__(self):
        self._items: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._items.get(check_key(key))

    def set(self, key: str, value: str) -> None:
        self._items[check_key(key)] = value

    def remove(self, key: str) -> None:
        self._items.pop(check_key(key), None)

    def keys(self):
        return sorted(self._items)


class FileStorage(Storage):

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{check_key(key)}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"cannot read {path}: {exc}") from exc

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=f".{key}_", suffix=".json", dir=self.directory)
        except OSError as exc:
            raise StorageError(f"cannot write {path}: {exc}") from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except OSError as exc:
            raise StorageError(f"cannot write {path}: {exc}") from exc
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass


def read_json(storage: Storage, key: str, fallback: Any = None) -> Any:
    """Load a JSON blob; unparseable content is discarded and ``fallback`` returned."""
    try:
        raw = storage.get(key)
        if raw is None:
            return fallback
        return json.loads(raw)
    except ValueError as exc:
        # JSONDecodeError and UnicodeDecodeError both land here
        logger.warning("Discarding corrupted entry %r: %s", key, exc)
        storage.remove(key)
        return fallback


def write_json(storage: Storage, key: str, value: Any) -> None:
    storage.set(key, json.dumps(value, ensure_ascii=False))
