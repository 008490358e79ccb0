from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, NamedTuple

__all__ = [
    'Event', 'EventBus',
    'ONLINE', 'OFFLINE', 'DATA_CHANGED',
    'SYNC_STARTED', 'SYNC_FINISHED', 'SYNC_FAILED', 'UPDATE_OF_MISSING',
]

ONLINE = "ONLINE"
OFFLINE = "OFFLINE"
DATA_CHANGED = "DATA_CHANGED"
SYNC_STARTED = "SYNC_STARTED"
SYNC_FINISHED = "SYNC_FINISHED"
SYNC_FAILED = "SYNC_FAILED"
UPDATE_OF_MISSING = "UPDATE_OF_MISSING"


class Event(NamedTuple):
    name: str
    ts: str
    payload: dict


Handler = Callable[[Event, dict], Any]


class EventBus:
    """Synchronous publish/subscribe; one bus per session."""

    def __init__(self):
        self._subscribers: Dict[str, List[Handler]] = {}

    def subscribe(self, name: str, handler: Handler) -> None:
        self._subscribers.setdefault(name, []).append(handler)

    def unsubscribe(self, name: str, handler: Handler) -> None:
        handlers = self._subscribers.get(name, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, name: str, payload: dict = None) -> List[Any]:
        handlers = list(self._subscribers.get(name, []))
        if not handlers:
            return []
        payload = payload or {}
        event = Event(name=name, ts=datetime.now(timezone.utc).isoformat(), payload=payload)
        return [handler(event, payload) for handler in handlers]

    def clear(self) -> None:
        self._subscribers.clear()
