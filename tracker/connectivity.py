import asyncio
import logging
from typing import Optional

from tracker.events import OFFLINE, ONLINE, EventBus

logger = logging.getLogger(__name__)


def sync_status(is_online: bool, is_syncing: bool) -> Optional[str]:
    """Status line for the UI; None when there is nothing to report."""
    if is_syncing:
        return "Syncing changes..."
    if not is_online:
        return "You are offline. Changes will be synced later."
    return None


class ConnectivityMonitor:
    """Tracks online/offline state and announces transitions on the bus."""

    def __init__(
        self,
        bus: EventBus,
        online: bool = True,
        probe_host: Optional[str] = None,
        probe_port: int = 53,
        probe_timeout: float = 3.0,
    ):
        self.bus = bus
        self._online = online
        self.probe_host = probe_host
        self.probe_port = probe_port
        self.probe_timeout = probe_timeout

    @property
    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> bool:
        """Record a connectivity signal. Returns True when the state changed."""
        online = bool(online)
        if online == self._online:
            return False
        self._online = online
        logger.info("Connectivity changed: %s", "online" if online else "offline")
        self.bus.publish(ONLINE if online else OFFLINE, {"online": online})
        return True

    async def probe(self) -> bool:
        """Try a TCP connection to the probe host and record the outcome."""
        if not self.probe_host:
            return self._online
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.probe_host, self.probe_port),
                timeout=self.probe_timeout,
            )
        except (OSError, asyncio.TimeoutError) as exc:
            logger.debug("Probe of %s:%s failed: %s", self.probe_host, self.probe_port, exc)
            reachable = False
        else:
            writer.close()
            await writer.wait_closed()
            reachable = True
        self.set_online(reachable)
        return reachable
