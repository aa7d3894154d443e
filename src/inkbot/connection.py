"""Backend reachability tracking."""

import logging
from typing import Callable

import httpx

from .config import HEALTH_TIMEOUT, normalize_base_url
from .core import ConnectionState

logger = logging.getLogger(__name__)


class ConnectionStatus:
    """Holder for the last known ConnectionState.

    One instance is shared by the monitor and the chat client so both
    report into the same place. Last write wins.
    """

    def __init__(self, state: ConnectionState = ConnectionState.UNKNOWN) -> None:
        self._state = state
        self.on_change: list[Callable[[ConnectionState], None]] = []

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def label(self) -> str:
        return self._state.label

    def set(self, state: ConnectionState) -> None:
        self._state = state
        for callback in self.on_change:
            callback(state)


class ConnectionMonitor:
    """Probes the backend health endpoint."""

    def __init__(
        self,
        status: ConnectionStatus,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = HEALTH_TIMEOUT,
    ) -> None:
        self.status = status
        self._transport = transport
        self._timeout = timeout

    async def probe(self, base_url: str) -> ConnectionState:
        """Run one health check against ``base_url`` and record the outcome."""
        url = f"{normalize_base_url(base_url)}/api/health"
        self.status.set(ConnectionState.TESTING)

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
                resp = await client.get(url)
        except Exception as e:
            logger.info("Health check against %s failed: %s", url, e)
            self.status.set(ConnectionState.ERROR)
            return self.status.state

        if resp.is_success:
            self.status.set(ConnectionState.CONNECTED)
        else:
            logger.info("Health check against %s returned %s", url, resp.status_code)
            self.status.set(ConnectionState.ERROR)
        return self.status.state
