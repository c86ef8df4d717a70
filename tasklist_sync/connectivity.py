"""Network reachability tracking with edge-triggered transition events."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

import httpx

logger = logging.getLogger(__name__)

DEFAULT_PROBE_URL = "https://www.google.com/generate_204"


@dataclass(frozen=True)
class ConnectivitySnapshot:
    """Raw platform report: link state and whether the internet answers."""

    connected: bool
    internet_reachable: bool | None = None

    @property
    def is_connected(self) -> bool:
        # A LAN link without an internet route counts as offline.
        return self.connected and self.internet_reachable is True


OFFLINE = ConnectivitySnapshot(connected=False, internet_reachable=False)


class ConnectivityEvent(str, Enum):
    BECAME_REACHABLE = "became_reachable"
    BECAME_UNREACHABLE = "became_unreachable"


Listener = Callable[[ConnectivityEvent], None]
Probe = Callable[[], Awaitable[ConnectivitySnapshot]]


class ConnectivityMonitor:
    """Tracks connectivity and notifies listeners on state transitions.

    The state starts unknown; the first snapshot sets it without emitting.
    Repeated identical states never emit.
    """

    def __init__(self, probe: Probe | None = None) -> None:
        self._probe = probe
        self._state: bool | None = None
        self._listeners: list[Listener] = []

    @property
    def is_connected(self) -> bool:
        return self._state is True

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def update(self, snapshot: ConnectivitySnapshot) -> ConnectivityEvent | None:
        """Record a platform snapshot, emitting an event if the state flipped."""
        previous = self._state
        current = snapshot.is_connected
        self._state = current
        logger.debug(
            "Network state: connected=%s internet_reachable=%s",
            snapshot.connected,
            snapshot.internet_reachable,
        )
        if previous is None or previous == current:
            return None

        event = (
            ConnectivityEvent.BECAME_REACHABLE
            if current
            else ConnectivityEvent.BECAME_UNREACHABLE
        )
        logger.info("Connectivity changed: %s", event.value)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Connectivity listener %r failed", listener)
        return event

    async def check(self) -> bool:
        """Probe reachability now. A probe that cannot run counts as offline."""
        if self._probe is None:
            return self.is_connected
        try:
            snapshot = await self._probe()
        except httpx.HTTPError as e:
            logger.warning("Connectivity check failed, assuming offline: %s", e)
            snapshot = OFFLINE
        self.update(snapshot)
        return self.is_connected

    async def watch(self, interval: float = 5.0) -> None:
        """Probe forever at a fixed interval. Cancel the task to stop."""
        while True:
            await self.check()
            await asyncio.sleep(interval)


class HttpProbe:
    """Reachability probe that issues a GET against a well-known URL."""

    def __init__(
        self,
        url: str = DEFAULT_PROBE_URL,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def __call__(self) -> ConnectivitySnapshot:
        try:
            resp = await self._client.get(self.url)
        except httpx.ConnectError:
            return OFFLINE
        except httpx.TimeoutException:
            # The link is up but nothing answers in time.
            return ConnectivitySnapshot(connected=True, internet_reachable=False)
        return ConnectivitySnapshot(
            connected=True, internet_reachable=resp.status_code < 500
        )

    async def close(self) -> None:
        await self._client.aclose()
