"""Sync coordinator: resynchronizes cached state when connectivity returns."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from .cache import CATEGORY_TAG, TASK_TAG, QueryResultCache
from .connectivity import ConnectivityEvent, ConnectivityMonitor
from .store import TaskStore

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Summary of what one reconnect resync did."""

    invalidated: int = 0
    replayed: int = 0
    still_pending: int = 0
    errors: list[str] = field(default_factory=list)


class SyncCoordinator:
    """Invalidates cached Task and Category results whenever the network
    becomes reachable, then replays writes deferred while offline.

    The invalidation is a broadcast: it happens synchronously in the
    connectivity callback, regardless of what is being displayed. Replay
    runs as a background task on the running event loop.
    """

    def __init__(
        self,
        monitor: ConnectivityMonitor,
        results: QueryResultCache,
        store: TaskStore | None = None,
    ) -> None:
        self.monitor = monitor
        self.results = results
        self.store = store
        self._unsubscribe: Callable[[], None] | None = None
        self._replays: set[asyncio.Task] = set()
        self.last_result: SyncResult | None = None

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.monitor.subscribe(self._on_connectivity)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_connectivity(self, event: ConnectivityEvent) -> None:
        if event is not ConnectivityEvent.BECAME_REACHABLE:
            return
        result = SyncResult(invalidated=self.results.invalidate(TASK_TAG, CATEGORY_TAG))
        self.last_result = result
        logger.info("Back online: invalidated %d cached result(s)", result.invalidated)

        if self.store is None or not self.store.pending_count:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                "No running event loop; %d deferred batch(es) wait for the next replay",
                self.store.pending_count,
            )
            return
        task = loop.create_task(self.replay(result))
        self._replays.add(task)
        task.add_done_callback(self._replays.discard)

    async def replay(self, result: SyncResult | None = None) -> SyncResult:
        """Replay deferred writes and invalidate again once they have landed."""
        result = result or SyncResult()
        if self.store is None:
            return result
        try:
            result.replayed = await self.store.flush_pending()
        except Exception as e:
            msg = f"Replay of deferred writes failed: {e}"
            logger.error(msg)
            result.errors.append(msg)
        result.still_pending = self.store.pending_count
        if result.replayed:
            result.invalidated += self.results.invalidate(TASK_TAG, CATEGORY_TAG)
        self.last_result = result
        return result

    async def drain(self) -> None:
        """Wait for replays already in flight."""
        if self._replays:
            await asyncio.gather(*self._replays)
