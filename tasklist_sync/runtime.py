"""Process-scoped wiring: one cache, one store, one monitor per process."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .cache import LocalCache, QueryResultCache
from .config import Settings
from .connectivity import ConnectivityMonitor, HttpProbe
from .firestore import FirestoreClient
from .mutations import MutationGateway
from .pager import CursorPager
from .session import TaskListSession
from .store import TaskStore
from .sync import SyncCoordinator

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Every long-lived component, built once and passed where needed.

    open() hydrates the local cache from disk and starts the sync
    coordinator; close() waits for replays, flushes the cache back to disk
    and closes the HTTP clients.
    """

    cache_path: Path | None
    remote: FirestoreClient
    cache: LocalCache
    results: QueryResultCache
    monitor: ConnectivityMonitor
    store: TaskStore
    pager: CursorPager
    gateway: MutationGateway
    coordinator: SyncCoordinator
    probe: HttpProbe | None = None

    @classmethod
    def build(
        cls,
        remote: FirestoreClient,
        cache: LocalCache | None = None,
        monitor: ConnectivityMonitor | None = None,
        cache_path: Path | None = None,
        probe: HttpProbe | None = None,
    ) -> Runtime:
        cache = cache or LocalCache()
        results = QueryResultCache()
        monitor = monitor or ConnectivityMonitor(probe)
        store = TaskStore(remote, cache)
        return cls(
            cache_path=cache_path,
            remote=remote,
            cache=cache,
            results=results,
            monitor=monitor,
            store=store,
            pager=CursorPager(store, monitor, results),
            gateway=MutationGateway(store, monitor, results),
            coordinator=SyncCoordinator(monitor, results, store),
            probe=probe,
        )

    @classmethod
    async def open(
        cls, settings: Settings, cache_path: Path | None = None, offline: bool = False
    ) -> Runtime:
        settings.validate()
        cache_path = cache_path or settings.CACHE_FILE
        remote = FirestoreClient(
            project_id=settings.FIRESTORE_PROJECT_ID,
            database=settings.FIRESTORE_DATABASE,
            token=settings.FIRESTORE_TOKEN,
            emulator_host=settings.FIRESTORE_EMULATOR_HOST,
            timeout=settings.HTTP_TIMEOUT,
        )
        probe = None if offline else HttpProbe(settings.PROBE_URL)
        runtime = cls.build(
            remote,
            cache=LocalCache.load(cache_path),
            cache_path=cache_path,
            probe=probe,
        )
        runtime.coordinator.start()
        await runtime.monitor.check()
        if runtime.monitor.is_connected and runtime.store.pending_count:
            await runtime.coordinator.replay()
        return runtime

    def session(self, page_size: int = 10) -> TaskListSession:
        return TaskListSession(self.pager, self.gateway, page_size=page_size)

    async def close(self) -> None:
        self.coordinator.stop()
        await self.coordinator.drain()
        if self.cache_path is not None:
            self.cache.save(self.cache_path)
            logger.debug("Flushed cache to %s", self.cache_path)
        if self.probe is not None:
            await self.probe.close()
        await self.remote.close()

    async def __aenter__(self) -> Runtime:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()
