"""Store facade: network or cache reads, acknowledged or deferred writes."""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from .cache import LocalCache
from .errors import ABORTED, UNAVAILABLE, StoreError
from .firestore import Document, FirestoreClient, Write
from .query import StructuredQuery

logger = logging.getLogger(__name__)

MAX_TRANSACTION_ATTEMPTS = 5


class ReadSource(str, Enum):
    NETWORK = "network"
    CACHE = "cache"


class TaskStore:
    """Fronts the remote store with the local cache.

    Network reads are written through to the cache so that cache reads can
    serve them later. Writes are applied to the cache as well, either after
    the remote acknowledges them (commit) or immediately with the batch
    queued for replay (defer).
    """

    def __init__(self, remote: FirestoreClient, cache: LocalCache) -> None:
        self.remote = remote
        self.cache = cache

    async def run_query(
        self, query: StructuredQuery, source: ReadSource = ReadSource.NETWORK
    ) -> list[Document]:
        if source is ReadSource.CACHE:
            return self.cache.run_query(query)
        docs = await self.remote.run_query(query)
        self.cache.put_documents(docs)
        return docs

    async def commit(self, writes: list[Write]) -> None:
        """Commit a batch remotely and wait for the acknowledgment."""
        await self.remote.commit(writes)
        self.cache.apply(writes)

    async def transact(
        self,
        query: StructuredQuery,
        build: Callable[[list[Document]], list[Write]],
        attempts: int = MAX_TRANSACTION_ATTEMPTS,
    ) -> list[Write]:
        """Read query and commit build(matches) as one transaction.

        The remote fails the commit with ABORTED if the documents read have
        changed in the meantime; the read and build then run again. Returns
        the writes that were committed.
        """
        for attempt in range(1, attempts + 1):
            transaction = await self.remote.begin_transaction()
            try:
                docs = await self.remote.run_query(query, transaction=transaction)
            except StoreError:
                await self._rollback(transaction)
                raise
            writes = build(docs)
            try:
                await self.remote.commit(writes, transaction=transaction)
            except StoreError as e:
                if e.code == ABORTED and attempt < attempts:
                    logger.warning(
                        "Transaction aborted (attempt %d/%d), retrying", attempt, attempts
                    )
                    continue
                raise
            self.cache.put_documents(docs)
            self.cache.apply(writes)
            return writes
        raise StoreError("Transaction was not attempted", code=ABORTED)

    async def _rollback(self, transaction: str) -> None:
        try:
            await self.remote.rollback(transaction)
        except StoreError as e:
            logger.warning("Rollback of transaction failed: %s", e)

    def defer(self, writes: list[Write]) -> None:
        """Apply a batch locally now and queue it for the next replay."""
        self.cache.apply(writes)
        self.cache.pending.append(list(writes))
        logger.info(
            "Deferred %d write(s); %d batch(es) awaiting connectivity",
            len(writes),
            len(self.cache.pending),
        )

    @property
    def pending_count(self) -> int:
        return len(self.cache.pending)

    async def flush_pending(self) -> int:
        """Replay queued batches in order. Returns how many reached the store.

        Replay stops at the first batch the store cannot be reached for; that
        batch and the ones after it stay queued. A batch the store rejects is
        dropped since replaying it again would fail the same way.
        """
        replayed = 0
        while self.cache.pending:
            batch = self.cache.pending[0]
            try:
                await self.remote.commit(batch)
            except StoreError as e:
                if e.code == UNAVAILABLE:
                    logger.warning(
                        "Replay paused, store unreachable: %s (%d batch(es) left)",
                        e,
                        len(self.cache.pending),
                    )
                    break
                logger.error("Dropping rejected deferred batch of %d write(s): %s", len(batch), e)
                self.cache.pending.pop(0)
                continue
            self.cache.pending.pop(0)
            replayed += 1
        if replayed:
            logger.info("Replayed %d deferred batch(es)", replayed)
        return replayed
