"""Task and category writes with offline deferral."""

from __future__ import annotations

import dataclasses
import functools
import logging

from .cache import CATEGORY_TAG, TASK_TAG, QueryResultCache
from .connectivity import ConnectivityMonitor
from .errors import MutationFailed, StoreError
from .firestore import Document, Write
from .models import (
    CATEGORIES_COLLECTION,
    TASK_UPDATE_MASK,
    TASKS_COLLECTION,
    Category,
    Task,
    format_timestamp,
    utcnow,
)
from .query import tasks_referencing_category
from .store import ReadSource, TaskStore

logger = logging.getLogger(__name__)


class MutationGateway:
    """Creates, updates and deletes tasks and categories.

    Online, each write waits for the store's acknowledgment and rejections
    raise MutationFailed. Offline, the write is applied locally and queued
    without waiting; it is not durable until the queue is replayed.
    Successful writes invalidate the cached query results they affect.
    """

    def __init__(
        self,
        store: TaskStore,
        monitor: ConnectivityMonitor,
        results: QueryResultCache,
    ) -> None:
        self.store = store
        self.monitor = monitor
        self.results = results

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def create(self, task: Task) -> Task:
        """Create a task. Returns the stamped copy that was written."""
        now = utcnow()
        task = dataclasses.replace(
            task, created_at=now, updated_at=now, title_lowercase=task.title.lower()
        )
        await self._dispatch(
            [Write.set(TASKS_COLLECTION, task.id, task.to_document())],
            (TASK_TAG,),
            f"create task '{task.title}'",
        )
        return task

    async def update(self, task: Task) -> Task:
        """Update a task. Optional fields left unset are removed from the stored copy."""
        task = dataclasses.replace(
            task, updated_at=utcnow(), title_lowercase=task.title.lower()
        )
        fields = {k: v for k, v in task.to_document().items() if k in TASK_UPDATE_MASK}
        await self._dispatch(
            [Write.update(TASKS_COLLECTION, task.id, fields, TASK_UPDATE_MASK)],
            (TASK_TAG,),
            f"update task '{task.title}'",
        )
        return task

    async def toggle_status(self, task: Task) -> Task:
        return await self.update(dataclasses.replace(task, status=task.status.toggled()))

    async def delete(self, task_id: str) -> None:
        await self._dispatch(
            [Write.delete(TASKS_COLLECTION, task_id)],
            (TASK_TAG,),
            f"delete task {task_id}",
        )

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    async def create_category(self, category: Category) -> Category:
        now = utcnow()
        category = dataclasses.replace(category, created_at=now, updated_at=now)
        await self._dispatch(
            [Write.set(CATEGORIES_COLLECTION, category.id, category.to_document())],
            (CATEGORY_TAG,),
            f"create category '{category.name}'",
        )
        return category

    async def delete_category(self, category_id: str) -> int:
        """Delete a category and detach every task that references it.

        Online, the lookup of referencing tasks and the batch that detaches
        them and deletes the category run in one transaction, so a task
        assigned to the category in between is detached too. Offline, the
        lookup runs against the local cache and the batch is deferred.
        Returns the number of tasks detached.
        """
        query = tasks_referencing_category(category_id)
        build = functools.partial(_detach_and_delete, category_id, format_timestamp(utcnow()))

        if not self.monitor.is_connected:
            referencing = await self.store.run_query(query, ReadSource.CACHE)
            writes = build(referencing)
            self.store.defer(writes)
            logger.info(
                "Offline, deferred: delete category %s (%d task(s) detached)",
                category_id,
                len(referencing),
            )
            self.results.invalidate(TASK_TAG, CATEGORY_TAG)
            return len(referencing)

        try:
            writes = await self.store.transact(query, build)
        except StoreError as e:
            logger.error("Failed to delete category %s: %s", category_id, e)
            raise MutationFailed(e.message, e.code) from e
        detached = len(writes) - 1
        logger.info("Committed: delete category %s (%d task(s) detached)", category_id, detached)
        self.results.invalidate(TASK_TAG, CATEGORY_TAG)
        return detached

    # ------------------------------------------------------------------

    async def _dispatch(self, writes: list[Write], tags: tuple[str, ...], label: str) -> None:
        if self.monitor.is_connected:
            try:
                await self.store.commit(writes)
            except StoreError as e:
                logger.error("Failed to %s: %s", label, e)
                raise MutationFailed(e.message, e.code) from e
            logger.info("Committed: %s", label)
        else:
            self.store.defer(writes)
            logger.info("Offline, deferred: %s", label)
        self.results.invalidate(*tags)


def _detach_and_delete(category_id: str, updated_at: str, referencing: list[Document]) -> list[Write]:
    writes = [
        # categoryId is in the mask but not the fields: the store drops it.
        Write.update(
            TASKS_COLLECTION,
            doc.id,
            {"updatedAt": updated_at},
            ("categoryId", "updatedAt"),
        )
        for doc in referencing
    ]
    writes.append(Write.delete(CATEGORIES_COLLECTION, category_id))
    return writes
