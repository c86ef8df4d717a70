"""Cursor pagination over the task collection."""

from __future__ import annotations

import dataclasses
import logging

from .cache import CATEGORY_TAG, TASK_TAG, QueryResultCache
from .connectivity import ConnectivityMonitor
from .errors import QueryFailed, StoreError
from .firestore import Document
from .models import (
    Category,
    Cursor,
    CursorValue,
    PageResult,
    StringValue,
    Task,
    TaskQuery,
    TimestampValue,
)
from .query import (
    CREATED_AT,
    DEADLINE,
    TITLE_LOWERCASE,
    StructuredQuery,
    build_category_query,
    build_task_query,
)
from .store import ReadSource, TaskStore

logger = logging.getLogger(__name__)

MIN_PAGE_SIZE = 1


class CursorPager:
    """Fetches one page at a time and hands back the cursor for the next.

    The pager does not serialize concurrent calls; callers request page N+1
    only once page N's cursor is known.
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

    def read_source(self) -> ReadSource:
        # Decided per call; connectivity may have changed since the last page.
        if self.monitor.is_connected:
            return ReadSource.NETWORK
        return ReadSource.CACHE

    async def fetch_page(
        self, spec: TaskQuery, cursor: Cursor | None = None, page_size: int = 10
    ) -> PageResult:
        """Fetch the page of tasks after cursor (from the start when None).

        One extra document is requested to learn whether another page
        exists; it is never returned.

        Raises:
            QueryFailed: the store rejected the query or could not be reached.
        """
        if page_size < MIN_PAGE_SIZE:
            logger.warning("Page size %d clamped to %d", page_size, MIN_PAGE_SIZE)
            page_size = MIN_PAGE_SIZE

        source = self.read_source()
        key = ("tasks", spec, cursor, page_size, source)
        memo = self.results.get(key)
        if memo is not None:
            logger.debug("Serving memoized page for %s", spec)
            return memo

        query = dataclasses.replace(
            build_task_query(spec), start_after=cursor, limit=page_size + 1
        )
        docs = await self._run(query, source)

        has_more = len(docs) > page_size
        docs = docs[:page_size]
        tasks = [Task.from_document(d.id, d.fields) for d in docs]
        next_cursor = _cursor_after(docs[-1], query) if docs else None

        page = PageResult(tasks=tasks, cursor=next_cursor, has_more=has_more)
        self.results.put(key, page, (TASK_TAG,))
        logger.info(
            "Fetched %d task(s) from %s (has_more=%s)", len(tasks), source.value, has_more
        )
        return page

    async def fetch_categories(self) -> list[Category]:
        """Fetch every category.

        Raises:
            QueryFailed: the store rejected the query or could not be reached.
        """
        source = self.read_source()
        key = ("categories", source)
        memo = self.results.get(key)
        if memo is not None:
            return memo
        docs = await self._run(build_category_query(), source)
        categories = [Category.from_document(d.id, d.fields) for d in docs]
        self.results.put(key, categories, (CATEGORY_TAG,))
        return categories

    async def _run(self, query: StructuredQuery, source: ReadSource) -> list[Document]:
        try:
            return await self.store.run_query(query, source)
        except StoreError as e:
            logger.error("Query on %s failed: %s", query.collection, e)
            raise QueryFailed(e.message, e.code) from e


def _cursor_after(doc: Document, query: StructuredQuery) -> Cursor:
    field = query.order_by.field
    value: CursorValue = None
    raw = doc.fields.get(field)
    if raw is not None:
        if field == TITLE_LOWERCASE:
            value = StringValue(raw)
        elif field in (DEADLINE, CREATED_AT):
            value = TimestampValue.from_stored(raw)
    return Cursor(last_id=doc.id, last_value=value)
