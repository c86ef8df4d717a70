"""A browsing session: one accumulated task list for the current selection."""

from __future__ import annotations

import dataclasses
import logging

from .cache import TASK_TAG
from .errors import MutationFailed, QueryFailed
from .merge import merge_page, remove_task, replace_task
from .models import Cursor, Task, TaskQuery
from .mutations import MutationGateway
from .pager import CursorPager

logger = logging.getLogger(__name__)


class TaskListSession:
    """Holds the accumulated list for one filter/sort/search selection.

    Only this object mutates its list, and only from a resolved page or a
    local change. Pages whose selection no longer matches the current one
    when they resolve are dropped rather than merged. Errors are recorded
    on ``error`` for display instead of being raised.
    """

    def __init__(
        self,
        pager: CursorPager,
        gateway: MutationGateway,
        page_size: int = 10,
        query: TaskQuery | None = None,
    ) -> None:
        self.pager = pager
        self.gateway = gateway
        self.page_size = page_size
        self.query = query or TaskQuery()
        self.tasks: list[Task] = []
        self.cursor: Cursor | None = None
        self.has_more = True
        self.error: QueryFailed | MutationFailed | None = None
        self.stale = False
        self._loading: TaskQuery | None = None
        self._unsubscribe = pager.results.subscribe(self._on_invalidated)

    def close(self) -> None:
        self._unsubscribe()

    def _on_invalidated(self, tags: frozenset[str]) -> None:
        if TASK_TAG in tags:
            self.stale = True

    def _reset(self) -> None:
        self.tasks = []
        self.cursor = None
        self.has_more = True
        self.error = None

    async def apply_query(self, query: TaskQuery) -> None:
        """Switch to a new selection and load its first page."""
        if query != self.query:
            self.query = query
            self._reset()
        await self.refresh()

    async def refresh(self) -> None:
        """Reload the first page of the current selection."""
        self.cursor = None
        self.has_more = True
        await self._fetch(first_page=True)

    async def load_more(self) -> None:
        """Load the next page, unless one is already loading or none is left."""
        if not self.has_more or self._loading == self.query:
            return
        await self._fetch(first_page=self.cursor is None)

    async def _fetch(self, first_page: bool) -> None:
        query = self.query
        cursor = None if first_page else self.cursor
        self._loading = query
        try:
            page = await self.pager.fetch_page(query, cursor, self.page_size)
        except QueryFailed as e:
            if query == self.query:
                self.error = e
            return
        finally:
            if self._loading == query:
                self._loading = None

        if query != self.query:
            logger.debug("Dropping page for superseded selection %s", query)
            return
        self.tasks = merge_page(self.tasks, page.tasks, is_first_page=first_page)
        self.cursor = page.cursor
        self.has_more = page.has_more
        self.error = None
        if first_page:
            self.stale = False

    # ------------------------------------------------------------------
    # Local changes
    # ------------------------------------------------------------------

    async def toggle_status(self, task_id: str) -> None:
        """Flip a loaded task's status at once, then write it.

        If the store rejects the write the task goes back to its previous
        value.
        """
        original = next((t for t in self.tasks if t.id == task_id), None)
        if original is None:
            return
        toggled = dataclasses.replace(original, status=original.status.toggled())
        self.tasks = replace_task(self.tasks, toggled)
        try:
            written = await self.gateway.update(toggled)
        except MutationFailed as e:
            logger.warning("Reverting status of task %s: %s", task_id, e)
            self.tasks = replace_task(self.tasks, original)
            self.error = e
            return
        self.tasks = replace_task(self.tasks, written)

    def replace_local(self, task: Task) -> None:
        self.tasks = replace_task(self.tasks, task)

    def remove_local(self, task_id: str) -> None:
        self.tasks = remove_task(self.tasks, task_id)
