"""Tests for cursor pagination against a stubbed remote store."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from tasklist_sync.cache import LocalCache, QueryResultCache
from tasklist_sync.connectivity import ConnectivityMonitor, ConnectivitySnapshot
from tasklist_sync.errors import QueryFailed, StoreError
from tasklist_sync.firestore import Document, FirestoreClient
from tasklist_sync.models import (
    Priority,
    SortBy,
    StringValue,
    Task,
    TaskQuery,
    TimestampValue,
)
from tasklist_sync.mutations import MutationGateway
from tasklist_sync.pager import CursorPager
from tasklist_sync.store import TaskStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

BASE = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _make_task(n: int, **kwargs) -> Task:
    defaults = dict(
        id=f"task-{n:02d}",
        title=f"Task {n}",
        deadline=BASE + timedelta(days=n),
        created_at=BASE + timedelta(minutes=n),
        updated_at=BASE + timedelta(minutes=n),
    )
    defaults.update(kwargs)
    return Task(**defaults)


def _server(tasks: list[Task]) -> LocalCache:
    """A LocalCache standing in for the remote store's contents."""
    server = LocalCache()
    server.put_documents([Document("tasks", t.id, t.to_document()) for t in tasks])
    return server


def _mock_remote(server: LocalCache) -> MagicMock:
    remote = MagicMock(spec=FirestoreClient)
    remote.run_query = AsyncMock(side_effect=server.run_query)
    remote.commit = AsyncMock(side_effect=server.apply)
    return remote


def _monitor(online: bool = True) -> ConnectivityMonitor:
    monitor = ConnectivityMonitor()
    monitor.update(ConnectivitySnapshot(connected=online, internet_reachable=online))
    return monitor


def _pager(remote, monitor=None) -> CursorPager:
    store = TaskStore(remote, LocalCache())
    return CursorPager(store, monitor or _monitor(), QueryResultCache())


def _fetch(pager, spec=None, cursor=None, page_size=10):
    return asyncio.run(pager.fetch_page(spec or TaskQuery(), cursor, page_size))


# ===================================================================
# Page sizes and has_more
# ===================================================================


def test_twenty_five_tasks_in_pages_of_ten():
    pager = _pager(_mock_remote(_server([_make_task(n) for n in range(25)])))

    sizes, flags, seen = [], [], []
    cursor = None
    for _ in range(3):
        page = _fetch(pager, cursor=cursor, page_size=10)
        sizes.append(len(page.tasks))
        flags.append(page.has_more)
        seen.extend(t.id for t in page.tasks)
        cursor = page.cursor

    assert sizes == [10, 10, 5]
    assert flags == [True, True, False]
    assert len(set(seen)) == 25
    # Default ordering is newest first
    assert seen[0] == "task-24"
    assert seen[-1] == "task-00"


def test_exactly_page_size_has_no_more():
    remote = _mock_remote(_server([_make_task(n) for n in range(10)]))
    page = _fetch(_pager(remote), page_size=10)
    assert len(page.tasks) == 10
    assert page.has_more is False


def test_over_fetch_by_one_is_discarded():
    remote = _mock_remote(_server([_make_task(n) for n in range(11)]))
    page = _fetch(_pager(remote), page_size=10)

    assert len(page.tasks) == 10
    assert page.has_more is True
    query = remote.run_query.call_args[0][0]
    assert query.limit == 11
    # Cursor comes from the last returned task, not the discarded extra
    assert page.cursor.last_id == page.tasks[-1].id


def test_empty_collection():
    page = _fetch(_pager(_mock_remote(_server([]))))
    assert page.tasks == []
    assert page.cursor is None
    assert page.has_more is False


def test_non_positive_page_size_is_clamped_to_one():
    remote = _mock_remote(_server([_make_task(n) for n in range(3)]))
    pager = _pager(remote)
    for size in (0, -5):
        page = asyncio.run(pager.fetch_page(TaskQuery(), None, size))
        assert len(page.tasks) == 1
        assert page.has_more is True


# ===================================================================
# Cursor values
# ===================================================================


def test_deadline_sort_cursor_carries_timestamp():
    pager = _pager(_mock_remote(_server([_make_task(n) for n in range(5)])))
    page = _fetch(pager, TaskQuery(sort_by=SortBy.DEADLINE_DESC), page_size=2)
    assert [t.id for t in page.tasks] == ["task-04", "task-03"]
    assert isinstance(page.cursor.last_value, TimestampValue)
    assert page.cursor.last_value.value == BASE + timedelta(days=3)
    assert page.cursor.last_value.raw() == "2026-01-04T00:00:00.000Z"


@pytest.mark.parametrize(
    "deadlines",
    [
        ["2026-01-01T10:00:00Z", "2026-01-02T10:00:00Z", "2026-01-03T10:00:00Z"],
        [
            "2026-01-01T10:00:00.000001Z",
            "2026-01-01T10:00:00.000002Z",
            "2026-01-01T10:00:00.000003Z",
        ],
    ],
    ids=["whole-seconds", "microseconds"],
)
@pytest.mark.parametrize("online", [True, False])
def test_cursor_resumes_on_stored_timestamp_string(deadlines, online):
    docs = [
        Document("tasks", f"t{i}", {"title": f"T{i}", "titleLowercase": f"t{i}", "deadline": d})
        for i, d in enumerate(deadlines)
    ]
    server = LocalCache()
    server.put_documents(docs)
    store = TaskStore(_mock_remote(server), LocalCache())
    if not online:
        store.cache.put_documents(docs)
    pager = CursorPager(store, _monitor(online), QueryResultCache())
    spec = TaskQuery(sort_by=SortBy.DEADLINE_ASC)

    seen, cursor = [], None
    for _ in range(6):
        page = asyncio.run(pager.fetch_page(spec, cursor, 1))
        seen.append([t.id for t in page.tasks])
        if not page.has_more:
            break
        cursor = page.cursor

    assert seen == [["t0"], ["t1"], ["t2"]]
    assert cursor.last_value.raw() == deadlines[1]


def test_search_cursor_carries_lowercased_title():
    pager = _pager(_mock_remote(_server([_make_task(n) for n in range(3)])))
    page = _fetch(pager, TaskQuery(search_title="task"), page_size=1)
    assert page.cursor.last_value == StringValue("task 0")
    assert page.last_doc_id == "task-00"


def test_filter_only_cursor_carries_only_the_id():
    tasks = [_make_task(n, priority=Priority.HIGH) for n in range(4)]
    pager = _pager(_mock_remote(_server(tasks)))
    page = _fetch(pager, TaskQuery(priority=Priority.HIGH), page_size=2)
    assert page.cursor.last_id == "task-01"
    assert page.cursor.last_value is None

    rest = _fetch(pager, TaskQuery(priority=Priority.HIGH), page.cursor, page_size=2)
    assert [t.id for t in rest.tasks] == ["task-02", "task-03"]
    assert rest.has_more is False


def test_equal_deadlines_paginate_without_gaps():
    same_day = BASE + timedelta(days=3)
    tasks = [_make_task(n, deadline=same_day) for n in range(7)]
    pager = _pager(_mock_remote(_server(tasks)))

    spec = TaskQuery(sort_by=SortBy.DEADLINE_ASC)
    seen, cursor, has_more = [], None, True
    while has_more:
        page = _fetch(pager, spec, cursor, page_size=3)
        seen.extend(t.id for t in page.tasks)
        cursor, has_more = page.cursor, page.has_more

    assert seen == [f"task-{n:02d}" for n in range(7)]


# ===================================================================
# Search
# ===================================================================


def test_created_task_is_found_by_case_insensitive_prefix():
    server = _server([_make_task(1, title="Walk dog")])
    remote = _mock_remote(server)
    pager = _pager(remote)
    gateway = MutationGateway(pager.store, pager.monitor, pager.results)

    created = asyncio.run(gateway.create(_make_task(2, title="Buy Milk")))
    assert created.title_lowercase == "buy milk"

    for term in ("buy", "BUY", "Buy M"):
        page = _fetch(pager, TaskQuery(search_title=term))
        assert [t.title for t in page.tasks] == ["Buy Milk"]

    assert _fetch(pager, TaskQuery(search_title="milk")).tasks == []


def test_search_ignores_requested_sort():
    tasks = [_make_task(1, title="Beta"), _make_task(2, title="alpha"), _make_task(3, title="Alps")]
    pager = _pager(_mock_remote(_server(tasks)))
    page = _fetch(pager, TaskQuery(search_title="al", sort_by=SortBy.DEADLINE_DESC))
    assert [t.title for t in page.tasks] == ["alpha", "Alps"]


# ===================================================================
# Read modes, failures and memoization
# ===================================================================


def test_offline_reads_only_previously_cached_documents():
    remote = _mock_remote(_server([_make_task(n) for n in range(25)]))
    monitor = _monitor(online=True)
    pager = _pager(remote, monitor)

    _fetch(pager, page_size=5)  # caches 6 documents (5 + the look-ahead)
    assert remote.run_query.await_count == 1

    monitor.update(ConnectivitySnapshot(connected=False, internet_reachable=False))
    page = _fetch(pager, page_size=10)

    assert remote.run_query.await_count == 1
    assert len(page.tasks) == 6
    assert page.has_more is False


def test_lan_without_internet_reads_from_cache():
    remote = _mock_remote(_server([_make_task(1)]))
    monitor = ConnectivityMonitor()
    monitor.update(ConnectivitySnapshot(connected=True, internet_reachable=False))
    page = _fetch(_pager(remote, monitor))
    remote.run_query.assert_not_awaited()
    assert page.tasks == []


def test_store_rejection_raises_query_failed():
    remote = MagicMock(spec=FirestoreClient)
    remote.run_query = AsyncMock(
        side_effect=StoreError("The query requires an index", code="FAILED_PRECONDITION")
    )
    with pytest.raises(QueryFailed) as exc:
        _fetch(_pager(remote))
    assert exc.value.code == "FAILED_PRECONDITION"
    assert "index" in exc.value.message


def test_repeated_fetch_is_memoized_until_invalidated():
    remote = _mock_remote(_server([_make_task(n) for n in range(3)]))
    pager = _pager(remote)

    first = _fetch(pager)
    second = _fetch(pager)
    assert second is first
    assert remote.run_query.await_count == 1

    pager.results.invalidate("Task")
    _fetch(pager)
    assert remote.run_query.await_count == 2
