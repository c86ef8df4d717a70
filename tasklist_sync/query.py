"""Translate a TaskQuery into a structured collection query."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .models import CATEGORIES_COLLECTION, TASKS_COLLECTION, Cursor, SortBy, TaskQuery

TITLE_LOWERCASE = "titleLowercase"
DEADLINE = "deadline"
CREATED_AT = "createdAt"
DOCUMENT_ID = "__name__"

# Highest code point in the Basic Multilingual Plane's private use area.
# Appended to a prefix it bounds the range of strings starting with it.
HIGH_SENTINEL = "\uf8ff"


@dataclass(frozen=True)
class FieldFilter:
    field: str
    op: str  # "==", ">=", "<="
    value: Any


@dataclass(frozen=True)
class OrderBy:
    field: str
    descending: bool = False


@dataclass(frozen=True)
class StructuredQuery:
    """One collection query: conjunctive filters, a single ordering field,
    an optional start-after cursor and an optional limit."""

    collection: str
    order_by: OrderBy
    filters: tuple[FieldFilter, ...] = ()
    start_after: Cursor | None = None
    limit: int | None = None

    @property
    def orders_by_id(self) -> bool:
        return self.order_by.field == DOCUMENT_ID


def build_task_query(spec: TaskQuery) -> StructuredQuery:
    """Build the task collection query for a filter/sort/search selection.

    Precedence:
      1. equality filters on priority, status and categoryId;
      2. a search term orders by titleLowercase with a prefix range, and
         any requested sort is ignored (one ordering field per query);
      3. otherwise a requested sort orders by deadline;
      4. with no filters, search or sort, order by createdAt descending;
      5. filters alone order by document id so every page has a
         well-defined resume position.
    """
    filters: list[FieldFilter] = []
    if spec.priority is not None:
        filters.append(FieldFilter("priority", "==", spec.priority.value))
    if spec.status is not None:
        filters.append(FieldFilter("status", "==", spec.status.value))
    if spec.category_id is not None:
        filters.append(FieldFilter("categoryId", "==", spec.category_id))

    if spec.search_title:
        lower = spec.search_title.lower()
        filters.append(FieldFilter(TITLE_LOWERCASE, ">=", lower))
        filters.append(FieldFilter(TITLE_LOWERCASE, "<=", lower + HIGH_SENTINEL))
        order = OrderBy(TITLE_LOWERCASE)
    elif spec.sort_by is not None:
        order = OrderBy(DEADLINE, descending=spec.sort_by is SortBy.DEADLINE_DESC)
    elif filters:
        order = OrderBy(DOCUMENT_ID)
    else:
        order = OrderBy(CREATED_AT, descending=True)

    return StructuredQuery(
        collection=TASKS_COLLECTION,
        order_by=order,
        filters=tuple(filters),
    )


def build_category_query() -> StructuredQuery:
    return StructuredQuery(collection=CATEGORIES_COLLECTION, order_by=OrderBy(DOCUMENT_ID))


def tasks_referencing_category(category_id: str) -> StructuredQuery:
    return StructuredQuery(
        collection=TASKS_COLLECTION,
        order_by=OrderBy(DOCUMENT_ID),
        filters=(FieldFilter("categoryId", "==", category_id),),
    )
