"""On-device caches: documents for cache-mode reads and memoized query results."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Hashable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .firestore import Document, Write
from .query import DOCUMENT_ID, FieldFilter, StructuredQuery

logger = logging.getLogger(__name__)

TASK_TAG = "Task"
CATEGORY_TAG = "Category"


class LocalCache:
    """Documents seen from the network or written locally, per collection.

    Also holds the queue of write batches issued while offline. Both survive
    restarts through load()/save().
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict]] = {}
        self.pending: list[list[Write]] = []

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def put_documents(self, docs: list[Document]) -> None:
        for doc in docs:
            self._collections.setdefault(doc.collection, {})[doc.id] = dict(doc.fields)

    def get(self, collection: str, doc_id: str) -> dict | None:
        fields = self._collections.get(collection, {}).get(doc_id)
        return dict(fields) if fields is not None else None

    def document_count(self, collection: str) -> int:
        return len(self._collections.get(collection, {}))

    def apply(self, writes: list[Write]) -> None:
        """Apply a write batch to the cached documents."""
        for w in writes:
            docs = self._collections.setdefault(w.collection, {})
            if w.kind == "delete":
                docs.pop(w.doc_id, None)
            elif w.kind == "set":
                docs[w.doc_id] = dict(w.fields or {})
            elif w.kind == "update":
                current = docs.get(w.doc_id)
                if current is None:
                    # The store would reject this; nothing cached to update.
                    logger.debug("Skipping local update of uncached %s/%s", w.collection, w.doc_id)
                    continue
                for path in w.mask or ():
                    if w.fields and path in w.fields:
                        current[path] = w.fields[path]
                    else:
                        current.pop(path, None)

    def run_query(self, query: StructuredQuery) -> list[Document]:
        """Evaluate a structured query against cached documents only."""
        order_field = query.order_by.field
        rows: list[tuple[Any, str, dict]] = []
        for doc_id, fields in self._collections.get(query.collection, {}).items():
            if not all(_matches(fields, f) for f in query.filters):
                continue
            if order_field == DOCUMENT_ID:
                key = None
            elif order_field in fields and fields[order_field] is not None:
                key = fields[order_field]
            else:
                # The store leaves out documents lacking the ordering field.
                continue
            rows.append((key, doc_id, fields))

        if order_field == DOCUMENT_ID:
            rows.sort(key=lambda r: r[1], reverse=query.order_by.descending)
        else:
            rows.sort(key=lambda r: (r[0], r[1]), reverse=query.order_by.descending)

        if query.start_after is not None:
            rows = [r for r in rows if _is_after(r, query)]

        if query.limit is not None:
            rows = rows[: query.limit]
        return [Document(query.collection, doc_id, dict(fields)) for _, doc_id, fields in rows]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            "collections": self._collections,
            "pending": [[w.to_dict() for w in batch] for batch in self.pending],
        }

    @classmethod
    def from_dict(cls, d: dict) -> LocalCache:
        cache = cls()
        cache._collections = {
            name: {doc_id: dict(fields) for doc_id, fields in docs.items()}
            for name, docs in (d.get("collections") or {}).items()
        }
        cache.pending = [
            [Write.from_dict(w) for w in batch] for batch in d.get("pending") or []
        ]
        return cache

    @classmethod
    def load(cls, path: str | Path) -> LocalCache:
        """Hydrate from a JSON file. A missing or unreadable file gives an empty cache."""
        p = Path(path)
        if not p.is_file():
            return cls()
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable cache file %s: %s", p, e)
            return cls()
        cache = cls.from_dict(data)
        logger.debug(
            "Hydrated cache from %s (%d pending batch(es))", p, len(cache.pending)
        )
        return cache

    def save(self, path: str | Path) -> None:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")


def _matches(fields: dict, f: FieldFilter) -> bool:
    if f.field not in fields:
        return False
    value = fields[f.field]
    if f.op == "==":
        return value == f.value
    if value is None or type(value) is not type(f.value):
        return False
    if f.op == ">=":
        return value >= f.value
    if f.op == "<=":
        return value <= f.value
    if f.op == ">":
        return value > f.value
    if f.op == "<":
        return value < f.value
    raise ValueError(f"Unsupported filter operator: {f.op!r}")


def _is_after(row: tuple[Any, str, dict], query: StructuredQuery) -> bool:
    cursor = query.start_after
    key, doc_id, _ = row
    if query.orders_by_id or cursor.last_value is None:
        position, anchor = doc_id, cursor.last_id
    else:
        position, anchor = (key, doc_id), (cursor.last_value.raw(), cursor.last_id)
    if query.order_by.descending:
        return position < anchor
    return position > anchor


# ----------------------------------------------------------------------
# Query result memoization
# ----------------------------------------------------------------------


@dataclass
class _Entry:
    value: Any
    tags: frozenset[str] = field(default_factory=frozenset)


class QueryResultCache:
    """Memoized query results, invalidated by tag."""

    def __init__(self) -> None:
        self._entries: dict[Hashable, _Entry] = {}
        self._listeners: list[Callable[[frozenset[str]], None]] = []

    def get(self, key: Hashable) -> Any | None:
        entry = self._entries.get(key)
        return entry.value if entry is not None else None

    def put(self, key: Hashable, value: Any, tags: tuple[str, ...]) -> None:
        self._entries[key] = _Entry(value=value, tags=frozenset(tags))

    def invalidate(self, *tags: str) -> int:
        """Drop every entry carrying any of the given tags."""
        wanted = frozenset(tags)
        stale = [k for k, e in self._entries.items() if e.tags & wanted]
        for key in stale:
            del self._entries[key]
        logger.debug("Invalidated %d cached result(s) for %s", len(stale), sorted(wanted))
        for listener in list(self._listeners):
            listener(wanted)
        return len(stale)

    def subscribe(
        self, listener: Callable[[frozenset[str]], None]
    ) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def __len__(self) -> int:
        return len(self._entries)
