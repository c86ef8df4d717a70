"""Cloud Firestore REST (v1) client for the task and category collections."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from .errors import UNAVAILABLE, StoreError
from .query import DOCUMENT_ID, FieldFilter, StructuredQuery

logger = logging.getLogger(__name__)

FIRESTORE_API_URL = "https://firestore.googleapis.com/v1"

_FILTER_OPS = {
    "==": "EQUAL",
    ">=": "GREATER_THAN_OR_EQUAL",
    "<=": "LESS_THAN_OR_EQUAL",
    ">": "GREATER_THAN",
    "<": "LESS_THAN",
}


@dataclass
class Document:
    """A stored document: its collection, id and plain-Python field map."""

    collection: str
    id: str
    fields: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Write:
    """One document write inside an atomic batch.

    kind is "set" (replace the whole document), "update" (only the paths in
    mask; a masked path missing from fields is removed) or "delete".
    """

    kind: str
    collection: str
    doc_id: str
    fields: dict | None = None
    mask: tuple[str, ...] | None = None

    @classmethod
    def set(cls, collection: str, doc_id: str, fields: dict) -> Write:
        return cls("set", collection, doc_id, fields)

    @classmethod
    def update(
        cls, collection: str, doc_id: str, fields: dict, mask: tuple[str, ...]
    ) -> Write:
        return cls("update", collection, doc_id, fields, mask)

    @classmethod
    def delete(cls, collection: str, doc_id: str) -> Write:
        return cls("delete", collection, doc_id)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "collection": self.collection,
            "doc_id": self.doc_id,
            "fields": self.fields,
            "mask": list(self.mask) if self.mask is not None else None,
        }

    @classmethod
    def from_dict(cls, d: dict) -> Write:
        mask = d.get("mask")
        return cls(
            kind=d["kind"],
            collection=d["collection"],
            doc_id=d["doc_id"],
            fields=d.get("fields"),
            mask=tuple(mask) if mask is not None else None,
        )


class FirestoreClient:
    """Async client for the Firestore REST API."""

    def __init__(
        self,
        project_id: str,
        database: str = "(default)",
        token: str | None = None,
        emulator_host: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.project_id = project_id
        self.database = database
        if emulator_host:
            api_url = f"http://{emulator_host}/v1"
        else:
            api_url = FIRESTORE_API_URL
        self.root_path = f"projects/{project_id}/databases/{database}/documents"
        self.base_url = f"{api_url}/{self.root_path}"
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            headers=headers, timeout=timeout, transport=transport
        )

    async def _post(self, url: str, payload: dict) -> Any:
        """POST a JSON payload and return the decoded response body."""
        try:
            resp = await self._client.post(url, json=payload)
        except httpx.TransportError as e:
            raise StoreError(f"Firestore unreachable: {e}", code=UNAVAILABLE) from e
        try:
            body = resp.json() if resp.content else {}
        except ValueError:
            body = {}
        if resp.is_error:
            raise _error_from_body(body, resp.status_code)
        return body

    def document_name(self, collection: str, doc_id: str) -> str:
        return f"{self.root_path}/{collection}/{doc_id}"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def run_query(
        self, query: StructuredQuery, transaction: str | None = None
    ) -> list[Document]:
        """Run a structured query and return the matching documents in order.

        Inside a transaction the matched range is read under that transaction,
        so a commit with the same id fails if the range changed since.
        """
        payload: dict = {"structuredQuery": self.encode_query(query)}
        if transaction is not None:
            payload["transaction"] = transaction
        logger.debug("runQuery %s", json.dumps(payload))
        rows = await self._post(f"{self.base_url}:runQuery", payload)
        docs: list[Document] = []
        for row in rows or []:
            raw = row.get("document")
            if not raw:
                continue
            docs.append(self._decode_document(raw))
        return docs

    def encode_query(self, query: StructuredQuery) -> dict:
        direction = "DESCENDING" if query.order_by.descending else "ASCENDING"
        body: dict = {"from": [{"collectionId": query.collection}]}

        filters = [self._encode_filter(f) for f in query.filters]
        if len(filters) == 1:
            body["where"] = filters[0]
        elif filters:
            body["where"] = {"compositeFilter": {"op": "AND", "filters": filters}}

        order_by = []
        if not query.orders_by_id:
            order_by.append(
                {"field": {"fieldPath": query.order_by.field}, "direction": direction}
            )
        order_by.append({"field": {"fieldPath": DOCUMENT_ID}, "direction": direction})
        body["orderBy"] = order_by

        if query.start_after is not None:
            values = []
            if not query.orders_by_id:
                last_value = query.start_after.last_value
                values.append(
                    encode_value(last_value.raw() if last_value is not None else None)
                )
            values.append(
                {
                    "referenceValue": self.document_name(
                        query.collection, query.start_after.last_id
                    )
                }
            )
            body["startAt"] = {"values": values, "before": False}

        if query.limit is not None:
            body["limit"] = query.limit
        return body

    @staticmethod
    def _encode_filter(f: FieldFilter) -> dict:
        return {
            "fieldFilter": {
                "field": {"fieldPath": f.field},
                "op": _FILTER_OPS[f.op],
                "value": encode_value(f.value),
            }
        }

    def _decode_document(self, raw: dict) -> Document:
        # name: projects/{p}/databases/{d}/documents/{collection}/{id}
        parts = raw["name"].split("/")
        fields = {k: decode_value(v) for k, v in (raw.get("fields") or {}).items()}
        return Document(collection=parts[-2], id=parts[-1], fields=fields)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def begin_transaction(self) -> str:
        """Start a read-write transaction and return its id."""
        body = await self._post(
            f"{self.base_url}:beginTransaction", {"options": {"readWrite": {}}}
        )
        return body["transaction"]

    async def rollback(self, transaction: str) -> None:
        await self._post(f"{self.base_url}:rollback", {"transaction": transaction})

    async def commit(self, writes: list[Write], transaction: str | None = None) -> None:
        """Apply a batch of writes atomically, closing transaction if given."""
        payload: dict = {"writes": [self.encode_write(w) for w in writes]}
        if transaction is not None:
            payload["transaction"] = transaction
        logger.debug("commit %d write(s)", len(writes))
        await self._post(f"{self.base_url}:commit", payload)

    def encode_write(self, write: Write) -> dict:
        name = self.document_name(write.collection, write.doc_id)
        if write.kind == "delete":
            return {"delete": name}
        doc = {
            "name": name,
            "fields": {k: encode_value(v) for k, v in (write.fields or {}).items()},
        }
        if write.kind == "set":
            return {"update": doc}
        if write.kind == "update":
            return {
                "update": doc,
                "updateMask": {"fieldPaths": list(write.mask or ())},
                "currentDocument": {"exists": True},
            }
        raise ValueError(f"Unknown write kind: {write.kind!r}")

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()


# ----------------------------------------------------------------------
# Value codec
# ----------------------------------------------------------------------


def encode_value(value: Any) -> dict:
    """Encode a plain Python value as a Firestore typed value."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    if isinstance(value, dict):
        return {"mapValue": {"fields": {k: encode_value(v) for k, v in value.items()}}}
    raise TypeError(f"Cannot encode {type(value).__name__} as a Firestore value")


def decode_value(raw: dict) -> Any:
    """Decode a Firestore typed value into a plain Python value."""
    if "nullValue" in raw:
        return None
    if "booleanValue" in raw:
        return raw["booleanValue"]
    if "integerValue" in raw:
        return int(raw["integerValue"])
    if "doubleValue" in raw:
        return float(raw["doubleValue"])
    if "stringValue" in raw:
        return raw["stringValue"]
    if "timestampValue" in raw:
        return raw["timestampValue"]
    if "referenceValue" in raw:
        return raw["referenceValue"]
    if "arrayValue" in raw:
        return [decode_value(v) for v in raw["arrayValue"].get("values", [])]
    if "mapValue" in raw:
        return {k: decode_value(v) for k, v in raw["mapValue"].get("fields", {}).items()}
    raise ValueError(f"Unsupported Firestore value: {raw!r}")


def _error_from_body(body: Any, status_code: int) -> StoreError:
    # runQuery reports errors as a one-element list
    if isinstance(body, list) and body:
        body = body[0]
    err = body.get("error") if isinstance(body, dict) else None
    if not err:
        return StoreError(f"Firestore request failed with HTTP {status_code}")
    return StoreError(
        err.get("message", f"HTTP {status_code}"),
        code=err.get("status") or str(err.get("code", status_code)),
    )
