"""Data models for tasks, categories and paginated queries."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

TASKS_COLLECTION = "tasks"
CATEGORIES_COLLECTION = "categories"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Status(str, Enum):
    COMPLETED = "completed"
    UNCOMPLETED = "uncompleted"

    def toggled(self) -> Status:
        if self is Status.COMPLETED:
            return Status.UNCOMPLETED
        return Status.COMPLETED


class SortBy(str, Enum):
    DEADLINE_ASC = "deadline_asc"
    DEADLINE_DESC = "deadline_desc"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a datetime the way the stored documents carry it.

    Millisecond precision with a trailing ``Z`` keeps every stored timestamp
    the same width, so lexicographic order on the strings is time order.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_timestamp(raw: str) -> datetime:
    """Parse an ISO 8601 timestamp, accepting a trailing ``Z``."""
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Task:
    """A single task document."""

    id: str
    title: str
    deadline: datetime
    status: Status = Status.UNCOMPLETED
    priority: Priority = Priority.MEDIUM
    description: str | None = None
    category_id: str | None = None
    image_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    title_lowercase: str = ""

    def __post_init__(self) -> None:
        if not self.title_lowercase:
            self.title_lowercase = self.title.lower()

    def to_document(self) -> dict:
        """Return the stored field map. Unset optional fields are omitted."""
        d: dict = {
            "id": self.id,
            "title": self.title,
            "titleLowercase": self.title_lowercase,
            "status": self.status.value,
            "priority": self.priority.value,
            "deadline": format_timestamp(self.deadline),
        }
        if self.description is not None:
            d["description"] = self.description
        if self.category_id is not None:
            d["categoryId"] = self.category_id
        if self.image_url is not None:
            d["imageUrl"] = self.image_url
        if self.created_at is not None:
            d["createdAt"] = format_timestamp(self.created_at)
        if self.updated_at is not None:
            d["updatedAt"] = format_timestamp(self.updated_at)
        return d

    @classmethod
    def from_document(cls, doc_id: str, fields: dict) -> Task:
        title = fields.get("title", "")
        return cls(
            id=fields.get("id") or doc_id,
            title=title,
            title_lowercase=fields.get("titleLowercase") or title.lower(),
            deadline=parse_timestamp(fields["deadline"]),
            status=Status(fields.get("status", Status.UNCOMPLETED.value)),
            priority=Priority(fields.get("priority", Priority.MEDIUM.value)),
            description=fields.get("description"),
            category_id=fields.get("categoryId"),
            image_url=fields.get("imageUrl"),
            created_at=_optional_timestamp(fields.get("createdAt")),
            updated_at=_optional_timestamp(fields.get("updatedAt")),
        )


# Field paths an update may change. Optional fields cleared locally are
# removed on the server as well; id and createdAt are fixed at creation and
# never masked.
TASK_UPDATE_MASK = (
    "title",
    "titleLowercase",
    "status",
    "priority",
    "deadline",
    "description",
    "categoryId",
    "imageUrl",
    "updatedAt",
)


@dataclass
class Category:
    id: str
    name: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_document(self) -> dict:
        d: dict = {"id": self.id, "name": self.name}
        if self.created_at is not None:
            d["createdAt"] = format_timestamp(self.created_at)
        if self.updated_at is not None:
            d["updatedAt"] = format_timestamp(self.updated_at)
        return d

    @classmethod
    def from_document(cls, doc_id: str, fields: dict) -> Category:
        return cls(
            id=fields.get("id") or doc_id,
            name=fields.get("name", ""),
            created_at=_optional_timestamp(fields.get("createdAt")),
            updated_at=_optional_timestamp(fields.get("updatedAt")),
        )


def _optional_timestamp(raw: str | None) -> datetime | None:
    if not raw:
        return None
    return parse_timestamp(raw)


# ----------------------------------------------------------------------
# Query and pagination types
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class StringValue:
    value: str

    def raw(self) -> str:
        return self.value


@dataclass(frozen=True)
class TimestampValue:
    """A timestamp ordering value.

    ``stored`` is the exact string the document carries. The store compares
    that string, not the instant, so a resume position must echo it back
    unchanged.
    """

    value: datetime
    stored: str | None = None

    @classmethod
    def from_stored(cls, raw: str) -> TimestampValue:
        return cls(parse_timestamp(raw), stored=raw)

    def raw(self) -> str:
        if self.stored is not None:
            return self.stored
        return format_timestamp(self.value)


CursorValue = StringValue | TimestampValue | None


@dataclass(frozen=True)
class Cursor:
    """Resume position: the last returned document and its ordering value."""

    last_id: str
    last_value: CursorValue = None


@dataclass(frozen=True)
class TaskQuery:
    """Filter, sort and search selection for one list session.

    Frozen so that two selections compare (and hash) by value, which is how
    stale in-flight pages are recognised.
    """

    priority: Priority | None = None
    status: Status | None = None
    category_id: str | None = None
    sort_by: SortBy | None = None
    search_title: str | None = None

    @property
    def has_filters(self) -> bool:
        return any(v is not None for v in (self.priority, self.status, self.category_id))


@dataclass
class PageResult:
    tasks: list[Task] = field(default_factory=list)
    cursor: Cursor | None = None
    has_more: bool = False

    @property
    def last_doc_id(self) -> str | None:
        return self.cursor.last_id if self.cursor else None

    @property
    def last_doc_value(self) -> CursorValue:
        return self.cursor.last_value if self.cursor else None
