"""Unsaved task form drafts kept in a local key-value store."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from .models import format_timestamp, utcnow

logger = logging.getLogger(__name__)

DRAFT_KEY = "@task_draft"


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class JsonFileStore:
    """String key-value store persisted as one JSON object on disk."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read(self) -> dict[str, str]:
        if not self.path.is_file():
            return {}
        return json.loads(self.path.read_text(encoding="utf-8"))

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def get(self, key: str) -> str | None:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def delete(self, key: str) -> None:
        data = self._read()
        if data.pop(key, None) is not None:
            self._write(data)


@dataclass
class TaskDraft:
    title: str
    priority: str
    deadline: str
    description: str | None = None
    image_uri: str | None = None
    saved_at: str | None = None

    def to_json(self) -> str:
        return json.dumps(
            {
                "title": self.title,
                "description": self.description,
                "priority": self.priority,
                "deadline": self.deadline,
                "imageUri": self.image_uri,
                "savedAt": self.saved_at,
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> TaskDraft:
        d = json.loads(raw)
        return cls(
            title=d["title"],
            priority=d["priority"],
            deadline=d["deadline"],
            description=d.get("description"),
            image_uri=d.get("imageUri"),
            saved_at=d.get("savedAt"),
        )

    @property
    def has_content(self) -> bool:
        return bool(
            self.title.strip() or (self.description or "").strip() or self.image_uri
        )


class TaskDraftService:
    """Save, load and clear the single in-progress task draft.

    Storage failures are logged and reported through the return value; a
    broken draft must never block the task form.
    """

    def __init__(self, storage: KeyValueStore, key: str = DRAFT_KEY) -> None:
        self.storage = storage
        self.key = key

    def save(self, draft: TaskDraft) -> bool:
        draft.saved_at = format_timestamp(utcnow())
        try:
            self.storage.set(self.key, draft.to_json())
        except OSError as e:
            logger.error("Error saving draft: %s", e)
            return False
        logger.debug("Draft saved")
        return True

    def load(self) -> TaskDraft | None:
        try:
            raw = self.storage.get(self.key)
            if raw is None:
                return None
            return TaskDraft.from_json(raw)
        except (OSError, ValueError, KeyError) as e:
            logger.error("Error loading draft: %s", e)
            return None

    def clear(self) -> bool:
        try:
            self.storage.delete(self.key)
        except OSError as e:
            logger.error("Error clearing draft: %s", e)
            return False
        return True

    def has(self) -> bool:
        try:
            return self.storage.get(self.key) is not None
        except (OSError, ValueError) as e:
            logger.error("Error checking draft: %s", e)
            return False
