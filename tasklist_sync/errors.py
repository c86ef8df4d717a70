"""Error types raised across the store, pager and mutation boundaries."""

from __future__ import annotations


class TaskSyncError(Exception):
    """Base error carrying the store's status code."""

    def __init__(self, message: str, code: str | None = None) -> None:
        self.message = message
        self.code = code
        super().__init__(message)

    def __str__(self) -> str:
        if self.code:
            return f"{self.message} ({self.code})"
        return self.message


class StoreError(TaskSyncError):
    """The remote document store rejected a request or could not be reached."""


class QueryFailed(TaskSyncError):
    """A page read was rejected by the store."""


class MutationFailed(TaskSyncError):
    """A write was rejected by the store while online."""


UNAVAILABLE = "UNAVAILABLE"

# Commit lost to a concurrent transaction; safe to retry from the start.
ABORTED = "ABORTED"
