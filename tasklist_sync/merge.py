"""Merge fetched pages into the accumulated task list."""

from __future__ import annotations

from .models import Task


def merge_page(accumulated: list[Task], incoming: list[Task], is_first_page: bool) -> list[Task]:
    """Return the accumulated list with a page folded in.

    A first page replaces the list outright. A continuation page replaces
    already-loaded tasks in place (the server copy wins and keeps its
    position) and appends unseen ones in their incoming order. A page can
    overlap the loaded ones when a sort key changed between fetches; no id
    is ever duplicated or dropped, and merging the same page twice is the
    same as merging it once.
    """
    if is_first_page:
        return list(incoming)

    merged = list(accumulated)
    position = {task.id: i for i, task in enumerate(merged)}
    for task in incoming:
        i = position.get(task.id)
        if i is None:
            position[task.id] = len(merged)
            merged.append(task)
        else:
            merged[i] = task
    return merged


def replace_task(accumulated: list[Task], task: Task) -> list[Task]:
    """Swap in a locally changed task, keeping its position. Unknown ids are ignored."""
    return [task if t.id == task.id else t for t in accumulated]


def remove_task(accumulated: list[Task], task_id: str) -> list[Task]:
    return [t for t in accumulated if t.id != task_id]
