"""CLI entry point for tasklist-sync."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import uuid
from pathlib import Path

from .config import get_settings
from .drafts import JsonFileStore, TaskDraftService
from .errors import TaskSyncError
from .models import Category, Priority, SortBy, Status, Task, TaskQuery, parse_timestamp
from .runtime import Runtime


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tasklist-sync",
        description="Browse and edit tasks in a Firestore project, with offline support.",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Read from the local cache only and defer writes",
    )
    parser.add_argument(
        "--cache-file",
        type=str,
        default=None,
        help="Local cache file (or set TASKLIST_CACHE_FILE)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_list = sub.add_parser("list", help="List tasks")
    p_list.add_argument("--priority", choices=[p.value for p in Priority])
    p_list.add_argument("--status", choices=[s.value for s in Status])
    p_list.add_argument("--category", type=str, default=None, help="Category ID")
    p_list.add_argument("--sort", choices=[s.value for s in SortBy])
    p_list.add_argument("--search", type=str, default=None, help="Title prefix")
    p_list.add_argument("--limit", type=int, default=None, help="Page size")
    p_list.add_argument(
        "--all",
        action="store_true",
        help="Keep loading pages until there are no more",
    )

    p_add = sub.add_parser("add", help="Create a task")
    p_add.add_argument("title", type=str)
    p_add.add_argument("--deadline", type=str, required=True, help="ISO 8601 date or timestamp")
    p_add.add_argument("--priority", choices=[p.value for p in Priority], default="medium")
    p_add.add_argument("--description", type=str, default=None)
    p_add.add_argument("--category", type=str, default=None, help="Category ID")
    p_add.add_argument("--image-url", type=str, default=None)

    p_toggle = sub.add_parser("toggle", help="Toggle a task between completed and uncompleted")
    p_toggle.add_argument("task_id", type=str)

    p_delete = sub.add_parser("delete", help="Delete a task")
    p_delete.add_argument("task_id", type=str)

    sub.add_parser("categories", help="List categories")

    p_add_cat = sub.add_parser("add-category", help="Create a category")
    p_add_cat.add_argument("name", type=str)

    p_del_cat = sub.add_parser(
        "delete-category", help="Delete a category and detach its tasks"
    )
    p_del_cat.add_argument("category_id", type=str)

    p_draft = sub.add_parser("draft", help="Inspect the saved task draft")
    p_draft.add_argument("action", choices=["show", "clear"])

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    # Configure logging
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(message)s",
    )

    settings = get_settings()

    if args.command == "draft":
        return _draft(TaskDraftService(JsonFileStore(settings.DRAFT_FILE)), args.action)

    cache_path = Path(args.cache_file) if args.cache_file else None
    try:
        out = asyncio.run(_run(args, settings, cache_path))
    except ValueError as e:
        logging.error("%s", e)
        return 1
    except TaskSyncError as e:
        logging.error("%s failed: %s", args.command, e)
        return 1

    print(json.dumps(out, indent=2))
    return 0


async def _run(args: argparse.Namespace, settings, cache_path: Path | None):
    runtime = await Runtime.open(settings, cache_path=cache_path, offline=args.offline)
    async with runtime:
        if not runtime.monitor.is_connected:
            logging.info("Offline: reading from the local cache, writes are deferred")
        return await _dispatch(args, runtime, settings.PAGE_SIZE)


async def _dispatch(args: argparse.Namespace, runtime: Runtime, page_size: int):
    gateway = runtime.gateway

    if args.command == "list":
        limit = args.limit if args.limit is not None else page_size
        session = runtime.session(page_size=limit)
        query = TaskQuery(
            priority=Priority(args.priority) if args.priority else None,
            status=Status(args.status) if args.status else None,
            category_id=args.category,
            sort_by=SortBy(args.sort) if args.sort else None,
            search_title=args.search,
        )
        await session.apply_query(query)
        while args.all and session.has_more and session.error is None:
            await session.load_more()
        session.close()
        if session.error is not None:
            raise session.error
        logging.info("Loaded %d task(s)%s", len(session.tasks), " (more available)" if session.has_more else "")
        return [t.to_document() for t in session.tasks]

    if args.command == "add":
        task = Task(
            id=str(uuid.uuid4()),
            title=args.title,
            deadline=parse_timestamp(args.deadline),
            priority=Priority(args.priority),
            description=args.description,
            category_id=args.category,
            image_url=args.image_url,
        )
        written = await gateway.create(task)
        return written.to_document()

    if args.command == "toggle":
        fields = runtime.cache.get("tasks", args.task_id)
        if fields is None:
            raise ValueError(f"Task {args.task_id} is not in the local cache; list it first")
        written = await gateway.toggle_status(Task.from_document(args.task_id, fields))
        return written.to_document()

    if args.command == "delete":
        await gateway.delete(args.task_id)
        return {"deleted": args.task_id}

    if args.command == "categories":
        return [c.to_document() for c in await runtime.pager.fetch_categories()]

    if args.command == "add-category":
        category = await gateway.create_category(Category(id=str(uuid.uuid4()), name=args.name))
        return category.to_document()

    if args.command == "delete-category":
        detached = await gateway.delete_category(args.category_id)
        return {"deleted": args.category_id, "detached_tasks": detached}

    raise ValueError(f"Unknown command: {args.command}")


def _draft(service: TaskDraftService, action: str) -> int:
    if action == "clear":
        return 0 if service.clear() else 1
    draft = service.load()
    if draft is None:
        logging.info("No saved draft")
        return 0
    print(draft.to_json())
    return 0


if __name__ == "__main__":
    sys.exit(main())
