"""Tests for the CLI, run against a hydrated local cache with --offline."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from tasklist_sync.cache import LocalCache
from tasklist_sync.cli import build_parser, main
from tasklist_sync.config import get_settings
from tasklist_sync.firestore import Document
from tasklist_sync.models import Priority, Task

BASE = datetime(2026, 3, 1, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _env(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("FIRESTORE_PROJECT_ID", "demo")
    monkeypatch.setenv("TASKLIST_DRAFT_FILE", str(tmp_path / "drafts.json"))
    monkeypatch.setenv("TASKLIST_PAGE_SIZE", "2")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def cache_file(tmp_path: Path) -> Path:
    tasks = [
        Task(
            id=f"t{n}",
            title=f"Task {n}",
            deadline=BASE + timedelta(days=n),
            priority=Priority.HIGH if n % 2 else Priority.LOW,
            created_at=BASE + timedelta(hours=n),
        )
        for n in range(1, 6)
    ]
    cache = LocalCache()
    cache.put_documents([Document("tasks", t.id, t.to_document()) for t in tasks])
    path = tmp_path / "cache.json"
    cache.save(path)
    return path


def _run(capsys, *argv) -> tuple[int, object]:
    code = main(list(argv))
    out = capsys.readouterr().out
    return code, json.loads(out) if out.strip() else None


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_list_first_page_from_cache(cache_file, capsys):
    code, out = _run(capsys, "--offline", "--cache-file", str(cache_file), "list")
    assert code == 0
    assert [t["id"] for t in out] == ["t5", "t4"]


def test_list_zero_limit_is_clamped_to_one(cache_file, capsys):
    code, out = _run(capsys, "--offline", "--cache-file", str(cache_file), "list", "--limit", "0")
    assert code == 0
    assert [t["id"] for t in out] == ["t5"]


def test_list_all_with_filter(cache_file, capsys):
    code, out = _run(
        capsys,
        "--offline", "--cache-file", str(cache_file),
        "list", "--priority", "high", "--all",
    )
    assert code == 0
    assert sorted(t["id"] for t in out) == ["t1", "t3", "t5"]


def test_list_search_is_case_insensitive(cache_file, capsys):
    code, out = _run(
        capsys,
        "--offline", "--cache-file", str(cache_file),
        "list", "--search", "TASK 3",
    )
    assert code == 0
    assert [t["id"] for t in out] == ["t3"]


def test_offline_add_is_queued_in_cache_file(cache_file, capsys):
    code, out = _run(
        capsys,
        "--offline", "--cache-file", str(cache_file),
        "add", "Written offline", "--deadline", "2026-04-01T00:00:00Z",
    )
    assert code == 0
    assert out["titleLowercase"] == "written offline"

    saved = LocalCache.load(cache_file)
    assert saved.get("tasks", out["id"])["title"] == "Written offline"
    assert len(saved.pending) == 1
    assert saved.pending[0][0].doc_id == out["id"]


def test_toggle_unknown_task_fails(cache_file, capsys):
    code = main(["--offline", "--cache-file", str(cache_file), "toggle", "missing"])
    assert code == 1


def test_missing_project_id_fails(monkeypatch, cache_file, capsys):
    monkeypatch.setenv("FIRESTORE_PROJECT_ID", "")
    get_settings.cache_clear()
    assert main(["--offline", "--cache-file", str(cache_file), "list"]) == 1


def test_draft_show_without_draft(capsys):
    assert main(["draft", "show"]) == 0
    assert capsys.readouterr().out == ""
