# tests/test_reference_api.py

from __future__ import annotations

import pytest

from flowtask.api.errors import AuthRequiredError, NotFoundError, ValidationError
from flowtask.api.offline import InMemoryTaskApi
from flowtask.api.reference_store import SubtaskRepository, TaskRepository
from flowtask.core.ports import StaticSession
from flowtask.tasks.task_models import Subtask


def test_task_repository_lists_newest_first_per_owner() -> None:
    repo = TaskRepository()
    repo.create("u1", {"title": "old"})
    repo.create("u2", {"title": "foreign"})
    repo.create("u1", {"title": "new", "status": "in_progress", "priority": "bogus"})

    records = repo.list("u1")

    assert [r["title"] for r in records] == ["new", "old"]
    assert records[0]["status"] == "IN_PROGRESS"
    assert records[0]["priority"] == "MEDIUM"
    assert "_seq" not in records[0]


def test_task_repository_validation_and_ownership() -> None:
    repo = TaskRepository()
    with pytest.raises(ValidationError):
        repo.create("u1", {"title": ""})

    record = repo.create("u1", {"title": "mine", "dueAt": "2024-05-18T17:00:00+02:00"})
    assert record["dueAt"] == "2024-05-18T15:00:00.000Z"

    with pytest.raises(NotFoundError):
        repo.update("u2", record["id"], {"title": "stolen"})
    with pytest.raises(NotFoundError):
        repo.delete("u2", record["id"])

    updated = repo.update("u1", record["id"], {"status": "completed", "dueAt": None})
    assert updated["status"] == "COMPLETED"
    assert updated["dueAt"] is None


def test_subtask_repository_reorder_drops_unlisted() -> None:
    repo = SubtaskRepository()
    a = repo.add("t1", "a")
    b = repo.add("t1", "b")
    c = repo.add("t1", "c")

    result = repo.reorder("t1", [c.id, "ghost", a.id])

    assert [(s.id, s.order) for s in result] == [(c.id, 0), (a.id, 1)]
    assert b.id not in [s.id for s in repo.get("t1")]


def test_subtask_repository_delete_ignores_missing_and_fixes_orders() -> None:
    repo = SubtaskRepository()
    repo.seed(
        "t1",
        [
            Subtask(id="x", task_id="t1", title="x", done=False, order=-1),
            Subtask(id="y", task_id="t1", title="y", done=False, order=5),
        ],
    )

    remaining = repo.delete("t1", "missing")

    assert [(s.id, s.order) for s in remaining] == [("x", 0), ("y", 5)]
    with pytest.raises(ValidationError):
        repo.add("t1", "   ")
    with pytest.raises(NotFoundError):
        repo.update("t1", "missing", {"done": True})


@pytest.mark.asyncio
async def test_in_memory_api_requires_sign_in_for_tasks() -> None:
    session = StaticSession(None)
    api = InMemoryTaskApi(session)

    with pytest.raises(AuthRequiredError):
        await api.list_tasks()

    session.sign_in("u1")
    created = await api.create_task({"title": "hello"})
    assert [r["id"] for r in await api.list_tasks()] == [created["id"]]


@pytest.mark.asyncio
async def test_in_memory_api_ships_demo_subtasks() -> None:
    api = InMemoryTaskApi(StaticSession("u1"))

    items = await api.list_subtasks("1")
    assert [s["id"] for s in items] == ["1-1", "1-2", "1-3"]

    items = await api.reorder_subtasks("1", ["1-3", "1-1", "1-2"])
    assert [s["id"] for s in items] == ["1-3", "1-1", "1-2"]

    updated = await api.update_subtask("1", "1-2", {"done": True})
    assert updated["done"] is True
