# tests/test_coordinator.py

from __future__ import annotations

import asyncio

import pytest

from flowtask.api.errors import ApiError, NotFoundError, TransportError, ValidationError
from flowtask.core.optimistic import MutationFence
from flowtask.core.ports import StaticSession
from flowtask.tasks.coordinator import SyncCoordinator
from flowtask.tasks.subtask_store import LocalSubtaskStore
from flowtask.tasks.task_models import Tag, TaskCategory, TaskDraft, TaskPriority, TaskStatus
from flowtask.tasks.task_store import LocalTaskStore

from .fakes import FakeTaskApi


def make_coordinator(
    api: FakeTaskApi,
    *,
    user_id: str | None = "u1",
    strict: bool = False,
) -> SyncCoordinator:
    fence = MutationFence(enabled=strict)
    return SyncCoordinator(
        LocalTaskStore(),
        api,
        StaticSession(user_id),
        subtasks=LocalSubtaskStore(api, fence=fence),
        fence=fence,
        id_factory=lambda: "local-1",
    )


async def seeded(api: FakeTaskApi, *titles: str, strict: bool = False) -> SyncCoordinator:
    """Server holds `titles` as t1, t2, ...; the store is loaded from it."""
    for i, title in enumerate(titles, start=1):
        api.tasks.create("u1", {"title": title}, task_id=f"t{i}")
    coord = make_coordinator(api, strict=strict)
    await coord.load()
    return coord


# ---- create ----


@pytest.mark.asyncio
async def test_signed_out_create_is_local_only() -> None:
    api = FakeTaskApi()
    coord = make_coordinator(api, user_id=None)

    result = await coord.create(TaskDraft(title="  Buy milk "))

    assert result.ok
    assert [t.title for t in coord.store.all()] == ["Buy milk"]
    task = coord.store.get("local-1")
    assert task is not None
    assert task.completed is False
    assert task.status == TaskStatus.BACKLOG
    assert api.calls == []


@pytest.mark.asyncio
async def test_signed_in_create_stores_server_record() -> None:
    api = FakeTaskApi()
    coord = make_coordinator(api)

    result = await coord.create(
        TaskDraft(title="Write report", priority=TaskPriority.HIGH, deadline="2024-05-18T17:00:00+00:00")
    )

    assert result.ok and result.value is not None
    created = result.value
    assert created.id != "local-1"
    assert created.priority == TaskPriority.HIGH
    assert created.deadline == "2024-05-18T17:00:00.000Z"
    assert coord.store.all() == (created,)
    assert [r["id"] for r in api.tasks.list("u1")] == [created.id]


@pytest.mark.asyncio
async def test_create_failure_leaves_store_untouched() -> None:
    api = FakeTaskApi()
    api.fail_next("create_task", TransportError("connection refused"))
    coord = make_coordinator(api)

    result = await coord.create(TaskDraft(title="Buy milk"))

    assert not result.ok
    assert isinstance(result.error, TransportError)
    assert len(coord.store) == 0


@pytest.mark.asyncio
async def test_create_rejects_empty_title_before_any_call() -> None:
    api = FakeTaskApi()
    coord = make_coordinator(api)

    with pytest.raises(ValidationError):
        await coord.create(TaskDraft(title="   "))

    assert api.calls == []
    assert len(coord.store) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("user_id", ["u1", None])
async def test_create_coerces_string_enums(user_id: str | None) -> None:
    api = FakeTaskApi()
    coord = make_coordinator(api, user_id=user_id)

    result = await coord.create(TaskDraft(title="Yoga", category="Wellness", priority=" LOW ", status="completed"))

    assert result.ok and result.value is not None
    task = coord.store.get(result.value.id)
    assert task.category is TaskCategory.WELLNESS
    assert task.priority is TaskPriority.LOW
    assert task.status is TaskStatus.COMPLETED
    assert task.completed is True


@pytest.mark.asyncio
async def test_create_rejects_unknown_enum_before_any_call() -> None:
    api = FakeTaskApi()
    coord = make_coordinator(api)

    with pytest.raises(ValidationError):
        await coord.create(TaskDraft(title="Yoga", priority="urgent"))

    assert api.calls == []
    assert len(coord.store) == 0


# ---- load ----


@pytest.mark.asyncio
async def test_load_keeps_local_tags() -> None:
    api = FakeTaskApi()
    coord = await seeded(api, "Design review")
    tagged = await coord.set_tags("t1", ["Design"])
    assert tagged.ok

    await coord.load()

    task = coord.store.get("t1")
    assert task is not None
    assert task.tags == (Tag(id="design", name="Design"),)


@pytest.mark.asyncio
async def test_load_failure_keeps_current_store() -> None:
    api = FakeTaskApi()
    coord = await seeded(api, "A", "B")
    before = coord.store.all()
    api.fail_next("list_tasks", ApiError("boom", status_code=500))

    result = await coord.load()

    assert not result.ok
    assert coord.store.all() is before


# ---- update ----


@pytest.mark.asyncio
async def test_update_failure_restores_exact_snapshot() -> None:
    api = FakeTaskApi()
    coord = await seeded(api, "Original")
    before = coord.store.get("t1")
    api.fail_next("update_task", ApiError("Internal Server Error", status_code=500))

    result = await coord.update("t1", {"title": "Renamed", "priority": "high"})

    assert not result.ok
    assert isinstance(result.error, ApiError)
    assert coord.store.get("t1") == before


@pytest.mark.asyncio
async def test_update_sends_only_changed_fields() -> None:
    api = FakeTaskApi()
    coord = await seeded(api, "Original")

    result = await coord.update("t1", {"title": "Renamed"})

    assert result.ok
    assert result.value is not None and result.value.title == "Renamed"
    name, args = api.calls[-1]
    assert name == "update_task"
    assert args == ("t1", {"title": "Renamed"})


@pytest.mark.asyncio
async def test_status_change_drives_completed_flag() -> None:
    api = FakeTaskApi()
    coord = await seeded(api, "Ship it")

    done = await coord.change_status("t1", "completed")
    assert done.ok
    assert coord.store.get("t1").completed is True
    assert api.tasks.list("u1")[0]["status"] == "COMPLETED"

    reopened = await coord.change_status("t1", TaskStatus.IN_REVIEW)
    assert reopened.ok
    task = coord.store.get("t1")
    assert task.status == TaskStatus.IN_REVIEW
    assert task.completed is False


@pytest.mark.asyncio
async def test_explicit_completed_overrides_status_online() -> None:
    api = FakeTaskApi()
    coord = await seeded(api, "Ship it")

    result = await coord.update("t1", {"status": "in_progress", "completed": True})

    assert result.ok
    task = coord.store.get("t1")
    assert task.status == TaskStatus.IN_PROGRESS
    assert task.completed is True
    assert api.tasks.list("u1")[0]["status"] == "IN_PROGRESS"


@pytest.mark.asyncio
async def test_completed_only_edit_stays_local() -> None:
    api = FakeTaskApi()
    coord = await seeded(api, "Ship it")

    result = await coord.update("t1", {"completed": True})

    assert result.ok
    assert coord.store.get("t1").completed is True
    assert coord.store.get("t1").status == TaskStatus.BACKLOG
    assert api.called("update_task") == 0


@pytest.mark.asyncio
async def test_plain_update_rederives_completed_from_status() -> None:
    api = FakeTaskApi()
    coord = await seeded(api, "Ship it")
    await coord.update("t1", {"completed": True})

    result = await coord.update("t1", {"title": "Ship it today"})

    assert result.ok
    task = coord.store.get("t1")
    assert task.title == "Ship it today"
    assert task.completed is False


@pytest.mark.asyncio
async def test_update_unknown_task_is_not_found() -> None:
    api = FakeTaskApi()
    coord = make_coordinator(api)

    result = await coord.update("missing", {"title": "x"})

    assert not result.ok
    assert isinstance(result.error, NotFoundError)
    assert api.calls == []


@pytest.mark.asyncio
async def test_update_rejects_bad_input_without_mutation() -> None:
    api = FakeTaskApi()
    coord = await seeded(api, "Original")
    before = coord.store.all()

    with pytest.raises(ValidationError):
        await coord.update("t1", {"priority": "urgent"})
    with pytest.raises(ValidationError):
        await coord.update("t1", {"owner": "someone"})
    with pytest.raises(ValidationError):
        await coord.update("t1", {"title": "  "})

    assert coord.store.all() is before


@pytest.mark.asyncio
async def test_tag_edit_is_local_only() -> None:
    api = FakeTaskApi()
    coord = await seeded(api, "Research")

    result = await coord.set_tags("t1", ["research", "Deep  Work", "RESEARCH", " "])

    assert result.ok
    assert [t.id for t in coord.store.get("t1").tags] == ["research", "deep-work"]
    assert api.called("update_task") == 0


# ---- delete ----


@pytest.mark.asyncio
async def test_delete_failure_restores_original_position() -> None:
    api = FakeTaskApi()
    coord = await seeded(api, "A", "B", "C")
    order_before = [t.id for t in coord.store.all()]
    middle = order_before[1]
    api.fail_next("delete_task", TransportError("timeout"))

    result = await coord.delete(middle)

    assert not result.ok
    assert [t.id for t in coord.store.all()] == order_before


@pytest.mark.asyncio
async def test_delete_success_forgets_subtasks() -> None:
    api = FakeTaskApi()
    coord = await seeded(api, "A")
    await coord.subtasks.fetch("t1")
    assert coord.subtasks.is_loaded("t1")

    result = await coord.delete("t1")

    assert result.ok
    assert "t1" not in coord.store
    assert not coord.subtasks.is_loaded("t1")
    assert api.tasks.list("u1") == []


@pytest.mark.asyncio
async def test_signed_out_delete_never_calls_api() -> None:
    api = FakeTaskApi()
    coord = make_coordinator(api, user_id=None)
    await coord.create(TaskDraft(title="Local"))

    result = await coord.delete("local-1")

    assert result.ok
    assert len(coord.store) == 0
    assert api.calls == []


# ---- concurrent mutations ----


@pytest.mark.asyncio
async def test_last_response_wins_without_fencing() -> None:
    api = FakeTaskApi()
    coord = await seeded(api, "Original")
    gate = api.hold("update_task")

    first = asyncio.create_task(coord.update("t1", {"title": "First"}))
    await asyncio.sleep(0)
    second = await coord.update("t1", {"title": "Second"})
    assert second.ok
    assert coord.store.get("t1").title == "Second"

    gate.set()
    late = await first

    assert late.ok and not late.stale
    assert coord.store.get("t1").title == "First"


@pytest.mark.asyncio
async def test_strict_ordering_drops_stale_response() -> None:
    api = FakeTaskApi()
    coord = await seeded(api, "Original", strict=True)
    gate = api.hold("update_task")

    first = asyncio.create_task(coord.update("t1", {"title": "First"}))
    await asyncio.sleep(0)
    await coord.update("t1", {"title": "Second"})

    gate.set()
    late = await first

    assert late.stale
    assert coord.store.get("t1").title == "Second"


@pytest.mark.asyncio
async def test_strict_ordering_skips_stale_rollback() -> None:
    api = FakeTaskApi()
    coord = await seeded(api, "Original", strict=True)
    gate = api.hold("update_task")
    api.fail_next("update_task", TransportError("reset"))

    first = asyncio.create_task(coord.update("t1", {"title": "First"}))
    await asyncio.sleep(0)
    second = await coord.update("t1", {"title": "Second"})
    assert second.ok

    gate.set()
    late = await first

    assert not late.ok and late.stale
    assert coord.store.get("t1").title == "Second"


@pytest.mark.asyncio
async def test_delete_first_task_then_fail_restores_it_first() -> None:
    api = FakeTaskApi()
    coord = await seeded(api, "T2", "T1")
    assert [t.title for t in coord.store.all()] == ["T1", "T2"]
    first_id = coord.store.all()[0].id
    gate = api.hold("delete_task")
    api.fail_next("delete_task", ApiError("Internal Server Error", status_code=500))

    pending = asyncio.create_task(coord.delete(first_id))
    await asyncio.sleep(0)
    assert [t.title for t in coord.store.all()] == ["T2"]

    gate.set()
    result = await pending

    assert not result.ok
    assert [t.title for t in coord.store.all()] == ["T1", "T2"]
