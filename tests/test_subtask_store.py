# tests/test_subtask_store.py

from __future__ import annotations

import asyncio

import pytest

from flowtask.api.errors import ApiError, NotFoundError, TransportError, ValidationError
from flowtask.core.optimistic import MutationFence
from flowtask.tasks.subtask_store import TEMP_ID_PREFIX, LocalSubtaskStore
from flowtask.tasks.task_models import Subtask

from .fakes import FakeTaskApi


def _api_with(task_id: str = "t1", titles: tuple[str, ...] = ("a", "b", "c")) -> FakeTaskApi:
    api = FakeTaskApi()
    api.subtasks.seed(
        task_id,
        [Subtask(id=t, task_id=task_id, title=t.upper(), done=False, order=i) for i, t in enumerate(titles)],
    )
    return api


def _ids(store: LocalSubtaskStore, task_id: str = "t1") -> list[str]:
    return [s.id for s in store.get(task_id)]


# ---- fetch ----


@pytest.mark.asyncio
async def test_fetch_is_cached_until_forced() -> None:
    api = _api_with()
    store = LocalSubtaskStore(api)

    first = await store.fetch("t1")
    await store.fetch("t1")
    assert api.called("list_subtasks") == 1
    assert first.ok and [s.id for s in first.value] == ["a", "b", "c"]

    await store.fetch("t1", force=True)
    assert api.called("list_subtasks") == 2


@pytest.mark.asyncio
async def test_fetch_sets_loading_while_in_flight() -> None:
    api = _api_with()
    store = LocalSubtaskStore(api)
    gate = api.hold("list_subtasks")

    pending = asyncio.create_task(store.fetch("t1"))
    await asyncio.sleep(0)
    assert store.is_loading("t1")
    assert not store.is_loaded("t1")

    gate.set()
    await pending
    assert not store.is_loading("t1")
    assert store.is_loaded("t1")
    assert store.progress("t1") == (0, 3)


@pytest.mark.asyncio
async def test_fetch_failure_clears_loading_only() -> None:
    api = _api_with()
    api.fail_next("list_subtasks", TransportError("offline"))
    store = LocalSubtaskStore(api)

    result = await store.fetch("t1")

    assert not result.ok
    assert not store.is_loading("t1")
    assert not store.is_loaded("t1")
    assert store.get("t1") == ()


@pytest.mark.asyncio
async def test_superseded_fetch_is_dropped() -> None:
    api = _api_with()
    store = LocalSubtaskStore(api)

    result = await store.fetch("t1", is_superseded=lambda: True)

    assert result.ok and result.stale
    assert store.get("t1") == ()
    assert not store.is_loaded("t1")


# ---- add ----


@pytest.mark.asyncio
async def test_add_shows_temp_item_then_server_record() -> None:
    api = _api_with()
    store = LocalSubtaskStore(api)
    await store.fetch("t1")
    gate = api.hold("create_subtask")

    pending = asyncio.create_task(store.add("t1", "  d  "))
    await asyncio.sleep(0)
    optimistic = store.get("t1")[-1]
    assert optimistic.id.startswith(TEMP_ID_PREFIX)
    assert optimistic.title == "d"
    assert optimistic.order == 3

    gate.set()
    result = await pending

    assert result.ok
    final = store.get("t1")[-1]
    assert final.id == result.value["id"]
    assert not final.id.startswith(TEMP_ID_PREFIX)
    assert _ids(store) == [s.id for s in api.subtasks.get("t1")]


@pytest.mark.asyncio
async def test_add_failure_restores_collection() -> None:
    api = _api_with()
    store = LocalSubtaskStore(api)
    await store.fetch("t1")
    before = store.get("t1")
    api.fail_next("create_subtask", ApiError("Internal Server Error", status_code=500))

    result = await store.add("t1", "d")

    assert not result.ok
    assert store.get("t1") == before


@pytest.mark.asyncio
async def test_add_rejects_blank_title() -> None:
    api = _api_with()
    store = LocalSubtaskStore(api)

    result = await store.add("t1", "   ")

    assert not result.ok
    assert isinstance(result.error, ValidationError)
    assert api.calls == []


@pytest.mark.asyncio
async def test_add_to_empty_task_starts_at_zero() -> None:
    api = FakeTaskApi()
    store = LocalSubtaskStore(api)

    result = await store.add("t9", "first")

    assert result.ok
    assert [s.order for s in store.get("t9")] == [0]
    assert store.is_loaded("t9")


# ---- update ----


@pytest.mark.asyncio
async def test_toggle_done_and_failure_rollback() -> None:
    api = _api_with()
    store = LocalSubtaskStore(api)
    await store.fetch("t1")

    ok = await store.toggle_done("t1", "b", True)
    assert ok.ok
    assert store.progress("t1") == (1, 3)

    api.fail_next("update_subtask", TransportError("timeout"))
    failed = await store.toggle_done("t1", "c", True)
    assert not failed.ok
    assert [s.done for s in store.get("t1")] == [False, True, False]


@pytest.mark.asyncio
async def test_update_unknown_subtask_is_not_found() -> None:
    api = _api_with()
    store = LocalSubtaskStore(api)
    await store.fetch("t1")

    result = await store.rename("t1", "zzz", "x")

    assert isinstance(result.error, NotFoundError)
    assert api.called("update_subtask") == 0


# ---- delete / reorder ----


@pytest.mark.asyncio
async def test_delete_adopts_server_collection() -> None:
    api = _api_with()
    store = LocalSubtaskStore(api)
    await store.fetch("t1")

    result = await store.delete("t1", "b")

    assert result.ok
    assert _ids(store) == ["a", "c"]
    assert [s.order for s in store.get("t1")] == [0, 2]


@pytest.mark.asyncio
async def test_reorder_applies_positions() -> None:
    api = _api_with()
    store = LocalSubtaskStore(api)
    await store.fetch("t1")

    result = await store.reorder("t1", ["c", "a", "b"])

    assert result.ok
    assert [(s.id, s.order) for s in store.get("t1")] == [("c", 0), ("a", 1), ("b", 2)]
    assert [s.id for s in api.subtasks.get("t1")] == ["c", "a", "b"]


@pytest.mark.asyncio
async def test_reorder_failure_restores_previous_order() -> None:
    api = _api_with()
    store = LocalSubtaskStore(api)
    await store.fetch("t1")
    before = store.get("t1")
    api.fail_next("reorder_subtasks", TransportError("reset"))

    result = await store.reorder("t1", ["c", "b", "a"])

    assert not result.ok
    assert store.get("t1") == before


@pytest.mark.asyncio
async def test_add_review_to_task_one_then_fail_restores_single_item() -> None:
    api = FakeTaskApi()
    api.subtasks.seed("1", [Subtask(id="1-1", task_id="1", title="Draft user journey", done=True, order=0)])
    store = LocalSubtaskStore(api)
    await store.fetch("1")
    original = store.get("1")
    api.fail_next("create_subtask", TransportError("connection reset"))

    result = await store.add("1", "Review")

    assert not result.ok
    assert store.get("1") == original
    assert [s.id for s in api.subtasks.get("1")] == ["1-1"]


# ---- interleaved mutations (strict ordering) ----


@pytest.mark.asyncio
async def test_strict_add_then_toggle_other_item_settles_both() -> None:
    api = _api_with()
    store = LocalSubtaskStore(api, fence=MutationFence(enabled=True))
    await store.fetch("t1")
    gate = api.hold("create_subtask")

    pending = asyncio.create_task(store.add("t1", "d"))
    await asyncio.sleep(0)
    toggled = await store.toggle_done("t1", "a", True)
    assert toggled.ok and not toggled.stale

    gate.set()
    added = await pending

    assert added.ok and not added.stale
    assert not any(s.id.startswith(TEMP_ID_PREFIX) for s in store.get("t1"))
    assert _ids(store) == ["a", "b", "c", added.value["id"]]
    assert [s.done for s in store.get("t1")] == [True, False, False, False]


@pytest.mark.asyncio
async def test_strict_failed_add_keeps_concurrent_toggle() -> None:
    api = _api_with()
    store = LocalSubtaskStore(api, fence=MutationFence(enabled=True))
    await store.fetch("t1")
    gate = api.hold("create_subtask")
    api.fail_next("create_subtask", TransportError("connection reset"))

    pending = asyncio.create_task(store.add("t1", "d"))
    await asyncio.sleep(0)
    await store.toggle_done("t1", "a", True)

    gate.set()
    added = await pending

    assert not added.ok and not added.stale
    assert _ids(store) == ["a", "b", "c"]
    assert [s.done for s in store.get("t1")] == [True, False, False]


@pytest.mark.asyncio
async def test_failed_toggle_only_reverts_its_own_item() -> None:
    api = _api_with()
    store = LocalSubtaskStore(api, fence=MutationFence(enabled=True))
    await store.fetch("t1")
    gate = api.hold("update_subtask")
    api.fail_next("update_subtask", TransportError("timeout"))

    pending = asyncio.create_task(store.toggle_done("t1", "b", True))
    await asyncio.sleep(0)
    added = await store.add("t1", "d")
    assert added.ok

    gate.set()
    toggled = await pending

    assert not toggled.ok
    assert _ids(store) == ["a", "b", "c", added.value["id"]]
    assert [s.done for s in store.get("t1")] == [False, False, False, False]
