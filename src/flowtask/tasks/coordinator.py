# src/flowtask/tasks/coordinator.py

from __future__ import annotations

"""
Sync coordinator for task-level actions.

Each mutating action is applied to the LocalTaskStore first, then (when the
session is authenticated) sent to the persistence API, then reconciled with
the server answer or rolled back to the pre-action snapshot.

Signed-out sessions never reach the API: the local mutation is final.
"""

import dataclasses
import logging
import uuid
from collections.abc import Callable, Iterable, Mapping
from enum import Enum
from typing import Any

from ..api.errors import NotFoundError, ValidationError
from ..core.optimistic import MutationFence, SyncResult, run_optimistic
from ..core.ports import ApiRecord, SessionProvider, TaskApi
from .subtask_store import LocalSubtaskStore
from .tags import TagRegistry
from .task_models import (
    DEFAULT_USER_ID,
    Task,
    TaskCategory,
    TaskDraft,
    TaskPriority,
    TaskStatus,
    completed_for,
    unique_tags,
)
from .task_store import LocalTaskStore
from .task_sync import build_create_payload, build_update_payload, map_api_task, to_iso_string

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset(
    {"title", "description", "category", "priority", "deadline", "status", "completed", "tags"}
)

_ENUM_FIELDS: dict[str, type[Enum]] = {
    "category": TaskCategory,
    "priority": TaskPriority,
    "status": TaskStatus,
}


def _coerce_enum(name: str, value: Any) -> Enum:
    enum_cls = _ENUM_FIELDS[name]
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Invalid {name}: {value!r}", {"field": name}) from None


def _normalize_deadline(value: Any) -> str | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    iso = to_iso_string(value)
    if iso is None:
        raise ValidationError(f"Invalid deadline: {value!r}", {"field": "deadline"})
    return iso


def normalize_changes(changes: Mapping[str, Any]) -> dict[str, Any]:
    """
    Validate and coerce an update dict.

    Raises ValidationError for unknown fields, empty titles and bad enum or
    deadline values; nothing has been mutated at that point.
    """
    out: dict[str, Any] = {}
    for name, value in changes.items():
        if name not in UPDATABLE_FIELDS:
            raise ValidationError(f"Field cannot be updated: {name}", {"field": name})

        if name == "title":
            title = str(value or "").strip()
            if not title:
                raise ValidationError("Title is required", {"field": "title"})
            out[name] = title
        elif name == "description":
            out[name] = None if value is None else str(value)
        elif name in _ENUM_FIELDS:
            out[name] = _coerce_enum(name, value)
        elif name == "deadline":
            out[name] = _normalize_deadline(value)
        elif name == "completed":
            out[name] = bool(value)
        elif name == "tags":
            out[name] = unique_tags(value)
    return out


def merge_task(existing: Task, changes: Mapping[str, Any]) -> Task:
    """
    Apply already-normalized changes.

    completed follows the resulting status unless it is given explicitly.
    """
    merged = dataclasses.replace(existing, **changes)
    if "completed" not in changes:
        merged = dataclasses.replace(merged, completed=completed_for(merged.status))
    return merged


class SyncCoordinator:
    def __init__(
            self,
            store: LocalTaskStore,
            api: TaskApi,
            session: SessionProvider,
            *,
            subtasks: LocalSubtaskStore | None = None,
            tags: TagRegistry | None = None,
            fence: MutationFence | None = None,
            id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.store = store
        self.api = api
        self.session = session
        self.subtasks = subtasks
        self.tags = tags or TagRegistry()
        self._fence = fence
        self._new_id = id_factory or (lambda: uuid.uuid4().hex)

    def _online(self) -> bool:
        return self.session.is_authenticated()

    def _owner(self) -> str:
        return self.session.user_id() or DEFAULT_USER_ID

    # ---- initial load ----

    async def load(self, *, is_superseded: Callable[[], bool] | None = None) -> SyncResult[tuple[Task, ...]]:
        """
        Replace the store with the server's task list (authenticated only).

        Tags and any enum value the server leaves blank are carried over from
        the task already held locally.
        """
        if not self._online():
            return SyncResult.success(self.store.all())

        try:
            records = await self.api.list_tasks()
        except Exception as exc:
            logger.exception("Loading tasks failed")
            return SyncResult.failure(exc)

        if is_superseded is not None and is_superseded():
            logger.debug("Task load superseded; response dropped")
            return SyncResult(ok=True, stale=True)

        current = {t.id: t for t in self.store.all()}
        tasks = [map_api_task(raw, current.get(str(raw.get("id")))) for raw in records]
        self.store.set_all(tasks)
        logger.info("Loaded %d tasks", len(tasks))
        return SyncResult.success(self.store.all())

    # ---- create ----

    async def create(self, draft: TaskDraft) -> SyncResult[Task]:
        """
        Create a task from a form draft.

        Signed out: stored immediately under a generated id.
        Signed in: stored only once the server has assigned an id. On failure
        nothing is stored and the result carries the error, so the caller can
        keep its draft.
        """
        draft.validate()
        deadline = _normalize_deadline(draft.deadline)
        enums = {name: _coerce_enum(name, getattr(draft, name)) for name in _ENUM_FIELDS}
        local = dataclasses.replace(
            draft.to_task(task_id=self._new_id(), user_id=self._owner()),
            deadline=deadline,
            completed=completed_for(enums["status"]),
            **enums,
        )

        if not self._online():
            self.store.insert(local)
            logger.info("Task created locally id=%s", local.id)
            return SyncResult.success(local)

        try:
            raw = await self.api.create_task(build_create_payload(local))
        except Exception as exc:
            logger.exception("Creating task failed title=%r", local.title)
            return SyncResult.failure(exc)

        created = map_api_task(raw, local)
        self.store.insert(created)
        logger.info("Task created id=%s", created.id)
        return SyncResult.success(created)

    # ---- update ----

    async def update(self, task_id: str, changes: Mapping[str, Any]) -> SyncResult[Task]:
        normalized = normalize_changes(changes)

        existing = self.store.get(task_id)
        if existing is None:
            return SyncResult.failure(NotFoundError("Task not found", {"task_id": task_id}))

        merged = merge_task(existing, normalized)
        payload = build_update_payload(normalized)

        def _reconcile(raw: ApiRecord) -> None:
            confirmed = map_api_task(raw, merged)
            if "completed" in normalized:
                # Explicit completed is local-only; the server record would re-derive it.
                confirmed = dataclasses.replace(confirmed, completed=normalized["completed"])
            self.store.replace(confirmed)

        def _rollback(previous: Task | None) -> None:
            if previous is not None:
                self.store.replace(previous)

        result = await run_optimistic(
            label=f"task.update id={task_id}",
            snapshot=lambda: self.store.get(task_id),
            apply=lambda: self.store.replace(merged),
            # Tag-only or completed-only edits are not server-modelled.
            remote=(lambda: self.api.update_task(task_id, payload)) if self._online() and payload else None,
            reconcile=_reconcile,
            rollback=_rollback,
            fence=self._fence,
            key=("task", task_id),
        )
        if not result.ok:
            return SyncResult(ok=False, error=result.error, stale=result.stale)
        return SyncResult(ok=True, value=self.store.get(task_id), stale=result.stale)

    async def change_status(self, task_id: str, status: TaskStatus | str) -> SyncResult[Task]:
        return await self.update(task_id, {"status": status})

    async def set_tags(self, task_id: str, names: Iterable[str]) -> SyncResult[Task]:
        """Replace a task's tags, creating unknown tag names on the fly."""
        return await self.update(task_id, {"tags": self.tags.resolve(names)})

    # ---- delete ----

    async def delete(self, task_id: str) -> SyncResult[None]:
        """
        Remove a task immediately; on remote failure it is re-inserted at the
        index it had before the delete.
        """
        existing = self.store.get(task_id)
        if existing is None:
            return SyncResult.failure(NotFoundError("Task not found", {"task_id": task_id}))
        index = self.store.index_of(task_id)

        def _forget(_: Any = None) -> None:
            if self.subtasks is not None:
                self.subtasks.forget(task_id)

        def _rollback(previous: tuple[Task, int]) -> None:
            task, position = previous
            if task.id not in self.store:
                self.store.insert(task, index=position)

        result = await run_optimistic(
            label=f"task.delete id={task_id}",
            snapshot=lambda: (existing, index),
            apply=lambda: self.store.remove(task_id),
            remote=(lambda: self.api.delete_task(task_id)) if self._online() else None,
            reconcile=_forget,
            rollback=_rollback,
            fence=self._fence,
            key=("task", task_id),
        )
        if result.ok and not self._online():
            _forget()
        return SyncResult(ok=result.ok, error=result.error, stale=result.stale)
