# src/flowtask/tasks/subtask_store.py

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace

from ..api.errors import NotFoundError, ValidationError
from ..core.optimistic import MutationFence, SyncResult, run_optimistic
from ..core.ports import ApiRecord, TaskApi
from . import ordering
from .task_models import Subtask

logger = logging.getLogger(__name__)

TEMP_ID_PREFIX = "temp-"


def _parse_subtasks(records: Iterable[ApiRecord], task_id: str) -> tuple[Subtask, ...]:
    items: list[Subtask] = []
    for index, raw in enumerate(records):
        sub = Subtask.from_dict(raw, index=index)
        if not sub.task_id:
            sub = replace(sub, task_id=task_id)
        items.append(sub)
    return tuple(ordering.sort_by_order(items))


class LocalSubtaskStore:
    """
    Per-task subtask collections with loading/loaded flags.

    Flags:
    - loading[task_id]: a fetch is in flight (stays set if the call hangs)
    - loaded[task_id]: the collection has been fetched (or written locally)
      and fetch() without force is a cache hit

    Every mutation is optimistic. Delete and reorder snapshot the whole
    collection and restore it as-is on failure; add, toggle and rename only
    undo their own item, so they can interleave with each other.
    """

    def __init__(self, api: TaskApi, *, fence: MutationFence | None = None) -> None:
        self._api = api
        self._fence = fence
        self._subtasks: dict[str, tuple[Subtask, ...]] = {}
        self._loading: dict[str, bool] = {}
        self._loaded: dict[str, bool] = {}

    # ---- reads ----

    def get(self, task_id: str) -> tuple[Subtask, ...]:
        return self._subtasks.get(task_id, ())

    def is_loading(self, task_id: str) -> bool:
        return self._loading.get(task_id, False)

    def is_loaded(self, task_id: str) -> bool:
        return self._loaded.get(task_id, False)

    def progress(self, task_id: str) -> tuple[int, int]:
        """(done, total) for a task card."""
        items = self.get(task_id)
        return sum(1 for s in items if s.done), len(items)

    def forget(self, task_id: str) -> None:
        self._subtasks.pop(task_id, None)
        self._loading.pop(task_id, None)
        self._loaded.pop(task_id, None)

    def _set(self, task_id: str, items: Iterable[Subtask]) -> None:
        self._subtasks[task_id] = tuple(items)

    def _restore(self, task_id: str) -> Callable[[tuple[Subtask, ...]], None]:
        def _rollback(previous: tuple[Subtask, ...]) -> None:
            self._set(task_id, previous)

        return _rollback

    def _adopt(self, task_id: str) -> Callable[[list[ApiRecord]], None]:
        def _reconcile(records: list[ApiRecord]) -> None:
            self._set(task_id, _parse_subtasks(records, task_id))

        return _reconcile

    # ---- fetch ----

    async def fetch(
            self,
            task_id: str,
            *,
            force: bool = False,
            is_superseded: Callable[[], bool] | None = None,
    ) -> SyncResult[tuple[Subtask, ...]]:
        """
        Load a task's subtasks unless they are already loaded.

        `is_superseded` is checked when the response arrives; if it returns True
        the response is discarded (the request itself is not aborted).
        """
        if self.is_loaded(task_id) and not force:
            return SyncResult.success(self.get(task_id))

        self._loading[task_id] = True
        try:
            records = await self._api.list_subtasks(task_id)
        except Exception as exc:
            logger.exception("Fetching subtasks failed task_id=%s", task_id)
            self._loading[task_id] = False
            return SyncResult.failure(exc)

        self._loading[task_id] = False
        if is_superseded is not None and is_superseded():
            logger.debug("Subtask fetch superseded task_id=%s; response dropped", task_id)
            return SyncResult(ok=True, stale=True)

        self._set(task_id, _parse_subtasks(records, task_id))
        self._loaded[task_id] = True
        logger.debug("Fetched %d subtasks task_id=%s", len(self.get(task_id)), task_id)
        return SyncResult.success(self.get(task_id))

    # ---- mutations ----

    async def add(self, task_id: str, title: str) -> SyncResult[ApiRecord]:
        trimmed = (title or "").strip()
        if not trimmed:
            return SyncResult.failure(ValidationError("Subtask title cannot be empty", {"field": "title"}))

        current = self.get(task_id)
        temp_id = f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"
        optimistic = Subtask(
            id=temp_id,
            task_id=task_id,
            title=trimmed,
            done=False,
            order=ordering.next_order(current),
        )

        def _apply() -> None:
            self._set(task_id, (*self.get(task_id), optimistic))
            self._loaded[task_id] = True

        def _reconcile(raw: ApiRecord) -> None:
            created = Subtask.from_dict(raw)
            if not created.task_id:
                created = replace(created, task_id=task_id)
            items = list(self.get(task_id))
            ids = [s.id for s in items]
            if temp_id in ids:
                items[ids.index(temp_id)] = created
            elif created.id not in ids:
                # A newer server collection replaced ours before this answer came in.
                items.append(created)
            self._set(task_id, ordering.sort_by_order(items))

        def _rollback(_: tuple[Subtask, ...]) -> None:
            self._set(task_id, (s for s in self.get(task_id) if s.id != temp_id))

        # Keyed by the temp id: an add is never superseded, it always settles its own item.
        return await run_optimistic(
            label=f"subtask.add task_id={task_id}",
            snapshot=lambda: self.get(task_id),
            apply=_apply,
            remote=lambda: self._api.create_subtask(task_id, trimmed),
            reconcile=_reconcile,
            rollback=_rollback,
            fence=self._fence,
            key=("subtask.add", task_id, temp_id),
        )

    async def _update_one(
            self,
            task_id: str,
            subtask_id: str,
            changes: ApiRecord,
            *,
            label: str,
    ) -> SyncResult[ApiRecord]:
        if not any(s.id == subtask_id for s in self.get(task_id)):
            return SyncResult.failure(NotFoundError("Subtask not found", {"subtask_id": subtask_id}))

        def _apply() -> None:
            self._set(
                task_id,
                (replace(s, **changes) if s.id == subtask_id else s for s in self.get(task_id)),
            )

        def _reconcile(raw: ApiRecord) -> None:
            confirmed = Subtask.from_dict(raw)
            if not confirmed.task_id:
                confirmed = replace(confirmed, task_id=task_id)
            items = [confirmed if s.id == confirmed.id else s for s in self.get(task_id)]
            self._set(task_id, ordering.sort_by_order(items))

        def _snapshot() -> Subtask | None:
            return next((s for s in self.get(task_id) if s.id == subtask_id), None)

        def _rollback(previous: Subtask | None) -> None:
            if previous is not None:
                self._set(task_id, (previous if s.id == subtask_id else s for s in self.get(task_id)))

        return await run_optimistic(
            label=f"{label} task_id={task_id} subtask_id={subtask_id}",
            snapshot=_snapshot,
            apply=_apply,
            remote=lambda: self._api.update_subtask(task_id, subtask_id, dict(changes)),
            reconcile=_reconcile,
            rollback=_rollback,
            fence=self._fence,
            key=("subtask", task_id, subtask_id),
        )

    async def toggle_done(self, task_id: str, subtask_id: str, done: bool) -> SyncResult[ApiRecord]:
        return await self._update_one(task_id, subtask_id, {"done": bool(done)}, label="subtask.toggle")

    async def rename(self, task_id: str, subtask_id: str, title: str) -> SyncResult[ApiRecord]:
        trimmed = (title or "").strip()
        if not trimmed:
            return SyncResult.failure(ValidationError("Subtask title cannot be empty", {"field": "title"}))
        return await self._update_one(task_id, subtask_id, {"title": trimmed}, label="subtask.rename")

    async def delete(self, task_id: str, subtask_id: str) -> SyncResult[list[ApiRecord]]:
        def _apply() -> None:
            self._set(task_id, (s for s in self.get(task_id) if s.id != subtask_id))

        return await run_optimistic(
            label=f"subtask.delete task_id={task_id} subtask_id={subtask_id}",
            snapshot=lambda: self.get(task_id),
            apply=_apply,
            remote=lambda: self._api.delete_subtask(task_id, subtask_id),
            reconcile=self._adopt(task_id),
            rollback=self._restore(task_id),
            fence=self._fence,
            key=("subtasks", task_id),
        )

    async def reorder(self, task_id: str, ordered_ids: Sequence[str]) -> SyncResult[list[ApiRecord]]:
        ids = list(ordered_ids)

        def _apply() -> None:
            self._set(task_id, ordering.reorder(self.get(task_id), ids))

        return await run_optimistic(
            label=f"subtask.reorder task_id={task_id}",
            snapshot=lambda: self.get(task_id),
            apply=_apply,
            remote=lambda: self._api.reorder_subtasks(task_id, ids),
            reconcile=self._adopt(task_id),
            rollback=self._restore(task_id),
            fence=self._fence,
            key=("subtasks", task_id),
        )
