# src/flowtask/tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import os
from collections.abc import Callable, Iterable
from pathlib import Path

from .task_models import Task

logger = logging.getLogger(__name__)

TaskListener = Callable[[tuple[Task, ...]], None]


class LocalTaskStore:
    """
    In-memory, ordered task collection rendered by the UI.

    Insertion order is the default display order; sorting for views is done
    by the caller (see views.py).

    Every mutation swaps in a new tuple, so a reference to `all()` is a
    stable snapshot that rollback can restore as-is.
    """

    def __init__(self, tasks: Iterable[Task] = ()) -> None:
        self._tasks: tuple[Task, ...] = tuple(tasks)
        self._listeners: list[TaskListener] = []

    # ---- reads ----

    def all(self) -> tuple[Task, ...]:
        return self._tasks

    def get(self, task_id: str) -> Task | None:
        for task in self._tasks:
            if task.id == task_id:
                return task
        return None

    def index_of(self, task_id: str) -> int:
        for i, task in enumerate(self._tasks):
            if task.id == task_id:
                return i
        return -1

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return any(task.id == task_id for task in self._tasks)

    # ---- mutations ----

    def set_all(self, tasks: Iterable[Task]) -> None:
        self._commit(tuple(tasks))

    def insert(self, task: Task, *, index: int | None = None) -> None:
        """Append `task` (or put it at `index`). Id uniqueness is not checked."""
        if index is None:
            self._commit((*self._tasks, task))
            return
        index = max(0, min(index, len(self._tasks)))
        self._commit((*self._tasks[:index], task, *self._tasks[index:]))

    def replace(self, task: Task) -> None:
        if task.id not in self:
            return
        self._commit(tuple(task if t.id == task.id else t for t in self._tasks))

    def remove(self, task_id: str) -> None:
        if task_id not in self:
            return
        self._commit(tuple(t for t in self._tasks if t.id != task_id))

    # ---- observers ----

    def subscribe(self, listener: TaskListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    def _commit(self, tasks: tuple[Task, ...]) -> None:
        self._tasks = tasks
        for listener in list(self._listeners):
            try:
                listener(tasks)
            except Exception:
                logger.exception("Task store listener failed")

    # ---- durable cache (optional) ----

    def save(self, path: str | Path) -> None:
        """Write the collection to a JSON file (best-effort)."""
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".tmp")
            data = [t.to_dict() for t in self._tasks]
            tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), "utf-8")
            os.replace(tmp, path)
            with contextlib.suppress(Exception):
                os.chmod(path, 0o600)
            logger.info("Saved task cache: %d tasks to %s", len(self._tasks), path)
        except Exception:
            logger.exception("Failed to save task cache to %s", path)

    @classmethod
    def load(cls, path: str | Path) -> LocalTaskStore:
        """Build a store from a JSON cache; a missing or broken file gives an empty store."""
        path = Path(path)
        if not path.exists():
            return cls()
        try:
            data = json.loads(path.read_text("utf-8"))
        except Exception:
            logger.exception("Failed to load task cache from %s", path)
            return cls()
        if not isinstance(data, list):
            return cls()

        tasks: list[Task] = []
        for raw in data:
            if not isinstance(raw, dict) or not raw.get("id"):
                continue
            try:
                tasks.append(Task.from_dict(raw))
            except Exception:
                logger.debug("Skipping malformed cached task: %r", raw, exc_info=True)
        logger.info("Loaded task cache: %d tasks from %s", len(tasks), path)
        return cls(tasks)
