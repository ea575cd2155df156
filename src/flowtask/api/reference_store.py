# src/flowtask/api/reference_store.py

"""
In-memory reference persistence.

Stand-in for the database behind the persistence API: the in-process API
(offline.py) and the tests run against it. Records are kept in the same
camelCase wire shape the HTTP API returns.
"""

from __future__ import annotations

import itertools
import logging
import uuid
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace
from typing import Any

from ..tasks import ordering
from ..tasks.task_models import Subtask, TaskPriority, TaskStatus
from ..tasks.task_sync import to_iso_string
from .errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_SUBTASKS: dict[str, list[Subtask]] = {
    "1": [
        Subtask(id="1-1", task_id="1", title="Draft user journey", done=True, order=0),
        Subtask(id="1-2", task_id="1", title="Review with PM", done=False, order=1),
        Subtask(id="1-3", task_id="1", title="Prepare mockups", done=False, order=2),
    ],
    "3": [
        Subtask(id="3-1", task_id="3", title="Plan recipes", done=True, order=0),
        Subtask(id="3-2", task_id="3", title="Create shopping list", done=False, order=1),
    ],
}

_SUBTASK_FIELDS = frozenset({"title", "done", "order"})


class SubtaskRepository:
    """Ordered subtasks per task id."""

    def __init__(self, *, seed_defaults: bool = False) -> None:
        self._by_task: dict[str, list[Subtask]] = {}
        if seed_defaults:
            for task_id, items in DEFAULT_SUBTASKS.items():
                self.seed(task_id, items)

    def seed(self, task_id: str, items: Iterable[Subtask]) -> None:
        self._by_task[task_id] = ordering.sort_by_order(items)

    def get(self, task_id: str) -> list[Subtask]:
        items = ordering.normalize_orders(self._by_task.get(task_id, []))
        self._by_task[task_id] = items
        return list(items)

    def add(self, task_id: str, title: str, *, done: bool = False, order: int | None = None) -> Subtask:
        trimmed = (title or "").strip()
        if not trimmed:
            raise ValidationError("Title cannot be empty", {"field": "title"})

        items = self.get(task_id)
        subtask = Subtask(
            id=uuid.uuid4().hex,
            task_id=task_id,
            title=trimmed,
            done=bool(done),
            order=ordering.next_order(items) if order is None else order,
        )
        self._by_task[task_id] = ordering.sort_by_order([*items, subtask])
        return subtask

    def update(self, task_id: str, subtask_id: str, changes: Mapping[str, Any]) -> Subtask:
        items = self.get(task_id)
        for index, current in enumerate(items):
            if current.id == subtask_id:
                break
        else:
            raise NotFoundError("Subtask not found", {"task_id": task_id, "subtask_id": subtask_id})

        allowed = {k: v for k, v in changes.items() if k in _SUBTASK_FIELDS and v is not None}
        if "title" in allowed:
            allowed["title"] = str(allowed["title"]).strip() or current.title
        if "done" in allowed:
            allowed["done"] = bool(allowed["done"])
        updated = replace(current, **allowed)

        items[index] = updated
        self._by_task[task_id] = ordering.sort_by_order(items)
        return updated

    def delete(self, task_id: str, subtask_id: str) -> list[Subtask]:
        """Remove a subtask (missing ids are ignored) and return what is left."""
        self._by_task[task_id] = [s for s in self.get(task_id) if s.id != subtask_id]
        return self.get(task_id)

    def reorder(self, task_id: str, ordered_ids: Sequence[str]) -> list[Subtask]:
        """
        Renumber by `ordered_ids`.

        Unlike the client-side engine, subtasks not listed are dropped: the
        stored collection becomes exactly the known ids in the given order.
        """
        known = {s.id: s for s in self.get(task_id)}
        reordered: list[Subtask] = []
        for item_id in ordered_ids:
            current = known.pop(item_id, None)
            if current is None:
                continue
            reordered.append(replace(current, order=len(reordered)))
        self._by_task[task_id] = reordered
        return list(reordered)


class TaskRepository:
    """
    Owner-scoped task records.

    Mirrors the server's validation: title required, status/priority
    upper-cased with backlog/medium fallbacks, dueAt stored as ISO-8601 UTC.
    Foreign or unknown ids raise NotFoundError.
    """

    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}
        self._seq = itertools.count(1)

    @staticmethod
    def _status(raw: Any) -> str:
        return TaskStatus.parse(raw).value.upper()

    @staticmethod
    def _priority(raw: Any) -> str:
        return TaskPriority.parse(raw).value.upper()

    def _owned(self, user_id: str, task_id: str) -> dict[str, Any]:
        record = self._records.get(task_id)
        if record is None or record["userId"] != user_id:
            raise NotFoundError("Not Found", {"task_id": task_id})
        return record

    @staticmethod
    def _public(record: dict[str, Any]) -> dict[str, Any]:
        return {k: v for k, v in record.items() if k != "_seq"}

    def list(self, user_id: str) -> list[dict[str, Any]]:
        """Newest first."""
        owned = [r for r in self._records.values() if r["userId"] == user_id]
        owned.sort(key=lambda r: r["_seq"], reverse=True)
        return [self._public(r) for r in owned]

    def create(self, user_id: str, payload: Mapping[str, Any], *, task_id: str | None = None) -> dict[str, Any]:
        title = payload.get("title")
        if not title:
            raise ValidationError("Title is required", {"field": "title"})

        record = {
            "id": task_id or uuid.uuid4().hex,
            "userId": user_id,
            "title": str(title),
            "description": payload.get("description"),
            "status": self._status(payload.get("status")),
            "priority": self._priority(payload.get("priority")),
            "category": payload.get("category") or None,
            "dueAt": to_iso_string(payload.get("dueAt")),
            "_seq": next(self._seq),
        }
        self._records[record["id"]] = record
        logger.debug("Reference task created id=%s user=%s", record["id"], user_id)
        return self._public(record)

    def update(self, user_id: str, task_id: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        record = self._owned(user_id, task_id)
        if "title" in payload:
            record["title"] = payload["title"]
        if "description" in payload:
            record["description"] = payload["description"]
        if payload.get("status") is not None:
            record["status"] = self._status(payload["status"])
        if payload.get("priority") is not None:
            record["priority"] = self._priority(payload["priority"])
        if "category" in payload:
            record["category"] = payload["category"]
        if "dueAt" in payload:
            record["dueAt"] = to_iso_string(payload["dueAt"])
        return self._public(record)

    def delete(self, user_id: str, task_id: str) -> None:
        self._owned(user_id, task_id)
        del self._records[task_id]
