# src/flowtask/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ..api.errors import ValidationError

DEFAULT_USER_ID = "local-user"


class _LenientEnum(StrEnum):
    @classmethod
    def parse(cls, raw: Any, fallback: Any = None) -> Any:
        """
        Case-insensitive lookup.

        Unknown or empty values return `fallback` (or the enum default when
        fallback is None).
        """
        if fallback is None:
            fallback = cls.default()
        if raw is None:
            return fallback
        value = str(raw).strip().lower()
        if not value:
            return fallback
        try:
            return cls(value)
        except ValueError:
            return fallback

    @classmethod
    def default(cls) -> Any:
        raise NotImplementedError


class TaskCategory(_LenientEnum):
    WORK = "work"
    PERSONAL = "personal"
    STUDY = "study"
    WELLNESS = "wellness"
    OTHER = "other"

    @classmethod
    def default(cls) -> TaskCategory:
        return cls.OTHER


class TaskPriority(_LenientEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def default(cls) -> TaskPriority:
        return cls.MEDIUM


class TaskStatus(_LenientEnum):
    """
    Board column of a task.

    Notes:
    - COMPLETED is the only status for which Task.completed is True.
    """

    BACKLOG = "backlog"
    IN_PROGRESS = "in_progress"
    IN_REVIEW = "in_review"
    COMPLETED = "completed"

    @classmethod
    def default(cls) -> TaskStatus:
        return cls.BACKLOG


def completed_for(status: TaskStatus) -> bool:
    return status == TaskStatus.COMPLETED


@dataclass(frozen=True, slots=True)
class Tag:
    id: str
    name: str


def unique_tags(tags: Any) -> tuple[Tag, ...]:
    """Deduplicate by tag id, keeping the first occurrence."""
    seen: set[str] = set()
    out: list[Tag] = []
    for tag in tags or ():
        if tag.id in seen:
            continue
        seen.add(tag.id)
        out.append(tag)
    return tuple(out)


@dataclass(frozen=True, slots=True)
class Task:
    id: str
    user_id: str
    title: str
    category: TaskCategory
    priority: TaskPriority
    status: TaskStatus
    completed: bool

    description: str | None = None
    deadline: str | None = None
    tags: tuple[Tag, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "title": self.title,
            "description": self.description,
            "category": self.category.value,
            "priority": self.priority.value,
            "deadline": self.deadline,
            "status": self.status.value,
            "completed": self.completed,
            "tags": [{"id": t.id, "name": t.name} for t in self.tags],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        status = TaskStatus.parse(data.get("status"))
        raw_tags = data.get("tags") or []
        tags = unique_tags(
            Tag(id=str(t["id"]), name=str(t.get("name") or t["id"]))
            for t in raw_tags
            if isinstance(t, dict) and t.get("id")
        )
        completed = data.get("completed")
        return cls(
            id=str(data["id"]),
            user_id=str(data.get("userId") or DEFAULT_USER_ID),
            title=str(data.get("title") or ""),
            description=data.get("description"),
            category=TaskCategory.parse(data.get("category")),
            priority=TaskPriority.parse(data.get("priority")),
            deadline=data.get("deadline"),
            status=status,
            completed=completed_for(status) if completed is None else bool(completed),
            tags=tags,
        )


@dataclass(frozen=True, slots=True)
class Subtask:
    id: str
    task_id: str
    title: str
    done: bool
    order: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "taskId": self.task_id,
            "title": self.title,
            "done": self.done,
            "order": self.order,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, index: int = 0) -> Subtask:
        order = data.get("order")
        return cls(
            id=str(data["id"]),
            task_id=str(data.get("taskId") or ""),
            title=str(data.get("title") or ""),
            done=bool(data.get("done", False)),
            order=order if isinstance(order, int) and not isinstance(order, bool) else index,
        )


@dataclass(slots=True)
class TaskDraft:
    """What the task form submits before the task exists."""

    title: str
    description: str | None = None
    category: TaskCategory = TaskCategory.OTHER
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.BACKLOG
    deadline: str | None = None
    tags: tuple[Tag, ...] = field(default_factory=tuple)

    def validate(self) -> None:
        if not self.title or not self.title.strip():
            raise ValidationError("Title is required", {"field": "title"})

    def to_task(self, *, task_id: str, user_id: str) -> Task:
        return Task(
            id=task_id,
            user_id=user_id,
            title=self.title.strip(),
            description=self.description,
            category=self.category,
            priority=self.priority,
            deadline=self.deadline,
            status=self.status,
            completed=completed_for(self.status),
            tags=unique_tags(self.tags),
        )
