# src/flowtask/tasks/task_sync.py

"""Mapping between local Task records and the persistence API's wire shape."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from ..core.ports import ApiRecord
from .task_models import (
    DEFAULT_USER_ID,
    Task,
    TaskCategory,
    TaskPriority,
    TaskStatus,
    completed_for,
)

logger = logging.getLogger(__name__)

# Fields the API knows about; id, user, completed and tags are never sent.
WIRE_FIELDS = ("title", "description", "status", "priority", "category", "deadline")


def to_iso_string(value: str | datetime | None) -> str | None:
    """
    Normalize a deadline to UTC ISO-8601 with milliseconds ("...T17:00:00.000Z").

    Unparseable or empty values give None. Naive values are read as local time.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip())
        except ValueError:
            logger.debug("Ignoring unparseable deadline %r", value)
            return None
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    iso = parsed.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return iso.replace("+00:00", "Z")


def parse_deadline(value: str | None) -> datetime | None:
    """Deadline as an aware datetime, or None for flexible/invalid deadlines."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def map_api_task(raw: ApiRecord, existing: Task | None = None) -> Task:
    """
    Build a local Task from an API record.

    Values the server leaves empty or unknown fall back to `existing`;
    tags are not server-modelled and always come from `existing`.
    """
    status = TaskStatus.parse(raw.get("status"), existing.status if existing else None)
    category = TaskCategory.parse(raw.get("category"), existing.category if existing else None)
    priority = TaskPriority.parse(raw.get("priority"), existing.priority if existing else None)

    user_id = raw.get("userId") or (existing.user_id if existing else None) or DEFAULT_USER_ID

    return Task(
        id=str(raw["id"]),
        user_id=str(user_id),
        title=str(raw.get("title") or ""),
        description=raw.get("description"),
        category=category,
        priority=priority,
        deadline=raw.get("dueAt") or None,
        status=status,
        completed=completed_for(status),
        tags=existing.tags if existing else (),
    )


def build_create_payload(task: Task) -> ApiRecord:
    return {
        "title": task.title,
        "description": task.description,
        "status": task.status.value,
        "priority": task.priority.value,
        "category": task.category.value,
        "dueAt": to_iso_string(task.deadline),
    }


def build_update_payload(changes: dict[str, Any]) -> ApiRecord:
    """Wire payload with only the fields present in `changes`."""
    payload: ApiRecord = {}
    for name in WIRE_FIELDS:
        if name not in changes:
            continue
        value = changes[name]
        if name == "deadline":
            payload["dueAt"] = to_iso_string(value)
        elif name in ("status", "priority", "category") and value is not None:
            payload[name] = getattr(value, "value", value)
        else:
            payload[name] = value
    return payload
