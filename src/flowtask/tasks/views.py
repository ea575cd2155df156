# src/flowtask/tasks/views.py

"""
Read-side helpers for the board, today, calendar and analytics views.

Everything here is a pure function of a task list (and "now"), so the
rendering layer can recompute on every store change.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Literal

from .task_models import Task, TaskCategory, TaskPriority, TaskStatus
from .task_sync import parse_deadline

SortKey = Literal["deadline", "priority", "title"]

_PRIORITY_RANK = {TaskPriority.HIGH: 0, TaskPriority.MEDIUM: 1, TaskPriority.LOW: 2}


def is_done(task: Task) -> bool:
    return task.completed or task.status == TaskStatus.COMPLETED


# ---- board ----


@dataclass(slots=True)
class TaskFilters:
    query: str = ""
    category: TaskCategory | Literal["all"] = "all"
    priority: TaskPriority | Literal["all"] = "all"
    status: TaskStatus | Literal["all"] = "all"
    sort_by: SortKey = "deadline"

    def summary(self) -> str:
        parts = []
        if self.category != "all":
            parts.append(f"Category: {self.category}")
        if self.priority != "all":
            parts.append(f"Priority: {self.priority}")
        if self.status != "all":
            parts.append(f"Status: {self.status}")
        return " · ".join(parts) if parts else "All tasks"


def _deadline_key(task: Task) -> float:
    parsed = parse_deadline(task.deadline)
    return parsed.timestamp() if parsed is not None else float("inf")


def sort_tasks(tasks: Iterable[Task], sort_by: SortKey = "deadline") -> list[Task]:
    if sort_by == "priority":
        return sorted(tasks, key=lambda t: _PRIORITY_RANK[t.priority])
    if sort_by == "title":
        return sorted(tasks, key=lambda t: t.title.casefold())
    return sorted(tasks, key=_deadline_key)


def filter_tasks(tasks: Iterable[Task], filters: TaskFilters) -> list[Task]:
    query = filters.query.strip().casefold()

    def _matches(task: Task) -> bool:
        if query:
            in_title = query in task.title.casefold()
            in_description = query in (task.description or "").casefold()
            if not (in_title or in_description):
                return False
        if filters.category != "all" and task.category != filters.category:
            return False
        if filters.priority != "all" and task.priority != filters.priority:
            return False
        if filters.status != "all" and task.status != filters.status:
            return False
        return True

    return sort_tasks((t for t in tasks if _matches(t)), filters.sort_by)


def group_by_status(tasks: Iterable[Task]) -> dict[TaskStatus, list[Task]]:
    """Board columns, one per status, in lifecycle order."""
    columns: dict[TaskStatus, list[Task]] = {status: [] for status in TaskStatus}
    for task in tasks:
        columns[task.status].append(task)
    return columns


# ---- today ----

TodayGroup = Literal["overdue", "morning", "afternoon", "evening"]


def group_today(tasks: Iterable[Task], now: datetime) -> dict[TodayGroup, list[Task]]:
    """
    Bucket open tasks for the "today" view.

    - overdue: deadline already passed
    - morning / afternoon / evening: due later today (<12h, <18h, rest)
    - flexible tasks (no deadline) land in morning
    - tasks due on a later day are left out
    """
    if now.tzinfo is None:
        now = now.astimezone()

    buckets: dict[TodayGroup, list[tuple[datetime | None, Task]]] = {
        "overdue": [],
        "morning": [],
        "afternoon": [],
        "evening": [],
    }

    for task in tasks:
        if task.completed:
            continue
        deadline = parse_deadline(task.deadline)
        if deadline is None:
            buckets["morning"].append((None, task))
            continue
        deadline = deadline.astimezone(now.tzinfo)
        if deadline < now:
            buckets["overdue"].append((deadline, task))
            continue
        if deadline.date() != now.date():
            continue
        if deadline.hour < 12:
            buckets["morning"].append((deadline, task))
        elif deadline.hour < 18:
            buckets["afternoon"].append((deadline, task))
        else:
            buckets["evening"].append((deadline, task))

    def _key(entry: tuple[datetime | None, Task]) -> float:
        return entry[0].timestamp() if entry[0] is not None else float("inf")

    return {name: [task for _, task in sorted(entries, key=_key)] for name, entries in buckets.items()}


# ---- calendar ----


def tasks_by_day(tasks: Iterable[Task], tz=None) -> dict[date, list[Task]]:
    """Calendar events: tasks with a deadline keyed by local due date."""
    out: dict[date, list[Task]] = {}
    for task in tasks:
        deadline = parse_deadline(task.deadline)
        if deadline is None:
            continue
        out.setdefault(deadline.astimezone(tz).date(), []).append(task)
    for day in out:
        out[day].sort(key=_deadline_key)
    return dict(sorted(out.items()))


# ---- analytics ----


@dataclass(slots=True)
class TaskStats:
    total: int
    completed: int
    in_progress: int
    backlog: int
    overdue: int
    completion_rate: int
    status_distribution: dict[str, int] = field(default_factory=dict)
    category_counts: dict[str, int] = field(default_factory=dict)
    next_deadline: tuple[Task, datetime] | None = None
    oldest_overdue: datetime | None = None
    weekly_completed: list[tuple[date, int]] = field(default_factory=list)


def _week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())


def compute_stats(tasks: Sequence[Task], now: datetime, *, weeks: int = 6) -> TaskStats:
    if now.tzinfo is None:
        now = now.astimezone()

    total = len(tasks)
    done = [t for t in tasks if is_done(t)]
    active = [t for t in tasks if not is_done(t)]

    distribution = {status.value: 0 for status in TaskStatus}
    for task in tasks:
        key = TaskStatus.COMPLETED if is_done(task) else task.status
        distribution[key.value] += 1

    categories = Counter(t.category.value for t in tasks)

    upcoming: list[tuple[datetime, Task]] = []
    overdue: list[datetime] = []
    for task in active:
        deadline = parse_deadline(task.deadline)
        if deadline is None:
            continue
        upcoming.append((deadline, task))
        if deadline < now:
            overdue.append(deadline)
    upcoming.sort(key=lambda entry: entry[0])

    # Completed tasks count in the week of their deadline (or this week if flexible).
    this_week = _week_start(now.date())
    starts = [this_week - timedelta(weeks=weeks - 1 - i) for i in range(weeks)]
    per_week: Counter[date] = Counter()
    for task in done:
        deadline = parse_deadline(task.deadline)
        ref = deadline.astimezone(now.tzinfo).date() if deadline is not None else now.date()
        per_week[_week_start(ref)] += 1

    return TaskStats(
        total=total,
        completed=len(done),
        in_progress=sum(1 for t in tasks if t.status == TaskStatus.IN_PROGRESS),
        backlog=sum(1 for t in tasks if t.status == TaskStatus.BACKLOG),
        overdue=len(overdue),
        completion_rate=int(len(done) * 100 / total + 0.5) if total else 0,
        status_distribution=distribution,
        category_counts=dict(categories),
        next_deadline=(upcoming[0][1], upcoming[0][0]) if upcoming else None,
        oldest_overdue=min(overdue) if overdue else None,
        weekly_completed=[(start, per_week.get(start, 0)) for start in starts],
    )


def format_deadline(value: str | None, now: datetime | None = None) -> str:
    """Human label used on task cards."""
    deadline = parse_deadline(value)
    if deadline is None:
        return "No deadline"
    now = (now or datetime.now()).astimezone()
    local = deadline.astimezone(now.tzinfo)
    clock = local.strftime("%I:%M %p").lstrip("0")
    if local.date() == now.date():
        return f"Today • {clock}"
    if local.date() == now.date() + timedelta(days=1):
        return f"Tomorrow • {clock}"
    return f"{local.strftime('%b')} {local.day}, {local.year} {clock}"
