# src/flowtask/cli/commands.py

from __future__ import annotations

import inspect
import logging
import shlex
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, cast

from ..api.errors import ValidationError
from ..core.optimistic import SyncResult, describe
from ..core.state import AppState
from ..tasks.task_models import Task, TaskCategory, TaskDraft, TaskPriority, TaskStatus
from ..tasks.views import TaskFilters, compute_stats, filter_tasks, format_deadline, group_by_status, group_today

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], Awaitable[str]]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], Awaitable[str]]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Slash-command registry used by the console front-end (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        try:
            parts = shlex.split(line[1:])
        except ValueError as e:
            return f"Cannot parse command: {e}"
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except Exception:
            nparams = 3

        try:
            if nparams >= 3:
                return await cast(CommandHandler3, handler)(state, args, emit)
            return await cast(CommandHandler2, handler)(state, args)
        except ValidationError as e:
            return f"Invalid input: {e.message}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- helpers ----


def _resolve_task(state: AppState, ref: str) -> Task | None:
    """A task by 1-based position in /list order, exact id, or unique id prefix."""
    tasks = state.tasks.all()
    if ref.isdigit() and 1 <= int(ref) <= len(tasks):
        return tasks[int(ref) - 1]
    exact = state.tasks.get(ref)
    if exact is not None:
        return exact
    matches = [t for t in tasks if t.id.startswith(ref)]
    return matches[0] if len(matches) == 1 else None


def _parse_options(args: list[str]) -> tuple[list[str], dict[str, str]]:
    """Split `words key=value ...` into free words and options."""
    words: list[str] = []
    options: dict[str, str] = {}
    for arg in args:
        key, sep, value = arg.partition("=")
        if sep and key in {"title", "description", "category", "priority", "status", "due"}:
            options[key] = value
        else:
            words.append(arg)
    return words, options


def _changes_from_options(options: dict[str, str]) -> dict[str, Any]:
    changes: dict[str, Any] = {}
    for key, value in options.items():
        if key == "due":
            changes["deadline"] = value or None
        elif key == "description":
            changes["description"] = value or None
        else:
            changes[key] = value
    return changes


def _outcome(result: SyncResult[Any], ok_text: str) -> str:
    if result.ok:
        return ok_text
    return f"Not saved ({describe(result)}); changes were rolled back."


def _task_line(state: AppState, index: int, task: Task) -> str:
    mark = "x" if task.completed else " "
    line = (
        f"{index:>2}. [{mark}] {task.title}  "
        f"<{task.status.value} | {task.priority.value} | {task.category.value}> "
        f"{format_deadline(task.deadline)}"
    )
    if state.subtasks.is_loaded(task.id):
        done, total = state.subtasks.progress(task.id)
        if total:
            line += f"  ({done}/{total} subtasks)"
    if task.tags:
        line += "  #" + " #".join(t.name for t in task.tags)
    return line


def _enum_choices(enum_cls: Any) -> str:
    return "|".join(member.value for member in enum_cls)


# ---- commands ----


async def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


async def cmd_status(state: AppState, args: list[str]) -> str:
    settings = state.settings
    mode = f"signed in as {state.session.user_id()}" if state.session.is_authenticated() else "signed out (local only)"
    api = getattr(settings, "api_base_url", "") or "in-process reference API"
    strict = "ON" if getattr(settings, "strict_ordering", False) else "OFF"
    return (
        "Status:\n"
        f"  Session: {mode}\n"
        f"  API: {api}\n"
        f"  Tasks: {len(state.tasks)}\n"
        f"  Strict ordering: {strict}"
    )


async def cmd_list(state: AppState, args: list[str]) -> str:
    """
    /list                 -> all tasks in store order
    /list <query>         -> title/description search, sorted by deadline
    """
    tasks = state.tasks.all()
    if not tasks:
        return "No tasks yet. Add one with /add <title>."

    positions = {t.id: i for i, t in enumerate(tasks, start=1)}
    shown = filter_tasks(tasks, TaskFilters(query=" ".join(args))) if args else list(tasks)
    if not shown:
        return "No matching tasks."
    return "\n".join(_task_line(state, positions[t.id], t) for t in shown)


async def cmd_board(state: AppState, args: list[str]) -> str:
    positions = {t.id: i for i, t in enumerate(state.tasks.all(), start=1)}
    lines: list[str] = []
    for status, column in group_by_status(state.tasks.all()).items():
        lines.append(f"== {status.value} ({len(column)})")
        lines.extend(_task_line(state, positions[t.id], t) for t in column)
    return "\n".join(lines)


async def cmd_add(state: AppState, args: list[str]) -> str:
    """/add <title> [priority=..] [category=..] [status=..] [due=ISO] [description=..]"""
    words, options = _parse_options(args)
    title = options.get("title") or " ".join(words)
    try:
        draft = TaskDraft(
            title=title,
            description=options.get("description") or None,
            category=TaskCategory(options.get("category", "other").lower()),
            priority=TaskPriority(options.get("priority", "medium").lower()),
            status=TaskStatus(options.get("status", "backlog").lower()),
            deadline=options.get("due") or None,
        )
    except ValueError:
        return (
            "Usage: /add <title> "
            f"[priority={_enum_choices(TaskPriority)}] [category={_enum_choices(TaskCategory)}] "
            f"[status={_enum_choices(TaskStatus)}] [due=2024-05-18T17:00]"
        )

    result = await state.coordinator.create(draft)
    if not result.ok:
        return f"Task not created: {describe(result)}. Your input was kept, try again."
    return f"Added: {result.value.title}"


async def cmd_edit(state: AppState, args: list[str]) -> str:
    """/edit <task> title=.. description=.. priority=.. category=.. status=.. due=.."""
    if not args:
        return "Usage: /edit <task> field=value ..."
    task = _resolve_task(state, args[0])
    if task is None:
        return f"No task matches {args[0]!r}."
    _, options = _parse_options(args[1:])
    if not options:
        return "Nothing to change. Fields: title, description, priority, category, status, due."
    result = await state.coordinator.update(task.id, _changes_from_options(options))
    return _outcome(result, f"Updated: {task.title}")


async def cmd_move(state: AppState, args: list[str]) -> str:
    if len(args) != 2:
        return f"Usage: /move <task> <{_enum_choices(TaskStatus)}>"
    task = _resolve_task(state, args[0])
    if task is None:
        return f"No task matches {args[0]!r}."
    result = await state.coordinator.change_status(task.id, args[1])
    return _outcome(result, f"Moved: {task.title} -> {args[1].lower()}")


async def cmd_done(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /done <task>"
    task = _resolve_task(state, args[0])
    if task is None:
        return f"No task matches {args[0]!r}."
    result = await state.coordinator.change_status(task.id, TaskStatus.COMPLETED)
    return _outcome(result, f"Completed: {task.title}")


async def cmd_rm(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /rm <task>"
    task = _resolve_task(state, args[0])
    if task is None:
        return f"No task matches {args[0]!r}."
    result = await state.coordinator.delete(task.id)
    return _outcome(result, f"Deleted: {task.title}")


async def cmd_tags(state: AppState, args: list[str]) -> str:
    """/tags <task> name1, name2   (no names -> list known tags)"""
    if not args:
        return "Known tags: " + ", ".join(t.name for t in state.tags.all())
    task = _resolve_task(state, args[0])
    if task is None:
        return f"No task matches {args[0]!r}."
    names = " ".join(args[1:]).split(",")
    result = await state.coordinator.set_tags(task.id, names)
    return _outcome(result, f"Tagged: {task.title}")


def _subtask_view(state: AppState, task: Task) -> str:
    items = state.subtasks.get(task.id)
    if not items:
        return f"{task.title}: no subtasks."
    lines = [f"{task.title}:"]
    for i, sub in enumerate(items, start=1):
        lines.append(f"  {i}. [{'x' if sub.done else ' '}] {sub.title}")
    return "\n".join(lines)


async def cmd_sub(
    state: AppState,
    args: list[str],
    emit: CommandEmitter | None = None,
) -> str:
    """/sub <task> [refresh]"""
    if not args:
        return "Usage: /sub <task> [refresh]"
    task = _resolve_task(state, args[0])
    if task is None:
        return f"No task matches {args[0]!r}."
    force = len(args) > 1 and args[1].lower() == "refresh"
    if emit and (force or not state.subtasks.is_loaded(task.id)):
        emit("Loading subtasks...")
    result = await state.subtasks.fetch(task.id, force=force)
    if not result.ok:
        return f"Could not load subtasks: {describe(result)}"
    return _subtask_view(state, task)


def _subtask_at(state: AppState, task: Task, ref: str):
    items = state.subtasks.get(task.id)
    if ref.isdigit() and 1 <= int(ref) <= len(items):
        return items[int(ref) - 1]
    return None


async def cmd_subadd(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /subadd <task> <title>"
    task = _resolve_task(state, args[0])
    if task is None:
        return f"No task matches {args[0]!r}."
    await state.subtasks.fetch(task.id)
    result = await state.subtasks.add(task.id, " ".join(args[1:]))
    if not result.ok:
        return f"Subtask not added: {describe(result)}"
    return _subtask_view(state, task)


async def cmd_subdone(state: AppState, args: list[str]) -> str:
    """/subdone <task> <n> [off]"""
    if len(args) < 2:
        return "Usage: /subdone <task> <n> [off]"
    task = _resolve_task(state, args[0])
    if task is None:
        return f"No task matches {args[0]!r}."
    await state.subtasks.fetch(task.id)
    sub = _subtask_at(state, task, args[1])
    if sub is None:
        return f"No subtask #{args[1]}."
    done = not (len(args) > 2 and args[2].lower() in ("off", "0", "no"))
    result = await state.subtasks.toggle_done(task.id, sub.id, done)
    if not result.ok:
        return f"Subtask unchanged: {describe(result)}"
    return _subtask_view(state, task)


async def cmd_subrm(state: AppState, args: list[str]) -> str:
    if len(args) != 2:
        return "Usage: /subrm <task> <n>"
    task = _resolve_task(state, args[0])
    if task is None:
        return f"No task matches {args[0]!r}."
    await state.subtasks.fetch(task.id)
    sub = _subtask_at(state, task, args[1])
    if sub is None:
        return f"No subtask #{args[1]}."
    result = await state.subtasks.delete(task.id, sub.id)
    if not result.ok:
        return f"Subtask not deleted: {describe(result)}"
    return _subtask_view(state, task)


async def cmd_subreorder(state: AppState, args: list[str]) -> str:
    """/subreorder <task> 3 1 2   (current positions in the new order)"""
    if len(args) < 2:
        return "Usage: /subreorder <task> <n1> <n2> ..."
    task = _resolve_task(state, args[0])
    if task is None:
        return f"No task matches {args[0]!r}."
    await state.subtasks.fetch(task.id)
    items = state.subtasks.get(task.id)
    picked = [_subtask_at(state, task, ref) for ref in args[1:]]
    if any(s is None for s in picked) or len({s.id for s in picked}) != len(items):
        return f"Give every position 1..{len(items)} exactly once."
    result = await state.subtasks.reorder(task.id, [s.id for s in picked])
    if not result.ok:
        return f"Order unchanged: {describe(result)}"
    return _subtask_view(state, task)


async def cmd_today(state: AppState, args: list[str]) -> str:
    groups = group_today(state.tasks.all(), datetime.now().astimezone())
    lines: list[str] = []
    positions = {t.id: i for i, t in enumerate(state.tasks.all(), start=1)}
    for name, tasks in groups.items():
        if not tasks:
            continue
        lines.append(f"== {name} ({len(tasks)})")
        lines.extend(_task_line(state, positions[t.id], t) for t in tasks)
    return "\n".join(lines) if lines else "Nothing left for today."


async def cmd_stats(state: AppState, args: list[str]) -> str:
    stats = compute_stats(state.tasks.all(), datetime.now().astimezone())
    lines = [
        f"Total: {stats.total}  Completed: {stats.completed}  In progress: {stats.in_progress}  "
        f"Backlog: {stats.backlog}  Overdue: {stats.overdue}",
        f"Completion: {stats.completion_rate}%",
        "By status: " + ", ".join(f"{k}={v}" for k, v in stats.status_distribution.items()),
    ]
    if stats.category_counts:
        lines.append("By category: " + ", ".join(f"{k}={v}" for k, v in stats.category_counts.items()))
    if stats.next_deadline is not None:
        task, _ = stats.next_deadline
        lines.append(f"Next deadline: {task.title} ({format_deadline(task.deadline)})")
    lines.append(
        "Completed per week: "
        + ", ".join(f"{start.strftime('%b')} {start.day}: {count}" for start, count in stats.weekly_completed)
    )
    return "\n".join(lines)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show session/API settings.")
registry.register("list", cmd_list, help_text="List tasks: /list [search].", aliases=["ls"])
registry.register("board", cmd_board, help_text="Tasks grouped by status column.")
registry.register("add", cmd_add, help_text="Add a task: /add <title> [priority=high] [due=2024-05-18T17:00].")
registry.register("edit", cmd_edit, help_text="Edit a task: /edit <task> field=value ...")
registry.register("move", cmd_move, help_text="Change status: /move <task> <status>.")
registry.register("done", cmd_done, help_text="Mark a task completed: /done <task>.")
registry.register("rm", cmd_rm, help_text="Delete a task: /rm <task>.")
registry.register("tags", cmd_tags, help_text="Set tags: /tags <task> a, b (no args: list tags).")
registry.register("sub", cmd_sub, help_text="Show subtasks: /sub <task> [refresh].")
registry.register("subadd", cmd_subadd, help_text="Add a subtask: /subadd <task> <title>.")
registry.register("subdone", cmd_subdone, help_text="Check a subtask: /subdone <task> <n> [off].")
registry.register("subrm", cmd_subrm, help_text="Delete a subtask: /subrm <task> <n>.")
registry.register("subreorder", cmd_subreorder, help_text="Reorder subtasks: /subreorder <task> 3 1 2.")
registry.register("today", cmd_today, help_text="Open tasks for today, by part of day.")
registry.register("stats", cmd_stats, help_text="Aggregate analytics.")
