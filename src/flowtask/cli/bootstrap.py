# src/flowtask/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures the local (gitignored) data directory exists,
- picks the persistence API (HTTP when a base URL is configured, otherwise
  the in-process reference API),
- wires session, stores, tag registry and coordinator into AppState,
- loads/saves the local task cache (optional).
"""

from __future__ import annotations

import logging

from ..api.http_client import HttpTaskApi
from ..api.offline import InMemoryTaskApi
from ..config import get_settings
from ..core.optimistic import MutationFence
from ..core.ports import StaticSession, TaskApi
from ..core.state import AppState
from ..tasks.coordinator import SyncCoordinator
from ..tasks.subtask_store import LocalSubtaskStore
from ..tasks.tags import TagRegistry
from ..tasks.task_store import LocalTaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_cache_path.parent.mkdir(parents=True, exist_ok=True)


def build_api(settings, session: StaticSession) -> TaskApi:
    base_url = (getattr(settings, "api_base_url", "") or "").strip()
    if base_url:
        logger.info("Using persistence API at %s", base_url)
        return HttpTaskApi(
            base_url,
            token=getattr(settings, "api_token", None),
            timeout_seconds=float(getattr(settings, "http_timeout_seconds", 15.0)),
        )
    logger.info("No API base URL configured; using the in-process reference API.")
    return InMemoryTaskApi(session, latency=float(getattr(settings, "offline_latency_seconds", 0.0)))


def create_initial_state(*, settings=None, api: TaskApi | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings (and the API) injectable makes the app easy to test and
    avoids hidden global config reads. If settings is None, falls back to
    get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    session = StaticSession(getattr(settings, "user_id", None))
    if api is None:
        api = build_api(settings, session)

    if getattr(settings, "persist_tasks", False):
        tasks = LocalTaskStore.load(settings.tasks_cache_path)
    else:
        tasks = LocalTaskStore()

    fence = MutationFence(enabled=bool(getattr(settings, "strict_ordering", False)))
    subtasks = LocalSubtaskStore(api, fence=fence)
    tags = TagRegistry()
    coordinator = SyncCoordinator(tasks, api, session, subtasks=subtasks, tags=tags, fence=fence)

    return AppState(
        settings=settings,
        session=session,
        api=api,
        tasks=tasks,
        subtasks=subtasks,
        tags=tags,
        coordinator=coordinator,
    )


def save_task_cache(state: AppState) -> None:
    if not getattr(state.settings, "persist_tasks", False):
        return
    state.tasks.save(state.settings.tasks_cache_path)
