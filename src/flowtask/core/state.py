# src/flowtask/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..tasks.coordinator import SyncCoordinator
from ..tasks.subtask_store import LocalSubtaskStore
from ..tasks.tags import TagRegistry
from ..tasks.task_store import LocalTaskStore
from .ports import SessionProvider, TaskApi


@dataclass
class AppState:
    """
    Everything the front-end needs, built once by the composition root
    (cli/bootstrap.py) and passed by reference. There are no module-level
    store singletons.
    """

    # Settings (or a test stand-in with the same attributes).
    settings: Any

    session: SessionProvider
    api: TaskApi
    tasks: LocalTaskStore
    subtasks: LocalSubtaskStore
    tags: TagRegistry
    coordinator: SyncCoordinator
