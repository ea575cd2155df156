# src/flowtask/api/offline.py

from __future__ import annotations

import asyncio
import logging

from ..core.ports import ApiRecord, SessionProvider
from .errors import AuthRequiredError
from .reference_store import SubtaskRepository, TaskRepository

logger = logging.getLogger(__name__)


class InMemoryTaskApi:
    """
    In-process persistence API used when no API base URL is configured.

    Behaves like the HTTP API (same records, same errors) but talks to the
    reference repositories directly. `latency` adds an artificial delay per
    call so optimistic updates are visible in demos.
    """

    def __init__(
        self,
        session: SessionProvider,
        *,
        tasks: TaskRepository | None = None,
        subtasks: SubtaskRepository | None = None,
        latency: float = 0.0,
    ) -> None:
        self._session = session
        self.tasks = tasks or TaskRepository()
        self.subtasks = subtasks or SubtaskRepository(seed_defaults=True)
        self.latency = latency

    async def _pause(self) -> None:
        if self.latency > 0:
            await asyncio.sleep(self.latency)

    def _user(self) -> str:
        user_id = self._session.user_id() if self._session.is_authenticated() else None
        if not user_id:
            raise AuthRequiredError("Unauthorized")
        return user_id

    # ---- tasks ----

    async def list_tasks(self) -> list[ApiRecord]:
        await self._pause()
        return self.tasks.list(self._user())

    async def create_task(self, payload: ApiRecord) -> ApiRecord:
        await self._pause()
        return self.tasks.create(self._user(), payload)

    async def update_task(self, task_id: str, payload: ApiRecord) -> ApiRecord:
        await self._pause()
        return self.tasks.update(self._user(), task_id, payload)

    async def delete_task(self, task_id: str) -> None:
        await self._pause()
        self.tasks.delete(self._user(), task_id)

    # ---- subtasks ----

    async def list_subtasks(self, task_id: str) -> list[ApiRecord]:
        await self._pause()
        return [s.to_dict() for s in self.subtasks.get(task_id)]

    async def create_subtask(self, task_id: str, title: str) -> ApiRecord:
        await self._pause()
        return self.subtasks.add(task_id, title).to_dict()

    async def update_subtask(self, task_id: str, subtask_id: str, changes: ApiRecord) -> ApiRecord:
        await self._pause()
        return self.subtasks.update(task_id, subtask_id, changes).to_dict()

    async def delete_subtask(self, task_id: str, subtask_id: str) -> list[ApiRecord]:
        await self._pause()
        return [s.to_dict() for s in self.subtasks.delete(task_id, subtask_id)]

    async def reorder_subtasks(self, task_id: str, ordered_ids: list[str]) -> list[ApiRecord]:
        await self._pause()
        return [s.to_dict() for s in self.subtasks.reorder(task_id, ordered_ids)]
