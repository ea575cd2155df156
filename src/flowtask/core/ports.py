# src/flowtask/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The stores and the coordinator depend on Protocols instead of concrete
implementations, so the HTTP adapter, the in-memory API and test fakes are
interchangeable.
"""

from typing import Any, Protocol

ApiRecord = dict[str, Any]
# Raw JSON object as returned by the persistence API (camelCase keys).


class TaskApi(Protocol):
    """Persistence API for tasks and subtasks. Every call may raise FlowtaskError."""

    async def list_tasks(self) -> list[ApiRecord]: ...
    async def create_task(self, payload: ApiRecord) -> ApiRecord: ...
    async def update_task(self, task_id: str, payload: ApiRecord) -> ApiRecord: ...
    async def delete_task(self, task_id: str) -> None: ...

    async def list_subtasks(self, task_id: str) -> list[ApiRecord]: ...
    async def create_subtask(self, task_id: str, title: str) -> ApiRecord: ...
    async def update_subtask(
            self,
            task_id: str,
            subtask_id: str,
            changes: ApiRecord,
    ) -> ApiRecord: ...

    # Both return the task's full collection after the change.
    async def delete_subtask(self, task_id: str, subtask_id: str) -> list[ApiRecord]: ...
    async def reorder_subtasks(self, task_id: str, ordered_ids: list[str]) -> list[ApiRecord]: ...


class SessionProvider(Protocol):
    """
    Identity as seen by the core.

    The core never authenticates; it only branches on is_authenticated()
    to decide whether a mutation is sent to the API at all.
    """

    def is_authenticated(self) -> bool: ...
    def user_id(self) -> str | None: ...


class StaticSession:
    """SessionProvider with a fixed identity (None = signed out)."""

    def __init__(self, user_id: str | None = None) -> None:
        self._user_id = user_id or None

    def is_authenticated(self) -> bool:
        return self._user_id is not None

    def user_id(self) -> str | None:
        return self._user_id

    def sign_in(self, user_id: str) -> None:
        self._user_id = user_id

    def sign_out(self) -> None:
        self._user_id = None
