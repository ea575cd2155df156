# src/flowtask/api/http_client.py

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..core.ports import ApiRecord
from .errors import ApiError, AuthRequiredError, NotFoundError, TransportError, ValidationError

logger = logging.getLogger(__name__)


def _timeout_obj(seconds: float) -> httpx.Timeout:
    # connect stays short so an unreachable server fails fast
    return httpx.Timeout(seconds, connect=min(5.0, seconds))


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or response.reason_phrase
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, str):
            return err
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
    return response.reason_phrase


def raise_for_response(response: httpx.Response) -> None:
    """Map a non-2xx response onto the error taxonomy."""
    if response.is_success:
        return
    message = _error_message(response)
    details = {"status_code": response.status_code, "url": str(response.request.url)}
    if response.status_code == 404:
        raise NotFoundError(message, details)
    if response.status_code == 400:
        raise ValidationError(message, details)
    if response.status_code == 401:
        raise AuthRequiredError(message, details)
    raise ApiError(message, status_code=response.status_code, details=details)


class HttpTaskApi:
    """
    TaskApi over the dashboard's REST routes.

    Routes:
    - /api/tasks                          GET, POST
    - /api/tasks/{id}                     PATCH, DELETE
    - /api/tasks/{id}/subtasks            GET, POST
    - /api/tasks/{id}/subtasks/{sid}      PATCH, DELETE
    - /api/tasks/{id}/subtasks/reorder    PUT {"order": [...]}

    Subtask list/delete/reorder responses are wrapped as {"subtasks": [...]}.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout_seconds: float = 15.0,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not base_url or not base_url.strip():
            raise RuntimeError("API base URL is not set. Set FLOWTASK_API_BASE_URL in your .env.")

        all_headers = {"Accept": "application/json", **(headers or {})}
        if token:
            all_headers["Authorization"] = f"Bearer {token}"

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=all_headers,
            timeout=_timeout_obj(timeout_seconds),
        )
        if client is not None:
            self._client.headers.update(all_headers)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, url: str, *, json: Any = None) -> Any:
        try:
            response = await self._client.request(method, url, json=json)
        except httpx.HTTPError as exc:
            logger.info("API: transport error %s %s (%s)", method, url, exc.__class__.__name__)
            raise TransportError(f"{method} {url} failed: {exc}", {"method": method, "url": url}) from exc

        logger.debug("API: %s %s -> %s", method, url, response.status_code)
        raise_for_response(response)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(
                "Response is not valid JSON",
                status_code=response.status_code,
                details={"url": url},
            ) from exc

    @staticmethod
    def _subtask_list(body: Any) -> list[ApiRecord]:
        if isinstance(body, dict) and isinstance(body.get("subtasks"), list):
            return body["subtasks"]
        raise ApiError("Malformed subtask list response", details={"body": body})

    # ---- tasks ----

    async def list_tasks(self) -> list[ApiRecord]:
        body = await self._request("GET", "/api/tasks")
        if not isinstance(body, list):
            raise ApiError("Malformed task list response", details={"body": body})
        return body

    async def create_task(self, payload: ApiRecord) -> ApiRecord:
        return await self._request("POST", "/api/tasks", json=payload)

    async def update_task(self, task_id: str, payload: ApiRecord) -> ApiRecord:
        return await self._request("PATCH", f"/api/tasks/{task_id}", json=payload)

    async def delete_task(self, task_id: str) -> None:
        await self._request("DELETE", f"/api/tasks/{task_id}")

    # ---- subtasks ----

    async def list_subtasks(self, task_id: str) -> list[ApiRecord]:
        return self._subtask_list(await self._request("GET", f"/api/tasks/{task_id}/subtasks"))

    async def create_subtask(self, task_id: str, title: str) -> ApiRecord:
        return await self._request("POST", f"/api/tasks/{task_id}/subtasks", json={"title": title})

    async def update_subtask(self, task_id: str, subtask_id: str, changes: ApiRecord) -> ApiRecord:
        return await self._request("PATCH", f"/api/tasks/{task_id}/subtasks/{subtask_id}", json=changes)

    async def delete_subtask(self, task_id: str, subtask_id: str) -> list[ApiRecord]:
        body = await self._request("DELETE", f"/api/tasks/{task_id}/subtasks/{subtask_id}")
        return self._subtask_list(body)

    async def reorder_subtasks(self, task_id: str, ordered_ids: list[str]) -> list[ApiRecord]:
        body = await self._request(
            "PUT",
            f"/api/tasks/{task_id}/subtasks/reorder",
            json={"order": list(ordered_ids)},
        )
        return self._subtask_list(body)
