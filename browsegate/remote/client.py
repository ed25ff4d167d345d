"""Async HTTP client for the remote task-queue service."""
from __future__ import annotations

import asyncio
import json
import logging
import random
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from browsegate.workflow.config import Settings

from .models import (
    Artifact,
    CreateMonitorRequest,
    CreateTaskRequest,
    ErrorResponse,
    Monitor,
    Task,
    TaskEvent,
    TaskResult,
)

logger = logging.getLogger(__name__)

JITTER_SECONDS = 0.1


class RemoteRequestError(RuntimeError):
    """HTTP error response returned by the task service."""

    def __init__(self, status_code: int, error: Optional[ErrorResponse], method: str, url: str) -> None:
        detail = error.message if error else "no error body"
        super().__init__(f"{method} {url} failed with HTTP {status_code}: {detail}")
        self.status_code = status_code
        self.error = error

    @property
    def retriable(self) -> bool:
        return self.status_code == 429 or 500 <= self.status_code <= 599


@dataclass(slots=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 0.5

    def delay_for(self, attempt: int, jitter: float) -> float:
        return self.base_delay * (2 ** (attempt - 1)) + jitter


def is_retriable_error(exc: BaseException) -> bool:
    """Transport failures without a response, 5xx and 429 are retriable."""

    if isinstance(exc, RemoteRequestError):
        return exc.retriable
    return isinstance(exc, httpx.TransportError)


def _quote(identifier: str) -> str:
    return quote(identifier, safe="")


class RemoteTaskClient:
    """Stateless wrapper around the task-queue HTTP API with bounded retries."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: Optional[str] = None,
        bearer_token: Optional[str] = None,
        max_retries: int = 3,
        base_delay: float = 0.5,
        request_timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter: Callable[[], float] | None = None,
    ) -> None:
        self._retry = RetryPolicy(max_retries=max_retries, base_delay=base_delay)
        self._sleep = sleep
        self._jitter = jitter or (lambda: random.uniform(0.0, JITTER_SECONDS))
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=self._auth_headers(api_key, bearer_token),
            timeout=request_timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "RemoteTaskClient":
        return cls(
            settings.remote_url,
            api_key=settings.api_key,
            bearer_token=settings.bearer_token,
            max_retries=settings.max_retries,
            base_delay=settings.retry_base_delay_seconds,
            request_timeout=settings.request_timeout_seconds,
            **kwargs,
        )

    @staticmethod
    def _auth_headers(api_key: Optional[str], bearer_token: Optional[str]) -> Dict[str, str]:
        if bearer_token:
            return {"Authorization": f"Bearer {bearer_token}"}
        if api_key:
            return {"x-api-key": api_key}
        return {}

    @property
    def base_url(self) -> str:
        return str(self._client.base_url)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "RemoteTaskClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _send_once(self, method: str, url: str, json_body: Any | None) -> Any:
        response = await self._client.request(method, url, json=json_body)
        if response.is_error:
            raise RemoteRequestError(response.status_code, _parse_error(response), method, url)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def request(
        self,
        method: str,
        url: str,
        *,
        json_body: Any | None = None,
        max_retries: Optional[int] = None,
    ) -> Any:
        """Send a request, retrying transient failures with exponential backoff."""

        retries = self._retry.max_retries if max_retries is None else max_retries
        attempt = 0
        while True:
            try:
                return await self._send_once(method, url, json_body)
            except (RemoteRequestError, httpx.TransportError) as exc:
                attempt += 1
                if attempt > retries or not is_retriable_error(exc):
                    raise
                delay = self._retry.delay_for(attempt, self._jitter())
                logger.warning(
                    "Retrying %s %s after error (attempt %d/%d, sleeping %.2fs): %s",
                    method,
                    url,
                    attempt,
                    retries,
                    delay,
                    exc,
                )
                await self._sleep(delay)

    # Tasks

    async def create_task(self, request: CreateTaskRequest) -> Task:
        payload = await self.request("POST", "/tasks", json_body=request.to_dict())
        return Task.from_dict(payload)

    async def list_tasks(self) -> List[Task]:
        payload = await self.request("GET", "/tasks")
        return [Task.from_dict(item) for item in payload or []]

    async def get_task(self, task_id: str) -> Task:
        payload = await self.request("GET", f"/tasks/{_quote(task_id)}")
        return Task.from_dict(payload)

    async def get_task_result(self, task_id: str) -> TaskResult:
        payload = await self.request("GET", f"/tasks/{_quote(task_id)}/result")
        return TaskResult.from_dict(payload)

    async def cancel_task(self, task_id: str) -> Task:
        payload = await self.request("POST", f"/tasks/{_quote(task_id)}/cancel")
        return Task.from_dict(payload)

    async def stream_events(self, task_id: str) -> AsyncIterator[TaskEvent]:
        """Yield the server-sent events of one task until its ``end`` event.

        The stream is consumed by a single subscriber and cannot be restarted.
        Connection setup is not retried.
        """

        url = f"/tasks/{_quote(task_id)}/events"
        async with self._client.stream("GET", url, timeout=None) as response:
            if response.is_error:
                await response.aread()
                raise RemoteRequestError(response.status_code, _parse_error(response), "GET", url)

            event_name: Optional[str] = None
            data_lines: List[str] = []
            async for line in response.aiter_lines():
                if line.startswith("event:"):
                    event_name = line[len("event:"):].strip()
                elif line.startswith("data:"):
                    data_lines.append(line[len("data:"):].strip())
                elif not line and event_name:
                    event = TaskEvent.from_sse(event_name, json.loads("\n".join(data_lines) or "{}"))
                    event_name, data_lines = None, []
                    yield event
                    # a terminal status is followed by result and end events
                    if event.type in {"end", "error"}:
                        return

    # Monitors and artifacts

    async def create_monitor(self, request: CreateMonitorRequest) -> Monitor:
        payload = await self.request("POST", "/monitors", json_body=request.to_dict())
        return Monitor.from_dict(payload)

    async def list_monitors(self) -> List[Monitor]:
        payload = await self.request("GET", "/monitors")
        return [Monitor.from_dict(item) for item in payload or []]

    async def get_monitor(self, monitor_id: str) -> Monitor:
        payload = await self.request("GET", f"/monitors/{_quote(monitor_id)}")
        return Monitor.from_dict(payload)

    async def delete_monitor(self, monitor_id: str) -> None:
        await self.request("DELETE", f"/monitors/{_quote(monitor_id)}")

    async def get_artifact(self, artifact_id: str) -> Artifact:
        payload = await self.request("GET", f"/artifacts/{_quote(artifact_id)}")
        return Artifact.from_dict(payload)


def _parse_error(response: httpx.Response) -> Optional[ErrorResponse]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and "code" in body:
        return ErrorResponse.from_dict(body)
    # FastAPI wraps HTTPException payloads in "detail"
    if isinstance(body, dict) and isinstance(body.get("detail"), dict):
        return ErrorResponse.from_dict(body["detail"])
    return None
