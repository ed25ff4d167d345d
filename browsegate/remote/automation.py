"""Run tasks on the remote service: create, poll, fetch, normalize, retry."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

from browsegate.script import InvalidScript, compile_request_commands
from browsegate.workflow import results
from browsegate.workflow.config import Settings
from browsegate.workflow.results import NormalizedResult
from browsegate.workflow.routing import Complexity, infer_complexity

from .client import RemoteTaskClient
from .models import CreateTaskRequest, Task, TaskOptions, TaskResult, TaskStatus

logger = logging.getLogger(__name__)

EventCallback = Callable[[str, Any], None]


class WorkflowTimeout(RuntimeError):
    """Raised when a task does not reach a terminal state within its budget."""

    def __init__(self, task_id: str, budget: float) -> None:
        super().__init__(f"Task {task_id} exceeded workflow timeout of {budget:.1f}s")
        self.task_id = task_id
        self.budget = budget


class WorkflowCancelled(RuntimeError):
    """Raised when the caller's cancel token fires while a task is in flight."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} was cancelled by the caller")
        self.task_id = task_id


@dataclass(slots=True)
class RunTaskOptions:
    use_streaming: bool = False
    polling_interval: Optional[float] = None
    workflow_timeout: Optional[float] = None
    max_logical_retries: Optional[int] = None
    complexity_hint: Optional[Complexity] = None
    on_event: Optional[EventCallback] = None
    cancel_token: Optional[asyncio.Event] = None


class RemoteAutomation:
    """Execute requests on the remote task service and normalize the outcome."""

    def __init__(
        self,
        client: RemoteTaskClient,
        *,
        polling_interval: float = 1.5,
        workflow_timeout_simple: float = 5 * 60.0,
        workflow_timeout_complex: float = 10 * 60.0,
        max_logical_retries: int = 3,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._polling_interval = polling_interval
        self._timeout_simple = workflow_timeout_simple
        self._timeout_complex = workflow_timeout_complex
        self._max_logical_retries = max_logical_retries
        self._clock = clock

    @classmethod
    def from_settings(cls, client: RemoteTaskClient, settings: Settings) -> "RemoteAutomation":
        return cls(
            client,
            polling_interval=settings.polling_interval_seconds,
            workflow_timeout_simple=settings.workflow_timeout_simple_seconds,
            workflow_timeout_complex=settings.workflow_timeout_complex_seconds,
            max_logical_retries=settings.max_logical_retries,
        )

    @property
    def client(self) -> RemoteTaskClient:
        return self._client

    def timeout_budget(self, request: CreateTaskRequest, options: RunTaskOptions) -> float:
        if options.workflow_timeout is not None:
            return options.workflow_timeout
        complexity = options.complexity_hint or infer_complexity(request)
        return self._timeout_complex if complexity == "complex" else self._timeout_simple

    async def run_task(self, request: CreateTaskRequest, options: RunTaskOptions | None = None) -> NormalizedResult:
        """Run ``request`` remotely; failures come back as data, never as exceptions."""

        options = options or RunTaskOptions()
        max_attempts = max(1, options.max_logical_retries or self._max_logical_retries)

        try:
            compile_request_commands(request)
        except InvalidScript as exc:
            logger.info("Rejecting remote task with invalid script: %s", exc)
            return NormalizedResult.failure(results.INVALID_SCRIPT, str(exc), attempts=0, backend="remote")

        budget = self.timeout_budget(request, options)
        interval = options.polling_interval if options.polling_interval is not None else self._polling_interval

        # the server enforces a matching guardrail
        request.options = request.options or TaskOptions()
        if not request.options.max_duration_ms:
            request.options.max_duration_ms = int(budget * 1000)

        for attempt in range(1, max_attempts + 1):
            try:
                task = await self._client.create_task(request)
                logger.info(
                    "Created remote task %s (attempt %d/%d, budget %.1fs)",
                    task.id,
                    attempt,
                    max_attempts,
                    budget,
                    extra={"task_id": task.id, "task_type": request.task_type},
                )
                if options.use_streaming:
                    final_task, result = await self._stream_until_done(task, budget, options)
                else:
                    final_task, result = await self._poll_until_done(task.id, budget, interval, options)
            except WorkflowTimeout as exc:
                logger.warning("%s", exc)
                return NormalizedResult.failure(
                    results.TIMEOUT,
                    "Workflow exceeded configured timeout",
                    status=TaskStatus.TIMEOUT,
                    attempts=attempt,
                    backend="remote",
                )
            except WorkflowCancelled as exc:
                logger.info("%s", exc)
                return NormalizedResult.failure(
                    results.CANCELLED,
                    str(exc),
                    status=TaskStatus.CANCELLED,
                    attempts=attempt,
                    backend="remote",
                )
            except Exception as exc:
                logger.warning("Remote task attempt %d/%d failed: %s", attempt, max_attempts, exc)
                if attempt >= max_attempts:
                    return NormalizedResult.failure(
                        results.CLIENT_OR_TASK_ERROR,
                        str(exc) or type(exc).__name__,
                        attempts=attempt,
                        backend="remote",
                    )
                continue

            retriable = bool(result and result.error and result.error.retriable)
            if final_task.status == TaskStatus.FAILED and retriable and attempt < max_attempts:
                logger.info(
                    "Remote task %s failed with a retriable error; starting a fresh task",
                    final_task.id,
                    extra={"error_code": result.error.code if result and result.error else None},
                )
                continue

            return NormalizedResult.from_remote(final_task, result, attempt)

        # unreachable: the last attempt always returns
        return NormalizedResult.failure(results.UNKNOWN, "Unknown failure after retries", attempts=max_attempts)

    def _check_budget(self, task_id: str, started: float, budget: float, options: RunTaskOptions) -> None:
        if options.cancel_token is not None and options.cancel_token.is_set():
            raise WorkflowCancelled(task_id)
        if self._clock() - started > budget:
            raise WorkflowTimeout(task_id, budget)

    async def _poll_until_done(
        self,
        task_id: str,
        budget: float,
        interval: float,
        options: RunTaskOptions,
    ) -> Tuple[Task, Optional[TaskResult]]:
        started = self._clock()
        while True:
            try:
                self._check_budget(task_id, started, budget, options)
            except WorkflowCancelled:
                await self._cancel_quietly(task_id)
                raise

            task = await self._client.get_task(task_id)
            self._emit(options, "status", task)

            if task.is_terminal:
                result = await self._client.get_task_result(task_id)
                self._emit(options, "result", result)
                return task, result

            await asyncio.sleep(interval)

    async def _stream_until_done(
        self,
        task: Task,
        budget: float,
        options: RunTaskOptions,
    ) -> Tuple[Task, Optional[TaskResult]]:
        async def consume() -> Tuple[Task, Optional[TaskResult]]:
            latest = task
            result: Optional[TaskResult] = None
            async for event in self._client.stream_events(task.id):
                self._emit(options, event.type, event.data)
                if event.type == "status":
                    latest = event.data
                elif event.type == "result":
                    result = event.data
                elif event.type == "error":
                    raise RuntimeError(event.data.message)
                if options.cancel_token is not None and options.cancel_token.is_set():
                    raise WorkflowCancelled(task.id)
            if result is None and latest.is_terminal:
                result = await self._client.get_task_result(task.id)
            return latest, result

        try:
            return await asyncio.wait_for(consume(), timeout=budget)
        except asyncio.TimeoutError as exc:
            raise WorkflowTimeout(task.id, budget) from exc
        except WorkflowCancelled:
            await self._cancel_quietly(task.id)
            raise

    async def _cancel_quietly(self, task_id: str) -> None:
        try:
            await self._client.cancel_task(task_id)
        except Exception as exc:
            logger.debug("Cancel request for task %s failed: %s", task_id, exc)

    @staticmethod
    def _emit(options: RunTaskOptions, event_type: str, data: Any) -> None:
        if options.on_event is None:
            return
        try:
            options.on_event(event_type, data)
        except Exception as e:
            logger.warning(f"Event callback failed for {event_type}: {e}")
