"""Tests for remote task polling, streaming and normalization."""
import asyncio
from typing import Any, Dict, List, Optional

import pytest

from browsegate.remote.automation import RemoteAutomation, RunTaskOptions
from browsegate.remote.models import (
    CreateTaskRequest,
    ErrorResponse,
    Task,
    TaskEvent,
    TaskResult,
    TaskStatus,
)
from browsegate.workflow import results


def make_task(task_id: str, status: TaskStatus) -> Task:
    return Task(
        id=task_id,
        status=status,
        created_at="2024-01-01T00:00:00+00:00",
        updated_at="2024-01-01T00:00:00+00:00",
        task_type="demo",
    )


class StubClient:
    """Scripted stand-in for RemoteTaskClient."""

    def __init__(self, statuses: Optional[Dict[str, List[TaskStatus]]] = None, results_by_id: Optional[Dict[str, TaskResult]] = None) -> None:
        self.statuses = statuses or {}
        self.results_by_id = results_by_id or {}
        self.created: List[CreateTaskRequest] = []
        self.result_calls: List[str] = []
        self.cancelled: List[str] = []
        self.events: List[TaskEvent] = []
        self.create_error: Optional[Exception] = None

    async def create_task(self, request: CreateTaskRequest) -> Task:
        if self.create_error is not None:
            raise self.create_error
        self.created.append(request)
        return make_task(f"task-{len(self.created)}", TaskStatus.QUEUED)

    async def get_task(self, task_id: str) -> Task:
        sequence = self.statuses.get(task_id, [TaskStatus.RUNNING])
        status = sequence.pop(0) if len(sequence) > 1 else sequence[0]
        return make_task(task_id, status)

    async def get_task_result(self, task_id: str) -> TaskResult:
        self.result_calls.append(task_id)
        return self.results_by_id[task_id]

    async def cancel_task(self, task_id: str) -> Task:
        self.cancelled.append(task_id)
        return make_task(task_id, TaskStatus.CANCELLED)

    async def stream_events(self, task_id: str):
        for event in self.events:
            yield event


class SteppingClock:
    def __init__(self, step: float) -> None:
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value


def request_with_script() -> CreateTaskRequest:
    return CreateTaskRequest(task_type="demo", dsl_text="goto https://example.com\nextract h1 title")


@pytest.mark.asyncio
async def test_completed_task_is_normalized():
    client = StubClient(
        statuses={"task-1": [TaskStatus.RUNNING, TaskStatus.COMPLETED]},
        results_by_id={"task-1": TaskResult(task_id="task-1", status=TaskStatus.COMPLETED, data={"title": "Example"})},
    )
    automation = RemoteAutomation(client, polling_interval=0)
    seen: List[str] = []

    result = await automation.run_task(request_with_script(), RunTaskOptions(on_event=lambda kind, data: seen.append(kind)))

    assert result.status == TaskStatus.COMPLETED
    assert result.output == {"title": "Example"}
    assert result.debug.attempts == 1
    assert result.debug.backend == "remote"
    assert seen == ["status", "status", "result"]
    # the text script was compiled and sent as structured commands
    assert client.created[0].dsl_json[0] == {"kind": "goto", "args": {"url": "https://example.com"}}


@pytest.mark.asyncio
async def test_poll_timeout_returns_timeout_without_fetching_result():
    client = StubClient()
    automation = RemoteAutomation(client, polling_interval=0, clock=SteppingClock(10.0))

    result = await automation.run_task(request_with_script(), RunTaskOptions(workflow_timeout=25.0))

    assert result.status == TaskStatus.TIMEOUT
    assert result.error.code == results.TIMEOUT
    assert result.error.retriable is False
    assert client.result_calls == []
    assert len(client.created) == 1
    assert client.created[0].options.max_duration_ms == 25000


@pytest.mark.asyncio
async def test_retriable_failure_starts_a_fresh_task():
    retriable = ErrorResponse(code="BROWSER_CRASH", message="worker died", retriable=True)
    client = StubClient(
        statuses={"task-1": [TaskStatus.FAILED], "task-2": [TaskStatus.COMPLETED]},
        results_by_id={
            "task-1": TaskResult(task_id="task-1", status=TaskStatus.FAILED, error=retriable),
            "task-2": TaskResult(task_id="task-2", status=TaskStatus.COMPLETED, data={"ok": True}),
        },
    )
    automation = RemoteAutomation(client, polling_interval=0)

    result = await automation.run_task(request_with_script())

    assert result.succeeded
    assert result.debug.attempts == 2
    assert len(client.created) == 2


@pytest.mark.asyncio
async def test_non_retriable_failure_is_returned_immediately():
    client = StubClient(
        statuses={"task-1": [TaskStatus.FAILED]},
        results_by_id={
            "task-1": TaskResult(
                task_id="task-1",
                status=TaskStatus.FAILED,
                error=ErrorResponse(code="BAD_SELECTOR", message="no such element", retriable=False),
            )
        },
    )
    automation = RemoteAutomation(client, polling_interval=0)

    result = await automation.run_task(request_with_script())

    assert result.status == TaskStatus.FAILED
    assert result.error.code == "BAD_SELECTOR"
    assert len(client.created) == 1


@pytest.mark.asyncio
async def test_invalid_script_never_reaches_the_backend():
    client = StubClient()
    automation = RemoteAutomation(client, polling_interval=0)

    result = await automation.run_task(CreateTaskRequest(task_type="demo", dsl_json=[{"kind": "goto", "args": {}}]))

    assert result.status == TaskStatus.FAILED
    assert result.error.code == results.INVALID_SCRIPT
    assert result.error.retriable is False
    assert client.created == []


@pytest.mark.asyncio
async def test_client_errors_exhaust_logical_attempts():
    client = StubClient()
    client.create_error = ConnectionError("service unreachable")
    automation = RemoteAutomation(client, polling_interval=0, max_logical_retries=2)

    result = await automation.run_task(CreateTaskRequest(task_type="freeform", instructions="look around"))

    assert result.status == TaskStatus.FAILED
    assert result.error.code == results.CLIENT_OR_TASK_ERROR
    assert result.debug.attempts == 2


@pytest.mark.asyncio
async def test_cancel_token_cancels_remote_task():
    client = StubClient()
    automation = RemoteAutomation(client, polling_interval=0)
    token = asyncio.Event()
    token.set()

    result = await automation.run_task(request_with_script(), RunTaskOptions(cancel_token=token))

    assert result.status == TaskStatus.CANCELLED
    assert result.error.code == results.CANCELLED
    assert client.cancelled == ["task-1"]


@pytest.mark.asyncio
async def test_streaming_consumes_events_instead_of_polling():
    client = StubClient()
    client.events = [
        TaskEvent(type="status", data=make_task("task-1", TaskStatus.RUNNING)),
        TaskEvent(type="status", data=make_task("task-1", TaskStatus.COMPLETED)),
        TaskEvent(type="result", data=TaskResult(task_id="task-1", status=TaskStatus.COMPLETED, data={"n": 3})),
        TaskEvent(type="end", data=TaskStatus.COMPLETED),
    ]
    automation = RemoteAutomation(client, polling_interval=0)
    seen: List[Any] = []

    result = await automation.run_task(
        request_with_script(),
        RunTaskOptions(use_streaming=True, on_event=lambda kind, data: seen.append(kind)),
    )

    assert result.succeeded
    assert result.output == {"n": 3}
    assert client.result_calls == []
    assert seen == ["status", "status", "result", "end"]


def test_timeout_budget_follows_complexity():
    automation = RemoteAutomation(StubClient(), workflow_timeout_simple=300, workflow_timeout_complex=600)

    simple = CreateTaskRequest(task_type="demo", instructions="short")
    complex_request = CreateTaskRequest(task_type="demo", targets=["a", "b", "c", "d"])

    assert automation.timeout_budget(simple, RunTaskOptions()) == 300
    assert automation.timeout_budget(complex_request, RunTaskOptions()) == 600
    assert automation.timeout_budget(complex_request, RunTaskOptions(complexity_hint="simple")) == 300
    assert automation.timeout_budget(simple, RunTaskOptions(workflow_timeout=12.5)) == 12.5
