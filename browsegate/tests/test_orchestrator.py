"""Tests for the local/remote fallback policy."""
from typing import List, Optional, Sequence
from unittest.mock import AsyncMock

import pytest

from browsegate.memory.store import InMemoryMemoryStore
from browsegate.remote.models import CreateTaskRequest, TaskStatus
from browsegate.script import Command
from browsegate.workflow import results
from browsegate.workflow.orchestrator import Orchestrator
from browsegate.workflow.results import NormalizedError, NormalizedResult, ResultDebug


def outcome(status: TaskStatus, backend: str, output: Optional[dict] = None) -> NormalizedResult:
    error = None if status == TaskStatus.COMPLETED else NormalizedError(code="X", message=f"{backend} {status.value}")
    return NormalizedResult(status=status, output=output, error=error, debug=ResultDebug(attempts=1, backend=backend))


class StubLocal:
    def __init__(self, *results_or_errors) -> None:
        self._queue = list(results_or_errors)
        self.calls: List[Sequence[Command]] = []

    async def run_commands(self, commands, request):
        self.calls.append(commands)
        item = self._queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def make_remote(*items):
    remote = AsyncMock()
    remote.run_task.side_effect = list(items)
    return remote


def script_request(**kwargs) -> CreateTaskRequest:
    return CreateTaskRequest(task_type="demo", dsl_text="goto https://example.com\nclick #go", **kwargs)


@pytest.mark.asyncio
async def test_local_failure_falls_back_to_remote_once():
    local = StubLocal(outcome(TaskStatus.FAILED, "local"))
    remote = make_remote(outcome(TaskStatus.COMPLETED, "remote", {"ok": True}))

    result = await Orchestrator(remote, local).run(script_request())

    assert result.status == TaskStatus.COMPLETED
    assert result.output == {"ok": True}
    assert result.debug.fallback_from == "local"
    assert len(local.calls) == 1
    assert remote.run_task.await_count == 1


@pytest.mark.asyncio
async def test_local_exception_falls_back_to_remote():
    local = StubLocal(RuntimeError("browser missing"))
    remote = make_remote(outcome(TaskStatus.COMPLETED, "remote"))

    result = await Orchestrator(remote, local).run(script_request())

    assert result.succeeded
    assert result.debug.backend == "remote"
    assert remote.run_task.await_count == 1


@pytest.mark.asyncio
async def test_local_success_does_not_touch_remote():
    local = StubLocal(outcome(TaskStatus.COMPLETED, "local", {"title": "Example"}))
    remote = make_remote()

    result = await Orchestrator(remote, local).run(script_request())

    assert result.output == {"title": "Example"}
    remote.run_task.assert_not_awaited()


@pytest.mark.asyncio
async def test_remote_timeout_falls_back_to_local():
    local = StubLocal(outcome(TaskStatus.COMPLETED, "local"))
    remote = make_remote(outcome(TaskStatus.TIMEOUT, "remote"))

    result = await Orchestrator(remote, local).run(script_request(execution_mode="complex"))

    assert result.succeeded
    assert result.debug.fallback_from == "remote"
    assert len(local.calls) == 1
    assert [command.kind for command in local.calls[0]] == ["goto", "click"]


@pytest.mark.asyncio
async def test_both_backends_failing_returns_second_result_without_raising():
    local = StubLocal(RuntimeError("local exploded"))
    remote = make_remote(RuntimeError("remote exploded"))

    result = await Orchestrator(remote, local).run(script_request())

    assert result.status == TaskStatus.FAILED
    assert result.error.code == results.CLIENT_OR_TASK_ERROR
    assert "remote exploded" in result.error.message
    assert len(local.calls) == 1
    assert remote.run_task.await_count == 1


@pytest.mark.asyncio
async def test_freeform_request_goes_remote_even_when_forced_local():
    local = StubLocal()
    remote = make_remote(outcome(TaskStatus.FAILED, "remote"))

    result = await Orchestrator(remote, local, force_remote=False).run(
        CreateTaskRequest(task_type="research", instructions="find pricing pages")
    )

    assert result.status == TaskStatus.FAILED
    assert local.calls == []
    assert remote.run_task.await_count == 1


@pytest.mark.asyncio
async def test_invalid_script_is_reported_without_backend_calls():
    local = StubLocal()
    remote = make_remote()

    result = await Orchestrator(remote, local).run(CreateTaskRequest(task_type="demo", dsl_text="hover #menu"))

    assert result.status == TaskStatus.FAILED
    assert result.error.code == results.INVALID_SCRIPT
    assert local.calls == []
    remote.run_task.assert_not_awaited()


@pytest.mark.asyncio
async def test_text_scripts_count_towards_routing_heuristics():
    script = "\n".join(f"click #b{i}" for i in range(6))
    local = StubLocal()
    remote = make_remote(outcome(TaskStatus.COMPLETED, "remote"))

    result = await Orchestrator(remote, local).run(CreateTaskRequest(task_type="demo", dsl_text=script))

    assert result.debug.backend == "remote"
    assert local.calls == []


@pytest.mark.asyncio
async def test_activity_is_logged_when_store_configured():
    store = InMemoryMemoryStore()
    local = StubLocal(outcome(TaskStatus.COMPLETED, "local"))

    await Orchestrator(make_remote(), local, memory_store=store).run(script_request(metadata={"userId": "u-1"}))

    items = await store.query_items("u-1", type="task_activity")
    assert len(items) == 1
    assert items[0].data["intent"] == "demo"
    assert items[0].data["toolsUsed"] == ["browser.goto", "browser.click"]
    assert items[0].data["success"] is True
    assert items[0].tags == ["usage_log"]
