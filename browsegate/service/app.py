"""FastAPI task-queue service speaking the remote task protocol."""
from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional

import uvicorn
from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel

from browsegate import __version__
from browsegate.remote.models import (
    CreateMonitorRequest,
    CreateTaskRequest,
    ErrorResponse,
    LogEntry,
    Monitor,
    Task,
    TaskResult,
    TaskStatus,
)
from browsegate.workflow.config import Settings, get_settings

from .runner import SimulatedRunner, TaskRunner
from .store import InMemoryTaskStore, TaskStore

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Error rendered as a bare :class:`ErrorResponse` body."""

    def __init__(self, status_code: int, code: str, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error = ErrorResponse(code=code, message=message, retriable=False, details=details)


class TaskOptionsModel(BaseModel):
    maxDurationMs: Optional[int] = None
    maxActions: Optional[int] = None
    parallelism: Optional[int] = None
    maxConcurrentTabs: Optional[int] = None
    priority: Optional[str] = None
    callbackUrl: Optional[str] = None
    llmProvider: Optional[str] = None
    llmModel: Optional[str] = None
    llmKeyRef: Optional[str] = None


class CreateTaskModel(BaseModel):
    """Request model for ``POST /tasks``."""
    taskType: Optional[str] = None
    instructions: Optional[str] = None
    targets: Optional[List[str]] = None
    executionMode: Optional[str] = None
    dslJson: Optional[List[Dict[str, Any]]] = None
    dslText: Optional[str] = None
    inputData: Optional[Dict[str, Any]] = None
    extractionSchema: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    idempotencyKey: Optional[str] = None
    options: Optional[TaskOptionsModel] = None


class CreateMonitorModel(BaseModel):
    """Request model for ``POST /monitors``."""
    name: Optional[str] = None
    taskType: Optional[str] = None
    instructions: Optional[str] = None
    targets: Optional[List[str]] = None
    intervalMs: Optional[int] = None
    executionMode: Optional[str] = None
    options: Optional[TaskOptionsModel] = None
    metadata: Optional[Dict[str, Any]] = None


async def require_credentials(
    authorization: Optional[str] = Header(default=None),
    x_api_key: Optional[str] = Header(default=None),
) -> None:
    if not authorization and not x_api_key:
        raise ApiError(401, "AUTH_FAILED", "Missing Authorization or x-api-key header")


def _sse(event: str, data: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


def create_app(
    store: Optional[TaskStore] = None,
    settings: Optional[Settings] = None,
    runner: Optional[TaskRunner] = None,
    *,
    event_interval: float = 1.0,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    settings = settings or get_settings()
    store = store if store is not None else InMemoryTaskStore()
    runner = runner or SimulatedRunner(duration=settings.simulated_task_seconds)

    app = FastAPI(
        title="browsegate task service",
        description="Task-queue API for remote browser automation",
        version=__version__,
    )
    app.state.store = store
    app.state.settings = settings

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.error.to_dict())

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": settings.environment,
        }

    router = APIRouter(dependencies=[Depends(require_credentials)])

    def task_or_404(task_id: str) -> Task:
        task = store.get_task(task_id)
        if task is None:
            raise ApiError(404, "TASK_NOT_FOUND", "Task not found")
        return task

    def monitor_or_404(monitor_id: str) -> Monitor:
        monitor = store.get_monitor(monitor_id)
        if monitor is None:
            raise ApiError(404, "MONITOR_NOT_FOUND", "Monitor not found")
        return monitor

    @router.post("/tasks", status_code=202)
    async def create_task(body: CreateTaskModel, background_tasks: BackgroundTasks):
        try:
            request = CreateTaskRequest.from_dict(body.model_dump(exclude_none=True))
        except ValueError as exc:
            raise ApiError(400, "INVALID_REQUEST", str(exc)) from exc

        task = Task.from_request(request)
        task.summary = "Task queued."
        store.add_task(task)
        background_tasks.add_task(runner.run, task, store)
        logger.info("Queued task %s", task.id, extra={"task_id": task.id, "task_type": task.task_type})
        return task.to_dict()

    @router.get("/tasks")
    async def list_tasks():
        return [task.to_dict() for task in store.list_tasks()]

    @router.get("/tasks/{task_id}")
    async def get_task(task_id: str):
        return task_or_404(task_id).to_dict()

    @router.get("/tasks/{task_id}/result")
    async def get_task_result(task_id: str):
        task = task_or_404(task_id)
        result = store.get_result(task_id) or TaskResult.partial(task)
        return result.to_dict()

    @router.post("/tasks/{task_id}/cancel")
    async def cancel_task(task_id: str):
        task = task_or_404(task_id)
        if task.is_terminal:
            raise ApiError(
                409,
                "TASK_TERMINAL",
                "Task is already in a terminal state",
                details={"status": task.status.value},
            )
        task.transition(TaskStatus.CANCELLED, summary="Task cancelled by client.")
        store.set_result(
            TaskResult(task_id=task.id, status=TaskStatus.CANCELLED, logs=[LogEntry.now("info", "Task cancelled.")])
        )
        logger.info("Cancelled task %s", task.id, extra={"task_id": task.id})
        return task.to_dict()

    @router.get("/tasks/{task_id}/events")
    async def task_events(task_id: str):
        task_or_404(task_id)

        async def stream() -> AsyncIterator[str]:
            while True:
                current = store.get_task(task_id)
                if current is None:
                    yield _sse("error", ErrorResponse("TASK_NOT_FOUND", "Task not found during stream").to_dict())
                    return
                yield _sse("status", current.to_dict())
                if current.is_terminal:
                    result = store.get_result(task_id)
                    if result is not None:
                        yield _sse("result", result.to_dict())
                    yield _sse("end", {"status": current.status.value})
                    return
                await asyncio.sleep(event_interval)

        return StreamingResponse(
            stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    @router.post("/monitors", status_code=201)
    async def create_monitor(body: CreateMonitorModel):
        try:
            request = CreateMonitorRequest.from_dict(body.model_dump(exclude_none=True))
        except ValueError as exc:
            raise ApiError(400, "INVALID_REQUEST", str(exc)) from exc
        monitor = Monitor.from_request(request)
        store.add_monitor(monitor)
        return monitor.to_dict()

    @router.get("/monitors")
    async def list_monitors():
        return [monitor.to_dict() for monitor in store.list_monitors()]

    @router.get("/monitors/{monitor_id}")
    async def get_monitor(monitor_id: str):
        return monitor_or_404(monitor_id).to_dict()

    @router.delete("/monitors/{monitor_id}", status_code=204)
    async def delete_monitor(monitor_id: str):
        monitor_or_404(monitor_id)
        store.delete_monitor(monitor_id)
        return Response(status_code=204)

    @router.get("/artifacts/{artifact_id}")
    async def get_artifact(artifact_id: str):
        artifact = store.get_artifact(artifact_id)
        if artifact is None:
            raise ApiError(404, "ARTIFACT_NOT_FOUND", "Artifact not found")
        return artifact.to_dict()

    app.include_router(router)
    return app


def run_server(settings: Optional[Settings] = None, *, host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Run the API server."""
    settings = settings or get_settings()
    uvicorn.run(
        create_app(settings=settings),
        host=host or settings.api_server_host,
        port=port or settings.api_server_port,
        log_level=settings.log_level.lower(),
    )
