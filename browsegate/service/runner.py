"""Task runners used by the service to drive tasks to a terminal state."""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Protocol

from browsegate.remote.models import Artifact, LogEntry, Task, TaskResult, TaskStatus

from .store import TaskStore

logger = logging.getLogger(__name__)


class TaskRunner(Protocol):
    async def run(self, task: Task, store: TaskStore) -> None:
        ...


class SimulatedRunner:
    """Move tasks ``queued -> running -> completed`` after fixed delays.

    A task cancelled while the runner sleeps is left untouched.
    """

    def __init__(self, duration: float = 3.0, start_delay: float = 0.5) -> None:
        self._duration = duration
        self._start_delay = min(start_delay, duration)

    async def run(self, task: Task, store: TaskStore) -> None:
        await asyncio.sleep(self._start_delay)
        current = store.get_task(task.id)
        if current is None or current.status != TaskStatus.QUEUED:
            return
        current.transition(TaskStatus.RUNNING, summary="Task is running in simulated worker.")
        current.progress = 30
        logger.debug("Task %s running", task.id)

        await asyncio.sleep(self._duration - self._start_delay)
        current = store.get_task(task.id)
        if current is None or current.is_terminal:
            return
        current.transition(TaskStatus.COMPLETED, summary="Task completed successfully (simulated).")
        current.progress = 100

        artifact = Artifact(
            id=str(uuid.uuid4()),
            type="json",
            url=f"/artifacts/{current.id}.json",
            content_type="application/json",
        )
        store.add_artifact(artifact)
        store.set_result(
            TaskResult(
                task_id=current.id,
                status=TaskStatus.COMPLETED,
                data={
                    "message": "Simulated task result payload",
                    "taskType": current.task_type,
                    "targets": current.targets or [],
                },
                logs=[LogEntry.now("info", "Task started"), LogEntry.now("info", "Task completed (simulated)")],
                artifacts=[artifact],
            )
        )
        logger.info("Task %s completed", task.id, extra={"task_id": task.id, "task_type": current.task_type})
