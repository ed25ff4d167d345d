"""State of the task-queue service."""
from __future__ import annotations

from typing import Dict, List, Optional, Protocol

from browsegate.remote.models import Artifact, Monitor, Task, TaskResult


class TaskStore(Protocol):
    def add_task(self, task: Task) -> None:
        ...

    def get_task(self, task_id: str) -> Optional[Task]:
        ...

    def list_tasks(self) -> List[Task]:
        ...

    def set_result(self, result: TaskResult) -> None:
        ...

    def get_result(self, task_id: str) -> Optional[TaskResult]:
        ...

    def add_monitor(self, monitor: Monitor) -> None:
        ...

    def get_monitor(self, monitor_id: str) -> Optional[Monitor]:
        ...

    def list_monitors(self) -> List[Monitor]:
        ...

    def delete_monitor(self, monitor_id: str) -> bool:
        ...

    def add_artifact(self, artifact: Artifact) -> None:
        ...

    def get_artifact(self, artifact_id: str) -> Optional[Artifact]:
        ...


class InMemoryTaskStore:
    """Process-local :class:`TaskStore`; one instance per app."""

    def __init__(self) -> None:
        self._tasks: Dict[str, Task] = {}
        self._results: Dict[str, TaskResult] = {}
        self._monitors: Dict[str, Monitor] = {}
        self._artifacts: Dict[str, Artifact] = {}

    def add_task(self, task: Task) -> None:
        self._tasks[task.id] = task

    def get_task(self, task_id: str) -> Optional[Task]:
        return self._tasks.get(task_id)

    def list_tasks(self) -> List[Task]:
        return sorted(self._tasks.values(), key=lambda task: task.created_at, reverse=True)

    def set_result(self, result: TaskResult) -> None:
        self._results[result.task_id] = result

    def get_result(self, task_id: str) -> Optional[TaskResult]:
        return self._results.get(task_id)

    def add_monitor(self, monitor: Monitor) -> None:
        self._monitors[monitor.id] = monitor

    def get_monitor(self, monitor_id: str) -> Optional[Monitor]:
        return self._monitors.get(monitor_id)

    def list_monitors(self) -> List[Monitor]:
        return list(self._monitors.values())

    def delete_monitor(self, monitor_id: str) -> bool:
        return self._monitors.pop(monitor_id, None) is not None

    def add_artifact(self, artifact: Artifact) -> None:
        self._artifacts[artifact.id] = artifact

    def get_artifact(self, artifact_id: str) -> Optional[Artifact]:
        return self._artifacts.get(artifact_id)
