"""Backend-agnostic result shape returned by every execution path."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from browsegate.remote.models import Artifact, ErrorResponse, LogEntry, Task, TaskResult, TaskStatus

from .trace import ExecutionTrace

BackendName = Literal["local", "remote"]

INVALID_SCRIPT = "INVALID_SCRIPT"
TIMEOUT = "TIMEOUT"
CANCELLED = "CANCELLED"
CLIENT_OR_TASK_ERROR = "CLIENT_OR_TASK_ERROR"
LOCAL_EXECUTION_ERROR = "LOCAL_EXECUTION_ERROR"
UNKNOWN = "UNKNOWN"


@dataclass(slots=True)
class NormalizedError:
    code: str
    message: str
    retriable: bool = False
    details: Optional[Dict[str, Any]] = None

    @classmethod
    def from_response(cls, error: ErrorResponse) -> "NormalizedError":
        return cls(
            code=error.code,
            message=error.message,
            retriable=bool(error.retriable),
            details=error.details,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message, "retriable": self.retriable}
        if self.details:
            payload["details"] = self.details
        return payload


@dataclass(slots=True)
class ResultDebug:
    attempts: int = 1
    backend: Optional[BackendName] = None
    logs: Optional[List[LogEntry]] = None
    task: Optional[Task] = None
    result: Optional[TaskResult] = None
    fallback_from: Optional[BackendName] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"attempts": self.attempts, "backend": self.backend}
        if self.logs is not None:
            payload["logs"] = [entry.to_dict() for entry in self.logs]
        if self.task is not None:
            payload["taskId"] = self.task.id
        if self.fallback_from is not None:
            payload["fallbackFrom"] = self.fallback_from
        return payload


@dataclass(slots=True)
class NormalizedResult:
    """Outcome of one execution, whichever backend produced it."""

    status: TaskStatus
    output: Optional[Dict[str, Any]] = None
    artifacts: Optional[List[Artifact]] = None
    error: Optional[NormalizedError] = None
    debug: ResultDebug = field(default_factory=ResultDebug)
    trace: Optional[ExecutionTrace] = None

    @property
    def succeeded(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    @property
    def should_fall_back(self) -> bool:
        return self.status in {TaskStatus.FAILED, TaskStatus.TIMEOUT}

    @classmethod
    def failure(
        cls,
        code: str,
        message: str,
        *,
        status: TaskStatus = TaskStatus.FAILED,
        retriable: bool = False,
        attempts: int = 1,
        backend: Optional[BackendName] = None,
    ) -> "NormalizedResult":
        return cls(
            status=status,
            error=NormalizedError(code=code, message=message, retriable=retriable),
            debug=ResultDebug(attempts=attempts, backend=backend),
        )

    @classmethod
    def from_remote(cls, task: Task, result: Optional[TaskResult], attempts: int) -> "NormalizedResult":
        status = result.status if result is not None else task.status
        error = (result.error if result is not None else None) or task.error
        return cls(
            status=status,
            output=result.data if result is not None else None,
            artifacts=result.artifacts if result is not None else None,
            error=NormalizedError.from_response(error) if error else None,
            debug=ResultDebug(
                attempts=attempts,
                backend="remote",
                logs=result.logs if result is not None else None,
                task=task,
                result=result,
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"status": self.status.value, "debug": self.debug.to_dict()}
        if self.output is not None:
            payload["output"] = self.output
        if self.artifacts is not None:
            payload["artifacts"] = [artifact.to_dict() for artifact in self.artifacts]
        if self.error is not None:
            payload["error"] = self.error.to_dict()
        if self.trace is not None:
            payload["trace"] = self.trace.to_dict()
        return payload
