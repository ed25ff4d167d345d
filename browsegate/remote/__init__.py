"""Client side of the remote task-queue service."""

from .client import RemoteRequestError, RemoteTaskClient, RetryPolicy, is_retriable_error
from .models import (
    Artifact,
    CreateMonitorRequest,
    CreateTaskRequest,
    ErrorResponse,
    InvalidTransition,
    LogEntry,
    Monitor,
    MonitorStatus,
    Task,
    TaskEvent,
    TaskOptions,
    TaskResult,
    TaskStatus,
)

__all__ = [
    "Artifact",
    "CreateMonitorRequest",
    "CreateTaskRequest",
    "ErrorResponse",
    "InvalidTransition",
    "LogEntry",
    "Monitor",
    "MonitorStatus",
    "RemoteRequestError",
    "RemoteTaskClient",
    "RetryPolicy",
    "Task",
    "TaskEvent",
    "TaskOptions",
    "TaskResult",
    "TaskStatus",
    "is_retriable_error",
]
