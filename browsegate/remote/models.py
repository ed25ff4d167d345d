"""Wire models for the remote task-queue API.

Field names are snake_case in Python and camelCase on the wire; every model
offers ``from_dict`` and ``to_dict`` for the conversion.
"""
from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Dict, List, Literal, Mapping, Optional

ExecutionMode = Literal["simple", "complex", "auto"]


def utcnow_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""

    return datetime.now(UTC).isoformat()


def _drop_none(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


class TaskStatus(str, enum.Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED, TaskStatus.TIMEOUT}
)

_ALLOWED_TRANSITIONS: Dict[TaskStatus, frozenset] = {
    TaskStatus.QUEUED: frozenset({TaskStatus.RUNNING, *TERMINAL_STATUSES}),
    TaskStatus.RUNNING: TERMINAL_STATUSES,
}


class MonitorStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    STOPPED = "stopped"


class InvalidTransition(RuntimeError):
    """Raised when a task would leave a terminal state or move backwards."""

    def __init__(self, task_id: str, current: TaskStatus, requested: TaskStatus) -> None:
        super().__init__(f"Task {task_id} cannot move from {current.value} to {requested.value}")
        self.task_id = task_id
        self.current = current
        self.requested = requested


@dataclass(slots=True)
class ErrorResponse:
    code: str
    message: str
    retriable: Optional[bool] = None
    details: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ErrorResponse":
        return cls(
            code=str(payload.get("code", "UNKNOWN")),
            message=str(payload.get("message", "")),
            retriable=payload.get("retriable"),
            details=payload.get("details"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {"code": self.code, "message": self.message, "retriable": self.retriable, "details": self.details}
        )


@dataclass(slots=True)
class Artifact:
    id: str
    type: str
    url: str
    content_type: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Artifact":
        return cls(
            id=str(payload["id"]),
            type=str(payload.get("type", "")),
            url=str(payload.get("url", "")),
            content_type=payload.get("contentType"),
            metadata=payload.get("metadata"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "id": self.id,
                "type": self.type,
                "url": self.url,
                "contentType": self.content_type,
                "metadata": self.metadata,
            }
        )


@dataclass(slots=True)
class LogEntry:
    timestamp: str
    level: str
    message: str
    context: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "LogEntry":
        return cls(
            timestamp=str(payload.get("timestamp", "")),
            level=str(payload.get("level", "info")),
            message=str(payload.get("message", "")),
            context=payload.get("context"),
        )

    @classmethod
    def now(cls, level: str, message: str) -> "LogEntry":
        return cls(timestamp=utcnow_iso(), level=level, message=message)

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {"timestamp": self.timestamp, "level": self.level, "message": self.message, "context": self.context}
        )


_OPTION_FIELDS = {
    "max_duration_ms": "maxDurationMs",
    "max_actions": "maxActions",
    "parallelism": "parallelism",
    "max_concurrent_tabs": "maxConcurrentTabs",
    "priority": "priority",
    "callback_url": "callbackUrl",
    "llm_provider": "llmProvider",
    "llm_model": "llmModel",
    "llm_key_ref": "llmKeyRef",
}


@dataclass(slots=True)
class TaskOptions:
    max_duration_ms: Optional[int] = None
    max_actions: Optional[int] = None
    parallelism: Optional[int] = None
    max_concurrent_tabs: Optional[int] = None
    priority: Optional[str] = None
    callback_url: Optional[str] = None
    llm_provider: Optional[str] = None
    llm_model: Optional[str] = None
    llm_key_ref: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> "TaskOptions":
        payload = payload or {}
        return cls(**{attr: payload.get(wire) for attr, wire in _OPTION_FIELDS.items()})

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({wire: getattr(self, attr) for attr, wire in _OPTION_FIELDS.items()})


@dataclass(slots=True)
class CreateTaskRequest:
    """Body of ``POST /tasks`` and the input to every execution path."""

    task_type: str
    instructions: Optional[str] = None
    targets: Optional[List[str]] = None
    execution_mode: Optional[ExecutionMode] = None
    dsl_json: Optional[List[Dict[str, Any]]] = None
    dsl_text: Optional[str] = None
    input_data: Optional[Dict[str, Any]] = None
    extraction_schema: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    idempotency_key: Optional[str] = None
    options: Optional[TaskOptions] = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "CreateTaskRequest":
        if not payload.get("taskType"):
            raise ValueError("taskType is required")
        options = payload.get("options")
        return cls(
            task_type=str(payload["taskType"]),
            instructions=payload.get("instructions"),
            targets=list(payload["targets"]) if payload.get("targets") is not None else None,
            execution_mode=payload.get("executionMode"),
            dsl_json=payload.get("dslJson"),
            dsl_text=payload.get("dslText"),
            input_data=payload.get("inputData"),
            extraction_schema=payload.get("extractionSchema"),
            metadata=payload.get("metadata"),
            idempotency_key=payload.get("idempotencyKey"),
            options=TaskOptions.from_dict(options) if options is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "taskType": self.task_type,
                "instructions": self.instructions,
                "targets": self.targets,
                "executionMode": self.execution_mode,
                "dslJson": self.dsl_json,
                "dslText": self.dsl_text,
                "inputData": self.input_data,
                "extractionSchema": self.extraction_schema,
                "metadata": self.metadata,
                "idempotencyKey": self.idempotency_key,
                "options": self.options.to_dict() if self.options is not None else None,
            }
        )


@dataclass(slots=True)
class Task:
    id: str
    status: TaskStatus
    created_at: str
    updated_at: str
    task_type: str
    instructions: Optional[str] = None
    targets: Optional[List[str]] = None
    execution_mode: Optional[ExecutionMode] = None
    dsl_json: Optional[List[Dict[str, Any]]] = None
    options: TaskOptions = field(default_factory=TaskOptions)
    metadata: Optional[Dict[str, Any]] = None
    idempotency_key: Optional[str] = None
    progress: Optional[int] = None
    summary: Optional[str] = None
    error: Optional[ErrorResponse] = None

    @classmethod
    def from_request(cls, request: CreateTaskRequest) -> "Task":
        now = utcnow_iso()
        return cls(
            id=str(uuid.uuid4()),
            status=TaskStatus.QUEUED,
            created_at=now,
            updated_at=now,
            task_type=request.task_type,
            instructions=request.instructions,
            targets=request.targets,
            execution_mode=request.execution_mode or "auto",
            dsl_json=request.dsl_json,
            options=request.options or TaskOptions(),
            metadata=request.metadata,
            idempotency_key=request.idempotency_key,
            progress=0,
        )

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Task":
        error = payload.get("error")
        return cls(
            id=str(payload["id"]),
            status=TaskStatus(payload["status"]),
            created_at=str(payload.get("createdAt", "")),
            updated_at=str(payload.get("updatedAt", "")),
            task_type=str(payload.get("taskType", "")),
            instructions=payload.get("instructions"),
            targets=payload.get("targets"),
            execution_mode=payload.get("executionMode"),
            dsl_json=payload.get("dslJson"),
            options=TaskOptions.from_dict(payload.get("options")),
            metadata=payload.get("metadata"),
            idempotency_key=payload.get("idempotencyKey"),
            progress=payload.get("progress"),
            summary=payload.get("summary"),
            error=ErrorResponse.from_dict(error) if error else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "id": self.id,
                "status": self.status.value,
                "createdAt": self.created_at,
                "updatedAt": self.updated_at,
                "taskType": self.task_type,
                "instructions": self.instructions,
                "targets": self.targets,
                "executionMode": self.execution_mode,
                "dslJson": self.dsl_json,
                "options": self.options.to_dict(),
                "metadata": self.metadata,
                "idempotencyKey": self.idempotency_key,
                "progress": self.progress,
                "summary": self.summary,
                "error": self.error.to_dict() if self.error else None,
            }
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def transition(self, status: TaskStatus, *, summary: Optional[str] = None) -> None:
        """Move to ``status``; terminal states never change again."""

        allowed = _ALLOWED_TRANSITIONS.get(self.status, frozenset())
        if status not in allowed:
            raise InvalidTransition(self.id, self.status, status)
        self.status = status
        self.updated_at = utcnow_iso()
        if summary is not None:
            self.summary = summary


@dataclass(slots=True)
class TaskResult:
    task_id: str
    status: TaskStatus
    data: Optional[Dict[str, Any]] = None
    logs: List[LogEntry] = field(default_factory=list)
    artifacts: List[Artifact] = field(default_factory=list)
    error: Optional[ErrorResponse] = None

    @classmethod
    def partial(cls, task: Task) -> "TaskResult":
        """Shell returned while a task has not produced its result yet."""

        return cls(task_id=task.id, status=task.status)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "TaskResult":
        error = payload.get("error")
        return cls(
            task_id=str(payload.get("taskId", "")),
            status=TaskStatus(payload["status"]),
            data=payload.get("data"),
            logs=[LogEntry.from_dict(entry) for entry in payload.get("logs") or []],
            artifacts=[Artifact.from_dict(entry) for entry in payload.get("artifacts") or []],
            error=ErrorResponse.from_dict(error) if error else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "taskId": self.task_id,
                "status": self.status.value,
                "data": self.data,
                "logs": [entry.to_dict() for entry in self.logs],
                "artifacts": [artifact.to_dict() for artifact in self.artifacts],
                "error": self.error.to_dict() if self.error else None,
            }
        )


@dataclass(slots=True)
class CreateMonitorRequest:
    instructions: str
    interval_ms: int
    name: Optional[str] = None
    task_type: Optional[str] = None
    targets: Optional[List[str]] = None
    execution_mode: Optional[ExecutionMode] = None
    options: Optional[TaskOptions] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "CreateMonitorRequest":
        if not payload.get("instructions") or not payload.get("intervalMs"):
            raise ValueError("instructions and intervalMs are required")
        options = payload.get("options")
        return cls(
            instructions=str(payload["instructions"]),
            interval_ms=int(payload["intervalMs"]),
            name=payload.get("name"),
            task_type=payload.get("taskType"),
            targets=payload.get("targets"),
            execution_mode=payload.get("executionMode"),
            options=TaskOptions.from_dict(options) if options is not None else None,
            metadata=payload.get("metadata"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "instructions": self.instructions,
                "intervalMs": self.interval_ms,
                "name": self.name,
                "taskType": self.task_type,
                "targets": self.targets,
                "executionMode": self.execution_mode,
                "options": self.options.to_dict() if self.options is not None else None,
                "metadata": self.metadata,
            }
        )


@dataclass(slots=True)
class Monitor:
    id: str
    instructions: str
    interval_ms: int
    status: MonitorStatus
    created_at: str
    updated_at: str
    task_type: str = "monitor_run"
    name: Optional[str] = None
    targets: Optional[List[str]] = None
    execution_mode: Optional[ExecutionMode] = None
    options: Optional[TaskOptions] = None
    metadata: Optional[Dict[str, Any]] = None
    last_run_at: Optional[str] = None
    next_run_at: Optional[str] = None
    last_task_id: Optional[str] = None

    @classmethod
    def from_request(cls, request: CreateMonitorRequest) -> "Monitor":
        now = utcnow_iso()
        return cls(
            id=str(uuid.uuid4()),
            instructions=request.instructions,
            interval_ms=request.interval_ms,
            status=MonitorStatus.ACTIVE,
            created_at=now,
            updated_at=now,
            task_type=request.task_type or "monitor_run",
            name=request.name,
            targets=request.targets,
            execution_mode=request.execution_mode or "auto",
            options=request.options,
            metadata=request.metadata,
            next_run_at=now,
        )

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Monitor":
        options = payload.get("options")
        return cls(
            id=str(payload["id"]),
            instructions=str(payload.get("instructions", "")),
            interval_ms=int(payload.get("intervalMs", 0)),
            status=MonitorStatus(payload.get("status", "active")),
            created_at=str(payload.get("createdAt", "")),
            updated_at=str(payload.get("updatedAt", "")),
            task_type=str(payload.get("taskType", "monitor_run")),
            name=payload.get("name"),
            targets=payload.get("targets"),
            execution_mode=payload.get("executionMode"),
            options=TaskOptions.from_dict(options) if options is not None else None,
            metadata=payload.get("metadata"),
            last_run_at=payload.get("lastRunAt"),
            next_run_at=payload.get("nextRunAt"),
            last_task_id=payload.get("lastTaskId"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "id": self.id,
                "instructions": self.instructions,
                "intervalMs": self.interval_ms,
                "status": self.status.value,
                "createdAt": self.created_at,
                "updatedAt": self.updated_at,
                "taskType": self.task_type,
                "name": self.name,
                "targets": self.targets,
                "executionMode": self.execution_mode,
                "options": self.options.to_dict() if self.options is not None else None,
                "metadata": self.metadata,
                "lastRunAt": self.last_run_at,
                "nextRunAt": self.next_run_at,
                "lastTaskId": self.last_task_id,
            }
        )


TaskEventType = Literal["status", "result", "end", "error"]


@dataclass(slots=True)
class TaskEvent:
    """One event of a task's live event stream."""

    type: TaskEventType
    data: Any

    @classmethod
    def from_sse(cls, event: str, payload: Mapping[str, Any]) -> "TaskEvent":
        if event == "status":
            return cls(type="status", data=Task.from_dict(payload))
        if event == "result":
            return cls(type="result", data=TaskResult.from_dict(payload))
        if event == "error":
            return cls(type="error", data=ErrorResponse.from_dict(payload))
        if event == "end":
            return cls(type="end", data=TaskStatus(payload.get("status", "completed")))
        raise ValueError(f"Unknown task event type: {event!r}")
