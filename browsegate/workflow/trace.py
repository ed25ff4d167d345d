"""Execution trace records captured while steps run."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from browsegate.remote.models import utcnow_iso


@dataclass(slots=True)
class ExecutionStepTrace:
    step_id: str
    inputs: Any
    outputs: Any
    tool: Optional[str] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ExecutionStepTrace":
        return cls(
            step_id=str(payload["stepId"]),
            inputs=payload.get("inputs"),
            outputs=payload.get("outputs"),
            tool=payload.get("tool"),
            started_at=payload.get("startedAt"),
            finished_at=payload.get("finishedAt"),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"stepId": self.step_id, "inputs": self.inputs, "outputs": self.outputs}
        if self.tool is not None:
            payload["tool"] = self.tool
        if self.started_at is not None:
            payload["startedAt"] = self.started_at
        if self.finished_at is not None:
            payload["finishedAt"] = self.finished_at
        return payload


@dataclass(slots=True)
class ExecutionTrace:
    """Ordered record of the inputs and outputs produced during one run."""

    task_key: str
    user_id: str
    started_at: str = field(default_factory=utcnow_iso)
    workflow_id: Optional[str] = None
    finished_at: Optional[str] = None
    steps: List[ExecutionStepTrace] = field(default_factory=list)

    def record(self, step_id: str, inputs: Any, outputs: Any, *, tool: Optional[str] = None, started_at: Optional[str] = None) -> ExecutionStepTrace:
        step = ExecutionStepTrace(
            step_id=step_id,
            inputs=inputs,
            outputs=outputs,
            tool=tool,
            started_at=started_at or utcnow_iso(),
            finished_at=utcnow_iso(),
        )
        self.steps.append(step)
        return step

    def finish(self) -> None:
        self.finished_at = utcnow_iso()

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ExecutionTrace":
        return cls(
            task_key=str(payload["taskKey"]),
            user_id=str(payload["userId"]),
            started_at=str(payload.get("startedAt") or utcnow_iso()),
            workflow_id=payload.get("workflowId"),
            finished_at=payload.get("finishedAt"),
            steps=[ExecutionStepTrace.from_dict(step) for step in payload.get("steps") or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "taskKey": self.task_key,
            "userId": self.user_id,
            "startedAt": self.started_at,
            "steps": [step.to_dict() for step in self.steps],
        }
        if self.workflow_id is not None:
            payload["workflowId"] = self.workflow_id
        if self.finished_at is not None:
            payload["finishedAt"] = self.finished_at
        return payload
