"""Small YAML workflow runner.

Workflows live in ``<directory>/<id>.workflow.yaml``::

    id: search_and_capture
    steps:
      - id: open
        type: tool
        tool: browser.goto
        inputs:
          url: "{{inputs.url}}"
      - id: title
        type: tool
        tool: browser.extract
        inputs:
          selector: h1
          previous: "{{steps.open.outputs.url}}"

Only ``type: tool`` steps run; other step types are skipped. A string value
that is exactly ``{{path.to.value}}`` is replaced by the value found at that
path in ``{"inputs": ..., "steps": {step_id: {"outputs": ...}}}``.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

import yaml

from .trace import ExecutionTrace

logger = logging.getLogger(__name__)

ToolInvoker = Callable[[str, Any], Awaitable[Any]]
StepCallback = Callable[["WorkflowStep", Any, Any], None]

_PLACEHOLDER = re.compile(r"^\{\{(.+)\}\}$")


class WorkflowError(RuntimeError):
    """Raised for malformed workflow definitions."""


@dataclass(slots=True)
class WorkflowStep:
    id: str
    type: str
    tool: Optional[str] = None
    inputs: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "WorkflowStep":
        if "id" not in payload:
            raise WorkflowError(f"Workflow step is missing 'id': {dict(payload)!r}")
        return cls(
            id=str(payload["id"]),
            type=str(payload.get("type") or "tool"),
            tool=payload.get("tool"),
            inputs=dict(payload.get("inputs") or {}),
        )


@dataclass(slots=True)
class WorkflowDefinition:
    id: str
    steps: List[WorkflowStep] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "WorkflowDefinition":
        if not isinstance(payload, Mapping):
            raise WorkflowError("Workflow document must be a mapping")
        return cls(
            id=str(payload.get("id") or ""),
            steps=[WorkflowStep.from_dict(step) for step in payload.get("steps") or []],
        )

    @classmethod
    def from_yaml(cls, text: str) -> "WorkflowDefinition":
        return cls.from_dict(yaml.safe_load(text) or {})

    @classmethod
    def load(cls, workflow_id: str, directory: Path | str = ".") -> "WorkflowDefinition":
        path = Path(directory) / f"{workflow_id}.workflow.yaml"
        if not path.exists():
            raise WorkflowError(f"Workflow file not found: {path}")
        definition = cls.from_yaml(path.read_text(encoding="utf-8"))
        if not definition.id:
            definition.id = workflow_id
        return definition


def _resolve(path_expr: str, context: Mapping[str, Any]) -> Any:
    current: Any = context
    for segment in path_expr.strip().split("."):
        if not segment:
            continue
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(segment)
        elif isinstance(current, (list, tuple)) and segment.isdigit():
            index = int(segment)
            current = current[index] if index < len(current) else None
        else:
            current = getattr(current, segment, None)
    return current


def interpolate(value: Any, context: Mapping[str, Any]) -> Any:
    if isinstance(value, list):
        return [interpolate(item, context) for item in value]
    if isinstance(value, Mapping):
        return {key: interpolate(item, context) for key, item in value.items()}
    if isinstance(value, str):
        match = _PLACEHOLDER.match(value)
        if match:
            return _resolve(match.group(1), context)
    return value


async def run_workflow(
    definition: WorkflowDefinition,
    inputs: Mapping[str, Any],
    tool_invoker: ToolInvoker,
    on_step: Optional[StepCallback] = None,
) -> Dict[str, Any]:
    context: Dict[str, Any] = {"inputs": dict(inputs), "steps": {}}

    for step in definition.steps:
        if step.type != "tool":
            logger.debug("Skipping %s step %s", step.type, step.id)
            continue
        if not step.tool:
            raise WorkflowError(f"Tool step {step.id} is missing 'tool' field")

        prepared = interpolate(step.inputs, context)
        logger.info("Running workflow step %s", step.id, extra={"workflow_id": definition.id, "tool": step.tool})
        result = await tool_invoker(step.tool, prepared)
        context["steps"][step.id] = {"outputs": result}

        if on_step is not None:
            on_step(step, prepared, result)

    return context


async def run_workflow_with_trace(
    definition: WorkflowDefinition,
    inputs: Mapping[str, Any],
    tool_invoker: ToolInvoker,
    *,
    user_id: str,
    task_key: str,
) -> Tuple[Dict[str, Any], ExecutionTrace]:
    """Run ``definition`` and record every executed tool step."""

    trace = ExecutionTrace(task_key=task_key, user_id=user_id, workflow_id=definition.id)

    def record(step: WorkflowStep, prepared: Any, result: Any) -> None:
        trace.record(step.id, prepared, result, tool=step.tool)

    context = await run_workflow(definition, inputs, tool_invoker, on_step=record)
    trace.finish()
    return context, trace
