"""Versioned procedures learned from execution traces.

A :class:`ProcedureRecord` holds the best known sequence of steps for one task
key. New versions are appended whenever a user teaches or corrects the task;
older versions are never rewritten, so ``active_version`` always names the
last entry in ``versions``.

Persisting goes through a :class:`~browsegate.memory.store.MemoryStore`. Writes
can carry the ``active_version`` that was read, in which case a concurrent
writer that got there first causes :class:`ProcedureConflict` instead of a
silent overwrite.
"""
from __future__ import annotations

import asyncio
import json
import logging
import weakref
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple

from browsegate.remote.models import utcnow_iso
from browsegate.workflow.trace import ExecutionStepTrace, ExecutionTrace

from .store import MemoryItem, MemoryStore

logger = logging.getLogger(__name__)

TaskScope = Literal["user", "project", "global"]
ProcedureSource = Literal["taught", "corrected", "imported"]
StepChangeType = Literal["modified", "added", "removed"]

PROCEDURE_MEMORY_TYPE = "procedural_workflow"
PROCEDURE_TAGS = ("procedural", "workflow")


class ProcedureConflict(RuntimeError):
    """Raised when the stored procedure moved on since it was read."""

    def __init__(self, key: str, expected: int, actual: Optional[int]) -> None:
        super().__init__(f"Procedure {key} is at version {actual}, expected {expected}")
        self.key = key
        self.expected = expected
        self.actual = actual


@dataclass(slots=True)
class ProcedureStepTemplate:
    step_id: str
    tool: str
    inputs_template: Dict[str, Any] = field(default_factory=dict)
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ProcedureStepTemplate":
        return cls(
            step_id=str(payload["stepId"]),
            tool=str(payload.get("tool") or ""),
            inputs_template=dict(payload.get("inputsTemplate") or {}),
            description=payload.get("description"),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"stepId": self.step_id, "tool": self.tool, "inputsTemplate": self.inputs_template}
        if self.description is not None:
            payload["description"] = self.description
        return payload


@dataclass(slots=True)
class ProcedureVersion:
    version: int
    created_at: str
    created_by: str
    source: ProcedureSource
    steps: List[ProcedureStepTemplate] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ProcedureVersion":
        return cls(
            version=int(payload["version"]),
            created_at=str(payload.get("createdAt") or ""),
            created_by=str(payload.get("createdBy") or ""),
            source=payload.get("source") or "taught",
            steps=[ProcedureStepTemplate.from_dict(step) for step in payload.get("steps") or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "createdAt": self.created_at,
            "createdBy": self.created_by,
            "source": self.source,
            "steps": [step.to_dict() for step in self.steps],
        }


@dataclass(slots=True)
class ProcedureRecord:
    task_key: str
    user_id: str
    scope: TaskScope
    active_version: int
    versions: Tuple[ProcedureVersion, ...] = ()

    @property
    def active(self) -> ProcedureVersion:
        return self.versions[-1]

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ProcedureRecord":
        return cls(
            task_key=str(payload["taskKey"]),
            user_id=str(payload["userId"]),
            scope=payload.get("scope") or "user",
            active_version=int(payload["activeVersion"]),
            versions=tuple(ProcedureVersion.from_dict(version) for version in payload["versions"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "taskKey": self.task_key,
            "userId": self.user_id,
            "scope": self.scope,
            "activeVersion": self.active_version,
            "versions": [version.to_dict() for version in self.versions],
        }


@dataclass(slots=True)
class StepChange:
    step_id: str
    change_type: StepChangeType
    before: Optional[ExecutionStepTrace] = None
    after: Optional[ExecutionStepTrace] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"stepId": self.step_id, "changeType": self.change_type}
        if self.before is not None:
            payload["before"] = self.before.to_dict()
        if self.after is not None:
            payload["after"] = self.after.to_dict()
        return payload


@dataclass(slots=True)
class CorrectionPatch:
    task_key: str
    user_id: str
    changes: List[StepChange] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "taskKey": self.task_key,
            "userId": self.user_id,
            "changes": [change.to_dict() for change in self.changes],
        }


def procedure_key(task_key: str, scope: TaskScope, user_id: str) -> str:
    if scope == "user":
        return f"procedural.{user_id}.{task_key}"
    if scope in ("project", "global"):
        return f"procedural.{scope}.{task_key}"
    raise ValueError(f"Unknown procedure scope: {scope!r}")


def _steps_from_trace(trace: ExecutionTrace) -> List[ProcedureStepTemplate]:
    return [
        ProcedureStepTemplate(
            step_id=step.step_id,
            tool=step.tool or "",
            inputs_template=dict(step.inputs) if isinstance(step.inputs, Mapping) else {},
        )
        for step in trace.steps
    ]


async def load_procedure(
    store: MemoryStore,
    user_id: str,
    task_key: str,
    scope: TaskScope = "user",
) -> Optional[ProcedureRecord]:
    """Return the stored procedure, or ``None`` if missing or malformed."""

    key = procedure_key(task_key, scope, user_id)
    item = await store.get_item(user_id, key)
    if item is None:
        return None
    data = item.data
    if not isinstance(data, Mapping) or not isinstance(data.get("versions"), list):
        logger.warning("Ignoring malformed procedure record", extra={"key": key})
        return None
    try:
        return ProcedureRecord.from_dict(data)
    except (KeyError, TypeError, ValueError) as exc:
        logger.warning(f"Ignoring malformed procedure record {key}: {exc}")
        return None


async def save_procedure(
    store: MemoryStore,
    record: ProcedureRecord,
    *,
    expected_version: Optional[int] = None,
) -> None:
    """Persist ``record``.

    With ``expected_version`` the write is conditional: the stored record must
    still be at that ``active_version`` (``0`` meaning "not stored yet").
    """

    key = procedure_key(record.task_key, record.scope, record.user_id)
    if expected_version is not None:
        current = await load_procedure(store, record.user_id, record.task_key, record.scope)
        actual = current.active_version if current is not None else 0
        if actual != expected_version:
            raise ProcedureConflict(key, expected_version, actual)

    await store.write_item(
        record.user_id,
        MemoryItem(
            key=key,
            type=PROCEDURE_MEMORY_TYPE,
            data=record.to_dict(),
            created_at=utcnow_iso(),
            tags=list(PROCEDURE_TAGS),
        ),
    )
    logger.info(
        "Saved procedure %s at version %d",
        key,
        record.active_version,
        extra={"task_key": record.task_key, "scope": record.scope},
    )


def build_procedure_from_execution(
    trace: ExecutionTrace,
    created_by: str,
    scope: TaskScope = "user",
) -> ProcedureRecord:
    version = ProcedureVersion(
        version=1,
        created_at=utcnow_iso(),
        created_by=created_by,
        source="taught",
        steps=_steps_from_trace(trace),
    )
    return ProcedureRecord(
        task_key=trace.task_key,
        user_id=trace.user_id,
        scope=scope,
        active_version=1,
        versions=(version,),
    )


def add_version_from_execution(
    existing: ProcedureRecord,
    trace: ExecutionTrace,
    created_by: str,
    source: ProcedureSource = "corrected",
) -> ProcedureRecord:
    """Return a copy of ``existing`` with one more version built from ``trace``."""

    next_version = existing.active_version + 1
    version = ProcedureVersion(
        version=next_version,
        created_at=utcnow_iso(),
        created_by=created_by,
        source=source,
        steps=_steps_from_trace(trace),
    )
    return replace(existing, active_version=next_version, versions=existing.versions + (version,))


def _canonical(value: Any) -> str:
    return json.dumps({} if value is None else value, sort_keys=True, default=str)


def compute_correction_patch(agent_trace: ExecutionTrace, user_trace: ExecutionTrace) -> CorrectionPatch:
    """Diff two traces by step id.

    Removed and modified steps come first in agent order, then added steps in
    user order. Inputs are compared by their canonical JSON form.
    """

    agent_steps = {step.step_id: step for step in agent_trace.steps}
    user_steps = {step.step_id: step for step in user_trace.steps}
    changes: List[StepChange] = []

    for step_id, before in agent_steps.items():
        after = user_steps.get(step_id)
        if after is None:
            changes.append(StepChange(step_id, "removed", before=before))
        elif _canonical(before.inputs) != _canonical(after.inputs):
            changes.append(StepChange(step_id, "modified", before=before, after=after))

    for step_id, after in user_steps.items():
        if step_id not in agent_steps:
            changes.append(StepChange(step_id, "added", after=after))

    return CorrectionPatch(task_key=agent_trace.task_key, user_id=user_trace.user_id, changes=changes)


def patch_is_meaningful(patch: CorrectionPatch) -> bool:
    return bool(patch.changes)


def build_update_summary(patch: CorrectionPatch, task_label: Optional[str] = None) -> str:
    counts = {"added": 0, "removed": 0, "modified": 0}
    for change in patch.changes:
        counts[change.change_type] += 1

    parts = [f"{count} step(s) {change_type}" for change_type, count in counts.items() if count]
    summary = ", ".join(parts) if parts else "no changes"
    return f"Detected {summary} in the procedure for task '{task_label or patch.task_key}'."


_locks: "weakref.WeakValueDictionary[Tuple[str, str, str], asyncio.Lock]" = weakref.WeakValueDictionary()


def _lock_for(user_id: str, task_key: str, scope: TaskScope) -> asyncio.Lock:
    key = (user_id, task_key, scope)
    lock = _locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _locks[key] = lock
    return lock


async def upsert_procedure_from_correction(
    store: MemoryStore,
    corrected_trace: ExecutionTrace,
    scope: TaskScope = "user",
) -> ProcedureRecord:
    """Create version 1, or append a ``corrected`` version, from ``corrected_trace``.

    Calls for the same ``(user, task key, scope)`` are serialized within this
    process; writers in other processes are caught by the version check.
    """

    lock = _lock_for(corrected_trace.user_id, corrected_trace.task_key, scope)
    async with lock:
        existing = await load_procedure(store, corrected_trace.user_id, corrected_trace.task_key, scope)
        if existing is None:
            record = build_procedure_from_execution(corrected_trace, corrected_trace.user_id, scope)
            await save_procedure(store, record, expected_version=0)
        else:
            record = add_version_from_execution(existing, corrected_trace, corrected_trace.user_id, "corrected")
            await save_procedure(store, record, expected_version=existing.active_version)
    return record
