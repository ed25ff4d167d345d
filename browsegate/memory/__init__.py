"""Memory items, task activity logging and procedural memory."""

from .activity import TASK_ACTIVITY_TYPE, TaskActivity, log_task_activity
from .procedural import (
    PROCEDURE_MEMORY_TYPE,
    CorrectionPatch,
    ProcedureConflict,
    ProcedureRecord,
    ProcedureStepTemplate,
    ProcedureVersion,
    StepChange,
    add_version_from_execution,
    build_procedure_from_execution,
    build_update_summary,
    compute_correction_patch,
    load_procedure,
    patch_is_meaningful,
    procedure_key,
    save_procedure,
    upsert_procedure_from_correction,
)
from .store import InMemoryMemoryStore, MemoryItem, MemoryItemSummary, MemoryStore, SqlMemoryStore

__all__ = [
    "PROCEDURE_MEMORY_TYPE",
    "TASK_ACTIVITY_TYPE",
    "CorrectionPatch",
    "InMemoryMemoryStore",
    "MemoryItem",
    "MemoryItemSummary",
    "MemoryStore",
    "ProcedureConflict",
    "ProcedureRecord",
    "ProcedureStepTemplate",
    "ProcedureVersion",
    "SqlMemoryStore",
    "StepChange",
    "TaskActivity",
    "add_version_from_execution",
    "build_procedure_from_execution",
    "build_update_summary",
    "compute_correction_patch",
    "load_procedure",
    "log_task_activity",
    "patch_is_meaningful",
    "procedure_key",
    "save_procedure",
    "upsert_procedure_from_correction",
]
