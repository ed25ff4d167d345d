"""Usage log of executed tasks, kept for recurring-pattern analysis."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List

from browsegate.remote.models import utcnow_iso

from .store import MemoryItem, MemoryStore

TASK_ACTIVITY_TYPE = "task_activity"


@dataclass(slots=True)
class TaskActivity:
    user_id: str
    intent: str
    natural_language_prompt: str
    tools_used: List[str] = field(default_factory=list)
    entities: Dict[str, Any] = field(default_factory=dict)
    success: bool = False


async def log_task_activity(store: MemoryStore, activity: TaskActivity) -> MemoryItem:
    timestamp = utcnow_iso()
    item = MemoryItem(
        key=f"{TASK_ACTIVITY_TYPE}.{timestamp}.{uuid.uuid4().hex[:8]}",
        type=TASK_ACTIVITY_TYPE,
        data={
            "intent": activity.intent,
            "naturalLanguagePrompt": activity.natural_language_prompt,
            "toolsUsed": list(activity.tools_used),
            "entities": dict(activity.entities),
            "timestamp": timestamp,
            "success": activity.success,
        },
        created_at=timestamp,
        tags=["usage_log"],
    )
    await store.write_item(activity.user_id, item)
    return item
