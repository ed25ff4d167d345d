"""Keyed per-user memory items with in-memory and SQL implementations."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from browsegate.remote.models import utcnow_iso
from browsegate.workflow.config import Settings
from browsegate.workflow.db import MemoryItemRow, get_session, get_session_factory, init_db

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MemoryItem:
    key: str
    type: str
    data: Dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=utcnow_iso)
    tags: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "MemoryItem":
        return cls(
            key=str(payload["key"]),
            type=str(payload["type"]),
            data=dict(payload.get("data") or {}),
            created_at=str(payload.get("createdAt") or utcnow_iso()),
            tags=list(payload.get("tags") or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "type": self.type,
            "data": self.data,
            "createdAt": self.created_at,
            "tags": list(self.tags),
        }

    def matches(self, *, type: Optional[str] = None, tags: Optional[Sequence[str]] = None, text: Optional[str] = None) -> bool:
        if type and self.type != type:
            return False
        if tags and not set(tags) & set(self.tags):
            return False
        if text and text.lower() not in json.dumps(self.data).lower():
            return False
        return True


@dataclass(slots=True)
class MemoryItemSummary:
    key: str
    type: str
    created_at: str
    tags: List[str]


class MemoryStore(Protocol):
    """Persistence contract for memory items, partitioned by user id."""

    async def get_item(self, user_id: str, key: str) -> Optional[MemoryItem]:
        ...

    async def write_item(self, user_id: str, item: MemoryItem) -> None:
        ...

    async def delete_item(self, user_id: str, key: str) -> None:
        ...

    async def query_items(
        self,
        user_id: str,
        *,
        type: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        text: Optional[str] = None,
        limit: int = 50,
    ) -> List[MemoryItem]:
        ...

    async def list_items(self, user_id: str, *, type: Optional[str] = None) -> List[MemoryItemSummary]:
        ...


def _summarize(item: MemoryItem) -> MemoryItemSummary:
    return MemoryItemSummary(key=item.key, type=item.type, created_at=item.created_at, tags=list(item.tags))


class InMemoryMemoryStore:
    """Dictionary-backed store for development and tests."""

    def __init__(self) -> None:
        self._items: Dict[str, Dict[str, MemoryItem]] = {}

    def _user_items(self, user_id: str) -> Dict[str, MemoryItem]:
        return self._items.setdefault(user_id, {})

    async def get_item(self, user_id: str, key: str) -> Optional[MemoryItem]:
        return self._user_items(user_id).get(key)

    async def write_item(self, user_id: str, item: MemoryItem) -> None:
        self._user_items(user_id)[item.key] = item

    async def delete_item(self, user_id: str, key: str) -> None:
        self._user_items(user_id).pop(key, None)

    async def query_items(
        self,
        user_id: str,
        *,
        type: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        text: Optional[str] = None,
        limit: int = 50,
    ) -> List[MemoryItem]:
        matched = [item for item in self._user_items(user_id).values() if item.matches(type=type, tags=tags, text=text)]
        return matched[:limit]

    async def list_items(self, user_id: str, *, type: Optional[str] = None) -> List[MemoryItemSummary]:
        return [_summarize(item) for item in self._user_items(user_id).values() if item.matches(type=type)]


class SqlMemoryStore:
    """SQLAlchemy-backed store; one row per ``(user_id, key)``."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    @classmethod
    def from_settings(cls, settings: Settings) -> "SqlMemoryStore":
        init_db(settings)
        return cls(get_session_factory(settings))

    @staticmethod
    def _to_item(row: MemoryItemRow) -> MemoryItem:
        return MemoryItem.from_dict(row.as_dict())

    async def get_item(self, user_id: str, key: str) -> Optional[MemoryItem]:
        with get_session(self._session_factory) as session:
            row = session.get(MemoryItemRow, (user_id, key))
            return self._to_item(row) if row is not None else None

    async def write_item(self, user_id: str, item: MemoryItem) -> None:
        with get_session(self._session_factory) as session:
            row = session.get(MemoryItemRow, (user_id, item.key))
            if row is None:
                row = MemoryItemRow(user_id=user_id, key=item.key)
                session.add(row)
            row.type = item.type
            row.data = json.dumps(item.data)
            row.tags = json.dumps(list(item.tags))
            row.created_at = item.created_at
        logger.debug("Stored memory item", extra={"user_id": user_id, "key": item.key, "type": item.type})

    async def delete_item(self, user_id: str, key: str) -> None:
        with get_session(self._session_factory) as session:
            row = session.get(MemoryItemRow, (user_id, key))
            if row is not None:
                session.delete(row)

    def _load(self, user_id: str, type: Optional[str]) -> List[MemoryItem]:
        stmt = select(MemoryItemRow).where(MemoryItemRow.user_id == user_id)
        if type:
            stmt = stmt.where(MemoryItemRow.type == type)
        with get_session(self._session_factory) as session:
            return [self._to_item(row) for row in session.scalars(stmt.order_by(MemoryItemRow.created_at))]

    async def query_items(
        self,
        user_id: str,
        *,
        type: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        text: Optional[str] = None,
        limit: int = 50,
    ) -> List[MemoryItem]:
        matched = [item for item in self._load(user_id, type) if item.matches(tags=tags, text=text)]
        return matched[:limit]

    async def list_items(self, user_id: str, *, type: Optional[str] = None) -> List[MemoryItemSummary]:
        return [_summarize(item) for item in self._load(user_id, type)]
