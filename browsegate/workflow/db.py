"""Database utilities for memory persistence."""
from __future__ import annotations

import json
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Iterator, Optional

from sqlalchemy import Column, DateTime, Index, String, Text, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import Settings, get_settings

Base = declarative_base()


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(UTC)


class MemoryItemRow(Base):
    """One keyed memory item owned by a user."""

    __tablename__ = "memory_items"
    __table_args__ = (Index("ix_memory_items_user_type", "user_id", "type"),)

    user_id = Column(String(128), primary_key=True)
    key = Column(String(512), primary_key=True)
    type = Column(String(64), nullable=False)
    data = Column(Text, nullable=False, default="{}")
    tags = Column(Text, nullable=False, default="[]")
    created_at = Column(String(40), nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def as_dict(self) -> dict:
        return {
            "key": self.key,
            "type": self.type,
            "data": json.loads(self.data) if self.data else {},
            "createdAt": self.created_at,
            "tags": json.loads(self.tags) if self.tags else [],
        }


_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None


def get_engine(settings: Optional[Settings] = None) -> Engine:
    """Construct (or return cached) SQLAlchemy engine."""

    global _engine
    if _engine is None:
        settings = settings or get_settings()
        _engine = create_engine(settings.resolved_database_url(), pool_pre_ping=True)
    return _engine


def get_session_factory(settings: Optional[Settings] = None) -> sessionmaker:
    """Return a session factory bound to the configured engine."""

    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(bind=get_engine(settings), expire_on_commit=False)
    return _SessionLocal


def create_session_factory(database_url: str) -> sessionmaker:
    """Build an uncached session factory, creating tables on the new engine."""

    engine = create_engine(database_url, pool_pre_ping=True)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def get_session(session_factory: Optional[sessionmaker] = None) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    session_factory = session_factory or get_session_factory()
    session: Session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(settings: Optional[Settings] = None) -> None:
    """Create database tables if they do not already exist."""

    engine = get_engine(settings)
    Base.metadata.create_all(bind=engine)
