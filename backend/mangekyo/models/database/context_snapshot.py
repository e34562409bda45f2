"""Persisted session context, one row per manga."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from mangekyo.models.database.base import Base


class ContextSnapshot(Base):
    """Latest saved context for a manga (characters, glossary, memory)."""

    __tablename__ = "context_snapshots"

    manga_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    session_id: Mapped[str] = mapped_column(String(36), nullable=False)
    chapter_id: Mapped[Optional[str]] = mapped_column(String(100))

    data: Mapped[dict] = mapped_column(JSON, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1)

    saved_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
