"""Persistent translation cache table."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from mangekyo.models.database.base import Base


class CacheEntryRecord(Base):
    """One cached translation, keyed by the SHA-256 cache key."""

    __tablename__ = "cache_entries"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)

    # Content
    source_text: Mapped[str] = mapped_column(Text, nullable=False)
    normalized_text: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)  # JSON, or zlib+base64
    compressed: Mapped[bool] = mapped_column(Boolean, default=False)

    # Lookup
    source_lang: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    target_lang: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    engine: Mapped[str] = mapped_column(String(50), nullable=False)
    manga_id: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    scope: Mapped[str] = mapped_column(String(100), default="", index=True)
    confidence: Mapped[float] = mapped_column(Float, default=0.0)

    # Access tracking
    access_count: Mapped[int] = mapped_column(Integer, default=0)
    ttl_seconds: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    last_accessed: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, index=True
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
