"""Cache data models."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from mangekyo.core.translation.models import CacheSource

DEFAULT_TTL_SECONDS = 7 * 24 * 3600


class CacheStrategy(str, Enum):
    MEMORY = "memory"
    PERSISTENT = "persistent"
    HYBRID = "hybrid"


class CacheEntry(BaseModel):
    """A cached translation."""

    key: str = Field(..., description="SHA-256 cache key")
    source_text: str = Field(..., description="Source text as submitted")
    normalized_text: str = Field(..., description="Normalized source text for fuzzy matching")
    translated_text: str
    source_lang: str
    target_lang: str
    engine: str
    confidence: float = 0.0
    manga_id: Optional[str] = None
    scope: str = Field(
        default="", description="Engine and context fingerprint the key was built from"
    )
    result: Dict[str, Any] = Field(
        default_factory=dict, description="Serialized TranslationResult"
    )

    created_at: datetime = Field(default_factory=datetime.utcnow)
    last_accessed: datetime = Field(default_factory=datetime.utcnow)
    access_count: int = 0
    ttl_seconds: int = DEFAULT_TTL_SECONDS

    @property
    def expires_at(self) -> datetime:
        return self.created_at + timedelta(seconds=self.ttl_seconds)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.utcnow()) >= self.expires_at

    def touch(self, now: Optional[datetime] = None) -> None:
        self.access_count += 1
        self.last_accessed = now or datetime.utcnow()


class CacheLookup(BaseModel):
    """Outcome of a cache lookup."""

    found: bool = False
    entry: Optional[CacheEntry] = None
    source: Optional[CacheSource] = None
    confidence: float = Field(default=0.0, description="1.0 for exact hits, similarity for fuzzy")


class CacheStats(BaseModel):
    hits: int = 0
    misses: int = 0
    memory_hits: int = 0
    fuzzy_hits: int = 0
    persistent_hits: int = 0
    evictions: int = 0
    compressed_savings: int = Field(default=0, description="Bytes saved by compression")
    memory_size: int = 0
    memory_capacity: int = 0
    persistent_errors: int = 0
    preload_queue_size: int = 0
    preloaded: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0
