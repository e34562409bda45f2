"""Translation result models.

This module defines the output data structures produced by engines and the
orchestrator, plus the engine telemetry records.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from ..errors import TranslationError
from ..markers.models import HonorificAnnotation, SFXRendering

FAILED_TRANSLATION_TEXT = "[Translation Failed]"


class CacheSource(str, Enum):
    MEMORY = "memory"
    FUZZY = "fuzzy"
    PERSISTENT = "persistent"


class TranslationResult(BaseModel):
    """Result of translating one bubble."""

    text: str = Field(..., description="Translated text")
    original_text: str = Field(..., description="Source text as submitted")
    detected_language: Optional[str] = Field(default=None)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    engine: str = Field(..., description="Engine id that produced the text")

    # Usage
    cost_usd: Optional[float] = Field(default=None)
    tokens_in: Optional[int] = Field(default=None)
    tokens_out: Optional[int] = Field(default=None)
    characters_billed: Optional[int] = Field(default=None)
    latency_ms: int = Field(default=0)

    timestamp: datetime = Field(default_factory=datetime.utcnow)
    from_cache: bool = Field(default=False)
    cache_source: Optional[CacheSource] = Field(default=None)

    # Failure placeholder fields (batch)
    failed: bool = Field(default=False)
    error_kind: Optional[str] = Field(default=None)
    error_message: Optional[str] = Field(default=None)

    # Marker pipeline output
    honorifics: List[HonorificAnnotation] = Field(default_factory=list)
    sfx: List[SFXRendering] = Field(default_factory=list)

    @classmethod
    def failure(
        cls,
        original_text: str,
        engine: str,
        error: Optional[Exception] = None,
        error_kind: Optional[str] = None,
    ) -> "TranslationResult":
        """Build the placeholder result for an item that failed permanently."""
        if isinstance(error, TranslationError):
            error_kind = error_kind or error.kind.value
        return cls(
            text=FAILED_TRANSLATION_TEXT,
            original_text=original_text,
            confidence=0.0,
            engine=engine,
            failed=True,
            error_kind=error_kind,
            error_message=str(error) if error else None,
        )


class UsageStats(BaseModel):
    """Running usage counters for one engine adapter. Advisory only."""

    engine: str
    requests: int = 0
    characters: int = 0
    tokens_in: int = 0
    tokens_out: int = 0
    cost_usd: float = 0.0
    errors: int = 0
    retries: int = 0
    last_request_at: Optional[datetime] = None
    quota_limit: Optional[int] = Field(
        default=None, description="Monthly characters (or tokens) allowed"
    )

    @property
    def quota_used(self) -> int:
        return self.characters if self.tokens_in == 0 else self.tokens_in + self.tokens_out

    @property
    def quota_used_ratio(self) -> Optional[float]:
        if not self.quota_limit:
            return None
        return min(self.quota_used / self.quota_limit, 1.0)


class HealthStatus(BaseModel):
    """Result of an engine health check."""

    engine: str
    status: str = Field(..., description="healthy, degraded or unhealthy")
    latency_ms: int = 0
    error: Optional[str] = None
