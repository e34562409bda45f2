"""Translation data models.

This module provides structured data models for requests, engine options,
results and engine telemetry.
"""

from .request import BubbleContext, BubbleType, TranslateOptions, TranslationRequest
from .result import (
    FAILED_TRANSLATION_TEXT,
    CacheSource,
    HealthStatus,
    TranslationResult,
    UsageStats,
)

__all__ = [
    # Request models
    "BubbleContext",
    "BubbleType",
    "TranslateOptions",
    "TranslationRequest",
    # Result models
    "FAILED_TRANSLATION_TEXT",
    "CacheSource",
    "HealthStatus",
    "TranslationResult",
    "UsageStats",
]
