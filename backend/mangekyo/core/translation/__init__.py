"""Translation package.

This package provides the engine adapters, the marker pipeline and the
orchestrator that ties them to the cache and context tracker.

Architecture:
- models/: Request, result and telemetry models
- markers/: Honorific and SFX extraction/restoration
- engines/: Provider adapters (DeepL, Google, LLM)
- orchestrator.py: Cache → quota → engine → restore flow (import directly)
"""

from .errors import (
    CacheUnavailableError,
    ContextCorruptError,
    EngineError,
    ErrorKind,
    QuotaDeniedError,
    TranslationError,
)
from .models import (
    BubbleContext,
    BubbleType,
    TranslateOptions,
    TranslationRequest,
    TranslationResult,
)


__all__ = [
    # Errors
    "CacheUnavailableError",
    "ContextCorruptError",
    "EngineError",
    "ErrorKind",
    "QuotaDeniedError",
    "TranslationError",
    # Models
    "BubbleContext",
    "BubbleType",
    "TranslateOptions",
    "TranslationRequest",
    "TranslationResult",
]
