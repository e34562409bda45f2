"""Honorific and SFX marker pipeline.

- HonorificProcessor: detects name+honorific pairs, masks/restores them
- SFXTranslator: detects onomatopoeia and renders it for the target language
- TextMarkerPipeline: composes both passes around an engine call
"""

from .honorifics import HonorificBatchStats, HonorificProcessor
from .models import (
    HonorificAnnotation,
    HonorificMode,
    MarkedText,
    Marker,
    MarkerOptions,
    MarkerType,
    PositionStrategy,
    SFXMode,
    SFXRendering,
    SFXVisual,
)
from .pipeline import TextMarkerPipeline
from .sfx import SFXTranslator, SFXUsageStats

__all__ = [
    "HonorificAnnotation",
    "HonorificBatchStats",
    "HonorificMode",
    "HonorificProcessor",
    "MarkedText",
    "Marker",
    "MarkerOptions",
    "MarkerType",
    "PositionStrategy",
    "SFXMode",
    "SFXRendering",
    "SFXTranslator",
    "SFXUsageStats",
    "SFXVisual",
    "TextMarkerPipeline",
]
