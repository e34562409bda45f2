"""Translation request models.

This module defines the input data structures for the orchestrator and the
per-call options handed to engine adapters.
"""

from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..markers.models import HonorificMode, SFXMode


class BubbleType(str, Enum):
    """Kinds of OCR text regions."""

    SPEECH = "speech"
    THOUGHT = "thought"
    NARRATION = "narration"
    SHOUT = "shout"
    ACTION = "action"
    SFX = "sfx"


class BubbleContext(BaseModel):
    """Narrative metadata attached to a bubble."""

    model_config = ConfigDict(frozen=True)

    manga_id: Optional[str] = Field(default=None, description="Work the bubble belongs to")
    bubble_id: Optional[str] = Field(default=None, description="Caller bubble identifier")
    character: Optional[str] = Field(default=None, description="Speaking character id")
    scene_hints: Tuple[str, ...] = Field(
        default=(), description="Free-form scene hints (setting, time of day, mood)"
    )
    bubble_type: BubbleType = Field(default=BubbleType.SPEECH)
    page_number: Optional[int] = Field(default=None, ge=0)
    genre: Optional[str] = Field(default=None, description="Genre, e.g. action, romance")
    relationship: Optional[str] = Field(
        default=None, description="Speaker-addressee relationship"
    )
    intensity: Optional[int] = Field(default=None, ge=1, le=5)


class TranslationRequest(BaseModel):
    """A single bubble translation request. Immutable once issued."""

    model_config = ConfigDict(frozen=True)

    source_text: str = Field(..., description="OCR text to translate")
    source_lang: str = Field(default="ja", description="Source language code")
    target_lang: str = Field(default="en", description="Target language code")
    context: Optional[BubbleContext] = Field(default=None)
    use_cache: bool = Field(default=True, description="Read from the cache before translating")
    honorific_mode: Optional[HonorificMode] = Field(
        default=None, description="Override the configured honorific mode"
    )
    sfx_mode: Optional[SFXMode] = Field(
        default=None, description="Override the configured SFX mode"
    )


class TranslateOptions(BaseModel):
    """Options passed to an engine for one call."""

    source_lang: str = "ja"
    target_lang: str = "en"
    formality: Optional[str] = Field(
        default=None, description="more/less formal, for engines that support it"
    )
    genre: Optional[str] = None
    character: Optional[str] = None
    character_voice: Optional[str] = Field(
        default=None, description="Short description of the speaker's voice"
    )
    recent_lines: List[str] = Field(default_factory=list)
    glossary: Dict[str, str] = Field(default_factory=dict)
    scene: Optional[str] = None
    tone: Optional[str] = None
    timeout: Optional[float] = Field(default=None, description="Override call timeout (s)")
