"""Marker pipeline data models.

Markers are request-scoped: they are produced when honorifics and SFX are
masked out of the source text and consumed when the translated text is
restored. The remaining models describe the honorific and SFX decisions
that are handed back to callers alongside the translation.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class MarkerType(str, Enum):
    """Kinds of masked spans."""

    HONORIFIC = "honorific"
    SFX = "sfx"
    CONTEXT = "context"


class HonorificMode(str, Enum):
    """How honorifics are carried into the target language."""

    PRESERVE = "preserve"  # Keep the suffix, transliterated
    ADAPT = "adapt"  # Replace with a target-language equivalent
    HYBRID = "hybrid"  # Decide per honorific
    REMOVE = "remove"  # Strip the suffix


class SFXMode(str, Enum):
    """SFX translation strategies."""

    AUTO = "auto"
    DIRECT = "direct"
    ADAPTIVE = "adaptive"
    GENRE_AUTHENTIC = "genre-authentic"
    VISUAL = "visual"
    HYBRID = "hybrid"
    EMPHASIZED = "emphasized"
    ATMOSPHERIC = "atmospheric"


class PositionStrategy(str, Enum):
    REPLACE = "replace"
    PARALLEL = "parallel"
    ANNOTATION = "annotation"


class Marker(BaseModel):
    """A masked span of source text."""

    type: MarkerType = Field(..., description="Kind of span that was masked")
    original_span: str = Field(..., description="Text that was replaced")
    placeholder: str = Field(..., description="Token inserted in its place")
    position: int = Field(..., description="Character offset in the source text")
    payload: Dict[str, Any] = Field(
        default_factory=dict, description="Data needed to render the span back"
    )


class MarkerOptions(BaseModel):
    """Per-request options for the marker pipeline."""

    source_lang: str = Field(default="ja", description="Source language code")
    target_lang: str = Field(default="en", description="Target language code")
    preserve_honorifics: bool = Field(
        default=True, description="Master switch for honorific handling"
    )
    honorific_mode: HonorificMode = Field(default=HonorificMode.HYBRID)
    sfx_mode: SFXMode = Field(default=SFXMode.AUTO)
    detect_sfx: bool = Field(default=True, description="Run the SFX pass")
    position_strategy: PositionStrategy = Field(default=PositionStrategy.REPLACE)

    # Narrative hints used by adaptation functions
    relationship: Optional[str] = Field(
        default=None,
        description="Speaker relationship, e.g. master-servant, actual-family",
    )
    scene: Optional[str] = Field(
        default=None, description="Scene type, e.g. business, school, historical"
    )
    genre: Optional[str] = Field(default=None, description="Genre hint")
    bubble_type: Optional[str] = Field(default=None, description="Bubble type")
    intensity: Optional[int] = Field(
        default=None, ge=1, le=5, description="Emotional intensity of the panel"
    )


class HonorificAnnotation(BaseModel):
    """Decision taken for one detected honorific."""

    name: str = Field(default="", description="Name the honorific attaches to")
    honorific: str = Field(..., description="Original honorific text")
    romaji: str = Field(..., description="Romanized honorific")
    category: str = Field(..., description="Lexicon category")
    formality: int = Field(..., description="Formality level 1-5")
    action: str = Field(..., description="preserved, adapted or removed")
    rendered: Optional[str] = Field(
        default=None, description="Final rendering, filled in on restoration"
    )


class SFXVisual(BaseModel):
    """Rendering descriptor for a translated SFX. No pixels, only style."""

    font_family: str = "Arial, sans-serif"
    font_weight: str = "bold"
    text_transform: Optional[str] = None
    letter_spacing: Optional[str] = None
    style: str = "unknown-sfx"
    color: str = "#000000"
    effects: List[str] = Field(default_factory=list)
    background_type: str = "none"
    shape: str = "rounded"
    animation: Optional[str] = None


class SFXPositioning(BaseModel):
    strategy: PositionStrategy = PositionStrategy.REPLACE
    anchor: str = "center"
    offset_x: int = 0
    offset_y: int = 0
    rotation: float = 0.0


class SFXRendering(BaseModel):
    """Translated SFX with the metadata needed to composite it."""

    original: str
    romaji: str
    is_sfx: bool = True
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    category: str = "unknown"
    meaning: str = "sound effect"
    intensity: int = 3
    translation: str
    strategy: str
    visual: SFXVisual = Field(default_factory=SFXVisual)
    positioning: SFXPositioning = Field(default_factory=SFXPositioning)
    alternatives: List[str] = Field(default_factory=list)
    consistent_with_previous: bool = False


class MarkedText(BaseModel):
    """Source text after marker extraction."""

    text: str = Field(..., description="Text to send to the engine")
    original_text: str = Field(..., description="Text before extraction")
    markers: List[Marker] = Field(default_factory=list)
    honorifics: List[HonorificAnnotation] = Field(default_factory=list)
    sfx: List[SFXRendering] = Field(default_factory=list)

    @property
    def is_pure_sfx(self) -> bool:
        """True when the whole bubble is a single SFX and needs no engine call."""
        return (
            len(self.markers) == 1
            and self.markers[0].type == MarkerType.SFX
            and self.text.strip() == self.markers[0].placeholder
        )
