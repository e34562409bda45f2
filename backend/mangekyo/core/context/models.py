"""Session context models.

A ContextSession is the narrative memory of one reading session: who is
speaking and how, which terms have been rendered which way, and what the
current scene looks like. Everything except recent_bubbles and the
current scene is persisted per manga so it survives across chapters.
"""

import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Set

from pydantic import BaseModel, Field, model_validator

MAX_RECENT_BUBBLES = 10
MAX_COMMON_PHRASES = 20
MAX_EXPRESSIONS = 10

FORMALITY_LEVELS = {"casual": 1, "neutral": 2, "formal": 3, "archaic": 4}


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    PERSISTED = "persisted"
    ENDED = "ended"


class TermAction(str, Enum):
    ADD = "add"
    ACCEPT = "accept"
    OVERRIDE = "override"
    KEEP_EXISTING = "keep-existing"


@dataclass
class BubbleRecord:
    """A processed bubble kept in the recent-bubble buffer."""

    text: str
    translation: Optional[str] = None
    character: Optional[str] = None
    bubble_type: str = "speech"
    page_number: Optional[int] = None
    scene_id: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    timestamp: datetime = field(default_factory=datetime.utcnow)


@dataclass
class TermEntry:
    """Glossary entry for a recurring term."""

    translation: str
    frequency: int = 1
    first_seen: datetime = field(default_factory=datetime.utcnow)
    last_seen: datetime = field(default_factory=datetime.utcnow)
    context: Optional[str] = None  # proper-noun, foreign-term, character-name, ...


@dataclass
class CharacterProfile:
    """Speech profile of one character. Never deleted inside a session."""

    id: str
    appearances: Set[int] = field(default_factory=set)
    formality_level: float = 2.0  # 1 casual .. 4 archaic
    common_phrases: List[Dict[str, str]] = field(default_factory=list)
    expressions: List[str] = field(default_factory=list)
    avg_sentence_length: float = 0.0
    speech_patterns: List[str] = field(default_factory=list)
    last_appearance: Optional[datetime] = None

    @property
    def formality_label(self) -> str:
        level = round(self.formality_level)
        for label, value in FORMALITY_LEVELS.items():
            if value == level:
                return label
        return "neutral"


@dataclass
class Scene:
    id: str = field(default_factory=lambda: f"scene-{uuid.uuid4().hex[:8]}")
    start_page: Optional[int] = None
    end_page: Optional[int] = None
    setting: Optional[str] = None
    time_of_day: Optional[str] = None
    mood: Optional[str] = None
    characters: List[str] = field(default_factory=list)


@dataclass
class NarrativeArc:
    current_scene: Optional[Scene] = None
    previous_scenes: List[Scene] = field(default_factory=list)
    emotional_tone: str = "neutral"
    setting: Optional[str] = None
    plot_points: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class ContextSession:
    """Narrative memory for one reading session."""

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    manga_id: Optional[str] = None
    chapter_id: Optional[str] = None
    current_page: int = 0
    character_profiles: Dict[str, CharacterProfile] = field(default_factory=dict)
    terminology: Dict[str, TermEntry] = field(default_factory=dict)
    translation_memory: Dict[str, str] = field(default_factory=dict)
    narrative_arc: NarrativeArc = field(default_factory=NarrativeArc)
    recent_bubbles: Deque[BubbleRecord] = field(
        default_factory=lambda: deque(maxlen=MAX_RECENT_BUBBLES)
    )
    bubbles_processed: int = 0
    state: SessionState = SessionState.UNINITIALIZED
    started_at: datetime = field(default_factory=datetime.utcnow)
    last_activity: datetime = field(default_factory=datetime.utcnow)


@dataclass
class RelevantContext:
    """Context selected to inform one translation."""

    immediate_context: List[BubbleRecord] = field(default_factory=list)
    character_profile: Optional[CharacterProfile] = None
    terminology: Dict[str, str] = field(default_factory=dict)
    scene: Optional[Scene] = None
    tone: str = "neutral"

    def recent_lines(self) -> List[str]:
        lines = []
        for bubble in self.immediate_context:
            speaker = f"{bubble.character}: " if bubble.character else ""
            rendered = f" → {bubble.translation}" if bubble.translation else ""
            lines.append(f"{speaker}{bubble.text}{rendered}")
        return lines


@dataclass
class TermCheck:
    """Outcome of a terminology consistency check."""

    action: TermAction
    existing: Optional[str] = None
    proposed: Optional[str] = None
    similarity: float = 1.0
    frequency: int = 0
    suggestion: Optional[str] = None

    @property
    def consistent(self) -> bool:
        return self.action in (TermAction.ADD, TermAction.ACCEPT)


@dataclass
class PageContext:
    """Result of processing a page."""

    page_number: int
    scene: Optional[Scene]
    emotional_tone: str
    scene_changed: bool
    character_profiles: Dict[str, CharacterProfile] = field(default_factory=dict)
    continuity: Dict[str, bool] = field(default_factory=dict)


class PageInfo(BaseModel):
    """Visual cues for a page, as reported by the caller."""

    setting: Optional[str] = Field(default=None, description="indoor, outdoor, school, ...")
    time_of_day: Optional[str] = Field(default=None, description="morning, day, evening, night")
    mood: Optional[str] = Field(
        default=None, description="calm, neutral, tense, dramatic, action or climax"
    )
    characters: List[str] = Field(default_factory=list)
    texts: List[str] = Field(default_factory=list, description="OCR text on the page")


class ContextConfig(BaseModel):
    """Context tracker tuning."""

    window_size: int = Field(default=5, ge=1, description="Bubbles returned as immediate context")
    save_interval: int = Field(default=10, ge=1, description="Bubbles between saves")
    expiry_days: int = Field(default=30, ge=1)
    max_terminology_entries: int = Field(default=1000, ge=10)
    similarity_threshold: float = Field(default=0.85, gt=0.0, le=1.0)
    override_frequency_bound: int = Field(default=10, ge=1)
    override_recency_seconds: int = Field(default=3600, ge=0)
    mood_shift_threshold: float = Field(default=0.7, gt=0.0, le=1.0)
    max_previous_scenes: int = Field(default=10, ge=1)
    memory_confidence: float = Field(default=0.8, ge=0.0, le=1.0)

    # Relevance weights
    recency_weight: float = 0.4
    character_weight: float = 0.3
    scene_weight: float = 0.2
    global_weight: float = 0.1

    @model_validator(mode="after")
    def check_weights(self) -> "ContextConfig":
        total = self.recency_weight + self.character_weight + self.scene_weight + self.global_weight
        if abs(total - 1.0) > 1e-6:
            raise ValueError("relevance weights must sum to 1.0")
        return self
