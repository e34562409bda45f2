"""SFX detection and translation.

Detects onomatopoeia with a lexicon lookup plus katakana-ratio, repetition
and length heuristics, picks a target-language rendering by strategy and
produces a style descriptor for compositing. No pixels are rendered here.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from mangekyo.utils.text import katakana_ratio
from .models import (
    MarkerOptions,
    PositionStrategy,
    SFXMode,
    SFXPositioning,
    SFXRendering,
    SFXVisual,
)
from .sfx_lexicon import (
    CATEGORY_COLORS,
    CATEGORY_SHAPES,
    CULTURAL_CONTEXTS,
    GENRE_ALIASES,
    SFX_DATABASE,
    VISUAL_STYLES,
    SFXEntry,
    to_romaji,
)

logger = logging.getLogger(__name__)

SFX_THRESHOLD = 0.6
DEFAULT_CONTEXT_INTENSITY = 3

_REPETITION_RE = re.compile(r"^(.{2,})\1+$", re.DOTALL)
_EDGE_CHARS = " \t\n！!？?…・~〜。、"
_KATAKANA_RUN_RE = re.compile(r"[ァ-ヺー]{2,}")


@dataclass
class SFXDetection:
    """Signals collected while classifying a token."""

    is_sfx: bool
    confidence: float
    core: str
    entry: Optional[SFXEntry] = None
    katakana_ratio: float = 0.0
    repetition: bool = False


class SFXUsageStats(BaseModel):
    """SFX usage across a page or chapter."""

    total: int = 0
    by_category: Dict[str, int] = Field(default_factory=dict)
    by_intensity: Dict[str, int] = Field(
        default_factory=lambda: {"low": 0, "medium": 0, "high": 0}
    )
    unique: List[str] = Field(default_factory=list)
    repeated: List[str] = Field(default_factory=list)
    likely_genre: str = "unknown"


def resolve_genre(genre: Optional[str]) -> Optional[str]:
    if not genre:
        return None
    genre = genre.lower()
    return GENRE_ALIASES.get(genre, genre)


class SFXTranslator:
    """Translates manga sound effects while keeping their visual weight."""

    def detect(self, text: str) -> SFXDetection:
        """Classify text as SFX or not.

        Confidence is 0.5 for a lexicon match, 0.3 when more than 80% of
        the characters are katakana, 0.2 for a repeated unit of two or more
        characters and 0.1 for a length between 2 and 12.
        """
        core = (text or "").strip(_EDGE_CHARS)
        if core.endswith("ッ") and core[:-1] in SFX_DATABASE:
            core = core[:-1]
        if not core:
            return SFXDetection(is_sfx=False, confidence=0.0, core="")

        entry = SFX_DATABASE.get(core)
        ratio = katakana_ratio(core)
        repetition = bool(_REPETITION_RE.match(core))

        confidence = 0.0
        if entry:
            confidence += 0.5
        if ratio > 0.8:
            confidence += 0.3
        if repetition:
            confidence += 0.2
        if 2 <= len(core) <= 12:
            confidence += 0.1

        confidence = min(confidence, 1.0)
        return SFXDetection(
            is_sfx=confidence > SFX_THRESHOLD,
            confidence=confidence,
            core=core,
            entry=entry,
            katakana_ratio=ratio,
            repetition=repetition,
        )

    def find_spans(self, text: str) -> List[Tuple[int, int, str]]:
        """Find SFX tokens embedded in a longer line of text."""
        spans = []
        for match in _KATAKANA_RUN_RE.finditer(text):
            if self.detect(match.group(0)).is_sfx:
                spans.append((match.start(), match.end(), match.group(0)))
        return spans

    def determine_strategy(
        self,
        entry: Optional[SFXEntry],
        options: MarkerOptions,
    ) -> SFXMode:
        """Pick a strategy. An explicit mode always wins over the heuristics."""
        if options.sfx_mode != SFXMode.AUTO:
            return options.sfx_mode
        if entry is None:
            return SFXMode.DIRECT

        cultural = CULTURAL_CONTEXTS.get(resolve_genre(options.genre) or "")
        if cultural and entry.text in cultural.common_sfx:
            return SFXMode.GENRE_AUTHENTIC
        if entry.intensity >= 4 and options.bubble_type == "action":
            return SFXMode.EMPHASIZED
        if entry.category in ("emotional-state", "atmosphere"):
            return SFXMode.ATMOSPHERIC
        return SFXMode.ADAPTIVE

    def translate(self, text: str, options: MarkerOptions) -> SFXRendering:
        """Translate a single SFX token.

        Args:
            text: SFX text as extracted by OCR
            options: Marker options (target language, mode, genre, bubble type)

        Returns:
            SFXRendering; non-SFX input comes back unchanged with
            strategy "passthrough"
        """
        detection = self.detect(text)
        if not detection.is_sfx:
            return SFXRendering(
                original=text,
                romaji=to_romaji(text),
                is_sfx=False,
                confidence=detection.confidence,
                translation=text,
                strategy="passthrough",
            )

        entry = detection.entry
        strategy = self.determine_strategy(entry, options)
        translation = self._select(entry, detection.core, options.target_lang, strategy)
        if entry is not None and strategy != SFXMode.EMPHASIZED:
            translation = self._apply_intensity(translation, entry.intensity, options.intensity)

        return SFXRendering(
            original=text,
            romaji=entry.romaji if entry else to_romaji(detection.core),
            confidence=detection.confidence,
            category=entry.category if entry else "unknown",
            meaning=entry.meaning if entry else "sound effect",
            intensity=entry.intensity if entry else DEFAULT_CONTEXT_INTENSITY,
            translation=translation,
            strategy=strategy.value,
            visual=self._visual(entry),
            positioning=self._positioning(options.position_strategy),
            alternatives=entry.adaptations_for(options.target_lang)[1:] if entry else [],
        )

    def translate_batch(
        self, texts: List[str], options: MarkerOptions
    ) -> List[SFXRendering]:
        """Translate several SFX, keeping repeated ones rendered identically."""
        results: List[SFXRendering] = []
        used: Dict[str, str] = {}
        for text in texts:
            result = self.translate(text, options)
            if text in used:
                result.translation = used[text]
                result.consistent_with_previous = True
            else:
                used[text] = result.translation
            results.append(result)
        return results

    def analyze_usage(self, texts: List[str]) -> SFXUsageStats:
        """Category and intensity breakdown plus a genre guess."""
        stats = SFXUsageStats()
        genres: Counter = Counter()
        seen = set()

        for text in texts:
            detection = self.detect(text)
            if not detection.is_sfx or detection.entry is None:
                continue
            entry = detection.entry
            stats.total += 1
            stats.by_category[entry.category] = stats.by_category.get(entry.category, 0) + 1
            if entry.intensity <= 2:
                stats.by_intensity["low"] += 1
            elif entry.intensity <= 3:
                stats.by_intensity["medium"] += 1
            else:
                stats.by_intensity["high"] += 1

            if entry.romaji in seen:
                stats.repeated.append(entry.romaji)
            else:
                seen.add(entry.romaji)
                stats.unique.append(entry.romaji)

            for genre, cultural in CULTURAL_CONTEXTS.items():
                if entry.text in cultural.common_sfx:
                    genres[genre] += 1

        if genres:
            stats.likely_genre = genres.most_common(1)[0][0]
        return stats

    def _select(
        self,
        entry: Optional[SFXEntry],
        core: str,
        target_lang: str,
        strategy: SFXMode,
    ) -> str:
        if entry is None:
            return to_romaji(core)

        adaptations = entry.adaptations_for(target_lang)
        if strategy == SFXMode.DIRECT:
            return entry.romaji
        if strategy in (SFXMode.ADAPTIVE, SFXMode.GENRE_AUTHENTIC):
            if entry.intensity >= 4 and len(adaptations) > 1:
                return adaptations[0]
            return adaptations[-1]
        if strategy == SFXMode.VISUAL:
            return f"[{entry.meaning}]"
        if strategy == SFXMode.HYBRID:
            return f"{adaptations[0]} ({entry.romaji})"
        if strategy == SFXMode.EMPHASIZED:
            return adaptations[0].upper()
        if strategy == SFXMode.ATMOSPHERIC:
            return adaptations[-1]
        return adaptations[0]

    @staticmethod
    def _apply_intensity(
        translation: str, intensity: int, context_intensity: Optional[int]
    ) -> str:
        combined = (intensity + (context_intensity or DEFAULT_CONTEXT_INTENSITY)) / 2
        if combined >= 4:
            return translation.upper().replace("*", "")
        if combined <= 2:
            return translation.lower()
        return translation

    @staticmethod
    def _visual(entry: Optional[SFXEntry]) -> SFXVisual:
        if entry is None:
            return SFXVisual()

        style = VISUAL_STYLES.get(entry.visual_style, VISUAL_STYLES["bold-heavy"])
        effects: List[str] = []
        if entry.intensity >= 4:
            effects.append("shadow")
        if entry.category == "impact":
            effects.append("motion-lines")
        if entry.romaji == "kirakira":
            effects.append("sparkle")

        return SFXVisual(
            font_family=style["font_family"],
            font_weight=style["font_weight"],
            text_transform=style["text_transform"],
            letter_spacing=style["letter_spacing"],
            style=entry.visual_style,
            color=CATEGORY_COLORS.get(entry.category, "#000000"),
            effects=effects,
            background_type="burst" if entry.intensity > 3 else "none",
            shape=CATEGORY_SHAPES.get(entry.category, "rounded"),
            animation="pulse" if entry.intensity > 4 else None,
        )

    @staticmethod
    def _positioning(strategy: PositionStrategy) -> SFXPositioning:
        if strategy == PositionStrategy.PARALLEL:
            return SFXPositioning(strategy=strategy, anchor="bottom", offset_y=10)
        if strategy == PositionStrategy.ANNOTATION:
            return SFXPositioning(strategy=strategy, anchor="margin")
        return SFXPositioning(strategy=PositionStrategy.REPLACE, anchor="center")
