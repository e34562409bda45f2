"""Honorific extraction and restoration.

Honorifics are masked before translation so engines do not mistranslate or
drop them. The engine translates the name, and restoration renders the
honorific next to the translated name according to the chosen mode.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from .honorific_lexicon import (
    FAMILIAL_RE,
    HONORIFICS,
    LATIN_SCRIPT_LANGUAGES,
    NAME_HONORIFIC_RE,
    NON_NAMES,
    HonorificEntry,
    detect_scene,
)
from .models import HonorificAnnotation, HonorificMode, Marker, MarkerOptions, MarkerType

logger = logging.getLogger(__name__)

PLACEHOLDER_TEMPLATE = "__HON_{index}__"
_TRAILING_PUNCT_RE = re.compile(r"([\s.!?,;:…。！？」』\"')]*)$")


def placeholder_pattern(prefix: str, index: int) -> str:
    """Regex for a placeholder, tolerant of spacing and case changes by engines."""
    return rf"_{{1,2}}\s*{prefix}\s*_\s*{index}\s*_{{1,2}}"


@dataclass
class DetectedHonorific:
    """One honorific occurrence in source text."""

    entry: HonorificEntry
    name: str
    start: int
    end: int

    @property
    def span(self) -> str:
        return self.name + self.entry.text


class HonorificBatchStats(BaseModel):
    """Honorific usage across a set of bubbles."""

    total: int = 0
    by_type: Dict[str, int] = Field(default_factory=dict)
    by_category: Dict[str, int] = Field(default_factory=dict)
    by_formality: Dict[str, int] = Field(
        default_factory=lambda: {"low": 0, "medium": 0, "high": 0}
    )
    most_common: Optional[str] = None
    recommended_mode: HonorificMode = HonorificMode.HYBRID
    recommendations: List[str] = Field(default_factory=list)


class HonorificProcessor:
    """Detects honorifics and masks/restores them around a translation call.

    Stateless: every method is a function of its arguments, so one instance
    can be shared by concurrent translations.
    """

    def detect(self, text: str) -> List[DetectedHonorific]:
        """Find name+honorific pairs and familial terms, in text order."""
        found: List[DetectedHonorific] = []
        taken: List[Tuple[int, int]] = []

        for match in FAMILIAL_RE.finditer(text):
            entry = HONORIFICS[match.group(2)]
            found.append(
                DetectedHonorific(entry, match.group(1), match.start(), match.end())
            )
            taken.append((match.start(), match.end()))

        for match in NAME_HONORIFIC_RE.finditer(text):
            start, end = match.start(), match.end()
            if any(start < t_end and end > t_start for t_start, t_end in taken):
                continue
            name = match.group(1)
            if name in NON_NAMES:
                continue
            found.append(DetectedHonorific(HONORIFICS[match.group(2)], name, start, end))

        found.sort(key=lambda d: d.start)
        return found

    def decide(
        self,
        entry: HonorificEntry,
        options: MarkerOptions,
        scene: Optional[str],
    ) -> HonorificMode:
        """Resolve the configured mode into preserve, adapt or remove for one entry."""
        mode = options.honorific_mode if options.preserve_honorifics else HonorificMode.ADAPT

        if mode == HonorificMode.HYBRID:
            if entry.formality >= 4:
                mode = HonorificMode.PRESERVE
            elif entry.is_familial:
                mode = HonorificMode.ADAPT
            elif scene == "business" and entry.formality <= 2:
                mode = HonorificMode.ADAPT
            else:
                # Historical settings and everything else keep the original
                mode = HonorificMode.PRESERVE

        # English equivalents only exist for English; same-language output keeps originals
        if mode == HonorificMode.ADAPT and options.target_lang != "en":
            mode = HonorificMode.PRESERVE
        if options.target_lang == options.source_lang:
            mode = HonorificMode.PRESERVE
        return mode

    def extract(
        self,
        text: str,
        options: MarkerOptions,
        start_index: int = 0,
    ) -> Tuple[str, List[Marker], List[HonorificAnnotation]]:
        """Mask honorifics in text.

        Args:
            text: Source text
            options: Marker options for this request
            start_index: First placeholder index to use

        Returns:
            Tuple of (masked text, markers, annotations)
        """
        detections = self.detect(text)
        if not detections:
            return text, [], []

        scene = options.scene or detect_scene(text)
        parts: List[str] = []
        markers: List[Marker] = []
        annotations: List[HonorificAnnotation] = []
        cursor = 0
        index = start_index

        for found in detections:
            entry = found.entry
            parts.append(text[cursor:found.start])
            cursor = found.end
            action = self.decide(entry, options, scene)

            annotation = HonorificAnnotation(
                name=found.name,
                honorific=entry.text,
                romaji=entry.romaji,
                category=entry.category,
                formality=entry.formality,
                action="preserved",
            )

            if action == HonorificMode.REMOVE:
                annotation.action = "removed"
                # A bare familial term is a word on its own, leave it to the engine
                parts.append(found.name if found.name else entry.text)
                annotation.rendered = found.name or None
                annotations.append(annotation)
                continue

            if action == HonorificMode.ADAPT:
                annotation.action = "adapted"
                if found.name and entry.adapt("X", options.relationship, scene) == "X":
                    parts.append(found.name)
                    annotations.append(annotation)
                    continue

            placeholder = PLACEHOLDER_TEMPLATE.format(index=index)
            markers.append(
                Marker(
                    type=MarkerType.HONORIFIC,
                    original_span=entry.text,
                    placeholder=placeholder,
                    position=found.start + len(found.name),
                    payload={
                        "index": index,
                        "mode": action.value,
                        "name": found.name,
                        "romaji": entry.romaji,
                        "relationship": options.relationship,
                        "scene": scene,
                        "annotation": len(annotations),
                    },
                )
            )
            parts.append(found.name + placeholder)
            annotations.append(annotation)
            index += 1

        parts.append(text[cursor:])
        return "".join(parts), markers, annotations

    def render(self, marker: Marker, translated_name: str, target_lang: str, source_lang: str = "ja") -> str:
        """Render one honorific marker next to its translated name."""
        payload = marker.payload
        entry = HONORIFICS[marker.original_span]
        has_name = bool(payload.get("name"))

        if payload["mode"] == HonorificMode.ADAPT.value:
            if not has_name:
                if payload.get("relationship") in ("actual-family", "close-friend"):
                    return entry.adapt("", payload.get("relationship"), payload.get("scene"))
                return entry.standalone_en or entry.romaji
            return entry.adapt(translated_name, payload.get("relationship"), payload.get("scene"))

        if target_lang == source_lang:
            return translated_name + marker.original_span
        if not has_name:
            return translated_name + entry.romaji
        if target_lang not in LATIN_SCRIPT_LANGUAGES and not translated_name.isascii():
            # Non-latin output (zh, ko, ...) keeps the romanized suffix in parentheses
            return f"{translated_name}(-{entry.romaji})"
        return f"{translated_name}-{entry.romaji}"

    def restore(
        self,
        text: str,
        markers: List[Marker],
        target_lang: str,
        source_lang: str = "ja",
    ) -> Tuple[str, Dict[int, str]]:
        """Replace honorific placeholders in translated text.

        Returns:
            Tuple of (restored text, annotation index -> rendered form)
        """
        rendered: Dict[int, str] = {}
        for marker in markers:
            if marker.type != MarkerType.HONORIFIC:
                continue
            index = marker.payload["index"]
            pattern = re.compile(
                r"([^\s_]*)(\s*)" + placeholder_pattern("HON", index), re.IGNORECASE
            )
            match = pattern.search(text)

            if match is None:
                text, value = self._restore_missing(text, marker, target_lang, source_lang)
                logger.debug(f"[Honorifics] Placeholder {marker.placeholder} dropped by engine")
            else:
                word = match.group(1)
                if not marker.payload.get("name"):
                    value = word + match.group(2) + self.render(marker, "", target_lang, source_lang)
                else:
                    value = self.render(marker, word, target_lang, source_lang)
                text = text[:match.start()] + value + text[match.end():]
            rendered[marker.payload["annotation"]] = value
        return text, rendered

    def _restore_missing(
        self, text: str, marker: Marker, target_lang: str, source_lang: str
    ) -> Tuple[str, str]:
        payload = marker.payload
        if payload["mode"] == HonorificMode.ADAPT.value:
            return text, ""
        if target_lang == source_lang:
            # Identity translation: put the suffix back after the name
            name = payload.get("name", "")
            position = text.find(name) + len(name) if name and name in text else len(text)
            return text[:position] + marker.original_span + text[position:], marker.original_span
        suffix = f"-{payload['romaji']}" if payload.get("name") else payload["romaji"]
        match = _TRAILING_PUNCT_RE.search(text)
        position = match.start() if match else len(text)
        return text[:position] + suffix + text[position:], suffix

    def analyze_batch(self, texts: List[str]) -> HonorificBatchStats:
        """Summarize honorific usage and recommend a mode."""
        stats = HonorificBatchStats()
        types: Counter = Counter()

        for text in texts:
            for found in self.detect(text):
                entry = found.entry
                stats.total += 1
                types[entry.romaji] += 1
                stats.by_category[entry.category] = stats.by_category.get(entry.category, 0) + 1
                if entry.formality <= 2:
                    stats.by_formality["low"] += 1
                elif entry.formality <= 3:
                    stats.by_formality["medium"] += 1
                else:
                    stats.by_formality["high"] += 1

        stats.by_type = dict(types)
        if types:
            stats.most_common = types.most_common(1)[0][0]

        if stats.by_formality["high"] > stats.by_formality["low"]:
            stats.recommended_mode = HonorificMode.PRESERVE
            stats.recommendations.append(
                'High formality content detected. Recommend "preserve" mode.'
            )
        if types.get("chan", 0) > 5:
            stats.recommended_mode = HonorificMode.HYBRID
            stats.recommendations.append(
                'Heavy use of intimate honorifics. Consider "hybrid" mode.'
            )
        return stats
