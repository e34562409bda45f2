"""Marker pipeline composed around every translation call.

extract() masks honorifics and SFX with placeholders before the text is sent
to an engine; restore() replaces every placeholder in the engine output.
Both passes are pure functions of their arguments.
"""

import logging
import re
from typing import List, Optional

from .honorifics import HonorificProcessor, placeholder_pattern
from .models import MarkedText, Marker, MarkerOptions, MarkerType, SFXRendering
from .sfx import SFXTranslator

logger = logging.getLogger(__name__)

SFX_PLACEHOLDER_TEMPLATE = "__SFX_{index}__"
_ANY_PLACEHOLDER_RE = re.compile(r"_{1,2}\s*(?:HON|SFX)\s*_\s*\d+\s*_{1,2}", re.IGNORECASE)


class TextMarkerPipeline:
    """Reversible extraction/restoration of honorific and SFX spans."""

    def __init__(
        self,
        honorifics: Optional[HonorificProcessor] = None,
        sfx: Optional[SFXTranslator] = None,
    ):
        self.honorifics = honorifics or HonorificProcessor()
        self.sfx = sfx or SFXTranslator()

    def extract(self, text: str, options: MarkerOptions) -> MarkedText:
        """Mask honorifics and SFX in source text.

        A bubble that is entirely one SFX becomes a single SFX marker, so the
        caller can skip the engine call.
        """
        markers: List[Marker] = []
        renderings: List[SFXRendering] = []

        if options.detect_sfx:
            whole = self.sfx.detect(text)
            if whole.is_sfx:
                rendering = self.sfx.translate(text, options)
                placeholder = SFX_PLACEHOLDER_TEMPLATE.format(index=0)
                markers.append(
                    Marker(
                        type=MarkerType.SFX,
                        original_span=text.strip(),
                        placeholder=placeholder,
                        position=0,
                        payload={"index": 0, "translation": rendering.translation},
                    )
                )
                return MarkedText(
                    text=placeholder,
                    original_text=text,
                    markers=markers,
                    sfx=[rendering],
                )

        masked, hon_markers, annotations = self.honorifics.extract(text, options)
        markers.extend(hon_markers)

        if options.detect_sfx:
            masked = self._mask_embedded_sfx(masked, text, options, markers, renderings)

        return MarkedText(
            text=masked,
            original_text=text,
            markers=markers,
            honorifics=annotations,
            sfx=renderings,
        )

    def _mask_embedded_sfx(
        self,
        masked: str,
        original: str,
        options: MarkerOptions,
        markers: List[Marker],
        renderings: List[SFXRendering],
    ) -> str:
        spans = self.sfx.find_spans(masked)
        if not spans:
            return masked

        parts = []
        cursor = 0
        for index, (start, end, token) in enumerate(spans):
            rendering = self.sfx.translate(token, options)
            placeholder = SFX_PLACEHOLDER_TEMPLATE.format(index=index)
            parts.append(masked[cursor:start])
            parts.append(placeholder)
            cursor = end
            markers.append(
                Marker(
                    type=MarkerType.SFX,
                    original_span=token,
                    placeholder=placeholder,
                    position=original.find(token),
                    payload={"index": index, "translation": rendering.translation},
                )
            )
            renderings.append(rendering)
        parts.append(masked[cursor:])
        return "".join(parts)

    def restore(
        self,
        translated: str,
        marked: MarkedText,
        target_lang: str,
        source_lang: str = "ja",
    ) -> str:
        """Replace all placeholders in engine output.

        SFX placeholders get the chosen rendering (or the original span when
        translating into the source language). A placeholder the engine
        dropped is re-inserted so no span is lost; any stray placeholder left
        afterwards is stripped.
        """
        text, rendered = self.honorifics.restore(
            translated, marked.markers, target_lang, source_lang
        )
        for annotation_index, value in rendered.items():
            if annotation_index < len(marked.honorifics):
                marked.honorifics[annotation_index].rendered = value

        same_language = target_lang == source_lang
        for marker in marked.markers:
            if marker.type != MarkerType.SFX:
                continue
            value = marker.original_span if same_language else marker.payload["translation"]
            pattern = re.compile(placeholder_pattern("SFX", marker.payload["index"]), re.IGNORECASE)
            text, count = pattern.subn(lambda _m: value, text, count=1)
            if count == 0:
                logger.debug(f"[Markers] Placeholder {marker.placeholder} dropped by engine")
                text = f"{text} {value}".strip() if text.strip() else value

        leftovers = _ANY_PLACEHOLDER_RE.findall(text)
        if leftovers:
            logger.warning(f"[Markers] Removing unresolved placeholders: {leftovers}")
            text = _ANY_PLACEHOLDER_RE.sub("", text)
        return text

    def process_sfx_only(self, marked: MarkedText, target_lang: str, source_lang: str = "ja") -> str:
        """Render a bubble that is a single SFX without calling an engine."""
        return self.restore(marked.text, marked, target_lang, source_lang)
