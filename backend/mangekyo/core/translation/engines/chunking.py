"""Splitting of over-long text at sentence boundaries.

Chunking runs after marker extraction. Placeholders contain no whitespace or
sentence punctuation, so they are never split across chunks.
"""

import re
from typing import List

from ..errors import EngineError, ErrorKind

_SENTENCE_RE = re.compile(r"[^。！？.!?]+[。！？.!?]+[」』\"')\]]*\s*|[^。！？.!?]+$")
_CLAUSE_RE = re.compile(r"[^、，,]+[、，,]\s*|[^、，,]+$")
_PLACEHOLDER_RE = re.compile(r"__(?:HON|SFX)_\d+__")

UNSPACED_LANGUAGES = frozenset({"ja", "zh", "th"})


def chunk_joiner(target_lang: str) -> str:
    """Separator used when concatenating translated chunks."""
    return "" if target_lang.split("-")[0].lower() in UNSPACED_LANGUAGES else " "


def split_sentences(text: str) -> List[str]:
    return [s for s in _SENTENCE_RE.findall(text) if s.strip()]


def _split_words(piece: str, max_length: int) -> List[str]:
    """Split a single over-long sentence on whitespace, or hard-cut CJK text."""
    if " " in piece.strip():
        words = piece.split(" ")
        chunks: List[str] = []
        current = ""
        for word in words:
            if len(word) > max_length:
                raise EngineError(
                    f"Word of {len(word)} characters exceeds limit {max_length}",
                    ErrorKind.TEXT_TOO_LONG,
                )
            candidate = f"{current} {word}" if current else word
            if len(candidate) > max_length:
                chunks.append(current)
                current = word
            else:
                current = candidate
        if current:
            chunks.append(current)
        # Keep the separator so packed pieces stay apart
        return [c + " " for c in chunks[:-1]] + chunks[-1:]

    # Unspaced script: cut on character boundaries, never inside a placeholder
    chunks = []
    start = 0
    while start < len(piece):
        end = min(start + max_length, len(piece))
        for match in _PLACEHOLDER_RE.finditer(piece, max(start, end - 16), min(len(piece), end + 16)):
            if match.start() < end < match.end():
                end = match.start()
        if end <= start:
            raise EngineError(
                f"Unsplittable segment exceeds limit {max_length}", ErrorKind.TEXT_TOO_LONG
            )
        chunks.append(piece[start:end])
        start = end
    return chunks


def split_into_chunks(text: str, max_length: int) -> List[str]:
    """Split text into chunks of at most max_length characters.

    Sentences are packed greedily; a sentence that is too long on its own is
    split at clause boundaries, then at word boundaries.

    Raises:
        EngineError: TEXT_TOO_LONG if a single word exceeds max_length
    """
    if len(text) <= max_length:
        return [text]

    pieces: List[str] = []
    for sentence in split_sentences(text):
        if len(sentence) <= max_length:
            pieces.append(sentence)
            continue
        for clause in _CLAUSE_RE.findall(sentence):
            if len(clause) <= max_length:
                pieces.append(clause)
            else:
                pieces.extend(_split_words(clause, max_length))

    chunks: List[str] = []
    current = ""
    for piece in pieces:
        if len(current) + len(piece) > max_length and current:
            chunks.append(current)
            current = piece
        else:
            current += piece
    if current:
        chunks.append(current)
    return [c.strip() for c in chunks if c.strip()]
