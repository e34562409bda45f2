"""Text utilities shared by the cache, context and marker components.

This module provides normalisation for cache keys, the bigram similarity
measure used for fuzzy cache lookups and terminology checks, and a few
script-detection helpers for Japanese text.
"""

import re
import unicodedata
from typing import Set

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Normalize text for cache keys and similarity comparison.

    Applies NFKC (folds half-width katakana and full-width latin), trims,
    collapses whitespace and lowercases.

    Args:
        text: Raw text

    Returns:
        Normalized text
    """
    if not text:
        return ""
    text = unicodedata.normalize("NFKC", text)
    text = _WHITESPACE_RE.sub(" ", text).strip()
    return text.lower()


def bigrams(text: str) -> Set[str]:
    """Get the set of character bigrams of a string.

    Single-character strings yield a one-element set containing the
    character itself so they can still be compared.
    """
    if not text:
        return set()
    if len(text) == 1:
        return {text}
    return {text[i:i + 2] for i in range(len(text) - 1)}


def bigram_similarity(a: str, b: str) -> float:
    """Jaccard similarity of the character bigram sets of two strings.

    Args:
        a: First string (compared as given, callers normalize first)
        b: Second string

    Returns:
        Similarity in [0, 1]; identical strings score 1.0
    """
    if a == b:
        return 1.0
    set_a = bigrams(a)
    set_b = bigrams(b)
    if not set_a or not set_b:
        return 0.0
    intersection = len(set_a & set_b)
    union = len(set_a | set_b)
    return intersection / union if union else 0.0


def is_katakana(char: str) -> bool:
    """Check whether a character is katakana (including the prolonged sound mark)."""
    code = ord(char)
    return 0x30A0 <= code <= 0x30FF or 0x31F0 <= code <= 0x31FF or 0xFF66 <= code <= 0xFF9F


def is_hiragana(char: str) -> bool:
    return 0x3040 <= ord(char) <= 0x309F


def is_kanji(char: str) -> bool:
    code = ord(char)
    return 0x4E00 <= code <= 0x9FFF or 0x3400 <= code <= 0x4DBF or char == "々"


def katakana_ratio(text: str) -> float:
    """Share of non-punctuation characters in text that are katakana."""
    chars = [c for c in text if not unicodedata.category(c).startswith(("P", "Z", "S"))]
    if not chars:
        return 0.0
    return sum(1 for c in chars if is_katakana(c)) / len(chars)


def word_count(text: str) -> int:
    """Count words, treating each CJK character as a word when there are no spaces."""
    if not text:
        return 0
    words = text.split()
    if len(words) > 1:
        return len(words)
    return len([c for c in text if is_kanji(c) or is_hiragana(c) or is_katakana(c)]) or len(words)
