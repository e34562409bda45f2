"""Utility modules for the mangekyo backend."""

from .text import (
    bigram_similarity,
    katakana_ratio,
    normalize_text,
)

__all__ = [
    "bigram_similarity",
    "katakana_ratio",
    "normalize_text",
]
