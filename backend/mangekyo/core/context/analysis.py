"""Lightweight narrative analysis for the context tracker.

Keyword and pattern heuristics only; nothing here calls a model.
"""

import re
from typing import Dict, Iterable, List, Optional

from mangekyo.utils.text import normalize_text

from .models import BubbleRecord, Scene

MOOD_VALUES = {"calm": 1, "neutral": 2, "tense": 3, "dramatic": 4, "action": 5, "climax": 6}
DISTANT_TIMES = {"morning", "night"}

_FORMAL_RE = re.compile(r"です|ます|でございます")
_ARCHAIC_RE = re.compile(r"である|でござる|じゃ[。！!]*$")
_CASUAL_RE = re.compile(r"(だ|だぜ|ぜ|よ|るぞ|だよ|じゃん)[!！?？…。~〜]*$")

TONE_KEYWORDS = {
    "tense": [
        "must", "need", "hurry", "danger", "run", "急げ", "逃げろ", "危ない", "まずい",
    ],
    "negative": [
        "sad", "angry", "hate", "terrible", "awful", "悲しい", "怒", "嫌", "くそ", "許さない",
    ],
    "positive": [
        "happy", "glad", "joy", "wonderful", "great", "awesome", "嬉しい", "楽しい", "やった",
    ],
}

# Allowed tone moves; anything else keeps the current tone
TONE_TRANSITIONS = {
    "neutral": {"positive", "negative", "tense"},
    "positive": {"neutral", "tense"},
    "negative": {"neutral", "tense"},
    "tense": {"negative", "neutral"},
}

_EXPRESSION_PATTERNS = [
    re.compile(r"[ハヒヘホフ]{2,}"),  # laughter
    re.compile(r"[あー]{2,}"),  # drawn-out sounds
    re.compile(r"[うお]っ"),
    re.compile(r"ニコニコ|ムカムカ|イライラ"),
]

_KANJI_TERM_RE = re.compile(r"[一-龠々〆ヵヶ]{2,}")
_KATAKANA_TERM_RE = re.compile(r"[ァ-ヴー]{3,}")
_SENTENCE_SPLIT_RE = re.compile(r"[。！？.!?]")

_CONTINUITY_PATTERNS = {
    "to_be_continued": re.compile(r"続く|つづく|to be continued", re.IGNORECASE),
    "flashback": re.compile(r"回想|過去|flashback", re.IGNORECASE),
    "narration_shift": re.compile(r"ナレーション|narration", re.IGNORECASE),
    "time_skip": re.compile(r"年後|日後|later|years? ago", re.IGNORECASE),
}


def detect_formality(text: str) -> Optional[str]:
    """Detect the speech register of a Japanese line."""
    if _FORMAL_RE.search(text):
        return "formal"
    if _ARCHAIC_RE.search(text):
        return "archaic"
    if _CASUAL_RE.search(text.strip()):
        return "casual"
    return None


def detect_tone(text: str) -> str:
    lowered = text.lower()
    for tone in ("tense", "negative", "positive"):
        if any(word in lowered for word in TONE_KEYWORDS[tone]):
            return tone
    return "neutral"


def smooth_tone(current: str, detected: str) -> str:
    """Move to the detected tone only along an allowed transition."""
    if detected in TONE_TRANSITIONS.get(current, set()):
        return detected
    return current


def mood_shift(current: Optional[str], new: Optional[str]) -> float:
    """Normalized distance between two moods on the calm..climax scale."""
    if not current or not new:
        return 0.0
    return abs(MOOD_VALUES.get(new, 2) - MOOD_VALUES.get(current, 2)) / len(MOOD_VALUES)


def is_scene_transition(
    current: Optional[Scene],
    setting: Optional[str],
    time_of_day: Optional[str],
    mood: Optional[str],
    threshold: float = 0.7,
) -> bool:
    """Decide whether page cues start a new scene.

    A scene changes when the setting changes, when time jumps between
    morning and night, or when the mood shifts by more than threshold.
    """
    if current is None:
        return True
    if setting and current.setting != setting:
        return True
    if (
        time_of_day
        and current.time_of_day != time_of_day
        and current.time_of_day in DISTANT_TIMES
        and time_of_day in DISTANT_TIMES
    ):
        return True
    if mood and current.mood and mood_shift(current.mood, mood) > threshold:
        return True
    return False


def conversation_flow(bubbles: List[BubbleRecord]) -> str:
    if len(bubbles) < 2:
        return "new"
    speakers = {b.character for b in bubbles if b.character}
    if len(speakers) <= 1:
        return "monologue"
    if len(speakers) == 2:
        return "dialogue"
    return "multi-party"


def extract_expressions(text: str) -> List[str]:
    found = []
    for pattern in _EXPRESSION_PATTERNS:
        match = pattern.search(text)
        if match:
            found.append(match.group(0))
    return found


def extract_key_phrases(text: str) -> List[str]:
    """Sentences of useful length, for translation memory."""
    phrases = []
    for sentence in _SENTENCE_SPLIT_RE.split(text):
        sentence = sentence.strip()
        if 5 < len(sentence) < 50:
            phrases.append(sentence)
    return phrases


def extract_terms(text: str) -> List[str]:
    """Candidate glossary terms: kanji compounds and katakana words."""
    terms = _KANJI_TERM_RE.findall(text) + _KATAKANA_TERM_RE.findall(text)
    seen = []
    for term in terms:
        normalized = normalize_term(term)
        if normalized not in seen:
            seen.append(normalized)
    return seen


def categorize_term(term: str, character: Optional[str] = None) -> str:
    if character:
        return "character-speech"
    if _KANJI_TERM_RE.fullmatch(term):
        return "proper-noun"
    if _KATAKANA_TERM_RE.fullmatch(term):
        return "foreign-term"
    return "general"


def normalize_term(term: str) -> str:
    return re.sub(r"[^\w\s]", "", normalize_text(term)).strip()


def continuity_markers(texts: Iterable[str]) -> Dict[str, bool]:
    full = " ".join(texts)
    return {name: bool(pattern.search(full)) for name, pattern in _CONTINUITY_PATTERNS.items()}
