"""Japanese honorific lexicon.

Each entry carries a formality level (1 = intimate, 5 = highly formal), a
category and an adaptation function that renders the honorific in English
given the (already translated) name, the speaker relationship and the scene.
"""

import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

AdaptFn = Callable[[str, Optional[str], Optional[str]], str]


@dataclass(frozen=True)
class HonorificEntry:
    """A lexicon entry for one honorific suffix or familial term."""

    text: str
    romaji: str
    formality: int
    category: str
    adapt: AdaptFn
    # Familial terms may appear without a name ("お兄ちゃん")
    standalone: bool = False
    standalone_en: Optional[str] = None

    @property
    def is_familial(self) -> bool:
        return self.category == "familial"


def _name_only(name: str, relationship: Optional[str], scene: Optional[str]) -> str:
    return name


def _adapt_chan(name: str, relationship: Optional[str], scene: Optional[str]) -> str:
    if relationship == "sibling-close":
        return f"Li'l {name}"
    if relationship == "romantic":
        return f"{name} dear"
    return name


def _adapt_sama(name: str, relationship: Optional[str], scene: Optional[str]) -> str:
    if relationship == "master-servant":
        return f"Master {name}"
    return f"{name}-sama"


def _adapt_sensei(name: str, relationship: Optional[str], scene: Optional[str]) -> str:
    if relationship == "doctor":
        return f"Dr. {name}"
    if relationship == "teacher" or scene == "school":
        return f"Teacher {name}"
    if relationship == "master":
        return f"Master {name}"
    return f"{name}-sensei"


def _prefix(title: str) -> AdaptFn:
    def adapt(name: str, relationship: Optional[str], scene: Optional[str]) -> str:
        return f"{title} {name}" if name else title

    return adapt


def _suffix(romaji: str) -> AdaptFn:
    def adapt(name: str, relationship: Optional[str], scene: Optional[str]) -> str:
        return f"{name}-{romaji}" if name else romaji

    return adapt


def _familial(family_title: str, friend_suffix: str) -> AdaptFn:
    def adapt(name: str, relationship: Optional[str], scene: Optional[str]) -> str:
        if relationship == "actual-family":
            return f"{family_title} {name}".strip()
        if relationship == "close-friend":
            return f"{name}-{friend_suffix}" if name else friend_suffix
        return name or family_title

    return adapt


HONORIFICS: Dict[str, HonorificEntry] = {
    entry.text: entry
    for entry in [
        HonorificEntry("さん", "san", 3, "neutral", _name_only),
        HonorificEntry("君", "kun", 2, "casual", _name_only),
        HonorificEntry("くん", "kun", 2, "casual", _name_only),
        HonorificEntry("ちゃん", "chan", 1, "affectionate", _adapt_chan),
        HonorificEntry("様", "sama", 5, "respectful", _adapt_sama),
        HonorificEntry("さま", "sama", 5, "respectful", _adapt_sama),
        HonorificEntry("殿", "dono", 4, "formal", _prefix("Lord")),
        HonorificEntry("先生", "sensei", 4, "academic", _adapt_sensei),
        HonorificEntry("先輩", "senpai", 3, "hierarchical", _prefix("Senpai")),
        HonorificEntry("後輩", "kouhai", 2, "hierarchical", _suffix("kouhai")),
        HonorificEntry("教授", "kyouju", 5, "academic", _prefix("Professor")),
        HonorificEntry("社長", "shachou", 4, "business", _prefix("President")),
        HonorificEntry(
            "お兄さん", "onii-san", 2, "familial",
            _familial("Big Bro", "bro"), standalone=True, standalone_en="big brother",
        ),
        HonorificEntry(
            "お兄ちゃん", "onii-chan", 1, "familial",
            _familial("Big Bro", "bro"), standalone=True, standalone_en="big bro",
        ),
        HonorificEntry(
            "お姉さん", "onee-san", 2, "familial",
            _familial("Big Sis", "sis"), standalone=True, standalone_en="big sister",
        ),
        HonorificEntry(
            "お姉ちゃん", "onee-chan", 1, "familial",
            _familial("Big Sis", "sis"), standalone=True, standalone_en="big sis",
        ),
    ]
}

# Words that take さん/様 but are not names
NON_NAMES = frozenset({"皆", "母", "父", "兄", "姉", "奥", "お客", "神"})

SCENE_PATTERNS: Dict[str, re.Pattern] = {
    "business": re.compile(r"会社|仕事|会議|取引|ビジネス|office|business|work", re.I),
    "school": re.compile(r"学校|生徒|教室|授業|school|class|student", re.I),
    "fantasy": re.compile(r"魔王|勇者|魔法|剣|城|dungeon|dragon|magic|sword", re.I),
    "historical": re.compile(r"侍|武士|江戸|幕府|samurai|edo|shogun", re.I),
    "modern": re.compile(r"現代|東京|都会|city|modern|tokyo", re.I),
    "romance": re.compile(r"恋|愛|デート|キス|love|date|kiss|romance", re.I),
    "action": re.compile(r"戦い|バトル|勝負|fight|battle|combat", re.I),
}

_NAME_CHARS = r"一-鿿㐀-䶿々ァ-ヺー"
_SUFFIXES: List[str] = sorted(
    (text for text, entry in HONORIFICS.items() if not entry.standalone),
    key=len,
    reverse=True,
)
_STANDALONE: List[str] = sorted(
    (text for text, entry in HONORIFICS.items() if entry.standalone),
    key=len,
    reverse=True,
)

# NAME + SUFFIX; kanji suffixes must not run on into another kanji word
NAME_HONORIFIC_RE = re.compile(
    rf"([{_NAME_CHARS}]+?)({'|'.join(map(re.escape, _SUFFIXES))})(?![一-鿿])"
)
FAMILIAL_RE = re.compile(
    rf"([{_NAME_CHARS}]*)({'|'.join(map(re.escape, _STANDALONE))})"
)

LATIN_SCRIPT_LANGUAGES = frozenset(
    {"en", "es", "pt", "fr", "de", "it", "nl", "pl", "sv", "id", "vi", "tr"}
)


def detect_scene(text: str) -> Optional[str]:
    """Detect the scene type of a bubble from keyword patterns."""
    for scene, pattern in SCENE_PATTERNS.items():
        if pattern.search(text or ""):
            return scene
    return None
