"""Japanese SFX (giongo/gitaigo) lexicon and rendering tables."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass(frozen=True)
class SFXEntry:
    """A known sound effect with its target-language adaptations.

    Adaptations are ordered from most intense to most subtle.
    """

    text: str
    romaji: str
    category: str
    meaning: str
    intensity: int
    visual_style: str
    adaptations: Dict[str, List[str]] = field(default_factory=dict)
    emotion: str = ""

    def adaptations_for(self, target_lang: str) -> List[str]:
        return self.adaptations.get(target_lang) or self.adaptations["en"]


def _entry(text, romaji, category, meaning, intensity, style, en, es, fr, emotion=""):
    return SFXEntry(
        text=text,
        romaji=romaji,
        category=category,
        meaning=meaning,
        intensity=intensity,
        visual_style=style,
        adaptations={"en": en, "es": es, "fr": fr},
        emotion=emotion,
    )


SFX_DATABASE: Dict[str, SFXEntry] = {
    e.text: e
    for e in [
        _entry("ドン", "don", "impact", "heavy thud, impact, gunshot", 4, "bold-heavy",
               ["BAM", "BOOM", "THUD", "WHAM"], ["BUM", "PUM", "ZAS"],
               ["BOUM", "BADABOUM", "VLAN"], "violent, sudden"),
        _entry("バン", "ban", "impact", "bang, sudden impact", 3, "sharp-explosive",
               ["BANG", "POW", "CRACK"], ["PUM", "ZAS"], ["PAN", "POUM"],
               "sharp, startling"),
        _entry("ゴゴゴ", "gogogo", "atmosphere", "ominous rumbling, menacing presence", 5,
               "jagged-tense",
               ["*rumble*", "*tremble*", "RUMBLE RUMBLE", "THOOM THOOM THOOM"],
               ["*retumbar*", "BRUM BRUM"], ["*grondement*", "GROUM GROUM"],
               "ominous, threatening"),
        _entry("ドキドキ", "dokidoki", "physiological", "heartbeat, nervous excitement", 2,
               "soft-rhythmic",
               ["*thump thump*", "ba-dump ba-dump", "pitter-patter", "*heartbeat*"],
               ["*latido*", "pum-pum"], ["*battement*", "poum-poum"], "anxious, excited"),
        _entry("ガタガタ", "gatagata", "vibration", "rattling, shaking, clattering", 3,
               "jagged-tense",
               ["*rattle*", "*clatter*", "RATTLE RATTLE", "shake shake"],
               ["*traqueteo*", "cataclan"], ["*claquement*", "claquetis"],
               "fear, cold, instability"),
        _entry("ピカピカ", "pikapika", "visual-state", "sparkling, shining, gleaming", 1,
               "bright-clean",
               ["*sparkle*", "*shine*", "bling bling", "twinkle twinkle"],
               ["*brillo*", "brillante"], ["*brillant*", "scintillement"],
               "positive, admiration"),
        _entry("メラメラ", "meramera", "visual-state", "flames blazing, intense burning", 4,
               "flame-like",
               ["*crackle*", "*roar*", "CRACKLE CRACKLE", "blaze blaze"],
               ["*crepitar*", "fuego fuego"], ["*crépitement*", "flamboiement"],
               "intense, passionate"),
        _entry("ニコニコ", "nikoniko", "expression", "smiling, grinning happily", 1,
               "soft-rhythmic", ["*grin*", "*smile*", "hehe", ":)"],
               ["*sonrisa*", "jeje"], ["*sourire*", "héhé"], "happy, friendly"),
        _entry("イライラ", "iraira", "emotional-state", "irritated, annoyed, frustrated", 3,
               "jagged-tense", ["*grr*", "*annoyed*", "tch", "grumble grumble"],
               ["*irritado*", "grr"], ["*agacé*", "grr"], "irritated, tense"),
        _entry("ムカムカ", "mukamuka", "physiological", "nauseous, angry rising", 3,
               "wavy-soft", ["*queasy*", "*retch*", "ugh ugh", "urk"],
               ["*náuseas*", "ulp"], ["*nausée*", "beurk"], "sick, disgusted"),
        _entry("キラキラ", "kirakira", "visual-state", "sparkling, glittering, twinkling", 2,
               "bright-clean", ["*sparkle*", "*glitter*", "twinkle", "shimmer"],
               ["*destello*", "centelleo"], ["*scintillement*", "brillant"],
               "magical, dreamy"),
        _entry("グニャグニャ", "gunyagunya", "texture", "squishy, soft, floppy, melting", 2,
               "wavy-soft", ["*squish*", "*wobble*", "squash", "flop"],
               ["*blando*", "blandito"], ["*mou*", "flasque"], "soft, exhausted"),
        _entry("ザワザワ", "zawazawa", "atmosphere", "restless atmosphere, murmuring crowd", 3,
               "wavy-soft", ["*murmur*", "*rustle*", "murmur murmur", "buzz buzz"],
               ["*murmullo*", "zumbido"], ["*murmure*", "bourdonnement"],
               "uneasy, restless"),
        _entry("ペコペコ", "pekopeko", "action", "bowing repeatedly, hungry stomach", 2,
               "soft-rhythmic", ["*bow*", "*grovel*", "bow bow", "rumble rumble"],
               ["*reverencia*", "gruñido"], ["*courbette*", "gargouillis"],
               "submissive, hungry"),
        _entry("フワフワ", "fuwafuwa", "texture", "fluffy, light, floating, soft", 1,
               "wavy-soft", ["*fluff*", "*float*", "fluffy", "soft soft"],
               ["*suave*", "flotante"], ["*doux*", "flottant"], "soft, dreamy"),
        _entry("バタバタ", "batabata", "action", "flapping, panicking, running around", 3,
               "jagged-tense", ["*flap*", "*panic*", "flap flap", "scramble scramble"],
               ["*aletear*", "pánico"], ["*battement*", "panique"], "panic, hurried"),
        _entry("ジロジロ", "jirojiro", "action", "staring intently, glaring", 3,
               "sharp-explosive", ["*stare*", "*glare*", "stare stare", "intense look"],
               ["*mirada fija*", "mirón"], ["*regard fixe*", "fixement"],
               "uncomfortable, suspicious"),
        _entry("ウロウロ", "urouro", "action", "wandering aimlessly, loitering", 2,
               "wavy-soft", ["*wander*", "*pace*", "wander wander", "pace pace"],
               ["*deambular*", "vagar"], ["*errer*", "roder"], "lost, anxious"),
        _entry("ブルブル", "buruburu", "physiological", "shivering, trembling", 3,
               "jagged-tense", ["*shiver*", "*tremble*", "brrr", "shake shake"],
               ["*temblar*", "brrr"], ["*trembler*", "brrr"], "cold, scared"),
        _entry("ゴク", "goku", "physiological", "gulp, swallowing hard", 2,
               "soft-rhythmic", ["*gulp*", "gulp", "swallow"],
               ["*tragar*", "glup"], ["*gloups*", "déglutir"], "nervous, anticipating"),
        _entry("ニヤニヤ", "niyaniya", "expression", "grinning slyly, smirking", 2,
               "soft-rhythmic", ["*smirk*", "*grin*", "heh heh", "sly grin"],
               ["*sonrisa pícara*", "jeje"], ["*sourire en coin*", "héhé"],
               "mischievous, sly"),
        _entry("ポカポカ", "pokapoka", "atmospheric", "warm, sunny, comfortable heat", 1,
               "soft-rhythmic", ["*warm*", "*sunny*", "warm and cozy", "toasty"],
               ["*calorcito*", "soleado"], ["*douce chaleur*", "ensoleillé"],
               "comfortable, relaxed"),
        _entry("ガーン", "gaan", "emotional-impact", "shock, devastating realization", 4,
               "bold-heavy", ["*shock*", "*devastated*", "Nooo...", "WHAM (emotional)"],
               ["*shock*", "nooo"], ["*choc*", "nonnn"], "devastated, shocked"),
        _entry("パチパチ", "pachipachi", "action", "clapping, crackling, sparking", 2,
               "sharp-explosive", ["*clap*", "*crackle*", "clap clap", "spark spark"],
               ["*aplauso*", "chasquido"], ["*applaudissement*", "crépitement"],
               "energetic, electric"),
        _entry("チラチラ", "chirachira", "action", "glancing repeatedly, flickering", 2,
               "soft-rhythmic", ["*glance*", "*peek*", "peek peek", "glance glance"],
               ["*mirada rápida*", "vistazo"], ["*coup d'œil*", "regard furtif"],
               "secretive, curious"),
    ]
}


@dataclass(frozen=True)
class CulturalContext:
    preferred_style: str
    common_sfx: List[str]
    approach: str


CULTURAL_CONTEXTS: Dict[str, CulturalContext] = {
    "shonen-battle": CulturalContext(
        "bold, intense", ["ドン", "バン", "ゴゴゴ", "メラメラ", "ガーン"],
        "emphasize impact and intensity",
    ),
    "shoujo-romance": CulturalContext(
        "soft, emotional", ["ドキドキ", "キラキラ", "ニコニコ", "フワフワ", "チラチラ"],
        "preserve emotional subtlety",
    ),
    "horror": CulturalContext(
        "disturbing, atmospheric", ["ザワザワ", "ブルブル", "ジロジロ", "ガタガタ"],
        "maintain unease and tension",
    ),
    "comedy": CulturalContext(
        "exaggerated, playful", ["ペコペコ", "ニヤニヤ", "バタバタ", "グニャグニャ"],
        "amplify humor and exaggeration",
    ),
    "slice-of-life": CulturalContext(
        "subtle, realistic", ["ポカポカ", "イライラ", "ウロウロ", "パチパチ"],
        "natural, understated",
    ),
}

# Loose genre names mapped onto the cultural contexts above
GENRE_ALIASES: Dict[str, str] = {
    "shonen": "shonen-battle",
    "battle": "shonen-battle",
    "shoujo": "shoujo-romance",
    "romance": "shoujo-romance",
    "slice_of_life": "slice-of-life",
}

VISUAL_STYLES: Dict[str, Dict[str, Optional[str]]] = {
    "bold-heavy": {"font_family": "Impact, sans-serif", "font_weight": "900",
                   "text_transform": "uppercase", "letter_spacing": "0.05em"},
    "sharp-explosive": {"font_family": "Arial Black, sans-serif", "font_weight": "800",
                        "text_transform": "uppercase", "letter_spacing": "0.1em"},
    "soft-rhythmic": {"font_family": "Comic Sans MS, cursive", "font_weight": "400",
                      "text_transform": None, "letter_spacing": "0.02em"},
    "jagged-tense": {"font_family": "Impact, sans-serif", "font_weight": "700",
                     "text_transform": "uppercase", "letter_spacing": "0.08em"},
    "bright-clean": {"font_family": "Arial Rounded MT Bold, sans-serif",
                     "font_weight": "600", "text_transform": None,
                     "letter_spacing": "0.03em"},
    "flame-like": {"font_family": "Impact, sans-serif", "font_weight": "800",
                   "text_transform": "uppercase", "letter_spacing": "0.05em"},
    "wavy-soft": {"font_family": "Comic Sans MS, cursive", "font_weight": "400",
                  "text_transform": None, "letter_spacing": "0.02em"},
}

CATEGORY_COLORS: Dict[str, str] = {
    "impact": "#FF0000",
    "atmosphere": "#800080",
    "physiological": "#FF69B4",
    "emotional-state": "#FFA500",
    "visual-state": "#00BFFF",
    "action": "#FF4500",
    "texture": "#90EE90",
}

CATEGORY_SHAPES: Dict[str, str] = {
    "impact": "burst",
    "atmosphere": "cloud",
    "thought": "bubble",
    "action": "spiky",
}

KATAKANA_ROMAJI: Dict[str, str] = {
    "ア": "a", "イ": "i", "ウ": "u", "エ": "e", "オ": "o",
    "カ": "ka", "キ": "ki", "ク": "ku", "ケ": "ke", "コ": "ko",
    "サ": "sa", "シ": "shi", "ス": "su", "セ": "se", "ソ": "so",
    "タ": "ta", "チ": "chi", "ツ": "tsu", "テ": "te", "ト": "to",
    "ナ": "na", "ニ": "ni", "ヌ": "nu", "ネ": "ne", "ノ": "no",
    "ハ": "ha", "ヒ": "hi", "フ": "fu", "ヘ": "he", "ホ": "ho",
    "マ": "ma", "ミ": "mi", "ム": "mu", "メ": "me", "モ": "mo",
    "ヤ": "ya", "ユ": "yu", "ヨ": "yo",
    "ラ": "ra", "リ": "ri", "ル": "ru", "レ": "re", "ロ": "ro",
    "ワ": "wa", "ヲ": "wo", "ン": "n",
    "ガ": "ga", "ギ": "gi", "グ": "gu", "ゲ": "ge", "ゴ": "go",
    "ザ": "za", "ジ": "ji", "ズ": "zu", "ゼ": "ze", "ゾ": "zo",
    "ダ": "da", "ヂ": "ji", "ヅ": "zu", "デ": "de", "ド": "do",
    "バ": "ba", "ビ": "bi", "ブ": "bu", "ベ": "be", "ボ": "bo",
    "パ": "pa", "ピ": "pi", "プ": "pu", "ペ": "pe", "ポ": "po",
    "ャ": "ya", "ュ": "yu", "ョ": "yo",
    "ァ": "a", "ィ": "i", "ゥ": "u", "ェ": "e", "ォ": "o",
}


def to_romaji(text: str) -> str:
    """Transliterate katakana to romaji.

    Small tsu doubles the next consonant and the prolonged sound mark
    repeats the previous vowel.
    """
    out: List[str] = []
    double_next = False
    for char in text:
        if char == "ッ":
            double_next = True
            continue
        if char == "ー":
            if out and out[-1]:
                out.append(out[-1][-1])
            continue
        romaji = KATAKANA_ROMAJI.get(char, char)
        if char in "ャュョ" and out and out[-1].endswith("i") and len(out[-1]) > 1:
            stem = out.pop()[:-1]
            romaji = stem + (romaji[1:] if stem in ("sh", "ch", "j") else romaji)
        if double_next and romaji and romaji[0].isalpha():
            romaji = romaji[0] + romaji
        double_next = False
        out.append(romaji)
    if double_next:
        # Trailing small tsu marks an abrupt stop
        out.append("!")
    return "".join(out)
