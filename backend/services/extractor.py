"""
Keyword / pattern extractor: the string-matching front half of classification.

Everything is a case-insensitive substring check against a fixed rule table,
so each row can be tested on its own and new rows can be added without
touching the engine. Pure functions, no I/O, no randomness.
"""

import re
from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class KeywordRule:
    """Emit `keyword` when any trigger is present (and any `requires` term, if set)."""

    keyword: str
    triggers: Tuple[str, ...]
    requires: Tuple[str, ...] = ()

    def matches(self, text: str) -> bool:
        if not any(t in text for t in self.triggers):
            return False
        return not self.requires or any(r in text for r in self.requires)


# Detection order matters: the engine takes the FIRST keyword as the base
# classification. Fire rules lead so a fire report stays a fire report even
# when the caller also says "help"; the generic distress rules come last.
KEYWORD_RULES: Tuple[KeywordRule, ...] = (
    # Fire
    KeywordRule("FIRE", ("fire", "burning")),
    KeywordRule("SMOKE", ("smoke", "smoking")),
    KeywordRule("EXPLOSION", ("explosion", "exploded")),
    KeywordRule("GAS_LEAK", ("gas leak", "gas smell")),
    # Medical
    KeywordRule("CARDIAC", ("chest pain", "heart attack")),
    KeywordRule("STROKE", ("stroke", "paralyzed")),
    KeywordRule("MEDICAL", ("unconscious", "not breathing")),
    KeywordRule("OVERDOSE", ("overdose", "drug")),
    KeywordRule("TRAUMA", ("bleeding", "injured")),
    # Police, critical
    KeywordRule("ROBBERY", ("robbery", "robbed", "got robbed")),
    KeywordRule("ASSAULT", ("assault", "attacked")),
    KeywordRule("ASSAULT", ("raping", "rape", "sexual assault")),
    KeywordRule("SHOOTING", ("shooting", "shot", "gun", "chasing", "tires")),
    KeywordRule("STABBING", ("stabbing", "stabbed")),
    KeywordRule("DOMESTIC", ("domestic", "family")),
    KeywordRule("SUICIDE", ("suicide", "kill myself")),
    KeywordRule("HOSTAGE", ("hostage", "kidnapped")),
    KeywordRule("BOMB", ("bomb", "explosive")),
    # Medium / low
    KeywordRule("ACCIDENT", ("accident", "crash")),
    KeywordRule("THEFT", ("stolen", "theft")),
    KeywordRule("NOISE", ("noise", "loud")),
    KeywordRule("ANIMAL_EMERGENCY", ("dog", "animal", "pet"), requires=("eaten", "attacked", "hurt")),
    # Generic distress
    KeywordRule("MEDICAL", ("dying", "help")),
    KeywordRule("EMERGENCY", ("help", "emergency")),
)

# Tags only ever produced by the special-case overrides below.
SPECIAL_CASE_TAGS = ("NOSE_BLEED", "PIZZA", "CAT_TREE", "POSSIBLE_PRANK")

KEYWORDS = tuple(dict.fromkeys(r.keyword for r in KEYWORD_RULES)) + SPECIAL_CASE_TAGS

IMMEDIATE_WORDS = (
    "emergency", "urgent", "immediately", "now", "help", "dying", "critical",
    "robbery", "robbed", "raping", "rape", "assault", "shooting", "stabbing",
    "fire", "burning", "smoke", "explosion", "hostage", "bomb", "suicide",
    "unconscious", "not breathing", "bleeding", "heart attack", "stroke",
)
URGENT_WORDS = ("asap", "quickly", "soon", "important", "serious", "injured", "hurt")
ROUTINE_WORDS = ("when you can", "not urgent", "routine", "later", "noise", "loud")

LOCATION_WORDS = {
    "residential": ("house", "home", "apartment"),
    "commercial": ("store", "business", "office"),
    "public": ("street", "park", "school"),
    "vehicle": ("car", "vehicle", "highway"),
}


@dataclass(frozen=True)
class UrgencyIndicators:
    immediate: int = 0
    urgent: int = 0
    routine: int = 0

    @property
    def score(self) -> int:
        return self.immediate * 3 + self.urgent * 2 - self.routine

    def to_dict(self) -> dict:
        return {"immediate": self.immediate, "urgent": self.urgent, "routine": self.routine}


@dataclass(frozen=True)
class LocationContext:
    """Non-exclusive: a call can be both residential and vehicle."""

    residential: bool = False
    commercial: bool = False
    public: bool = False
    vehicle: bool = False

    def to_dict(self) -> dict:
        return {
            "residential": self.residential,
            "commercial": self.commercial,
            "public": self.public,
            "vehicle": self.vehicle,
        }


@dataclass(frozen=True)
class SpecialCase:
    """A canned non-emergency verdict that short-circuits the engine."""

    name: str
    category: str
    priority: str
    confidence: int
    code: str
    keywords: Tuple[str, ...]
    note: str


NOSE_BLEED = SpecialCase(
    "nose_bleed", "Medical", "Low", 25, "P3", ("NOSE_BLEED",),
    "Nose bleed - Low priority medical call",
)
PIZZA = SpecialCase(
    "pizza", "Police", "Low", 15, "P4", ("PIZZA", "POSSIBLE_PRANK"),
    "Pizza mentioned - Possible prank call",
)
CAT_TREE = SpecialCase(
    "cat_tree", "Fire", "Low", 10, "P4", ("CAT_TREE", "POSSIBLE_PRANK"),
    "Cat in tree - Possible prank call",
)

_NOSE_BLEED_PHRASES = ("nose bleed", "nosebleed", "nose bleeding")
_PIZZA_RE = re.compile(r"\bpizzas?\b")
_CAT_RE = re.compile(r"\bcats?\b")
_TREE_RE = re.compile(r"\btrees?\b")


def _lower(text: Optional[str]) -> str:
    return (text or "").lower()


def check_special_case(text: str) -> Optional[SpecialCase]:
    """
    Return the canned verdict for a probable non-emergency, or None.
    Checked before keyword extraction. "cat"/"tree"/"pizza" are matched as
    whole words so "location on Main Street" does not read as a cat in a tree.
    """
    lower = _lower(text)
    if any(p in lower for p in _NOSE_BLEED_PHRASES):
        return NOSE_BLEED
    if _PIZZA_RE.search(lower):
        return PIZZA
    if _CAT_RE.search(lower) and _TREE_RE.search(lower):
        return CAT_TREE
    return None


def extract_keywords(text: str) -> Tuple[str, ...]:
    """Keywords in detection (rule-table) order, each at most once."""
    lower = _lower(text)
    found = [rule.keyword for rule in KEYWORD_RULES if rule.matches(lower)]
    return tuple(dict.fromkeys(found))


def _count(text: str, words: Tuple[str, ...]) -> int:
    return sum(1 for w in words if w in text)


def detect_urgency(text: str) -> UrgencyIndicators:
    lower = _lower(text)
    return UrgencyIndicators(
        immediate=_count(lower, IMMEDIATE_WORDS),
        urgent=_count(lower, URGENT_WORDS),
        routine=_count(lower, ROUTINE_WORDS),
    )


def extract_location_context(text: str) -> LocationContext:
    lower = _lower(text)
    return LocationContext(**{
        kind: any(w in lower for w in words) for kind, words in LOCATION_WORDS.items()
    })
