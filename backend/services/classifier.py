"""
Incident classification engine.

Maps free-text transcript content to a structured IncidentAssessment:
category, priority, severity, confidence, standardized code, top keywords,
suggested response units and a response-time target.

Pipeline for one call to classify():
  1. Lower-case the transcript.
  2. Special-case overrides (nosebleed, pizza, cat in a tree) return a canned
     low-priority verdict immediately.
  3. Keyword extraction, urgency counters, location context.
  4. Base classification from the FIRST keyword's standardized entry.
  5. Severity synthesized from priority.
  6. Urgency escalation, then 7. location escalation.
  8. Multi-category detection (never changes category / priority / severity).
  9. Routing + response-time target from the final (category, priority, severity).
 10. Keywords truncated to the top 3.

Deterministic, synchronous, no I/O, total over any string. The only state is
the read-only ReferenceData handed to the engine at construction.
"""

import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional, Tuple

from services.extractor import (
    SpecialCase,
    check_special_case,
    detect_urgency,
    extract_keywords,
    extract_location_context,
)
from services.reference_data import (
    ReferenceData,
    ReferenceEntry,
    ResponseTimeTarget,
    load_reference_data,
    severity_for_priority,
)

MAX_KEYWORDS = 3

KEYWORD_CONFIDENCE = 85
DEFAULT_CONFIDENCE = 60
CONFIDENCE_CAP = 95
URGENT_CONFIDENCE_CAP = 90


@dataclass(frozen=True)
class IncidentAssessment:
    """Output of one classification. Never mutated; re-classify for updates."""

    category: str
    priority: str
    severity: int
    confidence: int
    standardized_code: str
    keywords: Tuple[str, ...] = ()
    routing: Tuple[str, ...] = ()
    response_time_target: ResponseTimeTarget = field(default_factory=lambda: ResponseTimeTarget(60, 120))
    categories: Optional[Tuple[str, ...]] = None
    primary_category: Optional[str] = None
    secondary_categories: Optional[Tuple[str, ...]] = None
    urgency_score: int = 0
    data_source: str = "Default"
    call_type: Optional[str] = None
    special_note: Optional[str] = None
    probable_non_emergency: bool = False

    @property
    def is_multi_category(self) -> bool:
        return bool(self.categories)

    def to_dict(self) -> dict:
        """JSON shape consumed by the dashboard and the export formats."""
        out = {
            "category": self.category,
            "priority": self.priority,
            "severity": self.severity,
            "confidence": self.confidence,
            "standardizedCode": self.standardized_code,
            "keywords": list(self.keywords),
            "routing": list(self.routing),
            "responseTimeTarget": self.response_time_target.to_dict(),
            "urgencyScore": self.urgency_score,
            "dataSource": self.data_source,
        }
        if self.categories:
            out["categories"] = list(self.categories)
            out["primaryCategory"] = self.primary_category
            out["secondaryCategories"] = list(self.secondary_categories or ())
        if self.call_type:
            out["callType"] = self.call_type
        if self.special_note:
            out["specialNote"] = self.special_note
            out["probableNonEmergency"] = self.probable_non_emergency
        return out


# =============================================================================
# Multi-category detection
# =============================================================================

@dataclass(frozen=True)
class MultiCategoryRule:
    """Fires when every term group has at least one term present."""

    name: str
    groups: Tuple[Tuple[str, ...], ...]
    categories: Tuple[str, ...]

    def matches(self, text: str) -> bool:
        return all(any(term in text for term in group) for group in self.groups)


@dataclass(frozen=True)
class MultiCategory:
    categories: Tuple[str, ...]
    primary_category: str
    secondary_categories: Tuple[str, ...]


INJURY_TERMS = ("hurt", "injured", "casualties", "medical")

MULTI_CATEGORY_RULES: Tuple[MultiCategoryRule, ...] = (
    MultiCategoryRule(
        "fire_medical",
        (("fire", "explosion", "smoke"), INJURY_TERMS),
        ("Fire", "Medical"),
    ),
    MultiCategoryRule(
        "police_medical",
        (("shooting", "assault", "robbery", "fight"), ("hurt", "injured", "bleeding", "unconscious")),
        ("Police", "Medical"),
    ),
    MultiCategoryRule(
        "fire_police",
        (("fire", "arson", "suspicious"), ("suspect", "criminal", "intentional", "arson")),
        ("Fire", "Police"),
    ),
    MultiCategoryRule(
        "fire_medical_police",
        (("explosion", "bomb"), ("hurt", "injured"), ("suspect", "terrorist", "criminal")),
        ("Fire", "Medical", "Police"),
    ),
)


def detect_multi_category(text: str) -> Optional[MultiCategory]:
    """
    Run every rule; categories accumulate in first-seen order without duplicates.
    Returns None unless at least two distinct categories were found.
    """
    lower = (text or "").lower()
    found: List[str] = []
    for rule in MULTI_CATEGORY_RULES:
        if rule.matches(lower):
            found.extend(rule.categories)
    categories = tuple(dict.fromkeys(found))
    if len(categories) < 2:
        return None
    return MultiCategory(categories, categories[0], categories[1:])


def align_multi_category(multi: MultiCategory, category: str) -> MultiCategory:
    """Reorder so the engine's own category leads (primary == category)."""
    categories = (category,) + tuple(c for c in multi.categories if c != category)
    return MultiCategory(categories, category, categories[1:])


# =============================================================================
# Routing
# =============================================================================

def generate_routing(category: str, priority: str, severity: int) -> Tuple[str, ...]:
    """Response units, append-only in a fixed order per category."""
    routing: List[str] = []
    if category == "Police":
        routing.append("Police Patrol")
        if priority == "High":
            routing.append("Detective")
            if severity == 1:
                routing.append("SWAT Team")
    elif category == "Fire":
        routing.extend(["Fire Engine", "Ambulance"])
        if priority == "High":
            routing.append("Fire Chief")
            if severity == 1:
                routing.append("Hazmat Unit")
    elif category == "Medical":
        routing.extend(["EMS", "Ambulance"])
        if priority == "High":
            routing.append("Medical Supervisor")
            if severity == 1:
                routing.append("Trauma Team")
    return tuple(routing)


# =============================================================================
# Regional call-type match (informational)
# =============================================================================

@dataclass(frozen=True)
class RegionalMatch:
    source: str              # "NYC 911" / "Seattle 911"
    entry: ReferenceEntry


def _word_present(word: str, text: str) -> bool:
    return re.search(rf"\b{re.escape(word)}\b", text) is not None


def match_regional_call_type(text: str, reference: ReferenceData) -> Optional[RegionalMatch]:
    """First NYC call type whose keywords appear, else first Seattle call type."""
    lower = (text or "").lower()
    for code, words in reference.nyc_keywords.items():
        if any(_word_present(w, lower) for w in words):
            return RegionalMatch("NYC 911", reference.call_type(code))
    for entry in reference.seattle_call_types.values():
        words = reference.seattle_keywords.get(entry.description, ())
        if any(_word_present(w, lower) for w in words):
            return RegionalMatch("Seattle 911", entry)
    return None


# =============================================================================
# Engine
# =============================================================================

class ClassificationEngine:
    """Stateless apart from the shared, read-only reference tables."""

    def __init__(self, reference: Optional[ReferenceData] = None):
        self.reference = reference or load_reference_data()

    def classify(self, transcript: str) -> IncidentAssessment:
        lower = (transcript or "").lower()

        special = check_special_case(lower)
        if special is not None:
            return self._special_case_assessment(special)

        keywords = extract_keywords(lower)
        urgency = detect_urgency(lower)
        location = extract_location_context(lower)

        # Base classification from the first detected keyword.
        if keywords:
            entry = self.reference.standardized(keywords[0])
            category, priority, code = entry.category, entry.priority, entry.code
            confidence = KEYWORD_CONFIDENCE
        else:
            default = self.reference.standardized(None)
            category, priority, code = default.category, default.priority, default.code
            confidence = DEFAULT_CONFIDENCE
        severity = severity_for_priority(priority)

        # Urgency escalation.
        if urgency.immediate > 0:
            priority, severity = "High", 1
            confidence = min(confidence + 10, CONFIDENCE_CAP)
        elif urgency.urgent > 0:
            if priority == "Low":
                priority = "Medium"
            severity = min(severity, 3)
            confidence = min(confidence + 5, URGENT_CONFIDENCE_CAP)

        # Location escalation.
        if location.residential and category == "Police" and priority == "Low":
            priority = "Medium"
            severity = min(severity, 4)
        if location.public and category in ("Fire", "Medical"):
            priority, severity = "High", 1

        multi = detect_multi_category(lower)
        if multi is not None:
            multi = align_multi_category(multi, category)

        regional = match_regional_call_type(lower, self.reference)
        if regional is not None:
            data_source, call_type = f"{regional.source} ({regional.entry.code})", regional.entry.code
        else:
            data_source, call_type = ("Keyword Analysis" if keywords else "Default"), None

        return IncidentAssessment(
            category=category,
            priority=priority,
            severity=severity,
            confidence=confidence,
            standardized_code=code,
            keywords=keywords[:MAX_KEYWORDS],
            routing=generate_routing(category, priority, severity),
            response_time_target=self.reference.response_time(category, priority),
            categories=multi.categories if multi else None,
            primary_category=multi.primary_category if multi else None,
            secondary_categories=multi.secondary_categories if multi else None,
            urgency_score=urgency.score,
            data_source=data_source,
            call_type=call_type,
        )

    def _special_case_assessment(self, special: SpecialCase) -> IncidentAssessment:
        severity = severity_for_priority(special.priority)
        return IncidentAssessment(
            category=special.category,
            priority=special.priority,
            severity=severity,
            confidence=special.confidence,
            standardized_code=special.code,
            keywords=special.keywords[:MAX_KEYWORDS],
            routing=generate_routing(special.category, special.priority, severity),
            response_time_target=self.reference.response_time(special.category, special.priority),
            data_source="Special Case",
            special_note=special.note,
            probable_non_emergency=True,
        )


@lru_cache(maxsize=1)
def default_engine() -> ClassificationEngine:
    return ClassificationEngine(load_reference_data())


def classify(transcript: str) -> IncidentAssessment:
    """Classify with the shared default engine."""
    return default_engine().classify(transcript)
