"""
Reference dataset: static call-type tables used by the classification engine.

Two regional taxonomies (NYC and Seattle 911 call types), the standardized
keyword → code table (NENA-style E / P1 / P2 codes), and the response-time
matrix. Everything here is read-only: tables are wrapped in MappingProxyType
and bundled into a frozen ReferenceData that the engine receives by reference.
Lookups never raise; a miss returns the table's default entry.
"""

from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

CATEGORIES = ("Police", "Fire", "Medical")
PRIORITIES = ("High", "Medium", "Low")


@dataclass(frozen=True)
class ReferenceEntry:
    """One regional call type (NYC or Seattle)."""

    code: str
    category: str        # Police / Fire / Medical
    priority: str        # High / Medium / Low
    severity: int        # 1 (most urgent) .. 6
    description: str


@dataclass(frozen=True)
class StandardizedEntry:
    """Keyword → category / priority / standardized code."""

    keyword: str
    category: str
    priority: str
    code: str


@dataclass(frozen=True)
class ResponseTimeTarget:
    target_minutes: int
    max_minutes: int
    units: str = "minutes"

    def to_dict(self) -> dict:
        return {
            "targetMinutes": self.target_minutes,
            "maxMinutes": self.max_minutes,
            "units": self.units,
        }


@dataclass(frozen=True)
class SeverityLevel:
    priority: str
    response_time: str
    description: str


@dataclass(frozen=True)
class CodeStandard:
    description: str
    response_time: str


# -----------------------------------------------------------------------------
# NYC 911 call types (initial_call_type / initial_severity_level_code)
# -----------------------------------------------------------------------------

_NYC_CALL_TYPES = (
    # High (severity 1-2)
    ReferenceEntry("RESPFC", "Fire", "High", 2, "Respiratory Fire Call"),
    ReferenceEntry("DIFFFC", "Fire", "High", 2, "Difficulty Breathing Fire Call"),
    ReferenceEntry("INJURY", "Medical", "High", 1, "Injury"),
    ReferenceEntry("UNC", "Medical", "High", 2, "Unconscious"),
    ReferenceEntry("CVAC", "Medical", "High", 2, "Cardiac/Vascular"),
    # Medium (severity 3-4)
    ReferenceEntry("DRUG", "Police", "Medium", 4, "Drug Related"),
    ReferenceEntry("UNKNOW", "Police", "Medium", 4, "Unknown"),
    ReferenceEntry("SICK", "Medical", "Medium", 4, "Sick Person"),
    # Low (severity 5-6)
    ReferenceEntry("PASSING", "Police", "Low", 6, "Passing Call"),
    ReferenceEntry("ALARM", "Police", "Low", 5, "Alarm"),
)

_NYC_SEVERITY_LEVELS = {
    1: SeverityLevel("High", "Immediate", "Life-threatening emergency"),
    2: SeverityLevel("High", "Immediate", "Serious emergency"),
    3: SeverityLevel("Medium", "15 minutes", "Urgent but not life-threatening"),
    4: SeverityLevel("Medium", "30 minutes", "Standard response"),
    5: SeverityLevel("Low", "1 hour", "Non-urgent"),
    6: SeverityLevel("Low", "2 hours", "Routine"),
}

# Words in a transcript that point at an NYC call type.
_NYC_CALL_TYPE_KEYWORDS = {
    "RESPFC": ("breathing", "respiratory", "choking"),
    "DIFFFC": ("difficulty", "breathing", "shortness"),
    "INJURY": ("injured", "hurt", "wounded", "bleeding"),
    "UNC": ("unconscious", "passed out", "not responding"),
    "CVAC": ("chest", "heart", "cardiac"),
    "DRUG": ("drug", "overdose", "high", "intoxicated"),
    "SICK": ("sick", "ill", "fever", "nausea"),
}

# -----------------------------------------------------------------------------
# Seattle 911 call types
# -----------------------------------------------------------------------------

_SEATTLE_CALL_TYPES = (
    ReferenceEntry("219", "Police", "High", 1, "STABBING"),
    ReferenceEntry("240", "Police", "High", 1, "ASSAULT / BATTERY"),
    ReferenceEntry("100A", "Police", "High", 2, "AUDIBLE ALARM"),
    ReferenceEntry("851", "Police", "Medium", 3, "STOLEN VEHICLE"),
    ReferenceEntry("106J", "Police", "Medium", 3, "Psych escort"),
    ReferenceEntry("585", "Police", "Medium", 4, "TRAFFIC STOP"),
    ReferenceEntry("903", "Police", "Low", 6, "PASSING CALL"),
)

_SEATTLE_DESCRIPTION_KEYWORDS = {
    "STABBING": ("stab", "stabbed", "knife", "cut"),
    "ASSAULT / BATTERY": ("assault", "battery", "attacked", "hit"),
    "AUDIBLE ALARM": ("alarm", "beeping"),
    "STOLEN VEHICLE": ("stolen", "car", "vehicle", "theft"),
    "PASSING CALL": ("passing", "routine", "check"),
}

# -----------------------------------------------------------------------------
# Standardized (NENA-style) keyword codes
# -----------------------------------------------------------------------------

_STANDARDIZED_CODES = (
    # Medical
    StandardizedEntry("MEDICAL", "Medical", "High", "E"),
    StandardizedEntry("CARDIAC", "Medical", "High", "E"),
    StandardizedEntry("STROKE", "Medical", "High", "E"),
    StandardizedEntry("TRAUMA", "Medical", "High", "E"),
    StandardizedEntry("OVERDOSE", "Medical", "High", "E"),
    # Fire
    StandardizedEntry("FIRE", "Fire", "High", "E"),
    StandardizedEntry("SMOKE", "Fire", "High", "E"),
    StandardizedEntry("EXPLOSION", "Fire", "High", "E"),
    StandardizedEntry("GAS_LEAK", "Fire", "High", "E"),
    # Police, critical
    StandardizedEntry("ROBBERY", "Police", "High", "E"),
    StandardizedEntry("ASSAULT", "Police", "High", "E"),
    StandardizedEntry("SHOOTING", "Police", "High", "E"),
    StandardizedEntry("STABBING", "Police", "High", "E"),
    StandardizedEntry("DOMESTIC", "Police", "High", "E"),
    StandardizedEntry("SUICIDE", "Police", "High", "E"),
    StandardizedEntry("HOSTAGE", "Police", "High", "E"),
    StandardizedEntry("BOMB", "Police", "High", "E"),
    StandardizedEntry("EMERGENCY", "Police", "High", "E"),
    StandardizedEntry("ANIMAL_EMERGENCY", "Police", "High", "E"),
    # Medium
    StandardizedEntry("BURGLARY", "Police", "Medium", "P1"),
    StandardizedEntry("ACCIDENT", "Police", "Medium", "P1"),
    StandardizedEntry("HIT_RUN", "Police", "Medium", "P1"),
    StandardizedEntry("DUI", "Police", "Medium", "P1"),
    # Low
    StandardizedEntry("NOISE", "Police", "Low", "P2"),
    StandardizedEntry("THEFT", "Police", "Low", "P2"),
    StandardizedEntry("VANDALISM", "Police", "Low", "P2"),
)

DEFAULT_STANDARDIZED = StandardizedEntry("DEFAULT", "Police", "Low", "P2")
DEFAULT_CALL_TYPE = ReferenceEntry("UNKNOW", "Police", "Medium", 4, "Unknown")

_CODE_STANDARDS = {
    "E": CodeStandard("Emergency", "Immediate"),
    "P1": CodeStandard("Priority 1", "15 minutes"),
    "P2": CodeStandard("Priority 2", "1 hour"),
    "P3": CodeStandard("Priority 3", "Non-emergency"),
    "P4": CodeStandard("Priority 4", "Possible prank"),
}

_PRIORITY_CODES = {"High": "E", "Medium": "P1", "Low": "P2"}

# target / max minutes, by priority then category
_RESPONSE_TIME_TARGETS = {
    "High": {
        "Police": ResponseTimeTarget(7, 15),
        "Fire": ResponseTimeTarget(5, 10),
        "Medical": ResponseTimeTarget(4, 8),
    },
    "Medium": {
        "Police": ResponseTimeTarget(15, 30),
        "Fire": ResponseTimeTarget(10, 20),
        "Medical": ResponseTimeTarget(8, 15),
    },
    "Low": {
        "Police": ResponseTimeTarget(60, 120),
        "Fire": ResponseTimeTarget(30, 60),
        "Medical": ResponseTimeTarget(20, 40),
    },
}


def _frozen(mapping: dict) -> Mapping:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class ReferenceData:
    """Immutable bundle of every reference table. Build once, share freely."""

    nyc_call_types: Mapping[str, ReferenceEntry]
    seattle_call_types: Mapping[str, ReferenceEntry]
    nyc_severity_levels: Mapping[int, SeverityLevel]
    standardized_codes: Mapping[str, StandardizedEntry]
    code_standards: Mapping[str, CodeStandard]
    response_time_targets: Mapping[str, Mapping[str, ResponseTimeTarget]]
    nyc_keywords: Mapping[str, Tuple[str, ...]]
    seattle_keywords: Mapping[str, Tuple[str, ...]]

    def standardized(self, keyword: Optional[str]) -> StandardizedEntry:
        """Standardized entry for a keyword, or the default (Police / Low / P2)."""
        return self.standardized_codes.get(keyword or "", DEFAULT_STANDARDIZED)

    def call_type(self, code: Optional[str]) -> ReferenceEntry:
        """Look up a regional call-type code in NYC first, then Seattle."""
        code = (code or "").strip().upper()
        if code in self.nyc_call_types:
            return self.nyc_call_types[code]
        return self.seattle_call_types.get(code, DEFAULT_CALL_TYPE)

    def response_time(self, category: str, priority: str) -> ResponseTimeTarget:
        by_category = self.response_time_targets.get(priority, self.response_time_targets["Low"])
        return by_category.get(category, by_category["Police"])

    def severity_level(self, severity: int) -> SeverityLevel:
        return self.nyc_severity_levels.get(severity, self.nyc_severity_levels[6])

    def code_standard(self, code: Optional[str]) -> CodeStandard:
        return self.code_standards.get(code or "", self.code_standards["P2"])

    def standard_for_priority(self, priority: str) -> CodeStandard:
        return self.code_standards[_PRIORITY_CODES.get(priority, "P2")]


# =============================================================================
# Priority ↔ severity bands
# =============================================================================

# High → 1-2, Medium → 3-4, Low → 5-6
SEVERITY_BANDS = {"High": (1, 2), "Medium": (3, 4), "Low": (5, 6)}


def severity_for_priority(priority: str) -> int:
    """Coarse severity synthesized from priority (High→1, Medium→3, Low→6)."""
    return {"High": 1, "Medium": 3}.get(priority, 6)


def priority_for_severity(severity: int) -> str:
    if severity <= 2:
        return "High"
    if severity <= 4:
        return "Medium"
    return "Low"


def severity_in_band(severity: int, priority: str) -> bool:
    low, high = SEVERITY_BANDS.get(priority, SEVERITY_BANDS["Low"])
    return low <= severity <= high


@lru_cache(maxsize=1)
def load_reference_data() -> ReferenceData:
    """Build the reference tables. Cached: every caller shares one instance."""
    return ReferenceData(
        nyc_call_types=_frozen({e.code: e for e in _NYC_CALL_TYPES}),
        seattle_call_types=_frozen({e.code: e for e in _SEATTLE_CALL_TYPES}),
        nyc_severity_levels=_frozen(_NYC_SEVERITY_LEVELS),
        standardized_codes=_frozen({e.keyword: e for e in _STANDARDIZED_CODES}),
        code_standards=_frozen(_CODE_STANDARDS),
        response_time_targets=_frozen(
            {p: _frozen(by_cat) for p, by_cat in _RESPONSE_TIME_TARGETS.items()}
        ),
        nyc_keywords=_frozen(_NYC_CALL_TYPE_KEYWORDS),
        seattle_keywords=_frozen(_SEATTLE_DESCRIPTION_KEYWORDS),
    )
