"""
Assessment formatter: turns an IncidentAssessment into dispatcher-facing text.

  format_brief      one line, "[PRIORITY] description"
  format_questions  up to three follow-up questions for the category
  format_script     templated dispatcher script (pursuit > non-emergency >
                    keyword > category/priority)
  format_summary    who / what / where / injuries / suspects heuristics
  build_incident_report / format_report_text   JSON and plain-text export

Pure functions of their inputs; nothing here reads the clock or the network.
"""

import re
from typing import List, Optional, Sequence

from services.classifier import IncidentAssessment
from services.extractor import extract_location_context
from services.reference_data import ReferenceData, load_reference_data

KEYWORD_LABELS = {
    "FIRE": "Fire",
    "SMOKE": "Smoke reported",
    "EXPLOSION": "Explosion",
    "GAS_LEAK": "Gas leak",
    "CARDIAC": "Cardiac emergency",
    "STROKE": "Possible stroke",
    "MEDICAL": "Medical emergency",
    "OVERDOSE": "Possible overdose",
    "TRAUMA": "Traumatic injury",
    "ROBBERY": "Robbery",
    "ASSAULT": "Assault",
    "SHOOTING": "Firearm incident",
    "STABBING": "Stabbing",
    "DOMESTIC": "Domestic disturbance",
    "SUICIDE": "Suicide risk",
    "HOSTAGE": "Hostage situation",
    "BOMB": "Bomb threat",
    "EMERGENCY": "Emergency reported",
    "ACCIDENT": "Traffic accident",
    "THEFT": "Theft",
    "NOISE": "Noise complaint",
    "ANIMAL_EMERGENCY": "Animal attack",
}

PRIORITY_PHRASES = {
    "High": "immediate response required",
    "Medium": "standard response",
    "Low": "further assessment needed",
}

QUESTION_TEMPLATES = {
    "Police": (
        "Are the suspects armed?",
        "What direction are they heading?",
        "Can you describe the suspects?",
    ),
    "Fire": (
        "Is anyone trapped inside?",
        "What is burning?",
        "Is the fire spreading?",
    ),
    "Medical": (
        "Is the person conscious?",
        "Are they breathing?",
        "What are the symptoms?",
    ),
}


def format_brief(assessment: IncidentAssessment) -> str:
    """One-line urgent brief, e.g. "[HIGH] Robbery - immediate response required"."""
    tag = f"[{assessment.priority.upper()}]"
    if assessment.special_note:
        return f"{tag} {assessment.special_note}"

    label = next(
        (KEYWORD_LABELS[k] for k in assessment.keywords if k in KEYWORD_LABELS),
        f"{assessment.category} incident",
    )
    brief = f"{tag} {label} - {PRIORITY_PHRASES.get(assessment.priority, PRIORITY_PHRASES['Low'])}"
    if assessment.secondary_categories:
        brief += f" - multi-agency: {', '.join(assessment.secondary_categories)}"
    return brief


def format_questions(assessment: IncidentAssessment) -> List[str]:
    return list(QUESTION_TEMPLATES.get(assessment.category, ()))[:3]


# =============================================================================
# Scripts
# =============================================================================

WEAPON_TERMS = ("gun", "armed", "weapon", "shooting", "shot", "knife")
CHASE_TERMS = ("chasing", "chase", "pursuit", "following", "fleeing")

SCRIPT_TEMPLATES = {
    "pursuit": (
        "Stay on the line with me. Do not follow the vehicle.",
        "Are you safe right now? Get somewhere out of sight if you can.",
        "What kind of weapon did you see?",
        "Describe the vehicle: color, make, plate if you saw it.",
        "Which direction are they heading from {where}?",
        "Units are on the way: {units}.",
    ),
    "non_emergency": (
        "I understand. Based on what you've told me this may not be a 911 emergency.",
        "Is anyone in immediate danger right now?",
        "If not, please use the non-emergency line. If that changes, call 911 right away.",
    ),
    "CARDIAC": (
        "Help is on the way: {units}.",
        "Is the person awake and breathing?",
        "If they are not breathing, I will walk you through CPR. Place them flat on their back.",
        "Unlock the door at {where} so responders can get in.",
    ),
    "FIRE": (
        "Get everyone out of the building now. Do not go back inside.",
        "Is anyone still inside at {where}?",
        "Stay low if there is smoke and close doors behind you.",
        "Fire units are on the way: {units}.",
    ),
    "GAS_LEAK": (
        "Leave the building now. Do not switch lights on or off or use anything that sparks.",
        "Keep everyone away from {where} until fire crews arrive.",
        "Units are on the way: {units}.",
    ),
    "OVERDOSE": (
        "Help is on the way: {units}.",
        "Is the person breathing? Do you know what they took?",
        "If you have naloxone, use it now. Roll them onto their side.",
    ),
    "SHOOTING": (
        "Get to a safe place and stay there. Keep low and away from windows.",
        "Is anyone hurt? Can you see the person with the weapon?",
        "Police are on the way to {where}: {units}.",
    ),
    "SUICIDE": (
        "I'm here with you. Are you or the person safe right now?",
        "Is there a weapon or medication nearby?",
        "Stay on the line with me. Help is on the way: {units}.",
    ),
    "DOMESTIC": (
        "Are you safe to talk right now? Just answer yes or no if you need to.",
        "Is the other person still there? Are there any weapons in the home?",
        "Officers are on the way to {where}: {units}.",
    ),
}
# Keyword aliases share a template.
SCRIPT_TEMPLATES["SMOKE"] = SCRIPT_TEMPLATES["FIRE"]
SCRIPT_TEMPLATES["EXPLOSION"] = SCRIPT_TEMPLATES["FIRE"]
SCRIPT_TEMPLATES["STABBING"] = SCRIPT_TEMPLATES["SHOOTING"]

CATEGORY_SCRIPTS = {
    ("Police", True): (
        "Are you in a safe place right now?",
        "Can you describe the people involved and where they went?",
        "Officers are on the way to {where}: {units}.",
    ),
    ("Police", False): (
        "Can you tell me exactly what happened and when?",
        "Is anyone in danger right now?",
        "An officer will respond to {where}: {units}.",
    ),
    ("Fire", True): (
        "Get everyone to safety and away from the hazard.",
        "Is anyone trapped or injured?",
        "Fire units are on the way to {where}: {units}.",
    ),
    ("Fire", False): (
        "Can you describe what you're seeing?",
        "Is anyone at risk right now?",
        "Fire units will respond to {where}: {units}.",
    ),
    ("Medical", True): (
        "Is the person conscious and breathing?",
        "Don't move them unless they are in danger. Help is on the way: {units}.",
        "Stay with them and tell me if anything changes.",
    ),
    ("Medical", False): (
        "What symptoms is the person having, and when did they start?",
        "Are they awake and able to talk to you?",
        "Medical units will respond to {where}: {units}.",
    ),
}


def _is_pursuit(lower: str, assessment: IncidentAssessment) -> bool:
    weapon = "SHOOTING" in assessment.keywords or any(t in lower for t in WEAPON_TERMS)
    chase = any(t in lower for t in CHASE_TERMS)
    return weapon and chase and extract_location_context(lower).vehicle


def select_script_template(transcript: str, assessment: IncidentAssessment) -> str:
    """Name of the template format_script will use."""
    lower = (transcript or "").lower()
    if _is_pursuit(lower, assessment):
        return "pursuit"
    if assessment.probable_non_emergency:
        return "non_emergency"
    for keyword in assessment.keywords:
        if keyword in SCRIPT_TEMPLATES:
            return keyword
    return f"{assessment.category}:{'high' if assessment.priority == 'High' else 'standard'}"


def format_script(transcript: str, assessment: IncidentAssessment) -> str:
    """Dispatcher script for this call, one instruction per line."""
    name = select_script_template(transcript, assessment)
    if ":" in name:
        category, level = name.split(":")
        lines = CATEGORY_SCRIPTS.get((category, level == "high"), CATEGORY_SCRIPTS[("Police", False)])
    else:
        lines = SCRIPT_TEMPLATES[name]

    values = {
        "where": extract_where(transcript),
        "units": ", ".join(assessment.routing) or "a unit",
    }
    header = f"[{assessment.priority.upper()}] {assessment.category} - code {assessment.standardized_code}"
    return "\n".join([header] + [line.format(**values) for line in lines])


# =============================================================================
# Summary heuristics
# =============================================================================

LOCATION_PATTERNS = (
    re.compile(r"at (\d+ [^,.]+)", re.IGNORECASE),
    re.compile(r"on ([^,.]+ street)", re.IGNORECASE),
    re.compile(r"near ([^,.]+)", re.IGNORECASE),
    re.compile(r"(\d+ [^,.]+ avenue)", re.IGNORECASE),
)

UNKNOWN_LOCATION = "Location to be determined"


def extract_where(transcript: str) -> str:
    for pattern in LOCATION_PATTERNS:
        match = pattern.search(transcript or "")
        if match:
            return match.group(1).strip()
    return UNKNOWN_LOCATION


def _who(lower: str) -> str:
    if "caller" in lower or "i am" in lower:
        return "Caller reporting"
    if "witness" in lower:
        return "Witness reporting"
    return "Unknown caller"


def _what(lower: str) -> str:
    for term, label in (
        ("fire", "Fire emergency"),
        ("robbery", "Armed robbery"),
        ("theft", "Theft incident"),
        ("medical", "Medical emergency"),
        ("accident", "Traffic accident"),
    ):
        if term in lower:
            return label
    return "Incident reported"


def _injuries(lower: str) -> str:
    if "no injuries" in lower or "no one hurt" in lower or "nobody hurt" in lower:
        return "No injuries"
    if "injured" in lower or "hurt" in lower:
        return "Injuries reported"
    return "Injury status unknown"


def _suspects(lower: str) -> str:
    if "suspect" in lower or "perpetrator" in lower:
        return "Armed suspect(s)" if "armed" in lower else "Suspect(s) reported"
    return "No suspects identified"


def format_summary(transcript: str) -> dict:
    lower = (transcript or "").lower()
    return {
        "who": _who(lower),
        "what": _what(lower),
        "where": extract_where(transcript),
        "injuries": _injuries(lower),
        "suspects": _suspects(lower),
    }


# =============================================================================
# Export
# =============================================================================

def build_incident_report(
    transcript: str,
    assessment: IncidentAssessment,
    generated_at: str,
    entries: Optional[Sequence[dict]] = None,
    reference: Optional[ReferenceData] = None,
) -> dict:
    """
    JSON incident report: transcript, assessment, brief, questions, routing.
    `entries` are timestamped fragments ({"text", "time"}); when omitted the
    transcript is exported as a single entry.
    """
    reference = reference or load_reference_data()
    standard = reference.code_standard(assessment.standardized_code)
    level = reference.severity_level(assessment.severity)
    return {
        "timestamp": generated_at,
        "transcript": list(entries) if entries is not None else [{"text": transcript or "", "time": ""}],
        "urgentBrief": format_brief(assessment),
        "summary": format_summary(transcript),
        "classification": assessment.to_dict(),
        "standard": {
            "code": assessment.standardized_code,
            "description": standard.description,
            "responseTime": standard.response_time,
        },
        "severityLevel": {
            "severity": assessment.severity,
            "description": level.description,
            "responseTime": level.response_time,
        },
        "questions": format_questions(assessment),
        "routing": list(assessment.routing),
        "script": format_script(transcript, assessment),
    }


def format_report_text(report: dict) -> str:
    """Plain-text rendering of build_incident_report()."""
    c = report["classification"]
    s = report["summary"]
    target = c["responseTimeTarget"]
    lines = [
        "DISPATCH INCIDENT REPORT",
        f"Generated: {report['timestamp']}",
        "",
        "URGENT BRIEF:",
        report["urgentBrief"],
        "",
        "INCIDENT SUMMARY:",
        f"Who: {s['who']}",
        f"What: {s['what']}",
        f"Where: {s['where']}",
        f"Injuries: {s['injuries']}",
        f"Suspects: {s['suspects']}",
        "",
        "CLASSIFICATION:",
        f"Category: {c['category']}",
        f"Priority: {c['priority']}",
        f"Severity: {c['severity']} ({report['severityLevel']['description']})",
        f"Confidence: {c['confidence']}%",
        f"Standard code: {c['standardizedCode']} ({report['standard']['description']})",
        f"Response target: {target['targetMinutes']}-{target['maxMinutes']} {target['units']}",
    ]
    if c.get("categories"):
        lines.append(f"Agencies: {', '.join(c['categories'])}")
    lines += [
        "",
        "SUGGESTED QUESTIONS:",
        *[f"- {q}" for q in report["questions"]],
        "",
        "ROUTING SUGGESTIONS:",
        ", ".join(report["routing"]) or "None",
        "",
        "TRANSCRIPT:",
        *[f"[{e.get('time', '')}] {e.get('text', '')}" for e in report["transcript"]],
    ]
    return "\n".join(lines)
