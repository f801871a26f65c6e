"""
Generative backend adapter: best-effort enrichment of the engine's assessment.

The rule-based engine (services.classifier) always produces an answer. This
module optionally asks a generative model to re-express or correct it:
  - OllamaBackend: local HTTP service (requests; /api/tags probe, /api/generate)
  - GeminiBackend: hosted model via the google-genai SDK
  - NullBackend:   never available (GENERATIVE_BACKEND=none)

try_generate() never raises. Unavailable backend, timeout, HTTP error or a
response without a parseable JSON object all resolve to None, and the caller
keeps rendering the engine's own assessment.
"""

import json
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, replace
from typing import Optional, Tuple, Union

import requests
from google import genai
from google.genai import types

# Import config so we can switch backend / model in one place.
from config import (
    GEMINI_API_KEY,
    GEMINI_MODEL,
    GENERATIVE_BACKEND,
    GENERATIVE_TIMEOUT,
    OLLAMA_BASE_URL,
    OLLAMA_MODEL,
    PROBE_TIMEOUT,
)
from services.classifier import (
    MAX_KEYWORDS,
    IncidentAssessment,
    MultiCategory,
    align_multi_category,
    classify,
    generate_routing,
)
from services.reference_data import (
    CATEGORIES,
    PRIORITIES,
    ReferenceData,
    load_reference_data,
    severity_for_priority,
    severity_in_band,
)
from services.system_prompt import SUMMARY_INSTRUCTION, SYSTEM_INSTRUCTION


# =============================================================================
# Result types: the engine's answer, or the engine's answer enriched
# =============================================================================

@dataclass(frozen=True)
class EngineResult:
    """Deterministic engine output, used whenever the backend does not answer."""

    assessment: IncidentAssessment
    source: str = "engine"

    def to_dict(self) -> dict:
        return {"source": self.source, "assessment": self.assessment.to_dict()}


@dataclass(frozen=True)
class EnrichedResult:
    """Backend output merged onto the engine's assessment."""

    assessment: IncidentAssessment          # merged
    engine_assessment: IncidentAssessment   # what the engine said on its own
    backend: str = ""
    urgent_brief: Optional[str] = None
    summary: Optional[dict] = None
    questions: Tuple[str, ...] = ()
    source: str = "generative"

    def to_dict(self) -> dict:
        out = {
            "source": self.source,
            "backend": self.backend,
            "assessment": self.assessment.to_dict(),
        }
        if self.urgent_brief:
            out["urgentBrief"] = self.urgent_brief
        if self.summary:
            out["summary"] = self.summary
        if self.questions:
            out["questions"] = list(self.questions)
        return out


AnalysisResult = Union[EngineResult, EnrichedResult]


# =============================================================================
# Response parsing
# =============================================================================

def extract_json_object(raw) -> Optional[dict]:
    """
    Locate the first balanced {...} in the model's raw text and parse it.
    Braces inside JSON strings are ignored while balancing. Returns None when
    there is no object, it never closes, or it does not parse to a dict.
    """
    if raw is None:
        return None
    text = raw if isinstance(raw, str) else str(raw)
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                try:
                    parsed = json.loads(text[start:i + 1])
                except json.JSONDecodeError:
                    return None
                return parsed if isinstance(parsed, dict) else None
    return None


# =============================================================================
# Merge: backend values win where present and valid, engine fills the gaps.
# standardizedCode is always the engine's; the response target follows the merged
# category and priority.
# =============================================================================

def _choice(value, allowed: Tuple[str, ...]) -> Optional[str]:
    if not isinstance(value, str):
        return None
    wanted = value.strip().lower()
    for option in allowed:
        if option.lower() == wanted:
            return option
    return None


def _confidence(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not 0 <= number <= 100:
        return None
    return int(round(number))


def _strings(value) -> Tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(v.strip() for v in value if isinstance(v, str) and v.strip())


def _flatten(generated: dict) -> dict:
    # Accept the classification either at top level or nested under "classification".
    data = dict(generated)
    nested = data.get("classification")
    if isinstance(nested, dict):
        for key, value in nested.items():
            data.setdefault(key, value)
    return data


def merge_assessment(
    engine: IncidentAssessment,
    generated: dict,
    backend: str = "",
    reference: Optional[ReferenceData] = None,
) -> EnrichedResult:
    """Merge a parsed backend object onto the engine's assessment."""
    reference = reference or load_reference_data()
    data = _flatten(generated or {})

    category = _choice(data.get("category"), CATEGORIES) or engine.category
    priority = _choice(data.get("priority"), PRIORITIES) or engine.priority
    confidence = _confidence(data.get("confidence"))
    keywords = tuple(k.upper() for k in _strings(data.get("keywords")))
    routing = _strings(data.get("routing"))

    # Engine-owned fields. Severity stays the engine's unless a changed
    # priority pushed it out of band; then the engine re-synthesizes it.
    severity = engine.severity
    if not severity_in_band(severity, priority):
        severity = severity_for_priority(priority)

    # Routing follows the merged category when the backend gave none.
    if not routing and category != engine.category:
        routing = generate_routing(category, priority, severity)

    multi = None
    generated_categories: Tuple[str, ...] = ()
    if isinstance(data.get("categories"), list):
        choices = (_choice(v, CATEGORIES) for v in data["categories"])
        generated_categories = tuple(dict.fromkeys(c for c in choices if c))
    if len(generated_categories) >= 2:
        multi = MultiCategory(generated_categories, generated_categories[0], generated_categories[1:])
    elif engine.categories:
        multi = MultiCategory(engine.categories, engine.primary_category, engine.secondary_categories or ())
    if multi is not None:
        multi = align_multi_category(multi, category)

    merged = replace(
        engine,
        category=category,
        priority=priority,
        severity=severity,
        confidence=confidence if confidence is not None else engine.confidence,
        standardized_code=engine.standardized_code,
        keywords=(keywords or engine.keywords)[:MAX_KEYWORDS],
        routing=routing or engine.routing,
        response_time_target=reference.response_time(category, priority),
        categories=multi.categories if multi else None,
        primary_category=multi.primary_category if multi else None,
        secondary_categories=multi.secondary_categories if multi else None,
    )

    brief = data.get("urgentBrief")
    summary = data.get("summary")
    return EnrichedResult(
        assessment=merged,
        engine_assessment=engine,
        backend=backend,
        urgent_brief=brief.strip() if isinstance(brief, str) and brief.strip() else None,
        summary=summary if isinstance(summary, dict) else None,
        questions=_strings(data.get("questions"))[:3],
    )


def resolve(engine: IncidentAssessment, enriched: Optional[EnrichedResult]) -> AnalysisResult:
    """The result a caller should render: enriched if we have it, else the engine's."""
    return enriched if enriched is not None else EngineResult(engine)


# =============================================================================
# Prompt
# =============================================================================

# One worked example so the model sees the exact output shape.
FEW_SHOT_ANALYSIS = (
    "Transcript: \"Two men with guns just robbed the store on 5th street, they drove off north.\"",
    json.dumps({
        "urgentBrief": "[HIGH] Armed robbery - 2 suspects fleeing north by car",
        "summary": {
            "who": "Caller (witness)",
            "what": "Armed robbery",
            "where": "Store on 5th street",
            "injuries": "Injury status unknown",
            "suspects": "Two armed men, fled north in a vehicle",
        },
        "questions": [
            "Is anyone injured?",
            "Can you describe the vehicle?",
            "Which direction did they go?",
        ],
        "category": "Police",
        "priority": "High",
        "confidence": 90,
        "keywords": ["ROBBERY", "SHOOTING"],
        "routing": ["Police Patrol", "Detective", "SWAT Team"],
    }),
)


def build_analysis_prompt(transcript: str, assessment: IncidentAssessment) -> str:
    """Natural-language request plus the engine's assessment as context."""
    example_in, example_out = FEW_SHOT_ANALYSIS
    return f"""Analyze this emergency call transcript for 911 dispatch.

A rule-based engine has already assessed it as:
{json.dumps(assessment.to_dict(), indent=2)}

Confirm or correct that assessment and return ONE JSON object with the fields
urgentBrief, summary (who, what, where, injuries, suspects), questions (3),
category, priority, confidence, keywords, routing.

Example:
{example_in}
{example_out}

Transcript: "{transcript}"

JSON:"""


def build_summary_prompt(transcript: str, assessment: IncidentAssessment) -> str:
    return f"""{SUMMARY_INSTRUCTION}

Assessment: {assessment.category}, {assessment.priority} priority, units: {", ".join(assessment.routing) or "none"}.

Transcript: "{transcript}"

Summary:"""


# =============================================================================
# Backends
# =============================================================================

class GenerativeBackend:
    """Interface: probe() for reachability, generate() for raw text."""

    name = "none"

    def probe(self, timeout: float) -> bool:
        return False

    def generate(self, prompt: str, timeout: float) -> str:
        raise RuntimeError(f"backend '{self.name}' cannot generate")


class NullBackend(GenerativeBackend):
    name = "none"


class OllamaBackend(GenerativeBackend):
    """Local Ollama-compatible HTTP service."""

    name = "ollama"

    def __init__(self, base_url: str = OLLAMA_BASE_URL, model: str = OLLAMA_MODEL):
        self.base_url = base_url.rstrip("/")
        self.model = model

    def probe(self, timeout: float) -> bool:
        resp = requests.get(f"{self.base_url}/tags", timeout=timeout)
        return resp.ok

    def generate(self, prompt: str, timeout: float) -> str:
        resp = requests.post(
            f"{self.base_url}/generate",
            json={
                "model": self.model,
                "prompt": prompt,
                "system": SYSTEM_INSTRUCTION,
                "stream": False,
                "options": {"temperature": 0.7, "top_p": 0.9},
            },
            timeout=timeout,
        )
        resp.raise_for_status()
        return (resp.json().get("response") or "").strip()


class GeminiBackend(GenerativeBackend):
    """Hosted Gemini model through google-genai (client.models.generate_content)."""

    name = "gemini"

    def __init__(self, api_key: Optional[str] = GEMINI_API_KEY, model: str = GEMINI_MODEL,
                 timeout: float = GENERATIVE_TIMEOUT):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._client = None

    def _get_client(self):
        """Return configured Gemini client; initializes on first call."""
        if self._client is None:
            if not self.api_key:
                raise ValueError("GEMINI_API_KEY is not set")
            self._client = genai.Client(
                api_key=self.api_key,
                http_options=types.HttpOptions(timeout=int(self.timeout * 1000)),
            )
        return self._client

    def probe(self, timeout: float) -> bool:
        if not self.api_key:
            return False
        self._get_client().models.get(model=self.model)
        return True

    def generate(self, prompt: str, timeout: float) -> str:
        response = self._get_client().models.generate_content(
            model=self.model,
            contents=prompt,
            config=types.GenerateContentConfig(
                system_instruction=SYSTEM_INSTRUCTION,
                temperature=0.7,
            ),
        )
        return (response.text or "").strip()


def build_backend(name: str = GENERATIVE_BACKEND) -> GenerativeBackend:
    name = (name or "").strip().lower()
    if name == "ollama":
        return OllamaBackend()
    if name == "gemini":
        return GeminiBackend()
    return NullBackend()


# =============================================================================
# Adapter
# =============================================================================

class GenerativeAdapter:
    """
    Wraps one backend with an availability flag and a hard timeout.

    The flag is set out-of-band by check_availability() (start_probe() runs it
    on a daemon thread); try_generate() only reads it, so classification never
    waits on the probe. A network error during a call clears the flag until
    the next probe.
    """

    def __init__(self, backend: GenerativeBackend, timeout: float = GENERATIVE_TIMEOUT,
                 probe_timeout: float = PROBE_TIMEOUT):
        self.backend = backend
        self.timeout = timeout
        self.probe_timeout = probe_timeout
        self.available = False
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="generative")

    def check_availability(self) -> bool:
        try:
            available = bool(self.backend.probe(self.probe_timeout))
        except Exception as e:
            print(f"[AI] {self.backend.name} probe failed: {type(e).__name__}: {e}")
            available = False
        self.available = available
        print(f"[AI] {self.backend.name} available={available}")
        return available

    def start_probe(self) -> threading.Thread:
        thread = threading.Thread(target=self.check_availability, daemon=True)
        thread.start()
        return thread

    def _call(self, prompt: str) -> Optional[str]:
        """Run one generation with the timeout; None on any failure."""
        try:
            future = self._executor.submit(self.backend.generate, prompt, self.timeout)
            return future.result(timeout=self.timeout)
        except FuturesTimeoutError:
            print(f"[AI] {self.backend.name} timed out after {self.timeout}s")
        except (requests.RequestException, ConnectionError) as e:
            self.available = False
            print(f"[AI] {self.backend.name} unreachable, marking unavailable: {e}")
        except Exception as e:
            print(f"[AI] {self.backend.name} error: {type(e).__name__}: {e}")
        return None

    def try_generate(self, transcript: str, assessment: IncidentAssessment) -> Optional[EnrichedResult]:
        """Enriched assessment, or None. Never raises."""
        if not self.available:
            return None
        try:
            raw = self._call(build_analysis_prompt(transcript, assessment))
            if raw is None:
                return None
            data = extract_json_object(raw)
            if data is None:
                print(f"[AI] No JSON object in {self.backend.name} response: {raw[:120]!r}")
                return None
            return merge_assessment(assessment, data, backend=self.backend.name)
        except Exception as e:
            print(f"[AI] Enrichment failed, using engine output: {type(e).__name__}: {e}")
            return None

    def analyze(self, transcript: str, assessment: Optional[IncidentAssessment] = None) -> AnalysisResult:
        """Engine result, upgraded to an enriched one when the backend answers."""
        engine = assessment if assessment is not None else classify(transcript)
        return resolve(engine, self.try_generate(transcript, engine))

    def summarize(self, transcript: str, assessment: IncidentAssessment) -> Optional[str]:
        """Short narrative summary for the end of a call, or None."""
        if not self.available:
            return None
        text = self._call(build_summary_prompt(transcript, assessment))
        return text or None


# -----------------------------------------------------------------------------
# Shared adapter (lazy init on first use so we don't probe at import).
# -----------------------------------------------------------------------------
_adapter: Optional[GenerativeAdapter] = None


def get_adapter() -> GenerativeAdapter:
    global _adapter
    if _adapter is None:
        _adapter = GenerativeAdapter(build_backend())
    return _adapter
