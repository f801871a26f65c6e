"""
Triage service: per-call transcript state for live classification.

Every caller fragment is appended to the call's transcript and the full
transcript is re-classified on the spot (the engine is cheap and pure).
Generative enrichment is slower, so it is debounced and tagged with the
sequence number of the analysis that asked for it; a result that comes back
after a newer fragment has been classified is stale and is dropped.
No network calls here; only calls into services.classifier and state updates.
"""

import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from config import MIN_ANALYSIS_CHARS, MIN_ANALYSIS_GROWTH
from services.ai import EnrichedResult
from services.classifier import ClassificationEngine, IncidentAssessment, default_engine


@dataclass(frozen=True)
class TranscriptEntry:
    text: str
    time: str

    def to_dict(self) -> dict:
        return {"text": self.text, "time": self.time}


# One CallState per active call; call_id maps to this.
@dataclass(frozen=True)
class CallState:
    """Everything the triage flow knows about one call. Updated by replacement."""

    call_id: str
    entries: Tuple[TranscriptEntry, ...] = ()
    seq: int = 0                                   # bumped on every classification
    assessment: Optional[IncidentAssessment] = None
    enriched: Optional[EnrichedResult] = None      # latest non-stale enrichment
    enriched_seq: int = 0
    last_enrichment_length: int = 0                # transcript length at last backend request

    def full_text(self) -> str:
        return join_fragments(e.text for e in self.entries)

    def current(self) -> Optional[IncidentAssessment]:
        """What the dashboard should show: enrichment if current, else the engine's."""
        if self.enriched is not None and self.enriched_seq == self.seq:
            return self.enriched.assessment
        return self.assessment


def join_fragments(fragments) -> str:
    """Transcript = fragments joined by single spaces, empty fragments skipped."""
    return " ".join(f.strip() for f in fragments if f and f.strip())


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%H:%M:%S")


def add_fragment(state: CallState, text: str, time: Optional[str] = None) -> CallState:
    text = (text or "").strip()
    if not text:
        return state
    return replace(state, entries=state.entries + (TranscriptEntry(text, time or _now()),))


def analyze_fragment(
    state: CallState,
    text: str,
    engine: Optional[ClassificationEngine] = None,
    time: Optional[str] = None,
) -> CallState:
    """
    One step of the live flow: append the caller's words, classify the whole
    transcript, bump the sequence number. Returns the new state.
    """
    engine = engine or default_engine()
    state = add_fragment(state, text, time)
    assessment = engine.classify(state.full_text())
    return replace(state, seq=state.seq + 1, assessment=assessment)


def should_request_enrichment(
    state: CallState,
    min_chars: int = MIN_ANALYSIS_CHARS,
    min_growth: int = MIN_ANALYSIS_GROWTH,
) -> bool:
    """Debounce: enough text overall, and enough new text since the last request."""
    length = len(state.full_text())
    return length >= min_chars and length - state.last_enrichment_length >= min_growth


def mark_enrichment_requested(state: CallState) -> CallState:
    return replace(state, last_enrichment_length=len(state.full_text()))


def apply_enrichment(state: CallState, seq: int, enriched: Optional[EnrichedResult]) -> Tuple[CallState, bool]:
    """
    Attach a backend result computed for analysis `seq`. Returns (state, applied).
    Dropped when the backend gave nothing or a newer analysis already exists.
    """
    if enriched is None:
        return state, False
    if seq != state.seq:
        print(f"[Triage] {state.call_id}: dropping stale enrichment seq={seq} (latest={state.seq})")
        return state, False
    return replace(state, enriched=enriched, enriched_seq=seq), True


# =============================================================================
# Live calls
# =============================================================================

# call_id -> CallState for calls still taking fragments. Re-entrant so the
# calls blueprint can close a call and drop its state in one locked section.
# Whoever changes a state also writes the queue and publishes under this lock,
# so dashboard updates leave in sequence order.
call_states: Dict[str, CallState] = {}
states_lock = threading.RLock()


def forget_call(call_id: str):
    """Drop a closed call's state; a reused id starts from an empty transcript."""
    with states_lock:
        call_states.pop(call_id, None)


def clear_states():
    with states_lock:
        call_states.clear()
