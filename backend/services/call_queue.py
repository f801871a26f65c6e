"""
Dispatch call queue: active calls and recent history, in memory.
Import `call_queue` from here in routes/services.

Calls enter as "In Progress", are updated as the transcript is re-classified,
and leave the active list when routed (dispatched) or completed. History is
newest-first and capped. Nothing is persisted. Clock and randomness are
injectable so tests stay deterministic.
"""

import random
import threading
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from config import COMPLETED_CALLS_LIMIT
from services.classifier import IncidentAssessment
from services.triage import TranscriptEntry

IN_PROGRESS = "In Progress"
COMPLETED = "Completed"

CALLER_ID_PREFIXES = ("CALL", "EMRG", "DISP", "URGT")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_elapsed(seconds: int) -> str:
    """Seconds → "MM:SS"."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


@dataclass(frozen=True)
class CallRecord:
    call_id: str
    caller_id: str
    start_time: datetime
    status: str = IN_PROGRESS
    urgent_brief: str = "Call in progress..."
    priority: str = "Low"
    category: str = "Police"
    transcript: str = ""
    entries: Tuple[TranscriptEntry, ...] = ()
    assessment: Optional[IncidentAssessment] = None
    routing: Tuple[str, ...] = ()
    end_time: Optional[datetime] = None
    dispatch_time: Optional[int] = None    # seconds from start to routing / completion
    outcome: Optional[str] = None          # "Dispatched" / "Resolved" / ...
    summary: str = ""

    def elapsed_seconds(self, now: datetime) -> int:
        if self.dispatch_time is not None:
            return self.dispatch_time
        end = self.end_time or now
        return max(0, int((end - self.start_time).total_seconds()))

    def to_dict(self, now: Optional[datetime] = None) -> dict:
        now = now or _utcnow()
        elapsed = self.elapsed_seconds(now)
        return {
            "id": self.call_id,
            "callerId": self.caller_id,
            "status": self.status,
            "urgentBrief": self.urgent_brief,
            "priority": self.priority,
            "category": self.category,
            "transcript": self.transcript,
            "entries": [e.to_dict() for e in self.entries],
            "classification": self.assessment.to_dict() if self.assessment else {},
            "routing": list(self.routing),
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat() if self.end_time else None,
            "elapsed": format_elapsed(elapsed),
            "dispatchTime": self.dispatch_time,
            "outcome": self.outcome,
            "summary": self.summary,
        }


class CallQueue:
    """Thread-safe: Flask request threads and enrichment threads both write here."""

    def __init__(
        self,
        clock: Callable[[], datetime] = _utcnow,
        rng: Optional[random.Random] = None,
        completed_limit: int = COMPLETED_CALLS_LIMIT,
    ):
        self._clock = clock
        self._rng = rng or random.Random()
        self._completed_limit = completed_limit
        self._active: dict[str, CallRecord] = {}
        self._completed: List[CallRecord] = []
        self._lock = threading.Lock()

    def generate_caller_id(self) -> str:
        """e.g. "EMRG-0042"."""
        prefix = self._rng.choice(CALLER_ID_PREFIXES)
        return f"{prefix}-{self._rng.randrange(10000):04d}"

    def now(self) -> datetime:
        return self._clock()

    def create_call(self, call_id: Optional[str] = None, caller_id: Optional[str] = None) -> CallRecord:
        """Add a new active call. An existing active id is returned unchanged."""
        call_id = call_id or str(uuid.uuid4())
        with self._lock:
            if call_id in self._active:
                return self._active[call_id]
            record = CallRecord(
                call_id=call_id,
                caller_id=caller_id or self.generate_caller_id(),
                start_time=self._clock(),
            )
            self._active[call_id] = record
        print(f"[Queue] Created call {call_id} ({record.caller_id})")
        return record

    def get(self, call_id: str) -> Optional[CallRecord]:
        with self._lock:
            if call_id in self._active:
                return self._active[call_id]
            return next((c for c in self._completed if c.call_id == call_id), None)

    def update_call(
        self,
        call_id: str,
        assessment: Optional[IncidentAssessment] = None,
        transcript: Optional[str] = None,
        entries: Optional[Tuple[TranscriptEntry, ...]] = None,
        urgent_brief: Optional[str] = None,
    ) -> Optional[CallRecord]:
        """Refresh an active call from the latest assessment. None if not active."""
        with self._lock:
            record = self._active.get(call_id)
            if record is None:
                return None
            changes = {}
            if assessment is not None:
                changes.update(
                    assessment=assessment,
                    priority=assessment.priority,
                    category=assessment.category,
                    routing=assessment.routing,
                )
            if transcript is not None:
                changes["transcript"] = transcript
            if entries is not None:
                changes["entries"] = tuple(entries)
            if urgent_brief:
                changes["urgent_brief"] = urgent_brief
            record = replace(record, **changes)
            self._active[call_id] = record
            return record

    def _close(self, call_id: str, outcome: str) -> Optional[CallRecord]:
        with self._lock:
            record = self._active.pop(call_id, None)
            if record is None:
                return None
            end = self._clock()
            record = replace(
                record,
                status=COMPLETED,
                end_time=end,
                dispatch_time=max(0, int((end - record.start_time).total_seconds())),
                outcome=outcome,
            )
            self._completed.insert(0, record)
            del self._completed[self._completed_limit:]
        print(f"[Queue] Call {call_id} {outcome.lower()} after {format_elapsed(record.dispatch_time)}")
        return record

    def route_call(self, call_id: str) -> Optional[CallRecord]:
        """Dispatch: move the call to history with its dispatch time."""
        return self._close(call_id, "Dispatched")

    def complete_call(self, call_id: str, outcome: str = "Resolved") -> Optional[CallRecord]:
        return self._close(call_id, outcome)

    def set_summary(self, call_id: str, summary: str) -> Optional[CallRecord]:
        with self._lock:
            if call_id in self._active:
                self._active[call_id] = replace(self._active[call_id], summary=summary)
                return self._active[call_id]
            for i, record in enumerate(self._completed):
                if record.call_id == call_id:
                    self._completed[i] = replace(record, summary=summary)
                    return self._completed[i]
        return None

    def active(self) -> List[CallRecord]:
        """Active calls, highest priority first, then oldest first."""
        order = {"High": 0, "Medium": 1, "Low": 2}
        with self._lock:
            calls = list(self._active.values())
        return sorted(calls, key=lambda c: (order.get(c.priority, 3), c.start_time))

    def completed(self) -> List[CallRecord]:
        with self._lock:
            return list(self._completed)

    def clear(self):
        with self._lock:
            self._active.clear()
            self._completed.clear()


call_queue = CallQueue()
