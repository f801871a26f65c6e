"""
Server-Sent Events (SSE) for real-time push to the dispatch dashboard.
publish(event_type, **payload) pushes one event to every connected client.

Event types (the "type" field):
  call_created       a new call entered the queue
  assessment_update  engine assessment for the latest transcript
  enrichment_update  generative result for the latest transcript (never stale)
  call_routed        call dispatched and moved to history
  call_completed     call ended without routing
  summary_update     end-of-call summary is ready
  queue_cleared      all calls removed
"""

import queue
import threading

CALL_CREATED = "call_created"
ASSESSMENT_UPDATE = "assessment_update"
ENRICHMENT_UPDATE = "enrichment_update"
CALL_ROUTED = "call_routed"
CALL_COMPLETED = "call_completed"
SUMMARY_UPDATE = "summary_update"
QUEUE_CLEARED = "queue_cleared"

# Slow clients lose events instead of growing memory.
CLIENT_QUEUE_SIZE = 100

# Each client gets a bounded queue of event dicts (JSON-serializable)
_clients: list[queue.Queue] = []
_lock = threading.Lock()


def subscribe() -> queue.Queue:
    """Register a new client. Returns a queue that will receive event dicts."""
    q = queue.Queue(maxsize=CLIENT_QUEUE_SIZE)
    with _lock:
        _clients.append(q)
    return q


def unsubscribe(q: queue.Queue):
    with _lock:
        if q in _clients:
            _clients.remove(q)


def client_count() -> int:
    with _lock:
        return len(_clients)


def publish(event_type: str, **payload) -> dict:
    """Build {"type": event_type, **payload} and send it to all clients."""
    event = {"type": event_type, **payload}
    with _lock:
        clients = list(_clients)
    for q in clients:
        try:
            q.put_nowait(event)
        except queue.Full:
            print(f"[Events] client queue full, dropped {event_type}")
    return event
