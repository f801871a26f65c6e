"""
Tests for the HTTP API: one-shot classification, live calls and the call queue.
Uses Flask's test client; the generative backend is a fake (see conftest).
"""

import threading
import time
import uuid

import pytest

import app as app_module
import events
from app import app
from conftest import ENRICHMENT
from services.call_queue import call_queue
from services.triage import call_states, clear_states


@pytest.fixture
def client():
    clear_states()
    with app.test_client() as client:
        yield client
    clear_states()


def _chat(client, call_id, message):
    return client.post("/api/chat", json={"call_id": call_id, "message": message})


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return False


# -----------------------------------------------------------------------------
# One-shot
# -----------------------------------------------------------------------------

def test_classify(client):
    r = client.post("/api/classify", json={"transcript": "I just got robbed at the store"})
    assert r.status_code == 200
    data = r.get_json()
    assert data["assessment"]["category"] == "Police"
    assert data["assessment"]["priority"] == "High"
    assert data["urgentBrief"] == "[HIGH] Robbery - immediate response required"
    assert len(data["questions"]) == 3
    assert data["script"].startswith("[HIGH] Police - code E")


def test_classify_empty_transcript_gets_default(client):
    r = client.post("/api/classify", json={})
    assert r.status_code == 200
    assert r.get_json()["assessment"]["dataSource"] == "Default"


def test_classify_rejects_non_string(client):
    r = client.post("/api/classify", json={"transcript": 42})
    assert r.status_code == 400
    assert "transcript" in r.get_json()["error"]


def test_analyze_requires_transcript(client, offline_adapter):
    assert client.post("/api/analyze", json={"transcript": "  "}).status_code == 400


def test_analyze_without_backend_returns_engine_result(client, offline_adapter):
    r = client.post("/api/analyze", json={"transcript": "There's a fire in the kitchen"})
    assert r.status_code == 200
    data = r.get_json()
    assert data["source"] == "engine"
    assert data["assessment"]["category"] == "Fire"
    assert data["urgentBrief"].startswith("[HIGH]")


def test_analyze_with_backend_returns_enriched_result(client, adapter):
    r = client.post("/api/analyze", json={"transcript": "I just got robbed at the store"})
    data = r.get_json()
    assert data["source"] == "generative"
    assert data["backend"] == "fake"
    assert data["assessment"]["confidence"] == 92
    assert data["assessment"]["standardizedCode"] == "E"
    assert data["urgentBrief"] == "[HIGH] Armed robbery - suspect fled on foot"
    assert len(data["questions"]) == 3


# -----------------------------------------------------------------------------
# Live calls
# -----------------------------------------------------------------------------

def test_chat_requires_fields(client, offline_adapter):
    assert _chat(client, "", "hello").status_code == 400
    assert client.post("/api/chat", json={"call_id": "c1"}).status_code == 400


def test_chat_builds_transcript_and_updates_queue(client, offline_adapter):
    call_id = f"test-{uuid.uuid4().hex[:8]}"
    r = _chat(client, call_id, "There's been a car accident")
    assert r.status_code == 200
    first = r.get_json()
    assert first["seq"] == 1
    assert first["assessment"]["priority"] == "Medium"
    assert first["enrichmentPending"] is False

    second = _chat(client, call_id, "and now the car is on fire").get_json()
    assert second["seq"] == 2
    assert [e["text"] for e in second["transcript"]] == ["There's been a car accident", "and now the car is on fire"]
    assert second["assessment"]["category"] == "Fire"

    calls = client.get("/api/calls").get_json()
    assert [c["id"] for c in calls["active"]] == [call_id]
    assert calls["active"][0]["priority"] == "High"
    assert calls["active"][0]["urgentBrief"] == second["urgentBrief"]


def test_chat_enrichment_arrives_in_background(client, adapter):
    call_id = "enrich-1"
    r = _chat(client, call_id, "I just got robbed at the store by a man with a knife")
    assert r.get_json()["enrichmentPending"] is True

    assert _wait_for(lambda: call_states[call_id].enriched is not None)
    state = call_states[call_id]
    assert state.current().confidence == 92
    assert _wait_for(lambda: call_queue.get(call_id).urgent_brief.startswith("[HIGH] Armed robbery"))


def test_enrichment_is_published_before_a_newer_fragment(client, adapter, monkeypatch):
    """A fragment arriving while enrichment is written waits, then wins."""
    call_id = "race-1"
    monkeypatch.setattr(app_module, "should_request_enrichment", lambda state: False)
    first = _chat(client, call_id, "I just got robbed at the store by a man with a knife").get_json()
    state = call_states[call_id]

    callers = []
    original = call_queue.update_call

    def update_while_caller_speaks(cid, **changes):
        if not callers and "transcript" not in changes:
            caller = threading.Thread(
                target=app_module.handle_transcript_fragment,
                args=(cid, "the clerk was stabbed and is bleeding"),
            )
            caller.start()
            caller.join(timeout=0.2)
            callers.append(caller)
        return original(cid, **changes)

    monkeypatch.setattr(call_queue, "update_call", update_while_caller_speaks)
    q = events.subscribe()
    try:
        app_module._enrich_in_background(call_id, first["seq"], state.full_text(), state.assessment)
        callers[0].join(timeout=2)
        published = []
        while not q.empty():
            published.append(q.get_nowait())
    finally:
        events.unsubscribe(q)

    order = [(e["type"], e["seq"]) for e in published if e.get("call_id") == call_id]
    assert order == [("enrichment_update", 1), ("assessment_update", 2)]

    latest = call_states[call_id]
    record = call_queue.get(call_id)
    assert latest.seq == 2
    assert record.assessment == latest.current() == latest.assessment
    assert record.urgent_brief != ENRICHMENT["urgentBrief"]


def test_enrichment_for_a_cleared_call_is_dropped(client, adapter, monkeypatch):
    monkeypatch.setattr(app_module, "should_request_enrichment", lambda state: False)
    old = _chat(client, "b", "I just got robbed at the store by a man with a knife").get_json()
    old_state = call_states["b"]

    client.delete("/api/calls")
    _chat(client, "b", "my neighbour is playing loud music")
    app_module._enrich_in_background("b", old["seq"], old_state.full_text(), old_state.assessment)

    assert call_states["b"].enriched is None
    assert call_queue.get("b").urgent_brief != ENRICHMENT["urgentBrief"]


def test_reused_call_id_starts_a_fresh_transcript(client, offline_adapter):
    _chat(client, "a", "there is a fire in the kitchen")
    client.delete("/api/calls")
    assert call_states == {}

    assert client.post("/api/calls", json={"callId": "a"}).status_code == 201
    data = _chat(client, "a", "my neighbour is playing loud music").get_json()
    assert data["seq"] == 1
    assert [e["text"] for e in data["transcript"]] == ["my neighbour is playing loud music"]
    assert data["assessment"]["category"] == "Police"


def test_closing_a_call_drops_its_state(client, offline_adapter):
    for i in range(3):
        _chat(client, f"x{i}", "my bike was stolen")
    client.post("/api/calls/x0/route")
    client.post("/api/calls/x1/complete")
    assert set(call_states) == {"x2"}

    client.delete("/api/calls")
    assert call_states == {}


def test_route_and_report(client, offline_adapter):
    call_id = "route-1"
    _chat(client, call_id, "There's a fire at 123 Main Street")

    r = client.post(f"/api/calls/{call_id}/route")
    assert r.status_code == 200
    routed = r.get_json()
    assert routed["status"] == "Completed"
    assert routed["outcome"] == "Dispatched"
    assert client.get("/api/calls").get_json()["active"] == []

    # Closed calls take no more fragments and cannot be routed twice.
    assert _chat(client, call_id, "hello?").status_code == 409
    assert client.post(f"/api/calls/{call_id}/route").status_code == 404

    report = client.get(f"/api/calls/{call_id}/report").get_json()
    assert report["callId"] == call_id
    assert report["classification"]["category"] == "Fire"
    assert report["transcript"][0]["text"] == "There's a fire at 123 Main Street"

    text = client.get(f"/api/calls/{call_id}/report?format=text")
    assert text.status_code == 200
    assert text.content_type.startswith("text/plain")
    assert b"DISPATCH INCIDENT REPORT" in text.data

    assert client.get(f"/api/calls/{call_id}/report?format=xml").status_code == 400
    assert _wait_for(lambda: call_queue.get(call_id).summary != "")


def test_complete_call(client, offline_adapter):
    _chat(client, "done-1", "my bike was stolen")
    r = client.post("/api/calls/done-1/complete", json={"outcome": "Referred"})
    assert r.status_code == 200
    assert r.get_json()["outcome"] == "Referred"
    assert client.post("/api/calls/unknown/complete").status_code == 404


# -----------------------------------------------------------------------------
# Queue blueprint
# -----------------------------------------------------------------------------

def test_create_and_get_call(client):
    r = client.post("/api/calls", json={"callId": "manual-1", "callerId": "DISP-0042"})
    assert r.status_code == 201
    data = r.get_json()
    assert data["id"] == "manual-1"
    assert data["callerId"] == "DISP-0042"
    assert data["status"] == "In Progress"
    assert data["elapsed"] == "00:00"

    assert client.post("/api/calls", json={"callId": "manual-1"}).status_code == 409
    assert client.get("/api/calls/manual-1").get_json()["id"] == "manual-1"
    assert client.get("/api/calls/missing").status_code == 404


def test_create_call_without_body(client):
    r = client.post("/api/calls")
    assert r.status_code == 201
    assert r.get_json()["id"]


def test_report_for_call_without_fragments(client):
    client.post("/api/calls", json={"callId": "empty-1"})
    report = client.get("/api/calls/empty-1/report").get_json()
    assert report["classification"]["dataSource"] == "Default"
    assert report["transcript"] == []


def test_clear_calls(client):
    client.post("/api/calls", json={"callId": "a"})
    assert client.delete("/api/calls").get_json() == {"status": "cleared"}
    assert client.get("/api/calls").get_json() == {"active": [], "completed": []}


# -----------------------------------------------------------------------------
# Health, probe, errors
# -----------------------------------------------------------------------------

def test_health(client, offline_adapter):
    data = client.get("/api/health").get_json()
    assert data["status"] == "ok"
    assert data["generative"] == {"backend": "fake", "available": False}


def test_probe(client, adapter):
    adapter.available = False
    data = client.post("/api/ai/probe").get_json()
    assert data == {"backend": "fake", "available": True}
    assert adapter.available is True


def test_unknown_route_is_json_404(client):
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    assert "error" in r.get_json()
