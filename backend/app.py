"""
Dispatch triage backend: Flask app around the classification engine.

Live-call flow (fragment-based):
  1. The call-taker UI POSTs each caller fragment to /api/chat
  2. The full transcript is re-classified by the engine and pushed over SSE
  3. When enough new text has arrived, a background thread asks the
     generative backend (Ollama or Gemini) for an enrichment
  4. The enrichment is applied only if no newer fragment was classified
     meanwhile, then pushed as enrichment_update
  5. Routing or completing the call (routes/calls.py) moves it to history.

/api/classify and /api/analyze are one-shot endpoints for a whole transcript.
"""

import json
import os
import queue
import threading
from datetime import datetime, timezone
from flask import Flask, request, jsonify, Response

from dotenv import load_dotenv
load_dotenv()

from flask_cors import CORS

from services.ai import get_adapter
from services.call_queue import IN_PROGRESS, call_queue
from services.classifier import default_engine
from services.formatter import format_brief, format_questions, format_script
from services.triage import (
    CallState,
    analyze_fragment,
    apply_enrichment,
    call_states,
    mark_enrichment_requested,
    should_request_enrichment,
    states_lock,
)
from routes.calls import calls_bp
from events import (
    ASSESSMENT_UPDATE,
    CALL_CREATED,
    ENRICHMENT_UPDATE,
    client_count,
    publish,
    subscribe,
    unsubscribe,
)


app = Flask(__name__)
CORS(app)

# Register blueprints
app.register_blueprint(calls_bp)


# ═══════════════════════════════════════════════════════════════════════════════
# Global error handler: API clients always get JSON, never an HTML 500
# ═══════════════════════════════════════════════════════════════════════════════

@app.errorhandler(Exception)
def handle_any_error(e):
    """Last-resort safety net. Log the failure and return a JSON error."""
    import traceback
    from werkzeug.exceptions import HTTPException

    if isinstance(e, HTTPException):
        return jsonify({"error": e.description}), e.code

    print(f"[GLOBAL ERROR] {type(e).__name__}: {e}")
    traceback.print_exc()
    return jsonify({"error": "Internal server error", "detail": str(e)}), 500


def _json_body() -> dict:
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


def _render(assessment, transcript: str) -> dict:
    """Assessment plus the call-taker aids derived from it."""
    return {
        "assessment": assessment.to_dict(),
        "urgentBrief": format_brief(assessment),
        "questions": format_questions(assessment),
        "script": format_script(transcript, assessment),
    }


# ═══════════════════════════════════════════════════════════════════════════════
# Live call processing (state map: services.triage.call_states)
# ═══════════════════════════════════════════════════════════════════════════════

def _enrich_in_background(call_id: str, seq: int, transcript: str, assessment):
    """Ask the generative backend; apply and broadcast only if still current."""
    enriched = get_adapter().try_generate(transcript, assessment)
    with states_lock:
        state = call_states.get(call_id)
        # Gone (closed or cleared) or reopened under the same id.
        if state is None or state.full_text() != transcript:
            return
        state, applied = apply_enrichment(state, seq, enriched)
        call_states[call_id] = state
        if not applied:
            return

        brief = enriched.urgent_brief or format_brief(enriched.assessment)
        record = call_queue.update_call(call_id, assessment=enriched.assessment, urgent_brief=brief)
        print(f"[Triage] {call_id}: enrichment applied (seq={seq}, backend={enriched.backend})")
        publish(
            ENRICHMENT_UPDATE,
            call_id=call_id,
            seq=seq,
            result=enriched.to_dict(),
            call=record.to_dict() if record else None,
        )


def handle_transcript_fragment(call_id: str, text: str) -> dict:
    """
    Process one caller fragment and return everything the call-taker UI needs.
    The engine answer is returned immediately; enrichment arrives over SSE.
    """
    with states_lock:
        record = call_queue.get(call_id)
        if record is not None and record.status != IN_PROGRESS:
            return {"error": f"Call {call_id} is already {(record.outcome or record.status).lower()}"}

        if record is None:
            record = call_queue.create_call(call_id)
            call_states[call_id] = CallState(call_id=call_id)
            publish(CALL_CREATED, call=record.to_dict())

        state = call_states.get(call_id) or CallState(call_id=call_id)
        state = analyze_fragment(state, text, engine=default_engine())
        enrich = get_adapter().available and should_request_enrichment(state)
        if enrich:
            state = mark_enrichment_requested(state)
        call_states[call_id] = state

        transcript = state.full_text()
        assessment = state.assessment
        rendered = _render(assessment, transcript)
        record = call_queue.update_call(
            call_id,
            assessment=assessment,
            transcript=transcript,
            entries=state.entries,
            urgent_brief=rendered["urgentBrief"],
        )

        result = {
            "call_id": call_id,
            "seq": state.seq,
            "transcript": [e.to_dict() for e in state.entries],
            "status": record.status if record else IN_PROGRESS,
            "enrichmentPending": enrich,
            **rendered,
        }
        publish(ASSESSMENT_UPDATE, call_id=call_id, seq=state.seq,
                call=record.to_dict() if record else None, **rendered)

    if enrich:
        threading.Thread(
            target=_enrich_in_background,
            args=(call_id, state.seq, transcript, assessment),
            daemon=True,
        ).start()

    return result


# ═══════════════════════════════════════════════════════════════════════════════
# One-shot classification
# ═══════════════════════════════════════════════════════════════════════════════

@app.route("/api/classify", methods=["POST"])
def classify_transcript():
    """
    Engine-only classification. Send JSON: {"transcript": "..."}
    Always answers; an empty transcript gets the default assessment.
    """
    transcript = _json_body().get("transcript")
    if transcript is not None and not isinstance(transcript, str):
        return jsonify({"error": "transcript must be a string"}), 400
    transcript = transcript or ""
    return jsonify(_render(default_engine().classify(transcript), transcript))


@app.route("/api/analyze", methods=["POST"])
def analyze_transcript():
    """
    Engine classification, enriched by the generative backend when it is
    reachable and answers within the timeout.
    """
    transcript = _json_body().get("transcript")
    if not isinstance(transcript, str) or not transcript.strip():
        return jsonify({"error": "transcript is required"}), 400

    result = get_adapter().analyze(transcript, default_engine().classify(transcript))
    out = result.to_dict()
    out.setdefault("urgentBrief", format_brief(result.assessment))
    out.setdefault("questions", format_questions(result.assessment))
    out["script"] = format_script(transcript, result.assessment)
    return jsonify(out)


# ═══════════════════════════════════════════════════════════════════════════════
# Live calls
# ═══════════════════════════════════════════════════════════════════════════════

@app.route("/api/events")
def events():
    """Server-Sent Events: call, assessment and enrichment updates."""
    def gen():
        q = subscribe()
        try:
            while True:
                try:
                    event = q.get(timeout=30)
                    yield f"data: {json.dumps(event)}\n\n"
                except queue.Empty:
                    yield ": keepalive\n\n"
        finally:
            unsubscribe(q)

    return Response(
        gen(),
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "Access-Control-Allow-Origin": "*",
        },
    )


@app.route("/api/chat", methods=["POST"])
def chat():
    """
    One caller fragment per request.
    Send JSON: {"call_id": "any-string", "message": "what the caller says"}
    """
    data = _json_body()
    call_id = data.get("call_id")
    message = data.get("message")

    if not call_id or not isinstance(message, str) or not message.strip():
        return jsonify({"error": "call_id and message are required"}), 400

    result = handle_transcript_fragment(str(call_id), message)
    if "error" in result:
        return jsonify(result), 409
    return jsonify(result)


@app.route("/api/health")
def health():
    adapter = get_adapter()
    return jsonify({
        "status": "ok",
        "message": "Backend connected",
        "generative": {"backend": adapter.backend.name, "available": adapter.available},
        "activeCalls": len(call_queue.active()),
        "sseClients": client_count(),
        "time": datetime.now(timezone.utc).isoformat(),
    })


@app.route("/api/ai/probe", methods=["POST"])
def probe_backend():
    """Re-check the generative backend now (blocks for at most the probe timeout)."""
    adapter = get_adapter()
    available = adapter.check_availability()
    return jsonify({"backend": adapter.backend.name, "available": available})


@app.route("/api")
def index():
    return jsonify({"message": "Dispatch Triage API"})


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5001))
    debug = os.environ.get("FLASK_DEBUG", "0").lower() in ("1", "true", "yes")

    print("=" * 60)
    if debug:
        print(f"  [Dev] Dispatch triage backend starting on http://localhost:{port}")
    else:
        print(f"  Dispatch triage backend starting on http://0.0.0.0:{port}")
    print("=" * 60)

    # Probe once (avoid double-run when debug reloader is on)
    should_probe = (not debug) or (os.environ.get("WERKZEUG_RUN_MAIN") == "true")
    if should_probe:
        get_adapter().start_probe()

    app.run(
        host="0.0.0.0",
        port=port,
        debug=debug,
        use_reloader=debug,
    )
