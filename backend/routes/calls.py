"""
Call-queue API routes.
"""
import threading
from flask import Blueprint, jsonify, request

from events import CALL_COMPLETED, CALL_CREATED, CALL_ROUTED, QUEUE_CLEARED, SUMMARY_UPDATE, publish
from services.ai import get_adapter
from services.call_queue import call_queue
from services.classifier import default_engine
from services.formatter import build_incident_report, format_brief, format_report_text
from services.triage import clear_states, forget_call, states_lock

calls_bp = Blueprint("calls", __name__, url_prefix="/api/calls")


def _assessment_for(record):
    """Calls created without any fragments still get the default assessment."""
    return record.assessment or default_engine().classify(record.transcript)


def _summarize_in_background(record):
    """
    End-of-call summary from the generative backend, or the engine brief when
    it is unavailable. Runs on a thread so routing returns immediately.
    """
    def _finalize():
        assessment = _assessment_for(record)
        summary = get_adapter().summarize(record.transcript, assessment) or format_brief(assessment)
        print(f"[Summary] {record.call_id}: {summary}")
        call_queue.set_summary(record.call_id, summary)
        publish(SUMMARY_UPDATE, call_id=record.call_id, summary=summary)

    thread = threading.Thread(target=_finalize, daemon=True)
    thread.start()
    return thread


@calls_bp.route("", methods=["GET"])
def get_calls():
    """Active calls (highest priority first) and recent history."""
    now = call_queue.now()
    return jsonify({
        "active": [c.to_dict(now) for c in call_queue.active()],
        "completed": [c.to_dict(now) for c in call_queue.completed()],
    })


@calls_bp.route("", methods=["POST"])
def create_call():
    """
    Open a new call in the queue.

    Request body (JSON, all optional):
        - callId: custom call ID, otherwise a UUID is generated
        - callerId: display caller ID, otherwise one is generated

    Returns the created call record.
    """
    data = request.get_json(force=True, silent=True) if request.data else {}
    if not isinstance(data, dict):
        return jsonify({"error": "JSON object body expected"}), 400

    with states_lock:
        existing = call_queue.get(data["callId"]) if data.get("callId") else None
        if existing is not None:
            return jsonify({"error": f"Call {existing.call_id} already exists"}), 409

        record = call_queue.create_call(data.get("callId"), data.get("callerId"))
        forget_call(record.call_id)
        publish(CALL_CREATED, call=record.to_dict())
    return jsonify(record.to_dict()), 201


@calls_bp.route("", methods=["DELETE"])
def clear_calls():
    with states_lock:
        call_queue.clear()
        clear_states()
        publish(QUEUE_CLEARED)
    return jsonify({"status": "cleared"})


@calls_bp.route("/<call_id>", methods=["GET"])
def get_call(call_id: str):
    """Fetch a single call by ID (active or completed)."""
    record = call_queue.get(call_id)
    if not record:
        return jsonify({"error": "Call not found"}), 404
    return jsonify(record.to_dict())


@calls_bp.route("/<call_id>/route", methods=["POST"])
def route_call(call_id: str):
    """Dispatch the call's units; the call moves to history."""
    with states_lock:
        record = call_queue.route_call(call_id)
        if not record:
            return jsonify({"error": "Call not found or not active"}), 404
        forget_call(call_id)
        publish(CALL_ROUTED, call=record.to_dict())
    _summarize_in_background(record)
    return jsonify(record.to_dict())


@calls_bp.route("/<call_id>/complete", methods=["POST"])
def complete_call(call_id: str):
    """End the call without dispatch. Body may carry {"outcome": "..."}."""
    data = request.get_json(force=True, silent=True) or {}
    outcome = data.get("outcome") if isinstance(data, dict) else None
    with states_lock:
        record = call_queue.complete_call(call_id, outcome or "Resolved")
        if not record:
            return jsonify({"error": "Call not found or not active"}), 404
        forget_call(call_id)
        publish(CALL_COMPLETED, call=record.to_dict())
    _summarize_in_background(record)
    return jsonify(record.to_dict())


@calls_bp.route("/<call_id>/report", methods=["GET"])
def call_report(call_id: str):
    """Incident report export. ?format=json (default) or ?format=text."""
    record = call_queue.get(call_id)
    if not record:
        return jsonify({"error": "Call not found"}), 404

    fmt = request.args.get("format", "json").lower()
    if fmt not in ("json", "text"):
        return jsonify({"error": "format must be json or text"}), 400

    report = build_incident_report(
        record.transcript,
        _assessment_for(record),
        generated_at=call_queue.now().isoformat(),
        entries=[e.to_dict() for e in record.entries],
    )
    report["callId"] = record.call_id
    report["callerId"] = record.caller_id
    if record.summary:
        report["narrative"] = record.summary

    if fmt == "text":
        return format_report_text(report), 200, {"Content-Type": "text/plain; charset=utf-8"}
    return jsonify(report)
