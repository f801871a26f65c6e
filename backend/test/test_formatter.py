"""Tests for dispatcher-facing text: brief, questions, scripts, summary, report."""

import pytest

from services.classifier import classify
from services.formatter import (
    QUESTION_TEMPLATES,
    UNKNOWN_LOCATION,
    build_incident_report,
    extract_where,
    format_brief,
    format_questions,
    format_report_text,
    format_script,
    format_summary,
    select_script_template,
)


def test_brief():
    assert format_brief(classify("I just got robbed at the store")) == "[HIGH] Robbery - immediate response required"
    assert format_brief(classify("")) == "[LOW] Police incident - further assessment needed"


def test_brief_special_case():
    assert format_brief(classify("I want to order a pizza")) == "[LOW] Pizza mentioned - Possible prank call"


def test_brief_multi_agency():
    brief = format_brief(classify("The building is on fire and people are injured"))
    assert brief == "[HIGH] Fire - immediate response required - multi-agency: Medical"


@pytest.mark.parametrize("transcript, category", [
    ("I just got robbed at the store", "Police"),
    ("There's a fire in the kitchen", "Fire"),
    ("drug overdose in the park", "Medical"),
])
def test_questions(transcript, category):
    questions = format_questions(classify(transcript))
    assert questions == list(QUESTION_TEMPLATES[category])
    assert len(questions) <= 3


@pytest.mark.parametrize("transcript, template", [
    ("a man with a gun is chasing my car", "pursuit"),
    ("I want to order a pizza", "non_emergency"),
    ("my dad has chest pain at home", "CARDIAC"),
    ("smoke is coming out of the basement", "SMOKE"),
    ("my neighbour got stabbed", "STABBING"),
    ("my bike was stolen", "Police:standard"),
    ("I just got robbed at the store", "Police:high"),
])
def test_script_selection(transcript, template):
    assert select_script_template(transcript, classify(transcript)) == template


def test_script_fills_placeholders():
    transcript = "There's a fire at 123 Main Street, get here"
    script = format_script(transcript, classify(transcript))
    lines = script.splitlines()
    assert lines[0] == "[HIGH] Fire - code E"
    assert "123 Main Street" in script
    assert "Fire Engine, Ambulance, Fire Chief" in script
    assert "{" not in script


def test_script_without_location():
    script = format_script("my bike was stolen", classify("my bike was stolen"))
    assert UNKNOWN_LOCATION in script


@pytest.mark.parametrize("transcript, where", [
    ("There's a fire at 123 Main Street, hurry", "123 Main Street"),
    ("a crash on Elm Street.", "Elm Street"),
    ("someone collapsed near the library", "the library"),
    ("help me", UNKNOWN_LOCATION),
])
def test_extract_where(transcript, where):
    assert extract_where(transcript) == where


def test_summary():
    summary = format_summary(
        "I am a witness, there was a robbery on Main Street, no one hurt, the suspect was armed"
    )
    assert summary == {
        "who": "Caller reporting",
        "what": "Armed robbery",
        "where": "Main Street",
        "injuries": "No injuries",
        "suspects": "Armed suspect(s)",
    }


def test_summary_defaults():
    assert format_summary("") == {
        "who": "Unknown caller",
        "what": "Incident reported",
        "where": UNKNOWN_LOCATION,
        "injuries": "Injury status unknown",
        "suspects": "No suspects identified",
    }


def test_incident_report():
    transcript = "There's a fire at 123 Main Street and people are injured"
    assessment = classify(transcript)
    entries = [{"text": transcript, "time": "12:00:01"}]
    report = build_incident_report(transcript, assessment, "2026-01-01T12:00:05+00:00", entries=entries)

    assert report["timestamp"] == "2026-01-01T12:00:05+00:00"
    assert report["transcript"] == entries
    assert report["classification"] == assessment.to_dict()
    assert report["standard"] == {"code": "E", "description": "Emergency", "responseTime": "Immediate"}
    assert report["severityLevel"]["severity"] == 1
    assert report["routing"] == list(assessment.routing)
    assert report["summary"]["where"] == "123 Main Street and people are injured"

    text = format_report_text(report)
    assert text.startswith("DISPATCH INCIDENT REPORT")
    assert "Category: Fire" in text
    assert "Agencies: Fire, Medical" in text
    assert "Response target: 5-10 minutes" in text
    assert "[12:00:01] There's a fire" in text


def test_report_without_entries_uses_transcript():
    report = build_incident_report("help me", classify("help me"), "now")
    assert report["transcript"] == [{"text": "help me", "time": ""}]
    assert "ROUTING SUGGESTIONS:" in format_report_text(report)
