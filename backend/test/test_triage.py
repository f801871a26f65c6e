"""Tests for per-call transcript state: fragments, sequence numbers, debounce, stale guard."""

from services.ai import merge_assessment
from services.triage import (
    CallState,
    add_fragment,
    analyze_fragment,
    apply_enrichment,
    call_states,
    clear_states,
    forget_call,
    join_fragments,
    mark_enrichment_requested,
    should_request_enrichment,
)


def test_join_fragments():
    assert join_fragments(["  there's smoke ", "", None, "in the hallway"]) == "there's smoke in the hallway"


def test_add_fragment_ignores_blank_text():
    state = CallState("c1")
    assert add_fragment(state, "   ") is state
    state = add_fragment(state, " hello ", time="10:00:00")
    assert state.entries[0].to_dict() == {"text": "hello", "time": "10:00:00"}


def test_analyze_fragment_reclassifies_full_transcript():
    state = analyze_fragment(CallState("c1"), "There's been a car accident")
    assert state.seq == 1
    assert state.assessment.priority == "Medium"

    state = analyze_fragment(state, "and now the car is on fire")
    assert state.seq == 2
    assert state.full_text() == "There's been a car accident and now the car is on fire"
    assert state.assessment.category == "Fire"
    assert state.current() is state.assessment


def test_enrichment_applies_only_to_latest_sequence():
    state = analyze_fragment(CallState("c1"), "I just got robbed at the store")
    requested_seq = state.seq
    enriched = merge_assessment(state.assessment, {"confidence": 99}, backend="fake")

    newer = analyze_fragment(state, "he had a knife")
    newer, applied = apply_enrichment(newer, requested_seq, enriched)
    assert not applied
    assert newer.enriched is None
    assert newer.current() is newer.assessment

    state, applied = apply_enrichment(state, requested_seq, enriched)
    assert applied
    assert state.current().confidence == 99


def test_enrichment_goes_stale_after_next_fragment():
    state = analyze_fragment(CallState("c1"), "I just got robbed at the store")
    state, _ = apply_enrichment(state, state.seq, merge_assessment(state.assessment, {"confidence": 99}))
    state = analyze_fragment(state, "he ran toward the park")
    assert state.current() is state.assessment
    assert state.current().confidence != 99


def test_missing_enrichment_is_not_applied():
    state = analyze_fragment(CallState("c1"), "help")
    same, applied = apply_enrichment(state, state.seq, None)
    assert not applied
    assert same is state


def test_enrichment_debounce():
    state = analyze_fragment(CallState("c1"), "help")
    assert not should_request_enrichment(state)

    state = analyze_fragment(state, "there is a fire in my kitchen")
    assert should_request_enrichment(state)
    state = mark_enrichment_requested(state)
    assert state.last_enrichment_length == len(state.full_text())
    assert not should_request_enrichment(state)

    state = analyze_fragment(state, "yes")
    assert not should_request_enrichment(state)

    state = analyze_fragment(state, "the smoke is spreading into the hallway now")
    assert should_request_enrichment(state)


def test_debounce_thresholds_are_configurable():
    state = analyze_fragment(CallState("c1"), "help me")
    assert should_request_enrichment(state, min_chars=5, min_growth=5)
    assert not should_request_enrichment(state, min_chars=50, min_growth=5)


def test_forget_and_clear_states():
    call_states["c1"] = CallState("c1")
    call_states["c2"] = CallState("c2")
    forget_call("c1")
    forget_call("missing")
    assert set(call_states) == {"c2"}
    clear_states()
    assert call_states == {}
