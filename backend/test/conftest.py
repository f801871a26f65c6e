"""
Shared fixtures. Tests run from the repo root or from backend/; either way
backend/ must be importable so `from services.x import ...` resolves.
"""

import json
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from services import ai
from services.ai import GenerativeAdapter, GenerativeBackend
from services.call_queue import call_queue

ENRICHMENT = {
    "urgentBrief": "[HIGH] Armed robbery - suspect fled on foot",
    "summary": {"who": "Caller", "what": "Robbery", "where": "Corner store",
                "injuries": "None", "suspects": "One male"},
    "questions": ["Is anyone hurt?", "Which way did he go?", "Was he armed?", "Extra question"],
    "category": "Police",
    "priority": "High",
    "confidence": 92,
    "keywords": ["robbery", "weapon"],
    "routing": ["Police Patrol", "Detective"],
}


class FakeBackend(GenerativeBackend):
    """Canned backend: answers analysis prompts with JSON and summary prompts with text."""

    name = "fake"

    def __init__(self, reachable=True, reply=None, error=None):
        self.reachable = reachable
        self.reply = reply if reply is not None else "Here you go:\n" + json.dumps(ENRICHMENT)
        self.error = error
        self.prompts = []

    def probe(self, timeout):
        return self.reachable

    def generate(self, prompt, timeout):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if prompt.rstrip().endswith("Summary:"):
            return "Robbery at the corner store, patrol dispatched."
        return self.reply


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def adapter(monkeypatch, fake_backend):
    """Shared adapter swapped for one around the fake backend, marked available."""
    adapter = GenerativeAdapter(fake_backend, timeout=2, probe_timeout=1)
    adapter.check_availability()
    monkeypatch.setattr(ai, "_adapter", adapter)
    return adapter


@pytest.fixture
def offline_adapter(monkeypatch):
    """Shared adapter that never reaches a backend."""
    adapter = GenerativeAdapter(FakeBackend(reachable=False), timeout=2, probe_timeout=1)
    monkeypatch.setattr(ai, "_adapter", adapter)
    return adapter


@pytest.fixture(autouse=True)
def empty_queue():
    call_queue.clear()
    yield
    call_queue.clear()
