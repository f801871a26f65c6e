"""
Centralized config for the triage backend.
Loads backend choice, model names and timeouts from environment; no secrets in code.
"""
import os

# Generative backend: "ollama" (local HTTP), "gemini" (google-genai) or "none".
GENERATIVE_BACKEND = os.getenv("GENERATIVE_BACKEND", "ollama")

# Seconds. The engine's own result is rendered immediately, so these only
# bound how long an enrichment may take before it is dropped.
GENERATIVE_TIMEOUT = float(os.getenv("GENERATIVE_TIMEOUT", "8"))
PROBE_TIMEOUT = float(os.getenv("PROBE_TIMEOUT", "2"))

# Ollama
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434/api")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.2")

# Gemini
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")

# Live-call enrichment debounce: only ask the backend once the transcript is
# long enough and has grown enough since the last request.
MIN_ANALYSIS_CHARS = int(os.getenv("MIN_ANALYSIS_CHARS", "20"))
MIN_ANALYSIS_GROWTH = int(os.getenv("MIN_ANALYSIS_GROWTH", "30"))

# Completed-call history kept in memory.
COMPLETED_CALLS_LIMIT = int(os.getenv("COMPLETED_CALLS_LIMIT", "50"))
