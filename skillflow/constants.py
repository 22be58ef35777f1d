"""Shared constants for skillflow."""

from __future__ import annotations

# Property names never resolved during path traversal or copied during merge.
BLOCKED_PROPERTIES = frozenset({"__proto__", "constructor", "prototype"})

DEFAULT_CACHE_ENABLED = False
DEFAULT_CACHE_SCOPE = "run_only"
DEFAULT_MAX_ATTEMPTS = 1
DEFAULT_BACKOFF_MS = 1000
MAX_RETRY_ATTEMPTS = 5

# Step-level error codes
INPUT_SELECTOR_ERROR = "INPUT_SELECTOR_ERROR"
SKILL_ERROR = "SKILL_ERROR"
EXECUTION_ERROR = "EXECUTION_ERROR"
MAX_RETRIES = "MAX_RETRIES"
SKILL_NOT_FOUND = "SKILL_NOT_FOUND"

# Run-level error codes
STEP_EXECUTION_FAILED = "STEP_EXECUTION_FAILED"
ORCHESTRATION_ERROR = "ORCHESTRATION_ERROR"
TIMEOUT = "TIMEOUT"
MAX_STEPS_EXCEEDED = "MAX_STEPS_EXCEEDED"
