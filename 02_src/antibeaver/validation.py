"""Ingress normalization for agent-supplied values."""

import math
from typing import Any

from .models import Priority

DEFAULT_MAX_THOUGHT_CHARS = 50_000
# Largest integer a float holds exactly; also fits an SQLite INTEGER
MAX_LATENCY_MS = 2**53 - 1


def normalize_priority(priority: Any) -> Priority:
    """Map anything that is not exactly P0/P1/P2 to P1."""
    return Priority.normalize(priority)


def normalize_thought(thought: Any, max_chars: int = DEFAULT_MAX_THOUGHT_CHARS) -> str | None:
    """Return usable content, truncated to max_chars, or None if blank."""
    if not isinstance(thought, str):
        return None
    if not thought.strip():
        return None
    if len(thought) > max_chars:
        return thought[:max_chars]
    return thought


def normalize_latency(latency_ms: Any) -> int:
    """Non-numeric or non-finite input becomes 0; clamped to [0, MAX_LATENCY_MS]."""
    if isinstance(latency_ms, bool) or not isinstance(latency_ms, (int, float)):
        return 0
    if isinstance(latency_ms, int):
        return min(MAX_LATENCY_MS, max(0, latency_ms))
    if not math.isfinite(latency_ms):
        return 0
    # Half-up rounding: 500.5 -> 501
    return min(MAX_LATENCY_MS, max(0, int(math.floor(latency_ms + 0.5))))
