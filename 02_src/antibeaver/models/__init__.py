"""Core data models for the governance engine."""

from .audit import AuditEvent
from .latency import LatencySample
from .results import (
    NO_PENDING_MESSAGE,
    AgentSynthesis,
    BufferResult,
    FlushResult,
    LatencyResult,
    Outcome,
    PurgeResult,
    StatusReport,
)
from .state import BufferDecision, GovernanceMode, SystemState
from .thoughts import BufferedThought, Priority, SynthesisEvent, ThoughtStatus

__all__ = [
    # Latency
    "LatencySample",
    # Thoughts
    "Priority",
    "ThoughtStatus",
    "BufferedThought",
    "SynthesisEvent",
    # State
    "SystemState",
    "BufferDecision",
    "GovernanceMode",
    # Results
    "Outcome",
    "LatencyResult",
    "BufferResult",
    "AgentSynthesis",
    "FlushResult",
    "PurgeResult",
    "StatusReport",
    "NO_PENDING_MESSAGE",
    # Audit
    "AuditEvent",
]
