"""Governance state and decision models."""

from dataclasses import dataclass, replace
from enum import Enum


class GovernanceMode(str, Enum):
    """Controller modes."""

    NORMAL = "normal"
    BUFFERING = "buffering"
    HALTED = "halted"


@dataclass(frozen=True)
class SystemState:
    """Operator overrides. Replaced as a whole, never mutated in place."""

    forced_buffering: bool = False
    simulated_latency_ms: float = 0
    halted: bool = False

    def evolve(self, **changes) -> "SystemState":
        return replace(self, **changes)


@dataclass(frozen=True)
class BufferDecision:
    """Outcome of a buffering decision."""

    buffering: bool
    reason: str
    latency_ms: float
