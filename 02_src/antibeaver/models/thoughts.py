"""Buffered thought data models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class Priority(str, Enum):
    """Priority tiers. P0 = critical, P1 = normal, P2 = low."""

    P0 = "P0"
    P1 = "P1"
    P2 = "P2"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    @classmethod
    def normalize(cls, value: Any) -> "Priority":
        """Return the matching tier, or P1 for anything unrecognized."""
        if isinstance(value, str) and value in _PRIORITY_VALUES:
            return cls(value)
        return cls.P1


_PRIORITY_VALUES = {p.value for p in Priority}
_PRIORITY_RANK = {Priority.P0: 0, Priority.P1: 1, Priority.P2: 2}


class ThoughtStatus(str, Enum):
    """Lifecycle of a buffered thought."""

    PENDING = "pending"
    SYNTHESIZED = "synthesized"
    DISCARDED = "discarded"


@dataclass
class BufferedThought:
    """A message held back while the network is congested."""

    id: int
    agent_id: str
    channel: str
    target: str
    content: str
    priority: Priority
    created_at: datetime
    status: ThoughtStatus = ThoughtStatus.PENDING

    @property
    def sort_key(self) -> tuple[int, datetime, int]:
        return (self.priority.rank, self.created_at, self.id)


@dataclass
class SynthesisEvent:
    """Audit record of one coalesced batch."""

    id: int
    agent_id: str
    thought_count: int
    final_output: str | None
    triggered_at: datetime
