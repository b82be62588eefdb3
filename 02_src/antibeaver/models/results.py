"""Structured results returned by the governance controller."""

from dataclasses import asdict, dataclass, field
from enum import Enum


def _plain(items: list[tuple]) -> dict:
    return {k: v.value if isinstance(v, Enum) else v for k, v in items}


class Outcome(str, Enum):
    """Tag for controller results."""

    OK = "ok"
    BUFFERED = "buffered"
    PASSED = "passed"
    DEGRADED = "degraded"
    REJECTED = "rejected"


NO_PENDING_MESSAGE = "no pending thoughts"


@dataclass
class LatencyResult:
    """Result of recording a latency observation."""

    recorded: bool
    average: float
    outcome: Outcome = Outcome.OK

    def to_dict(self) -> dict:
        return asdict(self, dict_factory=_plain)


@dataclass
class BufferResult:
    """Result of a send or buffer attempt."""

    outcome: Outcome
    id: int | None = None
    pending: int = 0
    warning: str | None = None
    hint: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome in (Outcome.BUFFERED, Outcome.PASSED)

    @property
    def buffered(self) -> bool:
        return self.outcome == Outcome.BUFFERED

    def to_dict(self) -> dict:
        data = asdict(self, dict_factory=_plain)
        data["ok"] = self.ok
        data["buffered"] = self.buffered
        return data


@dataclass
class AgentSynthesis:
    """One agent's coalesced batch."""

    agent_id: str
    thought_count: int
    text: str


@dataclass
class FlushResult:
    """Result of flushing one or all agents."""

    outcome: Outcome
    syntheses: list[AgentSynthesis] = field(default_factory=list)
    message: str | None = None

    @property
    def total_thoughts(self) -> int:
        return sum(s.thought_count for s in self.syntheses)

    def render(self) -> str:
        """Operator-facing text for the flush."""
        if not self.syntheses:
            return self.message or NO_PENDING_MESSAGE
        blocks = [
            f"### {s.agent_id} ({s.thought_count} thoughts)\n\n{s.text}"
            for s in self.syntheses
        ]
        return "**SYNTHESIS**\n\n" + "\n\n---\n\n".join(blocks)

    def to_dict(self) -> dict:
        data = asdict(self, dict_factory=_plain)
        data["text"] = self.render()
        return data


@dataclass
class PurgeResult:
    """Result of discarding pending thoughts."""

    outcome: Outcome
    discarded: int = 0
    error: str | None = None

    def to_dict(self) -> dict:
        return asdict(self, dict_factory=_plain)


@dataclass
class StatusReport:
    """Snapshot of governance health."""

    buffering: bool
    reason: str
    mode: str
    halted: bool
    pending: int
    agents: dict[str, int]
    avg_latency: int
    max_latency: int
    threshold: int
    hint: str
    outcome: Outcome = Outcome.OK

    def to_dict(self) -> dict:
        return asdict(self, dict_factory=_plain)
