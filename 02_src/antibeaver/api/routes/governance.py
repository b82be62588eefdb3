"""Governance API routes: status, latency feed, buffering, flush."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from ...app import IApplication
from ...controller import DEFAULT_AGENT


class LatencyRequest(BaseModel):
    """Request model for a latency observation."""

    latency_ms: Any = Field(None, alias="latencyMs")

    model_config = {"populate_by_name": True}


class LatencyResponse(BaseModel):
    """Response model for a latency observation."""

    recorded: bool
    average: float
    outcome: str


class ThoughtRequest(BaseModel):
    """Request model for buffering a thought."""

    thought: Any = None
    agent_id: str = DEFAULT_AGENT
    channel: str | None = None
    target: str | None = None
    priority: Any = None


class BufferResponse(BaseModel):
    """Response model for a buffer attempt."""

    ok: bool
    buffered: bool
    outcome: str
    id: int | None = None
    pending: int = 0
    warning: str | None = None
    hint: str | None = None
    error: str | None = None


class StatusResponse(BaseModel):
    """Response model for governance status."""

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
    outcome: str


class FlushRequest(BaseModel):
    """Request model for a flush; agent_id may be "all"."""

    agent_id: str = DEFAULT_AGENT
    actor: str = "operator"


class SynthesisResponse(BaseModel):
    agent_id: str
    thought_count: int
    text: str


class FlushResponse(BaseModel):
    """Response model for a flush."""

    outcome: str
    syntheses: list[SynthesisResponse]
    message: str | None = None
    text: str


class PurgeRequest(BaseModel):
    """Request model for a purge; no agent_id purges every agent."""

    agent_id: str | None = None
    actor: str = "operator"


class PurgeResponse(BaseModel):
    outcome: str
    discarded: int
    error: str | None = None


class SynthesisEventResponse(BaseModel):
    """Response model for a synthesis audit record."""

    id: int
    agent_id: str
    thought_count: int
    final_output: str | None
    triggered_at: datetime


class AuditEventResponse(BaseModel):
    """Response model for an audit record."""

    id: str
    event_type: str
    actor: str
    data: dict[str, Any]
    timestamp: datetime


def create_governance_router(app: IApplication) -> APIRouter:
    """Create governance router."""
    router = APIRouter(prefix="/api", tags=["governance"])

    @router.get("/status", response_model=StatusResponse)
    async def get_status() -> dict:
        """Current buffering decision and queue health."""
        report = await app.controller.status()
        return report.to_dict()

    @router.post("/latency", response_model=LatencyResponse)
    async def record_latency(request: LatencyRequest) -> dict:
        """Feed a latency observation from the transport layer."""
        result = await app.controller.record_latency(request.latency_ms)
        return result.to_dict()

    @router.post("/thoughts", response_model=BufferResponse)
    async def buffer_thought(request: ThoughtRequest) -> dict:
        """Buffer a thought instead of sending it directly."""
        result = await app.controller.buffer_attempt(
            agent_id=request.agent_id,
            channel=request.channel,
            target=request.target,
            content=request.thought,
            priority=request.priority,
        )
        return result.to_dict()

    @router.post("/flush", response_model=FlushResponse)
    async def flush(request: FlushRequest) -> dict:
        """Synthesize pending thoughts for one agent or "all"."""
        result = await app.controller.flush(request.agent_id, actor=request.actor)
        return result.to_dict()

    @router.post("/purge", response_model=PurgeResponse)
    async def purge(request: PurgeRequest) -> dict:
        """Discard pending thoughts without synthesis."""
        result = await app.controller.purge(request.agent_id, actor=request.actor)
        return result.to_dict()

    @router.get("/synthesis-events", response_model=list[SynthesisEventResponse])
    async def get_synthesis_events(
        agent_id: str | None = Query(None, description="Filter by agent"),
        limit: int = Query(100, ge=1, le=1000),
    ) -> list[dict]:
        """Synthesis audit log, newest first."""
        events = await app.storage.synthesis_events(agent_id=agent_id, limit=limit)
        return [
            {
                "id": e.id,
                "agent_id": e.agent_id,
                "thought_count": e.thought_count,
                "final_output": e.final_output,
                "triggered_at": e.triggered_at.isoformat(),
            }
            for e in events
        ]

    @router.get("/audit-events", response_model=list[AuditEventResponse])
    async def get_audit_events(
        limit: int = Query(100, ge=1, le=1000),
        event_type: str | None = Query(None, description="Filter by event type"),
        actor: str | None = Query(None, description="Filter by actor"),
    ) -> list[dict]:
        """Operator and mode-change audit records, newest first."""
        try:
            events = await app.storage.get_audit_events(
                event_types=[event_type] if event_type else None,
                actor=actor,
                limit=limit,
            )
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

        return [
            {
                "id": e.id,
                "event_type": e.event_type,
                "actor": e.actor,
                "data": e.data,
                "timestamp": e.timestamp.isoformat(),
            }
            for e in events
        ]

    return router
