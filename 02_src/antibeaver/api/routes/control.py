"""Operator control routes: kill switch and buffering overrides."""

from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ...app import IApplication
from ...models import SystemState


class OperatorRequest(BaseModel):
    """Request model identifying the operator."""

    actor: str = "operator"


class SimulateRequest(OperatorRequest):
    """Request model for simulated latency."""

    latency_ms: Any = 0


class StateResponse(BaseModel):
    """Response model for override state."""

    status: str
    mode: str
    forced_buffering: bool
    simulated_latency_ms: float
    halted: bool
    message: str


def _state_response(app: IApplication, state: SystemState, message: str) -> dict:
    return {
        "status": "ok",
        "mode": app.controller.mode.value,
        "forced_buffering": state.forced_buffering,
        "simulated_latency_ms": state.simulated_latency_ms,
        "halted": state.halted,
        "message": message,
    }


def create_control_router(app: IApplication) -> APIRouter:
    """Create control router."""
    router = APIRouter(prefix="/api/control", tags=["control"])

    @router.post("/halt", response_model=StateResponse)
    async def halt(request: OperatorRequest) -> dict:
        """Kill switch: buffer all agent output until resumed."""
        state = await app.controller.halt(actor=request.actor)
        return _state_response(
            app, state, "SYSTEM HALTED. All agent output suspended until resume."
        )

    @router.post("/resume", response_model=StateResponse)
    async def resume(request: OperatorRequest) -> dict:
        """Clear the kill switch and every override."""
        state = await app.controller.resume(actor=request.actor)
        return _state_response(app, state, "Resumed automatic mode.")

    @router.post("/buffer/on", response_model=StateResponse)
    async def buffer_on(request: OperatorRequest) -> dict:
        """Force buffering for all agents."""
        state = await app.controller.set_forced_buffering(True, actor=request.actor)
        return _state_response(app, state, "Buffering enabled for all agents.")

    @router.post("/buffer/off", response_model=StateResponse)
    async def buffer_off(request: OperatorRequest) -> dict:
        """Clear forced buffering and simulated latency."""
        state = await app.controller.buffer_off(actor=request.actor)
        return _state_response(app, state, "Buffering disabled. Automatic mode.")

    @router.post("/simulate", response_model=StateResponse)
    async def simulate(request: SimulateRequest) -> dict:
        """Simulate network latency (0 turns simulation off)."""
        state = await app.controller.set_simulated_latency(
            request.latency_ms, actor=request.actor
        )
        if state.simulated_latency_ms > 0:
            message = f"Simulating {state.simulated_latency_ms}ms latency."
        else:
            message = "Simulation off."
        return _state_response(app, state, message)

    @router.post("/reset", response_model=StateResponse)
    async def reset_system(request: OperatorRequest) -> dict:
        """Reset overrides and stored data between test runs."""
        try:
            await app.reset()
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        return _state_response(app, app.controller.state, "Reset complete.")

    return router
