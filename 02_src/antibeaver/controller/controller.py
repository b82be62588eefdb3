"""Governance controller: routes send-attempts and owns the kill switch."""

import asyncio
import threading
from typing import Any, Awaitable, Callable, Protocol

from ..audit import IAuditTracker
from ..config import GovernanceSettings
from ..decision import decide
from ..errors import InvalidThoughtError, StoreUnavailableError
from ..logging_config import get_logger
from ..models import (
    NO_PENDING_MESSAGE,
    AgentSynthesis,
    BufferDecision,
    BufferResult,
    FlushResult,
    GovernanceMode,
    LatencyResult,
    Outcome,
    Priority,
    PurgeResult,
    StatusReport,
    SystemState,
)
from ..monitor import DEFAULT_WINDOW_MS, IHealthMonitor
from ..storage import IThoughtStore
from ..synthesis import synthesize
from ..validation import normalize_latency, normalize_priority

logger = get_logger(__name__)

ALL_AGENTS = "all"
DEFAULT_AGENT = "main"

# (agent_id, synthesized_text)
SynthesisHandler = Callable[[str, str], Awaitable[None]]
# (agent_id, channel, target, content)
Transport = Callable[[str, str, str, str], Awaitable[None]]


class IGovernanceController(Protocol):
    """Operator and agent-facing surface of the governance engine."""

    async def record_latency(self, latency_ms: Any) -> LatencyResult:
        """Feed a latency observation and run the recovery check."""
        ...

    def decide(self) -> BufferDecision:
        """Current buffering decision."""
        ...

    async def status(self) -> StatusReport:
        """Snapshot of health, mode and queue depth."""
        ...

    async def buffer_attempt(
        self,
        agent_id: str,
        channel: str | None,
        target: str | None,
        content: Any,
        priority: Any = Priority.P1,
    ) -> BufferResult:
        """Queue a thought unconditionally."""
        ...

    async def send_attempt(
        self,
        agent_id: str,
        channel: str | None,
        target: str | None,
        content: Any,
        priority: Any = Priority.P1,
    ) -> BufferResult:
        """Buffer or pass through depending on the current decision."""
        ...

    async def flush(self, agent_id: str = DEFAULT_AGENT, actor: str = "operator") -> FlushResult:
        """Synthesize pending thoughts for one agent or all agents."""
        ...

    async def purge(self, agent_id: str | None = None, actor: str = "operator") -> PurgeResult:
        """Discard pending thoughts without synthesis."""
        ...

    async def set_forced_buffering(self, enabled: bool, actor: str = "operator") -> SystemState:
        """Turn manual buffering on or off."""
        ...

    async def set_simulated_latency(self, latency_ms: Any, actor: str = "operator") -> SystemState:
        """Pretend the network has the given latency."""
        ...

    async def buffer_off(self, actor: str = "operator") -> SystemState:
        """Clear manual buffering and simulated latency."""
        ...

    async def halt(self, actor: str = "operator") -> SystemState:
        """Kill switch: buffer everything until resumed."""
        ...

    async def resume(self, actor: str = "operator") -> SystemState:
        """Clear the kill switch and every other override."""
        ...


class GovernanceController:
    """Circuit breaker in front of agent output.

    Overrides live in one immutable SystemState that is swapped as a whole,
    so a decision never sees a half-applied change. Leaving BUFFERING for
    NORMAL drains every agent's queue through the synthesizer.
    """

    def __init__(
        self,
        storage: IThoughtStore,
        monitor: IHealthMonitor,
        tracker: IAuditTracker,
        settings: GovernanceSettings | None = None,
        on_synthesis: SynthesisHandler | None = None,
        transport: Transport | None = None,
    ):
        self._storage = storage
        self._monitor = monitor
        self._tracker = tracker
        self._settings = settings or GovernanceSettings()
        self._on_synthesis = on_synthesis
        self._transport = transport

        self._state = SystemState()
        self._state_lock = threading.Lock()
        self._mode = GovernanceMode.NORMAL
        self._recovery_task: asyncio.Task | None = None
        self._running = False

    # State

    @property
    def state(self) -> SystemState:
        return self._state

    @property
    def mode(self) -> GovernanceMode:
        return self._mode

    @property
    def threshold_ms(self) -> int:
        return self._settings.latency_threshold_ms

    @property
    def monitor(self) -> IHealthMonitor:
        return self._monitor

    def _update_state(self, **changes) -> tuple[SystemState, SystemState]:
        with self._state_lock:
            previous = self._state
            self._state = previous.evolve(**changes)
            return previous, self._state

    def _replace_state(self, state: SystemState) -> SystemState:
        with self._state_lock:
            previous = self._state
            self._state = state
            return previous

    @staticmethod
    def _mode_for(state: SystemState, decision: BufferDecision) -> GovernanceMode:
        if state.halted:
            return GovernanceMode.HALTED
        if decision.buffering:
            return GovernanceMode.BUFFERING
        return GovernanceMode.NORMAL

    def decide(self) -> BufferDecision:
        return decide(self._monitor, self.threshold_ms, self._state)

    async def _evaluate(self, actor: str = "controller") -> tuple[BufferDecision, FlushResult | None]:
        """Re-run the decision, record mode changes, drain on recovery."""
        state = self._state
        decision = decide(self._monitor, self.threshold_ms, state)
        previous = self._mode
        current = self._mode_for(state, decision)
        self._mode = current

        if previous == current:
            return decision, None

        logger.info(
            "Mode %s -> %s (%s)",
            previous.value,
            current.value,
            decision.reason,
            extra={"mode": current.value, "latency_ms": decision.latency_ms},
        )
        await self._tracker.track(
            event_type="mode_changed",
            actor=actor,
            data={
                "from": previous.value,
                "to": current.value,
                "reason": decision.reason,
            },
        )

        if previous is GovernanceMode.BUFFERING and current is GovernanceMode.NORMAL:
            return decision, await self.flush(ALL_AGENTS, actor="recovery")
        return decision, None

    async def check_recovery(self) -> FlushResult | None:
        """Flush all agents if conditions just turned healthy."""
        _, flushed = await self._evaluate()
        return flushed

    # Latency

    async def record_latency(self, latency_ms: Any) -> LatencyResult:
        value = normalize_latency(latency_ms)
        self._monitor.record(value)

        outcome = Outcome.OK
        try:
            depth = await self._storage.pending_count()
            await self._storage.record_metric(value, depth)
        except StoreUnavailableError as e:
            logger.warning("Latency metric not persisted: %s", e)
            outcome = Outcome.DEGRADED

        await self._evaluate()

        average = self._monitor.average(DEFAULT_WINDOW_MS, self._state.simulated_latency_ms)
        return LatencyResult(recorded=True, average=round(average), outcome=outcome)

    # Agent traffic

    async def buffer_attempt(
        self,
        agent_id: str,
        channel: str | None,
        target: str | None,
        content: Any,
        priority: Any = Priority.P1,
    ) -> BufferResult:
        try:
            thought_id = await self._storage.insert(
                agent_id,
                channel or "unknown",
                target or "",
                content,
                normalize_priority(priority),
            )
        except InvalidThoughtError as e:
            logger.info("Rejected thought for %s: %s", agent_id, e)
            return BufferResult(outcome=Outcome.REJECTED, error=str(e))
        except StoreUnavailableError as e:
            logger.error("Buffering unavailable for %s: %s", agent_id, e, exc_info=True)
            return BufferResult(outcome=Outcome.DEGRADED, error=str(e))

        pending = await self._storage.pending_count(agent_id)
        capacity = self._settings.max_buffer_size
        warning = f"Buffer at capacity ({capacity})." if pending >= capacity else None
        hint = "Thought buffered. Do not retry."
        if warning:
            hint = f"{hint} {warning}"

        logger.info(
            'Buffered #%s: "%s..." (%s pending)',
            thought_id,
            str(content)[:40],
            pending,
            extra={"agent_id": agent_id, "thought_id": thought_id, "pending": pending},
        )
        return BufferResult(
            outcome=Outcome.BUFFERED,
            id=thought_id,
            pending=pending,
            warning=warning,
            hint=hint,
        )

    async def send_attempt(
        self,
        agent_id: str,
        channel: str | None,
        target: str | None,
        content: Any,
        priority: Any = Priority.P1,
    ) -> BufferResult:
        decision, _ = await self._evaluate()
        if decision.buffering:
            return await self.buffer_attempt(agent_id, channel, target, content, priority)

        if self._transport is not None:
            await self._transport(agent_id, channel or "unknown", target or "", content)
        return BufferResult(outcome=Outcome.PASSED, hint="Queue healthy.")

    # Flush / purge

    async def flush(self, agent_id: str = DEFAULT_AGENT, actor: str = "operator") -> FlushResult:
        if agent_id == ALL_AGENTS:
            agents = sorted(await self._storage.agents_with_pending())
        else:
            agents = [agent_id]

        syntheses: list[AgentSynthesis] = []
        degraded = False
        for agent in agents:
            thoughts = await self._storage.pending(agent)
            if not thoughts:
                continue

            text = synthesize(thoughts)
            try:
                count = await self._storage.mark_synthesized(
                    agent, text, through_id=max(t.id for t in thoughts)
                )
            except StoreUnavailableError as e:
                logger.error("Synthesis for %s not recorded: %s", agent, e, exc_info=True)
                degraded = True
                continue

            # Zero means a concurrent flush already consumed this batch
            if count == 0:
                continue
            if count != len(thoughts):
                logger.warning(
                    "Synthesis for %s lists %s thoughts but %s were still pending",
                    agent,
                    len(thoughts),
                    count,
                    extra={"agent_id": agent, "pending": count},
                )

            syntheses.append(AgentSynthesis(agent_id=agent, thought_count=count, text=text))
            logger.info("Synthesized %s thoughts for %s", count, agent)
            await self._deliver(agent, text)

        if syntheses:
            await self._tracker.track(
                event_type="flush",
                actor=actor,
                data={s.agent_id: s.thought_count for s in syntheses},
            )

        outcome = Outcome.DEGRADED if degraded else Outcome.OK
        if not syntheses:
            return FlushResult(outcome=outcome, message=NO_PENDING_MESSAGE)
        return FlushResult(outcome=outcome, syntheses=syntheses)

    async def _deliver(self, agent_id: str, text: str) -> None:
        if self._on_synthesis is None:
            return
        try:
            await self._on_synthesis(agent_id, text)
        except Exception as e:
            logger.error("Synthesis handler failed for %s: %s", agent_id, e, exc_info=True)

    async def purge(self, agent_id: str | None = None, actor: str = "operator") -> PurgeResult:
        try:
            discarded = await self._storage.purge(agent_id)
        except StoreUnavailableError as e:
            logger.error("Purge failed: %s", e, exc_info=True)
            return PurgeResult(outcome=Outcome.DEGRADED, error=str(e))

        logger.info("Discarded %s pending thoughts (%s)", discarded, agent_id or "all agents")
        await self._tracker.track(
            event_type="purge",
            actor=actor,
            data={"agent_id": agent_id, "discarded": discarded},
        )
        return PurgeResult(outcome=Outcome.OK, discarded=discarded)

    # Status

    async def status(self) -> StatusReport:
        state = self._state
        decision = decide(self._monitor, self.threshold_ms, state)
        agents = await self._storage.pending_counts()
        simulated = state.simulated_latency_ms

        return StatusReport(
            buffering=decision.buffering,
            reason=decision.reason,
            mode=self._mode_for(state, decision).value,
            halted=state.halted,
            pending=sum(agents.values()),
            agents=agents,
            avg_latency=round(self._monitor.average(DEFAULT_WINDOW_MS, simulated)),
            max_latency=round(self._monitor.max(DEFAULT_WINDOW_MS, simulated)),
            threshold=self.threshold_ms,
            hint=(
                "Use buffer_thought instead of direct messages."
                if decision.buffering
                else "Queue healthy."
            ),
            outcome=Outcome.OK if self._storage_available() else Outcome.DEGRADED,
        )

    def _storage_available(self) -> bool:
        return getattr(self._storage, "available", True)

    # Operator overrides

    async def set_forced_buffering(self, enabled: bool, actor: str = "operator") -> SystemState:
        _, state = self._update_state(forced_buffering=bool(enabled))
        await self._tracker.track(
            event_type="buffer_on" if enabled else "buffer_forced_off",
            actor=actor,
            data={"forced_buffering": state.forced_buffering},
        )
        await self._evaluate(actor)
        return state

    async def set_simulated_latency(self, latency_ms: Any, actor: str = "operator") -> SystemState:
        _, state = self._update_state(simulated_latency_ms=normalize_latency(latency_ms))
        await self._tracker.track(
            event_type="simulate",
            actor=actor,
            data={"simulated_latency_ms": state.simulated_latency_ms},
        )
        await self._evaluate(actor)
        return state

    async def buffer_off(self, actor: str = "operator") -> SystemState:
        _, state = self._update_state(forced_buffering=False, simulated_latency_ms=0)
        await self._tracker.track(event_type="buffer_off", actor=actor, data={})
        await self._evaluate(actor)
        return state

    async def halt(self, actor: str = "operator") -> SystemState:
        # Flag flips before the first await; the next decision already sees it
        previous, state = self._update_state(halted=True)
        self._mode = GovernanceMode.HALTED
        logger.warning(
            "HALT by %s (already halted: %s)",
            actor,
            previous.halted,
            extra={"actor": actor, "mode": GovernanceMode.HALTED.value},
        )
        await self._tracker.track(
            event_type="halt",
            actor=actor,
            data={"already_halted": previous.halted},
        )
        return state

    async def resume(self, actor: str = "operator") -> SystemState:
        previous = self._replace_state(SystemState())
        logger.warning(
            "RESUME by %s (was halted: %s)",
            actor,
            previous.halted,
            extra={"actor": actor},
        )
        await self._tracker.track(
            event_type="resume",
            actor=actor,
            data={"was_halted": previous.halted},
        )
        await self._evaluate(actor)
        return self._state

    # Lifecycle

    async def start(self) -> None:
        """Start the periodic recovery check."""
        if self._running:
            return
        self._running = True
        self._recovery_task = asyncio.create_task(self._recovery_loop())
        logger.info("Governance controller started (threshold %sms)", self.threshold_ms)

    async def stop(self) -> None:
        """Stop the periodic recovery check."""
        self._running = False
        if self._recovery_task:
            self._recovery_task.cancel()
            try:
                await self._recovery_task
            except asyncio.CancelledError:
                pass
            self._recovery_task = None

    async def _recovery_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self._settings.recovery_interval_s)
                await self.check_recovery()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Recovery check error: {e}", exc_info=True)
