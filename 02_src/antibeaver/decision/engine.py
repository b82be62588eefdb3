"""Buffering decision rules."""

from ..models import BufferDecision, SystemState
from ..monitor import DEFAULT_WINDOW_MS, IHealthMonitor

HALTED_REASON = "halted"
MANUAL_OVERRIDE_REASON = "manual override"
HEALTHY_REASON = "healthy"


def decide(monitor: IHealthMonitor, threshold_ms: float, state: SystemState) -> BufferDecision:
    """Decide whether outbound messages should be buffered.

    Rules are evaluated in a fixed order and the first match wins:
    halt, manual override, simulated latency, measured max latency, healthy.
    Threshold comparisons are strict, so a value exactly at the threshold
    is healthy.
    """
    simulated = state.simulated_latency_ms

    if state.halted:
        return BufferDecision(buffering=True, reason=HALTED_REASON, latency_ms=0)

    if state.forced_buffering:
        return BufferDecision(
            buffering=True,
            reason=MANUAL_OVERRIDE_REASON,
            latency_ms=monitor.average(DEFAULT_WINDOW_MS, simulated),
        )

    if simulated > threshold_ms:
        return BufferDecision(
            buffering=True,
            reason=f"simulated {_fmt_ms(simulated)}ms",
            latency_ms=simulated,
        )

    max_latency = monitor.max(DEFAULT_WINDOW_MS, simulated)
    if max_latency > threshold_ms:
        return BufferDecision(
            buffering=True,
            reason=f"latency {round(max_latency)}ms > {_fmt_ms(threshold_ms)}ms",
            latency_ms=max_latency,
        )

    return BufferDecision(
        buffering=False,
        reason=HEALTHY_REASON,
        latency_ms=monitor.average(DEFAULT_WINDOW_MS, simulated),
    )


def _fmt_ms(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)
