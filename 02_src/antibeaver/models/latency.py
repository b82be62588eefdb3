"""Latency observation model."""

from dataclasses import dataclass


@dataclass(frozen=True)
class LatencySample:
    """One observation, timestamped in epoch milliseconds."""

    timestamp: float
    latency_ms: float
