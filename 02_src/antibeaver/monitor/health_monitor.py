"""Rolling latency window used as the circuit breaker's health signal."""

import threading
import time
from collections import deque
from typing import Callable, Protocol

from ..models.latency import LatencySample

DEFAULT_WINDOW_MS = 60_000
DEFAULT_CAPACITY = 100

Clock = Callable[[], float]


def wall_clock_ms() -> float:
    return time.time() * 1000


class IHealthMonitor(Protocol):
    """Bounded window of latency observations."""

    def record(self, latency_ms: float) -> None:
        """Append an observation, evicting the oldest beyond capacity."""
        ...

    def average(self, window_ms: float = DEFAULT_WINDOW_MS, fallback: float = 0) -> float:
        """Mean of in-window samples, or fallback when there are none."""
        ...

    def max(self, window_ms: float = DEFAULT_WINDOW_MS, fallback: float = 0) -> float:
        """Largest in-window sample, or fallback when there are none."""
        ...

    def sample_count(self) -> int:
        """Number of samples currently held."""
        ...

    def clear(self) -> None:
        """Drop every sample."""
        ...


class HealthMonitor:
    """Fixed-capacity ring of latency samples.

    Aggregates only look at samples younger than ``window_ms`` so old spikes
    age out even while the ring still holds them.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, clock: Clock = wall_clock_ms):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._clock = clock
        self._samples: deque[LatencySample] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def record(self, latency_ms: float) -> None:
        self._append(self._clock(), latency_ms)

    def inject_sample(self, ts_ms: float, latency_ms: float) -> None:
        """Add a sample with an explicit timestamp (tests and replay)."""
        self._append(ts_ms, latency_ms)

    def _append(self, ts_ms: float, latency_ms: float) -> None:
        sample = LatencySample(timestamp=ts_ms, latency_ms=max(0, latency_ms))
        with self._lock:
            # deque(maxlen=...) evicts from the left
            self._samples.append(sample)

    def _recent(self, window_ms: float) -> list[float]:
        now = self._clock()
        with self._lock:
            return [s.latency_ms for s in self._samples if now - s.timestamp < window_ms]

    def average(self, window_ms: float = DEFAULT_WINDOW_MS, fallback: float = 0) -> float:
        recent = self._recent(window_ms)
        if not recent:
            return fallback
        return sum(recent) / len(recent)

    def max(self, window_ms: float = DEFAULT_WINDOW_MS, fallback: float = 0) -> float:
        recent = self._recent(window_ms)
        if not recent:
            return fallback
        return max(recent)

    def sample_count(self) -> int:
        with self._lock:
            return len(self._samples)

    def clear(self) -> None:
        with self._lock:
            self._samples.clear()
