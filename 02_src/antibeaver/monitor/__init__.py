"""Health monitor module."""

from .health_monitor import DEFAULT_WINDOW_MS, HealthMonitor, IHealthMonitor

__all__ = ["DEFAULT_WINDOW_MS", "HealthMonitor", "IHealthMonitor"]
