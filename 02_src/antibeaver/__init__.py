"""Antibeaver: traffic governance for multi-agent systems."""

from .app import Application, IApplication
from .audit import AuditTracker, IAuditTracker
from .config import GovernanceSettings
from .controller import GovernanceController, IGovernanceController
from .decision import decide
from .errors import GovernanceError, InvalidThoughtError, StoreUnavailableError
from .models import (
    AuditEvent,
    BufferDecision,
    BufferedThought,
    BufferResult,
    FlushResult,
    GovernanceMode,
    LatencyResult,
    LatencySample,
    Outcome,
    Priority,
    PurgeResult,
    StatusReport,
    SynthesisEvent,
    SystemState,
    ThoughtStatus,
)
from .monitor import HealthMonitor, IHealthMonitor
from .storage import IThoughtStore, ThoughtStore
from .synthesis import synthesize

__version__ = "0.2.1"

__all__ = [
    # Application
    "Application",
    "IApplication",
    "GovernanceSettings",
    # Models
    "Priority",
    "ThoughtStatus",
    "BufferedThought",
    "SynthesisEvent",
    "LatencySample",
    "SystemState",
    "BufferDecision",
    "GovernanceMode",
    "Outcome",
    "LatencyResult",
    "BufferResult",
    "FlushResult",
    "PurgeResult",
    "StatusReport",
    "AuditEvent",
    # Errors
    "GovernanceError",
    "InvalidThoughtError",
    "StoreUnavailableError",
    # Components
    "IHealthMonitor",
    "HealthMonitor",
    "decide",
    "IThoughtStore",
    "ThoughtStore",
    "synthesize",
    "IAuditTracker",
    "AuditTracker",
    "IGovernanceController",
    "GovernanceController",
]
