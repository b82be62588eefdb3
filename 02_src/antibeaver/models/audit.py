"""Audit trail data models."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class AuditEvent:
    """A single operator or mode-change record."""

    id: str
    event_type: str  # e.g. "halt", "mode_changed", "flush"
    actor: str  # operator id or component name
    data: dict
    timestamp: datetime
