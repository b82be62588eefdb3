"""Audit module."""

from .tracker import AuditTracker, IAuditTracker

__all__ = ["AuditTracker", "IAuditTracker"]
