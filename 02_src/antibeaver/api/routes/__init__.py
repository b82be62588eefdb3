"""API routes."""

from . import control, governance

__all__ = ["control", "governance"]
