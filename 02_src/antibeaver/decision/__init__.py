"""Decision engine module."""

from .engine import HALTED_REASON, HEALTHY_REASON, MANUAL_OVERRIDE_REASON, decide

__all__ = ["decide", "HALTED_REASON", "HEALTHY_REASON", "MANUAL_OVERRIDE_REASON"]
