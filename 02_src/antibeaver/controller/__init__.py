"""Governance controller module."""

from .controller import (
    ALL_AGENTS,
    DEFAULT_AGENT,
    GovernanceController,
    IGovernanceController,
    SynthesisHandler,
    Transport,
)

__all__ = [
    "ALL_AGENTS",
    "DEFAULT_AGENT",
    "GovernanceController",
    "IGovernanceController",
    "SynthesisHandler",
    "Transport",
]
