"""Storage module."""

from .storage import IThoughtStore, ThoughtStore

__all__ = ["IThoughtStore", "ThoughtStore"]
