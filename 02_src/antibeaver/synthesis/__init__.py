"""Synthesis module."""

from .synthesizer import (
    EMPTY_SYNTHESIS,
    escape_content,
    order_thoughts,
    synthesize,
    unescape_content,
)

__all__ = [
    "EMPTY_SYNTHESIS",
    "escape_content",
    "order_thoughts",
    "synthesize",
    "unescape_content",
]
