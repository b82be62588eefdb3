"""Coalescing of buffered thoughts into one recovery prompt."""

from typing import Iterable

from ..models import BufferedThought, Priority

EMPTY_SYNTHESIS = "**SYSTEM: No buffered thoughts to synthesize.**"

_TAGS = {
    Priority.P0: " [CRITICAL]",
    Priority.P1: "",
    Priority.P2: " [low]",
}

_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n"}
_UNESCAPES = {"\\": "\\", '"': '"', "n": "\n"}


def escape_content(content: str) -> str:
    """Escape backslashes, double quotes and newlines for a quoted literal."""
    return "".join(_ESCAPES.get(ch, ch) for ch in content)


def unescape_content(escaped: str) -> str:
    """Inverse of escape_content."""
    out = []
    chars = iter(escaped)
    for ch in chars:
        if ch == "\\":
            nxt = next(chars, "")
            out.append(_UNESCAPES.get(nxt, "\\" + nxt))
        else:
            out.append(ch)
    return "".join(out)


def order_thoughts(thoughts: Iterable[BufferedThought]) -> list[BufferedThought]:
    """P0 first, P2 last; ties by creation time, then id."""
    return sorted(thoughts, key=lambda t: t.sort_key)


def format_timestamp(thought: BufferedThought) -> str:
    return thought.created_at.strftime("%Y-%m-%dT%H:%M:%SZ")


def synthesize(thoughts: Iterable[BufferedThought]) -> str:
    """Render pending thoughts as a single consolidation instruction."""
    ordered = order_thoughts(thoughts)
    if not ordered:
        return EMPTY_SYNTHESIS

    formatted = "\n".join(
        f'{i}. [{format_timestamp(t)}]{_TAGS[t.priority]} "{escape_content(t.content)}"'
        for i, t in enumerate(ordered, start=1)
    )

    critical = sum(1 for t in ordered if t.priority is Priority.P0)
    critical_note = (
        f"\n\n**Note:** {critical} CRITICAL thought(s) — preserve unless clearly obsolete."
        if critical
        else ""
    )

    return (
        "**SYSTEM: NETWORK RECOVERED**\n"
        "\n"
        f"While congested, you drafted {len(ordered)} messages:\n"
        "\n"
        f"{formatted}\n"
        f"{critical_note}\n"
        "\n"
        "**TASK:** Review against current channel state.\n"
        "- Discard obsolete/superseded thoughts\n"
        "- Synthesize remaining into ONE coherent message\n"
        "- Do not apologize or mention delays"
    )
