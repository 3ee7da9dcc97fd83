"""Formats previously stored research into a prompt block for new runs."""

from __future__ import annotations

from typing import Sequence

from nexus.models.schemas import MemoryContext

ANSWER_EXCERPT_CHARS = 600
TRUNCATION_MARKER = "..."
HEADER_BANNER = "━━━ PRIOR RESEARCH CONTEXTS ━━━"
FOOTER_BANNER = "━━━ END CONTEXTS ━━━"
USAGE_DIRECTIVE = "Use the above prior research to inform your current analysis."


def format_context(position: int, context: MemoryContext) -> str:
    return (
        f"[Context {position}]\n"
        f"Previous Query: {context.query}\n"
        f"Previous Answer: {context.answer[:ANSWER_EXCERPT_CHARS]}{TRUNCATION_MARKER}"
    )


def build_memory_section(contexts: Sequence[MemoryContext]) -> str:
    """Return the memory block to prepend to prompts, or "" when nothing is selected."""
    if not contexts:
        return ""
    body = "\n\n".join(format_context(i + 1, c) for i, c in enumerate(contexts))
    return f"\n\n{HEADER_BANNER}\n{body}\n{FOOTER_BANNER}\n\n{USAGE_DIRECTIVE}"
