"""Boxed, human-readable rendering of thoughts for diagnostic output."""

from __future__ import annotations

from typing import List

from .schemas import Thought

THOUGHT_LABEL = "💭 Thought"
REVISION_LABEL = "🔄 Revision"
BRANCH_LABEL = "🌿 Branch"


def thought_header(thought: Thought) -> str:
    if thought.is_revision:
        label = REVISION_LABEL
        detail = f" (revising thought {thought.revises_index})"
    elif thought.branch_from_index is not None:
        label = BRANCH_LABEL
        detail = f" (from thought {thought.branch_from_index}, ID: {thought.branch_id})"
    else:
        label = THOUGHT_LABEL
        detail = ""
    return f"{label} {thought.index}/{thought.total_planned}{detail}"


def thought_lines(thought: Thought) -> List[str]:
    content = thought.body
    if thought.confidence is not None:
        content += f"\nConfidence: {thought.confidence * 100:g}%"
    if thought.meta_note:
        content += f"\nMeta: {thought.meta_note}"
    if thought.alternatives:
        content += f"\nAlternatives: {' | '.join(thought.alternatives)}"
    return content.split("\n")


def render_thought(thought: Thought) -> str:
    header = thought_header(thought)
    lines = thought_lines(thought)
    width = max([len(header)] + [len(line) for line in lines])
    border = "─" * (width + 2)

    rendered = [
        f"┌{border}┐",
        f"│ {header.ljust(width)} │",
        f"├{border}┤",
    ]
    rendered.extend(f"│ {line.ljust(width)} │" for line in lines)
    rendered.append(f"└{border}┘")
    return "\n".join(rendered)


__all__ = ["render_thought", "thought_header", "thought_lines"]
