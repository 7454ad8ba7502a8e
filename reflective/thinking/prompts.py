"""Prompt templates for thought generation."""

from __future__ import annotations

from typing import Optional

from .schemas import Thought

META_MARKER = "META"
CONFIDENCE_MARKER = "CONFIDENCE"
ALTERNATIVES_MARKER = "ALTERNATIVES"

THOUGHT_SYSTEM_PROMPT = f"""
You are a careful analyst producing one step of a longer chain of reasoning.
Write the requested thought as plain analytical prose.

After the thought you may add, each on its own line:
{META_MARKER}: <one sentence of commentary on your own reasoning>
{CONFIDENCE_MARKER}: <how confident you are in this thought, as a percentage>
{ALTERNATIVES_MARKER}: <alternative approach> | <another alternative approach>
""".strip()

NO_CODE_INSTRUCTION = "Remember: DO NOT generate any code, only provide analytical thinking."


def build_thought_prompt(thought: Thought, context: Optional[str] = None) -> str:
    """Assemble the user prompt for ``thought``.

    ``context`` overrides ``thought.context`` so a filtered context can be sent
    while the stored thought keeps the caller's original text.
    """

    context_text = thought.context if context is None else context
    prompt = f"Query: {thought.query}\n"
    if context_text:
        prompt += f"Context: {context_text}\n"
    if thought.approach:
        prompt += f"Approach: {thought.approach}\n"
    if thought.previous_bodies:
        prompt += "Previous thoughts:\n" + "\n".join(thought.previous_bodies) + "\n"

    prompt += f"\nGenerate thought #{thought.index} of {thought.total_planned}"
    if thought.is_revision:
        prompt += f" (revising thought #{thought.revises_index})"
    elif thought.branch_from_index is not None:
        prompt += f" (branching from thought #{thought.branch_from_index})"
    prompt += f"\n{NO_CODE_INSTRUCTION}"
    return prompt


__all__ = [
    "ALTERNATIVES_MARKER",
    "CONFIDENCE_MARKER",
    "META_MARKER",
    "NO_CODE_INSTRUCTION",
    "THOUGHT_SYSTEM_PROMPT",
    "build_thought_prompt",
]
