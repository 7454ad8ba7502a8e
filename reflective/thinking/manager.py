"""Turn processing for a thought session."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .clients import GenerationConfig, ThoughtGenerator
from .errors import (
    FormatError,
    LoadError,
    PersistenceIOError,
    UnknownCommandError,
    ValidationError,
)
from .formatting import render_thought
from .persistence import load_session, save_session
from .prompts import (
    ALTERNATIVES_MARKER,
    CONFIDENCE_MARKER,
    META_MARKER,
    THOUGHT_SYSTEM_PROMPT,
    build_thought_prompt,
)
from .relevance import SECTION_PREFIX, RelevanceFilter
from .schemas import AppendResult, Thought, normalize_keys
from .storage import ThoughtStore

logger = logging.getLogger(__name__)

GENERATION_ERROR_PREFIX = "Error generating thought:"

SESSION_COMMANDS = ("save", "load", "getState")

_META_LINE = re.compile(rf"^\s*{META_MARKER}:(.*)$", re.IGNORECASE)
_CONFIDENCE_LINE = re.compile(rf"^\s*{CONFIDENCE_MARKER}:\s*(\d+(?:\.\d+)?)\s*%?", re.IGNORECASE)
_ALTERNATIVES_LINE = re.compile(rf"^\s*{ALTERNATIVES_MARKER}:(.*)$", re.IGNORECASE)


def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


@dataclass
class ExtractedMeta:
    body: str
    meta_note: Optional[str] = None
    confidence: Optional[float] = None
    alternatives: Optional[List[str]] = None


def extract_meta(raw: str) -> ExtractedMeta:
    """Pull META / CONFIDENCE / ALTERNATIVES marker lines out of generated text.

    Matching is line-anchored and case-insensitive; only the first line of each
    marker type is consumed, later ones stay in the body. Missing markers are
    not an error.
    """

    meta_note: Optional[str] = None
    confidence: Optional[float] = None
    alternatives: Optional[List[str]] = None
    kept: List[str] = []

    for line in raw.split("\n"):
        if meta_note is None:
            match = _META_LINE.match(line)
            if match:
                meta_note = match.group(1).strip()
                continue
        if confidence is None:
            match = _CONFIDENCE_LINE.match(line)
            if match:
                confidence = clamp(float(match.group(1)) / 100, 0.0, 1.0)
                continue
        if alternatives is None:
            match = _ALTERNATIVES_LINE.match(line)
            if match:
                alternatives = [item.strip() for item in match.group(1).split("|") if item.strip()]
                continue
        kept.append(line)

    return ExtractedMeta(
        body="\n".join(kept).strip(),
        meta_note=meta_note,
        confidence=confidence,
        alternatives=alternatives,
    )


@dataclass
class ThoughtSessionManager:
    """Validate turns, consult the generator, and record thoughts in the store."""

    store: ThoughtStore
    generator: ThoughtGenerator
    generation_config: GenerationConfig = field(default_factory=GenerationConfig)
    context_filter: Optional[RelevanceFilter] = None

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------
    def process(self, request: Mapping[str, Any]) -> Dict[str, Any]:
        """Handle one turn request or session command; never raises past here."""

        if not isinstance(request, Mapping):
            return {"status": "failed", "error": "Request must be an object", "field": "request"}
        data = normalize_keys(request)
        if data.get("command") is not None:
            return self.handle_command(data)
        return self.process_turn(data)

    # ------------------------------------------------------------------
    # Thought turns
    # ------------------------------------------------------------------
    def process_turn(self, request: Mapping[str, Any]) -> Dict[str, Any]:
        try:
            thought = Thought.from_payload(request)
        except ValidationError as exc:
            logger.warning("Rejected turn: %s", exc)
            return {"status": "failed", "error": str(exc), "field": exc.field}

        if thought.index > thought.total_planned:
            thought.total_planned = thought.index

        if not thought.body.strip():
            self._generate(thought)

        try:
            result = self.store.append(thought)
        except ValidationError as exc:
            logger.warning("Rejected generated thought: %s", exc)
            return {"status": "failed", "error": str(exc), "field": exc.field}
        logger.info("\n%s", render_thought(result.thought))
        return self._turn_envelope(result)

    def _generate(self, thought: Thought) -> None:
        prompt = build_thought_prompt(thought, context=self._prompt_context(thought))
        try:
            raw = self.generator.generate(
                prompt,
                config=self.generation_config,
                system_prompt=THOUGHT_SYSTEM_PROMPT,
            )
        except Exception as exc:
            logger.warning("Error generating thought %s: %s", thought.index, exc)
            thought.body = f"{GENERATION_ERROR_PREFIX} {exc}"
            return
        if not raw or not raw.strip():
            logger.warning("Generator returned no text for thought %s", thought.index)
            thought.body = f"{GENERATION_ERROR_PREFIX} generator returned an empty response"
            return

        extracted = extract_meta(raw)
        thought.body = extracted.body or raw.strip()
        if extracted.meta_note is not None:
            thought.meta_note = extracted.meta_note
        if extracted.confidence is not None:
            thought.confidence = extracted.confidence
        if extracted.alternatives is not None:
            thought.alternatives = extracted.alternatives

    def _prompt_context(self, thought: Thought) -> Optional[str]:
        context = thought.context
        if not context or self.context_filter is None or SECTION_PREFIX not in context:
            return context
        result = self.context_filter(context, thought.query)
        return result.text or context

    @staticmethod
    def _turn_envelope(result: AppendResult) -> Dict[str, Any]:
        thought = result.thought
        envelope: Dict[str, Any] = {
            "body": thought.body,
            "index": thought.index,
            "totalPlanned": thought.total_planned,
            "continuationNeeded": thought.continuation_needed,
            "branchIds": list(result.branch_ids),
            "historyLength": result.history_length,
        }
        if thought.meta_note is not None:
            envelope["metaNote"] = thought.meta_note
        if thought.confidence is not None:
            envelope["confidence"] = thought.confidence
        if thought.alternatives is not None:
            envelope["alternatives"] = list(thought.alternatives)
        return envelope

    # ------------------------------------------------------------------
    # Session commands
    # ------------------------------------------------------------------
    def handle_command(self, request: Mapping[str, Any]) -> Dict[str, Any]:
        command = request.get("command")
        try:
            if command not in SESSION_COMMANDS:
                raise UnknownCommandError(str(command))
            if command == "save":
                path = self._command_path(request)
                save_session(self.store, path)
                return {
                    "status": "success",
                    "command": "save",
                    "message": f"Session saved to {path}",
                    "historyLength": len(self.store),
                }
            if command == "load":
                path = self._command_path(request)
                self.load(path)
                return {
                    "status": "success",
                    "command": "load",
                    "message": f"Session loaded from {path}",
                    "historyLength": len(self.store),
                    "branchIds": self.store.branch_ids(),
                }
            last = self.store.last_thought()
            return {
                "status": "success",
                "command": "getState",
                "historyLength": len(self.store),
                "branchIds": self.store.branch_ids(),
                "lastThought": last.to_payload() if last is not None else None,
            }
        except (
            ValidationError,
            UnknownCommandError,
            PersistenceIOError,
            FormatError,
            LoadError,
        ) as exc:
            logger.error("Session command %r failed: %s", command, exc)
            return {"status": "error", "command": command, "message": str(exc)}

    def load(self, path: str) -> Tuple[int, int]:
        snapshot = load_session(path)
        self.store.replace_all(snapshot.history, snapshot.branches)
        for thought in snapshot.history:
            logger.debug("\n%s", render_thought(thought))
        return len(snapshot.history), len(snapshot.branches)

    @staticmethod
    def _command_path(request: Mapping[str, Any]) -> str:
        path = request.get("path")
        if not path or not isinstance(path, str):
            raise ValidationError("path", f"Invalid path: {request.get('command')} requires a path")
        return path


__all__ = [
    "ExtractedMeta",
    "GENERATION_ERROR_PREFIX",
    "SESSION_COMMANDS",
    "ThoughtSessionManager",
    "extract_meta",
]
