"""Typed data structures used by the thought session system."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from .errors import ValidationError

# Keys written by the earlier tool, mapped onto the current wire names.
LEGACY_REQUEST_KEYS: Mapping[str, str] = {
    "thought": "body",
    "thoughtNumber": "index",
    "totalThoughts": "totalPlanned",
    "nextThoughtNeeded": "continuationNeeded",
    "previousThoughts": "previousBodies",
    "revisesThought": "revisesIndex",
    "branchFromThought": "branchFromIndex",
    "needsMoreThoughts": "needsMore",
    "metaComments": "metaNote",
    "confidenceLevel": "confidence",
    "alternativePaths": "alternatives",
    "sessionCommand": "command",
    "sessionPath": "path",
}

_OPTIONAL_STRINGS = ("context", "approach", "body", "metaNote", "branchId")
_OPTIONAL_STRING_LISTS = ("previousBodies", "alternatives")
_OPTIONAL_BOOLS = ("isRevision", "needsMore")
_OPTIONAL_INDEXES = ("revisesIndex", "branchFromIndex")


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_keys(
    data: Mapping[str, Any], aliases: Mapping[str, str] = LEGACY_REQUEST_KEYS
) -> Dict[str, Any]:
    """Return a copy of ``data`` with legacy keys renamed; canonical keys win."""

    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        if key in aliases:
            continue
        normalized[key] = value
    for legacy, canonical in aliases.items():
        if legacy in data and canonical not in normalized:
            normalized[canonical] = data[legacy]
    return normalized


def _positive_int(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(key, f"Invalid {key}: must be a number")
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(key, f"Invalid {key}: must be a whole number")
    if value < 1:
        raise ValidationError(key, f"Invalid {key}: must be at least 1")
    return int(value)


def validate_thought_payload(data: Mapping[str, Any]) -> None:
    """Check a camelCase thought payload, raising :class:`ValidationError`."""

    query = data.get("query")
    if not query or not isinstance(query, str):
        raise ValidationError("query", "Invalid query: must be a non-empty string")
    _positive_int(data, "index")
    _positive_int(data, "totalPlanned")
    if not isinstance(data.get("continuationNeeded"), bool):
        raise ValidationError(
            "continuationNeeded", "Invalid continuationNeeded: must be a boolean"
        )

    for key in _OPTIONAL_STRINGS:
        if data.get(key) is not None and not isinstance(data[key], str):
            raise ValidationError(key, f"Invalid {key}: must be a string")
    for key in _OPTIONAL_STRING_LISTS:
        value = data.get(key)
        if value is None:
            continue
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise ValidationError(key, f"Invalid {key}: must be a list of strings")
    for key in _OPTIONAL_BOOLS:
        if data.get(key) is not None and not isinstance(data[key], bool):
            raise ValidationError(key, f"Invalid {key}: must be a boolean")
    for key in _OPTIONAL_INDEXES:
        if data.get(key) is not None:
            _positive_int(data, key)

    confidence = data.get("confidence")
    if confidence is not None:
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            raise ValidationError("confidence", "Invalid confidence: must be a number")
        if not 0.0 <= confidence <= 1.0:
            raise ValidationError("confidence", "Invalid confidence: must be between 0 and 1")

    if data.get("isRevision") and data.get("revisesIndex") is None:
        raise ValidationError(
            "revisesIndex", "Invalid revisesIndex: required when isRevision is true"
        )
    if data.get("branchFromIndex") is not None and not data.get("branchId"):
        raise ValidationError(
            "branchId", "Invalid branchId: required when branchFromIndex is set"
        )


@dataclass
class Thought:
    """One reasoning step in a session."""

    query: str
    index: int
    total_planned: int
    continuation_needed: bool
    body: str = ""
    context: Optional[str] = None
    approach: Optional[str] = None
    previous_bodies: List[str] = field(default_factory=list)
    is_revision: bool = False
    revises_index: Optional[int] = None
    branch_from_index: Optional[int] = None
    branch_id: Optional[str] = None
    needs_more: Optional[bool] = None
    meta_note: Optional[str] = None
    confidence: Optional[float] = None
    alternatives: Optional[List[str]] = None

    @property
    def is_branch(self) -> bool:
        return self.branch_from_index is not None and bool(self.branch_id)

    def validate(self) -> None:
        validate_thought_payload(self.to_payload())

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "query": self.query,
            "body": self.body,
            "index": self.index,
            "totalPlanned": self.total_planned,
            "continuationNeeded": self.continuation_needed,
            "previousBodies": list(self.previous_bodies),
            "isRevision": self.is_revision,
        }
        optional = {
            "context": self.context,
            "approach": self.approach,
            "revisesIndex": self.revises_index,
            "branchFromIndex": self.branch_from_index,
            "branchId": self.branch_id,
            "needsMore": self.needs_more,
            "metaNote": self.meta_note,
            "confidence": self.confidence,
            "alternatives": list(self.alternatives) if self.alternatives is not None else None,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        return payload

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "Thought":
        """Validate a wire payload (camelCase or legacy keys) and build a thought."""

        if not isinstance(data, Mapping):
            raise ValidationError("thought", "Invalid thought: must be an object")
        normalized = normalize_keys(data)
        validate_thought_payload(normalized)
        confidence = normalized.get("confidence")
        alternatives = normalized.get("alternatives")
        revises = normalized.get("revisesIndex")
        branch_from = normalized.get("branchFromIndex")
        return cls(
            query=normalized["query"],
            index=int(normalized["index"]),
            total_planned=int(normalized["totalPlanned"]),
            continuation_needed=normalized["continuationNeeded"],
            body=normalized.get("body") or "",
            context=normalized.get("context"),
            approach=normalized.get("approach"),
            previous_bodies=list(normalized.get("previousBodies") or []),
            is_revision=bool(normalized.get("isRevision", False)),
            revises_index=int(revises) if revises is not None else None,
            branch_from_index=int(branch_from) if branch_from is not None else None,
            branch_id=normalized.get("branchId"),
            needs_more=normalized.get("needsMore"),
            meta_note=normalized.get("metaNote"),
            confidence=float(confidence) if confidence is not None else None,
            alternatives=list(alternatives) if alternatives is not None else None,
        )


@dataclass
class AppendResult:
    """Outcome of appending a thought to the store."""

    thought: Thought
    branch_ids: List[str]
    history_length: int


def dumps_payload(data: Mapping[str, Any]) -> str:
    """Render ``data`` as formatted JSON for responses and session files."""

    return json.dumps(data, ensure_ascii=False, indent=2)


__all__ = [
    "AppendResult",
    "LEGACY_REQUEST_KEYS",
    "Thought",
    "dumps_payload",
    "normalize_keys",
    "utc_timestamp",
    "validate_thought_payload",
]
