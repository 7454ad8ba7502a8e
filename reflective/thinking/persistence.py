"""Save and load thought sessions as JSON files."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from .errors import FormatError, PersistenceIOError, ValidationError
from .schemas import Thought, dumps_payload, normalize_keys, utc_timestamp
from .storage import ThoughtStore

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0.0"

SESSION_KEYS: Mapping[str, str] = {
    "thoughtHistory": "history",
    "timestamp": "savedAt",
    "version": "formatVersion",
}

PathLike = Union[str, Path]


@dataclass
class SessionSnapshot:
    """Decoded content of a session file."""

    history: List[Thought] = field(default_factory=list)
    branches: Dict[str, List[Thought]] = field(default_factory=dict)
    saved_at: Optional[str] = None
    format_version: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "history": [thought.to_payload() for thought in self.history],
            "branches": {
                branch_id: [thought.to_payload() for thought in thoughts]
                for branch_id, thoughts in self.branches.items()
            },
            "savedAt": self.saved_at,
            "formatVersion": self.format_version,
        }


def snapshot_store(store: ThoughtStore) -> SessionSnapshot:
    return SessionSnapshot(
        history=store.history(),
        branches=store.branches(),
        saved_at=utc_timestamp(),
        format_version=FORMAT_VERSION,
    )


def save_session(store: ThoughtStore, path: PathLike) -> Path:
    """Write ``store`` to ``path``; the target is replaced atomically."""

    target = Path(path).expanduser()
    text = dumps_payload(snapshot_store(store).to_payload())
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(text)
            os.replace(tmp_path, target)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
    except (OSError, ValueError) as exc:
        logger.error("Error saving session to %s: %s", target, exc)
        raise PersistenceIOError(str(target), f"Failed to save session: {exc}") from exc

    logger.info("Session saved to %s", target)
    return target


def parse_snapshot(payload: Any) -> SessionSnapshot:
    """Decode a session payload; unknown top-level keys are ignored."""

    if not isinstance(payload, Mapping):
        raise FormatError("Invalid session data: top level must be an object")
    data = normalize_keys(payload, SESSION_KEYS)

    raw_history = data.get("history")
    if not isinstance(raw_history, list):
        raise FormatError("Invalid session data: history is missing or not an array")
    raw_branches = data.get("branches")
    if raw_branches is None:
        raw_branches = {}
    if not isinstance(raw_branches, Mapping):
        raise FormatError("Invalid session data: branches must be an object")

    try:
        history = [Thought.from_payload(item) for item in raw_history]
        branches: Dict[str, List[Thought]] = {}
        for branch_id, items in raw_branches.items():
            if not isinstance(items, list):
                raise FormatError(f"Invalid session data: branch {branch_id!r} is not an array")
            branches[str(branch_id)] = [Thought.from_payload(item) for item in items]
    except ValidationError as exc:
        raise FormatError(f"Invalid session data: {exc}") from exc

    saved_at = data.get("savedAt")
    version = data.get("formatVersion")
    return SessionSnapshot(
        history=history,
        branches=branches,
        saved_at=str(saved_at) if saved_at is not None else None,
        format_version=str(version) if version is not None else None,
    )


def load_session(path: PathLike) -> SessionSnapshot:
    source = Path(path).expanduser()
    try:
        if not source.exists():
            raise PersistenceIOError(str(source), f"Session file not found: {source}")
        text = source.read_text(encoding="utf-8")
    except (OSError, ValueError) as exc:
        raise PersistenceIOError(str(source), f"Failed to read session: {exc}") from exc
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise FormatError(f"Invalid session data: {exc}") from exc

    snapshot = parse_snapshot(payload)
    logger.info(
        "Loaded %s thoughts and %s branches from %s",
        len(snapshot.history),
        len(snapshot.branches),
        source,
    )
    return snapshot


__all__ = [
    "FORMAT_VERSION",
    "SessionSnapshot",
    "load_session",
    "parse_snapshot",
    "save_session",
    "snapshot_store",
]
