"""In-memory thought store: linear history plus a branch index."""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Mapping, Optional, Sequence

from .errors import LoadError, ValidationError
from .schemas import AppendResult, Thought

logger = logging.getLogger(__name__)


class ThoughtStore:
    """Append-only history of thoughts with a branch id -> positions index.

    A branched thought lives once in ``history``; the branch index only records
    its position, so the history entry and the branch entry cannot diverge.
    """

    def __init__(self) -> None:
        self._history: List[Thought] = []
        self._branches: Dict[str, List[int]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._history)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def append(self, thought: Thought) -> AppendResult:
        thought.validate()
        if thought.index > thought.total_planned:
            thought.total_planned = thought.index

        with self._lock:
            self._history.append(thought)
            position = len(self._history) - 1
            if thought.is_branch:
                self._branches.setdefault(str(thought.branch_id), []).append(position)
            branch_ids = list(self._branches)
            history_length = len(self._history)

        logger.debug(
            "Appended thought %s/%s (history=%s, branches=%s)",
            thought.index,
            thought.total_planned,
            history_length,
            branch_ids,
        )
        return AppendResult(thought=thought, branch_ids=branch_ids, history_length=history_length)

    def replace_all(
        self, history: Sequence[Thought], branches: Mapping[str, Sequence[Thought]]
    ) -> None:
        """Swap in a loaded session; on any error the current state is kept."""

        if isinstance(history, (str, bytes)) or not isinstance(history, Sequence):
            raise LoadError("history must be a sequence of thoughts")
        new_history = list(history)
        for position, thought in enumerate(new_history):
            if not isinstance(thought, Thought):
                raise LoadError(f"history[{position}] is not a thought")
            try:
                thought.validate()
            except ValidationError as exc:
                raise LoadError(f"history[{position}]: {exc}") from exc

        if not isinstance(branches, Mapping):
            raise LoadError("branches must be a mapping of branch id to thoughts")
        new_branches: Dict[str, List[int]] = {}
        for branch_id, members in branches.items():
            new_branches[str(branch_id)] = self._resolve_positions(new_history, branch_id, members)

        with self._lock:
            self._history = new_history
            self._branches = new_branches
        logger.info(
            "Replaced session state: %s thoughts, %s branches",
            len(new_history),
            len(new_branches),
        )

    @staticmethod
    def _resolve_positions(
        history: Sequence[Thought], branch_id: str, members: Sequence[Thought]
    ) -> List[int]:
        # Branch members appear in history in the same relative order.
        positions: List[int] = []
        cursor = 0
        for member in members:
            for position in range(cursor, len(history)):
                if history[position] == member:
                    positions.append(position)
                    cursor = position + 1
                    break
            else:
                raise LoadError(
                    f"branch {branch_id!r} references a thought that is not in history"
                )
        return positions

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------
    def history(self) -> List[Thought]:
        with self._lock:
            return list(self._history)

    def branch_ids(self) -> List[str]:
        with self._lock:
            return list(self._branches)

    def branch(self, branch_id: str) -> List[Thought]:
        with self._lock:
            return [self._history[position] for position in self._branches.get(branch_id, [])]

    def branches(self) -> Dict[str, List[Thought]]:
        with self._lock:
            return {
                branch_id: [self._history[position] for position in positions]
                for branch_id, positions in self._branches.items()
            }

    def last_thought(self) -> Optional[Thought]:
        with self._lock:
            return self._history[-1] if self._history else None


__all__ = ["ThoughtStore"]
