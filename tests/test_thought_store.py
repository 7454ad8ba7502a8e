from __future__ import annotations

from typing import Any

import pytest

from reflective.thinking.errors import LoadError, ValidationError
from reflective.thinking.schemas import Thought
from reflective.thinking.storage import ThoughtStore


def _thought(index: int = 1, **overrides: Any) -> Thought:
    fields: dict[str, Any] = {
        "query": "Why does the cache miss?",
        "index": index,
        "total_planned": 3,
        "continuation_needed": True,
        "body": f"thought body {index}",
    }
    fields.update(overrides)
    return Thought(**fields)


def test_append_counts_every_thought() -> None:
    store = ThoughtStore()
    for index in range(1, 6):
        result = store.append(_thought(index))
        assert result.history_length == index
    assert len(store.history()) == 5
    assert [thought.index for thought in store.history()] == [1, 2, 3, 4, 5]


def test_append_raises_total_planned_to_index() -> None:
    store = ThoughtStore()
    result = store.append(_thought(7, total_planned=3))
    assert result.thought.total_planned == 7
    assert store.last_thought().total_planned == 7


def test_history_keeps_arrival_order_not_index_order() -> None:
    store = ThoughtStore()
    store.append(_thought(3))
    store.append(_thought(1))
    store.append(_thought(2, is_revision=True, revises_index=1))
    assert [thought.index for thought in store.history()] == [3, 1, 2]


def test_branched_thought_is_in_history_and_branch() -> None:
    store = ThoughtStore()
    store.append(_thought(1))
    branched = _thought(2, branch_from_index=5, branch_id="b1")
    result = store.append(branched)

    assert result.branch_ids == ["b1"]
    assert store.history()[1] is branched
    assert store.branch("b1") == [branched]
    assert store.branch("missing") == []


def test_branch_accumulates_in_arrival_order() -> None:
    store = ThoughtStore()
    store.append(_thought(1, branch_from_index=1, branch_id="alt"))
    store.append(_thought(2))
    store.append(_thought(3, branch_from_index=1, branch_id="alt"))
    store.append(_thought(4, branch_from_index=2, branch_id="other"))

    assert [thought.index for thought in store.branch("alt")] == [1, 3]
    assert store.branch_ids() == ["alt", "other"]


def test_branch_id_without_branch_point_is_not_indexed() -> None:
    store = ThoughtStore()
    result = store.append(_thought(1, branch_id="loose"))
    assert result.branch_ids == []


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"query": ""}, "query"),
        ({"index": 0}, "index"),
        ({"total_planned": -2}, "totalPlanned"),
        ({"continuation_needed": "yes"}, "continuationNeeded"),
        ({"is_revision": True}, "revisesIndex"),
        ({"branch_from_index": 2}, "branchId"),
        ({"confidence": 1.5}, "confidence"),
    ],
)
def test_append_rejects_invalid_thoughts(overrides: dict, field: str) -> None:
    store = ThoughtStore()
    with pytest.raises(ValidationError) as excinfo:
        store.append(_thought(**overrides))
    assert excinfo.value.field == field
    assert len(store) == 0


def test_last_thought_is_none_for_empty_store() -> None:
    assert ThoughtStore().last_thought() is None


def test_replace_all_swaps_history_and_branches() -> None:
    store = ThoughtStore()
    store.append(_thought(1))

    first = _thought(1)
    branched = _thought(2, branch_from_index=1, branch_id="b1")
    store.replace_all([first, branched], {"b1": [_thought(2, branch_from_index=1, branch_id="b1")]})

    assert store.history() == [first, branched]
    assert store.branch("b1") == [branched]


def test_replace_all_is_all_or_nothing() -> None:
    store = ThoughtStore()
    original = _thought(1)
    store.append(original)

    broken = _thought(2)
    broken.query = ""
    with pytest.raises(LoadError):
        store.replace_all([_thought(1), broken], {})
    with pytest.raises(LoadError):
        store.replace_all([_thought(1)], {"b1": [_thought(9, branch_from_index=1, branch_id="b1")]})
    with pytest.raises(LoadError):
        store.replace_all("not a history", {})  # type: ignore[arg-type]

    assert store.history() == [original]
    assert store.branch_ids() == []
