from __future__ import annotations

import logging

import pytest

from reflective.thinking.errors import ValidationError
from reflective.thinking.relevance import (
    RelevanceFilter,
    count_occurrences,
    extract_keywords,
    filter_document,
    path_weight,
    query_terms,
    rank_sections,
    select_sections,
    split_sections,
)

DOCUMENT = """This preamble is not part of any section.
File: src/session.ts
export class Session { save() {} load() {} }
session session
File: src/session.test.ts
describe('session', () => { it('saves the session', () => {}) })
File: src/types.ts
export interface SessionState { history: string[] }
File: README.md
Nothing relevant here.
"""


def _names(document: str) -> list:
    return [line[len("File: "):] for line in document.splitlines() if line.startswith("File: ")]


def test_extract_keywords_keeps_first_occurrence_order_for_ties() -> None:
    keywords = extract_keywords(
        "The quick brown fox jumps over the lazy dog", stopwords={"the", "over"}
    )
    assert keywords == ["quick", "brown", "jumps", "lazy"]


def test_extract_keywords_orders_by_frequency_and_strips_punctuation() -> None:
    text = "Cache misses! Why do cache misses spike? The cache, again."
    assert extract_keywords(text) == ["cache", "misses", "spike", "again"]
    assert extract_keywords(text, max_terms=1) == ["cache"]


def test_query_terms_keep_duplicates_and_drop_short_words() -> None:
    assert query_terms("How does the Session save session state") == [
        "does",
        "session",
        "save",
        "session",
        "state",
    ]


def test_split_sections_drops_preamble_and_keeps_delimiter_lines() -> None:
    sections = split_sections(DOCUMENT)
    assert [section.name for section in sections] == [
        "src/session.ts",
        "src/session.test.ts",
        "src/types.ts",
        "README.md",
    ]
    assert sections[0].text.startswith("File: src/session.ts\n")
    assert "preamble" not in "".join(section.text for section in sections)


def test_document_without_sections_yields_empty_result() -> None:
    assert split_sections("just some text\nwithout markers\n") == []
    assert filter_document("just some text\nwithout markers\n", "some query", ["text"]) == ""


def test_test_files_rank_below_equal_source_files() -> None:
    document = "File: a.ts\nfoo foo foo\nFile: b.test.ts\nfoo foo foo\n"

    ranked = rank_sections(document, "foo bar", ["foo"])
    assert [item.section.name for item in ranked] == ["a.ts", "b.test.ts"]
    assert ranked[0].score == 3
    assert ranked[1].score == 1.5

    ranked = rank_sections(document, "foo bar", [])
    assert [item.section.name for item in ranked] == ["a.ts", "b.test.ts"]


def test_path_weights_combine_multiplicatively() -> None:
    assert path_weight("src/app.ts") == 1.0
    assert path_weight("src/app.spec.ts") == 0.5
    assert path_weight("src/Interfaces.ts") == 1.5
    assert path_weight("src/types/model.test.ts") == pytest.approx(0.75)


def test_query_terms_weigh_twice_as_much_as_keywords() -> None:
    document = "File: one.py\nalpha\nFile: two.py\nbeta beta\n"
    ranked = rank_sections(document, "alpha", ["beta"])
    scores = {item.section.name: item.score for item in ranked}
    assert scores == {"one.py": 2, "two.py": 2}
    assert [item.section.name for item in ranked] == ["one.py", "two.py"]


def test_terms_are_matched_literally() -> None:
    assert count_occurrences("a.b axb a.b", "a.b") == 2
    assert count_occurrences("uses c++ and C++", "c++") == 2
    assert count_occurrences("(group) [set]", "[set]") == 1
    assert count_occurrences("anything", "") == 0


def test_filter_document_returns_sections_in_score_order() -> None:
    reduced = filter_document(DOCUMENT, "session state", ["session"], top_k=3)

    assert _names(reduced) == ["src/session.ts", "src/types.ts", "src/session.test.ts"]
    assert "README.md" not in reduced
    assert "\n\nFile: src/types.ts\n" in reduced
    assert reduced.endswith("\n\n")


def test_filter_document_logs_ranking_report(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="reflective.thinking.relevance"):
        filter_document(DOCUMENT, "session", [], top_k=1)
    messages = [record.getMessage() for record in caplog.records]
    assert "Relevance scores for top sections:" in messages
    assert any(message.startswith("src/session.ts: ") for message in messages)


def test_select_sections_matches_name_patterns_in_document_order() -> None:
    selected = select_sections(DOCUMENT, [r"\.md$", r"types"])
    assert _names(selected) == ["src/types.ts", "README.md"]
    with pytest.raises(ValidationError):
        select_sections(DOCUMENT, ["("])


def test_relevance_filter_merges_extra_keywords_and_reports_sizes() -> None:
    relevance = RelevanceFilter(top_k=2)
    result = relevance(DOCUMENT, "Where is the session history stored?", ["SessionState"])

    assert result.keywords == ["session", "history", "stored", "SessionState"]
    assert [item.section.name for item in result.ranked] == ["src/session.ts", "src/types.ts"]
    assert _names(result.text) == ["src/session.ts", "src/types.ts"]
    assert result.original_chars == len(DOCUMENT)
    assert result.filtered_chars == len(result.text)
    assert 0 < result.ratio < 1


def test_only_newlines_end_section_lines() -> None:
    document = (
        "File: a.py\nx = 1\x0cFile: injected.py\n"
        "File: b.py\ny\u2028File: fake\n"
    )
    sections = split_sections(document)
    assert [section.name for section in sections] == ["a.py", "b.py"]
    assert sections[0].text == "File: a.py\nx = 1\x0cFile: injected.py\n"
    assert sections[1].text == "File: b.py\ny\u2028File: fake\n"


def test_split_sections_keeps_last_line_without_newline() -> None:
    sections = split_sections("File: a.py\nlast line")
    assert sections[0].text == "File: a.py\nlast line"


def test_negative_top_k_is_rejected() -> None:
    with pytest.raises(ValidationError) as excinfo:
        filter_document(DOCUMENT, "session", [], top_k=-1)
    assert excinfo.value.field == "top_k"
    assert filter_document(DOCUMENT, "session", [], top_k=0) == ""
