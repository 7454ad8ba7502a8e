"""Lexical relevance ranking for ``File:``-sectioned documents."""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import AbstractSet, Iterable, List, Sequence

from .errors import ValidationError

logger = logging.getLogger(__name__)

SECTION_PREFIX = "File: "

DEFAULT_STOPWORDS = frozenset(
    {
        "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for", "with",
        "about", "is", "are", "was", "were", "be", "been", "being", "have", "has",
        "had", "do", "does", "did", "can", "could", "will", "would", "should", "shall",
        "may", "might", "must", "of", "by", "as", "if", "then", "else", "when",
        "where", "why", "how", "all", "any", "both", "each", "few", "more", "most",
        "other", "some", "such", "no", "nor", "not", "only", "own", "same", "so",
        "than", "too", "very", "this", "that", "these", "those",
    }
)

MIN_KEYWORD_LENGTH = 4
MIN_QUERY_TERM_LENGTH = 4

TEST_PATH_MARKERS = ("test", "spec")
DEFINITION_PATH_MARKERS = ("interface", "type", "model")
TEST_PATH_WEIGHT = 0.5
DEFINITION_PATH_WEIGHT = 1.5

_PUNCTUATION = re.compile(r"[^\w\s]")
_LINE_END = re.compile(r"(?<=\n)")


def extract_keywords(
    text: str,
    stopwords: AbstractSet[str] = DEFAULT_STOPWORDS,
    max_terms: int = 10,
) -> List[str]:
    """Most frequent salient terms of ``text``; ties keep first-occurrence order."""

    words = _PUNCTUATION.sub("", text.lower()).split()
    counts = Counter(
        word for word in words if word not in stopwords and len(word) >= MIN_KEYWORD_LENGTH
    )
    # most_common sorts stably, so equal counts stay in insertion order.
    return [word for word, _ in counts.most_common(max_terms)]


@dataclass(frozen=True)
class Section:
    name: str
    text: str


@dataclass(frozen=True)
class RankedSection:
    section: Section
    score: float
    position: int


def split_sections(document: str) -> List[Section]:
    """Split on ``File: <name>`` lines; text before the first one is dropped."""

    sections: List[Section] = []
    name = None
    buffer: List[str] = []
    # Only "\n" ends a line; form feeds and other separators stay inside it.
    for line in _LINE_END.split(document):
        if not line:
            continue
        if line.startswith(SECTION_PREFIX):
            if name is not None:
                sections.append(Section(name=name, text="".join(buffer)))
            name = line[len(SECTION_PREFIX):].strip()
            buffer = [line]
        elif name is not None:
            buffer.append(line)
    if name is not None:
        sections.append(Section(name=name, text="".join(buffer)))
    return sections


def query_terms(query: str) -> List[str]:
    # Duplicates are kept on purpose: a repeated term weighs more.
    return [term for term in query.lower().split() if len(term) >= MIN_QUERY_TERM_LENGTH]


def count_occurrences(text: str, term: str) -> int:
    """Case-insensitive count of ``term`` as a literal substring."""

    if not term:
        return 0
    return len(re.findall(re.escape(term), text, flags=re.IGNORECASE))


def path_weight(name: str) -> float:
    lowered = name.lower()
    weight = 1.0
    if any(marker in lowered for marker in TEST_PATH_MARKERS):
        weight *= TEST_PATH_WEIGHT
    if any(marker in lowered for marker in DEFINITION_PATH_MARKERS):
        weight *= DEFINITION_PATH_WEIGHT
    return weight


def score_section(section: Section, terms: Sequence[str], keywords: Sequence[str]) -> float:
    score = 0.0
    for term in terms:
        score += 2 * count_occurrences(section.text, term)
    for keyword in keywords:
        score += count_occurrences(section.text, keyword)
    return score * path_weight(section.name)


def rank_sections(document: str, query: str, keywords: Sequence[str]) -> List[RankedSection]:
    terms = query_terms(query)
    ranked = [
        RankedSection(section=section, score=score_section(section, terms, keywords), position=idx)
        for idx, section in enumerate(split_sections(document))
    ]
    ranked.sort(key=lambda item: item.score, reverse=True)
    return ranked


def _join_sections(sections: Iterable[Section]) -> str:
    parts: List[str] = []
    for section in sections:
        text = section.text if section.text.endswith("\n") else section.text + "\n"
        parts.append(text + "\n")
    return "".join(parts)


def select_top(
    document: str, query: str, keywords: Sequence[str], top_k: int = 10
) -> List[RankedSection]:
    if top_k < 0:
        raise ValidationError("top_k", f"Invalid top_k: must be at least 0, got {top_k}")
    selected = rank_sections(document, query, keywords)[:top_k]
    if not selected:
        logger.info("No %r sections found in document", SECTION_PREFIX.strip())
        return selected
    logger.info("Relevance scores for top sections:")
    for item in selected:
        logger.info("%s: %s", item.section.name, item.score)
    return selected


def filter_document(
    document: str, query: str, keywords: Sequence[str], top_k: int = 10
) -> str:
    """Keep the ``top_k`` best scoring sections, concatenated in score order."""

    selected = select_top(document, query, keywords, top_k)
    return _join_sections(item.section for item in selected)


def select_sections(document: str, patterns: Sequence[str]) -> str:
    """Keep sections whose name matches any regular expression in ``patterns``."""

    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as exc:
            raise ValidationError("patterns", f"Invalid pattern {pattern!r}: {exc}") from exc
    kept = [
        section
        for section in split_sections(document)
        if any(regex.search(section.name) for regex in compiled)
    ]
    return "".join(section.text for section in kept)


@dataclass
class FilterResult:
    text: str
    keywords: List[str]
    ranked: List[RankedSection]
    original_chars: int
    filtered_chars: int

    @property
    def ratio(self) -> float:
        if self.original_chars == 0:
            return 0.0
        return self.filtered_chars / self.original_chars


@dataclass
class RelevanceFilter:
    """Shrink a document to the sections most relevant to a query."""

    top_k: int = 10
    max_keywords: int = 10
    stopwords: AbstractSet[str] = field(default_factory=lambda: DEFAULT_STOPWORDS)

    def __call__(
        self, document: str, query: str, extra_keywords: Iterable[str] = ()
    ) -> FilterResult:
        keywords = extract_keywords(query, self.stopwords, self.max_keywords)
        for keyword in extra_keywords:
            keyword = keyword.strip()
            if keyword and keyword not in keywords:
                keywords.append(keyword)

        ranked = select_top(document, query, keywords, self.top_k)
        text = _join_sections(item.section for item in ranked)
        result = FilterResult(
            text=text,
            keywords=keywords,
            ranked=ranked,
            original_chars=len(document),
            filtered_chars=len(text),
        )
        logger.info(
            "Filtered document from %s to %s characters (%.0f%% of original)",
            result.original_chars,
            result.filtered_chars,
            result.ratio * 100,
        )
        return result


__all__ = [
    "DEFAULT_STOPWORDS",
    "FilterResult",
    "RankedSection",
    "RelevanceFilter",
    "Section",
    "extract_keywords",
    "filter_document",
    "query_terms",
    "rank_sections",
    "score_section",
    "select_sections",
    "select_top",
    "split_sections",
]
