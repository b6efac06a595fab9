"""Keyword extraction and containment scoring.

Questions are reduced to a small set of literal terms: structured IDs such as
``user_123``, ASCII word tokens, and CJK phrases with their 2-character
n-grams. Chunks are scored by which of those terms they contain, weighted by
term length so precise identifiers outrank short generic words.
"""
from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Iterable

STOPWORDS: frozenset[str] = frozenset(
    {
        "什么",
        "如何",
        "为什么",
        "怎么",
        "怎样",
        "是否",
        "可以",
        "能否",
        "请问",
        "一下",
        "介绍",
        "解释",
        "概念",
        "含义",
        "的",
        "了",
        "吗",
        "呢",
        "啊",
    }
)

ID_PATTERNS: tuple[re.Pattern[str], ...] = (re.compile(r"[a-z]+_\d+"),)

_TOKEN_RE = re.compile(r"[a-z0-9_]{2,}")
_CJK_RUN_RE = re.compile(r"[\u4e00-\u9fff]{2,}")


@dataclass(frozen=True, slots=True)
class ScoreTiers:
    """Length-tiered weights used by the keyword scorer.

    `tiers` is checked in order; the first `(min_length, points)` whose
    minimum the term length reaches wins, otherwise `base_points` applies.
    """

    tiers: tuple[tuple[int, int], ...] = ((8, 4), (5, 3), (3, 2))
    base_points: int = 1

    def weight(self, term: str) -> int:
        for min_length, points in self.tiers:
            if len(term) >= min_length:
                return points
        return self.base_points


DEFAULT_TIERS = ScoreTiers()


def extract_keywords(
    question: str,
    stopwords: Iterable[str] = STOPWORDS,
    id_patterns: Iterable[re.Pattern[str]] = ID_PATTERNS,
) -> list[str]:
    """Extract normalized search terms from a question.

    Args:
        question: Raw question text.
        stopwords: Terms never returned.
        id_patterns: Compiled patterns for structured identifiers, matched
            against the lowercased question.

    Returns:
        Deduplicated terms in first-seen order. Empty for an empty question.
    """
    stop = stopwords if isinstance(stopwords, (set, frozenset)) else frozenset(stopwords)
    lower = question.lower()
    terms: dict[str, None] = {}

    for pattern in id_patterns:
        for match in pattern.findall(lower):
            terms[match] = None
    for token in _TOKEN_RE.findall(lower):
        terms[token] = None

    for run in _CJK_RUN_RE.findall(question):
        if run not in stop:
            terms[run] = None
        if len(run) >= 4:
            for idx in range(len(run) - 1):
                bigram = run[idx : idx + 2]
                if bigram not in stop:
                    terms[bigram] = None

    cleaned: dict[str, None] = {}
    for term in terms:
        term = term.strip()
        if len(term) >= 2 and term not in stop:
            cleaned[term] = None
    return list(cleaned)


def keyword_score(text: str, terms: Iterable[str], tiers: ScoreTiers = DEFAULT_TIERS) -> int:
    """Score text by the length-tiered weight of each term it contains.

    Presence is counted once per term; repeated occurrences add nothing.
    """
    lower = text.lower()
    score = 0
    for term in terms:
        if term and term.lower() in lower:
            score += tiers.weight(term)
    return score


def covered_terms(terms: Iterable[str], text: str) -> list[str]:
    """Return the terms that appear in `text` (case-insensitive)."""
    lower = text.lower()
    return [term for term in terms if term.lower() in lower]
