from __future__ import annotations

import re
from typing import Iterable

from .keywords import ID_PATTERNS, STOPWORDS, covered_terms, extract_keywords
from .qa import build_context
from .schema import Chunk, GateDecision

REASON_OK = "ok"
REASON_NO_DOCS = "no_docs"
REASON_TERM_NOT_COVERED = "term_not_covered"


def term_coverage(
    question: str,
    text: str,
    term_limit: int = 8,
    stopwords: Iterable[str] = STOPWORDS,
    id_patterns: Iterable[re.Pattern[str]] = ID_PATTERNS,
) -> tuple[list[str], list[str], float]:
    """Measure how many of the question's own terms appear in `text`.

    Returns:
        Tuple of `(terms, covered, ratio)` where `terms` is capped to the first
        `term_limit` extracted terms and `ratio` is 0.0 when there are none.
    """
    terms = extract_keywords(question, stopwords, id_patterns)[:term_limit]
    covered = covered_terms(terms, text)
    ratio = len(covered) / len(terms) if terms else 0.0
    return terms, covered, ratio


def assess_retrieval(
    selected: list[Chunk],
    question: str,
    term_limit: int = 8,
    stopwords: Iterable[str] = STOPWORDS,
    id_patterns: Iterable[re.Pattern[str]] = ID_PATTERNS,
) -> GateDecision:
    """Decide whether the selected chunks are sufficient to answer from.

    Falls back when nothing was selected (`no_docs`) or when none of the
    question's terms occurs in the selected content (`term_not_covered`).
    Never raises; empty evidence is an ordinary fallback outcome.
    """
    content = "\n\n".join(chunk.content for chunk in selected)
    terms, covered, ratio = term_coverage(question, content, term_limit, stopwords, id_patterns)

    if not selected:
        reason = REASON_NO_DOCS
    elif not covered:
        reason = REASON_TERM_NOT_COVERED
    else:
        reason = REASON_OK
    fallback = reason != REASON_OK

    return GateDecision(
        hit=not fallback,
        fallback=fallback,
        reason=reason,
        terms=terms,
        covered_terms=covered,
        coverage_ratio=ratio,
        context=build_context(selected),
    )
