from __future__ import annotations

import logging
import re
import time
from typing import Iterable, Sequence

from .keywords import DEFAULT_TIERS, ID_PATTERNS, STOPWORDS, ScoreTiers, extract_keywords, keyword_score
from .schema import KEYWORD, SEMANTIC, Chunk, KeywordResult, MergedCandidate, ScoredCandidate, SemanticResult
from .settings import HybridWeights
from .vector_store import VectorIndex

logger = logging.getLogger(__name__)


def semantic_retrieve(index: VectorIndex, question: str, top_k: int = 8, threshold: float = 0.35) -> SemanticResult:
    """Query the vector index and apply the similarity threshold.

    Args:
        index: Vector index collaborator.
        question: User question.
        top_k: Number of nearest chunks to request.
        threshold: Minimum similarity for a candidate to be passed on.

    Returns:
        `SemanticResult` with all candidates sorted by descending score and
        the subset scoring at least `threshold`.

    Raises:
        CollaboratorError: Propagated from the index; no retries.
    """
    started = time.perf_counter()
    pairs = index.similarity_search(question, top_k)
    candidates = sorted(
        (ScoredCandidate(chunk=chunk, score=float(score), method=SEMANTIC) for chunk, score in pairs),
        key=lambda candidate: candidate.score,
        reverse=True,
    )
    passed = [candidate for candidate in candidates if candidate.score >= threshold]
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.debug("semantic: %d candidates, %d passed threshold %.2f", len(candidates), len(passed), threshold)
    return SemanticResult(candidates=candidates, passed=passed, elapsed_ms=elapsed_ms)


def keyword_retrieve(
    chunks: Sequence[Chunk],
    question: str,
    top_k: int = 8,
    tiers: ScoreTiers = DEFAULT_TIERS,
    stopwords: Iterable[str] = STOPWORDS,
    id_patterns: Iterable[re.Pattern[str]] = ID_PATTERNS,
) -> KeywordResult:
    """Scan chunks for the question's keywords and keep the best hits.

    `stopwords` and `id_patterns` are passed through to `extract_keywords`.

    Returns:
        `KeywordResult` with the extracted terms and at most `top_k` hits with
        a positive score, best first. Ties keep knowledge-base order.
    """
    started = time.perf_counter()
    terms = extract_keywords(question, stopwords, id_patterns)
    scored = [
        ScoredCandidate(chunk=chunk, score=keyword_score(chunk.content, terms, tiers), method=KEYWORD)
        for chunk in chunks
    ]
    hits = sorted((hit for hit in scored if hit.score > 0), key=lambda hit: hit.score, reverse=True)[:top_k]
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.debug("keyword: terms=%s, %d hits", terms, len(hits))
    return KeywordResult(terms=terms, hits=hits, elapsed_ms=elapsed_ms)


def _normalize(score: float | None, maximum: float) -> float:
    if score is None or maximum <= 0:
        return 0.0
    return score / maximum


def merge_candidates(
    semantic_passed: Sequence[ScoredCandidate],
    keyword_hits: Sequence[ScoredCandidate],
    weights: HybridWeights = HybridWeights(),
    keyword_only_candidates: bool = True,
) -> list[MergedCandidate]:
    """Merge semantic and keyword candidates by chunk key and rank them.

    Each method's scores are normalized by that method's maximum, combined
    with `weights`, and boosted when a chunk was found by both methods.

    Args:
        semantic_passed: Semantic candidates that passed the threshold.
        keyword_hits: Keyword candidates with a positive score.
        weights: Semantic/keyword weights and co-occurrence boost.
        keyword_only_candidates: When False, keyword hits with no semantic
            entry are dropped instead of inserted.

    Returns:
        Every merged entry sorted by descending `hybrid_score`; ties keep
        insertion order (semantic candidates first, then new keyword hits).
    """
    semantic_max = max((candidate.score for candidate in semantic_passed), default=0.0)
    keyword_max = max((candidate.score for candidate in keyword_hits), default=0.0)

    merged: dict[str, MergedCandidate] = {}
    for candidate in semantic_passed:
        merged[candidate.chunk.key] = MergedCandidate(chunk=candidate.chunk, semantic_score=candidate.score)

    for hit in keyword_hits:
        existing = merged.get(hit.chunk.key)
        if existing is not None:
            existing.keyword_score = hit.score
        elif keyword_only_candidates:
            merged[hit.chunk.key] = MergedCandidate(chunk=hit.chunk, keyword_score=hit.score)

    for entry in merged.values():
        both = (entry.semantic_score or 0) > 0 and (entry.keyword_score or 0) > 0
        entry.hybrid_score = (
            weights.semantic * _normalize(entry.semantic_score, semantic_max)
            + weights.keyword * _normalize(entry.keyword_score, keyword_max)
            + (weights.co_occurrence_boost if both else 0.0)
        )

    return sorted(merged.values(), key=lambda entry: entry.hybrid_score, reverse=True)


def select_top(merged: Sequence[MergedCandidate], top_k: int = 6) -> list[Chunk]:
    """Return the chunks of the first `top_k` merged entries."""
    return [entry.chunk for entry in merged[:top_k]]
