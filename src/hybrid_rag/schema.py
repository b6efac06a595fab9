from __future__ import annotations

from dataclasses import dataclass

SEMANTIC = "semantic"
KEYWORD = "keyword"


@dataclass(slots=True)
class Document:
    """Raw knowledge-base document before chunking."""

    source_id: str
    text: str
    topic: str = ""


@dataclass(frozen=True, slots=True)
class Chunk:
    """Read-only segment of a document, the unit of retrieval."""

    content: str
    source_id: str
    chunk_index: int

    @property
    def length(self) -> int:
        return len(self.content)

    @property
    def key(self) -> str:
        """Identity used to deduplicate chunks across retrieval methods."""
        return f"{self.source_id}#{self.chunk_index}"


@dataclass(slots=True)
class ScoredCandidate:
    """Chunk scored by a single retrieval method (`semantic` or `keyword`)."""

    chunk: Chunk
    score: float
    method: str


@dataclass(slots=True)
class MergedCandidate:
    """Chunk entry after semantic and keyword candidates are merged by key."""

    chunk: Chunk
    semantic_score: float | None = None
    keyword_score: float | None = None
    hybrid_score: float = 0.0


@dataclass(slots=True)
class EvaluationCase:
    """Labeled question used by the evaluation harness."""

    name: str
    question: str
    expected_hit: bool


@dataclass(slots=True)
class SemanticResult:
    """Semantic search output: every candidate plus those above threshold."""

    candidates: list[ScoredCandidate]
    passed: list[ScoredCandidate]
    elapsed_ms: float = 0.0


@dataclass(slots=True)
class KeywordResult:
    """Keyword search output with the extracted terms that drove it."""

    terms: list[str]
    hits: list[ScoredCandidate]
    elapsed_ms: float = 0.0


@dataclass(slots=True)
class HybridRetrieval:
    """Final ranked selection plus the per-method diagnostics behind it."""

    selected: list[Chunk]
    semantic: SemanticResult
    keyword: KeywordResult
    merged: list[MergedCandidate]


@dataclass(slots=True)
class GateDecision:
    """Quality-gate verdict on whether the retrieved context is usable."""

    hit: bool
    fallback: bool
    reason: str
    terms: list[str]
    covered_terms: list[str]
    coverage_ratio: float
    context: str
