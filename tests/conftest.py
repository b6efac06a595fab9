"""Shared pytest fixtures for hybrid_rag unit tests."""
from __future__ import annotations

import numpy as np
import pytest

from hybrid_rag.knowledge_base import load_default_documents
from hybrid_rag.schema import SEMANTIC, Chunk, Document, ScoredCandidate


class ScriptedIndex:
    """Vector index double whose similarity scores are fixed per source id."""

    def __init__(self, scores: dict[str, float] | None = None, default: float = 0.1):
        self.scores = scores or {}
        self.default = default
        self.chunks: list[Chunk] = []
        self.index_calls = 0
        self.queries: list[str] = []

    def index_chunks(self, chunks):
        self.index_calls += 1
        self.chunks = list(chunks)

    def similarity_search(self, query: str, k: int):
        self.queries.append(query)
        pairs = [(chunk, self.scores.get(chunk.source_id, self.default)) for chunk in self.chunks]
        # Deliberately ascending: callers must not rely on the index's order.
        return sorted(pairs, key=lambda pair: pair[1])[-k:]


def hashed_embed(texts: list[str], dim: int = 64) -> np.ndarray:
    """Deterministic fake embedder: bag of hashed characters."""
    matrix = np.zeros((len(texts), dim), dtype=np.float32)
    for row, text in enumerate(texts):
        for char in text.lower():
            matrix[row, ord(char) % dim] += 1.0
    return matrix


@pytest.fixture()
def scripted_index():
    return ScriptedIndex


@pytest.fixture()
def fake_embed():
    return hashed_embed


@pytest.fixture()
def kb_documents() -> list[Document]:
    return load_default_documents()


@pytest.fixture()
def sample_chunks() -> list[Chunk]:
    return [
        Chunk(content="RAG（Retrieval Augmented Generation，检索增强生成）先检索再生成。", source_id="rag_intro", chunk_index=0),
        Chunk(content="POST /login 字段名是 user_id（下划线），不是 userId。", source_id="api_login", chunk_index=0),
        Chunk(content="厨房小贴士：煎牛排之前让肉回温 20 分钟。", source_id="noise_cooking", chunk_index=0),
    ]


@pytest.fixture()
def make_candidate():
    def _make(source_id: str, score: float, method: str = SEMANTIC, chunk_index: int = 0) -> ScoredCandidate:
        chunk = Chunk(content=f"text of {source_id}", source_id=source_id, chunk_index=chunk_index)
        return ScoredCandidate(chunk=chunk, score=score, method=method)

    return _make
