from __future__ import annotations

import uuid
from typing import Callable, Protocol, Sequence

import chromadb
import numpy as np
from chromadb.errors import ChromaError

from .embeddings import cosine_similarity
from .errors import CollaboratorError
from .schema import Chunk

EmbedFn = Callable[[list[str]], np.ndarray]


class VectorIndex(Protocol):
    """Similarity-search collaborator consumed by the retrieval engine."""

    def index_chunks(self, chunks: Sequence[Chunk]) -> None: ...

    def similarity_search(self, query: str, k: int) -> list[tuple[Chunk, float]]: ...


class InMemoryVectorIndex:
    """Brute-force cosine-similarity index held in a NumPy matrix.

    Nothing is persisted; `index_chunks` replaces the whole index at once so
    a failed embedding call leaves the previous contents untouched.
    """

    def __init__(self, embed_fn: EmbedFn):
        self._embed = embed_fn
        self._chunks: tuple[Chunk, ...] = ()
        self._matrix = np.zeros((0, 0), dtype=np.float32)

    def __len__(self) -> int:
        return len(self._chunks)

    def index_chunks(self, chunks: Sequence[Chunk]) -> None:
        chunks = tuple(chunks)
        matrix = self._embed([chunk.content for chunk in chunks]) if chunks else np.zeros((0, 0), dtype=np.float32)
        self._chunks, self._matrix = chunks, matrix

    def similarity_search(self, query: str, k: int) -> list[tuple[Chunk, float]]:
        if not self._chunks or k < 1:
            return []
        query_vector = self._embed([query])[0]
        scores = cosine_similarity(query_vector, self._matrix)
        order = np.argsort(-scores, kind="stable")[:k]
        return [(self._chunks[idx], float(scores[idx])) for idx in order]


class ChromaVectorIndex:
    """Vector index backed by an ephemeral (in-memory) Chroma collection.

    Scores are reported as `1 - cosine distance` so higher means more similar.
    """

    def __init__(self, embed_fn: EmbedFn, collection_name: str = "knowledge_base", client=None):
        self._embed = embed_fn
        self._prefix = collection_name
        self._client = client if client is not None else chromadb.EphemeralClient()
        self._collection = None
        self._by_key: dict[str, Chunk] = {}

    def __len__(self) -> int:
        return len(self._by_key)

    def index_chunks(self, chunks: Sequence[Chunk]) -> None:
        chunks = list(chunks)
        vectors = self._embed([chunk.content for chunk in chunks]) if chunks else None
        name = f"{self._prefix}-{uuid.uuid4().hex[:8]}"
        try:
            collection = self._client.create_collection(name=name, metadata={"hnsw:space": "cosine"})
        except ChromaError as exc:
            raise CollaboratorError(f"chroma indexing failed: {exc}") from exc
        try:
            if chunks:
                collection.add(
                    ids=[chunk.key for chunk in chunks],
                    embeddings=vectors.tolist(),
                    documents=[chunk.content for chunk in chunks],
                    metadatas=[{"source_id": chunk.source_id, "chunk_index": chunk.chunk_index} for chunk in chunks],
                )
            if self._collection is not None:
                self._client.delete_collection(self._collection.name)
        except ChromaError as exc:
            # The previous collection stays live; drop the half-built one.
            self._client.delete_collection(name)
            raise CollaboratorError(f"chroma indexing failed: {exc}") from exc
        self._collection = collection
        self._by_key = {chunk.key: chunk for chunk in chunks}

    def similarity_search(self, query: str, k: int) -> list[tuple[Chunk, float]]:
        if self._collection is None or not self._by_key or k < 1:
            return []
        query_vector = self._embed([query])[0]
        try:
            response = self._collection.query(
                query_embeddings=[query_vector.tolist()],
                n_results=min(k, len(self._by_key)),
            )
        except ChromaError as exc:
            raise CollaboratorError(f"chroma query failed: {exc}") from exc

        ids = response["ids"][0]
        distances = response["distances"][0]
        return [
            (self._by_key[chunk_id], float(1.0 - distance))
            for chunk_id, distance in zip(ids, distances, strict=True)
        ]
