from __future__ import annotations

import numpy as np
from openai import OpenAI, OpenAIError

from .errors import CollaboratorError
from .settings import ModelSettings


def build_client(settings: ModelSettings) -> OpenAI:
    """Create an OpenAI SDK client for the configured compatible endpoint."""
    return OpenAI(
        api_key=settings.api_key,
        base_url=settings.base_url,
        timeout=settings.request_timeout_seconds,
        max_retries=0,
    )


def embed_texts(texts: list[str], model: str, client: OpenAI | None = None) -> np.ndarray:
    """Generate embedding vectors for input texts using the embeddings API.

    Args:
        texts: Input strings to embed.
        model: Embedding model (or endpoint) identifier.
        client: SDK client; a default `OpenAI()` client is created when omitted.

    Returns:
        A `float32` NumPy matrix shaped `(len(texts), embedding_dim)`.

    Raises:
        CollaboratorError: If the embeddings request fails.
    """
    if not texts:
        return np.zeros((0, 0), dtype=np.float32)
    client = client or OpenAI()
    try:
        response = client.embeddings.create(model=model, input=texts)
    except OpenAIError as exc:
        raise CollaboratorError(f"embedding request failed: {exc}") from exc
    vectors = [row.embedding for row in response.data]
    return np.array(vectors, dtype=np.float32)


def cosine_similarity(query_vector: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Compute cosine similarity between one query vector and many vectors.

    Args:
        query_vector: Query embedding vector.
        matrix: Candidate embedding matrix where each row is one vector.

    Returns:
        A 1D array of cosine similarity scores aligned to matrix rows.
    """
    query_norm = np.linalg.norm(query_vector)
    matrix_norm = np.linalg.norm(matrix, axis=1)
    denominator = np.maximum(query_norm * matrix_norm, 1e-12)
    return (matrix @ query_vector) / denominator
