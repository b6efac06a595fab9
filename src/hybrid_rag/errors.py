from __future__ import annotations


class HybridRagError(Exception):
    """Base class for errors raised by the hybrid_rag package."""


class ConfigurationError(HybridRagError):
    """Missing model identifiers or invalid retrieval settings."""


class CollaboratorError(HybridRagError):
    """An external collaborator (vector index, embeddings, chat model) failed."""
