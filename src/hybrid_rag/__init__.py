"""Hybrid semantic + keyword retrieval with a quality gate and evaluation harness."""

from .engine import AnswerResult, HybridRetrievalEngine, build_engine
from .errors import CollaboratorError, ConfigurationError, HybridRagError
from .schema import Chunk, Document, EvaluationCase, GateDecision, HybridRetrieval, MergedCandidate, ScoredCandidate

__all__ = [
    "AnswerResult",
    "Chunk",
    "CollaboratorError",
    "ConfigurationError",
    "Document",
    "EvaluationCase",
    "GateDecision",
    "HybridRagError",
    "HybridRetrieval",
    "HybridRetrievalEngine",
    "MergedCandidate",
    "ScoredCandidate",
    "build_engine",
]
