from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
import os
import re

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigurationError
from .keywords import ID_PATTERNS, STOPWORDS, ScoreTiers

DEFAULT_BASE_URL = "https://ark.cn-beijing.volces.com/api/v3"


@dataclass(slots=True)
class ModelSettings:
    """Credentials and model identifiers for the OpenAI-compatible endpoint."""

    api_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    chat_model: str = ""
    embedding_model: str = ""
    request_timeout_seconds: float = 30.0

    def validate(self, require_chat: bool = False) -> None:
        """Raise `ConfigurationError` when a required identifier is missing.

        Args:
            require_chat: Also require a chat model (answer generation enabled).
        """
        if not self.api_key:
            raise ConfigurationError("VOLCENGINE_API_KEY is not set")
        if not self.embedding_model:
            raise ConfigurationError("VOLC_EMBED_MODEL is not set")
        if require_chat and not self.chat_model:
            raise ConfigurationError("VOLC_CHAT_MODEL is not set")


@dataclass(frozen=True, slots=True)
class HybridWeights:
    """Weights combining normalized semantic and keyword scores."""

    semantic: float = 0.75
    keyword: float = 0.25
    co_occurrence_boost: float = 0.15


@dataclass(slots=True)
class RetrievalSettings:
    """Tunable parameters of retrieval, merging, gating, and chunking."""

    similarity_threshold: float = 0.35
    semantic_top_k: int = 8
    keyword_top_k: int = 8
    hybrid_top_k: int = 6
    chunk_size: int = 220
    chunk_overlap: int = 60
    coverage_term_limit: int = 8
    search_timeout_seconds: float = 30.0
    keyword_only_candidates: bool = True
    weights: HybridWeights = field(default_factory=HybridWeights)
    tiers: ScoreTiers = field(default_factory=ScoreTiers)
    stopwords: frozenset[str] = STOPWORDS
    id_patterns: tuple[re.Pattern[str], ...] = ID_PATTERNS

    def with_overrides(self, **values) -> RetrievalSettings:
        """Return a copy with every non-`None` value replaced."""
        return replace(self, **{name: value for name, value in values.items() if value is not None})

    def validate(self) -> None:
        for name in ("semantic_top_k", "keyword_top_k", "hybrid_top_k", "chunk_size", "coverage_term_limit"):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be >= 1, got {getattr(self, name)}")
        if self.chunk_overlap < 0:
            raise ConfigurationError(f"chunk_overlap must be >= 0, got {self.chunk_overlap}")
        if self.chunk_overlap >= self.chunk_size:
            raise ConfigurationError(
                f"chunk_overlap ({self.chunk_overlap}) must be smaller than chunk_size ({self.chunk_size})"
            )
        if self.search_timeout_seconds <= 0:
            raise ConfigurationError("search_timeout_seconds must be positive")

    def as_dict(self) -> dict:
        """Return a JSON-serializable snapshot of the settings."""
        snapshot = asdict(self)
        snapshot["stopwords"] = sorted(self.stopwords)
        snapshot["id_patterns"] = [pattern.pattern for pattern in self.id_patterns]
        return snapshot


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a {cast.__name__}, got {raw!r}") from exc


def load_settings(env_file: str | None = None) -> tuple[ModelSettings, RetrievalSettings]:
    """Load environment-backed settings and return typed config objects.

    Values from `env_file` (default: the nearest `.env` above the working
    directory) are loaded first; variables already in the environment win.

    Returns:
        Tuple containing model settings and retrieval settings.

    Raises:
        ConfigurationError: If a numeric variable cannot be parsed.
    """
    load_dotenv(env_file or find_dotenv(usecwd=True))
    models = ModelSettings(
        api_key=os.getenv("VOLCENGINE_API_KEY", ""),
        base_url=os.getenv("VOLC_BASE_URL", DEFAULT_BASE_URL),
        chat_model=os.getenv("VOLC_CHAT_MODEL", ""),
        embedding_model=os.getenv("VOLC_EMBED_MODEL", ""),
        request_timeout_seconds=_env_number("REQUEST_TIMEOUT_SECONDS", 30.0, float),
    )
    retrieval = RetrievalSettings(
        similarity_threshold=_env_number("SIMILARITY_THRESHOLD", 0.35, float),
        semantic_top_k=_env_number("SEMANTIC_TOP_K", 8, int),
        keyword_top_k=_env_number("KEYWORD_TOP_K", 8, int),
        hybrid_top_k=_env_number("HYBRID_TOP_K", 6, int),
        chunk_size=_env_number("CHUNK_SIZE", 220, int),
        chunk_overlap=_env_number("CHUNK_OVERLAP", 60, int),
    )
    return models, retrieval
