"""Hybrid retrieval engine: knowledge-base lifecycle and the per-query path.

The engine owns the chunked knowledge base and the vector index built from it.
Initialization is lazy and single-flight: the first query (or an explicit
``ensure_ready()``) builds the knowledge base while holding a lock, and any
concurrent caller waits for that build instead of starting another one.

Per query, the semantic search runs on a worker thread while the keyword scan
runs on the calling thread; both results are joined before merging. Waiting for
a free worker and the index call are each bounded by
``RetrievalSettings.search_timeout_seconds``.
"""
from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from enum import Enum
from functools import partial
import logging
import threading
from typing import Callable, Sequence

from opentelemetry import context as otel_context

from .chunking import split_documents
from .embeddings import build_client, embed_texts
from .errors import CollaboratorError, ConfigurationError
from .knowledge_base import load_default_documents
from .qa import FALLBACK_ANSWER, SYSTEM_PROMPT, generate_answer
from .quality_gate import assess_retrieval
from .retrieval import keyword_retrieve, merge_candidates, select_top, semantic_retrieve
from .schema import Chunk, Document, GateDecision, HybridRetrieval, SemanticResult
from .settings import ModelSettings, RetrievalSettings
from .tracing import (
    ATTR_GATE_COVERAGE,
    ATTR_GATE_REASON,
    ATTR_KEYWORD_HITS,
    ATTR_KEYWORD_TERMS,
    ATTR_RETRIEVAL_DOCUMENTS,
    ATTR_SEMANTIC_CANDIDATES,
    ATTR_SEMANTIC_PASSED,
    get_tracer,
    traced_generation,
    traced_stage,
)
from .vector_store import ChromaVectorIndex, InMemoryVectorIndex, VectorIndex

logger = logging.getLogger(__name__)

AnswerGenerator = Callable[[str, str, str], str]


class LifecycleState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


@dataclass(slots=True)
class AnswerResult:
    """End-to-end answer with the retrieval and gate decision behind it."""

    question: str
    answer: str
    retrieval: HybridRetrieval
    decision: GateDecision


class HybridRetrievalEngine:
    """Combines semantic and keyword retrieval behind a quality gate.

    Args:
        index: Vector index collaborator; filled during initialization.
        settings: Retrieval tunables. Validated on construction.
        document_loader: Returns the raw documents to chunk and index.
        generator: Optional answer generator ``(system_prompt, context, question)``.
        model_name: Chat model name recorded on generation spans.
        max_concurrent_queries: Worker threads available for semantic
            searches; callers beyond this wait for a free worker.
    """

    def __init__(
        self,
        index: VectorIndex,
        settings: RetrievalSettings | None = None,
        document_loader: Callable[[], Sequence[Document]] = load_default_documents,
        generator: AnswerGenerator | None = None,
        model_name: str = "",
        max_concurrent_queries: int = 4,
    ):
        if max_concurrent_queries < 1:
            raise ConfigurationError(f"max_concurrent_queries must be >= 1, got {max_concurrent_queries}")
        self.settings = settings or RetrievalSettings()
        self.settings.validate()
        self._index = index
        self._document_loader = document_loader
        self._tracer = get_tracer("hybrid_rag.engine")
        self._generator = traced_generation(generator, self._tracer, model_name) if generator else None

        self._state = LifecycleState.UNINITIALIZED
        self._init_lock = threading.Lock()
        self._chunks: tuple[Chunk, ...] = ()
        self._query_capacity = max_concurrent_queries
        self._executor = ThreadPoolExecutor(max_workers=max_concurrent_queries, thread_name_prefix="semantic-search")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def chunks(self) -> tuple[Chunk, ...]:
        return self._chunks

    @property
    def query_capacity(self) -> int:
        """Number of queries whose semantic searches can run at once."""
        return self._query_capacity

    def ensure_ready(self) -> None:
        """Build the knowledge base once; concurrent callers wait for that build.

        A failed build resets the engine to `UNINITIALIZED` and re-raises, so
        a later call starts over from a clean state.
        """
        if self._state is LifecycleState.READY:
            return
        with self._init_lock:
            if self._state is LifecycleState.READY:
                return
            self._state = LifecycleState.INITIALIZING
            try:
                documents = list(self._document_loader())
                chunks = tuple(
                    split_documents(documents, self.settings.chunk_size, self.settings.chunk_overlap)
                )
                self._index.index_chunks(chunks)
            except Exception:
                self._state = LifecycleState.UNINITIALIZED
                raise
            self._chunks = chunks
            self._state = LifecycleState.READY
            logger.info("knowledge base ready: %d documents, %d chunks", len(documents), len(chunks))

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> HybridRetrievalEngine:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Query path
    # ------------------------------------------------------------------

    def retrieve(self, question: str) -> HybridRetrieval:
        """Run semantic and keyword retrieval, merge, and select the top chunks.

        The search timeout bounds waiting for a free worker and, separately,
        the index call itself; queue time does not count against the call.

        Raises:
            CollaboratorError: If the vector index fails, no worker frees up,
                or the call exceeds the configured search timeout.
        """
        self.ensure_ready()
        settings = self.settings

        with traced_stage(self._tracer, "hybrid-retrieval", input__value=question) as span:
            started = threading.Event()
            future = self._executor.submit(self._semantic_search, question, otel_context.get_current(), started)
            with traced_stage(self._tracer, "keyword-search") as keyword_span:
                keyword = keyword_retrieve(
                    self._chunks,
                    question,
                    settings.keyword_top_k,
                    settings.tiers,
                    settings.stopwords,
                    settings.id_patterns,
                )
                keyword_span.set_attribute(ATTR_KEYWORD_TERMS, keyword.terms)
                keyword_span.set_attribute(ATTR_KEYWORD_HITS, len(keyword.hits))

            semantic = self._await_semantic(future, started)

            merged = merge_candidates(
                semantic.passed,
                keyword.hits,
                settings.weights,
                settings.keyword_only_candidates,
            )
            selected = select_top(merged, settings.hybrid_top_k)
            span.set_attribute(ATTR_SEMANTIC_CANDIDATES, len(semantic.candidates))
            span.set_attribute(ATTR_SEMANTIC_PASSED, len(semantic.passed))
            span.set_attribute(ATTR_RETRIEVAL_DOCUMENTS, [chunk.key for chunk in selected])

        logger.debug(
            "retrieved %d chunks (semantic passed=%d, keyword hits=%d)",
            len(selected),
            len(semantic.passed),
            len(keyword.hits),
        )
        return HybridRetrieval(selected=selected, semantic=semantic, keyword=keyword, merged=merged)

    def _await_semantic(self, future: Future, started: threading.Event) -> SemanticResult:
        timeout = self.settings.search_timeout_seconds
        if not started.wait(timeout):
            future.cancel()
            raise CollaboratorError(f"no semantic search worker became free within {timeout}s")
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError as exc:
            future.cancel()
            raise CollaboratorError(f"semantic search timed out after {timeout}s") from exc

    def _semantic_search(
        self,
        question: str,
        parent: otel_context.Context,
        started: threading.Event,
    ) -> SemanticResult:
        started.set()
        # Worker threads do not inherit the caller's span context.
        token = otel_context.attach(parent)
        try:
            with traced_stage(self._tracer, "semantic-search", input__value=question):
                return semantic_retrieve(
                    self._index,
                    question,
                    self.settings.semantic_top_k,
                    self.settings.similarity_threshold,
                )
        finally:
            otel_context.detach(token)

    def assess(self, question: str, retrieval: HybridRetrieval) -> GateDecision:
        with traced_stage(self._tracer, "quality-gate") as span:
            decision = assess_retrieval(
                retrieval.selected,
                question,
                self.settings.coverage_term_limit,
                self.settings.stopwords,
                self.settings.id_patterns,
            )
            span.set_attribute(ATTR_GATE_REASON, decision.reason)
            span.set_attribute(ATTR_GATE_COVERAGE, decision.coverage_ratio)
        return decision

    def generate(self, question: str, decision: GateDecision) -> str:
        """Generate an answer from a gate decision that reported a hit.

        Raises:
            ConfigurationError: If the engine has no answer generator.
            CollaboratorError: If the generator call fails.
        """
        if self._generator is None:
            raise ConfigurationError("no answer generator configured (set VOLC_CHAT_MODEL)")
        return self._generator(SYSTEM_PROMPT, decision.context, question)

    def answer(self, question: str) -> AnswerResult:
        """Answer a question end to end, falling back when evidence is insufficient."""
        retrieval = self.retrieve(question)
        decision = self.assess(question, retrieval)
        if decision.fallback:
            logger.info("fallback (%s) for question %r", decision.reason, question)
            text = FALLBACK_ANSWER
        else:
            text = self.generate(question, decision)
        return AnswerResult(question=question, answer=text, retrieval=retrieval, decision=decision)


def build_engine(
    models: ModelSettings,
    settings: RetrievalSettings | None = None,
    index_kind: str = "memory",
    document_loader: Callable[[], Sequence[Document]] = load_default_documents,
    require_chat: bool = False,
    max_concurrent_queries: int = 4,
) -> HybridRetrievalEngine:
    """Wire an engine to the OpenAI-compatible endpoint described by `models`.

    Args:
        models: Endpoint credentials and model identifiers.
        settings: Retrieval tunables; defaults when omitted.
        index_kind: `memory` (NumPy) or `chroma` (ephemeral Chroma collection).
        document_loader: Source of knowledge-base documents.
        require_chat: Fail fast when no chat model is configured.
        max_concurrent_queries: Semantic search workers; size it to the
            number of callers querying at once.

    Raises:
        ConfigurationError: If identifiers are missing or `index_kind` is unknown.
    """
    models.validate(require_chat=require_chat)
    client = build_client(models)
    embed_fn = partial(embed_texts, model=models.embedding_model, client=client)

    if index_kind == "memory":
        index: VectorIndex = InMemoryVectorIndex(embed_fn)
    elif index_kind == "chroma":
        index = ChromaVectorIndex(embed_fn)
    else:
        raise ConfigurationError(f"unknown index kind: {index_kind!r}")

    generator = None
    if models.chat_model:
        generator = partial(generate_answer, client=client, model=models.chat_model)

    return HybridRetrievalEngine(
        index=index,
        settings=settings,
        document_loader=document_loader,
        generator=generator,
        model_name=models.chat_model,
        max_concurrent_queries=max_concurrent_queries,
    )
