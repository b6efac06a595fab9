"""OpenTelemetry tracing for the hybrid retrieval engine.

Every query produces one trace:

    hybrid-retrieval
    ├── semantic-search      (vector index call, may time out)
    ├── keyword-search       (in-memory scan)
    └── quality-gate
    generation               (only when the gate reports a hit)

The evaluation harness wraps each case in an ``evaluation-case`` span.

Usage:

    from hybrid_rag.tracing import configure_tracing

    configure_tracing()                                     # console exporter
    configure_tracing(endpoint="http://localhost:6006/v1/traces")  # OTLP/HTTP

If :func:`configure_tracing` is never called, spans go to the no-op global
provider and cost next to nothing.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterator

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource, SERVICE_NAME
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)

# OpenInference attribute names plus the engine's own retrieval attributes.
ATTR_INPUT_VALUE = "input.value"
ATTR_OUTPUT_VALUE = "output.value"
ATTR_LLM_MODEL_NAME = "llm.model_name"
ATTR_RETRIEVAL_DOCUMENTS = "retrieval.documents"
ATTR_SEMANTIC_CANDIDATES = "retrieval.semantic.candidates"
ATTR_SEMANTIC_PASSED = "retrieval.semantic.passed"
ATTR_KEYWORD_TERMS = "retrieval.keyword.terms"
ATTR_KEYWORD_HITS = "retrieval.keyword.hits"
ATTR_GATE_REASON = "quality_gate.reason"
ATTR_GATE_COVERAGE = "quality_gate.coverage_ratio"
ATTR_CASE_NAME = "evaluation.case_name"

_provider: TracerProvider | None = None


def configure_tracing(
    endpoint: str | None = None,
    service_name: str = "hybrid-rag",
    exporter: SpanExporter | None = None,
) -> TracerProvider:
    """Create and register a global TracerProvider.

    Args:
        endpoint: OTLP HTTP endpoint URL. When *None* and no *exporter* is
            given, spans are printed to stdout.
        service_name: Service label shown in the observability backend.
        exporter: Pre-built exporter (e.g. ``InMemorySpanExporter`` in tests);
            takes precedence over *endpoint*.

    Returns:
        The configured provider, also installed as the global OTel provider.
    """
    global _provider

    provider = TracerProvider(resource=Resource(attributes={SERVICE_NAME: service_name}))

    if exporter is not None:
        chosen_exporter: SpanExporter = exporter
    elif endpoint is not None:
        try:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
                OTLPSpanExporter,
            )
        except ImportError as exc:  # pragma: no cover
            raise ImportError(
                "opentelemetry-exporter-otlp-proto-http is required to export "
                "traces to an OTLP endpoint. Install the 'otlp' extra."
            ) from exc
        chosen_exporter = OTLPSpanExporter(endpoint=endpoint)
    else:
        chosen_exporter = ConsoleSpanExporter()

    provider.add_span_processor(SimpleSpanProcessor(chosen_exporter))
    trace.set_tracer_provider(provider)
    _provider = provider
    return provider


def get_tracer(name: str) -> trace.Tracer:
    """Return a tracer from the configured provider, or the no-op global one."""
    if _provider is not None:
        return _provider.get_tracer(name)
    return trace.get_tracer(name)


@contextmanager
def traced_stage(tracer: trace.Tracer, name: str, **attributes) -> Iterator[trace.Span]:
    """Run a block inside a span, marking it ERROR and re-raising on failure.

    Keyword arguments become span attributes (dots are written as ``__``).
    """
    with tracer.start_as_current_span(name) as span:
        for key, value in attributes.items():
            span.set_attribute(key.replace("__", "."), value)
        try:
            yield span
        except Exception as exc:
            span.set_status(trace.StatusCode.ERROR, str(exc))
            span.record_exception(exc)
            raise
        span.set_status(trace.StatusCode.OK)


def traced_generation(
    generate_fn: Callable[[str, str, str], str],
    tracer: trace.Tracer,
    model_name: str = "",
) -> Callable[[str, str, str], str]:
    """Wrap an answer generator so every call is recorded as a ``generation`` span.

    The span records the question, the model name (when provided), and the
    first 500 characters of the answer.

    Args:
        generate_fn: Callable ``(system_prompt, context, question) -> answer``.
        tracer: Tracer used for span creation.
        model_name: Optional model identifier attached to the span.

    Returns:
        A callable with the same signature and behaviour plus tracing.
    """

    def _wrapped(system_prompt: str, context: str, question: str) -> str:
        with traced_stage(tracer, "generation", input__value=question) as span:
            if model_name:
                span.set_attribute(ATTR_LLM_MODEL_NAME, model_name)
            answer = generate_fn(system_prompt, context, question)
            span.set_attribute(ATTR_OUTPUT_VALUE, answer[:500])
            return answer

    return _wrapped
