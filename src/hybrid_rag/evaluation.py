from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
import logging
import time
from typing import Sequence

from .engine import HybridRetrievalEngine
from .schema import EvaluationCase, GateDecision, HybridRetrieval
from .tracing import ATTR_CASE_NAME, ATTR_GATE_REASON, get_tracer, traced_stage

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CaseOutcome:
    """Single-case evaluation output used for aggregate reporting."""

    name: str
    question: str
    expected_hit: bool
    hit: bool
    fallback: bool
    reason: str
    coverage_ratio: float
    timing_ms: float
    terms: list[str] = field(default_factory=list)
    covered_terms: list[str] = field(default_factory=list)
    semantic_candidates: int = 0
    semantic_passed: int = 0
    keyword_hits: int = 0
    final_keys: list[str] = field(default_factory=list)
    answer: str | None = None

    @property
    def mismatch(self) -> bool:
        return self.expected_hit != self.hit


@dataclass(slots=True)
class EvaluationReport:
    """Outcomes of one evaluation run plus aggregate rates."""

    outcomes: list[CaseOutcome]
    hit_rate: float
    fallback_rate: float
    avg_coverage_ratio: float
    settings: dict = field(default_factory=dict)

    @property
    def mismatches(self) -> list[CaseOutcome]:
        return [outcome for outcome in self.outcomes if outcome.mismatch]

    def to_dict(self) -> dict:
        return {
            "summary": {
                "total": len(self.outcomes),
                "hit_rate": self.hit_rate,
                "fallback_rate": self.fallback_rate,
                "avg_coverage_ratio": self.avg_coverage_ratio,
                "mismatches": [outcome.name for outcome in self.mismatches],
            },
            "settings": self.settings,
            "outcomes": [asdict(outcome) | {"mismatch": outcome.mismatch} for outcome in self.outcomes],
        }


def run_case(
    engine: HybridRetrievalEngine,
    case: EvaluationCase,
    with_answer: bool = False,
) -> tuple[CaseOutcome, HybridRetrieval]:
    """Run one case through retrieval and the quality gate.

    Args:
        engine: Engine providing retrieval, gating, and generation.
        case: Labeled question.
        with_answer: Also call the answer generator, only when the gate hits.

    Returns:
        `CaseOutcome` with gate verdict, coverage, timing, and retrieval counts,
        plus the `HybridRetrieval` behind it for debug output. Timing covers
        retrieval and gating, not answer generation.
    """
    with traced_stage(get_tracer("hybrid_rag.evaluation"), "evaluation-case", input__value=case.question) as span:
        span.set_attribute(ATTR_CASE_NAME, case.name)
        started = time.perf_counter()
        retrieval = engine.retrieve(case.question)
        decision = engine.assess(case.question, retrieval)
        elapsed_ms = (time.perf_counter() - started) * 1000
        span.set_attribute(ATTR_GATE_REASON, decision.reason)

        answer = None
        if with_answer and decision.hit:
            answer = engine.generate(case.question, decision)

    outcome = build_outcome(case, retrieval, decision, elapsed_ms, answer)
    if outcome.mismatch:
        logger.warning(
            "case %r: expected hit=%s, got hit=%s (%s)", case.name, case.expected_hit, outcome.hit, outcome.reason
        )
    return outcome, retrieval


def evaluate_case(engine: HybridRetrievalEngine, case: EvaluationCase, with_answer: bool = False) -> CaseOutcome:
    """Like `run_case`, returning only the outcome."""
    return run_case(engine, case, with_answer)[0]


def build_outcome(
    case: EvaluationCase,
    retrieval: HybridRetrieval,
    decision: GateDecision,
    elapsed_ms: float,
    answer: str | None = None,
) -> CaseOutcome:
    """Record a retrieval and its gate decision as a `CaseOutcome`."""
    return CaseOutcome(
        name=case.name,
        question=case.question,
        expected_hit=case.expected_hit,
        hit=decision.hit,
        fallback=decision.fallback,
        reason=decision.reason,
        coverage_ratio=decision.coverage_ratio,
        timing_ms=elapsed_ms,
        terms=decision.terms,
        covered_terms=decision.covered_terms,
        semantic_candidates=len(retrieval.semantic.candidates),
        semantic_passed=len(retrieval.semantic.passed),
        keyword_hits=len(retrieval.keyword.hits),
        final_keys=[chunk.key for chunk in retrieval.selected],
        answer=answer,
    )


def summarize(outcomes: Sequence[CaseOutcome]) -> dict[str, float]:
    """Aggregate per-case outcomes into simple mean rates."""
    if not outcomes:
        return {"hit_rate": 0.0, "fallback_rate": 0.0, "avg_coverage_ratio": 0.0}

    total = len(outcomes)
    return {
        "hit_rate": sum(1 for outcome in outcomes if outcome.hit) / total,
        "fallback_rate": sum(1 for outcome in outcomes if outcome.fallback) / total,
        "avg_coverage_ratio": sum(outcome.coverage_ratio for outcome in outcomes) / total,
    }


def build_report(outcomes: list[CaseOutcome], settings: dict) -> EvaluationReport:
    """Aggregate outcomes into an `EvaluationReport`."""
    rates = summarize(outcomes)
    return EvaluationReport(
        outcomes=outcomes,
        hit_rate=rates["hit_rate"],
        fallback_rate=rates["fallback_rate"],
        avg_coverage_ratio=rates["avg_coverage_ratio"],
        settings=settings,
    )


def run_evaluation(
    engine: HybridRetrievalEngine,
    cases: Sequence[EvaluationCase],
    with_answers: bool = False,
    max_workers: int = 1,
) -> EvaluationReport:
    """Evaluate every case and aggregate hit, fallback, and coverage rates.

    Args:
        engine: Engine under evaluation.
        cases: Labeled cases; independent of each other.
        with_answers: Generate answers for cases the gate accepts.
        max_workers: Cases evaluated in parallel; 1 runs them sequentially.
            Clamped to `engine.query_capacity`.

    Returns:
        `EvaluationReport` with outcomes in case order.
    """
    if max_workers > engine.query_capacity:
        logger.warning(
            "max_workers=%d exceeds the engine's query capacity; using %d", max_workers, engine.query_capacity
        )
        max_workers = engine.query_capacity

    engine.ensure_ready()
    if max_workers > 1 and len(cases) > 1:
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="evaluation") as pool:
            outcomes = list(pool.map(lambda case: evaluate_case(engine, case, with_answers), cases))
    else:
        outcomes = [evaluate_case(engine, case, with_answers) for case in cases]
    return build_report(outcomes, engine.settings.as_dict())
