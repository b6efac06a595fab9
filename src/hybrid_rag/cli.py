from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from .engine import HybridRetrievalEngine, build_engine
from .errors import HybridRagError
from .evaluation import EvaluationReport, build_report, run_case, run_evaluation
from .io_utils import load_cases, load_documents, save_report
from .knowledge_base import default_cases, load_default_documents
from .schema import EvaluationCase, HybridRetrieval
from .settings import load_settings
from .tracing import configure_tracing

logger = logging.getLogger("hybrid_rag")


def _add_tuning_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--threshold", type=float, help="Similarity threshold, e.g. 0.35.")
    parser.add_argument("--semantic-top-k", type=int, help="Semantic retrieval top-k, e.g. 8.")
    parser.add_argument("--keyword-top-k", type=int, help="Keyword retrieval top-k, e.g. 8.")
    parser.add_argument("--hybrid-top-k", type=int, help="Final hybrid top-k, e.g. 6.")
    parser.add_argument("--chunk-size", type=int, help="Chunk size in characters, e.g. 220.")
    parser.add_argument("--chunk-overlap", type=int, help="Chunk overlap in characters, e.g. 60.")
    parser.add_argument("--documents", help="JSONL knowledge base (defaults to the built-in demo documents).")
    parser.add_argument(
        "--index",
        choices=["memory", "chroma"],
        default="memory",
        help="Vector index backend; neither persists.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hybrid-rag",
        description="Hybrid (semantic + keyword) retrieval with a quality gate, plus an evaluation harness.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")
    parser.add_argument("--trace", action="store_true", help="Print OpenTelemetry spans to stdout.")
    parser.add_argument("--otlp-endpoint", help="Export spans to an OTLP/HTTP endpoint.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    evaluate = subparsers.add_parser("evaluate", help="Run the labeled case set and report hit/fallback rates.")
    _add_tuning_arguments(evaluate)
    evaluate.add_argument("--case", dest="case_question", help="Run a single ad hoc question with debug output.")
    evaluate.add_argument("--cases", help="JSONL case set (defaults to the built-in cases).")
    evaluate.add_argument("--with-llm", action="store_true", help="Also generate answers for accepted cases.")
    evaluate.add_argument("--workers", type=int, default=1, help="Cases evaluated in parallel.")
    evaluate.add_argument("--report", help="Write the evaluation report as JSON to this path.")

    ask = subparsers.add_parser("ask", help="Answer one question end to end.")
    _add_tuning_arguments(ask)
    ask.add_argument("question", help="Question to answer.")
    return parser


def _engine_from_args(args: argparse.Namespace, require_chat: bool) -> HybridRetrievalEngine:
    models, retrieval = load_settings()
    retrieval = retrieval.with_overrides(
        similarity_threshold=args.threshold,
        semantic_top_k=args.semantic_top_k,
        keyword_top_k=args.keyword_top_k,
        hybrid_top_k=args.hybrid_top_k,
        chunk_size=args.chunk_size,
        chunk_overlap=args.chunk_overlap,
    )
    documents_path = args.documents
    loader = (lambda: load_documents(documents_path)) if documents_path else load_default_documents
    return build_engine(
        models,
        retrieval,
        index_kind=args.index,
        document_loader=loader,
        require_chat=require_chat,
        max_concurrent_queries=max(4, getattr(args, "workers", 1)),
    )


def _print_case_debug(retrieval: HybridRetrieval) -> None:
    print("\n[SEMANTIC_CANDIDATES]")
    for candidate in retrieval.semantic.candidates:
        print(f"- {candidate.chunk.key:<24} score={candidate.score:.4f}")
    print("\n[KEYWORDS]", retrieval.keyword.terms)
    print("[KEYWORD_HITS]")
    for hit in retrieval.keyword.hits:
        print(f"- {hit.chunk.key:<24} score={int(hit.score)}")
    print("\n[MERGED_TOP]")
    for entry in retrieval.merged[:12]:
        semantic = f"{entry.semantic_score:.4f}" if entry.semantic_score is not None else "-"
        keyword = str(int(entry.keyword_score)) if entry.keyword_score is not None else "-"
        print(f"- {entry.chunk.key:<24} hybrid={entry.hybrid_score:.3f} semantic={semantic} keyword={keyword}")


def _print_report(report: EvaluationReport, single: bool) -> None:
    for outcome in report.outcomes:
        print("\n========================================")
        print(f"[CASE] {outcome.name}")
        print("[Q]", outcome.question)
        print(
            "[RESULT]",
            {"hit": outcome.hit, "fallback": outcome.fallback, "reason": outcome.reason, "ms": round(outcome.timing_ms)},
        )
        print(
            "[TERM]",
            {"terms": outcome.terms, "covered": outcome.covered_terms, "coverage_ratio": round(outcome.coverage_ratio, 2)},
        )
        print(
            "[RETRIEVAL]",
            {
                "semantic_candidates": outcome.semantic_candidates,
                "semantic_passed": outcome.semantic_passed,
                "keyword_hits": outcome.keyword_hits,
                "final_docs": len(outcome.final_keys),
            },
        )
        print("[FINAL_DOCS]", outcome.final_keys)
        if outcome.answer is not None:
            print("\n[ANSWER]\n")
            print(outcome.answer)
        if outcome.mismatch and not single:
            print("[WARN] expectation mismatch:", {"expected_hit": outcome.expected_hit, "got_hit": outcome.hit})

    if not single:
        print("\n=== SUMMARY ===")
        print(
            {
                "total": len(report.outcomes),
                "hit_rate": round(report.hit_rate, 2),
                "fallback_rate": round(report.fallback_rate, 2),
                "avg_coverage_ratio": round(report.avg_coverage_ratio, 2),
            }
        )
        print("\nTip: tune --threshold first, then watch how passed / fallback change.\n")


def _run_evaluate(args: argparse.Namespace) -> int:
    with _engine_from_args(args, require_chat=args.with_llm) as engine:
        engine.ensure_ready()
        print("\n=== CONFIG ===")
        print(engine.settings.as_dict())

        if args.case_question:
            case = EvaluationCase(name="single", question=args.case_question, expected_hit=True)
            outcome, retrieval = run_case(engine, case, with_answer=args.with_llm)
            report = build_report([outcome], engine.settings.as_dict())
            _print_report(report, single=True)
            _print_case_debug(retrieval)
        else:
            cases = load_cases(args.cases) if args.cases else default_cases()
            report = run_evaluation(engine, cases, with_answers=args.with_llm, max_workers=args.workers)
            _print_report(report, single=False)

    if args.report:
        path = save_report(report.to_dict(), args.report)
        print(f"Report written to {path}")
    return 0


def _run_ask(args: argparse.Namespace) -> int:
    with _engine_from_args(args, require_chat=True) as engine:
        result = engine.answer(args.question)
    print("Question:", result.question)
    print("\n=== ANSWER ===\n")
    print(result.answer)
    print("\n[FINAL_DOCS]", [chunk.key for chunk in result.retrieval.selected])
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.otlp_endpoint or args.trace:
        configure_tracing(endpoint=args.otlp_endpoint)

    try:
        if args.command == "evaluate":
            return _run_evaluate(args)
        return _run_ask(args)
    except HybridRagError as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
