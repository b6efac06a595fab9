"""Tests for retrieval.py — semantic thresholding, keyword scan, hybrid merge, selection."""
from __future__ import annotations

import re

import pytest

from hybrid_rag.errors import CollaboratorError
from hybrid_rag.retrieval import keyword_retrieve, merge_candidates, select_top, semantic_retrieve
from hybrid_rag.schema import KEYWORD, SEMANTIC, Chunk
from hybrid_rag.settings import HybridWeights


# ---------------------------------------------------------------------------
# semantic_retrieve
# ---------------------------------------------------------------------------


class TestSemanticRetrieve:
    def _index(self, scripted_index, sample_chunks):
        index = scripted_index({"rag_intro": 0.8, "api_login": 0.4}, default=0.1)
        index.index_chunks(sample_chunks)
        return index

    def test_candidates_sorted_descending(self, scripted_index, sample_chunks):
        result = semantic_retrieve(self._index(scripted_index, sample_chunks), "什么是 RAG？", top_k=8)
        assert [c.chunk.source_id for c in result.candidates] == ["rag_intro", "api_login", "noise_cooking"]
        assert all(c.method == SEMANTIC for c in result.candidates)

    def test_threshold_filters_passed(self, scripted_index, sample_chunks):
        result = semantic_retrieve(self._index(scripted_index, sample_chunks), "q", top_k=8, threshold=0.35)
        assert [c.chunk.source_id for c in result.passed] == ["rag_intro", "api_login"]
        assert len(result.candidates) == 3

    def test_threshold_is_inclusive(self, scripted_index, sample_chunks):
        result = semantic_retrieve(self._index(scripted_index, sample_chunks), "q", threshold=0.4)
        assert [c.chunk.source_id for c in result.passed] == ["rag_intro", "api_login"]

    def test_raising_threshold_never_adds_candidates(self, scripted_index, sample_chunks):
        index = self._index(scripted_index, sample_chunks)
        counts = [len(semantic_retrieve(index, "q", threshold=t).passed) for t in (0.0, 0.2, 0.35, 0.5, 0.9)]
        assert counts == sorted(counts, reverse=True)
        assert counts[-1] == 0

    def test_top_k_limits_candidates(self, scripted_index, sample_chunks):
        result = semantic_retrieve(self._index(scripted_index, sample_chunks), "q", top_k=1)
        assert [c.chunk.source_id for c in result.candidates] == ["rag_intro"]

    def test_index_errors_propagate(self):
        class FailingIndex:
            def index_chunks(self, chunks):
                pass

            def similarity_search(self, query, k):
                raise CollaboratorError("embedding endpoint unavailable")

        with pytest.raises(CollaboratorError, match="unavailable"):
            semantic_retrieve(FailingIndex(), "q")

    def test_records_elapsed_time(self, scripted_index, sample_chunks):
        result = semantic_retrieve(self._index(scripted_index, sample_chunks), "q")
        assert result.elapsed_ms >= 0.0


# ---------------------------------------------------------------------------
# keyword_retrieve
# ---------------------------------------------------------------------------


class TestKeywordRetrieve:
    def test_exact_field_name_hit(self, sample_chunks):
        result = keyword_retrieve(sample_chunks, "login 接口的 user_id 字段名是什么？")
        assert [hit.chunk.source_id for hit in result.hits] == ["api_login"]
        assert result.hits[0].score == 9
        assert result.hits[0].method == KEYWORD
        assert "user_id" in result.terms

    def test_zero_scores_are_excluded(self, sample_chunks):
        result = keyword_retrieve(sample_chunks, "北海道冬天怎么玩？")
        assert result.hits == []
        assert result.terms

    def test_top_k_and_stable_ties(self):
        chunks = [Chunk(content=f"rag note {idx}", source_id=f"doc{idx}", chunk_index=0) for idx in range(5)]
        result = keyword_retrieve(chunks, "rag", top_k=3)
        assert [hit.chunk.source_id for hit in result.hits] == ["doc0", "doc1", "doc2"]

    def test_higher_scores_rank_first(self):
        chunks = [
            Chunk(content="rag", source_id="short", chunk_index=0),
            Chunk(content="rag and retrieval", source_id="long", chunk_index=0),
        ]
        result = keyword_retrieve(chunks, "rag retrieval")
        assert [hit.chunk.source_id for hit in result.hits] == ["long", "short"]

    def test_empty_knowledge_base(self):
        assert keyword_retrieve([], "rag").hits == []

    def test_custom_id_patterns(self):
        chunks = [Chunk(content="订单 ord-42 已发货", source_id="orders", chunk_index=0)]
        result = keyword_retrieve(chunks, "ord-42 到哪了", id_patterns=(re.compile(r"ord-\d+"),))
        assert result.terms[0] == "ord-42"
        assert result.hits[0].chunk.source_id == "orders"

    def test_custom_stopwords(self, sample_chunks):
        result = keyword_retrieve(sample_chunks, "什么是 RAG？", stopwords={"rag", "什么是"})
        assert result.terms == []
        assert result.hits == []


# ---------------------------------------------------------------------------
# merge_candidates
# ---------------------------------------------------------------------------


class TestMergeCandidates:
    def _inputs(self, make_candidate):
        semantic = [make_candidate("A", 0.8), make_candidate("B", 0.4)]
        keyword = [make_candidate("B", 4, KEYWORD), make_candidate("C", 2, KEYWORD)]
        return semantic, keyword

    def test_normalized_weighted_scores_with_boost(self, make_candidate):
        merged = merge_candidates(*self._inputs(make_candidate))
        scores = {entry.chunk.source_id: entry.hybrid_score for entry in merged}
        assert scores["A"] == pytest.approx(0.75)
        assert scores["B"] == pytest.approx(0.775)
        assert scores["C"] == pytest.approx(0.125)
        assert [entry.chunk.source_id for entry in merged] == ["B", "A", "C"]

    def test_shared_chunk_is_merged_once(self, make_candidate):
        merged = merge_candidates(*self._inputs(make_candidate))
        keys = [entry.chunk.key for entry in merged]
        assert len(keys) == len(set(keys))
        b_entry = next(entry for entry in merged if entry.chunk.source_id == "B")
        assert b_entry.semantic_score == pytest.approx(0.4)
        assert b_entry.keyword_score == 4

    def test_keyword_only_entries_can_be_excluded(self, make_candidate):
        semantic, keyword = self._inputs(make_candidate)
        merged = merge_candidates(semantic, keyword, keyword_only_candidates=False)
        assert [entry.chunk.source_id for entry in merged] == ["B", "A"]

    def test_custom_weights(self, make_candidate):
        weights = HybridWeights(semantic=0.5, keyword=0.5, co_occurrence_boost=0.0)
        merged = merge_candidates(*self._inputs(make_candidate), weights=weights)
        scores = {entry.chunk.source_id: entry.hybrid_score for entry in merged}
        assert scores == pytest.approx({"A": 0.5, "B": 0.75, "C": 0.25})

    def test_no_boost_without_positive_semantic_score(self, make_candidate):
        merged = merge_candidates([make_candidate("A", 0.0)], [make_candidate("A", 2, KEYWORD)])
        assert len(merged) == 1
        assert merged[0].hybrid_score == pytest.approx(0.25)

    def test_keyword_only_input(self, make_candidate):
        merged = merge_candidates([], [make_candidate("C", 2, KEYWORD)])
        assert merged[0].semantic_score is None
        assert merged[0].hybrid_score == pytest.approx(0.25)

    def test_ties_keep_insertion_order(self, make_candidate):
        semantic = [make_candidate("first", 0.5), make_candidate("second", 0.5)]
        keyword = [make_candidate("third", 3, KEYWORD), make_candidate("fourth", 3, KEYWORD)]
        merged = merge_candidates(semantic, keyword, HybridWeights(0.5, 0.5, 0.0))
        assert [entry.chunk.source_id for entry in merged] == ["first", "second", "third", "fourth"]

    def test_same_inputs_give_same_output(self, make_candidate):
        first = merge_candidates(*self._inputs(make_candidate))
        second = merge_candidates(*self._inputs(make_candidate))
        assert [(e.chunk.key, e.hybrid_score) for e in first] == [(e.chunk.key, e.hybrid_score) for e in second]

    def test_empty_inputs(self):
        assert merge_candidates([], []) == []


# ---------------------------------------------------------------------------
# select_top
# ---------------------------------------------------------------------------


class TestSelectTop:
    def test_takes_first_entries_in_rank_order(self, make_candidate):
        merged = merge_candidates([make_candidate("A", 0.8), make_candidate("B", 0.4)], [])
        assert [chunk.source_id for chunk in select_top(merged, top_k=1)] == ["A"]

    def test_top_k_larger_than_merged(self, make_candidate):
        merged = merge_candidates([make_candidate("A", 0.8)], [])
        assert len(select_top(merged, top_k=6)) == 1
