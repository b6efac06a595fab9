"""Tests for chunking.py — overlapping character windows and per-document indexes."""
from __future__ import annotations

import pytest

from hybrid_rag.chunking import split_documents, split_text
from hybrid_rag.errors import ConfigurationError
from hybrid_rag.schema import Document


# ---------------------------------------------------------------------------
# split_text
# ---------------------------------------------------------------------------


class TestSplitText:
    def test_short_text_is_single_chunk(self):
        assert split_text("检索增强生成", chunk_size=220, chunk_overlap=60) == ["检索增强生成"]

    def test_windows_advance_by_size_minus_overlap(self):
        text = "abcdefghij"
        assert split_text(text, chunk_size=4, chunk_overlap=2) == ["abcd", "cdef", "efgh", "ghij"]

    def test_consecutive_windows_share_overlap(self):
        text = "".join(chr(ord("a") + idx % 26) for idx in range(100))
        segments = split_text(text, chunk_size=20, chunk_overlap=5)
        for previous, current in zip(segments, segments[1:]):
            assert previous[-5:] == current[:5]

    def test_no_window_exceeds_chunk_size(self):
        segments = split_text("x" * 1000, chunk_size=220, chunk_overlap=60)
        assert all(len(segment) <= 220 for segment in segments)

    def test_final_window_reaches_end_without_tail_duplicate(self):
        # 10 chars, size 6, overlap 2: windows at 0 and 4; the second covers the end.
        assert split_text("0123456789", chunk_size=6, chunk_overlap=2) == ["012345", "456789"]

    def test_zero_overlap_partitions_text(self):
        assert split_text("abcdef", chunk_size=2, chunk_overlap=0) == ["ab", "cd", "ef"]

    def test_empty_and_whitespace_text_yield_nothing(self):
        assert split_text("", chunk_size=10, chunk_overlap=2) == []
        assert split_text("   \n\t ", chunk_size=10, chunk_overlap=2) == []

    def test_whitespace_only_segment_is_dropped(self):
        text = "ab" + " " * 10 + "cd"
        segments = split_text(text, chunk_size=4, chunk_overlap=0)
        assert all(segment.strip() for segment in segments)
        assert segments[0] == "ab"
        assert segments[-1] == "cd"

    def test_overlap_equal_to_size_raises(self):
        with pytest.raises(ConfigurationError, match="chunk_overlap"):
            split_text("abc", chunk_size=5, chunk_overlap=5)

    def test_negative_overlap_raises(self):
        with pytest.raises(ConfigurationError):
            split_text("abc", chunk_size=5, chunk_overlap=-1)

    def test_non_positive_size_raises(self):
        with pytest.raises(ConfigurationError, match="chunk_size"):
            split_text("abc", chunk_size=0, chunk_overlap=0)


# ---------------------------------------------------------------------------
# split_documents
# ---------------------------------------------------------------------------


class TestSplitDocuments:
    def test_chunk_index_restarts_per_document(self):
        documents = [
            Document(source_id="a", text="0123456789"),
            Document(source_id="b", text="abcdefghij"),
        ]
        chunks = split_documents(documents, chunk_size=6, chunk_overlap=2)
        assert [chunk.key for chunk in chunks] == ["a#0", "a#1", "b#0", "b#1"]

    def test_keys_are_unique_across_knowledge_base(self, kb_documents):
        chunks = split_documents(kb_documents, chunk_size=80, chunk_overlap=20)
        keys = [chunk.key for chunk in chunks]
        assert len(keys) == len(set(keys))

    def test_every_document_contributes_a_chunk(self, kb_documents):
        chunks = split_documents(kb_documents)
        assert {chunk.source_id for chunk in chunks} == {document.source_id for document in kb_documents}

    def test_empty_document_contributes_nothing(self):
        assert split_documents([Document(source_id="empty", text="  ")]) == []

    def test_invalid_parameters_raise(self, kb_documents):
        with pytest.raises(ConfigurationError):
            split_documents(kb_documents, chunk_size=10, chunk_overlap=10)
