"""Tests for io_utils.py and the built-in dataset export."""
from __future__ import annotations

import json

import pytest

from hybrid_rag.errors import ConfigurationError
from hybrid_rag.io_utils import load_cases, load_documents, save_chunks, save_report
from hybrid_rag.knowledge_base import DEFAULT_CASES, DEFAULT_DOCUMENTS, default_cases, save_default_dataset
from hybrid_rag.schema import Chunk, Document, EvaluationCase


class TestJsonl:
    def test_load_documents_skips_blank_lines(self, tmp_path):
        path = tmp_path / "documents.jsonl"
        path.write_text(
            '{"source_id": "a", "text": "alpha", "topic": "t"}\n\n{"source_id": "b", "text": "beta"}\n',
            encoding="utf-8",
        )
        assert load_documents(path) == [Document("a", "alpha", "t"), Document("b", "beta")]

    def test_load_cases(self, tmp_path):
        path = tmp_path / "cases.jsonl"
        path.write_text('{"name": "n", "question": "什么是 RAG？", "expected_hit": true}\n', encoding="utf-8")
        assert load_cases(path) == [EvaluationCase(name="n", question="什么是 RAG？", expected_hit=True)]

    def test_save_chunks_writes_one_line_per_chunk(self, tmp_path, sample_chunks):
        path = tmp_path / "nested" / "chunks.jsonl"
        save_chunks(sample_chunks, path)
        rows = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
        assert [row["source_id"] for row in rows] == ["rag_intro", "api_login", "noise_cooking"]
        assert "检索增强生成" in rows[0]["content"]

    def test_save_report_creates_parent_dirs(self, tmp_path):
        path = save_report({"summary": {"hit_rate": 0.5}, "note": "兜底"}, tmp_path / "out" / "report.json")
        assert path.exists()
        assert json.loads(path.read_text(encoding="utf-8"))["note"] == "兜底"


    def test_missing_file_is_a_configuration_error(self, tmp_path):
        with pytest.raises(ConfigurationError, match="missing.jsonl"):
            load_documents(tmp_path / "missing.jsonl")

    def test_malformed_json_is_a_configuration_error(self, tmp_path):
        path = tmp_path / "cases.jsonl"
        path.write_text('{"name": "n", "question": ', encoding="utf-8")
        with pytest.raises(ConfigurationError, match="EvaluationCase"):
            load_cases(path)

    def test_unexpected_field_is_a_configuration_error(self, tmp_path):
        path = tmp_path / "documents.jsonl"
        path.write_text('{"source_id": "a", "body": "alpha"}\n', encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Document"):
            load_documents(path)

class TestDefaultDataset:
    def test_round_trip_through_jsonl(self, tmp_path, kb_documents):
        documents_path, cases_path = save_default_dataset(str(tmp_path / "data"))
        assert load_documents(documents_path) == kb_documents
        assert load_cases(cases_path) == default_cases()

    def test_built_in_sizes(self, kb_documents):
        assert len(kb_documents) == len(DEFAULT_DOCUMENTS) == 11
        assert len({document.source_id for document in kb_documents}) == 11
        assert len(DEFAULT_CASES) == 6

    def test_off_topic_case_expects_fallback(self):
        off_topic = [case for case in default_cases() if not case.expected_hit]
        assert [case.question for case in off_topic] == ["北海道冬天怎么玩？"]
