from __future__ import annotations

from dataclasses import asdict
import json
from pathlib import Path

from .errors import ConfigurationError
from .schema import Chunk, Document, EvaluationCase


def _load_jsonl(path: str | Path) -> list[dict]:
    records: list[dict] = []
    with Path(path).open("r", encoding="utf-8") as file_handle:
        for line in file_handle:
            if line.strip():
                records.append(json.loads(line))
    return records


def _load_records(path: str | Path, record_type: type) -> list:
    """Load JSONL rows into `record_type` instances.

    Raises:
        ConfigurationError: If the file is missing, unreadable, not valid
            JSONL, or a row does not match the record's fields.
    """
    try:
        return [record_type(**record) for record in _load_jsonl(path)]
    except (OSError, ValueError, TypeError) as exc:
        raise ConfigurationError(f"cannot load {record_type.__name__} records from {path}: {exc}") from exc


def load_documents(path: str | Path = "data/documents.jsonl") -> list[Document]:
    return _load_records(path, Document)


def load_cases(path: str | Path = "data/cases.jsonl") -> list[EvaluationCase]:
    return _load_records(path, EvaluationCase)


def save_chunks(chunks: list[Chunk], path: str | Path) -> None:
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)

    with destination.open("w", encoding="utf-8") as file_handle:
        for chunk in chunks:
            file_handle.write(json.dumps(asdict(chunk), ensure_ascii=False) + "\n")


def save_report(report: dict, path: str | Path) -> Path:
    """Write an evaluation report dict as pretty-printed UTF-8 JSON."""
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(json.dumps(report, ensure_ascii=False, indent=2), encoding="utf-8")
    return destination
